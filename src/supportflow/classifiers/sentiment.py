"""Sentiment scorers.

``VaderSentimentScorer`` wraps NLTK's VADER model, which handles negation,
intensifiers, capitalisation and punctuation. ``LexiconSentimentScorer`` is
a small deterministic word-list scorer used when no model is wired in.
Any ISentimentScorer can replace either; the worker only consumes the score
and derives the label.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import nltk
from nltk.sentiment.vader import SentimentIntensityAnalyzer

from supportflow.core.protocols import ISentimentScorer
from supportflow.models.record import SentimentResult

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z']+")

VADER_RESOURCE = "vader_lexicon"

# AFINN-style valences in [-5, 5].
LEXICON: dict[str, int] = {
    "amazing": 4, "appreciate": 2, "awesome": 4, "brilliant": 4, "excellent": 3,
    "fantastic": 4, "glad": 3, "good": 3, "great": 3, "happy": 3, "helpful": 2,
    "love": 3, "nice": 3, "perfect": 3, "thank": 2, "thanks": 2, "wonderful": 4,
    "angry": -3, "annoyed": -2, "awful": -3, "bad": -3, "broken": -1, "crash": -2,
    "critical": -2, "disappointed": -2, "dissatisfied": -2, "down": -1, "error": -2,
    "fail": -2, "failed": -2, "frustrated": -2, "frustrating": -2, "hate": -3,
    "horrible": -3, "problem": -2, "terrible": -3, "unacceptable": -2, "unhappy": -2,
    "upset": -2, "urgent": -1, "useless": -2, "waiting": -1, "worst": -3, "wrong": -2,
}


def sentiment_label(score: float) -> str:
    if score > 0:
        return "positive"
    if score < 0:
        return "negative"
    return "neutral"


class LexiconSentimentScorer:
    """ISentimentScorer that sums word valences from a fixed lexicon."""

    def __init__(self, lexicon: dict[str, int] | None = None) -> None:
        self._lexicon = lexicon if lexicon is not None else LEXICON

    def score(self, text: str) -> SentimentResult:
        tokens = _WORD.findall(text.lower())
        total = sum(self._lexicon.get(token, 0) for token in tokens)
        return SentimentResult(
            score=total,
            comparative=total / len(tokens) if tokens else 0.0,
            label=sentiment_label(total),
            tokens=tokens,
        )


def load_vader(download: bool = True) -> SentimentIntensityAnalyzer:
    """Build the VADER analyzer, fetching ``vader_lexicon`` once if it is missing."""
    try:
        return SentimentIntensityAnalyzer()
    except LookupError:
        if not download:
            raise
        logger.info("NLTK %s not found; downloading", VADER_RESOURCE)
        if not nltk.download(VADER_RESOURCE, quiet=True):
            raise
        return SentimentIntensityAnalyzer()


class VaderSentimentScorer:
    """ISentimentScorer over VADER. ``score`` is the compound polarity in [-1, 1]."""

    def __init__(self, analyzer: Any = None, *, download: bool = True) -> None:
        self._analyzer = analyzer if analyzer is not None else load_vader(download)

    def score(self, text: str) -> SentimentResult:
        compound = float(self._analyzer.polarity_scores(text)["compound"])
        tokens = _WORD.findall(text.lower())
        return SentimentResult(
            score=compound,
            comparative=compound / len(tokens) if tokens else 0.0,
            label=sentiment_label(compound),
            tokens=tokens,
        )


def create_scorer(name: str = "vader") -> ISentimentScorer:
    """Scorer by settings name: ``vader`` or ``lexicon``."""
    if name == "vader":
        return VaderSentimentScorer()
    if name == "lexicon":
        return LexiconSentimentScorer()
    raise ValueError(f"Unknown sentiment scorer {name!r}")
