"""Keyword-based tag categorization with Porter stemming."""

from __future__ import annotations

from nltk.stem import PorterStemmer
from nltk.tokenize import RegexpTokenizer
from pydantic import BaseModel, Field

from supportflow.models.record import Tag

# Declaration order is the tie-break order for the primary tag.
TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    Tag.QUESTION: (
        "question", "ask", "wonder", "curious", "how", "what", "why", "when", "where", "who", "?",
    ),
    Tag.REQUEST: (
        "request", "please", "need", "want", "require", "would like", "could you", "can you",
        "help me",
    ),
    Tag.COMPLAINT: (
        "complaint", "complaining", "unhappy", "dissatisfied", "disappointed", "angry",
        "frustrated", "problem", "issue", "wrong", "bad", "terrible", "awful", "horrible",
    ),
    Tag.COMPLIMENT: (
        "compliment", "thank", "thanks", "appreciate", "great", "excellent", "amazing",
        "wonderful", "love", "fantastic", "brilliant",
    ),
    Tag.FEEDBACK: (
        "feedback", "suggest", "suggestion", "improve", "improvement", "idea", "opinion", "think",
    ),
    Tag.TECHNICAL_ISSUE: (
        "error", "bug", "broken", "not working", "crash", "technical", "glitch", "malfunction",
        "defect", "fault",
    ),
    Tag.BILLING: (
        "billing", "payment", "charge", "invoice", "bill", "refund", "money", "cost", "price",
        "subscription", "renewal",
    ),
}

TOKEN_MATCH_WEIGHT = 2
SUBSTRING_MATCH_WEIGHT = 1

_tokenizer = RegexpTokenizer(r"\w+")
_stemmer = PorterStemmer()

_STEMMED_KEYWORDS: dict[str, tuple[tuple[str, str], ...]] = {
    tag: tuple((keyword, _stemmer.stem(keyword)) for keyword in keywords)
    for tag, keywords in TAG_KEYWORDS.items()
}


class TaggingResult(BaseModel):
    tags: list[str]
    primary_tag: str
    scores: dict[str, int] = Field(default_factory=dict)


def stem_tokens(text: str) -> set[str]:
    """Lower-case, tokenize and stem ``text``."""
    return {_stemmer.stem(token) for token in _tokenizer.tokenize(text.lower())}


def analyze_tags(subject: str, content: str) -> TaggingResult:
    """Score every category and pick the primary tag.

    A keyword scores 2 when its stem equals a token stem and 1 when it
    appears anywhere in the lower-cased text; both can apply. The primary
    tag is the first category reaching the strictly highest score. With
    no matches at all the result is the singleton ``other``.
    """
    text = f"{subject} {content}".lower()
    stems = stem_tokens(text)

    scores: dict[str, int] = {}
    for tag, keywords in _STEMMED_KEYWORDS.items():
        score = 0
        for keyword, stemmed in keywords:
            if stemmed in stems:
                score += TOKEN_MATCH_WEIGHT
            if keyword in text:
                score += SUBSTRING_MATCH_WEIGHT
        scores[str(tag)] = score

    best_score = 0
    primary = str(Tag.OTHER)
    detected: list[str] = []
    for tag, score in scores.items():
        if score > best_score:
            best_score = score
            primary = tag
        if score > 0:
            detected.append(tag)

    if not detected:
        return TaggingResult(tags=[str(Tag.OTHER)], primary_tag=str(Tag.OTHER), scores=scores)
    return TaggingResult(tags=detected, primary_tag=primary, scores=scores)
