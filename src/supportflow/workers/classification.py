"""The four classification workers: tagging, sentiment, priority, spam."""

from __future__ import annotations

from typing import Any

from supportflow.classifiers.priority import detect_priority
from supportflow.classifiers.sentiment import LexiconSentimentScorer, sentiment_label
from supportflow.classifiers.spam import detect_spam
from supportflow.classifiers.tagging import analyze_tags
from supportflow.core.protocols import IRecordStore, ISentimentScorer
from supportflow.models.job import Stage
from supportflow.models.record import HistoryEntry, Record, RecordStatus
from supportflow.workers.base import ClassificationWorker, StageCompleteCallback


class TaggingWorker(ClassificationWorker):
    stage = Stage.TAGGING

    def classify(self, record: Record) -> tuple[dict[str, Any], HistoryEntry]:
        result = analyze_tags(record.subject, record.content)
        entry = HistoryEntry(
            action="Auto-tagged",
            notes=f"Tags: {', '.join(result.tags)}, Primary: {result.primary_tag}",
        )
        return {"tags": result.tags, "primary_tag": result.primary_tag}, entry


class SentimentWorker(ClassificationWorker):
    stage = Stage.SENTIMENT

    def __init__(
        self,
        *,
        records: IRecordStore,
        scorer: ISentimentScorer | None = None,
        on_complete: StageCompleteCallback | None = None,
    ) -> None:
        super().__init__(records=records, on_complete=on_complete)
        self._scorer = scorer or LexiconSentimentScorer()

    def classify(self, record: Record) -> tuple[dict[str, Any], HistoryEntry]:
        result = self._scorer.score(record.content)
        # The label is always derived from the sign of the score.
        result = result.model_copy(update={"label": sentiment_label(result.score)})
        entry = HistoryEntry(
            action="Sentiment analyzed",
            notes=f"Sentiment: {result.label} (score: {result.score:g})",
        )
        return {"sentiment": result}, entry


class PriorityWorker(ClassificationWorker):
    """Scores priority from the record text.

    Tag inputs come from the pure tagging function rather than the stored
    tags so the outcome does not depend on whether tagging has run yet.
    """

    stage = Stage.PRIORITY

    def classify(self, record: Record) -> tuple[dict[str, Any], HistoryEntry]:
        tagging = analyze_tags(record.subject, record.content)
        result = detect_priority(
            record.subject,
            record.content,
            record.channel,
            tags=tagging.tags,
            primary_tag=tagging.primary_tag,
        )
        entry = HistoryEntry(
            action="Priority detected",
            notes=f"Priority: {result.priority} (Score: {result.priority_score})",
        )
        return {"priority": result.priority, "priority_score": result.priority_score}, entry


class SpamWorker(ClassificationWorker):
    """The only classification worker allowed to change lifecycle status."""

    stage = Stage.SPAM

    def classify(self, record: Record) -> tuple[dict[str, Any], HistoryEntry]:
        result = detect_spam(record.content)
        fields: dict[str, Any] = {"spam": result}
        if result.is_spam:
            fields["status"] = RecordStatus.CLOSED
            entry = HistoryEntry(
                action="Auto-closed as spam",
                notes=f"Spam score: {result.score}, Confidence: {result.confidence * 100:.0f}%",
            )
        else:
            entry = HistoryEntry(action="Spam check passed", notes=f"Spam score: {result.score}")
        return fields, entry
