"""Rule-based document classifier.

Assigns a document type from the taxonomy using keyword rules, checked in
order (first match wins):

    email            hint "email", "subject:" on the first line, or both
                     "from:" and "to:"                        -> 0.95
    calendar update  "calendar", "meeting moved" or "event:"  -> 0.90
    job description  "job"/"position" plus "requirements",
                     "responsibilities" or "salary"           -> 0.85
    technical doc    "# " plus "api", "documentation" or
                     "## overview"                            -> 0.88

When no rule matches, the source hint alone maps to a low-confidence type.
Anything below ``min_confidence`` yields an empty :class:`Classification`,
so the chunk is stored unlabelled rather than mislabelled.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from kbembed.interfaces.document_classifier import IDocumentClassifier
from kbembed.models.embedding import Classification

logger = structlog.get_logger(logger_name=__name__)

MODEL_NAME = "rule-based"

# Source hint -> (document type, confidence) when no content rule fires.
_HINT_FALLBACKS: dict[str, tuple[str, float]] = {
    "job-description": ("job-related/job-description", 0.6),
    "note": ("personal/note", 0.6),
    "document": ("external/imported-document", 0.55),
    "scrape": ("external/scraped-content", 0.55),
    "upload": ("external/imported-document", 0.55),
}


class RuleBasedClassifier(IDocumentClassifier):
    """Keyword-rule classifier.  Deterministic and offline."""

    def __init__(self, min_confidence: float = 0.5) -> None:
        self._min_confidence = min_confidence

    async def classify(self, text: str, source_hint: str | None = None) -> Classification:
        match = self._match_rules(text, source_hint)
        if match is None:
            return Classification()

        document_type, confidence = match
        if confidence < self._min_confidence:
            logger.debug(
                "classification_below_threshold",
                document_type=document_type,
                confidence=confidence,
                min_confidence=self._min_confidence,
            )
            return Classification()

        return Classification(
            document_type=document_type,
            confidence=confidence,
            model=MODEL_NAME,
            timestamp=datetime.now(tz=timezone.utc),
        )

    def get_provider_name(self) -> str:
        return MODEL_NAME

    @staticmethod
    def _match_rules(text: str, source_hint: str | None) -> tuple[str, float] | None:
        lower = text.lower()
        first_line = lower.split("\n", 1)[0]

        if (
            source_hint == "email"
            or "subject:" in first_line
            or ("from:" in lower and "to:" in lower)
        ):
            return "communication/email", 0.95

        if "calendar" in lower or "meeting moved" in lower or "event:" in lower:
            return "communication/calendar-update", 0.90

        if ("job" in lower or "position" in lower) and (
            "requirements" in lower or "responsibilities" in lower or "salary" in lower
        ):
            return "job-related/job-description", 0.85

        if "# " in lower and ("api" in lower or "documentation" in lower or "## overview" in lower):
            return "reference/technical-doc", 0.88

        if source_hint:
            return _HINT_FALLBACKS.get(source_hint)
        return None
