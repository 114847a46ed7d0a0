"""
Review moderation service.

Handles:
- Text moderation: email, phone, link, profanity and hate-speech detection
  with placeholder redaction (pure, no I/O)
- Trust & Safety queue hand-off for blocked reviews (fire-and-forget)
- User reports on reviews with duplicate prevention
"""

import logging
import re
from typing import Any, Optional

from postgrest.exceptions import APIError
from supabase import Client

from reputation.core.database import get_supabase
from reputation.models.moderation import ModerationReason, ModerationResult, ReportStatus
from reputation.models.review import (
    DuplicateReportError,
    ReviewNotFoundError,
    ReviewValidationError,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(r"(\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
URL_PATTERN = re.compile(r"(https?://\S+)|(www\.\S+)|(\S+\.[a-z]{2,})", re.IGNORECASE)

PROFANITY_WORDS = [
    "fuck",
    "shit",
    "bitch",
    "ass",
    "damn",
    "hell",
    "hate",
    "kill",
    "death",
    "murder",
    "suicide",
    "racist",
    "sexist",
    "homophobic",
    "transphobic",
]
PROFANITY_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(word) for word in PROFANITY_WORDS) + r")\b",
    re.IGNORECASE,
)

HATE_SPEECH_PATTERNS = [
    re.compile(
        r"\b(kill|death|murder|suicide)\s+(yourself|himself|herself|themselves)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(hate|despise|loathe)\s+(all|every)\s+"
        r"(black|white|asian|hispanic|jewish|muslim|christian|gay|lesbian|trans)\w*",
        re.IGNORECASE,
    ),
    re.compile(r"\bshould\s+be\s+(killed|eliminated|exterminated)\b", re.IGNORECASE),
]

EMAIL_PLACEHOLDER = "[EMAIL_REMOVED]"
PHONE_PLACEHOLDER = "[PHONE_REMOVED]"
LINK_PLACEHOLDER = "[LINK_REMOVED]"
PROFANITY_PLACEHOLDER = "[PROFANITY_REMOVED]"
HATE_SPEECH_PLACEHOLDER = "[HATE_SPEECH_REMOVED]"


def moderate_review_text(text: str) -> ModerationResult:
    """
    Scan review text and build a redacted copy.

    Categories are checked in a fixed order: email, phone, link, profanity,
    hate speech. Every category that matches adds one reason and has its
    spans replaced by a placeholder in the redacted copy. Word and phrase
    checks run on the PII-stripped text; hate-speech phrases are redacted
    before single profane words so a phrase is replaced as a whole.

    The original text must never be shown for a result with ok=False.
    """
    reasons: list[str] = []
    redacted = text

    if EMAIL_PATTERN.search(redacted):
        reasons.append(ModerationReason.EMAIL.value)
        redacted = EMAIL_PATTERN.sub(EMAIL_PLACEHOLDER, redacted)

    if PHONE_PATTERN.search(redacted):
        reasons.append(ModerationReason.PHONE.value)
        redacted = PHONE_PATTERN.sub(PHONE_PLACEHOLDER, redacted)

    if URL_PATTERN.search(redacted):
        reasons.append(ModerationReason.LINK.value)
        redacted = URL_PATTERN.sub(LINK_PLACEHOLDER, redacted)

    has_profanity = PROFANITY_PATTERN.search(redacted) is not None
    has_hate_speech = any(pattern.search(redacted) for pattern in HATE_SPEECH_PATTERNS)

    if has_profanity:
        reasons.append(ModerationReason.PROFANITY.value)
    if has_hate_speech:
        reasons.append(ModerationReason.HATE_SPEECH.value)
        for pattern in HATE_SPEECH_PATTERNS:
            redacted = pattern.sub(HATE_SPEECH_PLACEHOLDER, redacted)
    if has_profanity:
        redacted = PROFANITY_PATTERN.sub(PROFANITY_PLACEHOLDER, redacted)

    return ModerationResult(ok=not reasons, redacted_text=redacted, reasons=reasons)


class ModerationService:
    """Service for review moderation side effects and review reports."""

    def __init__(self, supabase: Optional[Client] = None) -> None:
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    # =========================================================================
    # Public API
    # =========================================================================

    def moderate(self, text: str) -> ModerationResult:
        """Run the moderation pass. See moderate_review_text()."""
        return moderate_review_text(text)

    def enqueue_for_trust_and_safety(
        self,
        review_id: str,
        original_text: str,
        redacted_text: str,
        reasons: list[str],
    ) -> bool:
        """
        Hand a blocked review to the Trust & Safety queue.

        Fire-and-forget: a failed insert is logged and reported as False,
        never raised, so the caller's moderation outcome stands.
        """
        try:
            self.supabase.table("trust_safety_queue").insert(
                {
                    "review_id": review_id,
                    "original_text": original_text,
                    "redacted_text": redacted_text,
                    "reasons": reasons,
                    "status": "PENDING",
                }
            ).execute()
        except Exception as e:
            logger.warning(
                "Failed to enqueue review %s for trust & safety: %s",
                review_id,
                e,
                extra={"review_id": review_id},
            )
            return False

        logger.info(
            "Review %s queued for trust & safety: %s",
            review_id,
            ", ".join(reasons),
            extra={"review_id": review_id},
        )
        return True

    def report_review(self, review_id: str, reporter_id: str, reason: str) -> dict[str, Any]:
        """Record a report on a review. One report per reporter per review."""
        reason = (reason or "").strip()
        if not reason:
            raise ReviewValidationError("A report reason is required")

        review = (
            self.supabase.table("reviews").select("id").eq("id", review_id).execute()
        )
        if not review.data:
            raise ReviewNotFoundError(f"Review {review_id} not found")

        existing = (
            self.supabase.table("review_reports")
            .select("id")
            .eq("review_id", review_id)
            .eq("reporter_id", reporter_id)
            .execute()
        )
        if existing.data:
            raise DuplicateReportError(
                f"User {reporter_id} already reported review {review_id}"
            )

        try:
            result = (
                self.supabase.table("review_reports")
                .insert(
                    {
                        "review_id": review_id,
                        "reporter_id": reporter_id,
                        "reason": reason,
                        "status": ReportStatus.OPEN.value,
                    }
                )
                .execute()
            )
        except APIError as e:
            if e.code == "23505":
                raise DuplicateReportError(
                    f"User {reporter_id} already reported review {review_id}"
                ) from e
            raise

        logger.info(
            "Review reported: review=%s reporter=%s",
            review_id,
            reporter_id,
            extra={"review_id": review_id, "user_id": reporter_id},
        )
        return result.data[0]

    def get_reports_for_review(self, review_id: str) -> list[dict[str, Any]]:
        """All reports raised on a review, newest first."""
        result = (
            self.supabase.table("review_reports")
            .select("*")
            .eq("review_id", review_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []
