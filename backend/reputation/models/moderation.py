"""
Review content moderation and report models.

Moderation is a pure text pass (PII, links, profanity, hate speech) run on
every submit and edit. Reports are user-raised flags on a visible review.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from reputation.core.constants import REPORT_REASON_MAX_LENGTH

# ===========================================
# Enums
# ===========================================


class ModerationReason(str, Enum):
    """Human-readable reasons recorded for each matched category."""

    EMAIL = "Email addresses are not allowed"
    PHONE = "Phone numbers are not allowed"
    LINK = "Links and URLs are not allowed"
    PROFANITY = "Profanity or inappropriate language detected"
    HATE_SPEECH = "Hate speech or violent content detected"


class ReportStatus(str, Enum):
    """Lifecycle of a review report (resolved outside this service)."""

    OPEN = "OPEN"
    REVIEWED = "REVIEWED"
    DISMISSED = "DISMISSED"


# ===========================================
# Request Models
# ===========================================


class ReportReviewRequest(BaseModel):
    """Flag a review for admin attention."""

    reason: str = Field(..., min_length=1, max_length=REPORT_REASON_MAX_LENGTH)


# ===========================================
# Response Models
# ===========================================


class ModerationResult(BaseModel):
    """Outcome of a moderation pass over review text."""

    ok: bool
    redacted_text: str
    reasons: list[str] = Field(default_factory=list)


class ReportResponse(BaseModel):
    """A submitted report."""

    id: str
    review_id: str
    reporter_id: str
    reason: str
    status: ReportStatus
    created_at: Optional[datetime] = None
