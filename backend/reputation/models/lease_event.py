"""
Lease lifecycle events consumed from the lease service.

Event context is a tagged union discriminated by `kind`, one shape per
event, so each event carries exactly the fields it needs.
"""

from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

# ===========================================
# Enums
# ===========================================


class LeaseStatus(str, Enum):
    """Lease statuses owned by the lease service."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"
    TERMINATED = "TERMINATED"
    TERMINATED_24H = "TERMINATED_24H"  # landlord's 24-hour termination


ENDED_LEASE_STATUSES = [
    LeaseStatus.ENDED.value,
    LeaseStatus.TERMINATED.value,
    LeaseStatus.TERMINATED_24H.value,
]


class LeaseReviewEventType(str, Enum):
    """Non-terminal lease events that open a review stage."""

    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    MOVE_IN = "MOVE_IN"


# ===========================================
# Event Metadata (tagged union)
# ===========================================


class LeaseEndedMeta(BaseModel):
    """Lease ran to its end date."""

    kind: Literal["lease_ended"] = "lease_ended"
    effective_date: Optional[date] = None
    reason: Optional[str] = None


class EarlyMoveOutMeta(BaseModel):
    """Lease ended because the tenant moved out early."""

    kind: Literal["early_move_out"] = "early_move_out"
    effective_date: Optional[date] = None
    early_move_out_reason: str


class Terminated24hMeta(BaseModel):
    """Landlord terminated within the 24-hour window."""

    kind: Literal["terminated_24h"] = "terminated_24h"
    effective_date: Optional[date] = None
    reason: str


class TerminatedMeta(BaseModel):
    """Generic termination."""

    kind: Literal["terminated"] = "terminated"
    effective_date: Optional[date] = None
    reason: Optional[str] = None


LeaseEventMeta = Annotated[
    Union[LeaseEndedMeta, EarlyMoveOutMeta, Terminated24hMeta, TerminatedMeta],
    Field(discriminator="kind"),
]


# ===========================================
# Request Models
# ===========================================


class LeaseStatusChangeRequest(BaseModel):
    """Lease status transition pushed by the lease service."""

    lease_id: str
    old_status: Optional[LeaseStatus] = None
    new_status: LeaseStatus
    metadata: Optional[LeaseEventMeta] = None


class LeaseReviewEventRequest(BaseModel):
    """Payment completion or move-in for one lease participant."""

    event_type: LeaseReviewEventType
    lease_id: str
    user_id: str


# ===========================================
# Response Models
# ===========================================


class LeaseEventResult(BaseModel):
    """Reviews opened by a lease event."""

    lease_id: str
    event: str
    created_review_ids: list[str] = Field(default_factory=list)
    existing_review_ids: list[str] = Field(default_factory=list)
    badge_awarded: bool = False
