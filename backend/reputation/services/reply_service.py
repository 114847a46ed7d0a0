"""
Reviewee replies.

One reply per review, written by the reviewee (or any member of the
reviewed tenant group). The author may edit it within 24 hours.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from postgrest.exceptions import APIError
from supabase import Client

from reputation.core.config import get_settings
from reputation.core.constants import REPLY_MAX_LENGTH
from reputation.core.database import get_supabase
from reputation.core.timeutils import parse_timestamp, utc_now
from reputation.models.review import (
    EditWindowExpiredError,
    ReplyAlreadyExistsError,
    ReplyNotFoundError,
    ReplyRecord,
    ReviewAccessDeniedError,
    ReviewNotFoundError,
    ReviewValidationError,
)
from reputation.services.lease_service import LeaseService

logger = logging.getLogger(__name__)


class ReplyService:
    """Service for review replies."""

    def __init__(
        self, supabase: Optional[Client] = None, lease_service: Optional[LeaseService] = None
    ) -> None:
        self._supabase = supabase
        self._leases = lease_service

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    @property
    def leases(self) -> LeaseService:
        if self._leases is None:
            self._leases = LeaseService(supabase=self.supabase)
        return self._leases

    # =========================================================================
    # Public API
    # =========================================================================

    def reply_to_review(self, review_id: str, caller_id: str, content: str) -> ReplyRecord:
        """Store the reviewee's one-time reply."""
        content = self._validate_content(content)

        result = (
            self.supabase.table("reviews")
            .select("id, reviewee_id, target_tenant_group_id")
            .eq("id", review_id)
            .execute()
        )
        if not result.data:
            raise ReviewNotFoundError(f"Review {review_id} not found")
        review = result.data[0]

        if not self._is_reviewee(review, caller_id):
            raise ReviewAccessDeniedError(
                f"User {caller_id} is not the reviewee of review {review_id}"
            )

        existing = (
            self.supabase.table("review_replies").select("id").eq("review_id", review_id).execute()
        )
        if existing.data:
            raise ReplyAlreadyExistsError(f"Review {review_id} already has a reply")

        try:
            inserted = (
                self.supabase.table("review_replies")
                .insert({"review_id": review_id, "author_id": caller_id, "content": content})
                .execute()
            )
        except APIError as e:
            if e.code == "23505":
                raise ReplyAlreadyExistsError(f"Review {review_id} already has a reply") from e
            raise

        logger.info(
            "Reply added to review %s",
            review_id,
            extra={"review_id": review_id, "user_id": caller_id},
        )
        return ReplyRecord(**inserted.data[0])

    def edit_reply(
        self,
        reply_id: str,
        caller_id: str,
        content: str,
        now: Optional[datetime] = None,
    ) -> ReplyRecord:
        """Edit a reply. Author only, within the reply edit window."""
        content = self._validate_content(content)

        result = self.supabase.table("review_replies").select("*").eq("id", reply_id).execute()
        if not result.data:
            raise ReplyNotFoundError(f"Reply {reply_id} not found")
        reply = result.data[0]

        if reply["author_id"] != caller_id:
            raise ReviewAccessDeniedError(f"User {caller_id} did not write reply {reply_id}")

        now = now or utc_now()
        window = timedelta(hours=get_settings().reply_edit_window_hours)
        created_at = parse_timestamp(reply.get("created_at"))
        if created_at is None or now - created_at >= window:
            raise EditWindowExpiredError(f"Edit window expired for reply {reply_id}")

        updated = (
            self.supabase.table("review_replies")
            .update({"content": content, "updated_at": now.isoformat()})
            .eq("id", reply_id)
            .execute()
        )
        return ReplyRecord(**updated.data[0])

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _validate_content(self, content: Optional[str]) -> str:
        content = (content or "").strip()
        if not 1 <= len(content) <= REPLY_MAX_LENGTH:
            raise ReviewValidationError(f"Reply must be 1-{REPLY_MAX_LENGTH} characters")
        return content

    def _is_reviewee(self, review: dict, user_id: str) -> bool:
        if review.get("reviewee_id"):
            return review["reviewee_id"] == user_id
        return user_id in self.leases.get_group_member_ids(review.get("target_tenant_group_id"))
