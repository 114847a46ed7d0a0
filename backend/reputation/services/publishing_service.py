"""
Review publisher.

Two passes per run, both compare-and-set on status = SUBMITTED so a row is
published at most once even if runs overlap:
1. Pair pass: SUBMITTED rows sharing (lease_id, stage) publish together
   once both sides have submitted.
2. Timeout pass: any SUBMITTED row whose publish_after has passed
   publishes alone.

Published identities get an aggregate refresh, deduplicated per run.
"""

import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Optional

from supabase import Client

from reputation.core.config import get_settings
from reputation.core.constants import PUBLISH_BATCH_SIZE
from reputation.core.database import get_supabase
from reputation.core.timeutils import subtract_months, utc_now
from reputation.models.review import (
    CleanupResult,
    PublishRunResult,
    ReviewStage,
    ReviewStatus,
)

logger = logging.getLogger(__name__)

PUBLISH_COLUMNS = "id, lease_id, stage, reviewee_id, target_tenant_group_id, publish_after"


def _carries_score(row: dict[str, Any]) -> bool:
    return row.get("stage") == ReviewStage.END_OF_LEASE.value and not row.get(
        "exclude_from_aggregates"
    )


class _RefreshTargets:
    """Identities to refresh after a run, in first-seen order."""

    def __init__(self) -> None:
        self.user_ids: list[str] = []
        self.tenant_group_ids: list[str] = []

    def add(self, row: dict[str, Any]) -> None:
        if row.get("reviewee_id") and row["reviewee_id"] not in self.user_ids:
            self.user_ids.append(row["reviewee_id"])
        group_id = row.get("target_tenant_group_id")
        if group_id and group_id not in self.tenant_group_ids:
            self.tenant_group_ids.append(group_id)


class PublishingService:
    """Service that moves SUBMITTED reviews to PUBLISHED."""

    def __init__(
        self,
        supabase: Optional[Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._supabase = supabase
        self._clock = clock

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    # =========================================================================
    # Public API
    # =========================================================================

    def publish_reviews(
        self,
        now: Optional[datetime] = None,
        deadline_seconds: Optional[float] = None,
        schedule_refresh: bool = True,
    ) -> PublishRunResult:
        """
        Run both publish passes.

        A failing initial query propagates so the task can retry. Failures
        on a single pair or review are logged and counted. Once the deadline
        passes, remaining items are left SUBMITTED for the next run.
        """
        now = now or utc_now()
        if deadline_seconds is None:
            deadline_seconds = get_settings().publisher_run_deadline_seconds
        deadline = self._clock() + deadline_seconds

        result = PublishRunResult()
        targets = _RefreshTargets()

        submitted = self._fetch_submitted()
        pairs = self._group_pairs(submitted)
        logger.info(
            "Publisher run: %d submitted reviews, %d publishable pairs",
            len(submitted),
            len(pairs),
        )

        for index, rows in enumerate(pairs):
            if self._clock() >= deadline:
                result.timed_out = True
                result.skipped += sum(len(group) for group in pairs[index:])
                break
            try:
                published = self._publish_rows([row["id"] for row in rows], now)
            except Exception:
                logger.error(
                    "Failed to publish pair for lease %s",
                    rows[0]["lease_id"],
                    exc_info=True,
                    extra={"lease_id": rows[0]["lease_id"]},
                )
                result.failed += 1
                continue
            result.paired_published += len(published)
            for row in published:
                targets.add(row)

        if not result.timed_out:
            due = self._fetch_due(now)
            for index, row in enumerate(due):
                if self._clock() >= deadline:
                    result.timed_out = True
                    result.skipped += len(due) - index
                    break
                try:
                    published = self._publish_rows([row["id"]], now)
                except Exception:
                    logger.error(
                        "Failed to publish review %s",
                        row["id"],
                        exc_info=True,
                        extra={"review_id": row["id"]},
                    )
                    result.failed += 1
                    continue
                result.timeout_published += len(published)
                for published_row in published:
                    targets.add(published_row)

        if result.timed_out:
            logger.warning(
                "Publisher deadline reached, %d reviews left for the next run", result.skipped
            )

        result.refreshed_user_ids = targets.user_ids
        result.refreshed_tenant_group_ids = targets.tenant_group_ids
        if schedule_refresh:
            self._schedule_refresh(targets)

        logger.info(
            "Publisher run complete: paired=%d timeout=%d failed=%d skipped=%d",
            result.paired_published,
            result.timeout_published,
            result.failed,
            result.skipped,
        )
        return result

    def cleanup_old_published_reviews(
        self,
        retention_months: Optional[int] = None,
        now: Optional[datetime] = None,
        schedule_refresh: bool = True,
    ) -> CleanupResult:
        """
        Delete published reviews older than the retention horizon.

        Only rows without aggregate weight are deleted. INITIAL seeds and
        scoring END_OF_LEASE reviews are kept and counted in `retained`.
        """
        now = now or utc_now()
        if retention_months is None:
            retention_months = get_settings().review_retention_months
        cutoff = subtract_months(now, retention_months)

        expired = (
            self.supabase.table("reviews")
            .select("id, stage, exclude_from_aggregates, reviewee_id, target_tenant_group_id")
            .eq("status", ReviewStatus.PUBLISHED.value)
            .neq("stage", ReviewStage.INITIAL.value)
            .lt("published_at", cutoff.isoformat())
            .execute()
        )
        rows = []
        result = CleanupResult(cutoff=cutoff)
        for row in expired.data or []:
            if _carries_score(row):
                result.retained += 1
            else:
                rows.append(row)

        if result.retained:
            logger.info(
                "Retaining %d scoring reviews older than %s", result.retained, cutoff.date()
            )
        if not rows:
            return result

        targets = _RefreshTargets()
        for row in rows:
            targets.add(row)

        deleted = (
            self.supabase.table("reviews")
            .delete()
            .in_("id", [row["id"] for row in rows])
            .execute()
        )
        result.deleted = len(deleted.data or [])
        result.refreshed_user_ids = targets.user_ids
        result.refreshed_tenant_group_ids = targets.tenant_group_ids

        logger.info(
            "Deleted %d published reviews older than %s", result.deleted, cutoff.date()
        )
        if schedule_refresh:
            self._schedule_refresh(targets)
        return result

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _fetch_submitted(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            batch = (
                self.supabase.table("reviews")
                .select(PUBLISH_COLUMNS)
                .eq("status", ReviewStatus.SUBMITTED.value)
                .order("created_at")
                .range(offset, offset + PUBLISH_BATCH_SIZE - 1)
                .execute()
            )
            data = batch.data or []
            rows.extend(data)
            if len(data) < PUBLISH_BATCH_SIZE:
                return rows
            offset += PUBLISH_BATCH_SIZE

    def _fetch_due(self, now: datetime) -> list[dict[str, Any]]:
        result = (
            self.supabase.table("reviews")
            .select(PUBLISH_COLUMNS)
            .eq("status", ReviewStatus.SUBMITTED.value)
            .lte("publish_after", now.isoformat())
            .order("publish_after")
            .execute()
        )
        return result.data or []

    def _group_pairs(self, rows: list[dict[str, Any]]) -> list[list[dict[str, Any]]]:
        """Groups of 2+ SUBMITTED rows on the same lease and stage."""
        groups: dict[tuple[str, str], list[dict[str, Any]]] = defaultdict(list)
        for row in rows:
            if row.get("lease_id"):
                groups[(row["lease_id"], row["stage"])].append(row)
        return [group for group in groups.values() if len(group) >= 2]

    def _publish_rows(self, review_ids: list[str], now: datetime) -> list[dict[str, Any]]:
        """Conditional publish. Returns the rows this call actually moved."""
        result = (
            self.supabase.table("reviews")
            .update({"status": ReviewStatus.PUBLISHED.value, "published_at": now.isoformat()})
            .in_("id", review_ids)
            .eq("status", ReviewStatus.SUBMITTED.value)
            .execute()
        )
        return result.data or []

    def _schedule_refresh(self, targets: _RefreshTargets) -> None:
        if not targets.user_ids and not targets.tenant_group_ids:
            return
        try:
            from reputation.tasks.reputation_tasks import schedule_reputation_refresh

            schedule_reputation_refresh(
                user_ids=targets.user_ids, tenant_group_ids=targets.tenant_group_ids
            )
        except Exception as e:
            logger.warning("Failed to schedule reputation refresh: %s", e)
