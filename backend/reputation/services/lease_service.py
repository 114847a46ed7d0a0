"""
Read-only lease and tenant-group lookups.

Leases, tenant groups and memberships are owned by the lease service;
the reputation engine only reads them to resolve review participants.
"""

import logging
from typing import Any, Optional

from supabase import Client

from reputation.core.database import get_supabase
from reputation.models.review import LeaseNotFoundError

logger = logging.getLogger(__name__)

LEASE_COLUMNS = "id, status, start_date, end_date, landlord_id, tenant_group_id"


class LeaseService:
    """Lookups over leases, tenant groups and group membership."""

    def __init__(self, supabase: Optional[Client] = None) -> None:
        self._supabase = supabase

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase()
        return self._supabase

    def get_lease(self, lease_id: str) -> dict[str, Any]:
        """Fetch a lease row or raise LeaseNotFoundError."""
        result = self.supabase.table("leases").select(LEASE_COLUMNS).eq("id", lease_id).execute()
        if not result.data:
            raise LeaseNotFoundError(f"Lease {lease_id} not found")
        return result.data[0]

    def get_group_member_ids(self, tenant_group_id: Optional[str]) -> list[str]:
        """User IDs in a tenant group, in membership order."""
        if not tenant_group_id:
            return []
        result = (
            self.supabase.table("tenant_group_members")
            .select("user_id, is_primary")
            .eq("tenant_group_id", tenant_group_id)
            .execute()
        )
        return [row["user_id"] for row in result.data or []]

    def get_primary_tenant_id(self, tenant_group_id: Optional[str]) -> Optional[str]:
        """Primary member of a tenant group, falling back to the first member."""
        if not tenant_group_id:
            return None
        result = (
            self.supabase.table("tenant_group_members")
            .select("user_id, is_primary")
            .eq("tenant_group_id", tenant_group_id)
            .execute()
        )
        rows = result.data or []
        for row in rows:
            if row.get("is_primary"):
                return row["user_id"]
        return rows[0]["user_id"] if rows else None

    def get_user_group_ids(self, user_id: str) -> list[str]:
        """Tenant groups the user belongs to."""
        result = (
            self.supabase.table("tenant_group_members")
            .select("tenant_group_id")
            .eq("user_id", user_id)
            .execute()
        )
        return [row["tenant_group_id"] for row in result.data or []]

    def get_user_leases(self, user_id: str) -> list[dict[str, Any]]:
        """Leases where the user is the landlord or a member of the tenant group."""
        leases: dict[str, dict[str, Any]] = {}

        as_landlord = (
            self.supabase.table("leases").select(LEASE_COLUMNS).eq("landlord_id", user_id).execute()
        )
        for lease in as_landlord.data or []:
            leases[lease["id"]] = lease

        group_ids = self.get_user_group_ids(user_id)
        if group_ids:
            as_tenant = (
                self.supabase.table("leases")
                .select(LEASE_COLUMNS)
                .in_("tenant_group_id", group_ids)
                .execute()
            )
            for lease in as_tenant.data or []:
                leases[lease["id"]] = lease

        return list(leases.values())

    def is_landlord(self, lease: dict[str, Any], user_id: str) -> bool:
        return lease.get("landlord_id") == user_id

    def is_tenant(self, lease: dict[str, Any], user_id: str) -> bool:
        return user_id in self.get_group_member_ids(lease.get("tenant_group_id"))

    def is_participant(self, lease: dict[str, Any], user_id: str) -> bool:
        return self.is_landlord(lease, user_id) or self.is_tenant(lease, user_id)
