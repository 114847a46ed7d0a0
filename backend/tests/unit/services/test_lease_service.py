"""Unit tests for LeaseService lookups."""

import pytest

from reputation.models.review import LeaseNotFoundError
from reputation.services.lease_service import LeaseService


@pytest.fixture
def service(fake_db):
    return LeaseService(supabase=fake_db)


class TestLeaseLookups:
    """Tests for lease and tenant-group lookups."""

    @pytest.mark.unit
    def test_get_lease(self, service, lease_parties) -> None:
        lease = service.get_lease(lease_parties.lease_id)

        assert lease["landlord_id"] == lease_parties.landlord_id
        assert lease["tenant_group_id"] == lease_parties.group_id

    @pytest.mark.unit
    def test_missing_lease(self, service, lease_parties) -> None:
        with pytest.raises(LeaseNotFoundError):
            service.get_lease("missing")

    @pytest.mark.unit
    def test_group_members_in_membership_order(self, service, lease_parties) -> None:
        assert service.get_group_member_ids(lease_parties.group_id) == [
            lease_parties.second_tenant_id,
            lease_parties.tenant_id,
        ]
        assert service.get_group_member_ids(None) == []

    @pytest.mark.unit
    def test_primary_tenant(self, service, lease_parties, fake_db) -> None:
        assert service.get_primary_tenant_id(lease_parties.group_id) == lease_parties.tenant_id

        for member in fake_db.rows("tenant_group_members"):
            member["is_primary"] = False

        assert service.get_primary_tenant_id(lease_parties.group_id) == lease_parties.second_tenant_id
        assert service.get_primary_tenant_id("group-empty") is None

    @pytest.mark.unit
    def test_user_leases_cover_both_sides(self, service, lease_parties) -> None:
        landlord_leases = service.get_user_leases(lease_parties.landlord_id)
        tenant_leases = service.get_user_leases(lease_parties.tenant_id)

        assert [lease["id"] for lease in landlord_leases] == [lease_parties.lease_id]
        assert [lease["id"] for lease in tenant_leases] == [lease_parties.lease_id]
        assert service.get_user_leases(lease_parties.outsider_id) == []

    @pytest.mark.unit
    def test_participant_checks(self, service, lease_parties) -> None:
        lease = service.get_lease(lease_parties.lease_id)

        assert service.is_landlord(lease, lease_parties.landlord_id) is True
        assert service.is_tenant(lease, lease_parties.second_tenant_id) is True
        assert service.is_participant(lease, lease_parties.outsider_id) is False
