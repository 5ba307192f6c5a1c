"""
GroupLedger - Organization Service Tests

Ownership tree helpers and organization management.
"""

import uuid
from decimal import Decimal

import pytest

from app.models import OrganizationType
from app.services.organization_service import (
    OrganizationService,
    ancestor_chain,
    descendants_of,
    effective_ownership,
    validate_hierarchy,
)
from app.utils.error_handling import (
    BusinessRuleException,
    ConflictException,
    OrganizationHierarchyException,
    OrganizationNotFoundException,
)
from tests.factories import make_organization


@pytest.fixture
def tree():
    holding = make_organization("Youwe Holding", OrganizationType.HOLDING)
    digital = make_organization("Youwe Digital", parent=holding, ownership="80")
    commerce = make_organization("Youwe Commerce", parent=digital, ownership="70")
    symson = make_organization("Symson", OrganizationType.SAAS, parent=holding, ownership="60")
    outsider = make_organization("Outstrive")
    return holding, digital, commerce, symson, outsider


class TestTreeHelpers:
    """Tests for walking the ownership tree."""

    def test_ancestor_chain(self, tree):
        holding, digital, commerce, _, _ = tree
        by_id = {org.id: org for org in tree}
        assert ancestor_chain(commerce, by_id) == [commerce, digital, holding]

    def test_descendants_parents_first(self, tree):
        holding = tree[0]
        names = [org.name for org in descendants_of(holding.id, tree)]
        assert names == ["Youwe Holding", "Symson", "Youwe Digital", "Youwe Commerce"]

    def test_descendants_of_unknown_root(self, tree):
        assert descendants_of(uuid.uuid4(), tree) == []

    def test_effective_ownership_multiplies_chain(self, tree):
        by_id = {org.id: org for org in tree}
        assert effective_ownership(tree[2], by_id) == Decimal("56")
        assert effective_ownership(tree[0], by_id) == Decimal("100")

    def test_cycle_detected(self):
        a = make_organization("A")
        b = make_organization("B", parent=a)
        a.parent_id = b.id
        with pytest.raises(OrganizationHierarchyException):
            validate_hierarchy([a, b])

    def test_depth_limit(self):
        chain = [make_organization("L0")]
        for level in range(1, 6):
            chain.append(make_organization(f"L{level}", parent=chain[-1]))
        by_id = {org.id: org for org in chain}
        with pytest.raises(OrganizationHierarchyException):
            ancestor_chain(chain[-1], by_id, max_depth=3)


class TestOrganizationService:
    """Tests for organization management through storage."""

    @pytest.mark.asyncio
    async def test_create_and_get_group(self, storage, settings):
        service = OrganizationService(storage, settings)
        holding = await service.create_organization("Youwe Holding", OrganizationType.HOLDING)
        digital = await service.create_organization(
            "Youwe Digital", parent_id=holding.id, ownership_percentage=Decimal("76")
        )

        group = await service.get_group(holding.id)
        assert [org.id for org in group] == [holding.id, digital.id]

    @pytest.mark.asyncio
    async def test_duplicate_name_conflict(self, storage, settings):
        service = OrganizationService(storage, settings)
        await service.create_organization("Symson")
        with pytest.raises(ConflictException):
            await service.create_organization("Symson")

    @pytest.mark.asyncio
    async def test_unknown_parent(self, storage, settings):
        service = OrganizationService(storage, settings)
        with pytest.raises(OrganizationNotFoundException):
            await service.create_organization("Symson", parent_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_ownership_range(self, storage, settings):
        service = OrganizationService(storage, settings)
        with pytest.raises(BusinessRuleException):
            await service.create_organization("Symson", ownership_percentage=Decimal("120"))

    @pytest.mark.asyncio
    async def test_reparent_rejects_cycle(self, storage, settings):
        service = OrganizationService(storage, settings)
        holding = await service.create_organization("Youwe Holding", OrganizationType.HOLDING)
        digital = await service.create_organization("Youwe Digital", parent_id=holding.id)

        with pytest.raises(OrganizationHierarchyException):
            await service.update_organization(holding.id, parent_id=digital.id)
        with pytest.raises(OrganizationHierarchyException):
            await service.update_organization(holding.id, parent_id=holding.id)

    @pytest.mark.asyncio
    async def test_reparent_and_ownership_update(self, storage, settings):
        service = OrganizationService(storage, settings)
        holding = await service.create_organization("Youwe Holding", OrganizationType.HOLDING)
        symson = await service.create_organization("Symson", OrganizationType.SAAS)

        updated = await service.update_organization(
            symson.id, parent_id=holding.id, ownership_percentage=Decimal("60")
        )

        assert updated.parent_id == holding.id
        assert updated.ownership_percentage == Decimal("60")

    @pytest.mark.asyncio
    async def test_list_excludes_inactive(self, storage, settings):
        service = OrganizationService(storage, settings)
        active = await service.create_organization("Active")
        inactive = await service.create_organization("Inactive")
        await service.update_organization(inactive.id, is_active=False)

        assert [o.id for o in await service.list_organizations()] == [active.id]
        assert len(await service.list_organizations(include_inactive=True)) == 2
