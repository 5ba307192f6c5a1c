"""
GroupLedger - Organization Service

Ownership tree helpers and organization management.

The tree is walked through ``parent_id`` links. Every walk is bounded by
the configured maximum depth and stops with OrganizationHierarchyException
on a cycle, so a bad parent assignment cannot hang consolidation.
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.config import Settings
from app.models import Organization, OrganizationType
from app.services.storage_service import StorageClient
from app.utils.error_handling import (
    BusinessRuleException,
    ConflictException,
    DuplicateRecordError,
    OrganizationHierarchyException,
    OrganizationNotFoundException,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


def ancestor_chain(
    organization: Organization,
    by_id: Dict[uuid.UUID, Organization],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[Organization]:
    """
    The organization followed by its parents up to the root.

    A parent id that points outside ``by_id`` ends the chain there.
    """
    chain = [organization]
    seen = {organization.id}
    current = organization
    while current.parent_id is not None:
        parent = by_id.get(current.parent_id)
        if parent is None:
            break
        if parent.id in seen:
            raise OrganizationHierarchyException(organization.name, "cycle in parent chain")
        if len(chain) > max_depth:
            raise OrganizationHierarchyException(organization.name, f"deeper than {max_depth} levels")
        chain.append(parent)
        seen.add(parent.id)
        current = parent
    return chain


def validate_hierarchy(organizations: Iterable[Organization], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
    """Raise OrganizationHierarchyException if any parent chain is cyclic or too deep."""
    by_id = {org.id: org for org in organizations}
    for organization in by_id.values():
        ancestor_chain(organization, by_id, max_depth)


def descendants_of(
    root_id: uuid.UUID,
    organizations: Iterable[Organization],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[Organization]:
    """The root and every organization below it, parents before children."""
    organizations = list(organizations)
    by_id = {org.id: org for org in organizations}
    if root_id not in by_id:
        return []

    children: Dict[uuid.UUID, List[Organization]] = {}
    for org in organizations:
        if org.parent_id is not None:
            children.setdefault(org.parent_id, []).append(org)

    result = [by_id[root_id]]
    seen = {root_id}
    frontier = [root_id]
    depth = 0
    while frontier:
        depth += 1
        if depth > max_depth:
            raise OrganizationHierarchyException(by_id[root_id].name, f"deeper than {max_depth} levels")
        next_frontier = []
        for parent_id in frontier:
            for child in sorted(children.get(parent_id, []), key=lambda o: o.name):
                if child.id in seen:
                    raise OrganizationHierarchyException(child.name, "cycle in parent chain")
                seen.add(child.id)
                result.append(child)
                next_frontier.append(child.id)
        frontier = next_frontier
    return result


def effective_ownership(
    organization: Organization,
    by_id: Dict[uuid.UUID, Organization],
    root_id: Optional[uuid.UUID] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Decimal:
    """
    Ownership percentage of the group root in an organization, multiplying
    the percentages along the chain (80% of 70% gives 56%). The walk stops
    below ``root_id`` when given.
    """
    result = Decimal("100")
    for org in ancestor_chain(organization, by_id, max_depth):
        if root_id is not None and org.id == root_id:
            break
        if org.parent_id is None:
            break
        result = result * ownership_of(org) / Decimal("100")
    return result


def ownership_of(organization: Organization) -> Decimal:
    """Declared ownership by the immediate parent, 100 when unset."""
    value = organization.ownership_percentage
    return Decimal("100") if value is None else Decimal(value)


class OrganizationService:
    """Service for organization management."""

    def __init__(self, storage: StorageClient, settings: Settings):
        self.storage = storage
        self.settings = settings

    async def list_organizations(self, include_inactive: bool = False) -> List[Organization]:
        if include_inactive:
            return await self.storage.query(Organization, order_by="name")
        return await self.storage.query(Organization, order_by="name", is_active=True)

    async def get_organization(self, organization_id: uuid.UUID) -> Organization:
        organization = await self.storage.get(Organization, organization_id)
        if organization is None:
            raise OrganizationNotFoundException(organization_id)
        return organization

    async def get_group(self, root_id: uuid.UUID) -> List[Organization]:
        """Root organization and all of its descendants."""
        await self.get_organization(root_id)
        organizations = await self.storage.query(Organization)
        return descendants_of(root_id, organizations, self.settings.max_hierarchy_depth)

    async def create_organization(
        self,
        name: str,
        organization_type: OrganizationType = OrganizationType.SERVICES,
        parent_id: Optional[uuid.UUID] = None,
        ownership_percentage: Decimal = Decimal("100"),
        description: Optional[str] = None,
    ) -> Organization:
        if parent_id is not None:
            await self.get_organization(parent_id)
        self._check_ownership(ownership_percentage)

        organization = Organization(
            id=uuid.uuid4(),
            name=name.strip(),
            organization_type=organization_type,
            parent_id=parent_id,
            ownership_percentage=ownership_percentage,
            is_active=True,
            description=description,
        )
        try:
            await self.storage.insert(Organization, [organization])
        except DuplicateRecordError:
            raise ConflictException(f"Organization '{name}' already exists", resource_type="Organization")
        logger.info(f"Created organization {organization.name}")
        return organization

    async def update_organization(self, organization_id: uuid.UUID, **values) -> Organization:
        """Update type, parent, ownership or description, keeping the tree acyclic."""
        organization = await self.get_organization(organization_id)

        if "ownership_percentage" in values and values["ownership_percentage"] is not None:
            self._check_ownership(values["ownership_percentage"])

        if "parent_id" in values:
            parent_id = values["parent_id"]
            if parent_id == organization_id:
                raise OrganizationHierarchyException(organization.name, "an organization cannot own itself")
            organizations = await self.storage.query(Organization)
            by_id = {org.id: org for org in organizations}
            if parent_id is not None and parent_id not in by_id:
                raise OrganizationNotFoundException(parent_id)
            # Check the would-be tree before saving it
            candidate = Organization(
                id=organization.id,
                name=organization.name,
                parent_id=parent_id,
            )
            by_id[organization.id] = candidate
            ancestor_chain(candidate, by_id, self.settings.max_hierarchy_depth)

        return await self.storage.update(Organization, organization_id, **values)

    @staticmethod
    def _check_ownership(value: Decimal) -> None:
        if not Decimal("0") <= Decimal(value) <= Decimal("100"):
            raise BusinessRuleException(
                "Ownership percentage must be between 0 and 100",
                rule="OWNERSHIP_RANGE",
            )
