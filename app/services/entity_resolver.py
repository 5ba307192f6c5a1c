"""
GroupLedger - Entity Resolver

Maps free-text company names from exports to organizations, creating an
organization the first time a name is seen.

The type of a newly created organization is guessed from its name
("Holding" means holding, anything else gets the configured default) and
it is placed at the top of the tree with 100% ownership. Hierarchy and
types of auto-created organizations should be reviewed through the
organizations API.
"""

import logging
import re
import uuid
from decimal import Decimal
from typing import Dict, Optional

from app.config import Settings
from app.models import Organization, OrganizationType
from app.services.storage_service import StorageClient
from app.utils.error_handling import DuplicateRecordError

logger = logging.getLogger(__name__)


# Exact export spellings mapped to canonical names
ENTITY_ALIASES: Dict[str, str] = {
    "Outstrive B.V.": "Outstrive",
    "Symson B.V.": "Symson",
    "Youwe Commerce B.V.": "Youwe Commerce",
    "Youwe Concept B.V.": "Youwe Concept",
    "Youwe Sweden AB": "Youwe Sweden",
    "Youwe ConnectiT B.V.": "Youwe ConnectiT",
    "Youwe Digital B.V.": "Youwe Digital",
    "Youwe Holding B.V.": "Youwe Holding",
    "Smart Nes B.V.": "Smart Nes",
}

LEGAL_SUFFIX_PATTERN = re.compile(r"\s+(?:B\.V\.|AB|Ltd\.|Inc\.)$")

HOLDING_MARKER = "Holding"


def canonical_entity_name(raw_name: str) -> str:
    """Canonical display name for a company name from an export."""
    name = " ".join((raw_name or "").split())
    if name in ENTITY_ALIASES:
        return ENTITY_ALIASES[name]
    return LEGAL_SUFFIX_PATTERN.sub("", name).strip()


def infer_organization_type(name: str, default: OrganizationType = OrganizationType.SERVICES) -> OrganizationType:
    """Guess the organization type from its name."""
    if HOLDING_MARKER in name:
        return OrganizationType.HOLDING
    return default


class EntityResolver:
    """
    Resolve company names to organization ids.

    Names already resolved in this run are served from memory. Creation
    relies on the unique organization name: when another batch created the
    same organization first, the insert fails and the lookup is repeated.
    """

    def __init__(self, storage: StorageClient, settings: Settings):
        self.storage = storage
        self.default_type = OrganizationType(settings.default_organization_type)
        self._resolved: Dict[str, uuid.UUID] = {}
        self.created: Dict[str, uuid.UUID] = {}

    async def _find(self, name: str) -> Optional[Organization]:
        matches = await self.storage.query(Organization, name=name)
        return matches[0] if matches else None

    async def resolve_organization(self, raw_name: str) -> Optional[uuid.UUID]:
        """Organization id for a raw company name; None for a blank name."""
        name = canonical_entity_name(raw_name)
        if not name:
            return None
        if name in self._resolved:
            return self._resolved[name]

        organization = await self._find(name)
        if organization is None:
            organization = Organization(
                id=uuid.uuid4(),
                name=name,
                parent_id=None,
                organization_type=infer_organization_type(name, self.default_type),
                ownership_percentage=Decimal("100"),
                is_active=True,
            )
            try:
                await self.storage.insert(Organization, [organization])
                self.created[name] = organization.id
                logger.info(
                    f"Created organization '{name}' from export name '{raw_name}' "
                    f"as {organization.organization_type.value}"
                )
            except DuplicateRecordError:
                organization = await self._find(name)
                if organization is None:
                    raise
                logger.info(f"Organization '{name}' was created concurrently, reusing it")

        self._resolved[name] = organization.id
        return organization.id
