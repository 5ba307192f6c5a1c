"""
Builders for model instances used across the test suite.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from app.models import (
    JournalLine,
    Organization,
    OrganizationType,
    ReportingType,
    UploadBatch,
    UploadStatus,
    classify_account,
)


def make_organization(
    name: str,
    organization_type: OrganizationType = OrganizationType.SERVICES,
    parent: Optional[Organization] = None,
    ownership: str = "100",
) -> Organization:
    return Organization(
        id=uuid.uuid4(),
        name=name,
        organization_type=organization_type,
        reporting_type=(
            ReportingType.CONSOLIDATED if organization_type == OrganizationType.HOLDING else ReportingType.STANDALONE
        ),
        parent_id=parent.id if parent else None,
        ownership_percentage=Decimal(ownership),
        is_active=True,
    )


def make_line(
    organization: Optional[Organization],
    account: str,
    debit: str = "0",
    credit: str = "0",
    period: str = "2024-01",
    batch_id: Optional[uuid.UUID] = None,
    entity_name: Optional[str] = None,
    intercompany_match_id: str = "",
    cost_center: str = "",
) -> JournalLine:
    """Journal line as the ingestion service stores it."""
    year, month = period.split("-")
    if entity_name is None:
        entity_name = organization.name if organization else ""
    return JournalLine(
        id=uuid.uuid4(),
        upload_batch_id=batch_id or uuid.uuid4(),
        organization_id=organization.id if organization else None,
        entity_name=entity_name,
        period=period,
        accounting_date=date(int(year), int(month), 15),
        ledger_account=account,
        account_category=classify_account(account),
        debit_amount=Decimal(debit),
        credit_amount=Decimal(credit),
        currency="EUR",
        intercompany_match_id=intercompany_match_id,
        cost_center=cost_center,
        extra={},
    )


def make_batch(
    upload_type: str = "journal_lines",
    status: UploadStatus = UploadStatus.COMPLETED,
    period: Optional[str] = "2024-01",
) -> UploadBatch:
    return UploadBatch(
        id=uuid.uuid4(),
        file_name=f"{upload_type}.csv",
        upload_type=upload_type,
        status=status,
        period=period,
        record_count=0,
        skipped_count=0,
        extra={},
    )
