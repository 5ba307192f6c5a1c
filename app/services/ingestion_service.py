"""
GroupLedger - Upload Ingestion Service

Processes one CSV export end to end:
1. Create the upload batch (pending)
2. Reject unknown upload types
3. Parse, map and validate every row (processing)
4. Resolve company names to organizations
5. Write records in chunks
6. Mark the batch completed or failed

Rows missing required fields are skipped and logged; the batch still
completes. A storage failure rolls back the batch's records and the
write is retried as a whole; when attempts run out the batch is failed.
"""

import csv
import io
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import inspect

from app.config import Settings
from app.models import UploadBatch, UploadStatus
from app.services.entity_resolver import EntityResolver
from app.services.record_mapper import map_row, validate_required_fields
from app.services.storage_service import ChunkedWriter, StorageClient
from app.services.upload_registry import UPLOAD_REGISTRY, UploadTypeConfig
from app.utils.error_handling import (
    PersistenceFailure,
    RowValidationFailure,
    StorageError,
    UnknownUploadTypeException,
)
from app.utils.normalizers import derive_batch_period, period_for_date

logger = logging.getLogger(__name__)


@dataclass
class SkippedRow:
    """A row left out of the batch."""
    row_index: int
    missing_fields: List[str]


@dataclass
class IngestionResult:
    """Outcome of one upload."""
    batch_id: uuid.UUID
    upload_type: str
    status: UploadStatus
    period: Optional[str]
    record_count: int = 0
    skipped_rows: List[SkippedRow] = field(default_factory=list)
    created_organizations: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_rows)


def record_values(record: Any) -> Dict[str, Any]:
    """Column values of a mapped record, used to rebuild it for a retried write."""
    return {
        attr.key: getattr(record, attr.key)
        for attr in inspect(type(record)).column_attrs
        if attr.key not in ("id", "created_at", "updated_at")
    }


def read_csv_rows(content: Union[bytes, str]) -> List[Dict[Optional[str], Any]]:
    """Parse CSV text into dict rows, skipping blank lines and trimming values."""
    text = content.decode("utf-8-sig") if isinstance(content, bytes) else content.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    rows = []
    for row in reader:
        if not any(isinstance(value, str) and value.strip() for value in row.values()):
            continue
        rows.append({
            key: value.strip() if isinstance(value, str) else value
            for key, value in row.items()
        })
    return rows


class UploadIngestionService:
    """Service for turning CSV uploads into canonical ledger records."""

    def __init__(self, storage: StorageClient, settings: Settings):
        self.storage = storage
        self.settings = settings

    def _prepare_row(self, row: Mapping[Optional[str], Any], index: int, config: UploadTypeConfig) -> Any:
        record = map_row(row, config.code, self.settings.base_currency)
        validation = validate_required_fields(record, config.code)
        if not validation.valid:
            raise RowValidationFailure(index, validation.missing_fields)
        return record

    async def _write_records(self, config: UploadTypeConfig, batch_id: uuid.UUID, records: List[Any]) -> int:
        attempts = max(1, self.settings.ingest_max_attempts)
        snapshots = [record_values(record) for record in records]
        pending = records
        for attempt in range(1, attempts + 1):
            try:
                async with ChunkedWriter(self.storage, config.model, self.settings.ingest_chunk_size) as writer:
                    for record in pending:
                        await writer.add(record)
            except StorageError as e:
                logger.warning(f"Writing batch {batch_id} failed on attempt {attempt}/{attempts}: {e}")
                await self.storage.delete(config.model, upload_batch_id=batch_id)
                if attempt == attempts:
                    raise
                pending = [config.model(**values) for values in snapshots]
            else:
                return writer.written
        return 0

    async def ingest(
        self,
        file_name: str,
        content: Union[bytes, str],
        upload_type: str,
        target_organization_id: Optional[uuid.UUID] = None,
    ) -> IngestionResult:
        """
        Ingest one CSV export.

        Raises UnknownUploadTypeException (batch failed, nothing inserted)
        and PersistenceFailure (batch failed after the storage layer gave up).
        """
        batch = UploadBatch(
            id=uuid.uuid4(),
            file_name=file_name,
            upload_type=upload_type,
            organization_id=target_organization_id,
            status=UploadStatus.PENDING,
            record_count=0,
            skipped_count=0,
            extra={},
        )
        batch_id = batch.id
        await self.storage.insert(UploadBatch, [batch])
        logger.info(f"Upload batch {batch_id} created for '{file_name}' ({upload_type})")

        config = UPLOAD_REGISTRY.get(upload_type)
        if config is None:
            message = f"Unknown upload type '{upload_type}'"
            await self.storage.update_status(batch_id, UploadStatus.FAILED, record_count=0, error_message=message)
            logger.error(f"Upload batch {batch_id} rejected: {message}")
            raise UnknownUploadTypeException(upload_type, batch_id)

        await self.storage.update_status(batch_id, UploadStatus.PROCESSING)

        try:
            rows = read_csv_rows(content)
        except (UnicodeDecodeError, csv.Error) as e:
            message = f"Could not read CSV: {e}"
            await self.storage.update_status(batch_id, UploadStatus.FAILED, record_count=0, error_message=message)
            logger.error(f"Upload batch {batch_id} failed: {message}")
            return IngestionResult(
                batch_id=batch_id,
                upload_type=upload_type,
                status=UploadStatus.FAILED,
                period=None,
                error_message=message,
            )

        records: List[Any] = []
        skipped: List[SkippedRow] = []
        for index, row in enumerate(rows):
            try:
                records.append(self._prepare_row(row, index, config))
            except RowValidationFailure as e:
                skipped.append(SkippedRow(e.row_index, e.missing_fields))
                logger.warning(f"Upload batch {batch_id}: skipping row {e.row_index}, missing {e.missing_fields}")

        record_dates: List[Optional[date]] = [
            getattr(record, config.date_field) if config.date_field else None
            for record in records
        ]
        period = derive_batch_period(record_dates)

        resolver = EntityResolver(self.storage, self.settings)
        try:
            for record, record_date in zip(records, record_dates):
                record.upload_batch_id = batch_id
                record.period = period_for_date(record_date) if record_date else period
                if config.resolve_entity:
                    record.organization_id = await resolver.resolve_organization(record.entity_name)
                else:
                    record.organization_id = target_organization_id

            written = await self._write_records(config, batch_id, records)
        except StorageError as e:
            try:
                await self.storage.update_status(
                    batch_id,
                    UploadStatus.FAILED,
                    record_count=0,
                    error_message=str(e),
                )
            except StorageError as status_error:
                logger.error(f"Could not mark upload batch {batch_id} as failed: {status_error}")
            logger.error(f"Upload batch {batch_id} failed: {e}", exc_info=e)
            raise PersistenceFailure(batch_id, str(e), original_error=e)

        await self.storage.update(
            UploadBatch,
            batch_id,
            period=period,
            skipped_count=len(skipped),
            extra={
                "skipped_rows": [
                    {"row": s.row_index, "missing_fields": s.missing_fields} for s in skipped
                ],
                "created_organizations": sorted(resolver.created),
            },
        )
        await self.storage.update_status(batch_id, UploadStatus.COMPLETED, record_count=written)
        logger.info(
            f"Upload batch {batch_id} completed: {written} records, "
            f"{len(skipped)} skipped, period {period}"
        )

        return IngestionResult(
            batch_id=batch_id,
            upload_type=upload_type,
            status=UploadStatus.COMPLETED,
            period=period,
            record_count=written,
            skipped_rows=skipped,
            created_organizations=sorted(resolver.created),
        )
