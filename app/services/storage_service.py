"""
GroupLedger - Storage Service

Table-level CRUD used by the ingestion, consolidation, KPI, cashflow and
report services. Services receive a storage client in their constructor;
the SQLAlchemy implementation wraps one AsyncSession per request.
"""

import logging
import uuid
from typing import Any, Generic, List, Optional, Protocol, Sequence, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import UploadBatch, UploadStatus, UPLOAD_STATUS_TRANSITIONS
from app.utils.error_handling import (
    DuplicateRecordError,
    InvalidStatusTransitionException,
    NotFoundException,
    StorageError,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class StorageClient(Protocol):
    """Operations the core needs from persistence."""

    async def insert(self, model: Type[ModelT], records: Sequence[ModelT]) -> List[uuid.UUID]:
        ...

    async def query(self, model: Type[ModelT], order_by: Optional[str] = None, **filters: Any) -> List[ModelT]:
        ...

    async def get(self, model: Type[ModelT], record_id: uuid.UUID) -> Optional[ModelT]:
        ...

    async def update(self, model: Type[ModelT], record_id: uuid.UUID, **values: Any) -> ModelT:
        ...

    async def delete(self, model: Type[ModelT], **filters: Any) -> int:
        ...

    async def update_status(
        self,
        batch_id: uuid.UUID,
        status: UploadStatus,
        record_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> UploadBatch:
        ...


def check_status_transition(current: UploadStatus, requested: UploadStatus) -> None:
    """Upload batches move forward only and never leave a final state."""
    if requested not in UPLOAD_STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransitionException("UploadBatch", current.value, requested.value)


def build_status_update(
    batch: UploadBatch,
    status: UploadStatus,
    record_count: Optional[int] = None,
    error_message: Optional[str] = None,
) -> dict:
    """Column values for an upload batch status change."""
    check_status_transition(batch.status, status)
    values: dict = {"status": status}
    if record_count is not None:
        values["record_count"] = record_count
    if error_message is not None:
        values["error_message"] = error_message
    return values


class SQLAlchemyStorage:
    """
    StorageClient backed by an AsyncSession.

    Each write commits on its own. Integrity violations surface as
    DuplicateRecordError, any other database failure as StorageError.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _filtered(self, statement, model, filters: dict):
        for name, value in filters.items():
            column = getattr(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                statement = statement.where(column.in_(list(value)))
            else:
                statement = statement.where(column == value)
        return statement

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateRecordError(str(e.orig), original_error=e)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e), original_error=e)

    async def insert(self, model: Type[ModelT], records: Sequence[ModelT]) -> List[uuid.UUID]:
        if not records:
            return []
        try:
            self.session.add_all(records)
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateRecordError(str(e.orig), original_error=e)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e), original_error=e)
        await self._commit()
        return [record.id for record in records]

    async def query(self, model: Type[ModelT], order_by: Optional[str] = None, **filters: Any) -> List[ModelT]:
        statement = self._filtered(select(model), model, filters)
        if order_by:
            descending = order_by.startswith("-")
            column = getattr(model, order_by.lstrip("-"))
            statement = statement.order_by(column.desc() if descending else column)
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e), original_error=e)
        return list(result.scalars().all())

    async def get(self, model: Type[ModelT], record_id: uuid.UUID) -> Optional[ModelT]:
        try:
            return await self.session.get(model, record_id)
        except SQLAlchemyError as e:
            raise StorageError(str(e), original_error=e)

    async def update(self, model: Type[ModelT], record_id: uuid.UUID, **values: Any) -> ModelT:
        record = await self.get(model, record_id)
        if record is None:
            raise NotFoundException(model.__name__, record_id)
        for name, value in values.items():
            setattr(record, name, value)
        await self._commit()
        return record

    async def delete(self, model: Type[ModelT], **filters: Any) -> int:
        statement = self._filtered(delete(model), model, filters)
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e), original_error=e)
        await self._commit()
        return result.rowcount or 0

    async def update_status(
        self,
        batch_id: uuid.UUID,
        status: UploadStatus,
        record_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> UploadBatch:
        batch = await self.get(UploadBatch, batch_id)
        if batch is None:
            raise NotFoundException("UploadBatch", batch_id)
        values = build_status_update(batch, status, record_count, error_message)
        for name, value in values.items():
            setattr(batch, name, value)
        await self._commit()
        return batch


class ChunkedWriter(Generic[ModelT]):
    """
    Bounded insert buffer.

    Records are held until ``chunk_size`` is reached and then written in
    one insert; ``flush()`` writes whatever remains once the producer is
    done. Use as an async context manager to flush on exit.
    """

    def __init__(self, storage: StorageClient, model: Type[ModelT], chunk_size: int = 1000):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.storage = storage
        self.model = model
        self.chunk_size = chunk_size
        self.written = 0
        self.chunks = 0
        self._buffer: List[ModelT] = []

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def add(self, record: ModelT) -> None:
        self._buffer.append(record)
        if len(self._buffer) >= self.chunk_size:
            await self.flush()

    async def flush(self) -> int:
        if not self._buffer:
            return 0
        chunk, self._buffer = self._buffer, []
        await self.storage.insert(self.model, chunk)
        self.written += len(chunk)
        self.chunks += 1
        logger.debug(f"Flushed {len(chunk)} {self.model.__name__} records (chunk {self.chunks})")
        return len(chunk)

    async def __aenter__(self) -> "ChunkedWriter[ModelT]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.flush()
        else:
            self._buffer.clear()
