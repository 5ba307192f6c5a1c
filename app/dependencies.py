"""
GroupLedger - FastAPI Dependencies

Shared dependencies for settings, storage and services.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database import get_async_session
from app.services.storage_service import SQLAlchemyStorage, StorageClient


def get_settings_dep() -> Settings:
    return get_settings()


async def get_storage(session: AsyncSession = Depends(get_async_session)) -> StorageClient:
    """Storage client bound to the request's database session."""
    return SQLAlchemyStorage(session)
