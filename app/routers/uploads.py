"""
GroupLedger - Uploads Router

CSV export ingestion and upload batch tracking.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.models import UploadBatch, UploadStatus
from app.schemas.upload import IngestionResponse, UploadBatchResponse, UploadTypeResponse
from app.services.ingestion_service import UploadIngestionService
from app.services.storage_service import StorageClient
from app.services.upload_registry import get_upload_types
from app.utils.error_handling import NotFoundException


router = APIRouter(prefix="/api/v1/uploads", tags=["Uploads"])


@router.get("/types", response_model=List[UploadTypeResponse])
async def list_upload_types():
    """Registered upload types with their fields and column aliases."""
    return get_upload_types()


@router.post("", response_model=IngestionResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    upload_type: str = Form(...),
    file: UploadFile = File(...),
    organization_id: Optional[UUID] = Form(None),
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
):
    """
    Ingest a CSV export.

    ``organization_id`` is the target organization for upload types that
    are not attributed per row (sales deals).
    """
    content = await file.read()
    service = UploadIngestionService(storage, settings)
    result = await service.ingest(
        file_name=file.filename or "upload.csv",
        content=content,
        upload_type=upload_type,
        target_organization_id=organization_id,
    )
    return IngestionResponse.model_validate(result)


@router.get("", response_model=List[UploadBatchResponse])
async def list_batches(
    status_filter: Optional[UploadStatus] = Query(None, alias="status"),
    upload_type: Optional[str] = Query(None),
    storage: StorageClient = Depends(get_storage),
):
    filters = {}
    if status_filter is not None:
        filters["status"] = status_filter
    if upload_type:
        filters["upload_type"] = upload_type
    return await storage.query(UploadBatch, order_by="-created_at", **filters)


@router.get("/{batch_id}", response_model=UploadBatchResponse)
async def get_batch(
    batch_id: UUID,
    storage: StorageClient = Depends(get_storage),
):
    batch = await storage.get(UploadBatch, batch_id)
    if batch is None:
        raise NotFoundException("UploadBatch", batch_id)
    return batch
