"""
GroupLedger - Assistant Router
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.config import Settings
from app.dependencies import get_settings_dep, get_storage
from app.schemas.assistant import ChatRequest, ChatResponse, SuggestionsResponse
from app.services.assistant_service import AssistantService, ChatMessage, suggest_questions
from app.services.storage_service import StorageClient


router = APIRouter(prefix="/api/v1/assistant", tags=["Assistant"])


def get_service(
    storage: StorageClient = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> AssistantService:
    return AssistantService(storage, settings)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    data: ChatRequest,
    service: AssistantService = Depends(get_service),
):
    context = await service.build_context(data.period, data.organization_ids)
    messages = [ChatMessage(role=m.role, content=m.content) for m in data.messages]
    return ChatResponse(reply=await service.chat(messages, context))


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    period: str = Query(...),
    organization_ids: Optional[List[UUID]] = Query(None),
    service: AssistantService = Depends(get_service),
):
    context = await service.build_context(period, organization_ids)
    return SuggestionsResponse(period=period, questions=suggest_questions(context))


@router.post("/summary", response_model=ChatResponse)
async def executive_summary(
    period: str = Query(...),
    service: AssistantService = Depends(get_service),
):
    context = await service.build_context(period)
    return ChatResponse(reply=await service.executive_summary(context))
