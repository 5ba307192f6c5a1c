"""
GroupLedger - Assistant Schemas
"""

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChatMessageRequest(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    """Conversation plus the period and organizations to discuss."""
    period: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2]|Q[1-4])$")
    organization_ids: Optional[List[UUID]] = None
    messages: List[ChatMessageRequest] = Field(..., min_length=1)


class ChatResponse(BaseModel):
    reply: str


class SuggestionsResponse(BaseModel):
    period: str
    questions: List[str]
