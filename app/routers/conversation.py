from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_service
from app.models.conversation import (
    Conversation,
    ConversationCleanupResponse,
    ConversationDeleteResponse,
    ConversationResponse,
)
from app.services.research import ResearchAssistantService

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("", response_model=List[Conversation])
def list_conversations(
    service: ResearchAssistantService = Depends(get_service),
) -> List[Conversation]:
    return service.list_conversations()


@router.post("/cleanup", response_model=ConversationCleanupResponse)
def cleanup_conversations(
    max_age_ms: int | None = Query(default=None, ge=1),
    service: ResearchAssistantService = Depends(get_service),
) -> ConversationCleanupResponse:
    return service.sweep_conversations(max_age_ms)


@router.get("/{conversation_id}", response_model=ConversationResponse)
def get_conversation(
    conversation_id: str, service: ResearchAssistantService = Depends(get_service)
) -> ConversationResponse:
    return service.get_conversation_view(conversation_id)


@router.delete("/{conversation_id}", response_model=ConversationDeleteResponse)
def delete_conversation(
    conversation_id: str, service: ResearchAssistantService = Depends(get_service)
) -> ConversationDeleteResponse:
    return service.delete_conversation(conversation_id)
