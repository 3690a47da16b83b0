from __future__ import annotations

from functools import lru_cache

from app.services.conversation import ConversationStore
from app.services.research import ResearchAssistantService


@lru_cache(maxsize=1)
def get_conversation_store() -> ConversationStore:
    return ConversationStore()


@lru_cache(maxsize=1)
def get_service() -> ResearchAssistantService:
    return ResearchAssistantService(conversation_store=get_conversation_store())
