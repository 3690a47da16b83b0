from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "system"]


class Message(BaseModel):
    """A single conversation turn. Never mutated once appended."""

    id: str
    role: Role
    content: str
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Caller-supplied annotations such as result count or latency",
    )


class ConversationContext(BaseModel):
    current_topic: Optional[str] = None
    entities: List[str] = Field(
        default_factory=list,
        description="Keywords seen across the conversation, oldest first",
    )
    last_search_query: Optional[str] = None
    search_results_summary: Optional[str] = None


class Conversation(BaseModel):
    id: str
    messages: List[Message] = Field(default_factory=list)
    context: ConversationContext = Field(default_factory=ConversationContext)
    created_at: datetime
    updated_at: datetime


class ConversationResponse(BaseModel):
    conversation_id: str
    message_count: int
    messages: List[Message]
    context: ConversationContext


class ConversationDeleteResponse(BaseModel):
    conversation_id: str
    deleted: bool


class ConversationCleanupResponse(BaseModel):
    max_age_ms: int
    remaining_conversations: int
