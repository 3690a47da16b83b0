from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from app.models.conversation import Conversation, ConversationContext, Message

logger = logging.getLogger(__name__)

MAX_HISTORY = 10
MAX_MESSAGES = MAX_HISTORY * 2
MAX_ENTITIES = 20
RECENT_ENTITY_COUNT = 5
DEFAULT_MAX_AGE_MS = 24 * 60 * 60 * 1000

ROLES = frozenset({"user", "assistant", "system"})

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "about", "as", "is", "was", "are", "were",
        "been", "be", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "can", "what", "where", "when", "how",
        "why", "who", "which", "this", "that", "these", "those", "tell", "me",
    }
)

FOLLOW_UP_INDICATORS = (
    "what about", "how about", "and", "also", "more", "another",
    "it", "its", "their", "them", "this", "that", "these", "those",
    "compared to", "versus", "vs", "difference between",
)

_NON_WORD = re.compile(r"[^\w\s]")


class InvalidMessageError(ValueError):
    """Raised when a caller passes a malformed id, role or content."""


def _normalize(text: str) -> str:
    return _NON_WORD.sub(" ", text.lower())


def extract_keywords(text: str) -> List[str]:
    """Return unique content words longer than three characters, in order."""
    keywords: List[str] = []
    for word in _normalize(text).split():
        if len(word) <= 3 or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
    return keywords


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStore:
    """Ephemeral in-memory storage for conversations and their derived context.

    A single lock serialises every read and mutation. Records handed back to
    callers are deep copies of the stored ones.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._lock = Lock()
        self._clock = clock or _utcnow

    def create_conversation(self, conversation_id: str) -> Conversation:
        # Re-creating an existing id replaces the previous record.
        self._require_text("conversation_id", conversation_id)
        with self._lock:
            return self._create(conversation_id).model_copy(deep=True)

    def get_conversation(self, conversation_id: str) -> Conversation:
        self._require_text("conversation_id", conversation_id)
        with self._lock:
            return self._get_or_create(conversation_id).model_copy(deep=True)

    def delete_conversation(self, conversation_id: str) -> bool:
        self._require_text("conversation_id", conversation_id)
        with self._lock:
            removed = self._conversations.pop(conversation_id, None)
        if removed is not None:
            logger.info("Deleted conversation '%s'", conversation_id)
        return removed is not None

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        self._require_text("conversation_id", conversation_id)
        self._require_text("content", content)
        if role not in ROLES:
            raise InvalidMessageError(
                f"Unsupported role '{role}'. Expected one of: {', '.join(sorted(ROLES))}"
            )

        with self._lock:
            conversation = self._get_or_create(conversation_id)
            now = self._clock()
            message = Message(
                id=self._generate_message_id(now),
                role=role,
                content=content,
                timestamp=now,
                metadata=metadata,
            )
            conversation.messages.append(message)
            conversation.updated_at = now
            if len(conversation.messages) > MAX_MESSAGES:
                conversation.messages = conversation.messages[-MAX_MESSAGES:]
            self._update_context(conversation, content, role)
            return message.model_copy(deep=True)

    def is_follow_up_question(self, conversation_id: str, query: str) -> bool:
        self._require_text("conversation_id", conversation_id)
        self._require_text("query", query)
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return self._is_follow_up(conversation, query)

    def enhance_query_with_context(self, conversation_id: str, query: str) -> str:
        self._require_text("conversation_id", conversation_id)
        self._require_text("query", query)
        with self._lock:
            conversation = self._get_or_create(conversation_id)
            if not self._is_follow_up(conversation, query):
                return query

            enhanced = query
            if conversation.context.current_topic:
                enhanced += f" {conversation.context.current_topic}"
            recent_entities = conversation.context.entities[-RECENT_ENTITY_COUNT:]
            if recent_entities:
                enhanced += f" {' '.join(recent_entities)}"
        logger.debug("Enhanced query '%s' -> '%s'", query, enhanced)
        return enhanced

    def get_context_for_ai(self, conversation_id: str, max_messages: int = 5) -> str:
        self._require_text("conversation_id", conversation_id)
        with self._lock:
            conversation = self._get_or_create(conversation_id)
            recent = conversation.messages[-max_messages:] if max_messages > 0 else []
            if not recent:
                return ""

            lines = ["\n\nConversation History:\n"]
            for message in recent:
                label = "User" if message.role == "user" else "Assistant"
                lines.append(f"{label}: {message.content}\n")

            context = conversation.context
            if context.current_topic:
                lines.append(f"\nCurrent Topic: {context.current_topic}\n")
            if context.entities:
                lines.append(f"Referenced Entities: {', '.join(context.entities)}\n")
        return "".join(lines)

    def clear_old_conversations(self, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> None:
        with self._lock:
            cutoff = self._clock() - timedelta(milliseconds=max_age_ms)
            expired = [
                conversation_id
                for conversation_id, conversation in self._conversations.items()
                if conversation.updated_at < cutoff
            ]
            for conversation_id in expired:
                del self._conversations[conversation_id]
            remaining = len(self._conversations)
        if expired:
            logger.info(
                "Removed %d conversation(s) idle for more than %d ms; %d remaining",
                len(expired),
                max_age_ms,
                remaining,
            )

    def get_all_conversations(self) -> List[Conversation]:
        with self._lock:
            return [
                conversation.model_copy(deep=True)
                for conversation in self._conversations.values()
            ]

    def _create(self, conversation_id: str) -> Conversation:
        now = self._clock()
        conversation = Conversation(
            id=conversation_id,
            context=ConversationContext(),
            created_at=now,
            updated_at=now,
        )
        self._conversations[conversation_id] = conversation
        logger.debug("Created conversation '%s'", conversation_id)
        return conversation

    def _get_or_create(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = self._create(conversation_id)
        return conversation

    @staticmethod
    def _is_follow_up(conversation: Conversation | None, query: str) -> bool:
        if conversation is None or len(conversation.messages) < 2:
            return False
        # Padding keeps matches on word boundaries: "and" must not hit "android".
        padded = f" {' '.join(_normalize(query).split())} "
        return any(f" {indicator} " in padded for indicator in FOLLOW_UP_INDICATORS)

    @staticmethod
    def _update_context(conversation: Conversation, content: str, role: str) -> None:
        keywords = extract_keywords(content)
        context = conversation.context
        for keyword in keywords:
            if keyword not in context.entities:
                context.entities.append(keyword)
        if len(context.entities) > MAX_ENTITIES:
            context.entities = context.entities[-MAX_ENTITIES:]

        if role == "user":
            context.current_topic = keywords[0] if keywords else None

    @staticmethod
    def _generate_message_id(now: datetime) -> str:
        return f"msg_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}"

    @staticmethod
    def _require_text(name: str, value: Any) -> None:
        if not isinstance(value, str):
            raise InvalidMessageError(f"{name} must be a string, got {type(value).__name__}")
