from __future__ import annotations

import logging
import time
from typing import List

from fastapi import HTTPException

from app.models.conversation import (
    Conversation,
    ConversationCleanupResponse,
    ConversationDeleteResponse,
    ConversationResponse,
)
from app.models.search import (
    IndexPapersRequest,
    IndexPapersResponse,
    PaperSource,
    SearchMetadata,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from app.services.conversation import ConversationStore, InvalidMessageError
from app.services.database import MongoPaperRepository, SearchBackendError
from app.services.llm import LLMClient
from app.services.settings import settings

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant research papers to answer your question. "
    "Try asking about AI, machine learning, transformers, or LSTM networks."
)
SOURCE_PREVIEW_CHARACTERS = 300
CONTEXT_SNIPPET_CHARACTERS = 500
CONTEXT_HISTORY_MESSAGES = 3

logger = logging.getLogger(__name__)


class ResearchAssistantService:
    def __init__(
        self,
        repository: MongoPaperRepository | None = None,
        llm_client: LLMClient | None = None,
        conversation_store: ConversationStore | None = None,
    ) -> None:
        self._repository = repository or MongoPaperRepository()
        self._llm = llm_client or LLMClient()
        self._conversations = conversation_store or ConversationStore()

    def search(self, request: SearchRequest) -> SearchResponse:
        query = request.query
        if not query or not query.strip():
            raise HTTPException(
                status_code=400,
                detail={"error": "Query is required and must be a non-empty string"},
            )

        started = time.monotonic()
        conversation_id = request.conversation_id or f"conv_{int(time.time() * 1000)}"
        max_results = request.max_results or settings.default_max_results

        try:
            self._conversations.add_message(conversation_id, "user", query)
        except InvalidMessageError as exc:
            raise HTTPException(status_code=400, detail={"error": str(exc)}) from exc

        enhanced_query = (
            self._conversations.enhance_query_with_context(conversation_id, query)
            if request.use_conversation_context
            else query
        )
        if enhanced_query != query:
            logger.info("Enhanced query with conversation context: %s", enhanced_query)

        try:
            results = self._repository.search(enhanced_query, request.filters, max_results)
        except SearchBackendError as exc:
            raise HTTPException(
                status_code=500,
                detail={"error": "Failed to process search request", "details": str(exc)},
            ) from exc

        if not results:
            self._conversations.add_message(conversation_id, "assistant", NO_RESULTS_ANSWER)
            return SearchResponse(
                answer=NO_RESULTS_ANSWER,
                sources=[],
                search_results=[],
                conversation_id=conversation_id,
            )

        conversation_context = (
            self._conversations.get_context_for_ai(conversation_id, CONTEXT_HISTORY_MESSAGES)
            if request.use_conversation_context
            else ""
        )
        history = (
            [{"role": "system", "content": conversation_context}]
            if conversation_context
            else []
        )
        history.extend(
            message.model_dump() for message in request.conversation_history
        )
        generated = self._llm.generate_answer(
            query, [self._format_context(result) for result in results], history
        )

        response_time = int((time.monotonic() - started) * 1000)
        self._conversations.add_message(
            conversation_id,
            "assistant",
            generated.text,
            {
                "search_results": len(results),
                "response_time": response_time,
                "model_used": generated.model,
            },
        )

        return SearchResponse(
            answer=generated.text,
            sources=[self._to_source(result) for result in results],
            search_results=results,
            conversation_id=conversation_id,
            enhanced_query=enhanced_query if enhanced_query != query else None,
            metadata=SearchMetadata(
                search_results_count=len(results),
                response_time=response_time,
                has_conversation_context=bool(conversation_context),
            ),
        )

    def get_conversation_view(self, conversation_id: str) -> ConversationResponse:
        conversation = self._conversations.get_conversation(conversation_id)
        return ConversationResponse(
            conversation_id=conversation.id,
            message_count=len(conversation.messages),
            messages=conversation.messages,
            context=conversation.context,
        )

    def delete_conversation(self, conversation_id: str) -> ConversationDeleteResponse:
        deleted = self._conversations.delete_conversation(conversation_id)
        return ConversationDeleteResponse(conversation_id=conversation_id, deleted=deleted)

    def sweep_conversations(self, max_age_ms: int | None = None) -> ConversationCleanupResponse:
        max_age_ms = max_age_ms or settings.conversation_max_age_ms
        self._conversations.clear_old_conversations(max_age_ms)
        return ConversationCleanupResponse(
            max_age_ms=max_age_ms,
            remaining_conversations=len(self._conversations.get_all_conversations()),
        )

    def list_conversations(self) -> List[Conversation]:
        return self._conversations.get_all_conversations()

    def index_papers(self, request: IndexPapersRequest) -> IndexPapersResponse:
        try:
            ids = self._repository.index_papers(request.papers)
        except SearchBackendError as exc:
            raise HTTPException(
                status_code=500,
                detail={"error": "Failed to index documents", "details": str(exc)},
            ) from exc
        return IndexPapersResponse(count=len(ids), ids=ids)

    def prepare_search_index(self) -> bool:
        """Create the text index that keyword search depends on.

        Returns False when the backend is unreachable so the app can still start
        and report the outage through /health.
        """
        try:
            self._repository.ensure_text_index()
        except SearchBackendError:
            logger.warning(
                "Search index could not be prepared; searches will fail until it exists"
            )
            return False
        return True

    def backend_available(self) -> bool:
        return self._repository.ping()

    @staticmethod
    def _format_context(result: SearchResult) -> str:
        paper = result.metadata
        authors = ", ".join(paper.get("authors") or []) or "Unknown"
        lines = [
            f"**Paper:** {paper.get('title') or 'Unknown Title'}",
            f"**Authors:** {authors}",
            f"**Abstract:** {paper.get('abstract') or result.text[:CONTEXT_SNIPPET_CHARACTERS]}",
        ]
        if paper.get("citations"):
            lines.append(f"**Citations:** {paper['citations']}")
        return "\n".join(lines)

    @staticmethod
    def _to_source(result: SearchResult) -> PaperSource:
        paper = result.metadata
        return PaperSource(
            id=result.id,
            title=paper.get("title") or "Unknown Title",
            authors=paper.get("authors") or [],
            text=result.text[:SOURCE_PREVIEW_CHARACTERS] + "...",
            score=result.score,
            url=paper.get("url"),
            citations=paper.get("citations") or 0,
            publication_date=paper.get("publication_date"),
            journal=paper.get("journal"),
        )
