import pytest
from fastapi import HTTPException

from app.models.search import (
    IndexPapersRequest,
    ResearchPaper,
    SearchRequest,
    SearchResult,
)
from app.services.conversation import ConversationStore
from app.services.database import SearchBackendError
from app.services.llm import GeneratedAnswer
from app.services.research import NO_RESULTS_ANSWER, ResearchAssistantService


def _paper(paper_id: str, title: str, text: str = "Paper body text") -> SearchResult:
    return SearchResult(
        id=paper_id,
        text=text,
        score=2.0,
        metadata={
            "title": title,
            "authors": ["Ada Lovelace"],
            "abstract": f"Abstract of {title}",
            "citations": 12,
            "url": f"https://papers.example/{paper_id}",
        },
    )


class FakeRepository:
    def __init__(self, results: list[SearchResult] | None = None, error: Exception | None = None):
        self._results = results or []
        self._error = error
        self.queries: list[tuple] = []

    def search(self, query, filters=None, size=5):
        self.queries.append((query, filters, size))
        if self._error is not None:
            raise self._error
        return list(self._results)

    def ping(self) -> bool:
        return True

    def ensure_text_index(self) -> str:
        if self._error is not None:
            raise self._error
        self.index_ensured = True
        return "paper_text"

    def index_papers(self, papers):
        if self._error is not None:
            raise self._error
        return [f"id-{index}" for index, _ in enumerate(papers)]


class FakeLLM:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def generate_answer(self, query, context, conversation_history=None):
        self.calls.append((query, list(context), list(conversation_history or [])))
        return GeneratedAnswer(f"answer-for-{query}", "fake-model")


def _service(repository=None, llm=None, store=None) -> ResearchAssistantService:
    return ResearchAssistantService(
        repository=repository or FakeRepository([_paper("p1", "Yellowstone Ecology")]),
        llm_client=llm or FakeLLM(),
        conversation_store=store or ConversationStore(),
    )


def test_search_records_both_turns_with_metadata():
    store = ConversationStore()
    llm = FakeLLM()
    service = _service(llm=llm, store=store)

    response = service.search(
        SearchRequest(query="Tell me about Yellowstone National Park", conversation_id="c1")
    )

    assert response.answer == "answer-for-Tell me about Yellowstone National Park"
    assert response.conversation_id == "c1"
    assert response.enhanced_query is None
    assert response.metadata.search_results_count == 1
    assert response.metadata.has_conversation_context is True
    assert response.sources[0].title == "Yellowstone Ecology"
    assert response.sources[0].text == "Paper body text..."
    assert response.sources[0].citations == 12

    messages = store.get_conversation("c1").messages
    assert [message.role for message in messages] == ["user", "assistant"]
    assert messages[1].metadata["search_results"] == 1
    assert messages[1].metadata["model_used"] == "fake-model"
    assert "response_time" in messages[1].metadata

    query, context, history = llm.calls[0]
    assert query == "Tell me about Yellowstone National Park"
    assert "**Paper:** Yellowstone Ecology" in context[0]
    assert "**Citations:** 12" in context[0]
    assert history[0]["role"] == "system"
    assert "User: Tell me about Yellowstone National Park" in history[0]["content"]


def test_follow_up_query_is_enhanced_before_search():
    repository = FakeRepository([_paper("p1", "Yellowstone Ecology")])
    llm = FakeLLM()
    service = _service(repository=repository, llm=llm)

    service.search(
        SearchRequest(query="Tell me about Yellowstone National Park", conversation_id="c1")
    )
    response = service.search(SearchRequest(query="What about wildlife?", conversation_id="c1"))

    enhanced = repository.queries[-1][0]
    assert enhanced.startswith("What about wildlife? wildlife ")
    assert response.enhanced_query == enhanced
    assert llm.calls[-1][0] == "What about wildlife?"


def test_conversation_context_can_be_disabled():
    repository = FakeRepository([_paper("p1", "Yellowstone Ecology")])
    llm = FakeLLM()
    service = _service(repository=repository, llm=llm)

    service.search(SearchRequest(query="Tell me about Yellowstone", conversation_id="c1"))
    response = service.search(
        SearchRequest(
            query="What about wildlife?",
            conversation_id="c1",
            use_conversation_context=False,
            max_results=2,
        )
    )

    assert repository.queries[-1] == ("What about wildlife?", None, 2)
    assert response.enhanced_query is None
    assert response.metadata.has_conversation_context is False
    assert llm.calls[-1][2] == []


def test_no_results_returns_canned_answer():
    store = ConversationStore()
    llm = FakeLLM()
    service = _service(repository=FakeRepository([]), llm=llm, store=store)

    response = service.search(SearchRequest(query="Dark matter", conversation_id="c1"))

    assert response.answer == NO_RESULTS_ANSWER
    assert response.sources == []
    assert llm.calls == []
    assert store.get_conversation("c1").messages[-1].content == NO_RESULTS_ANSWER


def test_generated_conversation_id_when_missing():
    response = _service().search(SearchRequest(query="Attention mechanisms"))

    assert response.conversation_id.startswith("conv_")


def test_blank_query_is_rejected():
    with pytest.raises(HTTPException) as excinfo:
        _service().search(SearchRequest(query="   "))

    assert excinfo.value.status_code == 400


def test_backend_failure_becomes_server_error():
    service = _service(repository=FakeRepository(error=SearchBackendError("index down")))

    with pytest.raises(HTTPException) as excinfo:
        service.search(SearchRequest(query="LSTM", conversation_id="c1"))

    assert excinfo.value.status_code == 500
    assert excinfo.value.detail["details"] == "index down"


def test_conversation_view_and_delete():
    store = ConversationStore()
    service = _service(store=store)
    service.search(SearchRequest(query="Yellowstone geology", conversation_id="c1"))

    view = service.get_conversation_view("c1")
    assert view.message_count == 2
    assert view.context.current_topic == "yellowstone"

    assert service.delete_conversation("c1").deleted is True
    assert service.get_conversation_view("c1").message_count == 0


def test_caller_history_follows_stored_context():
    llm = FakeLLM()
    service = _service(llm=llm)

    service.search(
        SearchRequest(
            query="Explain attention",
            conversation_id="c1",
            conversation_history=[
                {"role": "user", "content": "Earlier question"},
                {"role": "assistant", "content": "Earlier answer"},
            ],
        )
    )

    history = llm.calls[-1][2]
    assert history[0]["role"] == "system"
    assert history[1:] == [
        {"role": "user", "content": "Earlier question"},
        {"role": "assistant", "content": "Earlier answer"},
    ]


def test_caller_history_is_kept_without_stored_context():
    llm = FakeLLM()
    service = _service(llm=llm)

    service.search(
        SearchRequest(
            query="Explain attention",
            use_conversation_context=False,
            conversation_history=[{"role": "user", "content": "Earlier question"}],
        )
    )

    assert llm.calls[-1][2] == [{"role": "user", "content": "Earlier question"}]


def test_index_papers_returns_inserted_ids():
    service = _service()

    response = service.index_papers(
        IndexPapersRequest(papers=[ResearchPaper(title="BERT"), ResearchPaper(title="GPT")])
    )

    assert response.count == 2
    assert response.ids == ["id-0", "id-1"]


def test_index_papers_failure_becomes_server_error():
    service = _service(repository=FakeRepository(error=SearchBackendError("write failed")))

    with pytest.raises(HTTPException) as excinfo:
        service.index_papers(IndexPapersRequest(papers=[ResearchPaper(title="BERT")]))

    assert excinfo.value.status_code == 500


def test_prepare_search_index():
    repository = FakeRepository()

    assert _service(repository=repository).prepare_search_index() is True
    assert repository.index_ensured is True

    broken = FakeRepository(error=SearchBackendError("unreachable"))
    assert _service(repository=broken).prepare_search_index() is False
