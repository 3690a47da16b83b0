from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class DateRange(BaseModel):
    start: Optional[str] = Field(default=None, description="Inclusive ISO date lower bound")
    end: Optional[str] = Field(default=None, description="Inclusive ISO date upper bound")


class SearchFilters(BaseModel):
    authors: List[str] = Field(default_factory=list)
    journals: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    date_range: Optional[DateRange] = None


class SearchResult(BaseModel):
    """A ranked hit returned by the research paper index."""

    id: str
    text: str = Field(..., description="Full text of the matched paper")
    score: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ResearchPaper(BaseModel):
    title: str
    authors: List[str] = Field(default_factory=list)
    abstract: Optional[str] = None
    content: str = ""
    publication_date: Optional[str] = None
    journal: Optional[str] = None
    citations: int = 0
    keywords: List[str] = Field(default_factory=list)
    doi: Optional[str] = None
    url: Optional[str] = None


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class SearchRequest(BaseModel):
    query: str = Field(..., description="Natural language research question")
    conversation_id: Optional[str] = Field(
        default=None,
        description="Identifier that lets clients continue a multi-turn conversation",
    )
    conversation_history: List[HistoryMessage] = Field(
        default_factory=list,
        description="Extra turns passed to the language model after the stored context",
    )
    use_conversation_context: bool = True
    max_results: Optional[int] = Field(default=None, ge=1, le=50)
    filters: Optional[SearchFilters] = None


class PaperSource(BaseModel):
    id: str
    title: str
    authors: List[str] = Field(default_factory=list)
    text: str
    score: float
    url: Optional[str] = None
    citations: int = 0
    publication_date: Optional[str] = None
    journal: Optional[str] = None


class SearchMetadata(BaseModel):
    search_results_count: int
    response_time: int = Field(..., description="Milliseconds spent serving the request")
    has_conversation_context: bool


class SearchResponse(BaseModel):
    answer: str
    sources: List[PaperSource]
    search_results: List[SearchResult]
    conversation_id: str
    enhanced_query: Optional[str] = None
    metadata: Optional[SearchMetadata] = None


class IndexPapersRequest(BaseModel):
    papers: List[ResearchPaper] = Field(..., min_length=1)


class IndexPapersResponse(BaseModel):
    count: int
    ids: List[str]
