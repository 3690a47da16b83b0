from __future__ import annotations

from fastapi import APIRouter, Depends

from app.dependencies import get_service
from app.models.search import SearchRequest, SearchResponse
from app.services.research import ResearchAssistantService

router = APIRouter(prefix="/api", tags=["search"])


@router.post("/search", response_model=SearchResponse)
def search_papers(
    payload: SearchRequest,
    service: ResearchAssistantService = Depends(get_service),
) -> SearchResponse:
    return service.search(payload)
