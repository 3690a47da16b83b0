from __future__ import annotations

from fastapi import APIRouter, Depends

from app.dependencies import get_service
from app.models.search import IndexPapersRequest, IndexPapersResponse
from app.services.research import ResearchAssistantService

router = APIRouter(prefix="/api", tags=["papers"])


@router.post("/papers", response_model=IndexPapersResponse)
def index_papers(
    payload: IndexPapersRequest,
    service: ResearchAssistantService = Depends(get_service),
) -> IndexPapersResponse:
    return service.index_papers(payload)
