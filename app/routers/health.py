from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.dependencies import get_service
from app.services.research import ResearchAssistantService

router = APIRouter(tags=["health"])


@router.get("/health")
def healthcheck(service: ResearchAssistantService = Depends(get_service)) -> JSONResponse:
    search_ok = service.backend_available()
    return JSONResponse(
        status_code=200 if search_ok else 503,
        content={
            "status": "ok" if search_ok else "degraded",
            "search_backend": "connected" if search_ok else "disconnected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
