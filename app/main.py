from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.dependencies import get_service
from app.routers import conversation, health, papers, search
from app.services.settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Resolve through overrides so tests can swap the service in.
    service_factory = app.dependency_overrides.get(get_service, get_service)
    service_factory().prepare_search_index()
    yield


app = FastAPI(title="Research Copilot Service", lifespan=lifespan)
app.include_router(search.router)
app.include_router(papers.router)
app.include_router(conversation.router)
app.include_router(health.router)
