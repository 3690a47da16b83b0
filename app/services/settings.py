from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _parse_positive_int(raw: str | None, default: int) -> int:
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass
class Settings:
    mongo_uri: str = os.environ.get("MONGO_URI", "mongodb://localhost:27017")
    mongo_db: str = os.environ.get("MONGO_DB", "research")
    papers_collection: str = os.environ.get("PAPERS_COLLECTION", "research_papers")
    openai_api_key: str | None = os.environ.get("OPENAI_API_KEY")
    openai_models: List[str] = field(default_factory=list)
    generation_max_output_tokens: int = 2048
    generation_temperature: float = 0.7
    default_max_results: int = 5
    conversation_max_age_ms: int = 24 * 60 * 60 * 1000
    log_level: str = os.environ.get("LOG_LEVEL", "INFO")

    def __post_init__(self) -> None:
        configured = os.environ.get("OPENAI_MODELS")
        if configured:
            self.openai_models = [
                model.strip() for model in configured.split(",") if model.strip()
            ]
        if not self.openai_models:
            # Tried in order; the first model that answers wins
            self.openai_models = ["gpt-4o-mini", "gpt-4o"]

        self.generation_max_output_tokens = _parse_positive_int(
            os.environ.get("GENERATION_MAX_OUTPUT_TOKENS"),
            self.generation_max_output_tokens,
        )
        self.default_max_results = _parse_positive_int(
            os.environ.get("DEFAULT_MAX_RESULTS"), self.default_max_results
        )
        self.conversation_max_age_ms = _parse_positive_int(
            os.environ.get("CONVERSATION_MAX_AGE_MS"), self.conversation_max_age_ms
        )

        temperature = os.environ.get("GENERATION_TEMPERATURE")
        if temperature:
            try:
                self.generation_temperature = float(temperature)
            except ValueError:
                pass


settings = Settings()
