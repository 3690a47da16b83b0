from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from openai import OpenAI, OpenAIError

from app.services.settings import settings

FALLBACK_MODEL = "fallback"
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class GeneratedAnswer:
    text: str
    model: str


class LLMClient:
    """Wrapper around the OpenAI API that walks a chain of models.

    When no model can answer, a plain summary of the top search result is
    returned instead so the caller always gets some text back.
    """

    def __init__(
        self,
        api_key: str | None = None,
        models: Sequence[str] | None = None,
        client: OpenAI | None = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        api_key = api_key or settings.openai_api_key
        if client is not None:
            self._client: OpenAI | None = client
        elif api_key:
            self._client = OpenAI(api_key=api_key)
        else:
            self._logger.warning(
                "OPENAI_API_KEY is not configured; answers will use the fallback summary."
            )
            self._client = None
        self._models = tuple(models or settings.openai_models)

    def generate_answer(
        self,
        query: str,
        context: Sequence[str],
        conversation_history: Iterable[dict[str, str]] | None = None,
    ) -> GeneratedAnswer:
        if self._client is None:
            return GeneratedAnswer(self._build_fallback_answer(query, context), FALLBACK_MODEL)

        messages = [
            *(conversation_history or []),
            {"role": "user", "content": self._build_research_prompt(query, context)},
        ]
        for model in self._models:
            try:
                response = self._client.responses.create(
                    model=model,
                    input=messages,
                    max_output_tokens=settings.generation_max_output_tokens,
                    temperature=settings.generation_temperature,
                )
            except OpenAIError as exc:
                self._logger.warning("Model %s not available: %s", model, exc)
                continue
            self._logger.info("Answer generated using %s", model)
            return GeneratedAnswer(response.output_text, model)

        self._logger.warning(
            "All models failed (%s); using fallback summary", ", ".join(self._models)
        )
        return GeneratedAnswer(self._build_fallback_answer(query, context), FALLBACK_MODEL)

    @staticmethod
    def _build_research_prompt(query: str, context: Sequence[str]) -> str:
        context_text = "\n\n---\n\n".join(context)
        return (
            "You are a research assistant that helps users explore scientific and technical "
            "literature. Answer using only the retrieved research papers below and what has "
            "been established in the conversation so far.\n\n"
            f"Retrieved Research Papers:\n{context_text}\n\n"
            f"User Query: {query}\n\n"
            "Respond in markdown with these sections:\n"
            "## Summary\n"
            "## Cited Evidence\n"
            "## Reasoning\n"
            "## Next Steps\n\n"
            "Always cite papers as \"According to [Title] by [Authors], ...\". For comparisons, "
            "use tables or bullet points. If the papers are insufficient, say what additional "
            "research would help."
        )

    @staticmethod
    def _build_fallback_answer(query: str, context: Sequence[str]) -> str:
        if not context:
            return (
                f'I couldn\'t find any information about "{query}" in the knowledge base. '
                "Please try a different search query."
            )

        sentences = [
            sentence.strip()
            for sentence in _SENTENCE_SPLIT.split(context[0])
            if sentence.strip()
        ]
        answer = f'Based on the search results for "{query}":\n\n'
        if sentences:
            answer += ". ".join(sentences[:3]) + "."
        if len(context) > 1:
            answer += (
                f"\n\nFound {len(context)} relevant results. "
                "The information above is from the most relevant match."
            )
        answer += (
            "\n\nNote: generated without a language model. Configure OPENAI_API_KEY for "
            "conversational answers."
        )
        return answer
