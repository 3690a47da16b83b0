from __future__ import annotations

import logging
from typing import Any, Iterable, List, Sequence

from bson.objectid import ObjectId
from pymongo import DESCENDING, TEXT, MongoClient
from pymongo.errors import PyMongoError

from app.models.search import ResearchPaper, SearchFilters, SearchResult
from app.services.settings import settings

SCORE_FIELD = "score"
TEXT_INDEX_WEIGHTS = {"title": 2, "abstract": 1, "content": 1, "keywords": 1}


class SearchBackendError(RuntimeError):
    """Raised when the research paper index cannot serve a request."""


class MongoPaperRepository:
    """Keyword search over research papers stored in a MongoDB collection."""

    def __init__(
        self,
        client: MongoClient | None = None,
        collection_name: str | None = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._uri_description = self._mask_uri(settings.mongo_uri)
        if client is None:
            self._client = MongoClient(settings.mongo_uri)
        else:
            self._client = client
            # When a client is injected (e.g. tests), avoid leaking configuration
            # details and use a synthetic description.
            self._uri_description = "<injected MongoClient>"

        self._db = self._client[settings.mongo_db]
        self._collection_name = collection_name or settings.papers_collection
        self._collection = self._db[self._collection_name]

    def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        size: int = 5,
    ) -> List[SearchResult]:
        mongo_filter = self._build_search_filter(query, filters)
        use_text = "$text" in mongo_filter
        projection = {SCORE_FIELD: {"$meta": "textScore"}} if use_text else None
        sort: list[tuple[str, Any]] = []
        if use_text:
            sort.append((SCORE_FIELD, {"$meta": "textScore"}))
        sort.append(("citations", DESCENDING))

        self._logger.info(
            "Searching '%s' for %r (size=%d, filters=%s)",
            self._collection_name,
            query,
            size,
            sorted(key for key in mongo_filter if key != "$text") or "<none>",
        )
        try:
            cursor = self._collection.find(mongo_filter, projection).sort(sort).limit(size)
            results = [self._to_search_result(document) for document in cursor]
        except PyMongoError as exc:
            self._logger.exception(
                "Search failed on %s/%s.%s",
                self._uri_description,
                self._db.name,
                self._collection_name,
            )
            raise SearchBackendError("Failed to perform search") from exc

        self._logger.info("Search returned %d result(s)", len(results))
        return results

    def ensure_text_index(self) -> str:
        try:
            index_name = self._collection.create_index(
                [(field, TEXT) for field in TEXT_INDEX_WEIGHTS],
                weights=TEXT_INDEX_WEIGHTS,
                name="paper_text",
            )
        except PyMongoError as exc:
            self._logger.exception(
                "Unable to create text index on collection '%s'", self._collection_name
            )
            raise SearchBackendError("Failed to create text index") from exc
        self._logger.info(
            "Text index '%s' ready on collection '%s'", index_name, self._collection_name
        )
        return index_name

    def index_papers(self, papers: Iterable[ResearchPaper]) -> List[str]:
        documents = [paper.model_dump() for paper in papers]
        if not documents:
            return []
        try:
            outcome = self._collection.insert_many(documents)
        except PyMongoError as exc:
            self._logger.exception(
                "Bulk indexing of %d paper(s) failed for collection '%s'",
                len(documents),
                self._collection_name,
            )
            raise SearchBackendError("Failed to bulk index documents") from exc
        inserted = [str(document_id) for document_id in outcome.inserted_ids]
        self._logger.info(
            "Indexed %d paper(s) into collection '%s'", len(inserted), self._collection_name
        )
        return inserted

    def ping(self) -> bool:
        try:
            self._client.admin.command("ping")
        except PyMongoError:
            self._logger.exception(
                "MongoDB ping failed for %s/%s",
                self._uri_description,
                self._db.name,
            )
            return False

        self._logger.info(
            "MongoDB ping succeeded for %s/%s",
            self._uri_description,
            self._db.name,
        )
        return True

    @staticmethod
    def _build_search_filter(
        query: str, filters: SearchFilters | None = None
    ) -> dict[str, Any]:
        mongo_filter: dict[str, Any] = {}
        if query and query.strip():
            mongo_filter["$text"] = {"$search": query.strip()}
        if filters is None:
            return mongo_filter

        for field, values in (
            ("authors", filters.authors),
            ("journal", filters.journals),
            ("keywords", filters.keywords),
        ):
            normalized = MongoPaperRepository._normalize_terms(values)
            if normalized:
                mongo_filter[field] = {"$in": normalized}

        if filters.date_range is not None:
            bounds: dict[str, str] = {}
            if filters.date_range.start:
                bounds["$gte"] = filters.date_range.start
            if filters.date_range.end:
                bounds["$lte"] = filters.date_range.end
            if bounds:
                mongo_filter["publication_date"] = bounds

        return mongo_filter

    @staticmethod
    def _normalize_terms(values: Sequence[str]) -> list[str]:
        normalized: list[str] = []
        for value in values:
            term = value.strip()
            if term and term not in normalized:
                normalized.append(term)
        return normalized

    @staticmethod
    def _to_search_result(document: dict) -> SearchResult:
        metadata = dict(document)
        document_id = metadata.pop("_id", "")
        score = metadata.pop(SCORE_FIELD, 0.0) or 0.0
        text = metadata.get("content") or metadata.get("abstract") or ""
        for key, value in list(metadata.items()):
            if isinstance(value, ObjectId):
                metadata[key] = str(value)
        return SearchResult(
            id=str(document_id),
            text=text,
            score=float(score),
            metadata=metadata,
        )

    @staticmethod
    def _mask_uri(uri: str) -> str:
        if "@" not in uri:
            return uri
        prefix, suffix = uri.split("@", 1)
        if "//" in prefix:
            scheme, _ = prefix.split("//", 1)
            masked_prefix = f"{scheme}//***"
        else:
            masked_prefix = "***"
        return f"{masked_prefix}@{suffix}"
