"""
Search over ClickUp tasks, documents and spaces.

``SearchService`` owns one ``KeyedCache`` per record kind. Each cache maps a
FilterKey to the fuzzy index built from the records matching those filters,
so repeated searches within the refresh interval reuse the index.

Ranking for several terms rewards records that match more of them:

    ratio = matched_terms / total_terms
    final = best_score * BOOST_BASE ** (ratio * BOOST_EXPONENT)

With the defaults a record matching every term is boosted by 1e-4 and one
matching half of them by 1e-2, so broad agreement beats a single closer hit.

Terms that look like entity ids but were not found in the index (e.g. a
task created after the index was built) are fetched directly and ranked
at the top with a score of 0.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, Optional, Sequence

import httpx

from .cache import DEFAULT_TTL, KeyedCache
from .client import ClickUpClient
from .errors import ClickUpError
from .fuzzy import FuzzyIndex
from .types import (
    DOCUMENT_FIELDS,
    SPACE_FIELDS,
    TASK_FIELDS,
    Record,
    ScoredMatch,
    is_document_id,
    is_task_id,
    make_filter_key,
    timestamp_value,
)

logger = logging.getLogger(__name__)

BOOST_BASE = 0.1
BOOST_EXPONENT = 4

MAX_SEARCH_RESULTS = 50


def valid_terms(terms: Optional[Iterable[str]]) -> list[str]:
    """Trimmed, lower-cased, de-duplicated non-blank terms in input order."""
    seen: set[str] = set()
    result: list[str] = []
    for term in terms or []:
        if not isinstance(term, str):
            continue
        cleaned = term.strip().lower()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def boost_factor(match_count: int, total_terms: int) -> float:
    ratio = match_count / total_terms if total_terms else 0.0
    return BOOST_BASE ** (ratio * BOOST_EXPONENT)


def multi_term_search(index: FuzzyIndex, terms: Iterable[str]) -> list[ScoredMatch]:
    """
    Search ``index`` once per term and merge with multi-term boosting.

    Returns:
        One match per record, sorted by boosted score (lower is better);
        ties keep first-seen order
    """
    terms = valid_terms(terms)
    if not terms:
        return []

    merged: dict[str, ScoredMatch] = {}
    for term in terms:
        for match in index.search(term):
            record_id = match.id
            if not record_id:
                continue
            existing = merged.get(record_id)
            if existing is None:
                merged[record_id] = ScoredMatch(match.record, match.score, [term])
                continue
            if term not in existing.terms:
                existing.terms.append(term)
            existing.score = min(existing.score, match.score)

    ranked = [
        ScoredMatch(m.record, m.score * boost_factor(len(m.terms), len(terms)), m.terms)
        for m in merged.values()
    ]
    ranked.sort(key=lambda m: m.score)
    return ranked


def rank_records(index: FuzzyIndex, terms: Iterable[str]) -> list[Record]:
    """Records matching ``terms``, best first."""
    return [m.record for m in multi_term_search(index, terms)]


async def direct_fetch_fallback(
    terms: Iterable[str],
    matches: Sequence[ScoredMatch],
    looks_like_id: Callable[[str], bool],
    fetch_by_id: Callable[[str], Awaitable[Record]],
) -> list[ScoredMatch]:
    """
    Merge directly-fetched records for id-shaped terms missing from ``matches``.

    Lookups run concurrently. A lookup that fails for any reason is logged
    and skipped. Fetched records get score 0.0.

    Returns:
        A new list sorted by score
    """
    found = {m.id.lower() for m in matches}
    candidates: list[str] = []
    for term in terms or []:
        if not isinstance(term, str):
            continue
        term = term.strip()
        if term and looks_like_id(term) and term.lower() not in found:
            found.add(term.lower())
            candidates.append(term)

    if not candidates:
        return list(matches)

    logger.info("Attempting direct fetch for ids: %s", ", ".join(candidates))

    async def fetch(entity_id: str) -> Optional[Record]:
        try:
            return await fetch_by_id(entity_id)
        except (ClickUpError, httpx.HTTPError) as e:
            logger.info("Direct fetch of %s failed: %s", entity_id, e)
            return None

    fetched = await asyncio.gather(*(fetch(c) for c in candidates))

    merged = {m.id: m for m in matches}
    for term, record in zip(candidates, fetched):
        if record is None or not isinstance(record.get("id"), str):
            continue
        existing = merged.get(record["id"])
        if existing is None or existing.score > 0:
            merged[record["id"]] = ScoredMatch(record, 0.0, [term.lower()])

    result = list(merged.values())
    result.sort(key=lambda m: m.score)
    return result


def _is_done(task: Record) -> bool:
    status = task.get("status")
    return isinstance(status, dict) and status.get("type") in ("done", "closed")


class SearchService:
    """Cached fuzzy search over one ClickUp workspace."""

    def __init__(
        self,
        client: ClickUpClient,
        *,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._tasks: KeyedCache[FuzzyIndex] = KeyedCache(ttl, name="task index", clock=clock)
        self._documents: KeyedCache[FuzzyIndex] = KeyedCache(ttl, name="document index", clock=clock)
        self._spaces: KeyedCache[FuzzyIndex] = KeyedCache(ttl, name="space index", clock=clock)

    @property
    def client(self) -> ClickUpClient:
        return self._client

    def clear(self) -> None:
        """Forget every cached index."""
        self._tasks.clear()
        self._documents.clear()
        self._spaces.clear()

    # ------------------------------------------------------------------
    # Index builds
    # ------------------------------------------------------------------

    async def task_index(
        self,
        space_ids: Optional[Sequence[str]] = None,
        list_ids: Optional[Sequence[str]] = None,
        assignees: Optional[Sequence[str]] = None,
    ) -> FuzzyIndex:
        key = make_filter_key(space_ids=space_ids, list_ids=list_ids, assignees=assignees)

        async def build() -> FuzzyIndex:
            logger.info("Refreshing task index for filters: %s", key)
            tasks, space_names = await asyncio.gather(
                self._client.fetch_tasks(space_ids, list_ids, assignees),
                self.space_names(),
            )
            tasks = [with_space_name(task, space_names) for task in tasks]
            index = FuzzyIndex.build(tasks, TASK_FIELDS)
            logger.info("Task index created with %d tasks", len(index))
            return index

        return await self._tasks.get_or_build(key, build)

    async def document_index(self, space_ids: Optional[Sequence[str]] = None) -> FuzzyIndex:
        key = make_filter_key(space_ids=space_ids)

        async def build() -> FuzzyIndex:
            logger.info("Refreshing document index for filters: %s", key)
            docs, space_names = await asyncio.gather(
                self._client.fetch_documents(space_ids),
                self.space_names(),
            )
            docs = [with_space_name(doc, space_names) for doc in docs]
            index = FuzzyIndex.build(docs, DOCUMENT_FIELDS)
            logger.info("Document index created with %d documents", len(index))
            return index

        return await self._documents.get_or_build(key, build)

    async def space_index(self) -> FuzzyIndex:
        async def build() -> FuzzyIndex:
            spaces = await self._client.fetch_spaces()
            index = FuzzyIndex.build(spaces, SPACE_FIELDS)
            logger.info("Space search index created with %d spaces", len(index))
            return index

        return await self._spaces.get_or_build(make_filter_key(), build)

    async def space_names(self) -> dict[str, str]:
        """Space id -> name, from the cached space index. Empty on failure."""
        try:
            index = await self.space_index()
        except ClickUpError as e:
            logger.warning("Could not load spaces: %s", e)
            return {}
        return {
            str(space["id"]): str(space.get("name") or "")
            for space in index.records
        }

    # ------------------------------------------------------------------
    # Searches
    # ------------------------------------------------------------------

    async def search_tasks(
        self,
        terms: Optional[Sequence[str]] = None,
        *,
        space_ids: Optional[Sequence[str]] = None,
        list_ids: Optional[Sequence[str]] = None,
        assignees: Optional[Sequence[str]] = None,
        todo: bool = False,
        limit: int = MAX_SEARCH_RESULTS,
    ) -> list[Record]:
        """
        Tasks matching ``terms`` best first, or the most recently updated
        tasks when no terms are given.
        """
        index = await self.task_index(space_ids, list_ids, assignees)

        if not terms:
            results = sorted(
                index.records,
                key=lambda t: timestamp_value(t.get("date_updated")),
                reverse=True,
            )
        else:
            matches = multi_term_search(index, terms)
            matches = await direct_fetch_fallback(
                terms, matches, is_task_id, self._client.fetch_task,
            )
            results = [m.record for m in matches]

        if todo:
            results = [t for t in results if not _is_done(t)]
        return results[:limit]

    async def search_documents(
        self,
        terms: Optional[Sequence[str]] = None,
        *,
        space_ids: Optional[Sequence[str]] = None,
        limit: int = MAX_SEARCH_RESULTS,
    ) -> list[Record]:
        """Documents matching ``terms``, or the newest documents without terms."""
        index = await self.document_index(space_ids)

        if not terms:
            results = sorted(
                index.records,
                key=lambda d: timestamp_value(d.get("date_created")),
                reverse=True,
            )
        else:
            matches = multi_term_search(index, terms)
            matches = await direct_fetch_fallback(
                terms, matches, is_document_id, self._client.fetch_document,
            )
            results = [m.record for m in matches]
        return results[:limit]

    async def search_spaces(
        self,
        terms: Optional[Sequence[str]] = None,
        *,
        archived: bool = False,
    ) -> list[Record]:
        """Spaces matching ``terms`` (all spaces without terms)."""
        index = await self.space_index()
        if not terms:
            results = list(index.records)
        else:
            results = rank_records(index, terms)
        if not archived:
            results = [s for s in results if not s.get("archived")]
        return results


def with_space_name(record: Record, space_names: dict[str, str]) -> Record:
    """Copy of ``record`` with ``space.name`` filled in where ClickUp omits it.

    Tasks carry only ``space.id``; documents carry ``parent`` with a type
    code (4 = space).
    """
    space = record.get("space")
    if isinstance(space, dict):
        if space.get("name") or str(space.get("id")) not in space_names:
            return record
        return {**record, "space": {**space, "name": space_names[str(space["id"])]}}

    parent = record.get("parent")
    if isinstance(parent, dict) and str(parent.get("type")) == "4":
        parent_id = str(parent.get("id"))
        if parent_id in space_names:
            return {**record, "space": {"id": parent_id, "name": space_names[parent_id]}}
    return record
