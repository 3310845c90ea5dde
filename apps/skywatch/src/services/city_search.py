from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Protocol

from .coordinates import CitySuggestion
from .debounce import Debouncer
from .openweather import SearchError

logger = logging.getLogger("skywatch.hub.search")


class CityLookup(Protocol):
    async def find_cities(self, query: str, limit: int) -> list[CitySuggestion]: ...


@dataclass(frozen=True, slots=True)
class SearchState:
    query: str = ""
    suggestions: tuple[CitySuggestion, ...] = field(default_factory=tuple)
    loading: bool = False
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "suggestions": [item.to_payload() for item in self.suggestions],
            "loading": self.loading,
            "error": self.error,
        }


class CitySearchService:
    """Text query to candidate cities, with its own error state separate from weather fetches."""

    def __init__(
        self,
        lookup: CityLookup,
        *,
        limit: int = 5,
        min_length: int = 3,
        debounce_seconds: float = 0.5,
        on_change: Callable[[SearchState], None] | None = None,
    ) -> None:
        self._lookup = lookup
        self._limit = limit
        self._min_length = min_length
        self._on_change = on_change
        self._state = SearchState()
        self._debouncer: Debouncer[str] = Debouncer(debounce_seconds, self._on_query_settled)
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> SearchState:
        return self._state

    async def search(self, query: str) -> list[CitySuggestion]:
        term = query.strip()
        if len(term) < self._min_length:
            return []
        results = await self._lookup.find_cities(term, self._limit)
        return results[: self._limit]

    def update_query(self, query: str) -> None:
        """Record typed text; the lookup runs once the text stops changing."""
        self._set_state(replace(self._state, query=query))
        self._debouncer.push(query.strip())

    def suggestion(self, index: int) -> CitySuggestion:
        return self._state.suggestions[index]

    def clear(self) -> None:
        self._debouncer.reset()
        self._cancel_task()
        self._set_state(SearchState())

    async def wait(self) -> None:
        task = self._task
        if task is not None:
            await task

    async def close(self) -> None:
        self._debouncer.cancel()
        task = self._task
        self._cancel_task()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _on_query_settled(self, term: str) -> None:
        self._cancel_task()
        if len(term) < self._min_length:
            self._set_state(replace(self._state, suggestions=(), loading=False, error=None))
            return
        self._set_state(replace(self._state, loading=True))
        self._task = asyncio.create_task(self._run(term), name="city-search")

    async def _run(self, term: str) -> None:
        try:
            results = await self.search(term)
        except SearchError as exc:
            logger.warning("City search for %r failed (%s): %s", term, exc.kind, exc)
            self._fail(term)
            return
        except Exception:  # noqa: BLE001 - clear loading instead of leaving the box stuck
            logger.exception("Unexpected error during city search for %r", term)
            self._fail(term)
            return
        if not self._is_current(term):
            logger.debug("Dropping results for stale query %r", term)
            # typing back to this text must run the lookup again
            self._debouncer.last_emitted = None
            return
        self._set_state(replace(self._state, suggestions=tuple(results), loading=False, error=None))

    def _fail(self, term: str) -> None:
        # allow the same text to be retried
        self._debouncer.last_emitted = None
        if self._is_current(term):
            self._set_state(
                replace(
                    self._state,
                    suggestions=(),
                    loading=False,
                    error="Failed to fetch city suggestions. Please try again.",
                )
            )

    def _is_current(self, term: str) -> bool:
        return self._state.query.strip() == term

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _set_state(self, state: SearchState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_change is not None:
            self._on_change(state)


__all__ = ["CityLookup", "CitySearchService", "SearchState"]
