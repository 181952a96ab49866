"""
Name-pair resolution against the ratings registry.

Responsibilities:
- Serve cached accurate results for the current month.
- Query the registry as "Last, First" and fall back to "First, Last".
- Drop denylisted candidates, order the survivors, classify accuracy.
- Write accurate results through to the cache under the "Last, First" term.

Non-Responsibilities:
- No HTTP details (the fetch callable owns transport and retries).
- No markup parsing (the extract callable owns it).
- No batching or scheduling.

Invariant:
resolve() never raises for transport or extraction failures; every outcome
is a Resolution, empty and inaccurate when nothing usable came back.
"""

import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from .config import DEFAULT_HOME_FEDERATION
from .logger import get_logger
from .normalize import primary_term, reversed_term
from .schema import Candidate, Provenance, Resolution
from .scrapers.fide import extract_candidates, fetch_markup, sort_candidates
from .storage import MatchStore

Fetch = Callable[[str], Union[str, Awaitable[str]]]
Extract = Callable[[str], List[Candidate]]


def is_accurate(candidates: Sequence[Candidate], home_federation: str = DEFAULT_HOME_FEDERATION) -> bool:
    if not candidates:
        return False
    return len(candidates) == 1 or any(c.federation == home_federation for c in candidates)


class Resolver:
    def __init__(
        self,
        store: Optional[MatchStore] = None,
        fetch: Fetch = fetch_markup,
        extract: Optional[Extract] = None,
        home_federation: str = DEFAULT_HOME_FEDERATION,
        logger=None,
    ):
        self.store = store if store is not None else MatchStore()
        self.fetch = fetch
        self.home_federation = home_federation
        self.extract = extract or (lambda markup: extract_candidates(markup, home_federation))
        self.logger = logger or get_logger()

    async def _fetch(self, term: str) -> str:
        if inspect.iscoroutinefunction(self.fetch):
            return await self.fetch(term)
        markup = await asyncio.to_thread(self.fetch, term)
        # Plain callables may still hand back a coroutine (wrappers, async __call__)
        if inspect.isawaitable(markup):
            markup = await markup
        return markup

    async def _search(self, term: str) -> List[Candidate]:
        """One registry attempt. Raises whatever the fetch raised."""
        markup = await self._fetch(term)
        return list(self.extract(markup))

    def _finalize(self, term: str, candidates: List[Candidate], provenance: Provenance) -> Resolution:
        denied = self.store.denylist_list(term)
        survivors = sort_candidates(
            (c for c in candidates if not (c.fide_id and c.fide_id in denied)),
            self.home_federation,
        )
        return Resolution(
            candidates=tuple(survivors),
            accurate=is_accurate(survivors, self.home_federation),
            provenance=provenance,
        )

    def _from_cache(self, term: str) -> Optional[Resolution]:
        cached = self.store.get(term)
        if cached is None:
            self.logger.record_cache_miss()
            return None
        # Denylist may have grown since the entry was written
        result = self._finalize(term, list(cached.candidates), cached.provenance)
        if not result.accurate:
            self.logger.record_cache_miss()
            return None
        self.logger.record_cache_hit()
        return result.as_cached()

    async def resolve(self, last_name: str, first_name: str, force_refresh: bool = False) -> Resolution:
        """Resolve one name pair. Missing either name yields an empty result without lookups."""
        last_name = (last_name or "").strip()
        first_name = (first_name or "").strip()
        if not last_name or not first_name:
            return Resolution.empty(Provenance.NONE)

        term = primary_term(last_name, first_name)
        if not force_refresh:
            cached = self._from_cache(term)
            if cached is not None:
                self.logger.debug("Cache hit", term=term, search_order=cached.label)
                self.logger.record_strategy(cached.label)
                return cached

        attempts = [
            (term, Provenance.PRIMARY),
            (reversed_term(last_name, first_name), Provenance.REVERSED),
        ]
        failures = 0
        for attempt_term, provenance in attempts:
            try:
                candidates = await self._search(attempt_term)
            except Exception as e:
                failures += 1
                self.logger.warning(
                    "Registry lookup failed", term=attempt_term, error=str(e), error_type=type(e).__name__
                )
                continue
            if not candidates:
                continue

            result = self._finalize(term, candidates, provenance)
            if result.accurate:
                self.store.put(term, result)
            self.logger.debug(
                "Resolved name pair",
                term=term,
                search_order=provenance.value,
                candidates=len(result.candidates),
                accurate=result.accurate,
            )
            self.logger.record_strategy(provenance.value)
            return result

        provenance = Provenance.ERROR if failures == len(attempts) else Provenance.NONE
        self.logger.record_strategy(provenance.value)
        self.logger.info("No registry match", term=term, search_order=provenance.value)
        return Resolution.empty(provenance)
