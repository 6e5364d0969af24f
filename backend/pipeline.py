"""Candidate discovery pipeline.

query → registry page → dedupe/organization filter → bounded profile
enrichment → merge into the session.
"""

import logging

from connectors import RateLimitError, RegistryError, weighting_for
from fanout import fan_out
from filters import ORGANIZATION_ACCOUNTS, deduplicate
from impact import enrichment_login
from models import Candidate, DeveloperProfile, PackageRecord, Provenance, RankingMode
from session import (
    FETCH_FAILED,
    RATE_LIMIT,
    LoadMoreStarted,
    PageFailed,
    PageLoaded,
    SearchSession,
    SearchStarted,
    SessionReset,
    reduce,
)

logger = logging.getLogger("packagescout")

PAGE_SIZE = 50
# Profile lookups are slow and rate limited; only the head of each page is enriched.
ENRICHMENT_CAP = 15


def parse_terms(query: str) -> list[str]:
    """Comma-separated skills → trimmed, non-empty terms."""
    return [t.strip() for t in (query or "").split(",") if t.strip()]


class SearchOrchestrator:
    """Drives one search session.

    Not safe for overlapping calls: while a page is in flight, further
    ``search``/``load_more`` calls are ignored. ``reset`` may be called at
    any time; a round still in flight then finishes but its results are
    dropped.
    """

    def __init__(
        self,
        registries: dict,
        profiles,
        page_size: int = PAGE_SIZE,
        enrichment_cap: int = ENRICHMENT_CAP,
        organization_accounts=ORGANIZATION_ACCOUNTS,
    ):
        self.registries = {Provenance(k): v for k, v in registries.items()}
        self.profiles = profiles
        self.page_size = page_size
        self.enrichment_cap = enrichment_cap
        self.organization_accounts = organization_accounts
        self.session = SearchSession()

    # Observable state -----------------------------------------------------

    @property
    def results(self) -> list[Candidate]:
        return list(self.session.results)

    @property
    def loading(self) -> bool:
        return self.session.loading

    @property
    def error(self) -> str | None:
        return self.session.error

    @property
    def has_more(self) -> bool:
        return self.session.has_more

    # Entry points ---------------------------------------------------------

    async def search(self, query: str, registry="npm", sort=RankingMode.OPTIMAL) -> None:
        if self.session.loading:
            logger.info("search IGNORED_IN_FLIGHT query=%r", query)
            return
        if not parse_terms(query):
            return

        registry = Provenance(registry)
        if registry not in self.registries:
            raise ValueError(f"No client configured for registry '{registry.value}'")

        self._dispatch(SearchStarted(query.strip(), registry, RankingMode(sort)))
        await self._run_round(seen=set(), append=False, restore_offset=None)

    async def load_more(self) -> None:
        session = self.session
        if session.loading or not session.has_more or not session.query:
            return

        previous_offset = session.offset
        seen = {c.publisher_username for c in session.results if c.publisher_username}
        self._dispatch(LoadMoreStarted(self.page_size))
        await self._run_round(seen=seen, append=True, restore_offset=previous_offset)

    def reset(self) -> None:
        self._dispatch(SessionReset())

    # Internals ------------------------------------------------------------

    def _dispatch(self, event) -> None:
        self.session = reduce(self.session, event)

    async def _run_round(self, seen: set[str], append: bool, restore_offset: int | None) -> None:
        session = self.session
        generation = session.generation
        terms = parse_terms(session.query)
        client = self.registries[session.registry]

        try:
            page = await client.fetch_candidates(
                terms, self.page_size, session.offset, weighting_for(session.sort),
            )
        except RateLimitError as e:
            logger.warning("search RATE_LIMITED registry=%s status=%s", session.registry.value, e.status)
            self._dispatch(PageFailed(generation, RATE_LIMIT, restore_offset))
            return
        except RegistryError as e:
            logger.warning("search FETCH_FAILED registry=%s status=%s error=%s", session.registry.value, e.status, e)
            self._dispatch(PageFailed(generation, FETCH_FAILED, restore_offset))
            return
        except Exception:
            logger.exception("search PIPELINE_ERROR registry=%s query=%r", session.registry.value, session.query)
            self._dispatch(PageFailed(generation, FETCH_FAILED, restore_offset))
            return

        records = page.records
        survivors = deduplicate(records, seen, self.organization_accounts)
        try:
            candidates, rate_limited = await self._enrich(survivors)
        except Exception:
            logger.exception("search ENRICH_ERROR registry=%s query=%r", session.registry.value, session.query)
            candidates, rate_limited = [self._candidate(r, None) for r in survivors], False

        if generation != self.session.generation:
            logger.info("search STALE_DISCARDED generation=%d current=%d", generation, self.session.generation)
            return

        logger.info(
            "search PAGE registry=%s offset=%d hits=%d parsed=%d kept=%d enriched=%d rate_limited=%s",
            session.registry.value, session.offset, page.received, len(records), len(candidates),
            sum(1 for c in candidates if c.profile is not None), rate_limited,
        )
        self._dispatch(PageLoaded(
            generation=generation,
            candidates=tuple(candidates),
            received=page.received,
            page_size=self.page_size,
            append=append,
            error=RATE_LIMIT if rate_limited else None,
        ))

    async def _enrich(self, records: list[PackageRecord]) -> tuple[list[Candidate], bool]:
        """Attach profiles to the first ``enrichment_cap`` records, concurrently.

        Results are merged back by index; records past the cap, and any whose
        lookup failed or was cut short by a rate limit, stay unenriched.
        """
        head = records[:self.enrichment_cap]
        batch = await fan_out(head, self._lookup_profile, limit=len(head), abort_on=(RateLimitError,))
        if batch.aborted:
            logger.warning("enrich RATE_LIMITED attempted=%d of=%d", sum(batch.attempted), len(head))

        candidates = []
        for index, record in enumerate(records):
            profile = batch.values[index] if index < len(head) else None
            candidates.append(self._candidate(record, profile))
        return candidates, batch.aborted

    async def _lookup_profile(self, record: PackageRecord) -> DeveloperProfile | None:
        login = enrichment_login(record)
        if not login:
            return None
        return await self.profiles.get_profile(login)

    @staticmethod
    def _candidate(record: PackageRecord, profile: DeveloperProfile | None) -> Candidate:
        return Candidate(
            record=record,
            profile=profile,
            provenance=record.provenance,
            relevance=record.search_score,
        )
