"""Search session state and its transitions.

A session is an immutable value; every change goes through
``reduce(session, event)``, which returns a new session. Completion events
carry the generation they were started under, and ``reduce`` ignores any
whose generation no longer matches (the session was reset meanwhile).
"""

from dataclasses import dataclass, replace

from models import Candidate, Provenance, RankingMode

RATE_LIMIT = "RATE_LIMIT"
FETCH_FAILED = "FETCH_FAILED"

ERROR_MESSAGES = {
    RATE_LIMIT: "API rate limit reached. Sign in with GitHub for higher limits.",
    FETCH_FAILED: "Failed to fetch results. Please try again.",
}


@dataclass(frozen=True)
class SearchSession:
    query: str = ""
    registry: Provenance = Provenance.NPM
    sort: RankingMode = RankingMode.OPTIMAL
    results: tuple[Candidate, ...] = ()
    seen: frozenset[str] = frozenset()
    offset: int = 0
    has_more: bool = True
    loading: bool = False
    error: str | None = None
    generation: int = 0


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SearchStarted:
    query: str
    registry: Provenance
    sort: RankingMode = RankingMode.OPTIMAL


@dataclass(frozen=True)
class LoadMoreStarted:
    page_size: int


@dataclass(frozen=True)
class PageLoaded:
    generation: int
    candidates: tuple[Candidate, ...]
    received: int
    page_size: int
    append: bool
    error: str | None = None


@dataclass(frozen=True)
class PageFailed:
    generation: int
    error: str
    # Offset to return to so a retry asks for the same page again
    restore_offset: int | None = None


@dataclass(frozen=True)
class SessionReset:
    pass


def _usernames(candidates) -> set[str]:
    return {c.publisher_username for c in candidates if c.publisher_username}


def reduce(session: SearchSession, event) -> SearchSession:
    if isinstance(event, SearchStarted):
        return SearchSession(
            query=event.query,
            registry=Provenance(event.registry),
            sort=RankingMode(event.sort),
            loading=True,
            generation=session.generation + 1,
        )

    if isinstance(event, LoadMoreStarted):
        return replace(session, offset=session.offset + event.page_size, loading=True, error=None)

    if isinstance(event, SessionReset):
        return SearchSession(generation=session.generation + 1)

    if isinstance(event, PageLoaded):
        if event.generation != session.generation:
            return session
        base = session.results if event.append else ()
        seen = set(_usernames(base))
        merged = list(base)
        for candidate in event.candidates:
            username = candidate.publisher_username
            if not username or username in seen:
                continue
            seen.add(username)
            merged.append(candidate)
        return replace(
            session,
            results=tuple(merged),
            seen=frozenset(seen),
            has_more=session.has_more and event.received >= event.page_size,
            loading=False,
            error=event.error,
        )

    if isinstance(event, PageFailed):
        if event.generation != session.generation:
            return session
        offset = session.offset if event.restore_offset is None else event.restore_offset
        return replace(session, offset=offset, loading=False, error=event.error)

    raise TypeError(f"Unknown session event: {event!r}")
