from __future__ import annotations

import asyncio
from typing import Any

import pytest

from connectors import RateLimitError
from models import (
    DeveloperProfile,
    PackageLinks,
    PackageRecord,
    Provenance,
    Publisher,
    RegistryPage,
    Score,
    ScoreDetail,
)


def _record(
    name: str,
    username: str | None = "alice",
    quality: float = 0.5,
    popularity: float = 0.5,
    repository: str | None = None,
    search_score: float = 1.0,
    provenance: Provenance = Provenance.NPM,
) -> PackageRecord:
    return PackageRecord(
        name=name,
        version="1.0.0",
        description=f"{name} package",
        links=PackageLinks(npm=f"https://www.npmjs.com/package/{name}", repository=repository),
        publisher=Publisher(username=username, email=f"{username}@example.com") if username is not None else None,
        score=Score(
            final=(quality + popularity) / 2,
            detail=ScoreDetail(quality=quality, popularity=popularity, maintenance=0.5),
        ),
        search_score=search_score,
        provenance=provenance,
    )


def _npm_object(
    name: str,
    username: str | None = "alice",
    quality: float = 0.5,
    popularity: float = 0.5,
    repository: str | None = None,
) -> dict[str, Any]:
    package: dict[str, Any] = {
        "name": name,
        "version": "2.1.0",
        "description": f"{name} does things",
        "keywords": ["react", "hooks"],
        "date": "2024-05-01T10:00:00.000Z",
        "links": {"npm": f"https://www.npmjs.com/package/{name}"},
        "maintainers": [{"username": username or "ghost", "email": "m@example.com"}],
    }
    if repository:
        package["links"]["repository"] = repository
    if username is not None:
        package["publisher"] = {"username": username, "email": f"{username}@example.com"}
    return {
        "package": package,
        "score": {
            "final": (quality + popularity) / 2,
            "detail": {"quality": quality, "popularity": popularity, "maintenance": 0.9},
        },
        "searchScore": 100.5,
    }


class FakeRegistry:
    """Serves pre-built pages by offset and records every call."""

    def __init__(self, pages: list[list[PackageRecord]] | None = None, errors: dict[int, Exception] | None = None):
        self.pages = pages or []
        self.errors = errors or {}
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None

    async def fetch_candidates(self, terms, page_size, offset, weighting=None):
        self.calls.append({"terms": terms, "page_size": page_size, "offset": offset, "weighting": weighting})
        if self.gate is not None:
            await self.gate.wait()
        if offset in self.errors:
            raise self.errors.pop(offset)
        index = offset // page_size
        records = list(self.pages[index]) if index < len(self.pages) else []
        return RegistryPage(records, len(records))


class FakeProfiles:
    """Profile client double: per-user delays, rate limits and failures."""

    def __init__(
        self,
        delays: dict[str, float] | None = None,
        rate_limited: set[str] | None = None,
        failing: set[str] | None = None,
        missing: set[str] | None = None,
    ):
        self.delays = delays or {}
        self.rate_limited = rate_limited or set()
        self.failing = failing or set()
        self.missing = missing or set()
        self.calls: list[str] = []

    async def get_profile(self, username: str) -> DeveloperProfile | None:
        self.calls.append(username)
        await asyncio.sleep(self.delays.get(username, 0))
        if username in self.rate_limited:
            raise RateLimitError("rate limited", status=403)
        if username in self.failing:
            raise RuntimeError(f"boom for {username}")
        if username in self.missing:
            return None
        return DeveloperProfile(login=username, location="Berlin", followers=10, public_repos=3)


@pytest.fixture
def make_record():
    return _record


@pytest.fixture
def npm_object():
    return _npm_object


@pytest.fixture
def fake_registry():
    return FakeRegistry


@pytest.fixture
def fake_profiles():
    return FakeProfiles


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
