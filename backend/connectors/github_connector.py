"""GitHub API connector: repository search and developer profile lookup."""

import logging
import os
from typing import Callable

import httpx

from cache import ProfileCache
from models import DeveloperProfile, Provenance, RegistryPage, Weighting, parse_hit

from .errors import RateLimitError, RegistryError

logger = logging.getLogger("packagescout")

GH_API = os.environ.get("GITHUB_API_URL", "https://api.github.com").rstrip("/")
TIMEOUT = 15
RATE_LIMIT_STATUSES = (403, 429)


def env_token() -> str | None:
    """Default token provider: the server-wide GITHUB_TOKEN, if any."""
    return os.environ.get("GITHUB_TOKEN") or None


def _headers(token: str | None) -> dict:
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class GitHubRepositorySearch:
    """Repository search used as the PyPI stand-in (and for GitHub-direct search).

    Results are ordered by stars; the ranking weights npm understands do not
    apply here and are ignored.
    """

    def __init__(
        self,
        provenance: Provenance = Provenance.PYPI,
        token_provider: Callable[[], str | None] = env_token,
        base_url: str = GH_API,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = TIMEOUT,
    ):
        self.provenance = Provenance(provenance)
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    def build_query(self, terms: list[str]) -> str:
        text = " ".join(t.strip() for t in terms if t and t.strip())
        if not text:
            raise ValueError("At least one search term is required")
        if self.provenance == Provenance.PYPI:
            text = f"{text} language:python"
        return text

    async def fetch_candidates(
        self,
        terms: list[str],
        page_size: int,
        offset: int,
        weighting: Weighting | None = None,
    ) -> RegistryPage:
        params = {
            "q": self.build_query(terms),
            "sort": "stars",
            "order": "desc",
            "per_page": page_size,
            "page": offset // page_size + 1,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(
                    f"{self.base_url}/search/repositories",
                    params=params,
                    headers=_headers(self.token_provider()),
                )
        except httpx.HTTPError as e:
            raise RegistryError(f"GitHub search unreachable: {e}") from e

        if resp.status_code in RATE_LIMIT_STATUSES:
            raise RateLimitError("GitHub search rate limit exceeded", status=resp.status_code)
        if not resp.is_success:
            raise RegistryError(f"GitHub search error: {resp.status_code}", status=resp.status_code)

        try:
            items = resp.json().get("items", [])
        except (ValueError, AttributeError) as e:
            raise RegistryError(f"Malformed GitHub search response: {e}", status=resp.status_code) from e
        if not isinstance(items, list):
            raise RegistryError("Malformed GitHub search response: items is not a list", status=resp.status_code)

        records = []
        for index, item in enumerate(items):
            try:
                records.append(parse_hit(item, self.provenance))
            except (ValueError, TypeError) as e:
                logger.warning("github search SKIPPED_HIT index=%d error=%s", index, e)

        logger.info(
            "github search q=%r page=%d hits=%d kept=%d",
            params["q"], params["page"], len(items), len(records),
        )
        return RegistryPage(records, len(items))


class GitHubProfileClient:
    """Cache-first lookup of GitHub user profiles.

    Every outcome except rate limiting resolves to a profile or None:
    404s are cached as None, other failures are logged and not cached.
    """

    def __init__(
        self,
        cache: ProfileCache,
        token_provider: Callable[[], str | None] = env_token,
        base_url: str = GH_API,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = TIMEOUT,
    ):
        self.cache = cache
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    async def get_profile(self, username: str) -> DeveloperProfile | None:
        cached = self.cache.get(username)
        if cached is not None:
            return cached.profile

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(
                    f"{self.base_url}/users/{username}",
                    headers=_headers(self.token_provider()),
                )
        except httpx.HTTPError as e:
            logger.warning("profile FETCH_FAILED user=%s error=%s", username, e)
            return None

        if resp.status_code == 404:
            self.cache.set(username, None)
            return None
        if resp.status_code in RATE_LIMIT_STATUSES:
            raise RateLimitError(f"GitHub rate limit exceeded looking up {username}", status=resp.status_code)
        if resp.status_code != 200:
            logger.warning("profile HTTP_%d user=%s", resp.status_code, username)
            return None

        try:
            profile = DeveloperProfile.model_validate(resp.json())
        except ValueError as e:
            logger.warning("profile MALFORMED user=%s error=%s", username, e)
            return None

        self.cache.set(username, profile)
        return profile
