"""npm registry search connector."""

import logging
import os

import httpx

from models import Provenance, RankingMode, RegistryPage, Weighting, parse_hit

from .errors import RateLimitError, RegistryError

logger = logging.getLogger("packagescout")

NPM_REGISTRY_URL = os.environ.get("NPM_REGISTRY_URL", "https://registry.npmjs.org").rstrip("/")
SEARCH_PATH = "/-/v1/search"
TIMEOUT = 15

# Ranking presets forwarded to the registry as quality/popularity/maintenance weights
RANKING_WEIGHTS = {
    RankingMode.OPTIMAL: Weighting(quality=1.0, popularity=1.0, maintenance=1.0),
    RankingMode.POPULARITY: Weighting(quality=0.1, popularity=1.0, maintenance=0.1),
    RankingMode.MAINTENANCE: Weighting(quality=0.5, popularity=0.1, maintenance=1.0),
    RankingMode.QUALITY: Weighting(quality=1.0, popularity=0.5, maintenance=0.5),
}


def weighting_for(mode) -> Weighting:
    """Resolve a ranking mode (enum or name, 'freshness' included) to its weights."""
    return RANKING_WEIGHTS[RankingMode(mode)]


def build_query(terms: list[str]) -> str:
    """Single bare term → exact keyword match; anything else → free text."""
    terms = [t.strip() for t in terms if t and t.strip()]
    if not terms:
        raise ValueError("At least one search term is required")
    if len(terms) == 1 and len(terms[0].split()) == 1:
        return f"keywords:{terms[0]}"
    return " ".join(terms)


class NpmRegistryClient:
    """Paginated package search against the npm registry."""

    provenance = Provenance.NPM

    def __init__(self, base_url: str = NPM_REGISTRY_URL, transport: httpx.AsyncBaseTransport | None = None,
                 timeout: float = TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    async def fetch_candidates(
        self,
        terms: list[str],
        page_size: int,
        offset: int,
        weighting: Weighting | None = None,
    ) -> RegistryPage:
        weighting = weighting or RANKING_WEIGHTS[RankingMode.OPTIMAL]
        params = {
            "text": build_query(terms),
            "size": page_size,
            "from": offset,
            "quality": weighting.quality,
            "popularity": weighting.popularity,
            "maintenance": weighting.maintenance,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(f"{self.base_url}{SEARCH_PATH}", params=params)
        except httpx.HTTPError as e:
            raise RegistryError(f"npm registry unreachable: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError("npm registry rate limit exceeded", status=429)
        if not resp.is_success:
            raise RegistryError(f"npm registry error: {resp.status_code}", status=resp.status_code)

        try:
            objects = resp.json().get("objects", [])
        except (ValueError, AttributeError) as e:
            raise RegistryError(f"Malformed npm search response: {e}", status=resp.status_code) from e
        if not isinstance(objects, list):
            raise RegistryError("Malformed npm search response: objects is not a list", status=resp.status_code)

        records = []
        for index, obj in enumerate(objects):
            try:
                records.append(parse_hit(obj, Provenance.NPM))
            except (ValueError, TypeError) as e:
                logger.warning("npm search SKIPPED_HIT index=%d error=%s", index, e)

        logger.info(
            "npm search text=%r from=%d size=%d hits=%d kept=%d",
            params["text"], offset, page_size, len(objects), len(records),
        )
        return RegistryPage(records, len(objects))
