"""Pydantic models for registry records, developer profiles and API payloads."""

from enum import Enum
from typing import Annotated, Literal, NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

PYPI_PROJECT_URL = "https://pypi.org/project/{name}/"
# Stars are mapped onto [0, 1] by dividing by this and clamping.
STAR_SCORE_SCALE = 1000


class Provenance(str, Enum):
    NPM = "npm"
    PYPI = "pypi"
    GITHUB = "github"


class RankingMode(str, Enum):
    OPTIMAL = "optimal"
    POPULARITY = "popularity"
    MAINTENANCE = "maintenance"
    QUALITY = "quality"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() == "freshness":
            return cls.MAINTENANCE
        return None


class Weighting(BaseModel):
    model_config = ConfigDict(frozen=True)

    quality: float = 1.0
    popularity: float = 1.0
    maintenance: float = 1.0


# ---------------------------------------------------------------------------
# Common record
# ---------------------------------------------------------------------------

class ScoreDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    quality: float = 0.0
    popularity: float = 0.0
    maintenance: float = 0.0

    @field_validator("quality", "popularity", "maintenance", mode="before")
    @classmethod
    def clamp_unit(cls, v):
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))


class Score(BaseModel):
    model_config = ConfigDict(frozen=True)

    final: float = 0.0
    detail: ScoreDetail = Field(default_factory=ScoreDetail)


class PackageLinks(BaseModel):
    model_config = ConfigDict(frozen=True)

    npm: str | None = None
    homepage: str | None = None
    repository: str | None = None
    bugs: str | None = None


class Publisher(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str | None = None
    email: str | None = None


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    email: str | None = None
    url: str | None = None


class PackageRecord(BaseModel):
    """One registry hit, collapsed to the shape every source shares."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    description: str = ""
    keywords: tuple[str, ...] = ()
    date: str = ""
    links: PackageLinks = Field(default_factory=PackageLinks)
    publisher: Publisher | None = None
    author: Author | None = None
    maintainers: tuple[Publisher, ...] = ()
    score: Score = Field(default_factory=Score)
    search_score: float = 0.0
    provenance: Provenance = Provenance.NPM

    @property
    def publisher_username(self) -> str | None:
        if self.publisher is None:
            return None
        return self.publisher.username or None


# ---------------------------------------------------------------------------
# Raw registry hits (tagged by provenance)
# ---------------------------------------------------------------------------

class NpmPackage(BaseModel):
    name: str
    version: str | None = None
    description: str | None = None
    keywords: list | None = None
    date: str | None = None
    links: PackageLinks = Field(default_factory=PackageLinks)
    publisher: Publisher | None = None
    author: Author | None = None
    maintainers: list[Publisher] | None = None

    @field_validator("author", mode="before")
    @classmethod
    def coerce_author(cls, v):
        # npm allows "Name <email> (url)" strings as well as objects
        if isinstance(v, str):
            return {"name": v}
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def coerce_keywords(cls, v):
        if isinstance(v, str):
            return [v]
        return v


class NpmHit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provenance: Literal["npm"] = "npm"
    package: NpmPackage
    score: Score = Field(default_factory=Score)
    search_score: float = Field(default=0.0, alias="searchScore")

    def to_record(self) -> PackageRecord:
        pkg = self.package
        return PackageRecord(
            name=pkg.name,
            version=pkg.version or "",
            description=pkg.description or "",
            keywords=tuple(k for k in (pkg.keywords or []) if isinstance(k, str)),
            date=pkg.date or "",
            links=pkg.links,
            publisher=pkg.publisher,
            author=pkg.author,
            maintainers=tuple(pkg.maintainers or ()),
            score=self.score,
            search_score=self.search_score,
            provenance=Provenance.NPM,
        )


class RepositoryOwner(BaseModel):
    login: str


class RepositoryHit(BaseModel):
    provenance: Literal["pypi", "github"] = "pypi"
    name: str
    full_name: str = ""
    description: str | None = None
    html_url: str = ""
    stargazers_count: int = 0
    language: str | None = None
    updated_at: str = ""
    owner: RepositoryOwner

    def to_record(self) -> PackageRecord:
        star_score = min(1.0, self.stargazers_count / STAR_SCORE_SCALE)
        keywords = [self.language] if self.language else []
        if self.provenance == "pypi":
            keywords.insert(0, "python")
        npm_link = PYPI_PROJECT_URL.format(name=self.name) if self.provenance == "pypi" else None
        return PackageRecord(
            name=self.name,
            version="latest",
            description=self.description or "",
            keywords=tuple(keywords),
            date=self.updated_at,
            links=PackageLinks(npm=npm_link, repository=self.html_url, homepage=self.html_url),
            publisher=Publisher(username=self.owner.login, email=""),
            author=Author(name=self.owner.login),
            score=Score(
                final=star_score,
                detail=ScoreDetail(quality=star_score, popularity=star_score, maintenance=1.0),
            ),
            search_score=float(self.stargazers_count),
            provenance=Provenance(self.provenance),
        )


RegistryHit = Annotated[Union[NpmHit, RepositoryHit], Field(discriminator="provenance")]

_HIT_ADAPTER = TypeAdapter(RegistryHit)


def parse_hit(raw: dict, provenance: Provenance) -> PackageRecord:
    """Validate one raw search item as its provenance's hit type and collapse it."""
    return _HIT_ADAPTER.validate_python({**raw, "provenance": provenance.value}).to_record()


class RegistryPage(NamedTuple):
    """Records parsed from one search page.

    *received* counts every item the registry returned, including any that
    failed validation and were skipped, so pagination follows the registry.
    """

    records: list[PackageRecord]
    received: int


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

class DeveloperProfile(BaseModel):
    """GitHub profile fields; None means not fetched or not disclosed."""

    model_config = ConfigDict(frozen=True)

    login: str
    name: str | None = None
    avatar_url: str | None = None
    html_url: str | None = None
    location: str | None = None
    bio: str | None = None
    company: str | None = None
    blog: str | None = None
    twitter_username: str | None = None
    followers: int | None = None
    following: int | None = None
    public_repos: int | None = None


class ProfileCacheEntry(BaseModel):
    profile: DeveloperProfile | None = None
    fetched_at: float


class Candidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    record: PackageRecord
    profile: DeveloperProfile | None = None
    provenance: Provenance
    relevance: float = 0.0

    @property
    def publisher_username(self) -> str | None:
        return self.record.publisher_username


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class SessionCreateRequest(BaseModel):
    github_token: str = Field(default="", max_length=256)


class SessionCreateResponse(BaseModel):
    session_id: str


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=200)
    registry: Literal["npm", "pypi", "github"] = "npm"
    sort: RankingMode = RankingMode.OPTIMAL

    @field_validator("query")
    @classmethod
    def validate_query(cls, v):
        if not any(term.strip() for term in v.split(",")):
            raise ValueError("Query must contain at least one search term")
        return v


class CandidateView(BaseModel):
    name: str
    username: str
    provenance: Provenance
    description: str
    score: float
    quality: float
    popularity: float
    maintenance: float
    impact_tier: str
    top_talent: bool
    github_username: str | None = None
    github_url: str | None = None
    avatar_url: str
    repository: str | None = None
    homepage: str | None = None
    npm_link: str | None = None
    profile: DeveloperProfile | None = None


class SessionState(BaseModel):
    session_id: str
    query: str
    registry: str
    results: list[CandidateView]
    loading: bool
    error: str | None = None
    error_message: str | None = None
    has_more: bool
    offset: int


class ImpactResponse(BaseModel):
    quality: float
    popularity: float
    tier: str
    is_top_tier: bool
