"""Impact tiers and developer links derived from a registry record.

Tier rules (strict comparisons on the registry's score detail):

  Engineer          default
  Senior Engineer   quality > 0.8  and popularity > 0.1
  Senior Architect  quality > 0.9  and popularity > 0.3   (top tier)

The architect check runs after the senior check, so a record clearing both
bars lands on the higher tier.
"""

import re
from typing import NamedTuple
from urllib.parse import quote_plus

from models import Candidate, PackageRecord

TIER_ENGINEER = "Engineer"
TIER_SENIOR_ENGINEER = "Senior Engineer"
TIER_SENIOR_ARCHITECT = "Senior Architect"

SENIOR_QUALITY_THRESHOLD = 0.8
SENIOR_POPULARITY_THRESHOLD = 0.1
ARCHITECT_QUALITY_THRESHOLD = 0.9
ARCHITECT_POPULARITY_THRESHOLD = 0.3

GITHUB_OWNER_RE = re.compile(r"github\.com[:/]([^/]+)")
AVATAR_FALLBACK_URL = "https://ui-avatars.com/api/?name={name}&background=random&color=fff"


class ImpactTier(NamedTuple):
    tier: str
    is_top_tier: bool


def classify(quality: float, popularity: float) -> ImpactTier:
    """Map a (quality, popularity) pair in [0, 1] to an impact tier."""
    tier = ImpactTier(TIER_ENGINEER, False)
    if quality > SENIOR_QUALITY_THRESHOLD and popularity > SENIOR_POPULARITY_THRESHOLD:
        tier = ImpactTier(TIER_SENIOR_ENGINEER, False)
    if quality > ARCHITECT_QUALITY_THRESHOLD and popularity > ARCHITECT_POPULARITY_THRESHOLD:
        tier = ImpactTier(TIER_SENIOR_ARCHITECT, True)
    return tier


def candidate_impact(candidate: Candidate) -> ImpactTier:
    """Impact tier from the candidate's registry score detail."""
    detail = candidate.record.score.detail
    return classify(detail.quality, detail.popularity)


def github_username_from_url(url: str | None) -> str | None:
    """Owner segment of a github.com URL (https, git+https, ssh forms)."""
    if not url:
        return None
    match = GITHUB_OWNER_RE.search(url)
    if not match:
        return None
    return match.group(1) or None


def clean_repository_url(url: str | None) -> str | None:
    if not url:
        return None
    url = re.sub(r"^git\+", "", url)
    url = re.sub(r"^git://", "https://", url)
    return re.sub(r"\.git$", "", url)


def enrichment_login(record: PackageRecord) -> str | None:
    """GitHub login to enrich a record with: repo owner first, else the publisher."""
    return github_username_from_url(record.links.repository) or record.publisher_username


class DeveloperLinks(NamedTuple):
    github_username: str | None
    github_url: str | None
    avatar_url: str
    repository_url: str | None
    has_verified_github: bool


def developer_links(record: PackageRecord) -> DeveloperLinks:
    """Profile, avatar and repository links shown alongside a candidate."""
    repository = record.links.repository
    github_username = github_username_from_url(repository)

    if github_username:
        avatar_url = f"https://github.com/{github_username}.png"
        github_url = f"https://github.com/{github_username}"
    else:
        display = record.publisher_username or (record.author.name if record.author else "") or "User"
        avatar_url = AVATAR_FALLBACK_URL.format(name=quote_plus(display))
        github_url = clean_repository_url(repository)

    return DeveloperLinks(
        github_username=github_username,
        github_url=github_url,
        avatar_url=avatar_url,
        repository_url=clean_repository_url(repository),
        has_verified_github=bool(repository and "github.com" in repository),
    )
