"""Candidate pool filters: organization/bot detection and per-session dedup."""

import json
import logging
import os
from typing import Iterable

from models import PackageRecord

logger = logging.getLogger("packagescout")

ORG_DENYLIST_PATH = os.environ.get("ORG_DENYLIST_PATH", "")

# Vendor and organization accounts that publish packages but aren't hireable people.
# Replaceable via ORG_DENYLIST_PATH (a JSON list of usernames).
DEFAULT_ORGANIZATION_ACCOUNTS = frozenset({
    "facebook", "google", "microsoft", "angular", "react", "vue", "npm", "vercel", "nextjs", "aws", "amazon",
    "salesforce", "adobe", "netflix", "uber", "airbnb", "shopify", "twitter", "linkedin", "dropbox",
    "atlassian", "slack", "square", "stripe", "twilio", "auth0", "heroku", "netlify", "cloudflare",
    "types", "definitelytyped", "ionic", "expo", "firebase", "sentry", "algolia", "datadog", "newrelic",
})

# Substrings that mark a username as a bot or shared account.
ORGANIZATION_MARKERS = ("bot", "team", "official")


def load_organization_accounts(path: str = ORG_DENYLIST_PATH) -> frozenset[str]:
    """Load the organization table from a JSON list, falling back to the built-in one."""
    if not path or not os.path.exists(path):
        return DEFAULT_ORGANIZATION_ACCOUNTS
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        logger.warning("filters DENYLIST_UNREADABLE path=%s", path)
        return DEFAULT_ORGANIZATION_ACCOUNTS
    if not isinstance(data, list):
        logger.warning("filters DENYLIST_NOT_A_LIST path=%s", path)
        return DEFAULT_ORGANIZATION_ACCOUNTS
    return frozenset(str(item).strip().lower() for item in data if str(item).strip())


ORGANIZATION_ACCOUNTS = load_organization_accounts()


def is_organization(record: PackageRecord, accounts: Iterable[str] = ORGANIZATION_ACCOUNTS) -> bool:
    """True when the publisher looks like an organization, vendor or bot.

    Records without a publisher are not organizations; the deduplicator
    drops them separately.
    """
    username = (record.publisher_username or "").lower()
    if not username:
        return False

    if username in accounts:
        return True
    if any(marker in username for marker in ORGANIZATION_MARKERS):
        return True
    # Scoped to its own publisher, e.g. @acme/widgets by acme
    if record.name.lower().startswith(f"@{username}/"):
        return True
    return False


def deduplicate(
    records: Iterable[PackageRecord],
    seen: set[str],
    accounts: Iterable[str] = ORGANIZATION_ACCOUNTS,
) -> list[PackageRecord]:
    """Admit at most one record per publisher, in input order.

    *seen* is updated in place as records are admitted, so duplicates within
    the same batch are dropped as well as ones from earlier pages.
    """
    admitted = []
    for record in records:
        username = record.publisher_username
        if not username or username in seen:
            continue
        if is_organization(record, accounts):
            continue
        seen.add(username)
        admitted.append(record)
    return admitted
