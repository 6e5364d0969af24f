"""Connectors for external registry and profile APIs."""

from .errors import ConnectorError, RateLimitError, RegistryError
from .github_connector import GitHubProfileClient, GitHubRepositorySearch
from .npm_registry import NpmRegistryClient, build_query, weighting_for

__all__ = [
    "ConnectorError", "RateLimitError", "RegistryError",
    "GitHubProfileClient", "GitHubRepositorySearch",
    "NpmRegistryClient", "build_query", "weighting_for",
]
