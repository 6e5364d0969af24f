#!/usr/bin/env python3
"""
PackageScout command line

Run a one-off candidate search:

    packagescout search "react, typescript" --pages 2

Or serve the HTTP API:

    packagescout serve --port 8000
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from cache import CACHE_DIR, FileStore, ProfileCache
from connectors import GitHubProfileClient, GitHubRepositorySearch, NpmRegistryClient
from connectors.github_connector import env_token
from impact import candidate_impact, developer_links
from models import Provenance, RankingMode
from pipeline import SearchOrchestrator
from session import ERROR_MESSAGES, RATE_LIMIT

SORT_CHOICES = [m.value for m in RankingMode] + ["freshness"]


def build_orchestrator(cache_dir: str = CACHE_DIR) -> SearchOrchestrator:
    profiles = GitHubProfileClient(ProfileCache(FileStore(cache_dir)), env_token)
    return SearchOrchestrator(
        registries={
            Provenance.NPM: NpmRegistryClient(),
            Provenance.PYPI: GitHubRepositorySearch(Provenance.PYPI, env_token),
            Provenance.GITHUB: GitHubRepositorySearch(Provenance.GITHUB, env_token),
        },
        profiles=profiles,
    )


def format_candidate(position: int, candidate) -> str:
    record = candidate.record
    tier = candidate_impact(candidate)
    links = developer_links(record)
    star = " *" if tier.is_top_tier else ""
    line = f"{position:3d}. {candidate.publisher_username:<24} {record.name:<32} {tier.tier}{star}"
    details = []
    profile = candidate.profile
    if profile is not None:
        if profile.location:
            details.append(profile.location)
        if profile.followers is not None:
            details.append(f"{profile.followers} followers")
        if profile.public_repos is not None:
            details.append(f"{profile.public_repos} repos")
    if links.github_url:
        details.append(links.github_url)
    if details:
        line += "\n     " + " | ".join(details)
    return line


async def run_search(args) -> int:
    orchestrator = build_orchestrator(args.cache_dir)
    await orchestrator.search(args.query, args.registry, args.sort)
    for _ in range(args.pages - 1):
        if not orchestrator.has_more or orchestrator.error:
            break
        await orchestrator.load_more()

    results = orchestrator.results
    if args.json:
        print(json.dumps([c.model_dump(mode="json") for c in results], indent=2))
    else:
        print(f"{len(results)} candidates for '{args.query}' ({args.registry})\n")
        for i, candidate in enumerate(results, start=1):
            print(format_candidate(i, candidate))

    if orchestrator.error:
        print(f"\n{ERROR_MESSAGES.get(orchestrator.error, orchestrator.error)}", file=sys.stderr)
        if orchestrator.error == RATE_LIMIT and not env_token():
            print("Set GITHUB_TOKEN to raise the GitHub rate limit.", file=sys.stderr)
        return 0 if results else 1
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="packagescout",
        description="Find developers through the packages they publish",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  packagescout search "react, typescript"
  packagescout search fastapi --registry pypi --pages 3
  packagescout search "state machine" --sort quality --json
  packagescout serve --port 8000
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log upstream calls")
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Run a candidate search and print the results")
    search.add_argument("query", help="Comma-separated skills, e.g. 'react, redux'")
    search.add_argument("--registry", choices=[p.value for p in Provenance], default="npm")
    search.add_argument("--sort", choices=SORT_CHOICES, default="optimal")
    search.add_argument("--pages", type=int, default=1, help="Pages of 50 to fetch (default: 1)")
    search.add_argument("--json", action="store_true", help="Print candidates as JSON")
    search.add_argument("--cache-dir", default=CACHE_DIR, help=f"Profile cache directory (default: {CACHE_DIR})")

    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if args.command == "serve":
        os.environ.setdefault("ENV", "dev")
        print(f"\nStarting PackageScout on http://localhost:{args.port}")
        if not env_token():
            print("Note: GITHUB_TOKEN not set - profile enrichment uses the unauthenticated rate limit.\n")
        import uvicorn
        uvicorn.run("main:app", host=args.host, port=args.port, reload=False)
        return 0

    if args.pages < 1:
        parser.error("--pages must be at least 1")
    return asyncio.run(run_search(args))


if __name__ == "__main__":
    sys.exit(main())
