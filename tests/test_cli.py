from __future__ import annotations

import json

import pytest

import cli
from connectors import RateLimitError
from models import Candidate, DeveloperProfile, Provenance
from pipeline import SearchOrchestrator


@pytest.fixture
def orchestrator(monkeypatch, make_record, fake_registry, fake_profiles):
    page = [
        make_record("use-thing", username="alice", quality=0.95, popularity=0.4,
                    repository="git+https://github.com/alice/use-thing.git"),
        make_record("other", username="bob"),
    ]
    orch = SearchOrchestrator({"npm": fake_registry([page])}, fake_profiles())
    monkeypatch.setattr(cli, "build_orchestrator", lambda cache_dir: orch)
    return orch


def test_format_candidate_shows_tier_and_profile(make_record) -> None:
    candidate = Candidate(
        record=make_record("use-thing", username="alice", quality=0.95, popularity=0.4,
                           repository="https://github.com/alice/use-thing"),
        profile=DeveloperProfile(login="alice", location="Berlin", followers=12, public_repos=4),
        provenance=Provenance.NPM,
    )

    text = cli.format_candidate(1, candidate)

    assert "alice" in text
    assert "Senior Architect *" in text
    assert "Berlin | 12 followers | 4 repos | https://github.com/alice" in text


def test_search_prints_candidates(orchestrator, capsys) -> None:
    assert cli.main(["search", "react"]) == 0

    out = capsys.readouterr().out
    assert "2 candidates for 'react' (npm)" in out
    assert "use-thing" in out
    assert "other" in out


def test_search_json_output(orchestrator, capsys) -> None:
    assert cli.main(["search", "react", "--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert [c["record"]["name"] for c in payload] == ["use-thing", "other"]
    assert payload[0]["profile"]["location"] == "Berlin"


def test_rate_limit_is_reported_on_stderr(monkeypatch, fake_registry, fake_profiles, capsys) -> None:
    registry = fake_registry(errors={0: RateLimitError("slow down", status=429)})
    orch = SearchOrchestrator({"npm": registry}, fake_profiles())
    monkeypatch.setattr(cli, "build_orchestrator", lambda cache_dir: orch)

    assert cli.main(["search", "react"]) == 1
    assert "API rate limit reached" in capsys.readouterr().err


def test_pages_must_be_positive(orchestrator) -> None:
    with pytest.raises(SystemExit):
        cli.main(["search", "react", "--pages", "0"])


def test_unknown_sort_is_rejected(orchestrator) -> None:
    with pytest.raises(SystemExit):
        cli.main(["search", "react", "--sort", "random"])
