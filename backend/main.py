import logging
import os
import re
import secrets
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from cache import FileStore, ProfileCache
from connectors import GitHubProfileClient, GitHubRepositorySearch, NpmRegistryClient
from connectors.github_connector import env_token
from impact import candidate_impact, classify, developer_links
from models import (
    Candidate,
    CandidateView,
    ImpactResponse,
    Provenance,
    SearchRequest,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionState,
)
from pipeline import SearchOrchestrator
from session import ERROR_MESSAGES

logger = logging.getLogger("packagescout")
logger.setLevel(logging.INFO)

MAX_SESSIONS = int(os.environ.get("MAX_SESSIONS", "1000"))
SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------

@dataclass
class SessionHandle:
    orchestrator: SearchOrchestrator
    github_token: str = ""


class SessionStore:
    """In-memory search sessions sharing one profile cache.

    Oldest sessions are evicted past *max_sessions*.
    """

    def __init__(self, profile_cache: ProfileCache, max_sessions: int = MAX_SESSIONS,
                 npm_transport=None, github_transport=None):
        self.profile_cache = profile_cache
        self.max_sessions = max_sessions
        self.npm_transport = npm_transport
        self.github_transport = github_transport
        self._sessions: OrderedDict[str, SessionHandle] = OrderedDict()

    def create(self, github_token: str = "") -> str:
        session_id = secrets.token_urlsafe(16)

        def token_provider():
            # Session sign-in token first, then the server-wide token
            return github_token or env_token()

        orchestrator = SearchOrchestrator(
            registries={
                Provenance.NPM: NpmRegistryClient(transport=self.npm_transport),
                Provenance.PYPI: GitHubRepositorySearch(
                    Provenance.PYPI, token_provider, transport=self.github_transport,
                ),
                Provenance.GITHUB: GitHubRepositorySearch(
                    Provenance.GITHUB, token_provider, transport=self.github_transport,
                ),
            },
            profiles=GitHubProfileClient(self.profile_cache, token_provider, transport=self.github_transport),
        )
        self._sessions[session_id] = SessionHandle(orchestrator, github_token)
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("session EVICTED id=%s", evicted)
        return session_id

    def get(self, session_id: str) -> SessionHandle:
        handle = self._sessions[session_id]
        self._sessions.move_to_end(session_id)
        return handle

    def delete(self, session_id: str) -> None:
        handle = self._sessions.pop(session_id)
        handle.orchestrator.reset()

    def __len__(self) -> int:
        return len(self._sessions)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The profile cache lives for the whole process
    app.state.sessions = SessionStore(ProfileCache(FileStore()))
    uvicorn_logger = logging.getLogger("uvicorn")
    for h in uvicorn_logger.handlers:
        logger.addHandler(h)
    logger.info("PackageScout ready: authenticated GitHub calls=%s", bool(env_token()))
    yield


# Disable docs in production
docs_url = "/docs" if os.environ.get("ENV") == "dev" else None
redoc_url = "/redoc" if os.environ.get("ENV") == "dev" else None

app = FastAPI(
    title="PackageScout API", version="0.1.0",
    docs_url=docs_url, redoc_url=redoc_url, lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _candidate_view(candidate: Candidate) -> CandidateView:
    record = candidate.record
    links = developer_links(record)
    tier = candidate_impact(candidate)
    return CandidateView(
        name=record.name,
        username=candidate.publisher_username or "",
        provenance=candidate.provenance,
        description=record.description,
        score=record.score.final,
        quality=record.score.detail.quality,
        popularity=record.score.detail.popularity,
        maintenance=record.score.detail.maintenance,
        impact_tier=tier.tier,
        top_talent=tier.is_top_tier,
        github_username=links.github_username,
        github_url=links.github_url,
        avatar_url=(candidate.profile and candidate.profile.avatar_url) or links.avatar_url,
        repository=links.repository_url,
        homepage=record.links.homepage,
        npm_link=record.links.npm,
        profile=candidate.profile,
    )


def _state(session_id: str, orchestrator: SearchOrchestrator) -> SessionState:
    session = orchestrator.session
    return SessionState(
        session_id=session_id,
        query=session.query,
        registry=session.registry.value,
        results=[_candidate_view(c) for c in session.results],
        loading=session.loading,
        error=session.error,
        error_message=ERROR_MESSAGES.get(session.error) if session.error else None,
        has_more=session.has_more,
        offset=session.offset,
    )


def _get_handle_or_404(session_id: str, sessions: SessionStore) -> SessionHandle:
    if not SESSION_ID_RE.match(session_id):
        raise HTTPException(status_code=400, detail="Invalid session id")
    try:
        return sessions.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown session")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/sessions", response_model=SessionCreateResponse)
def create_session(req: SessionCreateRequest | None = None, sessions: SessionStore = Depends(get_sessions)):
    token = req.github_token if req else ""
    session_id = sessions.create(token)
    logger.info("session CREATED id=%s authenticated=%s", session_id, bool(token))
    return SessionCreateResponse(session_id=session_id)


@app.get("/api/sessions/{session_id}", response_model=SessionState)
def get_session(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    handle = _get_handle_or_404(session_id, sessions)
    return _state(session_id, handle.orchestrator)


@app.delete("/api/sessions/{session_id}")
def delete_session(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    _get_handle_or_404(session_id, sessions)
    sessions.delete(session_id)
    return {"deleted": session_id}


@app.post("/api/sessions/{session_id}/search", response_model=SessionState)
async def search(session_id: str, req: SearchRequest, sessions: SessionStore = Depends(get_sessions)):
    handle = _get_handle_or_404(session_id, sessions)
    logger.info("search id=%s registry=%s sort=%s query=%r", session_id, req.registry, req.sort.value, req.query)
    await handle.orchestrator.search(req.query, req.registry, req.sort)
    return _state(session_id, handle.orchestrator)


@app.post("/api/sessions/{session_id}/more", response_model=SessionState)
async def load_more(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    handle = _get_handle_or_404(session_id, sessions)
    await handle.orchestrator.load_more()
    return _state(session_id, handle.orchestrator)


@app.get("/api/impact", response_model=ImpactResponse)
def impact(
    quality: float = Query(..., ge=0, le=1),
    popularity: float = Query(..., ge=0, le=1),
):
    """Impact tier for a quality/popularity pair."""
    tier = classify(quality, popularity)
    return ImpactResponse(quality=quality, popularity=popularity, tier=tier.tier, is_top_tier=tier.is_top_tier)
