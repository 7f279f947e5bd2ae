"""
REST API for the DinkDrop matchmaking core.
Thin wrappers around DinkDropCore; domain errors map to HTTP status codes.
"""
from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from dinkdrop.auth import decode_token
from dinkdrop.config import Config
from dinkdrop.errors import InvalidStateError, NotFoundError, PreconditionError
from dinkdrop.logger import setup_logger
from dinkdrop.models import MatchResult, MatchType, Player
from dinkdrop.persistence import SQLitePlayerStore
from dinkdrop.services.core import DinkDropCore

logger = setup_logger(__name__)

# ---------- Core instance ----------
_core: DinkDropCore | None = None


def set_core(core: DinkDropCore | None) -> None:
    """Install the core used by all endpoints. Tests pass an in-memory core."""
    global _core
    _core = core


def get_core() -> DinkDropCore:
    """Return the installed core, building one from the environment on first use."""
    global _core
    if _core is None:
        config = Config.from_env()
        _core = DinkDropCore(SQLitePlayerStore(config.db_path), config=config)
        logger.info("DinkDrop core started with database %s", config.db_path)
    return _core


@contextmanager
def domain_errors() -> Generator[None, None, None]:
    """Translate core failures into HTTP errors."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PreconditionError as e:
        raise HTTPException(status_code=401, detail=str(e))


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    get_core()
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="DinkDrop API",
    description="Pickleball matchmaking, ratings and progression",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer(auto_error=False)


# ---------- Request models ----------


class CreatePlayerRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=100)
    rating: int = Field(1000, ge=0)
    location: str | None = None


class JoinQueueRequest(BaseModel):
    match_type: MatchType
    player_id: str | None = Field(None, description="Override; default from JWT")


class PlayerRef(BaseModel):
    player_id: str | None = Field(None, description="Override; default from JWT")


class RespondRequest(BaseModel):
    accept: bool
    player_id: str | None = Field(None, description="Override; default from JWT")


class ScoreRequest(BaseModel):
    score_a: int = Field(..., ge=0)
    score_b: int = Field(..., ge=0)


class SettleRequest(BaseModel):
    player_id: str | None = Field(None, description="Override; default from JWT")
    is_win: bool | None = Field(None, description="Omit to derive the result from the recorded score")
    points_scored: int | None = Field(None, ge=0)
    points_conceded: int | None = Field(None, ge=0)
    rating_delta: int | None = None


def _get_current_player_id(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> str | None:
    """Player id from the bearer JWT, or None if no/invalid token."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials, get_core().config.jwt_secret_key)


def _require_player(token_id: str | None, explicit_id: str | None) -> str:
    pid = token_id or explicit_id
    if not pid:
        raise HTTPException(status_code=401, detail="Login or player_id required")
    return pid


# ---------- Endpoints ----------


@app.post("/players")
def create_player(req: CreatePlayerRequest) -> dict[str, Any]:
    """Register a player record in the store. The core itself never creates players."""
    core = get_core()
    if core.store.get(req.id) is not None:
        raise HTTPException(status_code=409, detail=f"Player already exists: {req.id}")
    player = Player(id=req.id, display_name=req.display_name, rating=req.rating, location=req.location)
    core.store.save(player)
    return player.to_dict()


@app.get("/players/{player_id}")
def get_player(player_id: str) -> dict[str, Any]:
    with domain_errors():
        player = get_core().get_player(player_id)
    d = player.to_dict()
    d["level"] = get_core().calculate_level(player.experience)
    return d


@app.get("/players/{player_id}/stats")
def get_player_stats(player_id: str) -> dict[str, Any]:
    with domain_errors():
        return get_core().player_stats(player_id)


@app.get("/players/{player_id}/prediction")
def get_prediction(player_id: str, opponent_id: str = Query(...)) -> dict[str, Any]:
    with domain_errors():
        return get_core().predict(player_id, opponent_id)


@app.get("/players/{player_id}/matches")
def get_match_history(player_id: str, limit: int = Query(20, ge=1, le=100)) -> dict[str, Any]:
    with domain_errors():
        matches = get_core().match_history(player_id, limit)
    return {"player_id": player_id, "matches": [m.to_dict() for m in matches]}


@app.post("/queue/join")
def join_queue(
    req: JoinQueueRequest,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    pid = _require_player(player_id_from_token, req.player_id)
    with domain_errors():
        outcome = get_core().join_queue(pid, req.match_type)
    return outcome.to_dict()


@app.post("/queue/leave")
def leave_queue(
    req: PlayerRef,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    pid = _require_player(player_id_from_token, req.player_id)
    return {"player_id": pid, "left": get_core().leave_queue(pid)}


@app.get("/queue/status")
def queue_status(
    player_id: str | None = None,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    pid = _require_player(player_id_from_token, player_id)
    core = get_core()
    status = core.queue_status(pid)
    if status is None:
        return {"player_id": pid, "queued": False}
    out = status.to_dict()
    out["queued"] = True
    proposal = core.queue.proposal_for(pid)
    out["proposal"] = proposal.to_dict() if proposal else None
    return out


@app.post("/proposals/{proposal_id}/respond")
def respond_to_proposal(
    proposal_id: str,
    req: RespondRequest,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    pid = _require_player(player_id_from_token, req.player_id)
    with domain_errors():
        outcome = get_core().respond_to_proposal(proposal_id, pid, req.accept)
    return outcome.to_dict()


@app.get("/matches/{match_id}")
def get_match(match_id: str) -> dict[str, Any]:
    with domain_errors():
        return get_core().get_match(match_id).to_dict()


@app.post("/matches/{match_id}/score")
def record_score(match_id: str, req: ScoreRequest) -> dict[str, Any]:
    with domain_errors():
        match = get_core().record_score(match_id, req.score_a, req.score_b)
    return match.to_dict()


@app.post("/matches/{match_id}/settle")
def settle_match(
    match_id: str,
    req: SettleRequest,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    """Settle from the current player's side. Result fields default to the recorded score."""
    pid = _require_player(player_id_from_token, req.player_id)
    core = get_core()
    with domain_errors():
        result = None
        if req.is_win is not None:
            match = core.get_match(match_id)
            known = match.is_scored and match.has_player(pid)
            scored, conceded = match.scores_for(pid) if known else (0, 0)
            result = MatchResult(
                is_win=req.is_win,
                points_scored=req.points_scored if req.points_scored is not None else scored,
                points_conceded=req.points_conceded if req.points_conceded is not None else conceded,
                rating_delta=req.rating_delta,
            )
        outcome = core.settle_match(match_id, result, pid)
    return outcome.to_dict()


@app.get("/progression/level")
def progression_level(xp: int = Query(..., ge=0)) -> dict[str, Any]:
    core = get_core()
    return {"xp": xp, "level": core.calculate_level(xp)}


@app.get("/progression/progress")
def progression_progress(xp: int = Query(..., ge=0)) -> dict[str, Any]:
    core = get_core()
    out: dict[str, Any] = {"xp": xp, "level": core.calculate_level(xp)}
    out.update(core.xp_progress(xp).to_dict())
    return out


@app.get("/notifications")
def get_notifications(
    player_id: str | None = None,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    pid = _require_player(player_id_from_token, player_id)
    with domain_errors():
        items = get_core().notifications(pid)
    return {"player_id": pid, "notifications": [n.to_dict() for n in items]}


@app.get("/challenges")
def get_challenges(
    player_id: str | None = None,
    player_id_from_token: str | None = Depends(_get_current_player_id),
) -> dict[str, Any]:
    pid = _require_player(player_id_from_token, player_id)
    with domain_errors():
        items = get_core().challenges(pid)
    return {"player_id": pid, "challenges": [c.to_dict() for c in items]}
