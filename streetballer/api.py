"""
REST API for the StreetBaller backend.
Thin wrappers around the services and persistence.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Generator, Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from streetballer.auth import create_access_token, decode_token, hash_password, verify_password
from streetballer.config import configure_logging, settings
from streetballer.constants import DEFAULT_EVENT_PAGE, DEFAULT_HISTORY_PAGE, MAX_EVENT_MINUTE, MAX_PAGE_SIZE
from streetballer.models import Match, TeamRole
from streetballer.persistence import (
    PlayerProfileRepository,
    TeamRepository,
    UserRepository,
    get_connection,
    init_db,
    transaction,
)
from streetballer.services import (
    DisputeResolver,
    EligibilityError,
    ErrorCategory,
    MatchEventLog,
    MatchService,
    PlayerNotEligibleError,
    PlayerNotFoundError,
    StreetBallerError,
    SubmittedEvent,
    TeamNotFoundError,
    TrustLedger,
    ValidationError,
)

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator[sqlite3.Connection, None, None]:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    init_db()
    logger.info("StreetBaller API started (db=%s)", settings.database_path)
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="StreetBaller API",
    description="Backend for street football matches, peer-verified scores and trust points",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error mapping ----------

_STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.STATE_CONFLICT: 409,
    ErrorCategory.ELIGIBILITY: 403,
    ErrorCategory.AUXILIARY: 500,
}


@app.exception_handler(StreetBallerError)
async def streetballer_error_handler(request: Request, exc: StreetBallerError) -> JSONResponse:
    status_code = _STATUS_BY_CATEGORY.get(exc.category, 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


_KIND_BY_HTTP_STATUS = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = _KIND_BY_HTTP_STATUS.get(exc.status_code, "http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"kind": kind, "message": str(exc.detail)}},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return JSONResponse(status_code=400, content={"error": {"kind": "validation_error", "message": message}})


@app.exception_handler(sqlite3.Error)
async def storage_error_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    logger.exception("Storage error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": {"kind": "storage_error", "message": "The request could not be completed"}},
    )


# ---------- Request/Response models ----------

security = HTTPBearer(auto_error=False)


class _RequestModel(BaseModel):
    """Accepts both snake_case and camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(_RequestModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    display_name: str | None = Field(None, max_length=100)


class LoginRequest(_RequestModel):
    username: str
    password: str


class ProfileRequest(_RequestModel):
    display_name: str = Field(..., min_length=1, max_length=100)


class CreateTeamRequest(_RequestModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)


class AddMemberRequest(_RequestModel):
    user_id: str
    role: str = Field(default=TeamRole.PLAYER.value, description="captain or player")


class CreateMatchRequest(_RequestModel):
    team1_id: str
    team2_id: str
    pitch_id: str = Field(..., min_length=1)
    match_date: str = Field(..., description="ISO-8601 date-time")
    format: str = Field(..., description="5v5, 7v7 or 11v11")


class AddParticipantRequest(_RequestModel):
    player_id: str
    team_id: str


class ScoreEventRequest(_RequestModel):
    scorer_id: str
    assister_id: str | None = None
    minute: int = Field(..., ge=0, le=MAX_EVENT_MINUTE)
    team_id: str
    event_type: Literal["goal", "ownGoal", "yellowCard", "redCard"] = "goal"


class SubmitScoreRequest(_RequestModel):
    # Range checked by MatchService so a bad score is reported as invalid_score
    team1_score: int
    team2_score: int
    events: list[ScoreEventRequest] = Field(default_factory=list)


class DecisionRequest(_RequestModel):
    approved: bool
    reason: str | None = Field(None, max_length=1000)


class VoteRequest(_RequestModel):
    player_id: str
    vote_for_team_id: str


class RecordEventRequest(_RequestModel):
    match_id: str
    player_id: str
    event_type: str
    minute: int
    second: int = 0
    team_id: str | None = None
    related_player_id: str | None = None
    description: str | None = Field(None, max_length=500)


def _get_current_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> str | None:
    """Return user_id from JWT or None if no/invalid token."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def _require_user_id(user_id: str | None = Depends(_get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Login required")
    return user_id


def _match_service() -> MatchService:
    return MatchService()


def _captain_team_for(conn: sqlite3.Connection, match: Match, user_id: str) -> str:
    """The match team the user captains; decisions are made on its behalf."""
    team_repo = TeamRepository()
    for team_id in (match.team1_id, match.team2_id):
        membership = team_repo.get_membership(conn, team_id, user_id)
        if membership is not None and membership.role == TeamRole.CAPTAIN.value:
            return team_id
    raise EligibilityError(f"Only a captain of one of the teams in match {match.id} can decide on its score")


# ---------- Accounts ----------


@app.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create account and player profile. Passwords hashed, never stored plain."""
    with db_conn() as conn:
        user_repo = UserRepository()
        with transaction(conn):
            if user_repo.get_by_username(conn, req.username):
                raise ValidationError("Username already taken")
            user = user_repo.create_with_password(
                conn, req.username, hash_password(req.password), name=req.display_name or req.username
            )
            PlayerProfileRepository().create(conn, user.id, req.display_name or req.username)
        logger.info("User signed up: %s (%s)", user.id, user.username)
        token = create_access_token(user.id)
        return {"user_id": user.id, "username": user.username, "token": token}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    """Returns JWT token."""
    with db_conn() as conn:
        user = UserRepository().get_by_username(conn, req.username)
        if user is None or not verify_password(req.password, user.password_hash or ""):
            raise HTTPException(status_code=401, detail="Invalid username or password")
        token = create_access_token(user.id)
        return {"user_id": user.id, "username": user.username, "token": token}


@app.get("/me")
def get_me(user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        user = UserRepository().get(conn, user_id)
        if user is None:
            raise PlayerNotFoundError(user_id)
        profile = PlayerProfileRepository().get(conn, user_id)
        return {"user": user.to_dict(), "profile": profile.to_dict() if profile else None}


@app.post("/players/profile")
def upsert_profile(req: ProfileRequest, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    """Create the caller's player profile, or rename it."""
    with db_conn() as conn:
        profile_repo = PlayerProfileRepository()
        with transaction(conn):
            if UserRepository().get(conn, user_id) is None:
                raise PlayerNotFoundError(user_id)
            if profile_repo.get(conn, user_id) is None:
                profile_repo.create(conn, user_id, req.display_name)
            else:
                profile_repo.update_display_name(conn, user_id, req.display_name)
        profile = profile_repo.get(conn, user_id)
        return {"profile": profile.to_dict()}


# ---------- Teams ----------


@app.post("/teams")
def create_team(req: CreateTeamRequest, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    """Create a team; the creator becomes its captain."""
    with db_conn() as conn:
        team_repo = TeamRepository()
        with transaction(conn):
            team = team_repo.create(conn, req.name, created_by=user_id, description=req.description)
            team_repo.add_member(conn, team.id, user_id, TeamRole.CAPTAIN.value)
        logger.info("Team created: %s (%s) by %s", team.id, team.name, user_id)
        return {"team": team.to_dict()}


@app.get("/teams/{team_id}")
def get_team(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        team_repo = TeamRepository()
        team = team_repo.get(conn, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        members = team_repo.list_members(conn, team_id)
        return {"team": team.to_dict(), "members": [m.to_dict() for m in members]}


def _require_captain(conn: sqlite3.Connection, team_id: str, user_id: str) -> None:
    team_repo = TeamRepository()
    if team_repo.get(conn, team_id) is None:
        raise TeamNotFoundError(team_id)
    membership = team_repo.get_membership(conn, team_id, user_id)
    if membership is None or membership.role != TeamRole.CAPTAIN.value:
        raise EligibilityError(f"Only a captain of team {team_id} can change its roster")


@app.post("/teams/{team_id}/members")
def add_team_member(
    team_id: str, req: AddMemberRequest, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    try:
        role = TeamRole(req.role)
    except ValueError:
        raise ValidationError(f"role must be 'captain' or 'player', got {req.role!r}") from None
    with db_conn() as conn:
        with transaction(conn):
            _require_captain(conn, team_id, user_id)
            if UserRepository().get(conn, req.user_id) is None:
                raise PlayerNotFoundError(req.user_id)
            membership = TeamRepository().add_member(conn, team_id, req.user_id, role.value)
        return {"membership": membership.to_dict()}


@app.delete("/teams/{team_id}/members/{member_id}")
def remove_team_member(team_id: str, member_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        with transaction(conn):
            _require_captain(conn, team_id, user_id)
            removed = TeamRepository().remove_member(conn, team_id, member_id)
        return {"team_id": team_id, "user_id": member_id, "removed": removed}


# ---------- Matches ----------


@app.post("/matches")
def create_match(req: CreateMatchRequest, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        match = _match_service().create_match(
            conn, req.team1_id, req.team2_id, req.pitch_id, req.match_date, req.format, created_by=user_id
        )
        return {"match": match.to_dict()}


@app.get("/matches/upcoming")
def list_upcoming_matches() -> dict[str, Any]:
    with db_conn() as conn:
        return {"matches": [m.to_dict() for m in _match_service().list_upcoming(conn)]}


@app.get("/matches/team/{team_id}")
def list_team_matches(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"matches": [m.to_dict() for m in _match_service().list_team_matches(conn, team_id)]}


@app.get("/matches/{match_id}")
def get_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        svc = _match_service()
        match = svc.get_match(conn, match_id)
        open_dispute = svc.resolver.get_open_dispute_for_match(conn, match_id)
        return {
            "match": match.to_dict(),
            "participants": [p.to_dict() for p in svc.list_participants(conn, match_id)],
            "open_dispute": open_dispute.to_dict() if open_dispute else None,
            "disputes": [d.to_dict() for d in svc.resolver.list_match_disputes(conn, match_id)],
        }


@app.post("/matches/{match_id}/start")
def start_match(match_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"match": _match_service().start_match(conn, match_id).to_dict()}


@app.post("/matches/{match_id}/participants")
def add_participant(
    match_id: str, req: AddParticipantRequest, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        participation = _match_service().add_participant(conn, match_id, req.player_id, req.team_id)
        return {"participation": participation.to_dict()}


@app.get("/matches/{match_id}/participants")
def list_participants(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"participants": [p.to_dict() for p in _match_service().list_participants(conn, match_id)]}


@app.post("/matches/{match_id}/score")
def submit_score(
    match_id: str, req: SubmitScoreRequest, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    events = [
        SubmittedEvent(
            scorer_id=e.scorer_id,
            minute=e.minute,
            team_id=e.team_id,
            event_type=e.event_type,
            assister_id=e.assister_id,
        )
        for e in req.events
    ]
    with db_conn() as conn:
        match = _match_service().submit_score(conn, match_id, req.team1_score, req.team2_score, events=events)
        return {"match": match.to_dict()}


@app.post("/matches/{match_id}/decision")
def decide_score(
    match_id: str, req: DecisionRequest, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    """Captain approves or rejects the pending score. A rejection opens a dispute."""
    with db_conn() as conn:
        svc = _match_service()
        team_id = _captain_team_for(conn, svc.get_match(conn, match_id), user_id)
        result = svc.approve_or_dispute(conn, match_id, team_id, req.approved, reason=req.reason)
        return result.to_dict()


# ---------- Disputes ----------


@app.get("/disputes")
def list_open_disputes() -> dict[str, Any]:
    with db_conn() as conn:
        return {"disputes": [d.to_dict() for d in DisputeResolver().list_open_disputes(conn)]}


@app.get("/disputes/{dispute_id}")
def get_dispute(dispute_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"dispute": DisputeResolver().get_dispute_details(conn, dispute_id)}


@app.post("/disputes/{dispute_id}/vote")
def vote_on_dispute(
    dispute_id: str, req: VoteRequest, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    if req.player_id != user_id:
        raise PlayerNotEligibleError("Votes must be cast by the voting player")
    with db_conn() as conn:
        resolver = DisputeResolver()
        vote = resolver.cast_vote(conn, dispute_id, req.player_id, req.vote_for_team_id)
        dispute = resolver.get_dispute(conn, dispute_id)
        return {
            "vote": vote.to_dict(),
            "dispute": dispute.to_dict(),
            "tally": resolver.get_tally(conn, dispute_id).to_dict(),
        }


# ---------- Match events ----------


@app.post("/match-events")
def record_match_event(req: RecordEventRequest, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        event = MatchEventLog().record_event(
            conn,
            req.match_id,
            req.player_id,
            req.event_type,
            req.minute,
            second=req.second,
            team_id=req.team_id,
            related_player_id=req.related_player_id,
            description=req.description,
        )
        return {"event": event.to_dict()}


@app.get("/match-events/match/{match_id}")
def get_match_events(
    match_id: str,
    limit: int = Query(default=DEFAULT_EVENT_PAGE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    with db_conn() as conn:
        return MatchEventLog().get_match_events(conn, match_id, limit=limit, offset=offset)


@app.get("/match-events/match/{match_id}/stats")
def get_match_event_stats(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return MatchEventLog().get_match_event_stats(conn, match_id)


@app.get("/match-events/player/{player_id}")
def get_player_event_history(
    player_id: str,
    limit: int = Query(default=DEFAULT_HISTORY_PAGE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    with db_conn() as conn:
        return MatchEventLog().get_player_event_history(conn, player_id, limit=limit, offset=offset)


@app.get("/match-events/player/{player_id}/match/{match_id}")
def get_player_match_events(player_id: str, match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        events = MatchEventLog().get_player_match_events(conn, player_id, match_id)
        return {"player_id": player_id, "match_id": match_id, "events": [e.to_dict() for e in events]}


# ---------- Trust ----------


@app.get("/trust/leaderboard")
def get_trust_leaderboard(
    limit: int = Query(default=DEFAULT_HISTORY_PAGE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    with db_conn() as conn:
        return TrustLedger().get_trust_leaderboard(conn, limit=limit, offset=offset)


@app.get("/trust/history/{player_id}")
def get_trust_history(
    player_id: str,
    limit: int = Query(default=DEFAULT_HISTORY_PAGE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    with db_conn() as conn:
        return TrustLedger().get_transaction_history(conn, player_id, limit=limit, offset=offset)


@app.get("/trust/summary/{player_id}")
def get_trust_summary(player_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return TrustLedger().get_trust_summary(conn, player_id)


# ---------- Run with: uvicorn streetballer.api:app --reload ----------
