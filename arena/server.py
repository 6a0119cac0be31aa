"""
arena/server.py - FastAPI command layer for bracketbot.

Endpoints:
    POST   /groups/{group}/tournaments                      Create a tournament
    GET    /groups/{group}/tournaments?status=              List a group's tournaments
    GET    /tournaments/{id}                                Tournament details
    DELETE /tournaments/{id}                                Delete a tournament
    POST   /tournaments/{id}/registration                   Open registration
    POST   /tournaments/{id}/start                          Close registration, build bracket
    POST   /tournaments/{id}/teams                          Register a team (linked captain)
    GET    /tournaments/{id}/teams                          List teams
    GET    /tournaments/{id}/matches?current=               List matches
    POST   /tournaments/{id}/matches/{match_id}/result      Report a final score
    GET    /tournaments/{id}/progress                       Stage / champion summary
    POST   /groups/{group}/players                          Link a Riot ID
    POST   /groups/{group}/players/{user}/verify            Re-verify a linked Riot ID
    GET    /groups/{group}/players/{user}                   Linked profile
    DELETE /groups/{group}/players/{user}                   Unlink
    GET    /health                                          Server health check

Domain errors propagate out of the handlers unchanged and are turned into
JSON responses by one exception handler.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from bracketbot.config import BracketbotConfig, load_config
from bracketbot.errors import (
    AlreadyLinkedError,
    BracketError,
    CapacityExceededError,
    DuplicateNameError,
    IdentityError,
    IncompleteRosterError,
    InvalidScoreError,
    InvalidStateError,
    NotFoundError,
    UnassignedMatchError,
    ValidationError,
)
from bracketbot.identity import IdentityClient, IdentityErrorKind
from bracketbot.models import Match, Team, Tournament, TournamentStatus
from bracketbot.players import PlayerDirectory, PlayerProfile
from bracketbot.progression import (
    TournamentProgress,
    describe_match,
    describe_tournament,
    stage_name,
)
from bracketbot.registry import TournamentRegistry
from bracketbot.storage import SnapshotStore, open_store

logger = logging.getLogger(__name__)


# Global services - set during lifespan
_registry: TournamentRegistry | None = None
_players: PlayerDirectory | None = None


def get_registry() -> TournamentRegistry:
    assert _registry is not None, "Registry not initialized"
    return _registry


def get_players() -> PlayerDirectory:
    assert _players is not None, "Player directory not initialized"
    return _players


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _registry, _players
    config: BracketbotConfig = getattr(app.state, "config", None) or load_config()

    store: SnapshotStore = open_store(config.storage.backend, config.storage.path)
    identity = IdentityClient(
        config.identity.api_key,
        regions=config.identity.regions,
        base_url=config.identity.base_url,
        timeout=config.identity.timeout,
        max_retries=config.identity.max_retries,
        retry_delay=config.identity.retry_delay,
    )

    _registry = TournamentRegistry(store)
    _registry.initialize()
    _players = PlayerDirectory(store, identity)
    _players.initialize()

    _log_startup_config(config)

    yield

    _registry.shutdown()
    identity.close()
    store.close()
    _registry = None
    _players = None


def _log_startup_config(config: BracketbotConfig) -> None:
    """Log configuration on startup so operators can verify it."""
    logger.info("=" * 50)
    logger.info("bracketbot startup config:")
    logger.info(f"  Storage: {config.storage.backend} at {config.storage.path}")
    if config.identity.configured:
        logger.info(f"  Riot API: configured, regions {', '.join(config.identity.regions)}")
    else:
        logger.warning("  Riot API: key NOT configured (RIOT_API_KEY missing)")
        logger.warning("  → Player linking and team registration DISABLED")
    logger.info("=" * 50)


app = FastAPI(title="bracketbot", lifespan=lifespan)

from starlette.middleware.cors import CORSMiddleware

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ======================================================================
# Error mapping
# ======================================================================

_IDENTITY_STATUS = {
    IdentityErrorKind.MALFORMED: 422,
    IdentityErrorKind.NOT_CONFIGURED: 503,
    IdentityErrorKind.NOT_FOUND: 404,
    IdentityErrorKind.RATE_LIMITED: 429,
    IdentityErrorKind.UPSTREAM: 502,
}

_CONFLICTS = (
    InvalidStateError,
    UnassignedMatchError,
    CapacityExceededError,
    DuplicateNameError,
    IncompleteRosterError,
    AlreadyLinkedError,
)


def error_status(exc: BracketError) -> int:
    """HTTP status code for a domain error."""
    if isinstance(exc, IdentityError):
        return _IDENTITY_STATUS.get(exc.kind, 502)
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, _CONFLICTS):
        return 409
    if isinstance(exc, (ValidationError, InvalidScoreError)):
        return 422
    return 400


@app.exception_handler(BracketError)
async def bracket_error_handler(request: Request, exc: BracketError) -> JSONResponse:
    body: dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, InvalidScoreError):
        body["problem"] = exc.problem.value
    if isinstance(exc, IdentityError):
        body["kind"] = exc.kind.value
    return JSONResponse(status_code=error_status(exc), content=body)


# ======================================================================
# Request/Response Models
# ======================================================================


class CreateTournamentRequest(BaseModel):
    name: str
    team_count: int


class RegisterTeamRequest(BaseModel):
    name: str
    captain_id: str
    captain_name: str | None = None  # Defaults to the captain's Riot ID


class ResultRequest(BaseModel):
    home_score: int
    away_score: int


class LinkPlayerRequest(BaseModel):
    user_id: str
    riot_id: str


class TeamResponse(BaseModel):
    id: str
    name: str
    tournament_id: str
    captain_id: str
    captain_name: str
    registered_at: str | None = None


class MatchResponse(BaseModel):
    id: str
    tournament_id: str
    stage: int
    position: int
    stage_name: str
    label: str
    home_team_id: str | None = None
    away_team_id: str | None = None
    winner_id: str | None = None
    home_score: int | None = None
    away_score: int | None = None
    status: str
    next_match_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None


class TournamentResponse(BaseModel):
    id: str
    name: str
    summary: str
    team_count: int
    format: str
    status: str
    group_id: str
    current_stage: int
    total_stages: int
    created_at: str | None = None
    updated_at: str | None = None
    completed_at: str | None = None
    teams: list[TeamResponse] = []
    matches: list[MatchResponse] = []


class ProgressResponse(BaseModel):
    is_completed: bool
    current_stage: int
    total_stages: int
    stage_name: str
    champion: TeamResponse | None = None
    runner_up: TeamResponse | None = None


class ReportResponse(BaseModel):
    match: MatchResponse
    winner: TeamResponse | None = None
    advanced: list[MatchResponse] = []
    progress: ProgressResponse
    saved: bool


class PlayerResponse(BaseModel):
    user_id: str
    riot_id: str
    puuid: str
    region: str
    game_name: str
    tag_line: str
    verified_at: str | None = None
    last_verified: str | None = None


class SuccessResponse(BaseModel):
    success: bool


class HealthResponse(BaseModel):
    status: str
    tournaments: int
    identity_configured: bool


# ======================================================================
# Serialisation
# ======================================================================


def _match_dict(tournament: Tournament, match: Match) -> dict[str, Any]:
    data = match.to_dict()
    data["stage_name"] = stage_name(match.stage, tournament.total_stages)
    data["label"] = describe_match(tournament, match)
    return data


def _team_dict(team: Team | None) -> dict[str, Any] | None:
    return team.to_dict() if team is not None else None


def _tournament_dict(tournament: Tournament) -> dict[str, Any]:
    data = tournament.to_dict()
    data["summary"] = describe_tournament(tournament)
    data["matches"] = [_match_dict(tournament, m) for m in tournament.matches]
    return data


def _progress_dict(progress: TournamentProgress) -> dict[str, Any]:
    return {
        "is_completed": progress.is_completed,
        "current_stage": progress.current_stage,
        "total_stages": progress.total_stages,
        "stage_name": stage_name(progress.current_stage, progress.total_stages),
        "champion": _team_dict(progress.champion),
        "runner_up": _team_dict(progress.runner_up),
    }


def _player_dict(profile: PlayerProfile) -> dict[str, Any]:
    return profile.to_dict()


# ======================================================================
# Tournament Endpoints
# ======================================================================


@app.post("/groups/{group_id}/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(group_id: str, req: CreateTournamentRequest) -> dict[str, Any]:
    tournament = get_registry().create_tournament(req.name, req.team_count, group_id)
    return _tournament_dict(tournament)


@app.get("/groups/{group_id}/tournaments", response_model=list[TournamentResponse])
def list_tournaments(group_id: str, status: str | None = None) -> list[dict[str, Any]]:
    """A group's tournaments. ``status`` is one of draft, registration, active, completed."""
    registry = get_registry()
    if status is None:
        tournaments = registry.list(group_id)
    else:
        try:
            wanted = TournamentStatus(status)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown status: {status!r}")
        tournaments = registry.list(group_id, wanted)
    return [_tournament_dict(t) for t in tournaments]


@app.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: str) -> dict[str, Any]:
    return _tournament_dict(get_registry().require(tournament_id))


@app.delete("/tournaments/{tournament_id}", response_model=SuccessResponse)
def delete_tournament(tournament_id: str) -> dict[str, Any]:
    if not get_registry().delete(tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    return {"success": True}


@app.post("/tournaments/{tournament_id}/registration", response_model=TournamentResponse)
def start_registration(tournament_id: str) -> dict[str, Any]:
    return _tournament_dict(get_registry().start_registration(tournament_id))


@app.post("/tournaments/{tournament_id}/start", response_model=TournamentResponse)
def start_tournament(tournament_id: str) -> dict[str, Any]:
    return _tournament_dict(get_registry().start_tournament(tournament_id))


@app.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def register_team(tournament_id: str, req: RegisterTeamRequest) -> dict[str, Any]:
    """Register a team. The captain must have linked a Riot ID in the tournament's group."""
    registry = get_registry()
    tournament = registry.require(tournament_id)
    captain = get_players().require(tournament.group_id, req.captain_id)

    team = registry.register_team(
        tournament_id,
        req.name,
        req.captain_id,
        req.captain_name or captain.riot_id,
    )
    return team.to_dict()


@app.get("/tournaments/{tournament_id}/teams", response_model=list[TeamResponse])
def list_teams(tournament_id: str) -> list[dict[str, Any]]:
    return [t.to_dict() for t in get_registry().teams(tournament_id)]


@app.get("/tournaments/{tournament_id}/matches", response_model=list[MatchResponse])
def list_matches(tournament_id: str, current: bool = False) -> list[dict[str, Any]]:
    """All matches, or only the first unfinished stage with ``current=true``."""
    registry = get_registry()
    tournament = registry.require(tournament_id)
    if current:
        matches = registry.current_stage_matches(tournament_id)
    else:
        matches = registry.matches(tournament_id)
    return [_match_dict(tournament, m) for m in matches]


@app.post(
    "/tournaments/{tournament_id}/matches/{match_id}/result",
    response_model=ReportResponse,
)
def report_result(tournament_id: str, match_id: str, req: ResultRequest) -> dict[str, Any]:
    registry = get_registry()
    report = registry.report_match_result(tournament_id, match_id, req.home_score, req.away_score)
    tournament = registry.require(tournament_id)

    if not report.saved.ok:
        logger.warning(f"Result for {match_id} recorded in memory only: {report.saved.error}")

    return {
        "match": _match_dict(tournament, report.match),
        "winner": _team_dict(report.winner),
        "advanced": [_match_dict(tournament, m) for m in report.advanced],
        "progress": _progress_dict(report.progress),
        "saved": report.saved.ok,
    }


@app.get("/tournaments/{tournament_id}/progress", response_model=ProgressResponse)
def get_progress(tournament_id: str) -> dict[str, Any]:
    return _progress_dict(get_registry().progress(tournament_id))


# ======================================================================
# Player Endpoints
# ======================================================================


@app.post("/groups/{group_id}/players", response_model=PlayerResponse, status_code=201)
def link_player(group_id: str, req: LinkPlayerRequest) -> dict[str, Any]:
    return _player_dict(get_players().link(group_id, req.user_id, req.riot_id))


@app.post("/groups/{group_id}/players/{user_id}/verify", response_model=PlayerResponse)
def reverify_player(group_id: str, user_id: str) -> dict[str, Any]:
    return _player_dict(get_players().reverify(group_id, user_id))


@app.get("/groups/{group_id}/players/{user_id}", response_model=PlayerResponse)
def get_player(group_id: str, user_id: str) -> dict[str, Any]:
    return _player_dict(get_players().require(group_id, user_id))


@app.delete("/groups/{group_id}/players/{user_id}", response_model=SuccessResponse)
def unlink_player(group_id: str, user_id: str) -> dict[str, Any]:
    if not get_players().unlink(group_id, user_id):
        raise HTTPException(status_code=404, detail="No linked Riot ID for this user")
    return {"success": True}


# ======================================================================
# Health
# ======================================================================


@app.get("/health", response_model=HealthResponse)
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "tournaments": len(get_registry()),
        "identity_configured": get_players().identity_configured,
    }
