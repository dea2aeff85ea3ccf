"""
Bracket API Routes
Bracket lifecycle for one tournament category: generation, publish/unpublish,
deletion, team withdrawal and standings.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from brackets.database import get_session
from brackets.models.bracket import Bracket, BracketFormat, BracketStatus, SeedingMethod
from brackets.models.match import Match
from brackets.models.standing import Standing
from brackets.services import bracket_service, progression, standings
from brackets.services.errors import BracketError
from brackets.utils.http_errors import http_error

router = APIRouter()

BRACKET_PATH = "/tournaments/{tournament_id}/categories/{category_id}/bracket"


# ============================================================================
# Request/Response Models
# ============================================================================


class BracketCreateRequest(BaseModel):
    format: str = BracketFormat.knockout.value
    seeding_method: str = SeedingMethod.random.value
    config: Optional[Dict[str, Any]] = None


class BracketGenerateRequest(BaseModel):
    team_ids: List[int]
    seeding_method: str = SeedingMethod.random.value
    config: Optional[Dict[str, Any]] = None


class WithdrawRequest(BaseModel):
    team_id: int
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if v is not None:
            v = v.strip()
            if len(v) > 500:
                raise ValueError("reason must be at most 500 characters")
        return v or None


class BracketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    category_id: int
    format: BracketFormat
    seeding_method: SeedingMethod
    status: BracketStatus
    config_json: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bracket_id: int
    round_number: int
    round_name: Optional[str] = None
    sequence_in_round: int
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    winner_side: Optional[int] = None
    winner_team_id: Optional[int] = None
    sets_json: Optional[List[Dict[str, Any]]] = None
    team1_sets: Optional[int] = None
    team2_sets: Optional[int] = None
    status: str
    is_bye: bool = False
    group_number: Optional[int] = None
    next_match_id: Optional[int] = None
    next_match_slot: Optional[int] = None
    court_number: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    submitted_by_user_id: Optional[str] = None
    version: int


class StandingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    team_id: int
    group_number: Optional[int] = None
    position: int
    total_points: int
    matches_played: int
    matches_won: int
    matches_lost: int
    games_won: int
    games_lost: int
    game_difference: int
    round_reached: Optional[str] = None


class BracketDetailResponse(BaseModel):
    bracket: BracketResponse
    config: Dict[str, Any]
    matches: List[MatchResponse]
    standings: List[StandingResponse]
    withdrawn_team_ids: List[int] = []


class BracketGenerateResponse(BaseModel):
    bracket: BracketResponse
    matches: List[MatchResponse]
    total_rounds: int
    bracket_size: int


class WithdrawResponse(BaseModel):
    team_id: int
    forfeited_match_ids: List[int]


def bracket_out(b: Bracket) -> BracketResponse:
    return BracketResponse.model_validate(b)


def match_out(m: Match) -> MatchResponse:
    return MatchResponse.model_validate(m)


def standing_out(s: Standing) -> StandingResponse:
    return StandingResponse.model_validate(s)


# ============================================================================
# Bracket lifecycle
# ============================================================================


@router.get(BRACKET_PATH, response_model=BracketDetailResponse)
def get_bracket(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    """Bracket with its matches (group, round, slot order) and stored standings."""
    try:
        detail = bracket_service.get_bracket_detail(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
    return BracketDetailResponse(
        bracket=bracket_out(detail["bracket"]),
        config=detail["config"].to_document(),
        matches=[match_out(m) for m in detail["matches"]],
        standings=[standing_out(s) for s in detail["standings"]],
        withdrawn_team_ids=detail["withdrawn_team_ids"],
    )


@router.post(BRACKET_PATH, response_model=BracketResponse, status_code=201)
def create_bracket(
    tournament_id: int,
    category_id: int,
    payload: BracketCreateRequest,
    session: Session = Depends(get_session),
):
    try:
        bracket = bracket_service.create_bracket(
            session,
            tournament_id,
            category_id,
            bracket_format=payload.format,
            seeding_method=payload.seeding_method,
            config=payload.config,
        )
    except BracketError as e:
        raise http_error(e)
    return bracket_out(bracket)


@router.post(BRACKET_PATH + "/generate", response_model=BracketGenerateResponse, status_code=201)
def generate_bracket(
    tournament_id: int,
    category_id: int,
    payload: BracketGenerateRequest,
    session: Session = Depends(get_session),
):
    """
    Generate (or regenerate) a single-elimination bracket.

    team_ids are in seed order for 'manual' and 'ranking'; 'random' shuffles them.
    Byes are settled immediately.
    """
    try:
        result = bracket_service.generate_bracket(
            session,
            tournament_id,
            category_id,
            payload.team_ids,
            seeding_method=payload.seeding_method,
            config=payload.config,
        )
    except BracketError as e:
        raise http_error(e)
    return BracketGenerateResponse(
        bracket=bracket_out(result["bracket"]),
        matches=[match_out(m) for m in result["matches"]],
        total_rounds=result["total_rounds"],
        bracket_size=result["bracket_size"],
    )


@router.post(BRACKET_PATH + "/publish", response_model=BracketResponse)
def publish_bracket(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    try:
        bracket = bracket_service.publish_bracket(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
    return bracket_out(bracket)


@router.post(BRACKET_PATH + "/unpublish", response_model=BracketResponse)
def unpublish_bracket(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    try:
        bracket = bracket_service.unpublish_bracket(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
    return bracket_out(bracket)


@router.delete(BRACKET_PATH, response_model=Dict[str, int])
def delete_bracket(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    try:
        return bracket_service.delete_bracket(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)


@router.post(BRACKET_PATH + "/withdraw", response_model=WithdrawResponse)
def withdraw_team(
    tournament_id: int,
    category_id: int,
    payload: WithdrawRequest,
    session: Session = Depends(get_session),
):
    """Withdraw a team; returns the matches forfeited as a result (cascades included)."""
    try:
        bracket = bracket_service.get_bracket_or_error(session, tournament_id, category_id)
        forfeited = progression.withdraw_team(session, bracket, payload.team_id, payload.reason)
    except BracketError as e:
        raise http_error(e)
    return WithdrawResponse(team_id=payload.team_id, forfeited_match_ids=forfeited)


# ============================================================================
# Standings
# ============================================================================


@router.get(BRACKET_PATH + "/standings", response_model=List[StandingResponse])
def get_standings(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    try:
        bracket = bracket_service.get_bracket_or_error(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
    return [standing_out(s) for s in standings.get_standings(session, bracket)]


@router.post(BRACKET_PATH + "/standings/calculate", response_model=List[StandingResponse])
def calculate_standings(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    try:
        bracket = bracket_service.get_bracket_or_error(session, tournament_id, category_id)
        rows = standings.calculate_standings(session, bracket)
    except BracketError as e:
        raise http_error(e)
    return [standing_out(s) for s in rows]
