"""
Match runtime routes: status, schedule metadata, scores, advancement and forfeits.
Winners advance automatically on score submission unless auto_advance is false.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, field_validator
from sqlmodel import Session

from brackets.database import get_session
from brackets.routes.brackets import MatchResponse, match_out
from brackets.services import progression
from brackets.services.bracket_config import MAX_SETS_PER_MATCH
from brackets.services.errors import BracketError
from brackets.utils.http_errors import http_error

router = APIRouter()

MATCH_PATH = "/brackets/matches/{match_id}"


class TiebreakIn(BaseModel):
    team1: int
    team2: int


class SetScoreIn(BaseModel):
    team1: int
    team2: int
    tiebreak: Optional[TiebreakIn] = None


class ScoreSubmitRequest(BaseModel):
    sets: List[SetScoreIn]
    expected_version: Optional[int] = None
    auto_advance: bool = True

    @field_validator("sets")
    @classmethod
    def validate_sets_length(cls, v):
        if len(v) > MAX_SETS_PER_MATCH:
            raise ValueError(f"at most {MAX_SETS_PER_MATCH} sets allowed")
        return v


class ForfeitRequest(BaseModel):
    winner_side: int
    expected_version: Optional[int] = None


class MatchStatusUpdate(BaseModel):
    status: str


class MatchScheduleUpdate(BaseModel):
    court_number: Optional[int] = None
    scheduled_time: Optional[datetime] = None

    @field_validator("court_number")
    @classmethod
    def validate_court_number(cls, v):
        if v is not None and v < 1:
            raise ValueError("court_number must be >= 1")
        return v


class AdvancementResponse(BaseModel):
    match_id: int
    advanced: bool
    next_match_id: Optional[int] = None
    slot: Optional[int] = None
    tournament_complete: bool = False
    forfeited_match_ids: List[int] = []


class ScoreResponse(BaseModel):
    match: MatchResponse
    advancement: Optional[AdvancementResponse] = None


class ForfeitResponse(BaseModel):
    match: MatchResponse
    forfeited_match_ids: List[int]


def _score_out(result) -> ScoreResponse:
    advancement = result["advancement"]
    return ScoreResponse(
        match=match_out(result["match"]),
        advancement=AdvancementResponse(**advancement) if advancement is not None else None,
    )


@router.put(MATCH_PATH + "/score", response_model=ScoreResponse)
def submit_score(match_id: int, payload: ScoreSubmitRequest, session: Session = Depends(get_session)):
    """Organizer score entry. Illegal scores are rejected with the reason; the match is left unchanged."""
    try:
        result = progression.submit_score(
            session,
            match_id,
            [s.model_dump() for s in payload.sets],
            expected_version=payload.expected_version,
            auto_advance=payload.auto_advance,
        )
    except BracketError as e:
        raise http_error(e)
    return _score_out(result)


@router.put(MATCH_PATH + "/player-score", response_model=ScoreResponse)
def submit_player_score(
    match_id: int,
    payload: ScoreSubmitRequest,
    x_user_id: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
):
    """Score self-reported by a player of either team (identity from X-User-Id)."""
    try:
        result = progression.submit_player_score(
            session,
            match_id,
            x_user_id,
            [s.model_dump() for s in payload.sets],
            expected_version=payload.expected_version,
            auto_advance=payload.auto_advance,
        )
    except BracketError as e:
        raise http_error(e)
    return _score_out(result)


@router.delete(MATCH_PATH + "/score", response_model=MatchResponse)
def reset_score(
    match_id: int,
    retract_advancement: bool = Query(default=False),
    session: Session = Depends(get_session),
):
    try:
        match = progression.reset_match_score(session, match_id, retract_advancement=retract_advancement)
    except BracketError as e:
        raise http_error(e)
    return match_out(match)


@router.post(MATCH_PATH + "/advance", response_model=AdvancementResponse)
def advance_winner(match_id: int, session: Session = Depends(get_session)):
    """Manually advance a finished match's winner (when scored with auto_advance=false)."""
    try:
        result = progression.advance_winner(session, match_id)
    except BracketError as e:
        raise http_error(e)
    return AdvancementResponse(**result)


@router.post(MATCH_PATH + "/forfeit", response_model=ForfeitResponse)
def forfeit_match(match_id: int, payload: ForfeitRequest, session: Session = Depends(get_session)):
    try:
        result = progression.forfeit_match(
            session,
            match_id,
            payload.winner_side,
            expected_version=payload.expected_version,
        )
    except BracketError as e:
        raise http_error(e)
    return ForfeitResponse(match=match_out(result["match"]), forfeited_match_ids=result["forfeited_match_ids"])


@router.patch(MATCH_PATH + "/status", response_model=MatchResponse)
def update_status(match_id: int, payload: MatchStatusUpdate, session: Session = Depends(get_session)):
    try:
        match = progression.update_match_status(session, match_id, payload.status)
    except BracketError as e:
        raise http_error(e)
    return match_out(match)


@router.patch(MATCH_PATH + "/schedule", response_model=MatchResponse)
def update_schedule(match_id: int, payload: MatchScheduleUpdate, session: Session = Depends(get_session)):
    try:
        match = progression.update_match_schedule(
            session,
            match_id,
            court_number=payload.court_number,
            scheduled_time=payload.scheduled_time,
        )
    except BracketError as e:
        raise http_error(e)
    return match_out(match)
