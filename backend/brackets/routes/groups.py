"""
Group Stage API Routes
Group assignment (manual and snake-seeded), team swaps, and the knockout phase
generated from group results.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session

from brackets.database import get_session
from brackets.models.bracket import BracketFormat
from brackets.routes.brackets import (
    BRACKET_PATH,
    BracketResponse,
    MatchResponse,
    StandingResponse,
    bracket_out,
    match_out,
    standing_out,
)
from brackets.services import group_stage
from brackets.services.errors import BracketError
from brackets.utils.http_errors import http_error

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class GroupIn(BaseModel):
    group_number: int
    team_ids: List[int]


class GroupAssignmentRequest(BaseModel):
    groups: List[GroupIn]
    format: str = BracketFormat.groups_knockout.value
    config: Optional[Dict[str, Any]] = None


class AutoGroupRequest(BaseModel):
    team_ids: List[int]
    group_count: Optional[int] = None
    teams_per_group: Optional[int] = None
    format: str = BracketFormat.groups_knockout.value
    config: Optional[Dict[str, Any]] = None

    @field_validator("team_ids")
    @classmethod
    def validate_team_ids(cls, v):
        if not v:
            raise ValueError("team_ids cannot be empty")
        return v


class SwapTeamsRequest(BaseModel):
    team_a_id: int
    team_b_id: int


class GroupAssignmentResponse(BaseModel):
    bracket: BracketResponse
    matches: List[MatchResponse]


class GroupState(BaseModel):
    group_number: int
    name: str
    team_ids: List[int]
    matches: List[MatchResponse]
    standings: List[StandingResponse]


class GroupsStateResponse(BaseModel):
    bracket: BracketResponse
    phase: str  # "groups" | "knockout"
    has_knockout: bool
    groups: List[GroupState]


class SwapTeamsResponse(BaseModel):
    success: bool
    updated_matches: int
    team_a_group: int
    team_b_group: int


class KnockoutFromGroupsResponse(BaseModel):
    bracket: BracketResponse
    matches: List[MatchResponse]
    qualified_team_ids: List[int]


def _assignment_out(result: Dict[str, Any]) -> GroupAssignmentResponse:
    return GroupAssignmentResponse(
        bracket=bracket_out(result["bracket"]),
        matches=[match_out(m) for m in result["matches"]],
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(BRACKET_PATH + "/groups", response_model=GroupAssignmentResponse, status_code=201)
def assign_groups(
    tournament_id: int,
    category_id: int,
    payload: GroupAssignmentRequest,
    session: Session = Depends(get_session),
):
    """Replace the category's structure with a full round robin per group."""
    try:
        result = group_stage.assign_groups(
            session,
            tournament_id,
            category_id,
            [(g.group_number, g.team_ids) for g in payload.groups],
            config=payload.config,
            bracket_format=payload.format,
        )
    except BracketError as e:
        raise http_error(e)
    return _assignment_out(result)


@router.post(BRACKET_PATH + "/groups/auto", response_model=GroupAssignmentResponse, status_code=201)
def assign_groups_auto(
    tournament_id: int,
    category_id: int,
    payload: AutoGroupRequest,
    session: Session = Depends(get_session),
):
    """Snake-seed team_ids (seed order) into groups of 3 and 4, or the requested count/size."""
    try:
        result = group_stage.assign_groups_auto(
            session,
            tournament_id,
            category_id,
            payload.team_ids,
            group_count=payload.group_count,
            teams_per_group=payload.teams_per_group,
            config=payload.config,
            bracket_format=payload.format,
        )
    except BracketError as e:
        raise http_error(e)
    return _assignment_out(result)


@router.get(BRACKET_PATH + "/groups", response_model=GroupsStateResponse)
def get_groups(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    try:
        state = group_stage.get_groups_state(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
    return GroupsStateResponse(
        bracket=bracket_out(state["bracket"]),
        phase=state["phase"],
        has_knockout=state["has_knockout"],
        groups=[
            GroupState(
                group_number=g["group_number"],
                name=g["name"],
                team_ids=g["team_ids"],
                matches=[match_out(m) for m in g["matches"]],
                standings=[standing_out(s) for s in g["standings"]],
            )
            for g in state["groups"]
        ],
    )


@router.post(BRACKET_PATH + "/groups/swap", response_model=SwapTeamsResponse)
def swap_teams(
    tournament_id: int,
    category_id: int,
    payload: SwapTeamsRequest,
    session: Session = Depends(get_session),
):
    try:
        result = group_stage.swap_teams(session, tournament_id, category_id, payload.team_a_id, payload.team_b_id)
    except BracketError as e:
        raise http_error(e)
    return SwapTeamsResponse(**result)


@router.post(BRACKET_PATH + "/knockout", response_model=KnockoutFromGroupsResponse, status_code=201)
def generate_knockout(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    """Knockout phase seeded by group finishing order. All group matches must be finished."""
    try:
        result = group_stage.generate_knockout_from_groups(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
    return KnockoutFromGroupsResponse(
        bracket=bracket_out(result["bracket"]),
        matches=[match_out(m) for m in result["matches"]],
        qualified_team_ids=result["qualified_team_ids"],
    )


@router.delete(BRACKET_PATH + "/knockout", response_model=Dict[str, Any])
def delete_knockout(tournament_id: int, category_id: int, session: Session = Depends(get_session)):
    """Remove the knockout phase; group matches and group standings stay."""
    try:
        return group_stage.delete_knockout_phase(session, tournament_id, category_id)
    except BracketError as e:
        raise http_error(e)
