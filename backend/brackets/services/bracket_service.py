"""
Bracket persistence: turn a KnockoutPlan into Match rows, look brackets up,
and drive the bracket lifecycle (draft -> in_progress -> published).
"""
import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError
from sqlmodel import Session, select

from brackets.models.bracket import Bracket, BracketFormat, BracketStatus, SeedingMethod
from brackets.models.match import MATCH_COMPLETED, Match
from brackets.models.standing import Standing
from brackets.models.team import Team, TeamWithdrawal
from brackets.services.bracket_config import BracketConfig, parse_bracket_config
from brackets.services.bracket_generator import KnockoutPlan, generate_knockout, resolve_seeding_method
from brackets.services.bracket_locks import bracket_lock, forget_bracket
from brackets.services.errors import BracketNotFoundError, BracketStateError, BracketValidationError

logger = logging.getLogger(__name__)

MIN_TEAMS = 2
MAX_TEAMS = 128

ConfigInput = Union[BracketConfig, Dict[str, Any], None]


# ----------------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------------

def find_bracket(session: Session, tournament_id: int, category_id: int) -> Optional[Bracket]:
    return session.exec(
        select(Bracket).where(
            Bracket.tournament_id == tournament_id,
            Bracket.category_id == category_id,
        )
    ).first()


def get_bracket_or_error(session: Session, tournament_id: int, category_id: int) -> Bracket:
    bracket = find_bracket(session, tournament_id, category_id)
    if not bracket:
        raise BracketNotFoundError(
            f"No bracket for tournament {tournament_id}, category {category_id}"
        )
    return bracket


def get_match_or_error(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise BracketNotFoundError(f"Match {match_id} not found")
    return match


def get_config(bracket: Bracket) -> BracketConfig:
    return parse_bracket_config(bracket.config_json, bracket.id)


def list_matches(session: Session, bracket_id: int, knockout_only: bool = False) -> List[Match]:
    query = select(Match).where(Match.bracket_id == bracket_id)
    if knockout_only:
        query = query.where(Match.group_number.is_(None))
    return list(
        session.exec(
            query.order_by(Match.group_number, Match.round_number, Match.sequence_in_round, Match.id)
        ).all()
    )


def list_standings(session: Session, bracket_id: int) -> List[Standing]:
    return list(
        session.exec(
            select(Standing)
            .where(Standing.bracket_id == bracket_id)
            .order_by(Standing.group_number, Standing.position)
        ).all()
    )


def withdrawn_team_ids(session: Session, bracket_id: int) -> set:
    rows = session.exec(select(TeamWithdrawal).where(TeamWithdrawal.bracket_id == bracket_id)).all()
    return {w.team_id for w in rows}


# ----------------------------------------------------------------------------
# Guards
# ----------------------------------------------------------------------------

def ensure_structure_mutable(bracket: Bracket, action: str) -> None:
    """Published brackets keep their pairings and round topology."""
    if bracket.status == BracketStatus.published:
        raise BracketStateError(f"Cannot {action}: bracket is published; unpublish it first")


def mark_in_progress(session: Session, bracket: Bracket) -> None:
    if bracket.status == BracketStatus.draft:
        bracket.status = BracketStatus.in_progress
        bracket.updated_at = datetime.utcnow()
        session.add(bracket)


def coerce_config(config: ConfigInput, current: Optional[BracketConfig] = None) -> BracketConfig:
    """Request-supplied config is validated strictly; stored config falls back to defaults."""
    if config is None:
        return current or BracketConfig()
    if isinstance(config, BracketConfig):
        return config
    try:
        return BracketConfig.model_validate(config)
    except ValidationError as e:
        raise BracketValidationError(f"Invalid bracket config: {e.errors()[0]['msg']}")


def validate_roster(session: Session, tournament_id: int, category_id: int, team_ids: Sequence[int]) -> None:
    """Every team must exist and be registered in this tournament category."""
    if len(team_ids) < MIN_TEAMS:
        raise BracketValidationError(f"At least {MIN_TEAMS} teams required (got {len(team_ids)})")
    if len(team_ids) > MAX_TEAMS:
        raise BracketValidationError(f"Maximum {MAX_TEAMS} teams allowed (got {len(team_ids)})")
    if len(set(team_ids)) != len(team_ids):
        raise BracketValidationError("Duplicate team ids")

    teams = session.exec(select(Team).where(Team.id.in_(list(team_ids)))).all()
    found = {t.id: t for t in teams}
    missing = [tid for tid in team_ids if tid not in found]
    if missing:
        raise BracketValidationError(f"Unknown team ids: {missing}")
    foreign = [
        t.id for t in teams
        if t.tournament_id != tournament_id or t.category_id != category_id
    ]
    if foreign:
        raise BracketValidationError(f"Teams not registered in this category: {sorted(foreign)}")


# ----------------------------------------------------------------------------
# Structure persistence
# ----------------------------------------------------------------------------

def clear_matches(session: Session, bracket_id: int, knockout_only: bool = False) -> int:
    """Delete match rows (and the standings they produced). Returns number of matches deleted."""
    matches = list_matches(session, bracket_id, knockout_only=knockout_only)
    # Drop self references first so row order does not matter
    for m in matches:
        if m.next_match_id is not None:
            m.next_match_id = None
            session.add(m)
    session.flush()
    for m in matches:
        session.delete(m)

    standings_query = select(Standing).where(Standing.bracket_id == bracket_id)
    if knockout_only:
        standings_query = standings_query.where(Standing.group_number.is_(None))
    for s in session.exec(standings_query).all():
        session.delete(s)
    session.flush()
    return len(matches)


def clear_withdrawals(session: Session, bracket_id: int) -> None:
    for w in session.exec(select(TeamWithdrawal).where(TeamWithdrawal.bracket_id == bracket_id)).all():
        session.delete(w)


def persist_knockout_plan(session: Session, bracket: Bracket, plan: KnockoutPlan) -> List[Match]:
    """
    Insert the planned matches, wire next_match_id, then settle byes.
    Caller commits.
    """
    rows: Dict[tuple, Match] = {}
    for pm in plan.matches:
        m = Match(
            bracket_id=bracket.id,
            round_number=pm.round_number,
            round_name=pm.round_name,
            sequence_in_round=pm.sequence_in_round,
            team1_id=pm.team1_id,
            team2_id=pm.team2_id,
            is_bye=pm.is_bye,
            next_match_slot=pm.next_slot,
        )
        session.add(m)
        rows[(pm.round_number, pm.sequence_in_round)] = m
    session.flush()

    for pm in plan.matches:
        if pm.next_sequence is None:
            continue
        m = rows[(pm.round_number, pm.sequence_in_round)]
        m.next_match_id = rows[(pm.round_number + 1, pm.next_sequence)].id
        session.add(m)

    now = datetime.utcnow()
    for pm in plan.matches:
        if not pm.is_bye:
            continue
        m = rows[(pm.round_number, pm.sequence_in_round)]
        m.status = MATCH_COMPLETED
        m.winner_side = pm.bye_winner_side
        m.completed_at = now
        session.add(m)
        if pm.next_sequence is not None:
            nxt = rows[(pm.round_number + 1, pm.next_sequence)]
            if pm.next_slot == 1:
                nxt.team1_id = m.winner_team_id
            else:
                nxt.team2_id = m.winner_team_id
            session.add(nxt)

    session.flush()
    return [rows[(pm.round_number, pm.sequence_in_round)] for pm in plan.matches]


# ----------------------------------------------------------------------------
# Operations
# ----------------------------------------------------------------------------

def create_bracket(
    session: Session,
    tournament_id: int,
    category_id: int,
    bracket_format: BracketFormat = BracketFormat.knockout,
    seeding_method: SeedingMethod = SeedingMethod.random,
    config: ConfigInput = None,
) -> Bracket:
    """Create an empty draft bracket for a tournament category."""
    if find_bracket(session, tournament_id, category_id):
        raise BracketStateError(
            f"Bracket already exists for tournament {tournament_id}, category {category_id}"
        )
    try:
        fmt = BracketFormat(bracket_format)
    except ValueError:
        raise BracketValidationError("format must be 'knockout', 'round_robin', or 'groups_knockout'")

    bracket = Bracket(
        tournament_id=tournament_id,
        category_id=category_id,
        format=fmt,
        seeding_method=resolve_seeding_method(seeding_method),
        status=BracketStatus.draft,
        config_json=coerce_config(config).to_document(),
    )
    session.add(bracket)
    session.commit()
    session.refresh(bracket)
    return bracket


def upsert_bracket(
    session: Session,
    tournament_id: int,
    category_id: int,
    bracket_format: BracketFormat,
    seeding_method: SeedingMethod,
    config: ConfigInput,
) -> Bracket:
    """Reuse the category's bracket (resetting it to draft) or create one. Caller commits."""
    bracket = find_bracket(session, tournament_id, category_id)
    if bracket is None:
        resolved = coerce_config(config)
        bracket = Bracket(tournament_id=tournament_id, category_id=category_id, format=bracket_format)
    else:
        ensure_structure_mutable(bracket, "regenerate bracket")
        resolved = coerce_config(config, get_config(bracket))
        bracket.format = bracket_format
        bracket.updated_at = datetime.utcnow()
    bracket.seeding_method = seeding_method
    bracket.status = BracketStatus.draft
    bracket.config_json = resolved.to_document()
    session.add(bracket)
    session.flush()
    return bracket


def generate_bracket(
    session: Session,
    tournament_id: int,
    category_id: int,
    team_ids: Sequence[int],
    seeding_method: SeedingMethod = SeedingMethod.random,
    config: ConfigInput = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Generate (or regenerate) a single-elimination bracket.

    Returns {"bracket", "matches", "total_rounds", "bracket_size"}.
    """
    method = resolve_seeding_method(seeding_method)
    validate_roster(session, tournament_id, category_id, team_ids)
    plan = generate_knockout(team_ids, method, rng=rng)

    bracket = upsert_bracket(session, tournament_id, category_id, BracketFormat.knockout, method, config)
    with bracket_lock(bracket.id):
        clear_matches(session, bracket.id)
        clear_withdrawals(session, bracket.id)
        matches = persist_knockout_plan(session, bracket, plan)
        session.commit()

    session.refresh(bracket)
    for m in matches:
        session.refresh(m)

    logger.info(
        "Generated knockout bracket %s: %d teams, %d rounds, %d matches (%d byes)",
        bracket.id,
        len(team_ids),
        plan.total_rounds,
        len(matches),
        sum(1 for m in matches if m.is_bye),
    )
    return {
        "bracket": bracket,
        "matches": matches,
        "total_rounds": plan.total_rounds,
        "bracket_size": plan.bracket_size,
    }


def get_bracket_detail(session: Session, tournament_id: int, category_id: int) -> Dict[str, Any]:
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    return {
        "bracket": bracket,
        "config": get_config(bracket),
        "matches": list_matches(session, bracket.id),
        "standings": list_standings(session, bracket.id),
        "withdrawn_team_ids": sorted(withdrawn_team_ids(session, bracket.id)),
    }


def publish_bracket(session: Session, tournament_id: int, category_id: int) -> Bracket:
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    with bracket_lock(bracket.id):
        if bracket.status == BracketStatus.published:
            raise BracketStateError("Bracket is already published")
        if not list_matches(session, bracket.id):
            raise BracketStateError("Cannot publish a bracket without matches")
        bracket.status = BracketStatus.published
        bracket.updated_at = datetime.utcnow()
        session.add(bracket)
        session.commit()
        session.refresh(bracket)
    logger.info("Published bracket %s", bracket.id)
    return bracket


def unpublish_bracket(session: Session, tournament_id: int, category_id: int) -> Bracket:
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    with bracket_lock(bracket.id):
        if bracket.status != BracketStatus.published:
            raise BracketStateError("Bracket is not published")
        bracket.status = BracketStatus.in_progress
        bracket.updated_at = datetime.utcnow()
        session.add(bracket)
        session.commit()
        session.refresh(bracket)
    logger.info("Unpublished bracket %s", bracket.id)
    return bracket


def delete_bracket(session: Session, tournament_id: int, category_id: int) -> Dict[str, int]:
    """Delete the bracket with its matches, standings and withdrawal records."""
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    bracket_id = bracket.id
    with bracket_lock(bracket_id):
        ensure_structure_mutable(bracket, "delete bracket")
        deleted_matches = clear_matches(session, bracket_id)
        clear_withdrawals(session, bracket_id)
        session.delete(bracket)
        session.commit()
    forget_bracket(bracket_id)
    logger.info("Deleted bracket %s (%d matches)", bracket_id, deleted_matches)
    return {"bracket_id": bracket_id, "deleted_matches": deleted_matches}
