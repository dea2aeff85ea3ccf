"""
Match progression: status transitions, score entry, winner advancement,
forfeits and team withdrawal.

Every mutating operation runs under the bracket lock and re-reads the match
inside it. Advancement writes the winner into next_match_id / next_match_slot;
it never completes the next match, except when the other side of that match
has withdrawn, in which case the next match is forfeited to the arriving team
and advancement continues from there.

Every write that changes a result (score, reset, forfeit, withdrawal) also
refreshes the stored standings before committing.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import or_
from sqlmodel import Session, select

from brackets.models.bracket import Bracket
from brackets.models.match import (
    FINISHED_STATUSES,
    MATCH_COMPLETED,
    MATCH_FORFEIT,
    MATCH_IN_PROGRESS,
    MATCH_PENDING,
    MATCH_SCHEDULED,
    MATCH_STATUSES,
    UNPLAYED_STATUSES,
    Match,
)
from brackets.models.team import Team, TeamWithdrawal
from brackets.services.bracket_locks import bracket_lock
from brackets.services.bracket_service import (
    get_config,
    get_match_or_error,
    mark_in_progress,
    withdrawn_team_ids,
)
from brackets.services.errors import (
    BracketAuthorizationError,
    BracketNotFoundError,
    BracketStateError,
    BracketValidationError,
)
from brackets.services.score_validator import validate_sets
from brackets.services.standings import refresh_standings

logger = logging.getLogger(__name__)

# Administrative transitions. completed / forfeit are reached only through
# score submission or forfeit, and are terminal here.
ALLOWED_STATUS_TRANSITIONS = {
    MATCH_PENDING: {MATCH_SCHEDULED, MATCH_IN_PROGRESS},
    MATCH_SCHEDULED: {MATCH_PENDING, MATCH_IN_PROGRESS},
    MATCH_IN_PROGRESS: {MATCH_SCHEDULED},
}


def _touch(match: Match) -> None:
    match.version = (match.version or 0) + 1
    match.updated_at = datetime.utcnow()


def _bracket_of(session: Session, match: Match) -> Bracket:
    bracket = session.get(Bracket, match.bracket_id)
    if not bracket:
        raise BracketNotFoundError(f"Bracket {match.bracket_id} not found")
    return bracket


def _check_version(match: Match, expected_version: Optional[int]) -> None:
    if expected_version is not None and match.version != expected_version:
        raise BracketStateError(
            f"Match {match.id} was modified concurrently "
            f"(version {match.version}, expected {expected_version})"
        )


def _require_both_teams(match: Match) -> None:
    if match.team1_id is None or match.team2_id is None:
        raise BracketStateError(f"Match {match.id} does not have both teams assigned")


def _require_not_finished(match: Match) -> None:
    if match.status in FINISHED_STATUSES:
        raise BracketStateError(f"Match {match.id} is already {match.status}")


# ----------------------------------------------------------------------------
# Advancement core (caller holds the lock and commits)
# ----------------------------------------------------------------------------

def _advance(session: Session, match: Match, withdrawn: Set[int], forfeited: List[int]) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "match_id": match.id,
        "advanced": False,
        "next_match_id": None,
        "slot": None,
        "tournament_complete": False,
    }
    if match.group_number is not None:
        return result
    if match.next_match_id is None:
        result["tournament_complete"] = True
        return result

    winner_id = match.winner_team_id
    nxt = session.get(Match, match.next_match_id)
    if not nxt:
        raise BracketNotFoundError(f"Next match {match.next_match_id} not found")
    slot = match.next_match_slot or 1

    occupant = nxt.team_for_side(slot)
    if occupant is not None:
        raise BracketStateError(
            f"Slot {slot} of match {nxt.id} is already occupied by team {occupant}"
        )

    if slot == 1:
        nxt.team1_id = winner_id
    else:
        nxt.team2_id = winner_id
    _touch(nxt)
    session.add(nxt)
    result.update(advanced=True, next_match_id=nxt.id, slot=slot)
    logger.info("Advanced team %s from match %s into match %s slot %s", winner_id, match.id, nxt.id, slot)

    other_side = 2 if slot == 1 else 1
    other_team = nxt.team_for_side(other_side)
    if other_team is not None and nxt.status in UNPLAYED_STATUSES:
        if other_team in withdrawn and winner_id not in withdrawn:
            _forfeit(session, nxt, slot, withdrawn, forfeited)
        elif winner_id in withdrawn and other_team not in withdrawn:
            _forfeit(session, nxt, other_side, withdrawn, forfeited)
    return result


def _forfeit(session: Session, match: Match, winner_side: int, withdrawn: Set[int], forfeited: List[int]) -> None:
    match.status = MATCH_FORFEIT
    match.winner_side = winner_side
    match.sets_json = None
    match.team1_sets = None
    match.team2_sets = None
    match.completed_at = datetime.utcnow()
    _touch(match)
    session.add(match)
    forfeited.append(match.id)
    logger.info("Match %s forfeited, winner side %s", match.id, winner_side)
    _advance(session, match, withdrawn, forfeited)


# ----------------------------------------------------------------------------
# Administrative status / schedule
# ----------------------------------------------------------------------------

def update_match_status(session: Session, match_id: int, status: str) -> Match:
    if status not in MATCH_STATUSES:
        raise BracketValidationError(f"Invalid match status: {status}")
    if status in FINISHED_STATUSES:
        raise BracketValidationError(f"Status '{status}' is set by score submission or forfeit")

    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        current = match.status
        if current in FINISHED_STATUSES:
            raise BracketStateError(f"Match {match.id} is {current}; reset the score to change its status")
        if status == current:
            return match
        if status not in ALLOWED_STATUS_TRANSITIONS.get(current, set()):
            raise BracketStateError(f"Cannot change match status from {current} to {status}")
        if status == MATCH_IN_PROGRESS:
            _require_both_teams(match)
            match.started_at = match.started_at or datetime.utcnow()
        else:
            match.started_at = None

        match.status = status
        _touch(match)
        session.add(match)
        session.commit()
        session.refresh(match)
    return match


def update_match_schedule(
    session: Session,
    match_id: int,
    court_number: Optional[int] = None,
    scheduled_time: Optional[datetime] = None,
) -> Match:
    """Store court/time. A pending match with a time becomes scheduled; clearing both reverts it."""
    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        match.court_number = court_number
        match.scheduled_time = scheduled_time
        if match.status == MATCH_PENDING and scheduled_time is not None:
            match.status = MATCH_SCHEDULED
        elif match.status == MATCH_SCHEDULED and court_number is None and scheduled_time is None:
            match.status = MATCH_PENDING
        _touch(match)
        session.add(match)
        session.commit()
        session.refresh(match)
    return match


# ----------------------------------------------------------------------------
# Scores
# ----------------------------------------------------------------------------

def _apply_score(
    session: Session,
    match: Match,
    sets: Iterable[Any],
    expected_version: Optional[int],
    auto_advance: bool,
    submitted_by: Optional[str],
) -> Dict[str, Any]:
    """Validate and store a score, then advance. Caller holds the lock."""
    _check_version(match, expected_version)
    _require_not_finished(match)
    _require_both_teams(match)

    bracket = _bracket_of(session, match)
    config = get_config(bracket)
    validation = validate_sets(sets, config.match_format)
    if not validation.is_valid:
        raise BracketValidationError(validation.reason)

    now = datetime.utcnow()
    match.sets_json = [s.to_document() for s in validation.sets]
    match.team1_sets, match.team2_sets = validation.sets_won
    match.winner_side = validation.winner_side
    match.status = MATCH_COMPLETED
    match.started_at = match.started_at or now
    match.completed_at = now
    match.submitted_by_user_id = submitted_by
    _touch(match)
    session.add(match)
    mark_in_progress(session, bracket)

    forfeited: List[int] = []
    advancement = None
    if auto_advance:
        advancement = _advance(session, match, withdrawn_team_ids(session, bracket.id), forfeited)
        advancement["forfeited_match_ids"] = forfeited

    refresh_standings(session, bracket, config)
    session.commit()
    session.refresh(match)
    logger.info(
        "Score recorded for match %s: %s-%s sets, winner side %s",
        match.id,
        match.team1_sets,
        match.team2_sets,
        match.winner_side,
    )
    return {"match": match, "advancement": advancement}


def submit_score(
    session: Session,
    match_id: int,
    sets: Iterable[Any],
    expected_version: Optional[int] = None,
    auto_advance: bool = True,
    submitted_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Organizer score entry.

    Returns {"match": Match, "advancement": dict | None}. Invalid scores raise
    BracketValidationError with the validator's reason and leave the match as it was.
    """
    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        return _apply_score(session, match, sets, expected_version, auto_advance, submitted_by)


def submit_player_score(
    session: Session,
    match_id: int,
    user_id: str,
    sets: Iterable[Any],
    expected_version: Optional[int] = None,
    auto_advance: bool = True,
) -> Dict[str, Any]:
    """Score self-reported by one of the four players of the match."""
    if not user_id:
        raise BracketAuthorizationError("User identity required")

    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        bracket = _bracket_of(session, match)
        if not get_config(bracket).allow_player_scores:
            raise BracketAuthorizationError("Player score submission is disabled for this bracket")
        _require_both_teams(match)

        players: Set[str] = set()
        for team_id in (match.team1_id, match.team2_id):
            team = session.get(Team, team_id)
            if team:
                players |= team.player_ids()
        if user_id not in players:
            raise BracketAuthorizationError("Only players of this match can submit its score")

        return _apply_score(session, match, sets, expected_version, auto_advance, user_id)


def reset_match_score(session: Session, match_id: int, retract_advancement: bool = False) -> Match:
    """
    Return a finished match to pending.

    If its winner already sits in the next match the reset is refused unless
    retract_advancement is set and the next match has not started.
    """
    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        if match.is_bye:
            raise BracketStateError("Bye matches cannot be reset")
        if match.status not in FINISHED_STATUSES:
            raise BracketStateError(f"Match {match.id} has no result to reset")

        if match.group_number is None and match.next_match_id is not None:
            nxt = session.get(Match, match.next_match_id)
            slot = match.next_match_slot or 1
            winner_id = match.winner_team_id
            if nxt and winner_id is not None and nxt.team_for_side(slot) == winner_id:
                if not retract_advancement:
                    raise BracketStateError(
                        f"Winner already advanced to match {nxt.id}; "
                        "retract the advancement to reset this score"
                    )
                if nxt.status not in UNPLAYED_STATUSES:
                    raise BracketStateError(f"Next match {nxt.id} is already {nxt.status}")
                if slot == 1:
                    nxt.team1_id = None
                else:
                    nxt.team2_id = None
                _touch(nxt)
                session.add(nxt)
                logger.info("Retracted team %s from match %s slot %s", winner_id, nxt.id, slot)

        match.sets_json = None
        match.team1_sets = None
        match.team2_sets = None
        match.winner_side = None
        match.status = MATCH_PENDING
        match.started_at = None
        match.completed_at = None
        match.submitted_by_user_id = None
        _touch(match)
        session.add(match)
        refresh_standings(session, _bracket_of(session, match))
        session.commit()
        session.refresh(match)
    logger.info("Reset score of match %s", match.id)
    return match


# ----------------------------------------------------------------------------
# Advancement, forfeit, withdrawal
# ----------------------------------------------------------------------------

def advance_winner(session: Session, match_id: int) -> Dict[str, Any]:
    """Place a finished match's winner into its next match. A second call fails (slot occupied)."""
    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        if match.status not in FINISHED_STATUSES:
            raise BracketStateError(f"Match {match.id} is not finished")
        if match.winner_side is None:
            raise BracketValidationError(f"Match {match.id} has no winner")

        forfeited: List[int] = []
        result = _advance(session, match, withdrawn_team_ids(session, match.bracket_id), forfeited)
        result["forfeited_match_ids"] = forfeited
        session.commit()
    return result


def forfeit_match(
    session: Session,
    match_id: int,
    winner_side: int,
    expected_version: Optional[int] = None,
) -> Dict[str, Any]:
    if winner_side not in (1, 2):
        raise BracketValidationError("winner_side must be 1 or 2")

    match = get_match_or_error(session, match_id)
    with bracket_lock(match.bracket_id):
        session.refresh(match)
        _check_version(match, expected_version)
        _require_not_finished(match)
        _require_both_teams(match)

        bracket = _bracket_of(session, match)
        forfeited: List[int] = []
        _forfeit(session, match, winner_side, withdrawn_team_ids(session, bracket.id), forfeited)
        mark_in_progress(session, bracket)
        refresh_standings(session, bracket)
        session.commit()
        session.refresh(match)
    return {"match": match, "forfeited_match_ids": forfeited}


def withdraw_team(session: Session, bracket: Bracket, team_id: int, reason: Optional[str] = None) -> List[int]:
    """
    Withdraw a team: every unplayed match where it faces an opponent is
    forfeited to that opponent and advanced. Returns forfeited match ids
    (cascaded forfeits included). Finished matches are untouched.
    """
    with bracket_lock(bracket.id):
        team_matches = list(
            session.exec(
                select(Match)
                .where(
                    Match.bracket_id == bracket.id,
                    or_(Match.team1_id == team_id, Match.team2_id == team_id),
                )
                .order_by(Match.round_number, Match.group_number, Match.sequence_in_round)
            ).all()
        )
        if not team_matches:
            raise BracketValidationError(f"Team {team_id} is not part of this bracket")

        withdrawn = withdrawn_team_ids(session, bracket.id)
        if team_id in withdrawn:
            raise BracketStateError(f"Team {team_id} has already withdrawn")

        session.add(TeamWithdrawal(bracket_id=bracket.id, team_id=team_id, reason=reason))
        withdrawn.add(team_id)

        forfeited: List[int] = []
        for m in team_matches:
            # A cascade earlier in this loop may already have settled it
            if m.status not in UNPLAYED_STATUSES:
                continue
            side = m.side_of(team_id)
            opponent_side = 2 if side == 1 else 1
            if m.team_for_side(opponent_side) is None:
                continue
            _forfeit(session, m, opponent_side, withdrawn, forfeited)

        mark_in_progress(session, bracket)
        if forfeited:
            refresh_standings(session, bracket)
        session.commit()

    logger.info(
        "Team %s withdrew from bracket %s (%s); forfeited matches %s",
        team_id,
        bracket.id,
        reason or "no reason given",
        forfeited,
    )
    return forfeited
