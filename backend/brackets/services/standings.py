"""
Standings calculation.

Standing rows are derived data: every calculation deletes the rows of the
phase it computes (knockout rows have group_number None, group rows carry
their group) and inserts a fresh ranking.
"""
import functools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from sqlmodel import Session, select

from brackets.models.bracket import Bracket, BracketFormat
from brackets.models.match import FINISHED_STATUSES, Match
from brackets.models.standing import Standing
from brackets.services.bracket_config import BracketConfig, KnockoutPoints
from brackets.services.bracket_locks import bracket_lock
from brackets.services.bracket_service import get_config, list_standings
from brackets.services.errors import BracketValidationError
from brackets.services.score_validator import total_games

logger = logging.getLogger(__name__)


@dataclass
class TeamRecord:
    team_id: int
    group_number: Optional[int] = None
    played: int = 0
    won: int = 0
    lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    last_round_lost: Optional[int] = None
    last_round_played: int = 0
    beaten: Dict[int, int] = field(default_factory=dict)  # opponent -> wins against them

    @property
    def game_difference(self) -> int:
        return self.games_won - self.games_lost


def _record_match(records: Dict[int, TeamRecord], m: Match) -> None:
    g1, g2 = total_games(m.sets_json)
    winner = m.winner_team_id
    for team_id, own, other, opponent in (
        (m.team1_id, g1, g2, m.team2_id),
        (m.team2_id, g2, g1, m.team1_id),
    ):
        rec = records.setdefault(team_id, TeamRecord(team_id=team_id, group_number=m.group_number))
        rec.played += 1
        rec.games_won += own
        rec.games_lost += other
        rec.last_round_played = max(rec.last_round_played, m.round_number)
        if winner == team_id:
            rec.won += 1
            rec.beaten[opponent] = rec.beaten.get(opponent, 0) + 1
        else:
            rec.lost += 1
            rec.last_round_lost = m.round_number


def _phase_matches(session: Session, bracket_id: int, group_stage: bool) -> List[Match]:
    query = select(Match).where(Match.bracket_id == bracket_id)
    if group_stage:
        query = query.where(Match.group_number.is_not(None))
    else:
        query = query.where(Match.group_number.is_(None))
    return list(session.exec(query.order_by(Match.round_number, Match.sequence_in_round)).all())


def _replace_rows(session: Session, bracket_id: int, group_stage: bool, rows: List[Standing]) -> None:
    query = select(Standing).where(Standing.bracket_id == bracket_id)
    if group_stage:
        query = query.where(Standing.group_number.is_not(None))
    else:
        query = query.where(Standing.group_number.is_(None))
    for old in session.exec(query).all():
        session.delete(old)
    session.flush()
    for row in rows:
        session.add(row)


# ----------------------------------------------------------------------------
# Knockout
# ----------------------------------------------------------------------------

def round_reached(rec: TeamRecord, total_rounds: int) -> int:
    """Round a team went out in; a team still alive is in the round after its last win."""
    if rec.last_round_lost is not None:
        return rec.last_round_lost
    return min(rec.last_round_played + 1, total_rounds)


def knockout_tier(reached: int, total_rounds: int, is_champion: bool, points: KnockoutPoints) -> Tuple[str, int]:
    """(label, points) for the furthest round a team reached."""
    if is_champion:
        return "Champion", points.winner
    from_end = total_rounds - reached
    if from_end == 0:
        return "Finalist", points.finalist
    if from_end == 1:
        return "Semifinalist", points.semi_finalist
    if from_end == 2:
        return "Quarterfinalist", points.quarter_finalist
    return f"Round {reached}", points.base_points + reached * points.per_round_bonus


def rank_knockout(records: List[TeamRecord], champion_id: Optional[int]) -> List[TeamRecord]:
    """
    Champion first; then by elimination round, latest first (teams still
    alive rank above every eliminated team); then game difference, games won.
    """
    alive = float("inf")

    def key(rec: TeamRecord):
        return (
            0 if rec.team_id == champion_id else 1,
            -(rec.last_round_lost if rec.last_round_lost is not None else alive),
            -rec.game_difference,
            -rec.games_won,
            rec.team_id,
        )

    return sorted(records, key=key)


def calculate_knockout_standings(session: Session, bracket: Bracket, config: Optional[BracketConfig] = None) -> List[Standing]:
    config = config or get_config(bracket)
    all_knockout = _phase_matches(session, bracket.id, group_stage=False)
    played = [
        m for m in all_knockout
        if m.status in FINISHED_STATUSES
        and not m.is_bye
        and m.team1_id is not None
        and m.team2_id is not None
        and m.winner_side is not None
    ]
    if not played:
        raise BracketValidationError("No completed knockout matches to rank")

    records: Dict[int, TeamRecord] = {}
    for m in played:
        _record_match(records, m)

    total_rounds = max(m.round_number for m in all_knockout)
    final = next((m for m in all_knockout if m.next_match_id is None), None)
    champion_id = None
    if final and final.status in FINISHED_STATUSES and final.winner_side is not None:
        champion_id = final.winner_team_id

    rows: List[Standing] = []
    for position, rec in enumerate(rank_knockout(list(records.values()), champion_id), start=1):
        label, points = knockout_tier(
            round_reached(rec, total_rounds),
            total_rounds,
            rec.team_id == champion_id,
            config.knockout_points,
        )
        rows.append(
            Standing(
                bracket_id=bracket.id,
                team_id=rec.team_id,
                group_number=None,
                position=position,
                total_points=points,
                matches_played=rec.played,
                matches_won=rec.won,
                matches_lost=rec.lost,
                games_won=rec.games_won,
                games_lost=rec.games_lost,
                game_difference=rec.game_difference,
                round_reached=label,
            )
        )

    _replace_rows(session, bracket.id, group_stage=False, rows=rows)
    return rows


# ----------------------------------------------------------------------------
# Group stage
# ----------------------------------------------------------------------------

def _compare_group(a: TeamRecord, b: TeamRecord, win_points: int, prior: Dict[int, int]) -> int:
    pa, pb = a.won * win_points, b.won * win_points
    if pa != pb:
        return -1 if pa > pb else 1
    # Head-to-head only between point-tied teams
    h2h_a, h2h_b = a.beaten.get(b.team_id, 0), b.beaten.get(a.team_id, 0)
    if h2h_a != h2h_b:
        return -1 if h2h_a > h2h_b else 1
    if a.game_difference != b.game_difference:
        return -1 if a.game_difference > b.game_difference else 1
    if a.games_won != b.games_won:
        return -1 if a.games_won > b.games_won else 1
    # Fully tied (e.g. nothing played yet): keep the current group order
    prior_a, prior_b = prior.get(a.team_id), prior.get(b.team_id)
    if prior_a is not None and prior_b is not None and prior_a != prior_b:
        return -1 if prior_a < prior_b else 1
    return -1 if a.team_id < b.team_id else (1 if a.team_id > b.team_id else 0)


def rank_group(records: List[TeamRecord], win_points: int, prior: Optional[Dict[int, int]] = None) -> List[TeamRecord]:
    """Points, head-to-head, game difference, games won, then prior position (team -> position)."""
    prior = prior or {}
    return sorted(records, key=functools.cmp_to_key(lambda a, b: _compare_group(a, b, win_points, prior)))


def calculate_group_standings(session: Session, bracket: Bracket, config: Optional[BracketConfig] = None) -> List[Standing]:
    """Rank every group. Teams that have not played yet still get a row."""
    config = config or get_config(bracket)
    win_points = config.group_win_points
    group_matches = _phase_matches(session, bracket.id, group_stage=True)
    prior: Dict[int, Dict[int, int]] = defaultdict(dict)
    for s in session.exec(
        select(Standing).where(Standing.bracket_id == bracket.id, Standing.group_number.is_not(None))
    ).all():
        prior[s.group_number][s.team_id] = s.position

    members: Dict[int, Set[int]] = defaultdict(set)
    for m in group_matches:
        for team_id in (m.team1_id, m.team2_id):
            if team_id is not None:
                members[m.group_number].add(team_id)

    rows: List[Standing] = []
    for group_number in sorted(members):
        records = {tid: TeamRecord(team_id=tid, group_number=group_number) for tid in members[group_number]}
        for m in group_matches:
            if m.group_number != group_number or m.status not in FINISHED_STATUSES or m.winner_side is None:
                continue
            _record_match(records, m)

        for position, rec in enumerate(rank_group(list(records.values()), win_points, prior[group_number]), start=1):
            rows.append(
                Standing(
                    bracket_id=bracket.id,
                    team_id=rec.team_id,
                    group_number=group_number,
                    position=position,
                    total_points=rec.won * win_points,
                    matches_played=rec.played,
                    matches_won=rec.won,
                    matches_lost=rec.lost,
                    games_won=rec.games_won,
                    games_lost=rec.games_lost,
                    game_difference=rec.game_difference,
                )
            )

    _replace_rows(session, bracket.id, group_stage=True, rows=rows)
    return rows


# ----------------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------------

def _knockout_has_results(session: Session, bracket_id: int) -> bool:
    return any(
        m.status in FINISHED_STATUSES and not m.is_bye
        for m in _phase_matches(session, bracket_id, group_stage=False)
    )


def refresh_standings(session: Session, bracket: Bracket, config: Optional[BracketConfig] = None) -> None:
    """
    Bring stored standings in line with the current results after a score,
    reset, forfeit or withdrawal. Never raises for an empty phase: knockout
    rows are dropped while no knockout match has a result. Caller holds the
    lock and commits.
    """
    config = config or get_config(bracket)
    if bracket.format != BracketFormat.knockout:
        calculate_group_standings(session, bracket, config)
    if _knockout_has_results(session, bracket.id):
        calculate_knockout_standings(session, bracket, config)
    else:
        _replace_rows(session, bracket.id, group_stage=False, rows=[])


def calculate_standings(session: Session, bracket: Bracket) -> List[Standing]:
    """Recompute standings for the bracket's format and return all stored rows."""
    config = get_config(bracket)
    with bracket_lock(bracket.id):
        if bracket.format == BracketFormat.knockout:
            calculate_knockout_standings(session, bracket, config)
        else:
            calculate_group_standings(session, bracket, config)
            if bracket.format == BracketFormat.groups_knockout and _knockout_has_results(session, bracket.id):
                calculate_knockout_standings(session, bracket, config)
        session.commit()
    logger.info("Recalculated standings for bracket %s", bracket.id)
    return get_standings(session, bracket)


def get_standings(session: Session, bracket: Bracket) -> List[Standing]:
    return list_standings(session, bracket.id)
