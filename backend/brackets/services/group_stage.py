"""
Group stage: round-robin groups, team swaps, and the knockout phase built
from group finishing order.

Group matches carry group_number and never reference a next match. Knockout
matches of a hybrid bracket live in the same bracket with group_number None.
"""
import logging
import math
import random
from collections import defaultdict
from typing import Any, Collection, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from brackets.models.bracket import Bracket, BracketFormat, SeedingMethod
from brackets.models.match import FINISHED_STATUSES, MATCH_IN_PROGRESS, Match
from brackets.models.standing import Standing
from brackets.services.bracket_generator import generate_knockout, separate_group_rematches
from brackets.services.bracket_locks import bracket_lock
from brackets.services.bracket_service import (
    ConfigInput,
    MAX_TEAMS,
    clear_matches,
    clear_withdrawals,
    ensure_structure_mutable,
    get_bracket_or_error,
    get_config,
    list_matches,
    list_standings,
    persist_knockout_plan,
    upsert_bracket,
    validate_roster,
    withdrawn_team_ids,
)
from brackets.services.errors import BracketStateError, BracketValidationError
from brackets.services.standings import calculate_group_standings
from brackets.utils.round_robin import (
    compute_group_sizes,
    group_name,
    rr_matches_per_group,
    rr_pairings_by_round,
    snake_seed,
)

logger = logging.getLogger(__name__)

MAX_GROUPS = 16
MIN_TEAMS_PER_GROUP = 2
STARTED_STATUSES = (MATCH_IN_PROGRESS,) + FINISHED_STATUSES

GroupAssignment = Tuple[int, Sequence[int]]  # (group_number, team_ids in seed order)


def _group_matches(session: Session, bracket_id: int) -> List[Match]:
    return list(
        session.exec(
            select(Match)
            .where(Match.bracket_id == bracket_id, Match.group_number.is_not(None))
            .order_by(Match.group_number, Match.round_number, Match.sequence_in_round)
        ).all()
    )


def _group_membership(matches: Sequence[Match]) -> Dict[int, List[int]]:
    """group_number -> team ids in order of first appearance."""
    members: Dict[int, List[int]] = {}
    for m in matches:
        group = members.setdefault(m.group_number, [])
        for team_id in (m.team1_id, m.team2_id):
            if team_id is not None and team_id not in group:
                group.append(team_id)
    return members


def validate_group_assignment(groups: Sequence[GroupAssignment]) -> None:
    if not groups:
        raise BracketValidationError("At least one group required")
    if len(groups) > MAX_GROUPS:
        raise BracketValidationError(f"Maximum {MAX_GROUPS} groups allowed (got {len(groups)})")

    numbers = [number for number, _ in groups]
    if any(n < 1 for n in numbers):
        raise BracketValidationError("Group numbers must be positive")
    if len(set(numbers)) != len(numbers):
        raise BracketValidationError("Group numbers must be unique")

    seen: Dict[int, int] = {}
    for number, team_ids in groups:
        if len(team_ids) < MIN_TEAMS_PER_GROUP:
            raise BracketValidationError(
                f"{group_name(number)} needs at least {MIN_TEAMS_PER_GROUP} teams (got {len(team_ids)})"
            )
        for team_id in team_ids:
            if team_id in seen:
                raise BracketValidationError(
                    f"Team {team_id} appears in more than one group ({group_name(seen[team_id])}, {group_name(number)})"
                    if seen[team_id] != number
                    else f"Team {team_id} appears twice in {group_name(number)}"
                )
            seen[team_id] = number

    if len(seen) > MAX_TEAMS:
        raise BracketValidationError(f"Maximum {MAX_TEAMS} teams allowed (got {len(seen)})")


def assign_groups(
    session: Session,
    tournament_id: int,
    category_id: int,
    groups: Sequence[GroupAssignment],
    config: ConfigInput = None,
    bracket_format: BracketFormat = BracketFormat.groups_knockout,
) -> Dict[str, Any]:
    """
    Replace the category's structure with a round robin per group.

    Returns {"bracket", "matches"}.
    """
    try:
        fmt = BracketFormat(bracket_format)
    except ValueError:
        raise BracketValidationError("format must be 'round_robin' or 'groups_knockout'")
    if fmt == BracketFormat.knockout:
        raise BracketValidationError("Group assignment requires 'round_robin' or 'groups_knockout' format")

    validate_group_assignment(groups)
    all_team_ids = [team_id for _, team_ids in groups for team_id in team_ids]
    validate_roster(session, tournament_id, category_id, all_team_ids)

    bracket = upsert_bracket(session, tournament_id, category_id, fmt, SeedingMethod.manual, config)
    with bracket_lock(bracket.id):
        clear_matches(session, bracket.id)
        clear_withdrawals(session, bracket.id)

        matches: List[Match] = []
        for number, team_ids in sorted(groups, key=lambda g: g[0]):
            name = group_name(number)
            for round_num, seq, a, b in rr_pairings_by_round(len(team_ids)):
                m = Match(
                    bracket_id=bracket.id,
                    round_number=round_num,
                    round_name=name,
                    sequence_in_round=seq,
                    team1_id=team_ids[a],
                    team2_id=team_ids[b],
                    group_number=number,
                )
                session.add(m)
                matches.append(m)
            for position, team_id in enumerate(team_ids, start=1):
                session.add(
                    Standing(bracket_id=bracket.id, team_id=team_id, group_number=number, position=position)
                )
        session.commit()

    session.refresh(bracket)
    for m in matches:
        session.refresh(m)
    logger.info(
        "Assigned %d teams to %d groups in bracket %s (%d matches)",
        len(all_team_ids),
        len(groups),
        bracket.id,
        len(matches),
    )
    return {"bracket": bracket, "matches": matches}


def auto_group_sizes(team_count: int, group_count: Optional[int] = None, teams_per_group: Optional[int] = None) -> List[int]:
    """Group sizes for an explicit count, an explicit size, or groups of 3 and 4."""
    if group_count is None and teams_per_group is not None:
        if teams_per_group < MIN_TEAMS_PER_GROUP:
            raise BracketValidationError(f"teams_per_group must be at least {MIN_TEAMS_PER_GROUP}")
        group_count = math.ceil(team_count / teams_per_group)

    if group_count is None:
        sizes = compute_group_sizes(team_count)
        if not sizes:
            raise BracketValidationError("At least 4 teams required for automatic grouping")
        return sizes

    if group_count < 1:
        raise BracketValidationError("group_count must be at least 1")
    base, extra = divmod(team_count, group_count)
    sizes = [base + 1] * extra + [base] * (group_count - extra)
    if min(sizes) < MIN_TEAMS_PER_GROUP:
        raise BracketValidationError(
            f"{team_count} teams cannot fill {group_count} groups of at least {MIN_TEAMS_PER_GROUP}"
        )
    return sizes


def assign_groups_auto(
    session: Session,
    tournament_id: int,
    category_id: int,
    team_ids: Sequence[int],
    group_count: Optional[int] = None,
    teams_per_group: Optional[int] = None,
    config: ConfigInput = None,
    bracket_format: BracketFormat = BracketFormat.groups_knockout,
) -> Dict[str, Any]:
    """Snake-seed an ordered team list (seed 1 first) into groups, then assign them."""
    if len(set(team_ids)) != len(team_ids):
        raise BracketValidationError("Duplicate team ids")
    sizes = auto_group_sizes(len(team_ids), group_count, teams_per_group)
    groups = snake_seed(list(team_ids), sizes)
    return assign_groups(
        session,
        tournament_id,
        category_id,
        [(number, team_list) for number, team_list in enumerate(groups, start=1)],
        config=config,
        bracket_format=bracket_format,
    )


def get_groups_state(session: Session, tournament_id: int, category_id: int) -> Dict[str, Any]:
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    matches = _group_matches(session, bracket.id)
    standings = [s for s in list_standings(session, bracket.id) if s.group_number is not None]
    knockout = list_matches(session, bracket.id, knockout_only=True)

    membership = _group_membership(matches)
    groups = []
    for number in sorted(membership):
        rows = [s for s in standings if s.group_number == number]
        team_ids = [s.team_id for s in rows] if rows else membership[number]
        groups.append(
            {
                "group_number": number,
                "name": group_name(number),
                "team_ids": team_ids,
                "matches": [m for m in matches if m.group_number == number],
                "standings": rows,
            }
        )
    return {
        "bracket": bracket,
        "phase": "knockout" if knockout else "groups",
        "has_knockout": bool(knockout),
        "groups": groups,
    }


def swap_teams(session: Session, tournament_id: int, category_id: int, team_a: int, team_b: int) -> Dict[str, Any]:
    """Exchange two teams between groups. Only allowed before either has played."""
    if team_a == team_b:
        raise BracketValidationError("Cannot swap a team with itself")

    bracket = get_bracket_or_error(session, tournament_id, category_id)
    with bracket_lock(bracket.id):
        ensure_structure_mutable(bracket, "swap teams")
        matches = _group_matches(session, bracket.id)
        group_of = {team_id: number for number, members in _group_membership(matches).items() for team_id in members}
        for team_id in (team_a, team_b):
            if team_id not in group_of:
                raise BracketValidationError(f"Team {team_id} is not in any group")
        if group_of[team_a] == group_of[team_b]:
            raise BracketValidationError("Both teams are in the same group")

        for m in matches:
            if m.side_of(team_a) is None and m.side_of(team_b) is None:
                continue
            if m.status in STARTED_STATUSES:
                raise BracketStateError(
                    f"Cannot swap teams: match {m.id} ({m.round_name}) has already started"
                )

        swapped = 0
        for m in matches:
            changed = False
            if m.team1_id in (team_a, team_b):
                m.team1_id = team_b if m.team1_id == team_a else team_a
                changed = True
            if m.team2_id in (team_a, team_b):
                m.team2_id = team_b if m.team2_id == team_a else team_a
                changed = True
            if changed:
                m.version = (m.version or 0) + 1
                session.add(m)
                swapped += 1
        # Each team takes over the other's slot in the group order
        for s in session.exec(
            select(Standing).where(
                Standing.bracket_id == bracket.id,
                Standing.group_number.is_not(None),
                Standing.team_id.in_((team_a, team_b)),
            )
        ).all():
            s.team_id = team_b if s.team_id == team_a else team_a
            session.add(s)
        session.flush()

        calculate_group_standings(session, bracket)
        session.commit()

    logger.info(
        "Swapped team %s (%s) and team %s (%s) in bracket %s",
        team_a,
        group_name(group_of[team_a]),
        team_b,
        group_name(group_of[team_b]),
        bracket.id,
    )
    return {
        "success": True,
        "updated_matches": swapped,
        "team_a_group": group_of[team_b],
        "team_b_group": group_of[team_a],
    }


def _tier_key(s: Standing):
    return (-s.total_points, -s.game_difference, -s.games_won, s.team_id)


def knockout_qualifiers(
    rows: Sequence[Standing],
    top_per_group: int,
    wildcard_count: int,
    withdrawn: Collection[int] = (),
) -> List[int]:
    """
    Seed order for the knockout: all group winners, then all runners-up, ...
    Within a finishing position teams are ordered by points, game difference,
    games won. Wildcards are the best teams in the first non-qualifying position.

    Withdrawn teams never qualify; the teams finishing below them in their
    group move up one place.
    """
    by_group: Dict[Optional[int], List[Standing]] = defaultdict(list)
    for s in sorted(rows, key=lambda s: s.position):
        if s.team_id not in withdrawn:
            by_group[s.group_number].append(s)

    tiers: Dict[int, List[Standing]] = defaultdict(list)
    for members in by_group.values():
        for place, s in enumerate(members, start=1):
            tiers[place].append(s)

    ordered: List[int] = []
    for place in range(1, top_per_group + 1):
        ordered.extend(s.team_id for s in sorted(tiers[place], key=_tier_key))
    if wildcard_count > 0:
        candidates = sorted(tiers[top_per_group + 1], key=_tier_key)
        ordered.extend(s.team_id for s in candidates[:wildcard_count])
    return ordered


def generate_knockout_from_groups(
    session: Session,
    tournament_id: int,
    category_id: int,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Build the knockout phase of a hybrid bracket from completed group play."""
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    with bracket_lock(bracket.id):
        if bracket.format != BracketFormat.groups_knockout:
            raise BracketStateError("Knockout phase requires a 'groups_knockout' bracket")
        ensure_structure_mutable(bracket, "generate knockout phase")
        if list_matches(session, bracket.id, knockout_only=True):
            raise BracketStateError("Knockout phase already exists")

        matches = _group_matches(session, bracket.id)
        if not matches:
            raise BracketStateError("No group matches found; assign groups first")
        expected = sum(rr_matches_per_group(len(members)) for members in _group_membership(matches).values())
        finished = sum(1 for m in matches if m.status in FINISHED_STATUSES)
        if finished < expected:
            raise BracketStateError(f"{expected - finished} group matches still incomplete")

        config = get_config(bracket)
        rows = calculate_group_standings(session, bracket, config)
        withdrawn = withdrawn_team_ids(session, bracket.id)
        qualifiers = knockout_qualifiers(rows, config.top_per_group, config.wildcard_count, withdrawn)
        if len(qualifiers) < 2:
            raise BracketValidationError("At least 2 qualified teams required for a knockout phase")

        group_of = {s.team_id: s.group_number for s in rows}
        seeded = separate_group_rematches(qualifiers, group_of)
        plan = generate_knockout(seeded, SeedingMethod.manual, rng=rng)
        knockout = persist_knockout_plan(session, bracket, plan)
        session.commit()

    for m in knockout:
        session.refresh(m)
    logger.info(
        "Generated knockout phase for bracket %s: %d qualifiers, %d rounds",
        bracket.id,
        len(qualifiers),
        plan.total_rounds,
    )
    return {"bracket": bracket, "matches": knockout, "qualified_team_ids": seeded}


def delete_knockout_phase(session: Session, tournament_id: int, category_id: int) -> Dict[str, Any]:
    """Remove knockout matches and knockout standings; group play is untouched."""
    bracket = get_bracket_or_error(session, tournament_id, category_id)
    with bracket_lock(bracket.id):
        if bracket.format != BracketFormat.groups_knockout:
            raise BracketStateError("Only 'groups_knockout' brackets have a separate knockout phase")
        ensure_structure_mutable(bracket, "delete knockout phase")
        knockout = list_matches(session, bracket.id, knockout_only=True)
        if not knockout:
            raise BracketStateError("No knockout phase to delete")
        started = [m for m in knockout if not m.is_bye and m.status in STARTED_STATUSES]
        if started:
            raise BracketStateError(f"Cannot delete knockout phase: {len(started)} matches already started")

        deleted = clear_matches(session, bracket.id, knockout_only=True)
        session.commit()
    logger.info("Deleted knockout phase of bracket %s (%d matches)", bracket.id, deleted)
    return {"success": True, "deleted_matches": deleted}
