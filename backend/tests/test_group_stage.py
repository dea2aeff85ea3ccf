"""Group stage: assignment, automatic grouping, swaps and the knockout phase built from group results."""
import pytest
from sqlmodel import Session

from brackets.models.bracket import BracketFormat
from brackets.models.match import MATCH_IN_PROGRESS, MATCH_PENDING
from brackets.models.standing import Standing
from brackets.services import bracket_service, group_stage, progression
from brackets.services.errors import BracketStateError, BracketValidationError


def _two_groups(session: Session, make_teams, **kwargs):
    teams = make_teams(8)
    result = group_stage.assign_groups(session, 1, 1, [(1, teams[:4]), (2, teams[4:])], **kwargs)
    return teams, result


def _play_all(session: Session, win, matches):
    # team1 always wins: in each group the first-listed team wins every match
    for m in matches:
        win(session, m.id)


# ============================================================================
# Assignment
# ============================================================================


def test_assign_groups_builds_round_robin(session: Session, make_teams):
    teams, result = _two_groups(session, make_teams)
    matches = result["matches"]

    assert result["bracket"].format == BracketFormat.groups_knockout
    assert len(matches) == 12
    assert all(m.next_match_id is None for m in matches)
    assert {m.round_name for m in matches if m.group_number == 1} == {"Group A"}
    assert {m.round_name for m in matches if m.group_number == 2} == {"Group B"}

    group_a = [m for m in matches if m.group_number == 1]
    pairs = {frozenset((m.team1_id, m.team2_id)) for m in group_a}
    assert len(pairs) == 6
    assert all(t in teams[:4] for pair in pairs for t in pair)

    rows = bracket_service.list_standings(session, result["bracket"].id)
    assert len(rows) == 8
    assert all(r.total_points == 0 and r.matches_played == 0 for r in rows)
    assert [r.team_id for r in rows if r.group_number == 1] == teams[:4]


def test_group_assignment_validation():
    validate = group_stage.validate_group_assignment

    with pytest.raises(BracketValidationError, match="At least one group"):
        validate([])
    with pytest.raises(BracketValidationError, match="Maximum 16 groups"):
        validate([(n, [n * 10, n * 10 + 1]) for n in range(1, 18)])
    with pytest.raises(BracketValidationError, match="positive"):
        validate([(0, [1, 2])])
    with pytest.raises(BracketValidationError, match="unique"):
        validate([(1, [1, 2]), (1, [3, 4])])
    with pytest.raises(BracketValidationError, match="Group B needs at least 2 teams"):
        validate([(1, [1, 2]), (2, [3])])
    with pytest.raises(BracketValidationError, match="more than one group"):
        validate([(1, [1, 2]), (2, [2, 3])])
    with pytest.raises(BracketValidationError, match="appears twice in Group A"):
        validate([(1, [1, 1, 2])])


def test_assign_groups_rejects_knockout_format_and_foreign_teams(session: Session, make_teams):
    teams = make_teams(4)
    with pytest.raises(BracketValidationError, match="requires"):
        group_stage.assign_groups(session, 1, 1, [(1, teams)], bracket_format="knockout")
    with pytest.raises(BracketValidationError, match="Unknown team ids"):
        group_stage.assign_groups(session, 1, 1, [(1, teams + [999])])


def test_auto_grouping_snake_seeds(session: Session, make_teams):
    teams = make_teams(8)
    group_stage.assign_groups_auto(session, 1, 1, teams)

    state = group_stage.get_groups_state(session, 1, 1)
    assert [g["team_ids"] for g in state["groups"]] == [
        [teams[0], teams[3], teams[4], teams[7]],
        [teams[1], teams[2], teams[5], teams[6]],
    ]


def test_auto_group_sizes():
    assert group_stage.auto_group_sizes(8) == [4, 4]
    assert group_stage.auto_group_sizes(8, group_count=3) == [3, 3, 2]
    assert group_stage.auto_group_sizes(8, teams_per_group=3) == [3, 3, 2]
    with pytest.raises(BracketValidationError, match="At least 4 teams"):
        group_stage.auto_group_sizes(3)
    with pytest.raises(BracketValidationError, match="cannot fill"):
        group_stage.auto_group_sizes(5, group_count=3)


def test_groups_state(session: Session, make_teams, win):
    teams, result = _two_groups(session, make_teams)
    win(session, result["matches"][0].id)

    state = group_stage.get_groups_state(session, 1, 1)
    assert state["phase"] == "groups"
    assert state["has_knockout"] is False
    assert [g["name"] for g in state["groups"]] == ["Group A", "Group B"]
    assert all(len(g["matches"]) == 6 for g in state["groups"])
    assert all(len(g["standings"]) == 4 for g in state["groups"])


# ============================================================================
# Swaps
# ============================================================================


def test_swap_before_play(session: Session, make_teams):
    teams, _ = _two_groups(session, make_teams)

    result = group_stage.swap_teams(session, 1, 1, teams[0], teams[4])
    assert result["success"] is True
    assert result["updated_matches"] == 6
    assert result["team_a_group"] == 2
    assert result["team_b_group"] == 1

    # Each team takes the other's seed slot
    state = group_stage.get_groups_state(session, 1, 1)
    assert state["groups"][0]["team_ids"] == [teams[4]] + teams[1:4]
    assert state["groups"][1]["team_ids"] == [teams[0]] + teams[5:]
    assert [s.position for s in state["groups"][0]["standings"]] == [1, 2, 3, 4]


def test_swap_refused_once_played(session: Session, make_teams, win):
    teams, result = _two_groups(session, make_teams)
    first = result["matches"][0]
    win(session, first.id)

    with pytest.raises(BracketStateError, match="already started"):
        group_stage.swap_teams(session, 1, 1, first.team1_id, teams[4])


def test_swap_validation(session: Session, make_teams):
    teams, _ = _two_groups(session, make_teams)
    with pytest.raises(BracketValidationError, match="itself"):
        group_stage.swap_teams(session, 1, 1, teams[0], teams[0])
    with pytest.raises(BracketValidationError, match="same group"):
        group_stage.swap_teams(session, 1, 1, teams[0], teams[1])
    with pytest.raises(BracketValidationError, match="not in any group"):
        group_stage.swap_teams(session, 1, 1, teams[0], 999)


# ============================================================================
# Knockout from groups
# ============================================================================


def test_knockout_requires_completed_groups(session: Session, make_teams, win):
    _, result = _two_groups(session, make_teams)
    win(session, result["matches"][0].id)
    with pytest.raises(BracketStateError, match="still incomplete"):
        group_stage.generate_knockout_from_groups(session, 1, 1)


def test_knockout_from_group_results(session: Session, make_teams, win):
    teams, result = _two_groups(session, make_teams)
    _play_all(session, win, result["matches"])

    knockout = group_stage.generate_knockout_from_groups(session, 1, 1)

    # Winners first, then runners-up
    assert knockout["qualified_team_ids"] == [teams[0], teams[4], teams[1], teams[5]]
    matches = knockout["matches"]
    assert len(matches) == 3
    assert all(m.group_number is None for m in matches)

    group_of = {t: 1 for t in teams[:4]}
    group_of.update({t: 2 for t in teams[4:]})
    first_round = [m for m in matches if m.round_number == 1]
    assert len(first_round) == 2
    for m in first_round:
        assert group_of[m.team1_id] != group_of[m.team2_id]

    state = group_stage.get_groups_state(session, 1, 1)
    assert state["phase"] == "knockout"
    assert state["groups"][0]["team_ids"] == teams[:4]

    with pytest.raises(BracketStateError, match="already exists"):
        group_stage.generate_knockout_from_groups(session, 1, 1)


def test_knockout_qualifiers_with_wildcards():
    rows = [
        Standing(bracket_id=1, team_id=1, group_number=1, position=1, total_points=9),
        Standing(bracket_id=1, team_id=2, group_number=1, position=2, total_points=6),
        Standing(bracket_id=1, team_id=3, group_number=1, position=3, total_points=3, game_difference=-2),
        Standing(bracket_id=1, team_id=4, group_number=2, position=1, total_points=6),
        Standing(bracket_id=1, team_id=5, group_number=2, position=2, total_points=3),
        Standing(bracket_id=1, team_id=6, group_number=2, position=3, total_points=3, game_difference=4),
    ]
    assert group_stage.knockout_qualifiers(rows, top_per_group=2, wildcard_count=0) == [1, 4, 2, 5]
    assert group_stage.knockout_qualifiers(rows, top_per_group=2, wildcard_count=1) == [1, 4, 2, 5, 6]
    assert group_stage.knockout_qualifiers(rows, top_per_group=1, wildcard_count=0) == [1, 4]

    # A withdrawn winner is skipped and the runner-up moves up
    assert group_stage.knockout_qualifiers(rows, top_per_group=2, wildcard_count=0, withdrawn={1}) == [2, 4, 5, 3]


def test_delete_knockout_keeps_group_play(session: Session, make_teams, win):
    _, result = _two_groups(session, make_teams)
    _play_all(session, win, result["matches"])
    group_stage.generate_knockout_from_groups(session, 1, 1)

    deleted = group_stage.delete_knockout_phase(session, 1, 1)
    assert deleted == {"success": True, "deleted_matches": 3}

    bracket_id = result["bracket"].id
    remaining = bracket_service.list_matches(session, bracket_id)
    assert len(remaining) == 12
    assert all(m.group_number is not None for m in remaining)
    rows = bracket_service.list_standings(session, bracket_id)
    assert len(rows) == 8
    assert all(r.group_number is not None for r in rows)

    with pytest.raises(BracketStateError, match="No knockout phase"):
        group_stage.delete_knockout_phase(session, 1, 1)

    # The phase can be rebuilt
    assert len(group_stage.generate_knockout_from_groups(session, 1, 1)["matches"]) == 3


def test_delete_knockout_refused_once_started(session: Session, make_teams, win):
    _, result = _two_groups(session, make_teams)
    _play_all(session, win, result["matches"])
    knockout = group_stage.generate_knockout_from_groups(session, 1, 1)["matches"]
    progression.update_match_status(session, knockout[0].id, MATCH_IN_PROGRESS)

    with pytest.raises(BracketStateError, match="already started"):
        group_stage.delete_knockout_phase(session, 1, 1)


def test_round_robin_bracket_has_no_knockout_phase(session: Session, make_teams, win):
    _, result = _two_groups(session, make_teams, bracket_format="round_robin")
    _play_all(session, win, result["matches"])
    with pytest.raises(BracketStateError, match="groups_knockout"):
        group_stage.generate_knockout_from_groups(session, 1, 1)
    with pytest.raises(BracketStateError, match="groups_knockout"):
        group_stage.delete_knockout_phase(session, 1, 1)


def test_published_bracket_structure_is_locked(session: Session, make_teams):
    teams, _ = _two_groups(session, make_teams)
    bracket_service.publish_bracket(session, 1, 1)

    with pytest.raises(BracketStateError, match="published"):
        group_stage.assign_groups(session, 1, 1, [(1, teams[:4]), (2, teams[4:])])
    with pytest.raises(BracketStateError, match="published"):
        group_stage.swap_teams(session, 1, 1, teams[0], teams[4])


# ============================================================================
# Withdrawals
# ============================================================================


def _groups_of_three(session: Session, make_teams):
    teams = make_teams(6)
    result = group_stage.assign_groups(session, 1, 1, [(1, teams[:3]), (2, teams[3:])])
    return teams, result


def test_withdrawal_during_group_play_forfeits_remaining_matches(session: Session, make_teams):
    teams, result = _groups_of_three(session, make_teams)

    forfeited = progression.withdraw_team(session, result["bracket"], teams[0])

    group_a = [m for m in result["matches"] if m.group_number == 1]
    against_withdrawn = [m for m in group_a if teams[0] in (m.team1_id, m.team2_id)]
    assert sorted(forfeited) == sorted(m.id for m in against_withdrawn)

    state = group_stage.get_groups_state(session, 1, 1)
    rows = {s.team_id: s for s in state["groups"][0]["standings"]}
    # The withdrawn team keeps its row; each opponent is credited with the win
    assert set(rows) == set(teams[:3])
    assert (rows[teams[0]].matches_played, rows[teams[0]].matches_lost) == (2, 2)
    assert rows[teams[1]].matches_won == rows[teams[2]].matches_won == 1
    assert rows[teams[0]].position == 3

    # Only the match between the two remaining teams is left in group A
    unplayed = [m for m in group_a if m.status == MATCH_PENDING]
    assert [(m.team1_id, m.team2_id) for m in unplayed] == [(teams[1], teams[2])]


def test_withdrawn_group_winner_does_not_qualify(session: Session, make_teams, win):
    teams, result = _groups_of_three(session, make_teams)
    _play_all(session, win, result["matches"])
    progression.withdraw_team(session, result["bracket"], teams[0])

    knockout = group_stage.generate_knockout_from_groups(session, 1, 1)

    # Group A is now led by teams[1] and teams[2] moves up to runner-up
    assert sorted(knockout["qualified_team_ids"]) == sorted([teams[1], teams[2], teams[3], teams[4]])
    for m in knockout["matches"]:
        assert teams[0] not in (m.team1_id, m.team2_id)


def test_withdrawal_then_knockout_from_unfinished_group(session: Session, make_teams, win):
    teams, result = _groups_of_three(session, make_teams)
    progression.withdraw_team(session, result["bracket"], teams[0])
    for m in result["matches"]:
        session.refresh(m)
        if m.status == MATCH_PENDING:
            win(session, m.id)

    knockout = group_stage.generate_knockout_from_groups(session, 1, 1)
    assert teams[0] not in knockout["qualified_team_ids"]
    assert len(knockout["qualified_team_ids"]) == 4
