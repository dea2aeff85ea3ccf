"""Pure knockout generation and round-robin helpers (no database)."""
import math
import random

import pytest

from brackets.services.bracket_generator import (
    generate_knockout,
    round_name,
    seed_positions,
    separate_group_rematches,
)
from brackets.services.errors import BracketValidationError
from brackets.utils.round_robin import (
    compute_group_sizes,
    group_name,
    rr_matches_per_group,
    rr_pairings_by_round,
    snake_seed,
)

SEEDED_8 = [101, 102, 103, 104, 105, 106, 107, 108]  # seed i -> team 100 + i


def _pairs(plan, round_number=1):
    return [(m.team1_id, m.team2_id) for m in plan.round(round_number)]


def test_eight_teams_standard_seeding():
    plan = generate_knockout(SEEDED_8, "manual")
    assert plan.match_count == 7
    assert plan.total_rounds == 3
    assert [len(plan.round(r)) for r in (1, 2, 3)] == [4, 2, 1]
    # 1v8, 4v5, 3v6, 2v7
    assert _pairs(plan) == [(101, 108), (104, 105), (103, 106), (102, 107)]
    assert not any(m.is_bye for m in plan.matches)


def test_round_names():
    plan = generate_knockout(SEEDED_8, "manual")
    assert {m.round_name for m in plan.round(1)} == {"Quarterfinals"}
    assert {m.round_name for m in plan.round(2)} == {"Semifinals"}
    assert plan.round(3)[0].round_name == "Final"
    assert round_name(2, 5) == "Round of 16"
    assert round_name(1, 5) == "Round 1"
    assert round_name(2, 6) == "Round 2"


def test_next_match_wiring():
    plan = generate_knockout(SEEDED_8, "manual")
    wiring = [(m.round_number, m.sequence_in_round, m.next_sequence, m.next_slot) for m in plan.matches]
    assert wiring == [
        (1, 1, 1, 1),
        (1, 2, 1, 2),
        (1, 3, 2, 1),
        (1, 4, 2, 2),
        (2, 1, 1, 1),
        (2, 2, 1, 2),
        (3, 1, None, None),
    ]


def test_top_two_seeds_meet_only_in_final():
    positions = seed_positions(16)
    assert positions.index(1) < 8 <= positions.index(2)
    assert sorted(positions) == list(range(1, 17))


@pytest.mark.parametrize("n", [2, 3, 4, 5, 6, 7, 8, 9, 12, 16, 17, 24, 32])
def test_round_count_and_byes(n):
    plan = generate_knockout(list(range(1, n + 1)), "manual")
    assert plan.total_rounds == math.ceil(math.log2(n))
    assert plan.bracket_size == 2 ** plan.total_rounds
    assert plan.match_count == plan.bracket_size - 1
    byes = [m for m in plan.matches if m.is_bye]
    assert len(byes) == plan.bracket_size - n
    # Byes only in round 1 and never two empty slots
    assert all(m.round_number == 1 for m in byes)
    assert all((m.team1_id is None) != (m.team2_id is None) for m in byes)


def test_byes_go_to_top_seeds():
    plan = generate_knockout([1, 2, 3, 4, 5], "manual")
    bye_teams = sorted(m.team1_id for m in plan.matches if m.is_bye)
    assert bye_teams == [1, 2, 3]
    assert all(m.bye_winner_side == 1 for m in plan.matches if m.is_bye)


def test_single_team_has_no_rounds():
    plan = generate_knockout([42], "manual")
    assert plan.total_rounds == 0
    assert plan.matches == []


def test_validation_errors():
    with pytest.raises(BracketValidationError, match="cannot be empty"):
        generate_knockout([], "manual")
    with pytest.raises(BracketValidationError, match="Duplicate"):
        generate_knockout([1, 2, 2, 3], "manual")
    with pytest.raises(BracketValidationError, match="seeding_method"):
        generate_knockout([1, 2], "alphabetical")


def test_random_seeding_uses_injected_rng():
    a = generate_knockout(SEEDED_8, "random", rng=random.Random(7))
    b = generate_knockout(SEEDED_8, "random", rng=random.Random(7))
    assert _pairs(a) == _pairs(b)
    teams = sorted(t for pair in _pairs(a) for t in pair)
    assert teams == SEEDED_8


def test_ranking_keeps_caller_order():
    assert _pairs(generate_knockout(SEEDED_8, "ranking")) == _pairs(generate_knockout(SEEDED_8, "manual"))


def test_separate_group_rematches_moves_same_group_pair():
    # Seeds 1 and 4 both from group A would meet in round 1
    groups = {"a1": 1, "b1": 2, "b2": 2, "a2": 1}
    seeded = separate_group_rematches(["a1", "b1", "b2", "a2"], groups)
    plan = generate_knockout(seeded, "manual")
    for t1, t2 in _pairs(plan):
        assert groups[t1] != groups[t2]


# ----------------------------------------------------------------------------
# Round robin
# ----------------------------------------------------------------------------


@pytest.mark.parametrize("n", [2, 3, 4, 5, 6])
def test_rr_pairings_cover_every_pair_once(n):
    pairings = rr_pairings_by_round(n)
    assert len(pairings) == rr_matches_per_group(n) == n * (n - 1) // 2
    pairs = {(a, b) for _, _, a, b in pairings}
    assert pairs == {(a, b) for a in range(n) for b in range(a + 1, n)}
    # Nobody plays twice in one round
    by_round = {}
    for rnd, _, a, b in pairings:
        seen = by_round.setdefault(rnd, set())
        assert a not in seen and b not in seen
        seen.update((a, b))


def test_group_names():
    assert group_name(1) == "Group A"
    assert group_name(4) == "Group D"


@pytest.mark.parametrize(
    "count,sizes",
    [(3, []), (4, [4]), (5, [5]), (6, [3, 3]), (7, [3, 4]), (8, [4, 4]), (9, [3, 3, 3]), (11, [3, 4, 4])],
)
def test_compute_group_sizes(count, sizes):
    assert compute_group_sizes(count) == sizes


def test_snake_seed():
    assert snake_seed([1, 2, 3, 4, 5, 6, 7, 8], [4, 4]) == [[1, 4, 5, 8], [2, 3, 6, 7]]
    assert snake_seed([1, 2, 3, 4, 5, 6, 7], [3, 4]) == [[1, 4, 5], [2, 3, 6, 7]]
    with pytest.raises(ValueError):
        snake_seed([1, 2, 3], [1, 1])
