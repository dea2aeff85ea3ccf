"""Padel set-score validation: classic and express formats, best-of-N decision, tiebreak detail."""
import pytest

from brackets.services.bracket_config import MatchFormat
from brackets.services.score_validator import (
    InvalidScore,
    SetScore,
    ValidSets,
    is_valid_set_score,
    total_games,
    validate_sets,
    winning_set_scores,
)


def test_six_five_is_rejected_with_value_in_reason():
    result = validate_sets([(6, 5)])
    assert isinstance(result, InvalidScore)
    assert not result.is_valid
    assert "set 1" in result.reason
    assert "6-5" in result.reason


def test_straight_sets_with_tiebreak_set():
    result = validate_sets([(6, 4), (7, 6)])
    assert isinstance(result, ValidSets)
    assert result.winner_side == 1
    assert result.sets_won == (2, 0)
    assert len(result.sets) == 2


def test_empty_sets_rejected():
    result = validate_sets([])
    assert not result.is_valid
    assert "At least one set" in result.reason


def test_three_set_match_team2_wins():
    result = validate_sets([(6, 4), (3, 6), (5, 7)])
    assert result.is_valid
    assert result.winner_side == 2
    assert result.sets_won == (1, 2)


def test_undecided_match_is_incomplete():
    result = validate_sets([(6, 4), (4, 6)])
    assert not result.is_valid
    assert "Match incomplete" in result.reason


def test_more_sets_than_format_allows():
    result = validate_sets([(6, 4), (4, 6), (6, 4), (6, 4)])
    assert not result.is_valid
    assert "Maximum 3 sets" in result.reason


def test_trailing_sets_after_decision_are_not_counted():
    result = validate_sets([(6, 4), (6, 4), (1, 6)])
    assert result.is_valid
    assert result.winner_side == 1
    assert result.sets_won == (2, 0)
    assert [(s.team1, s.team2) for s in result.sets] == [(6, 4), (6, 4)]

    unplayed = validate_sets([(6, 4), (6, 4), (0, 0)])
    assert unplayed.is_valid
    assert len(unplayed.sets) == 2


def test_illegal_trailing_set_is_rejected():
    result = validate_sets([(6, 4), (6, 4), (6, 5)])
    assert not result.is_valid
    assert "set 3" in result.reason
    assert "6-5" in result.reason


def test_negative_games_rejected():
    result = validate_sets([(6, -1), (6, 0)])
    assert not result.is_valid
    assert "negative" in result.reason


def test_seven_five_always_legal_seven_six_needs_tiebreak():
    no_tb = MatchFormat(tie_break=False)
    assert validate_sets([(7, 5), (6, 0)], no_tb).is_valid
    result = validate_sets([(7, 6), (6, 0)], no_tb)
    assert not result.is_valid
    assert "7-6" in result.reason


@pytest.mark.parametrize(
    "score,valid",
    [
        ((6, 0), True),
        ((6, 4), True),
        ((4, 6), True),
        ((7, 5), True),
        ((6, 7), True),
        ((6, 5), False),
        ((5, 3), False),
        ((8, 6), False),
        ((6, 6), False),
    ],
)
def test_is_valid_set_score(score, valid):
    assert is_valid_set_score(*score) is valid


def test_winning_scores_for_short_sets():
    assert winning_set_scores(4) == [(4, 0), (4, 1), (4, 2), (5, 3), (5, 4)]
    assert winning_set_scores(4, allow_tiebreak=False) == [(4, 0), (4, 1), (4, 2), (5, 3)]
    short = MatchFormat(games_per_set=4)
    assert validate_sets([(4, 2), (5, 4)], short).is_valid
    assert not validate_sets([(4, 3), (4, 0)], short).is_valid


def test_tiebreak_detail_is_optional_but_checked():
    ok = validate_sets([{"team1": 7, "team2": 6, "tiebreak": {"team1": 7, "team2": 5}}, {"team1": 6, "team2": 1}])
    assert ok.is_valid
    assert ok.sets[0].tiebreak == (7, 5)
    assert ok.sets[0].to_document() == {"team1": 7, "team2": 6, "tiebreak": {"team1": 7, "team2": 5}}

    short_margin = validate_sets([SetScore(7, 6, (7, 6)), SetScore(6, 1)])
    assert not short_margin.is_valid
    assert "tiebreak" in short_margin.reason

    wrong_winner = validate_sets([SetScore(7, 6, (4, 7)), SetScore(6, 1)])
    assert not wrong_winner.is_valid
    assert "does not match set winner" in wrong_winner.reason


def test_express_format_first_to_points():
    express = MatchFormat(sets=1, points_per_set=8)
    result = validate_sets([(8, 5)], express)
    assert result.is_valid
    assert result.winner_side == 1

    assert "Both teams" in validate_sets([(8, 8)], express).reason
    assert "Maximum score" in validate_sets([(9, 3)], express).reason
    assert "must reach 8" in validate_sets([(7, 5)], express).reason


def test_best_of_five():
    fmt = MatchFormat(sets=5)
    assert fmt.sets_to_win == 3
    result = validate_sets([(6, 4), (4, 6), (6, 3), (2, 6), (7, 5)], fmt)
    assert result.is_valid
    assert result.sets_won == (3, 2)


def test_malformed_set_rejected():
    result = validate_sets([{"team1": 6}])
    assert not result.is_valid
    assert "Malformed" in result.reason


def test_total_games():
    assert total_games([{"team1": 6, "team2": 4}, {"team1": 7, "team2": 6}]) == (13, 10)
    assert total_games(None) == (0, 0)
