"""
Padel score validation.

Classic format (games-based, FIP rules for G games per set, default G=6):
  G-0 .. G-(G-2)     regular set
  (G+1)-(G-1)        extended set (7-5)
  (G+1)-G            tiebreak set (7-6), only when tie-breaks are allowed

Express format (points-based): first to P points wins the set (8-0 .. 8-7).

validate_sets() never raises for sport-illegal input. It returns either
ValidSets or InvalidScore and the caller decides what to do with a rejection.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple, Union

from brackets.services.bracket_config import MatchFormat

TIEBREAK_TARGET = 7
TIEBREAK_MARGIN = 2


@dataclass
class SetScore:
    team1: int
    team2: int
    tiebreak: Optional[Tuple[int, int]] = None  # only meaningful on (G+1)-G sets

    def to_document(self) -> dict:
        doc = {"team1": self.team1, "team2": self.team2}
        if self.tiebreak is not None:
            doc["tiebreak"] = {"team1": self.tiebreak[0], "team2": self.tiebreak[1]}
        return doc


@dataclass
class ValidSets:
    winner_side: int  # 1 | 2
    sets_won: Tuple[int, int]
    sets: List[SetScore] = field(default_factory=list)  # sets up to and including the deciding one

    @property
    def is_valid(self) -> bool:
        return True


@dataclass
class InvalidScore:
    reason: str

    @property
    def is_valid(self) -> bool:
        return False


ScoreValidation = Union[ValidSets, InvalidScore]


def coerce_set(raw: Any) -> SetScore:
    """Accept SetScore, (a, b) tuples, or {"team1", "team2", "tiebreak"} dicts."""
    if isinstance(raw, SetScore):
        return raw
    if isinstance(raw, dict):
        tb = raw.get("tiebreak")
        tiebreak = None
        if tb:
            tiebreak = (int(tb["team1"]), int(tb["team2"])) if isinstance(tb, dict) else (int(tb[0]), int(tb[1]))
        return SetScore(int(raw["team1"]), int(raw["team2"]), tiebreak)
    if hasattr(raw, "team1") and hasattr(raw, "team2"):
        tb = getattr(raw, "tiebreak", None)
        tiebreak = (int(tb.team1), int(tb.team2)) if tb is not None else None
        return SetScore(int(raw.team1), int(raw.team2), tiebreak)
    a, b = raw
    return SetScore(int(a), int(b))


def winning_set_scores(games_per_set: int = 6, allow_tiebreak: bool = True) -> List[Tuple[int, int]]:
    """Winning scores from the set winner's point of view, e.g. [(6, 0), ..., (6, 4), (7, 5), (7, 6)]."""
    scores = [(games_per_set, loser) for loser in range(0, games_per_set - 1)]
    scores.append((games_per_set + 1, games_per_set - 1))
    if allow_tiebreak:
        scores.append((games_per_set + 1, games_per_set))
    return scores


def is_valid_set_score(team1: int, team2: int, games_per_set: int = 6, allow_tiebreak: bool = True) -> bool:
    for a, b in winning_set_scores(games_per_set, allow_tiebreak):
        if (team1, team2) in ((a, b), (b, a)):
            return True
    return False


def _is_tiebreak_set(s: SetScore, games_per_set: int) -> bool:
    return {s.team1, s.team2} == {games_per_set + 1, games_per_set}


def _check_tiebreak(s: SetScore, index: int) -> Optional[str]:
    if s.tiebreak is None:
        return None
    tb1, tb2 = s.tiebreak
    high, low = max(tb1, tb2), min(tb1, tb2)
    if high < TIEBREAK_TARGET or high - low < TIEBREAK_MARGIN:
        return (
            f"Invalid tiebreak in set {index}: {tb1}-{tb2}. "
            f"Must be first to {TIEBREAK_TARGET} with a {TIEBREAK_MARGIN}-point lead"
        )
    # Tiebreak winner must be the set winner
    if (tb1 > tb2) != (s.team1 > s.team2):
        return f"Invalid tiebreak in set {index}: {tb1}-{tb2} does not match set winner"
    return None


def _check_express_set(s: SetScore, index: int, points: int) -> Optional[str]:
    team1_wins = s.team1 == points and s.team2 < points
    team2_wins = s.team2 == points and s.team1 < points
    if team1_wins or team2_wins:
        return None
    if s.team1 > points or s.team2 > points:
        return f"Invalid set {index} score: {s.team1}-{s.team2}. Maximum score is {points} points"
    if s.team1 == points and s.team2 == points:
        return f"Invalid set {index} score: {s.team1}-{s.team2}. Both teams cannot have {points} points"
    return f"Invalid set {index} score: {s.team1}-{s.team2}. One team must reach {points} points to win"


def _check_set(s: SetScore, index: int, fmt: MatchFormat) -> Optional[str]:
    if s.team1 < 0 or s.team2 < 0:
        return f"Invalid set {index} score: {s.team1}-{s.team2}. Scores cannot be negative"
    if fmt.points_per_set is not None:
        return _check_express_set(s, index, fmt.points_per_set)
    if not is_valid_set_score(s.team1, s.team2, fmt.games_per_set, fmt.tie_break):
        valid = ", ".join(f"{a}-{b}" for a, b in winning_set_scores(fmt.games_per_set, fmt.tie_break))
        return f"Invalid set {index} score: {s.team1}-{s.team2}. Valid scores: {valid}"
    if _is_tiebreak_set(s, fmt.games_per_set):
        return _check_tiebreak(s, index)
    return None


def validate_sets(raw_sets: Iterable[Any], match_format: Optional[MatchFormat] = None) -> ScoreValidation:
    """Validate an ordered list of set scores against the match format.

    Sets after the one that decides the match are not stored. They must be
    0-0 (unplayed) or otherwise legal set scores.
    """
    fmt = match_format or MatchFormat()
    try:
        sets = [coerce_set(s) for s in raw_sets]
    except (KeyError, TypeError, ValueError) as e:
        return InvalidScore(f"Malformed set score: {e}")

    if not sets:
        return InvalidScore("At least one set required")
    if len(sets) > fmt.sets:
        return InvalidScore(f"Maximum {fmt.sets} sets allowed")

    needed = fmt.sets_to_win
    won1 = 0
    won2 = 0
    counted: List[SetScore] = []

    decided_at = None
    for index, s in enumerate(sets, start=1):
        reason = _check_set(s, index, fmt)
        if reason:
            return InvalidScore(reason)

        counted.append(s)
        if s.team1 > s.team2:
            won1 += 1
        else:
            won2 += 1

        if won1 >= needed or won2 >= needed:
            decided_at = index
            break

    if decided_at is not None:
        # Unplayed sets may be sent as 0-0; anything else must still be a legal set
        for index, s in enumerate(sets[decided_at:], start=decided_at + 1):
            if s.team1 == 0 and s.team2 == 0:
                continue
            reason = _check_set(s, index, fmt)
            if reason:
                return InvalidScore(reason)

    if won1 >= needed:
        return ValidSets(winner_side=1, sets_won=(won1, won2), sets=counted)
    if won2 >= needed:
        return ValidSets(winner_side=2, sets_won=(won1, won2), sets=counted)
    return InvalidScore(f"Match incomplete: need {needed} set(s) to win (current: {won1}-{won2})")


def total_games(sets: Optional[List[dict]]) -> Tuple[int, int]:
    """Sum stored set documents into (team1_games, team2_games)."""
    team1 = 0
    team2 = 0
    for s in sets or []:
        team1 += int(s.get("team1", 0))
        team2 += int(s.get("team2", 0))
    return team1, team2
