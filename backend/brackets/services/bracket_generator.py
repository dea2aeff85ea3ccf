"""
Knockout bracket generation (pure, no persistence).

Given an ordered team list (seed 1 first) the generator pads to the next power
of two with byes, places seeds so the top seeds are maximally separated, and
wires every non-final match to its successor:

  8 teams  -> R1: 1v8, 4v5, 3v6, 2v7 ; SF: (1v8 | 4v5), (3v6 | 2v7) ; F

Match i (0-based) of a round feeds match i // 2 of the next round, slot 1 for
even i and slot 2 for odd i.
"""
import math
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from brackets.models.bracket import SeedingMethod
from brackets.services.errors import BracketValidationError

ROUND_NAMES_FROM_END = {
    1: "Final",
    2: "Semifinals",
    3: "Quarterfinals",
    4: "Round of 16",
}


@dataclass
class PlannedMatch:
    round_number: int
    sequence_in_round: int
    round_name: str
    team1_id: Optional[int]
    team2_id: Optional[int]
    is_bye: bool = False
    next_sequence: Optional[int] = None  # sequence_in_round of the match in round_number + 1
    next_slot: Optional[int] = None  # 1 = team1, 2 = team2

    @property
    def bye_winner_side(self) -> Optional[int]:
        if not self.is_bye:
            return None
        return 1 if self.team1_id is not None else 2


@dataclass
class KnockoutPlan:
    bracket_size: int
    total_rounds: int
    matches: List[PlannedMatch] = field(default_factory=list)

    def round(self, round_number: int) -> List[PlannedMatch]:
        return [m for m in self.matches if m.round_number == round_number]

    @property
    def match_count(self) -> int:
        return len(self.matches)


def next_power_of_two(n: int) -> int:
    power = 1
    while power < n:
        power *= 2
    return power


def round_count(team_count: int) -> int:
    """ceil(log2(n)); a single team plays no rounds."""
    if team_count <= 1:
        return 0
    return int(math.ceil(math.log2(team_count)))


def round_name(round_number: int, total_rounds: int) -> str:
    from_end = total_rounds - round_number + 1
    return ROUND_NAMES_FROM_END.get(from_end, f"Round {round_number}")


def seed_positions(bracket_size: int) -> List[int]:
    """
    Seed placed at each bracket line, top to bottom.

    Each doubling step replaces seed s by the pair (s, size + 1 - s), flipping
    the pair on odd indices so seed 2 ends up on the bottom line:
      2 -> [1, 2]
      4 -> [1, 4, 3, 2]
      8 -> [1, 8, 5, 4, 3, 6, 7, 2]
    """
    if bracket_size < 2:
        return [1] * bracket_size
    positions = [1, 2]
    size = 2
    while size < bracket_size:
        size *= 2
        expanded: List[int] = []
        for i, seed in enumerate(positions):
            opponent = size + 1 - seed
            if i % 2 == 0:
                expanded.extend([seed, opponent])
            else:
                expanded.extend([opponent, seed])
        positions = expanded
    return positions


def validate_team_ids(team_ids: Sequence[int]) -> None:
    if not team_ids:
        raise BracketValidationError("team_ids cannot be empty")
    seen = set()
    duplicates = []
    for team_id in team_ids:
        if team_id in seen:
            duplicates.append(team_id)
        seen.add(team_id)
    if duplicates:
        raise BracketValidationError(f"Duplicate team ids: {sorted(set(duplicates))}")


def resolve_seeding_method(seeding_method) -> SeedingMethod:
    try:
        return SeedingMethod(seeding_method)
    except ValueError:
        raise BracketValidationError("seeding_method must be 'random', 'manual', or 'ranking'")


def order_teams(team_ids: Sequence[int], seeding_method, rng: Optional[random.Random] = None) -> List[int]:
    """Apply the seeding method. manual/ranking keep the caller's order."""
    method = resolve_seeding_method(seeding_method)
    ordered = list(team_ids)
    if method == SeedingMethod.random:
        (rng or random.Random()).shuffle(ordered)
    return ordered


def generate_knockout(
    team_ids: Sequence[int],
    seeding_method=SeedingMethod.manual,
    rng: Optional[random.Random] = None,
) -> KnockoutPlan:
    """Build the full knockout structure for an ordered team list."""
    validate_team_ids(team_ids)
    seeded = order_teams(team_ids, seeding_method, rng)

    total_rounds = round_count(len(seeded))
    if total_rounds == 0:
        return KnockoutPlan(bracket_size=1, total_rounds=0, matches=[])

    bracket_size = 2 ** total_rounds
    positions = seed_positions(bracket_size)
    team_by_seed = {seed: team_id for seed, team_id in enumerate(seeded, start=1)}

    matches: List[PlannedMatch] = []
    name = round_name(1, total_rounds)
    for i in range(bracket_size // 2):
        seed_a, seed_b = sorted((positions[2 * i], positions[2 * i + 1]))
        team1 = team_by_seed.get(seed_a)
        team2 = team_by_seed.get(seed_b)
        matches.append(
            PlannedMatch(
                round_number=1,
                sequence_in_round=i + 1,
                round_name=name,
                team1_id=team1,
                team2_id=team2,
                is_bye=team1 is None or team2 is None,
            )
        )

    matches_in_round = bracket_size // 2
    for rnd in range(2, total_rounds + 1):
        matches_in_round //= 2
        name = round_name(rnd, total_rounds)
        for i in range(matches_in_round):
            matches.append(
                PlannedMatch(
                    round_number=rnd,
                    sequence_in_round=i + 1,
                    round_name=name,
                    team1_id=None,
                    team2_id=None,
                )
            )

    for m in matches:
        if m.round_number < total_rounds:
            index = m.sequence_in_round - 1
            m.next_sequence = index // 2 + 1
            m.next_slot = 1 if index % 2 == 0 else 2

    return KnockoutPlan(bracket_size=bracket_size, total_rounds=total_rounds, matches=matches)


def separate_group_rematches(seeded: List[int], group_of: dict) -> List[int]:
    """
    Swap teams so that no first-round pairing has two teams from the same
    group, when some other first-round line allows it. Seeds keep their
    lines; only team identities move.
    """
    n = len(seeded)
    if n < 4:
        return list(seeded)
    total_rounds = round_count(n)
    bracket_size = 2 ** total_rounds
    positions = seed_positions(bracket_size)
    result = list(seeded)

    pairs = []
    for i in range(bracket_size // 2):
        a, b = sorted((positions[2 * i], positions[2 * i + 1]))
        if b <= n:
            pairs.append((a - 1, b - 1))

    def group(index: int):
        return group_of.get(result[index])

    for i, (a, b) in enumerate(pairs):
        if group(a) is None or group(a) != group(b):
            continue
        for j, (oa, ob) in enumerate(pairs):
            if j == i:
                continue
            # Move b's team to ob's line: both resulting pairs must be clean
            if group(ob) != group(a) and group(oa) != group(b):
                result[b], result[ob] = result[ob], result[b]
                break
    return result
