"""
Round-robin pairing rules for group stages.

Pairings are returned as (round_index, sequence_in_round, idx_a, idx_b) where
idx_a, idx_b are 0-based positions in the group's seed order.
"""
from typing import List, Sequence, Tuple


def rr_matches_per_group(teams_per_group: int) -> int:
    """Return number of RR matches in a group: C(n, 2) = n*(n-1)/2."""
    return (teams_per_group * (teams_per_group - 1)) // 2


def rr_pairings_by_round(teams_per_group: int) -> List[Tuple[int, int, int, int]]:
    """
    Circle method. Position 0 is fixed and the rest rotate; for odd n a
    phantom BYE position is added and its pairings are skipped.

    Every pair of positions appears exactly once.
    """
    n = teams_per_group
    if n < 2:
        return []
    n2 = n + 1 if n % 2 == 1 else n
    half = n2 // 2
    bye_idx = n if n % 2 == 1 else -1

    result: List[Tuple[int, int, int, int]] = []
    positions = list(range(n2))

    for round_num in range(1, n2):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            seq += 1
            result.append((round_num, seq, min(a, b), max(a, b)))
        # Keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return result


def group_name(group_number: int) -> str:
    """1 -> 'Group A', 2 -> 'Group B', ..."""
    return f"Group {chr(ord('A') + group_number - 1)}"


def compute_group_sizes(team_count: int) -> List[int]:
    """
    Split a roster into groups of 3 and 4, as even as possible.

    4 and 5 teams stay in a single group; fewer than 4 cannot be grouped.
    """
    if team_count < 4:
        return []
    if team_count in (4, 5):
        return [team_count]
    remainder = team_count % 3
    groups_of_4 = {0: 0, 1: 1, 2: 2}[remainder]
    groups_of_3 = (team_count - groups_of_4 * 4) // 3
    return [3] * groups_of_3 + [4] * groups_of_4


def snake_seed(team_ids: Sequence[int], group_sizes: Sequence[int]) -> List[List[int]]:
    """
    Serpentine placement: row 1 goes left to right, row 2 right to left, ...
    Groups that are already full are skipped.
    """
    group_count = len(group_sizes)
    if group_count < 1 or not team_ids:
        return []
    if sum(group_sizes) < len(team_ids):
        raise ValueError(f"Group sizes {list(group_sizes)} cannot hold {len(team_ids)} teams")

    groups: List[List[int]] = [[] for _ in range(group_count)]
    team_index = 0
    row = 0
    while team_index < len(team_ids):
        order = range(group_count) if row % 2 == 0 else reversed(range(group_count))
        for gi in order:
            if team_index >= len(team_ids):
                break
            if len(groups[gi]) < group_sizes[gi]:
                groups[gi].append(team_ids[team_index])
                team_index += 1
        row += 1
    return groups
