"""
Single-elimination seeding helpers.

seed_order(n) lists seed numbers in bracket position order; consecutive pairs
meet in the first round:
  4 -> [1, 4, 2, 3]
  8 -> [1, 8, 4, 5, 2, 7, 3, 6]
"""
import math
from typing import List, Tuple


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def seed_order(n: int) -> List[int]:
    if not is_power_of_two(n):
        raise ValueError(f"Bracket size must be a power of two, got {n}")
    if n == 1:
        return [1]
    half = seed_order(n // 2)
    order: List[int] = []
    for seed in half:
        order.append(seed)
        order.append(n + 1 - seed)
    return order


def rounds_for_size(n: int) -> int:
    """Number of rounds needed for an n-team bracket (n a power of two)."""
    return int(math.log2(n))


def next_position(round_no: int, match_no: int) -> Tuple[int, int, int]:
    """Where the winner of (round_no, match_no) goes: (round, match, slot)."""
    slot = 1 if match_no % 2 == 1 else 2
    return round_no + 1, (match_no + 1) // 2, slot

