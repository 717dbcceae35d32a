"""
Per-cell transition of the Aether automaton (the "waterfall" rule).

A cell shares its value with the neighbours whose value is strictly lower.
Lower neighbours are paid tier by tier, starting with the highest-valued
(closest to the cell) one:

    share_count = 1 + sum(symmetry_count of lower neighbours)
    for each distinct neighbour value, highest first:
        to_share = remaining - tier_value
        share, remainder = split(to_share, share_count)
        every neighbour in this tier and all lower tiers gets share * multiplier
        remaining = remaining - to_share + remainder + share
        share_count -= symmetry_count of the neighbours just passed

The cell keeps `remaining`. With integer values the truncated remainder stays
at the source, so no value is ever lost. A tier whose share truncates to zero
moves nothing and does not count as a topple.
"""

from __future__ import annotations

from typing import Callable, List, Sequence, Tuple

from .symmetry import NeighborDescriptor
from .values import ValueKind

# (neighbor_value, share_multiplier, symmetry_count)
Neighbor = Tuple[object, int, int]
SplitFn = Callable[[object, int], Tuple[object, object]]


def topple_position(
    value,
    neighbors: Sequence[Neighbor],
    split: SplitFn,
) -> Tuple[List[object], object, bool]:
    """
    Redistribute `value` among its lower neighbours.

    Returns `(deltas, kept, toppled)`: the amount deposited in each neighbour
    slot (aligned with `neighbors`), the value the cell keeps, and whether any
    non-zero share moved.
    """
    deltas: List[object] = [0] * len(neighbors)
    lower = [i for i, neighbor in enumerate(neighbors) if neighbor[0] < value]
    count = len(lower)
    if count == 0:
        return deltas, value, False

    share_count = 1
    for i in lower:
        share_count += neighbors[i][2]

    if count == 1:
        i = lower[0]
        to_share = value - neighbors[i][0]
        share, remainder = split(to_share, share_count)
        if share == 0:
            return deltas, value, False
        deltas[i] = share * neighbors[i][1]
        return deltas, value - to_share + remainder + share, True

    if count == 2:
        return _topple_two(value, neighbors, lower, share_count, split, deltas)

    return _topple_sorted(value, neighbors, lower, share_count, split, deltas)


def _topple_two(value, neighbors, lower, share_count, split, deltas):
    first, second = lower
    if neighbors[second][0] > neighbors[first][0]:
        first, second = second, first
    high_value, high_multiplier, high_symmetry = neighbors[first]
    low_value, low_multiplier, _ = neighbors[second]

    to_share = value - high_value
    share, remainder = split(to_share, share_count)
    toppled = share != 0
    if toppled:
        deltas[first] = share * high_multiplier
        deltas[second] = share * low_multiplier
        value = value - to_share + remainder + share
    if low_value == high_value:
        return deltas, value, toppled

    share_count -= high_symmetry
    to_share = value - low_value
    share, remainder = split(to_share, share_count)
    if share != 0:
        toppled = True
        deltas[second] += share * low_multiplier
        value = value - to_share + remainder + share
    return deltas, value, toppled


def _topple_sorted(value, neighbors, lower, share_count, split, deltas):
    # sorted() is stable, so tied neighbours keep their gathering order
    order = sorted(lower, key=lambda i: neighbors[i][0], reverse=True)
    toppled = False
    previous = None
    for rank, i in enumerate(order):
        neighbor_value = neighbors[i][0]
        if rank == 0 or neighbor_value != previous:
            to_share = value - neighbor_value
            share, remainder = split(to_share, share_count)
            if share != 0:
                toppled = True
                value = value - to_share + remainder + share
                for j in order[rank:]:
                    deltas[j] += share * neighbors[j][1]
            previous = neighbor_value
        share_count -= neighbors[i][2]
    return deltas, value, toppled


class ToppleEngine:
    """`topple_position` bound to one value representation."""

    def __init__(self, kind: ValueKind) -> None:
        self.kind = kind

    def topple(
        self,
        value,
        neighbor_values: Sequence[object],
        descriptors: Sequence[NeighborDescriptor],
    ) -> Tuple[List[object], object, bool]:
        neighbors = [
            (neighbor_value, descriptor.share_multiplier, descriptor.symmetry_count)
            for neighbor_value, descriptor in zip(neighbor_values, descriptors)
        ]
        return topple_position(value, neighbors, self.kind.split)


__all__ = ["ToppleEngine", "topple_position"]
