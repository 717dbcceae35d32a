"""
Point-symmetry reduction of the N-dimensional lattice.

The single source configuration is invariant under every axis permutation and
sign flip, so only the fundamental domain (absolute values sorted ascending)
is simulated. A stored cell then stands for a whole orbit of real positions,
and the toppling rule needs two numbers per stored neighbour:

- `symmetry_count`: how many of the cell's 2N real neighbours collapse onto
  this stored neighbour, i.e. how many divisor slots it takes in the waterfall.
- `share_multiplier`: how many real neighbours of that stored neighbour are
  copies of the cell, i.e. how many shares the single stored slot must absorb.

Both follow from counting real neighbours, which is what `_derive_offsets`
does. The result only depends on the coordinate's symmetry class, so the
offsets are derived once per class and reused.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import factorial
from typing import Dict, List, Sequence, Tuple

Coordinate = Tuple[int, ...]


@dataclass(frozen=True)
class NeighborOffset:
    """Class-relative neighbour: bump component `position` by `delta`."""

    position: int
    delta: int
    share_multiplier: int
    symmetry_count: int


@dataclass(frozen=True)
class NeighborDescriptor:
    coordinate: Coordinate
    share_multiplier: int
    symmetry_count: int


def canonicalize(coords: Sequence[int]) -> Coordinate:
    """Fundamental-domain representative: absolute values, sorted ascending."""
    return tuple(sorted(abs(int(c)) for c in coords))


def is_canonical(coords: Sequence[int]) -> bool:
    return all(c >= 0 for c in coords) and all(
        coords[i] <= coords[i + 1] for i in range(len(coords) - 1)
    )


def orbit_size(coords: Sequence[int]) -> int:
    """Number of real lattice positions represented by a canonical coordinate."""
    size = factorial(len(coords)) * 2 ** sum(1 for c in coords if c != 0)
    run = 1
    for i in range(1, len(coords)):
        if coords[i] == coords[i - 1]:
            run += 1
        else:
            size //= factorial(run)
            run = 1
    return size // factorial(run)


def real_neighbors(coords: Sequence[int]) -> List[Coordinate]:
    """The 2N von Neumann neighbours of a lattice position."""
    out = []
    for axis in range(len(coords)):
        for delta in (1, -1):
            moved = list(coords)
            moved[axis] += delta
            out.append(tuple(moved))
    return out


def symmetry_class(coords: Coordinate) -> Tuple[int, Tuple[int, ...]]:
    """
    Key grouping coordinates whose neighbour offsets are identical: whether the
    first component is 0, 1 or larger, and whether each gap between
    consecutive components is 0, 1 or larger.
    """
    gaps = tuple(min(coords[i + 1] - coords[i], 2) for i in range(len(coords) - 1))
    return min(coords[0], 2), gaps


def _derive_offsets(coords: Coordinate) -> Tuple[NeighborOffset, ...]:
    """Count real neighbours of `coords` (and back) to build its offsets."""
    counts: Dict[Coordinate, int] = {}
    for neighbor in real_neighbors(coords):
        key = canonicalize(neighbor)
        counts[key] = counts.get(key, 0) + 1
    offsets = []
    for neighbor, symmetry_count in counts.items():
        share_multiplier = sum(
            1 for back in real_neighbors(neighbor) if canonicalize(back) == coords
        )
        changed = [i for i in range(len(coords)) if neighbor[i] != coords[i]]
        assert len(changed) == 1, f"{neighbor} is not a single-step neighbour of {coords}"
        position = changed[0]
        offsets.append(
            NeighborOffset(
                position=position,
                delta=neighbor[position] - coords[position],
                share_multiplier=share_multiplier,
                symmetry_count=symmetry_count,
            )
        )
    offsets.sort(key=lambda o: (o.position, o.delta))
    return tuple(offsets)


class SymmetryReducer:
    """Neighbour descriptors of canonical cells, cached per symmetry class."""

    def __init__(self, dimension: int) -> None:
        if dimension < 1:
            raise ValueError(f"Dimension must be at least 1, got {dimension}")
        self.dimension = dimension
        self._offsets: Dict[Tuple[int, Tuple[int, ...]], Tuple[NeighborOffset, ...]] = {}

    def offsets(self, coords: Coordinate) -> Tuple[NeighborOffset, ...]:
        key = symmetry_class(coords)
        table = self._offsets.get(key)
        if table is None:
            table = _derive_offsets(tuple(coords))
            self._offsets[key] = table
        return table

    def neighbors(self, coords: Sequence[int]) -> List[NeighborDescriptor]:
        """Distinct canonical neighbours of a canonical cell."""
        coords = tuple(coords)
        if len(coords) != self.dimension:
            raise ValueError(f"Expected {self.dimension} coordinates, got {coords}")
        out = []
        for offset in self.offsets(coords):
            moved = list(coords)
            moved[offset.position] += offset.delta
            out.append(NeighborDescriptor(tuple(moved), offset.share_multiplier, offset.symmetry_count))
        return out

    @property
    def cached_classes(self) -> int:
        return len(self._offsets)


__all__ = [
    "Coordinate",
    "NeighborDescriptor",
    "NeighborOffset",
    "SymmetryReducer",
    "canonicalize",
    "is_canonical",
    "orbit_size",
    "real_neighbors",
    "symmetry_class",
]
