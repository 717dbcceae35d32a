"""
Anisotropic storage for the fundamental domain of an N-dimensional lattice.

Only canonical coordinates (non-negative, sorted ascending) are stored. The
grid is split into **slices** by its largest component `k`; slice `k` holds
every sorted tuple `(c_0, .., c_{N-2}, k)` with `c_{N-2} <= k`, i.e. a
simplex of `comb(k + N - 1, N - 1)` cells laid out in a flat numpy array.

Inside a slice the remaining components are addressed with the combinatorial
number system: a non-decreasing sequence `c_0 <= c_1 <= ...` maps to the
strictly increasing `c_i + i`, whose rank is `sum(comb(c_i + i, i + 1))`.
This gives a dense, gap-free index that grows slice by slice, so a new
generation can be built (and an old one freed) one slice at a time.
"""

from __future__ import annotations

from functools import lru_cache
from math import comb
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
from numba import njit

###############################################################################
# Slice enumeration kernels
###############################################################################


def slice_size(outer: int, dimension: int) -> int:
    """Number of canonical cells whose largest component is `outer`."""
    return comb(outer + dimension - 1, dimension - 1)


def simplex_index(coords: Sequence[int]) -> int:
    """Rank of a canonical coordinate inside its slice."""
    index = 0
    for i in range(len(coords) - 1):
        index += comb(coords[i] + i, i + 1)
    return index


@njit(cache=True)
def _fill_slice_coordinates(outer: int, out: np.ndarray) -> None:
    """
    Writes every canonical coordinate of slice `outer` into `out`, in storage
    (rank) order. The free components are advanced like an odometer in
    colexicographic order: bump the lowest component that is still below its
    right neighbour and reset everything before it.
    """
    rows, dimension = out.shape
    free = dimension - 1
    current = np.zeros(dimension, dtype=np.int64)
    current[dimension - 1] = outer
    for row in range(rows):
        for axis in range(dimension):
            out[row, axis] = current[axis]
        pivot = 0
        while pivot < free and current[pivot] >= current[pivot + 1]:
            pivot += 1
        if pivot == free:
            break
        current[pivot] += 1
        for axis in range(pivot):
            current[axis] = 0


@njit(cache=True)
def _fill_orbit_sizes(coords: np.ndarray, out: np.ndarray) -> None:
    """Orbit size `2**nonzero * N! / prod(run_length!)` of each canonical row."""
    rows, dimension = coords.shape
    factorial = 1
    for i in range(2, dimension + 1):
        factorial *= i
    for row in range(rows):
        size = factorial
        run = 1
        for axis in range(dimension):
            if coords[row, axis] != 0:
                size *= 2
            if axis > 0 and coords[row, axis] == coords[row, axis - 1]:
                run += 1
                size //= run
            else:
                run = 1
        out[row] = size


@lru_cache(maxsize=4096)
def slice_coordinates(outer: int, dimension: int) -> np.ndarray:
    """Read-only `(slice_size, dimension)` table of the slice's coordinates."""
    table = np.zeros((slice_size(outer, dimension), dimension), dtype=np.int64)
    _fill_slice_coordinates(outer, table)
    table.setflags(write=False)
    return table


@lru_cache(maxsize=4096)
def slice_orbit_sizes(outer: int, dimension: int) -> np.ndarray:
    """Read-only orbit sizes aligned with `slice_coordinates(outer, dimension)`."""
    coords = slice_coordinates(outer, dimension)
    sizes = np.zeros(coords.shape[0], dtype=np.int64)
    _fill_orbit_sizes(coords, sizes)
    sizes.setflags(write=False)
    return sizes


###############################################################################
# Store
###############################################################################


class GridStore:
    """
    Growable slice-by-slice storage of one generation.

    Slices `0 .. bound` exist logically; each is either allocated (a numpy
    array) or not (never allocated yet, or already released). Touching a
    missing slice or a coordinate beyond the bound raises `IndexError`.
    """

    def __init__(
        self,
        dimension: int,
        bound: int,
        dtype=np.int64,
        *,
        allocate: bool = True,
    ) -> None:
        if dimension < 1:
            raise ValueError(f"Dimension must be at least 1, got {dimension}")
        if bound < 0:
            raise ValueError(f"Bound must be non-negative, got {bound}")
        self.dimension = dimension
        self.dtype = dtype
        self._slices: List[Optional[np.ndarray]] = [None] * (bound + 1)
        if allocate:
            for outer in range(bound + 1):
                self.allocate_slice(outer)

    # ------------------------------------------------------------------ shape
    @property
    def bound(self) -> int:
        return len(self._slices) - 1

    def resize(self, new_bound: int, *, allocate: bool = True) -> None:
        """Extend the store up to `new_bound`. Stores never shrink."""
        if new_bound < self.bound:
            raise ValueError(f"Cannot shrink store from bound {self.bound} to {new_bound}")
        start = len(self._slices)
        self._slices.extend([None] * (new_bound - self.bound))
        if allocate:
            for outer in range(start, new_bound + 1):
                self.allocate_slice(outer)

    def allocate_slice(self, outer: int) -> np.ndarray:
        self._check_outer(outer)
        if self._slices[outer] is None:
            self._slices[outer] = np.zeros(slice_size(outer, self.dimension), dtype=self.dtype)
        return self._slices[outer]

    def release_slice(self, outer: int) -> None:
        """Drop the store's handle to a slice so its memory can be reclaimed."""
        self._check_outer(outer)
        self._slices[outer] = None

    def is_allocated(self, outer: int) -> bool:
        return 0 <= outer <= self.bound and self._slices[outer] is not None

    def slice_values(self, outer: int) -> np.ndarray:
        self._check_outer(outer)
        values = self._slices[outer]
        if values is None:
            raise IndexError(f"Slice {outer} is not allocated (released or never built)")
        return values

    def iter_slices(self) -> Iterator[Tuple[int, np.ndarray]]:
        for outer in range(self.bound + 1):
            yield outer, self.slice_values(outer)

    # ------------------------------------------------------------------ cells
    def _locate(self, coords: Sequence[int]) -> Tuple[np.ndarray, int]:
        if len(coords) != self.dimension:
            raise IndexError(
                f"Expected {self.dimension} coordinates, got {len(coords)}: {tuple(coords)}"
            )
        outer = coords[-1]
        if outer > self.bound or coords[0] < 0:
            raise IndexError(f"Coordinate {tuple(coords)} is outside bound {self.bound}")
        if any(coords[i] > coords[i + 1] for i in range(self.dimension - 1)):
            raise IndexError(f"Coordinate {tuple(coords)} is not canonical")
        return self.slice_values(outer), simplex_index(coords)

    def get(self, coords: Sequence[int]):
        values, index = self._locate(coords)
        return values[index]

    def set(self, coords: Sequence[int], value) -> None:
        values, index = self._locate(coords)
        values[index] = value

    def add(self, coords: Sequence[int], amount) -> None:
        values, index = self._locate(coords)
        current = values[index]
        if values.dtype != object:
            # widen to a Python int so fixed-width slots never wrap silently
            current = current.item()
        values[index] = current + amount

    # ------------------------------------------------------------------ snapshots
    def flatten(self) -> np.ndarray:
        """All slices concatenated in storage order (every slice must be allocated)."""
        return np.concatenate([values for _, values in self.iter_slices()])

    @classmethod
    def from_flat(cls, dimension: int, bound: int, flat: np.ndarray, dtype=np.int64) -> "GridStore":
        expected = sum(slice_size(outer, dimension) for outer in range(bound + 1))
        if len(flat) != expected:
            raise ValueError(
                f"Flat grid has {len(flat)} cells, expected {expected} for "
                f"dimension {dimension} and bound {bound}"
            )
        store = cls(dimension, bound, dtype, allocate=False)
        offset = 0
        for outer in range(bound + 1):
            size = slice_size(outer, dimension)
            values = np.empty(size, dtype=dtype)
            values[:] = flat[offset:offset + size]
            store._slices[outer] = values
            offset += size
        return store

    def _check_outer(self, outer: int) -> None:
        if not 0 <= outer <= self.bound:
            raise IndexError(f"Slice {outer} is outside bound {self.bound}")


__all__ = [
    "GridStore",
    "simplex_index",
    "slice_coordinates",
    "slice_orbit_sizes",
    "slice_size",
]
