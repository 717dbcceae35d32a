"""
Toppling alternation compliance.

Conjecture under test: with a single source, cells topple in a checkerboard
rhythm. At the transition from step `s`, positions with an even coordinate sum
are expected to topple iff `(source >= 0) == (s is even)`, and odd positions
the other way round. The tracker keeps one boolean per canonical cell saying
whether the cell's actual behaviour matched. It only observes: nothing here
feeds back into the values.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .grid_store import GridStore, slice_coordinates
from .symmetry import SymmetryReducer, canonicalize

COMPLIANCE_TAG = "anisotropic_bool"


class ComplianceTracker:
    def __init__(self, dimension: int, non_negative_source: bool) -> None:
        self.dimension = dimension
        self.non_negative_source = non_negative_source
        self.step: Optional[int] = None
        self._store: Optional[GridStore] = None

    # ------------------------------------------------------------------ rule
    def evens_turn(self, step: int) -> bool:
        return self.non_negative_source == (step % 2 == 0)

    def expected_toppling(self, coords: Sequence[int], step: int) -> bool:
        even = sum(abs(c) for c in coords) % 2 == 0
        return even == self.evens_turn(step)

    # ------------------------------------------------------------------ recording
    def begin(self, step: int, bound: int) -> None:
        """
        Start a fresh grid for the transition from `step`. Every cell starts
        out as "did not topple"; `record` overrides the processed ones.
        """
        store = GridStore(self.dimension, bound, dtype=np.bool_, allocate=False)
        evens_turn = self.evens_turn(step)
        for outer in range(bound + 1):
            even = slice_coordinates(outer, self.dimension).sum(axis=1) % 2 == 0
            values = store.allocate_slice(outer)
            # compliant iff toppled (False) == expected
            values[:] = even != evens_turn
        self._store = store
        self.step = step

    def record(self, coords: Sequence[int], toppled: bool) -> None:
        self._store.set(coords, toppled == self.expected_toppling(coords, self.step))

    def finish(self, new_bound: int) -> None:
        """Extend the grid to the bound of the generation just built."""
        if new_bound > self._store.bound:
            evens_turn = self.evens_turn(self.step)
            old_bound = self._store.bound
            self._store.resize(new_bound)
            for outer in range(old_bound + 1, new_bound + 1):
                even = slice_coordinates(outer, self.dimension).sum(axis=1) % 2 == 0
                self._store.slice_values(outer)[:] = even != evens_turn

    def rebuild(self, store: GridStore, engine, step: int, reducer: Optional[SymmetryReducer] = None) -> None:
        """
        Derive the compliance of the transition from `step` out of a value
        grid without producing the next generation (used after loading a
        backup that carries no usable compliance snapshot).
        """
        reducer = reducer or SymmetryReducer(self.dimension)
        kind = engine.kind
        self.begin(step, store.bound)
        for outer in range(store.bound):
            for row in slice_coordinates(outer, self.dimension):
                coords = tuple(int(c) for c in row)
                descriptors = reducer.neighbors(coords)
                neighbor_values = [kind.read(store.get(d.coordinate)) for d in descriptors]
                _, _, toppled = engine.topple(kind.read(store.get(coords)), neighbor_values, descriptors)
                self.record(coords, toppled)

    # ------------------------------------------------------------------ queries
    @property
    def ready(self) -> bool:
        return self._store is not None

    @property
    def bound(self) -> int:
        return self._store.bound

    def compliance_at_canonical(self, coords: Sequence[int]) -> bool:
        if self._store is None:
            raise RuntimeError("No transition has been recorded yet")
        coords = tuple(coords)
        if coords[-1] > self._store.bound:
            return not self.expected_toppling(coords, self.step)
        return bool(self._store.get(coords))

    def compliance_at(self, coords: Sequence[int]) -> bool:
        return self.compliance_at_canonical(canonicalize(coords))

    def is_fully_compliant(self) -> bool:
        if self._store is None:
            return True
        return all(bool(values.all()) for _, values in self._store.iter_slices())

    def non_compliant_count(self) -> int:
        if self._store is None:
            return 0
        return int(sum(np.count_nonzero(~values) for _, values in self._store.iter_slices()))

    # ------------------------------------------------------------------ snapshots
    def flatten(self) -> np.ndarray:
        return self._store.flatten()

    def restore(self, step: int, bound: int, flat: np.ndarray) -> None:
        self._store = GridStore.from_flat(self.dimension, bound, np.asarray(flat, dtype=np.bool_), dtype=np.bool_)
        self.step = step


__all__ = ["COMPLIANCE_TAG", "ComplianceTracker"]
