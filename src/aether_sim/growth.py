"""
One generation sweep of the Aether automaton.

The next generation is built into a fresh store, slice by slice. A cell in
slice `k` only touches slices `k - 1 .. k + 1`, so the new slice `k + 1` is
allocated just before slice `k` is processed and the old slice `k - 1` is
released as soon as slice `k` is done. At most three old and three new slices
are live at the same time, whatever the size of the grid.

Bound invariant: every non-zero value sits in a slice `<= bound - 2`. Cells of
the two outer shells are therefore zero at the start of a sweep. Slice
`bound - 1` is still swept (a zero cell topples into a negative neighbour),
slice `bound` cannot topple. Whenever a cell of slice `bound - 2` or beyond
topples, the bound grows by one so the invariant holds again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .compliance import ComplianceTracker
from .grid_store import GridStore, slice_coordinates
from .symmetry import SymmetryReducer
from .topple import ToppleEngine

INITIAL_BOUND = 2
GROWTH_MARGIN = 2


@dataclass
class SweepResult:
    store: GridStore
    changed: bool
    grew: bool


class GridGrowthManager:
    """Drives the slice-by-slice sweep and the growth of the coordinate bound."""

    def __init__(self, reducer: SymmetryReducer) -> None:
        self.reducer = reducer

    def advance(
        self,
        store: GridStore,
        engine: ToppleEngine,
        step: int,
        tracker: Optional[ComplianceTracker] = None,
    ) -> SweepResult:
        """
        Compute the generation after `store`. The old store is consumed: its
        slices are released while the sweep runs and it must not be reused.
        """
        kind = engine.kind
        dimension = store.dimension
        bound = store.bound
        new = GridStore(dimension, bound, store.dtype, allocate=False)
        if tracker is not None:
            tracker.begin(step, bound)

        changed = False
        grew = False
        new.allocate_slice(0)
        for outer in range(bound):
            new.allocate_slice(outer + 1)
            for row in slice_coordinates(outer, dimension):
                coords = tuple(int(c) for c in row)
                value = kind.read(store.get(coords))
                descriptors = self.reducer.neighbors(coords)
                neighbor_values = [kind.read(store.get(d.coordinate)) for d in descriptors]
                deltas, kept, toppled = engine.topple(value, neighbor_values, descriptors)
                assert kind.fits(kept), f"{coords} keeps {kept}, outside the '{kind.tag}' range"
                for descriptor, delta in zip(descriptors, deltas):
                    if delta != 0:
                        new.add(descriptor.coordinate, delta)
                new.add(coords, kept)
                if toppled:
                    changed = True
                    if outer >= bound - GROWTH_MARGIN:
                        grew = True
                if tracker is not None:
                    tracker.record(coords, toppled)
            if outer > 0:
                store.release_slice(outer - 1)

        if grew:
            new.resize(bound + 1)
        if tracker is not None:
            tracker.finish(new.bound)
        return SweepResult(store=new, changed=changed, grew=grew)


__all__ = ["GROWTH_MARGIN", "INITIAL_BOUND", "GridGrowthManager", "SweepResult"]
