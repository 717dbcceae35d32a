"""
Aether sandpile driver: single source at the origin of an infinite
N-dimensional lattice, evolved one synchronous generation at a time.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from . import utils
from .compliance import COMPLIANCE_TAG, ComplianceTracker
from .grid_store import GridStore, slice_orbit_sizes
from .growth import INITIAL_BOUND, GridGrowthManager
from .symmetry import SymmetryReducer, canonicalize, is_canonical
from .topple import ToppleEngine
from .values import ValueKind, get_value_kind


###############################################################################
# Configuration
###############################################################################


@dataclass
class AetherConfig:
    """Initial configuration and representation of an Aether run."""
    dimension: int = 2
    initial_value: int | Fraction | bool = 1000
    value_type: str = "int64"
    track_compliance: bool = False

    @classmethod
    def from_dict(cls, params: Optional[Dict[str, Any]] = None) -> "AetherConfig":
        params = params or {}
        defaults = cls()
        initial_value = params.get("initial_value", defaults.initial_value)
        if isinstance(initial_value, str):
            initial_value = parse_initial_value(initial_value)
        return cls(
            dimension=int(params.get("dimension", defaults.dimension)),
            initial_value=initial_value,
            value_type=str(params.get("value_type", defaults.value_type)),
            track_compliance=bool(params.get("track_compliance", defaults.track_compliance)),
        )


def parse_initial_value(text: str) -> int | Fraction | bool:
    """Parse "true", "false", "-1000" or "3/2" into a source value."""
    lowered = text.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        value = Fraction(lowered)
    except ValueError:
        raise ValueError(f"Cannot parse initial value {text!r}") from None
    if value.denominator == 1:
        return int(value)
    return value


def describe_initial_value(initial_value, source) -> Tuple[str, str]:
    """(implementation type, text) of a source value as written to backups."""
    if isinstance(initial_value, (bool, np.bool_)):
        return "boolean", "true" if initial_value else "false"
    if Fraction(source).denominator == 1:
        return "integer", str(int(source))
    return "rational", str(source)


###############################################################################
# Simulator
###############################################################################


class AetherSimulator:
    """
    Owns the current generation and the engine that advances it.

    Only the fundamental domain of the lattice is stored (see `symmetry`);
    `value_at` accepts any lattice position and folds it back.
    """

    def __init__(self, config: AetherConfig | None = None) -> None:
        self.config = config or AetherConfig()
        dimension = self.config.dimension
        if isinstance(dimension, bool) or not isinstance(dimension, int) or dimension < 1:
            raise ValueError(f"Grid dimension must be an integer >= 1, got {dimension!r}")
        self.dimension = dimension
        self.kind: ValueKind = get_value_kind(self.config.value_type)
        self.source = self.kind.coerce_source(self.config.initial_value)
        self.kind.validate_source(dimension, self.source)
        self.source_type, self.source_text = describe_initial_value(
            self.config.initial_value, self.source
        )

        self.reducer = SymmetryReducer(dimension)
        self.engine = ToppleEngine(self.kind)
        self.growth = GridGrowthManager(self.reducer)

        self.store = GridStore(dimension, INITIAL_BOUND, self.kind.dtype)
        self.store.set((0,) * dimension, self.source)
        self.tracker: Optional[ComplianceTracker] = None
        if self.config.track_compliance:
            self.tracker = ComplianceTracker(dimension, self.source >= 0)

        self._step = 0
        self.changed: Optional[bool] = None
        self.grew = False

    # ------------------------------------------------------------------ evolution
    def step(self) -> bool:
        """Advance one generation. Returns whether any cell toppled."""
        result = self.growth.advance(self.store, self.engine, self._step, self.tracker)
        self.store = result.store
        self._step += 1
        self.changed = result.changed
        self.grew = result.grew
        return result.changed

    def run(self, steps: int, *, stop_when_stable: bool = True) -> int:
        """
        Advance up to `steps` generations, stopping early once a step moves
        nothing. Returns the number of steps performed.
        """
        print(f"Running Aether: N={self.dimension}, source={self.source_text}, "
              f"type={self.kind.tag}, steps={steps}")
        start = time.perf_counter()
        done = 0
        for _ in range(steps):
            changed = self.step()
            done += 1
            if stop_when_stable and not changed:
                break
        elapsed = time.perf_counter() - start
        state = "stable" if self.changed is False else "active"
        print(f"Finished {done} steps ({state}): step={self._step}, "
              f"bound={self.current_bound()}, {elapsed:.2f}s")
        return done

    # ------------------------------------------------------------------ queries
    def current_bound(self) -> int:
        return self.store.bound

    def current_step(self) -> int:
        return self._step

    @property
    def compliance(self) -> Optional[ComplianceTracker]:
        return self.tracker

    def value_at(self, coords: Sequence[int]):
        """Value at any lattice position; the background beyond the bound is 0."""
        if len(coords) != self.dimension:
            raise ValueError(f"Expected {self.dimension} coordinates, got {tuple(coords)}")
        return self.value_at_canonical(canonicalize(coords))

    def value_at_canonical(self, coords: Sequence[int]):
        coords = tuple(int(c) for c in coords)
        if len(coords) != self.dimension or not is_canonical(coords):
            raise ValueError(f"{coords} is not a canonical {self.dimension}D coordinate")
        if coords[-1] > self.store.bound:
            raw = 0
        else:
            raw = self.kind.read(self.store.get(coords))
        return Fraction(raw) if self.kind.exact else raw

    def total_mass(self):
        """Sum of all values over the whole (unfolded) lattice."""
        total = 0
        for outer, values in self.store.iter_slices():
            orbits = slice_orbit_sizes(outer, self.dimension).astype(object)
            total += values.astype(object).dot(orbits)
        return Fraction(total) if self.kind.exact else int(total)

    # ------------------------------------------------------------------ persistence
    def snapshot(self) -> Dict[str, Any]:
        """Plain metadata describing the current state (the backup's meta dict)."""
        meta: Dict[str, Any] = {
            "model": utils.MODEL_NAME,
            "format_version": utils.FORMAT_VERSION,
            "initial_configuration_type": "single_source_at_origin",
            "initial_configuration_implementation_type": self.source_type,
            "initial_configuration": self.source_text,
            "grid_type": "infinite_regular",
            "grid_dimension": self.dimension,
            "grid_implementation_type": self.kind.tag,
            "coordinate_bounds_implementation_type": "max_coordinate_integer",
            "coordinate_bounds": self.store.bound,
            "step": self._step,
            "changed": self.changed,
        }
        if self.tracker is not None and self.tracker.ready:
            meta["compliance_implementation_type"] = COMPLIANCE_TAG
            meta["compliance_step"] = self.tracker.step
        return meta

    def save(self, path, *, overwrite: bool = True) -> None:
        compliance = None
        if self.tracker is not None and self.tracker.ready:
            compliance = self.tracker.flatten()
        backup = utils.AetherBackup(
            meta=self.snapshot(),
            grid=self.kind.encode(self.store.flatten()),
            compliance=compliance,
        )
        utils.save_backup(path, backup, overwrite=overwrite)

    @classmethod
    def from_backup(
        cls,
        path,
        config: AetherConfig | None = None,
        *,
        track_compliance: Optional[bool] = None,
    ) -> "AetherSimulator":
        """
        Resume from a backup. When `config` is given, the backup must match
        its dimension, value type and initial value exactly.

        A restored compliance snapshot describes the transition from
        `compliance_step` (the loaded step minus one). A tracker rebuilt from
        the grid, when the backup has no usable snapshot, describes the
        transition from the loaded step itself.
        """
        backup = utils.load_backup(path)
        meta = backup.meta
        implementation = meta["initial_configuration_implementation_type"]
        try:
            stored_value = parse_initial_value(meta.get("initial_configuration"))
        except (ValueError, AttributeError):
            raise utils.ConfigurationMismatchError(
                f"Backup initial configuration {meta.get('initial_configuration')!r} is not a value"
            ) from None
        if implementation == "boolean" and not isinstance(stored_value, bool):
            raise utils.ConfigurationMismatchError(
                f"Backup initial configuration {meta['initial_configuration']!r} is not a polarity"
            )

        if config is None:
            config = AetherConfig(
                dimension=meta["grid_dimension"],
                initial_value=stored_value,
                value_type=meta["grid_implementation_type"],
                track_compliance=bool(track_compliance),
            )
            try:
                sim = cls(config)
            except ValueError as exc:
                raise utils.ConfigurationMismatchError(f"Backup configuration is invalid: {exc}") from exc
        else:
            if track_compliance is not None:
                config = AetherConfig(
                    config.dimension, config.initial_value, config.value_type, track_compliance
                )
            sim = cls(config)
        _check_matches(sim, meta)

        kind = sim.kind
        grid = backup.grid
        if kind.dtype is object:
            if grid.dtype.kind != "U":
                raise utils.ConfigurationMismatchError(
                    f"Grid of type '{kind.tag}' must be stored as text, found {grid.dtype}"
                )
        elif grid.dtype != np.dtype(kind.dtype):
            raise utils.ConfigurationMismatchError(
                f"Grid of type '{kind.tag}' stored as {grid.dtype}"
            )
        bound = meta["coordinate_bounds"]
        try:
            sim.store = GridStore.from_flat(sim.dimension, bound, kind.decode(grid), kind.dtype)
        except ValueError as exc:
            raise utils.ConfigurationMismatchError(str(exc)) from None
        sim._step = meta["step"]
        sim.changed = meta.get("changed")

        if sim.tracker is not None:
            compliance = backup.compliance
            compliance_step = meta.get("compliance_step")
            usable = (
                compliance is not None
                and isinstance(compliance_step, int)
                and meta.get("compliance_implementation_type") == COMPLIANCE_TAG
                and len(compliance) == len(grid)
            )
            if usable:
                sim.tracker.restore(compliance_step, bound, compliance)
            else:
                sim.tracker.rebuild(sim.store, sim.engine, sim._step, sim.reducer)
        return sim


def _check_matches(sim: AetherSimulator, meta: Dict[str, Any]) -> None:
    expected = {
        "grid_dimension": sim.dimension,
        "grid_implementation_type": sim.kind.tag,
        "initial_configuration_implementation_type": sim.source_type,
        "initial_configuration": sim.source_text,
    }
    for key, value in expected.items():
        if meta.get(key) != value:
            raise utils.ConfigurationMismatchError(
                f"Backup has {key}={meta.get(key)!r} but the configuration expects {value!r}"
            )


__all__ = ["AetherConfig", "AetherSimulator", "describe_initial_value", "parse_initial_value"]


if __name__ == "__main__":
    # Standalone execution for testing
    sim = AetherSimulator(AetherConfig(dimension=2, initial_value=1000))
    sim.run(steps=10_000)
    print(f"Origin value {sim.value_at((0, 0))}, total mass {sim.total_mass()}")
