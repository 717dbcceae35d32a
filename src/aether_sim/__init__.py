"""
Aether Sandpile Library

Single source Aether automaton on an infinite N-dimensional lattice:
- AetherSimulator: steps the automaton over the symmetry-reduced grid
- ComplianceTracker: checks the toppling alternation conjecture
- utils: backups (.npz) and parameter files
"""

from .aether import AetherConfig, AetherSimulator
from .compliance import ComplianceTracker
from .values import get_value_kind, min_allowed_single_source_value
from . import utils

__all__ = [
    # Simulator
    "AetherSimulator",
    "AetherConfig",
    # Observers
    "ComplianceTracker",
    # Values
    "get_value_kind",
    "min_allowed_single_source_value",
    # Utilities
    "utils",
]
