"""
Cell value representations for the Aether automaton.

Two families are supported:

- **Exact rational** (`rational`): `fractions.Fraction` held in object arrays.
  Shares are exact quotients, nothing is ever truncated.
- **Integers** (`bigint`, `int8` .. `int64`): shares are truncated quotients
  and the remainder stays with the source cell, so mass is still conserved
  exactly. Fixed-width kinds store numpy arrays of that width; the source value
  is validated once so that no redistribution can overflow the type.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from numbers import Integral, Rational
from typing import Dict, Optional, Tuple

import numpy as np


###############################################################################
# Single source bounds
###############################################################################


def max_neighboring_values_difference(dimension: int, source_value: int) -> int:
    """
    Largest value difference between neighbors over the whole evolution of a
    single source configuration.

    A non-negative source never produces a difference larger than itself. A
    negative source pulls value in from the background, and the first step
    leaves the origin at `v + (-v // 2) * (2N + 1)`.
    """
    if dimension <= 0:
        raise ValueError("Grid dimension must be greater than zero.")
    if source_value < 0:
        if dimension > 1:
            return abs(source_value + (-source_value // 2) * (2 * dimension + 1))
        return -source_value
    return source_value


def min_allowed_single_source_value(dimension: int, max_allowed_value: int) -> int:
    """
    Smallest single source value whose evolution keeps every intermediate
    value within `[-max_allowed_value - 1, max_allowed_value]`.
    """
    if max_allowed_value < 0:
        raise ValueError("Max allowed value cannot be less than zero.")
    if max_allowed_value == 0:
        return 0
    if dimension <= 0:
        raise ValueError("Grid dimension must be greater than zero.")
    if dimension == 1:
        return -max_allowed_value
    double_dimension_minus_one = 2 * dimension - 1
    if max_allowed_value < double_dimension_minus_one:
        return -1
    # 0 -> 0, -1 -> 1, -2 -> 2N - 1, then alternating -1 and +2N
    candidate = -((2 * max_allowed_value) // double_dimension_minus_one)
    off_by_one = candidate - 1
    if max_neighboring_values_difference(dimension, off_by_one) > max_allowed_value:
        return candidate
    return off_by_one


###############################################################################
# Value kinds
###############################################################################


@dataclass(frozen=True)
class ValueKind:
    """Arithmetic and storage rules for one value representation."""

    tag: str
    dtype: object
    exact: bool
    min_value: Optional[int] = None
    max_value: Optional[int] = None

    @property
    def bounded(self) -> bool:
        return self.max_value is not None

    def split(self, to_share, share_count: int) -> Tuple[object, object]:
        """Divide `to_share` into `share_count` shares, returning (share, remainder)."""
        if self.exact:
            return Fraction(to_share, share_count), 0
        return divmod(to_share, share_count)

    def read(self, raw):
        """Convert a stored element to a Python number for arithmetic."""
        if self.exact:
            return raw
        return int(raw)

    def fits(self, value) -> bool:
        if not self.bounded:
            return True
        return self.min_value <= value <= self.max_value

    def coerce_source(self, initial_value) -> object:
        """Validate a single source value and convert it to this representation."""
        if isinstance(initial_value, (bool, np.bool_)):
            if not self.exact:
                raise ValueError(
                    f"Boolean polarity sources require the rational value type, got '{self.tag}'"
                )
            return Fraction(1) if initial_value else Fraction(-1)
        if self.exact:
            if not isinstance(initial_value, (Rational, Integral)):
                raise ValueError(f"Unsupported initial value {initial_value!r}")
            return Fraction(initial_value)
        if isinstance(initial_value, Rational) and not isinstance(initial_value, Integral):
            if initial_value.denominator != 1:
                raise ValueError(
                    f"Initial value {initial_value} is not an integer; use the rational value type"
                )
        if not isinstance(initial_value, (Rational, Integral)):
            raise ValueError(f"Unsupported initial value {initial_value!r}")
        return int(initial_value)

    def source_range(self, dimension: int) -> Tuple[Optional[int], Optional[int]]:
        """Legal (min, max) single source values for a grid of `dimension` axes."""
        if not self.bounded:
            return None, None
        return min_allowed_single_source_value(dimension, self.max_value), self.max_value

    def validate_source(self, dimension: int, value) -> None:
        low, high = self.source_range(dimension)
        if low is not None and value < low:
            raise ValueError(
                f"Initial value cannot be smaller than {low:,} for dimension {dimension:,} "
                f"with value type '{self.tag}'. Use a greater initial value or a wider value type."
            )
        if high is not None and value > high:
            raise ValueError(
                f"Initial value cannot be greater than {high:,} with value type '{self.tag}'."
            )

    def encode(self, values: np.ndarray) -> np.ndarray:
        """Array form suitable for `np.savez` (text for object-backed kinds)."""
        if self.dtype is object:
            return np.array([str(v) for v in values], dtype=np.str_)
        return np.asarray(values, dtype=self.dtype)

    def decode(self, values: np.ndarray) -> np.ndarray:
        if self.dtype is object:
            parse = Fraction if self.exact else int
            out = np.empty(len(values), dtype=object)
            for i, text in enumerate(values):
                out[i] = parse(str(text))
            return out
        return np.asarray(values, dtype=self.dtype)


def _fixed_width(tag: str, dtype) -> ValueKind:
    info = np.iinfo(dtype)
    return ValueKind(tag=tag, dtype=dtype, exact=False, min_value=int(info.min), max_value=int(info.max))


RATIONAL = ValueKind(tag="rational", dtype=object, exact=True)
BIGINT = ValueKind(tag="bigint", dtype=object, exact=False)
INT8 = _fixed_width("int8", np.int8)
INT16 = _fixed_width("int16", np.int16)
INT32 = _fixed_width("int32", np.int32)
INT64 = _fixed_width("int64", np.int64)

VALUE_KINDS: Dict[str, ValueKind] = {
    kind.tag: kind for kind in (RATIONAL, BIGINT, INT8, INT16, INT32, INT64)
}


def get_value_kind(tag: str) -> ValueKind:
    try:
        return VALUE_KINDS[tag]
    except KeyError:
        raise ValueError(
            f"Unknown value type '{tag}'. Expected one of: {', '.join(VALUE_KINDS)}"
        ) from None


__all__ = [
    "ValueKind",
    "VALUE_KINDS",
    "RATIONAL",
    "BIGINT",
    "INT8",
    "INT16",
    "INT32",
    "INT64",
    "get_value_kind",
    "max_neighboring_values_difference",
    "min_allowed_single_source_value",
]
