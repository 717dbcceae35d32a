from fractions import Fraction

import numpy as np
import pytest

from aether_sim.values import (
    BIGINT,
    INT8,
    INT32,
    INT64,
    RATIONAL,
    get_value_kind,
    max_neighboring_values_difference,
    min_allowed_single_source_value,
)


def test_min_initial_values_match_known_constants():
    assert min_allowed_single_source_value(2, 2**31 - 1) == -1431655765
    assert min_allowed_single_source_value(2, 2**63 - 1) == -6148914691236517205
    assert min_allowed_single_source_value(2, 127) == -85
    assert min_allowed_single_source_value(1, 127) == -127
    assert min_allowed_single_source_value(3, 0) == 0


def test_min_initial_value_keeps_differences_in_range():
    for dimension in (2, 3, 4, 5):
        low = min_allowed_single_source_value(dimension, 127)
        assert max_neighboring_values_difference(dimension, low) <= 127
        assert max_neighboring_values_difference(dimension, low - 1) > 127


def test_source_range_of_fixed_width_kinds():
    assert INT32.source_range(2) == (-1431655765, 2**31 - 1)
    assert RATIONAL.source_range(2) == (None, None)
    assert BIGINT.source_range(7) == (None, None)


def test_unknown_value_type():
    assert get_value_kind("int16").max_value == 32767
    with pytest.raises(ValueError, match="Unknown value type"):
        get_value_kind("float64")


def test_coerce_source():
    assert RATIONAL.coerce_source(True) == Fraction(1)
    assert RATIONAL.coerce_source(False) == Fraction(-1)
    assert RATIONAL.coerce_source(Fraction(3, 2)) == Fraction(3, 2)
    assert INT64.coerce_source(Fraction(4, 2)) == 2
    assert isinstance(BIGINT.coerce_source(10**30), int)
    with pytest.raises(ValueError, match="rational"):
        INT64.coerce_source(True)
    with pytest.raises(ValueError, match="not an integer"):
        INT64.coerce_source(Fraction(3, 2))
    with pytest.raises(ValueError):
        INT64.coerce_source("1000")


def test_validate_source():
    INT8.validate_source(2, -85)
    INT8.validate_source(2, 127)
    with pytest.raises(ValueError, match="smaller than -85"):
        INT8.validate_source(2, -86)
    with pytest.raises(ValueError, match="greater than 127"):
        INT8.validate_source(2, 128)
    BIGINT.validate_source(3, -(10**40))


def test_split_truncates_integers_only():
    assert INT64.split(7, 3) == (2, 1)
    assert INT64.split(-7, 3) == (-3, 2)
    assert RATIONAL.split(Fraction(7), 3) == (Fraction(7, 3), 0)
    assert RATIONAL.split(Fraction(1, 5), 4) == (Fraction(1, 20), 0)


def test_object_kinds_store_text():
    values = np.empty(3, dtype=object)
    values[:] = [Fraction(1, 5), 0, Fraction(-7, 3)]
    encoded = RATIONAL.encode(values)
    assert encoded.dtype.kind == "U"
    assert list(RATIONAL.decode(encoded)) == [Fraction(1, 5), 0, Fraction(-7, 3)]

    big = np.empty(2, dtype=object)
    big[:] = [10**30, -3]
    assert list(BIGINT.decode(BIGINT.encode(big))) == [10**30, -3]
