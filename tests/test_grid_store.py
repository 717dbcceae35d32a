import itertools

import numpy as np
import pytest

from aether_sim.grid_store import (
    GridStore,
    simplex_index,
    slice_coordinates,
    slice_orbit_sizes,
    slice_size,
)
from aether_sim.symmetry import orbit_size


def test_slice_sizes():
    assert [slice_size(k, 1) for k in range(4)] == [1, 1, 1, 1]
    assert [slice_size(k, 2) for k in range(4)] == [1, 2, 3, 4]
    assert [slice_size(k, 3) for k in range(4)] == [1, 3, 6, 10]


@pytest.mark.parametrize("dimension", [1, 2, 3, 4])
def test_slice_coordinates_follow_storage_order(dimension):
    for outer in range(6):
        table = slice_coordinates(outer, dimension)
        assert table.shape == (slice_size(outer, dimension), dimension)
        for row, coords in enumerate(table):
            coords = tuple(int(c) for c in coords)
            assert coords[-1] == outer
            assert list(coords) == sorted(coords)
            assert simplex_index(coords) == row
        assert len({tuple(r) for r in table.tolist()}) == table.shape[0]


@pytest.mark.parametrize("dimension", [1, 2, 3, 4])
def test_orbits_cover_the_lattice(dimension):
    covered = 0
    for outer in range(5):
        sizes = slice_orbit_sizes(outer, dimension)
        coords = slice_coordinates(outer, dimension)
        for row, size in zip(coords, sizes):
            assert size == orbit_size(tuple(int(c) for c in row))
        covered += int(sizes.sum())
        assert covered == (2 * outer + 1) ** dimension


def test_slice_tables_are_read_only():
    table = slice_coordinates(3, 2)
    with pytest.raises(ValueError):
        table[0, 0] = 7


def test_get_set_add():
    store = GridStore(3, 2)
    store.set((0, 1, 2), 5)
    store.add((0, 1, 2), 3)
    assert store.get((0, 1, 2)) == 8
    assert store.get((1, 1, 2)) == 0
    assert store.bound == 2


def test_access_outside_bound():
    store = GridStore(2, 2)
    with pytest.raises(IndexError):
        store.get((0, 3))
    with pytest.raises(IndexError):
        store.get((0, 0, 0))
    with pytest.raises(IndexError):
        store.slice_values(5)


def test_resize_and_release():
    store = GridStore(2, 2)
    store.set((1, 2), 4)
    store.resize(4)
    assert store.bound == 4
    assert store.get((1, 2)) == 4
    assert store.get((3, 4)) == 0
    with pytest.raises(ValueError):
        store.resize(3)

    store.release_slice(0)
    assert not store.is_allocated(0)
    with pytest.raises(IndexError):
        store.get((0, 0))


def test_fixed_width_add_does_not_wrap():
    store = GridStore(2, 2, dtype=np.int8)
    store.set((0, 1), 100)
    with pytest.raises(OverflowError):
        store.add((0, 1), 100)


def test_flatten_round_trip():
    store = GridStore(3, 3)
    for i, coords in enumerate(itertools.combinations_with_replacement(range(4), 3)):
        store.set(coords, i)
    flat = store.flatten()
    assert len(flat) == sum(slice_size(k, 3) for k in range(4))

    restored = GridStore.from_flat(3, 3, flat)
    for coords in itertools.combinations_with_replacement(range(4), 3):
        assert restored.get(coords) == store.get(coords)

    with pytest.raises(ValueError, match="expected"):
        GridStore.from_flat(3, 4, flat)


def test_non_canonical_coordinate_is_rejected():
    store = GridStore(3, 3)
    with pytest.raises(IndexError, match="not canonical"):
        store.get((2, 1, 3))
    with pytest.raises(IndexError, match="not canonical"):
        store.set((0, 3, 2), 1)
