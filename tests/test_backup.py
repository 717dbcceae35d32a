from fractions import Fraction

import numpy as np
import pytest

from aether_sim import AetherConfig, AetherSimulator, utils
from aether_sim.utils import ConfigurationMismatchError


def run_sim(steps, **config):
    sim = AetherSimulator(AetherConfig(**config))
    for _ in range(steps):
        sim.step()
    return sim


def assert_same_state(a, b):
    assert a.current_step() == b.current_step()
    assert a.current_bound() == b.current_bound()
    assert a.changed == b.changed
    for outer, values in a.store.iter_slices():
        assert list(values) == list(b.store.slice_values(outer))


@pytest.mark.parametrize("value_type, source", [("rational", Fraction(3, 2)), ("bigint", 10**25), ("int16", -300)])
def test_round_trip(tmp_path, value_type, source):
    sim = run_sim(5, dimension=2, initial_value=source, value_type=value_type)
    path = tmp_path / "aether.npz"
    sim.save(path)

    restored = AetherSimulator.from_backup(path)
    assert_same_state(sim, restored)
    assert restored.kind.tag == value_type
    assert restored.source == sim.source

    sim.step()
    restored.step()
    assert_same_state(sim, restored)


def test_meta_fields(tmp_path):
    sim = run_sim(2, dimension=3, initial_value=-40, value_type="int32")
    path = tmp_path / "nested" / "backup.npz"
    sim.save(path)
    backup = utils.load_backup(path)
    meta = backup.meta
    assert meta["model"] == "Aether"
    assert meta["initial_configuration_type"] == "single_source_at_origin"
    assert meta["initial_configuration_implementation_type"] == "integer"
    assert meta["initial_configuration"] == "-40"
    assert meta["grid_type"] == "infinite_regular"
    assert meta["grid_dimension"] == 3
    assert meta["grid_implementation_type"] == "int32"
    assert meta["coordinate_bounds"] == sim.current_bound()
    assert meta["step"] == 2
    assert "compliance_implementation_type" not in meta
    assert backup.compliance is None
    assert backup.grid.dtype == np.int32


def test_compliance_snapshot_round_trip(tmp_path):
    sim = run_sim(4, dimension=2, initial_value=1000, value_type="int64", track_compliance=True)
    path = tmp_path / "tracked.npz"
    sim.save(path)

    restored = AetherSimulator.from_backup(path, track_compliance=True)
    assert restored.compliance.step == 3
    assert np.array_equal(restored.compliance.flatten(), sim.compliance.flatten())


def test_compliance_rebuilt_when_missing(tmp_path):
    sim = run_sim(4, dimension=2, initial_value=1000, value_type="int64")
    path = tmp_path / "plain.npz"
    sim.save(path)

    restored = AetherSimulator.from_backup(path, track_compliance=True)
    assert restored.compliance.step == 4
    assert restored.compliance.bound == restored.current_bound()


def test_configuration_mismatch(tmp_path):
    sim = run_sim(2, dimension=2, initial_value=1000, value_type="int64")
    path = tmp_path / "backup.npz"
    sim.save(path)

    assert AetherSimulator.from_backup(path, AetherConfig(2, 1000, "int64")).current_step() == 2
    with pytest.raises(ConfigurationMismatchError, match="grid_dimension"):
        AetherSimulator.from_backup(path, AetherConfig(3, 1000, "int64"))
    with pytest.raises(ConfigurationMismatchError, match="grid_implementation_type"):
        AetherSimulator.from_backup(path, AetherConfig(2, 1000, "int32"))
    with pytest.raises(ConfigurationMismatchError, match="initial_configuration"):
        AetherSimulator.from_backup(path, AetherConfig(2, 999, "int64"))


def test_tampered_backup(tmp_path):
    sim = run_sim(1, dimension=2, initial_value=10, value_type="int64")
    meta = sim.snapshot()
    grid = sim.kind.encode(sim.store.flatten())

    path = tmp_path / "other_model.npz"
    utils.save_backup(path, utils.AetherBackup(meta={**meta, "model": "Sunflower"}, grid=grid))
    with pytest.raises(ConfigurationMismatchError, match="model"):
        utils.load_backup(path)

    path = tmp_path / "short_grid.npz"
    utils.save_backup(path, utils.AetherBackup(meta=meta, grid=grid[:-1]))
    with pytest.raises(ConfigurationMismatchError):
        AetherSimulator.from_backup(path)

    path = tmp_path / "wrong_dtype.npz"
    utils.save_backup(path, utils.AetherBackup(meta=meta, grid=grid.astype(np.int8)))
    with pytest.raises(ConfigurationMismatchError, match="stored as"):
        AetherSimulator.from_backup(path)


def test_missing_backup(tmp_path):
    with pytest.raises(FileNotFoundError):
        AetherSimulator.from_backup(tmp_path / "nowhere.npz")


def test_no_overwrite(tmp_path):
    sim = run_sim(0, dimension=1, initial_value=5, value_type="int8")
    path = tmp_path / "once.npz"
    sim.save(path)
    with pytest.raises(FileExistsError):
        sim.save(path, overwrite=False)


def test_load_params(tmp_path):
    json_path = tmp_path / "params.json"
    json_path.write_text('{"dimension": 3, "initial_value": -5, "value_type": "int16"}')
    toml_path = tmp_path / "params.toml"
    toml_path.write_text('dimension = 4\ninitial_value = "7/3"\nvalue_type = "rational"\n')

    assert AetherConfig.from_dict(utils.load_params(json_path)) == AetherConfig(3, -5, "int16")
    assert AetherConfig.from_dict(utils.load_params(toml_path)) == AetherConfig(4, Fraction(7, 3), "rational")
    yaml_path = tmp_path / "params.yaml"
    yaml_path.write_text("dimension: 2\n")
    with pytest.raises(ValueError, match="Unsupported"):
        utils.load_params(yaml_path)
