# src/aether_sim/utils.py
from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from .values import VALUE_KINDS

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore


MODEL_NAME = "Aether"
FORMAT_VERSION = 1

# Accepted values of every tagged meta field
BACKUP_TAGS: Dict[str, tuple] = {
    "model": (MODEL_NAME,),
    "initial_configuration_type": ("single_source_at_origin",),
    "initial_configuration_implementation_type": ("integer", "rational", "boolean"),
    "grid_type": ("infinite_regular",),
    "grid_implementation_type": tuple(VALUE_KINDS),
    "coordinate_bounds_implementation_type": ("max_coordinate_integer",),
}
COMPLIANCE_TAGS = ("anisotropic_bool",)


class ConfigurationMismatchError(ValueError):
    """A backup does not match the configuration it is being loaded into."""


@dataclass
class AetherBackup:
    """Common container for a persisted Aether state."""

    meta: Dict[str, Any]
    grid: np.ndarray
    compliance: Optional[np.ndarray] = None


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def save_backup(
    path: str | os.PathLike[str], backup: AetherBackup, *, overwrite: bool = True
) -> None:
    """Serialize an AetherBackup to a compressed .npz archive."""
    out_dir = Path(path).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    out: Dict[str, Any] = {"grid": backup.grid, "meta": dict(backup.meta)}
    if backup.compliance is not None:
        out["compliance"] = np.asarray(backup.compliance, dtype=np.bool_)
    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    np.savez_compressed(path, **out)


def load_backup(path: str | os.PathLike[str]) -> AetherBackup:
    """
    Load a backup written by `save_backup` and check its tags. Unknown or
    missing tags raise ConfigurationMismatchError.
    """
    with np.load(path, allow_pickle=True) as data:
        if "meta" not in data or "grid" not in data:
            raise ConfigurationMismatchError(f"{path} is not an Aether backup (missing meta or grid)")
        meta = data["meta"].item()
        grid = data["grid"]
        compliance = data["compliance"] if "compliance" in data else None
    validate_meta(meta)
    return AetherBackup(meta=meta, grid=grid, compliance=compliance)


def validate_meta(meta: Dict[str, Any]) -> None:
    if meta.get("format_version") != FORMAT_VERSION:
        raise ConfigurationMismatchError(
            f"Unsupported backup format version {meta.get('format_version')!r}, expected {FORMAT_VERSION}"
        )
    for key, accepted in BACKUP_TAGS.items():
        if meta.get(key) not in accepted:
            raise ConfigurationMismatchError(
                f"Backup field '{key}' is {meta.get(key)!r}, expected one of {accepted}"
            )
    for key in ("grid_dimension", "coordinate_bounds", "step"):
        if not isinstance(meta.get(key), int) or meta[key] < 0:
            raise ConfigurationMismatchError(f"Backup field '{key}' is {meta.get(key)!r}")
    if meta["grid_dimension"] < 1:
        raise ConfigurationMismatchError("Backup grid dimension must be at least 1")
    tag = meta.get("compliance_implementation_type")
    if tag is not None and tag not in COMPLIANCE_TAGS:
        raise ConfigurationMismatchError(
            f"Backup field 'compliance_implementation_type' is {tag!r}, expected one of {COMPLIANCE_TAGS}"
        )


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; cannot parse TOML files")
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")


__all__ = [
    "AetherBackup",
    "ConfigurationMismatchError",
    "FORMAT_VERSION",
    "MODEL_NAME",
    "load_backup",
    "load_params",
    "now_str",
    "save_backup",
    "validate_meta",
]
