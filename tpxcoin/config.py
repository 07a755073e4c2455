"""
config.py
=========

Read analysis options from a YAML run file, e.g.::

    electrons: data/run042_electrons.parquet
    ions: data/run042_ions.parquet
    output: out/run042_r.npy
    geometry: radial
    bins:
      r: {start: 0, stop: 127, step: 1}
    simple_bg: false
    boundary: reject
    background_model: poisson
    columns:
      shot: trigger
      r: radius

Relative paths are resolved against the directory of the run file;
``$VAR`` and ``~`` are expanded.
"""

from __future__ import annotations

import functools
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .common.constants import GEOMETRY_COLUMNS, SHOT_COLUMN
from .histogram import BinRange
from .params import CoincidenceParams

__all__ = [
    "ColumnConfig",
    "AnalysisConfig",
    "parse_bin_range",
    "parse_bins",
    "load_config",
    "clear_config_cache",
    "resolve_path",
]


def resolve_path(path: Union[str, Path], base_dir: Optional[Path] = None) -> Path:
    """Expand ``$VAR``/``~`` in ``path`` and make it absolute.

    Relative paths are taken relative to ``base_dir`` (or the current
    working directory).
    """
    resolved = Path(os.path.expanduser(os.path.expandvars(str(path))))
    if resolved.is_absolute():
        return resolved
    base = base_dir if base_dir is not None else Path.cwd()
    return (base / resolved).resolve()


@dataclass
class ColumnConfig:
    """Names of the table columns holding each canonical field."""
    shot: str = SHOT_COLUMN
    x: str = "x"
    y: str = "y"
    r: str = "r"

    def rename_map(self) -> Dict[str, str]:
        """Mapping from file column name to canonical name (changed names only)."""
        canonical = {"shot": self.shot, "x": self.x, "y": self.y, "r": self.r}
        return {src: dst for dst, src in canonical.items() if src != dst}


@dataclass
class AnalysisConfig:
    """Top-level configuration object returned by :func:`load_config`."""
    params: CoincidenceParams = field(default_factory=CoincidenceParams)
    columns: ColumnConfig = field(default_factory=ColumnConfig)
    electron_path: Optional[Path] = None
    ion_path: Optional[Path] = None
    output_path: Optional[Path] = None


@functools.lru_cache(maxsize=None)
def _read_yaml(path: str | Path) -> dict:
    """Low-level cache shared by all YAML helpers."""
    with Path(path).expanduser().open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def parse_bin_range(spec: Any) -> BinRange:
    """Build a :class:`BinRange` from a YAML value.

    Accepted forms: a list of edges, ``{start, stop, step}`` (``stop``
    inclusive, ``step`` defaults to 1) or ``{n_bins}`` for edges
    ``0 .. n_bins - 1``.
    """
    if isinstance(spec, BinRange):
        return spec
    if isinstance(spec, Mapping):
        if "n_bins" in spec:
            n = int(spec["n_bins"])
            if n < 1:
                raise ValueError(f"n_bins must be >= 1, got {n}")
            return BinRange.from_range(0, n - 1, 1)
        missing = [k for k in ("start", "stop") if k not in spec]
        if missing:
            raise ValueError(f"Bin range mapping is missing fields {missing}")
        return BinRange.from_range(spec["start"], spec["stop"], spec.get("step", 1))
    if isinstance(spec, (list, tuple)):
        return BinRange(spec)
    raise ValueError(f"Cannot interpret bin range {spec!r}")


def parse_bins(spec: Any, geometry: Optional[str]):
    """Parse the ``bins`` block into the form accepted by ``bin_range`` options.

    ``bins`` is keyed by axis (``x``/``y`` or ``r``); a bare edge
    specification is accepted for radial geometry.
    """
    if spec is None:
        return None
    if isinstance(spec, Mapping) and any(k in spec for k in ("x", "y", "r")):
        if geometry is None:
            geometry = "cartesian" if "x" in spec else "radial"
        axes = GEOMETRY_COLUMNS[geometry]
        missing = [a for a in axes if a not in spec]
        if missing:
            raise ValueError(f"bins block for {geometry} geometry is missing axes {missing}")
        ranges = tuple(parse_bin_range(spec[a]) for a in axes)
        return ranges[0] if len(ranges) == 1 else ranges
    return parse_bin_range(spec)


def _flag(cfg: Mapping, key: str, default: Optional[bool]) -> Optional[bool]:
    value = cfg.get(key, default)
    if value is None and default is None:
        return None
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


def load_config(path: str | Path) -> AnalysisConfig:
    """Load an :class:`AnalysisConfig` from the YAML run file at ``path``."""
    run_path = Path(path).expanduser().resolve()
    cfg = _read_yaml(str(run_path))
    if not isinstance(cfg, Mapping):
        raise ValueError(f"Run config '{run_path}' must be a mapping")
    base_dir = run_path.parent

    geometry = cfg.get("geometry")
    clamp = _flag(cfg, "kovariance_clamp", None)
    params = CoincidenceParams(
        geometry=geometry,
        bin_range=parse_bins(cfg.get("bins"), geometry),
        simple_bg=_flag(cfg, "simple_bg", False),
        boundary=str(cfg.get("boundary", "reject")),
        background_model=str(cfg.get("background_model", "poisson")),
        ion_multiplicity=_flag(cfg, "ion_multiplicity", False),
        parallel=_flag(cfg, "parallel", True),
        kovariance_clamp=clamp,
    )

    columns_cfg = cfg.get("columns") or {}
    unknown = set(columns_cfg) - {"shot", "x", "y", "r"}
    if unknown:
        raise ValueError(f"Unknown column keys {sorted(unknown)} in '{run_path}'")
    columns = ColumnConfig(**{k: str(v) for k, v in columns_cfg.items()})

    def _path(key: str) -> Optional[Path]:
        value = cfg.get(key)
        return None if value is None else resolve_path(value, base_dir=base_dir)

    return AnalysisConfig(
        params=params,
        columns=columns,
        electron_path=_path("electrons"),
        ion_path=_path("ions"),
        output_path=_path("output"),
    )


def clear_config_cache() -> None:
    """Clear the in-memory YAML cache."""
    _read_yaml.cache_clear()
