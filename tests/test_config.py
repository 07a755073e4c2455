"""
test_config.py
==============

Unit tests for config.py - YAML run files, bin specifications and path resolution.
"""
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
import yaml

# Ensure package root is on the path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from tpxcoin.config import (
    AnalysisConfig,
    ColumnConfig,
    clear_config_cache,
    load_config,
    parse_bin_range,
    parse_bins,
    resolve_path,
)
from tpxcoin.errors import PreconditionError
from tpxcoin.histogram import BinRange


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_config_cache()
    yield
    clear_config_cache()


def _write(path: Path, data: dict) -> Path:
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


class TestParseBinRange:

    def test_list(self):
        assert parse_bin_range([0, 1, 4]) == BinRange([0, 1, 4])

    def test_start_stop_step(self):
        br = parse_bin_range({"start": 0, "stop": 10, "step": 2.5})
        assert np.allclose(br.edges, [0, 2.5, 5, 7.5, 10])

    def test_n_bins(self):
        br = parse_bin_range({"n_bins": 128})
        assert len(br) == 128
        assert br.lower == 0 and br.upper == 128

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_bin_range({"start": 0})
        with pytest.raises(ValueError):
            parse_bin_range("0:10")
        with pytest.raises(PreconditionError):
            parse_bin_range([3, 1])


def test_parse_bins_by_axis():
    car = parse_bins({"x": {"n_bins": 4}, "y": [0, 2, 4]}, None)
    assert isinstance(car, tuple) and len(car) == 2
    assert len(car[0]) == 4 and len(car[1]) == 3
    rad = parse_bins({"r": {"n_bins": 8}}, "radial")
    assert isinstance(rad, BinRange) and len(rad) == 8
    assert parse_bins(None, "radial") is None
    with pytest.raises(ValueError):
        parse_bins({"x": {"n_bins": 4}}, "cartesian")


def test_resolve_path(tmp_path, monkeypatch):
    monkeypatch.setenv("TPX_DATA", str(tmp_path))
    assert resolve_path("$TPX_DATA/run.csv") == tmp_path / "run.csv"
    assert resolve_path("run.csv", base_dir=tmp_path) == (tmp_path / "run.csv").resolve()
    assert resolve_path(tmp_path / "abs.csv") == tmp_path / "abs.csv"


def test_load_config(tmp_path):
    cfg = _write(tmp_path / "run.yaml", {
        "electrons": "data/ele.parquet",
        "ions": "data/ion.parquet",
        "output": "out/spec.npy",
        "geometry": "radial",
        "bins": {"r": {"start": 0, "stop": 63}},
        "simple_bg": True,
        "boundary": "clamp",
        "columns": {"shot": "trigger", "r": "radius"},
    })
    config = load_config(cfg)
    assert isinstance(config, AnalysisConfig)
    assert config.electron_path == (tmp_path / "data/ele.parquet").resolve()
    assert config.ion_path == (tmp_path / "data/ion.parquet").resolve()
    assert config.output_path == (tmp_path / "out/spec.npy").resolve()
    p = config.params
    assert p.geometry == "radial"
    assert p.simple_bg is True
    assert p.boundary == "clamp"
    assert p.background_model == "poisson"
    assert p.kovariance_clamp is None
    assert len(p.bin_range) == 64
    assert config.columns.rename_map() == {"trigger": "shot", "radius": "r"}


def test_load_config_defaults(tmp_path):
    config = load_config(_write(tmp_path / "empty.yaml", {}))
    assert config.params.bin_range is None
    assert config.params.simple_bg is False
    assert config.electron_path is None
    assert config.columns == ColumnConfig()


def test_load_config_rejects_bad_values(tmp_path):
    with pytest.raises(ValueError):
        load_config(_write(tmp_path / "a.yaml", {"boundary": "wrap"}))
    with pytest.raises(ValueError):
        load_config(_write(tmp_path / "b.yaml", {"columns": {"tof": "t"}}))


def test_config_cache(tmp_path):
    cfg = _write(tmp_path / "run.yaml", {"simple_bg": True})
    assert load_config(cfg).params.simple_bg is True
    _write(cfg, {"simple_bg": False})
    assert load_config(cfg).params.simple_bg is True
    clear_config_cache()
    assert load_config(cfg).params.simple_bg is False


@pytest.mark.parametrize("key", ["simple_bg", "ion_multiplicity", "parallel", "kovariance_clamp"])
def test_load_config_flags_must_be_booleans(tmp_path, key):
    with pytest.raises(ValueError, match=key):
        load_config(_write(tmp_path / "flag.yaml", {key: "false"}))
    with pytest.raises(ValueError, match=key):
        load_config(_write(tmp_path / "flag1.yaml", {key: 1}))


def test_load_config_kovariance_clamp_may_be_null(tmp_path):
    config = load_config(_write(tmp_path / "clamp.yaml", {"kovariance_clamp": None, "parallel": False}))
    assert config.params.kovariance_clamp is None
    assert config.params.parallel is False
