import sys
import pathlib

import numpy as np
import pandas as pd
import pytest

# Ensure package root is on the path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from tpxcoin.errors import BinningError, PreconditionError
from tpxcoin.events import EventTable
from tpxcoin.histogram import (
    BinRange,
    car_coin_background,
    car_coin_measurement,
    coin_background,
    coin_measurement,
    r_coin_background,
    r_coin_measurement,
    resolve_bin_ranges,
)


def _electrons_r():
    shots = [1, 1, 2, 3, 3, 3, 4, 5, 5, 6]
    return pd.DataFrame({"shot": shots, "r": [0, 1, 2, 3, 4, 5, 6, 7, 8, 9]})


def _ions():
    return pd.DataFrame({"shot": [2, 5, 6]})


def _random_tables(seed, n_shots=200, geometry="cartesian"):
    rng = np.random.default_rng(seed)
    ele_shots = np.sort(rng.integers(0, n_shots, size=600))
    ion_shots = np.sort(rng.integers(0, n_shots, size=150))
    if geometry == "cartesian":
        ele = pd.DataFrame({
            "shot": ele_shots,
            "x": rng.integers(0, 256, size=ele_shots.size),
            "y": rng.integers(0, 256, size=ele_shots.size),
        })
    else:
        ele = pd.DataFrame({"shot": ele_shots, "r": rng.uniform(0, 128, size=ele_shots.size)})
    return ele, pd.DataFrame({"shot": ion_shots})


class TestBinRange:

    def test_from_range_is_inclusive(self):
        br = BinRange.from_range(0, 10, 2)
        assert np.array_equal(br.edges, [0, 2, 4, 6, 8, 10])
        assert len(br) == 6
        assert br.upper == 12

    def test_single_edge_has_unit_width(self):
        br = BinRange([5])
        assert br.step == 1.0
        assert br.upper == 6.0

    @pytest.mark.parametrize("edges", [[], [0, 0, 1], [3, 2, 1], [0, np.nan]])
    def test_invalid_edges(self, edges):
        with pytest.raises(PreconditionError):
            BinRange(edges)

    def test_edges_are_read_only(self):
        br = BinRange(range(4))
        with pytest.raises(ValueError):
            br.edges[0] = 10

    def test_edge_values_start_their_bin(self):
        br = BinRange([0, 10, 20, 30])
        idx = br.digitize([0, 10, 20, 30, 9.99, 39.9])
        assert list(idx) == [0, 1, 2, 3, 0, 3]

    def test_reject_out_of_range(self):
        br = BinRange([0, 10, 20])
        with pytest.raises(BinningError):
            br.digitize([-0.5])
        with pytest.raises(BinningError):
            br.digitize([30])
        with pytest.raises(BinningError):
            br.digitize([np.nan], boundary="clamp")

    def test_clamp_out_of_range(self):
        br = BinRange([0, 10, 20])
        idx = br.digitize([-5, 0, 29.9, 30, 1000], boundary="clamp")
        assert list(idx) == [0, 0, 2, 2, 2]

    def test_extended_edges(self):
        assert np.array_equal(BinRange([0, 1, 2]).extended_edges(), [0, 1, 2, 3])


def test_resolve_bin_ranges_defaults():
    car = resolve_bin_ranges(None, "cartesian")
    assert [len(b) for b in car] == [256, 256]
    rad = resolve_bin_ranges(None, "radial")
    assert [len(b) for b in rad] == [128]
    assert resolve_bin_ranges(range(0, 2), "radial")[0] == BinRange([0, 1])
    assert resolve_bin_ranges(([0, 1, 2],), "radial")[0] == BinRange([0, 1, 2])
    with pytest.raises(PreconditionError):
        resolve_bin_ranges([range(4)], "cartesian")
    with pytest.raises(PreconditionError):
        resolve_bin_ranges(BinRange([0, 1, 2]), "cartesian")


def test_scenario_shot_partition():
    ele, ion = _electrons_r()[["shot", "r"]], _ions()
    bg_shots, bg = r_coin_background(ele, ion, range(10))
    meas_shots, meas = r_coin_measurement(ele, ion, range(10))
    assert bg_shots == 3
    assert meas_shots == 3
    # shots 1, 3, 4 carry r = 0, 1, 3, 4, 5, 6
    assert np.array_equal(np.flatnonzero(bg), [0, 1, 3, 4, 5, 6])
    assert np.array_equal(np.flatnonzero(meas), [2, 7, 8, 9])
    assert bg.dtype == np.uint64 and meas.dtype == np.uint64


def test_single_bin_radial():
    ele = pd.DataFrame({"shot": [0, 0, 1, 2, 3], "r": [0, 0, 0, 0, 0]})
    ion = pd.DataFrame({"shot": [1, 3]})
    _, bg = r_coin_background(ele, ion, range(0, 2))
    _, meas = r_coin_measurement(ele, ion, range(0, 2))
    assert list(bg) == [3, 0]
    assert list(meas) == [2, 0]


def test_cartesian_edges_first_middle_last():
    ele = pd.DataFrame({"shot": [0, 1, 2], "x": [0, 128, 255], "y": [0, 128, 255]})
    ion = pd.DataFrame({"shot": [5]})
    shots, bg = car_coin_background(ele, ion)
    assert shots == 3
    assert bg.shape == (256, 256)
    assert bg[0, 0] == bg[128, 128] == bg[255, 255] == 1
    assert bg.sum() == 3


def test_out_of_range_cartesian_reject_and_clamp():
    ele = pd.DataFrame({"shot": [0, 1], "x": [3, 300], "y": [2, -1]})
    ion = pd.DataFrame({"shot": [1]})
    with pytest.raises(BinningError):
        car_coin_measurement(ele, ion)
    _, meas = car_coin_measurement(ele, ion, boundary="clamp")
    assert meas[255, 0] == 1
    assert meas.sum() == 1


@pytest.mark.parametrize("seed", [0, 1, 2])
@pytest.mark.parametrize("geometry", ["cartesian", "radial"])
def test_partition_and_totals(seed, geometry):
    ele, ion = _random_tables(seed, geometry=geometry)
    bg_shots, bg = coin_background(ele, ion)
    meas_shots, meas = coin_measurement(ele, ion)
    assert bg_shots + meas_shots == ele["shot"].nunique()
    assert int(bg.sum()) + int(meas.sum()) == len(ele)
    assert meas_shots == len(set(ele["shot"]) & set(ion["shot"]))


def test_ion_multiplicity_counts_per_ion_hit():
    ele = pd.DataFrame({"shot": [1, 2, 2, 3], "r": [0, 1, 2, 3]})
    ion = pd.DataFrame({"shot": [2, 2, 2, 3, 7]})
    shots, meas = r_coin_measurement(ele, ion, range(4))
    assert shots == 2
    assert list(meas) == [0, 1, 1, 1]
    shots, meas = r_coin_measurement(ele, ion, range(4), ion_multiplicity=True)
    assert shots == 2
    assert list(meas) == [0, 3, 3, 1]


def test_no_ions_everything_is_background():
    ele = _electrons_r()
    ion = pd.DataFrame({"shot": pd.Series([], dtype="int64")})
    bg_shots, bg = r_coin_background(ele, ion, range(10))
    meas_shots, meas = r_coin_measurement(ele, ion, range(10))
    assert bg_shots == 6 and bg.sum() == 10
    assert meas_shots == 0 and meas.sum() == 0


def test_unsorted_tables_are_rejected():
    ele = pd.DataFrame({"shot": [1, 3, 2], "r": [0, 0, 0]})
    with pytest.raises(PreconditionError, match="not sorted"):
        r_coin_background(ele, _ions())
    with pytest.raises(PreconditionError, match="not sorted"):
        r_coin_measurement(_electrons_r(), pd.DataFrame({"shot": [5, 2]}))


def test_missing_columns_and_bad_shots():
    with pytest.raises(PreconditionError):
        coin_background(pd.DataFrame({"shot": [0], "q": [1]}), _ions())
    with pytest.raises(PreconditionError):
        r_coin_background(pd.DataFrame({"r": [0]}), _ions())
    with pytest.raises(PreconditionError):
        r_coin_background(pd.DataFrame({"shot": [-1, 0], "r": [0, 0]}), _ions())
    with pytest.raises(PreconditionError):
        r_coin_background(pd.DataFrame({"shot": [0.5, 1.0], "r": [0, 0]}), _ions())


def test_inputs_are_not_modified():
    ele, ion = _random_tables(5)
    ele_copy, ion_copy = ele.copy(), ion.copy()
    coin_background(ele, ion)
    coin_measurement(ele, ion)
    pd.testing.assert_frame_equal(ele, ele_copy)
    pd.testing.assert_frame_equal(ion, ion_copy)


def test_event_table_passthrough():
    ele = EventTable.from_frame(_electrons_r(), name="electrons")
    assert ele.geometry == "radial"
    assert ele.shot_span == 6
    assert ele.n_shots == 6
    assert not ele.shot.flags.writeable
    shots, _ = coin_background(ele, _ions(), range(10))
    assert shots == 3


@pytest.mark.parametrize("geometry", [None, "polar"])
def test_event_table_coords_need_known_geometry(geometry):
    with pytest.raises(PreconditionError, match="geometry"):
        EventTable(np.array([0, 1, 2]), (np.array([0, 1, 2]),), geometry=geometry)


def test_event_table_coords_match_geometry_axes():
    with pytest.raises(PreconditionError, match="coordinate column"):
        EventTable(np.array([0, 1]), (np.array([0, 1]),), geometry="cartesian")
    with pytest.raises(PreconditionError, match="coordinate column"):
        EventTable(np.array([0, 1]), (np.array([0, 1]), np.array([0, 1])), geometry="radial")
    shot_only = EventTable(np.array([0, 1]))
    assert shot_only.geometry is None
    with pytest.raises(PreconditionError):
        coin_background(shot_only, _ions(), range(4))
