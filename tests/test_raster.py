#!/usr/bin/env python3

from __future__ import annotations

import math
import sys
from pathlib import Path

import numpy as np
import pytest
from rasterio.transform import from_origin

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from mariculture.errors import GridMismatchError
from mariculture.raster import (
    Raster,
    pixel_area_km2,
    read_raster,
    require_same_grid,
    same_grid,
    write_raster,
)
from mariculture.suitability.aggregate import KELVIN_TO_CELSIUS, mean_raster
from mariculture.suitability.align import align_to


def _raster(values, west=-125.0, north=40.0, res=1.0, crs="EPSG:4326"):
    return Raster(np.array(values, dtype="float64"), from_origin(west, north, res, res), crs)


# -----------------------------------------------------------------------------
# Raster model
# -----------------------------------------------------------------------------

def test_raster_is_read_only_copy():
    src = np.array([[1.0, 2.0]])
    r = _raster(src)
    src[0, 0] = 99.0
    assert r.data[0, 0] == 1.0
    with pytest.raises(ValueError):
        r.data[0, 0] = 5.0


def test_bounds_res_and_mean_latitude():
    r = _raster(np.zeros((2, 4)), west=-125.0, north=40.0, res=0.5)
    assert r.bounds == (-125.0, 39.0, -123.0, 40.0)
    assert r.res == (0.5, 0.5)
    assert r.mean_latitude == 39.5


def test_same_grid_checks_crs_shape_and_transform():
    a = _raster([[1.0, 2.0]])
    assert same_grid(a, _raster([[3.0, 4.0]]))
    assert not same_grid(a, _raster([[1.0, 2.0, 3.0]]))
    assert not same_grid(a, _raster([[1.0, 2.0]], res=0.5))
    assert not same_grid(a, _raster([[1.0, 2.0]], crs="EPSG:4269"))


def test_require_same_grid_names_the_difference():
    with pytest.raises(GridMismatchError, match="shape"):
        require_same_grid(_raster([[1.0]]), _raster([[1.0, 2.0]]))


def test_write_then_read_keeps_grid_and_missing(tmp_path):
    r = _raster([[1.5, np.nan], [-3.0, 4.0]])
    path = write_raster(r, tmp_path / "out" / "r.tif")
    back = read_raster(path)
    assert same_grid(r, back)
    assert np.isnan(back.data[0, 1])
    np.testing.assert_allclose(back.data[1], [-3.0, 4.0])


def test_read_raster_missing_file(tmp_path):
    with pytest.raises(SystemExit):
        read_raster(tmp_path / "nope.tif")


def test_pixel_area_geographic_uses_mean_latitude():
    r = _raster(np.zeros((2, 2)), west=-125.0, north=40.0, res=1.0)
    km_per_deg = 6371.0 * math.pi / 180.0
    expected = km_per_deg * math.cos(math.radians(39.0)) * km_per_deg
    assert pixel_area_km2(r) == pytest.approx(expected)


def test_pixel_area_projected_metres():
    r = Raster(np.zeros((2, 2)), from_origin(0, 1000, 250, 250), "EPSG:5070")
    assert pixel_area_km2(r) == pytest.approx(0.0625)


# -----------------------------------------------------------------------------
# Temporal aggregation
# -----------------------------------------------------------------------------

def test_mean_raster_is_cellwise_mean_plus_offset():
    years = [_raster([[280.0, 290.0]]), _raster([[282.0, 294.0]]), _raster([[284.0, 289.0]])]
    out = mean_raster(years)
    np.testing.assert_allclose(out.data, [[282.0 + KELVIN_TO_CELSIUS, 291.0 + KELVIN_TO_CELSIUS]])
    assert same_grid(out, years[0])


def test_mean_raster_without_conversion():
    out = mean_raster([_raster([[1.0]]), _raster([[3.0]])], offset=0.0)
    assert out.data[0, 0] == 2.0


def test_mean_raster_propagates_missing():
    out = mean_raster([_raster([[1.0, np.nan]]), _raster([[3.0, 5.0]])], offset=0.0)
    assert out.data[0, 0] == 2.0
    assert np.isnan(out.data[0, 1])


def test_mean_raster_rejects_mismatched_years():
    with pytest.raises(GridMismatchError):
        mean_raster([_raster([[1.0]]), _raster([[1.0]], west=-120.0)])


def test_mean_raster_needs_input():
    with pytest.raises(ValueError):
        mean_raster([])


# -----------------------------------------------------------------------------
# Alignment
# -----------------------------------------------------------------------------

def test_align_resamples_finer_source_with_nearest_neighbour():
    target = _raster(np.zeros((2, 2)), res=1.0)
    source = _raster(np.kron([[-10.0, -20.0], [-30.0, -40.0]], np.ones((2, 2))), res=0.5)
    out = align_to(source, target)
    assert same_grid(out, target)
    np.testing.assert_array_equal(out.data, [[-10.0, -20.0], [-30.0, -40.0]])


def test_align_never_invents_values():
    target = _raster(np.zeros((3, 3)), res=1.0)
    source = _raster(np.array([[-1.0, -100.0] * 3] * 6), res=0.5)
    out = align_to(source, target)
    assert set(np.unique(out.data)).issubset({-1.0, -100.0})


def test_align_reprojects_and_crops_to_target_grid():
    target = _raster(np.zeros((2, 2)), west=-125.0, north=40.0, res=1.0)
    # Web Mercator source covering roughly lon -125.8..-122.2, lat 36.7..40.9
    source = Raster(np.full((60, 40), -25.0), from_origin(-14_000_000, 5_000_000, 10_000, 10_000), "EPSG:3857")
    out = align_to(source, target)
    assert same_grid(out, target)
    assert out.crs == target.crs
    np.testing.assert_array_equal(out.data, np.full((2, 2), -25.0))


def test_align_leaves_uncovered_cells_missing():
    target = _raster(np.zeros((1, 4)), west=-125.0, res=1.0)
    source = _raster([[-5.0, -5.0]], west=-125.0, res=1.0)
    out = align_to(source, target)
    np.testing.assert_array_equal(out.data[0, :2], [-5.0, -5.0])
    assert np.isnan(out.data[0, 2:]).all()


def test_align_rejects_source_that_misses_the_target():
    target = _raster(np.zeros((2, 2)), west=-125.0, north=40.0)
    # Same shape and CRS, but 20 degrees east: nothing lands on the target
    source = _raster(np.full((2, 2), -30.0), west=-105.0, north=40.0)
    with pytest.raises(GridMismatchError, match="don't overlap"):
        align_to(source, target)


def test_align_all_missing_source_stays_missing():
    target = _raster(np.zeros((2, 2)))
    out = align_to(_raster(np.full((2, 2), np.nan)), target)
    assert np.isnan(out.data).all()
