#!/usr/bin/env python3
"""mariculture.raster

In-memory raster model shared by every suitability stage, plus thin rasterio
readers/writers.

A Raster is a single band of float64 cells on a fixed grid (CRS + affine transform).
Missing cells are NaN everywhere in this package; nodata values from files are
converted on read and written back as NaN.

Design notes:
- Rasters are immutable: the array is copied and flagged read-only on construction.
  Stages build new rasters with `with_data()` instead of editing in place.
- Grid checks are explicit. Nothing here reprojects or resamples implicitly; that only
  happens in mariculture.suitability.align.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import numpy as np
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.transform import array_bounds

from mariculture.errors import GridMismatchError


BBox = Tuple[float, float, float, float]

# Fraction of a cell two transforms may differ by and still count as one grid
GRID_TOLERANCE = 1e-9

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True, eq=False)
class Raster:
    data: np.ndarray
    transform: Affine
    crs: CRS

    def __post_init__(self) -> None:
        arr = np.array(self.data, dtype="float64", copy=True)
        if arr.ndim != 2:
            raise ValueError(f"Raster data must be 2D, got shape {arr.shape}")
        arr.flags.writeable = False
        object.__setattr__(self, "data", arr)
        if not isinstance(self.crs, CRS):
            object.__setattr__(self, "crs", CRS.from_user_input(self.crs))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def res(self) -> Tuple[float, float]:
        """Cell (width, height), both positive, in CRS units."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> BBox:
        """(xmin, ymin, xmax, ymax) of the grid."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    @property
    def mean_latitude(self) -> float:
        """Centre of the y-extent. Only a latitude for geographic CRSs."""
        _, ymin, _, ymax = self.bounds
        return (ymin + ymax) / 2.0

    def with_data(self, data: np.ndarray) -> "Raster":
        """New raster on this grid carrying `data`."""
        data = np.asarray(data)
        if data.shape != self.shape:
            raise GridMismatchError(f"Array shape {data.shape} does not fit grid shape {self.shape}")
        return Raster(data, self.transform, self.crs)


# -----------------------------------------------------------------------------
# Grid checks
# -----------------------------------------------------------------------------

def _grid_difference(a: Raster, b: Raster) -> str:
    """Describe the first way two rasters' grids differ ('' if they match)."""
    if a.crs != b.crs:
        return f"CRS differs ({a.crs} vs {b.crs})"
    if a.shape != b.shape:
        return f"shape/extent differs ({a.shape} vs {b.shape})"
    tol = GRID_TOLERANCE * min(a.res + b.res)
    if not np.allclose(tuple(a.transform)[:6], tuple(b.transform)[:6], rtol=0.0, atol=tol):
        return f"transform/resolution differs ({tuple(a.transform)[:6]} vs {tuple(b.transform)[:6]})"
    return ""


def same_grid(a: Raster, b: Raster) -> bool:
    return _grid_difference(a, b) == ""


def require_same_grid(*rasters: Raster, what: str = "rasters") -> None:
    """Raise GridMismatchError unless every raster shares the first one's grid.

    This is the precondition of every operation that combines rasters cell by cell.
    """
    if not rasters:
        raise ValueError(f"No {what} given")
    first = rasters[0]
    for i, other in enumerate(rasters[1:], start=1):
        diff = _grid_difference(first, other)
        if diff:
            raise GridMismatchError(f"Cannot combine {what}: item {i} is not on the grid of item 0: {diff}")


# -----------------------------------------------------------------------------
# I/O
# -----------------------------------------------------------------------------

def read_raster(path: Path, band: int = 1) -> Raster:
    """Read one band into a Raster, nodata -> NaN."""
    path = Path(path)
    if not path.exists():
        raise SystemExit(f"Raster not found: {path}")
    with rasterio.open(path) as src:
        if src.crs is None:
            raise SystemExit(f"Raster has no CRS: {path}")
        data = src.read(band, masked=True).astype("float64").filled(np.nan)
        return Raster(data, src.transform, src.crs)


def write_raster(raster: Raster, path: Path) -> Path:
    """Write a Raster as a single-band float32 GeoTIFF with NaN nodata."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    profile = dict(
        driver="GTiff",
        height=raster.height,
        width=raster.width,
        count=1,
        dtype="float32",
        crs=raster.crs,
        transform=raster.transform,
        nodata=np.nan,
        compress="deflate",
    )
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(raster.data.astype("float32"), 1)
    return path


# -----------------------------------------------------------------------------
# Cell area
# -----------------------------------------------------------------------------

def pixel_area_km2(grid: Raster, earth_radius_km: float = EARTH_RADIUS_KM) -> float:
    """Area of one cell of `grid` in km².

    Geographic grids use a spherical Earth at the grid's mean latitude: a degree of
    latitude is R·π/180 km and a degree of longitude shrinks by cos(latitude).
    Projected grids use the resolution in the CRS's linear unit.

    Compute this once per grid and pass it on; zonal sums for every species on the
    grid should use the same figure.
    """
    res_x, res_y = grid.res
    if grid.crs.is_geographic:
        km_per_deg = earth_radius_km * math.pi / 180.0
        width_km = res_x * km_per_deg * math.cos(math.radians(grid.mean_latitude))
        height_km = res_y * km_per_deg
        return width_km * height_km

    _, metres_per_unit = grid.crs.linear_units_factor
    return (res_x * metres_per_unit / 1000.0) * (res_y * metres_per_unit / 1000.0)
