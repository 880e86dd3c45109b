#!/usr/bin/env python3
"""align.py

Put a secondary raster (bathymetry) on the primary raster's grid (mean SST).

This is the only place in the package that reprojects or resamples. Everything
downstream assumes co-registered inputs and checks it with
mariculture.raster.require_same_grid.
"""

from __future__ import annotations

import numpy as np
from rasterio.enums import Resampling
from rasterio.warp import reproject

from mariculture.errors import GridMismatchError
from mariculture.raster import Raster


def align_to(source: Raster, target: Raster, resampling: Resampling = Resampling.nearest) -> Raster:
    """Warp `source` onto `target`'s CRS, extent and resolution.

    rasterio's reproject does the three steps at once: transform into the target CRS,
    clip to the target extent, resample to the target cells. Nearest neighbour is the
    default because depth is thresholded afterwards; an interpolated value at a class
    edge would move the suitability boundary.

    Target cells the source does not cover come back as NaN. The result is built on
    the target's transform and CRS, so it shares the target grid by construction.

    Raises:
        GridMismatchError: If no target cell receives a source value (the rasters
            don't overlap, or the source CRS/transform is wrong).
    """
    destination = np.full(target.shape, np.nan, dtype="float64")
    reproject(
        source=np.array(source.data, dtype="float64"),
        destination=destination,
        src_transform=source.transform,
        src_crs=source.crs,
        src_nodata=np.nan,
        dst_transform=target.transform,
        dst_crs=target.crs,
        dst_nodata=np.nan,
        resampling=resampling,
    )

    if np.isnan(destination).all() and not np.isnan(source.data).all():
        raise GridMismatchError(
            f"Warped raster has no data on the target grid: source bounds {source.bounds} "
            f"({source.crs}) don't overlap target bounds {target.bounds} ({target.crs})."
        )
    return Raster(destination, target.transform, target.crs)
