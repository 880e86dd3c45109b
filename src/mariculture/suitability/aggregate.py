#!/usr/bin/env python3
"""aggregate.py

Temporal aggregation: collapse N yearly rasters of one quantity into a mean raster.

Used for the SST stack (yearly means in Kelvin -> multi-year mean in Celsius).
A cell missing in any year is missing in the mean; the West Coast SST inputs have
no gaps, so no per-cell count threshold is applied.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from mariculture.raster import Raster, require_same_grid


KELVIN_TO_CELSIUS = -273.15


def mean_raster(rasters: Sequence[Raster], offset: float = KELVIN_TO_CELSIUS) -> Raster:
    """Cell-wise arithmetic mean of `rasters`, plus a constant `offset`.

    All inputs must share one grid; a mismatch raises GridMismatchError rather than
    being resampled away. Pass offset=0.0 to skip the unit conversion.
    """
    rasters = list(rasters)
    if not rasters:
        raise ValueError("mean_raster needs at least one raster")
    require_same_grid(*rasters, what="yearly rasters")

    stack = np.stack([r.data for r in rasters], axis=0)
    mean = stack.sum(axis=0) / len(rasters)
    return rasters[0].with_data(mean + offset)
