#!/usr/bin/env python3
"""zonal.py

Suitable area per zone (EEZ region).

Steps:
1. Burn each zone's id onto the suitability grid (zone-id raster, 0 = no zone)
2. Keep only zone cells that are suitable in the combined mask
3. Sum mask values per zone -> count_pixel
4. count_pixel * per-cell area -> suitable_area (km²)
5. Join back onto the zone table; percentage_suitable = suitable_area / area_km2 * 100

The per-cell area is computed once per grid (mariculture.raster.pixel_area_km2)
and passed in, so every species run on that grid uses the same figure.

Every zone shows up in the output, zero-suitability zones included. Ids that end up
on only one side of the join are raised as JoinMismatchError instead of being
dropped, because a dropped zone silently under-reports total suitable area.
"""

from __future__ import annotations

from typing import Dict, Hashable, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from rasterio.features import rasterize

from mariculture.errors import GridMismatchError, JoinMismatchError, SuitabilityError
from mariculture.raster import Raster


def _check_zone_crs(zones: gpd.GeoDataFrame, grid: Raster) -> None:
    if zones.crs is None:
        raise GridMismatchError("Zones have no CRS; can't burn them onto the grid safely.")
    if not zones.crs.equals(grid.crs.to_wkt(), ignore_axis_order=True):
        raise GridMismatchError(
            f"Zones CRS ({zones.crs.to_string()}) differs from grid CRS ({grid.crs}). "
            "Reproject the zones first (mariculture.zones.load_zones(target_crs=...))."
        )


def rasterize_zones(
    zones: gpd.GeoDataFrame,
    grid: Raster,
    id_field: str = "rgn",
    *,
    all_touched: bool = False,
) -> Tuple[np.ndarray, Dict[int, Hashable]]:
    """Burn zones onto `grid`.

    Returns (zone_codes, codebook): an int32 array of codes 1..n (0 outside every
    zone) and the mapping code -> zone id. Codes follow the table's row order.
    """
    _check_zone_crs(zones, grid)
    if id_field not in zones.columns:
        raise KeyError(f"Zones have no {id_field!r} column. Available: {list(zones.columns)}")

    ids = zones[id_field]
    dupes = ids[ids.duplicated()].unique().tolist()
    if dupes:
        raise JoinMismatchError(f"Zone ids are not unique in {id_field!r}: {dupes}", dupes)

    codebook: Dict[int, Hashable] = {}
    shapes = []
    for code, (geom, zone_id) in enumerate(zip(zones.geometry, ids), start=1):
        codebook[code] = zone_id
        if geom is not None and not geom.is_empty:
            shapes.append((geom, code))

    if not shapes:
        return np.zeros(grid.shape, dtype="int32"), codebook

    burned = rasterize(
        shapes,
        out_shape=grid.shape,
        transform=grid.transform,
        fill=0,
        dtype="int32",
        all_touched=all_touched,
    )
    return burned, codebook


def zonal_counts(
    mask: Raster,
    zone_codes: np.ndarray,
    codebook: Dict[int, Hashable],
    id_field: str = "rgn",
) -> pd.DataFrame:
    """Sum suitable mask cells per zone.

    Returns one row per codebook entry: [id_field, count_pixel].
    """
    if zone_codes.shape != mask.shape:
        raise GridMismatchError(f"Zone raster shape {zone_codes.shape} != mask shape {mask.shape}")

    # Zone cells that are also suitable; everything else drops out
    keep = (zone_codes > 0) & ~np.isnan(mask.data)
    cells = pd.DataFrame({"code": zone_codes[keep], "value": mask.data[keep]})
    sums = cells.groupby("code")["value"].sum()

    unknown = set(sums.index) - set(codebook)
    if unknown:
        raise JoinMismatchError(f"Zone raster has codes with no zone: {sorted(unknown)}", unknown)

    sums = sums.reindex(list(codebook), fill_value=0.0)
    return pd.DataFrame({
        id_field: [codebook[c] for c in sums.index],
        "count_pixel": np.rint(sums.to_numpy()).astype("int64"),
    })


def join_zone_summary(
    zones: gpd.GeoDataFrame,
    summary: pd.DataFrame,
    pixel_area: float,
    id_field: str = "rgn",
    area_field: str = "area_km2",
) -> gpd.GeoDataFrame:
    """Attach count_pixel, suitable_area and percentage_suitable to the zone table.

    The full outer join is only used to find ids on one side; the output keeps the
    zone table's row order.

    Raises:
        JoinMismatchError: If an id is on only one side of the join.
        SuitabilityError: If a zone's area_field is missing, zero or negative.
    """
    if area_field not in zones.columns:
        raise KeyError(f"Zones have no {area_field!r} column. Available: {list(zones.columns)}")

    # percentage_suitable divides by the nominal area; 0 or missing would give inf/NaN
    area = pd.to_numeric(zones[area_field], errors="coerce")
    bad_area = ~(area > 0) | ~np.isfinite(area)
    if bad_area.any():
        bad_ids = zones.loc[bad_area, id_field].tolist()
        raise SuitabilityError(
            f"Zones need a positive, finite {area_field!r} to compute percentage_suitable. "
            f"Bad values for: {bad_ids}"
        )

    check = pd.merge(
        zones[[id_field]], summary[[id_field]], on=id_field, how="outer", indicator=True
    )
    one_sided = check[check["_merge"] != "both"]
    if not one_sided.empty:
        only_zones = one_sided.loc[one_sided["_merge"] == "left_only", id_field].tolist()
        only_summary = one_sided.loc[one_sided["_merge"] == "right_only", id_field].tolist()
        raise JoinMismatchError(
            "Zone ids don't line up between zones and zonal summary.\n"
            f"Only in zones: {only_zones}\n"
            f"Only in summary: {only_summary}",
            only_zones + only_summary,
        )

    out = zones.merge(summary[[id_field, "count_pixel"]], on=id_field, how="left", validate="one_to_one")
    out["count_pixel"] = out["count_pixel"].astype("int64")
    out["suitable_area"] = out["count_pixel"] * float(pixel_area)
    out["percentage_suitable"] = out["suitable_area"] / out[area_field] * 100.0
    return out


def zonal_suitability(
    mask: Raster,
    zones: gpd.GeoDataFrame,
    pixel_area: float,
    id_field: str = "rgn",
    area_field: str = "area_km2",
    *,
    all_touched: bool = False,
) -> gpd.GeoDataFrame:
    """rasterize_zones -> zonal_counts -> join_zone_summary."""
    zone_codes, codebook = rasterize_zones(zones, mask, id_field, all_touched=all_touched)
    summary = zonal_counts(mask, zone_codes, codebook, id_field)
    return join_zone_summary(zones, summary, pixel_area, id_field, area_field)
