#!/usr/bin/env python3
"""zones.py

Load the EEZ region layer as a clean zone table for zonal aggregation.

The West Coast EEZ shapefile carries one polygon per region with a region name
(`rgn`) and a nominal area (`area_km2`). This module:
1. Reads the layer (any format geopandas/pyogrio can open)
2. Checks it has features, a CRS and the id field
3. Repairs invalid geometries; zones with no geometry are kept (they cover no cells)
4. Computes area_km2 in an equal-area CRS if the layer doesn't ship it
5. Reprojects to the suitability grid's CRS when asked

Notes:
- area_km2 is computed BEFORE reprojection so it's never measured in degrees.
- Ids are left as-is (strings in the reference data); uniqueness is checked where
  it matters, in mariculture.suitability.zonal.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import geopandas as gpd


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Repair invalid geometries (GeoSeries.make_valid), leaving valid ones untouched."""
    gdf = gdf.copy()
    invalid = gdf.geometry.notna() & ~gdf.geometry.is_valid
    if invalid.any():
        gdf.loc[invalid, gdf.geometry.name] = gdf.geometry[invalid].make_valid()
    return gdf


def _compute_area_km2(gdf: gpd.GeoDataFrame, area_crs: str = "EPSG:5070") -> List[float]:
    """Polygon area in km² using an equal-area CRS.

    EPSG:5070 (CONUS Albers) covers the West Coast EEZ; pass another equal-area
    projection for other coasts.
    """
    if gdf.crs is None:
        raise ValueError("Input geometries have no CRS; can't compute area safely.")
    tmp = gdf.to_crs(area_crs)
    return (tmp.geometry.area / 1_000_000.0).astype(float).tolist()


def load_zones(
    path: Path,
    *,
    id_field: str = "rgn",
    area_field: str = "area_km2",
    target_crs=None,
    area_crs: str = "EPSG:5070",
    layer: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Read and clean a zone polygon layer.

    Args:
        path: Vector file (shapefile, GeoPackage, GeoJSON, ...)
        id_field: Column holding the unique region id
        area_field: Column holding the nominal region area in km² (computed if absent)
        target_crs: Reproject to this CRS (usually the suitability grid's CRS)
        area_crs: Equal-area CRS used only when area_field has to be computed
        layer: Layer name for multi-layer sources

    Returns:
        GeoDataFrame with the original attributes, cleaned geometries and area_field.

    Raises:
        SystemExit: On missing files, empty layers, missing CRS or missing id field.
    """
    path = Path(path)
    if not path.exists():
        raise SystemExit(f"Zones file not found: {path}")

    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)

    if gdf.empty:
        raise SystemExit(f"Loaded {path} but it contains zero features. Wrong file?")

    if gdf.crs is None:
        raise SystemExit(
            f"{path} has no CRS (.prj missing or unreadable). "
            "Fix that first; zones are burned onto a georeferenced grid."
        )

    if id_field not in gdf.columns:
        raise SystemExit(
            f"Zones have no {id_field!r} field.\n"
            f"Columns: {[c for c in gdf.columns if c != gdf.geometry.name]}"
        )

    gdf = _make_valid(gdf)

    # Zones without geometry stay in the table (count_pixel 0 downstream)
    no_geometry = gdf.geometry.isna() | gdf.geometry.is_empty
    if no_geometry.any():
        print(f"[ZONES] {int(no_geometry.sum())} zone(s) have no geometry and cover no cells: "
              f"{gdf.loc[no_geometry, id_field].tolist()}")

    if area_field not in gdf.columns:
        gdf[area_field] = _compute_area_km2(gdf, area_crs=area_crs)

    if target_crs is not None:
        gdf = gdf.to_crs(target_crs)

    return gdf
