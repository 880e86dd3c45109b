#!/usr/bin/env python3
"""pipeline.py

End-to-end suitability run: load inputs, build the shared layers once, then classify
and aggregate per species.

  SST rasters ──mean──> temperature (°C) ─┐
  depth raster ──align to SST grid──> depth ┼─classify─> masks ─combine─> mask ─zonal─> zones table
                                            └ per species

Stages 1-2 (mean SST, aligned depth) and the per-cell area don't depend on the
species, so they're computed once per run and shared by every species.

Outputs per species, in config.out_dir:
- <species>_suitability.tif  combined mask (1 / NaN)
- <species>_zones.gpkg       zones + count_pixel, suitable_area, percentage_suitable
- <species>_zones.csv        same table without geometry

The run is all-or-nothing: every species is computed before anything is written,
and files are staged next to the outputs and moved into place only after every
species has been written (see write_results).
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import geopandas as gpd

from mariculture.config import PipelineConfig, format_bbox
from mariculture.raster import Raster, pixel_area_km2, read_raster, write_raster
from mariculture.suitability.aggregate import mean_raster
from mariculture.suitability.align import align_to
from mariculture.suitability.classify import SpeciesRules, classify_layers, combine_masks
from mariculture.suitability.zonal import zonal_suitability
from mariculture.zones import load_zones


@dataclass
class Inputs:
    sst: List[Raster]
    depth: Raster
    zones: gpd.GeoDataFrame


@dataclass
class SpeciesResult:
    name: str
    mask: Raster
    table: gpd.GeoDataFrame


def output_paths(out_dir: Path, species: str) -> Dict[str, Path]:
    return {
        "raster": out_dir / f"{species}_suitability.tif",
        "gpkg": out_dir / f"{species}_zones.gpkg",
        "csv": out_dir / f"{species}_zones.csv",
    }


def load_inputs(config: PipelineConfig) -> Inputs:
    """Read SST rasters, depth and zones (zones reprojected to the SST CRS)."""
    sst = [read_raster(p) for p in config.sst_paths]
    depth = read_raster(config.depth_path)
    zones = load_zones(
        config.zones_path,
        id_field=config.id_field,
        area_field=config.area_field,
        target_crs=sst[0].crs.to_wkt(),
    )
    print(f"[LOAD] {len(sst)} SST rasters, depth {depth.shape}, {len(zones)} zones")
    return Inputs(sst=sst, depth=depth, zones=zones)


def prepare_layers(inputs: Inputs, config: PipelineConfig) -> Tuple[Dict[str, Raster], float]:
    """Mean SST in °C, depth on the SST grid, and the per-cell area (km²)."""
    temperature = mean_raster(inputs.sst, offset=config.kelvin_offset)
    print(f"[SST] averaged {len(inputs.sst)} rasters -> {temperature.shape} "
          f"bounds={format_bbox(temperature.bounds)}")

    depth = align_to(inputs.depth, temperature)
    print(f"[ALIGN] depth {inputs.depth.shape} -> {depth.shape} (nearest neighbour)")

    pixel_area = pixel_area_km2(temperature, earth_radius_km=config.earth_radius_km)
    print(f"[GRID] res={temperature.res} mean_lat={temperature.mean_latitude:.3f} "
          f"pixel_area={pixel_area:.4f} km2")

    return {"temperature": temperature, "depth": depth}, pixel_area


def run_species(
    layers: Mapping[str, Raster],
    zones: gpd.GeoDataFrame,
    species: SpeciesRules,
    pixel_area: float,
    id_field: str = "rgn",
    area_field: str = "area_km2",
) -> SpeciesResult:
    """Classify, combine and aggregate for one species."""
    masks = classify_layers(layers, species)
    mask = combine_masks(masks.values())
    table = zonal_suitability(mask, zones, pixel_area, id_field, area_field)
    return SpeciesResult(name=species.name, mask=mask, table=table)


def write_result(result: SpeciesResult, out_dir: Path) -> Dict[str, Path]:
    paths = output_paths(out_dir, result.name)
    out_dir.mkdir(parents=True, exist_ok=True)
    write_raster(result.mask, paths["raster"])
    result.table.to_file(paths["gpkg"], layer="suitability", driver="GPKG")
    result.table.drop(columns=result.table.geometry.name).to_csv(paths["csv"], index=False)
    return paths


def write_results(results: Mapping[str, SpeciesResult], out_dir: Path) -> Dict[str, Dict[str, Path]]:
    """Write every species' outputs, or none of them.

    Files are written into a staging directory inside out_dir and only moved into
    place (os.replace, same filesystem) once every species has been written. A failed
    write leaves out_dir as it was, previous outputs included.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Dict[str, Path]] = {}
    with tempfile.TemporaryDirectory(dir=out_dir, prefix=".staging-") as tmp:
        staged = {name: write_result(result, Path(tmp)) for name, result in results.items()}
        for name, paths in staged.items():
            final = output_paths(out_dir, name)
            for key, path in paths.items():
                os.replace(path, final[key])
                print(f"[WRITE] {final[key]}")
            written[name] = final
    return written


def _print_summary(result: SpeciesResult, id_field: str) -> None:
    print(f"{result.name}:")
    for _, row in result.table.iterrows():
        print(f"  - {row[id_field]} | count_pixel={row['count_pixel']} | "
              f"suitable_area={row['suitable_area']:.1f} km2 | "
              f"{row['percentage_suitable']:.2f}%")
    print(f"  total suitable_area={result.table['suitable_area'].sum():.1f} km2")


def run_pipeline(
    config: PipelineConfig,
    species_names: Optional[List[str]] = None,
    *,
    dry_run: bool = False,
    overwrite: bool = False,
) -> Dict[str, SpeciesResult]:
    """Run every requested species (default: all configured) and write outputs.

    Returns results keyed by species name ({} on dry runs).
    """
    selected = config.select_species(species_names)

    if dry_run:
        print("[dry-run] Would run suitability pipeline:")
        print(f"  SST rasters: {len(config.sst_paths)} ({config.sst_paths[0]} ...)")
        print(f"  Depth: {config.depth_path}")
        print(f"  Zones: {config.zones_path} (id={config.id_field}, area={config.area_field})")
        for s in selected:
            print(f"  Species {s.name}: {s.describe()}")
            for p in output_paths(config.out_dir, s.name).values():
                print(f"    -> {p}")
        return {}

    if not overwrite:
        existing = [p for s in selected for p in output_paths(config.out_dir, s.name).values() if p.exists()]
        if existing:
            raise SystemExit(
                "Outputs already exist (use --overwrite):\n" + "\n".join(f"  {p}" for p in existing)
            )

    inputs = load_inputs(config)
    layers, pixel_area = prepare_layers(inputs, config)

    results: Dict[str, SpeciesResult] = {}
    for s in selected:
        print(f"[SPECIES] {s.name}: {s.describe()}")
        results[s.name] = run_species(
            layers, inputs.zones, s, pixel_area, config.id_field, config.area_field
        )

    write_results(results, config.out_dir)
    for result in results.values():
        _print_summary(result, config.id_field)

    return results
