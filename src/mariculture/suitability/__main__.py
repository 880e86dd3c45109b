#!/usr/bin/env python3
"""mariculture.suitability

Aquaculture suitability CLI.

Combines mean sea-surface temperature, bathymetry and EEZ regions into per-region
suitable area for each configured species.

Responsibilities:
- Average yearly SST rasters (Kelvin -> Celsius)
- Align bathymetry to the SST grid (nearest neighbour)
- Threshold both layers per species and combine (logical AND)
- Sum suitable area per EEZ region and write rasters + tables

Design notes:
- Species thresholds come from the pipeline YAML, not from code
- Shared layers and the per-cell area are computed once per run
- Lazy-imports the pipeline so `list-species` never loads geopandas

Examples:
  # Run every configured species
  python -m mariculture.suitability --config config/pipeline.yaml run

  # Just oysters, replacing earlier outputs
  python -m mariculture.suitability --overwrite run --species oyster

  # Show thresholds / per-cell area
  python -m mariculture.suitability list-species
  python -m mariculture.suitability pixel-area
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from mariculture.config import DEFAULT_PIPELINE_YAML, load_pipeline_config


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for mariculture.suitability."""
    ap = argparse.ArgumentParser(
        prog="mariculture.suitability",
        description="Aquaculture suitability zones from SST, bathymetry and EEZ regions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Outputs (per species, in outputs.dir):
  <species>_suitability.tif   # Combined suitability mask (1 / nodata)
  <species>_zones.gpkg        # Regions + count_pixel, suitable_area, percentage_suitable
  <species>_zones.csv         # Same table without geometry
        """,
    )

    # --- Global args ---
    ap.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_PIPELINE_YAML,
        help=f"Path to pipeline YAML (default: {DEFAULT_PIPELINE_YAML})",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without reading rasters or writing files",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    # --- run ---
    run = sub.add_parser(
        "run",
        help="Run the suitability pipeline",
        description="""
Run the suitability pipeline once.

This command:
1. Averages the yearly SST rasters and converts to Celsius
2. Resamples depth onto the SST grid
3. Classifies temperature and depth per species and combines the masks
4. Sums suitable cells per EEZ region and converts to km²
5. Writes the mask raster and the augmented region table
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run.add_argument(
        "--species",
        nargs="+",
        default=None,
        help="Species to run (default: all species in the config)",
    )

    # --- list-species ---
    sub.add_parser(
        "list-species",
        help="Print configured species and their thresholds",
    )

    # --- pixel-area ---
    sub.add_parser(
        "pixel-area",
        help="Print the per-cell area (km²) of the SST grid",
    )

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_run(args: argparse.Namespace) -> int:
    """Handle the run subcommand."""
    config = load_pipeline_config(args.config)

    # Lazy import: keeps CLI startup fast, avoids loading rasterio/geopandas until needed
    from mariculture.suitability.pipeline import run_pipeline

    run_pipeline(
        config,
        species_names=args.species,
        dry_run=args.dry_run,
        overwrite=args.overwrite,
    )
    return 0


def _handle_list_species(args: argparse.Namespace) -> int:
    """Handle the list-species subcommand."""
    config = load_pipeline_config(args.config)
    for species in config.species.values():
        print(f"{species.name}: {species.describe()}")
    return 0


def _handle_pixel_area(args: argparse.Namespace) -> int:
    """Handle the pixel-area subcommand.

    Reads only the first SST raster: all SST rasters share one grid, and that grid
    is the one the zonal sums use.
    """
    config = load_pipeline_config(args.config)

    if args.dry_run:
        print(f"[dry-run] Would read grid from: {config.sst_paths[0]}")
        return 0

    from mariculture.raster import pixel_area_km2, read_raster

    grid = read_raster(config.sst_paths[0])
    area = pixel_area_km2(grid, earth_radius_km=config.earth_radius_km)
    print(f"grid: {config.sst_paths[0]}")
    print(f"  crs={grid.crs} res={grid.res} mean_lat={grid.mean_latitude:.4f}")
    print(f"  pixel_area_km2={area:.6f}")
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for mariculture.suitability CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "run": _handle_run,
        "list-species": _handle_list_species,
        "pixel-area": _handle_pixel_area,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
