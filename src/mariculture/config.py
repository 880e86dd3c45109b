#!/usr/bin/env python3
"""mariculture.config

Shared configuration utilities for the suitability pipeline.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Input paths are resolved against the config file's directory, so runs don't
  depend on the current working directory.
- Species thresholds live in config, not code; each species block becomes a
  validated SpeciesRules record.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from mariculture.suitability.aggregate import KELVIN_TO_CELSIUS
from mariculture.suitability.classify import IntervalRule, SpeciesRules, suitable_range
from mariculture.raster import EARTH_RADIUS_KM


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def format_bbox(b: Tuple[float, float, float, float], precision: int = 5) -> str:
    """Format a bbox tuple as a readable string."""
    return f"[{b[0]:.{precision}f}, {b[1]:.{precision}f}, {b[2]:.{precision}f}, {b[3]:.{precision}f}]"


# -----------------------------------------------------------------------------
# Species rules
# -----------------------------------------------------------------------------

def _as_bound(x: Any, what: str) -> float:
    if x is None:
        raise SystemExit(f"Missing bound: {what}")
    try:
        return float(x)
    except (TypeError, ValueError):
        raise SystemExit(f"Bound {what} is not a number: {x!r}") from None


def _variable_rules(species: str, variable: str, block: Any) -> List[IntervalRule]:
    """Turn one variable block into interval rules.

    Accepts either shorthand
        temperature: {min: 11, max: 30}
    or an explicit partition
        temperature:
          rules: [[-.inf, 11, null], [11, 30, 1], [30, .inf, null]]
    """
    where = f"species.{species}.{variable}"
    if not isinstance(block, dict):
        raise SystemExit(f"{where} must be a mapping with min/max or rules")

    if "rules" in block:
        rules = block["rules"]
        if not isinstance(rules, list) or not rules:
            raise SystemExit(f"{where}.rules must be a non-empty list of [lower, upper, value]")
        out = []
        for i, r in enumerate(rules):
            if not isinstance(r, (list, tuple)) or len(r) != 3:
                raise SystemExit(f"{where}.rules[{i}] must be [lower, upper, value], got {r!r}")
            lower = _as_bound(r[0], f"{where}.rules[{i}] lower")
            upper = _as_bound(r[1], f"{where}.rules[{i}] upper")
            value = math.nan if r[2] is None else float(r[2])
            out.append(IntervalRule(lower, upper, value))
        return out

    lower = _as_bound(block.get("min"), f"{where}.min")
    upper = _as_bound(block.get("max"), f"{where}.max")
    return suitable_range(lower, upper)


def species_from_config(name: str, block: Any) -> SpeciesRules:
    """Build a validated SpeciesRules from a `species.<name>` block."""
    if not isinstance(block, dict) or not block:
        raise SystemExit(f"species.{name} must map variable names to thresholds")
    rules = {variable: _variable_rules(name, variable, vb) for variable, vb in block.items()}
    return SpeciesRules(name, rules)


# -----------------------------------------------------------------------------
# Pipeline config
# -----------------------------------------------------------------------------

@dataclass
class PipelineConfig:
    sst_paths: List[Path]
    depth_path: Path
    zones_path: Path
    out_dir: Path
    species: Dict[str, SpeciesRules] = field(default_factory=dict)
    id_field: str = "rgn"
    area_field: str = "area_km2"
    kelvin_offset: float = KELVIN_TO_CELSIUS
    earth_radius_km: float = EARTH_RADIUS_KM

    def select_species(self, names: Optional[List[str]] = None) -> List[SpeciesRules]:
        """Species to run, in config order when names is None."""
        if not names:
            return list(self.species.values())
        unknown = [n for n in names if n not in self.species]
        if unknown:
            raise SystemExit(f"Unknown species {unknown}. Configured: {list(self.species)}")
        return [self.species[n] for n in names]


def _resolve(base: Path, p: Any) -> Path:
    p = Path(str(p)).expanduser()
    return p if p.is_absolute() else base / p


def _sst_paths(base: Path, inputs: Dict[str, Any]) -> List[Path]:
    """SST rasters from `sst: [...]` or `sst_glob: "..."`, sorted by name (= by year)."""
    if "sst" in inputs:
        sst = inputs["sst"]
        if isinstance(sst, str):
            sst = [sst]
        if not isinstance(sst, list) or not sst:
            raise SystemExit("inputs.sst must be a non-empty list of raster paths")
        return [_resolve(base, p) for p in sst]

    pattern = inputs.get("sst_glob")
    if not pattern:
        raise SystemExit("Config needs inputs.sst (list) or inputs.sst_glob (pattern)")
    matches = sorted(base.glob(str(pattern)))
    if not matches:
        raise SystemExit(f"inputs.sst_glob matched no files: {base / str(pattern)}")
    return matches


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Parse a pipeline YAML into a PipelineConfig.

    Only structure is checked here; input files are checked when they are read.
    """
    data = load_yaml(path)
    base = path.resolve().parent

    inputs = data.get("inputs")
    if not isinstance(inputs, dict):
        raise SystemExit(f"{path} must have an 'inputs:' mapping")
    for key in ("depth", "zones"):
        if not inputs.get(key):
            raise SystemExit(f"{path}: inputs.{key} is required")

    species_block = data.get("species")
    if not isinstance(species_block, dict) or not species_block:
        raise SystemExit(f"{path} must have a non-empty 'species:' mapping")

    zones = data.get("zones") or {}
    grid = data.get("grid") or {}
    outputs = data.get("outputs") or {}

    return PipelineConfig(
        sst_paths=_sst_paths(base, inputs),
        depth_path=_resolve(base, inputs["depth"]),
        zones_path=_resolve(base, inputs["zones"]),
        out_dir=_resolve(base, outputs.get("dir", "data/processed")),
        species={str(name): species_from_config(str(name), block) for name, block in species_block.items()},
        id_field=str(zones.get("id_field", "rgn")),
        area_field=str(zones.get("area_field", "area_km2")),
        kelvin_offset=float(grid.get("kelvin_offset", KELVIN_TO_CELSIUS)),
        earth_radius_km=float(grid.get("earth_radius_km", EARTH_RADIUS_KM)),
    )


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------

DEFAULT_PIPELINE_YAML = Path("config/pipeline.yaml")
