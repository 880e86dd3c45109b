#!/usr/bin/env python3

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from mariculture import config as cfg
from mariculture.errors import RuleCoverageError
from mariculture.suitability.classify import SUITABLE


BASE_YAML = """
inputs:
  sst: [sst_2008.tif, sst_2009.tif]
  depth: depth.tif
  zones: regions.gpkg
outputs:
  dir: out
species:
  oyster:
    temperature: {min: 11, max: 30}
    depth: {min: -70, max: 0}
  anchoveta:
    temperature: {min: 13, max: 23}
    depth: {min: -80, max: -3}
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "pipeline.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_yaml_strict(tmp_path):
    with pytest.raises(SystemExit):
        cfg.load_yaml(tmp_path / "missing.yaml")
    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        cfg.load_yaml(bad)


def test_paths_resolve_against_config_dir(tmp_path):
    conf = cfg.load_pipeline_config(_write(tmp_path, BASE_YAML))
    base = tmp_path.resolve()
    assert conf.sst_paths == [base / "sst_2008.tif", base / "sst_2009.tif"]
    assert conf.depth_path == base / "depth.tif"
    assert conf.zones_path == base / "regions.gpkg"
    assert conf.out_dir == base / "out"


def test_defaults(tmp_path):
    conf = cfg.load_pipeline_config(_write(tmp_path, BASE_YAML))
    assert conf.id_field == "rgn"
    assert conf.area_field == "area_km2"
    assert conf.kelvin_offset == -273.15
    assert conf.earth_radius_km == 6371.0


def test_species_shorthand_becomes_suitable_range(tmp_path):
    conf = cfg.load_pipeline_config(_write(tmp_path, BASE_YAML))
    assert list(conf.species) == ["oyster", "anchoveta"]
    temp = conf.species["oyster"].rules["temperature"]
    ok = [r for r in temp if r.value == SUITABLE]
    assert [(r.lower, r.upper) for r in ok] == [(11.0, 30.0)]


def test_species_explicit_rules(tmp_path):
    text = BASE_YAML + """
  kelp:
    depth:
      rules: [[-.inf, -20, null], [-20, -2, 1], [-2, .inf, null]]
"""
    conf = cfg.load_pipeline_config(_write(tmp_path, text))
    rules = conf.species["kelp"].rules["depth"]
    assert rules[0].lower == -math.inf
    assert math.isnan(rules[0].value)
    assert (rules[1].lower, rules[1].upper, rules[1].value) == (-20.0, -2.0, 1.0)


def test_explicit_rules_with_gap_fail(tmp_path):
    text = BASE_YAML + """
  kelp:
    depth:
      rules: [[-.inf, -20, null], [-10, .inf, 1]]
"""
    with pytest.raises(RuleCoverageError):
        cfg.load_pipeline_config(_write(tmp_path, text))


def test_species_bound_must_be_numeric(tmp_path):
    text = BASE_YAML.replace("{min: 11, max: 30}", "{min: warm, max: 30}")
    with pytest.raises(SystemExit):
        cfg.load_pipeline_config(_write(tmp_path, text))


def test_select_species(tmp_path):
    conf = cfg.load_pipeline_config(_write(tmp_path, BASE_YAML))
    assert [s.name for s in conf.select_species()] == ["oyster", "anchoveta"]
    assert [s.name for s in conf.select_species(["anchoveta"])] == ["anchoveta"]
    with pytest.raises(SystemExit):
        conf.select_species(["salmon"])


def test_sst_glob_sorted(tmp_path):
    for year in (2010, 2008, 2009):
        (tmp_path / f"average_annual_sst_{year}.tif").write_bytes(b"")
    text = BASE_YAML.replace("sst: [sst_2008.tif, sst_2009.tif]", 'sst_glob: "average_annual_sst_*.tif"')
    conf = cfg.load_pipeline_config(_write(tmp_path, text))
    assert [p.name for p in conf.sst_paths] == [
        "average_annual_sst_2008.tif",
        "average_annual_sst_2009.tif",
        "average_annual_sst_2010.tif",
    ]


def test_sst_glob_without_matches_fails(tmp_path):
    text = BASE_YAML.replace("sst: [sst_2008.tif, sst_2009.tif]", 'sst_glob: "nothing_*.tif"')
    with pytest.raises(SystemExit):
        cfg.load_pipeline_config(_write(tmp_path, text))


def test_missing_sections_fail(tmp_path):
    with pytest.raises(SystemExit):
        cfg.load_pipeline_config(_write(tmp_path, "species: {}\n"))
    no_species = BASE_YAML.split("species:")[0]
    with pytest.raises(SystemExit):
        cfg.load_pipeline_config(_write(tmp_path, no_species))


def test_format_bbox():
    assert cfg.format_bbox((-125.0, 30.0, -117.0, 49.0), precision=1) == "[-125.0, 30.0, -117.0, 49.0]"
