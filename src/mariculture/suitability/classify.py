#!/usr/bin/env python3
"""classify.py

Threshold environmental layers into suitability masks and combine them.

A mask cell is 1.0 (suitable) or NaN (unsuitable). Unsuitable is NaN rather than 0
so the combiner can be a plain product: NaN times anything is NaN, which gives
logical AND across variables without any branching.

Rules are data, not code: each variable gets an ordered list of half-open intervals
[lower, upper) -> value that must cover the whole real line. The same functions
serve any species; only the SpeciesRules record changes.

Example:
    oyster = SpeciesRules("oyster", {
        "temperature": suitable_range(11, 30),
        "depth": suitable_range(-70, 0),
    })
    masks = classify_layers({"temperature": sst_c, "depth": depth_m}, oyster)
    combined = combine_masks(masks.values())
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from mariculture.errors import RuleCoverageError
from mariculture.raster import Raster, require_same_grid


SUITABLE = 1.0
UNSUITABLE = float("nan")


@dataclass(frozen=True)
class IntervalRule:
    """Cells with lower <= value < upper map to `value`."""

    lower: float
    upper: float
    value: float

    def __post_init__(self) -> None:
        lower, upper = float(self.lower), float(self.upper)
        value = UNSUITABLE if self.value is None else float(self.value)
        if math.isnan(lower) or math.isnan(upper) or not lower < upper:
            raise RuleCoverageError(f"Interval needs lower < upper, got [{self.lower}, {self.upper})")
        if not (math.isnan(value) or value == SUITABLE):
            raise ValueError(f"Rule value must be 1 or missing, got {self.value!r}")
        object.__setattr__(self, "lower", lower)
        object.__setattr__(self, "upper", upper)
        object.__setattr__(self, "value", value)

    def contains(self, x: float) -> bool:
        return self.lower <= x < self.upper


def validate_rules(rules: Iterable[IntervalRule]) -> Tuple[IntervalRule, ...]:
    """Sort rules by lower bound and check they partition (-inf, inf).

    Returns the sorted rules. Gaps, overlaps or an open end raise RuleCoverageError;
    a value that no rule covers is treated as a configuration bug, not as missing.
    """
    ordered = tuple(sorted(rules, key=lambda r: r.lower))
    if not ordered:
        raise RuleCoverageError("No interval rules given")
    if ordered[0].lower != -math.inf:
        raise RuleCoverageError(f"Rules start at {ordered[0].lower}, not -inf")
    if ordered[-1].upper != math.inf:
        raise RuleCoverageError(f"Rules end at {ordered[-1].upper}, not inf")
    for prev, nxt in zip(ordered, ordered[1:]):
        if prev.upper < nxt.lower:
            raise RuleCoverageError(f"Gap between {prev.upper} and {nxt.lower}")
        if prev.upper > nxt.lower:
            raise RuleCoverageError(
                f"Overlap: [{prev.lower}, {prev.upper}) and [{nxt.lower}, {nxt.upper})"
            )
    return ordered


def suitable_range(lower: float, upper: float) -> List[IntervalRule]:
    """Three-rule partition: suitable on [lower, upper), missing elsewhere."""
    return [
        IntervalRule(-math.inf, lower, UNSUITABLE),
        IntervalRule(lower, upper, SUITABLE),
        IntervalRule(upper, math.inf, UNSUITABLE),
    ]


def reclassify(raster: Raster, rules: Sequence[IntervalRule]) -> Raster:
    """Map every cell to the value of the interval containing it.

    A value exactly on an edge belongs to the interval whose lower bound it equals.
    NaN cells stay NaN.
    """
    ordered = validate_rules(rules)
    lowers = np.array([r.lower for r in ordered])
    values = np.array([r.value for r in ordered])

    data = raster.data
    idx = np.searchsorted(lowers, data, side="right") - 1
    idx = np.clip(idx, 0, len(ordered) - 1)
    out = values[idx]
    out[np.isnan(data)] = np.nan
    return raster.with_data(out)


@dataclass(frozen=True)
class SpeciesRules:
    """Per-invocation classification config: variable name -> interval rules."""

    name: str
    rules: Mapping[str, Sequence[IntervalRule]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.rules:
            raise ValueError(f"Species {self.name!r} has no variables to classify")
        checked: Dict[str, Tuple[IntervalRule, ...]] = {}
        for variable, rules in self.rules.items():
            try:
                checked[variable] = validate_rules(rules)
            except RuleCoverageError as e:
                raise RuleCoverageError(f"{self.name}.{variable}: {e}") from e
        object.__setattr__(self, "rules", checked)

    @property
    def variables(self) -> List[str]:
        return list(self.rules)

    def describe(self) -> str:
        parts = []
        for variable, rules in self.rules.items():
            ok = [f"[{r.lower:g}, {r.upper:g})" for r in rules if r.value == SUITABLE]
            parts.append(f"{variable} in {' or '.join(ok) if ok else 'nothing'}")
        return "; ".join(parts)


def classify_layers(layers: Mapping[str, Raster], species: SpeciesRules) -> Dict[str, Raster]:
    """One suitability mask per variable the species has rules for."""
    masks: Dict[str, Raster] = {}
    for variable, rules in species.rules.items():
        if variable not in layers:
            raise KeyError(
                f"{species.name}: no layer named {variable!r}. Available: {sorted(layers)}"
            )
        masks[variable] = reclassify(layers[variable], rules)
    return masks


def combine_masks(masks: Iterable[Raster]) -> Raster:
    """Cell-wise product of masks: 1 where every mask is 1, NaN otherwise."""
    masks = list(masks)
    if not masks:
        raise ValueError("combine_masks needs at least one mask")
    require_same_grid(*masks, what="suitability masks")

    combined = np.ones(masks[0].shape, dtype="float64")
    for m in masks:
        combined = combined * m.data
    return masks[0].with_data(combined)
