#!/usr/bin/env python3
"""mariculture.errors

Data errors raised by the suitability stages.

Config and missing-file problems still raise SystemExit (see mariculture.config);
these are for inputs that load fine but can't be combined honestly.
"""

from __future__ import annotations


class SuitabilityError(ValueError):
    """Base error for the suitability pipeline."""


class GridMismatchError(SuitabilityError):
    """Rasters (or rasters and zones) fed to one operation are not on the same grid."""


class RuleCoverageError(SuitabilityError):
    """Interval rules leave a gap or overlap somewhere on the real line."""


class JoinMismatchError(SuitabilityError):
    """Zone ids appear on only one side of the zonal join, or are not unique."""

    def __init__(self, message: str, ids=None):
        super().__init__(message)
        self.ids = sorted(str(i) for i in ids) if ids else []
