"""
units.py — ml/oz conversion

Canonical storage unit is milliliters. Conversions are deliberately lossy:
ounces keep one decimal, milliliters are whole numbers, so a round trip is
only stable within about 1 ml / 0.02 oz.
"""

from __future__ import annotations

import math

from feedlog.models import Unit

ML_PER_OZ = 29.5735


def round_half_up(value: float, digits: int = 0) -> float:
    if not math.isfinite(value):
        return value
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def ml_to_oz(ml: float) -> float:
    return round_half_up(ml / ML_PER_OZ, 1)


def oz_to_ml(oz: float) -> float:
    return round_half_up(oz * ML_PER_OZ)


def to_ml(value: float, unit: Unit) -> float:
    return oz_to_ml(value) if unit == Unit.OZ else value


def parse_unit(raw: str) -> Unit | None:
    """Map a free-form unit label (``ml``, ``oz``, ``fl_oz``, ``fl oz``) to a Unit."""
    text = raw.strip().lower().replace(" ", "_").replace(".", "")
    if text in {"ml", "milliliter", "milliliters", "millilitre", "millilitres"}:
        return Unit.ML
    if text in {"oz", "fl_oz", "floz", "ounce", "ounces"}:
        return Unit.OZ
    return None
