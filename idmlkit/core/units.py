"""Measurement unit conversion.

IDML stores every length in points (1/72 inch). The rendering surface works
in pixels; the ratio between the two is configurable and defaults to 0.75
pixels per point, so ``pixels = points * 0.75``.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_POINTS_TO_PIXELS = 0.75


class Unit(Enum):
    """Supported measurement units."""

    PT = "pt"
    PC = "pc"
    IN = "in"
    MM = "mm"
    CM = "cm"
    PX = "px"


# Points per unit
POINTS_PER_UNIT: Dict[Unit, float] = {
    Unit.PT: 1.0,
    Unit.PC: 12.0,
    Unit.IN: 72.0,
    Unit.MM: 2.834645669291339,
    Unit.CM: 28.34645669291339,
    Unit.PX: 1 / 0.75,
}

UNIT_NAMES: Dict[Unit, str] = {
    Unit.PT: "Points",
    Unit.PC: "Picas",
    Unit.IN: "Inches",
    Unit.MM: "Millimeters",
    Unit.CM: "Centimeters",
    Unit.PX: "Pixels",
}

_VALUE_RE = re.compile(r"^(-?[\d.]+)\s*(pt|pc|in|mm|cm|px)?$")


@dataclass(frozen=True)
class PageSize:
    """Named page size in points."""

    name: str
    width: float
    height: float


PRESETS: Dict[str, PageSize] = {
    "letter": PageSize("US Letter", 612.0, 792.0),
    "legal": PageSize("US Legal", 612.0, 1008.0),
    "a4": PageSize("A4", 595.276, 841.89),
    "a3": PageSize("A3", 841.89, 1190.551),
    "tabloid": PageSize("Tabloid", 792.0, 1224.0),
}


def to_points(value: float, unit: Unit) -> float:
    """Convert a value in ``unit`` to points."""
    return value * POINTS_PER_UNIT[unit]


def from_points(points: float, unit: Unit) -> float:
    """Convert points to ``unit``."""
    return points / POINTS_PER_UNIT[unit]


def convert(value: float, from_unit: Unit, to_unit: Unit) -> float:
    """
    Convert between two measurement units.

    Example:
        >>> convert(1, Unit.IN, Unit.PT)
        72.0
        >>> round(convert(25.4, Unit.MM, Unit.IN), 6)
        1.0
    """
    if from_unit == to_unit:
        return value
    return from_points(to_points(value, from_unit), to_unit)


def points_to_pixels(points: float, ratio: float = DEFAULT_POINTS_TO_PIXELS) -> float:
    return points * ratio


def pixels_to_points(pixels: float, ratio: float = DEFAULT_POINTS_TO_PIXELS) -> float:
    return pixels / ratio


def parse_value(text: str) -> Optional[Tuple[float, Unit]]:
    """
    Parse a measurement such as ``"10.5in"`` or ``"12"``.

    A bare number is taken to be points.

    Returns:
        (value, unit) or None if the text is not a measurement
    """
    match = _VALUE_RE.match(text.strip())
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    unit = Unit(match.group(2)) if match.group(2) else Unit.PT
    return value, unit


def format_value(value: float, unit: Unit, decimals: int = 2) -> str:
    return f"{value:.{decimals}f}{unit.value}"


def unit_name(unit: Unit) -> str:
    return UNIT_NAMES[unit]


def round_to_increment(value: float, increment: float) -> float:
    if increment <= 0:
        raise ValueError(f"increment must be positive, got {increment}")
    return round(value / increment) * increment


def snap_to_grid(points: float, grid_size: float, unit: Unit = Unit.PT) -> float:
    """Snap a point value to a grid whose spacing is given in ``unit``."""
    grid_points = to_points(grid_size, unit)
    return round_to_increment(points, grid_points)


def _convert_matrix_string(matrix: str, factor: float) -> str:
    values = matrix.split()
    if len(values) != 6:
        return matrix
    try:
        numbers = [float(v) for v in values]
    except ValueError:
        logger.warning(f"Cannot convert non-numeric matrix: {matrix!r}")
        return matrix
    numbers[4] *= factor
    numbers[5] *= factor
    return " ".join(f"{n:g}" for n in numbers)


def transform_to_pixels(matrix: str, ratio: float = DEFAULT_POINTS_TO_PIXELS) -> str:
    """Convert the translation of an ItemTransform string from points to pixels."""
    return _convert_matrix_string(matrix, ratio)


def transform_to_points(matrix: str, ratio: float = DEFAULT_POINTS_TO_PIXELS) -> str:
    """Convert the translation of an ItemTransform string from pixels to points."""
    return _convert_matrix_string(matrix, 1 / ratio)
