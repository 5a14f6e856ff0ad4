"""Bounding box types and IDML bounds parsing.

IDML writes bounds as four space-separated numbers in the order
``top left bottom right`` (y before x). Every parser in this module honours
that order; nothing here takes ``x y w h``.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .units import DEFAULT_POINTS_TO_PIXELS

logger = logging.getLogger(__name__)

# Fallback box for unparsable bounds, in output units
DEFAULT_BOX_SIZE = 100.0


@dataclass(frozen=True)
class Rect:
    """
    Axis-aligned rectangle in points.

    Coordinates follow InDesign: origin top-left, y increases downward.
    Width and height are never negative.
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0:
            raise ValueError(f"Invalid rect: width ({self.width}) < 0")
        if self.height < 0:
            raise ValueError(f"Invalid rect: height ({self.height}) < 0")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        """Center point (x, y)."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    @classmethod
    def from_edges(cls, top: float, left: float, bottom: float, right: float) -> "Rect":
        """Build from IDML-ordered edges, swapping inverted edges."""
        y0, y1 = sorted((top, bottom))
        x0, x1 = sorted((left, right))
        return cls(x0, y0, x1 - x0, y1 - y0)

    def to_edges(self) -> Tuple[float, float, float, float]:
        """Edges in IDML order (top, left, bottom, right)."""
        return (self.y, self.x, self.bottom, self.right)

    def union(self, other: "Rect") -> "Rect":
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        right = max(self.right, other.right)
        bottom = max(self.bottom, other.bottom)
        return Rect(left, top, right - left, bottom - top)

    def scaled(self, factor: float) -> "Rect":
        return Rect(self.x * factor, self.y * factor, self.width * factor, self.height * factor)


@dataclass(frozen=True)
class PixelBox:
    """Bounds converted for the rendering surface."""

    top: float
    left: float
    width: float
    height: float


def _split_bounds(text) -> Optional[List[float]]:
    if text is None:
        return None
    parts = str(text).split()
    if len(parts) != 4:
        return None
    try:
        return [float(p) for p in parts]
    except ValueError:
        return None


def parse_bounds(
    text: str,
    points_to_pixels: float = DEFAULT_POINTS_TO_PIXELS,
    context: str = "",
) -> PixelBox:
    """
    Parse a GeometricBounds string into a pixel box.

    Args:
        text: ``"y1 x1 y2 x2"`` in points
        points_to_pixels: Output pixels per point
        context: Element description for the warning message

    Returns:
        PixelBox; a 100x100 box at origin when the input is malformed

    Example:
        >>> parse_bounds("100 50 300 250", points_to_pixels=1)
        PixelBox(top=100.0, left=50.0, width=200.0, height=200.0)
    """
    values = _split_bounds(text)
    if values is None:
        where = f" on {context}" if context else ""
        logger.warning(f"Malformed bounds {text!r}{where}, using default box")
        return PixelBox(0.0, 0.0, DEFAULT_BOX_SIZE, DEFAULT_BOX_SIZE)

    y1, x1, y2, x2 = values
    return PixelBox(
        top=y1 * points_to_pixels,
        left=x1 * points_to_pixels,
        width=(x2 - x1) * points_to_pixels,
        height=(y2 - y1) * points_to_pixels,
    )


def parse_bounds_rect(text: str, context: str = "") -> Optional[Rect]:
    """
    Parse a bounds string into a normalized Rect in points.

    Returns None (after a warning) for malformed input so that callers can
    keep the raw value for round trip.
    """
    values = _split_bounds(text)
    if values is None:
        where = f" on {context}" if context else ""
        logger.warning(f"Malformed bounds {text!r}{where}")
        return None

    top, left, bottom, right = values
    if bottom < top or right < left:
        logger.warning(f"Inverted bounds {text!r} normalized{' on ' + context if context else ''}")
    return Rect.from_edges(top, left, bottom, right)


def _fmt(value: float, precision: int) -> str:
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def format_number(value: float, precision: int = 4) -> str:
    """Format a number for an IDML attribute (trailing zeros trimmed)."""
    return _fmt(value, precision)


def rect_from_bounds_text(text: Optional[str]) -> Optional[Rect]:
    """Quiet variant of ``parse_bounds_rect``: None for missing or malformed text."""
    values = _split_bounds(text)
    if values is None:
        return None
    return Rect.from_edges(*values)


def format_bounds(rect: Rect, precision: int = 4) -> str:
    """Format a Rect as ``"top left bottom right"``."""
    return " ".join(_fmt(v, precision) for v in rect.to_edges())


def bounds_of_points(points: Iterable[Tuple[float, float]]) -> Optional[Rect]:
    """Smallest Rect containing all points, or None for no points."""
    xs: List[float] = []
    ys: List[float] = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        return None
    return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))
