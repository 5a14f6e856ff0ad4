"""Colour swatches and approximate conversion to screen RGB.

Conversions here are deliberately simple (no ICC profiles). They exist so
the rendering surface and the HTML export can show something close to the
printed colour.

A ``ColorManager`` is built once per document and handed to whatever needs
colour lookups; there is no module-level instance.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

FALLBACK_HEX = "#000000"

# Swatches InDesign defines without a Color element in some exports
BUILTIN_HEX: Dict[str, Optional[str]] = {
    "Color/Paper": "#ffffff",
    "Color/Black": "#000000",
    "Swatch/None": None,
}


class ColorModel(Enum):
    PROCESS = "Process"
    SPOT = "Spot"
    REGISTRATION = "Registration"
    MIXED_INK = "MixedInk"


class ColorSpace(Enum):
    CMYK = "CMYK"
    RGB = "RGB"
    LAB = "LAB"


def clamp_channel(value: float) -> int:
    return max(0, min(255, int(round(value))))


def rgb_to_hex(r: float, g: float, b: float) -> str:
    """
    Hex string for RGB channels, clamped to 0..255.

    Example:
        >>> rgb_to_hex(255, 128, 300)
        '#ff80ff'
    """
    return "#{:02x}{:02x}{:02x}".format(clamp_channel(r), clamp_channel(g), clamp_channel(b))


def cmyk_to_rgb(c: float, m: float, y: float, k: float) -> Tuple[int, int, int]:
    """
    Approximate CMYK (percent, 0..100) to RGB (0..255).

    Example:
        >>> cmyk_to_rgb(0, 0, 0, 0)
        (255, 255, 255)
        >>> cmyk_to_rgb(0, 0, 0, 100)
        (0, 0, 0)
    """
    c, m, y, k = (v / 100.0 for v in (c, m, y, k))
    return (
        clamp_channel(255 * (1 - c) * (1 - k)),
        clamp_channel(255 * (1 - m) * (1 - k)),
        clamp_channel(255 * (1 - y) * (1 - k)),
    )


def lab_to_rgb(l: float, a: float, b: float) -> Tuple[int, int, int]:
    """Approximate CIE L*a*b* (D65) to sRGB."""
    fy = (l + 16) / 116
    fx = fy + a / 500
    fz = fy - b / 200

    def finv(t: float) -> float:
        return t ** 3 if t ** 3 > 0.008856 else (t - 16 / 116) / 7.787

    x = 0.95047 * finv(fx)
    y = 1.00000 * finv(fy)
    z = 1.08883 * finv(fz)

    linear = (
        3.2406 * x - 1.5372 * y - 0.4986 * z,
        -0.9689 * x + 1.8758 * y + 0.0415 * z,
        0.0557 * x - 0.2040 * y + 1.0570 * z,
    )

    def gamma(u: float) -> float:
        u = max(0.0, u)
        return 1.055 * u ** (1 / 2.4) - 0.055 if u > 0.0031308 else 12.92 * u

    r, g, bl = (clamp_channel(255 * gamma(u)) for u in linear)
    return r, g, bl


@dataclass(frozen=True)
class Color:
    """Parsed colour swatch. Immutable."""

    self_id: str
    name: str
    model: Optional[ColorModel]
    space: Optional[ColorSpace]
    values: Tuple[float, ...]
    visible: bool = True
    editable: bool = True

    @property
    def rgb(self) -> Optional[Tuple[int, int, int]]:
        """Screen approximation, or None if the values do not fit the space."""
        if self.space == ColorSpace.CMYK and len(self.values) == 4:
            return cmyk_to_rgb(*self.values)
        if self.space == ColorSpace.RGB and len(self.values) == 3:
            r, g, b = self.values
            return clamp_channel(r), clamp_channel(g), clamp_channel(b)
        if self.space == ColorSpace.LAB and len(self.values) == 3:
            return lab_to_rgb(*self.values)
        return None

    @property
    def hex(self) -> str:
        rgb = self.rgb
        return rgb_to_hex(*rgb) if rgb else FALLBACK_HEX


def _parse_enum(enum_cls, raw: Optional[str], self_id: str, attr: str):
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning(f"Color {self_id}: unknown {attr} {raw!r}")
        return None


def parse_color_element(element: ET.Element) -> Optional[Color]:
    """Build a Color from a ``<Color>`` element; None without a Self id."""
    self_id = element.get("Self")
    if not self_id:
        logger.warning("Skipping Color element without Self attribute")
        return None

    raw_values = element.get("ColorValue", "")
    try:
        values = tuple(float(v) for v in raw_values.split())
    except ValueError:
        logger.warning(f"Color {self_id}: non-numeric ColorValue {raw_values!r}")
        values = ()

    return Color(
        self_id=self_id,
        name=element.get("Name", self_id),
        model=_parse_enum(ColorModel, element.get("Model"), self_id, "Model"),
        space=_parse_enum(ColorSpace, element.get("Space"), self_id, "Space"),
        values=values,
        visible=element.get("Visible", "true") != "false",
        editable=element.get("ColorEditable", "true") != "false",
    )


class ColorManager:
    """
    Colour lookup for one document.

    Usage:
        >>> manager = ColorManager.from_graphic_file(Path("Resources/Graphic.xml"))
        >>> manager.get_hex("Color/Black")
        '#000000'
    """

    def __init__(self, colors: Optional[Iterable[Color]] = None):
        self._colors: Dict[str, Color] = {}
        for color in colors or []:
            self._colors[color.self_id] = color

    @classmethod
    def from_graphic_xml(cls, root: ET.Element) -> "ColorManager":
        colors = []
        for element in root.iter("Color"):
            color = parse_color_element(element)
            if color is not None:
                colors.append(color)
        logger.debug(f"Loaded {len(colors)} colors")
        return cls(colors)

    @classmethod
    def from_graphic_file(cls, path: Path) -> "ColorManager":
        """Load colours from ``Resources/Graphic.xml``; empty when absent."""
        if not path.exists():
            logger.warning(f"Graphic resources not found: {path}")
            return cls()
        return cls.from_graphic_xml(ET.parse(path).getroot())

    def __len__(self) -> int:
        return len(self._colors)

    def __contains__(self, color_id: str) -> bool:
        return color_id in self._colors

    def get(self, color_id: str) -> Optional[Color]:
        return self._colors.get(color_id)

    def get_hex(self, color_id: Optional[str], default: Optional[str] = FALLBACK_HEX) -> Optional[str]:
        """
        CSS colour for a swatch reference.

        Returns None for ``Swatch/None`` (transparent) and ``default`` for
        unknown references.
        """
        if color_id is None:
            return default
        color = self._colors.get(color_id)
        if color is not None:
            return color.hex
        if color_id in BUILTIN_HEX:
            return BUILTIN_HEX[color_id]
        logger.debug(f"Unknown color reference {color_id!r}")
        return default

    def visible_colors(self) -> List[Color]:
        return [c for c in self._colors.values() if c.visible]
