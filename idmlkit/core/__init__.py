"""Document model and geometry for IDML editing."""

from .bbox import PixelBox, Rect, format_bounds, parse_bounds, parse_bounds_rect
from .colors import Color, ColorManager, cmyk_to_rgb, lab_to_rgb, rgb_to_hex
from .history import EditHistory
from .scene import (
    EditTracking,
    GraphicLine,
    Group,
    Image,
    Layer,
    Oval,
    Page,
    PageItem,
    Polygon,
    Rectangle,
    Spread,
    TextFrame,
    generate_unique_id,
    is_valid_id,
)
from .story import (
    CharacterRange,
    Justification,
    Paragraph,
    Story,
    story_to_plain_text,
    update_story_from_plain_text,
)
from .transform import IDENTITY, Matrix, RenderProps, compose, decompose, format_matrix, parse_matrix
from .units import Unit, convert, points_to_pixels, pixels_to_points

__all__ = [
    # Geometry
    "Rect",
    "PixelBox",
    "parse_bounds",
    "parse_bounds_rect",
    "format_bounds",
    "Matrix",
    "IDENTITY",
    "RenderProps",
    "parse_matrix",
    "format_matrix",
    "decompose",
    "compose",
    "Unit",
    "convert",
    "points_to_pixels",
    "pixels_to_points",
    # Colours
    "Color",
    "ColorManager",
    "cmyk_to_rgb",
    "lab_to_rgb",
    "rgb_to_hex",
    # Scene
    "PageItem",
    "TextFrame",
    "Rectangle",
    "Oval",
    "Polygon",
    "GraphicLine",
    "Group",
    "Image",
    "Page",
    "Spread",
    "Layer",
    "EditTracking",
    "generate_unique_id",
    "is_valid_id",
    # Stories
    "Story",
    "Paragraph",
    "CharacterRange",
    "Justification",
    "story_to_plain_text",
    "update_story_from_plain_text",
    # History
    "EditHistory",
]
