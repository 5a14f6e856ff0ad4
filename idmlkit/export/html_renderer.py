"""Static HTML+CSS approximation of one spread.

Every visible page item becomes an absolutely positioned element. Positions
are pixels relative to the top-left corner of the spread's pages; rotation
is applied about the element's top-left corner. Colours are approximated
to RGB and fonts go through the configured substitution table, so the
result is a preview, not a faithful rendering.
"""

from __future__ import annotations

import html
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from ..config import EditorConfig
from ..core.bbox import Rect
from ..core.scene import (
    GraphicLine,
    Group,
    Oval,
    PageItem,
    Rectangle,
    Spread,
    TextFrame,
)
from ..core.story import CharacterRange, Paragraph
from ..core.transform import IDENTITY, Matrix, decompose
from ..errors import StoryNotFoundError

if TYPE_CHECKING:
    from ..indesign.idml_parser import IDMLDocument

logger = logging.getLogger(__name__)

FALLBACK_FONT_STACK = "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif"
DEFAULT_BOX_PIXELS = 100.0

FONT_STYLE_CSS: Dict[str, Dict[str, str]] = {
    "Regular": {},
    "Roman": {},
    "Italic": {"font-style": "italic"},
    "Oblique": {"font-style": "italic"},
    "Bold": {"font-weight": "bold"},
    "Bold Italic": {"font-weight": "bold", "font-style": "italic"},
    "BoldItalic": {"font-weight": "bold", "font-style": "italic"},
    "Semibold": {"font-weight": "600"},
    "Light": {"font-weight": "300"},
}


@dataclass
class HtmlExport:
    """Rendered spread."""

    html: str
    css: str
    title: str = ""
    assets: List[str] = field(default_factory=list)


@dataclass
class _Box:
    left: float
    top: float
    width: float
    height: float
    angle: float = 0.0


def _px(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{'0' if text in ('', '-0') else text}px"


def _declarations(styles: Dict[str, str]) -> str:
    return "; ".join(f"{key}: {value}" for key, value in styles.items())


class SpreadHtmlRenderer:
    """Walks one spread and collects HTML fragments and CSS rules."""

    def __init__(self, doc: "IDMLDocument", spread: Spread, config: EditorConfig, inline_css: bool):
        self.doc = doc
        self.spread = spread
        self.config = config
        self.ratio = config.points_to_pixels
        self.inline_css = inline_css
        self.rules: List[str] = []
        self.assets: List[str] = []
        self._anonymous = 0
        self.origin, self.size = self._canvas()

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _canvas(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """Origin (points) and pixel size of the rendered area."""
        area: Optional[Rect] = None
        for page in self.spread.pages:
            rect = page.spread_rect()
            if rect is not None:
                area = rect if area is None else area.union(rect)
        if area is None:
            for item in self.spread.items:
                rect = self._spread_rect(item, IDENTITY)
                if rect is not None:
                    area = rect if area is None else area.union(rect)
        if area is None:
            return (0.0, 0.0), (0.0, 0.0)
        return (area.x, area.y), (area.width * self.ratio, area.height * self.ratio)

    def _spread_rect(self, item: PageItem, outer: Matrix) -> Optional[Rect]:
        """Axis-aligned extent of an item in spread points."""
        matrix = item.transform.then(outer)
        if isinstance(item, Group):
            rect = None
            for child in item.items:
                child_rect = self._spread_rect(child, matrix)
                if child_rect is not None:
                    rect = child_rect if rect is None else rect.union(child_rect)
            return rect
        local = item.local_bounds()
        if local is None:
            return None
        corners = [
            matrix.apply(local.x, local.y),
            matrix.apply(local.right, local.y),
            matrix.apply(local.x, local.bottom),
            matrix.apply(local.right, local.bottom),
        ]
        xs = [c[0] for c in corners]
        ys = [c[1] for c in corners]
        return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def _box(self, item: PageItem, matrix: Matrix, offset: Tuple[float, float]) -> _Box:
        """Pixel box of a leaf item relative to ``offset`` (spread points)."""
        props = decompose(matrix, self.ratio)
        local = item.local_bounds()
        if local is None:
            x, y = matrix.apply(0.0, 0.0)
            return _Box(
                (x - offset[0]) * self.ratio,
                (y - offset[1]) * self.ratio,
                DEFAULT_BOX_PIXELS,
                DEFAULT_BOX_PIXELS,
                props.angle,
            )

        if isinstance(item, GraphicLine):
            x1, y1 = matrix.apply(local.x, local.y)
            x2, y2 = matrix.apply(local.right, local.bottom)
            return _Box(
                (x1 - offset[0]) * self.ratio,
                (y1 - offset[1]) * self.ratio,
                math.hypot(x2 - x1, y2 - y1) * self.ratio,
                max((item.stroke_weight or 1.0) * self.ratio, 1.0),
                math.degrees(math.atan2(y2 - y1, x2 - x1)),
            )

        x, y = matrix.apply(local.x, local.y)
        return _Box(
            (x - offset[0]) * self.ratio,
            (y - offset[1]) * self.ratio,
            local.width * props.scale_x * self.ratio,
            local.height * props.scale_y * self.ratio,
            props.angle,
        )

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def _is_hidden(self, item: PageItem) -> bool:
        if not item.is_visible:
            return True
        layer = self.doc.layers.get(item.layer) if item.layer else None
        return layer is not None and not layer.visible

    def _element_id(self, item: PageItem) -> str:
        if item.self_id:
            return f"idml-{item.self_id}"
        self._anonymous += 1
        return f"idml-anon-{self._anonymous}"

    def _open_tag(self, item: PageItem, classes: str, styles: Dict[str, str]) -> str:
        element_id = self._element_id(item)
        attrs = f'id="{element_id}" class="{classes}" data-idml-type="{item.kind}"'
        if self.inline_css:
            return f'<div {attrs} style="{html.escape(_declarations(styles))}">'
        self.rules.append(f"#{element_id} {{ {_declarations(styles)}; }}")
        return f"<div {attrs}>"

    def _position_styles(self, box: _Box) -> Dict[str, str]:
        styles = {
            "left": _px(box.left),
            "top": _px(box.top),
            "width": _px(box.width),
            "height": _px(box.height),
        }
        if abs(box.angle) > 1e-6:
            styles["transform"] = f"rotate({box.angle:.4f}deg)".replace(".0000deg", "deg")
        return styles

    def _color(self, color_id: Optional[str], default: Optional[str] = None) -> Optional[str]:
        if color_id is None:
            return default
        return self.doc.colors.get_hex(color_id, default=default)

    def render_items(self, items: List[PageItem], outer: Matrix, offset: Tuple[float, float]) -> List[str]:
        parts: List[str] = []
        for item in items:
            if self._is_hidden(item):
                logger.debug(f"Skipping hidden {item.kind} {item.self_id}")
                continue
            parts.extend(self.render_item(item, outer, offset))
        return parts

    def render_item(self, item: PageItem, outer: Matrix, offset: Tuple[float, float]) -> List[str]:
        matrix = item.transform.then(outer)

        if isinstance(item, Group):
            rect = self._spread_rect(item, outer)
            if rect is None:
                return []
            styles = self._position_styles(
                _Box(
                    (rect.x - offset[0]) * self.ratio,
                    (rect.y - offset[1]) * self.ratio,
                    rect.width * self.ratio,
                    rect.height * self.ratio,
                )
            )
            parts = [self._open_tag(item, "idml-element idml-group", styles)]
            parts.extend(self.render_items(item.items, matrix, (rect.x, rect.y)))
            parts.append("</div>")
            return parts

        box = self._box(item, matrix, offset)
        styles = self._position_styles(box)
        classes = f"idml-element idml-{item.kind.lower()}"

        if isinstance(item, GraphicLine):
            styles["background-color"] = self._color(item.stroke_color, "#000000")
            return [self._open_tag(item, classes, styles) + "</div>"]

        fill = self._color(item.fill_color)
        if fill:
            styles["background-color"] = fill
        if item.stroke_weight and item.stroke_color:
            stroke = self._color(item.stroke_color)
            if stroke:
                styles["border"] = f"{_px(item.stroke_weight * self.ratio)} solid {stroke}"
        if isinstance(item, Oval):
            styles["border-radius"] = "50%"

        parts = [self._open_tag(item, classes, styles)]
        if isinstance(item, TextFrame):
            parts.extend(self._render_text(item))
        elif isinstance(item, Rectangle) and item.image is not None and item.image.link_uri:
            parts.append(self._render_image(item.image.link_uri))
        parts.append("</div>")
        return parts

    def _render_image(self, link_uri: str) -> str:
        name = link_uri.replace("\\", "/").rsplit("/", 1)[-1]
        self.assets.append(link_uri)
        src = html.escape(f"assets/{name}")
        return f'<img src="{src}" alt="{html.escape(name)}" style="width: 100%; height: 100%; object-fit: cover" />'

    def _render_text(self, frame: TextFrame) -> List[str]:
        try:
            story = self.doc.story_for_frame(frame)
        except StoryNotFoundError as exc:
            logger.warning(f"TextFrame {frame.self_id}: {exc}; rendering empty frame")
            return []
        return [self._render_paragraph(p) for p in story.paragraphs]

    def _render_paragraph(self, paragraph: Paragraph) -> str:
        styles = {"text-align": paragraph.alignment.value}
        if paragraph.space_before:
            styles["margin-top"] = _px(paragraph.space_before * self.ratio)
        if paragraph.space_after:
            styles["margin-bottom"] = _px(paragraph.space_after * self.ratio)
        spans = "".join(self._render_range(r) for r in paragraph.ranges)
        return f'<p style="{html.escape(_declarations(styles))}">{spans or "&nbsp;"}</p>'

    def font_stack(self, family: Optional[str]) -> str:
        if not family:
            return FALLBACK_FONT_STACK
        if family in self.config.font_substitutions:
            return self.config.font_substitutions[family]
        return f"'{family}', {FALLBACK_FONT_STACK}"

    def _render_range(self, rng: CharacterRange) -> str:
        styles: Dict[str, str] = {}
        if rng.font_family:
            styles["font-family"] = self.font_stack(rng.font_family)
        if rng.font_size:
            styles["font-size"] = _px(rng.font_size * self.ratio)
        if rng.font_style:
            styles.update(FONT_STYLE_CSS.get(rng.font_style, {}))
        color = self._color(rng.fill_color)
        if color:
            styles["color"] = color
        text = html.escape(rng.content).replace("\n", "<br />")
        if not styles:
            return f"<span>{text}</span>"
        return f'<span style="{html.escape(_declarations(styles))}">{text}</span>'

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def base_css(self) -> str:
        width, height = self.size
        return "\n".join(
            [
                "/* Generated from IDML spread "
                f"{self.spread.self_id}. Approximate preview: colors converted to RGB, fonts substituted. */",
                ".idml-container {",
                "  position: relative;",
                f"  width: {_px(width)};",
                f"  height: {_px(height)};",
                f"  background: {self.config.html_background};",
                "  margin: 0 auto;",
                "  overflow: hidden;",
                f"  font-family: {FALLBACK_FONT_STACK};",
                "}",
                ".idml-element {",
                "  position: absolute;",
                "  box-sizing: border-box;",
                "  transform-origin: 0 0;",
                "}",
                ".idml-textframe { overflow: hidden; }",
                ".idml-textframe p { margin: 0; line-height: 1.4; }",
                "@media print {",
                "  .idml-container { margin: 0; box-shadow: none; }",
                "}",
            ]
        )

    def render(self) -> HtmlExport:
        body = self.render_items(self.spread.items, IDENTITY, self.origin)
        for page in self.spread.pages:
            body.extend(self.render_items(page.items, IDENTITY, self.origin))

        css = self.base_css()
        if self.rules:
            css = css + "\n" + "\n".join(self.rules)

        title = f"Spread {self.spread.self_id}"
        parts: List[str] = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '<meta charset="utf-8" />',
            f"<title>{html.escape(title)}</title>",
        ]
        if self.inline_css:
            parts.append(f"<style>\n{css}\n</style>")
        else:
            parts.append('<link rel="stylesheet" href="styles.css" />')
        parts.extend(["</head>", "<body>", '<div class="idml-container">'])
        parts.extend(body)
        parts.extend(["</div>", "</body>", "</html>"])

        return HtmlExport(html="\n".join(parts), css=css, title=title, assets=list(self.assets))


def render_spread_html(
    doc: "IDMLDocument",
    spread: Spread,
    config: Optional[EditorConfig] = None,
    inline_css: bool = True,
) -> HtmlExport:
    """
    Render one spread to HTML and CSS.

    Args:
        doc: Loaded document (stories, colours, layers)
        spread: Spread to render
        config: Pixel ratio, font substitutions, background
        inline_css: Put element styles in ``style`` attributes and the base
            stylesheet in ``<style>``; otherwise link ``styles.css``

    Returns:
        HtmlExport
    """
    renderer = SpreadHtmlRenderer(doc, spread, config or EditorConfig(), inline_css)
    export = renderer.render()
    logger.info(f"Rendered spread {spread.self_id} to HTML ({len(export.html)} chars)")
    return export


def write_html_export(export: HtmlExport, out_dir: Path) -> Path:
    """Write index.html, styles.css, README.txt and an assets/ directory."""
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "assets").mkdir(exist_ok=True)
    index = out_dir / "index.html"
    index.write_text(export.html, encoding="utf-8")
    (out_dir / "styles.css").write_text(export.css, encoding="utf-8")

    readme = [
        f"HTML preview of {export.title}.",
        "",
        "Positions and sizes are approximate; fonts are substituted and",
        "CMYK colours converted to RGB.",
    ]
    if export.assets:
        readme.extend(["", "Copy these linked images into assets/:"])
        readme.extend(f"  {uri}" for uri in export.assets)
    (out_dir / "README.txt").write_text("\n".join(readme) + "\n", encoding="utf-8")
    return index
