"""Scene graph edit operations.

Every operation mutates the scene in place and flags the touched items
through their ``EditTracking`` so the save path knows what to write.
New objects get fresh ``Self`` ids from ``generate_unique_id``.
"""

import logging
import random
import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..errors import ObjectNotFoundError
from .bbox import Rect, format_number
from .scene import (
    GraphicLine,
    Group,
    Image,
    Layer,
    Page,
    PageItem,
    Rectangle,
    Spread,
    TextFrame,
    generate_unique_id,
)
from .story import (
    DEFAULT_CHARACTER_STYLE,
    DEFAULT_FONT,
    DEFAULT_FONT_SIZE,
    DEFAULT_PARAGRAPH_STYLE,
    PARAGRAPH_SEPARATOR,
    Story,
    StoryPreference,
    new_paragraph,
)
from .transform import Matrix, RenderProps, compose

logger = logging.getLogger(__name__)


# ============================================================================
# Geometry edits
# ============================================================================


def set_item_transform(item: PageItem, matrix: Matrix) -> None:
    item.set_transform(matrix)
    logger.debug(f"{item.kind} {item.self_id}: transform set")


def apply_render_props(item: PageItem, props: RenderProps, points_to_pixels: float) -> None:
    """Compose rendering-surface properties back into the item's matrix."""
    item.set_transform(compose(props, points_to_pixels))


def move_item(item: PageItem, dx_pixels: float, dy_pixels: float, points_to_pixels: float) -> None:
    """Translate an item by a pixel offset."""
    item.set_transform(
        item.transform.translated(dx_pixels / points_to_pixels, dy_pixels / points_to_pixels)
    )


# ============================================================================
# Structure edits
# ============================================================================


def add_item(spread: Spread, item: PageItem, page: Optional[Page] = None) -> None:
    """Place an item on the spread (or inside ``page``) and flag it as new."""
    container = page.items if page is not None else spread.items
    container.append(item)
    item.tracking.is_new = True
    spread.structure_changed = True


def remove_item(spread: Spread, item_id: str) -> Tuple[PageItem, List[PageItem], int]:
    """
    Detach an item from wherever it sits.

    Returns:
        (item, container it was in, index) so the removal can be undone

    Raises:
        ObjectNotFoundError: If the spread has no such item
    """
    located = spread.locate(item_id)
    if located is None:
        raise ObjectNotFoundError(item_id, spread.file_name)
    item, container = located
    index = container.index(item)
    del container[index]
    spread.structure_changed = True
    return item, container, index


def group_items(
    spread: Spread,
    item_ids: Sequence[str],
    existing_ids: Set[str],
    rng: Optional[random.Random] = None,
) -> Group:
    """
    Wrap sibling items in a new Group.

    The group takes the place of the first grouped item. Children keep their
    own transforms; the group gets the identity.

    Raises:
        ValueError: Fewer than two ids, or items in different containers
        ObjectNotFoundError: If an id does not resolve
    """
    if len(set(item_ids)) < 2:
        raise ValueError("Grouping needs at least two distinct items")

    located = []
    for item_id in item_ids:
        found = spread.locate(item_id)
        if found is None:
            raise ObjectNotFoundError(item_id, spread.file_name)
        located.append(found)

    container = located[0][1]
    if any(found[1] is not container for found in located):
        raise ValueError("Only items sharing a parent can be grouped")

    members = [item for item in container if item.self_id in set(item_ids)]
    index = container.index(members[0])

    group = Group(self_id=generate_unique_id(existing_ids, rng=rng), layer=members[0].layer)
    group.items = members
    group.tracking.is_new = True

    container[:] = [item for item in container if item not in members]
    container.insert(index, group)
    spread.structure_changed = True
    logger.info(f"Grouped {len(members)} items into {group.self_id}")
    return group


def ungroup(spread: Spread, group_id: str) -> List[PageItem]:
    """
    Dissolve a group, moving its children into the group's container.

    Each child's transform is flattened with the group's so nothing moves
    on the page.

    Raises:
        ObjectNotFoundError: If the id does not resolve
        ValueError: If the id is not a group
    """
    located = spread.locate(group_id)
    if located is None:
        raise ObjectNotFoundError(group_id, spread.file_name)
    group, container = located
    if not isinstance(group, Group):
        raise ValueError(f"{group.kind} {group_id} is not a group")

    index = container.index(group)
    for child in group.items:
        child.set_transform(child.transform.then(group.transform))

    container[index:index + 1] = group.items
    spread.structure_changed = True
    logger.info(f"Ungrouped {group_id} ({len(group.items)} items)")
    return list(group.items)


# ============================================================================
# Layers
# ============================================================================


def layer_items(spreads: Iterable[Spread], layer_id: str) -> List[PageItem]:
    return [
        item
        for spread in spreads
        for item in spread.all_items()
        if item.layer == layer_id
    ]


def set_layer_visibility(spreads: Iterable[Spread], layer: Layer, visible: bool) -> List[PageItem]:
    """Show or hide every item on a layer. Returns the touched items."""
    layer.visible = visible
    items = layer_items(spreads, layer.self_id)
    for item in items:
        item.visible = visible
        item.tracking.mark_modified(item.raw_transform)
    return items


def set_layer_locked(spreads: Iterable[Spread], layer: Layer, locked: bool) -> List[PageItem]:
    """Lock or unlock every item on a layer. Returns the touched items."""
    layer.locked = locked
    items = layer_items(spreads, layer.self_id)
    for item in items:
        item.locked = locked
        item.tracking.mark_modified(item.raw_transform)
    return items


# ============================================================================
# Element factory
# ============================================================================


def path_properties(
    points: Sequence[Tuple[float, float]], closed: bool = True, precision: int = 4
) -> ET.Element:
    """``Properties/PathGeometry`` element for straight-edged paths."""
    properties = ET.Element("Properties")
    geometry = ET.SubElement(properties, "PathGeometry")
    path = ET.SubElement(geometry, "GeometryPathType", {"PathOpen": "false" if closed else "true"})
    array = ET.SubElement(path, "PathPointArray")
    for x, y in points:
        anchor = f"{format_number(x, precision)} {format_number(y, precision)}"
        ET.SubElement(
            array,
            "PathPointType",
            {"Anchor": anchor, "LeftDirection": anchor, "RightDirection": anchor},
        )
    return properties


def _box_points(width: float, height: float) -> List[Tuple[float, float]]:
    return [(0.0, 0.0), (0.0, height), (width, height), (width, 0.0)]


def create_text_frame(
    existing_ids: Set[str],
    story_id: str,
    left: float,
    top: float,
    width: float,
    height: float,
    layer: Optional[str] = None,
    precision: int = 4,
) -> TextFrame:
    """New text frame at (left, top) in points, bound to ``story_id``."""
    frame = TextFrame(
        self_id=generate_unique_id(existing_ids),
        parent_story=story_id,
        content_type="TextType",
        previous_frame="n",
        next_frame="n",
        layer=layer,
        transform=Matrix.translation(left, top),
        path_bounds=Rect(0.0, 0.0, width, height),
    )
    frame.extra_children.append(path_properties(_box_points(width, height), precision=precision))
    frame.tracking.is_new = True
    return frame


def create_rectangle(
    existing_ids: Set[str],
    left: float,
    top: float,
    width: float,
    height: float,
    fill_color: Optional[str] = None,
    stroke_color: Optional[str] = None,
    stroke_weight: Optional[float] = None,
    layer: Optional[str] = None,
    precision: int = 4,
) -> Rectangle:
    rect = Rectangle(
        self_id=generate_unique_id(existing_ids),
        fill_color=fill_color,
        stroke_color=stroke_color,
        stroke_weight=stroke_weight,
        layer=layer,
        transform=Matrix.translation(left, top),
        path_bounds=Rect(0.0, 0.0, width, height),
    )
    rect.attributes["ContentType"] = "GraphicType"
    rect.extra_children.append(path_properties(_box_points(width, height), precision=precision))
    rect.tracking.is_new = True
    return rect


def create_graphic_line(
    existing_ids: Set[str],
    start: Tuple[float, float],
    end: Tuple[float, float],
    stroke_color: Optional[str] = "Color/Black",
    stroke_weight: Optional[float] = 1.0,
    layer: Optional[str] = None,
    precision: int = 4,
) -> GraphicLine:
    """Straight line between two spread points."""
    (x1, y1), (x2, y2) = start, end
    line = GraphicLine(
        self_id=generate_unique_id(existing_ids),
        stroke_color=stroke_color,
        stroke_weight=stroke_weight,
        layer=layer,
        transform=Matrix.translation(x1, y1),
        path_bounds=Rect.from_edges(0.0, 0.0, y2 - y1, x2 - x1),
    )
    line.extra_children.append(
        path_properties([(0.0, 0.0), (x2 - x1, y2 - y1)], closed=False, precision=precision)
    )
    line.tracking.is_new = True
    return line


def place_image(
    rect: Rectangle,
    link_uri: str,
    bounds: Rect,
    existing_ids: Set[str],
    precision: int = 4,
) -> Image:
    """Attach (or replace) the image of a rectangle frame."""
    if rect.image is None:
        rect.image = Image(self_id=generate_unique_id(existing_ids))
    image = rect.image
    image.link_uri = link_uri
    image.bounds = bounds
    image.extra_children = [_graphic_bounds_properties(bounds, precision)]
    rect.tracking.mark_modified(rect.raw_transform)
    return image


def _graphic_bounds_properties(bounds: Rect, precision: int = 4) -> ET.Element:
    properties = ET.Element("Properties")
    ET.SubElement(
        properties,
        "GraphicBounds",
        {
            "Left": format_number(bounds.x, precision),
            "Top": format_number(bounds.y, precision),
            "Right": format_number(bounds.right, precision),
            "Bottom": format_number(bounds.bottom, precision),
        },
    )
    return properties


def create_story(
    existing_ids: Set[str],
    text: str = "",
    paragraph_style: str = DEFAULT_PARAGRAPH_STYLE,
    character_style: str = DEFAULT_CHARACTER_STYLE,
    font: Optional[str] = DEFAULT_FONT,
    font_size: Optional[float] = DEFAULT_FONT_SIZE,
    max_attempts: int = 10000,
) -> Story:
    """New story holding ``text`` (blank lines separate paragraphs)."""
    story = Story(self_id=generate_unique_id(existing_ids, max_attempts), preference=StoryPreference())
    story.attributes = {
        "AppliedTOCStyle": "n",
        "TrackChanges": "false",
        "StoryTitle": "$ID/",
        "AppliedNamedGrid": "n",
    }
    story.leading_children.append(
        ET.Element("InCopyExportOption", {"IncludeGraphicProxies": "true", "IncludeAllResources": "false"})
    )
    slots = text.split(PARAGRAPH_SEPARATOR)
    story.paragraphs = [
        new_paragraph(slot, paragraph_style, character_style, font, font_size) for slot in slots
    ]
    for paragraph in story.paragraphs[:-1]:
        paragraph.break_after = True
    story.modified = True
    return story
