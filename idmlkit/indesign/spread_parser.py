"""Spread XML -> scene graph.

Known element types (Page, TextFrame, Rectangle, Oval, Polygon,
GraphicLine, Group) are materialised at spread level and recursively
inside pages and groups. Anything else is carried as an opaque element.

Malformed attribute values never abort a parse; see ``read_fields``.
"""

import copy
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..core.bbox import Rect, bounds_of_points, parse_bounds_rect
from ..core.scene import (
    ITEM_TYPES,
    Group,
    Image,
    Margins,
    Page,
    PageItem,
    Rectangle,
    Spread,
)
from ..core.transform import IDENTITY, parse_matrix
from .idml_utils import (
    local_name,
    package_element,
    parse_xml_file,
    parse_xml_string,
    read_fields,
)

logger = logging.getLogger(__name__)

SPECIAL_ITEM_ATTRS = ("ItemTransform", "GeometricBounds")


def parse_spread_file(path: Path) -> Spread:
    """Parse ``Spreads/Spread_*.xml`` from disk."""
    spread = parse_spread(parse_xml_file(path).getroot())
    spread.file_name = path.name
    return spread


def parse_spread(source: Union[str, bytes, ET.Element]) -> Spread:
    """
    Build a Spread from spread XML.

    Args:
        source: XML text or an already parsed root element (``idPkg:Spread``
            wrapper or bare ``Spread``)

    Returns:
        Spread with pages and page items in source order

    Raises:
        IDMLPackageError: If there is no Spread element
        ET.ParseError: If the XML text is not well-formed
    """
    root = parse_xml_string(source) if isinstance(source, (str, bytes)) else source
    element = package_element(root, "Spread")

    spread = Spread(self_id=element.get("Self", ""))
    if element is not root:
        spread.package_attributes = dict(root.attrib)

    context = f"Spread {spread.self_id}"
    read_fields(element.attrib, spread, Spread.FIELDS, context, special=("ItemTransform",))
    spread.raw_transform = element.get("ItemTransform")
    if spread.raw_transform is not None:
        spread.transform = parse_matrix(spread.raw_transform, context)

    anchor: Optional[str] = None
    for child in element:
        tag = local_name(child.tag)
        if tag == "Page":
            page = _parse_page(child)
            spread.pages.append(page)
            anchor = page.self_id
        elif tag in ITEM_TYPES:
            item = parse_item(child)
            spread.items.append(item)
            anchor = item.self_id
        elif anchor is not None:
            spread.anchored_children.append((anchor, _detach(child)))
        else:
            spread.leading_children.append(_detach(child))

    logger.debug(
        f"Parsed spread {spread.self_id}: {len(spread.pages)} pages, "
        f"{sum(1 for _ in spread.all_items())} items"
    )
    return spread


def _detach(element: ET.Element) -> ET.Element:
    clone = copy.deepcopy(element)
    clone.tail = None
    return clone


def _parse_page(element: ET.Element) -> Page:
    page = Page(self_id=element.get("Self", ""))
    context = f"Page {page.self_id}"
    read_fields(element.attrib, page, Page.FIELDS, context, special=SPECIAL_ITEM_ATTRS)

    page.raw_transform = element.get("ItemTransform")
    if page.raw_transform is not None:
        page.transform = parse_matrix(page.raw_transform, context)
    page.raw_bounds = element.get("GeometricBounds")
    if page.raw_bounds is not None:
        page.bounds = parse_bounds_rect(page.raw_bounds, context)

    anchor: Optional[str] = None
    for child in element:
        tag = local_name(child.tag)
        if tag == "MarginPreference" and page.margins is None:
            margins = Margins()
            read_fields(child.attrib, margins, Margins.FIELDS, f"{context} margins")
            page.margins = margins
            page.margin_index = len(page.extra_children)
        elif tag in ITEM_TYPES:
            item = parse_item(child)
            page.items.append(item)
            anchor = item.self_id
        elif anchor is not None:
            page.anchored_children.append((anchor, _detach(child)))
        else:
            page.extra_children.append(_detach(child))

    return page


def parse_item(element: ET.Element) -> PageItem:
    """Materialise one page item element (recursing into groups)."""
    cls = ITEM_TYPES[local_name(element.tag)]
    item: PageItem = cls(self_id=element.get("Self", ""))
    context = f"{cls.ELEMENT_TAG} {item.self_id or '<no Self>'}"

    read_fields(element.attrib, item, cls.fields_schema(), context, special=SPECIAL_ITEM_ATTRS)
    if not item.self_id:
        logger.warning(f"{cls.ELEMENT_TAG} without Self id; it cannot be addressed for saving")

    item.raw_transform = element.get("ItemTransform")
    item.transform = (
        parse_matrix(item.raw_transform, context) if item.raw_transform is not None else IDENTITY
    )
    item.raw_geometric_bounds = element.get("GeometricBounds")
    if item.raw_geometric_bounds is not None:
        item.geometric_bounds = parse_bounds_rect(item.raw_geometric_bounds, context)

    anchor: Optional[str] = None
    for child in element:
        tag = local_name(child.tag)
        if isinstance(item, Group) and tag in ITEM_TYPES:
            member = parse_item(child)
            item.items.append(member)
            anchor = member.self_id
        elif isinstance(item, Rectangle) and tag == "Image" and item.image is None:
            item.image = _parse_image(child)
            anchor = item.image.self_id
        else:
            if anchor is not None:
                item.anchored_children.append((anchor, _detach(child)))
            else:
                item.extra_children.append(_detach(child))
            if tag == "Properties" and item.path_bounds is None:
                item.path_bounds = path_anchor_bounds(child, context)

    return item


def path_anchor_bounds(properties: ET.Element, context: str = "") -> Optional[Rect]:
    """Bounding box of the PathPointType anchors under a Properties element."""
    anchors: List[Tuple[float, float]] = []
    for point in properties.iter("PathPointType"):
        raw = point.get("Anchor")
        if raw is None:
            continue
        parts = raw.split()
        try:
            anchors.append((float(parts[0]), float(parts[1])))
        except (IndexError, ValueError):
            logger.warning(f"Ignoring malformed path anchor {raw!r} on {context}")
    return bounds_of_points(anchors)


def _parse_image(element: ET.Element) -> Image:
    image = Image(self_id=element.get("Self", ""))
    context = f"Image {image.self_id}"
    read_fields(element.attrib, image, (("Self", "self_id", "str"),), context,
                special=("ItemTransform",))

    image.raw_transform = element.get("ItemTransform")
    if image.raw_transform is not None:
        image.transform = parse_matrix(image.raw_transform, context)

    for child in element:
        tag = local_name(child.tag)
        if tag == "Link" and not image.link_attributes:
            image.link_attributes = dict(child.attrib)
            image.link_uri = child.get("LinkResourceURI")
        else:
            image.extra_children.append(_detach(child))
            if tag == "Properties":
                image.bounds = _graphic_bounds(child, context)

    if image.bounds is None and "GeometricBounds" in image.attributes:
        image.bounds = parse_bounds_rect(image.attributes["GeometricBounds"], context)
    return image


def _graphic_bounds(properties: ET.Element, context: str) -> Optional[Rect]:
    bounds = properties.find("GraphicBounds")
    if bounds is None:
        return None
    try:
        left = float(bounds.get("Left", "0"))
        top = float(bounds.get("Top", "0"))
        right = float(bounds.get("Right", "0"))
        bottom = float(bounds.get("Bottom", "0"))
    except ValueError:
        logger.warning(f"Ignoring malformed GraphicBounds on {context}")
        return None
    return Rect.from_edges(top, left, bottom, right)
