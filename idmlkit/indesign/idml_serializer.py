"""Scene graph / story model -> IDML XML.

Output is a complete package part: XML declaration, ``idPkg:*`` wrapper,
then the document element. Page items inside every container are grouped
by type in the order TextFrame, Rectangle, GraphicLine, Group, Polygon,
Oval; items of the same type keep their relative order.

Items that were not edited keep their original ItemTransform text. Edited
and new items get the fixed-precision form from ``format_matrix``.
GeometricBounds text is kept unless the parsed rect no longer matches it.
Unknown children are written back after the modelled child they followed.
"""

import copy
import logging
import xml.etree.ElementTree as ET
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Set, Tuple, Union

from ..core.bbox import Rect, format_bounds, rect_from_bounds_text
from ..core.scene import (
    SERIALIZATION_ORDER,
    Group,
    Image,
    Page,
    PageItem,
    Rectangle,
    Spread,
)
from ..core.story import CharacterRange, Paragraph, Story
from ..core.transform import IDENTITY, format_matrix
from .idml_utils import (
    DEFAULT_DOM_VERSION,
    IDPKG_NS,
    find_element_by_self,
    package_element,
    parse_xml_string,
    sanitize_xml_text,
    write_fields,
    xml_to_string,
)

logger = logging.getLogger(__name__)

# Spread attributes used when serializing a bare item list
DEFAULT_SPREAD_ATTRIBUTES: Dict[str, str] = {
    "Self": "ub6",
    "PageTransitionType": "None",
    "PageTransitionDirection": "NotApplicable",
    "PageTransitionDuration": "Medium",
    "ShowMasterItems": "true",
    "PageCount": "1",
    "BindingLocation": "1",
    "AllowPageShuffle": "true",
    "ItemTransform": "1 0 0 1 0 0",
    "FlattenerOverride": "Default",
}


# ============================================================================
# Spreads
# ============================================================================


def order_items(items: Iterable[PageItem]) -> List[PageItem]:
    """Group items by type in serialization order, stable within a type."""
    items = list(items)
    ordered: List[PageItem] = []
    for tag in SERIALIZATION_ORDER:
        ordered.extend(item for item in items if item.ELEMENT_TAG == tag)
    return ordered


def _item_transform_text(item: PageItem, precision: int) -> Optional[str]:
    if item.raw_transform is not None and not item.tracking.needs_save:
        return item.raw_transform
    if item.raw_transform is None and item.transform == IDENTITY and not item.tracking.needs_save:
        return None
    return format_matrix(item.transform, precision)


def _bounds_text(raw: Optional[str], rect: Optional[Rect], number_precision: int) -> Optional[str]:
    """Original GeometricBounds text unless the parsed rect has changed."""
    if rect is None:
        return raw
    if raw is not None and rect_from_bounds_text(raw) == rect:
        return raw
    return format_bounds(rect, number_precision)


class _AnchoredWriter:
    """Re-emits unknown children right after the modelled child they followed."""

    def __init__(self, parent: ET.Element, anchored: Sequence[Tuple[Hashable, ET.Element]]):
        self.parent = parent
        self.anchored = list(anchored)
        self.emitted: Set[int] = set()

    def after(self, key: Hashable) -> None:
        for index, (anchor, child) in enumerate(self.anchored):
            if anchor == key and index not in self.emitted:
                self.parent.append(copy.deepcopy(child))
                self.emitted.add(index)

    def rest(self) -> None:
        # anchors whose modelled child was removed
        for index, (_, child) in enumerate(self.anchored):
            if index not in self.emitted:
                self.parent.append(copy.deepcopy(child))
        self.emitted.update(range(len(self.anchored)))


def build_item_element(item: PageItem, precision: int = 6, number_precision: int = 4) -> ET.Element:
    """XML element for one page item, recursing into groups."""
    attrib = write_fields(
        item,
        item.fields_schema(),
        special={
            "ItemTransform": _item_transform_text(item, precision),
            "GeometricBounds": _bounds_text(
                item.raw_geometric_bounds, item.geometric_bounds, number_precision
            ),
        },
    )
    element = ET.Element(item.ELEMENT_TAG, attrib)
    element.extend(copy.deepcopy(child) for child in item.extra_children)
    anchored = _AnchoredWriter(element, item.anchored_children)

    if isinstance(item, Group):
        for child in order_items(item.items):
            element.append(build_item_element(child, precision, number_precision))
            anchored.after(child.self_id)
    elif isinstance(item, Rectangle) and item.image is not None:
        element.append(build_image_element(item.image, precision))
        anchored.after(item.image.self_id)

    anchored.rest()
    return element


def build_image_element(image: Image, precision: int = 6) -> ET.Element:
    if image.raw_transform is not None:
        transform = image.raw_transform
    else:
        transform = format_matrix(image.transform, precision)
    attrib = write_fields(image, (("Self", "self_id", "str"),), special={"ItemTransform": transform})
    element = ET.Element("Image", attrib)
    element.extend(copy.deepcopy(child) for child in image.extra_children)

    if image.link_uri is not None or image.link_attributes:
        link_attrib = dict(image.link_attributes)
        if image.link_uri is not None:
            link_attrib["LinkResourceURI"] = image.link_uri
        ET.SubElement(element, "Link", link_attrib)
    return element


def build_page_element(page: Page, precision: int = 6, number_precision: int = 4) -> ET.Element:
    attrib = write_fields(
        page,
        Page.FIELDS,
        special={
            "GeometricBounds": _bounds_text(page.raw_bounds, page.bounds, number_precision),
            "ItemTransform": page.raw_transform if page.raw_transform is not None
            else format_matrix(page.transform, precision),
        },
    )
    element = ET.Element("Page", attrib)

    children = [copy.deepcopy(child) for child in page.extra_children]
    if page.margins is not None:
        margins = ET.Element("MarginPreference", write_fields(page.margins, page.margins.FIELDS))
        children.insert(min(page.margin_index, len(children)), margins)
    element.extend(children)

    anchored = _AnchoredWriter(element, page.anchored_children)
    for item in order_items(page.items):
        element.append(build_item_element(item, precision, number_precision))
        anchored.after(item.self_id)
    anchored.rest()
    return element


def build_spread_element(spread: Spread, precision: int = 6, number_precision: int = 4) -> ET.Element:
    """``idPkg:Spread`` root with the Spread element inside."""
    package_attrib = dict(spread.package_attributes) or {"DOMVersion": DEFAULT_DOM_VERSION}
    root = ET.Element(f"{{{IDPKG_NS}}}Spread", package_attrib)

    transform = spread.raw_transform
    if transform is None and spread.transform != IDENTITY:
        transform = format_matrix(spread.transform, precision)
    element = ET.SubElement(
        root, "Spread", write_fields(spread, Spread.FIELDS, special={"ItemTransform": transform})
    )

    element.extend(copy.deepcopy(child) for child in spread.leading_children)
    anchored = _AnchoredWriter(element, spread.anchored_children)
    for page in spread.pages:
        element.append(build_page_element(page, precision, number_precision))
        anchored.after(page.self_id)
    for item in order_items(spread.items):
        element.append(build_item_element(item, precision, number_precision))
        anchored.after(item.self_id)
    anchored.rest()
    return root


def serialize_spread(
    spread: Spread, precision: int = 6, pretty: bool = True, number_precision: int = 4
) -> str:
    """
    Serialize a whole spread file.

    Example:
        >>> xml = serialize_spread(parse_spread(original_xml))
        >>> xml.startswith('<?xml version="1.0"')
        True
    """
    return xml_to_string(build_spread_element(spread, precision, number_precision), pretty)


def serialize_elements(
    items: Iterable[PageItem],
    spread_attributes: Optional[Dict[str, str]] = None,
    precision: int = 6,
    pretty: bool = True,
    number_precision: int = 4,
) -> str:
    """
    Serialize a bare list of page items as a one-spread file.

    Missing spread attributes are filled from ``DEFAULT_SPREAD_ATTRIBUTES``.
    """
    attrib = dict(DEFAULT_SPREAD_ATTRIBUTES)
    attrib.update(spread_attributes or {})
    root = ET.Element(f"{{{IDPKG_NS}}}Spread", {"DOMVersion": DEFAULT_DOM_VERSION})
    element = ET.SubElement(root, "Spread", attrib)
    for item in order_items(items):
        element.append(build_item_element(item, precision, number_precision))
    return xml_to_string(root, pretty)


def _parent_map(root: ET.Element) -> Dict[ET.Element, ET.Element]:
    return {child: parent for parent in root.iter() for child in parent}


def update_spread_xml(
    original_xml: Union[str, bytes],
    items: Iterable[PageItem],
    precision: int = 6,
    pretty: bool = True,
    number_precision: int = 4,
) -> str:
    """
    Replace (by Self id) or append page items inside existing spread XML.

    Everything else in the file is left as parsed, so only the changed
    elements differ from the original.
    """
    root = parse_xml_string(original_xml)
    spread_element = package_element(root, "Spread")

    for item in items:
        new_element = build_item_element(item, precision, number_precision)
        existing = find_element_by_self(spread_element, item.self_id)
        if existing is None:
            spread_element.append(new_element)
            logger.debug(f"Appended {item.ELEMENT_TAG} {item.self_id}")
            continue
        parent = _parent_map(spread_element)[existing]
        index = list(parent).index(existing)
        new_element.tail = existing.tail
        parent[index] = new_element
        logger.debug(f"Replaced {item.ELEMENT_TAG} {item.self_id}")

    return xml_to_string(root, pretty)


def remove_items_from_spread_xml(
    original_xml: Union[str, bytes], item_ids: Iterable[str], pretty: bool = True
) -> str:
    """Delete elements by Self id; unknown ids are ignored with a debug log."""
    root = parse_xml_string(original_xml)
    spread_element = package_element(root, "Spread")

    for item_id in item_ids:
        existing = find_element_by_self(spread_element, item_id)
        if existing is None or existing is spread_element:
            logger.debug(f"Nothing to remove for {item_id}")
            continue
        _parent_map(spread_element)[existing].remove(existing)

    return xml_to_string(root, pretty)


# ============================================================================
# Stories
# ============================================================================


class _ContentWriter:
    """Writes range text as Content/Br elements with inline children."""

    def __init__(self, parent: ET.Element):
        self.parent = parent
        self.content: Optional[ET.Element] = None
        self.buffer: List[str] = []

    def _target_text(self, text: str) -> None:
        if self.content is None:
            self.content = ET.SubElement(self.parent, "Content")
        text = sanitize_xml_text(text)
        if len(self.content):
            last = self.content[-1]
            last.tail = (last.tail or "") + text
        else:
            self.content.text = (self.content.text or "") + text

    def flush(self) -> None:
        if self.buffer:
            self._target_text("".join(self.buffer))
            self.buffer = []

    def close(self) -> None:
        self.flush()
        self.content = None

    def text(self, chunk: str) -> None:
        self.buffer.append(chunk)

    def line_break(self) -> None:
        self.close()
        ET.SubElement(self.parent, "Br")

    def inline(self, child: ET.Element) -> None:
        if child.tag in (ET.ProcessingInstruction, ET.Comment):
            self.flush()
            if self.content is None:
                self.content = ET.SubElement(self.parent, "Content")
            self.content.append(copy.deepcopy(child))
        else:
            self.close()
            self.parent.append(copy.deepcopy(child))


def _write_range_content(parent: ET.Element, rng: CharacterRange) -> None:
    writer = _ContentWriter(parent)
    anchors = sorted(rng.inline_children, key=lambda pair: pair[0])
    anchor_index = 0

    for position, char in enumerate(rng.content):
        while anchor_index < len(anchors) and anchors[anchor_index][0] <= position:
            writer.inline(anchors[anchor_index][1])
            anchor_index += 1
        if char == "\n":
            writer.line_break()
        else:
            writer.text(char)

    for _, child in anchors[anchor_index:]:
        writer.inline(child)
    writer.close()


def _range_properties(rng: CharacterRange) -> Optional[ET.Element]:
    properties = copy.deepcopy(rng.properties) if rng.properties is not None else None
    if rng.font_family is None:
        return properties
    if properties is None:
        properties = ET.Element("Properties")
    font = properties.find("AppliedFont")
    if font is None:
        font = ET.SubElement(properties, "AppliedFont", {"type": "string"})
    font.text = rng.font_family
    return properties


def build_paragraph_element(paragraph: Paragraph) -> ET.Element:
    element = ET.Element("ParagraphStyleRange", write_fields(paragraph, Paragraph.FIELDS))
    element.extend(copy.deepcopy(child) for child in paragraph.extra_children)

    last_target = element
    for rng in paragraph.ranges:
        if rng.implicit:
            target = element
        else:
            target = ET.SubElement(element, "CharacterStyleRange", write_fields(rng, CharacterRange.FIELDS))
            properties = _range_properties(rng)
            if properties is not None:
                target.append(properties)
        _write_range_content(target, rng)
        last_target = target

    if paragraph.break_after:
        ET.SubElement(last_target, "Br")
    return element


def build_story_element(story: Story) -> ET.Element:
    package_attrib = dict(story.package_attributes) or {"DOMVersion": DEFAULT_DOM_VERSION}
    root = ET.Element(f"{{{IDPKG_NS}}}Story", package_attrib)
    element = ET.SubElement(root, "Story", write_fields(story, Story.FIELDS))

    if story.preference is not None:
        ET.SubElement(
            element, "StoryPreference", write_fields(story.preference, story.preference.FIELDS)
        )
    element.extend(copy.deepcopy(child) for child in story.leading_children)
    anchored = _AnchoredWriter(element, story.anchored_children)
    for index, paragraph in enumerate(story.paragraphs):
        element.append(build_paragraph_element(paragraph))
        anchored.after(index)
    anchored.rest()
    return root


def serialize_story(story: Story, pretty: bool = True) -> str:
    """Serialize a whole ``Stories/Story_*.xml`` file."""
    return xml_to_string(build_story_element(story), pretty)
