"""Scene graph for IDML spreads.

A ``Spread`` holds ``Page`` objects and ``PageItem`` objects. Page items may
sit directly on the spread, inside a page, or inside a ``Group``.

Every element keeps two things besides its typed fields:

    attributes       pass-through bag of XML attributes the editor does
                     not model, written back unchanged
    attribute_order  attribute names in source order, so the serializer
                     reproduces the original attribute layout

Unmodeled child elements (``Properties``, ``TextWrapPreference``,
``FlattenerPreference`` ...) are kept as opaque ``xml.etree`` elements:
``extra_children`` holds those before the first modeled child.
``anchored_children`` holds the rest as ``(Self id, element)`` pairs keyed
by the modeled child they follow, so a rewrite puts them back after that
child even when items are regrouped by type.
"""

import logging
import random
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, Dict, Iterator, List, Optional, Set, Tuple

from ..errors import IdGenerationError
from .bbox import Rect
from .transform import IDENTITY, Matrix

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"^u[0-9a-f]{3,4}$")


# ============================================================================
# Field schemas
# ============================================================================

# (XML attribute, dataclass field, kind). ItemTransform and GeometricBounds
# are handled separately because they keep their raw text.
COMMON_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ("Self", "self_id", "str"),
    ("Name", "name", "str"),
    ("Visible", "visible", "bool"),
    ("Locked", "locked", "bool"),
    ("ItemLayer", "layer", "str"),
    ("FillColor", "fill_color", "str"),
    ("StrokeColor", "stroke_color", "str"),
    ("StrokeWeight", "stroke_weight", "float"),
)


@dataclass
class EditTracking:
    """Per-item edit state used for incremental save."""

    modified: bool = False
    is_new: bool = False
    original_transform: Optional[str] = None
    modified_at: Optional[datetime] = None

    def mark_modified(self, previous_transform: Optional[str] = None) -> None:
        """Flag as modified, keeping the first transform snapshot."""
        if not self.modified:
            self.original_transform = previous_transform
        self.modified = True
        self.modified_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        """Current state becomes the saved baseline."""
        self.modified = False
        self.is_new = False
        self.original_transform = None
        self.modified_at = None

    @property
    def needs_save(self) -> bool:
        return self.modified or self.is_new


@dataclass
class PageItem:
    """Common state of every placeable object."""

    ELEMENT_TAG: ClassVar[str] = ""
    TYPE_FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = ()

    self_id: str
    transform: Matrix = IDENTITY
    raw_transform: Optional[str] = None
    name: Optional[str] = None
    visible: Optional[bool] = None
    locked: Optional[bool] = None
    layer: Optional[str] = None
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    stroke_weight: Optional[float] = None
    geometric_bounds: Optional[Rect] = None
    raw_geometric_bounds: Optional[str] = None
    path_bounds: Optional[Rect] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    extra_children: List[ET.Element] = field(default_factory=list)
    anchored_children: List[Tuple[str, ET.Element]] = field(default_factory=list)
    tracking: EditTracking = field(default_factory=EditTracking)

    @classmethod
    def fields_schema(cls) -> Tuple[Tuple[str, str, str], ...]:
        return COMMON_FIELDS + cls.TYPE_FIELDS

    @property
    def kind(self) -> str:
        return self.ELEMENT_TAG

    @property
    def is_visible(self) -> bool:
        return self.visible is not False

    @property
    def is_locked(self) -> bool:
        return self.locked is True

    def local_bounds(self) -> Optional[Rect]:
        """Bounds in item space: path geometry first, then GeometricBounds."""
        return self.path_bounds or self.geometric_bounds

    def set_transform(self, matrix: Matrix) -> None:
        """Replace the transform and record the edit."""
        self.tracking.mark_modified(self.raw_transform)
        self.transform = matrix

    def children(self) -> List["PageItem"]:
        return []


@dataclass
class TextFrame(PageItem):
    ELEMENT_TAG: ClassVar[str] = "TextFrame"
    TYPE_FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("ParentStory", "parent_story", "str"),
        ("ContentType", "content_type", "str"),
        ("PreviousTextFrame", "previous_frame", "str"),
        ("NextTextFrame", "next_frame", "str"),
    )

    parent_story: Optional[str] = None
    content_type: Optional[str] = None
    previous_frame: Optional[str] = None
    next_frame: Optional[str] = None


@dataclass
class Image:
    """Placed graphic inside a frame."""

    self_id: str
    link_uri: Optional[str] = None
    transform: Matrix = IDENTITY
    raw_transform: Optional[str] = None
    bounds: Optional[Rect] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    link_attributes: Dict[str, str] = field(default_factory=dict)
    extra_children: List[ET.Element] = field(default_factory=list)


@dataclass
class Rectangle(PageItem):
    ELEMENT_TAG: ClassVar[str] = "Rectangle"

    image: Optional[Image] = None


@dataclass
class Oval(PageItem):
    ELEMENT_TAG: ClassVar[str] = "Oval"


@dataclass
class Polygon(PageItem):
    ELEMENT_TAG: ClassVar[str] = "Polygon"


@dataclass
class GraphicLine(PageItem):
    ELEMENT_TAG: ClassVar[str] = "GraphicLine"
    TYPE_FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("LeftLineEnd", "left_line_end", "str"),
        ("RightLineEnd", "right_line_end", "str"),
    )

    left_line_end: Optional[str] = None
    right_line_end: Optional[str] = None


@dataclass
class Group(PageItem):
    ELEMENT_TAG: ClassVar[str] = "Group"

    items: List[PageItem] = field(default_factory=list)

    def children(self) -> List[PageItem]:
        return self.items


ITEM_TYPES: Dict[str, type] = {
    cls.ELEMENT_TAG: cls
    for cls in (TextFrame, Rectangle, Oval, Polygon, GraphicLine, Group)
}

# Serialization order of page item types inside a container
SERIALIZATION_ORDER: Tuple[str, ...] = (
    "TextFrame",
    "Rectangle",
    "GraphicLine",
    "Group",
    "Polygon",
    "Oval",
)


# ============================================================================
# Pages and spreads
# ============================================================================


@dataclass
class Margins:
    """MarginPreference of a page (points)."""

    top: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None
    column_count: Optional[int] = None
    column_gutter: Optional[float] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)

    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("Top", "top", "float"),
        ("Bottom", "bottom", "float"),
        ("Left", "left", "float"),
        ("Right", "right", "float"),
        ("ColumnCount", "column_count", "int"),
        ("ColumnGutter", "column_gutter", "float"),
    )


@dataclass
class Page:
    """Single page of a spread. Master pages are referenced, not resolved."""

    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("Self", "self_id", "str"),
        ("Name", "name", "str"),
        ("AppliedMaster", "applied_master", "str"),
    )

    self_id: str
    name: Optional[str] = None
    applied_master: Optional[str] = None
    bounds: Optional[Rect] = None
    raw_bounds: Optional[str] = None
    transform: Matrix = IDENTITY
    raw_transform: Optional[str] = None
    margins: Optional[Margins] = None
    margin_index: int = 0
    items: List[PageItem] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    extra_children: List[ET.Element] = field(default_factory=list)
    anchored_children: List[Tuple[str, ET.Element]] = field(default_factory=list)

    def spread_rect(self) -> Optional[Rect]:
        """Page rectangle mapped into spread coordinates."""
        if self.bounds is None:
            return None
        corners = [
            self.transform.apply(self.bounds.x, self.bounds.y),
            self.transform.apply(self.bounds.right, self.bounds.y),
            self.transform.apply(self.bounds.x, self.bounds.bottom),
            self.transform.apply(self.bounds.right, self.bounds.bottom),
        ]
        xs = [c[0] for c in corners]
        ys = [c[1] for c in corners]
        return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


@dataclass
class Spread:
    """Top-level layout unit parsed from one ``Spreads/Spread_*.xml`` file."""

    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("Self", "self_id", "str"),
        ("PageCount", "page_count", "int"),
        ("BindingLocation", "binding_location", "int"),
    )

    self_id: str
    transform: Matrix = IDENTITY
    raw_transform: Optional[str] = None
    page_count: Optional[int] = None
    binding_location: Optional[int] = None
    pages: List[Page] = field(default_factory=list)
    items: List[PageItem] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    leading_children: List[ET.Element] = field(default_factory=list)
    anchored_children: List[Tuple[str, ET.Element]] = field(default_factory=list)
    package_attributes: Dict[str, str] = field(default_factory=dict)
    file_name: Optional[str] = None
    structure_changed: bool = False

    def containers(self) -> Iterator[List[PageItem]]:
        """Top-level item lists: the spread's own, then each page's."""
        yield self.items
        for page in self.pages:
            yield page.items

    def all_items(self) -> Iterator[PageItem]:
        """Every page item, depth-first, groups included."""
        for container in self.containers():
            yield from iter_items(container)

    def find_item(self, item_id: str) -> Optional[PageItem]:
        located = self.locate(item_id)
        return located[0] if located else None

    def locate(self, item_id: str) -> Optional[Tuple[PageItem, List[PageItem]]]:
        """Find an item and the list that holds it (spread, page or group)."""
        for container in self.containers():
            found = _locate_in(container, item_id)
            if found:
                return found
        return None

    def modified_items(self) -> List[PageItem]:
        return [item for item in self.all_items() if item.tracking.needs_save]

    def self_ids(self) -> Set[str]:
        ids = {self.self_id}
        for page in self.pages:
            ids.add(page.self_id)
        for item in self.all_items():
            ids.add(item.self_id)
            if isinstance(item, Rectangle) and item.image is not None:
                ids.add(item.image.self_id)
        return ids

    def reset_tracking(self) -> None:
        for item in self.all_items():
            item.tracking.reset()
        self.structure_changed = False

    @property
    def needs_save(self) -> bool:
        return self.structure_changed or any(item.tracking.needs_save for item in self.all_items())


@dataclass
class Layer:
    """Document layer from designmap.xml."""

    self_id: str
    name: str = ""
    visible: bool = True
    locked: bool = False


def iter_items(items: List[PageItem]) -> Iterator[PageItem]:
    for item in items:
        yield item
        yield from iter_items(item.children())


def _locate_in(
    container: List[PageItem], item_id: str
) -> Optional[Tuple[PageItem, List[PageItem]]]:
    for item in container:
        if item.self_id == item_id:
            return item, container
        found = _locate_in(item.children(), item_id)
        if found:
            return found
    return None


# ============================================================================
# Unique ids
# ============================================================================


def is_valid_id(value: str) -> bool:
    return bool(ID_PATTERN.match(value))


def generate_unique_id(
    existing: Set[str],
    max_attempts: int = 10000,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Generate an InDesign-style ``Self`` id not present in ``existing``.

    Ids are ``u`` followed by 3 or 4 lowercase hex digits. The new id is
    added to ``existing`` so consecutive calls never collide.

    Args:
        existing: Ids already used in the document (updated in place)
        max_attempts: Random draws before giving up
        rng: Random source (tests pass a seeded one)

    Returns:
        New id, e.g. ``"u1a3f"``

    Raises:
        IdGenerationError: If no free id was drawn in ``max_attempts``
    """
    rng = rng or random.Random()
    for _ in range(max_attempts):
        candidate = f"u{rng.randint(0x100, 0xFFFF):x}"
        if candidate not in existing:
            existing.add(candidate)
            return candidate

    raise IdGenerationError(
        f"No free id after {max_attempts} attempts ({len(existing)} ids in use)"
    )
