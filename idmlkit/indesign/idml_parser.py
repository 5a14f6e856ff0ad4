"""IDML document loader.

Loads an extracted IDML tree into the scene graph and text model:

    - designmap.xml: manifest (spread/story order, layers, DOM version)
    - Spreads/*.xml: page layout -> ``Spread`` objects
    - Stories/*.xml: text -> ``Story`` objects
    - Resources/Graphic.xml: colour swatches -> ``ColorManager``

Stories are joined to text frames lazily through ``ParentStory``.

References:
    - IDML Specification: http://wwwimages.adobe.com/www.adobe.com/content/dam/acom/en/devnet/indesign/sdk/cs6/idml/idml-specification.pdf
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from ..config import EditorConfig
from ..core.colors import ColorManager
from ..core.edits import create_story
from ..core.scene import Layer, PageItem, Spread, TextFrame
from ..core.story import Story, story_to_plain_text
from ..errors import (
    IDMLPackageError,
    ObjectNotFoundError,
    SpreadNotFoundError,
    StoryNotFoundError,
)
from .idml_utils import (
    DEFAULT_DOM_VERSION,
    IDPKG_NS,
    cleanup_temp_dir,
    get_spread_files,
    get_story_files,
    parse_xml_file,
    unzip_idml,
    validate_idml_structure,
)
from .spread_parser import parse_spread_file
from .story_parser import parse_story_file

logger = logging.getLogger(__name__)

SpreadRef = Union[int, str]


@dataclass
class IDMLDocument:
    """
    Complete parsed IDML document.

    Attributes:
        root_dir: Extracted package directory (source of truth on disk)
        designmap_tree: Parsed designmap.xml
        spreads: spread id -> Spread, in designmap order
        stories: story id -> Story
        colors: Colour lookup for this document
        layers: layer id -> Layer, in designmap order
        dom_version: DOMVersion of designmap.xml
        temp_dir: Set when the package was extracted to a temp directory
        source_path: Original .idml file, if loaded from one
    """

    root_dir: Path
    designmap_tree: ET.ElementTree
    spreads: Dict[str, Spread] = field(default_factory=dict)
    stories: Dict[str, Story] = field(default_factory=dict)
    colors: ColorManager = field(default_factory=ColorManager)
    layers: Dict[str, Layer] = field(default_factory=dict)
    dom_version: str = DEFAULT_DOM_VERSION
    temp_dir: Optional[Path] = None
    source_path: Optional[Path] = None

    @property
    def designmap_root(self) -> ET.Element:
        return self.designmap_tree.getroot()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_spread(self, ref: SpreadRef) -> Spread:
        """
        Resolve a spread by index, file name or id.

        Accepts ``0``, ``"Spread_ub6.xml"``, ``"Spread_ub6"`` or ``"ub6"``.

        Raises:
            SpreadNotFoundError: If nothing matches
        """
        spreads = list(self.spreads.values())
        if isinstance(ref, int):
            if 0 <= ref < len(spreads):
                return spreads[ref]
            raise SpreadNotFoundError(ref)

        clean_id = spread_id_from_ref(ref)
        if clean_id in self.spreads:
            return self.spreads[clean_id]
        for spread in spreads:
            if spread.self_id == clean_id:
                return spread
        raise SpreadNotFoundError(ref)

    def get_story(self, story_id: str) -> Story:
        """
        Get story by id (``"u123"`` or ``"Story_u123"``).

        Raises:
            StoryNotFoundError: If the story was not loaded
        """
        clean_id = story_id.replace("Story_", "").replace(".xml", "")
        story = self.stories.get(clean_id)
        if story is None:
            raise StoryNotFoundError(story_id)
        return story

    def story_for_frame(self, frame: TextFrame) -> Story:
        """Resolve a text frame's ParentStory."""
        if not frame.parent_story:
            raise StoryNotFoundError(f"<none> (frame {frame.self_id})")
        return self.get_story(frame.parent_story)

    def frames_for_story(self, story_id: str) -> List[TextFrame]:
        return [
            item
            for spread in self.spreads.values()
            for item in spread.all_items()
            if isinstance(item, TextFrame) and item.parent_story == story_id
        ]

    def find_item(self, item_id: str) -> Tuple[Spread, PageItem]:
        """
        Find a page item anywhere in the document.

        Raises:
            ObjectNotFoundError: If no spread holds the id
        """
        for spread in self.spreads.values():
            item = spread.find_item(item_id)
            if item is not None:
                return spread, item
        raise ObjectNotFoundError(item_id)

    def all_self_ids(self) -> Set[str]:
        """Every Self id in spreads, stories and layers."""
        ids: Set[str] = set()
        for spread in self.spreads.values():
            ids |= spread.self_ids()
        ids.update(self.stories)
        ids.update(self.layers)
        return ids

    def plain_text(self, story_id: str) -> str:
        return story_to_plain_text(self.get_story(story_id))

    def new_story(self, text: str = "", config: Optional[EditorConfig] = None) -> Story:
        """
        Create a story with a fresh id and add it to the document.

        The story is marked modified; saving or exporting the document
        writes its file and registers it in designmap.xml.
        """
        config = config or EditorConfig()
        story = create_story(
            self.all_self_ids(),
            text,
            paragraph_style=config.default_paragraph_style,
            character_style=config.default_character_style,
            font=config.default_font,
            font_size=config.default_font_size,
            max_attempts=config.id_max_attempts,
        )
        self.stories[story.self_id] = story
        logger.debug(f"Created story {story.self_id}")
        return story

    def modified_spreads(self) -> List[Spread]:
        return [s for s in self.spreads.values() if s.needs_save]

    def modified_stories(self) -> List[Story]:
        return [s for s in self.stories.values() if s.modified]

    def spread_path(self, spread: Spread) -> Path:
        name = spread.file_name or f"Spread_{spread.self_id}.xml"
        return self.root_dir / "Spreads" / name

    def story_path(self, story: Story) -> Path:
        name = story.file_name or f"Story_{story.self_id}.xml"
        return self.root_dir / "Stories" / name


def manifest_paths(idml_dir: Path, designmap: ET.Element, kind: str) -> List[Path]:
    """
    Package parts of one kind (``"Spread"`` or ``"Story"``) in designmap order.

    Falls back to sorted globbing when the designmap lists none.
    """
    entries = [
        child.get("src")
        for child in designmap
        if child.tag == f"{{{IDPKG_NS}}}{kind}" and child.get("src")
    ]
    if entries:
        return [idml_dir / src for src in entries]
    if kind == "Spread":
        return get_spread_files(idml_dir)
    return get_story_files(idml_dir)


def spread_id_from_ref(ref: str) -> str:
    """``"Spreads/Spread_ub6.xml"`` -> ``"ub6"``."""
    name = ref.rsplit("/", 1)[-1]
    if name.endswith(".xml"):
        name = name[: -len(".xml")]
    if name.startswith("Spread_"):
        name = name[len("Spread_"):]
    return name


class IDMLParser:
    """
    Parser for IDML files.

    Usage:
        >>> parser = IDMLParser()
        >>> doc = parser.parse_idml(Path("document.idml"))
        >>> print(f"Found {len(doc.stories)} stories")
        >>> print(f"Found {len(doc.spreads)} spreads")
    """

    def parse_idml(self, idml_path: Path, cleanup_temp: bool = True) -> IDMLDocument:
        """
        Extract an IDML file to a temp directory and load it.

        Args:
            idml_path: Path to IDML file
            cleanup_temp: Delete the temp directory if loading fails

        Returns:
            Parsed IDMLDocument (caller cleans up ``doc.temp_dir``)

        Raises:
            FileNotFoundError: If IDML file doesn't exist
            IDMLPackageError: If the package is structurally broken
        """
        temp_dir = unzip_idml(idml_path)
        try:
            doc = self.load_directory(temp_dir)
        except Exception:
            if cleanup_temp:
                cleanup_temp_dir(temp_dir)
            raise
        doc.temp_dir = temp_dir
        doc.source_path = idml_path
        return doc

    def load_directory(self, idml_dir: Path) -> IDMLDocument:
        """
        Load an extracted IDML tree.

        Raises:
            IDMLPackageError: Missing required pieces, malformed designmap or
                spread XML, or spreads listed in the designmap but absent
        """
        validate_idml_structure(idml_dir)

        try:
            designmap_tree = parse_xml_file(idml_dir / "designmap.xml")
        except ET.ParseError as exc:
            raise IDMLPackageError(f"Malformed designmap.xml: {exc}", path=idml_dir) from exc

        designmap = designmap_tree.getroot()
        doc = IDMLDocument(
            root_dir=idml_dir,
            designmap_tree=designmap_tree,
            dom_version=designmap.get("DOMVersion", DEFAULT_DOM_VERSION),
        )
        doc.layers = self._parse_layers(designmap)
        doc.colors = self._parse_colors(idml_dir / "Resources" / "Graphic.xml")
        doc.spreads = self._parse_spreads(idml_dir, designmap)
        doc.stories = self._parse_stories(idml_dir, designmap)

        logger.info(
            f"Loaded {idml_dir}: {len(doc.spreads)} spreads, {len(doc.stories)} stories, "
            f"{len(doc.colors)} colors, {len(doc.layers)} layers"
        )
        return doc

    def _parse_layers(self, designmap: ET.Element) -> Dict[str, Layer]:
        layers: Dict[str, Layer] = {}
        for element in designmap.findall("Layer"):
            layer_id = element.get("Self")
            if not layer_id:
                continue
            layers[layer_id] = Layer(
                self_id=layer_id,
                name=element.get("Name", ""),
                visible=element.get("Visible", "true") != "false",
                locked=element.get("Locked", "false") == "true",
            )
        return layers

    def _parse_colors(self, graphic_path: Path) -> ColorManager:
        try:
            return ColorManager.from_graphic_file(graphic_path)
        except ET.ParseError as exc:
            logger.warning(f"Ignoring unreadable {graphic_path.name}: {exc}")
            return ColorManager()

    def _parse_spreads(self, idml_dir: Path, designmap: ET.Element) -> Dict[str, Spread]:
        """
        Parse all Spread XML files in designmap order.

        Returns:
            Dictionary of spread_id -> Spread
        """
        paths = manifest_paths(idml_dir, designmap, "Spread")
        missing = [p.relative_to(idml_dir).as_posix() for p in paths if not p.exists()]
        if missing:
            raise IDMLPackageError("Spreads listed in designmap.xml are absent", missing=missing)

        spreads: Dict[str, Spread] = {}
        for spread_file in paths:
            try:
                spread = parse_spread_file(spread_file)
            except ET.ParseError as exc:
                raise IDMLPackageError(
                    f"Malformed spread {spread_file.name}: {exc}", path=spread_file
                ) from exc
            spreads[spread_id_from_ref(spread_file.name)] = spread

        return spreads

    def _parse_stories(self, idml_dir: Path, designmap: ET.Element) -> Dict[str, Story]:
        """
        Parse all Story XML files.

        A story that cannot be read is logged and skipped; frames pointing
        at it then report a missing story.
        """
        paths = manifest_paths(idml_dir, designmap, "Story")
        stories: Dict[str, Story] = {}

        for story_file in paths:
            if not story_file.exists():
                logger.warning(f"Story listed in designmap.xml is absent: {story_file.name}")
                continue
            try:
                story = parse_story_file(story_file)
            except (ET.ParseError, IDMLPackageError) as exc:
                logger.warning(f"Skipping unreadable story {story_file.name}: {exc}")
                continue
            story_id = story.self_id or story_file.stem.replace("Story_", "")
            stories[story_id] = story

        return stories


def load_document(idml_dir: Path) -> IDMLDocument:
    """Shortcut for ``IDMLParser().load_directory``."""
    return IDMLParser().load_directory(idml_dir)
