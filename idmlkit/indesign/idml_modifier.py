"""Save boundary: write edits back into an extracted IDML tree.

Every save is one read-modify-write of exactly one package file, done
under that file's lock and written atomically. Files other than the target
are never touched (the designmap is updated only when a new story file is
registered).

Usage:
    >>> modifier = IDMLModifier(config)
    >>> modifier.save_transform(root, "Spread_ub6.xml", "u1a3", "1 0 0 1 20 40")
    >>> modifier.save_story_text(root, "u10", "New headline\\n\\nBody")
"""

import logging
import math
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Union

from ..config import EditorConfig
from ..core.scene import PageItem, Spread
from ..core.story import Story, update_story_from_plain_text
from ..core.transform import Matrix, try_parse_matrix
from ..errors import IDMLPackageError, ObjectNotFoundError, SpreadNotFoundError, StoryNotFoundError
from ..io.locks import PathLockRegistry, default_registry
from .idml_parser import IDMLDocument, SpreadRef, manifest_paths, spread_id_from_ref
from .idml_serializer import serialize_spread, serialize_story, update_spread_xml
from .idml_utils import (
    IDPKG_NS,
    atomic_write_bytes,
    parse_xml_file,
    parse_xml_string,
    prolog_instructions,
    xml_to_string,
)
from .spread_parser import parse_spread
from .story_parser import parse_story

logger = logging.getLogger(__name__)


class IDMLModifier:
    """
    Applies edits to the files of an extracted IDML package.

    Args:
        config: Editor settings (precision, text mapping, defaults)
        locks: Per-path lock registry; the process-wide one by default
    """

    def __init__(
        self,
        config: Optional[EditorConfig] = None,
        locks: Optional[PathLockRegistry] = None,
    ):
        self.config = config or EditorConfig()
        self.locks = locks or default_registry

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    def resolve_spread_path(self, root_dir: Path, spread_ref: SpreadRef) -> Path:
        """
        Map a spread index, file name or id to its file.

        Raises:
            SpreadNotFoundError: If no spread file matches
        """
        designmap = parse_xml_file(root_dir / "designmap.xml").getroot()
        paths = manifest_paths(root_dir, designmap, "Spread")

        if isinstance(spread_ref, int):
            if 0 <= spread_ref < len(paths) and paths[spread_ref].exists():
                return paths[spread_ref]
            raise SpreadNotFoundError(spread_ref)

        wanted = spread_id_from_ref(spread_ref)
        for path in paths:
            if spread_id_from_ref(path.name) == wanted and path.exists():
                return path
        raise SpreadNotFoundError(spread_ref)

    def story_path(self, root_dir: Path, story_id: str) -> Path:
        clean_id = story_id.replace("Story_", "").replace(".xml", "")
        return root_dir / "Stories" / f"Story_{clean_id}.xml"

    # ------------------------------------------------------------------
    # Spreads
    # ------------------------------------------------------------------

    def save_transform(
        self,
        root_dir: Path,
        spread_ref: SpreadRef,
        object_id: str,
        transform: Union[str, Matrix],
    ) -> PageItem:
        """
        Replace one object's ItemTransform in a spread file.

        The object is searched at spread level, inside pages and inside
        nested groups. Only that object's element is rewritten.

        Args:
            root_dir: Extracted package directory
            spread_ref: Spread index, file name or id
            object_id: Self id of the page item
            transform: Matrix or 6-value ItemTransform string

        Returns:
            The updated page item

        Raises:
            ValueError: If ``transform`` is not a 6-value finite matrix
            SpreadNotFoundError: If the spread does not exist
            ObjectNotFoundError: If the spread has no such object (file untouched)
        """
        matrix = transform if isinstance(transform, Matrix) else try_parse_matrix(transform)
        if matrix is None or not all(math.isfinite(v) for v in matrix.values()):
            raise ValueError(f"Transform must have 6 finite numeric values, got {transform!r}")

        path = self.resolve_spread_path(root_dir, spread_ref)
        with self.locks.locked(path):
            data = path.read_bytes()
            spread = self._parse_spread_bytes(data, path)
            item = spread.find_item(object_id)
            if item is None:
                raise ObjectNotFoundError(object_id, path.name)

            item.set_transform(matrix)
            xml = update_spread_xml(
                data,
                [item],
                self.config.matrix_precision,
                number_precision=self.config.number_precision,
            )
            atomic_write_bytes(path, xml.encode("utf-8"))

        item.tracking.reset()
        logger.info(f"Saved transform for {item.kind} {object_id} in {path.name}")
        return item

    def save_spread(self, root_dir: Path, spread: Spread) -> Path:
        """
        Write a spread in full (needed after add/remove/group/ungroup).

        Raises:
            SpreadNotFoundError: If the spread has no file in the package
        """
        path = self.resolve_spread_path(root_dir, spread.file_name or spread.self_id)
        with self.locks.locked(path):
            xml = serialize_spread(
                spread, self.config.matrix_precision, number_precision=self.config.number_precision
            )
            atomic_write_bytes(path, xml.encode("utf-8"))
        spread.reset_tracking()
        logger.info(f"Saved spread {spread.self_id} ({path.name})")
        return path

    def save_modified_items(self, root_dir: Path, spread: Spread) -> Path:
        """Rewrite only the changed page items of a spread file."""
        if spread.structure_changed:
            return self.save_spread(root_dir, spread)

        items = spread.modified_items()
        path = self.resolve_spread_path(root_dir, spread.file_name or spread.self_id)
        with self.locks.locked(path):
            xml = update_spread_xml(
                path.read_bytes(),
                items,
                self.config.matrix_precision,
                number_precision=self.config.number_precision,
            )
            atomic_write_bytes(path, xml.encode("utf-8"))
        spread.reset_tracking()
        logger.info(f"Saved {len(items)} changed item(s) in {path.name}")
        return path

    def _parse_spread_bytes(self, data: bytes, path: Path) -> Spread:
        try:
            spread = parse_spread(data)
        except ET.ParseError as exc:
            raise IDMLPackageError(f"Malformed spread {path.name}: {exc}", path=path) from exc
        spread.file_name = path.name
        return spread

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def save_story(self, root_dir: Path, story: Story, create: bool = False) -> Path:
        """
        Write a story file from the text model.

        Args:
            root_dir: Extracted package directory
            story: Story to write
            create: Allow writing a story file that does not exist yet (it
                is then registered in designmap.xml)

        Raises:
            StoryNotFoundError: If the file is absent and ``create`` is False
        """
        path = root_dir / "Stories" / (story.file_name or f"Story_{story.self_id}.xml")
        is_new = not path.exists()
        if is_new and not create:
            raise StoryNotFoundError(story.self_id)

        with self.locks.locked(path):
            atomic_write_bytes(path, serialize_story(story).encode("utf-8"))
        if is_new:
            self.register_story(root_dir, path)

        story.modified = False
        logger.info(f"Saved story {story.self_id} ({path.name})")
        return path

    def save_story_text(self, root_dir: Path, story_id: str, text: str) -> Story:
        """
        Map edited plain text onto a story file and write it.

        Raises:
            StoryNotFoundError: If the story file does not exist
        """
        path = self.story_path(root_dir, story_id)
        if not path.exists():
            raise StoryNotFoundError(story_id)

        with self.locks.locked(path):
            data = path.read_bytes()
            try:
                original = parse_story(data)
            except ET.ParseError as exc:
                raise IDMLPackageError(f"Malformed story {path.name}: {exc}", path=path) from exc

            story = update_story_from_plain_text(
                original,
                text,
                strategy=self.config.text_mapping,
                paragraph_style=self.config.default_paragraph_style,
                character_style=self.config.default_character_style,
                font=self.config.default_font,
                font_size=self.config.default_font_size,
            )
            if story.modified:
                atomic_write_bytes(path, serialize_story(story).encode("utf-8"))
                logger.info(f"Saved text of story {story_id} ({len(text)} chars)")
            else:
                logger.debug(f"Story {story_id} text unchanged; file not rewritten")

        story.file_name = path.name
        story.modified = False
        return story

    def register_story(self, root_dir: Path, story_path: Path) -> None:
        """Add an ``idPkg:Story`` entry to designmap.xml if it is missing."""
        designmap_path = root_dir / "designmap.xml"
        src = story_path.relative_to(root_dir).as_posix()
        with self.locks.locked(designmap_path):
            data = designmap_path.read_bytes()
            root = parse_xml_string(data)
            story_tag = f"{{{IDPKG_NS}}}Story"
            entries = [child for child in root if child.tag == story_tag]
            if any(child.get("src") == src for child in entries):
                return
            element = ET.Element(story_tag, {"src": src})
            if entries:
                root.insert(list(root).index(entries[-1]) + 1, element)
            else:
                root.append(element)
            xml = xml_to_string(root, prolog=prolog_instructions(data))
            atomic_write_bytes(designmap_path, xml.encode("utf-8"))
        logger.info(f"Registered {src} in designmap.xml")

    # ------------------------------------------------------------------
    # Whole document
    # ------------------------------------------------------------------

    def save_changes(self, doc: IDMLDocument) -> List[Path]:
        """
        Write every modified spread and story of a loaded document.

        Returns:
            Paths written
        """
        written: List[Path] = []
        for spread in doc.modified_spreads():
            written.append(self.save_modified_items(doc.root_dir, spread))
        for story in doc.modified_stories():
            written.append(self.save_story(doc.root_dir, story, create=True))
        return written
