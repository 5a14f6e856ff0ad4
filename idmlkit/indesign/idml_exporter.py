"""IDML export workflow.

Produces a complete IDML package from an extracted tree plus in-memory
edits. Export is copy-all-then-overwrite: every file of the tree goes into
the archive, and only files regenerated from edits are replaced. The tree
on disk is never written to during export.

Usage:
    >>> exporter = IDMLExporter(config)
    >>> data = exporter.export_document(doc, Path("edited.idml"))
    >>> exporter.export_html(doc, 0, Path("html_out"))
"""

import copy
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Optional, Union

from ..config import EditorConfig
from ..export.html_renderer import render_spread_html, write_html_export
from .idml_parser import IDMLDocument, SpreadRef
from .idml_serializer import serialize_spread, serialize_story, update_spread_xml
from .idml_utils import (
    IDPKG_NS,
    prolog_instructions,
    validate_idml_structure,
    xml_to_string,
    zip_idml,
)

logger = logging.getLogger(__name__)


class IDMLExporter:
    """
    High-level export of IDML packages and HTML previews.

    Args:
        config: Editor settings (precision, pixel ratio, fonts)
    """

    def __init__(self, config: Optional[EditorConfig] = None):
        self.config = config or EditorConfig()

    def export_directory(self, root_dir: Path, output_path: Optional[Path] = None) -> bytes:
        """
        Pack an extracted tree as it is on disk.

        Raises:
            IDMLPackageError: If required package pieces are missing
        """
        validate_idml_structure(root_dir)
        return zip_idml(root_dir, output_path)

    def pending_overrides(self, doc: IDMLDocument) -> Dict[str, Union[str, bytes]]:
        """
        Regenerated file contents for every unsaved edit of ``doc``.

        Returns:
            Relative package path -> new XML text
        """
        precision = self.config.matrix_precision
        number_precision = self.config.number_precision
        overrides: Dict[str, Union[str, bytes]] = {}

        for spread in doc.modified_spreads():
            path = doc.spread_path(spread)
            arcname = path.relative_to(doc.root_dir).as_posix()
            if spread.structure_changed or not path.exists():
                overrides[arcname] = serialize_spread(spread, precision, number_precision=number_precision)
            else:
                overrides[arcname] = update_spread_xml(
                    path.read_bytes(),
                    spread.modified_items(),
                    precision,
                    number_precision=number_precision,
                )

        new_story_paths = []
        for story in doc.modified_stories():
            path = doc.story_path(story)
            arcname = path.relative_to(doc.root_dir).as_posix()
            overrides[arcname] = serialize_story(story)
            if not path.exists():
                new_story_paths.append(arcname)

        if new_story_paths:
            overrides["designmap.xml"] = self._designmap_with_stories(doc, new_story_paths)

        return overrides

    def _designmap_with_stories(self, doc: IDMLDocument, story_paths) -> str:
        root = copy.deepcopy(doc.designmap_root)
        story_tag = f"{{{IDPKG_NS}}}Story"
        listed = {child.get("src") for child in root if child.tag == story_tag}
        for src in story_paths:
            if src not in listed:
                root.append(ET.Element(story_tag, {"src": src}))
        prolog = prolog_instructions((doc.root_dir / "designmap.xml").read_bytes())
        return xml_to_string(root, prolog=prolog)

    def export_document(self, doc: IDMLDocument, output_path: Optional[Path] = None) -> bytes:
        """
        Pack a loaded document including its unsaved edits.

        Args:
            doc: Loaded document
            output_path: Optional .idml file to write

        Returns:
            Archive bytes (mimetype first, stored)
        """
        validate_idml_structure(doc.root_dir)
        overrides = self.pending_overrides(doc)
        logger.info(f"Exporting {doc.root_dir} with {len(overrides)} regenerated file(s)")
        return zip_idml(doc.root_dir, output_path, overrides)

    def export_html(
        self,
        doc: IDMLDocument,
        spread_ref: SpreadRef,
        out_dir: Path,
        inline_css: bool = False,
    ) -> Path:
        """
        Write an HTML+CSS approximation of one spread.

        Returns:
            Path to the written index.html
        """
        spread = doc.get_spread(spread_ref)
        export = render_spread_html(doc, spread, self.config, inline_css=inline_css)
        return write_html_export(export, out_dir)
