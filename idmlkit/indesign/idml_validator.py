"""IDML validation system.

Validates IDML structure, XML syntax, and reference integrity.
Helps catch issues before opening in InDesign.

Validation Levels:
    1. Archive: mimetype is the first entry and stored uncompressed
    2. Structure: Required files and directories, mimetype content
    3. XML: Well-formed XML in all files
    4. References: ParentStory targets exist, Self ids are unique
    5. Content: Spreads with pages, normalisable page bounds

Usage:
    >>> validator = IDMLValidator()
    >>> result = validator.validate(Path("output.idml"))
    >>> if result.is_valid:
    ...     print("IDML is valid!")
    ... else:
    ...     for error in result.errors:
    ...         print(f"ERROR: {error}")
"""

import logging
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List
from zipfile import BadZipFile, ZIP_STORED, ZipFile

from ..core.scene import TextFrame
from ..errors import IDMLPackageError
from .idml_parser import IDMLDocument, IDMLParser
from .idml_utils import cleanup_temp_dir, missing_structure, unzip_idml

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """
    Result of IDML validation.

    Attributes:
        is_valid: True if IDML passes all checks
        errors: List of error messages
        warnings: List of warning messages
        info: List of informational messages
    """

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add error message and mark as invalid."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add warning message (doesn't affect validity)."""
        self.warnings.append(message)

    def add_info(self, message: str) -> None:
        self.info.append(message)

    def __str__(self) -> str:
        """Format validation result as string."""
        lines = [f"Validation: {'PASS' if self.is_valid else 'FAIL'}"]

        for title, messages in (("Errors", self.errors), ("Warnings", self.warnings), ("Info", self.info)):
            if messages:
                lines.append(f"\n{title} ({len(messages)}):")
                lines.extend(f"  - {message}" for message in messages)

        return "\n".join(lines)


class IDMLValidator:
    """
    IDML validation system.

    Accepts either a packed ``.idml`` file or an extracted directory.
    """

    def __init__(self):
        self.parser = IDMLParser()

    def validate(self, path: Path) -> ValidationResult:
        """
        Validate an IDML file or extracted directory.

        Returns:
            ValidationResult with errors, warnings, and info

        Example:
            >>> result = IDMLValidator().validate(Path("output.idml"))
            >>> print(result)
        """
        result = ValidationResult(is_valid=True)

        if not path.exists():
            result.add_error(f"IDML not found: {path}")
            return result

        if path.is_dir():
            self._validate_directory(path, result)
            return result

        if not self._validate_archive(path, result):
            return result

        try:
            temp_dir = unzip_idml(path)
        except IDMLPackageError as exc:
            result.add_error(f"Failed to extract IDML: {exc}")
            return result

        try:
            self._validate_directory(temp_dir, result)
        finally:
            cleanup_temp_dir(temp_dir)

        return result

    def _validate_archive(self, path: Path, result: ValidationResult) -> bool:
        """Check ZIP readability and mimetype placement."""
        try:
            with ZipFile(path) as archive:
                entries = archive.infolist()
        except BadZipFile as exc:
            result.add_error(f"Not a ZIP archive: {exc}")
            return False

        result.add_info(f"File size: {path.stat().st_size} bytes")
        if not entries or entries[0].filename != "mimetype":
            result.add_error("mimetype is not the first archive entry")
        elif entries[0].compress_type != ZIP_STORED:
            result.add_error("mimetype entry is compressed")
        return True

    def _validate_directory(self, idml_dir: Path, result: ValidationResult) -> None:
        for piece in missing_structure(idml_dir):
            result.add_error(f"Missing {piece}")
        if not result.is_valid:
            return

        self._validate_xml(idml_dir, result)
        if not result.is_valid:
            return

        try:
            doc = self.parser.load_directory(idml_dir)
        except IDMLPackageError as exc:
            result.add_error(f"Failed to load IDML: {exc}")
            return

        self._validate_references(doc, result)
        self._validate_content(doc, result)
        result.add_info(f"Spreads: {len(doc.spreads)}")
        result.add_info(f"Stories: {len(doc.stories)}")
        result.add_info(f"Colors: {len(doc.colors)}")

    def _validate_xml(self, idml_dir: Path, result: ValidationResult) -> None:
        """Validate XML well-formedness in all files."""
        for xml_file in sorted(idml_dir.rglob("*.xml")):
            if xml_file.name.startswith("."):
                continue
            try:
                ET.parse(xml_file)
            except ET.ParseError as exc:
                relative = xml_file.relative_to(idml_dir).as_posix()
                result.add_error(f"XML parse error in {relative}: {exc}")

    def _validate_references(self, doc: IDMLDocument, result: ValidationResult) -> None:
        """Validate cross-references between IDML components."""
        ids = Counter()
        for spread in doc.spreads.values():
            for item in spread.all_items():
                if item.self_id:
                    ids[item.self_id] += 1
                if isinstance(item, TextFrame) and item.parent_story:
                    if item.parent_story not in doc.stories:
                        result.add_error(
                            f"TextFrame {item.self_id} references non-existent story: "
                            f"{item.parent_story}"
                        )

        duplicates = sorted(self_id for self_id, count in ids.items() if count > 1)
        if duplicates:
            result.add_error(f"Duplicate Self ids: {', '.join(duplicates)}")

    def _validate_content(self, doc: IDMLDocument, result: ValidationResult) -> None:
        """Validate document content."""
        for spread in doc.spreads.values():
            if not spread.pages:
                result.add_warning(f"Spread {spread.self_id} has no pages")
            for page in spread.pages:
                if page.raw_bounds is not None and page.bounds is None:
                    result.add_warning(
                        f"Page {page.self_id} has malformed GeometricBounds {page.raw_bounds!r}"
                    )

        empty = sorted(sid for sid, story in doc.stories.items() if not story.plain_text().strip())
        if empty:
            result.add_warning(f"Empty stories found: {', '.join(empty)}")
