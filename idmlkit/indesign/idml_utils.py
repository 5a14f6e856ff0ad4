"""IDML utilities for zip/unzip operations and XML helpers.

IDML (InDesign Markup Language) files are ZIP archives containing XML files
that define the document structure, content, and formatting.

Key IDML Structure:
    - mimetype (uncompressed, must be first)
    - META-INF/container.xml
    - designmap.xml (manifest)
    - Spreads/*.xml (page layout)
    - Stories/*.xml (text content)
    - Resources/*.xml (colours, styles, fonts, preferences)
    - MasterSpreads/*.xml

References:
    - IDML Cookbook: http://wwwimages.adobe.com/www.adobe.com/content/dam/acom/en/devnet/indesign/sdk/cs6/idml/idml-cookbook.pdf
"""

import io
import logging
import math
import os
import re
import shutil
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from zipfile import BadZipFile, ZIP_DEFLATED, ZIP_STORED, ZipFile, ZipInfo

from ..errors import IDMLPackageError

logger = logging.getLogger(__name__)

IDPKG_NS = "http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging"

# IDML namespace constants
IDML_NAMESPACES = {
    "idPkg": IDPKG_NS,
}

# Register namespaces for proper XML output
for prefix, uri in IDML_NAMESPACES.items():
    ET.register_namespace(prefix, uri)

IDML_MIMETYPE = "application/vnd.adobe.indesign-idml-package"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
DEFAULT_DOM_VERSION = "16.0"

REQUIRED_FILES = ("mimetype", "META-INF/container.xml", "designmap.xml")
REQUIRED_DIRS = ("Spreads", "Stories", "Resources")

# Characters XML 1.0 cannot carry, even escaped
_ILLEGAL_XML_CHARS = re.compile(
    "[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)
_PROLOG_PI = re.compile(r"<\?.*?\?>", re.DOTALL)
_ROOT_START = re.compile(r"<[A-Za-z_]")


# ============================================================================
# Archive
# ============================================================================


def unzip_idml(
    source: Union[Path, bytes], extract_to: Optional[Path] = None
) -> Path:
    """
    Extract IDML file (ZIP archive) to directory.

    Args:
        source: Path to IDML file, or the archive bytes
        extract_to: Optional target directory. If None, creates temp directory.

    Returns:
        Path to extracted directory

    Raises:
        FileNotFoundError: If IDML file doesn't exist
        IDMLPackageError: If the archive is unreadable, escapes the target
            directory, or has no mimetype entry

    Example:
        >>> idml_dir = unzip_idml(Path("document.idml"))
        >>> assert (idml_dir / "designmap.xml").exists()
    """
    if isinstance(source, (bytes, bytearray)):
        handle = io.BytesIO(source)
        label = "<bytes>"
    else:
        source = Path(source)
        if not source.exists():
            raise FileNotFoundError(f"IDML file not found: {source}")
        handle = source
        label = str(source)

    if extract_to is None:
        extract_to = Path(tempfile.mkdtemp(prefix="idml_"))
    extract_to.mkdir(parents=True, exist_ok=True)
    target_root = extract_to.resolve()

    try:
        with ZipFile(handle, "r") as zip_ref:
            names = zip_ref.namelist()
            for name in names:
                destination = (target_root / name).resolve()
                if destination != target_root and target_root not in destination.parents:
                    raise IDMLPackageError(
                        f"Archive entry escapes extraction directory: {name}"
                    )
            if "mimetype" not in names:
                raise IDMLPackageError(f"Not an IDML package: {label}", missing=["mimetype"])
            zip_ref.extractall(target_root)
    except BadZipFile as exc:
        raise IDMLPackageError(f"Unreadable IDML archive {label}: {exc}") from exc

    logger.info(f"Extracted {label} to {extract_to}")
    return extract_to


def _iter_package_files(directory: Path) -> Iterable[Tuple[str, Path]]:
    """Relative POSIX name and path of every non-hidden file, sorted."""
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        for file in sorted(files):
            if file.startswith("."):
                continue
            file_path = Path(root) / file
            yield file_path.relative_to(directory).as_posix(), file_path


def zip_idml(
    directory: Path,
    output_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Union[str, bytes]]] = None,
) -> bytes:
    """
    Package directory as IDML file (ZIP archive).

    CRITICAL: IDML requires specific ZIP structure:
        1. 'mimetype' file must be FIRST in archive
        2. 'mimetype' must be UNCOMPRESSED (ZIP_STORED)
        3. All other files use DEFLATE compression

    Every file of the directory is copied; entries in ``overrides`` replace
    (or add) files by relative path without touching the directory itself.

    Args:
        directory: Directory containing extracted IDML contents
        output_path: Optional path for the output IDML file
        overrides: Relative POSIX path -> replacement content

    Returns:
        Archive bytes

    Raises:
        FileNotFoundError: If directory doesn't exist
        IDMLPackageError: If there is no mimetype

    Example:
        >>> data = zip_idml(Path("/tmp/idml_abc123"), Path("output.idml"))
    """
    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    overrides = dict(overrides or {})
    mimetype_path = directory / "mimetype"
    if "mimetype" in overrides:
        mimetype = _as_bytes(overrides.pop("mimetype"))
    elif mimetype_path.exists():
        mimetype = mimetype_path.read_bytes()
    else:
        raise IDMLPackageError(f"Cannot pack {directory}", missing=["mimetype"], path=directory)

    buffer = io.BytesIO()
    with ZipFile(buffer, "w") as zip_ref:
        # CRITICAL: Add mimetype first, uncompressed
        zip_ref.writestr(ZipInfo("mimetype"), mimetype, compress_type=ZIP_STORED)

        for arcname, file_path in _iter_package_files(directory):
            if arcname == "mimetype":
                continue  # Already added
            if arcname in overrides:
                data = _as_bytes(overrides.pop(arcname))
                zip_ref.writestr(arcname, data, compress_type=ZIP_DEFLATED)
            else:
                zip_ref.write(file_path, arcname=arcname, compress_type=ZIP_DEFLATED)

        for arcname in sorted(overrides):
            zip_ref.writestr(arcname, _as_bytes(overrides[arcname]), compress_type=ZIP_DEFLATED)

    data = buffer.getvalue()
    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_bytes(output_path, data)
        logger.info(f"Packed {directory} -> {output_path} ({len(data)} bytes)")
    return data


def _as_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else bytes(content)


def cleanup_temp_dir(temp_dir: Path) -> None:
    """
    Clean up temporary IDML extraction directory.

    Args:
        temp_dir: Temporary directory to remove
    """
    if temp_dir.exists() and temp_dir.is_dir():
        shutil.rmtree(temp_dir)


# ============================================================================
# Package structure
# ============================================================================


def missing_structure(idml_dir: Path) -> List[str]:
    """
    List required package pieces that are absent.

    Checks:
        - mimetype, META-INF/container.xml, designmap.xml
        - Spreads/, Stories/, Resources/
        - mimetype content
    """
    missing = [name for name in REQUIRED_FILES if not (idml_dir / name).is_file()]
    missing.extend(f"{name}/" for name in REQUIRED_DIRS if not (idml_dir / name).is_dir())

    mimetype_path = idml_dir / "mimetype"
    if mimetype_path.is_file():
        content = mimetype_path.read_text(encoding="utf-8", errors="replace").strip()
        if content != IDML_MIMETYPE:
            missing.append(f"mimetype content {IDML_MIMETYPE!r}")

    return missing


def validate_idml_structure(idml_dir: Path) -> None:
    """
    Validate basic IDML directory structure.

    Raises:
        IDMLPackageError: Naming every missing piece

    Example:
        >>> idml_dir = unzip_idml(Path("doc.idml"))
        >>> validate_idml_structure(idml_dir)
    """
    if not idml_dir.is_dir():
        raise IDMLPackageError(f"IDML directory not found: {idml_dir}", path=idml_dir)
    missing = missing_structure(idml_dir)
    if missing:
        raise IDMLPackageError(f"Invalid IDML package {idml_dir}", missing=missing, path=idml_dir)


def get_story_files(idml_dir: Path) -> List[Path]:
    """
    Get all Story XML files from IDML directory.

    Returns:
        List of Story_*.xml file paths, sorted by name
    """
    stories_dir = idml_dir / "Stories"
    if not stories_dir.exists():
        return []

    return sorted(stories_dir.glob("Story_*.xml"))


def get_spread_files(idml_dir: Path) -> List[Path]:
    """Get all Spread_*.xml file paths, sorted by name."""
    spreads_dir = idml_dir / "Spreads"
    if not spreads_dir.exists():
        return []

    return sorted(spreads_dir.glob("Spread_*.xml"))


# ============================================================================
# XML reading and writing
# ============================================================================


def _xml_parser() -> ET.XMLParser:
    # Keep processing instructions (<?ACE n?> markers in story content)
    return ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))


def parse_xml_file(file_path: Path) -> ET.ElementTree:
    """
    Parse XML file keeping comments and processing instructions.

    Raises:
        FileNotFoundError: If file doesn't exist
        ET.ParseError: If XML is malformed
    """
    if not file_path.exists():
        raise FileNotFoundError(f"XML file not found: {file_path}")

    return ET.parse(file_path, parser=_xml_parser())


def parse_xml_string(text: Union[str, bytes]) -> ET.Element:
    """Parse an XML document string and return its root element."""
    parser = _xml_parser()
    parser.feed(text)
    return parser.close()


def local_name(tag: Any) -> str:
    """Tag without namespace; empty string for comments and PIs."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def package_element(root: ET.Element, inner_tag: str) -> ET.Element:
    """
    Return the document element inside an ``idPkg:*`` wrapper.

    Files written without the wrapper (bare ``<Spread>``) are accepted too.

    Raises:
        IDMLPackageError: If no ``inner_tag`` element is present
    """
    if local_name(root.tag) == inner_tag and not root.tag.startswith("{"):
        return root
    for child in root:
        if child.tag == inner_tag:
            return child
    raise IDMLPackageError(f"No <{inner_tag}> element in <{local_name(root.tag)}>")


def sanitize_xml_text(text: str) -> str:
    """Strip characters XML 1.0 cannot represent. Escaping is left to the writer."""
    return _ILLEGAL_XML_CHARS.sub("", text)


def _indent_xml(elem: ET.Element, level: int = 0) -> None:
    """
    Add tab indentation to XML tree for readability.

    Modifies tree in-place by adding tail and text whitespace. Text that is
    not pure whitespace is never touched, and mixed content (``Content``
    holding processing instructions) is left exactly as it is.
    """
    indent = "\n" + "\t" * level
    if len(elem) and not _is_mixed(elem):
        if not elem.text or not elem.text.strip():
            elem.text = indent + "\t"
        if not elem.tail or not elem.tail.strip():
            elem.tail = indent
        for child in elem:
            _indent_xml(child, level + 1)
        if not child.tail or not child.tail.strip():
            child.tail = indent
    else:
        if level and (not elem.tail or not elem.tail.strip()):
            elem.tail = indent


def _is_mixed(elem: ET.Element) -> bool:
    if local_name(elem.tag) == "Content":
        return True
    if elem.text and elem.text.strip():
        return True
    return any(child.tail and child.tail.strip() for child in elem)


def prolog_instructions(text: Union[str, bytes]) -> List[str]:
    """
    Processing instructions that precede the root element.

    The parser drops these (designmap.xml carries ``<?aid ...?>`` there), so
    callers that rewrite a file pass them back to ``xml_to_string``.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    root_start = _ROOT_START.search(text)
    head = text[: root_start.start()] if root_start else text
    return [pi for pi in _PROLOG_PI.findall(head) if not pi.startswith("<?xml ")]


def xml_to_string(root: ET.Element, pretty: bool = True, prolog: Iterable[str] = ()) -> str:
    """Serialize an element as a standalone IDML XML document."""
    if pretty:
        _indent_xml(root)
        root.tail = None
    return "\n".join([XML_DECLARATION, *prolog, ET.tostring(root, encoding="unicode")])


def atomic_write_bytes(file_path: Path, data: bytes) -> None:
    """Write via a temporary sibling file and ``os.replace``."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, file_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def find_element_by_self(root: ET.Element, self_id: str) -> Optional[ET.Element]:
    """
    Find element by 'Self' attribute (IDML's unique identifier).

    Example:
        >>> rect = find_element_by_self(tree.getroot(), "u1a3")
    """
    for element in root.iter():
        if element.get("Self") == self_id:
            return element
    return None


# ============================================================================
# Typed attribute mapping
# ============================================================================

FieldSchema = Iterable[Tuple[str, str, str]]


def _convert(raw: str, kind: str) -> Any:
    if kind == "str":
        return raw
    if kind == "bool":
        if raw in ("true", "false"):
            return raw == "true"
        raise ValueError(f"not a boolean: {raw!r}")
    if kind == "int":
        return int(raw)
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"not finite: {raw!r}")
    return value


def format_attr(value: Any) -> str:
    """Attribute text for a typed value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def read_fields(
    attrib: Mapping[str, str],
    target: Any,
    schema: FieldSchema,
    context: str = "",
    special: Iterable[str] = (),
) -> None:
    """
    Copy recognised attributes into typed fields, the rest into ``attributes``.

    Values that fail to convert are logged, left as None on the typed field
    and kept verbatim in the pass-through bag. Names listed in ``special``
    are recorded in ``attribute_order`` only; the caller handles them.
    """
    fields = {attr: (name, kind) for attr, name, kind in schema}
    special = set(special)
    target.attribute_order = list(attrib.keys())
    bag: Dict[str, str] = {}

    for attr, raw in attrib.items():
        if attr in special:
            continue
        if attr not in fields:
            bag[attr] = raw
            continue
        name, kind = fields[attr]
        try:
            setattr(target, name, _convert(raw, kind))
        except ValueError:
            logger.warning(f"Ignoring malformed {attr}={raw!r} on {context or 'element'}")
            setattr(target, name, None)
            bag[attr] = raw

    target.attributes = bag


def write_fields(
    source: Any,
    schema: FieldSchema,
    special: Optional[Mapping[str, Optional[str]]] = None,
) -> Dict[str, str]:
    """
    Merge typed fields, special values and the pass-through bag.

    Attributes appear in source order first, then new typed fields, then
    anything else from the bag.
    """
    typed = {attr: getattr(source, name) for attr, name, _ in schema}
    special = dict(special or {})
    bag = source.attributes
    out: Dict[str, str] = {}

    def value_for(attr: str) -> Optional[str]:
        if attr in special:
            return special[attr]
        if attr in typed and typed[attr] is not None:
            return format_attr(typed[attr])
        return bag.get(attr)

    for attr in list(source.attribute_order) + list(typed) + list(special) + list(bag):
        if attr in out:
            continue
        value = value_for(attr)
        if value is not None:
            out[attr] = value

    return out
