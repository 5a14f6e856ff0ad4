"""IDML package I/O.

Components:
    - idml_utils.py: zip/unzip, structure checks, XML helpers, atomic writes
    - spread_parser.py / story_parser.py: XML -> scene and story models
    - idml_serializer.py: models -> XML, incremental spread updates
    - idml_parser.py: load a whole package into an IDMLDocument
    - idml_modifier.py: save boundary (locked, atomic writes)
    - idml_exporter.py: repack as .idml, HTML preview
    - idml_validator.py: structural and reference checks

Usage:
    from idmlkit.indesign import IDMLParser, IDMLExporter

    doc = IDMLParser().parse_idml(Path("in.idml"), cleanup_temp=False)
    IDMLExporter().export_document(doc, Path("out.idml"))
"""

from .idml_exporter import IDMLExporter
from .idml_modifier import IDMLModifier
from .idml_parser import IDMLDocument, IDMLParser, load_document
from .idml_serializer import serialize_spread, serialize_story, update_spread_xml
from .idml_utils import unzip_idml, validate_idml_structure, zip_idml
from .idml_validator import IDMLValidator, ValidationResult
from .spread_parser import parse_spread, parse_spread_file
from .story_parser import parse_story, parse_story_file

__all__ = [
    "IDMLParser",
    "IDMLDocument",
    "load_document",
    "IDMLModifier",
    "IDMLExporter",
    "IDMLValidator",
    "ValidationResult",
    "parse_spread",
    "parse_spread_file",
    "parse_story",
    "parse_story_file",
    "serialize_spread",
    "serialize_story",
    "update_spread_xml",
    "unzip_idml",
    "zip_idml",
    "validate_idml_structure",
]
