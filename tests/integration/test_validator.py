"""Tests for IDML package validation."""

import re
from zipfile import ZIP_DEFLATED, ZIP_STORED, ZipFile

import pytest

from idmlkit.indesign.idml_validator import IDMLValidator, ValidationResult

pytestmark = pytest.mark.integration


@pytest.fixture
def validator():
    return IDMLValidator()


def _rewrite(path, old, new):
    text = path.read_text(encoding="utf-8")
    assert old in text
    path.write_text(text.replace(old, new), encoding="utf-8")


def _pack(idml_dir, output, mimetype_first=True, mimetype_compression=ZIP_STORED):
    files = [p for p in sorted(idml_dir.rglob("*")) if p.is_file() and p.name != "mimetype"]
    with ZipFile(output, "w", ZIP_DEFLATED) as archive:
        if mimetype_first:
            archive.write(idml_dir / "mimetype", "mimetype", compress_type=mimetype_compression)
        for path in files:
            archive.write(path, path.relative_to(idml_dir).as_posix())
        if not mimetype_first:
            archive.write(idml_dir / "mimetype", "mimetype", compress_type=mimetype_compression)
    return output


# ============================================================================
# VALID PACKAGES
# ============================================================================


class TestValidPackages:
    def test_directory(self, validator, idml_dir):
        result = validator.validate(idml_dir)

        assert result.is_valid, result.errors
        assert result.warnings == []
        assert "Spreads: 1" in result.info
        assert "Stories: 1" in result.info
        assert "Colors: 3" in result.info

    def test_packed_file(self, validator, idml_file):
        result = validator.validate(idml_file)

        assert result.is_valid, result.errors
        assert any(message.startswith("File size:") for message in result.info)

    def test_missing_path(self, validator, tmp_path):
        result = validator.validate(tmp_path / "nope.idml")

        assert not result.is_valid
        assert result.errors[0].startswith("IDML not found")


# ============================================================================
# STRUCTURE AND XML
# ============================================================================


class TestStructure:
    def test_missing_pieces(self, validator, idml_dir):
        (idml_dir / "designmap.xml").unlink()

        result = validator.validate(idml_dir)

        assert not result.is_valid
        assert any(e.startswith("Missing") and "designmap.xml" in e for e in result.errors)

    def test_malformed_spread_xml(self, validator, idml_dir):
        (idml_dir / "Spreads" / "Spread_ub6.xml").write_text("<idPkg:Spread>", encoding="utf-8")

        result = validator.validate(idml_dir)

        assert not result.is_valid
        assert result.errors[0].startswith("XML parse error in Spreads/Spread_ub6.xml")
        # loading is skipped once the XML is known to be broken
        assert result.info == []

    def test_hidden_files_ignored(self, validator, idml_dir):
        (idml_dir / "Stories" / "._Story_u10.xml").write_bytes(b"\x00\x05\x16\x07")

        assert validator.validate(idml_dir).is_valid


# ============================================================================
# REFERENCES
# ============================================================================


class TestReferences:
    def test_frame_pointing_at_missing_story(self, validator, idml_dir):
        _rewrite(idml_dir / "Spreads" / "Spread_ub6.xml", 'ParentStory="u10"', 'ParentStory="u99"')

        result = validator.validate(idml_dir)

        assert not result.is_valid
        assert "TextFrame u1a3 references non-existent story: u99" in result.errors

    def test_duplicate_self_ids(self, validator, idml_dir):
        _rewrite(idml_dir / "Spreads" / "Spread_ub6.xml", 'Self="u1b1"', 'Self="u1b0"')

        result = validator.validate(idml_dir)

        assert not result.is_valid
        assert "Duplicate Self ids: u1b0" in result.errors


# ============================================================================
# CONTENT WARNINGS
# ============================================================================


class TestContentWarnings:
    def test_spread_without_pages(self, validator, idml_dir):
        path = idml_dir / "Spreads" / "Spread_ub6.xml"
        text = path.read_text(encoding="utf-8")
        path.write_text(re.sub(r"<Page .*?</Page>", "", text, flags=re.DOTALL), encoding="utf-8")

        result = validator.validate(idml_dir)

        assert result.is_valid
        assert "Spread ub6 has no pages" in result.warnings

    def test_malformed_page_bounds(self, validator, idml_dir):
        _rewrite(
            idml_dir / "Spreads" / "Spread_ub6.xml",
            'GeometricBounds="0 0 792 612"',
            'GeometricBounds="0 0 abc"',
        )

        result = validator.validate(idml_dir)

        assert result.is_valid
        assert "Page ub9 has malformed GeometricBounds '0 0 abc'" in result.warnings

    def test_empty_story(self, validator, idml_dir):
        (idml_dir / "Stories" / "Story_u10.xml").write_text(
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
            '<idPkg:Story xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" '
            'DOMVersion="16.0"><Story Self="u10" /></idPkg:Story>',
            encoding="utf-8",
        )

        result = validator.validate(idml_dir)

        assert result.is_valid
        assert "Empty stories found: u10" in result.warnings


# ============================================================================
# ARCHIVES
# ============================================================================


class TestArchive:
    def test_mimetype_not_first(self, validator, idml_dir, tmp_path):
        archive = _pack(idml_dir, tmp_path / "late.idml", mimetype_first=False)

        result = validator.validate(archive)

        assert "mimetype is not the first archive entry" in result.errors

    def test_mimetype_compressed(self, validator, idml_dir, tmp_path):
        archive = _pack(idml_dir, tmp_path / "deflated.idml", mimetype_compression=ZIP_DEFLATED)

        result = validator.validate(archive)

        assert "mimetype entry is compressed" in result.errors

    def test_not_a_zip(self, validator, tmp_path):
        path = tmp_path / "bogus.idml"
        path.write_text("definitely not a zip", encoding="utf-8")

        result = validator.validate(path)

        assert not result.is_valid
        assert result.errors[0].startswith("Not a ZIP archive")


class TestValidationResult:
    def test_str_lists_sections(self):
        result = ValidationResult(is_valid=True)
        result.add_warning("careful")
        result.add_info("Spreads: 1")
        result.add_error("broken")

        text = str(result)

        assert text.startswith("Validation: FAIL")
        assert "Errors (1):\n  - broken" in text
        assert "Warnings (1):\n  - careful" in text
        assert "Info (1):\n  - Spreads: 1" in text

    def test_str_pass_without_messages(self):
        assert str(ValidationResult(is_valid=True)) == "Validation: PASS"
