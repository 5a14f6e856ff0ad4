"""Tests for IDML archive packing, extraction and structure checks."""

import io
import shutil
from zipfile import ZIP_STORED, ZipFile

import pytest

from idmlkit.errors import IDMLPackageError
from idmlkit.indesign.idml_utils import (
    IDML_MIMETYPE,
    missing_structure,
    prolog_instructions,
    unzip_idml,
    validate_idml_structure,
    zip_idml,
)

pytestmark = pytest.mark.integration


def _archive_bytes(entries):
    buffer = io.BytesIO()
    with ZipFile(buffer, "w") as archive:
        for name, data in entries:
            archive.writestr(name, data)
    return buffer.getvalue()


# ============================================================================
# PACKING
# ============================================================================


class TestZipIdml:
    def test_mimetype_first_and_stored(self, idml_file):
        with ZipFile(idml_file) as archive:
            first = archive.infolist()[0]
            assert first.filename == "mimetype"
            assert first.compress_type == ZIP_STORED
            assert archive.read("mimetype").decode() == IDML_MIMETYPE

    def test_every_file_copied(self, idml_dir, idml_file):
        with ZipFile(idml_file) as archive:
            names = set(archive.namelist())
        assert {
            "designmap.xml",
            "META-INF/container.xml",
            "Resources/Graphic.xml",
            "Spreads/Spread_ub6.xml",
            "Stories/Story_u10.xml",
            "MasterSpreads/MasterSpread_uca.xml",
        } <= names

    def test_hidden_files_skipped(self, idml_dir):
        (idml_dir / ".DS_Store").write_text("junk")
        (idml_dir / "Stories" / ".Story_u10.xml.tmp").write_text("partial")

        with ZipFile(io.BytesIO(zip_idml(idml_dir))) as archive:
            names = archive.namelist()

        assert not any(name.rsplit("/", 1)[-1].startswith(".") for name in names)

    def test_override_replaces_entry_without_touching_directory(self, idml_dir):
        story_path = idml_dir / "Stories" / "Story_u10.xml"
        before = story_path.read_bytes()

        data = zip_idml(idml_dir, overrides={"Stories/Story_u10.xml": "<replaced/>"})

        with ZipFile(io.BytesIO(data)) as archive:
            assert archive.read("Stories/Story_u10.xml") == b"<replaced/>"
            assert archive.namelist().count("Stories/Story_u10.xml") == 1
        assert story_path.read_bytes() == before

    def test_override_adds_new_entry(self, idml_dir):
        data = zip_idml(idml_dir, overrides={"Stories/Story_u99.xml": b"<new/>"})

        with ZipFile(io.BytesIO(data)) as archive:
            assert archive.read("Stories/Story_u99.xml") == b"<new/>"
        assert not (idml_dir / "Stories" / "Story_u99.xml").exists()

    def test_missing_mimetype_raises(self, idml_dir):
        (idml_dir / "mimetype").unlink()

        with pytest.raises(IDMLPackageError) as exc_info:
            zip_idml(idml_dir)

        assert exc_info.value.missing == ["mimetype"]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            zip_idml(tmp_path / "nope")

    def test_output_written_atomically(self, idml_dir, tmp_path):
        output = tmp_path / "out" / "doc.idml"
        data = zip_idml(idml_dir, output)

        assert output.read_bytes() == data
        assert [p.name for p in output.parent.iterdir()] == ["doc.idml"]


# ============================================================================
# EXTRACTION
# ============================================================================


class TestUnzipIdml:
    def test_roundtrip(self, idml_dir, idml_file, tmp_path):
        out = unzip_idml(idml_file, tmp_path / "extracted")

        for name in ("designmap.xml", "Spreads/Spread_ub6.xml", "Stories/Story_u10.xml"):
            assert (out / name).read_bytes() == (idml_dir / name).read_bytes()

    def test_accepts_bytes(self, idml_file, tmp_path):
        out = unzip_idml(idml_file.read_bytes(), tmp_path / "from_bytes")
        assert (out / "designmap.xml").exists()

    def test_temp_directory_when_no_target(self, idml_file):
        out = unzip_idml(idml_file)
        try:
            assert (out / "mimetype").exists()
        finally:
            shutil.rmtree(out)

    def test_zip_slip_rejected(self, tmp_path):
        data = _archive_bytes([("mimetype", IDML_MIMETYPE), ("../evil.txt", "owned")])
        target = tmp_path / "target"

        with pytest.raises(IDMLPackageError, match="escapes"):
            unzip_idml(data, target)

        assert not (tmp_path / "evil.txt").exists()

    def test_archive_without_mimetype(self, tmp_path):
        data = _archive_bytes([("designmap.xml", "<Document/>")])

        with pytest.raises(IDMLPackageError) as exc_info:
            unzip_idml(data, tmp_path / "target")

        assert "mimetype" in exc_info.value.missing

    def test_not_a_zip(self, tmp_path):
        bogus = tmp_path / "bogus.idml"
        bogus.write_bytes(b"this is not a zip archive")

        with pytest.raises(IDMLPackageError, match="Unreadable"):
            unzip_idml(bogus, tmp_path / "target")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            unzip_idml(tmp_path / "missing.idml")


# ============================================================================
# STRUCTURE
# ============================================================================


class TestStructure:
    def test_complete_tree_passes(self, idml_dir):
        assert missing_structure(idml_dir) == []
        validate_idml_structure(idml_dir)

    def test_names_every_missing_piece(self, idml_dir):
        shutil.rmtree(idml_dir / "Resources")
        (idml_dir / "META-INF" / "container.xml").unlink()

        with pytest.raises(IDMLPackageError) as exc_info:
            validate_idml_structure(idml_dir)

        assert "Resources/" in exc_info.value.missing
        assert "META-INF/container.xml" in exc_info.value.missing

    def test_wrong_mimetype_content(self, idml_dir):
        (idml_dir / "mimetype").write_text("application/zip")

        missing = missing_structure(idml_dir)

        assert len(missing) == 1
        assert missing[0].startswith("mimetype content")

    def test_not_a_directory(self, tmp_path):
        with pytest.raises(IDMLPackageError, match="not found"):
            validate_idml_structure(tmp_path / "absent")


class TestPrologInstructions:
    def test_keeps_aid_instruction(self, idml_dir):
        prolog = prolog_instructions((idml_dir / "designmap.xml").read_bytes())

        assert len(prolog) == 1
        assert prolog[0].startswith("<?aid style=")

    def test_ignores_instructions_inside_root(self, story_xml):
        assert prolog_instructions(story_xml) == []
