"""Tests for the idmlkit command line."""

import pytest
from typer.testing import CliRunner

from idmlkit.cli import app
from idmlkit.core.transform import Matrix
from idmlkit.indesign.idml_parser import load_document

pytestmark = pytest.mark.integration


@pytest.fixture
def runner():
    return CliRunner()


class TestInspect:
    def test_info(self, runner, idml_file):
        result = runner.invoke(app, ["info", str(idml_file)])

        assert result.exit_code == 0, result.output
        assert "DOM version: 16.0" in result.output
        assert "Spreads (1):" in result.output
        assert "Stories (1):" in result.output
        assert "Layers: Layer 1, Notes" in result.output

    def test_info_missing_file(self, runner, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "missing.idml")])

        assert result.exit_code == 1
        assert "✗ Error" in result.output

    def test_validate_valid(self, runner, idml_dir):
        result = runner.invoke(app, ["validate", str(idml_dir)])

        assert result.exit_code == 0, result.output
        assert "Validation: PASS" in result.output
        assert "✓ Valid IDML" in result.output

    def test_validate_invalid(self, runner, idml_dir):
        (idml_dir / "designmap.xml").unlink()

        result = runner.invoke(app, ["validate", str(idml_dir)])

        assert result.exit_code == 1
        assert "Validation: FAIL" in result.output


class TestPackaging:
    def test_extract_then_pack(self, runner, idml_file, tmp_path):
        out_dir = tmp_path / "extracted"
        packed = tmp_path / "repacked.idml"

        extracted = runner.invoke(app, ["extract", str(idml_file), str(out_dir)])
        repacked = runner.invoke(app, ["pack", str(out_dir), str(packed)])

        assert extracted.exit_code == 0, extracted.output
        assert (out_dir / "designmap.xml").exists()
        assert repacked.exit_code == 0, repacked.output
        assert packed.exists()

    def test_pack_incomplete_tree(self, runner, idml_dir, tmp_path):
        (idml_dir / "mimetype").unlink()

        result = runner.invoke(app, ["pack", str(idml_dir), str(tmp_path / "out.idml")])

        assert result.exit_code == 1
        assert not (tmp_path / "out.idml").exists()

    def test_export_html(self, runner, idml_file, tmp_path):
        out_dir = tmp_path / "preview"

        result = runner.invoke(
            app, ["export-html", str(idml_file), "--out", str(out_dir), "--spread", "ub6", "--inline-css"]
        )

        assert result.exit_code == 0, result.output
        html = (out_dir / "index.html").read_text(encoding="utf-8")
        assert "<style>" in html
        assert 'id="idml-u1a3"' in html

    def test_export_html_unknown_spread(self, runner, idml_dir, tmp_path):
        result = runner.invoke(
            app, ["export-html", str(idml_dir), "--out", str(tmp_path / "p"), "--spread", "3"]
        )

        assert result.exit_code == 1


class TestEditing:
    def test_set_transform(self, runner, idml_dir):
        result = runner.invoke(app, ["set-transform", str(idml_dir), "0", "u1b0", "1 0 0 1 20 40"])

        assert result.exit_code == 0, result.output
        assert "✓ Rectangle u1b0 updated" in result.output
        item = load_document(idml_dir).spreads["ub6"].find_item("u1b0")
        assert item.transform == Matrix.translation(20, 40)

    def test_set_transform_bad_matrix(self, runner, idml_dir):
        result = runner.invoke(app, ["set-transform", str(idml_dir), "ub6", "u1b0", "1 0 0"])

        assert result.exit_code == 1

    def test_set_text(self, runner, idml_dir):
        result = runner.invoke(app, ["set-text", str(idml_dir), "u10", "--text", "Hi\n\nHello world"])

        assert result.exit_code == 0, result.output
        assert "Story u10: 2 paragraph(s)" in result.output
        assert load_document(idml_dir).plain_text("u10") == "Hi\n\nHello world"

    def test_set_text_from_file(self, runner, idml_dir, tmp_path):
        source = tmp_path / "copy.txt"
        source.write_text("Only one", encoding="utf-8")

        result = runner.invoke(app, ["set-text", str(idml_dir), "u10", "--file", str(source)])

        assert result.exit_code == 0, result.output
        assert load_document(idml_dir).plain_text("u10") == "Only one"

    @pytest.mark.parametrize("extra", [[], ["--text", "a", "--file", "b.txt"]])
    def test_set_text_needs_exactly_one_source(self, runner, idml_dir, extra):
        result = runner.invoke(app, ["set-text", str(idml_dir), "u10", *extra])

        assert result.exit_code == 1
        assert "exactly one of --text or --file" in result.output


class TestConfigOption:
    def test_bad_config_exits(self, runner, idml_dir, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("no_such_key: 1\n", encoding="utf-8")

        result = runner.invoke(app, ["--config", str(config), "info", str(idml_dir)])

        assert result.exit_code == 1
        assert "Config error" in result.output

    def test_config_applies(self, runner, idml_dir, tmp_path):
        config = tmp_path / "idmlkit.yaml"
        config.write_text("points_to_pixels: 1.5\n", encoding="utf-8")
        out_dir = tmp_path / "preview"

        result = runner.invoke(
            app, ["--config", str(config), "export-html", str(idml_dir), "--out", str(out_dir)]
        )

        assert result.exit_code == 0, result.output
        css = (out_dir / "styles.css").read_text(encoding="utf-8")
        assert "  width: 918px;" in css
