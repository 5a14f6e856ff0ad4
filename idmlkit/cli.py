"""
idmlkit Command Line Interface.

Inspect, validate, pack and edit IDML packages, and render HTML previews.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer

from .config import EditorConfig, load_config
from .errors import IDMLError
from .indesign.idml_exporter import IDMLExporter
from .indesign.idml_modifier import IDMLModifier
from .indesign.idml_parser import IDMLDocument, IDMLParser
from .indesign.idml_utils import cleanup_temp_dir, unzip_idml
from .indesign.idml_validator import IDMLValidator

app = typer.Typer(
    name="idmlkit",
    help="Read, edit and write Adobe InDesign IDML packages",
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Editor config YAML"),
):
    """Global options shared by all commands."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        ctx.obj = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"✗ Config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _config(ctx: typer.Context) -> EditorConfig:
    return ctx.obj if isinstance(ctx.obj, EditorConfig) else EditorConfig()


def _fail(error: Exception) -> None:
    typer.secho(f"✗ Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@contextmanager
def _open_document(path: Path) -> Iterator[IDMLDocument]:
    """Load a packed .idml (via a temp directory) or an extracted tree."""
    parser = IDMLParser()
    if path.is_dir():
        yield parser.load_directory(path)
        return
    doc = parser.parse_idml(path)
    try:
        yield doc
    finally:
        if doc.temp_dir is not None:
            cleanup_temp_dir(doc.temp_dir)


@app.command()
def info(path: Path = typer.Argument(..., help="IDML file or extracted directory")):
    """
    Summarize spreads, stories, colours and layers.

    Example:
        idmlkit info brochure.idml
    """
    try:
        with _open_document(path) as doc:
            typer.echo(f"Document: {path}")
            typer.echo(f"DOM version: {doc.dom_version}")
            typer.echo(f"\nSpreads ({len(doc.spreads)}):")
            for spread in doc.spreads.values():
                items = list(spread.all_items())
                typer.echo(
                    f"  {spread.self_id}: {len(spread.pages)} page(s), {len(items)} item(s)"
                )
            typer.echo(f"\nStories ({len(doc.stories)}):")
            for story_id, story in doc.stories.items():
                text = story.plain_text()
                preview = text[:40].replace("\n", " ")
                typer.echo(f"  {story_id}: {len(text)} chars  {preview!r}")
            typer.echo(f"\nColors: {len(doc.colors)}")
            typer.echo(f"Layers: {', '.join(layer.name for layer in doc.layers.values()) or '-'}")
    except (IDMLError, FileNotFoundError) as e:
        _fail(e)


@app.command()
def validate(path: Path = typer.Argument(..., help="IDML file or extracted directory")):
    """
    Check package structure, XML and cross-references.

    Exits with code 1 when the package is invalid.
    """
    result = IDMLValidator().validate(path)
    typer.echo(str(result))
    if not result.is_valid:
        raise typer.Exit(code=1)
    typer.secho("✓ Valid IDML", fg=typer.colors.GREEN)


@app.command()
def extract(
    idml_file: Path = typer.Argument(..., help="IDML file"),
    out_dir: Path = typer.Argument(..., help="Target directory"),
):
    """Extract an IDML package into a directory."""
    try:
        unzip_idml(idml_file, out_dir)
    except (IDMLError, FileNotFoundError) as e:
        _fail(e)
    typer.secho(f"✓ Extracted to {out_dir}", fg=typer.colors.GREEN)


@app.command()
def pack(
    ctx: typer.Context,
    idml_dir: Path = typer.Argument(..., help="Extracted IDML directory"),
    output: Path = typer.Argument(..., help="Output .idml file"),
):
    """Pack an extracted directory into an .idml file (mimetype first, stored)."""
    try:
        data = IDMLExporter(_config(ctx)).export_directory(idml_dir, output)
    except IDMLError as e:
        _fail(e)
    typer.secho(f"✓ Wrote {output} ({len(data)} bytes)", fg=typer.colors.GREEN)


@app.command("export-html")
def export_html(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="IDML file or extracted directory"),
    out_dir: Path = typer.Option(Path("html"), "--out", "-o", help="Output directory"),
    spread: str = typer.Option("0", "--spread", "-s", help="Spread index, file name or id"),
    inline_css: bool = typer.Option(False, "--inline-css", help="Inline styles instead of styles.css"),
):
    """
    Render one spread as a static HTML+CSS preview.

    Example:
        idmlkit export-html brochure.idml --spread 1 --out preview
    """
    spread_ref = int(spread) if spread.isdigit() else spread
    try:
        with _open_document(path) as doc:
            index = IDMLExporter(_config(ctx)).export_html(doc, spread_ref, out_dir, inline_css=inline_css)
    except (IDMLError, FileNotFoundError) as e:
        _fail(e)
    typer.secho(f"✓ Wrote {index}", fg=typer.colors.GREEN)


@app.command("set-transform")
def set_transform(
    ctx: typer.Context,
    idml_dir: Path = typer.Argument(..., help="Extracted IDML directory"),
    spread: str = typer.Argument(..., help="Spread index, file name or id"),
    object_id: str = typer.Argument(..., help="Self id of the page item"),
    matrix: str = typer.Argument(..., help='Six values, e.g. "1 0 0 1 20 40"'),
):
    """Replace one page item's ItemTransform in place."""
    spread_ref = int(spread) if spread.isdigit() else spread
    try:
        item = IDMLModifier(_config(ctx)).save_transform(idml_dir, spread_ref, object_id, matrix)
    except (IDMLError, ValueError) as e:
        _fail(e)
    typer.secho(f"✓ {item.kind} {object_id} updated", fg=typer.colors.GREEN)


@app.command("set-text")
def set_text(
    ctx: typer.Context,
    idml_dir: Path = typer.Argument(..., help="Extracted IDML directory"),
    story_id: str = typer.Argument(..., help="Story id, e.g. u10"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="New plain text"),
    text_file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read new text from file"),
):
    """
    Replace a story's text, keeping formatting where possible.

    Paragraphs are separated by blank lines.
    """
    if (text is None) == (text_file is None):
        typer.secho("Error: pass exactly one of --text or --file", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if text_file is not None:
        text = text_file.read_text(encoding="utf-8")

    try:
        story = IDMLModifier(_config(ctx)).save_story_text(idml_dir, story_id, text)
    except IDMLError as e:
        _fail(e)
    typer.secho(
        f"✓ Story {story_id}: {len(story.paragraphs)} paragraph(s)", fg=typer.colors.GREEN
    )


if __name__ == "__main__":
    app()
