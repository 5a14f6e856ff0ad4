"""HTML preview export."""

from .html_renderer import HtmlExport, render_spread_html, write_html_export

__all__ = ["HtmlExport", "render_spread_html", "write_html_export"]
