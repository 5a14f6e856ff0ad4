"""Unit tests for colour parsing and conversion."""

import logging
import xml.etree.ElementTree as ET

import pytest

from idmlkit.core.colors import (
    Color,
    ColorManager,
    ColorModel,
    ColorSpace,
    cmyk_to_rgb,
    lab_to_rgb,
    parse_color_element,
    rgb_to_hex,
)

GRAPHIC_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<idPkg:Graphic xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" DOMVersion="16.0">
  <Color Self="Color/Red" Model="Process" Space="CMYK" ColorValue="0 100 100 0" Name="Red" />
  <Color Self="Color/Web" Model="Process" Space="RGB" ColorValue="12 34 56" Name="Web" />
  <Color Self="Color/Hidden" Model="Process" Space="RGB" ColorValue="0 0 0" Visible="false" />
  <Color Name="NoId" Space="RGB" ColorValue="1 2 3" />
</idPkg:Graphic>
"""


class TestConversions:
    """Colour-space approximations."""

    def test_cmyk_white_and_black(self):
        assert cmyk_to_rgb(0, 0, 0, 0) == (255, 255, 255)
        assert cmyk_to_rgb(0, 0, 0, 100) == (0, 0, 0)

    def test_cmyk_primaries(self):
        assert cmyk_to_rgb(100, 0, 0, 0) == (0, 255, 255)
        assert cmyk_to_rgb(0, 100, 100, 0) == (255, 0, 0)

    def test_out_of_range_values_are_clamped(self):
        assert cmyk_to_rgb(-20, 0, 0, 0) == (255, 255, 255)
        assert cmyk_to_rgb(0, 0, 0, 150) == (0, 0, 0)

    def test_rgb_to_hex_clamps(self):
        assert rgb_to_hex(255, 128, 300) == "#ff80ff"
        assert rgb_to_hex(-5, 0, 15) == "#00000f"

    def test_lab_white_and_black(self):
        assert lab_to_rgb(100, 0, 0) == pytest.approx((255, 255, 255), abs=1)
        assert lab_to_rgb(0, 0, 0) == (0, 0, 0)


class TestColor:
    """Color value object."""

    def test_hex_for_cmyk(self):
        color = Color("Color/C", "C", ColorModel.PROCESS, ColorSpace.CMYK, (100, 0, 0, 0))
        assert color.hex == "#00ffff"

    def test_mismatched_values_fall_back(self):
        color = Color("Color/X", "X", ColorModel.PROCESS, ColorSpace.CMYK, (1, 2))
        assert color.rgb is None
        assert color.hex == "#000000"

    def test_unknown_space_is_logged(self, caplog):
        element = ET.Element("Color", {"Self": "Color/Z", "Space": "HSB", "ColorValue": "1 2 3"})
        with caplog.at_level(logging.WARNING):
            color = parse_color_element(element)
        assert color.space is None
        assert "unknown Space" in caplog.text


class TestColorManager:
    """Per-document colour lookup."""

    @pytest.fixture
    def manager(self):
        return ColorManager.from_graphic_xml(ET.fromstring(GRAPHIC_XML.encode("utf-8")))

    def test_loads_colors_with_ids(self, manager):
        assert len(manager) == 3
        assert "Color/Red" in manager
        assert manager.get("Color/Red").name == "Red"

    def test_get_hex(self, manager):
        assert manager.get_hex("Color/Red") == "#ff0000"
        assert manager.get_hex("Color/Web") == "#0c2238"

    def test_builtin_swatches(self, manager):
        assert manager.get_hex("Color/Paper") == "#ffffff"
        assert manager.get_hex("Swatch/None") is None

    def test_unknown_reference_uses_default(self, manager):
        assert manager.get_hex("Color/Missing") == "#000000"
        assert manager.get_hex("Color/Missing", default=None) is None

    def test_visible_colors(self, manager):
        assert {c.self_id for c in manager.visible_colors()} == {"Color/Red", "Color/Web"}

    def test_missing_file_gives_empty_manager(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            manager = ColorManager.from_graphic_file(tmp_path / "Graphic.xml")
        assert len(manager) == 0
        assert "not found" in caplog.text
