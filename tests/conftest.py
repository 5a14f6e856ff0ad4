"""Pytest fixtures for idmlkit tests (package trees, spreads, stories)."""

from pathlib import Path

import pytest

from idmlkit.config import EditorConfig
from idmlkit.indesign.idml_utils import zip_idml
from idmlkit.io.locks import PathLockRegistry


# ============================================================================
# XML FIXTURES
# ============================================================================
# One spread with a page, three rectangles interleaved with other item
# types, a nested group, a placed image on a hidden rectangle and an item
# carrying a vendor attribute the editor does not model.

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
\t<rootfiles>
\t\t<rootfile full-path="designmap.xml" media-type="text/xml" />
\t</rootfiles>
</container>
"""

DESIGNMAP_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<?aid style="50" type="document" readerVersion="6.0" featureSet="257" product="16.0(35)" ?>
<Document xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" DOMVersion="16.0" Self="d" StoryList="u10" ActiveLayer="uc5">
\t<idPkg:Graphic src="Resources/Graphic.xml" />
\t<Layer Self="uc5" Name="Layer 1" Visible="true" Locked="false" />
\t<Layer Self="ud1" Name="Notes" Visible="false" Locked="false" />
\t<idPkg:Spread src="Spreads/Spread_ub6.xml" />
\t<idPkg:Story src="Stories/Story_u10.xml" />
</Document>
"""

GRAPHIC_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<idPkg:Graphic xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" DOMVersion="16.0">
\t<Color Self="Color/Black" Model="Process" Space="CMYK" ColorValue="0 0 0 100" Name="Black" />
\t<Color Self="Color/Red" Model="Process" Space="CMYK" ColorValue="0 100 100 0" Name="Red" />
\t<Color Self="Color/Blue" Model="Process" Space="RGB" ColorValue="0 0 255" Name="Blue" />
</idPkg:Graphic>
"""


def _box(width, height):
    return (
        "<Properties><PathGeometry><GeometryPathType PathOpen=\"false\"><PathPointArray>"
        f"<PathPointType Anchor=\"0 0\" LeftDirection=\"0 0\" RightDirection=\"0 0\" />"
        f"<PathPointType Anchor=\"0 {height}\" LeftDirection=\"0 {height}\" RightDirection=\"0 {height}\" />"
        f"<PathPointType Anchor=\"{width} {height}\" LeftDirection=\"{width} {height}\" RightDirection=\"{width} {height}\" />"
        f"<PathPointType Anchor=\"{width} 0\" LeftDirection=\"{width} 0\" RightDirection=\"{width} 0\" />"
        "</PathPointArray></GeometryPathType></PathGeometry></Properties>"
    )


SPREAD_XML = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<idPkg:Spread xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" DOMVersion="16.0">
\t<Spread Self="ub6" PageTransitionType="None" ShowMasterItems="true" PageCount="1" BindingLocation="0" AllowPageShuffle="true" ItemTransform="1 0 0 1 0 0" FlattenerOverride="Default">
\t\t<FlattenerPreference LineArtAndTextResolution="300" GradientAndMeshResolution="150" />
\t\t<Page Self="ub9" Name="1" AppliedMaster="uca" GeometricBounds="0 0 792 612" ItemTransform="1 0 0 1 0 -396">
\t\t\t<Properties><Descriptor type="list"><ListItem type="enumeration">Arabic</ListItem></Descriptor></Properties>
\t\t\t<MarginPreference ColumnCount="1" ColumnGutter="12" Top="36" Bottom="36" Left="36" Right="36" />
\t\t</Page>
\t\t<TextFrame Self="u1a3" ParentStory="u10" PreviousTextFrame="n" NextTextFrame="n" ContentType="TextType" ItemLayer="uc5" CustomVendorAttr="keep-me" ItemTransform="1 0 0 1 36 -360">
\t\t\t{_box(300, 200)}
\t\t\t<TextFramePreference TextColumnCount="1" />
\t\t</TextFrame>
\t\t<Rectangle Self="u1b0" ContentType="GraphicType" FillColor="Color/Red" StrokeColor="Color/Black" StrokeWeight="1" ItemLayer="uc5" ItemTransform="1 0 0 1 100 100">
\t\t\t{_box(50, 50)}
\t\t</Rectangle>
\t\t<GraphicLine Self="u1c0" StrokeColor="Color/Black" StrokeWeight="2" ItemLayer="uc5" ItemTransform="1 0 0 1 36 0">
\t\t\t<Properties><PathGeometry><GeometryPathType PathOpen="true"><PathPointArray><PathPointType Anchor="0 0" LeftDirection="0 0" RightDirection="0 0" /><PathPointType Anchor="200 0" LeftDirection="200 0" RightDirection="200 0" /></PathPointArray></GeometryPathType></PathGeometry></Properties>
\t\t</GraphicLine>
\t\t<Rectangle Self="u1b1" ContentType="GraphicType" FillColor="Color/Blue" ItemLayer="uc5" GeometricBounds="0 0 40 40" ItemTransform="0.866025 0.5 -0.5 0.866025 200 -100" />
\t\t<Group Self="u200" ItemLayer="uc5" ItemTransform="1 0 0 1 50 50">
\t\t\t<Oval Self="u201" FillColor="Color/Red" ItemLayer="uc5" ItemTransform="1 0 0 1 0 0">
\t\t\t\t{_box(20, 20)}
\t\t\t</Oval>
\t\t\t<Group Self="u202" ItemLayer="uc5" ItemTransform="1 0 0 1 10 10">
\t\t\t\t<Rectangle Self="u203" FillColor="Color/Black" ItemLayer="uc5" ItemTransform="1 0 0 1 0 0">
\t\t\t\t\t{_box(10, 10)}
\t\t\t\t</Rectangle>
\t\t\t</Group>
\t\t</Group>
\t\t<Rectangle Self="u1b2" ContentType="GraphicType" Visible="false" ItemLayer="uc5" ItemTransform="1 0 0 1 300 -300">
\t\t\t{_box(100, 75)}
\t\t\t<Image Self="u1e0" ItemTransform="0.25 0 0 0.25 0 0">
\t\t\t\t<Properties><GraphicBounds Left="0" Top="0" Right="400" Bottom="300" /></Properties>
\t\t\t\t<Link Self="u1e1" LinkResourceURI="file:///images/photo.jpg" StoredState="Normal" />
\t\t\t</Image>
\t\t</Rectangle>
\t\t<Polygon Self="u1d0" FillColor="Color/Blue" ItemLayer="ud1" ItemTransform="1 0 0 1 400 0">
\t\t\t{_box(30, 30)}
\t\t</Polygon>
\t</Spread>
</idPkg:Spread>
"""

STORY_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<idPkg:Story xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" DOMVersion="16.0">
\t<Story Self="u10" AppliedTOCStyle="n" TrackChanges="false" StoryTitle="$ID/" AppliedNamedGrid="n">
\t\t<StoryPreference OpticalMarginAlignment="false" OpticalMarginSize="12" FrameType="TextFrameType" StoryOrientation="Horizontal" StoryDirection="LeftToRightDirection" />
\t\t<InCopyExportOption IncludeGraphicProxies="true" IncludeAllResources="false" />
\t\t<ParagraphStyleRange AppliedParagraphStyle="ParagraphStyle/Heading" Justification="CenterAlign">
\t\t\t<CharacterStyleRange AppliedCharacterStyle="CharacterStyle/$ID/[No character style]" PointSize="24" FontStyle="Bold">
\t\t\t\t<Properties>
\t\t\t\t\t<AppliedFont type="string">Minion Pro</AppliedFont>
\t\t\t\t</Properties>
\t\t\t\t<Content>Welcome</Content>
\t\t\t\t<Br />
\t\t\t</CharacterStyleRange>
\t\t</ParagraphStyleRange>
\t\t<ParagraphStyleRange AppliedParagraphStyle="ParagraphStyle/Body">
\t\t\t<CharacterStyleRange AppliedCharacterStyle="CharacterStyle/$ID/[No character style]">
\t\t\t\t<Content>Hello </Content>
\t\t\t</CharacterStyleRange>
\t\t\t<CharacterStyleRange AppliedCharacterStyle="CharacterStyle/Emphasis" FillColor="Color/Red" FontStyle="Italic">
\t\t\t\t<Content>world<?ACE 7?></Content>
\t\t\t</CharacterStyleRange>
\t\t</ParagraphStyleRange>
\t</Story>
</idPkg:Story>
"""

STORY_TEXT = "Welcome\n\nHello world"


# ============================================================================
# PACKAGE FIXTURES
# ============================================================================


@pytest.fixture
def spread_xml() -> str:
    return SPREAD_XML


@pytest.fixture
def story_xml() -> str:
    return STORY_XML


@pytest.fixture
def idml_dir(tmp_path) -> Path:
    """
    Extracted IDML tree with one spread, one story, colours and layers.

    Layout:
        mimetype
        META-INF/container.xml
        designmap.xml
        Resources/Graphic.xml
        Spreads/Spread_ub6.xml
        Stories/Story_u10.xml
        MasterSpreads/MasterSpread_uca.xml
    """
    root = tmp_path / "package"
    files = {
        "mimetype": "application/vnd.adobe.indesign-idml-package",
        "META-INF/container.xml": CONTAINER_XML,
        "designmap.xml": DESIGNMAP_XML,
        "Resources/Graphic.xml": GRAPHIC_XML,
        "Spreads/Spread_ub6.xml": SPREAD_XML,
        "Stories/Story_u10.xml": STORY_XML,
        "MasterSpreads/MasterSpread_uca.xml": (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
            '<idPkg:MasterSpread xmlns:idPkg="http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging" '
            'DOMVersion="16.0"><MasterSpread Self="uca" Name="A-Parent" /></idPkg:MasterSpread>\n'
        ),
    }
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def idml_file(idml_dir, tmp_path) -> Path:
    """The ``idml_dir`` tree packed as an .idml archive."""
    output = tmp_path / "sample.idml"
    zip_idml(idml_dir, output)
    return output


@pytest.fixture
def config() -> EditorConfig:
    return EditorConfig(font_substitutions={"Minion Pro": "'Minion Pro', Georgia, serif"})


@pytest.fixture
def locks() -> PathLockRegistry:
    """Private lock registry so tests never share lock state."""
    return PathLockRegistry(timeout=5.0)


@pytest.fixture
def story_text() -> str:
    """Plain text of ``STORY_XML``."""
    return STORY_TEXT
