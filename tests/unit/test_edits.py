"""Unit tests for scene graph edit operations."""

import random

import pytest

from idmlkit.core.bbox import Rect
from idmlkit.core.edits import (
    add_item,
    apply_render_props,
    create_graphic_line,
    create_rectangle,
    create_story,
    create_text_frame,
    group_items,
    move_item,
    place_image,
    remove_item,
    set_layer_locked,
    set_item_transform,
    set_layer_visibility,
    ungroup,
)
from idmlkit.core.scene import Group, Layer, Page, Rectangle, Spread, TextFrame, is_valid_id
from idmlkit.core.transform import Matrix, RenderProps
from idmlkit.errors import ObjectNotFoundError


@pytest.fixture
def spread():
    return Spread(
        self_id="ub6",
        file_name="Spread_ub6.xml",
        pages=[Page(self_id="u200", items=[Rectangle(self_id="u201", layer="uc5")])],
        items=[
            TextFrame(self_id="u101", layer="uc5", transform=Matrix.translation(10, 10)),
            Rectangle(self_id="u102", layer="uc5"),
            Rectangle(self_id="u103", layer="ud1"),
        ],
    )


@pytest.fixture
def existing(spread):
    return spread.self_ids()


class TestGeometryEdits:
    """Transform edits mark items modified."""

    def test_set_item_transform_keeps_first_snapshot(self):
        rect = Rectangle(self_id="u301", raw_transform="1 0 0 1 5 5")
        set_item_transform(rect, Matrix.translation(1, 1))
        set_item_transform(rect, Matrix.translation(2, 2))
        assert rect.transform == Matrix.translation(2, 2)
        assert rect.tracking.original_transform == "1 0 0 1 5 5"
        assert rect.tracking.needs_save

    def test_move_item_converts_pixels(self, spread):
        frame = spread.find_item("u101")
        move_item(frame, 15, 30, points_to_pixels=0.75)
        assert frame.transform == Matrix.translation(30, 50)
        assert frame.tracking.modified

    def test_apply_render_props(self, spread):
        frame = spread.find_item("u101")
        apply_render_props(frame, RenderProps(left=75, top=150), points_to_pixels=0.75)
        assert frame.transform.almost_equal(Matrix.translation(100, 200))


class TestStructureEdits:
    """Add, remove, group, ungroup."""

    def test_add_item_flags_new(self, spread, existing):
        rect = create_rectangle(existing, 0, 0, 50, 50)
        add_item(spread, rect)
        assert spread.items[-1] is rect
        assert rect.tracking.is_new
        assert spread.structure_changed

    def test_add_item_to_page(self, spread, existing):
        rect = create_rectangle(existing, 0, 0, 50, 50)
        add_item(spread, rect, page=spread.pages[0])
        assert spread.pages[0].items[-1] is rect

    def test_remove_item(self, spread):
        item, container, index = remove_item(spread, "u102")
        assert item.self_id == "u102"
        assert index == 1
        assert spread.find_item("u102") is None
        assert spread.structure_changed

    def test_remove_missing_item_raises(self, spread):
        with pytest.raises(ObjectNotFoundError) as excinfo:
            remove_item(spread, "uffff")
        assert excinfo.value.object_id == "uffff"
        assert excinfo.value.file_name == "Spread_ub6.xml"

    def test_group_items(self, spread, existing):
        group = group_items(spread, ["u102", "u101"], existing, rng=random.Random(3))
        assert isinstance(group, Group)
        assert spread.items[0] is group
        assert [i.self_id for i in group.items] == ["u101", "u102"]
        assert [i.self_id for i in spread.items] == [group.self_id, "u103"]
        assert group.self_id in existing
        assert is_valid_id(group.self_id)

    def test_group_needs_two_items(self, spread, existing):
        with pytest.raises(ValueError):
            group_items(spread, ["u101", "u101"], existing)

    def test_group_across_containers_rejected(self, spread, existing):
        with pytest.raises(ValueError):
            group_items(spread, ["u101", "u201"], existing)

    def test_ungroup_flattens_transforms(self, spread, existing):
        group = group_items(spread, ["u101", "u102"], existing)
        group.transform = Matrix.translation(100, 0)

        children = ungroup(spread, group.self_id)

        assert [c.self_id for c in children] == ["u101", "u102"]
        assert spread.find_item(group.self_id) is None
        assert spread.find_item("u101").transform == Matrix.translation(110, 10)
        assert all(c.tracking.modified for c in children)

    def test_ungroup_non_group_rejected(self, spread):
        with pytest.raises(ValueError):
            ungroup(spread, "u101")


class TestLayers:
    """Layer-wide visibility and locking."""

    def test_hide_layer(self, spread):
        layer = Layer(self_id="uc5", name="Layer 1")
        touched = set_layer_visibility([spread], layer, False)
        assert {i.self_id for i in touched} == {"u101", "u102", "u201"}
        assert not layer.visible
        assert not spread.find_item("u101").is_visible
        assert spread.find_item("u103").is_visible

    def test_lock_layer(self, spread):
        layer = Layer(self_id="ud1")
        set_layer_locked([spread], layer, True)
        assert spread.find_item("u103").is_locked
        assert spread.find_item("u103").tracking.modified


class TestFactories:
    """New elements carry fresh ids and geometry."""

    def test_text_frame(self, existing):
        frame = create_text_frame(existing, "u10", 20, 30, 200, 100)
        assert frame.parent_story == "u10"
        assert frame.transform == Matrix.translation(20, 30)
        assert frame.local_bounds() == Rect(0, 0, 200, 100)
        assert frame.extra_children[0].tag == "Properties"
        anchors = [p.get("Anchor") for p in frame.extra_children[0].iter("PathPointType")]
        assert anchors == ["0 0", "0 100", "200 100", "200 0"]
        assert frame.self_id in existing

    def test_graphic_line(self, existing):
        line = create_graphic_line(existing, (10, 10), (110, 10))
        assert line.transform == Matrix.translation(10, 10)
        assert line.local_bounds() == Rect(0, 0, 100, 0)
        geometry = line.extra_children[0].find("PathGeometry/GeometryPathType")
        assert geometry.get("PathOpen") == "true"

    def test_place_image(self, existing):
        rect = create_rectangle(existing, 0, 0, 100, 100)
        image = place_image(rect, "file:///tmp/photo.jpg", Rect(0, 0, 400, 300), existing)
        assert rect.image is image
        assert image.link_uri == "file:///tmp/photo.jpg"
        bounds = image.extra_children[0].find("GraphicBounds")
        assert bounds.get("Right") == "400"
        assert bounds.get("Bottom") == "300"

    def test_factories_honour_number_precision(self, existing):
        rect = create_rectangle(existing, 0, 0, 10.123456, 5, precision=2)
        anchors = [p.get("Anchor") for p in rect.extra_children[0].iter("PathPointType")]
        assert anchors[2] == "10.12 5"

        image = place_image(rect, "file:///tmp/a.png", Rect(0, 0, 1.23456, 2), existing, precision=1)
        assert image.extra_children[0].find("GraphicBounds").get("Right") == "1.2"

    def test_create_story(self, existing):
        story = create_story(existing, "Title\n\nBody text")
        assert [p.text for p in story.paragraphs] == ["Title", "Body text"]
        assert story.paragraphs[0].break_after
        assert not story.paragraphs[1].break_after
        assert story.modified
        assert story.leading_children[0].tag == "InCopyExportOption"
