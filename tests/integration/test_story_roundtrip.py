"""Tests for story parsing and serialization fidelity."""

import xml.etree.ElementTree as ET

import pytest

from idmlkit.core.story import update_story_from_plain_text
from idmlkit.indesign.idml_serializer import serialize_story
from idmlkit.indesign.story_parser import parse_story

pytestmark = pytest.mark.integration

BETWEEN_PARAGRAPHS = '<XMLElement Self="di2" MarkupTag="XMLTag/Root" />'


def _story_element(xml: str) -> ET.Element:
    return ET.fromstring(xml).find("Story")


@pytest.fixture
def story_with_marker(story_xml) -> str:
    body = '\t\t<ParagraphStyleRange AppliedParagraphStyle="ParagraphStyle/Body">'
    return story_xml.replace(body, f"\t\t{BETWEEN_PARAGRAPHS}\n{body}")


class TestUnknownStoryChildren:
    def test_leading_children_stay_first(self, story_xml):
        tags = [child.tag for child in _story_element(serialize_story(parse_story(story_xml)))]

        assert tags[:2] == ["StoryPreference", "InCopyExportOption"]

    def test_child_between_paragraphs_stays_in_place(self, story_with_marker):
        story = parse_story(story_with_marker)

        tags = [child.tag for child in _story_element(serialize_story(story))]

        ranges = [index for index, tag in enumerate(tags) if tag == "ParagraphStyleRange"]
        assert ranges[0] < tags.index("XMLElement") < ranges[-1]
        assert story.anchored_children[0][0] == 0

    def test_position_kept_after_text_edit(self, story_with_marker):
        story = parse_story(story_with_marker)
        edited = update_story_from_plain_text(story, "Welcome back\n\nHello world")

        tags = [child.tag for child in _story_element(serialize_story(edited))]

        ranges = [index for index, tag in enumerate(tags) if tag == "ParagraphStyleRange"]
        assert ranges[0] < tags.index("XMLElement") < ranges[-1]

    def test_reparse_is_stable(self, story_with_marker):
        once = serialize_story(parse_story(story_with_marker))
        twice = serialize_story(parse_story(once))

        assert once == twice
