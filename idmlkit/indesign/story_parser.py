"""Story XML -> text model.

``Content`` text becomes range content, ``Br`` becomes "\\n". A ``Br`` that
closes a paragraph range is recorded as ``Paragraph.break_after`` rather
than as text, so plain-text paragraphs carry no trailing newline.

Anything else inside a character range (anchored frames, notes, tables,
processing instructions) is kept verbatim together with the character
offset at which it occurs.
"""

import copy
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Union

from ..core.story import CharacterRange, Paragraph, Story, StoryPreference
from .idml_utils import local_name, package_element, parse_xml_file, parse_xml_string, read_fields

logger = logging.getLogger(__name__)


def parse_story_file(path: Path) -> Story:
    """Parse ``Stories/Story_*.xml`` from disk."""
    story = parse_story(parse_xml_file(path).getroot())
    story.file_name = path.name
    return story


def parse_story(source: Union[str, bytes, ET.Element]) -> Story:
    """
    Build a Story from story XML.

    Args:
        source: XML text or parsed root (``idPkg:Story`` wrapper or bare
            ``Story``)

    Returns:
        Story

    Raises:
        IDMLPackageError: If there is no Story element
        ET.ParseError: If the XML text is not well-formed
    """
    root = parse_xml_string(source) if isinstance(source, (str, bytes)) else source
    element = package_element(root, "Story")

    story = Story(self_id=element.get("Self", ""))
    if element is not root:
        story.package_attributes = dict(root.attrib)
    read_fields(element.attrib, story, Story.FIELDS, f"Story {story.self_id}")

    for child in element:
        tag = local_name(child.tag)
        if tag == "StoryPreference" and story.preference is None:
            preference = StoryPreference()
            read_fields(child.attrib, preference, StoryPreference.FIELDS, f"Story {story.self_id} preference")
            story.preference = preference
        elif tag == "ParagraphStyleRange":
            story.paragraphs.append(_parse_paragraph(child, story.self_id))
        elif story.paragraphs:
            story.anchored_children.append((len(story.paragraphs) - 1, _detach(child)))
        else:
            story.leading_children.append(_detach(child))

    logger.debug(f"Parsed story {story.self_id}: {len(story.paragraphs)} paragraphs")
    return story


def _detach(element: ET.Element) -> ET.Element:
    clone = copy.deepcopy(element)
    clone.tail = None
    return clone


def _parse_paragraph(element: ET.Element, story_id: str) -> Paragraph:
    paragraph = Paragraph()
    read_fields(element.attrib, paragraph, Paragraph.FIELDS, f"Story {story_id} paragraph")

    implicit: Optional[CharacterRange] = None
    last_was_break = False
    for child in element:
        tag = local_name(child.tag)
        if tag == "CharacterStyleRange":
            rng = CharacterRange()
            read_fields(child.attrib, rng, CharacterRange.FIELDS, f"Story {story_id} range")
            last_was_break = _read_range_children(rng, list(child))
            paragraph.ranges.append(rng)
            implicit = None
        elif tag == "Properties":
            paragraph.extra_children.append(_detach(child))
        else:
            if implicit is None:
                implicit = CharacterRange(implicit=True)
                paragraph.ranges.append(implicit)
            last_was_break = _read_range_children(implicit, [child])

    if last_was_break and paragraph.ranges and paragraph.ranges[-1].content.endswith("\n"):
        last = paragraph.ranges[-1]
        last.content = last.content[:-1]
        paragraph.break_after = True

    return paragraph


def _read_range_children(rng: CharacterRange, children: List[ET.Element]) -> bool:
    """
    Append text and inline children to ``rng``.

    Returns:
        True if the last text-bearing child was a Br
    """
    parts: List[str] = [rng.content]
    length = len(rng.content)
    last_was_break = False

    for child in children:
        tag = local_name(child.tag)
        if tag == "Properties" and rng.properties is None and not rng.implicit:
            rng.properties = _detach(child)
            font = child.find("AppliedFont")
            if font is not None and font.text:
                rng.font_family = font.text
            continue

        if tag == "Content":
            text = child.text or ""
            parts.append(text)
            length += len(text)
            for nested in child:
                # Processing instructions inside Content (e.g. <?ACE 7?>)
                rng.inline_children.append((length, _detach(nested)))
                tail = nested.tail or ""
                parts.append(tail)
                length += len(tail)
            last_was_break = False
        elif tag == "Br":
            parts.append("\n")
            length += 1
            last_was_break = True
        else:
            rng.inline_children.append((length, _detach(child)))
            last_was_break = False

    rng.content = "".join(parts)
    return last_was_break
