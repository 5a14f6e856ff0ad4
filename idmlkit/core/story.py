"""Story text model and plain-text edit mapping.

A ``Story`` is a list of ``Paragraph`` objects (one per IDML
``ParagraphStyleRange``), each a list of ``CharacterRange`` objects (one per
``CharacterStyleRange``). Text editors work on a flat string instead:

    story_to_plain_text(story)  paragraphs joined by a blank line ("\\n\\n"),
                                line breaks inside a paragraph as "\\n"

``update_story_from_plain_text`` maps an edited string back onto the range
tree without losing formatting of untouched text.

Text-mapping strategies:
    diff         Diff old and new paragraph text and redistribute the
                 changes across the existing ranges. Inserted text joins
                 the range it follows; replaced text stays in the range
                 where the replaced run started.
    first_range  Put the whole paragraph text into the first range and
                 leave later ranges as they are.
"""

import copy
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"

DEFAULT_PARAGRAPH_STYLE = "ParagraphStyle/$ID/NormalParagraphStyle"
DEFAULT_CHARACTER_STYLE = "CharacterStyle/$ID/[No character style]"
DEFAULT_FONT = "Arial"
DEFAULT_FONT_SIZE = 14.0


class Justification(Enum):
    """Paragraph alignment as the editor sees it."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"


# IDML Justification values -> editor alignment
_FROM_IDML: Dict[str, Justification] = {
    "LeftAlign": Justification.LEFT,
    "CenterAlign": Justification.CENTER,
    "RightAlign": Justification.RIGHT,
    "LeftJustified": Justification.JUSTIFY,
    "CenterJustified": Justification.JUSTIFY,
    "RightJustified": Justification.JUSTIFY,
    "FullyJustified": Justification.JUSTIFY,
    "ToBindingSide": Justification.LEFT,
    "AwayFromBindingSide": Justification.RIGHT,
}

_TO_IDML: Dict[Justification, str] = {
    Justification.LEFT: "LeftAlign",
    Justification.CENTER: "CenterAlign",
    Justification.RIGHT: "RightAlign",
    Justification.JUSTIFY: "LeftJustified",
}


@dataclass
class StoryPreference:
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("OpticalMarginAlignment", "optical_margin_alignment", "bool"),
        ("OpticalMarginSize", "optical_margin_size", "float"),
        ("FrameType", "frame_type", "str"),
        ("StoryOrientation", "story_orientation", "str"),
        ("StoryDirection", "story_direction", "str"),
    )

    optical_margin_alignment: Optional[bool] = False
    optical_margin_size: Optional[float] = 12.0
    frame_type: Optional[str] = "TextFrameType"
    story_orientation: Optional[str] = "Horizontal"
    story_direction: Optional[str] = "LeftToRightDirection"
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)


@dataclass
class CharacterRange:
    """
    Run of text sharing one character style.

    ``content`` holds the text with forced line breaks as "\\n".
    ``inline_children`` keeps non-text children (anchored frames, notes,
    processing instructions) together with the character offset they sit at.
    ``implicit`` marks text that sat directly in the paragraph element
    without a CharacterStyleRange wrapper.
    """

    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("AppliedCharacterStyle", "applied_style", "str"),
        ("PointSize", "font_size", "float"),
        ("FontStyle", "font_style", "str"),
        ("FillColor", "fill_color", "str"),
    )

    content: str = ""
    applied_style: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = None
    font_style: Optional[str] = None
    fill_color: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    properties: Optional[ET.Element] = None
    inline_children: List[Tuple[int, ET.Element]] = field(default_factory=list)
    implicit: bool = False


@dataclass
class Paragraph:
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("AppliedParagraphStyle", "applied_style", "str"),
        ("SpaceBefore", "space_before", "float"),
        ("SpaceAfter", "space_after", "float"),
        ("Justification", "justification", "str"),
    )

    applied_style: Optional[str] = None
    space_before: Optional[float] = None
    space_after: Optional[float] = None
    justification: Optional[str] = None
    ranges: List[CharacterRange] = field(default_factory=list)
    break_after: bool = False
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    extra_children: List[ET.Element] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(r.content for r in self.ranges)

    @property
    def alignment(self) -> Justification:
        if self.justification is None:
            return Justification.LEFT
        return _FROM_IDML.get(self.justification, Justification.LEFT)

    @alignment.setter
    def alignment(self, value: Justification) -> None:
        self.justification = _TO_IDML[value]


@dataclass
class Story:
    """Text content unit referenced by text frames through ``ParentStory``."""

    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (("Self", "self_id", "str"),)

    self_id: str
    preference: Optional[StoryPreference] = None
    paragraphs: List[Paragraph] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    attribute_order: List[str] = field(default_factory=list)
    leading_children: List[ET.Element] = field(default_factory=list)
    # (index of the preceding paragraph, element)
    anchored_children: List[Tuple[int, ET.Element]] = field(default_factory=list)
    package_attributes: Dict[str, str] = field(default_factory=dict)
    file_name: Optional[str] = None
    modified: bool = False

    def plain_text(self) -> str:
        return story_to_plain_text(self)


def story_to_plain_text(story: Story) -> str:
    """
    Flatten a story for text editing.

    Example:
        >>> story = Story("u10", paragraphs=[
        ...     Paragraph(ranges=[CharacterRange("Hello "), CharacterRange("world")]),
        ...     Paragraph(ranges=[CharacterRange("Second")]),
        ... ])
        >>> story_to_plain_text(story)
        'Hello world\\n\\nSecond'
    """
    return PARAGRAPH_SEPARATOR.join(p.text for p in story.paragraphs)


def new_paragraph(
    text: str = "",
    paragraph_style: str = DEFAULT_PARAGRAPH_STYLE,
    character_style: str = DEFAULT_CHARACTER_STYLE,
    font: Optional[str] = DEFAULT_FONT,
    font_size: Optional[float] = DEFAULT_FONT_SIZE,
) -> Paragraph:
    """Paragraph with a single default-styled character range."""
    return Paragraph(
        applied_style=paragraph_style,
        ranges=[
            CharacterRange(
                content=text,
                applied_style=character_style,
                font_family=font,
                font_size=font_size,
            )
        ],
    )


def update_story_from_plain_text(
    original: Story,
    new_text: str,
    strategy: str = "diff",
    paragraph_style: str = DEFAULT_PARAGRAPH_STYLE,
    character_style: str = DEFAULT_CHARACTER_STYLE,
    font: Optional[str] = DEFAULT_FONT,
    font_size: Optional[float] = DEFAULT_FONT_SIZE,
) -> Story:
    """
    Map edited plain text back onto a story's range structure.

    The original story is not modified; a new Story is returned. Paragraph
    slots are the pieces of ``new_text`` split on blank lines. Each slot that
    has an original paragraph keeps that paragraph's styles; extra slots
    become new default-styled paragraphs; missing slots drop the trailing
    original paragraphs.

    Args:
        original: Parsed story
        new_text: Edited plain text
        strategy: ``"diff"`` or ``"first_range"`` (see module docstring)
        paragraph_style, character_style, font, font_size: Styling of
            paragraphs created for extra slots

    Returns:
        Updated copy of the story
    """
    if strategy not in ("diff", "first_range"):
        raise ValueError(f"Unknown text mapping strategy: {strategy!r}")

    story = copy.deepcopy(original)
    if story_to_plain_text(original) == new_text:
        return story

    slots = new_text.split(PARAGRAPH_SEPARATOR)
    last_break = original.paragraphs[-1].break_after if original.paragraphs else False

    paragraphs: List[Paragraph] = []
    for index, slot in enumerate(slots):
        if index < len(story.paragraphs):
            paragraph = story.paragraphs[index]
            if paragraph.text != slot:
                _apply_paragraph_text(paragraph, slot, strategy, character_style, font, font_size)
        else:
            paragraph = new_paragraph(slot, paragraph_style, character_style, font, font_size)
            logger.debug(f"Story {story.self_id}: added paragraph {index}")
        paragraphs.append(paragraph)

    if len(slots) < len(story.paragraphs):
        logger.debug(
            f"Story {story.self_id}: dropped {len(story.paragraphs) - len(slots)} paragraph(s)"
        )

    # Every paragraph but the last ends with a break
    for paragraph in paragraphs[:-1]:
        paragraph.break_after = True
    if len(paragraphs) != len(original.paragraphs):
        paragraphs[-1].break_after = last_break

    story.paragraphs = paragraphs
    story.modified = True
    return story


def _apply_paragraph_text(
    paragraph: Paragraph,
    text: str,
    strategy: str,
    character_style: str,
    font: Optional[str],
    font_size: Optional[float],
) -> None:
    if not paragraph.ranges:
        paragraph.ranges.append(
            CharacterRange(
                content=text,
                applied_style=character_style,
                font_family=font,
                font_size=font_size,
            )
        )
        return

    if strategy == "first_range":
        paragraph.ranges[0].content = text
        return

    _redistribute(paragraph.ranges, text)


def _redistribute(ranges: List[CharacterRange], new_text: str) -> None:
    """Apply a diff of the ranges' joined text against ``new_text`` in place."""
    old_text = "".join(r.content for r in ranges)

    # old character index -> (range index, offset inside range)
    owner: List[Tuple[int, int]] = []
    for range_index, rng in enumerate(ranges):
        owner.extend((range_index, offset) for offset in range(len(rng.content)))

    pieces: List[List[str]] = [[] for _ in ranges]
    lengths = [0] * len(ranges)
    moved: List[Dict[int, int]] = [{} for _ in ranges]

    def visit(k: int) -> None:
        range_index, offset = owner[k]
        moved[range_index].setdefault(offset, lengths[range_index])

    def emit(range_index: int, chunk: str) -> None:
        if chunk:
            pieces[range_index].append(chunk)
            lengths[range_index] += len(chunk)

    def insert_target(old_index: int) -> int:
        if old_index > 0:
            return owner[old_index - 1][0]
        return owner[0][0] if owner else 0

    matcher = SequenceMatcher(None, old_text, new_text, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            for k in range(i1, i2):
                visit(k)
                emit(owner[k][0], new_text[j1 + k - i1])
        elif tag == "delete":
            for k in range(i1, i2):
                visit(k)
        elif tag == "insert":
            emit(insert_target(i1), new_text[j1:j2])
        else:
            visit(i1)
            emit(owner[i1][0], new_text[j1:j2])
            for k in range(i1 + 1, i2):
                visit(k)

    for range_index, rng in enumerate(ranges):
        old_length = len(rng.content)
        rng.content = "".join(pieces[range_index])
        rng.inline_children = [
            (moved[range_index].get(offset, lengths[range_index]) if offset < old_length
             else lengths[range_index], child)
            for offset, child in rng.inline_children
        ]
