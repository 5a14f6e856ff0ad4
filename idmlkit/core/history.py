"""Undo/redo as a bounded log of reversible commands.

Each command records just enough state on ``apply`` to put things back on
``revert``; the scene graph itself is never snapshotted.

Usage:
    >>> history = EditHistory(limit=50)
    >>> history.execute(TransformCommand(item, Matrix.translation(10, 0)))
    >>> history.undo()
    >>> history.redo()
"""

import copy
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from ..config import EditorConfig
from .edits import add_item, group_items, remove_item, ungroup
from .scene import EditTracking, Group, Page, PageItem, Spread
from .story import Story, update_story_from_plain_text
from .transform import Matrix

logger = logging.getLogger(__name__)


class EditCommand:
    """Reversible edit."""

    description = "edit"

    def apply(self) -> None:
        raise NotImplementedError

    def revert(self) -> None:
        raise NotImplementedError


class _ItemStateCommand(EditCommand):
    """Base for commands that change one attribute of one item."""

    def __init__(self, item: PageItem):
        self.item = item
        self._tracking: Optional[EditTracking] = None

    def _remember_tracking(self) -> None:
        self._tracking = copy.copy(self.item.tracking)

    def _restore_tracking(self) -> None:
        if self._tracking is not None:
            self.item.tracking = copy.copy(self._tracking)


class TransformCommand(_ItemStateCommand):
    description = "transform"

    def __init__(self, item: PageItem, matrix: Matrix):
        super().__init__(item)
        self.matrix = matrix
        self._previous: Optional[Matrix] = None

    def apply(self) -> None:
        self._remember_tracking()
        self._previous = self.item.transform
        self.item.set_transform(self.matrix)

    def revert(self) -> None:
        self.item.transform = self._previous
        self._restore_tracking()


class VisibilityCommand(_ItemStateCommand):
    description = "visibility"

    def __init__(self, item: PageItem, visible: bool):
        super().__init__(item)
        self.visible = visible
        self._previous: Optional[bool] = None

    def apply(self) -> None:
        self._remember_tracking()
        self._previous = self.item.visible
        self.item.visible = self.visible
        self.item.tracking.mark_modified(self.item.raw_transform)

    def revert(self) -> None:
        self.item.visible = self._previous
        self._restore_tracking()


class LockCommand(_ItemStateCommand):
    description = "lock"

    def __init__(self, item: PageItem, locked: bool):
        super().__init__(item)
        self.locked = locked
        self._previous: Optional[bool] = None

    def apply(self) -> None:
        self._remember_tracking()
        self._previous = self.item.locked
        self.item.locked = self.locked
        self.item.tracking.mark_modified(self.item.raw_transform)

    def revert(self) -> None:
        self.item.locked = self._previous
        self._restore_tracking()


class AddItemCommand(EditCommand):
    description = "add item"

    def __init__(self, spread: Spread, item: PageItem, page: Optional[Page] = None):
        self.spread = spread
        self.item = item
        self.page = page

    def apply(self) -> None:
        add_item(self.spread, self.item, self.page)

    def revert(self) -> None:
        remove_item(self.spread, self.item.self_id)


class RemoveItemCommand(EditCommand):
    description = "remove item"

    def __init__(self, spread: Spread, item_id: str):
        self.spread = spread
        self.item_id = item_id
        self._removed = None

    def apply(self) -> None:
        self._removed = remove_item(self.spread, self.item_id)

    def revert(self) -> None:
        item, container, index = self._removed
        container.insert(index, item)


class GroupCommand(EditCommand):
    description = "group"

    def __init__(self, spread: Spread, item_ids: List[str], existing_ids: Set[str]):
        self.spread = spread
        self.item_ids = list(item_ids)
        self.existing_ids = existing_ids
        self.group: Optional[Group] = None
        self._container: Optional[List[PageItem]] = None
        self._before: List[PageItem] = []
        self._after: List[PageItem] = []

    def apply(self) -> None:
        if self.group is not None:
            # redo reinstates the same Group so later commands still find its id
            self._container[:] = self._after
            self.existing_ids.add(self.group.self_id)
            self.spread.structure_changed = True
            return
        located = self.spread.locate(self.item_ids[0])
        if located is not None:
            self._container = located[1]
            self._before = list(located[1])
        self.group = group_items(self.spread, self.item_ids, self.existing_ids)
        self._after = list(self._container)

    def revert(self) -> None:
        self._container[:] = self._before
        self.existing_ids.discard(self.group.self_id)


class UngroupCommand(EditCommand):
    description = "ungroup"

    def __init__(self, spread: Spread, group_id: str):
        self.spread = spread
        self.group_id = group_id
        self._container: Optional[List[PageItem]] = None
        self._before: List[PageItem] = []
        self._children: List[tuple] = []

    def apply(self) -> None:
        located = self.spread.locate(self.group_id)
        if located is not None and isinstance(located[0], Group):
            self._container = located[1]
            self._before = list(located[1])
            self._children = [
                (child, child.transform, copy.copy(child.tracking)) for child in located[0].items
            ]
        ungroup(self.spread, self.group_id)

    def revert(self) -> None:
        for child, transform, tracking in self._children:
            child.transform = transform
            child.tracking = copy.copy(tracking)
        self._container[:] = self._before


class StoryTextCommand(EditCommand):
    description = "edit text"

    def __init__(self, stories: Dict[str, Story], story_id: str, text: str, strategy: str = "diff", **defaults):
        self.stories = stories
        self.story_id = story_id
        self.text = text
        self.strategy = strategy
        self.defaults = defaults
        self._previous: Optional[Story] = None

    def apply(self) -> None:
        self._previous = self.stories[self.story_id]
        self.stories[self.story_id] = update_story_from_plain_text(
            self._previous, self.text, self.strategy, **self.defaults
        )

    def revert(self) -> None:
        self.stories[self.story_id] = self._previous


class EditHistory:
    """Bounded undo/redo stacks of executed commands."""

    def __init__(self, limit: int = 50):
        if limit < 1:
            raise ValueError(f"History limit must be >= 1, got {limit}")
        self.limit = limit
        self._undo: Deque[EditCommand] = deque(maxlen=limit)
        self._redo: List[EditCommand] = []

    @classmethod
    def from_config(cls, config: EditorConfig) -> "EditHistory":
        return cls(limit=config.history_limit)

    def execute(self, command: EditCommand) -> None:
        """Apply a command and record it. Clears the redo stack."""
        command.apply()
        self._undo.append(command)
        self._redo.clear()
        logger.debug(f"Executed {command.description} ({len(self._undo)} in history)")

    def undo(self) -> Optional[EditCommand]:
        if not self._undo:
            return None
        command = self._undo.pop()
        command.revert()
        self._redo.append(command)
        return command

    def redo(self) -> Optional[EditCommand]:
        if not self._redo:
            return None
        command = self._redo.pop()
        command.apply()
        self._undo.append(command)
        return command

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def __len__(self) -> int:
        return len(self._undo)
