"""Exception hierarchy for idmlkit.

Malformed scalar values (matrices, bounds, numeric attributes) never raise:
they are recovered where they are parsed and logged as warnings. Exceptions
are reserved for two situations:

    - missing references (an object, story or spread that a caller asked
      for does not exist), surfaced as ``ReferenceNotFoundError``
    - structural package problems that leave no safe partial
      interpretation, surfaced as ``IDMLPackageError``
"""

from pathlib import Path
from typing import List, Optional


class IDMLError(Exception):
    """Base class for all idmlkit errors."""


class IDMLPackageError(IDMLError):
    """Package is structurally broken (missing pieces, unreadable XML or ZIP)."""

    def __init__(
        self,
        message: str,
        missing: Optional[List[str]] = None,
        path: Optional[Path] = None,
    ):
        self.missing = list(missing or [])
        self.path = path
        if self.missing:
            message = f"{message} (missing: {', '.join(self.missing)})"
        super().__init__(message)


class ReferenceNotFoundError(IDMLError, LookupError):
    """A referenced document object does not exist."""


class ObjectNotFoundError(ReferenceNotFoundError):
    """Page item id not found in the targeted spread file."""

    def __init__(self, object_id: str, file_name: Optional[str] = None):
        self.object_id = object_id
        self.file_name = file_name
        where = f" in {file_name}" if file_name else ""
        super().__init__(f"Object {object_id} not found{where}")


class StoryNotFoundError(ReferenceNotFoundError):
    """Story id does not resolve to a parsed story."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(f"Story {story_id} not found")


class SpreadNotFoundError(ReferenceNotFoundError):
    """Spread index, file name or id does not resolve."""

    def __init__(self, spread_ref):
        self.spread_ref = spread_ref
        super().__init__(f"Spread {spread_ref!r} not found")


class IdGenerationError(IDMLError):
    """Could not find a free unique id."""
