"""Editor configuration loaded from YAML.

Example YAML (see ``config/idmlkit.yaml``):

    points_to_pixels: 0.75
    matrix_precision: 6
    text_mapping: diff
    font_substitutions:
      Minion Pro: "'Minion Pro', Georgia, serif"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

TEXT_MAPPING_STRATEGIES = ("diff", "first_range")


@dataclass
class EditorConfig:
    """Settings shared by parser, serializer, save boundary and HTML export."""

    points_to_pixels: float = 0.75
    matrix_precision: int = 6
    number_precision: int = 4
    text_mapping: str = "diff"
    history_limit: int = 50
    id_max_attempts: int = 10000
    default_font: str = "Arial"
    default_font_size: float = 14
    default_paragraph_style: str = "ParagraphStyle/$ID/NormalParagraphStyle"
    default_character_style: str = "CharacterStyle/$ID/[No character style]"
    font_substitutions: Dict[str, str] = field(default_factory=dict)
    html_background: str = "#ffffff"

    def __post_init__(self) -> None:
        if self.text_mapping not in TEXT_MAPPING_STRATEGIES:
            raise ValueError(
                f"text_mapping must be one of {TEXT_MAPPING_STRATEGIES}, "
                f"got {self.text_mapping!r}"
            )
        if self.points_to_pixels <= 0:
            raise ValueError(f"points_to_pixels must be positive, got {self.points_to_pixels}")
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be >= 1, got {self.history_limit}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EditorConfig":
        """Create config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(path: Optional[Path] = None) -> EditorConfig:
    """
    Load editor configuration.

    Args:
        path: YAML file. When None, built-in defaults are returned.

    Returns:
        EditorConfig

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ValueError: If the file holds unknown keys or invalid values
    """
    if path is None:
        return EditorConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info(f"Loading config from: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {path}")

    return EditorConfig.from_dict(data)
