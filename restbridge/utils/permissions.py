"""
Conversions between Documentum basic-permission levels and their labels.

Levels run from 1 (NONE) to 7 (DELETE). Lookups never raise: an unknown
level maps to ``UNKNOWN_LABEL`` and an unknown label to ``UNKNOWN_LEVEL``.
"""

from typing import Dict, Optional

UNKNOWN_LABEL = "UNKNOWN"
UNKNOWN_LEVEL = -1

_LEVEL_TO_LABEL: Dict[int, str] = {
    1: "NONE",
    2: "BROWSE",
    3: "READ",
    4: "RELATE",
    5: "VERSION",
    6: "WRITE",
    7: "DELETE",
}
_LABEL_TO_LEVEL: Dict[str, int] = {label: level for level, label in _LEVEL_TO_LABEL.items()}


def level_to_label(level: Optional[int]) -> str:
    if level is None:
        return UNKNOWN_LABEL
    return _LEVEL_TO_LABEL.get(level, UNKNOWN_LABEL)


def label_to_level(label: Optional[str]) -> int:
    """Case-insensitive; surrounding whitespace is ignored."""
    if not label:
        return UNKNOWN_LEVEL
    return _LABEL_TO_LEVEL.get(label.strip().upper(), UNKNOWN_LEVEL)


def is_known_level(level: int) -> bool:
    return level in _LEVEL_TO_LABEL
