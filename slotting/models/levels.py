"""Level number <-> shelf level name mapping.

Inventory rows only know three shelf names (bottom/middle/top). Racking with
more than three levels collapses every level above the third onto "middle".
The mapping is injectable so a site with a different naming scheme can pass
its own table, but the default must stay byte-compatible with existing data.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

MAX_NAMED_LEVEL = 3
FALLBACK_SHELF_LEVEL = "middle"

DEFAULT_SHELF_LEVELS: dict[int, str] = {
    1: "bottom",
    2: "middle",
    3: "top",
}

DEFAULT_DISPLAY_NAMES: dict[int, str] = {
    1: "Bottom",
    2: "Middle",
    3: "Top",
}


class LevelNaming:
    """Translates numeric levels to the shelf_level names stored on inventory rows."""

    def __init__(
        self,
        mapping: Optional[dict[int, str]] = None,
        fallback: str = FALLBACK_SHELF_LEVEL,
    ) -> None:
        self._mapping = dict(mapping or DEFAULT_SHELF_LEVELS)
        self._fallback = fallback
        self._warned: set[int] = set()

    @property
    def max_named_level(self) -> int:
        return max(self._mapping) if self._mapping else 0

    def shelf_level(self, level_number: int) -> str:
        """Returns the stored shelf name for a level (levels past the table alias to the fallback)."""
        name = self._mapping.get(level_number)
        if name is not None:
            return name

        if level_number not in self._warned:
            self._warned.add(level_number)
            logger.warning(
                "Level %s has no shelf name, aliasing to '%s' (only %s named levels)",
                level_number,
                self._fallback,
                self.max_named_level,
            )
        return self._fallback

    def is_aliased(self, level_number: int) -> bool:
        return level_number not in self._mapping

    def same_shelf(self, level_a: int, level_b: int) -> bool:
        """True when two level numbers resolve to the same inventory rows."""
        return self.shelf_level(level_a) == self.shelf_level(level_b)

    @staticmethod
    def display_name(level_number: int) -> str:
        return DEFAULT_DISPLAY_NAMES.get(level_number, f"Level {level_number}")


default_naming = LevelNaming()
