"""Slotting engine settings.

Values come from the process environment; a `.env` file at the project root is
loaded first without overriding variables that are already set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from slotting.errors import ConfigurationError

DEFAULT_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"

DEFAULT_REGION = "us-west-2"
DEFAULT_TRIGGER_THRESHOLD = 80.0
DEFAULT_MOVE_RATIO = 0.5

TABLE_NAMES = (
    "Locations",
    "LevelSettings",
    "Products",
    "ProductUnits",
    "Inventory",
    "RepartitionLog",
)


def load_env_file(path: Optional[Path] = None) -> bool:
    """Loads the .env file into os.environ (existing variables win)."""
    return load_dotenv(path or DEFAULT_ENV_PATH, override=False)


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class SlottingSettings:
    region_name: str = DEFAULT_REGION
    table_prefix: str = ""
    audit_bucket: Optional[str] = None
    default_trigger_threshold: float = DEFAULT_TRIGGER_THRESHOLD
    move_ratio: float = DEFAULT_MOVE_RATIO
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0 < self.move_ratio <= 1:
            raise ConfigurationError(f"move_ratio must be in (0, 1], got {self.move_ratio}")
        if not 0 <= self.default_trigger_threshold <= 100:
            raise ConfigurationError(
                f"default_trigger_threshold must be in [0, 100], got {self.default_trigger_threshold}"
            )

    def table_name(self, name: str) -> str:
        return f"{self.table_prefix}{name}"

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, load_file: bool = True
    ) -> "SlottingSettings":
        if env is None:
            if load_file:
                load_env_file()
            env = os.environ

        return cls(
            region_name=env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            table_prefix=env.get("SLOTTING_TABLE_PREFIX", ""),
            audit_bucket=env.get("SLOTTING_AUDIT_BUCKET") or None,
            default_trigger_threshold=_read_float(
                env, "SLOTTING_DEFAULT_TRIGGER_THRESHOLD", DEFAULT_TRIGGER_THRESHOLD
            ),
            move_ratio=_read_float(env, "SLOTTING_MOVE_RATIO", DEFAULT_MOVE_RATIO),
            log_level=(env.get("SLOTTING_LOG_LEVEL") or "INFO").upper(),
        )
