"""
Settings — the knobs the engagement core is constructed with.

Limits are values, not literals scattered through validation, so tests can
move the boundaries without touching code.
"""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DB_PATH = Path("engagement.db")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    max_authors: int = 10
    max_links: int = 5
    gate_comments: bool = True      # Comment authors must be registered, like supporters
    busy_timeout: float = 5.0       # Seconds to wait on a locked database

    def __post_init__(self):
        if self.max_authors < 1:
            raise ValueError(f"max_authors must be at least 1, got {self.max_authors}")
        if self.max_links < 0:
            raise ValueError(f"max_links cannot be negative, got {self.max_links}")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH))),
            max_authors=int(os.getenv("MAX_AUTHORS", "10")),
            max_links=int(os.getenv("MAX_LINKS", "5")),
            gate_comments=os.getenv("GATE_COMMENTS", "true").strip().lower() in _TRUTHY,
            busy_timeout=float(os.getenv("DB_BUSY_TIMEOUT", "5.0")),
        )
