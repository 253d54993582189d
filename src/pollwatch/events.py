"""Event models shared across watcher components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class EventType(str, Enum):
    """Kinds of change a poll cycle can report."""

    CREATE = "create"
    DELETE = "delete"
    MODIFIED = "modified"


@dataclass(frozen=True)
class FileEvent:
    """A single change observed in the watched directory."""

    event_type: EventType
    path: Path
    digest: Optional[str] = None
    previous_digest: Optional[str] = None
