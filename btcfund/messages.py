"""Feedback from the price services, surfaced on the dashboard."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MessageLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ServiceMessage:
    level: MessageLevel
    text: str

    @classmethod
    def warning(cls, text: str) -> "ServiceMessage":
        return cls(MessageLevel.WARNING, text)
