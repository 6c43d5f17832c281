"""Per-conversation counters that keep a model from looping or running away."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class GuardLimits:
    total_warning: int = 100
    total_hard_stop: int = 200
    identical_hard_stop: int = 3
    parse_failure_retries: int = 3
    validation_hard_stop: int = 3
    no_edit_warning: int = 10
    no_edit_hard_stop: int = 20

    def __post_init__(self) -> None:
        if self.total_warning >= self.total_hard_stop:
            raise ValueError("total_warning must be below total_hard_stop")
        if self.no_edit_warning >= self.no_edit_hard_stop:
            raise ValueError("no_edit_warning must be below no_edit_hard_stop")

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]]) -> "GuardLimits":
        section = section or {}
        known = {name: int(section[name]) for name in cls.__dataclass_fields__ if name in section}
        return cls(**known)


@dataclass
class GuardState:
    total_responses: int = 0
    last_response: Optional[str] = None
    identical_streak: int = 0
    parse_failures: int = 0
    validation_failures: int = 0
    no_edit_streak: int = 0
