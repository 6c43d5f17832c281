"""
Boundary to the heavy CI subsystem.

Dispatching, polling and resuming pipeline runs lives outside this package.
Commands only see the gateway below and the mode it reports back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class HeavyCiMode(str, Enum):
    ACTIVE = "active"
    WAITING = "waiting"
    COMPLETED = "completed"


@dataclass(frozen=True)
class HeavyCiResult:
    mode: HeavyCiMode
    conclusion: str = ""
    detail: str = ""


class HeavyCiGateway(Protocol):
    def start_or_continue(self, working_directory: Path) -> HeavyCiResult:
        ...


class UnconfiguredHeavyCi:
    """Gateway used when no heavy CI pipeline is wired in; never dispatches."""

    def start_or_continue(self, working_directory: Path) -> HeavyCiResult:
        logger.info("Heavy CI requested for %s but no pipeline is configured", working_directory)
        return HeavyCiResult(mode=HeavyCiMode.ACTIVE, detail="no heavy CI pipeline is configured")
