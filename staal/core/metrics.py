"""Per-conversation counters for API usage, logged when a conversation stops."""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from typing import Dict

API_CALLS = "api_calls"
BYTES_SENT = "bytes_sent"
BYTES_RECEIVED = "bytes_received"
INPUT_TOKENS = "input_tokens"
OUTPUT_TOKENS = "output_tokens"
PROVIDER_RETRIES = "provider_retries"


@dataclass(frozen=True)
class MetricsSummary:
    counters: Dict[str, int]
    duration_seconds: float

    def describe(self) -> str:
        parts = [f"{name}={value}" for name, value in sorted(self.counters.items())]
        parts.append(f"duration_s={self.duration_seconds:.1f}")
        return ", ".join(parts)


class ConversationMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self._started_at: float | None = None

    def mark_started(self) -> None:
        with self._lock:
            self._started_at = time.time()

    def increment(self, name: str, amount: int = 1) -> None:
        if not name:
            return
        with self._lock:
            self._counters[name] = int(self._counters.get(name, 0)) + int(amount)

    def get(self, name: str) -> int:
        with self._lock:
            return int(self._counters.get(name, 0))

    def summary(self) -> MetricsSummary:
        with self._lock:
            counters = copy.deepcopy(self._counters)
            started = self._started_at
        duration = time.time() - started if started is not None else 0.0
        return MetricsSummary(counters=counters, duration_seconds=duration)
