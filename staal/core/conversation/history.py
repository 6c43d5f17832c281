"""
Conversation history with a sent/unsent boundary.

Turn 0 is the system prompt. Everything at or after ``last_sent`` has been
buffered but not transmitted yet; those turns are the reply buffer that
``build_window`` flushes, as far as the token budget allows.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

CONTINUATION_MARKER = "..."


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str
    tag: Optional[str] = None

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def format_payload(tag: str, text: str) -> str:
    return f"[{tag}] - {text}"


def chunk_message(text: str, chunk_size: int) -> List[str]:
    """Split ``text`` into ordered chunks; all but the last carry the continuation marker."""
    if len(text) <= chunk_size:
        return [text]
    pieces = [text[start:start + chunk_size] for start in range(0, len(text), chunk_size)]
    return [piece + CONTINUATION_MARKER for piece in pieces[:-1]] + [pieces[-1]]


def estimate_tokens(text: str, overhead: int) -> int:
    return len(text) // 4 + overhead


class History:
    def __init__(self) -> None:
        self.turns: List[ConversationTurn] = []
        self.last_sent = 0

    def __len__(self) -> int:
        return len(self.turns)

    def append(self, turn: ConversationTurn) -> None:
        self.turns.append(turn)

    def has_pending(self) -> bool:
        return len(self.turns) > self.last_sent

    def _unsent_start(self) -> int:
        # The system turn is always sent as part of the window.
        return max(self.last_sent, 1)

    def build_window(self, budget: int, tail_turns: int, overhead: int) -> Tuple[List[Dict[str, str]], int]:
        """
        Messages for the next request and how many unsent turns they include.

        Unsent turns are admitted oldest first while they fit; when not even
        one fits next to the system turn, exactly that one is sent with only
        the system turn. Otherwise the remaining budget is filled with up to
        ``tail_turns`` already-sent turns, newest first.
        """
        if not self.turns:
            return [], 0

        system = self.turns[0]
        used = estimate_tokens(system.content, overhead)
        start = self._unsent_start()

        included = 0
        for turn in self.turns[start:]:
            cost = estimate_tokens(turn.content, overhead)
            if used + cost > budget:
                break
            used += cost
            included += 1
        forced = included == 0 and len(self.turns) > start
        if forced:
            included = 1

        tail: List[ConversationTurn] = []
        candidates = [] if forced else self.turns[max(1, start - tail_turns):start]
        for turn in reversed(candidates):
            cost = estimate_tokens(turn.content, overhead)
            if used + cost > budget:
                break
            used += cost
            tail.insert(0, turn)

        window = [system] + tail + self.turns[start:start + included]
        return [turn.as_message() for turn in window], included

    def mark_sent(self, included: int, reply: ConversationTurn) -> None:
        """Mark the included unsent turns as sent and record the reply right after them."""
        end = self._unsent_start() + included
        self.turns.insert(end, reply)
        self.last_sent = end + 1

    def prune(self, max_tokens: int, preserve_newest: int, overhead: int) -> int:
        """Drop the oldest sent turns while the history exceeds ``max_tokens``."""
        total = sum(estimate_tokens(turn.content, overhead) for turn in self.turns)
        removed = 0
        while total > max_tokens:
            limit = min(self.last_sent, len(self.turns) - preserve_newest)
            if limit <= 1:
                break
            dropped = self.turns.pop(1)
            self.last_sent -= 1
            total -= estimate_tokens(dropped.content, overhead)
            removed += 1
        return removed

    def clear(self) -> None:
        self.turns = []
        self.last_sent = 0
