"""
Conversation orchestrator.

The caller's thread sends the system prompt and then waits while a single
worker thread consumes model responses one at a time: guard, execute,
send the buffered replies, repeat. A terminal command, a hard stop or an
exhausted retry ends the loop.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from staal.core.commands import CommandContext, StaalCommand
from staal.core.commands.base import LightCi
from staal.core.contracts.loader import ContractViolation
from staal.core.conversation.history import (
    ConversationTurn,
    History,
    Role,
    chunk_message,
    format_payload,
)
from staal.core.guardrails.guard_state import GuardLimits
from staal.core.guardrails.invariants import assert_initial_prompt, assert_reply_produced
from staal.core.guardrails.response_guard import WARNING_TAG, ResponseGuard
from staal.core.llm_api import Completion, ContextTooLargeError, ProviderError
from staal.core.metrics import (
    API_CALLS,
    BYTES_RECEIVED,
    BYTES_SENT,
    INPUT_TOKENS,
    OUTPUT_TOKENS,
    PROVIDER_RETRIES,
    ConversationMetrics,
)
from staal.core.protocol.parser import ParsePolicy
from staal.core.protocol.vocabulary import FINISH_NOK
from staal.core.tools.heavy_ci import HeavyCiGateway, UnconfiguredHeavyCi
from staal.core.tools.light_ci_runner import LightCiRunner
from staal.core.tools.workspace_files import WorkspaceFiles

logger = logging.getLogger(__name__)

SMALLER_BATCHES_WARNING = (
    "WARNING! The previous request to the model failed. "
    "Please continue in smaller batches of commands."
)

_CLOSED = object()


class ConversationState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ConversationSettings:
    chunk_size: int = 60000
    context_budget_tokens: int = 380000
    reserved_output_tokens: int = 60000
    context_tail_turns: int = 6
    per_turn_overhead_tokens: int = 8
    max_history_tokens: int = 760000
    preserve_newest_turns: int = 6
    stop_join_timeout_seconds: float = 5.0

    @classmethod
    def from_config(cls, section: Optional[Dict[str, Any]]) -> "ConversationSettings":
        section = section or {}
        return cls(**{name: section[name] for name in cls.__dataclass_fields__ if name in section})

    @property
    def window_budget(self) -> int:
        return max(1, self.context_budget_tokens - self.reserved_output_tokens)


class Conversation:
    def __init__(
        self,
        client_factory: Callable[[], Any],
        workspace: WorkspaceFiles,
        light_ci: Optional[LightCi] = None,
        heavy_ci: Optional[HeavyCiGateway] = None,
        settings: Optional[ConversationSettings] = None,
        guard_limits: Optional[GuardLimits] = None,
        parse_policy: ParsePolicy = ParsePolicy.STRICT,
    ) -> None:
        self.settings = settings or ConversationSettings()
        self.state = ConversationState.NOT_STARTED
        self.failed = False
        self.outcome: Optional[str] = None
        self.history = History()
        self.metrics = ConversationMetrics()
        self.guard = ResponseGuard(self.add_reply, guard_limits, parse_policy)
        self.context = CommandContext(
            conversation=self,
            workspace=workspace,
            light_ci=light_ci or LightCiRunner(workspace.root),
            heavy_ci=heavy_ci or UnconfiguredHeavyCi(),
        )

        self._client_factory = client_factory
        self._client = None
        self._responses: "queue.Queue[object]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._history_lock = threading.RLock()

    # --- lifecycle ---------------------------------------------------------

    def start(self, prompt: str) -> bool:
        """Run the conversation to its end. Returns True when it ended in failure."""
        assert_initial_prompt(prompt)
        with self._state_lock:
            if self.state is not ConversationState.NOT_STARTED:
                raise ContractViolation(f"Conversation cannot start from state {self.state.value}")

        self.metrics.mark_started()
        self._client = self._client_factory()
        with self._history_lock:
            self.history.append(ConversationTurn(Role.SYSTEM, prompt))

        try:
            first = self._transmit()
        except ProviderError as exc:
            logger.error("Could not open the conversation: %s", exc)
            self.stop(failed=True, outcome=str(exc))
            return True

        self._responses.put(first)
        with self._state_lock:
            self.state = ConversationState.RUNNING
        logger.info("Conversation running")

        self._worker = threading.Thread(target=self._run_worker, name="staal-conversation", daemon=True)
        self._worker.start()
        self._worker.join()
        return self.failed

    def stop(self, failed: bool = False, outcome: Optional[str] = None) -> None:
        with self._state_lock:
            if self.state is ConversationState.STOPPED:
                return
            self.state = ConversationState.STOPPED
            self.failed = self.failed or failed
            if outcome is not None:
                self.outcome = outcome

        self._responses.put(_CLOSED)
        worker = self._worker
        if worker is not None and worker is not threading.current_thread() and worker.is_alive():
            worker.join(timeout=self.settings.stop_join_timeout_seconds)
            if worker.is_alive():
                logger.warning("Conversation worker did not exit within %ss", self.settings.stop_join_timeout_seconds)

        logger.info(
            "Conversation stopped (%s). %s",
            "failed" if self.failed else "ok",
            self.metrics.summary().describe(),
        )
        with self._history_lock:
            self.history.clear()

    # --- reply buffer ------------------------------------------------------

    def add_reply(self, text: str, tag: str) -> None:
        chunks = chunk_message(text or "", self.settings.chunk_size)
        with self._history_lock:
            for chunk in chunks:
                self.history.append(ConversationTurn(Role.USER, format_payload(tag, chunk), tag))
        if len(chunks) > 1:
            logger.debug("Reply tagged %s split into %s chunks", tag, len(chunks))

    def has_pending(self) -> bool:
        with self._history_lock:
            return self.history.has_pending()

    def send_next(self) -> bool:
        if not self.has_pending():
            return False
        if self.state is not ConversationState.RUNNING:
            raise ContractViolation("send_next requires a running conversation")
        self._responses.put(self._transmit())
        return True

    # --- worker ------------------------------------------------------------

    def _run_worker(self) -> None:
        while True:
            item = self._responses.get()
            if item is _CLOSED:
                break
            if self.state is not ConversationState.RUNNING:
                continue
            try:
                self._handle_response(item)
            except Exception as exc:
                logger.error("Conversation terminated: %s", exc)
                self.stop(failed=True, outcome=str(exc))

    def _handle_response(self, response: str) -> None:
        commands = self.guard.validate(response)
        for command in commands or []:
            if self.state is not ConversationState.RUNNING:
                break
            self._execute(command)
        if self.state is ConversationState.RUNNING:
            assert_reply_produced(self.send_next(), response)

    def _execute(self, command: StaalCommand) -> None:
        logger.debug("Executing %s", command.tag)
        try:
            command.execute(self.context)
        except Exception as exc:
            logger.error("%s failed: %s", command.tag, exc)
            self.add_reply(
                f"ERR: {command.type_name} failed: {exc}. "
                f"If this continues to happen please respond with {FINISH_NOK}.",
                command.tag,
            )

    # --- transport ---------------------------------------------------------

    def _transmit(self) -> str:
        try:
            return self._send_window(self.settings.context_tail_turns)
        except ContextTooLargeError as exc:
            logger.warning("Context too large, retrying without history tail: %s", exc)
            self.metrics.increment(PROVIDER_RETRIES)
            return self._send_window(0)
        except ProviderError as exc:
            logger.warning("Provider call failed, retrying once with a fresh client: %s", exc)
            self.metrics.increment(PROVIDER_RETRIES)
            self._client = self._client_factory()
            self.add_reply(SMALLER_BATCHES_WARNING, WARNING_TAG)
            return self._send_window(0)

    def _send_window(self, tail_turns: int) -> str:
        with self._history_lock:
            messages, included = self.history.build_window(
                self.settings.window_budget, tail_turns, self.settings.per_turn_overhead_tokens
            )

        completion: Completion = self._client.complete(messages)
        self.metrics.increment(API_CALLS)
        self.metrics.increment(BYTES_SENT, sum(len(m["content"].encode("utf-8")) for m in messages))
        self.metrics.increment(BYTES_RECEIVED, len(completion.text.encode("utf-8")))
        self.metrics.increment(INPUT_TOKENS, completion.input_tokens)
        self.metrics.increment(OUTPUT_TOKENS, completion.output_tokens)

        if self.state is ConversationState.STOPPED:
            logger.info("Discarding a completion that arrived after the conversation stopped")
            return completion.text

        with self._history_lock:
            self.history.mark_sent(included, ConversationTurn(Role.ASSISTANT, completion.text))
            removed = self.history.prune(
                self.settings.max_history_tokens,
                self.settings.preserve_newest_turns,
                self.settings.per_turn_overhead_tokens,
            )
        if removed:
            logger.info("Pruned %s old turns from the history", removed)
        return completion.text
