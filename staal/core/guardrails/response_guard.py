"""
Guards the loop between the model and the command executor. Fail closed.

``ResponseGuard.validate`` canonicalizes and parses one raw model response
and decides whether its commands may run. Recoverable problems are answered
with a reply that tells the model how to fix them; runaway behaviour ends the
conversation with ``GuardrailHardStop``.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from staal.core.commands import StaalCommand, allowed_commands_text
from staal.core.guardrails.guard_state import GuardLimits, GuardState
from staal.core.protocol.errors import ProtocolError
from staal.core.protocol.parser import ParsePolicy, parse_bundle
from staal.core.protocol.vocabulary import FINISH_NOK, FINISH_OK, SEPARATOR, STATUS

logger = logging.getLogger(__name__)

WARNING_TAG = "WARNING"
ERROR_TAG = "ERROR"

ReplySink = Callable[[str, str], None]


class GuardrailHardStop(Exception):
    """A safety limit was reached; the conversation must end."""


def repair_instruction(error: Exception) -> str:
    return (
        f"Could not parse your response due to exception {error}. "
        "Please resend your previous message as YAML-only commands.\n"
        "Rules:\n"
        f"- Plain text is not allowed. To explain yourself use {STATUS} with statusMsg: |-\n"
        "- Each YAML doc must start with: type: STAAL_...\n"
        f"- Separate docs with exactly: {SEPARATOR}\n"
        "- No code fences. No prose. Indentation 2 spaces. LF newlines only.\n"
        "Allowed commands:\n"
        f"{allowed_commands_text()}"
    )


class ResponseGuard:
    def __init__(
        self,
        reply: ReplySink,
        limits: GuardLimits | None = None,
        policy: ParsePolicy = ParsePolicy.STRICT,
    ) -> None:
        self._reply = reply
        self.limits = limits or GuardLimits()
        self.policy = policy
        self.state = GuardState()

    def validate(self, response: str) -> Optional[List[StaalCommand]]:
        """
        Returns the commands to execute, or None when the model has to retry.

        Raises GuardrailHardStop when a safety limit is hit, and re-raises the
        parse error once the repair retries are exhausted.
        """
        self._count_response(response)
        self._check_identical(response)

        try:
            commands, canonical, changed = parse_bundle(response, self.policy)
        except ProtocolError as exc:
            self.state.parse_failures += 1
            if self.state.parse_failures > self.limits.parse_failure_retries:
                logger.error("Parse failed %s times in a row", self.state.parse_failures)
                raise
            logger.warning("Could not parse response (%s/%s): %s",
                           self.state.parse_failures, self.limits.parse_failure_retries, exc)
            self._reply(repair_instruction(exc), ERROR_TAG)
            return None
        self.state.parse_failures = 0

        failed = False
        has_edit = False
        for command in commands:
            error = command.validate()
            if error:
                failed = True
                logger.warning("Invalid %s: %s", command.type_name, error)
                self._reply(f"Invalid Response due to: {error}", command.tag)
            if command.is_edit:
                has_edit = True

        self._check_edits(has_edit, response)

        if changed:
            self._reply(
                "WARNING! I managed to parse your response, do not retry it or acknowledge this "
                "warning, but I was actually expecting the following response which you can "
                f"learn from:\n{canonical}",
                WARNING_TAG,
            )

        if failed:
            self.state.validation_failures += 1
            if self.state.validation_failures >= self.limits.validation_hard_stop:
                raise GuardrailHardStop(
                    f"ERR - Hard Stop - AI Replied with Invalid Data {self.state.validation_failures} times. "
                    f"Last Response: {response}"
                )
            return None
        self.state.validation_failures = 0
        return commands

    def _count_response(self, response: str) -> None:
        self.state.total_responses += 1
        total = self.state.total_responses
        if total >= self.limits.total_hard_stop:
            raise GuardrailHardStop(
                f"ERR - Hard Stop - AI Max Response Count reached: {total} times. Last Response: {response}"
            )
        if total >= self.limits.total_warning:
            self._reply(
                f"WARNING! I have received {total} responses out of a maximum of "
                f"{self.limits.total_hard_stop}. If you are finished, please reply with {FINISH_OK} "
                f"or {FINISH_NOK} commands, otherwise work towards finishing.",
                WARNING_TAG,
            )

    def _check_identical(self, response: str) -> None:
        if response == self.state.last_response:
            self.state.identical_streak += 1
        else:
            self.state.identical_streak = 0
        self.state.last_response = response

        streak = self.state.identical_streak
        if streak >= self.limits.identical_hard_stop:
            raise GuardrailHardStop(
                f"ERR - Hard Stop - AI Replied with the exact same response {streak} times. "
                f"Response: {response}"
            )
        if streak > 0:
            logger.warning("Identical response received %s times in a row", streak + 1)
            self._reply(
                f"WARNING! I have received the same response from you {streak + 1} times. "
                "Please change your approach or finish the conversation.",
                WARNING_TAG,
            )

    def _check_edits(self, has_edit: bool, response: str) -> None:
        if has_edit:
            self.state.no_edit_streak = 0
            return
        self.state.no_edit_streak += 1
        streak = self.state.no_edit_streak
        if streak >= self.limits.no_edit_hard_stop:
            raise GuardrailHardStop(
                f"ERR - Hard Stop - AI Replied {streak} times without any document edits. "
                f"Last Response: {response}"
            )
        if streak >= self.limits.no_edit_warning:
            self._reply(
                f"WARNING! Your last {streak} responses did not contain any actual content change "
                f"commands. The conversation stops after {self.limits.no_edit_hard_stop}. "
                "Make your changes or finish. Allowed commands:\n"
                f"{allowed_commands_text()}",
                WARNING_TAG,
            )
