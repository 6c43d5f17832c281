"""Commands that steer the conversation itself."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from staal.core.commands.base import CommandContext, StaalCommand, text_field
from staal.core.protocol.vocabulary import CONTINUE, FINISH_NOK, FINISH_OK, STATUS

logger = logging.getLogger(__name__)


@dataclass
class Status(StaalCommand):
    type_name = STATUS
    usage = "statusMsg: |- <what you are doing and why> -> replies OK"

    message: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Status":
        return cls(message=text_field(document, "statusMsg"))

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"type": self.type_name}
        if self.message is not None:
            document["statusMsg"] = self.message
        return document

    def validate(self) -> Optional[str]:
        if not self.message or not self.message.strip():
            return "Invalid Command! statusMsg was empty."
        return None

    def execute(self, context: CommandContext) -> None:
        logger.info("Model status: %s", self.message)
        context.conversation.add_reply("OK", self.tag)


@dataclass
class Continue(StaalCommand):
    """Lets queued replies go out; answers DONE when nothing is queued."""

    type_name = CONTINUE
    usage = "(no fields) -> sends the next queued part of a long reply, or DONE"

    def execute(self, context: CommandContext) -> None:
        if not context.conversation.has_pending():
            context.conversation.add_reply("DONE", self.tag)


@dataclass
class FinishOk(StaalCommand):
    type_name = FINISH_OK
    usage = "prMessage: |- <summary of the changes> -> ends the conversation successfully"

    pr_message: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "FinishOk":
        return cls(pr_message=text_field(document, "prMessage"))

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"type": self.type_name}
        if self.pr_message is not None:
            document["prMessage"] = self.pr_message
        return document

    def execute(self, context: CommandContext) -> None:
        logger.info("Model finished successfully: %s", self.pr_message)
        context.conversation.stop(failed=False, outcome=self.pr_message)


@dataclass
class FinishNok(StaalCommand):
    type_name = FINISH_NOK
    usage = "errMessage: |- <why the goal could not be reached> -> ends the conversation as failed"

    err_message: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "FinishNok":
        return cls(err_message=text_field(document, "errMessage"))

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"type": self.type_name}
        if self.err_message is not None:
            document["errMessage"] = self.err_message
        return document

    def execute(self, context: CommandContext) -> None:
        logger.warning("Model gave up: %s", self.err_message)
        context.conversation.stop(failed=True, outcome=self.err_message)
