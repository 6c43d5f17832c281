"""Commands that inspect the working directory or run CI against it."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from staal.core.commands.base import CommandContext, StaalCommand
from staal.core.protocol.vocabulary import (
    CI_HEAVY_REQUEST,
    CI_LIGHT_REQUEST,
    GET_WORKING_DIRECTORY_STRUCTURE,
)
from staal.core.tools.heavy_ci import HeavyCiMode

logger = logging.getLogger(__name__)


@dataclass
class GetWorkingDirectoryStructure(StaalCommand):
    type_name = GET_WORKING_DIRECTORY_STRUCTURE
    usage = "(no fields) -> replies with every file path in the working directory"

    def execute(self, context: CommandContext) -> None:
        files = context.workspace.list_files()
        context.conversation.add_reply("\n".join(files), self.tag)


@dataclass
class CiLightRequest(StaalCommand):
    type_name = CI_LIGHT_REQUEST
    usage = "(no fields) -> runs the local build and tests, replies with their output"

    def execute(self, context: CommandContext) -> None:
        succeeded, output = context.light_ci.run()
        if succeeded:
            reply = f"Finished CI run. Output Files are added to the .heat directory. Output: {output}"
        else:
            reply = f"Could not run CI. Output: {output}"
        context.conversation.add_reply(reply, self.tag)


@dataclass
class CiHeavyRequest(StaalCommand):
    type_name = CI_HEAVY_REQUEST
    usage = "(no fields) -> runs the full pipeline; the conversation pauses until it completes"

    def execute(self, context: CommandContext) -> None:
        result = context.heavy_ci.start_or_continue(context.working_directory)
        logger.info("Heavy CI reported mode %s", result.mode.value)

        if result.mode is HeavyCiMode.COMPLETED:
            context.conversation.add_reply(
                f"Heavy CI completed with conclusion {result.conclusion or 'unknown'}. "
                f"Output Files are added to the .heat directory. {result.detail}".rstrip(),
                self.tag,
            )
        elif result.mode is HeavyCiMode.WAITING:
            logger.info("Pausing the conversation until heavy CI completes. %s", result.detail)
            context.conversation.stop(failed=False, outcome="Paused while heavy CI runs.")
        else:
            context.conversation.add_reply(
                f"Heavy CI could not be started: {result.detail}. Use {CI_LIGHT_REQUEST} instead.",
                self.tag,
            )
