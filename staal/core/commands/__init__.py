from typing import Dict, Type

from staal.core.commands.base import CommandContext, ConversationPort, StaalCommand
from staal.core.commands.ci import CiHeavyRequest, CiLightRequest, GetWorkingDirectoryStructure
from staal.core.commands.content import ContentChange, ContentDelete, ContentRequest
from staal.core.commands.control import Continue, FinishNok, FinishOk, Status

COMMAND_TYPES: Dict[str, Type[StaalCommand]] = {
    command.type_name: command
    for command in (
        Status,
        ContentRequest,
        ContentChange,
        ContentDelete,
        GetWorkingDirectoryStructure,
        CiLightRequest,
        CiHeavyRequest,
        FinishOk,
        FinishNok,
        Continue,
    )
}


def allowed_commands_text() -> str:
    """Closed list of command types with their fields, as shown to the model."""
    return "\n".join(f"- {name}: {command.usage}" for name, command in COMMAND_TYPES.items())


__all__ = [
    "COMMAND_TYPES",
    "CiHeavyRequest",
    "CiLightRequest",
    "CommandContext",
    "ContentChange",
    "ContentDelete",
    "ContentRequest",
    "Continue",
    "ConversationPort",
    "FinishNok",
    "FinishOk",
    "GetWorkingDirectoryStructure",
    "StaalCommand",
    "Status",
    "allowed_commands_text",
]
