from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Dict, Optional, Protocol, Tuple

from staal.core.tools.heavy_ci import HeavyCiGateway
from staal.core.tools.workspace_files import WorkspaceFiles


class ConversationPort(Protocol):
    """What a command may do to the conversation that delivered it."""

    def add_reply(self, text: str, tag: str) -> None:
        ...

    def has_pending(self) -> bool:
        ...

    def stop(self, failed: bool = False, outcome: Optional[str] = None) -> None:
        ...


class LightCi(Protocol):
    def run(self) -> Tuple[bool, str]:
        ...


@dataclass
class CommandContext:
    conversation: ConversationPort
    workspace: WorkspaceFiles
    light_ci: LightCi
    heavy_ci: HeavyCiGateway

    @property
    def working_directory(self) -> Path:
        return self.workspace.root


@dataclass
class StaalCommand:
    """
    One decoded STAAL command.

    Subclasses declare their discriminator in ``type_name`` and a one-line
    ``usage`` that is shown to the model in the allowed command list.
    """

    type_name: ClassVar[str] = ""
    usage: ClassVar[str] = ""
    is_edit: ClassVar[bool] = False

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "StaalCommand":
        return cls()

    def to_document(self) -> Dict[str, Any]:
        return {"type": self.type_name}

    def validate(self) -> Optional[str]:
        return None

    def execute(self, context: CommandContext) -> None:
        raise NotImplementedError

    @property
    def tag(self) -> str:
        return self.type_name


def text_field(document: Dict[str, Any], key: str) -> Optional[str]:
    value = document.get(key)
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
