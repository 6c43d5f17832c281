"""Commands that read, write and delete files in the working directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from staal.core.commands.base import CommandContext, StaalCommand, text_field
from staal.core.protocol.vocabulary import CONTENT_CHANGE, CONTENT_DELETE, CONTENT_REQUEST
from staal.core.tools.workspace_files import error_message

logger = logging.getLogger(__name__)

OK_REPLY = "OK"


@dataclass
class ContentRequest(StaalCommand):
    type_name = CONTENT_REQUEST
    usage = "filePath: <absolute path> (or filePaths: [..]) -> replies with the file content"

    file_path: Optional[str] = None
    file_paths: List[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ContentRequest":
        paths = document.get("filePaths")
        if isinstance(paths, str):
            paths = [paths]
        elif not isinstance(paths, list):
            paths = []
        return cls(
            file_path=text_field(document, "filePath"),
            file_paths=[str(path) for path in paths if path is not None],
        )

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"type": self.type_name}
        if self.file_path is not None:
            document["filePath"] = self.file_path
        if self.file_paths:
            document["filePaths"] = list(self.file_paths)
        return document

    def requested_paths(self) -> List[str]:
        paths = [self.file_path] if self.file_path else []
        paths.extend(path for path in self.file_paths if path and path not in paths)
        return paths

    def validate(self) -> Optional[str]:
        if not any(path.strip() for path in self.requested_paths()):
            return "Invalid Command! Missing the filePath argument!"
        return None

    def execute(self, context: CommandContext) -> None:
        for path in self.requested_paths():
            tag = f"{self.type_name} {path}"
            result = context.workspace.read(path)
            if result["status"] != "ok":
                context.conversation.add_reply(f"ERR: {error_message(result)}", tag)
                continue
            context.conversation.add_reply(result["content"], tag)


@dataclass
class ContentChange(StaalCommand):
    type_name = CONTENT_CHANGE
    usage = "filePath: <absolute path>, newContent: |- <full new file content> -> replies OK"
    is_edit = True

    file_path: Optional[str] = None
    new_content: Optional[str] = None
    keep_trailing_newline: Optional[bool] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ContentChange":
        return cls(
            file_path=text_field(document, "filePath"),
            new_content=text_field(document, "newContent"),
        )

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"type": self.type_name}
        if self.file_path is not None:
            document["filePath"] = self.file_path
        if self.new_content is not None:
            document["newContent"] = self.new_content
        return document

    def validate(self) -> Optional[str]:
        if not self.file_path or not self.file_path.strip():
            return "Invalid Command! Missing the filePath argument!"
        if not self.new_content:
            return (
                "Invalid Command! Missing the newContent argument! "
                f"If intending to remove a file, use the {CONTENT_DELETE} command instead."
            )
        return None

    @property
    def tag(self) -> str:
        return f"{self.type_name} {self.file_path}"

    def execute(self, context: CommandContext) -> None:
        result = context.workspace.write(self.file_path, self.new_content)
        if result["status"] != "ok":
            context.conversation.add_reply(f"ERR: {error_message(result)}", self.tag)
            return
        logger.info("Updated %s", result["normalized_path"])
        context.conversation.add_reply(OK_REPLY, self.tag)


@dataclass
class ContentDelete(StaalCommand):
    type_name = CONTENT_DELETE
    usage = "filePath: <absolute path> -> deletes the file, replies OK"

    file_path: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ContentDelete":
        return cls(file_path=text_field(document, "filePath"))

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"type": self.type_name}
        if self.file_path is not None:
            document["filePath"] = self.file_path
        return document

    def validate(self) -> Optional[str]:
        if not self.file_path or not self.file_path.strip():
            return "Invalid Command! Missing the filePath argument!"
        return None

    @property
    def tag(self) -> str:
        return f"{self.type_name} {self.file_path}"

    def execute(self, context: CommandContext) -> None:
        result = context.workspace.delete(self.file_path)
        if result["status"] != "ok":
            context.conversation.add_reply(f"ERR: {error_message(result)}", self.tag)
            return
        logger.info("Deleted %s", result["normalized_path"])
        context.conversation.add_reply(OK_REPLY, self.tag)
