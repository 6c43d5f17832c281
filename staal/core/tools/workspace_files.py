"""
File access bounded to the conversation's working directory.

Every operation returns a structured result dict instead of raising, so a
command can turn a refused or failed access into a reply for the model.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)

ALLOWED_ENCODING = "utf-8"
IGNORED_DIRECTORIES = {".git"}

ERROR_NOT_FOUND = "NOT_FOUND"
ERROR_INVALID_ARGUMENT = "INVALID_ARGUMENT"
ERROR_INVALID_ENCODING = "INVALID_ENCODING"
ERROR_PATH_OUTSIDE_WORKING_DIRECTORY = "PATH_OUTSIDE_WORKING_DIRECTORY"
ERROR_IO = "IO_ERROR"


class WorkspaceFiles:
    def __init__(self, root: str | Path) -> None:
        self.root = _normalize_root(root)

    def resolve(self, path_value: str) -> Tuple[Path | None, Dict[str, Any] | None]:
        if not isinstance(path_value, str) or not path_value.strip():
            return None, _error_response(
                path=str(path_value or ""),
                normalized_path="",
                code=ERROR_INVALID_ARGUMENT,
                message="A non-empty file path is required.",
            )
        normalized = _normalize_candidate_path(path_value=path_value.strip(), workspace_root=self.root)
        if not _is_within(normalized, self.root):
            return None, _error_response(
                path=path_value,
                normalized_path=str(normalized),
                code=ERROR_PATH_OUTSIDE_WORKING_DIRECTORY,
                message=(
                    f"file {path_value} does not start with {self.root} so is blocked. "
                    "Only files inside the working directory can be used."
                ),
            )
        return normalized, None

    def exists(self, path_value: str) -> bool:
        normalized, error = self.resolve(path_value)
        return error is None and normalized.is_file()

    def read(self, path_value: str) -> Dict[str, Any]:
        normalized, error = self.resolve(path_value)
        if error is not None:
            return error
        if not normalized.is_file():
            return _error_response(
                path=path_value,
                normalized_path=str(normalized),
                code=ERROR_NOT_FOUND,
                message=f"file {path_value} does not exist.",
            )
        try:
            with open(normalized, "r", encoding=ALLOWED_ENCODING, newline="") as handle:
                content = handle.read()
        except UnicodeDecodeError:
            return _error_response(
                path=path_value,
                normalized_path=str(normalized),
                code=ERROR_INVALID_ENCODING,
                message=f"file {path_value} is not valid utf-8.",
            )
        except OSError as exc:
            return self._io_error(path_value, normalized, exc)
        return _ok_response(path=path_value, normalized_path=str(normalized), content=content)

    def write(self, path_value: str, content: str) -> Dict[str, Any]:
        normalized, error = self.resolve(path_value)
        if error is not None:
            return error
        try:
            normalized.parent.mkdir(parents=True, exist_ok=True)
            with open(normalized, "w", encoding=ALLOWED_ENCODING, newline="") as handle:
                handle.write(content)
        except OSError as exc:
            return self._io_error(path_value, normalized, exc)
        return _ok_response(path=path_value, normalized_path=str(normalized))

    def delete(self, path_value: str) -> Dict[str, Any]:
        normalized, error = self.resolve(path_value)
        if error is not None:
            return error
        if not normalized.is_file():
            return _error_response(
                path=path_value,
                normalized_path=str(normalized),
                code=ERROR_NOT_FOUND,
                message=f"file {path_value} does not exist.",
            )
        try:
            normalized.unlink()
        except OSError as exc:
            return self._io_error(path_value, normalized, exc)
        return _ok_response(path=path_value, normalized_path=str(normalized))

    def list_files(self) -> List[str]:
        files: List[str] = []
        for current, directories, names in os.walk(self.root):
            directories[:] = sorted(d for d in directories if d not in IGNORED_DIRECTORIES)
            files.extend(str(Path(current) / name) for name in names)
        return sorted(files)

    def _io_error(self, path_value: str, normalized: Path, exc: OSError) -> Dict[str, Any]:
        logger.error("File operation on %s failed: %s", normalized, exc)
        return _error_response(
            path=path_value,
            normalized_path=str(normalized),
            code=ERROR_IO,
            message=f"could not access {path_value}: {exc}",
        )


def error_message(result: Dict[str, Any]) -> str:
    error = result.get("error") or {}
    return str(error.get("message", "unknown error"))


def _normalize_root(workspace_root: str | Path) -> Path:
    root = Path(workspace_root).expanduser()
    if not root.is_absolute():
        root = (Path.cwd() / root).resolve(strict=False)
    return root.resolve(strict=False)


def _normalize_candidate_path(*, path_value: str, workspace_root: Path) -> Path:
    raw = Path(path_value).expanduser()
    combined = raw if raw.is_absolute() else workspace_root / raw
    return combined.resolve(strict=False)


def _is_within(path_value: Path, root: Path) -> bool:
    try:
        path_value.relative_to(root)
        return True
    except ValueError:
        return False


def _ok_response(*, path: str, normalized_path: str, content: str | None = None) -> Dict[str, Any]:
    return {
        "status": "ok",
        "path": path,
        "normalized_path": normalized_path,
        "content": content,
        "error": None,
    }


def _error_response(*, path: str, normalized_path: str, code: str, message: str) -> Dict[str, Any]:
    return {
        "status": "error",
        "path": path,
        "normalized_path": normalized_path,
        "content": None,
        "error": {"code": code, "message": message},
    }
