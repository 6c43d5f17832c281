"""Builds the system prompt that opens a STAAL conversation."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import List

from staal.core.commands import allowed_commands_text
from staal.core.protocol.vocabulary import CONTENT_CHANGE, FINISH_NOK, FINISH_OK, SEPARATOR, STATUS
from staal.core.tools.workspace_files import WorkspaceFiles

logger = logging.getLogger(__name__)

HEAT_RESULT_DIRECTORIES = ("build", "tests", "codeanalysis", "pipelineoutput")


class EditMode(str, Enum):
    ALL = "all"
    CODE = "code"
    TESTS = "tests"
    DOCUMENTATION = "documentation"


_EDIT_RESTRICTIONS = {
    EditMode.ALL: "You may change any file in the working directory.",
    EditMode.CODE: "Only change production source code. Do not touch tests or documentation.",
    EditMode.TESTS: "Only change or add tests. Do not touch production code or documentation.",
    EditMode.DOCUMENTATION: "Only change documentation files. Do not touch code or tests.",
}

MASTER_PROMPT = f"""You are an autonomous software engineer working on a repository through the STAAL command protocol.

Protocol laws:
- Every response consists only of YAML documents. Plain text is never allowed.
- Each YAML document starts with `type: STAAL_...` and holds exactly one command.
- Separate documents with exactly this line:
{SEPARATOR}
- No code fences. Indentation 2 spaces. LF newlines only.
- Use literal block scalars (`|-`) for multi-line values.
- {CONTENT_CHANGE} always carries the complete new content of the file.
- To explain what you are doing, use {STATUS}.
- When the goal is reached reply with {FINISH_OK}; when it cannot be reached reply with {FINISH_NOK}.
"""


def build_system_prompt(goal: str, working_directory: str | Path, edit_mode: EditMode = EditMode.ALL) -> str:
    root = Path(working_directory).resolve()
    sections: List[str] = [
        MASTER_PROMPT,
        "Allowed commands:\n" + allowed_commands_text(),
        "Edit mode: " + _EDIT_RESTRICTIONS[EditMode(edit_mode)],
        f"Working directory: {root}\nAlways use absolute file paths inside the working directory.",
        "Goal:\n" + goal.strip(),
        "Files in the working directory:\n" + "\n".join(WorkspaceFiles(root).list_files()),
    ]

    heat = root / ".heat"
    hints = [f"{heat / name}" for name in HEAT_RESULT_DIRECTORIES if (heat / name).is_dir()]
    if hints:
        sections.append("Results of earlier CI runs that you should consider:\n" + "\n".join(hints))

    sections.append(f"Start by replying with a {STATUS} describing your plan.")
    prompt = "\n\n".join(sections)
    logger.info("Built system prompt (%s chars, edit mode %s)", len(prompt), EditMode(edit_mode).value)
    return prompt

