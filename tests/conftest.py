import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from staal.core.commands import CommandContext  # noqa: E402
from staal.core.llm_api import Completion  # noqa: E402
from staal.core.tools.heavy_ci import UnconfiguredHeavyCi  # noqa: E402
from staal.core.tools.workspace_files import WorkspaceFiles  # noqa: E402


class RecordingConversation:
    def __init__(self, pending: bool = False) -> None:
        self.replies = []
        self.pending = pending
        self.stopped = None

    def add_reply(self, text, tag):
        self.replies.append((tag, text))

    def has_pending(self):
        return self.pending or bool(self.replies)

    def stop(self, failed=False, outcome=None):
        self.stopped = {"failed": failed, "outcome": outcome}


class StubLightCi:
    def __init__(self, succeeded=True, output="all green"):
        self.result = (succeeded, output)
        self.runs = 0

    def run(self):
        self.runs += 1
        return self.result


class ScriptedClient:
    """Chat client that replays a shared script; exception instances are raised."""

    def __init__(self, script, calls):
        self.script = script
        self.calls = calls

    def complete(self, messages):
        self.calls.append([dict(m) for m in messages])
        if not self.script:
            from staal.core.llm_api import ProviderError

            raise ProviderError("script exhausted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return Completion(text=item, input_tokens=10, output_tokens=5)


class ScriptedFactory:
    def __init__(self, script):
        self.script = list(script)
        self.calls = []
        self.created = 0

    def __call__(self):
        self.created += 1
        return ScriptedClient(self.script, self.calls)


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def recording_conversation():
    return RecordingConversation()


@pytest.fixture
def command_context(workspace_root, recording_conversation):
    return CommandContext(
        conversation=recording_conversation,
        workspace=WorkspaceFiles(workspace_root),
        light_ci=StubLightCi(),
        heavy_ci=UnconfiguredHeavyCi(),
    )
