from __future__ import annotations

from staal.core.charter import EditMode, build_system_prompt
from staal.core.protocol.vocabulary import SEPARATOR


def test_prompt_carries_protocol_goal_and_files(workspace_root):
    (workspace_root / "app.py").write_text("", encoding="utf-8")

    prompt = build_system_prompt("  Fix the bug.  ", workspace_root)

    assert SEPARATOR in prompt
    assert "Goal:\nFix the bug." in prompt
    assert str(workspace_root.resolve() / "app.py") in prompt
    assert "- STAAL_CONTENT_CHANGE:" in prompt
    assert "You may change any file" in prompt
    assert prompt.endswith("Start by replying with a STAAL_STATUS describing your plan.")


def test_prompt_restricts_edits_by_mode(workspace_root):
    prompt = build_system_prompt("goal", workspace_root, EditMode.TESTS)

    assert "Only change or add tests." in prompt
    assert "You may change any file" not in prompt


def test_prompt_points_at_earlier_ci_results(workspace_root):
    assert "Results of earlier CI runs" not in build_system_prompt("goal", workspace_root)

    (workspace_root / ".heat" / "tests").mkdir(parents=True)

    prompt = build_system_prompt("goal", workspace_root, "documentation")

    assert "Results of earlier CI runs" in prompt
    assert str(workspace_root.resolve() / ".heat" / "tests") in prompt
    assert "Only change documentation files." in prompt
