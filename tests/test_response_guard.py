from __future__ import annotations

import pytest

from staal.core.guardrails.guard_state import GuardLimits
from staal.core.guardrails.response_guard import (
    ERROR_TAG,
    WARNING_TAG,
    GuardrailHardStop,
    ResponseGuard,
    repair_instruction,
)
from staal.core.protocol.errors import MalformedDocument
from staal.core.protocol.vocabulary import SEPARATOR


def _guard(**limits):
    replies = []
    guard = ResponseGuard(lambda text, tag: replies.append((tag, text)), GuardLimits(**limits))
    return guard, replies


def _status(text: str) -> str:
    return f"type: STAAL_STATUS\nstatusMsg: {text}\n"


def test_valid_response_returns_commands_without_replies():
    guard, replies = _guard()

    commands = guard.validate(_status("hello"))

    assert [c.type_name for c in commands] == ["STAAL_STATUS"]
    assert replies == []


def test_identical_responses_warn_then_hard_stop():
    guard, replies = _guard()
    response = _status("same")

    for _ in range(3):
        assert guard.validate(response) is not None

    warnings = [text for tag, text in replies if tag == WARNING_TAG]
    assert len(warnings) == 2
    assert "same response from you 2 times" in warnings[0]
    assert "same response from you 3 times" in warnings[1]

    with pytest.raises(GuardrailHardStop) as excinfo:
        guard.validate(response)
    assert "exact same response 3 times" in str(excinfo.value)


def test_parse_failures_ask_for_repair_then_give_up():
    guard, replies = _guard()

    for attempt in range(3):
        assert guard.validate(f"I am thinking about step {attempt}") is None

    assert [tag for tag, _ in replies] == [ERROR_TAG] * 3
    assert SEPARATOR in replies[0][1]
    assert "STAAL_CONTENT_CHANGE" in replies[0][1]

    with pytest.raises(MalformedDocument):
        guard.validate("I am still thinking")


def test_successful_parse_resets_the_repair_counter():
    guard, _ = _guard()

    guard.validate("prose one")
    guard.validate("prose two")
    guard.validate(_status("back on track"))

    assert guard.state.parse_failures == 0


def test_responses_without_edits_warn_then_hard_stop():
    guard, replies = _guard()

    for index in range(19):
        assert guard.validate(_status(f"still looking {index}")) is not None

    warnings = [text for tag, text in replies if tag == WARNING_TAG]
    assert len(warnings) == 10
    assert "did not contain any actual content change" in warnings[0]

    with pytest.raises(GuardrailHardStop) as excinfo:
        guard.validate(_status("still looking 19"))
    assert "20 times without any document edits" in str(excinfo.value)


def test_content_change_resets_the_no_edit_streak():
    guard, _ = _guard()
    for index in range(5):
        guard.validate(_status(f"reading {index}"))

    guard.validate("type: STAAL_CONTENT_CHANGE\nfilePath: /work/a.py\nnewContent: |\n  x = 1\n")

    assert guard.state.no_edit_streak == 0


def test_invalid_commands_are_reported_and_hard_stop_on_the_third():
    guard, replies = _guard()
    response = "type: STAAL_STATUS\n"

    assert guard.validate(response) is None
    assert replies[0] == ("STAAL_STATUS", "Invalid Response due to: Invalid Command! statusMsg was empty.")
    assert guard.validate(response) is None

    with pytest.raises(GuardrailHardStop) as excinfo:
        guard.validate(response)
    assert "Invalid Data 3 times" in str(excinfo.value)


def test_invalid_content_change_is_tagged_with_its_path():
    guard, replies = _guard()

    assert guard.validate("type: STAAL_CONTENT_CHANGE\nfilePath: /work/gone.py\n") is None

    tag, text = replies[0]
    assert tag == "STAAL_CONTENT_CHANGE /work/gone.py"
    assert "STAAL_CONTENT_DELETE" in text


def test_repaired_response_is_executed_with_a_teaching_notice():
    guard, replies = _guard()

    commands = guard.validate("```yaml\ntype: STAAL_STATUS\nstatusMsg: hi\n```")

    assert [c.type_name for c in commands] == ["STAAL_STATUS"]
    ((tag, text),) = replies
    assert tag == WARNING_TAG
    assert text.startswith("WARNING! I managed to parse your response")
    assert text.endswith("type: STAAL_STATUS\nstatusMsg: hi\n")


def test_total_response_count_warns_then_hard_stops():
    guard, replies = _guard(total_warning=3, total_hard_stop=5)

    for index in range(4):
        guard.validate(_status(f"step {index}"))

    warnings = [text for tag, text in replies if tag == WARNING_TAG]
    assert len(warnings) == 2
    assert warnings[0].startswith("WARNING! I have received 3 responses out of a maximum of 5")

    with pytest.raises(GuardrailHardStop) as excinfo:
        guard.validate(_status("step 4"))
    assert "Max Response Count reached: 5" in str(excinfo.value)


def test_limits_reject_warning_at_or_above_hard_stop():
    with pytest.raises(ValueError):
        GuardLimits(total_warning=10, total_hard_stop=10)
    with pytest.raises(ValueError):
        GuardLimits(no_edit_warning=30)


def test_limits_from_config_ignore_unknown_keys():
    limits = GuardLimits.from_config({"total_hard_stop": "50", "total_warning": 40, "other": 1})

    assert limits.total_hard_stop == 50
    assert limits.total_warning == 40
    assert limits.identical_hard_stop == 3


def test_repair_instruction_names_the_error():
    text = repair_instruction(MalformedDocument("boom"))

    assert "exception boom" in text
    assert "- STAAL_FINISH_OK:" in text
