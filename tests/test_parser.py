from __future__ import annotations

import pytest

from staal.core.commands import (
    CiHeavyRequest,
    CiLightRequest,
    ContentChange,
    ContentDelete,
    ContentRequest,
    Continue,
    FinishNok,
    FinishOk,
    GetWorkingDirectoryStructure,
    Status,
)
from staal.core.protocol.errors import MalformedDocument, MissingDiscriminator, UnknownCommand
from staal.core.protocol.parser import ParsePolicy, parse, parse_bundle, serialize
from staal.core.protocol.vocabulary import SEPARATOR

ALL_VARIANTS = [
    Status(message="all good"),
    ContentRequest(file_path="/work/a.py"),
    ContentRequest(file_paths=["/work/a.py", "/work/b.py"]),
    ContentChange(file_path="/work/a.py", new_content="print(1)\n"),
    ContentChange(file_path="/work/b.py", new_content="no newline at end"),
    ContentDelete(file_path="/work/old.py"),
    GetWorkingDirectoryStructure(),
    CiLightRequest(),
    CiHeavyRequest(),
    FinishOk(pr_message="Implemented the feature."),
    FinishNok(err_message="Could not build."),
    Continue(),
]


@pytest.mark.parametrize("command", ALL_VARIANTS, ids=lambda c: c.type_name)
def test_serialized_command_parses_back(command):
    (parsed,) = parse(serialize([command]))

    assert type(parsed) is type(command)
    assert parsed.to_document() == command.to_document()


def test_bundle_preserves_order():
    parsed = parse(serialize(ALL_VARIANTS))

    assert [c.to_document() for c in parsed] == [c.to_document() for c in ALL_VARIANTS]


def test_content_change_keep_flag_follows_block_header():
    parsed = parse(serialize([ContentChange(file_path="/w/a", new_content="x\n")]))[0]

    assert parsed.keep_trailing_newline is True
    assert parsed.new_content == "x\n"


def test_simple_status_document():
    (command,) = parse("type: STAAL_STATUS\nstatusMsg: hello\n")

    assert isinstance(command, Status)
    assert command.message == "hello"


def test_unknown_fields_are_ignored():
    (command,) = parse("type: STAAL_STATUS\nstatusMsg: hello\nmood: great\n")

    assert command.to_document() == {"type": "STAAL_STATUS", "statusMsg": "hello"}


def test_empty_text_has_no_commands():
    with pytest.raises(MalformedDocument):
        parse("")
    with pytest.raises(MalformedDocument):
        parse(SEPARATOR + "\n  \n" + SEPARATOR)


def test_missing_discriminator():
    with pytest.raises(MissingDiscriminator):
        parse("statusMsg: hello\n")


def test_unknown_discriminator_names_the_type():
    with pytest.raises(UnknownCommand) as excinfo:
        parse("type: STAAL_DANCE\n")

    assert excinfo.value.type_name == "STAAL_DANCE"
    assert "STAAL_DANCE" in str(excinfo.value)


def test_syntax_error_and_non_mapping_are_malformed():
    with pytest.raises(MalformedDocument):
        parse("type: [unclosed\n")
    with pytest.raises(MalformedDocument):
        parse("just some words")


def test_strict_policy_fails_the_bundle_on_one_bad_document():
    text = "type: STAAL_STATUS\nstatusMsg: a\n" + SEPARATOR + "type: [broken\n"

    with pytest.raises(MalformedDocument):
        parse(text, ParsePolicy.STRICT)


def test_lenient_policy_skips_malformed_fragments_only():
    text = "type: STAAL_STATUS\nstatusMsg: a\n" + SEPARATOR + "type: [broken\n"

    commands = parse(text, ParsePolicy.LENIENT)

    assert [c.type_name for c in commands] == ["STAAL_STATUS"]

    with pytest.raises(UnknownCommand):
        parse("type: STAAL_STATUS\nstatusMsg: a\n" + SEPARATOR + "type: STAAL_DANCE\n", ParsePolicy.LENIENT)


def test_lenient_single_document_is_still_strict():
    with pytest.raises(MalformedDocument):
        parse("type: [broken\n", ParsePolicy.LENIENT)


def test_parse_bundle_reports_repairs():
    commands, canonical, changed = parse_bundle("```yaml\ntype: STAAL_CONTINUE\n```")

    assert changed is True
    assert canonical == "type: STAAL_CONTINUE\n"
    assert isinstance(commands[0], Continue)


def test_crlf_content_round_trips_through_serialize():
    command = ContentChange(file_path="/work/run.bat", new_content="echo 1\r\necho 2\r\n")

    text = serialize([command])
    (parsed,) = parse(text)

    assert "newContent: |" not in text
    assert parsed.new_content == "echo 1\r\necho 2\r\n"


def test_control_characters_round_trip_through_serialize():
    for content in ["bell\x07\nend", "a\x85b\u2028c\u2029d", "\ufeffbom\n"]:
        (parsed,) = parse(serialize([ContentChange(file_path="/work/a.txt", new_content=content)]))

        assert parsed.new_content == content


def test_quoted_crlf_content_survives_canonicalization():
    raw = 'type: STAAL_CONTENT_CHANGE\nfilePath: /w/a.bat\nnewContent: "echo 1\\r\\necho 2\\r\\n"\n'

    (command,), _, changed = parse_bundle(raw)

    assert command.new_content == "echo 1\r\necho 2\r\n"
    assert changed is False


def test_quoted_control_character_content_is_accepted():
    raw = 'type: STAAL_CONTENT_CHANGE\nfilePath: /w/a.txt\nnewContent: "bell\\u0007\\nend"\n'

    (command,), canonical, _ = parse_bundle(raw)

    assert command.new_content == "bell\x07\nend"
    assert "\x07" not in canonical
