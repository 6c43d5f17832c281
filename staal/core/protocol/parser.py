"""
Strict decoding of canonical STAAL text into commands.

The parser splits on the separator token only; any leniency about how the
model formatted its answer belongs to the canonicalizer.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Sequence, Tuple

import yaml

from staal.core.commands import COMMAND_TYPES, ContentChange, StaalCommand
from staal.core.protocol import canonicalizer
from staal.core.protocol.errors import MalformedDocument, MissingDiscriminator, ProtocolError, UnknownCommand
from staal.core.protocol.vocabulary import SEPARATOR, join_documents

logger = logging.getLogger(__name__)

NO_COMMANDS_MESSAGE = (
    "No valid STAAL commands were found. Each YAML document must include a 'type' key."
)


class ParsePolicy(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"


def parse(canonical_text: str, policy: ParsePolicy = ParsePolicy.STRICT) -> List[StaalCommand]:
    """
    Decode canonical text into commands, in document order.

    Under ``LENIENT`` a malformed fragment of a multi-document bundle is skipped.
    Discriminator errors always fail the whole bundle.
    """
    documents = [part for part in (canonical_text or "").split(SEPARATOR) if part.strip()]
    lenient = ParsePolicy(policy) is ParsePolicy.LENIENT and len(documents) > 1

    commands: List[StaalCommand] = []
    first_skipped: ProtocolError | None = None
    for document in documents:
        try:
            commands.append(parse_document(document))
        except MalformedDocument as exc:
            if not lenient:
                raise
            logger.warning("Skipping malformed document: %s", exc)
            first_skipped = first_skipped or exc

    if not commands:
        if first_skipped is not None:
            raise first_skipped
        raise MalformedDocument(NO_COMMANDS_MESSAGE)
    return commands


def parse_document(document: str) -> StaalCommand:
    try:
        mapping = yaml.safe_load(document)
    except yaml.YAMLError as exc:
        raise MalformedDocument(f"Document is not valid YAML: {exc}") from exc

    if not isinstance(mapping, dict):
        raise MalformedDocument(f"Document is not a YAML mapping: {document.strip()[:200]}")

    type_name = mapping.get("type")
    if type_name is None or not str(type_name).strip():
        raise MissingDiscriminator(NO_COMMANDS_MESSAGE)

    command_type = COMMAND_TYPES.get(str(type_name).strip())
    if command_type is None:
        raise UnknownCommand(str(type_name).strip())

    command = command_type.from_document(mapping)
    if isinstance(command, ContentChange):
        command.keep_trailing_newline = canonicalizer.detect_keep_trailing_newline(document)
    return command


def parse_bundle(
    raw: str, policy: ParsePolicy = ParsePolicy.STRICT
) -> Tuple[List[StaalCommand], str, bool]:
    """Canonicalize raw model output and parse it; returns ``(commands, canonical, changed)``."""
    canonical, changed = canonicalizer.normalize(raw)
    return parse(canonical, policy), canonical, changed


def serialize(commands: Sequence[StaalCommand]) -> str:
    documents = []
    for command in commands:
        keep = getattr(command, "keep_trailing_newline", None)
        documents.append(canonicalizer.emit_document(command.to_document(), keep))
    return join_documents(documents)
