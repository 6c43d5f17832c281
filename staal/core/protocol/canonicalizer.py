"""
Best-effort repair of model output into canonical STAAL documents.

Models wrap commands in prose and code fences, use alias keys, emit YAML
sequences instead of separated documents and misalign indentation. Each of
those habits is undone here by a small pure pass; ``normalize`` chains the
passes and reports whether any of them actually altered the input.

The result is a string of mappings joined by ``SEPARATOR``. Anything that
cannot be recovered is passed through untouched so the parser can reject it
with a precise error.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml
from yaml.reader import Reader

from staal.core.protocol.vocabulary import (
    COMMAND_FIELDS,
    CONTENT_CHANGE,
    CONTENT_REQUEST,
    FINISH_NOK,
    FINISH_OK,
    KNOWN_TYPES,
    SEPARATOR,
    STATUS,
    join_documents,
)

logger = logging.getLogger(__name__)

_FENCE_RX = re.compile(
    r"^[ \t]*(?P<fence>[`~]{3,})[ \t]*ya?ml\b[^\n]*\n(?P<body>.*?)\n[ \t]*(?P=fence)[ \t]*$",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_FIRST_KEY_RX = re.compile(r"^[ \t]*(?:-[ \t]*)?(?:type|command)[ \t]*:", re.IGNORECASE | re.MULTILINE)
_DOC_MARKER_RX = re.compile(r"^[ \t]*---[ \t]*$")
_EQUALS_LINE_RX = re.compile(r"^[ \t]*={5,}[ \t]*$")
_ITEM_START_RX = re.compile(r"^(?P<indent>[ \t]*)-[ \t]+(?:type|command)[ \t]*:", re.IGNORECASE)
_ITEM_PREFIX_RX = re.compile(r"^(?P<prefix>[ \t]*-[ \t]*)(?P<rest>.*)$")
_TOP_REQUESTS_RX = re.compile(r"^requests[ \t]*:", re.IGNORECASE | re.MULTILINE)
_KEY_LINE_RX = re.compile(r"^(?P<indent> *)(?P<key>[^\s#\-][^:#]*?)[ \t]*:(?:[ \t]+(?P<rest>.*))?$")
_BLOCK_HEADER_RX = re.compile(r"^[|>][0-9+-]*[ \t]*(?:#.*)?$")
_BLOCK_SCALAR_LINE_RX = re.compile(
    r"^(?P<indent>[ \t]*)(?P<dash>-[ \t]+)?[^:#\n]+?[ \t]*:[ \t]*[|>][0-9+-]*[ \t]*(?:#.*)?$"
)
_CHOMP_RX = re.compile(
    r"^[ \t]*(?:-[ \t]+)?(?:newContent|newText|content)[ \t]*:[ \t]*\|(?P<indicator>[0-9+-]*)[ \t]*(?:#.*)?$",
    re.IGNORECASE | re.MULTILINE,
)
_FILE_PATH_LINE_RX = re.compile(r"^[ \t]*filePath[ \t]*:[ \t]*(?P<path>.+?)[ \t]*$", re.IGNORECASE | re.MULTILINE)
# Line breaks other than LF and a BOM do not survive a literal block unchanged.
_BLOCK_UNSAFE_RX = re.compile("[\r\x85\u2028\u2029\ufeff]")

_CANONICAL_KEYS = {
    key.lower(): key
    for key in (
        "type",
        "command",
        "args",
        "requests",
        "statusMsg",
        "filePath",
        "filePaths",
        "files",
        "newContent",
        "newText",
        "content",
        "message",
        "status",
        "prMessage",
        "errMessage",
        "error",
    )
}

# First alias present wins, in order.
_FIELD_ALIASES = {
    STATUS: {"statusMsg": ("content", "message", "status")},
    CONTENT_CHANGE: {"newContent": ("content", "newText")},
    FINISH_OK: {"prMessage": ("message", "content")},
    FINISH_NOK: {"errMessage": ("message", "content", "error")},
}


class _CanonicalDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper, value):
    if not allows_literal_block(value):
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style='"')
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_CanonicalDumper.add_representer(str, _represent_str)


def normalize(raw: Optional[str]) -> Tuple[str, bool]:
    """
    Recover canonical STAAL text from raw model output.

    Returns ``(canonical_text, changed)``; ``changed`` is True when a repair
    step altered the text, so callers can show the model what was expected.
    """
    if raw is None or not raw.strip():
        return "", False

    text, changed = normalize_newlines(raw)
    segments, split_changed = extract_segments(text)
    changed = changed or split_changed

    documents: List[str] = []
    for segment in segments:
        segment_documents, segment_changed = _normalize_segment(segment)
        documents.extend(segment_documents)
        changed = changed or segment_changed

    return join_documents(documents), changed


# --- text passes -----------------------------------------------------------


def normalize_newlines(text: str) -> Tuple[str, bool]:
    cleaned = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    return cleaned, cleaned != text


def extract_fences(text: str) -> List[str]:
    """Bodies of fenced yaml/yml blocks, in order of appearance."""
    return [match.group("body") + "\n" for match in _FENCE_RX.finditer(text)]


def split_on_separator(text: str) -> List[str]:
    return [part for part in text.split(SEPARATOR) if part.strip()]


def split_doc_markers(text: str) -> Tuple[List[str], bool]:
    return _split_on_marker_lines(text, _DOC_MARKER_RX)


def split_equals_lines(text: str) -> Tuple[List[str], bool]:
    return _split_on_marker_lines(text, _EQUALS_LINE_RX)


def extract_segments(text: str) -> Tuple[List[str], bool]:
    fenced = extract_fences(text)
    if fenced:
        segments: List[str] = []
        for body in fenced:
            segments.extend(_split_plain(body)[0])
        return segments, True
    return _split_plain(text)


def _split_plain(text: str) -> Tuple[List[str], bool]:
    if SEPARATOR in text:
        return split_on_separator(text), False
    parts, found = split_doc_markers(text)
    if found:
        return parts, True
    parts, found = split_equals_lines(text)
    if found:
        return parts, True
    return [text], False


def _split_on_marker_lines(text: str, marker: re.Pattern) -> Tuple[List[str], bool]:
    parts: List[str] = []
    current: List[str] = []
    found = False
    scalar_floor: Optional[int] = None

    for line in text.split("\n"):
        if scalar_floor is not None:
            if not line.strip() or _indent(line) > scalar_floor:
                current.append(line)
                continue
            scalar_floor = None

        if marker.match(line):
            found = True
            parts.append("\n".join(current) + "\n")
            current = []
            continue

        floor = _block_scalar_floor(line)
        if floor is not None:
            scalar_floor = floor
        current.append(line)

    parts.append("\n".join(current))
    return [part for part in parts if part.strip()], found


def strip_leading_prose(segment: str) -> Tuple[str, bool]:
    match = _FIRST_KEY_RX.search(segment)
    if match is None:
        return segment, False
    prefix = segment[: match.start()]
    if _TOP_REQUESTS_RX.search(prefix):
        return segment, False
    return segment[match.start():], bool(prefix.strip())


def split_sequence_items(segment: str) -> Optional[List[str]]:
    """
    Split a top-level YAML sequence of ``- type:`` / ``- command:`` items.

    Returns None unless the segment starts with such an item. Literal block
    bodies are never split, even if they contain lines that look like items.
    """
    lines = segment.split("\n")
    first = next((line for line in lines if line.strip()), "")
    if not _ITEM_START_RX.match(first):
        return None

    items: List[List[str]] = []
    current: Optional[List[str]] = None
    item_indent: Optional[int] = None
    scalar_floor: Optional[int] = None

    for line in lines:
        if scalar_floor is not None:
            if not line.strip() or _indent(line) > scalar_floor:
                if current is not None:
                    current.append(line)
                continue
            scalar_floor = None

        match = _ITEM_START_RX.match(line)
        if match and (item_indent is None or len(match.group("indent")) <= item_indent):
            if current is not None:
                items.append(current + [""])
            current = [line]
            item_indent = len(match.group("indent"))
        elif current is not None:
            current.append(line)

        floor = _block_scalar_floor(line)
        if floor is not None:
            scalar_floor = floor

    if current is not None:
        items.append(current)
    return ["\n".join(item) for item in items]


def sequence_item_to_mapping(item: str) -> str:
    lines = item.split("\n")
    match = _ITEM_PREFIX_RX.match(lines[0])
    if match is None:
        return item
    width = len(match.group("prefix"))
    dedented = [match.group("rest")]
    dedented.extend(_remove_leading_spaces(line, width) for line in lines[1:])
    return "\n".join(dedented)


def fix_indent(text: str) -> str:
    """
    Re-align top-level keys to the minimum top-level indent.

    Only spaces are touched. Lines owned by a key (literal block bodies and
    nested containers) move by the same amount as their key.
    """
    lines = text.split("\n")
    tops = _top_level_key_lines(lines)
    if not tops:
        return text

    target = min(_indent(lines[index]) for index in tops)
    top_set = set(tops)
    shift = 0
    out = []
    for index, line in enumerate(lines):
        if index in top_set:
            shift = _indent(line) - target
        if shift > 0 and line.startswith(" "):
            line = _remove_leading_spaces(line, shift)
        out.append(line)
    return "\n".join(out)


def _top_level_key_lines(lines: List[str]) -> List[int]:
    tops: List[int] = []
    owned_floor: Optional[int] = None
    for index, line in enumerate(lines):
        if owned_floor is not None:
            if not line.strip() or _indent(line) > owned_floor:
                continue
            owned_floor = None
        if line.startswith("\t") or not line.strip() or line.lstrip().startswith("#"):
            continue
        match = _KEY_LINE_RX.match(line)
        if match is None:
            continue
        tops.append(index)
        rest = (match.group("rest") or "").strip()
        if not rest or rest.startswith("#") or _BLOCK_HEADER_RX.match(rest):
            owned_floor = len(match.group("indent"))
    return tops


def detect_keep_trailing_newline(raw: str) -> Optional[bool]:
    """Chomping of the first new-content literal block in ``raw``; None if absent."""
    match = _CHOMP_RX.search(raw)
    if match is None:
        return None
    return "-" not in match.group("indicator")


# --- mapping passes --------------------------------------------------------


def load_mapping(text: str) -> Tuple[Optional[Dict[str, Any]], bool]:
    """Strict YAML first, then once more after re-aligning indentation."""
    data = _safe_load(text)
    if isinstance(data, dict):
        return data, False
    repaired = fix_indent(text)
    if repaired != text:
        data = _safe_load(repaired)
        if isinstance(data, dict):
            return data, True
    return None, False


def canonicalize_keys(mapping: Dict[Any, Any]) -> Tuple[Dict[str, Any], bool]:
    out: Dict[str, Any] = {}
    changed = False
    for key, value in mapping.items():
        name = str(key)
        canonical = _CANONICAL_KEYS.get(name.strip().lower(), name)
        if canonical != key:
            changed = True
        if canonical in out:
            changed = True
            continue
        out[canonical] = value
    return out, changed


def flatten_aliases(mapping: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Rewrite alias keys into the canonical shape of the document's command type."""
    doc = dict(mapping)

    if "command" in doc:
        command = doc.pop("command")
        doc.setdefault("type", command)
        doc = _move_first(doc, "type")

    args = doc.pop("args", None)
    if isinstance(args, dict):
        args, _ = canonicalize_keys(args)
        for key, value in args.items():
            doc.setdefault(key, value)
    elif args is not None:
        doc["args"] = args

    type_name = doc.get("type")
    if isinstance(type_name, str) and type_name.strip().upper() in KNOWN_TYPES:
        doc["type"] = type_name.strip().upper()
    type_name = doc.get("type")

    for field, aliases in _FIELD_ALIASES.get(type_name, {}).items():
        if field in doc:
            continue
        for alias in aliases:
            if alias in doc:
                doc[field] = doc[alias]
                break

    if type_name == CONTENT_REQUEST:
        if "files" in doc and "filePaths" not in doc:
            doc["filePaths"] = doc["files"]
        if not any(key in doc for key in ("filePath", "filePaths")) and isinstance(doc.get("content"), str):
            doc.update(_file_paths_from_literal(doc["content"]))

    fields = COMMAND_FIELDS.get(type_name)
    if fields is not None:
        result = {"type": type_name}
        for field in fields:
            if field in doc:
                result[field] = doc[field]
        doc = result

    return doc, list(doc.items()) != list(mapping.items())


def request_items(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, str):
        value = _safe_load(value)
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        items: List[Dict[str, Any]] = []
        for item in value:
            if isinstance(item, str):
                item = _safe_load(item)
            if isinstance(item, dict):
                items.append(item)
        return items
    return []


def emit_document(mapping: Dict[str, Any], keep_trailing_newline: Optional[bool] = None) -> str:
    """
    Canonical text for one mapping; always ends with a newline.

    ``newContent`` is written as a literal block unless it holds characters a
    block cannot carry, in which case it is double-quoted with escapes.
    """
    new_content = mapping.get("newContent")
    if mapping.get("type") == CONTENT_CHANGE and isinstance(new_content, str):
        new_content = _apply_keep_flag(new_content, keep_trailing_newline)
        if not allows_literal_block(new_content):
            return _dump(dict(mapping, newContent=new_content))
        head = {key: value for key, value in mapping.items() if key != "newContent"}
        return _dump(head) + "newContent: " + literal_block(new_content)
    return _dump(mapping)


def allows_literal_block(content: str) -> bool:
    return not (_BLOCK_UNSAFE_RX.search(content) or Reader.NON_PRINTABLE.search(content))


def literal_block(content: str, keep_trailing_newline: Optional[bool] = None) -> str:
    """
    Literal block scalar (header plus two-space indented body) for ``content``.

    An explicit keep flag wins over the value: the trailing newline is added or
    removed so the header and the value always agree. Callers check
    ``allows_literal_block`` first.
    """
    content = _apply_keep_flag(content, keep_trailing_newline)

    trailing = len(content) - len(content.rstrip("\n"))
    if trailing == 0:
        chomp = "-"
    elif trailing == 1 and content.strip("\n"):
        chomp = ""
    else:
        chomp = "+"

    lines = content.split("\n")
    if trailing:
        lines = lines[:-1]

    indicator = ""
    for line in lines:
        if line.strip():
            if line.startswith(" "):
                indicator = "2"
            break
        if line:
            indicator = "2"
            break

    body = "".join(("  " + line if line else "") + "\n" for line in lines)
    return f"|{indicator}{chomp}\n{body}"


# --- helpers ---------------------------------------------------------------


def _apply_keep_flag(content: str, keep_trailing_newline: Optional[bool]) -> str:
    if keep_trailing_newline is True and not content.endswith("\n"):
        return content + "\n"
    if keep_trailing_newline is False:
        return content.rstrip("\n")
    return content


def _normalize_segment(segment: str) -> Tuple[List[str], bool]:
    body, changed = strip_leading_prose(segment)
    if not body.strip():
        return [], changed

    items = None
    if not _TOP_REQUESTS_RX.search(body):
        items = split_sequence_items(body)

    if items:
        documents: List[str] = []
        for item in items:
            documents.extend(_mapping_documents(sequence_item_to_mapping(item), raw=item)[0])
        return documents, True

    documents, mapping_changed = _mapping_documents(body, raw=body)
    return documents, changed or mapping_changed


def _mapping_documents(text: str, raw: str) -> Tuple[List[str], bool]:
    mapping, changed = load_mapping(text)
    if mapping is None:
        logger.debug("Passing through a segment that does not load as a mapping")
        return [text.strip("\n") + "\n"], False

    mapping, keys_changed = canonicalize_keys(mapping)
    changed = changed or keys_changed

    if "requests" not in mapping:
        mapping, aliases_changed = flatten_aliases(mapping)
        return [emit_document(mapping, detect_keep_trailing_newline(raw))], changed or aliases_changed

    # Children carry their own blocks; only the lines above requests: belong to the parent.
    requests_line = _TOP_REQUESTS_RX.search(raw)
    parent_raw = raw[: requests_line.start()] if requests_line else raw
    children = request_items(mapping.pop("requests"))
    documents: List[str] = []
    parent, _ = flatten_aliases(mapping)
    if parent.get("type"):
        documents.append(emit_document(parent, detect_keep_trailing_newline(parent_raw)))
    for child in children:
        child, _ = canonicalize_keys(child)
        child, _ = flatten_aliases(child)
        documents.append(emit_document(child))
    return documents, True


def _file_paths_from_literal(text: str) -> Dict[str, Any]:
    embedded = _safe_load(text)
    if isinstance(embedded, dict):
        embedded, _ = canonicalize_keys(embedded)
        if "files" in embedded and "filePaths" not in embedded:
            embedded["filePaths"] = embedded["files"]
        found = {key: embedded[key] for key in ("filePath", "filePaths") if key in embedded}
        if found:
            return found
    match = _FILE_PATH_LINE_RX.search(text)
    if match:
        return {"filePath": match.group("path").strip().strip("'\"")}
    return {}


def _move_first(mapping: Dict[str, Any], key: str) -> Dict[str, Any]:
    if key not in mapping:
        return mapping
    result = {key: mapping[key]}
    result.update((k, v) for k, v in mapping.items() if k != key)
    return result


def _safe_load(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return None


def _dump(mapping: Dict[str, Any]) -> str:
    return yaml.dump(
        mapping,
        Dumper=_CanonicalDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=1_000_000,
    )


def _block_scalar_floor(line: str) -> Optional[int]:
    match = _BLOCK_SCALAR_LINE_RX.match(line)
    if match is None:
        return None
    return len(match.group("indent")) + len(match.group("dash") or "")


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _remove_leading_spaces(line: str, count: int) -> str:
    removed = 0
    while removed < count and removed < len(line) and line[removed] == " ":
        removed += 1
    return line[removed:]
