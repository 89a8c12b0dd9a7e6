"""
Character-level scanning helpers shared by every compiler pass

All helpers walk the source with an explicit index and explicit state
(depth counters, quote flags) and return positions or new strings. None of
them raise on malformed input: a search that cannot complete returns -1,
None or the input unchanged.

Key helpers:
- brace_findMatching / brace_findMatchingLiteral: match a '{' to its '}'
- keyword_findStandalone: find a keyword not embedded in a longer identifier
- invocation_find: locate "tag { ... }" invocations of a given id
- segments_splitTopLevel: split a block body into its top-level "tag { }" items
- strings_encodeQuoted / string_decodeIfNeeded: protect double-quoted values
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, unquote_to_bytes

from ..models.definitions import TagInvocation, TopLevelSegment

_IDENT_CHAR = re.compile(r"[A-Za-z0-9_-]")
_TOKEN_CHAR = re.compile(r"[A-Za-z0-9_.-]")
_TAG_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9._-]*$")
_PERCENT_RUN = re.compile(r"(?:%[0-9A-Fa-f]{2})+")
_QUOTED = re.compile(r'"([^"]*)"')
_SEMICOLON_PROPERTY = re.compile(r'(\w+)\s*:\s*("[^"]*")(?!;)')
_TOP_LEVEL_PROP = re.compile(r"\s*([a-zA-Z_][\w\-.]*)\s*:")
_HANDLER_TAG = re.compile(r"^on[A-Za-z0-9_]+$")
_READY_LIFECYCLE_NAMES = frozenset({"onready", "onload", "onloaded"})
_CLASS_TOKEN = re.compile(r"^[A-Za-z_][\w-]*$")
_DOTTED_CLASS = re.compile(r"\.([A-Za-z_][\w-]*)")

# Characters left alone by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


def identifierChar_is(ch: str) -> bool:
    return bool(ch) and bool(_IDENT_CHAR.match(ch))


def keyword_findStandalone(text: str, keyword: str, start: int = 0) -> int:
    """
    Find keyword where it is not part of a longer identifier.

    Identifier characters are letters, digits, '_' and '-', so "q-script"
    is not found inside "my-q-script" or "q-scripts".

    Returns:
        Index of the keyword, or -1
    """
    if not keyword:
        return -1
    pos = max(0, start)
    while pos < len(text):
        idx = text.find(keyword, pos)
        if idx == -1:
            return -1
        before = text[idx - 1] if idx > 0 else ""
        after = text[idx + len(keyword)] if idx + len(keyword) < len(text) else ""
        if identifierChar_is(before) or identifierChar_is(after):
            pos = idx + len(keyword)
            continue
        return idx
    return -1


def token_extractBefore(text: str, index: int) -> str:
    """
    Return the tag-like token ending just before index, skipping whitespace.

    Example:
        >>> token_extractBefore("div.card {", 9)
        'div.card'
    """
    end = min(len(text), max(0, index)) - 1
    while end >= 0 and text[end].isspace():
        end -= 1
    if end < 0 or not _TOKEN_CHAR.match(text[end]):
        return ""
    start = end
    while start >= 0 and _TOKEN_CHAR.match(text[start]):
        start -= 1
    return text[start + 1:end + 1].strip()


def brace_findNearestOpen(text: str, index: int) -> int:
    """Index of the innermost '{' still open at index, or -1 at top level"""
    depth = 0
    for i in range(min(len(text), max(0, index)) - 1, -1, -1):
        ch = text[i]
        if ch == "}":
            depth += 1
        elif ch == "{":
            if depth == 0:
                return i
            depth -= 1
    return -1


def brace_findMatching(text: str, open_idx: int) -> int:
    """
    Find the '}' matching the '{' at open_idx using plain depth tracking.

    Returns:
        Index of the matching '}', or -1 when the input ends first

    Example:
        For "a { b { } }" and open_idx=2 returns 10.
        Depth tracking: {1 b {2 }1 }0
    """
    depth = 0
    for i in range(open_idx, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def brace_findMatchingLiteral(text: str, open_idx: int) -> int:
    """
    Find the '}' matching the '{' at open_idx, skipping script literals.

    Braces inside '...', "...", `...` strings and inside # line comments do
    not count. Used for q-script bodies, which hold script source.

    Returns:
        Index of the matching '}', or -1
    """
    depth = 0
    quote_char = ""
    escaped = False
    in_comment = False
    i = open_idx
    while i < len(text):
        ch = text[i]
        if in_comment:
            if ch in "\r\n":
                in_comment = False
        elif quote_char:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote_char:
                quote_char = ""
        elif ch == "#":
            in_comment = True
        elif ch in "'\"`":
            quote_char = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
            if depth < 0:
                return -1
        i += 1
    return -1


def tag_parseClasses(tag: str) -> Tuple[str, List[str]]:
    """
    Split "base.class1.class2" into its base tag and classes.

    Example:
        >>> tag_parseClasses("div.card.wide")
        ('div', ['card', 'wide'])
    """
    trimmed = (tag or "").strip()
    if not trimmed:
        return "", []
    parts = [part for part in trimmed.split(".") if part]
    if not parts:
        return "", []
    return parts[0], parts[1:]


def tagName_isValid(name: str) -> bool:
    return bool(_TAG_NAME.match((name or "").strip()))


def classNames_merge(existing: str, incoming: str) -> str:
    """Ordered set union of two class attribute values"""
    merged: List[str] = []
    for cls in (existing or "").split() + (incoming or "").split():
        if cls not in merged:
            merged.append(cls)
    return " ".join(merged)


def classTokens_parse(value: str) -> List[str]:
    """
    Class names supplied to a class slot.

    ".a .b" style tokens are used when present; otherwise the text is split
    on whitespace and commas and every identifier-like piece is kept.

    Example:
        >>> classTokens_parse('"primary, wide"')
        ['primary', 'wide']
    """
    text = string_decodeIfNeeded(value or "").replace('"', " ")
    tokens = _DOTTED_CLASS.findall(text)
    if not tokens:
        tokens = [piece for piece in re.split(r"[\s,]+", text) if _CLASS_TOKEN.match(piece)]
    return list(dict.fromkeys(tokens))


def classSlotMarker_make(slot_name: str) -> str:
    """Marker class standing in for a class slot until its content is known"""
    normalized = re.sub(r"[^a-z0-9_-]+", "-", (slot_name or "").strip().lower()).strip("-")
    return f"qhtml-slot-{normalized}" if normalized else ""


def props_stripTopLevel(content: str, names: Sequence[str]) -> str:
    """
    Remove "name: value;" properties found at depth 0 of a block body.

    Nested blocks are left untouched. The result is trimmed.
    """
    if not names:
        return content
    wanted = set(names)
    out: List[str] = []
    depth = 0
    i = 0
    n = len(content)
    while i < n:
        ch = content[i]
        if ch == "{":
            depth += 1
            out.append(ch)
            i += 1
            continue
        if ch == "}":
            depth = max(0, depth - 1)
            out.append(ch)
            i += 1
            continue
        if depth > 0:
            out.append(ch)
            i += 1
            continue
        match = _TOP_LEVEL_PROP.match(content, i)
        if match and match.group(1) in wanted:
            j = match.end()
            while j < n and content[j].isspace():
                j += 1
            if j < n and content[j] == '"':
                j += 1
                while j < n:
                    if content[j] == '"' and content[j - 1] != "\\":
                        j += 1
                        break
                    j += 1
            while j < n and content[j].isspace():
                j += 1
            if j < n and content[j] == ";":
                j += 1
            i = j
            continue
        out.append(ch)
        i += 1
    return "".join(out).strip()


def invocation_find(
    text: str, tag_id: str, start: int = 0, allow_classes: bool = False
) -> Optional[TagInvocation]:
    """
    Find the next "tag_id { ... }" invocation at or after start.

    The id must not be preceded by an identifier character or a dot. With
    allow_classes, "tag_id.extra.classes { ... }" matches as well.

    Returns:
        TagInvocation, or None when no complete invocation remains
    """
    suffix = r"(?:\.[A-Za-z0-9_-]+)*" if allow_classes else ""
    pattern = re.compile(rf"(?<![\w.-])({re.escape(tag_id)}{suffix})\s*\{{")
    match = pattern.search(text, max(0, start))
    if not match:
        return None
    brace_open = match.end() - 1
    tag_start = match.start(1)
    brace_close = brace_findMatching(text, brace_open)
    if brace_close == -1:
        return None
    return TagInvocation(
        tag_start=tag_start, brace_open=brace_open, brace_close=brace_close, tag_token=match.group(1)
    )


def segments_splitTopLevel(body: str) -> List[TopLevelSegment]:
    """
    Split a block body into its top-level "tag { ... }" items.

    Properties ("name: value;") and blocks without a tag are skipped.
    Scanning stops at the first token that cannot be completed.
    """
    segments: List[TopLevelSegment] = []
    i = 0
    n = len(body)
    while i < n:
        while i < n and body[i].isspace():
            i += 1
        if i >= n:
            break
        j = i
        while j < n and body[j] not in "{:":
            j += 1
        token = body[i:j].strip()
        if not token:
            # a body block following a tag.slot placeholder
            close = brace_findMatching(body, j) if j < n and body[j] == "{" else -1
            if close == -1:
                break
            i = close + 1
            continue
        if j < n and body[j] == "{":
            close = brace_findMatching(body, j)
            if close == -1:
                break
            segments.append(TopLevelSegment(
                tag=token, block=f"{token} {body[j:close + 1]}", start=i, brace_open=j, brace_close=close
            ))
            i = close + 1
        else:
            semi = body.find(";", j)
            if semi == -1:
                break
            i = semi + 1
    return segments


def blocks_removeNested(text: str) -> str:
    """Keep only the characters at depth 0"""
    out: List[str] = []
    depth = 0
    for ch in text:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        elif depth == 0:
            out.append(ch)
    return "".join(out)


def comments_strip(text: str) -> str:
    """Remove /* ... */ comments that are not inside '...' or "..." strings"""
    out: List[str] = []
    in_single = False
    in_double = False
    escaped = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if not in_single and not in_double and ch == "/" and i + 1 < n and text[i + 1] == "*":
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == "'" and not in_double:
            in_single = not in_single
    return "".join(out)


def properties_addSemicolons(text: str) -> str:
    """Terminate 'name: "value"' properties that lack a semicolon"""
    return _SEMICOLON_PROPERTY.sub(r"\1: \2;", text)


def uriComponent_encode(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def strings_encodeQuoted(text: str) -> str:
    """
    Percent-encode the contents of every "..." string.

    Encoded values carry no braces, colons or semicolons, so the structural
    scanners can ignore quoting entirely afterwards.

    Example:
        >>> strings_encodeQuoted('title: "a {b}";')
        'title: "a%20%7Bb%7D";'
    """
    return _QUOTED.sub(lambda m: f'"{uriComponent_encode(m.group(1))}"', text)


def _percentRun_decode(match: 're.Match[str]') -> str:
    chunk = match.group(0)
    try:
        return unquote_to_bytes(chunk).decode("utf-8")
    except UnicodeDecodeError:
        return chunk


def string_decodeIfNeeded(value: str) -> str:
    """Decode every run of %XX escapes; runs that are not valid UTF-8 stay as they are"""
    text = "" if value is None else str(value)
    if "%" not in text:
        return text
    return _PERCENT_RUN.sub(_percentRun_decode, text)


def strings_decodeQuoted(text: str) -> str:
    """Inverse of strings_encodeQuoted(): decode only inside "..." strings"""
    return _QUOTED.sub(lambda m: f'"{string_decodeIfNeeded(m.group(1))}"', text)


def propString_escape(value: str) -> str:
    return str(value or "").replace("\\", "\\\\").replace('"', '\\"')


def attributes_serialize(attributes: Dict[str, str]) -> str:
    """Render an attribute map as 'name: "value";' lines"""
    lines = []
    for name, value in attributes.items():
        prop = str(name or "").strip()
        if prop:
            lines.append(f'{prop}: "{propString_escape(value)}";')
    return "\n".join(lines)


def block_indent(source: str, prefix: str = "  ") -> str:
    return "\n".join(f"{prefix}{line}" for line in str(source or "").split("\n"))


def snippet_looksLikeQHtml(value: str) -> bool:
    """True for text shaped like "tag { ... }" and not like HTML markup"""
    text = str(value or "").strip()
    if not text:
        return False
    if re.search(r"<[A-Za-z!/]", text):
        return False
    return bool(re.search(r"[A-Za-z0-9_.-]+\s*\{", text))


def handlerTag_toSignalName(tag: str) -> str:
    """
    Map an "onX" block tag to the signal name it handles.

    Example:
        >>> handlerTag_toSignalName("onStateChanged")
        'stateChanged'
    """
    tag = (tag or "").strip()
    if not _HANDLER_TAG.match(tag) or len(tag) <= 2:
        return ""
    suffix = tag[2:]
    return suffix[0].lower() + suffix[1:]


def signalName_toHandlerProperty(name: str) -> str:
    """Inverse of handlerTag_toSignalName(), e.g. stateChanged → onStateChanged"""
    name = (name or "").strip()
    if not name:
        return ""
    return f"on{name[0].upper()}{name[1:]}"


def handlerTag_is(tag: str) -> bool:
    return bool(_HANDLER_TAG.match((tag or "").strip()))


def readyLifecycle_is(name: str) -> bool:
    return (name or "").strip().lower() in _READY_LIFECYCLE_NAMES
