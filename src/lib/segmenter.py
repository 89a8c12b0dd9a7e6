"""
Segmenter for qHTML block bodies

Turns one balanced, quote-encoded block body into a flat ordered list of
typed Segments. Nested blocks are not descended into: an ELEMENT segment
carries its inner text, which the node builder segments again once the
element exists.

The scan is a single index-advancing loop. A token is read up to the next
'{' or ':' at depth 0:

    tag { ... }        html / css / text / style / onX / function / element
    name: value;       PROPERTY (value runs to ';', or to the end of input)
    name: { body }     PROPERTY with is_function set
    "a string"         TEXT, when it is all that is left of the body

Example:
    >>> [s.kind.value for s in segments_extract('color: red; p { hi } text { x }')]
    ['property', 'element', 'text']
"""

import re
from typing import List

from ..models.segments import Segment, SegmentKind
from .scanner import brace_findMatching, handlerTag_is, readyLifecycle_is

_FUNCTION_DEF = re.compile(r"^function\s+[A-Za-z_$][\w$]*\s*\([^)]*\)$")
_BARE_STRING = re.compile(r'^"([^"]*)"$')

_BLOCK_KINDS = {
    "html": SegmentKind.RAW_MARKUP,
    "css": SegmentKind.RAW_STYLE,
    "text": SegmentKind.TEXT,
    "style": SegmentKind.STYLE_BLOCK,
}


def handler_sanitize(body: str) -> str:
    """
    Normalize whitespace in a handler body without touching string literals.

    Outside '...', "..." and `...` strings:
    - runs of blank lines collapse to a single line break
    - runs of spaces/tabs after the first non-blank character of a line collapse to one space
    - trailing whitespace is dropped
    Leading indentation is kept.
    """
    out: List[str] = []
    quote_char = ""
    escaped = False
    at_line_start = True
    pending_space = False
    pending_newline = False
    for ch in body:
        if quote_char:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote_char:
                quote_char = ""
            continue
        if ch in "\r\n":
            pending_space = False
            pending_newline = bool(out)
            at_line_start = True
            continue
        if ch in " \t\f\v":
            if at_line_start:
                if pending_newline:
                    out.append("\n")
                    pending_newline = False
                out.append(ch)
            else:
                pending_space = True
            continue
        if pending_newline:
            out.append("\n")
            pending_newline = False
        if pending_space:
            out.append(" ")
            pending_space = False
        at_line_start = False
        if ch in "'\"`":
            quote_char = ch
        out.append(ch)
    return "\n".join(line.rstrip() for line in "".join(out).split("\n") if line.strip())


def _blockSegment_make(tag: str, inner: str) -> Segment:
    if handlerTag_is(tag):
        if readyLifecycle_is(tag):
            return Segment(SegmentKind.PROPERTY, tag, inner.strip("\r\n"), is_ready_lifecycle=True)
        return Segment(SegmentKind.EVENT_BLOCK, tag, handler_sanitize(inner))
    kind = _BLOCK_KINDS.get(tag)
    if kind is not None:
        return Segment(kind, tag, inner)
    if _FUNCTION_DEF.match(tag):
        return Segment(SegmentKind.FUNCTION_DEF, tag, inner)
    return Segment(SegmentKind.ELEMENT, tag, inner.strip())


def segments_extract(text: str) -> List[Segment]:
    """
    Split a block body into segments.

    Args:
        text: Balanced, quote-encoded block body

    Returns:
        Segments in source order
    """
    segments: List[Segment] = []
    n = len(text)
    token_start = 0
    i = 0
    while i < n:
        ch = text[i]
        if ch == "{":
            tag = text[token_start:i].strip(" \t\r\n;")
            close = brace_findMatching(text, i)
            if close == -1:
                close = n
            inner = text[i + 1:close]
            if tag:
                segments.append(_blockSegment_make(tag, inner))
            i = close + 1
            token_start = i
            continue
        if ch == "}":
            # stray close at this level
            i += 1
            token_start = i
            continue
        if ch == ":":
            name = text[token_start:i].strip(" \t\r\n;")
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] == "{":
                close = brace_findMatching(text, j)
                if close == -1:
                    close = n
                body = text[j + 1:close]
                end = close + 1
                k = end
                while k < n and text[k].isspace():
                    k += 1
                if k < n and text[k] == ";":
                    end = k + 1
                if readyLifecycle_is(name):
                    segments.append(Segment(SegmentKind.PROPERTY, name, body.strip("\r\n"), is_ready_lifecycle=True))
                else:
                    segments.append(Segment(SegmentKind.PROPERTY, name, body.strip(), is_function=True))
                i = end
                token_start = i
                continue
            semi = text.find(";", j)
            end = n if semi == -1 else semi
            value = text[j:end].strip()
            if value.startswith('"'):
                value = value[1:]
            if value.endswith('"'):
                value = value[:-1]
            segments.append(Segment(SegmentKind.PROPERTY, name, value))
            i = end + 1
            token_start = i
            continue
        i += 1
    rest = text[token_start:].strip(" \t\r\n;")
    bare = _BARE_STRING.match(rest)
    if bare:
        segments.append(Segment(SegmentKind.TEXT, "", bare.group(1)))
    return segments
