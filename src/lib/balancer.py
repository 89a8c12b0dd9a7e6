"""
Brace balancer

Repairs unbalanced braces before segmentation so that every later pass can
assume each '{' has a matching '}'. The repair is permissive and total:

- a '}' that would close more blocks than are open is dropped
- every block still open at the end of input is closed by appending '}'

Braces inside double-quoted strings are not counted. After
strings_encodeQuoted() a quoted value holds no braces at all, so the result
is the same whether the balancer runs before or after encoding.

Example:
    >>> braces_balance("div { span { hi }")
    'div { span { hi }}'
    >>> braces_balance("} div { }")
    ' div { }'
"""

from typing import List


def braces_balance(text: str) -> str:
    """
    Return text with stray '}' removed and missing '}' appended.

    Always terminates and never fails. Idempotent:
    braces_balance(braces_balance(x)) == braces_balance(x).

    Args:
        text: Source text

    Returns:
        Text whose braces (outside double-quoted strings) are balanced
    """
    out: List[str] = []
    depth = 0
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                continue
            depth -= 1
        out.append(ch)
    return "".join(out) + "}" * depth


def braces_unmatched(text: str) -> int:
    """
    Count braces that have no partner (outside double-quoted strings).

    Zero for any output of braces_balance().
    """
    unmatched_close = 0
    depth = 0
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                unmatched_close += 1
            else:
                depth -= 1
    return unmatched_close + depth
