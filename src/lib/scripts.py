"""
q-script evaluation pass

A q-script block is a script body embedded in markup:

    span { q-script { 1 + 1 } }

Each block is executed through the ExpressionEvaluator and replaced by the
string form of its result, so the result becomes markup for the passes that
follow. The text handled here is quote-encoded (strings_encodeQuoted), so the
body is decoded before it runs and the result encoded again before it is
spliced back.

The pass runs twice per compile: once with top_level_only set before macro
expansion (no element exists yet; `this` is the ScriptContext describing the
enclosing tag), and once per element body while the node tree is built
(`this` is the live element).
"""

import re
from typing import Any, Dict, Optional

from ..config import AppSettings, appsettings
from ..models.definitions import ScriptContext
from .context import thisContext_apply
from .evaluator import ExpressionEvaluator
from .log import LOG, componentLogger
from .scanner import (
    brace_findMatchingLiteral,
    brace_findNearestOpen,
    keyword_findStandalone,
    snippet_looksLikeQHtml,
    strings_decodeQuoted,
    strings_encodeQuoted,
    tag_parseClasses,
    token_extractBefore,
)

SCRIPT_KEYWORD = "q-script"

_PROPERTY_SHAPED = re.compile(r"^[A-Za-z_][\w\-.]*\s*:")


class ScriptEvaluator:
    """
    Finds q-script blocks and substitutes their results

    Args:
        evaluator: ExpressionEvaluator running the bodies
        settings: Pass ceiling (script_max_passes)
        namespace: Extra names visible to every body
    """

    def __init__(
        self,
        evaluator: ExpressionEvaluator,
        settings: Optional[AppSettings] = None,
        namespace: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.evaluator = evaluator
        self.settings = settings or appsettings
        self.namespace: Dict[str, Any] = namespace if namespace is not None else {}

    def context_build(self, text: str, script_start: int, brace_open: int, brace_close: int) -> ScriptContext:
        """
        Describe the block enclosing a q-script.

        The tag token is the one before the nearest enclosing '{'; at top
        level it is whatever token precedes the q-script keyword.
        """
        parent_open = brace_findNearestOpen(text, script_start)
        token = token_extractBefore(text, parent_open) if parent_open != -1 else ""
        if not token:
            token = token_extractBefore(text, script_start)
        base, classes = tag_parseClasses(token)
        return ScriptContext(
            tag=base or token,
            tag_token=token,
            classes=classes,
            parent_brace_open=parent_open,
            script_start=script_start,
            brace_open=brace_open,
            brace_close=brace_close,
        )

    def block_execute(self, body: str, context: ScriptContext, this: Any = None) -> str:
        """
        Run one q-script body and return its text.

        Failures and None results are logged against the enclosing tag and
        produce ''.
        """
        bound = this if this is not None else context
        restore = thisContext_apply(this) if this is not None else (lambda: None)
        try:
            result = self.evaluator.evaluate(strings_decodeQuoted(body), bound, self.namespace)
        except Exception as e:
            componentLogger.error(context.tag, f"q-script execution failed: {e}")
            return ""
        finally:
            restore()
        if result is None:
            componentLogger.warn(context.tag, "q-script returned undefined; replacing block with empty output.")
            return ""
        return str(result)

    @staticmethod
    def _primitive_wrapAsText(text: str, start: int, close: int, replacement: str) -> str:
        result = replacement.strip()
        if not result:
            return replacement
        if snippet_looksLikeQHtml(result) or _PROPERTY_SHAPED.match(result):
            return replacement
        following = text[close + 1:].lstrip()
        preceding = text[:start].rstrip()
        if following.startswith("{") or preceding.endswith(":"):
            return replacement
        return f"text {{{result}}}"

    def scripts_evaluate(
        self,
        text: str,
        top_level_only: bool = False,
        this: Any = None,
        wrap_primitive_top_level: bool = False,
    ) -> str:
        """
        Replace q-script blocks in text by their results until none change.

        Args:
            text: Quote-encoded qHTML
            top_level_only: Skip blocks nested inside any '{'
            this: Live element bound as `this`; None binds the ScriptContext
            wrap_primitive_top_level: Wrap plain results at top level in text { }

        Returns:
            Text with every reachable q-script block replaced

        Example:
            >>> scripts.scripts_evaluate('p { q-script { "a" * 3 } }')
            'p { aaa }'
        """
        out = str(text or "")
        max_passes = self.settings.script_max_passes
        for _ in range(max_passes):
            changed = False
            pos = 0
            while True:
                start = keyword_findStandalone(out, SCRIPT_KEYWORD, pos)
                if start == -1:
                    break
                brace_open = start + len(SCRIPT_KEYWORD)
                while brace_open < len(out) and out[brace_open].isspace():
                    brace_open += 1
                if brace_open >= len(out) or out[brace_open] != "{":
                    pos = start + len(SCRIPT_KEYWORD)
                    continue
                brace_close = brace_findMatchingLiteral(out, brace_open)
                if brace_close == -1:
                    componentLogger.error("", "q-script block is missing a closing brace.")
                    return out
                context = self.context_build(out, start, brace_open, brace_close)
                if top_level_only and context.parent_brace_open != -1:
                    pos = start + len(SCRIPT_KEYWORD)
                    continue
                body = out[brace_open + 1:brace_close]
                replacement = strings_encodeQuoted(self.block_execute(body, context, this))
                if wrap_primitive_top_level and context.parent_brace_open == -1:
                    replacement = self._primitive_wrapAsText(out, start, brace_close, replacement)
                LOG(f"q-script in '{context.tag_token}' resolved to {replacement!r}", level=3)
                out = out[:start] + replacement + out[brace_close + 1:]
                pos = start + len(replacement)
                changed = True
            if not changed:
                return out
        componentLogger.warn(
            "", f"q-script evaluation stopped after {max_passes} passes; unresolved q-script blocks may remain."
        )
        return out
