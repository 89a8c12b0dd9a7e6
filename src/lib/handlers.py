"""
Inline event handlers and lifecycle hooks

onX { ... } blocks and onX: { ... } properties on an element compile into
handlers stored on Element.handlers. Bodies are compiled once per distinct
body text, so a component used a hundred times compiles its handlers once.

onReady / onLoad / onLoaded blocks are not handlers: they are queued on the
element while its body is built and flushed right after its children exist.
"""

from typing import Any, Callable, Dict, Optional

from ..models.errors import ScriptSecurityError
from ..models.nodes import Element
from .context import thisContext_apply
from .evaluator import ExpressionEvaluator
from .log import LOG, componentLogger
from .scanner import strings_decodeQuoted

HandlerFn = Callable[..., Any]


class HandlerCache:
    """
    Compiled handler bodies keyed by body text

    A body that fails to compile is logged once and cached as None.
    """

    def __init__(self, evaluator: ExpressionEvaluator, namespace: Optional[Dict[str, Any]] = None) -> None:
        self.evaluator = evaluator
        self.namespace: Dict[str, Any] = namespace if namespace is not None else {}
        self.compiled: Dict[str, Optional[HandlerFn]] = {}

    def __len__(self) -> int:
        return len(self.compiled)

    def body_compile(self, body: str, label: str = "handler") -> Optional[HandlerFn]:
        """Compiled function (this, event) for body, or None when it does not compile"""
        if body in self.compiled:
            return self.compiled[body]
        try:
            fn: Optional[HandlerFn] = self.evaluator.function_compile(
                "event=None", strings_decodeQuoted(body), label, self.namespace
            )
        except (SyntaxError, ScriptSecurityError) as e:
            componentLogger.error("", f"Failed to compile inline event handler {label}: {e}")
            fn = None
        self.compiled[body] = fn
        return fn

    def handler_make(self, body: str, name: str) -> Optional[HandlerFn]:
        """
        Build the handler stored under Element.handlers[name.lower()].

        The returned callable takes (this, event=None). Errors raised by the
        body are logged and the call returns None.
        """
        if not body.strip():
            return None
        fn = self.body_compile(body, name)
        if fn is None:
            return None

        def handler(this: Any, event: Any = None) -> Any:
            restore = thisContext_apply(this)
            try:
                return fn(this, event)
            except Exception as e:
                componentLogger.error("", f"Error executing event handler for {name}: {e}")
                return None
            finally:
                restore()

        handler.__qualname__ = f"handler[{name}]"
        return handler


def readyHook_queue(element: Element, body: str) -> None:
    body = str(body or "").strip("\r\n")
    if body.strip():
        element.ready_hooks.append(body)


def readyHooks_flush(element: Element, cache: HandlerCache, fallback_this: Any = None) -> None:
    """
    Run and clear the lifecycle hooks queued on element.

    Hooks run in queue order with `this` bound to fallback_this (or the
    element). A failing hook is logged and the remaining hooks still run.
    """
    if not element.ready_hooks:
        return
    queued = list(element.ready_hooks)
    element.ready_hooks.clear()
    bound = fallback_this if fallback_this is not None else element
    for body in queued:
        fn = cache.body_compile(body, "onReady")
        if fn is None:
            continue
        restore = thisContext_apply(bound)
        try:
            fn(bound, None)
        except Exception as e:
            componentLogger.error("", f"Failed to execute onReady/onLoad lifecycle block: {e}")
        finally:
            restore()
    LOG(f"Flushed {len(queued)} lifecycle hook(s) on <{element.tag}>", level=3)
