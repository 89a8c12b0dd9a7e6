"""
Component signals

A component declares signals with `q-signal name(params);`. Each installed
component host gets one Signal object per declaration, reachable as
`host.signals[name]` and as an attribute (`this.stateChanged`).

Emitting a signal calls, in order:
    1. every listener added with add() or connect(), in registration order
    2. the host's on<Name> handler, when one is set
    3. the host's event listeners for the signal name

Example:
    q-component counter-box {
        q-signal changed(value);
        onChanged { this.attribute_set("data-value", str(value)) }
        button { onClick { this.component.changed.emit(1) } }
    }
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..models.definitions import SignalDecl, SignalHandlerDecl
from ..models.errors import ScriptSecurityError
from ..models.nodes import Element
from .context import thisContext_apply
from .evaluator import ExpressionEvaluator
from .log import LOG, componentLogger
from .scanner import signalName_toHandlerProperty, strings_decodeQuoted

SIGNAL_PARAM = re.compile(r"^[A-Za-z_]\w*$")

Listener = Callable[..., Any]


class Signal:
    """
    Named emission point of one component host

    Attributes:
        name: Declared signal name
        params: Declared parameter names
        host: Element the signal belongs to
        component_id: Id used when logging listener failures
        listeners: add()ed listeners and connect() forwarders, in registration order
        connections: (target, forwarder) pairs created by connect()
        handler_keys: Keys of declared handlers already installed on this signal
    """

    def __init__(
        self,
        name: str,
        params: Optional[Iterable[str]] = None,
        host: Optional[Element] = None,
        component_id: str = "",
    ) -> None:
        self.name = name
        self.params: List[str] = list(params or [])
        self.host = host
        self.component_id = component_id
        self.listeners: List[Listener] = []
        self.connections: List[Tuple[Any, Listener]] = []
        self.handler_keys: Set[str] = set()

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, params={self.params!r}, listeners={len(self.listeners)})"

    def __call__(self, *args: Any) -> 'Signal':
        return self.emit(*args)

    def emit(self, *args: Any) -> 'Signal':
        """Call listeners, then the host handler, then host event listeners"""
        for listener in list(self.listeners):
            restore = thisContext_apply(self.host)
            try:
                listener(*args)
            except Exception as e:
                componentLogger.error(self.component_id, f'Signal listener for "{self.name}" failed: {e}')
            finally:
                restore()
        if self.host is None:
            return self
        handler = self.host.handlers.get(signalName_toHandlerProperty(self.name).lower())
        if handler is not None and handler is not self:
            handler(self.host, {"type": self.name, "signal": self.name, "args": list(args)})
        try:
            self.host.event_dispatch(self.name, {"signal": self.name, "args": list(args)})
        except Exception as e:
            LOG(f'Event dispatch for signal "{self.name}" failed: {e}', level=2)
        return self

    def connect(self, target: Any) -> 'Signal':
        """
        Forward every emission to target (a Signal or any callable).

        Connecting the same target twice, or a signal to itself, does nothing.
        """
        if target is self or not callable(target):
            return self
        if any(existing is target for existing, _ in self.connections):
            return self

        def forwarder(*args: Any) -> Any:
            return target(*args)

        self.connections.append((target, forwarder))
        self.listeners.append(forwarder)
        return self

    def disconnect(self, target: Any = None) -> 'Signal':
        """Remove the forwarder for target; without target remove all forwarders"""
        kept: List[Tuple[Any, Listener]] = []
        for existing, forwarder in self.connections:
            if target is None or existing is target:
                self.listeners = [fn for fn in self.listeners if fn is not forwarder]
            else:
                kept.append((existing, forwarder))
        self.connections = kept
        return self

    def add(self, listener: Listener) -> 'Signal':
        if callable(listener) and not any(fn is listener for fn in self.listeners):
            self.listeners.append(listener)
        return self

    def remove(self, listener: Listener) -> 'Signal':
        self.listeners = [fn for fn in self.listeners if fn is not listener]
        return self

    def clear(self) -> None:
        """Drop every listener and forwarder; used on teardown"""
        self.listeners.clear()
        self.connections.clear()
        self.handler_keys.clear()


def signalParams_parse(source: str, component_id: str = "", signal_name: str = "") -> List[str]:
    """
    Split a q-signal parameter list into unique identifiers.

    Invalid names are warned about and dropped.

    Example:
        >>> signalParams_parse("a, b, a, 1x")
        ['a', 'b']
    """
    params: List[str] = []
    for item in str(source or "").split(","):
        name = item.strip()
        if not name:
            continue
        if not SIGNAL_PARAM.match(name):
            componentLogger.warn(component_id, f'Signal "{signal_name}" ignores invalid parameter "{name}".')
            continue
        if name not in params:
            params.append(name)
    return params


def _handler_bind(fn: Callable[..., Any], host: Element, param_count: int) -> Listener:
    def listener(*args: Any) -> Any:
        values = (list(args) + [None] * param_count)[:param_count]
        return fn(host, *values)

    return listener


def signals_ensure(
    host: Element,
    decls: Iterable[SignalDecl],
    handler_decls: Iterable[SignalHandlerDecl],
    component_id: str,
    evaluator: ExpressionEvaluator,
    namespace: Optional[Dict[str, Any]] = None,
) -> Dict[str, Signal]:
    """
    Create the declared signals on host and install declared handlers.

    Safe to call repeatedly: existing signals are kept and each handler,
    identified by (signal, params, body), is installed once.

    Returns:
        host.signals
    """
    for decl in decls:
        if decl.name and decl.name not in host.signals:
            host.signals[decl.name] = Signal(decl.name, decl.params, host, component_id)
    by_lower = {name.lower(): signal for name, signal in host.signals.items()}
    for handler_decl in handler_decls:
        signal = by_lower.get(handler_decl.signal_name.lower())
        if signal is None or not handler_decl.body.strip():
            continue
        if handler_decl.key in signal.handler_keys:
            continue
        try:
            fn = evaluator.function_compile(
                handler_decl.params,
                strings_decodeQuoted(handler_decl.body),
                f"signal:{signal.name}",
                namespace,
            )
        except (SyntaxError, ScriptSecurityError) as e:
            componentLogger.error(component_id, f'Failed to compile signal handler for "{signal.name}": {e}')
            continue
        signal.add(_handler_bind(fn, host, len(signalParams_parse(handler_decl.params))))
        signal.handler_keys.add(handler_decl.key)
    return host.signals
