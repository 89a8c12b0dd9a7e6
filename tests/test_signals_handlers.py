"""
Signals, handlers, lifecycle hooks and the component registry

Tests the runtime pieces a component host is wired with, independently
of the compiler.
"""

from qhtml.lib.context import thisContext_apply
from qhtml.lib.evaluator import PythonEvaluator
from qhtml.lib.handlers import HandlerCache, readyHook_queue, readyHooks_flush
from qhtml.lib.log import diagnostics_capture
from qhtml.lib.registry import ComponentRegistry
from qhtml.lib.signals import Signal, signalParams_parse, signals_ensure
from qhtml.models.definitions import Definition, DefinitionKind, SignalDecl, SignalHandlerDecl
from qhtml.models.nodes import Element


class TestSignalEmit:
    """Emission order and listener management"""

    def test_emit_order(self):
        """Listeners, then the host handler, then host event listeners"""
        calls = []
        host = Element(tag="x-box")
        signal = Signal("changed", ["value"], host, "x-box")
        signal.add(lambda value: calls.append(("listener", value)))
        host.handlers["onchanged"] = lambda this, event: calls.append(("handler", event["args"]))
        host.event_listen("changed", lambda event: calls.append(("event", event["detail"]["args"])))

        signal.emit(1)

        assert calls == [("listener", 1), ("handler", [1]), ("event", [1])]

    def test_call_is_emit(self):
        calls = []
        signal = Signal("ping")
        signal.add(lambda: calls.append("ping"))
        signal()
        assert calls == ["ping"]

    def test_add_twice_registers_once(self):
        calls = []

        def listener(value):
            calls.append(value)

        signal = Signal("changed")
        signal.add(listener).add(listener)
        signal.emit(3)
        assert calls == [3]
        signal.remove(listener)
        signal.emit(4)
        assert calls == [3]

    def test_connect_forwards(self):
        received = []
        source = Signal("a")
        target = Signal("b")
        target.add(lambda value: received.append(value))

        source.connect(target).connect(target).connect(source)
        source.emit("x")
        assert received == ["x"]

        source.disconnect(target)
        source.emit("y")
        assert received == ["x"]

    def test_failing_listener_is_logged(self):
        calls = []

        def broken(value):
            raise RuntimeError("boom")

        signal = Signal("changed", component_id="x-box")
        signal.add(broken).add(lambda value: calls.append(value))
        with diagnostics_capture() as diagnostics:
            signal.emit(1)
        assert calls == [1]
        assert diagnostics.messages("error") == ['Signal listener for "changed" failed: boom']

    def test_clear(self):
        signal = Signal("changed")
        signal.add(lambda: None)
        signal.clear()
        assert signal.listeners == []


class TestSignalDeclarations:
    """Parameter parsing and installation from declarations"""

    def test_params_parse(self):
        with diagnostics_capture() as diagnostics:
            params = signalParams_parse("a, b, a, 1x", "x-box", "changed")
        assert params == ["a", "b"]
        assert diagnostics.messages("warn") == ['Signal "changed" ignores invalid parameter "1x".']

    def test_signals_ensure_installs_handlers_once(self):
        host = Element(tag="x-box")
        decls = [SignalDecl("changed", ["value"])]
        handlers = [SignalHandlerDecl("changed", "value", "this.attribute_set('data-value', str(value))")]
        evaluator = PythonEvaluator()

        signals_ensure(host, decls, handlers, "x-box", evaluator)
        signals_ensure(host, decls, handlers, "x-box", evaluator)

        assert list(host.signals) == ["changed"]
        assert len(host.signals["changed"].listeners) == 1
        host.changed.emit(5)
        assert host.attribute_get("data-value") == "5"

    def test_handler_for_unknown_signal_ignored(self):
        host = Element(tag="x-box")
        signals_ensure(host, [], [SignalHandlerDecl("missing", "", "1")], "x-box", PythonEvaluator())
        assert host.signals == {}


class TestHandlerCache:
    """Inline handler compilation"""

    def setup_method(self):
        self.cache = HandlerCache(PythonEvaluator())

    def test_handler_runs_with_this_and_event(self):
        element = Element(tag="button")
        element.handlers["onclick"] = self.cache.handler_make("this.attribute_set('data-x', event)", "onClick")
        element.handler_invoke("onClick", "1")
        assert element.attribute_get("data-x") == "1"

    def test_body_compiled_once(self):
        self.cache.handler_make("x = 1", "onClick")
        self.cache.handler_make("x = 1", "onInput")
        assert len(self.cache) == 1

    def test_empty_body(self):
        assert self.cache.handler_make("   ", "onClick") is None

    def test_compile_failure(self):
        with diagnostics_capture() as diagnostics:
            handler = self.cache.handler_make("x = = 1", "onClick")
        assert handler is None
        assert diagnostics.messages("error")[0].startswith("Failed to compile inline event handler onClick:")

    def test_runtime_failure(self):
        handler = self.cache.handler_make("1 / 0", "onClick")
        with diagnostics_capture() as diagnostics:
            assert handler(Element()) is None
        assert diagnostics.messages("error") == ["Error executing event handler for onClick: division by zero"]


class TestReadyHooks:
    """onReady bodies queued on an element"""

    def test_flush_runs_and_clears(self):
        cache = HandlerCache(PythonEvaluator())
        element = Element(tag="div")
        readyHook_queue(element, "this.attribute_set('ready', '1')")
        readyHook_queue(element, "   ")
        assert len(element.ready_hooks) == 1

        readyHooks_flush(element, cache)
        assert element.attribute_get("ready") == "1"
        assert element.ready_hooks == []

    def test_failing_hook_does_not_stop_others(self):
        cache = HandlerCache(PythonEvaluator())
        element = Element(tag="div")
        readyHook_queue(element, "1 / 0")
        readyHook_queue(element, "this.attribute_set('after', 'yes')")
        with diagnostics_capture() as diagnostics:
            readyHooks_flush(element, cache)
        assert element.attribute_get("after") == "yes"
        assert diagnostics.messages("error") == [
            "Failed to execute onReady/onLoad lifecycle block: division by zero"
        ]

    def test_fallback_this(self):
        cache = HandlerCache(PythonEvaluator())
        element = Element(tag="q-snippet")
        host = Element(tag="x-box")
        readyHook_queue(element, "this.attribute_set('seen', this.tag)")
        readyHooks_flush(element, cache, fallback_this=host)
        assert host.attribute_get("seen") == "x-box"


class TestThisContext:
    """Temporary parent/slot/component aliases"""

    def test_aliases_applied_and_restored(self):
        host = Element(tag="x-card", attributes={"q-component": "x-card"})
        into = Element(tag="q-into", attributes={"slot": "body"})
        child = Element(tag="p")
        host.child_append(into)
        into.child_append(child)

        restore = thisContext_apply(child)
        assert child.component is host
        assert child.slot is into
        restore()
        assert "component" not in vars(child)
        assert "slot" not in vars(child)

    def test_none_target(self):
        thisContext_apply(None)()


class TestRegistry:
    """Definitions keyed by lower-cased id"""

    def test_register_and_lookup(self):
        registry = ComponentRegistry()
        registry.register(Definition(kind=DefinitionKind.COMPONENT, id="My-Card"))
        assert "my-card" in registry
        assert registry.get("MY-CARD").id == "My-Card"
        assert registry.ids_list() == ["My-Card"]

    def test_later_definition_wins(self):
        registry = ComponentRegistry()
        registry.register(Definition(kind=DefinitionKind.COMPONENT, id="x-card", template_source="a"))
        registry.register(Definition(kind=DefinitionKind.TEMPLATE, id="x-card", template_source="b"))
        assert len(registry) == 1
        assert registry.get("x-card").template_source == "b"

    def test_instance_keys(self):
        registry = ComponentRegistry()
        assert registry.instanceKey_next("My Card") == "my-card-1"
        assert registry.instanceKey_next("My Card") == "my-card-2"

    def test_instance_handlers(self):
        registry = ComponentRegistry()
        handler = SignalHandlerDecl("changed", "", "1")
        registry.instanceHandlers_store("x-1", [handler])
        registry.instanceHandlers_store("x-2", [])
        assert registry.instanceHandlers_get("x-1") == [handler]
        assert registry.instanceHandlers_get("x-2") == []
