"""
Component host runtime

A component invocation compiles to a host element that carries hidden slot
carriers and an onReady block calling component_install(). Installing a
host:

    1. creates its signals and installs definition and per-invocation
       signal handlers
    2. binds its actions
    3. hydrates the template: slot placeholders become q-into anchors
       stamped with the host's instance key, and carrier content is cloned
       into the matching anchors; class slots take the class names written
       in their carriers

Carriers stay in the host (hidden), so projection can be repeated: into()
swaps a carrier and re-syncs the anchors, always replacing anchor content.
resolve_slots() flattens anchors into their parents, drops carriers and
disables the slot APIs for that host.
"""

from typing import Any, Callable, List, Optional, TYPE_CHECKING

from ..models.definitions import Definition
from ..models.errors import ScriptSecurityError
from ..models.nodes import Element, Node, RawMarkupNode
from .balancer import braces_balance
from .builder import tree_decode
from .context import thisContext_apply
from .handlers import readyHooks_flush
from .log import LOG, componentLogger
from .registry import ComponentRegistry
from .signals import signals_ensure
from .scanner import classSlotMarker_make, classTokens_parse, strings_decodeQuoted

if TYPE_CHECKING:
    from .compiler import Compiler

CARRIER_TAG = "q-into"


def _action_bind(fn: Callable[..., Any], host: Element) -> Callable[..., Any]:
    def action(*args: Any) -> Any:
        restore = thisContext_apply(host)
        try:
            return fn(host, *args)
        finally:
            restore()

    return action


def carrier_is(node: Node) -> bool:
    return (
        isinstance(node, Element)
        and node.tag == CARRIER_TAG
        and node.attribute_get("q-into-carrier") == "1"
    )


def anchor_is(node: Node) -> bool:
    return (
        isinstance(node, Element)
        and node.tag == CARRIER_TAG
        and node.attribute_get("q-slot-anchor") == "1"
    )


class ComponentRuntime:
    """
    Installs component hosts built by one Compiler

    Attributes:
        compiler: Owning compiler (registry, builder, expander, evaluator)
        hydrating: Ids of components whose templates are being hydrated,
            innermost last
    """

    def __init__(self, compiler: 'Compiler') -> None:
        self.compiler = compiler
        self.hydrating: List[str] = []

    @property
    def registry(self) -> ComponentRegistry:
        return self.compiler.registry

    def definition_get(self, host: Element) -> Optional[Definition]:
        return self.registry.get(host.attribute_get("q-component") or "")

    def component_install(self, host: Element, component_id: str, instance_key: str = "") -> Element:
        """
        Wire a host element to its component definition.

        Called from the onReady block every component invocation carries.
        Installing the same host twice only re-syncs its slots.

        Args:
            host: Host element
            component_id: Component id as written in the definition
            instance_key: Key under which per-invocation handlers are stored

        Returns:
            host
        """
        definition = self.registry.get(component_id)
        if definition is None or not definition.is_component:
            componentLogger.warn(component_id, f'Component "{component_id}" is not defined.')
            return host
        if not instance_key:
            instance_key = host.instance_key or self.registry.instanceKey_next(definition.id)
        host.runtime = self
        host.instance_key = instance_key
        if not host.attribute_has("q-component"):
            host.attribute_set("q-component", definition.id)
        signals_ensure(
            host,
            definition.signals,
            definition.signal_handlers + self.registry.instanceHandlers_get(instance_key),
            definition.id,
            self.compiler.evaluator,
            self.compiler.namespace,
        )
        self.actions_bind(host, definition)
        if self.compiler.settings.hydrate_components:
            self.template_hydrate(host, definition)
        LOG(f"Installed component '{definition.id}' as {instance_key}", level=2)
        return host

    def actions_bind(self, host: Element, definition: Definition) -> None:
        for action in definition.actions:
            if action.name in host.actions:
                continue
            try:
                fn = self.compiler.evaluator.function_compile(
                    action.params,
                    strings_decodeQuoted(action.body),
                    f"action:{action.name}",
                    self.compiler.namespace,
                )
            except (SyntaxError, ScriptSecurityError) as e:
                componentLogger.error(definition.id, f'Failed to compile action "{action.name}": {e}')
                continue
            host.actions[action.name] = _action_bind(fn, host)

    # Hydration

    def template_hydrate(self, host: Element, definition: Definition) -> None:
        """
        Build the component template into host and project carriers.

        The template is built once per host; a component that is already
        being hydrated further up is not hydrated again.
        """
        if host.hydrated:
            self.carriers_sync(host)
            return
        if definition.key in self.hydrating:
            componentLogger.warn(
                definition.id, "Component is already being hydrated by an ancestor; nested hydration skipped."
            )
            return
        self.hydrating.append(definition.key)
        try:
            self.implicitContent_normalize(host, definition)
            expander = self.compiler.expander
            source = expander.templateSlots_replace(
                definition.template_source,
                {},
                definition.id,
                warn_on_missing=False,
                preserve_anchors=True,
                anchor_owner=host.instance_key,
            )
            source = braces_balance(expander.expand(source))
            existing = list(host.children)
            self.compiler.builder.body_build(host, source)
            built = [child for child in host.children if not any(child is node for node in existing)]
            host.children = built + existing
            if not self.compiler.compiling:
                for node in built:
                    tree_decode(node)
            self.classSlots_claim(host, definition, built)
            host.hydrated = True
            readyHooks_flush(host, self.compiler.handlers)
        finally:
            self.hydrating.pop()
        self.carriers_sync(host)

    def implicitContent_normalize(self, host: Element, definition: Definition) -> None:
        """Move loose host children into a carrier for the component's single slot"""
        loose = [child for child in host.children if not carrier_is(child)]
        if not loose:
            return
        slot_name = definition.slot_info.singleSlot_get()
        if not slot_name:
            LOG(f"'{definition.id}' host keeps {len(loose)} child node(s) outside its slots", level=2)
            return
        carrier = self.carrier_make(slot_name)
        for child in loose:
            carrier.child_append(child)
        host.child_append(carrier)

    # Carriers and anchors

    @staticmethod
    def carrier_make(slot_name: str) -> Element:
        return Element(
            tag=CARRIER_TAG,
            attributes={"slot": slot_name, "q-into-carrier": "1", "style": "display: none;"},
        )

    def carriers_find(self, host: Element, slot_name: Optional[str] = None) -> List[Element]:
        """Carriers owned by host, optionally only those for one slot"""
        return [
            child for child in host.children
            if carrier_is(child) and (slot_name is None or child.attribute_get("slot") == slot_name)
        ]

    def anchors_find(self, host: Element) -> List[Element]:
        """Anchors stamped with host's instance key that are not parked inside a carrier"""
        anchors: List[Element] = []
        for element in host.elements():
            if not anchor_is(element) or element.attribute_get("q-slot-owner") != host.instance_key:
                continue
            inside_carrier = False
            current = element.parent
            while current is not None and current is not host:
                if carrier_is(current):
                    inside_carrier = True
                    break
                current = current.parent
            if not inside_carrier:
                anchors.append(element)
        return anchors

    def classSlots_claim(self, host: Element, definition: Definition, nodes: List[Node]) -> None:
        """Take qhtml-slot-<name> marker classes off freshly built template nodes"""
        slot_names = definition.slot_info.slot_names or self.compiler.expander.slotNames_collect(
            definition.template_source
        )
        markers = {classSlotMarker_make(name): name for name in slot_names}
        markers.pop("", None)
        for node in nodes:
            if not isinstance(node, Element):
                continue
            for element in [node, *node.elements()]:
                for marker in [cls for cls in element.classes if cls in markers]:
                    element.classes.remove(marker)
                    host.class_slots.setdefault(markers[marker], []).append(element)

    def carriers_sync(self, host: Element) -> None:
        """
        Replace every anchor's content with clones of its slot's carrier content,
        then swap the classes of class-slot elements for the carriers' class names.
        """
        if not host.hydrated:
            return
        for anchor in self.anchors_find(host):
            slot_name = anchor.attribute_get("slot")
            nodes = [
                child.clone()
                for carrier in self.carriers_find(host, slot_name)
                for child in carrier.children
            ]
            anchor.children_replace(nodes)
        for slot_name, targets in host.class_slots.items():
            tokens = classTokens_parse(
                " ".join(carrier.text_content() for carrier in self.carriers_find(host, slot_name))
            )
            for target in targets:
                applied = target.slot_classes.get(slot_name, [])
                target.classes = [cls for cls in target.classes if cls not in applied]
                target.class_merge(" ".join(tokens))
                target.slot_classes[slot_name] = tokens

    # Host API

    def slotsResolved_warn(self, host: Element, api: str) -> bool:
        if host.attribute_get("q-slots-resolved") != "true":
            return False
        componentLogger.warn(
            host.attribute_get("q-component") or "",
            f'{api}() is disabled for this component because q-slots-resolved="true".',
        )
        return True

    def slotNames_list(self, host: Element) -> List[str]:
        if self.slotsResolved_warn(host, "slots"):
            return []
        definition = self.definition_get(host)
        if definition is None:
            return []
        if definition.slot_info.slot_names:
            return list(definition.slot_info.slot_names)
        return self.compiler.expander.slotNames_collect(definition.template_source)

    def payload_toNodes(self, payload: Any, host: Element) -> List[Node]:
        """
        Normalize an into() payload.

        Nodes are used as given, lists are flattened, callables are called
        with the host, qHTML-shaped strings are compiled and any other
        string becomes raw markup.
        """
        if payload is None:
            return []
        if isinstance(payload, Node):
            return [payload]
        if isinstance(payload, (list, tuple)):
            nodes: List[Node] = []
            for item in payload:
                nodes.extend(self.payload_toNodes(item, host))
            return nodes
        if callable(payload):
            return self.payload_toNodes(payload(host), host)
        text = str(payload)
        if self.compiler.snippet_isQHtml(text):
            return self.compiler.snippet_build(text, host)
        return [RawMarkupNode(self.compiler.rawText_prepare(text))]

    def into_inject(self, host: Element, slot_name: str, payload: Any) -> None:
        """Replace the content projected into one slot of host"""
        if self.slotsResolved_warn(host, "into"):
            return
        component_id = host.attribute_get("q-component") or ""
        if slot_name not in self.slotNames_list(host):
            componentLogger.warn(component_id, f'Component does not have slot named "{slot_name}".')
            return
        nodes = self.payload_toNodes(payload, host)
        for carrier in self.carriers_find(host, slot_name):
            host.child_remove(carrier)
        carrier = self.carrier_make(slot_name)
        for node in nodes:
            carrier.child_append(node)
        host.child_append(carrier)
        self.carriers_sync(host)

    def slots_resolve(self, host: Element) -> None:
        """Flatten anchors into their parents and drop carriers"""
        if self.slotsResolved_warn(host, "resolveSlots"):
            return
        for anchor in self.anchors_find(host):
            parent = anchor.parent
            if parent is None:
                continue
            index = next(i for i, child in enumerate(parent.children) if child is anchor)
            children = list(anchor.children)
            parent.child_remove(anchor)
            for offset, child in enumerate(children):
                parent.child_insert(index + offset, child)
        for carrier in self.carriers_find(host):
            host.child_remove(carrier)
        host.class_slots.clear()
        host.attribute_set("q-slots-resolved", "true")

    def teardown(self, host: Element) -> None:
        """Drop signal listeners, bound actions and stored invocation handlers of host"""
        for signal in host.signals.values():
            signal.clear()
        host.signals.clear()
        host.actions.clear()
        if host.instance_key:
            self.registry.instanceHandlers_drop(host.instance_key)
        host.runtime = None
