"""
Compiled node tree

The compiler turns qHTML source into a tree of these nodes. The tree is the
compiler's output: callers serialize it with to_html() or hand it to a
renderer.

Element carries the runtime state of a component host next to its markup:
compiled event handlers, queued lifecycle hooks, signals and actions. Signals
and actions are reachable as attributes, so a handler body can write
`this.stateChanged.emit(1)` or `this.reset()`. Actions of the nearest
component host are also reachable from every element inside it.
"""

import html
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
})

RAW_TEXT_ELEMENTS = frozenset({"script", "style", "q-painter"})


def classes_split(value: Any) -> List[str]:
    """Split a class attribute value into an ordered, de-duplicated list"""
    result: List[str] = []
    for cls in str(value or "").split():
        if cls not in result:
            result.append(cls)
    return result


@dataclass(eq=False)
class Node:
    """Base of all compiled nodes"""
    parent: Optional['Element'] = field(default=None, repr=False, kw_only=True)

    def depth_first(self) -> Iterator['Node']:
        yield self

    def text_content(self) -> str:
        return ""

    def to_html(self) -> str:
        raise NotImplementedError

    def clone(self) -> 'Node':
        raise NotImplementedError


@dataclass(eq=False)
class TextNode(Node):
    """Plain text; escaped when serialized"""
    value: str = ""

    def text_content(self) -> str:
        return self.value

    def to_html(self) -> str:
        if self.parent is not None and self.parent.tag in RAW_TEXT_ELEMENTS:
            return self.value
        return html.escape(self.value, quote=False)

    def clone(self) -> 'TextNode':
        return TextNode(self.value)


@dataclass(eq=False)
class RawMarkupNode(Node):
    """Markup from an html { } block, emitted verbatim"""
    value: str = ""

    def text_content(self) -> str:
        return self.value

    def to_html(self) -> str:
        return self.value

    def clone(self) -> 'RawMarkupNode':
        return RawMarkupNode(self.value)


@dataclass(eq=False)
class StyleNode(Node):
    """A document-level <style> element from a root style { } block"""
    value: str = ""

    def text_content(self) -> str:
        return self.value

    def to_html(self) -> str:
        return f"<style>{self.value}</style>"

    def clone(self) -> 'StyleNode':
        return StyleNode(self.value)


@dataclass(eq=False)
class Element(Node):
    """
    An element with ordered classes, attributes and children

    Attributes:
        tag: Element tag name
        classes: Ordered set of class names
        attributes: Attribute map (class lives in `classes`)
        children: Child nodes in document order
        handlers: Compiled inline event handlers, keyed by lower-cased name ("onclick")
        signals: Signal objects of a component host, keyed by declared name
        actions: Bound component actions, keyed by function name
        listeners: Host event listeners, keyed by event name
        ready_hooks: Queued onReady/onLoad bodies, flushed once children are built
        runtime: ComponentRuntime that installed this host, if any
        instance_key: Key of the component invocation this host was installed for
        is_root: The synthetic q-html root of a compile
        hydrated: Component template has already been hydrated into this host
        class_slots: Template elements of a host whose classes a class slot fills, by slot name
        slot_classes: Class names a class slot last applied to this element, by slot name
    """
    tag: str = "div"
    classes: List[str] = field(default_factory=list)
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[Node] = field(default_factory=list, repr=False)
    handlers: Dict[str, Callable[..., Any]] = field(default_factory=dict, repr=False)
    signals: Dict[str, Any] = field(default_factory=dict, repr=False)
    actions: Dict[str, Callable[..., Any]] = field(default_factory=dict, repr=False)
    listeners: Dict[str, List[Callable[..., Any]]] = field(default_factory=dict, repr=False)
    ready_hooks: List[str] = field(default_factory=list, repr=False)
    runtime: Optional[Any] = field(default=None, repr=False)
    instance_key: str = field(default="", repr=False)
    is_root: bool = field(default=False, repr=False)
    hydrated: bool = field(default=False, repr=False)
    class_slots: Dict[str, List['Element']] = field(default_factory=dict, repr=False)
    slot_classes: Dict[str, List[str]] = field(default_factory=dict, repr=False)

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are not regular attributes
        if name.startswith("_"):
            raise AttributeError(name)
        state = self.__dict__
        signals = state.get("signals") or {}
        if name in signals:
            return signals[name]
        actions = state.get("actions") or {}
        if name in actions:
            return actions[name]
        owner = state.get("parent")
        while owner is not None:
            owner_actions = owner.__dict__.get("actions") or {}
            if name in owner_actions:
                return owner_actions[name]
            owner = owner.__dict__.get("parent")
        raise AttributeError(f"'{state.get('tag', 'element')}' element has no attribute '{name}'")

    # Attributes

    def attribute_get(self, name: str) -> Optional[str]:
        if name.lower() == "class":
            return " ".join(self.classes) if self.classes else None
        return self.attributes.get(name)

    def attribute_set(self, name: str, value: Any) -> None:
        text = "" if value is None else str(value)
        if name.lower() == "class":
            self.classes = classes_split(text)
            return
        self.attributes[name] = text

    def attribute_has(self, name: str) -> bool:
        if name.lower() == "class":
            return bool(self.classes)
        return name in self.attributes

    def attribute_remove(self, name: str) -> None:
        if name.lower() == "class":
            self.classes = []
            return
        self.attributes.pop(name, None)

    def class_merge(self, value: Any) -> None:
        """Union incoming class names into the class list, keeping order"""
        for cls in classes_split(value):
            if cls not in self.classes:
                self.classes.append(cls)

    # Tree

    def child_append(self, node: Node) -> Node:
        if node.parent is not None and node.parent is not self:
            node.parent.child_remove(node)
        elif node.parent is self and node in self.children:
            self.children.remove(node)
        node.parent = self
        self.children.append(node)
        return node

    def child_insert(self, index: int, node: Node) -> Node:
        if node.parent is not None:
            node.parent.child_remove(node)
        node.parent = self
        self.children.insert(index, node)
        return node

    def child_remove(self, node: Node) -> None:
        for position, child in enumerate(self.children):
            if child is node:
                del self.children[position]
                break
        node.parent = None

    def children_replace(self, nodes: List[Node]) -> None:
        for child in list(self.children):
            self.child_remove(child)
        for node in nodes:
            self.child_append(node)

    def depth_first(self) -> Iterator[Node]:
        yield self
        for child in list(self.children):
            yield from child.depth_first()

    def elements(self) -> Iterator['Element']:
        """Descendant elements in document order (self excluded)"""
        for node in self.depth_first():
            if node is not self and isinstance(node, Element):
                yield node

    def find_all(self, tag: str) -> List['Element']:
        wanted = tag.lower()
        return [el for el in self.elements() if el.tag == wanted]

    def find(self, tag: str) -> Optional['Element']:
        found = self.find_all(tag)
        return found[0] if found else None

    def closest(self, predicate: Callable[['Element'], bool]) -> Optional['Element']:
        """Nearest of self and its ancestors that satisfies predicate"""
        current: Optional[Element] = self
        while current is not None:
            if predicate(current):
                return current
            current = current.parent
        return None

    def contains(self, node: Node) -> bool:
        current: Optional[Node] = node
        while current is not None:
            if current is self:
                return True
            current = current.parent
        return False

    def text_content(self) -> str:
        return "".join(child.text_content() for child in self.children)

    # Serialization

    def to_html(self) -> str:
        parts = [f"<{self.tag}"]
        if self.classes:
            parts.append(f' class="{html.escape(" ".join(self.classes), quote=True)}"')
        for name, value in self.attributes.items():
            parts.append(f' {name}="{html.escape(value, quote=True)}"')
        parts.append(">")
        if self.tag in VOID_ELEMENTS and not self.children:
            return "".join(parts)
        parts.extend(child.to_html() for child in self.children)
        parts.append(f"</{self.tag}>")
        return "".join(parts)

    def inner_html(self) -> str:
        return "".join(child.to_html() for child in self.children)

    def clone(self) -> 'Element':
        copy = Element(
            tag=self.tag,
            classes=list(self.classes),
            attributes=dict(self.attributes),
            handlers=dict(self.handlers),
            signals=dict(self.signals),
            actions=dict(self.actions),
            runtime=self.runtime,
            instance_key=self.instance_key,
            hydrated=self.hydrated,
        )
        for child in self.children:
            copy.child_append(child.clone())
        return copy

    # Events

    def handler_invoke(self, name: str, event: Any = None) -> Any:
        """Run the inline handler registered for name ("onClick" or "onclick")"""
        handler = self.handlers.get(name.lower())
        if handler is None:
            return None
        return handler(self, event)

    def event_listen(self, name: str, listener: Callable[..., Any]) -> None:
        self.listeners.setdefault(name, []).append(listener)

    def event_dispatch(self, name: str, detail: Any = None) -> None:
        """Call the listeners registered for name, in registration order"""
        event = {"type": name, "target": self, "detail": detail}
        for listener in list(self.listeners.get(name, [])):
            listener(event)

    # Component host API

    def into(self, slot_name: str, payload: Any) -> 'Element':
        """Replace the content projected into a named slot of this component host"""
        if self.runtime is not None:
            self.runtime.into_inject(self, slot_name, payload)
        return self

    def slots(self) -> List[str]:
        """Slot names available on this component host"""
        if self.runtime is None:
            return []
        return self.runtime.slotNames_list(self)

    def resolve_slots(self) -> 'Element':
        """Flatten slot anchors and drop carriers; slot APIs are disabled afterwards"""
        if self.runtime is not None:
            self.runtime.slots_resolve(self)
        return self
