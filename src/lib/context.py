"""
Temporary `this` aliases for script, handler and hook bodies

While a body runs against an element, three extra names are readable on
`this`:

    this.parent      structural parent element
    this.slot        nearest q-into / into ancestor carrying a slot attribute
    this.component   nearest ancestor (or self) carrying q-component

The aliases are set for the duration of one call and removed afterwards;
whatever the object held under those names before is put back.
"""

from typing import Any, Callable, List, Optional, Tuple

from ..models.nodes import Element

_MISSING = object()

SLOT_CONTEXT_TAGS = frozenset({"q-into", "into"})


def slotContext_find(node: Any) -> Optional[Element]:
    if not isinstance(node, Element):
        return None
    return node.closest(lambda el: el.tag in SLOT_CONTEXT_TAGS and el.attribute_has("slot"))


def componentContext_find(node: Any) -> Optional[Element]:
    if not isinstance(node, Element):
        return None
    return node.closest(lambda el: el.attribute_has("q-component"))


def _alias_inject(target: Any, name: str, value: Any, undo: List[Tuple[str, Any]]) -> None:
    try:
        own = vars(target)
    except TypeError:
        return
    previous = own.get(name, _MISSING)
    try:
        setattr(target, name, value)
    except (AttributeError, TypeError):
        return
    undo.append((name, previous))


def thisContext_apply(target: Any) -> Callable[[], None]:
    """
    Inject the parent/slot/component aliases onto target.

    Injection failures are ignored; the body still runs without the alias.

    Args:
        target: Object bound as `this`

    Returns:
        Callable that restores target's previous attributes

    Example:
        restore = thisContext_apply(element)
        try:
            handler(element, event)
        finally:
            restore()
    """
    if target is None:
        return lambda: None
    undo: List[Tuple[str, Any]] = []
    if not isinstance(target, Element):
        # parent is a structural field on elements
        _alias_inject(target, "parent", getattr(target, "parent", None), undo)
    _alias_inject(target, "slot", slotContext_find(target), undo)
    _alias_inject(target, "component", componentContext_find(target), undo)

    def restore() -> None:
        for name, previous in reversed(undo):
            try:
                if previous is _MISSING:
                    delattr(target, name)
                else:
                    setattr(target, name, previous)
            except AttributeError:
                continue

    return restore
