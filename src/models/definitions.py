"""
Component and template data models

Structures built by the macro expander while collecting q-component and
q-template definitions and while rewriting their invocation sites.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class DefinitionKind(Enum):
    """Reusable block kinds"""
    COMPONENT = "component"  # runtime host with carriers, signals and actions
    TEMPLATE = "template"    # compile-time inline expansion


@dataclass
class SignalDecl:
    """
    A q-signal declaration

    Example:
        "q-signal stateChanged(newState, oldState);"
        → SignalDecl(name="stateChanged", params=["newState", "oldState"])
    """
    name: str
    params: List[str] = field(default_factory=list)


@dataclass
class SignalHandlerDecl:
    """
    An onX { ... } block bound to a declared signal

    Attributes:
        signal_name: Declared signal name (as declared, not as written in onX)
        params: Comma-joined parameter list of the signal ("a, b")
        body: Handler body text
    """
    signal_name: str
    params: str = ""
    body: str = ""

    @property
    def key(self) -> str:
        """Identity used to install each handler at most once per host"""
        return f"{self.signal_name}|{self.params}|{self.body}"


@dataclass
class ActionDecl:
    """A function name(params) { body } block inside a component"""
    name: str
    params: str = ""
    body: str = ""


@dataclass
class SlotDecl:
    """One slot { name } placeholder found in a definition body"""
    name: str
    is_direct: bool = True


@dataclass
class SlotInfo:
    """
    Slot declarations of one definition, classified by where they sit

    A placeholder is direct when it sits in the definition body itself, and
    indirect when it sits inside the invocation of another known definition.

    Attributes:
        direct_slots: slot name → number of direct placeholders
        subcomponent_slots: slot name → number of indirect placeholders
        slot_names: every slot name seen, in declaration order
    """
    direct_slots: Dict[str, int] = field(default_factory=dict)
    subcomponent_slots: Dict[str, int] = field(default_factory=dict)
    slot_names: List[str] = field(default_factory=list)

    def slot_add(self, decl: SlotDecl) -> None:
        target = self.direct_slots if decl.is_direct else self.subcomponent_slots
        target[decl.name] = target.get(decl.name, 0) + 1
        if decl.name not in self.slot_names:
            self.slot_names.append(decl.name)

    @property
    def total(self) -> int:
        return sum(self.direct_slots.values()) + sum(self.subcomponent_slots.values())

    def singleSlot_get(self) -> str:
        """Name of the only slot when exactly one placeholder exists, else ''"""
        if self.total != 1:
            return ""
        if len(self.direct_slots) == 1:
            return next(iter(self.direct_slots))
        if len(self.subcomponent_slots) == 1:
            return next(iter(self.subcomponent_slots))
        return ""


@dataclass
class Definition:
    """
    A collected q-component or q-template

    Attributes:
        kind: COMPONENT or TEMPLATE
        id: Definition id as written ("my-card")
        template_source: Body with metadata blocks removed
        slot_info: Slot classification, filled in once all ids are known
        signals: Declared signals (components only)
        signal_handlers: Definition-level onX handlers (components only)
        actions: function blocks (components only)
    """
    kind: DefinitionKind
    id: str
    template_source: str = ""
    slot_info: SlotInfo = field(default_factory=SlotInfo)
    signals: List[SignalDecl] = field(default_factory=list)
    signal_handlers: List[SignalHandlerDecl] = field(default_factory=list)
    actions: List[ActionDecl] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.id.strip().lower()

    @property
    def is_component(self) -> bool:
        return self.kind is DefinitionKind.COMPONENT

    def signal_find(self, name: str) -> Optional[SignalDecl]:
        """Case-insensitive lookup of a declared signal"""
        wanted = name.lower()
        for signal in self.signals:
            if signal.name.lower() == wanted:
                return signal
        return None


@dataclass
class IntoNode:
    """Content supplied to a slot by an into { slot: "name"; ... } block"""
    target_slot: str
    children: str
    position: int


@dataclass
class SlotEntry:
    """Resolved slot contribution, ordered by source position"""
    slot_name: str
    content: str
    position: int = 0


@dataclass
class TagInvocation:
    """Location of one "tag { ... }" invocation in a source string"""
    tag_start: int
    brace_open: int
    brace_close: int
    tag_token: str


@dataclass
class TopLevelSegment:
    """A "tag { ... }" item at the top level of a block body"""
    tag: str
    block: str
    start: int
    brace_open: int
    brace_close: int

    @property
    def inner(self) -> str:
        """Block content between the braces, trimmed"""
        open_at = self.block.find('{')
        close_at = self.block.rfind('}')
        if open_at == -1 or close_at <= open_at:
            return ""
        return self.block[open_at + 1:close_at].strip()


@dataclass
class ScriptContext:
    """
    Invocation context of a q-script block found in source text

    Bound as `this` when no live element is available.

    Attributes:
        tag: Base tag of the nearest enclosing block
        tag_token: Full token including classes ("div.card")
        classes: Classes from the token
        parent_brace_open: Index of the enclosing '{', -1 at top level
        script_start: Index of the q-script keyword
        brace_open: Index of the q-script '{'
        brace_close: Index of the matching '}'
    """
    tag: str = ""
    tag_token: str = ""
    classes: List[str] = field(default_factory=list)
    parent_brace_open: int = -1
    script_start: int = 0
    brace_open: int = 0
    brace_close: int = 0


@dataclass
class ImportState:
    """Counters shared across one batch of q-import resolution"""
    count: int = 0
    limit: int = 100
    warned: bool = False
