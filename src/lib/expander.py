"""
Component and template macro expander

Works on quote-encoded qHTML source. Two reusable block kinds exist:

    q-template card {            compile-time: every invocation is replaced
        div.card { slot { title } }    by the body, with slot placeholders
    }                                  filled from the invocation

    q-component my-card {        runtime: every invocation becomes a host
        q-signal changed(value);       element carrying hidden slot carriers
        function reset() { ... }       and an onReady block that installs
        div { slot { body } }          signals, actions and the template
    }

Expansion happens in three steps:

1. definitions_collect() removes every definition block from the source and
   registers it (signals, signal handlers and actions are split off first).
2. Each definition's slot placeholders are classified: direct when they sit
   in the body itself, indirect when they sit inside the invocation of
   another known definition.
3. expand() rewrites invocation sites pass after pass until a pass changes
   nothing, bounded by max(1, pass_factor * definition count).

Invocation content reaches slots three ways:

    card { into { slot: "title"; h1 { "Hi" } } }    explicit into block
    card { title { h1 { "Hi" } } }                  child named like the slot
    card { h1 { "Hi" } }                            single-slot shorthand

A `tag.slot { name }` placeholder is a class slot: the content supplied for
it becomes class names on that element instead of child nodes.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import AppSettings, appsettings
from ..models.definitions import (
    ActionDecl,
    Definition,
    DefinitionKind,
    IntoNode,
    SignalDecl,
    SignalHandlerDecl,
    SlotDecl,
    SlotEntry,
    SlotInfo,
)
from .log import LOG, componentLogger
from .registry import ComponentRegistry
from .scanner import (
    attributes_serialize,
    blocks_removeNested,
    block_indent,
    brace_findMatching,
    classNames_merge,
    classSlotMarker_make,
    classTokens_parse,
    handlerTag_is,
    handlerTag_toSignalName,
    invocation_find,
    keyword_findStandalone,
    propString_escape,
    props_stripTopLevel,
    readyLifecycle_is,
    segments_splitTopLevel,
    string_decodeIfNeeded,
    strings_encodeQuoted,
    tag_parseClasses,
)
from .scripts import ScriptEvaluator
from .signals import signalParams_parse

SLOT_KEYWORD = "slot"
INSTANCE_MARKER = "qhtml-component-instance"

_QUOTED_PROP = re.compile(r'([a-zA-Z_][\w\-.]*)\s*:\s*"([^"]*)"\s*;?')
_NONEMPTY_QUOTED_PROP = re.compile(r'([a-zA-Z_][\w\-.]*)\s*:\s*"([^"]+)"\s*;?')
_INSTANCE_MARK = re.compile(r'(?:^|\s)qhtml-component-instance\s*:\s*"1"\s*;?')
_ANCHOR_MARK = re.compile(r'(?:^|\s)q-slot-anchor\s*:\s*"1"')
_LEGACY_ID = re.compile(r'(?:^|\s)id\s*:\s*"[^"]+"\s*;?')
_LEGACY_SLOT_NAME = re.compile(r'(?:^|\s)(?:id|name)\s*:\s*"[^"]+"\s*;?')
_SLOT_SHORTHAND = re.compile(r"^\s*([A-Za-z0-9_-]+)\s*;?\s*$")
_SIGNAL_DECL = re.compile(r"q-signal\s+([A-Za-z_]\w*)\s*\(([^)]*)\)\s*;?")
_ACTION_HEADER = re.compile(r"^function\s+([A-Za-z_]\w*)\s*\(([^)]*)\)$")
_CUSTOM_ELEMENT_NAME = re.compile(r"^[a-z][a-z0-9._-]*-[a-z0-9._-]*$")
_UNMARKABLE_TAGS = frozenset({"html", "text", "css", "style", "slot", "into"})
_CARRIER_STYLE = strings_encodeQuoted('style: "display: none;";')

Range = Tuple[int, int]


def customElementName_isValid(name: str) -> bool:
    return bool(_CUSTOM_ELEMENT_NAME.match((name or "").strip()))


def _ranges_remove(source: str, ranges: List[Range]) -> str:
    """Cut ranges out of source (plus trailing whitespace and one ';') and trim"""
    out = source
    for start, end in sorted(ranges, key=lambda r: r[0], reverse=True):
        while end < len(out) and out[end].isspace():
            end += 1
        if end < len(out) and out[end] == ";":
            end += 1
        out = out[:start] + out[end:]
    return out.strip()


def _index_inRanges(index: int, ranges: Sequence[Range]) -> bool:
    return any(start <= index <= end for start, end in ranges)


def _anchor_is(block: str) -> bool:
    """q-into blocks produced for slot anchors travel with auto-wrapped content"""
    brace_open = block.find("{")
    return bool(_ANCHOR_MARK.search(blocks_removeNested(block[brace_open + 1:block.rfind("}")])))


def _segment_isMarkable(tag: str) -> bool:
    base, _ = tag_parseClasses(tag)
    lower = base.strip().lower()
    if not lower or lower in _UNMARKABLE_TAGS:
        return False
    return not re.match(r"^on[a-z0-9_]+$", lower)


class MacroExpander:
    """
    Rewrites component and template invocations to a fixed point

    Args:
        registry: Registry receiving collected definitions
        scripts: Script pass used on slot and into bodies (top level only)
        settings: Pass bound factor (macro_pass_factor)
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        scripts: ScriptEvaluator,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.registry = registry
        self.scripts = scripts
        self.settings = settings or appsettings
        self.classified_ids: Tuple[str, ...] = ()

    # Definition collection

    def signals_extract(self, inner: str, component_id: str = "") -> Tuple[str, List[SignalDecl]]:
        """
        Pull `q-signal name(params);` declarations out of a component body.

        Only declarations at depth 0, outside "..." and `...` strings, count.
        """
        signals: List[SignalDecl] = []
        removals: List[Range] = []
        seen = set()
        depth = 0
        quote_char = ""
        escaped = False
        i = 0
        n = len(inner)
        while i < n:
            ch = inner[i]
            if quote_char:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == quote_char:
                    quote_char = ""
                i += 1
                continue
            if ch in '"`':
                quote_char = ch
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth = max(0, depth - 1)
            elif depth == 0 and ch == "q" and not (i > 0 and re.match(r"[A-Za-z0-9_$-]", inner[i - 1])):
                match = _SIGNAL_DECL.match(inner, i)
                if match:
                    name = match.group(1)
                    if name.lower() in seen:
                        componentLogger.warn(component_id, f'Duplicate q-signal declaration "{name}" ignored.')
                    else:
                        seen.add(name.lower())
                        signals.append(SignalDecl(name, signalParams_parse(match.group(2), component_id, name)))
                    removals.append((i, match.end()))
                    i = match.end()
                    continue
            i += 1
        if not removals:
            return inner.strip(), signals
        return _ranges_remove(inner, removals), signals

    def signalHandlers_extract(
        self, inner: str, signals: Sequence[SignalDecl]
    ) -> Tuple[str, List[SignalHandlerDecl]]:
        """Pull onX { ... } blocks whose X names a declared signal out of a body"""
        if not signals:
            return inner.strip(), []
        lookup = {signal.name.lower(): signal for signal in signals}
        handlers: List[SignalHandlerDecl] = []
        removals: List[Range] = []
        for seg in segments_splitTopLevel(inner):
            candidate = handlerTag_toSignalName(seg.tag)
            signal = lookup.get(candidate.lower()) if candidate else None
            if signal is None:
                continue
            handlers.append(SignalHandlerDecl(signal.name, ", ".join(signal.params), seg.inner))
            removals.append((seg.start, seg.brace_close + 1))
        if not removals:
            return inner.strip(), handlers
        return _ranges_remove(inner, removals), handlers

    def actions_extract(self, inner: str, component_id: str = "") -> Tuple[str, List[ActionDecl]]:
        """Pull `function name(params) { body }` blocks out of a body"""
        actions: List[ActionDecl] = []
        removals: List[Range] = []
        for seg in segments_splitTopLevel(inner):
            header = _ACTION_HEADER.match(seg.tag.strip())
            if not header:
                continue
            actions.append(ActionDecl(header.group(1), header.group(2).strip(), seg.inner))
            removals.append((seg.start, seg.brace_close + 1))
        if not removals:
            return inner.strip(), actions
        template = _ranges_remove(inner, removals)
        if not template:
            componentLogger.warn(component_id, "Component only defines function blocks and no template markup.")
        return template, actions

    def _definitions_collectKeyword(self, text: str, keyword: str, kind: DefinitionKind,
                                    found: List[Definition]) -> str:
        out = text
        idx = 0
        header_re = re.compile(rf"^{re.escape(keyword)}\s+([^\s{{]+)$")
        while True:
            start = keyword_findStandalone(out, keyword, idx)
            if start == -1:
                break
            brace_open = out.find("{", start)
            if brace_open == -1:
                break
            brace_close = brace_findMatching(out, brace_open)
            if brace_close == -1:
                break
            header = header_re.match(out[start:brace_open].strip())
            inner = out[brace_open + 1:brace_close]
            if not header:
                if kind is DefinitionKind.COMPONENT and _LEGACY_ID.search(blocks_removeNested(inner)):
                    componentLogger.error(
                        "", "Legacy component syntax is no longer supported. Use `q-component component-id { ... }`."
                    )
                idx = brace_close + 1
                continue
            component_id = header.group(1)
            source = props_stripTopLevel(inner, ["id", "slots"]).strip()
            definition = Definition(kind=kind, id=component_id)
            if kind is DefinitionKind.COMPONENT:
                source, definition.signals = self.signals_extract(source, component_id)
                source, definition.signal_handlers = self.signalHandlers_extract(source, definition.signals)
                source, definition.actions = self.actions_extract(source, component_id)
                if not customElementName_isValid(component_id):
                    componentLogger.warn(component_id, "Component id is not a valid custom-element name.")
            else:
                source, actions = self.actions_extract(source, component_id)
                if actions:
                    componentLogger.warn(component_id, "q-template ignores function blocks.")
            definition.template_source = source
            found.append(self.registry.register(definition))
            LOG(f"Collected {kind.value} '{component_id}'", level=2)
            out = out[:start] + out[brace_close + 1:]
            idx = max(0, start - 1)
        return out

    def definitions_collect(self, text: str) -> Tuple[str, List[Definition]]:
        """
        Remove every q-component / q-template block from text and register it.

        Returns:
            (text without definition blocks, definitions found in this text)
        """
        found: List[Definition] = []
        out = self._definitions_collectKeyword(text, "q-component", DefinitionKind.COMPONENT, found)
        out = self._definitions_collectKeyword(out, "q-template", DefinitionKind.TEMPLATE, found)
        return out, found

    # Slots

    def slotName_extract(self, inner: str, component_id: str = "", ids: Sequence[str] = (),
                         report: bool = True) -> str:
        """
        Name declared by a `slot { name }` placeholder body, or ''.

        Args:
            inner: Placeholder body
            component_id: Definition the placeholder belongs to
            ids: Known definition ids (a slot may not share a name with one)
            report: Log malformed placeholders
        """
        resolved = self.scripts.scripts_evaluate(inner, top_level_only=True)
        flattened = blocks_removeNested(resolved)
        if _LEGACY_SLOT_NAME.search(flattened):
            if report:
                componentLogger.error(
                    component_id, "Legacy slot syntax is no longer supported. Use `slot { slot-name }`."
                )
            return ""
        shorthand = _SLOT_SHORTHAND.match(flattened)
        slot_name = shorthand.group(1) if shorthand else ""
        if not slot_name and flattened.strip():
            if report:
                componentLogger.error(component_id, "Invalid slot syntax. Expected `slot { slot-name }`.")
            return ""
        if slot_name and slot_name in ids:
            if report:
                componentLogger.error(component_id, f'cannot name slots the same as components ("{slot_name}").')
            return ""
        return slot_name

    def _slotPlaceholders_iter(self, template: str) -> Iterable[Tuple[int, int, int]]:
        """(keyword start, brace open, brace close) of each slot and tag.slot placeholder"""
        pos = 0
        while True:
            idx = keyword_findStandalone(template, SLOT_KEYWORD, pos)
            if idx == -1:
                return
            cursor = idx + len(SLOT_KEYWORD)
            while cursor < len(template) and template[cursor].isspace():
                cursor += 1
            if cursor >= len(template) or template[cursor] != "{":
                pos = idx + len(SLOT_KEYWORD)
                continue
            close = brace_findMatching(template, cursor)
            if close == -1:
                return
            yield idx, cursor, close
            pos = close + 1

    def ranges_collect(self, text: str, ids: Sequence[str]) -> List[Range]:
        """Brace ranges of every invocation of any of ids"""
        ranges: List[Range] = []
        for component_id in ids:
            pos = 0
            while True:
                found = invocation_find(text, component_id, pos, allow_classes=True)
                if found is None:
                    break
                ranges.append((found.brace_open, found.brace_close))
                pos = found.brace_close + 1
        return ranges

    def slotInfo_collect(self, template: str, ids: Sequence[str], component_id: str = "") -> SlotInfo:
        """Classify every slot placeholder of a definition as direct or indirect"""
        info = SlotInfo()
        nested = self.ranges_collect(template, ids)
        for idx, brace_open, brace_close in self._slotPlaceholders_iter(template):
            name = self.slotName_extract(template[brace_open + 1:brace_close], component_id, ids)
            if name:
                info.slot_add(SlotDecl(name, is_direct=not _index_inRanges(idx, nested)))
        return info

    def slotNames_collect(self, template: str) -> List[str]:
        names: List[str] = []
        for _, brace_open, brace_close in self._slotPlaceholders_iter(template):
            name = self.slotName_extract(template[brace_open + 1:brace_close], report=False)
            if name and name not in names:
                names.append(name)
        return names

    def templateSlots_replace(
        self,
        template: str,
        slot_map: Dict[str, str],
        component_id: str = "",
        warn_on_missing: bool = True,
        preserve_anchors: bool = True,
        anchor_owner: str = "",
    ) -> str:
        """
        Replace each `slot { name }` and `tag.slot { name }` placeholder.

        With preserve_anchors the placeholder becomes a q-into anchor element
        (slot="name", q-slot-anchor="1") holding the content, so the content
        can be re-targeted later; otherwise the content replaces it directly.
        anchor_owner stamps anchors with q-slot-owner so the owning host can
        find them again after they are projected into a nested component.
        Class slots are rendered by classSlot_render().
        """
        consumed: List[str] = []
        result = template
        pos = 0
        while True:
            placeholder = next(iter(self._slotPlaceholders_iter(result[pos:])), None)
            if placeholder is None:
                break
            start, brace_open, brace_close = (pos + offset for offset in placeholder)
            slot_name = self.slotName_extract(result[brace_open + 1:brace_close], report=False)
            has_content = bool(slot_name) and slot_name in slot_map
            if slot_name and not has_content and warn_on_missing:
                componentLogger.warn(component_id, f'No content provided for slot "{slot_name}".')
            replacement = ""
            if start > 0 and result[start - 1] == ".":
                replacement = self.classSlot_render(
                    slot_name, slot_map, preserve_anchors, result[brace_close + 1:]
                )
                start -= 1
                if slot_name and slot_name not in consumed:
                    consumed.append(slot_name)
            elif slot_name:
                content = slot_map.get(slot_name, "")
                if preserve_anchors:
                    lines = ["q-into {", f'  slot: "{propString_escape(slot_name)}";', '  q-slot-anchor: "1";']
                    if anchor_owner:
                        lines.append(f'  q-slot-owner: "{propString_escape(anchor_owner)}";')
                    replacement = "\n".join(lines + [content, "}"])
                else:
                    replacement = content
                if slot_name not in consumed:
                    consumed.append(slot_name)
            result = result[:start] + replacement + result[brace_close + 1:]
            pos = start + len(replacement)
        if component_id:
            for slot_name in slot_map:
                if slot_name not in consumed:
                    componentLogger.warn(
                        component_id,
                        f'Slot content was supplied for "{slot_name}" but the template does not contain a matching placeholder.',
                    )
        return result

    @staticmethod
    def classSlot_render(slot_name: str, slot_map: Dict[str, str], preserve_anchors: bool, following: str) -> str:
        """
        Class suffix replacing a `tag.slot { name }` placeholder, dot included.

        Supplied content becomes class names. A component template without
        content gets the qhtml-slot-<name> marker class, which the runtime
        swaps for the class names held by the slot's carriers. An empty
        element body is added when no body block follows the placeholder:

            div.card.slot { tone } { p { } }  ->  div.card.big { p { } }
            div.slot { tone }                 ->  div.big { }
        """
        if slot_name in slot_map or not preserve_anchors:
            tokens = classTokens_parse(slot_map.get(slot_name, ""))
        else:
            tokens = [classSlotMarker_make(slot_name)]
        suffix = "".join(f".{token}" for token in tokens if token)
        return suffix if following.lstrip().startswith("{") else f"{suffix} {{ }}"

    # Into blocks

    def into_parse(self, block: str, component_id: str, position: int) -> Optional[IntoNode]:
        """
        Parse one `into { slot: "name"; ... }` block.

        Returns:
            IntoNode, or None (after logging) when the block is malformed
        """
        brace_open = block.find("{")
        if brace_open == -1:
            componentLogger.error(component_id, "Into block is missing an opening brace.")
            return None
        brace_close = brace_findMatching(block, brace_open)
        if brace_close == -1:
            componentLogger.error(component_id, "Into block is missing a closing brace.")
            return None
        resolved = self.scripts.scripts_evaluate(block[brace_open + 1:brace_close], top_level_only=True)
        props = _NONEMPTY_QUOTED_PROP.findall(blocks_removeNested(resolved))
        illegal = [name for name, _ in props if name.endswith(".slot")]
        if illegal:
            componentLogger.error(component_id, f'Into block attempted to inject into non-slot target "{illegal[0]}".')
            return None
        slot_values = [value for name, value in props if name == "slot"]
        if not slot_values:
            componentLogger.error(component_id, "Into block is missing required slot attribute.")
            return None
        if len(slot_values) > 1:
            componentLogger.error(component_id, "Into block has multiple slot targets; slot must be unique.")
            return None
        slot_name = string_decodeIfNeeded(slot_values[0]).strip()
        if not slot_name:
            componentLogger.error(component_id, "Into block slot attribute is empty.")
            return None
        if "." in slot_name:
            componentLogger.error(component_id, f'Into block attempted to inject into non-slot target "{slot_name}".')
            return None
        children = props_stripTopLevel(resolved, ["slot"]).strip()
        return IntoNode(target_slot=slot_name, children=children, position=position)

    def _intoBlocks_iter(self, body: str, ids: Sequence[str]) -> Iterable[Tuple[int, int]]:
        """(start, end) of into blocks not nested inside another invocation"""
        nested = self.ranges_collect(body, ids)
        pos = 0
        while True:
            found = invocation_find(body, "into", pos)
            if found is None:
                return
            if not _index_inRanges(found.tag_start, nested):
                yield found.tag_start, found.brace_close
            pos = found.brace_close + 1

    def intoNodes_collect(self, body: str, ids: Sequence[str], component_id: str) -> List[IntoNode]:
        nodes: List[IntoNode] = []
        for start, end in self._intoBlocks_iter(body, ids):
            node = self.into_parse(body[start:end + 1], component_id, start)
            if node is not None:
                nodes.append(node)
        return nodes

    def intoBlock_hasTopLevel(self, body: str, ids: Sequence[str]) -> bool:
        return next(iter(self._intoBlocks_iter(body, ids)), None) is not None

    def intoTarget_resolve(self, slot_name: str, slot_info: SlotInfo, component_id: str) -> Optional[str]:
        """
        Resolve an into target: exactly one direct placeholder wins; failing
        that, exactly one indirect placeholder. Anything else is an error.
        """
        direct = slot_info.direct_slots.get(slot_name, 0)
        nested = slot_info.subcomponent_slots.get(slot_name, 0)
        if direct > 1:
            componentLogger.error(
                component_id, f'Into target slot "{slot_name}" is ambiguous; multiple direct slot matches found.'
            )
            return None
        if direct == 1:
            return slot_name
        if nested > 1:
            componentLogger.error(
                component_id,
                f'Into target slot "{slot_name}" is ambiguous; multiple sub-component slot matches found.',
            )
            return None
        if nested == 1:
            return slot_name
        componentLogger.error(component_id, f'Into target slot "{slot_name}" was not found.')
        return None

    # Invocation rewriting

    def invocationAttributes_extract(self, body: str) -> Dict[str, str]:
        """Quoted top-level properties of an invocation body, slot directives excluded"""
        attributes: Dict[str, str] = {}
        for name, value in _QUOTED_PROP.findall(blocks_removeNested(body)):
            if name == "slot" or name.endswith(".slot") or name == INSTANCE_MARKER:
                continue
            attributes[name] = value
        return attributes

    def legacySlotDirective_find(self, block: str) -> Optional[Tuple[str, str]]:
        brace_open = block.find("{")
        if brace_open == -1:
            return None
        inner = block[brace_open + 1:block.rfind("}")]
        for name, value in _NONEMPTY_QUOTED_PROP.findall(blocks_removeNested(inner)):
            if name == "slot" or name.endswith(".slot"):
                return name, value
        return None

    def primarySegment_addAttributes(self, source: str, classes: Sequence[str],
                                     root_attributes: Dict[str, str]) -> str:
        """Inject invocation attributes and classes into the first markable top-level block"""
        primary = next((seg for seg in segments_splitTopLevel(source) if _segment_isMarkable(seg.tag)), None)
        if primary is None:
            return source
        attrs = dict(root_attributes)
        if classes:
            attrs["class"] = classNames_merge(attrs.get("class", ""), " ".join(classes))
        serialized = attributes_serialize(attrs)
        if not serialized.strip():
            return source
        injection = "\n" + block_indent(serialized, "    ")
        return source[:primary.brace_open + 1] + injection + source[primary.brace_open + 1:]

    def carriers_build(self, entries: Sequence[SlotEntry]) -> str:
        """One hidden q-into carrier per slot entry"""
        blocks = []
        for entry in entries:
            slot_name = entry.slot_name.strip()
            if not slot_name:
                continue
            parts = [
                f'slot: "{propString_escape(slot_name)}";',
                'q-into-carrier: "1";',
                _CARRIER_STYLE,
            ]
            if entry.content.strip():
                parts.append(entry.content.strip())
            blocks.append("q-into {\n" + block_indent("\n".join(parts)) + "\n}")
        return "\n".join(blocks)

    def componentInvocation_build(
        self,
        definition: Definition,
        entries: Sequence[SlotEntry],
        root_attributes: Dict[str, str],
        classes: Sequence[str],
        host_blocks: Sequence[str],
        instance_key: str,
    ) -> str:
        """
        Host-invocation shape of one component invocation.

        Example:
            my-card {
              title: "x";
              q-component: "my-card";
              qhtml-component-instance: "1";
              onReady {
                component_install(this, "my-card", "my-card-1")
              }
              q-into { slot: "body"; q-into-carrier: "1"; style: "display: none;"; p { hi } }
            }
        """
        attrs = dict(root_attributes)
        attrs["q-component"] = definition.id
        attrs[INSTANCE_MARKER] = "1"
        if classes:
            attrs["class"] = classNames_merge(attrs.get("class", ""), " ".join(classes))
        install = strings_encodeQuoted(
            f'component_install(this, "{propString_escape(definition.id)}", "{propString_escape(instance_key)}")'
        )
        parts = [
            attributes_serialize(attrs),
            "onReady {\n" + block_indent(install) + "\n}",
            "\n".join(block.strip() for block in host_blocks if block.strip()),
            self.carriers_build(entries),
        ]
        body = "\n".join(part for part in parts if part.strip())
        return f"{definition.id} {{\n{block_indent(body)}\n}}"

    @staticmethod
    def slotEntries_toMap(entries: Sequence[SlotEntry]) -> Dict[str, str]:
        """Concatenate entry contents per slot, in entry order"""
        slot_map: Dict[str, str] = {}
        for entry in entries:
            name = entry.slot_name.strip()
            if not name:
                continue
            slot_map[name] = f"{slot_map[name]}\n{entry.content}" if name in slot_map else entry.content
        return slot_map

    def _slotInfo_forDefinition(self, definition: Definition) -> SlotInfo:
        info = definition.slot_info
        if info.slot_names:
            return info
        fallback = SlotInfo()
        for name in self.slotNames_collect(definition.template_source):
            fallback.slot_add(SlotDecl(name))
        return fallback

    def invocation_rewrite(self, definition: Definition, body: str, tag_token: str, ids: Sequence[str]) -> str:
        """Replacement text for one invocation of definition"""
        component_id = definition.id
        slot_info = self._slotInfo_forDefinition(definition)
        single_slot = slot_info.singleSlot_get()
        _, classes = tag_parseClasses(tag_token or component_id)
        root_attributes = self.invocationAttributes_extract(body)
        children = segments_splitTopLevel(body)
        entries: List[SlotEntry] = []
        host_blocks: List[str] = []
        instance_handlers: List[SignalHandlerDecl] = []
        non_slot_starts = set()
        has_slot_tag_blocks = False
        has_legacy_directive = False

        for node in self.intoNodes_collect(body, ids, component_id):
            if not slot_info.slot_names:
                componentLogger.warn(component_id, f'Component does not have slot named "{node.target_slot}".')
                continue
            resolved = self.intoTarget_resolve(node.target_slot, slot_info, component_id)
            if resolved:
                entries.append(SlotEntry(resolved, node.children, node.position))

        for seg in children:
            tag = seg.tag.strip()
            if handlerTag_is(tag):
                candidate = handlerTag_toSignalName(tag)
                signal = definition.signal_find(candidate) if candidate else None
                if signal is not None and not readyLifecycle_is(tag):
                    instance_handlers.append(SignalHandlerDecl(signal.name, ", ".join(signal.params), seg.inner))
                else:
                    host_blocks.append(seg.block)
                non_slot_starts.add(seg.start)
                continue
            if tag in ("into", "q-into"):
                continue
            if tag in slot_info.slot_names and tag not in ids:
                has_slot_tag_blocks = True
                entries.append(SlotEntry(tag, seg.inner, seg.start))
                continue
            if self.legacySlotDirective_find(seg.block):
                has_legacy_directive = True
                componentLogger.error(
                    component_id,
                    "Legacy inline slot assignment is no longer supported. Use `slot-name { ... }` child blocks.",
                )

        has_explicit_slots = (
            self.intoBlock_hasTopLevel(body, ids) or has_slot_tag_blocks or has_legacy_directive or bool(entries)
        )
        if not has_explicit_slots and single_slot:
            auto_content = "\n".join(
                seg.block for seg in children
                if seg.start not in non_slot_starts and (seg.tag not in ("into", "q-into") or _anchor_is(seg.block))
            ).strip()
            if auto_content:
                entries.append(SlotEntry(single_slot, auto_content, 0))
        entries.sort(key=lambda entry: entry.position)

        if definition.is_component:
            instance_key = self.registry.instanceKey_next(component_id)
            self.registry.instanceHandlers_store(instance_key, instance_handlers)
            return self.componentInvocation_build(
                definition, entries, root_attributes, classes, host_blocks, instance_key
            )
        expanded = self.templateSlots_replace(
            definition.template_source,
            self.slotEntries_toMap(entries),
            component_id=component_id,
            warn_on_missing=has_explicit_slots or bool(children),
            preserve_anchors=False,
        )
        return self.primarySegment_addAttributes(expanded, classes, root_attributes)

    @staticmethod
    def invocations_pending(text: str, definitions: Sequence[Definition]) -> bool:
        """True while text still holds an invocation that is not a component host"""
        for definition in definitions:
            pos = 0
            while True:
                found = invocation_find(text, definition.id, pos, allow_classes=True)
                if found is None:
                    break
                if not _INSTANCE_MARK.search(blocks_removeNested(text[found.brace_open + 1:found.brace_close])):
                    return True
                pos = found.brace_open + 1
        return False

    def expand(self, text: str) -> str:
        """
        Collect definitions from text and rewrite every invocation.

        Definitions registered by earlier calls take part as well. The loop
        stops once a full pass rewrites nothing, or after
        max(1, macro_pass_factor * definition count) passes with a warning.

        Args:
            text: Quote-encoded, balanced qHTML

        Returns:
            Text without definition blocks and without expandable invocations
        """
        out, collected = self.definitions_collect(text)
        definitions = self.registry.definitions_list()
        if not definitions:
            return out
        ids = self.registry.ids_list()
        if collected or tuple(ids) != self.classified_ids:
            for definition in definitions:
                definition.slot_info = self.slotInfo_collect(definition.template_source, ids, definition.id)
            self.classified_ids = tuple(ids)

        max_passes = max(1, self.settings.macro_pass_factor * len(definitions))
        passes = 0
        rewrites = 0
        changed = True
        while changed and passes < max_passes:
            changed = False
            passes += 1
            for definition in definitions:
                pos = 0
                while True:
                    found = invocation_find(out, definition.id, pos, allow_classes=True)
                    if found is None:
                        break
                    body = out[found.brace_open + 1:found.brace_close]
                    if _INSTANCE_MARK.search(blocks_removeNested(body)):
                        # already a host; its carriers may still hold invocations
                        pos = found.brace_open + 1
                        continue
                    replacement = self.invocation_rewrite(definition, body, found.tag_token, ids)
                    out = out[:found.tag_start] + replacement + out[found.brace_close + 1:]
                    pos = found.tag_start + len(replacement)
                    changed = True
                    rewrites += 1
        LOG(f"Expanded {rewrites} invocation(s) of {len(definitions)} definition(s) in {passes} pass(es)", level=2)
        if changed and self.invocations_pending(out, definitions):
            componentLogger.warn(
                "", f"Component/template expansion stopped after {max_passes} passes; recursive blocks may remain."
            )
        return out
