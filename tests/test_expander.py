"""
Macro expander tests

Tests definition collection, slot classification, slot replacement and
into-block parsing directly on the expander, without building nodes.
"""

from qhtml.config import AppSettings
from qhtml.lib.evaluator import PythonEvaluator
from qhtml.lib.expander import MacroExpander, customElementName_isValid
from qhtml.lib.log import diagnostics_capture
from qhtml.lib.registry import ComponentRegistry
from qhtml.lib.scripts import ScriptEvaluator
from qhtml.models.definitions import DefinitionKind, SignalDecl, SlotEntry, SlotInfo


def expander_make() -> MacroExpander:
    return MacroExpander(ComponentRegistry(), ScriptEvaluator(PythonEvaluator()))


class TestDefinitionCollection:
    """q-component and q-template blocks are removed and registered"""

    def test_template_collected(self):
        expander = expander_make()
        out, found = expander.definitions_collect('q-template t-a { p { slot { x } } } t-a { x { "1" } }')
        assert out.strip() == 't-a { x { "1" } }'
        assert [d.id for d in found] == ["t-a"]
        assert found[0].kind is DefinitionKind.TEMPLATE
        assert found[0].template_source == "p { slot { x } }"
        assert "t-a" in expander.registry

    def test_component_parts_split_off(self):
        expander = expander_make()
        source = """
q-component x-counter {
  q-signal changed(value);
  onChanged { this.attribute_set("data-v", str(value)) }
  function reset() { this.changed.emit(0) }
  span { "count" }
}
"""
        _, found = expander.definitions_collect(source)
        definition = found[0]
        assert definition.is_component
        assert [(s.name, s.params) for s in definition.signals] == [("changed", ["value"])]
        assert definition.signal_handlers[0].signal_name == "changed"
        assert definition.signal_handlers[0].params == "value"
        assert [a.name for a in definition.actions] == ["reset"]
        assert definition.template_source == 'span { "count" }'

    def test_id_and_slots_props_stripped(self):
        expander = expander_make()
        _, found = expander.definitions_collect('q-template t-b { id: "t-b"; slots: "a"; p { } }')
        assert found[0].template_source == "p { }"

    def test_legacy_component_syntax(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            _, found = expander.definitions_collect('q-component { id: "x-old"; div { } }')
        assert found == []
        assert diagnostics.messages("error") == [
            "Legacy component syntax is no longer supported. Use `q-component component-id { ... }`."
        ]

    def test_invalid_custom_element_name(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            _, found = expander.definitions_collect("q-component card { div { } }")
        assert found[0].id == "card"
        assert diagnostics.messages("warn") == ["Component id is not a valid custom-element name."]

    def test_template_ignores_functions(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            _, found = expander.definitions_collect("q-template t-f { function f() { 1 } p { } }")
        assert found[0].actions == []
        assert found[0].template_source == "p { }"
        assert diagnostics.messages("warn") == ["q-template ignores function blocks."]

    def test_component_with_only_functions(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            expander.definitions_collect("q-component x-f { function f() { 1 } }")
        assert diagnostics.messages("warn") == ["Component only defines function blocks and no template markup."]


class TestSignalExtraction:
    """q-signal declarations"""

    def test_declaration_removed(self):
        expander = expander_make()
        text, signals = expander.signals_extract("q-signal changed(a, b);\n p { }", "x-s")
        assert text == "p { }"
        assert signals == [SignalDecl("changed", ["a", "b"])]

    def test_nested_declaration_ignored(self):
        expander = expander_make()
        text, signals = expander.signals_extract("div { q-signal x(); }")
        assert signals == []
        assert text == "div { q-signal x(); }"

    def test_duplicate_declaration(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            _, signals = expander.signals_extract("q-signal Changed(); q-signal changed(x); p { }", "x-s")
        assert [s.name for s in signals] == ["Changed"]
        assert diagnostics.messages("warn") == ['Duplicate q-signal declaration "changed" ignored.']


class TestSlots:
    """Slot placeholders"""

    def test_slot_name(self):
        expander = expander_make()
        assert expander.slotName_extract(" title ") == "title"

    def test_legacy_slot_syntax(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.slotName_extract('name: "x";', "t-s") == ""
        assert diagnostics.messages("error") == [
            "Legacy slot syntax is no longer supported. Use `slot { slot-name }`."
        ]

    def test_invalid_slot_syntax(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.slotName_extract("a b", "t-s") == ""
        assert diagnostics.messages("error") == ["Invalid slot syntax. Expected `slot { slot-name }`."]

    def test_slot_named_like_component(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.slotName_extract("x-b", "x-a", ids=["x-a", "x-b"]) == ""
        assert diagnostics.messages("error") == ['cannot name slots the same as components ("x-b").']

    def test_classification(self):
        """Placeholders inside another definition's invocation are indirect"""
        expander = expander_make()
        info = expander.slotInfo_collect("div { slot { a } } x-inner { slot { b } }", ["x-inner"], "x-outer")
        assert info.direct_slots == {"a": 1}
        assert info.subcomponent_slots == {"b": 1}
        assert info.slot_names == ["a", "b"]
        assert info.singleSlot_get() == ""

    def test_class_slot_is_a_placeholder(self):
        expander = expander_make()
        assert expander.slotNames_collect("div.slot { tone } slot { a }") == ["tone", "a"]
        info = expander.slotInfo_collect("div.card.slot { tone } { p { } }", [], "t-c")
        assert info.direct_slots == {"tone": 1}

    def test_class_slot_takes_class_names(self):
        expander = expander_make()
        result = expander.templateSlots_replace(
            "div.card.slot { tone } { p { } }", {"tone": " big "}, "t", preserve_anchors=False
        )
        assert result == "div.card.big { p { } }"

    def test_class_slot_without_body_gets_one(self):
        expander = expander_make()
        result = expander.templateSlots_replace("div.slot { tone }", {"tone": "big, wide"}, "t", preserve_anchors=False)
        assert result == "div.big.wide { }"

    def test_class_slot_marker_with_anchors(self):
        expander = expander_make()
        result = expander.templateSlots_replace("div.slot { tone }", {}, warn_on_missing=False, anchor_owner="k-1")
        assert result == "div.qhtml-slot-tone { }"

    def test_replace_inline(self):
        expander = expander_make()
        result = expander.templateSlots_replace("div { slot { a } }", {"a": "p { }"}, "t", preserve_anchors=False)
        assert result == "div { p { } }"

    def test_replace_with_anchor(self):
        expander = expander_make()
        result = expander.templateSlots_replace("slot { a }", {}, warn_on_missing=False, anchor_owner="k-1")
        assert result == 'q-into {\n  slot: "a";\n  q-slot-anchor: "1";\n  q-slot-owner: "k-1";\n\n}'

    def test_missing_content_warns(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            expander.templateSlots_replace("slot { a } slot { b }", {"a": "x"}, "t", preserve_anchors=False)
        assert diagnostics.messages("warn") == ['No content provided for slot "b".']

    def test_unused_content_warns(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            expander.templateSlots_replace("p { }", {"a": "x"}, "t")
        assert diagnostics.messages("warn") == [
            'Slot content was supplied for "a" but the template does not contain a matching placeholder.'
        ]

    def test_entries_to_map(self):
        entries = [SlotEntry("a", "x", 0), SlotEntry("b", "y", 1), SlotEntry("a", "z", 2)]
        assert MacroExpander.slotEntries_toMap(entries) == {"a": "x\nz", "b": "y"}


class TestIntoBlocks:
    """into { slot: "name"; ... } parsing and resolution"""

    def test_parse(self):
        expander = expander_make()
        node = expander.into_parse('into { slot: "title"; h1 { "T" } }', "x-d", 4)
        assert node.target_slot == "title"
        assert node.children == 'h1 { "T" }'
        assert node.position == 4

    def test_missing_slot(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.into_parse('into { slot: ""; p { } }', "x-d", 0) is None
        assert diagnostics.messages("error") == ["Into block is missing required slot attribute."]

    def test_blank_slot(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.into_parse('into { slot: " "; }', "x-d", 0) is None
        assert diagnostics.messages("error") == ["Into block slot attribute is empty."]

    def test_multiple_slots(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.into_parse('into { slot: "a"; slot: "b"; }', "x-d", 0) is None
        assert diagnostics.messages("error") == ["Into block has multiple slot targets; slot must be unique."]

    def test_non_slot_target(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.into_parse('into { card.slot: "x"; }', "x-d", 0) is None
            assert expander.into_parse('into { slot: "a.b"; }', "x-d", 0) is None
        assert diagnostics.messages("error") == [
            'Into block attempted to inject into non-slot target "card.slot".',
            'Into block attempted to inject into non-slot target "a.b".',
        ]

    def test_resolve_direct_before_indirect(self):
        expander = expander_make()
        info = SlotInfo(direct_slots={"a": 1}, subcomponent_slots={"a": 1}, slot_names=["a"])
        assert expander.intoTarget_resolve("a", info, "x-d") == "a"

    def test_resolve_ambiguous(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.intoTarget_resolve("a", SlotInfo(direct_slots={"a": 2}), "x-d") is None
        assert diagnostics.messages("error") == [
            'Into target slot "a" is ambiguous; multiple direct slot matches found.'
        ]

    def test_resolve_missing(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            assert expander.intoTarget_resolve("z", SlotInfo(), "x-d") is None
        assert diagnostics.messages("error") == ['Into target slot "z" was not found.']


class TestTemplateExpansion:
    """expand() on templates"""

    def test_named_child_fills_slot(self):
        expander = expander_make()
        out = expander.expand('q-template t-card { div.card { h2 { slot { title } } } } t-card { title { "Hi" } }')
        assert out.strip() == 'div.card { h2 { "Hi" } }'

    def test_single_slot_shorthand(self):
        expander = expander_make()
        out = expander.expand('q-template t-box { div { slot { body } } } t-box { p { "x" } }')
        assert out.strip() == 'div { p { "x" } }'

    def test_invocation_attributes_and_classes(self):
        expander = expander_make()
        out = expander.expand('q-template t-box { div { } } t-box.wide { id: "main"; }')
        assert out.strip() == 'div {\n    id: "main";\n    class: "wide"; }'

    def test_component_host_shape(self):
        expander = expander_make()
        out = expander.expand('q-component x-panel { section { slot { body } } } x-panel { p { "hello" } }')
        assert out.strip().startswith("x-panel {")
        assert 'q-component: "x-panel";' in out
        assert 'qhtml-component-instance: "1";' in out
        assert 'component_install(this, "x-panel", "x-panel-1")' in out
        assert 'q-into-carrier: "1";' in out
        assert 'p { "hello" }' in out

    def test_expansion_is_a_fixed_point(self):
        """Expanding the output again changes nothing"""
        expander = expander_make()
        source = """
q-template t-box { div { slot { body } } }
q-component x-panel { section { slot { body } } }
t-box { x-panel { p { "x" } } }
"""
        out = expander.expand(source)
        assert expander.expand(out) == out

    def test_last_pass_finishing_the_work_does_not_warn(self):
        """A bound that is just large enough is not reported as exhausted"""
        expander = MacroExpander(
            ComponentRegistry(), ScriptEvaluator(PythonEvaluator()), AppSettings(macro_pass_factor=1)
        )
        with diagnostics_capture() as diagnostics:
            out = expander.expand("q-template t-a { p { } } t-a { }")
        assert out.strip() == "p { }"
        assert len(diagnostics) == 0

    def test_recursive_templates_bounded(self):
        expander = expander_make()
        with diagnostics_capture() as diagnostics:
            expander.expand("q-template t-a { t-b { } } q-template t-b { t-a { } } t-a { }")
        assert diagnostics.messages("warn") == [
            "Component/template expansion stopped after 6 passes; recursive blocks may remain."
        ]


class TestCustomElementNames:
    def test_names(self):
        assert customElementName_isValid("my-card")
        assert not customElementName_isValid("card")
        assert not customElementName_isValid("My-card")
