"""
Scanner helper tests

Covers brace matching, keyword and invocation search, top-level splitting
and the quoted-string codec the compile passes rely on.
"""

from qhtml.lib.scanner import (
    attributes_serialize,
    blocks_removeNested,
    brace_findMatching,
    brace_findMatchingLiteral,
    brace_findNearestOpen,
    classNames_merge,
    classSlotMarker_make,
    classTokens_parse,
    comments_strip,
    handlerTag_toSignalName,
    invocation_find,
    keyword_findStandalone,
    properties_addSemicolons,
    props_stripTopLevel,
    readyLifecycle_is,
    segments_splitTopLevel,
    signalName_toHandlerProperty,
    snippet_looksLikeQHtml,
    string_decodeIfNeeded,
    strings_decodeQuoted,
    strings_encodeQuoted,
    tag_parseClasses,
    tagName_isValid,
    token_extractBefore,
)


class TestBraceMatching:
    """Matching '{' to '}'"""

    def test_plain_matching_nested(self):
        """Nested blocks are skipped over"""
        assert brace_findMatching("a { b { } }", 2) == 10

    def test_plain_matching_unclosed(self):
        """Input ending inside a block reports -1"""
        assert brace_findMatching("a { b { }", 2) == -1

    def test_literal_matching_skips_strings(self):
        """Braces inside script strings do not count"""
        assert brace_findMatchingLiteral('{ "}" }', 0) == 6

    def test_literal_matching_skips_line_comments(self):
        """Braces inside # comments do not count"""
        assert brace_findMatchingLiteral("{ # }\n }", 0) == 7

    def test_nearest_open(self):
        """Innermost open brace before an index"""
        text = "div { p { x } y"
        assert brace_findNearestOpen(text, len(text)) == 4
        assert brace_findNearestOpen("top level", 5) == -1


class TestKeywordsAndTokens:
    """Standalone keyword search and token extraction"""

    def test_keyword_not_inside_identifier(self):
        """q-script inside my-q-script is not a match"""
        assert keyword_findStandalone("my-q-script q-script {", "q-script") == 12

    def test_keyword_missing(self):
        assert keyword_findStandalone("q-scripts", "q-script") == -1

    def test_token_before_brace(self):
        assert token_extractBefore("div.card {", 9) == "div.card"

    def test_tag_classes(self):
        assert tag_parseClasses("div.card.wide") == ("div", ["card", "wide"])
        assert tag_parseClasses("") == ("", [])

    def test_tag_name_validity(self):
        assert tagName_isValid("my-card")
        assert not tagName_isValid("1div")

    def test_class_merge_keeps_order(self):
        assert classNames_merge("a b", "b c") == "a b c"


class TestInvocationSearch:
    """Locating id { ... } invocations"""

    def test_class_suffix_allowed(self):
        """A class suffix is part of the token; a class named like the id is not an invocation"""
        found = invocation_find("div.card { } card.wide { x }", "card", allow_classes=True)
        assert found is not None
        assert found.tag_start == 13
        assert found.tag_token == "card.wide"
        assert found.brace_open == 23
        assert found.brace_close == 27

    def test_class_suffix_rejected_by_default(self):
        assert invocation_find("card.wide { x }", "card") is None

    def test_longer_id_not_matched(self):
        """my-card does not invoke card"""
        assert invocation_find("my-card { }", "card") is None

    def test_unclosed_invocation(self):
        assert invocation_find("card { ", "card") is None


class TestBlockHelpers:
    """Top-level splitting, flattening and property stripping"""

    def test_split_top_level_skips_properties(self):
        segments = segments_splitTopLevel('color: "red"; div.a { x } p { y }')
        assert [seg.tag for seg in segments] == ["div.a", "p"]
        assert segments[0].block == "div.a { x }"
        assert segments[0].inner == "x"

    def test_split_top_level_skips_untagged_blocks(self):
        segments = segments_splitTopLevel("div.slot { tone } { p { } } function f() { 1 }")
        assert [seg.tag for seg in segments] == ["div.slot", "function f()"]

    def test_remove_nested(self):
        assert blocks_removeNested("a { b { c } } d") == "a  d"

    def test_strip_top_level_props(self):
        """Only depth-0 properties with the given names are removed"""
        result = props_stripTopLevel('id: "x"; div { id: "y"; } slots: "a";', ["id", "slots"])
        assert result == 'div { id: "y"; }'

    def test_comments_stripped_outside_strings(self):
        assert comments_strip('a /* x */ b "/* keep */"') == 'a  b "/* keep */"'

    def test_semicolons_added(self):
        assert properties_addSemicolons('a: "x"\nb: "y";') == 'a: "x";\nb: "y";'


class TestQuotedStrings:
    """Percent-encoding of double-quoted values"""

    def test_encode_hides_structure(self):
        encoded = strings_encodeQuoted('title: "a {b}";')
        assert encoded == 'title: "a%20%7Bb%7D";'
        assert strings_decodeQuoted(encoded) == 'title: "a {b}";'

    def test_decode_leaves_lone_percent(self):
        assert string_decodeIfNeeded("100%") == "100%"
        assert string_decodeIfNeeded("a%20b") == "a b"

    def test_serialize_escapes_quotes(self):
        assert attributes_serialize({"title": 'say "hi"', "": "x"}) == 'title: "say \\"hi\\"";'

    def test_qhtml_shape_detection(self):
        assert snippet_looksLikeQHtml("p { hi }")
        assert not snippet_looksLikeQHtml("<b>x</b>")
        assert not snippet_looksLikeQHtml("plain")


class TestHandlerNames:
    """onX names and signal names"""

    def test_handler_to_signal(self):
        assert handlerTag_toSignalName("onStateChanged") == "stateChanged"
        assert handlerTag_toSignalName("click") == ""

    def test_signal_to_handler(self):
        assert signalName_toHandlerProperty("stateChanged") == "onStateChanged"

    def test_ready_lifecycle_names(self):
        assert readyLifecycle_is("onReady")
        assert readyLifecycle_is("onloaded")
        assert not readyLifecycle_is("onClick")


class TestClassSlotHelpers:
    """Class names supplied to tag.slot placeholders"""

    def test_plain_names(self):
        assert classTokens_parse(" big, wide big ") == ["big", "wide"]

    def test_dotted_names_win(self):
        assert classTokens_parse("x .primary .wide") == ["primary", "wide"]

    def test_encoded_quoted_value(self):
        assert classTokens_parse('"%20big%20wide"') == ["big", "wide"]

    def test_non_identifiers_dropped(self):
        assert classTokens_parse("1st ok p{") == ["ok"]

    def test_marker(self):
        assert classSlotMarker_make(" Tone ") == "qhtml-slot-tone"
        assert classSlotMarker_make("a b") == "qhtml-slot-a-b"
        assert classSlotMarker_make("") == ""
