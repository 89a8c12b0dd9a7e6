"""
Script evaluation tests

Tests the restricted Python evaluator and the q-script substitution pass.
"""

import pytest

from qhtml.config import AppSettings
from qhtml.lib.evaluator import PythonEvaluator, body_normalize
from qhtml.lib.log import diagnostics_capture
from qhtml.lib.scripts import ScriptEvaluator
from qhtml.models.errors import ScriptSecurityError


class TestPythonEvaluator:
    """Expression and statement bodies"""

    def test_expression(self):
        assert PythonEvaluator().evaluate("1 + 1", this=None) == 2

    def test_statement_body_returns_last_expression(self):
        assert PythonEvaluator().evaluate("x = 2\nx * 3", this=None) == 6

    def test_explicit_return(self):
        assert PythonEvaluator().evaluate("if this:\n    return 'yes'\nreturn 'no'", this=True) == "yes"

    def test_this_binding(self):
        assert PythonEvaluator().evaluate("this + 1", this=41) == 42

    def test_namespace(self):
        evaluator = PythonEvaluator(namespace={"k": 5})
        assert evaluator.evaluate("k * 2", this=None) == 10
        assert evaluator.evaluate("k + extra", this=None, namespace={"extra": 1}) == 6

    def test_allowed_builtins(self):
        assert PythonEvaluator().evaluate("len('abc')", this=None) == 3

    def test_empty_body(self):
        assert PythonEvaluator().evaluate("   ", this=None) is None

    def test_function_compile(self):
        fn = PythonEvaluator().function_compile("a, b", "total = a + b\ntotal * 2")
        assert fn(None, 2, 3) == 10

    def test_function_without_result(self):
        fn = PythonEvaluator().function_compile("", "x = 1")
        assert fn(None) is None


class TestEvaluatorRestrictions:
    """Rejected constructs raise before running"""

    def test_import_rejected(self):
        with pytest.raises(ScriptSecurityError):
            PythonEvaluator().evaluate("import os", this=None)

    def test_private_attribute_rejected(self):
        with pytest.raises(ScriptSecurityError):
            PythonEvaluator().evaluate("().__class__", this=None)

    def test_blocked_builtin_rejected(self):
        with pytest.raises(ScriptSecurityError):
            PythonEvaluator().evaluate("open('x')", this=None)

    def test_missing_builtin(self):
        """Builtins outside the allowed set are not defined"""
        with pytest.raises(NameError):
            PythonEvaluator().evaluate("hash(1)", this=None)

    def test_syntax_error(self):
        with pytest.raises(SyntaxError):
            PythonEvaluator().function_compile("", "x = = 1")


class TestBodyNormalize:
    """Bodies cut out of markup are re-indented"""

    def test_first_line_after_brace(self):
        assert body_normalize("x = 1\n        y = 2") == "x = 1\ny = 2"

    def test_indented_block(self):
        assert body_normalize("\n    a = 1\n    b = 2\n") == "a = 1\nb = 2"

    def test_empty(self):
        assert body_normalize("") == ""


class TestScriptPass:
    """q-script blocks are replaced by their results"""

    def setup_method(self):
        self.scripts = ScriptEvaluator(PythonEvaluator())

    def test_string_result(self):
        assert self.scripts.scripts_evaluate('p { q-script { "a" * 3 } }') == "p { aaa }"

    def test_markup_result_is_spliced(self):
        assert self.scripts.scripts_evaluate('div { q-script { "span { hi }" } }') == "div { span { hi } }"

    def test_none_result_warns(self):
        with diagnostics_capture() as diagnostics:
            out = self.scripts.scripts_evaluate("p { q-script { None } }")
        assert out == "p {  }"
        assert diagnostics.messages("warn") == [
            "q-script returned undefined; replacing block with empty output."
        ]

    def test_failure_logs_error(self):
        with diagnostics_capture() as diagnostics:
            out = self.scripts.scripts_evaluate("p { q-script { 1 / 0 } }")
        assert out == "p {  }"
        assert diagnostics.messages("error") == ["q-script execution failed: division by zero"]
        assert list(diagnostics)[0].component_id == "p"

    def test_missing_close(self):
        with diagnostics_capture() as diagnostics:
            out = self.scripts.scripts_evaluate('p { q-script { "x" ')
        assert out == 'p { q-script { "x" '
        assert diagnostics.messages("error") == ["q-script block is missing a closing brace."]

    def test_top_level_only(self):
        """Nested blocks wait for the element pass"""
        out = self.scripts.scripts_evaluate('q-script { "x" } p { q-script { 1 } }', top_level_only=True)
        assert out == "x p { q-script { 1 } }"

    def test_primitive_wrapped_as_text(self):
        out = self.scripts.scripts_evaluate(
            "q-script { 1 + 1 }", top_level_only=True, wrap_primitive_top_level=True
        )
        assert out == "text {2}"

    def test_context_bound_without_element(self):
        out = self.scripts.scripts_evaluate("div.card { q-script { this.tag_token } }")
        assert out == "div.card { div.card }"

    def test_embedded_keyword_ignored(self):
        source = "my-q-script { x }"
        assert self.scripts.scripts_evaluate(source) == source

    def test_pass_ceiling(self):
        scripts = ScriptEvaluator(PythonEvaluator(), AppSettings(script_max_passes=1))
        with diagnostics_capture() as diagnostics:
            out = scripts.scripts_evaluate('q-script { "q-script { 1 }" }')
        assert out == "q-script { 1 }"
        assert diagnostics.messages("warn") == [
            "q-script evaluation stopped after 1 passes; unresolved q-script blocks may remain."
        ]
