"""
q-import resolution tests

Tests file inclusion relative to a base directory, rejection rules and the
shared import limit.
"""

from qhtml.config import AppSettings
from qhtml.lib.imports import ImportResolver
from qhtml.lib.log import diagnostics_capture


class TestImportResolution:
    """q-import blocks are replaced by file content"""

    def test_import_replaced(self, tmp_path):
        (tmp_path / "part.qhtml").write_text('p { "imported" }', encoding="utf-8")
        result = ImportResolver(tmp_path).imports_resolve("div { q-import { part.qhtml } }")
        assert result == 'div { p { "imported" } }'

    def test_nested_imports(self, tmp_path):
        (tmp_path / "outer.qhtml").write_text("section { q-import { inner.qhtml } }", encoding="utf-8")
        (tmp_path / "inner.qhtml").write_text('p { "x" }', encoding="utf-8")
        result = ImportResolver(tmp_path).imports_resolve("q-import { outer.qhtml }")
        assert result == 'section { p { "x" } }'

    def test_subdirectory_path(self, tmp_path):
        (tmp_path / "parts").mkdir()
        (tmp_path / "parts" / "a.qhtml").write_text("b { }", encoding="utf-8")
        assert ImportResolver(tmp_path).imports_resolve("q-import { parts/a.qhtml }") == "b { }"

    def test_text_without_imports_unchanged(self, tmp_path):
        source = 'my-q-import { x } p { "q-import" }'
        assert ImportResolver(tmp_path).imports_resolve(source) == source


class TestImportRejection:
    """Rejected imports are replaced by nothing, with a warning"""

    def test_missing_path(self, tmp_path):
        with diagnostics_capture() as diagnostics:
            assert ImportResolver(tmp_path).imports_resolve("a q-import { } b") == "a  b"
        assert diagnostics.messages("warn") == ["q-import has no path."]

    def test_quoted_path(self, tmp_path):
        (tmp_path / "part.qhtml").write_text("p { }", encoding="utf-8")
        with diagnostics_capture() as diagnostics:
            assert ImportResolver(tmp_path).imports_resolve('q-import { "part.qhtml" }') == ""
        assert diagnostics.messages("warn") == ["q-import path must be raw text, not quoted."]

    def test_missing_file(self, tmp_path):
        with diagnostics_capture() as diagnostics:
            assert ImportResolver(tmp_path).imports_resolve("q-import { nope.qhtml }") == ""
        assert diagnostics.messages("warn") == ['q-import failed to load "nope.qhtml".']
        assert list(diagnostics)[0].component_id == "q-import"

    def test_nested_host_rejected(self, tmp_path):
        (tmp_path / "page.qhtml").write_text("<q-html> p { } </q-html>", encoding="utf-8")
        with diagnostics_capture() as diagnostics:
            assert ImportResolver(tmp_path).imports_resolve("q-import { page.qhtml }") == ""
        assert diagnostics.messages("warn") == ['q-import rejected "page.qhtml" because it contains <q-html>.']

    def test_limit(self, tmp_path):
        (tmp_path / "a.qhtml").write_text("a { }", encoding="utf-8")
        resolver = ImportResolver(tmp_path, AppSettings(import_limit=1))
        with diagnostics_capture() as diagnostics:
            result = resolver.imports_resolve("q-import { a.qhtml } q-import { a.qhtml } q-import { a.qhtml }")
        assert result == "a { }  "
        assert diagnostics.messages("warn") == ["q-import limit reached (1); remaining imports skipped."]

    def test_self_import_stops_at_limit(self, tmp_path):
        (tmp_path / "loop.qhtml").write_text("x { } q-import { loop.qhtml }", encoding="utf-8")
        resolver = ImportResolver(tmp_path, AppSettings(import_limit=3))
        with diagnostics_capture() as diagnostics:
            result = resolver.imports_resolve("q-import { loop.qhtml }")
        assert result == "x { } x { } x { } "
        assert diagnostics.messages("warn") == ["q-import limit reached (3); remaining imports skipped."]
