"""
Compiler for qHTML source to a Node tree

Runs the compile passes in their fixed order:

    quote encoding → brace balancing → top-level q-script pass
    → comment stripping / semicolon repair → macro expansion
    → brace balancing → top-level q-script pass (this = root)
    → node building (per-element q-script pass, lifecycle hooks)
    → decoding

One Compiler owns one ComponentRegistry, so components defined by an
earlier compile stay usable by later compiles on the same instance.
"""

from typing import Any, Dict, List, Optional

from ..config import AppSettings, appsettings
from ..models.nodes import Element, Node
from .balancer import braces_balance
from .builder import NodeBuilder, tree_decode
from .evaluator import ExpressionEvaluator, PythonEvaluator
from .expander import MacroExpander
from .handlers import HandlerCache, readyHooks_flush
from .log import LOG, DiagnosticCollector, diagnostics_capture
from .registry import ComponentRegistry
from .runtime import ComponentRuntime
from .scanner import (
    comments_strip,
    properties_addSemicolons,
    snippet_looksLikeQHtml,
    strings_encodeQuoted,
    uriComponent_encode,
)
from .scripts import ScriptEvaluator

ROOT_TAG = "q-html"


class Compiler:
    """
    Compiles qHTML source into a tree rooted at a q-html Element

    Responsibilities:
    - Run the preprocessing and macro-expansion passes
    - Build the Node tree with live q-script evaluation
    - Own the component registry, handler cache and component runtime
    - Collect diagnostics for the last compile

    Args:
        settings: Pass limits and runtime switches; defaults to appsettings
        evaluator: ExpressionEvaluator for q-script, handler and action bodies
        registry: Registry to share definitions with another compiler
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        registry: Optional[ComponentRegistry] = None,
    ) -> None:
        self.settings = settings or appsettings
        self.evaluator: ExpressionEvaluator = evaluator or PythonEvaluator()
        self.registry = registry or ComponentRegistry(self.settings)
        self.runtime = ComponentRuntime(self)
        self.namespace: Dict[str, Any] = {"component_install": self.runtime.component_install}
        self.scripts = ScriptEvaluator(self.evaluator, self.settings, self.namespace)
        self.handlers = HandlerCache(self.evaluator, self.namespace)
        self.expander = MacroExpander(self.registry, self.scripts, self.settings)
        self.builder = NodeBuilder(self.scripts, self.handlers, self.settings)
        self.diagnostics = DiagnosticCollector()
        self.compiling = False

    def preprocess(self, source: str, root: Optional[Element] = None) -> str:
        """
        Run every text pass and return the quote-encoded, expanded source.

        Args:
            source: Raw qHTML
            root: Element bound as `this` in the final top-level q-script pass

        Returns:
            Balanced text ready for the node builder
        """
        text = braces_balance(strings_encodeQuoted(source or ""))
        LOG(f"Encoded and balanced {len(text)} characters", level=3)
        text = self.scripts.scripts_evaluate(text, top_level_only=True)
        text = properties_addSemicolons(comments_strip(text))
        text = braces_balance(self.expander.expand(text))
        text = braces_balance(self.scripts.scripts_evaluate(text, top_level_only=True, this=root))
        if self.settings.debug_mode:
            LOG(f"Expanded source:\n{text}", level=1)
        return text

    def compile(self, source: str) -> Element:
        """
        Compile source into a tree.

        Diagnostics emitted while compiling are kept in self.diagnostics.

        Args:
            source: qHTML with imports already resolved

        Returns:
            Root Element (tag "q-html") holding the compiled nodes
        """
        LOG("Compiling qHTML source...", level=2)
        root = Element(tag=ROOT_TAG, is_root=True)
        self.compiling = True
        try:
            with diagnostics_capture() as diagnostics:
                text = self.preprocess(source, root)
                self.builder.body_build(root, text, scripts_done=True)
                readyHooks_flush(root, self.handlers)
                tree_decode(root)
        finally:
            self.compiling = False
        self.diagnostics = diagnostics
        LOG(
            f"Compiled {sum(1 for _ in root.elements())} element(s) with {len(diagnostics)} diagnostic(s)",
            level=2,
        )
        return root

    def html_render(self, source: str) -> str:
        """Compile source and serialize the root element"""
        return self.compile(source).to_html()

    @staticmethod
    def snippet_isQHtml(text: str) -> bool:
        return snippet_looksLikeQHtml(text)

    def rawText_prepare(self, value: str) -> str:
        """Raw markup created while compiling is decoded with the rest of the tree"""
        return uriComponent_encode(value) if self.compiling else value

    def snippet_build(self, source: str, host: Optional[Element] = None) -> List[Node]:
        """
        Compile a qHTML snippet into detached nodes.

        Scripts in the snippet see host as the parent of its top-level
        elements. Component definitions in the snippet join the registry.

        Args:
            source: Raw qHTML snippet
            host: Element the nodes are meant for

        Returns:
            Top-level nodes of the snippet, parentless
        """
        text = braces_balance(strings_encodeQuoted(source or ""))
        text = properties_addSemicolons(comments_strip(text))
        text = braces_balance(self.expander.expand(text))
        container = Element(tag="q-snippet")
        container.parent = host
        try:
            self.builder.body_build(container, text)
            readyHooks_flush(container, self.handlers, fallback_this=host)
        finally:
            container.parent = None
        nodes = list(container.children)
        for node in nodes:
            container.child_remove(node)
            if not self.compiling:
                tree_decode(node)
        return nodes
