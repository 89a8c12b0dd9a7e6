"""
Expression evaluator for q-script bodies and inline handlers

Script bodies are Python. Before anything runs, the body is parsed and
checked by CodeValidator: imports, dangerous builtins and underscore-prefixed
names or attributes are rejected. Code then runs with a restricted
__builtins__ mapping.

Two entry points, both behind the ExpressionEvaluator protocol so the
compiler can be given another evaluator:

- evaluate(body, this, namespace): an expression body returns its value; a
  statement body runs as a function body, and its last bare expression (or
  an explicit `return`) provides the value.
- function_compile(params, body, label): compile a body once into a callable
  taking (this, *params), used for event handlers, signal handlers and actions.

Example:
    >>> PythonEvaluator().evaluate("1 + 1", this=None)
    2
    >>> fn = PythonEvaluator().function_compile("a, b", "total = a + b\\ntotal * 2")
    >>> fn(None, 2, 3)
    10
"""

import ast
import builtins
import textwrap
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional, Protocol

from ..models.errors import ScriptSecurityError

BODY_FUNCTION_NAME = "qhtml_body"


@dataclass
class EvaluatorConfig:
    """Evaluator restrictions"""

    allowed_builtins: FrozenSet[str] = field(default_factory=lambda: frozenset({
        "bool", "int", "float", "str", "list", "dict", "tuple", "set", "frozenset",
        "abs", "all", "any", "chr", "divmod", "enumerate", "filter", "format",
        "isinstance", "len", "map", "max", "min", "next", "ord", "pow", "range",
        "repr", "reversed", "round", "sorted", "sum", "zip", "callable", "iter",
        "Exception", "ValueError", "TypeError", "KeyError", "IndexError",
        "True", "False", "None",
    }))

    blocked_names: FrozenSet[str] = field(default_factory=lambda: frozenset({
        "exec", "eval", "compile", "open", "input", "__import__", "breakpoint",
        "exit", "quit", "globals", "locals", "vars", "dir", "getattr", "setattr",
        "delattr", "type", "object", "super", "memoryview",
    }))


class CodeValidator(ast.NodeVisitor):
    """
    AST visitor that rejects constructs a script body may not use.

    Checks for:
    - import statements
    - blocked builtins, by name or call
    - names and attributes starting with an underscore
    """

    def __init__(self, config: EvaluatorConfig) -> None:
        self.config = config
        self.errors: list = []

    def validate(self, tree: ast.AST) -> None:
        """
        Raises:
            ScriptSecurityError: If the tree contains a rejected construct
        """
        self.errors = []
        self.visit(tree)
        if self.errors:
            raise ScriptSecurityError("; ".join(self.errors))

    def visit_Import(self, node: ast.Import) -> None:
        self.errors.append("Import statements are not allowed")

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self.errors.append("Import statements are not allowed")

    def visit_Global(self, node: ast.Global) -> None:
        self.errors.append("global statements are not allowed")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            self.errors.append(f"Private attribute '{node.attr}' access is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in self.config.blocked_names:
            self.errors.append(f"Name '{node.id}' is not allowed")
        if node.id.startswith("_"):
            self.errors.append(f"Private name '{node.id}' is not allowed")


def builtins_restrict(config: EvaluatorConfig) -> Dict[str, Any]:
    """Mapping of the allowed builtins, used as __builtins__"""
    return {
        name: getattr(builtins, name)
        for name in config.allowed_builtins
        if hasattr(builtins, name)
    }


def body_normalize(body: str) -> str:
    """
    Re-indent a body cut out of surrounding markup so Python can parse it.

    A body that starts on its own line is dedented as a whole. A body whose
    first line followed the opening brace directly keeps that line at column
    zero; the remaining lines are dedented, and indented one level when the
    first line opens a block.

    Example:
        >>> body_normalize("x = 1\\n        y = 2")
        'x = 1\\ny = 2'
    """
    lines = str(body or "").rstrip().split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        return ""
    head = lines[0]
    if head[:1].isspace() or len(lines) == 1:
        return textwrap.dedent("\n".join(lines)).strip("\n")
    rest = textwrap.dedent("\n".join(lines[1:]))
    if head.rstrip().endswith(":") and not rest[:1].isspace():
        rest = textwrap.indent(rest, "    ")
    return f"{head.strip()}\n{rest}"


class ExpressionEvaluator(Protocol):
    """Capability the compiler uses to run script bodies"""

    def evaluate(self, body: str, this: Any, namespace: Optional[Dict[str, Any]] = None) -> Any:
        ...

    def function_compile(
        self, params: str, body: str, label: str = "", namespace: Optional[Dict[str, Any]] = None
    ) -> Callable[..., Any]:
        ...


class PythonEvaluator:
    """
    Default ExpressionEvaluator: validated Python with restricted builtins

    Args:
        config: Restrictions; defaults to EvaluatorConfig()
        namespace: Names visible to every body (e.g. compiler helpers)
    """

    def __init__(
        self, config: Optional[EvaluatorConfig] = None, namespace: Optional[Dict[str, Any]] = None
    ) -> None:
        self.config = config or EvaluatorConfig()
        self.validator = CodeValidator(self.config)
        self.builtins = builtins_restrict(self.config)
        self.namespace: Dict[str, Any] = dict(namespace or {})

    def globals_make(self, namespace: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        scope: Dict[str, Any] = {"__builtins__": self.builtins}
        scope.update(self.namespace)
        if namespace:
            scope.update(namespace)
        return scope

    def evaluate(self, body: str, this: Any, namespace: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a body and return its value.

        Raises:
            SyntaxError: Body is not valid Python
            ScriptSecurityError: Body uses a rejected construct
            Exception: Whatever the body raises
        """
        source = body_normalize(body)
        if not source:
            return None
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError:
            fn = self.function_compile("", source, "q-script", namespace)
            return fn(this)
        self.validator.validate(tree)
        code = compile(tree, "<q-script>", "eval")
        scope = self.globals_make(namespace)
        scope["this"] = this
        return eval(code, scope)

    def function_compile(
        self, params: str, body: str, label: str = "", namespace: Optional[Dict[str, Any]] = None
    ) -> Callable[..., Any]:
        """
        Compile body into a callable taking (this, *params).

        The last statement, when it is a bare expression, becomes the return
        value.

        Raises:
            SyntaxError: Body or parameter list is not valid Python
            ScriptSecurityError: Body uses a rejected construct
        """
        source = body_normalize(body) or "pass"
        params = (params or "").strip()
        signature = f"this, {params}" if params else "this"
        wrapped = f"def {BODY_FUNCTION_NAME}({signature}):\n{textwrap.indent(source, '    ')}\n"
        tree = ast.parse(wrapped, mode="exec")
        self.validator.validate(tree)
        function_def = tree.body[0]
        last = function_def.body[-1]
        if isinstance(last, ast.Expr):
            function_def.body[-1] = ast.copy_location(ast.Return(value=last.value), last)
            ast.fix_missing_locations(tree)
        code = compile(tree, f"<{label or 'qhtml'}>", "exec")
        scope = self.globals_make(namespace)
        exec(code, scope)
        return scope[BODY_FUNCTION_NAME]
