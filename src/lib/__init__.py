"""
qhtml - qHTML to HTML compiler

Compiler passes, component runtime and logging.
"""

__version__ = "1.0.0"

from .compiler import Compiler
from .registry import ComponentRegistry
from .imports import ImportResolver
from .evaluator import PythonEvaluator
from .log import LOG, componentLogger, diagnostics_capture, state_connectToLogger

__all__ = [
    "Compiler",
    "ComponentRegistry",
    "ImportResolver",
    "PythonEvaluator",
    "LOG",
    "componentLogger",
    "diagnostics_capture",
    "state_connectToLogger",
    "__version__",
]
