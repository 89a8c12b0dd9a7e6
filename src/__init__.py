"""
qhtml - qHTML to HTML compiler

Compiles brace-delimited component markup (q-component, q-template, slots,
signals and q-script blocks) into a renderable node tree.
"""

__version__ = "1.0.0"

from .lib import Compiler, ComponentRegistry, ImportResolver, LOG, state_connectToLogger

__all__ = ["Compiler", "ComponentRegistry", "ImportResolver", "LOG", "state_connectToLogger", "__version__"]
