"""
Models package for qhtml

Contains data structures and type definitions for the compilation pipeline.
"""

from .state import ProgramState, pipeline
from .errors import QHtmlError, SourceReadError, ScriptSecurityError, Diagnostic
from .nodes import Node, Element, TextNode, RawMarkupNode, StyleNode
from .segments import Segment, SegmentKind
from .definitions import Definition, DefinitionKind

__all__ = [
    "ProgramState",
    "pipeline",
    "QHtmlError",
    "SourceReadError",
    "ScriptSecurityError",
    "Diagnostic",
    "Node",
    "Element",
    "TextNode",
    "RawMarkupNode",
    "StyleNode",
    "Segment",
    "SegmentKind",
    "Definition",
    "DefinitionKind",
]
