"""
Centralized logging using Loguru with context-aware verbosity.

This module provides two logging surfaces:

LOG() respects the current ProgramState's verbosity level without requiring
explicit state passing. It is used for compile-stage tracing.

componentLogger is the diagnostics channel. Every authored-content problem
(missing slot, bad signal parameter, failing q-script) goes through it with
the id of the component concerned. Messages are prefixed "qhtml: [id] ",
forwarded to loguru, and recorded by any active DiagnosticCollector.

Features:
- Context-aware logging tied to ProgramState verbosity
- Rich formatting with timestamps, colors, and metadata
- Thread-safe using contextvars
- Diagnostics capture for callers and tests

Usage:
    from qhtml.lib.log import LOG, componentLogger, diagnostics_capture

    LOG("Expanding components", level=2)
    componentLogger.warn("card", 'No content provided for slot "title".')

    with diagnostics_capture() as diagnostics:
        compiler.compile(source)
    diagnostics.messages("error")
"""

from loguru import logger
from typing import Any, Iterator, List, Optional
from contextlib import contextmanager
from contextvars import ContextVar
import sys

from ..models.errors import Diagnostic

# Context variable to hold current ProgramState
_program_state: ContextVar[Optional[Any]] = ContextVar('program_state', default=None)

# Context variable to hold the innermost active diagnostics collector
_diagnostics: ContextVar[Optional['DiagnosticCollector']] = ContextVar('diagnostics', default=None)

# Configure loguru with qhtml-specific format
logger_format = (
    "<green>{time:HH:mm:ss}</green> │ "
    "<level>{level: <7}</level> │ "
    "<cyan>{function: <20}</cyan> @ "
    "<cyan>{line: <4}</cyan> ║ "
    "<level>{message}</level>"
)

logger.remove()  # Remove default handler
logger.add(sys.stderr, format=logger_format, level="DEBUG")


def state_connectToLogger(state: Any) -> None:
    """
    Connect a ProgramState to the logging context.

    Call this at the start of each pipeline function to make the state's
    verbosity setting available to LOG() calls throughout that context.

    Args:
        state: ProgramState instance with verbosity attribute

    Example:
        def source_read(inputstate: ProgramState) -> ProgramState:
            state = inputstate.copy()
            state_connectToLogger(state)
            LOG("Reading source...", level=1)
    """
    _program_state.set(state)


def LOG(message: str, level: int = 1, **kwargs: Any) -> None:
    """
    Log message if current state's verbosity allows.

    Args:
        message: Log message to display
        level: Minimum verbosity level required (1=normal, 2=verbose, 3=debug)
        **kwargs: Additional loguru metadata

    Verbosity levels:
        1 = Normal output (default)
        2 = Verbose (-v)
        3 = Debug (-vv or higher)

    Example:
        LOG("File read successfully", level=1)
        LOG("Expanded 4 invocations", level=2)
        LOG("q-script at 1337 resolved to 'text { 2 }'", level=3)
    """
    state = _program_state.get()

    if state and hasattr(state, 'verbosity') and state.verbosity >= level:
        logger.debug(message, **kwargs)


class DiagnosticCollector:
    """
    Ordered record of diagnostics emitted inside a diagnostics_capture() block

    Collectors nest: a diagnostic is recorded by the innermost collector and
    every collector that was active when it was opened.
    """

    def __init__(self, parent: Optional['DiagnosticCollector'] = None) -> None:
        self.parent = parent
        self.records: List[Diagnostic] = []

    def record(self, diagnostic: Diagnostic) -> None:
        collector: Optional[DiagnosticCollector] = self
        while collector is not None:
            collector.records.append(diagnostic)
            collector = collector.parent

    def messages(self, level: Optional[str] = None) -> List[str]:
        """Messages of all records, optionally only those at one level"""
        return [d.message for d in self.records if level is None or d.level == level]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@contextmanager
def diagnostics_capture() -> Iterator[DiagnosticCollector]:
    """
    Collect every diagnostic emitted within the block.

    Example:
        with diagnostics_capture() as diagnostics:
            compiler.compile('card { into { slot: "nope"; } }')
        assert diagnostics.messages("error")
    """
    collector = DiagnosticCollector(parent=_diagnostics.get())
    token = _diagnostics.set(collector)
    try:
        yield collector
    finally:
        _diagnostics.reset(token)


_LOGURU_LEVELS = {"info": "INFO", "warn": "WARNING", "error": "ERROR"}


def componentIssue_log(level: str, component_id: str, message: str) -> None:
    """
    Emit one diagnostic for a component.

    Never raises: the diagnostics channel must not interrupt compilation.

    Args:
        level: "info", "warn" or "error"
        component_id: Component id the message concerns ('' for none)
        message: Description of the problem
    """
    diagnostic = Diagnostic(level=level, component_id=component_id or "", message=message)
    collector = _diagnostics.get()
    if collector is not None:
        collector.record(diagnostic)
    logger.opt(depth=2).log(_LOGURU_LEVELS.get(level, "INFO"), diagnostic.text())


class ComponentLogger:
    """Leveled facade over componentIssue_log()"""

    def warn(self, component_id: str, message: str) -> None:
        componentIssue_log("warn", component_id, message)

    def error(self, component_id: str, message: str) -> None:
        componentIssue_log("error", component_id, message)

    def info(self, component_id: str, message: str) -> None:
        componentIssue_log("info", component_id, message)


componentLogger = ComponentLogger()
