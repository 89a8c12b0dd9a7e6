"""
Error and diagnostic models

The compiler never aborts on authored content. Problems found while parsing,
expanding or evaluating are reported as Diagnostic records through the
component logger. Exceptions are reserved for the CLI layer and for the
script evaluator, which rejects unsafe bodies before running them.
"""

from dataclasses import dataclass


class QHtmlError(Exception):
    """Base class for qhtml exceptions"""


class SourceReadError(QHtmlError):
    """Input file is missing or unreadable"""


class ScriptSecurityError(QHtmlError):
    """Script body uses a construct the evaluator does not allow"""


@dataclass(frozen=True)
class Diagnostic:
    """
    One leveled message emitted while compiling

    Attributes:
        level: "info", "warn" or "error"
        component_id: Component or template id the message concerns ('' when global)
        message: Human readable description

    Example:
        Diagnostic(level="error", component_id="card",
                   message='Into target slot "footer" was not found.')
    """
    level: str
    component_id: str
    message: str

    def text(self) -> str:
        """Render as the logged line, e.g. 'qhtml: [card] message'"""
        prefix = f"[{self.component_id}] " if self.component_id else ""
        return f"qhtml: {prefix}{self.message}"
