"""
Program state model and pipeline helper

Defines ProgramState dataclass for the functional pipeline pattern and
the pipeline() helper for composing transformation stages.
"""

import dataclasses
from argparse import Namespace
from dataclasses import dataclass, field
from functools import reduce
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Type, TypeVar


PS = TypeVar("PS", bound="ProgramState")


@dataclass
class ProgramState:
    """
    Central state container for the compilation pipeline (state bus pattern).

    Pipeline stages and their state additions:
        - Initial: inputdir, outputdir, verbosity, inputFile, outputFile
        - env_check: inputSourceFile, htmlOutputFile, envOK
        - source_read: source (imports resolved)
        - html_compile: compileResult
        - results_report: (no additions, terminal stage)

    Attributes:
        inputdir: Directory containing the .qhtml source
        outputdir: Directory for the compiled HTML
        verbosity: Logging verbosity level (1-3)
        inputFile: Input .qhtml filename (relative to inputdir)
        outputFile: Output HTML filename (relative to outputdir)
        envOK: Environment validation passed
        inputSourceFile: Resolved path to the input file
        htmlOutputFile: Resolved path to the output file
        source: qHTML source with q-import blocks resolved
        compileResult: Compilation results (output_file, element_count, warnings, errors)
    """

    # CLI arguments
    inputdir: Optional[Path] = field(default=None)
    outputdir: Optional[Path] = field(default=None)
    verbosity: int = field(default=1)
    inputFile: str = field(default="")
    outputFile: str = field(default="index.html")

    # Pipeline state
    envOK: bool = field(default=False)
    inputSourceFile: Path = field(default=Path("/"))
    htmlOutputFile: Path = field(default=Path("/"))
    source: Optional[str] = field(default=None)
    compileResult: Optional[Dict[str, Any]] = field(default=None)

    @classmethod
    def state_createFromNamespace(
        cls: Type["ProgramState"], options: Namespace, inputdir: Path, outputdir: Path
    ) -> "ProgramState":
        """
        Create ProgramState from argparse Namespace and directory paths.

        Options that are not ProgramState fields are ignored.

        Args:
            options: Parsed CLI arguments (inputFile, outputFile, verbosity)
            inputdir: Directory containing source files
            outputdir: Directory for compilation output

        Returns:
            ProgramState instance with all CLI options as attributes
        """
        valid_fields = {f.name for f in dataclasses.fields(cls)}
        filtered_options = {k: v for k, v in vars(options).items() if k in valid_fields}
        merged_args = {**filtered_options, "inputdir": inputdir, "outputdir": outputdir}
        return cls(**merged_args)

    def copy(self: PS) -> PS:
        """
        Creates a shallow copy of the ProgramState instance.

        Returns:
            A new ProgramState instance.
        """
        return type(self)(**self.__dict__)


def pipeline(
    initial_state: ProgramState, *stages: Callable[[ProgramState], ProgramState]
) -> ProgramState:
    """
    Execute a functional pipeline of state transformations.

    Each stage is a function (ProgramState) -> ProgramState that receives
    the output of the previous stage and returns a new state.

    Example:
        final_state = pipeline(initial_state, env_check, source_read, html_compile, results_report)

    This is equivalent to:
        results_report(html_compile(source_read(env_check(initial_state))))
    """
    return reduce(lambda state, stage: stage(state), stages, initial_state)
