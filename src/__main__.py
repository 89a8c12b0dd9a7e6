#!/usr/bin/env python3
"""
qhtml - qHTML to HTML compiler

Compiles a brace-delimited markup file, with its q-component and q-template
definitions, slots, signals and q-script blocks, into a static HTML page.

As an aside, this codebase leverages the ChRIS "plugin" concept/pattern as
general purpose python app development framework.

Usage:
    qhtml inputdir/ outputdir/ --inputFile page.qhtml

    q-import blocks in the source are resolved relative to inputdir. The
    compiled page is written to outputdir/ (index.html by default).

Examples:
    # Basic compilation
    qhtml . output/ --inputFile page.qhtml

    # Custom output name, verbose tracing
    qhtml . output/ --inputFile page.qhtml --outputFile page.html -vv
"""

import sys
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser, Namespace
from pathlib import Path

from chris_plugin import chris_plugin

from .lib import Compiler, ImportResolver, LOG, __version__, state_connectToLogger
from .models import ProgramState, SourceReadError, pipeline


DISPLAY_TITLE = r"""
         _     _             _
    __ _| |__ | |_ _ __ ___ | |
   / _` | '_ \| __| '_ ` _ \| |
  | (_| | | | | |_| | | | | | |
   \__, |_| |_|\__|_| |_| |_|_|
      |_|
  qHTML to HTML compiler
"""

HTML_DOCUMENT = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
</head>
<body>
{body}
</body>
</html>
"""

# Define CLI arguments
parser = ArgumentParser(
    description="qhtml - compile qHTML component markup to HTML",
    formatter_class=ArgumentDefaultsHelpFormatter,
)

parser.add_argument(
    "--inputFile", required=True, type=str, help="Input qHTML (.qhtml) file (relative to inputdir)"
)

parser.add_argument(
    "--outputFile",
    default="index.html",
    type=str,
    help="Output HTML file (relative to outputdir)",
)

parser.add_argument(
    "-v",
    "--verbosity",
    action="count",
    default=1,
    help="Increase output verbosity (can be repeated: -v, -vv, -vvv)",
)

parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")


def env_check(inputstate: ProgramState) -> ProgramState:
    """
    Validate environment and resolve file paths.

    Args:
        inputstate: Initial program state with CLI options

    Returns:
        ProgramState with added fields:
            - inputSourceFile: Resolved path to the input file
            - htmlOutputFile: Output file path (its directory is created)
            - envOK: True if environment is valid

    Exits:
        1 if the input file is not found
    """
    state = inputstate.copy()

    if state.verbosity >= 2:
        LOG(DISPLAY_TITLE, level=2)

    LOG("Checking environment...", level=2)

    input_file = state.inputdir / state.inputFile
    if not input_file.exists():
        print(f"Error: Input file not found: {input_file}", file=sys.stderr)
        state.envOK = False
        sys.exit(1)

    state.inputSourceFile = input_file
    LOG(f"Input file: {input_file}", level=2)

    state.htmlOutputFile = state.outputdir / state.outputFile
    state.htmlOutputFile.parent.mkdir(parents=True, exist_ok=True)
    LOG(f"Output file: {state.htmlOutputFile}", level=2)

    state.envOK = True
    return state


def source_load(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceReadError(f"cannot read {path}: {e}") from e


def source_read(inputstate: ProgramState) -> ProgramState:
    """
    Read the qHTML source and resolve its q-import blocks.

    Args:
        inputstate: Program state with inputSourceFile set

    Returns:
        ProgramState with added field:
            - source: qHTML text with imports resolved

    Exits:
        1 if the file cannot be read
    """
    state = inputstate.copy()

    LOG("Reading source file...", level=1)

    try:
        source = source_load(state.inputSourceFile)
    except SourceReadError as e:
        print(f"Error reading input file: {e}", file=sys.stderr)
        sys.exit(1)
    LOG(f"Read {len(source)} characters from {state.inputSourceFile.name}", level=2)

    resolver = ImportResolver(state.inputSourceFile.parent)
    state.source = resolver.imports_resolve(source)
    return state


def html_compile(inputstate: ProgramState) -> ProgramState:
    """
    Compile the source and write the HTML page.

    Args:
        inputstate: Program state with source set

    Returns:
        ProgramState with added field:
            - compileResult: Dict containing:
                - status: bool (compilation success)
                - output_file: str (path to the written page)
                - element_count: int (compiled elements)
                - warnings: int, errors: int (diagnostics)

    Exits:
        1 if no source is available
    """
    state = inputstate.copy()

    LOG("Compiling qHTML to HTML...", level=1)

    if state.source is None:
        print("Error: No source available", file=sys.stderr)
        sys.exit(1)

    compiler = Compiler()
    root = compiler.compile(state.source)
    state.htmlOutputFile.write_text(HTML_DOCUMENT.format(body=root.inner_html()), encoding="utf-8")
    LOG(f"Wrote {state.htmlOutputFile}", level=2)

    state.compileResult = {
        "status": True,
        "output_file": str(state.htmlOutputFile),
        "element_count": sum(1 for _ in root.elements()),
        "warnings": len(compiler.diagnostics.messages("warn")),
        "errors": len(compiler.diagnostics.messages("error")),
    }
    return state


def results_report(inputstate: ProgramState) -> ProgramState:
    """
    Display compilation results.

    Args:
        inputstate: Program state with compileResult populated

    Returns:
        ProgramState unchanged (terminal pipeline stage)

    Exits:
        1 if compileResult is None
    """
    state: ProgramState = inputstate.copy()
    if not state.compileResult:
        print("Error: Compilation failed", file=sys.stderr)
        sys.exit(1)

    LOG("\n✓ Compilation successful!", level=1)
    LOG(f"  Output:   {state.compileResult['output_file']}", level=1)
    LOG(f"  Elements: {state.compileResult['element_count']}", level=1)
    LOG(
        f"  Diagnostics: {state.compileResult['warnings']} warning(s), {state.compileResult['errors']} error(s)",
        level=1,
    )
    return state


@chris_plugin(
    parser=parser,
    title="qhtml - qHTML to HTML compiler",
    category="Utility",
    min_memory_limit="100Mi",
    min_cpu_limit="500m",
)
def main(options: Namespace, inputdir: Path, outputdir: Path):
    """
    Main entry point - compile a qHTML source file to HTML.

    Orchestrates the full compilation pipeline:
        1. env_check: Validate paths and environment
        2. source_read: Read the source and resolve q-import blocks
        3. html_compile: Compile and write the HTML page
        4. results_report: Display results to user

    Args:
        options: CLI arguments from argparse
            - inputFile: str - Input .qhtml filename
            - outputFile: str - Output HTML filename
            - verbosity: int - Logging verbosity level (1-3)
        inputdir: Directory containing qHTML source files
        outputdir: Directory where the page will be written

    Note:
        This function is wrapped by @chris_plugin which handles CLI
        argument parsing and invokes this function with parsed values.
    """
    state: ProgramState = ProgramState.state_createFromNamespace(
        options=options, inputdir=inputdir, outputdir=outputdir
    )

    # Connect state to logger for entire pipeline
    state_connectToLogger(state)

    pipeline(state, env_check, source_read, html_compile, results_report)


if __name__ == "__main__":
    main()  # type: ignore  # @chris_plugin decorator transforms signature
