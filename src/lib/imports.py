"""
q-import resolution

Replaces `q-import { relative/path.qhtml }` blocks with the content of the
named file, read relative to a base directory. Imported content is resolved
recursively; every batch shares one counter capped by import_limit.

Rejected imports are replaced by nothing:
- a quoted or empty path
- a file that cannot be read
- a fragment containing its own <q-html> host
"""

import re
from pathlib import Path
from typing import Optional, Union

from ..config import AppSettings, appsettings
from ..models.definitions import ImportState
from .log import LOG, componentLogger
from .scanner import invocation_find

IMPORT_TAG = "q-import"

_NESTED_HOST = re.compile(r"<\s*q-html", re.IGNORECASE)


class ImportResolver:
    """
    Resolves q-import blocks against files under base_dir

    Args:
        base_dir: Directory import paths are relative to
        settings: import_limit
    """

    def __init__(self, base_dir: Union[str, Path] = ".", settings: Optional[AppSettings] = None) -> None:
        self.base_dir = Path(base_dir)
        self.settings = settings or appsettings

    def state_make(self) -> ImportState:
        return ImportState(limit=self.settings.import_limit)

    def path_resolve(self, inner: str) -> str:
        """Import path written in a q-import body, or '' when it is unusable"""
        path = (inner or "").strip()
        if not path:
            componentLogger.warn(IMPORT_TAG, "q-import has no path.")
            return ""
        if path[0] in "\"'":
            componentLogger.warn(IMPORT_TAG, "q-import path must be raw text, not quoted.")
            return ""
        return path

    def fragment_load(self, path: str) -> str:
        try:
            content = (self.base_dir / path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            componentLogger.warn(IMPORT_TAG, f'q-import failed to load "{path}".')
            return ""
        if _NESTED_HOST.search(content):
            componentLogger.warn(IMPORT_TAG, f'q-import rejected "{path}" because it contains <q-html>.')
            return ""
        LOG(f"Imported {len(content)} characters from {path}", level=2)
        return content

    def imports_resolve(self, text: str, state: Optional[ImportState] = None) -> str:
        """
        Replace every q-import block in text, recursively.

        Args:
            text: Raw qHTML
            state: Shared counters; a fresh one is made when omitted

        Returns:
            Text without q-import blocks
        """
        state = state if state is not None else self.state_make()
        out = text or ""
        pos = 0
        while True:
            found = invocation_find(out, IMPORT_TAG, pos)
            if found is None:
                break
            replacement = ""
            if state.count >= state.limit:
                if not state.warned:
                    componentLogger.warn(
                        IMPORT_TAG, f"q-import limit reached ({state.limit}); remaining imports skipped."
                    )
                    state.warned = True
            else:
                state.count += 1
                path = self.path_resolve(out[found.brace_open + 1:found.brace_close])
                if path:
                    replacement = self.imports_resolve(self.fragment_load(path), state)
            out = out[:found.tag_start] + replacement + out[found.brace_close + 1:]
            pos = found.tag_start + len(replacement)
        return out
