"""
Plain text UI.

Writes messages to stdout/stderr with no formatting or colors.
Suitable for piped output and non-interactive hosts.
"""

import sys as _sys
import threading as _threading
import typing as _typing

import vessel.ui.base as base


class Basic(base.Interface):
    """
    Plain text UI.

    Informational messages go to `output`, warnings and errors to `error`.
    """

    def __init__(
        self,
        output: _typing.TextIO | None = None,
        error: _typing.TextIO | None = None,
    ) -> None:
        """
        Args:
            output: Stream for normal output (default: sys.stdout).
            error: Stream for warnings and errors (default: sys.stderr).
        """
        self._output = output or _sys.stdout
        self._error = error or _sys.stderr
        self._lock = _threading.Lock()

    def say(self, level: base.Level, text: str) -> None:
        stream = self._error if level.is_problem else self._output
        with self._lock:
            stream.write(text + "\n")
            stream.flush()
