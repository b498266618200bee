"""
Colored terminal UI using the Rich library.
"""

import rich.console as _rich_console
import rich.markup as _rich_markup

import vessel.ui.base as base

_STYLES: dict[base.Level, str] = {
    base.Level.INFO: "",
    base.Level.DETAIL: "dim",
    base.Level.SUCCESS: "green",
    base.Level.WARN: "yellow",
    base.Level.ERROR: "bold red",
}


class Colored(base.Interface):
    """
    Rich console UI with per-level colors.

    Warnings and errors are written to a separate stderr console.
    """

    def __init__(
        self,
        console: _rich_console.Console | None = None,
        error_console: _rich_console.Console | None = None,
        *,
        no_color: bool = False,
    ) -> None:
        """
        Args:
            console: Console for normal output (created if not provided).
            error_console: Console for warnings and errors.
            no_color: Disable all colors.
        """
        self._console = console or _rich_console.Console(no_color=no_color)
        self._error_console = error_console or _rich_console.Console(
            stderr=True,
            no_color=no_color,
        )

    def say(self, level: base.Level, text: str) -> None:
        console = self._error_console if level.is_problem else self._console
        style = _STYLES[level]
        escaped = _rich_markup.escape(text)
        console.print(f"[{style}]{escaped}[/{style}]" if style else escaped)
