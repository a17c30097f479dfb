"""Single-line progress indicator and console output."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.status import Status as Spinner


class ProgressReporter:
    """Drive one spinner at a time plus plain status lines.

    Pipelines only talk to this class, so a command keeps a single coherent
    progress display no matter which component is currently reporting.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._spinner: Spinner | None = None

    def start(self, text: str) -> None:
        self.stop()
        self._spinner = self.console.status(escape(text))
        self._spinner.start()

    def update(self, text: str) -> None:
        if self._spinner is None:
            self.start(text)
            return
        self._spinner.update(escape(text))

    def stop(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None

    def succeed(self, text: str) -> None:
        self._finish("green", "✔", text)

    def warn(self, text: str) -> None:
        self._finish("yellow", "⚠", text)

    def fail(self, text: str) -> None:
        self._finish("red", "✖", text)

    def info(self, text: str, style: str | None = None) -> None:
        self.console.print(escape(text), style=style, highlight=False)

    def _finish(self, color: str, icon: str, text: str) -> None:
        self.stop()
        self.console.print(f"[{color}]{icon}[/{color}] {escape(text)}", highlight=False)


__all__ = ["ProgressReporter"]
