"""Live progress display for a run: a per-step spinner and an overall bar.

Both displays share one terminal line. Every writer clears the line before
drawing, and only the final state of a step is terminated with a newline, so
completed steps stack up above the live line.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType
from rich.text import Text

SPINNER_GLYPHS = ("◐", "◓", "◑", "◒")
SPINNER_INTERVAL = 0.15
ROTATION_GLYPHS = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
BAR_WIDTH = 30
BAR_FILLED = "█"
BAR_EMPTY = "░"


def progress_percentage(current: int, total: int) -> int:
    """Whole percentage of ``current`` over ``total``; an empty run is complete."""
    if total <= 0:
        return 100
    current = min(max(current, 0), total)
    return (current * 100) // total


def render_spinner_frame(frame: int, message: str) -> Text:
    glyph = SPINNER_GLYPHS[frame % len(SPINNER_GLYPHS)]
    return Text.assemble((glyph, "cyan"), " ", message)


def render_bar(current: int, total: int, glyph: str, width: int = BAR_WIDTH) -> Text:
    percent = progress_percentage(current, total)
    filled = (width * percent) // 100
    text = Text()
    text.append(glyph if percent < 100 else "✔", style="cyan" if percent < 100 else "green")
    text.append(" ")
    text.append(BAR_FILLED * filled, style="green")
    text.append(BAR_EMPTY * (width - filled), style="bright_black")
    text.append(f" {percent:3d}%", style="bold")
    if total == 0:
        text.append("  nothing to run", style="bright_black")
    else:
        text.append(f"  {min(max(current, 0), total)}/{total} steps", style="bright_black")
    return text


class ProgressAnnouncer:
    """Renders step spinners and the overall bar for a single run.

    Construct one per run; the spinner frame and the bar's rotation index
    live on the instance. On a non-terminal console nothing is animated and
    every line is newline-terminated.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        *,
        interval: float = SPINNER_INTERVAL,
        width: int = BAR_WIDTH,
    ):
        self.console = console or Console()
        self.interval = interval
        self.width = width
        self._frame = 0
        self._rotation = 0
        self._spinner: Optional[asyncio.Task] = None
        self._line_dirty = False

    @property
    def animated(self) -> bool:
        return self.console.is_terminal

    @property
    def spinning(self) -> bool:
        return self._spinner is not None

    def _clear_line(self) -> None:
        if self.animated and self._line_dirty:
            self.console.control(Control.move_to_column(0), Control((ControlType.ERASE_IN_LINE, 2)))
        self._line_dirty = False

    def _write(self, renderable: Text, *, newline: bool) -> None:
        newline = newline or not self.animated
        self._clear_line()
        self.console.print(renderable, end="\n" if newline else "", highlight=False, soft_wrap=True)
        self._line_dirty = not newline

    # Spinner

    def start(self, message: str) -> None:
        if self._spinner is not None:
            raise RuntimeError("A spinner is already running")
        self._frame = 0
        if not self.animated:
            return
        self._write(render_spinner_frame(self._frame, message), newline=False)
        self._spinner = asyncio.get_running_loop().create_task(self._animate(message))

    async def _animate(self, message: str) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._frame = (self._frame + 1) % len(SPINNER_GLYPHS)
            self._write(render_spinner_frame(self._frame, message), newline=False)

    async def cancel(self) -> None:
        """Stop the spinner timer without drawing a final line."""
        task, self._spinner = self._spinner, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def succeed(self, message: str) -> None:
        await self.cancel()
        self._write(Text.assemble(("✔", "green"), " ", message), newline=True)

    async def fail(self, message: str) -> None:
        await self.cancel()
        self._write(Text.assemble(("✖", "red"), " ", (message, "red")), newline=True)

    # Overall bar

    def show_progress(self, current: int, total: int) -> None:
        glyph = ROTATION_GLYPHS[self._rotation % len(ROTATION_GLYPHS)]
        self._rotation += 1
        complete = total == 0 or current >= total
        self._write(render_bar(current, total, glyph, self.width), newline=complete)

    # Plain log lines

    def note(self, message: str, style: Optional[str] = None) -> None:
        self._write(Text(message, style=style or ""), newline=True)

    def log_handler(self, level: int = logging.WARNING) -> "AnnouncerLogHandler":
        handler = AnnouncerLogHandler(self)
        handler.setLevel(level)
        return handler


class AnnouncerLogHandler(logging.Handler):
    """Routes log records through the announcer so they never split a live line."""

    STYLES = {
        logging.DEBUG: "bright_black",
        logging.INFO: "cyan",
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "bold red",
    }

    def __init__(self, announcer: ProgressAnnouncer):
        super().__init__()
        self.announcer = announcer
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            style = self.STYLES.get(record.levelno, "")
            self.announcer.note(message, style)
        except Exception:
            self.handleError(record)
