import shutil
from typing import Iterable, Optional

import readchar
import typer
from rich.align import Align
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

console = Console()

# ASCII Art Banner
BANNER = """
 ██████╗ ██████╗ ██████╗ ███████╗ ██████╗ ███████╗███╗   ██╗
██╔════╝██╔═══██╗██╔══██╗██╔════╝██╔════╝ ██╔════╝████╗  ██║
██║     ██║   ██║██║  ██║█████╗  ██║  ███╗█████╗  ██╔██╗ ██║
██║     ██║   ██║██║  ██║██╔══╝  ██║   ██║██╔══╝  ██║╚██╗██║
╚██████╗╚██████╔╝██████╔╝███████╗╚██████╔╝███████╗██║ ╚████║
 ╚═════╝ ╚═════╝ ╚═════╝ ╚══════╝ ╚═════╝ ╚══════╝╚═╝  ╚═══╝
"""

TAGLINE = "Tauri + React desktop project scaffolding"


def show_banner():
    """Display the ASCII art banner."""
    banner_lines = BANNER.strip().split('\n')
    colors = ["bright_blue", "blue", "cyan", "bright_cyan", "white", "bright_white"]

    styled_banner = Text()
    for i, line in enumerate(banner_lines):
        color = colors[i % len(colors)]
        styled_banner.append(line + "\n", style=color)

    console.print(Align.center(styled_banner))
    console.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    console.print()


class StepTracker:
    """Named checks rendered as a tree; each is pending, done or error."""

    SYMBOLS = {
        "pending": "[green dim]○[/green dim]",
        "done": "[green]●[/green]",
        "error": "[red]●[/red]",
    }

    def __init__(self, title: str):
        self.title = title
        self.steps = []  # list of dicts: {key, label, status, detail}

    def add(self, key: str, label: str):
        if self._find(key) is None:
            self.steps.append({"key": key, "label": label, "status": "pending", "detail": ""})

    def complete(self, key: str, detail: str = ""):
        self._update(key, "done", detail)

    def error(self, key: str, detail: str = ""):
        self._update(key, "error", detail)

    def _find(self, key: str) -> Optional[dict]:
        return next((s for s in self.steps if s["key"] == key), None)

    def _update(self, key: str, status: str, detail: str):
        step = self._find(key)
        if step is None:
            self.steps.append({"key": key, "label": key, "status": status, "detail": detail})
            return
        step["status"] = status
        if detail:
            step["detail"] = detail

    def status(self, key: str) -> Optional[str]:
        step = self._find(key)
        return step["status"] if step else None

    @property
    def ok(self) -> bool:
        return all(s["status"] == "done" for s in self.steps)

    def render(self):
        tree = Tree(f"[cyan]{self.title}[/cyan]", guide_style="grey50")
        for step in self.steps:
            symbol = self.SYMBOLS.get(step["status"], " ")
            detail = step["detail"].strip()
            if step["status"] == "pending":
                line = f"{symbol} [bright_black]{step['label']}[/bright_black]"
            else:
                line = f"{symbol} [white]{step['label']}[/white]"
            if detail:
                line += f" [bright_black]({detail})[/bright_black]"
            tree.add(line)
        return tree


def check_tool(tool: str) -> bool:
    """Check if a tool is installed."""
    return shutil.which(tool) is not None


def get_key():
    """Get a single keypress in a cross-platform way using readchar."""
    key = readchar.readkey()

    if key == readchar.key.UP:
        return 'up'
    if key == readchar.key.DOWN:
        return 'down'
    if key == readchar.key.ENTER:
        return 'enter'
    if key == readchar.key.ESC:
        return 'escape'
    if key == readchar.key.SPACE:
        return 'space'
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt

    return key


def _cancel_selection():
    console.print("\n[yellow]Selection cancelled[/yellow]")
    raise typer.Exit(1)


def select_with_arrows(options: dict, prompt_text: str = "Select an option", default_key: str = None) -> str:
    """
    Interactive selection using arrow keys with Rich Live display.

    Args:
        options: Dict with keys as option keys and values as descriptions
        prompt_text: Text to show above the options
        default_key: Default option key to start with

    Returns:
        Selected option key
    """
    option_keys = list(options.keys())
    if default_key and default_key in option_keys:
        selected_index = option_keys.index(default_key)
    else:
        selected_index = 0

    def create_selection_panel():
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")

        for i, key in enumerate(option_keys):
            marker = "▶" if i == selected_index else " "
            table.add_row(marker, f"[cyan]{key}[/cyan] [dim]({options[key]})[/dim]")

        table.add_row("", "")
        table.add_row("", "[dim]Use ↑/↓ to navigate, Enter to select, Esc to cancel[/dim]")

        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(create_selection_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                _cancel_selection()
            if key == 'up':
                selected_index = (selected_index - 1) % len(option_keys)
            elif key == 'down':
                selected_index = (selected_index + 1) % len(option_keys)
            elif key == 'enter':
                return option_keys[selected_index]
            elif key == 'escape':
                _cancel_selection()
            live.update(create_selection_panel(), refresh=True)


def multiselect_with_arrows(
    options: dict,
    prompt_text: str = "Select options",
    default_keys: Iterable[str] = (),
    exclusive: Iterable[Iterable[str]] = (),
) -> list[str]:
    """Like select_with_arrows, but Space toggles entries and Enter confirms.

    Selecting a key from one of the ``exclusive`` groups deselects the rest
    of that group.

    Returns the chosen keys in the order of ``options``.
    """
    option_keys = list(options.keys())
    exclusive = [tuple(group) for group in exclusive]
    chosen = {k for k in default_keys if k in options}
    cursor = 0

    def create_selection_panel():
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left", width=3)
        table.add_column(style="white", justify="left")

        for i, key in enumerate(option_keys):
            marker = "▶" if i == cursor else " "
            box = "[green]◉[/green]" if key in chosen else "○"
            table.add_row(marker, box, f"[cyan]{key}[/cyan] [dim]({options[key]})[/dim]")

        table.add_row("", "", "")
        table.add_row("", "", "[dim]↑/↓ to navigate, Space to toggle, Enter to confirm, Esc to cancel[/dim]")

        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(create_selection_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                _cancel_selection()
            if key == 'up':
                cursor = (cursor - 1) % len(option_keys)
            elif key == 'down':
                cursor = (cursor + 1) % len(option_keys)
            elif key == 'space':
                current = option_keys[cursor]
                if current in chosen:
                    chosen.discard(current)
                else:
                    for group in exclusive:
                        if current in group:
                            chosen.difference_update(group)
                    chosen.add(current)
            elif key == 'enter':
                return [k for k in option_keys if k in chosen]
            elif key == 'escape':
                _cancel_selection()
            live.update(create_selection_panel(), refresh=True)
