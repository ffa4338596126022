#!/usr/bin/env python3
"""
codegen CLI - Tauri + React desktop project scaffolding

Usage:
    codegen create <project-name>
    codegen create <project-name> --template react-ts --features rtk,router,eslint,api
    codegen check <project-dir>
"""

import shlex
import subprocess
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.align import Align
from rich.panel import Panel
from typer.core import TyperGroup

from .features import verify_project
from .logging_utils import configure_logging
from .orchestrator import RunAborted, TargetNotEmptyError, TaskOrchestrator, ensure_target_available
from .plan import (
    DEFAULT_FEATURES,
    FEATURE_CHOICES,
    PROJECT_NAME_RE,
    STATE_FEATURES,
    TEMPLATE_CHOICES,
    ProjectOptions,
    build_run_plan,
    parse_features,
)
from .progress import ProgressAnnouncer
from .runner import CommandRunner
from .ui import check_tool, console, multiselect_with_arrows, select_with_arrows, show_banner
from .version import INSTALL_SCRIPT_URL, __version__, check_for_update, make_client

MAX_DIAGNOSTIC_LINES = 20


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="codegen",
    help="Scaffold Tauri + React desktop projects",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


def _version_callback(value: bool):
    if value:
        console.print(f"codegen-cli {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
):
    """Show banner when no subcommand is provided."""
    if ctx.invoked_subcommand is None and "--help" not in sys.argv and "-h" not in sys.argv:
        show_banner()
        console.print(Align.center("[dim]Run 'codegen --help' for usage information[/dim]"))
        console.print()


def offer_update(github_token: Optional[str], skip_tls: bool) -> None:
    """Tell the user about a newer release and optionally run the installer."""
    with make_client(skip_tls) as client:
        latest = check_for_update(client=client, github_token=github_token)
    if not latest:
        return

    install_cmd = f"curl -fsSL {shlex.quote(INSTALL_SCRIPT_URL)} | sh"
    console.print(Panel(
        f"New version available: [green]v{latest}[/green] (current v{__version__})\n"
        f"Install with: [cyan]{install_cmd}[/cyan]",
        title="[yellow]Update Available[/yellow]",
        border_style="yellow",
        padding=(1, 2),
    ))
    if not sys.stdin.isatty() or not typer.confirm("Download and run the installer now?", default=False):
        return

    console.print("[cyan]Downloading installer and updating...[/cyan]")
    result = subprocess.run(["sh", "-c", install_cmd])
    if result.returncode == 0:
        console.print("[green]Update complete, please re-run the command.[/green]")
        raise typer.Exit(0)
    console.print(f"[red]Automatic update failed.[/red] Run this manually: [cyan]{install_cmd}[/cyan]")
    raise typer.Exit(1)


def _tail(text: str, limit: int = MAX_DIAGNOSTIC_LINES) -> str:
    lines = text.strip().splitlines()
    if len(lines) <= limit:
        return "\n".join(lines)
    return "\n".join(["…", *lines[-limit:]])


def _failure_panel(error: RunAborted, log_path: Path) -> Panel:
    summary = error.summary
    lines = [
        f"{'Step':<12} [cyan]{error.step_id}[/cyan]",
        f"{'Exit code':<12} {error.exit_code if error.exit_code is not None else '-'}",
        f"{'Progress':<12} {summary.completed}/{summary.total} steps",
    ]
    if summary.skipped:
        lines.append(f"{'Skipped':<12} [dim]{', '.join(summary.skipped)}[/dim]")
    if error.diagnostic:
        lines += ["", _tail(error.diagnostic)]
    lines += ["", f"[dim]Full log: {log_path}[/dim]"]
    return Panel("\n".join(lines), title="[red]Project creation failed[/red]", border_style="red", padding=(1, 2))


@app.command()
def create(
    project_name: str = typer.Argument(..., help="Name for your new project directory"),
    template: Optional[str] = typer.Option(None, "--template", help="Project template: react-ts or react"),
    features: Optional[str] = typer.Option(
        None, "--features", help="Comma separated features: rtk, zustand, router, eslint, husky, api (or 'none')"
    ),
    debug: bool = typer.Option(False, "--debug", help="Show informational log lines while the run progresses"),
    skip_update_check: bool = typer.Option(
        False, "--skip-update-check", envvar="CODEGEN_NO_UPDATE_CHECK", help="Do not check GitHub for a newer release"
    ),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification for the update check (not recommended)"),
    github_token: Optional[str] = typer.Option(
        None, "--github-token", help="GitHub token for the update check (or set GH_TOKEN or GITHUB_TOKEN)"
    ),
):
    """
    Create a new Tauri + React project.

    This command will:
    1. Check that the directory is free and required tools are installed
    2. Let you choose a template and the features to add
    3. Run create-tauri-app and install dependencies
    4. Add the selected features (store, router, linting, git hooks, invoke example)
    5. Verify the generated project

    Examples:
        codegen create my-app
        codegen create my-app --template react --features router,eslint
        codegen create my-app --features none
    """
    show_banner()

    if not PROJECT_NAME_RE.match(project_name):
        console.print(
            f"[red]Error:[/red] Invalid project name '{project_name}'. "
            "Use letters, digits, '-' or '_' (starting with a letter or digit)."
        )
        raise typer.Exit(1)

    parent_dir = Path.cwd()
    project_path = parent_dir / project_name
    try:
        ensure_target_available(project_path)
    except TargetNotEmptyError:
        error_panel = Panel(
            f"Directory '[cyan]{project_name}[/cyan]' already exists and is not empty\n"
            "Please choose a different project name or remove the existing directory.",
            title="[red]Directory Conflict[/red]",
            border_style="red",
            padding=(1, 2)
        )
        console.print()
        console.print(error_panel)
        raise typer.Exit(1)

    if not skip_update_check:
        offer_update(github_token, skip_tls)

    interactive = sys.stdin.isatty()

    if template:
        selected_template = template
    elif interactive:
        selected_template = select_with_arrows(TEMPLATE_CHOICES, "Choose a project template:", "react-ts")
    else:
        selected_template = "react-ts"

    selected_features = parse_features(features)
    if selected_features is None:
        if interactive:
            selected_features = frozenset(
                multiselect_with_arrows(
                    FEATURE_CHOICES, "Choose features to add:", DEFAULT_FEATURES, exclusive=[STATE_FEATURES]
                )
            )
        else:
            selected_features = frozenset(DEFAULT_FEATURES)

    try:
        options = ProjectOptions(
            name=project_name,
            template=selected_template,
            features=selected_features,
            parent_dir=parent_dir,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    required_tools = ["sh", "curl", options.package_manager, "npx"]
    if options.has("husky"):
        required_tools.append("git")
    missing = [tool for tool in required_tools if not check_tool(tool)]
    if missing:
        console.print()
        console.print(Panel(
            f"Missing required tool(s): [cyan]{', '.join(missing)}[/cyan]\n"
            "Install them and make sure they are on your PATH.",
            title="[red]Tool Check Failed[/red]",
            border_style="red",
            padding=(1, 2)
        ))
        raise typer.Exit(1)

    feature_labels = ", ".join(sorted(options.features)) or "none"
    setup_lines = [
        "[cyan]Tauri Project Setup[/cyan]",
        "",
        f"{'Project':<15} [green]{options.name}[/green]",
        f"{'Template':<15} [yellow]{TEMPLATE_CHOICES[options.template]}[/yellow]",
        f"{'Features':<15} [yellow]{feature_labels}[/yellow]",
        f"{'Target Path':<15} [dim]{options.project_path}[/dim]",
    ]
    console.print(Panel("\n".join(setup_lines), border_style="cyan", padding=(1, 2)))

    announcer = ProgressAnnouncer(console)
    log_path = configure_logging(announcer.log_handler(), verbose=debug)
    orchestrator = TaskOrchestrator(CommandRunner(), announcer)
    plan = build_run_plan(options)

    try:
        orchestrator.run(plan)
    except TargetNotEmptyError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except RunAborted as e:
        console.print()
        console.print(_failure_panel(e, log_path))
        raise typer.Exit(1)

    console.print()
    console.print(verify_project(options.project_path, sorted(options.features)).render())
    console.print("\n[bold green]Project ready.[/bold green]")

    steps_lines = [
        f"1. Go to the project folder: [cyan]cd {options.name}[/cyan]",
        "2. Start the app in development mode: [cyan]npm run tauri dev[/cyan]",
    ]
    if options.has("eslint"):
        steps_lines.append("3. Lint the frontend: [cyan]npm run lint[/cyan]")
    steps_panel = Panel("\n".join(steps_lines), title="Next Steps", border_style="cyan", padding=(1, 2))
    console.print()
    console.print(steps_panel)


@app.command()
def check(
    project_dir: Path = typer.Argument(..., help="Project directory to verify"),
    features: Optional[str] = typer.Option(
        None, "--features", help="Comma separated features whose files should be present"
    ),
):
    """Check that a generated project has the files its features need."""
    show_banner()
    selected = parse_features(features) or frozenset()
    unknown = selected - set(FEATURE_CHOICES)
    if unknown:
        console.print(f"[red]Error:[/red] Unknown feature(s): {', '.join(sorted(unknown))}")
        raise typer.Exit(1)

    tracker = verify_project(project_dir.resolve(), sorted(selected))
    console.print(tracker.render())
    if not tracker.ok:
        console.print("\n[yellow]Some expected files are missing.[/yellow]")
        raise typer.Exit(1)
    console.print("\n[bold green]Project looks complete.[/bold green]")


def main():
    app()


if __name__ == "__main__":
    main()
