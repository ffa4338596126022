from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from . import features
from .orchestrator import RunPlan, Step

GENERATOR_URL = "https://create.tauri.app/sh"

TEMPLATE_CHOICES = {
    "react-ts": "React (TypeScript)",
    "react": "React (JavaScript)",
}

FEATURE_CHOICES = {
    "rtk": "Redux Toolkit state management",
    "zustand": "Zustand state management",
    "router": "React Router routing",
    "eslint": "ESLint + Prettier",
    "husky": "Husky + lint-staged git hooks",
    "api": "Frontend/backend invoke example",
}
DEFAULT_FEATURES = ("rtk", "router", "eslint", "husky", "api")
STATE_FEATURES = ("rtk", "zustand")

FEATURE_DEPENDENCIES = {
    "rtk": ("@reduxjs/toolkit", "react-redux"),
    "zustand": ("zustand",),
    "router": ("react-router-dom",),
}

PROJECT_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$", re.I)


@dataclass(frozen=True)
class ProjectOptions:
    name: str
    template: str = "react-ts"
    features: frozenset = field(default_factory=frozenset)
    parent_dir: Path = field(default_factory=Path.cwd)
    package_manager: str = "npm"

    def __post_init__(self):
        if not PROJECT_NAME_RE.match(self.name):
            raise ValueError(
                f"Invalid project name '{self.name}': use letters, digits, '-' or '_' (starting with a letter or digit)"
            )
        if self.template not in TEMPLATE_CHOICES:
            raise ValueError(f"Invalid template '{self.template}'. Choose from: {', '.join(TEMPLATE_CHOICES)}")
        unknown = set(self.features) - set(FEATURE_CHOICES)
        if unknown:
            raise ValueError(f"Unknown feature(s): {', '.join(sorted(unknown))}. Choose from: {', '.join(FEATURE_CHOICES)}")
        if all(f in self.features for f in STATE_FEATURES):
            raise ValueError("Choose at most one state management library (rtk or zustand)")

    @property
    def project_path(self) -> Path:
        return Path(self.parent_dir) / self.name

    @property
    def identifier(self) -> str:
        return f"com.{self.name.replace('_', '-').lower()}.app"

    def has(self, feature: str) -> bool:
        return feature in self.features


def generator_command(options: ProjectOptions) -> list[str]:
    """Shell command that runs create-tauri-app non-interactively.

    The installer is fetched into a variable first so a failed download
    fails the command with curl's exit code instead of piping nothing to sh.
    """
    script = (
        f"installer=\"$(curl -fsSL {shlex.quote(GENERATOR_URL)})\" && "
        f"printf '%s\\n' \"$installer\" | sh -s -- -y {shlex.quote(options.name)}"
        f" --template {shlex.quote(options.template)}"
        f" --manager {shlex.quote(options.package_manager)}"
        f" --identifier {shlex.quote(options.identifier)}"
    )
    return ["sh", "-c", script]


def _writer(func: Callable, options: ProjectOptions) -> Callable[[], None]:
    return partial(func, options.project_path, options.template)


def _feature_dependencies(options: ProjectOptions) -> list[str]:
    deps: list[str] = []
    for feature in FEATURE_CHOICES:
        if options.has(feature):
            deps.extend(FEATURE_DEPENDENCIES.get(feature, ()))
    return deps


def build_run_plan(options: ProjectOptions) -> RunPlan:
    """Build the ordered steps for ``options``; evaluated once, before execution."""
    pm = options.package_manager
    project = options.project_path
    plan = RunPlan(target=project)

    plan.add(Step.command(
        "scaffold", generator_command(options),
        "Creating Tauri project...", "Tauri project created", "Failed to create Tauri project",
        cwd=Path(options.parent_dir),
    ))
    plan.add(Step.command(
        "install", [pm, "install"],
        "Installing project dependencies...", "Dependencies installed", "Dependency install failed",
        cwd=project,
    ))

    deps = _feature_dependencies(options)
    if deps:
        plan.add(Step.command(
            "install-features", [pm, "install", *deps],
            "Installing feature dependencies...", f"Installed {', '.join(deps)}", "Feature dependency install failed",
            cwd=project,
        ))

    if options.has("rtk"):
        plan.add(Step.action(
            "store", _writer(features.setup_redux, options),
            "Setting up Redux Toolkit...", "Redux Toolkit store configured", "Redux Toolkit setup failed",
        ))
    elif options.has("zustand"):
        plan.add(Step.action(
            "store", _writer(features.setup_zustand, options),
            "Setting up Zustand...", "Zustand store configured", "Zustand setup failed",
        ))

    if options.has("router"):
        plan.add(Step.action(
            "router", _writer(features.setup_router, options),
            "Setting up React Router...", "React Router configured", "React Router setup failed",
        ))

    if options.has("eslint"):
        plan.add(Step.action(
            "eslint", _writer(features.setup_eslint, options),
            "Writing ESLint configuration...", "ESLint configured", "ESLint setup failed",
        ))
        plan.add(Step.command(
            "eslint-install", [pm, "install"],
            "Installing lint dependencies...", "Lint dependencies installed", "Lint dependency install failed",
            cwd=project,
        ))

    if options.has("husky"):
        plan.add(Step.command(
            "git-init", ["git", "init"],
            "Initializing git repository...", "Git repository ready", "git init failed",
            cwd=project,
        ))
        plan.add(Step.command(
            "husky-install", [pm, "install", "-D", "husky", "lint-staged"],
            "Installing husky and lint-staged...", "husky and lint-staged installed", "husky install failed",
            cwd=project,
        ))
        plan.add(Step.action(
            "husky-config", _writer(features.setup_husky, options),
            "Configuring git hooks...", "Git hooks configured", "Git hook setup failed",
        ))
        plan.add(Step.command(
            "husky-activate", ["npx", "husky"],
            "Activating git hooks...", "Git hooks active", "husky activation failed",
            cwd=project,
        ))

    if options.has("api"):
        plan.add(Step.action(
            "api-example", _writer(features.setup_api_example, options),
            "Creating invoke example...", "Invoke example created", "Invoke example failed",
        ))
        plan.add(Step.action(
            "register-command", _writer(features.register_api_command, options),
            "Registering Rust command...", "Rust command registration checked", "Rust command registration failed",
        ))

    if options.has("eslint"):
        # runs last so it also formats files written by the other features
        plan.add(Step.command(
            "lint-fix", ["npx", "eslint", ".", "--fix"],
            "Running eslint --fix...", "Lint fixes applied", "eslint --fix failed",
            cwd=project, best_effort=True,
        ))

    plan.add(Step.action(
        "finalize", _writer(features.finalize_gitignore, options),
        "Finalizing project...", "Project finalized", "Finalize failed",
    ))
    return plan


def parse_features(value: Optional[str]) -> Optional[frozenset]:
    """Parse a comma separated ``--features`` value; ``None`` means "ask"."""
    if value is None:
        return None
    items = [v.strip().lower() for v in value.split(",")]
    return frozenset(v for v in items if v and v != "none")
