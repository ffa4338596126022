"""Feature writers layered on top of a freshly generated Tauri + React project.

Each writer takes the project directory and the template key, writes its
files and returns. Conditions a writer can work around (a missing App file,
an unreadable package.json) are logged as warnings; only failures to write
at all propagate.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Iterable

from .patcher import TAURI_DIALECT, register_capability
from .ui import StepTracker

logger = logging.getLogger(__name__)

API_COMMAND = "commands::fetch_data"
GITIGNORE_ENTRIES = ("package-lock.json", "yarn.lock")

ESLINT_DEV_DEPENDENCIES = {
    "eslint": "^9.0.0",
    "@eslint/js": "^9.0.0",
    "globals": "^15.0.0",
    "eslint-plugin-react-hooks": "^5.0.0",
    "eslint-plugin-react-refresh": "^0.4.0",
    "eslint-plugin-prettier": "^5.0.0",
    "eslint-config-prettier": "^9.0.0",
    "prettier": "^3.0.0",
}
ESLINT_TS_DEV_DEPENDENCIES = {"typescript-eslint": "^8.0.0"}


def is_typescript(template: str) -> bool:
    return template == "react-ts"


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content.strip() + "\n", encoding="utf-8")
    logger.debug("Wrote %s", path)


def _app_file(project_path: Path, template: str) -> Path:
    return project_path / "src" / ("App.tsx" if is_typescript(template) else "App.jsx")


def _read_app(app_path: Path) -> str:
    try:
        return app_path.read_text(encoding="utf-8")
    except OSError:
        logger.warning("Could not read %s; a new App file will be written.", app_path)
        return ""


def _update_package_json(project_path: Path, update, purpose: str) -> bool:
    path = project_path / "package.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Could not update package.json for %s: %s", purpose, e)
        return False
    update(data)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return True


# State management

REDUX_STORE = """
import { configureStore } from '@reduxjs/toolkit';
import counterReducer from './slices/counterSlice';

export const store = configureStore({
  reducer: {
    counter: counterReducer,
  },
});

export type RootState = ReturnType<typeof store.getState>;
export type AppDispatch = typeof store.dispatch;
"""

REDUX_SLICE = """
import { createSlice, PayloadAction } from '@reduxjs/toolkit';

interface CounterState {
  value: number;
}

const initialState: CounterState = {
  value: 0,
};

export const counterSlice = createSlice({
  name: 'counter',
  initialState,
  reducers: {
    increment: (state) => {
      state.value += 1;
    },
    decrement: (state) => {
      state.value -= 1;
    },
    incrementByAmount: (state, action: PayloadAction<number>) => {
      state.value += action.payload;
    },
  },
});

export const { increment, decrement, incrementByAmount } = counterSlice.actions;
export default counterSlice.reducer;
"""

REDUX_HOOKS = """
import { TypedUseSelectorHook, useDispatch, useSelector } from 'react-redux';
import type { RootState, AppDispatch } from './index';

export const useAppDispatch = () => useDispatch<AppDispatch>();
export const useAppSelector: TypedUseSelectorHook<RootState> = useSelector;
"""

REDUX_APP = """
import React from 'react';
import { Provider } from 'react-redux';
import { store } from './store';

function App() {
  return (
    <Provider store={store}>
      {/* Your existing app structure or <AppRouter /> if using router */}
    </Provider>
  );
}

export default App;
"""


def setup_redux(project_path: Path, template: str) -> None:
    """Redux Toolkit store with a counter slice, App wrapped in a Provider."""
    store_dir = project_path / "src" / "store"
    _write(store_dir / "index.ts", REDUX_STORE)
    _write(store_dir / "slices" / "counterSlice.ts", REDUX_SLICE)
    _write(store_dir / "hooks.ts", REDUX_HOOKS)
    _write(_app_file(project_path, template), REDUX_APP)


ZUSTAND_STORE_TS = """
import { create } from 'zustand';

interface CounterState {
  count: number;
  increment: () => void;
  decrement: () => void;
  incrementByAmount: (amount: number) => void;
}

export const useCounterStore = create<CounterState>((set) => ({
  count: 0,
  increment: () => set((state) => ({ count: state.count + 1 })),
  decrement: () => set((state) => ({ count: state.count - 1 })),
  incrementByAmount: (amount) => set((state) => ({ count: state.count + amount })),
}));
"""

ZUSTAND_STORE_JS = """
import { create } from 'zustand';

export const useCounterStore = create((set) => ({
  count: 0,
  increment: () => set((state) => ({ count: state.count + 1 })),
  decrement: () => set((state) => ({ count: state.count - 1 })),
  incrementByAmount: (amount) => set((state) => ({ count: state.count + amount })),
}));
"""

ZUSTAND_APP = """
import React from 'react';
import {{ useCounterStore }} from './store/counterStore';

function App() {{
  const {{ count, increment, decrement }} = useCounterStore();

  return (
    <div>
      <h1>Welcome to Tauri!</h1>
      <p>Edit src/{app_name} and save to reload.</p>
      <p>Zustand is set up. You can use the store hooks to manage state.</p>
      <div>
        <p>Count: {{count}}</p>
        <button onClick={{increment}}>Increment</button>
        <button onClick={{decrement}}>Decrement</button>
      </div>
    </div>
  );
}}

export default App;
"""


def setup_zustand(project_path: Path, template: str) -> None:
    ts = is_typescript(template)
    store_file = project_path / "src" / "store" / ("counterStore.ts" if ts else "counterStore.js")
    _write(store_file, ZUSTAND_STORE_TS if ts else ZUSTAND_STORE_JS)

    app_path = _app_file(project_path, template)
    if "useCounterStore" in _read_app(app_path):
        logger.info("%s already uses the Zustand store; leaving it unchanged", app_path)
        return
    _write(app_path, ZUSTAND_APP.format(app_name=app_path.name))


# Routing


def _page(name: str, heading: str, body: str, ts: bool) -> str:
    if ts:
        return (
            "import React from 'react';\n\n"
            f"const {name}: React.FC = () => {{\n"
            "  return (\n"
            "    <div>\n"
            f"      <h1>{heading}</h1>\n"
            f"      <p>{body}</p>\n"
            "    </div>\n"
            "  );\n"
            "};\n\n"
            f"export default {name};\n"
        )
    return (
        "import React from 'react';\n\n"
        f"export default function {name}() {{\n"
        "  return (\n"
        "    <div>\n"
        f"      <h1>{heading}</h1>\n"
        f"      <p>{body}</p>\n"
        "    </div>\n"
        "  );\n"
        "}\n"
    )


ROUTER_BODY = """
  return (
    <BrowserRouter>
      <Routes>
        <Route path="/" element={<Home />} />
        <Route path="/about" element={<About />} />
      </Routes>
    </BrowserRouter>
  );
"""

APP_ROUTER_IMPORT = "import AppRouter from './routes';"
ROUTER_APP_TS = """
import React from 'react';
import AppRouter from './routes';

const App: React.FC = () => {
  return <AppRouter />;
};

export default App;
"""
ROUTER_APP_JS = """
import React from 'react';
import AppRouter from './routes';

function App() {
  return <AppRouter />;
}

export default App;
"""
PROVIDER_RE = re.compile(r"(<Provider[^>]*>)(.*?)(</Provider>)", re.S)
REDUX_PLACEHOLDER = "{/* Your existing app structure or <AppRouter /> if using router */}"


def _router_config(ts: bool) -> str:
    imports = (
        "import React from 'react';\n"
        "import { BrowserRouter, Routes, Route } from 'react-router-dom';\n"
        "import Home from '../pages/Home';\n"
        "import About from '../pages/About';\n\n"
    )
    if ts:
        return imports + "const AppRouter: React.FC = () => {" + ROUTER_BODY + "};\n\nexport default AppRouter;\n"
    return imports + "export default function AppRouter() {" + ROUTER_BODY + "}\n"


def setup_router(project_path: Path, template: str) -> None:
    """Home/About pages, a BrowserRouter config and an App that renders it."""
    ts = is_typescript(template)
    ext = "tsx" if ts else "jsx"
    pages_dir = project_path / "src" / "pages"
    _write(pages_dir / f"Home.{ext}", _page("Home", "Home Page", "Welcome to your Tauri app!", ts))
    _write(pages_dir / f"About.{ext}", _page("About", "About Page", "This is a Tauri app with React Router.", ts))
    _write(project_path / "src" / "routes" / f"index.{ext}", _router_config(ts))

    app_path = _app_file(project_path, template)
    content = _read_app(app_path)
    if "import AppRouter" in content and "<AppRouter />" in content:
        logger.info("%s already renders AppRouter; leaving it unchanged", app_path)
        return

    if "<Provider" not in content:
        _write(app_path, ROUTER_APP_TS if ts else ROUTER_APP_JS)
        return

    if APP_ROUTER_IMPORT not in content:
        react_import = re.search(r"^import React[^;]*;", content, re.M)
        if react_import:
            content = content.replace(react_import.group(0), react_import.group(0) + "\n" + APP_ROUTER_IMPORT, 1)
        else:
            content = APP_ROUTER_IMPORT + "\n" + content
    if REDUX_PLACEHOLDER in content:
        content = content.replace(REDUX_PLACEHOLDER, "<AppRouter />")
    else:
        content = PROVIDER_RE.sub(r"\1\n      <AppRouter />\n    \3", content, count=1)
        logger.warning("Injected AppRouter into the existing Provider in %s; please verify.", app_path)
    _write(app_path, content)


# Linting

ESLINT_IGNORE = """
node_modules
dist
build
src-tauri
"""

PRETTIER_CONFIG = {
    "semi": True,
    "singleQuote": True,
    "trailingComma": "es5",
    "printWidth": 100,
    "tabWidth": 2,
    "useTabs": False,
    "bracketSpacing": True,
    "arrowParens": "avoid",
    "endOfLine": "lf",
}


def _eslint_config(ts: bool) -> str:
    imports = [
        "import js from '@eslint/js';",
        "import globals from 'globals';",
        "import reactHooks from 'eslint-plugin-react-hooks';",
        "import reactRefresh from 'eslint-plugin-react-refresh';",
        "import prettier from 'eslint-plugin-prettier';",
        "import eslintConfigPrettier from 'eslint-config-prettier';",
    ]
    if ts:
        imports.insert(4, "import tseslint from 'typescript-eslint';")
    else:
        imports.insert(0, "import { defineConfig } from 'eslint/config';")
    extends = "js.configs.recommended, ...tseslint.configs.recommended, eslintConfigPrettier" if ts else (
        "js.configs.recommended, eslintConfigPrettier"
    )
    ts_rules = (
        "      '@typescript-eslint/no-explicit-any': 'warn',\n" if ts else ""
    )
    config = (
        "  { ignores: ['dist', 'node_modules', 'build', 'src-tauri'] },\n"
        "  {\n"
        f"    extends: [{extends}],\n"
        "    files: ['**/*.{ts,tsx,js,jsx}'],\n"
        "    languageOptions: {\n"
        "      ecmaVersion: 2020,\n"
        "      globals: { ...globals.browser, React: 'readonly' },\n"
        + ("      parser: tseslint.parser,\n" if ts else "")
        + "      parserOptions: { ecmaFeatures: { jsx: true }, sourceType: 'module' },\n"
        "    },\n"
        "    plugins: {\n"
        "      'react-hooks': reactHooks,\n"
        "      'react-refresh': reactRefresh,\n"
        "      prettier,\n"
        "    },\n"
        "    rules: {\n"
        "      ...reactHooks.configs.recommended.rules,\n"
        "      'react-refresh/only-export-components': ['warn', { allowConstantExport: true }],\n"
        "      'prettier/prettier': 'error',\n"
        "      'no-console': ['warn', { allow: ['warn', 'error'] }],\n"
        "      'prefer-const': 'warn',\n"
        "      'no-var': 'error',\n"
        + ts_rules
        + "    },\n"
        "  },\n"
    )
    if ts:
        body = "export default tseslint.config(\n" + config + ");\n"
    else:
        body = "export default defineConfig([\n" + config + "]);\n"
    return "\n".join(imports) + "\n\n" + body


def setup_eslint(project_path: Path, template: str) -> None:
    """Flat ESLint config, Prettier config and lint scripts in package.json."""
    ts = is_typescript(template)
    _write(project_path / "eslint.config.js", _eslint_config(ts))
    _write(project_path / ".prettierrc", json.dumps(PRETTIER_CONFIG, indent=2))
    _write(project_path / ".eslintignore", ESLINT_IGNORE)

    def update(pkg: dict) -> None:
        scripts = pkg.setdefault("scripts", {})
        scripts.setdefault("lint", "eslint .")
        scripts.setdefault("lint:fix", "eslint . --fix")
        dev = pkg.setdefault("devDependencies", {})
        wanted = dict(ESLINT_DEV_DEPENDENCIES)
        if ts:
            wanted.update(ESLINT_TS_DEV_DEPENDENCIES)
        for name, version in wanted.items():
            dev.setdefault(name, version)

    _update_package_json(project_path, update, "ESLint scripts/dependencies")


# Git hooks

PRE_COMMIT_HOOK = "npx lint-staged\n"


def setup_husky(project_path: Path, template: str) -> None:
    """lint-staged config, husky prepare script and an executable pre-commit hook."""

    def update(pkg: dict) -> None:
        pkg["lint-staged"] = {"*.{js,jsx,ts,tsx}": ["eslint --fix"]}
        pkg.setdefault("scripts", {}).setdefault("prepare", "husky")

    _update_package_json(project_path, update, "husky/lint-staged")

    hook = project_path / ".husky" / "pre-commit"
    _write(hook, PRE_COMMIT_HOOK)
    if os.name != "nt":
        hook.chmod(hook.stat().st_mode | 0o111)


# Frontend/backend invoke example

API_EXAMPLE = """
import { invoke } from '@tauri-apps/api/core';

export async function fetchData() {
  try {
    return await invoke('fetch_data');
  } catch (error) {
    console.error('Error fetching data:', error);
    throw error;
  }
}
"""

RUST_COMMANDS = """
#[tauri::command]
pub async fn fetch_data() -> Result<String, String> {
    // Add your business logic here
    Ok("Hello from Rust!".to_string())
}
"""


def setup_api_example(project_path: Path, template: str) -> None:
    ext = "ts" if is_typescript(template) else "js"
    _write(project_path / "src" / "api" / f"index.{ext}", API_EXAMPLE)
    _write(project_path / "src-tauri" / "src" / "commands.rs", RUST_COMMANDS)


def register_api_command(project_path: Path, template: str) -> None:
    """Register the example command in the generated Rust entry file."""
    register_capability(project_path / "src-tauri" / "src" / "main.rs", API_COMMAND, dialect=TAURI_DIALECT)


# Finalize


def finalize_gitignore(project_path: Path, template: str) -> None:
    path = project_path / ".gitignore"
    try:
        existing = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        existing = ""
    present = {line.strip() for line in existing.splitlines()}
    missing = [entry for entry in GITIGNORE_ENTRIES if entry not in present]
    if not missing:
        return
    prefix = "" if not existing or existing.endswith("\n") else "\n"
    with path.open("a", encoding="utf-8") as f:
        f.write(prefix + "\n".join(missing) + "\n")


# Post-run verification

FEATURE_CHECKS = {
    "rtk": ("Redux Toolkit store", "src/store"),
    "zustand": ("Zustand store", "src/store"),
    "router": ("React Router config", "src/routes"),
    "eslint": ("ESLint config", "eslint.config.js"),
    "husky": ("Git hooks", ".husky/pre-commit"),
    "api": ("API example", "src/api"),
}


def verify_project(project_path: Path, features: Iterable[str]) -> StepTracker:
    """Check that the generated project has the files each feature writes."""
    tracker = StepTracker(f"Verify {project_path.name}")
    checks = [
        ("project", "Project directory", project_path),
        ("package-json", "package.json", project_path / "package.json"),
        ("tauri", "Tauri backend", project_path / "src-tauri"),
    ]
    for feature in features:
        if feature in FEATURE_CHECKS:
            label, rel = FEATURE_CHECKS[feature]
            checks.append((feature, label, project_path / rel))

    for key, label, path in checks:
        tracker.add(key, label)
        if path.exists():
            tracker.complete(key, "configured")
        else:
            tracker.error(key, "missing")
    return tracker
