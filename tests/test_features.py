import json
import logging
import os

import pytest

from codegen_cli import features


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "my-app"
    (root / "src").mkdir(parents=True)
    (root / "src-tauri" / "src").mkdir(parents=True)
    return root


def write_package_json(project, data):
    (project / "package.json").write_text(json.dumps(data), encoding="utf-8")


def test_redux_store_and_provider_app(project):
    features.setup_redux(project, "react-ts")

    assert (project / "src" / "store" / "index.ts").exists()
    assert (project / "src" / "store" / "slices" / "counterSlice.ts").exists()
    assert (project / "src" / "store" / "hooks.ts").exists()
    assert "<Provider store={store}>" in (project / "src" / "App.tsx").read_text()


def test_router_replaces_redux_placeholder(project):
    features.setup_redux(project, "react-ts")
    features.setup_router(project, "react-ts")

    app = (project / "src" / "App.tsx").read_text()
    assert "import AppRouter from './routes';" in app
    assert "<AppRouter />" in app
    assert "<Provider store={store}>" in app
    assert features.REDUX_PLACEHOLDER not in app
    assert (project / "src" / "pages" / "Home.tsx").exists()
    assert (project / "src" / "routes" / "index.tsx").exists()


def test_router_replaces_plain_app(project):
    (project / "src" / "App.jsx").write_text("function App() { return <div/>; }\n")

    features.setup_router(project, "react")

    assert (project / "src" / "App.jsx").read_text().strip() == features.ROUTER_APP_JS.strip()
    assert (project / "src" / "pages" / "About.jsx").exists()


def test_router_injects_into_custom_provider(project, caplog):
    (project / "src" / "App.tsx").write_text(
        "import React from 'react';\n\nconst App = () => (\n  <Provider store={s}>\n    <Main />\n  </Provider>\n);\n"
    )

    with caplog.at_level(logging.WARNING, logger="codegen_cli.features"):
        features.setup_router(project, "react-ts")

    app = (project / "src" / "App.tsx").read_text()
    assert app.startswith("import React from 'react';\nimport AppRouter from './routes';")
    assert "<AppRouter />" in app
    assert "please verify" in caplog.text


def test_zustand_keeps_app_that_already_uses_store(project):
    app = project / "src" / "App.tsx"
    app.write_text("const { count } = useCounterStore();\n")

    features.setup_zustand(project, "react-ts")

    assert app.read_text() == "const { count } = useCounterStore();\n"
    assert (project / "src" / "store" / "counterStore.ts").exists()


def test_zustand_writes_app(project):
    features.setup_zustand(project, "react")

    app = (project / "src" / "App.jsx").read_text()
    assert "import { useCounterStore } from './store/counterStore';" in app
    assert "Edit src/App.jsx" in app
    assert (project / "src" / "store" / "counterStore.js").exists()


def test_eslint_merges_package_json(project):
    write_package_json(project, {"name": "my-app", "scripts": {"lint": "custom-lint"}})

    features.setup_eslint(project, "react-ts")

    pkg = json.loads((project / "package.json").read_text())
    assert pkg["name"] == "my-app"
    assert pkg["scripts"]["lint"] == "custom-lint"
    assert pkg["scripts"]["lint:fix"] == "eslint . --fix"
    assert "typescript-eslint" in pkg["devDependencies"]
    config = (project / "eslint.config.js").read_text()
    assert "tseslint.config(" in config
    assert json.loads((project / ".prettierrc").read_text())["singleQuote"] is True


def test_eslint_javascript_config(project):
    write_package_json(project, {})

    features.setup_eslint(project, "react")

    config = (project / "eslint.config.js").read_text()
    assert "import { defineConfig } from 'eslint/config';" in config
    assert "tseslint" not in config
    assert "typescript-eslint" not in json.loads((project / "package.json").read_text())["devDependencies"]


def test_eslint_without_package_json_warns(project, caplog):
    with caplog.at_level(logging.WARNING, logger="codegen_cli.features"):
        features.setup_eslint(project, "react-ts")

    assert (project / "eslint.config.js").exists()
    assert "Could not update package.json" in caplog.text


def test_husky_hook(project):
    write_package_json(project, {"scripts": {}})

    features.setup_husky(project, "react-ts")

    pkg = json.loads((project / "package.json").read_text())
    assert pkg["scripts"]["prepare"] == "husky"
    assert pkg["lint-staged"] == {"*.{js,jsx,ts,tsx}": ["eslint --fix"]}
    hook = project / ".husky" / "pre-commit"
    assert hook.read_text() == "npx lint-staged\n"
    if os.name != "nt":
        assert os.access(hook, os.X_OK)


def test_api_example_and_registration(project):
    main_rs = project / "src-tauri" / "src" / "main.rs"
    main_rs.write_text(
        "fn main() {\n"
        "    tauri::Builder::default()\n"
        "        .run(tauri::generate_context!())\n"
        "        .expect(\"error while running tauri application\");\n"
        "}\n"
    )

    features.setup_api_example(project, "react-ts")
    features.register_api_command(project, "react-ts")

    assert "invoke('fetch_data')" in (project / "src" / "api" / "index.ts").read_text()
    assert "pub async fn fetch_data" in (project / "src-tauri" / "src" / "commands.rs").read_text()
    patched = main_rs.read_text()
    assert patched.startswith("mod commands;\n")
    assert ".invoke_handler(tauri::generate_handler![commands::fetch_data])" in patched


def test_finalize_gitignore_is_idempotent(project):
    (project / ".gitignore").write_text("node_modules\nyarn.lock")

    features.finalize_gitignore(project, "react-ts")
    features.finalize_gitignore(project, "react-ts")

    assert (project / ".gitignore").read_text() == "node_modules\nyarn.lock\npackage-lock.json\n"


def test_verify_project(project):
    write_package_json(project, {})
    features.setup_api_example(project, "react-ts")

    tracker = features.verify_project(project, ["api", "router"])

    assert tracker.status("package-json") == "done"
    assert tracker.status("tauri") == "done"
    assert tracker.status("api") == "done"
    assert tracker.status("router") == "error"
    assert not tracker.ok
