import logging

import pytest

from codegen_cli.patcher import (
    GENERIC_DIALECT,
    TAURI_DIALECT,
    PlatformVariant,
    StructuralShape,
    classify,
    ensure_module_declaration,
    patch,
    patch_library,
    register_capability,
)

DELEGATING_MAIN = "fn main() {\n    appLib::run()\n}\n"

SINGLE_LIB = (
    "#[cfg_attr(mobile, app::mobile_entry_point)]\n"
    "pub fn run() {\n"
    "    app::Builder::default()\n"
    "        .registerHandlers(generateList![greet])\n"
    "        .run(app::generate_context!())\n"
    "        .expect(\"error while running application\");\n"
    "}\n"
)

MULTI_LIB = (
    "mod commands;\n"
    "\n"
    "pub fn run() {\n"
    "    app::Builder::default()\n"
    "        .registerHandlers({\n"
    "            #[cfg(not(target_os = \"windows\"))]\n"
    "            { generateList![greet, fetchData] }\n"
    "            #[cfg(target_os = \"windows\")]\n"
    "            { generateList![greet] }\n"
    "        })\n"
    "        .run(app::generate_context!());\n"
    "}\n"
)

TAURI_MAIN = (
    "// Prevents additional console window on Windows in release\n"
    "#![cfg_attr(not(debug_assertions), windows_subsystem = \"windows\")]\n"
    "\n"
    "fn main() {\n"
    "    tauri::Builder::default()\n"
    "        .run(tauri::generate_context!())\n"
    "        .expect(\"error while running tauri application\");\n"
    "}\n"
)


def test_already_registered_is_left_untouched():
    text = "fn main() {\n    App::new()\n        .registerHandlers(generateList![fetchData])\n        .run();\n}\n"

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.ALREADY_REGISTERED
    assert result.new_text == text
    assert result.applied is False


def test_delegation_converts_library_list_to_mirrors():
    result = patch(DELEGATING_MAIN, "fetchData", library_text=SINGLE_LIB)

    assert result.shape is StructuralShape.DELEGATES_TO_LIBRARY
    assert result.new_text.startswith("mod commands;\n")
    assert result.new_text.endswith(DELEGATING_MAIN)
    assert result.applied is True

    lib = result.library
    assert lib.variant is PlatformVariant.SINGLE
    assert lib.applied is True
    assert lib.new_text.count("generateList![greet, fetchData]") == 2
    assert '#[cfg(not(target_os = "windows"))]' in lib.new_text
    assert '#[cfg(target_os = "windows")]' in lib.new_text
    assert "mod commands;" in lib.new_text
    assert result.instructions is None


def test_delegation_is_idempotent():
    first = patch(DELEGATING_MAIN, "fetchData", library_text=SINGLE_LIB)
    second = patch(first.new_text, "fetchData", library_text=first.library.new_text)

    assert second.new_text == first.new_text
    assert second.library.new_text == first.library.new_text
    assert second.library.variant is PlatformVariant.MULTI
    assert second.applied is False


def test_delegation_without_library_text_gives_instructions():
    result = patch(DELEGATING_MAIN, "fetchData")

    assert result.library is None
    assert "appLib::run()" in result.instructions
    assert "src-tauri/src/lib.rs" in result.instructions


def test_multi_variant_extends_only_missing_mirror():
    result = patch_library(MULTI_LIB, "fetchData")

    assert result.variant is PlatformVariant.MULTI
    assert result.applied is True
    assert result.new_text.count("generateList![greet, fetchData]") == 2
    assert "generateList![greet, fetchData, fetchData]" not in result.new_text


def test_library_without_registration_call_warns(caplog):
    text = "pub fn run() {\n    app::Builder::default().run(ctx());\n}\n"

    with caplog.at_level(logging.WARNING, logger="codegen_cli.patcher"):
        result = patch_library(text, "fetchData")

    assert result.variant is PlatformVariant.ABSENT
    assert result.applied is False
    assert result.new_text == text
    assert "registerHandlers" in result.warning
    assert result.warning in caplog.text


def test_guard_without_list_is_skipped():
    text = (
        "fn run() {\n"
        "    app::Builder::default()\n"
        "        .registerHandlers({\n"
        "            #[cfg(debug_assertions)]\n"
        "            { build_handlers() }\n"
        "            #[cfg(not(debug_assertions))]\n"
        "            { generateList![greet] }\n"
        "        })\n"
        "        .run(ctx());\n"
        "}\n"
    )

    result = patch_library(text, "fetchData")

    assert "{ build_handlers() }" in result.new_text
    assert "generateList![greet, fetchData]" in result.new_text


def test_explicit_call_is_merged():
    text = "fn main() {\n    App::new()\n        .registerHandlers(generateList![greet, ping])\n        .run();\n}\n"

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.HAS_EXPLICIT_HANDLER_CALL
    assert ".registerHandlers(generateList![greet, ping, fetchData])" in result.new_text
    assert result.new_text.startswith("mod commands;\n\nfn main()")


def test_builder_construction_gets_registration_after_it():
    result = patch(TAURI_MAIN, "commands::fetch_data", dialect=TAURI_DIALECT)

    assert result.shape is StructuralShape.HAS_BUILDER_CONSTRUCTION
    assert (
        "    tauri::Builder::default()\n"
        "        .invoke_handler(tauri::generate_handler![commands::fetch_data])\n"
        "        .run(tauri::generate_context!())\n"
    ) in result.new_text
    # module declaration lands after the leading comment and inner attribute
    lines = result.new_text.splitlines()
    assert lines[0].startswith("// Prevents")
    assert lines[1].startswith("#![cfg_attr")
    assert lines[2] == "mod commands;"


def test_builder_with_same_line_continuation():
    text = "fn main() {\n    app::Builder::default().setup(init)\n        .run(ctx());\n}\n"

    result = patch(text, "fetchData")

    assert (
        "    app::Builder::default().setup(init)\n"
        "        .registerHandlers(generateList![fetchData])\n"
        "        .run(ctx());\n"
    ) in result.new_text


def test_builder_bound_to_a_variable():
    text = "fn main() {\n    let mut builder = app::Builder::default();\n    builder.run(ctx());\n}\n"

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.HAS_BUILDER_CONSTRUCTION
    assert (
        "    let mut builder = app::Builder::default();\n"
        "    let mut builder = builder.registerHandlers(generateList![fetchData]);\n"
        "    builder.run(ctx());\n"
    ) in result.new_text


def test_run_call_gets_registration_before_it():
    text = "fn main() {\n    let app = App::new();\n    app\n        .run();\n}\n"

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.HAS_RUN_CALL
    assert "    app\n        .registerHandlers(generateList![fetchData])\n        .run();\n" in result.new_text


def test_run_call_on_a_variable():
    text = "fn main() {\n    let app = App::new();\n    app.run();\n}\n"

    result = patch(text, "fetchData")

    assert (
        "    let app = App::new();\n"
        "    let app = app.registerHandlers(generateList![fetchData]);\n"
        "    app.run();\n"
    ) in result.new_text


def test_run_call_inside_an_expression_is_left_alone():
    text = "fn main() { App::new().run(); }\n"

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.HAS_RUN_CALL
    assert result.new_text == text
    assert result.applied is False
    assert ".registerHandlers(generateList![fetchData])" in result.instructions


def test_single_line_builder_chain_is_left_alone():
    text = "fn main() {\n    app::Builder::default().run(ctx()).expect(\"failed\");\n}\n"

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.HAS_BUILDER_CONSTRUCTION
    assert result.new_text == text
    assert result.instructions is not None


LINE_PRESERVING_INPUTS = [
    TAURI_MAIN,
    "fn main() {\n    app::Builder::default().setup(init)\n        .run(ctx());\n}\n",
    "fn main() {\n    let mut builder = app::Builder::default();\n    builder.run(ctx());\n}\n",
    "fn main() {\n    let app = App::new();\n    app\n        .run();\n}\n",
    "fn main() {\n    let app = App::new();\n    app.run();\n}\n",
    "fn main() { App::new().run(); }\n",
    "fn main() {\n    app::Builder::default().run(ctx()).expect(\"failed\");\n}\n",
    DELEGATING_MAIN,
    'fn main() {\n    println!("hello");\n}\n',
    "fn main() {\n    App::new()\n        .registerHandlers(generateList![fetchData])\n        .run();\n}\n",
]


def _is_subsequence(lines, of):
    remaining = iter(of)
    return all(line in remaining for line in lines)


@pytest.mark.parametrize("text", LINE_PRESERVING_INPUTS)
def test_original_lines_survive_in_order(text):
    result = patch(text, "fetchData")

    assert _is_subsequence(text.splitlines(), result.new_text.splitlines())


def test_explicit_merge_only_touches_the_registration_line():
    text = "fn main() {\n    App::new()\n        .registerHandlers(generateList![greet])\n        .run();\n}\n"

    result = patch(text, "fetchData")

    kept = [line for line in text.splitlines() if "registerHandlers" not in line]
    assert _is_subsequence(kept, result.new_text.splitlines())


def test_unrecognized_returns_instructions():
    text = 'fn main() {\n    println!("hello");\n}\n'

    result = patch(text, "fetchData")

    assert result.shape is StructuralShape.UNRECOGNIZED
    assert result.new_text == text
    assert result.applied is False
    assert "mod commands;" in result.instructions
    assert ".registerHandlers(generateList![fetchData])" in result.instructions


def test_commented_out_code_is_ignored():
    text = "fn main() {\n    // tauri::Builder::default()\n    println!(\"hi\");\n}\n"

    assert classify(text, "fetchData") is StructuralShape.UNRECOGNIZED


@pytest.mark.parametrize(
    "text",
    [
        "fn main() {\n    App::new()\n        .registerHandlers(generateList![greet])\n        .run();\n}\n",
        "fn main() {\n    app::Builder::default()\n        .run(ctx());\n}\n",
        "fn main() {\n    app\n        .run();\n}\n",
        "fn main() {\n    app::Builder::default().setup(init)\n        .run(ctx());\n}\n",
        "fn main() {\n    let mut builder = app::Builder::default();\n    builder.run(ctx());\n}\n",
        "fn main() {\n    let app = App::new();\n    app.run();\n}\n",
    ],
)
def test_second_patch_is_a_no_op(text):
    first = patch(text, "fetchData")
    second = patch(first.new_text, "fetchData")

    assert first.applied is True
    assert second.new_text == first.new_text
    assert second.applied is False


def test_crlf_line_endings_are_preserved():
    text = "fn main() {\r\n    app::Builder::default()\r\n        .run(ctx());\r\n}\r\n"

    result = patch(text, "fetchData")

    assert "\n" not in result.new_text.replace("\r\n", "")
    assert "        .registerHandlers(generateList![fetchData])\r\n" in result.new_text


def test_module_declaration_not_duplicated():
    text = "pub mod commands;\n\nfn main() {}\n"

    assert ensure_module_declaration(text) == text


def test_invalid_capability_name():
    with pytest.raises(ValueError):
        patch("fn main() {}\n", "fetch data")


def test_register_capability_writes_files(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    main_rs = src / "main.rs"
    lib_rs = src / "lib.rs"
    main_rs.write_text("fn main() {\n    app_lib::run()\n}\n", encoding="utf-8")
    lib_rs.write_text(SINGLE_LIB.replace("registerHandlers(generateList!", "invoke_handler(tauri::generate_handler!"),
                      encoding="utf-8")

    result = register_capability(main_rs, "commands::fetch_data")

    assert result.shape is StructuralShape.DELEGATES_TO_LIBRARY
    assert main_rs.read_text(encoding="utf-8").startswith("mod commands;\n")
    assert lib_rs.read_text(encoding="utf-8").count(
        "tauri::generate_handler![greet, commands::fetch_data]"
    ) == 2


def test_register_capability_leaves_unchanged_file_alone(tmp_path):
    main_rs = tmp_path / "main.rs"
    main_rs.write_text('fn main() {\n    println!("hi");\n}\n', encoding="utf-8")
    before = main_rs.stat().st_mtime_ns

    result = register_capability(main_rs, "commands::fetch_data", dialect=TAURI_DIALECT)

    assert result.shape is StructuralShape.UNRECOGNIZED
    assert main_rs.stat().st_mtime_ns == before


def test_register_capability_missing_file(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="codegen_cli.patcher"):
        result = register_capability(tmp_path / "main.rs", "commands::fetch_data")

    assert result is None
    assert "Could not read" in caplog.text


def test_dialects_render_their_own_tokens():
    assert GENERIC_DIALECT.render_call(["a", "b"]) == ".registerHandlers(generateList![a, b])"
    assert TAURI_DIALECT.render_call(["a"]) == ".invoke_handler(tauri::generate_handler![a])"
