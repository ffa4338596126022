"""Register a command handler in a generated Rust backend source file.

The generated entry file is not parsed. Its structure is classified by
pattern matching into one of a fixed set of shapes, checked in priority
order, and the smallest textual edit for that shape is applied:

    ALREADY_REGISTERED         nothing to do
    DELEGATES_TO_LIBRARY       main.rs calls ``<lib>::run()``; edit lib.rs instead
    HAS_EXPLICIT_HANDLER_CALL  merge into the existing registration call
    HAS_BUILDER_CONSTRUCTION   insert a registration call after ``Builder::default()``
    HAS_RUN_CALL               insert a registration call before ``.run(...)``
    UNRECOGNIZED               leave the file alone, return manual instructions

Builder and run-call edits only ever add lines. When that is not possible
the file is left alone and manual instructions are returned. Patching an
already patched file is a no-op.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

INDENT = "    "
ENTRY_FILE = "src-tauri/src/main.rs"
LIBRARY_FILE = "src-tauri/src/lib.rs"

CAPABILITY_RE = re.compile(r"^[A-Za-z_]\w*(?:::[A-Za-z_]\w*)*$")
BUILDER_RE = re.compile(r"\bBuilder\s*::\s*default\s*\(\s*\)")
DELEGATION_RE = re.compile(r"\b(?P<name>[A-Za-z_]\w*)\s*::\s*run\s*\(\s*\)")
RUN_RE = re.compile(r"\.run\s*\(")
GUARD_RE = re.compile(r"#\s*\[\s*cfg\s*\(")
BINDING_RE = re.compile(r"^[ \t]*let\s+(?P<mut>mut\s+)?(?P<name>[A-Za-z_]\w*)\s*(?::[^=]*)?=")
RECEIVER_RE = re.compile(r"(?P<indent>[ \t]*)(?P<name>[A-Za-z_]\w*)\s*(?=\.run\s*\()")


class StructuralShape(str, Enum):
    ALREADY_REGISTERED = "already-registered"
    DELEGATES_TO_LIBRARY = "delegates-to-library"
    HAS_EXPLICIT_HANDLER_CALL = "has-explicit-handler-call"
    HAS_BUILDER_CONSTRUCTION = "has-builder-construction"
    HAS_RUN_CALL = "has-run-call"
    UNRECOGNIZED = "unrecognized"


class PlatformVariant(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    ABSENT = "absent"


@dataclass(frozen=True)
class HandlerDialect:
    """Literal tokens matched and emitted when registering handlers."""

    register_method: str
    list_macro: str
    module_name: str = "commands"
    platform: str = 'target_os = "windows"'

    @property
    def module_decl(self) -> str:
        return f"mod {self.module_name};"

    @property
    def platform_guard(self) -> str:
        return f"#[cfg({self.platform})]"

    @property
    def other_platforms_guard(self) -> str:
        return f"#[cfg(not({self.platform}))]"

    def render_list(self, names: Sequence[str]) -> str:
        return f"{self.list_macro}![{', '.join(names)}]"

    def render_call(self, names: Sequence[str]) -> str:
        return f".{self.register_method}({self.render_list(names)})"

    @property
    def call_open_re(self) -> re.Pattern:
        return re.compile(r"\." + re.escape(self.register_method) + r"\s*\(")

    @property
    def single_call_re(self) -> re.Pattern:
        return re.compile(
            r"\." + re.escape(self.register_method)
            + r"\s*\(\s*" + re.escape(self.list_macro)
            + r"\s*!\s*\[(?P<names>.*?)\]\s*\)",
            re.S,
        )

    @property
    def list_re(self) -> re.Pattern:
        return re.compile(re.escape(self.list_macro) + r"\s*!\s*\[(?P<names>.*?)\]", re.S)

    @property
    def module_re(self) -> re.Pattern:
        return re.compile(
            r"^[ \t]*(?:pub(?:\([^)]*\))?\s+)?mod\s+" + re.escape(self.module_name) + r"\s*;",
            re.M,
        )


GENERIC_DIALECT = HandlerDialect(register_method="registerHandlers", list_macro="generateList")
TAURI_DIALECT = HandlerDialect(register_method="invoke_handler", list_macro="tauri::generate_handler")


@dataclass(frozen=True)
class LibraryPatchResult:
    new_text: str
    applied: bool
    variant: PlatformVariant
    warning: Optional[str] = None


@dataclass(frozen=True)
class PatchResult:
    new_text: str
    applied: bool
    shape: StructuralShape
    instructions: Optional[str] = None
    library: Optional[LibraryPatchResult] = None


@dataclass(frozen=True)
class _Call:
    start: int
    args_start: int
    args_end: int


# Scanning helpers


def _in_comment(text: str, pos: int) -> bool:
    line_start = text.rfind("\n", 0, pos) + 1
    if "//" in text[line_start:pos]:
        return True
    opened = text.rfind("/*", 0, pos)
    return opened != -1 and text.rfind("*/", 0, pos) < opened


def _active(pattern: re.Pattern, text: str) -> list[re.Match]:
    return [m for m in pattern.finditer(text) if not _in_comment(text, m.start())]


def _close_index(text: str, open_index: int) -> Optional[int]:
    """Index just past the bracket closing the one at ``open_index``."""
    depth = 0
    in_string = False
    i = open_index
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def _line_start(text: str, pos: int) -> int:
    return text.rfind("\n", 0, pos) + 1


def _line_end(text: str, pos: int) -> int:
    end = text.find("\n", pos)
    if end == -1:
        return len(text)
    if end > 0 and text[end - 1] == "\r":
        end -= 1
    return end


def _indent_at(text: str, pos: int) -> str:
    start = _line_start(text, pos)
    line = text[start:_line_end(text, start)]
    return line[: len(line) - len(line.lstrip())]


def _newline(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def _split_names(inner: str) -> list[str]:
    names = ("".join(part.split()) for part in inner.split(","))
    return [n for n in names if n]


def _find_registration(text: str, dialect: HandlerDialect) -> Optional[_Call]:
    for m in _active(dialect.call_open_re, text):
        end = _close_index(text, m.end() - 1)
        if end is not None:
            return _Call(start=m.start(), args_start=m.end(), args_end=end - 1)
    return None


def _mirror_lists(block: str, dialect: HandlerDialect) -> list[re.Match]:
    """Handler lists that directly follow a ``#[cfg(...)]`` guard."""
    lists = []
    for guard in GUARD_RE.finditer(block):
        attr_end = _close_index(block, block.index("[", guard.start()))
        if attr_end is None:
            continue
        pos = attr_end
        while pos < len(block) and (block[pos].isspace() or block[pos] == "{"):
            pos += 1
        m = dialect.list_re.match(block, pos)
        if m is None:
            # guard without a handler list: nothing to merge into
            logger.debug("Skipping platform guard without a handler list at offset %d", guard.start())
            continue
        lists.append(m)
    return lists


def _append_entry(inner: str, capability: str) -> str:
    body = inner.rstrip()
    tail = inner[len(body):]
    if not body.strip():
        return capability + tail
    trailing_comma = body.endswith(",")
    if "\n" in body:
        last_line = body[body.rfind("\n") + 1:]
        indent = last_line[: len(last_line) - len(last_line.lstrip())]
        sep = "\n" + indent if trailing_comma else ",\n" + indent
        return body + sep + capability + ("," if trailing_comma else "") + tail
    return body + (" " if trailing_comma else ", ") + capability + tail


def _append_to_lists(block: str, lists: Sequence[re.Match], capability: str) -> str:
    for m in sorted(lists, key=lambda m: m.start(), reverse=True):
        if capability in _split_names(m.group("names")):
            continue
        inner = _append_entry(m.group("names"), capability)
        block = block[: m.start("names")] + inner + block[m.end("names"):]
    return block


def _render_mirrors(names: Sequence[str], dialect: HandlerDialect, indent: str, nl: str) -> str:
    inner = indent + INDENT
    handlers = dialect.render_list(names)
    return (
        "{" + nl
        + inner + dialect.other_platforms_guard + nl
        + inner + "{ " + handlers + " }" + nl
        + inner + dialect.platform_guard + nl
        + inner + "{ " + handlers + " }" + nl
        + indent + "}"
    )


def _preamble_end(text: str) -> int:
    """Offset after leading comments and inner attributes (``#![...]``)."""
    pos = 0
    end = 0
    while pos < len(text):
        next_line = text.find("\n", pos)
        next_line = len(text) if next_line == -1 else next_line + 1
        stripped = text[pos:next_line].strip()
        if stripped.startswith("#!["):
            close = _close_index(text, text.index("[", pos))
            if close is None:
                break
            nl = text.find("\n", close)
            pos = end = len(text) if nl == -1 else nl + 1
            continue
        if not stripped or stripped.startswith("//"):
            pos = next_line
            continue
        break
    return end


def ensure_module_declaration(text: str, dialect: HandlerDialect = GENERIC_DIALECT) -> str:
    """Add ``mod <module>;`` at the top of the file unless it is already declared."""
    if any(not _in_comment(text, m.start()) for m in dialect.module_re.finditer(text)):
        return text
    nl = _newline(text)
    at = _preamble_end(text)
    decl = dialect.module_decl + nl
    if at == 0:
        rest = text.lstrip(" \t")
        if rest and not rest.startswith(("\n", "\r\n")):
            decl += nl
        return decl + text
    if not text[:at].endswith("\n"):
        decl = nl + decl
    return text[:at] + decl + text[at:]


# Classification


def _validate(capability: str) -> None:
    if not CAPABILITY_RE.match(capability):
        raise ValueError(f"Invalid handler name: {capability!r}")


def classify(text: str, capability: str, dialect: HandlerDialect = GENERIC_DIALECT) -> StructuralShape:
    """Return the first matching shape, in priority order."""
    call = _find_registration(text, dialect)
    if call is not None:
        lists = list(dialect.list_re.finditer(text, call.args_start, call.args_end))
        if lists and all(capability in _split_names(m.group("names")) for m in lists):
            return StructuralShape.ALREADY_REGISTERED

    has_builder = bool(_active(BUILDER_RE, text))
    if not has_builder and _active(DELEGATION_RE, text):
        return StructuralShape.DELEGATES_TO_LIBRARY
    if call is not None:
        return StructuralShape.HAS_EXPLICIT_HANDLER_CALL
    if has_builder:
        return StructuralShape.HAS_BUILDER_CONSTRUCTION
    if _active(RUN_RE, text):
        return StructuralShape.HAS_RUN_CALL
    return StructuralShape.UNRECOGNIZED


def manual_instructions(capability: str, dialect: HandlerDialect = GENERIC_DIALECT, filename: str = ENTRY_FILE) -> str:
    return textwrap.dedent(
        f"""\
        Could not register `{capability}` automatically. Edit {filename} by hand:
          1. Add `{dialect.module_decl}` near the top of the file.
          2. Add `{dialect.render_call([capability])}` to the builder chain,
             or add `{capability}` to the existing `{dialect.list_macro}![...]` list.
          3. Make sure the handler registration comes before the `.run(...)` call."""
    )


# Edits


def _merge_explicit(text: str, capability: str, dialect: HandlerDialect) -> Optional[str]:
    for m in _active(dialect.single_call_re, text):
        names = _split_names(m.group("names"))
        if capability not in names:
            names.append(capability)
        return text[: m.start()] + dialect.render_call(names) + text[m.end():]

    # platform-guarded (or otherwise non-literal) argument block
    call = _find_registration(text, dialect)
    block = text[call.args_start:call.args_end]
    lists = _mirror_lists(block, dialect) if GUARD_RE.search(block) else list(dialect.list_re.finditer(block))
    if not lists:
        return None
    return text[: call.args_start] + _append_to_lists(block, lists, capability) + text[call.args_end:]


def _balanced(code: str) -> bool:
    return sum(code.count(c) for c in "([{") == sum(code.count(c) for c in ")]}")


def _insert_after_builder(text: str, capability: str, dialect: HandlerDialect) -> Optional[str]:
    """New line after the builder's line; the original lines are kept as they are."""
    m = _active(BUILDER_RE, text)[0]
    nl = _newline(text)
    start = _line_start(text, m.start())
    line_end = _line_end(text, m.end())
    line = text[start:line_end]
    indent = _indent_at(text, m.start())
    call = dialect.render_call([capability])
    rest = text[m.end():line_end].split("//")[0]
    if ";" not in rest and _balanced(rest):
        # the chain continues below: append the call as its own link
        return text[:line_end] + nl + indent + INDENT + call + text[line_end:]
    binding = BINDING_RE.match(line)
    if binding is None or not (_balanced(rest) and rest.rstrip().endswith(";")):
        return None
    mut, name = binding.group("mut") or "", binding.group("name")
    return text[:line_end] + nl + indent + f"let {mut}{name} = {name}{call};" + text[line_end:]


def _insert_before_run(text: str, capability: str, dialect: HandlerDialect) -> Optional[str]:
    """New line before the run call's line; the original lines are kept as they are."""
    m = _active(RUN_RE, text)[-1]
    nl = _newline(text)
    call = dialect.render_call([capability])
    start = _line_start(text, m.start())
    before = text[start:m.start()]
    if not before.strip():
        return text[:start] + before + call + nl + text[start:]
    receiver = RECEIVER_RE.match(text, start)
    if receiver is None or receiver.end() != m.start():
        return None
    indent, name = receiver.group("indent"), receiver.group("name")
    return text[:start] + indent + f"let {name} = {name}{call};" + nl + text[start:]


def patch_library(text: str, capability: str, dialect: HandlerDialect = GENERIC_DIALECT) -> LibraryPatchResult:
    """Add ``capability`` to the library file's registration call.

    A single handler list is converted into two mirrored, platform-guarded
    lists. Existing mirrors are extended one by one, each only when the name
    is missing from that mirror.
    """
    _validate(capability)
    call = _find_registration(text, dialect)
    if call is None:
        warning = (
            f"No `.{dialect.register_method}(...)` call found in the library file; "
            f"register `{capability}` there manually."
        )
        logger.warning(warning)
        return LibraryPatchResult(text, False, PlatformVariant.ABSENT, warning)

    block = text[call.args_start:call.args_end]
    if GUARD_RE.search(block):
        variant = PlatformVariant.MULTI
        new_block = _append_to_lists(block, _mirror_lists(block, dialect), capability)
    else:
        variant = PlatformVariant.SINGLE
        lists = list(dialect.list_re.finditer(block))
        if not lists:
            warning = (
                f"The library's `.{dialect.register_method}(...)` call has no "
                f"`{dialect.list_macro}![...]` list; register `{capability}` there manually."
            )
            logger.warning(warning)
            return LibraryPatchResult(text, False, variant, warning)
        names = _split_names(lists[0].group("names"))
        if capability in names:
            new_block = block
        else:
            names.append(capability)
            new_block = _render_mirrors(names, dialect, _indent_at(text, call.start), _newline(text))

    new_text = text[: call.args_start] + new_block + text[call.args_end:]
    if new_text != text:
        new_text = ensure_module_declaration(new_text, dialect)
    return LibraryPatchResult(new_text, new_text != text, variant)


def patch(
    text: str,
    capability: str,
    *,
    library_text: Optional[str] = None,
    dialect: HandlerDialect = GENERIC_DIALECT,
) -> PatchResult:
    """Register ``capability`` in an entry file's text.

    When the entry file delegates to a library, ``library_text`` is patched
    and returned in ``PatchResult.library``.
    """
    _validate(capability)
    shape = classify(text, capability, dialect)

    if shape is StructuralShape.ALREADY_REGISTERED:
        return PatchResult(text, False, shape)

    if shape is StructuralShape.UNRECOGNIZED:
        return PatchResult(text, False, shape, manual_instructions(capability, dialect))

    if shape is StructuralShape.DELEGATES_TO_LIBRARY:
        new_text = ensure_module_declaration(text, dialect)
        library = None
        instructions = None
        if library_text is None:
            name = _active(DELEGATION_RE, text)[0].group("name")
            instructions = (
                f"The entry file delegates to `{name}::run()`; the handler must be registered "
                f"in {LIBRARY_FILE}.\n" + manual_instructions(capability, dialect, LIBRARY_FILE)
            )
        else:
            library = patch_library(library_text, capability, dialect)
            if library.warning:
                instructions = library.warning + "\n" + manual_instructions(capability, dialect, LIBRARY_FILE)
        applied = new_text != text or (library is not None and library.applied)
        return PatchResult(new_text, applied, shape, instructions, library)

    if shape is StructuralShape.HAS_EXPLICIT_HANDLER_CALL:
        new_text = _merge_explicit(text, capability, dialect)
    elif shape is StructuralShape.HAS_BUILDER_CONSTRUCTION:
        new_text = _insert_after_builder(text, capability, dialect)
        if new_text is None and _active(RUN_RE, text):
            new_text = _insert_before_run(text, capability, dialect)
    else:
        new_text = _insert_before_run(text, capability, dialect)

    if new_text is None:
        # no edit can be made without rewriting an existing line
        return PatchResult(text, False, shape, manual_instructions(capability, dialect))

    new_text = ensure_module_declaration(new_text, dialect)
    return PatchResult(new_text, new_text != text, shape)


# Files


def _read_source(path: Path) -> str:
    with path.open("r", encoding="utf-8", newline="") as f:
        return f.read()


def _write_if_changed(path: Path, original: str, new_text: str) -> bool:
    if new_text == original:
        return False
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(new_text)
    logger.info("Updated %s", path)
    return True


def register_capability(
    entry_path: Path,
    capability: str,
    *,
    library_path: Optional[Path] = None,
    dialect: HandlerDialect = TAURI_DIALECT,
) -> Optional[PatchResult]:
    """Patch ``entry_path`` (and its library file when delegated) on disk.

    Unreadable files and unrecognized layouts are reported as warnings with
    manual instructions; they never raise. Files are only rewritten when
    their content changes.
    """
    try:
        original = _read_source(entry_path)
    except OSError as e:
        logger.warning(
            "Could not read %s (%s).\n%s", entry_path, e, manual_instructions(capability, dialect, str(entry_path))
        )
        return None

    library_path = library_path or entry_path.with_name("lib.rs")
    library_text = None
    if classify(original, capability, dialect) is StructuralShape.DELEGATES_TO_LIBRARY:
        try:
            library_text = _read_source(library_path)
        except OSError as e:
            logger.warning("Could not read %s (%s)", library_path, e)

    result = patch(original, capability, library_text=library_text, dialect=dialect)
    _write_if_changed(entry_path, original, result.new_text)
    if result.library is not None and library_text is not None:
        _write_if_changed(library_path, library_text, result.library.new_text)

    if result.shape is StructuralShape.ALREADY_REGISTERED:
        logger.info("%s is already registered in %s", capability, entry_path)
    elif result.instructions:
        logger.warning(result.instructions)
    elif not result.applied:
        logger.info("%s already satisfies the registration of %s", entry_path, capability)
    else:
        logger.info("Registered %s (%s)", capability, result.shape.value)
    return result
