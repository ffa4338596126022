from __future__ import annotations

import asyncio
import logging
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class CodegenError(RuntimeError):
    """Base class for fatal codegen-cli errors."""


class CommandError(CodegenError):
    """An external command could not be spawned or exited non-zero."""

    def __init__(self, argv: Sequence[str], exit_code: Optional[int], stderr: str):
        self.argv = list(argv)
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is None:
            summary = f"Could not start {format_argv(self.argv)}"
        else:
            summary = f"Command failed ({exit_code}): {format_argv(self.argv)}"
        detail = stderr.strip()
        super().__init__(f"{summary}\n{detail}" if detail else summary)


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


async def _drain(stream: Optional[asyncio.StreamReader], sink: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        sink.append(chunk)


class CommandRunner:
    """Run one external process at a time with its output captured.

    Output is never inherited so the progress display keeps exclusive control
    of the terminal line.
    """

    def __init__(self, *, env: Optional[dict[str, str]] = None):
        self.env = env

    async def run(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        cwd: Optional[Path] = None,
        best_effort: bool = False,
    ) -> CommandResult:
        argv = [program, *args]
        logger.info("CMD %s (cwd=%s)", format_argv(argv), cwd or ".")

        # npm/npx are .cmd shims on Windows
        executable = shutil.which(program) or program
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=self.env,
            )
        except OSError as e:
            logger.error("Could not start %s: %s", program, e)
            raise CommandError(argv, None, str(e)) from e

        out_chunks: list[bytes] = []
        err_chunks: list[bytes] = []
        await asyncio.gather(_drain(proc.stdout, out_chunks), _drain(proc.stderr, err_chunks))
        returncode = await proc.wait()

        stdout = b"".join(out_chunks).decode("utf-8", errors="replace")
        stderr = b"".join(err_chunks).decode("utf-8", errors="replace")
        if stdout:
            logger.debug("STDOUT %s", stdout.strip())
        if stderr:
            logger.debug("STDERR %s", stderr.strip())

        result = CommandResult(argv=argv, returncode=returncode, stdout=stdout, stderr=stderr)
        if result.ok:
            return result
        if best_effort:
            logger.info("Ignoring exit code %s from best-effort command %s", returncode, format_argv(argv))
            return result
        raise CommandError(argv, returncode, stderr)
