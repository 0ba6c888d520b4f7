"""External command execution for extraction tooling (pandoc, yt-dlp)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from course_rag.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class ProcessResult:
    argv: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """Run a command and capture its output; never raises for tool failures.

    A missing binary reports return code 127 and a timeout 124, mirroring the
    shell conventions.
    """

    def __init__(self, timeout: float = 300.0) -> None:
        self.timeout = timeout

    async def run(self, *argv: str, cwd: Path | None = None, timeout: float | None = None) -> ProcessResult:
        deadline = timeout or self.timeout
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            logger.warning("Command %s unavailable: %s", argv[0], exc)
            return ProcessResult(argv=argv, returncode=127, stdout="", stderr=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=deadline)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("Command %s timed out after %.0fs", argv[0], deadline)
            return ProcessResult(argv=argv, returncode=124, stdout="", stderr="timed out")

        result = ProcessResult(
            argv=argv,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if not result.ok:
            logger.debug("Command %s exited with %s: %s", argv[0], result.returncode, result.stderr[:500])
        return result


__all__ = ["ProcessRunner", "ProcessResult"]
