from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionOutput:
    stdout: str
    stderr: str
    exit_code: int


class Executor(Protocol):
    async def execute(self, prompt: str, code: str | None, timeout: int) -> ExecutionOutput:
        """Run a payload and report its output; may raise on failure."""


class ShellExecutor(Executor):
    """
    Runs the task as a shell command: ``code`` when present, otherwise ``prompt``.

    The process is killed when ``timeout`` elapses. Callers still enforce their
    own deadline around ``execute``.
    """

    def __init__(self, shell: str = "/bin/sh") -> None:
        self._shell = shell

    async def execute(self, prompt: str, code: str | None, timeout: int) -> ExecutionOutput:
        command = code if code else prompt
        process = await asyncio.create_subprocess_exec(
            self._shell,
            "-c",
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        return ExecutionOutput(
            stdout=stdout.decode("utf-8", errors="replace").rstrip("\n"),
            stderr=stderr.decode("utf-8", errors="replace").rstrip("\n"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
