"""Shell command executor service."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import shlex
import time
from pathlib import Path
from typing import Callable

from blockterm.config import AppConfig
from blockterm.storage.models import Block, BlockStatus

logger = logging.getLogger(__name__)

# Observer receives ("stdout" | "stderr", decoded chunk) as the chunk arrives.
Observer = Callable[[str, str], None]

CHUNK_SIZE = 4096
# Lines containing any of these are interpreted by the OS shell.
SHELL_SYNTAX = frozenset("|&;<>()$`*?[]{}~!=\n")
# Grace period for output pipes to drain after a timed-out process is killed.
DRAIN_GRACE = 1.0


def needs_shell(command: str) -> bool:
    """True when the line uses pipes, redirection, globbing or expansions."""
    return any(ch in SHELL_SYNTAX for ch in command)


def split_command(command: str) -> list[str]:
    """Split a command line into program and arguments using shell-word rules."""
    argv = shlex.split(command)
    if not argv:
        raise ValueError("empty command")
    return argv


def describe_launch_error(exc: Exception) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        if exc.filename:
            return f"{exc.strerror}: {exc.filename}"
        return exc.strerror
    return str(exc)


class ShellRunner:
    """Run a block's input as a subprocess, streaming output as it arrives."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    async def _spawn(self, command: str, cwd: str) -> asyncio.subprocess.Process:
        if needs_shell(command):
            return await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        argv = split_command(command)
        return await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )

    async def execute(self, block: Block, observer: Observer | None = None) -> None:
        """Execute the block's input and drive it to a terminal status."""
        block.set_status(BlockStatus.EXECUTING)
        command = block.input
        work_dir = str(Path(self.config.shell.cwd).expanduser().resolve())

        def emit(stream: str, chunk: str) -> None:
            if stream == "stdout":
                block.append_output(chunk)
            else:
                block.append_error(chunk)
            if observer is not None:
                observer(stream, chunk)

        start = time.monotonic()
        try:
            proc = await self._spawn(command, work_dir)
        except (OSError, ValueError) as e:
            reason = describe_launch_error(e)
            logger.warning("Failed to start %r: %s", command, reason)
            block.append_error(f"Failed to start process: {reason}")
            block.set_status(BlockStatus.ERROR)
            return

        assert proc.stdout is not None and proc.stderr is not None
        pumps = [
            asyncio.create_task(self._pump(proc.stdout, "stdout", emit)),
            asyncio.create_task(self._pump(proc.stderr, "stderr", emit)),
        ]

        timeout = self.config.shell.timeout
        timed_out = False
        try:
            if timeout > 0:
                await asyncio.wait_for(proc.wait(), timeout=timeout)
            else:
                await proc.wait()
        except asyncio.TimeoutError:
            timed_out = True
            # The process may have exited after the deadline but before the kill.
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            _, still_open = await asyncio.wait(pumps, timeout=DRAIN_GRACE)
            for task in still_open:
                task.cancel()
        await asyncio.gather(*pumps, return_exceptions=timed_out)

        exit_code = proc.returncode
        if timed_out:
            block.append_error(f"\nCommand timed out after {timeout}s")
            logger.warning("Command timed out after %ss: %s", timeout, command)

        block.set_exit_code(exit_code)
        block.set_status(BlockStatus.COMPLETED if exit_code == 0 else BlockStatus.ERROR)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Command finished (exit=%s, %dms): %s", exit_code, elapsed_ms, command)

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, name: str, emit: Callable[[str, str], None]) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(CHUNK_SIZE)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                emit(name, text)
        tail = decoder.decode(b"", final=True)
        if tail:
            emit(name, tail)
