"""Tests for the interactive shell loop."""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, patch

import pytest
from rich.console import Console

from blockterm.repl import BlockShell
from blockterm.storage.sessions import SessionStore


def make_shell(app_config, *lines: str, resume_id: str | None = None) -> tuple[BlockShell, io.StringIO]:
    buffer = io.StringIO()
    shell = BlockShell(app_config, console=Console(file=buffer, width=120, color_system=None), resume_id=resume_id)
    queue = list(lines)

    async def read_line() -> str:
        if not queue:
            raise EOFError
        return queue.pop(0)

    shell.read_line = read_line  # type: ignore[method-assign]
    return shell, buffer


class TestBlockShell:
    @pytest.mark.asyncio
    async def test_runs_until_exit(self, app_config):
        shell, buffer = make_shell(app_config, "echo hello", "!stats", "exit", "echo never")
        await shell.run()

        output = buffer.getvalue()
        assert "hello" in output
        assert "exit=0" in output
        assert "Total blocks:    1" in output
        assert "never" not in output
        assert output.rstrip().endswith("Goodbye!")

    @pytest.mark.asyncio
    async def test_eof_ends_session(self, app_config):
        shell, buffer = make_shell(app_config)
        await shell.run()
        assert "Goodbye!" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_unknown_special_reported(self, app_config):
        shell, buffer = make_shell(app_config, "!nope")
        await shell.run()
        assert "Unknown special command: nope" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_ai_block_rendered(self, app_config):
        shell, buffer = make_shell(app_config, "? hi")
        with patch.object(shell.provider, "generate_response", AsyncMock(return_value="hello back")):
            await shell.run()
        output = buffer.getvalue()
        assert "[AI] ? hi" in output
        assert "hello back" in output

    @pytest.mark.asyncio
    async def test_resume(self, app_config):
        first, _ = make_shell(app_config, "echo one")
        await first.run()
        session_id = first.store.session_id

        second, buffer = make_shell(app_config, "!history", resume_id=session_id)
        second.store = SessionStore(app_config.storage.db_path, session_id="session_new")
        second.dispatcher.store = second.store
        await second.run()
        assert "echo one" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_resume_missing(self, app_config):
        shell, buffer = make_shell(app_config, resume_id="session_nope")
        await shell.run()
        assert "Session not found: session_nope" in buffer.getvalue()

    def test_prompt_text(self, app_config):
        shell, _ = make_shell(app_config)
        prompt = shell.prompt_text()
        assert prompt.endswith("project (gemini) ❯ ")
        assert prompt.startswith("[")

    @pytest.mark.asyncio
    async def test_bracketed_resume_id_shown_literally(self, app_config):
        shell, buffer = make_shell(app_config, resume_id="session_[old]")
        await shell.run()
        assert "Session not found: session_[old]" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_interrupt_ends_session_and_closes_store(self, app_config):
        shell, buffer = make_shell(app_config)
        lines = iter(["echo before"])

        async def read_line() -> str:
            try:
                return next(lines)
            except StopIteration:
                raise KeyboardInterrupt

        shell.read_line = read_line  # type: ignore[method-assign]
        with patch.object(shell.dispatcher, "handle_line", wraps=shell.dispatcher.handle_line) as handle:
            with pytest.raises(KeyboardInterrupt):
                await shell.run()

        assert handle.await_count == 1
        assert shell.store._db is None
        assert "Goodbye!" not in buffer.getvalue()

        reopened = SessionStore(app_config.storage.db_path, session_id=shell.store.session_id)
        await reopened.initialize()
        assert [block.input for block in reopened.get_blocks()] == ["echo before"]
        await reopened.close()
