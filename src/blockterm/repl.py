"""Interactive block shell loop."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.text import Text

from blockterm import __version__
from blockterm.config import AppConfig
from blockterm.dispatcher import DispatchResult, Dispatcher
from blockterm.services.ai import AIProvider
from blockterm.services.files import ProjectFiles
from blockterm.services.permission import PermissionGate
from blockterm.services.shell import ShellRunner
from blockterm.storage.models import BlockStatus
from blockterm.storage.sessions import SessionStore
from blockterm.utils.formatting import format_block, format_duration

logger = logging.getLogger(__name__)

EXIT_WORDS = {"exit", "quit"}


class BlockShell:
    """One prompt at a time: read a line, dispatch it, render the finished block."""

    def __init__(self, config: AppConfig, console: Console | None = None, resume_id: str | None = None) -> None:
        self.config = config
        self.console = console or Console()
        self.resume_id = resume_id
        self.store = SessionStore(config.storage.db_path)
        self.provider = AIProvider(config)
        self.dispatcher = Dispatcher(
            store=self.store,
            runner=ShellRunner(config),
            provider=self.provider,
            files=ProjectFiles(config),
            gate=PermissionGate(console=self.console),
            observer=self._show_live,
        )

    def _show_live(self, stream: str, chunk: str) -> None:
        style = "red" if stream == "stderr" else None
        self.console.print(Text(chunk, style=style or ""), end="")

    def prompt_text(self) -> str:
        timestamp = datetime.now().strftime("%H:%M:%S")
        work_dir = Path(self.config.shell.cwd).expanduser().resolve().name
        return f"[{timestamp}] {work_dir} ({self.provider.provider}) ❯ "

    def show_welcome(self) -> None:
        self.console.print(f"[bold]blockterm v{__version__}[/bold]")
        self.console.print(Text(f"Session: {self.store.session_id}", style="dim"))
        self.console.print("Type !help for commands, !ai-help for AI commands, exit to leave.\n", style="dim")

    def render(self, result: DispatchResult) -> None:
        if result.clear:
            self.console.clear()
            self.show_welcome()
            return
        if result.block is None:
            if result.report:
                self.console.print(Text(result.report, style="" if result.ok else "red"))
            return

        block = result.block
        style = "green" if block.status == BlockStatus.COMPLETED else "red"
        if not block.is_ai_command and block.exit_code is not None:
            # Output was already streamed live; only show the footer.
            self.console.print(
                Text(f"\n[{block.status.value}] exit={block.exit_code} ({format_duration(block.elapsed_ms())})", style=style)
            )
            return
        self.console.print(Text(format_block(block), style="" if block.status == BlockStatus.COMPLETED else style))

    async def read_line(self) -> str:
        # Blocking read: no other task runs while the prompt is open.
        return self.console.input(self.prompt_text())

    async def run(self) -> None:
        await self.store.initialize()
        try:
            if self.resume_id and not await self.store.load_session_by_id(self.resume_id):
                self.console.print(Text(f"Session not found: {self.resume_id}", style="yellow"))
            self.show_welcome()
            while True:
                try:
                    line = await self.read_line()
                except EOFError:
                    break
                if line.strip().lower() in EXIT_WORDS:
                    break
                result = await self.dispatcher.handle_line(line)
                self.render(result)
        finally:
            await self.store.close()
        self.console.print("Goodbye!", style="yellow")
