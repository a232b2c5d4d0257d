"""Input routing: special commands, system commands and AI requests."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from blockterm.services.ai import AIProvider, ConversationContext, ProviderError
from blockterm.services.classifier import CommandKind, ParsedCommand, classify
from blockterm.services.files import FilePolicyError, ProjectFiles
from blockterm.services.permission import PermissionGate, calculate_diff
from blockterm.services.shell import Observer, ShellRunner
from blockterm.storage.models import Block, BlockStatus
from blockterm.storage.sessions import SessionStore
from blockterm.utils.formatting import (
    format_ai_help,
    format_help,
    format_history,
    format_project_info,
    format_provider_info,
    format_session,
    format_sessions,
    format_stats,
)

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised for malformed AI or project commands."""


# Failures that end a block in `error` instead of aborting the shell.
HANDLED_ERRORS = (ProviderError, FilePolicyError, CommandError, OSError, UnicodeDecodeError)


@dataclass
class DispatchResult:
    """Outcome of one input line: a finished block or a special-command report."""

    block: Block | None = None
    report: str = ""
    ok: bool = True
    clear: bool = False


def strip_code_fence(text: str) -> str:
    """Remove a single surrounding Markdown code fence, if present."""
    lines = text.strip("\n").split("\n")
    if len(lines) >= 2 and lines[0].startswith("```") and lines[-1].strip() == "```":
        return "\n".join(lines[1:-1]) + "\n"
    return text


class Dispatcher:
    """Classify each input line and drive its block to a terminal status."""

    def __init__(
        self,
        store: SessionStore,
        runner: ShellRunner,
        provider: AIProvider,
        files: ProjectFiles,
        gate: PermissionGate,
        context: ConversationContext | None = None,
        observer: Observer | None = None,
    ) -> None:
        self.store = store
        self.runner = runner
        self.provider = provider
        self.files = files
        self.gate = gate
        self.context = context or ConversationContext()
        self.observer = observer
        self.special_commands: dict[str, Callable[[], Awaitable[DispatchResult]]] = {
            "help": self._special_help,
            "history": self._special_history,
            "clear": self._special_clear,
            "session": self._special_session,
            "stats": self._special_stats,
            "sessions": self._special_sessions,
            "ai-info": self._special_ai_info,
            "project-info": self._special_project_info,
            "ai-help": self._special_ai_help,
        }

    async def handle_line(self, line: str) -> DispatchResult:
        line = line.strip()
        if not line:
            return DispatchResult()

        parsed = classify(line)
        if parsed.kind is CommandKind.SPECIAL:
            return await self.run_special(parsed.argument)

        block = Block.create(line)
        if not await self.store.add_block(block):
            logger.warning("Block %s was not persisted", block.id)

        try:
            if parsed.kind is CommandKind.SYSTEM:
                await self.runner.execute(block, self.observer)
            else:
                block.set_status(BlockStatus.PROCESSING)
                if parsed.kind is CommandKind.AI:
                    output = await self._run_ai(parsed)
                else:
                    output = await self._run_project(parsed)
                block.set_output(output)
                block.set_status(BlockStatus.COMPLETED)
        except HANDLED_ERRORS as e:
            message = str(e) or e.__class__.__name__
            logger.warning("Block %s failed: %s", block.id, message)
            if not block.is_terminal:
                block.set_error(message)
                block.set_status(BlockStatus.ERROR)

        if not await self.store.save():
            logger.warning("Session snapshot not saved after block %s", block.id)
        return DispatchResult(block=block, ok=block.status == BlockStatus.COMPLETED)

    # --- AI routing ---

    async def _run_ai(self, parsed: ParsedCommand) -> str:
        text = parsed.argument
        if not text:
            raise CommandError(f"Please provide a prompt after '{parsed.verb}'")
        request = f"Explain this in detail:\n{text}" if parsed.verb == "explain" else text

        response = await self.provider.generate_response(self.context.build_prompt(request))
        self.context.add(f"User: {request}\nAI: {response}")
        return response

    async def _run_project(self, parsed: ParsedCommand) -> str:
        verb, argument = parsed.verb, parsed.argument
        target, _, instructions = argument.partition(" ")

        if verb == "project":
            return await self._project_query(argument)
        if not target:
            action = "analyze" if verb == "analyze" else verb
            raise CommandError(f"Please specify a file to {action}")

        if verb == "read":
            data = await self.files.read_file(target)
            return f"File: {data.path}\nSize: {data.size} chars, {data.line_count} lines\n\n{data.content}"
        if verb == "analyze":
            data = await self.files.read_file(target)
            prompt = (
                f"Analyze this file and summarize its purpose, structure and any problems.\n"
                f"{instructions}\n\nFile: {data.path}\n\n{data.content}"
            )
            return await self.provider.generate_response(prompt)
        if verb == "edit":
            return await self._edit_file(target, parsed.raw)
        raise CommandError(f"Unknown project command: {verb}")

    async def _project_query(self, question: str) -> str:
        info = self.files.info()
        if not question:
            return format_project_info(info)
        prompt = (
            f'Based on this project information, answer the user\'s question: "{question}"\n\n'
            f"Project:\n{json.dumps(info, indent=2)}\n\n"
            "Please provide a helpful answer about the project."
        )
        return await self.provider.generate_response(prompt)

    async def _edit_file(self, file_path: str, request: str) -> str:
        current = await self.files.read_file(file_path)

        if self.provider.is_demo:
            return (
                "Demo Mode: file editing is simulated. Configure an API key to enable AI file edits.\n\n"
                f"Request: {request}\nFile: {file_path}"
            )

        prompt = (
            f'Edit this file based on the user\'s request: "{request}"\n\n'
            f"Current file content:\n{current.content}\n\n"
            "Please provide the complete edited file content. Only return the file content, no explanations."
        )
        proposed = strip_code_fence(await self.provider.generate_response(prompt))
        self.files.check_size(proposed)

        decision = await self.gate.request_edit(
            file_path,
            proposed,
            {
                "reason": f"AI edit requested: {request}",
                "current_content": current.content,
                "diff": calculate_diff(current.content, proposed),
            },
        )
        if not decision.approved:
            return f"File edit was not approved. No changes made to {file_path}."

        await self.files.write_file(file_path, proposed)
        return f"File {file_path} has been successfully updated with AI suggestions."

    # --- Special commands ---

    async def run_special(self, name: str) -> DispatchResult:
        handler = self.special_commands.get(name)
        if handler is None:
            return DispatchResult(report=f"Unknown special command: {name}", ok=False)
        return await handler()

    async def _special_help(self) -> DispatchResult:
        return DispatchResult(report=format_help())

    async def _special_history(self) -> DispatchResult:
        return DispatchResult(report=format_history(self.store.get_recent_blocks(20)))

    async def _special_clear(self) -> DispatchResult:
        return DispatchResult(clear=True)

    async def _special_session(self) -> DispatchResult:
        return DispatchResult(report=format_session(self.store.session_id, self.store.get_blocks()))

    async def _special_stats(self) -> DispatchResult:
        return DispatchResult(report=format_stats(self.store.get_session_stats()))

    async def _special_sessions(self) -> DispatchResult:
        return DispatchResult(report=format_sessions(await self.store.list_sessions()))

    async def _special_ai_info(self) -> DispatchResult:
        return DispatchResult(report=format_provider_info(self.provider.provider_info()))

    async def _special_project_info(self) -> DispatchResult:
        return DispatchResult(report=format_project_info(self.files.info()))

    async def _special_ai_help(self) -> DispatchResult:
        return DispatchResult(report=format_ai_help())
