"""Operator approval gate for AI-proposed file edits.

The gate never touches the filesystem. It records a pending change, shows the
operator what would be written, and returns the decision; the caller performs
the write only when the decision is approved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from blockterm.storage.models import now_ms, random_suffix

logger = logging.getLogger(__name__)

# Returns the operator's raw answer; raises EOFError when input is closed.
AskFunc = Callable[[str], Awaitable[str]]

MENU = (
    "What would you like to do?\n"
    "  [A]ccept  - Apply the changes\n"
    "  [R]eject  - Reject the changes\n"
    "  [P]review - Show full file preview\n"
    "  [C]ancel  - Cancel the operation"
)
FOLLOW_UP_MENU = (
    "Apply this change?\n"
    "  [A]ccept  - Apply the changes\n"
    "  [R]eject  - Reject the changes"
)

ANSWERS: dict[str, str] = {
    "a": "accept",
    "accept": "accept",
    "r": "reject",
    "reject": "reject",
    "p": "preview",
    "preview": "preview",
    "c": "cancel",
    "cancel": "cancel",
}


class ChangeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class PendingChange:
    id: str
    file_path: str
    proposed_content: str
    context: dict[str, Any] = field(default_factory=dict)
    status: ChangeStatus = ChangeStatus.PENDING
    timestamp: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class DiffSummary:
    additions: int
    deletions: int
    changes: int


@dataclass(frozen=True)
class EditDecision:
    approved: bool
    change_id: str


def calculate_diff(old_content: str, new_content: str) -> DiffSummary:
    """Line-count delta between two versions. Not a line-by-line diff."""
    old_lines = len(old_content.split("\n"))
    new_lines = len(new_content.split("\n"))
    return DiffSummary(
        additions=max(0, new_lines - old_lines),
        deletions=max(0, old_lines - new_lines),
        changes=abs(new_lines - old_lines),
    )


def preview_lines(content: str, max_lines: int = 10) -> list[str]:
    lines = content.split("\n")
    if len(lines) <= max_lines:
        return lines
    return lines[:max_lines] + [f"... ({len(lines) - max_lines} more lines)"]


class PermissionGate:
    """Registry of pending file changes and the interactive decision prompt."""

    def __init__(
        self,
        console: Console | None = None,
        ask: AskFunc | None = None,
        current_preview_lines: int = 10,
        proposed_preview_lines: int = 15,
    ) -> None:
        self.console = console or Console()
        self._ask = ask or self._ask_console
        self.current_preview_lines = current_preview_lines
        self.proposed_preview_lines = proposed_preview_lines
        self._changes: dict[str, PendingChange] = {}

    async def _ask_console(self, prompt: str) -> str:
        return self.console.input(prompt)

    async def request_edit(
        self,
        file_path: str,
        proposed_content: str,
        context: dict[str, Any] | None = None,
    ) -> EditDecision:
        """Register a proposed edit and block until the operator decides."""
        change = PendingChange(
            id=f"change_{now_ms()}_{random_suffix()}",
            file_path=file_path,
            proposed_content=proposed_content,
            context=dict(context or {}),
        )
        self._changes[change.id] = change
        logger.info("Edit proposed for %s (%s)", file_path, change.id)

        self._show_summary(change)
        answer = await self._choose(MENU, ("accept", "reject", "preview", "cancel"))
        if answer == "preview":
            self._show_full(change)
            answer = await self._choose(FOLLOW_UP_MENU, ("accept", "reject"))

        status = {
            "accept": ChangeStatus.ACCEPTED,
            "reject": ChangeStatus.REJECTED,
        }.get(answer, ChangeStatus.CANCELLED)
        return self._decide(change, status)

    async def _choose(self, menu: str, valid: tuple[str, ...]) -> str:
        while True:
            self.console.print(Text(f"\n{menu}", style="yellow"))
            try:
                raw = await self._ask("Choose: ")
            except EOFError:
                logger.info("Permission prompt closed; treating as cancel")
                return "cancel"
            choice = ANSWERS.get(raw.strip().lower())
            if choice in valid:
                return choice
            self.console.print("Invalid choice. Please try again.", style="red")

    def _decide(self, change: PendingChange, status: ChangeStatus) -> EditDecision:
        change.status = status
        approved = status is ChangeStatus.ACCEPTED
        if approved:
            self.console.print("File edit approved. Applying changes...", style="green")
        elif status is ChangeStatus.REJECTED:
            self.console.print("File edit rejected.", style="red")
        else:
            self.console.print("File edit cancelled.", style="yellow")
        logger.info("Edit %s for %s: %s", change.id, change.file_path, status.value)
        return EditDecision(approved=approved, change_id=change.id)

    def _show_summary(self, change: PendingChange) -> None:
        ctx = change.context
        header = Text()
        header.append("File: ", style="bold")
        header.append(change.file_path, style="yellow")
        header.append("\nContext: ", style="bold")
        header.append(str(ctx.get("reason") or "AI suggested edit"), style="dim")
        self.console.print(Panel(header, title="FILE EDIT PERMISSION REQUEST", border_style="cyan"))

        current = ctx.get("current_content")
        if current:
            body = "\n".join(preview_lines(current, self.current_preview_lines))
            self.console.print(Panel(Text(body), title="Current file", border_style="dim"))

        body = "\n".join(preview_lines(change.proposed_content, self.proposed_preview_lines))
        self.console.print(Panel(Text(body, style="green"), title="Proposed changes", border_style="dim"))

        diff = ctx.get("diff")
        if isinstance(diff, DiffSummary):
            self.console.print(f"+ {diff.additions} additions", style="green", highlight=False)
            self.console.print(f"- {diff.deletions} deletions", style="red", highlight=False)

    def _show_full(self, change: PendingChange) -> None:
        numbered = Text()
        for index, line in enumerate(change.proposed_content.split("\n"), 1):
            numbered.append(f"{index:>4} | ", style="dim")
            numbered.append(f"{line}\n")
        title = Text(f"FULL FILE PREVIEW: {change.file_path}")
        self.console.print(Panel(numbered, title=title, border_style="cyan"))

    # --- Registry queries ---

    def get_change(self, change_id: str) -> PendingChange | None:
        return self._changes.get(change_id)

    def get_change_status(self, change_id: str) -> str:
        change = self._changes.get(change_id)
        return change.status.value if change else "not_found"

    def pending_changes(self) -> list[PendingChange]:
        return list(self._changes.values())

    def clear_change(self, change_id: str) -> None:
        self._changes.pop(change_id, None)

    def clear_all(self) -> None:
        self._changes.clear()
