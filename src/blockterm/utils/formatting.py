"""Plain-text reports for blocks, sessions and special commands."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from blockterm.storage.models import Block, BlockStatus, SessionStats, SessionSummary

RULE = "=" * 60

STATUS_ICONS: dict[BlockStatus, str] = {
    BlockStatus.PENDING: "...",
    BlockStatus.PROCESSING: "~",
    BlockStatus.EXECUTING: ">",
    BlockStatus.COMPLETED: "OK",
    BlockStatus.ERROR: "ERR",
}

SPECIAL_HELP: list[tuple[str, str]] = [
    ("!help", "Show this help"),
    ("!history", "Recent inputs of this session"),
    ("!clear", "Clear the screen"),
    ("!session", "Blocks of the current session"),
    ("!stats", "Session statistics"),
    ("!sessions", "Stored sessions"),
    ("!ai-info", "AI provider configuration"),
    ("!project-info", "Project file policy"),
    ("!ai-help", "AI command reference"),
]

AI_HELP: list[tuple[str, str]] = [
    ("ai <prompt>", "Ask the AI provider"),
    ("? <prompt>", "Ask the AI provider"),
    ("ask <prompt>", "Ask the AI provider"),
    ("explain <text>", "Detailed explanation of code or a concept"),
    ("read <file>", "Show a project file"),
    ("analyze <file>", "AI analysis of a project file"),
    ("edit <file> [what to change]", "AI edit, applied only after your approval"),
    ("project <question>", "Ask about the current project"),
]


def format_duration(ms: float) -> str:
    """Format milliseconds to human-readable duration."""
    if ms < 1000:
        return f"{round(ms)}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = int(ms // 60000)
        seconds = int((ms % 60000) // 1000)
        return f"{minutes}m {seconds}s"


def format_timestamp(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def status_icon(block: Block) -> str:
    if block.status == BlockStatus.COMPLETED and block.is_ai_command:
        return "AI"
    return STATUS_ICONS.get(block.status, "?")


def truncate(text: str, width: int = 50) -> str:
    return text if len(text) <= width else text[:width] + "..."


def format_block(block: Block) -> str:
    """Header line plus output/error of a finished block."""
    parts = [f"[{status_icon(block)}] {block.input} ({format_duration(block.elapsed_ms())})"]
    if block.exit_code not in (None, 0):
        parts[0] += f" exit={block.exit_code}"
    if block.output:
        parts.append(block.output.rstrip("\n"))
    if block.error:
        parts.append(block.error.rstrip("\n"))
    if not block.output and not block.error:
        parts.append("(no output)")
    return "\n".join(parts)


def format_help() -> str:
    lines = ["Special commands", RULE]
    lines += [f"  {name:<16} {desc}" for name, desc in SPECIAL_HELP]
    lines += ["", "Anything else runs as a system command.", "Type !ai-help for AI commands."]
    return "\n".join(lines)


def format_ai_help() -> str:
    lines = ["AI commands", RULE]
    lines += [f"  {usage:<30} {desc}" for usage, desc in AI_HELP]
    return "\n".join(lines)


def format_history(blocks: Iterable[Block]) -> str:
    blocks = list(blocks)
    if not blocks:
        return "No command history yet."
    lines = ["Recent commands:"]
    for i, block in enumerate(blocks, 1):
        lines.append(f"{i:>3}. [{status_icon(block)}] {truncate(block.input)}")
    return "\n".join(lines)


def format_session(session_id: str, blocks: Iterable[Block]) -> str:
    blocks = list(blocks)
    lines = [f"Session: {session_id}", RULE]
    if not blocks:
        lines.append("No blocks in this session.")
    for block in blocks:
        kind = "ai" if block.is_ai_command else "sys"
        lines.append(
            f"[{status_icon(block)}] {kind:<3} {truncate(block.input)} "
            f"({format_duration(block.elapsed_ms())}) {block.id}"
        )
    return "\n".join(lines)


def format_stats(stats: SessionStats) -> str:
    avg = format_duration(stats.avg_duration_ms) if stats.total_blocks else "0ms"
    return "\n".join([
        f"Session statistics: {stats.session_id}",
        RULE,
        f"Total blocks:    {stats.total_blocks}",
        f"AI blocks:       {stats.ai_blocks}",
        f"System blocks:   {stats.system_blocks}",
        f"Error blocks:    {stats.error_blocks}",
        f"Success rate:    {stats.success_rate}%",
        f"Total duration:  {format_duration(stats.total_duration_ms)}",
        f"Average block:   {avg}",
    ])


def format_sessions(sessions: Iterable[SessionSummary]) -> str:
    sessions = list(sessions)
    if not sessions:
        return "No stored sessions."
    lines = ["Stored sessions:", RULE]
    for summary in sessions:
        lines.append(
            f"{summary.id}  started {format_timestamp(summary.start_time)}  "
            f"saved {format_timestamp(summary.last_saved)}  {summary.block_count} blocks"
        )
    return "\n".join(lines)


def format_provider_info(info: dict[str, Any]) -> str:
    mode = "demo (no API key)" if info.get("demo") else "live"
    return "\n".join([
        "AI provider",
        RULE,
        f"Provider:     {info.get('provider')}",
        f"Model:        {info.get('model')}",
        f"Max tokens:   {info.get('max_tokens')}",
        f"Temperature:  {info.get('temperature')}",
        f"Mode:         {mode}",
    ])


def format_project_info(info: dict[str, Any]) -> str:
    return "\n".join([
        "Project",
        RULE,
        f"Root:           {info.get('project_root')}",
        f"Max file size:  {info.get('max_file_size')} characters",
        f"Extensions:     {', '.join(info.get('allowed_extensions', []))}",
    ])
