"""Input line classification - shared by blocks and the dispatcher."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommandKind(str, Enum):
    SYSTEM = "system"
    AI = "ai"
    PROJECT = "project"
    SPECIAL = "special"


# Evaluated in order, first match wins.
COMMAND_RULES: list[tuple[str, CommandKind]] = [
    ("!", CommandKind.SPECIAL),
    ("ai ", CommandKind.AI),
    ("?", CommandKind.AI),
    ("ask ", CommandKind.AI),
    ("explain ", CommandKind.AI),
    ("edit ", CommandKind.PROJECT),
    ("analyze ", CommandKind.PROJECT),
    ("read ", CommandKind.PROJECT),
    ("project ", CommandKind.PROJECT),
]


@dataclass(frozen=True)
class ParsedCommand:
    """A classified input line."""

    kind: CommandKind
    verb: str
    argument: str
    raw: str

    @property
    def is_ai(self) -> bool:
        return self.kind in (CommandKind.AI, CommandKind.PROJECT)


def classify(line: str) -> ParsedCommand:
    """Classify an input line by its lexical prefix."""
    for prefix, kind in COMMAND_RULES:
        if line.startswith(prefix):
            return ParsedCommand(kind=kind, verb=prefix.strip(), argument=line[len(prefix):].strip(), raw=line)
    return ParsedCommand(kind=CommandKind.SYSTEM, verb="", argument=line.strip(), raw=line)


def is_ai_input(line: str) -> bool:
    """True when the line is routed to the AI provider rather than the OS."""
    return classify(line).is_ai
