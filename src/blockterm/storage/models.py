"""Data models for blockterm."""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from blockterm.services.classifier import is_ai_input

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class BlockStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (BlockStatus.COMPLETED, BlockStatus.ERROR)


_STATUS_RANK = {
    BlockStatus.PENDING: 0,
    BlockStatus.PROCESSING: 1,
    BlockStatus.EXECUTING: 1,
    BlockStatus.COMPLETED: 2,
    BlockStatus.ERROR: 2,
}


class InvalidTransition(ValueError):
    """Raised when a block status change would move backward."""

    def __init__(self, block_id: str, current: BlockStatus, requested: BlockStatus) -> None:
        self.block_id = block_id
        self.current = current
        self.requested = requested
        super().__init__(f"Block {block_id}: cannot move from {current.value} to {requested.value}")


@dataclass
class Block:
    """One submitted input line and its execution lifecycle."""

    id: str
    input: str
    output: str = ""
    error: str = ""
    status: BlockStatus = BlockStatus.PENDING
    start_time: int = field(default_factory=now_ms)
    end_time: int | None = None
    exit_code: int | None = None
    is_ai_command: bool = False

    @classmethod
    def create(cls, input: str) -> Block:
        start = now_ms()
        return cls(
            id=f"block_{start}_{random_suffix()}",
            input=input,
            start_time=start,
            is_ai_command=is_ai_input(input),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def set_status(self, status: BlockStatus | str) -> None:
        """Advance the lifecycle. Statuses only move forward; repeats are no-ops."""
        status = BlockStatus(status)
        if status == self.status:
            return
        if status.rank <= self.status.rank:
            raise InvalidTransition(self.id, self.status, status)
        self.status = status
        if status.is_terminal and self.end_time is None:
            self.end_time = now_ms()

    def append_output(self, chunk: str) -> None:
        self.output += chunk

    def append_error(self, chunk: str) -> None:
        self.error += chunk

    def set_output(self, text: str) -> None:
        self.output = text

    def set_error(self, text: str) -> None:
        self.error = text

    def set_exit_code(self, code: int | None) -> None:
        self.exit_code = code

    def elapsed_ms(self) -> int:
        """Duration since start; frozen once the block is terminal."""
        if self.end_time is not None:
            return self.end_time - self.start_time
        return now_ms() - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "status": self.status.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "exitCode": self.exit_code,
            "isAICommand": self.is_ai_command,
            "duration": self.elapsed_ms(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Block:
        input_text = data["input"]
        return cls(
            id=data["id"],
            input=input_text,
            output=data.get("output") or "",
            error=data.get("error") or "",
            status=BlockStatus(data.get("status", BlockStatus.PENDING.value)),
            start_time=int(data["startTime"]),
            end_time=data.get("endTime"),
            exit_code=data.get("exitCode"),
            is_ai_command=data.get("isAICommand", is_ai_input(input_text)),
        )


@dataclass
class SessionSummary:
    """Metadata extracted from a stored session snapshot."""

    id: str
    start_time: int
    last_saved: int
    block_count: int = 0


@dataclass
class SessionStats:
    """Aggregate figures over the blocks of the current session."""

    session_id: str
    total_blocks: int = 0
    ai_blocks: int = 0
    system_blocks: int = 0
    error_blocks: int = 0
    success_rate: float = 0
    total_duration_ms: int = 0
    avg_duration_ms: float = 0
