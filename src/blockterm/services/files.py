"""Project file read/write service with extension and size policy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from blockterm.config import AppConfig

logger = logging.getLogger(__name__)


class FilePolicyError(Exception):
    """Raised when a file is outside the allowed extensions or size ceiling."""


@dataclass
class FileData:
    path: str
    content: str
    size: int
    line_count: int
    extension: str


def count_lines(content: str) -> int:
    return len(content.split("\n"))


class ProjectFiles:
    """Read and write files under the configured project root."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    @property
    def root(self) -> Path:
        return Path(self.config.files.project_root).expanduser().resolve()

    def resolve(self, file_path: str) -> Path:
        path = Path(file_path).expanduser()
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()

    def is_allowed(self, file_path: str | Path) -> bool:
        allowed = {ext.lower() for ext in self.config.files.allowed_extensions}
        return Path(file_path).suffix.lower() in allowed

    def check_path(self, path: Path) -> None:
        if not self.is_allowed(path):
            raise FilePolicyError(f"File type not allowed: {path.suffix or path.name}")

    def check_size(self, content: str) -> None:
        limit = self.config.files.max_file_size
        if len(content) > limit:
            raise FilePolicyError(f"File too large: {len(content)} characters (max: {limit})")

    async def read_file(self, file_path: str) -> FileData:
        path = self.resolve(file_path)
        self.check_path(path)
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        self.check_size(content)
        logger.info("Read file: %s", path)
        return FileData(
            path=str(path),
            content=content,
            size=len(content),
            line_count=count_lines(content),
            extension=path.suffix,
        )

    async def write_file(self, file_path: str, content: str) -> FileData:
        path = self.resolve(file_path)
        self.check_path(path)
        self.check_size(content)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.info("File written: %s", path)
        return FileData(
            path=str(path),
            content=content,
            size=len(content),
            line_count=count_lines(content),
            extension=path.suffix,
        )

    def info(self) -> dict[str, Any]:
        return {
            "project_root": str(self.root),
            "allowed_extensions": list(self.config.files.allowed_extensions),
            "max_file_size": self.config.files.max_file_size,
        }
