"""SQLite-backed session snapshot store."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from blockterm.storage.models import Block, BlockStatus, SessionStats, SessionSummary, now_ms

logger = logging.getLogger(__name__)


def generate_session_id(now: datetime | None = None) -> str:
    """Session id derived from the session start time."""
    now = now or datetime.now()
    return now.strftime("session_%Y_%m_%d_%H_%M_%S")


class SessionStore:
    """Ordered block log for the current run, persisted as full snapshots.

    Each session id maps to exactly one row holding the whole JSON snapshot;
    every save replaces that row outright.
    """

    def __init__(self, db_path: str, session_id: str | None = None) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.session_id = session_id or generate_session_id()
        self._blocks: list[Block] = []
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database, create tables and resume a matching snapshot."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                start_time INTEGER NOT NULL,
                last_saved INTEGER NOT NULL,
                block_count INTEGER NOT NULL DEFAULT 0,
                snapshot TEXT NOT NULL
            )
        """)
        await self._db.execute("CREATE INDEX IF NOT EXISTS idx_sessions_last_saved ON sessions(last_saved)")
        await self._db.commit()

        await self._load_current()
        logger.info("Session initialized: %s (%d blocks)", self.session_id, len(self._blocks))

    async def _get_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Session store not initialized. Call initialize() first.")
        return self._db

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("Session store closed")

    async def _read_snapshot(self, session_id: str) -> dict[str, Any] | None:
        db = await self._get_db()
        cursor = await db.execute("SELECT snapshot FROM sessions WHERE id = ?", (session_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row["snapshot"])

    async def _load_current(self) -> None:
        try:
            data = await self._read_snapshot(self.session_id)
            blocks = _blocks_from_snapshot(data) if data is not None else None
        except (ValueError, KeyError, TypeError, aiosqlite.Error):
            logger.exception("Failed to load session %s", self.session_id)
            self._blocks = []
            return
        if blocks is not None:
            self._blocks = blocks
            logger.info("Loaded session with %d blocks", len(self._blocks))

    def snapshot(self) -> dict[str, Any]:
        """The full document persisted for the current session."""
        return {
            "id": self.session_id,
            "startTime": self._blocks[0].start_time if self._blocks else now_ms(),
            "lastSaved": now_ms(),
            "blocks": [block.to_dict() for block in self._blocks],
        }

    async def save(self) -> bool:
        """Replace the stored snapshot of the current session. Returns success."""
        data = self.snapshot()
        try:
            db = await self._get_db()
            await db.execute(
                """INSERT OR REPLACE INTO sessions (id, start_time, last_saved, block_count, snapshot)
                   VALUES (?, ?, ?, ?, ?)""",
                (data["id"], data["startTime"], data["lastSaved"], len(data["blocks"]), json.dumps(data)),
            )
            await db.commit()
        except (aiosqlite.Error, RuntimeError):
            logger.exception("Failed to save session %s", self.session_id)
            return False
        logger.debug("Session saved: %d blocks", len(self._blocks))
        return True

    async def add_block(self, block: Block) -> bool:
        """Append a block and persist. The append stands even if the save fails."""
        self._blocks.append(block)
        return await self.save()

    def get_blocks(self) -> list[Block]:
        return list(self._blocks)

    def get_block_by_id(self, block_id: str) -> Block | None:
        return next((block for block in self._blocks if block.id == block_id), None)

    def get_recent_blocks(self, count: int = 10) -> list[Block]:
        return self._blocks[-count:] if count > 0 else []

    async def list_sessions(self) -> list[SessionSummary]:
        """Stored sessions, most recently saved first."""
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT id, start_time, last_saved, block_count FROM sessions ORDER BY last_saved DESC, rowid DESC"
        )
        rows = await cursor.fetchall()
        return [
            SessionSummary(
                id=row["id"],
                start_time=row["start_time"],
                last_saved=row["last_saved"],
                block_count=row["block_count"],
            )
            for row in rows
        ]

    async def load_session_by_id(self, session_id: str) -> bool:
        """Make a stored session current. Returns False if it does not exist."""
        try:
            data = await self._read_snapshot(session_id)
            if data is None:
                return False
            blocks = _blocks_from_snapshot(data)
        except (ValueError, KeyError, TypeError, aiosqlite.Error):
            logger.exception("Failed to load session %s", session_id)
            return False
        self._blocks = blocks
        self.session_id = session_id
        logger.info("Loaded session: %s", session_id)
        return True

    async def delete_session(self, session_id: str) -> bool:
        db = await self._get_db()
        cursor = await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted session: %s", session_id)
        return deleted

    def get_session_stats(self) -> SessionStats:
        total = len(self._blocks)
        ai_blocks = sum(1 for block in self._blocks if block.is_ai_command)
        errors = sum(1 for block in self._blocks if block.status == BlockStatus.ERROR)
        total_duration = sum(block.elapsed_ms() for block in self._blocks)
        return SessionStats(
            session_id=self.session_id,
            total_blocks=total,
            ai_blocks=ai_blocks,
            system_blocks=total - ai_blocks,
            error_blocks=errors,
            success_rate=round((total - errors) / total * 100, 1) if total else 0,
            total_duration_ms=total_duration,
            avg_duration_ms=total_duration / total if total else 0,
        )


def _blocks_from_snapshot(data: dict[str, Any]) -> list[Block]:
    return [Block.from_dict(item) for item in data.get("blocks") or []]
