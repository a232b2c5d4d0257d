"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from blockterm.config import AIConfig, AppConfig, FilesConfig, LoggingConfig, ShellConfig, StorageConfig
from blockterm.storage.sessions import SessionStore


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration rooted in a temporary project."""
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    return AppConfig(
        ai=AIConfig(provider="gemini", api_key="test-key", max_tokens=256),
        files=FilesConfig(project_root=str(project_dir), max_file_size=10_000),
        shell=ShellConfig(timeout=0, cwd=str(project_dir)),
        storage=StorageConfig(db_path=str(tmp_path / "sessions.db")),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def project_dir(app_config):
    return Path(app_config.files.project_root)


@pytest_asyncio.fixture
async def store(app_config):
    session_store = SessionStore(app_config.storage.db_path, session_id="session_test")
    await session_store.initialize()
    yield session_store
    await session_store.close()
