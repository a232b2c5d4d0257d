"""Tests for the project file service."""

from __future__ import annotations

import pytest

from blockterm.services.files import FilePolicyError, ProjectFiles


@pytest.fixture
def files(app_config):
    return ProjectFiles(app_config)


class TestProjectFiles:
    @pytest.mark.asyncio
    async def test_read_relative_to_root(self, files, project_dir):
        (project_dir / "notes.txt").write_text("one\ntwo\n")
        data = await files.read_file("notes.txt")
        assert data.path == str((project_dir / "notes.txt").resolve())
        assert data.content == "one\ntwo\n"
        assert data.size == 8
        assert data.line_count == 3
        assert data.extension == ".txt"

    @pytest.mark.asyncio
    async def test_disallowed_extension(self, files, project_dir):
        (project_dir / "app.exe").write_text("MZ")
        with pytest.raises(FilePolicyError, match="not allowed"):
            await files.read_file("app.exe")

    @pytest.mark.asyncio
    async def test_extension_check_is_case_insensitive(self, files, project_dir):
        (project_dir / "README.MD").write_text("# hi")
        data = await files.read_file("README.MD")
        assert data.content == "# hi"

    @pytest.mark.asyncio
    async def test_oversized_read(self, files, project_dir):
        (project_dir / "big.txt").write_text("x" * 10_001)
        with pytest.raises(FilePolicyError, match="too large"):
            await files.read_file("big.txt")

    @pytest.mark.asyncio
    async def test_missing_file(self, files):
        with pytest.raises(FileNotFoundError):
            await files.read_file("nope.txt")

    @pytest.mark.asyncio
    async def test_write_creates_parents(self, files, project_dir):
        data = await files.write_file("docs/new.md", "hello")
        assert (project_dir / "docs" / "new.md").read_text() == "hello"
        assert data.line_count == 1

    @pytest.mark.asyncio
    async def test_write_policy(self, files, project_dir):
        with pytest.raises(FilePolicyError):
            await files.write_file("script.sh", "rm -rf /")
        with pytest.raises(FilePolicyError):
            await files.write_file("big.txt", "x" * 10_001)
        assert not (project_dir / "script.sh").exists()
        assert not (project_dir / "big.txt").exists()

    def test_info(self, files, project_dir):
        info = files.info()
        assert info["project_root"] == str(project_dir.resolve())
        assert ".py" in info["allowed_extensions"]
        assert info["max_file_size"] == 10_000
