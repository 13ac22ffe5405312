"""
Tests for the append-only JournalWriter.

Tests file creation, append-only behavior, line framing and concurrent
appends.
"""

import asyncio
import json
from pathlib import Path

import pytest

from connlog.core.exceptions import PersistenceError
from connlog.core.journal import JournalWriter
from connlog.core.metrics import MetricsCollector
from connlog.models.connection import ConnectionRecord


def make_record(index: int = 0, **client: object) -> ConnectionRecord:
    """Build a record with a recognizable id."""
    return ConnectionRecord(
        id=f"record-{index:04d}",
        timestamp="2025-01-31T08:15:00Z",
        ip="203.0.113.7",
        path="/login",
        method="POST",
        client=client or {"username": f"user{index}"},
    )


class TestJournalWriter:
    """Test JournalWriter append semantics."""

    @pytest.mark.asyncio
    async def test_creates_file_and_parent_directory(self, tmp_path: Path) -> None:
        """Test the first append creates missing directories and the file."""

        path = tmp_path / "nested" / "dir" / "connections.jsonl"
        writer = JournalWriter(path)

        written = await writer.append(make_record())

        assert path.exists()
        content = path.read_bytes()
        assert written == len(content)
        assert content.endswith(b"\n")

    @pytest.mark.asyncio
    async def test_appends_after_existing_content(self, tmp_path: Path) -> None:
        """Test existing lines are never truncated."""

        path = tmp_path / "connections.jsonl"
        path.write_text('{"id":"pre-existing"}\n', encoding="utf-8")

        writer = JournalWriter(path)
        await writer.append(make_record(1))
        await writer.append(make_record(2))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == '{"id":"pre-existing"}'
        assert [json.loads(line)["id"] for line in lines[1:]] == ["record-0001", "record-0002"]

    @pytest.mark.asyncio
    async def test_line_is_compact_record(self, tmp_path: Path) -> None:
        """Test each line is one compact JSON object with the record fields in order."""

        path = tmp_path / "connections.jsonl"
        writer = JournalWriter(path)

        await writer.append(make_record(7, username="bob", note="line\nbreak"))

        raw = path.read_text(encoding="utf-8")
        assert raw.count("\n") == 1
        parsed = json.loads(raw)
        assert list(parsed) == ["id", "timestamp", "ip", "path", "method", "client"]
        assert parsed["client"] == {"username": "bob", "note": "line\nbreak"}
        assert ": " not in raw

    @pytest.mark.asyncio
    async def test_concurrent_appends_never_interleave(self, tmp_path: Path) -> None:
        """Test N concurrent appends produce exactly N whole, parseable lines."""

        path = tmp_path / "connections.jsonl"
        writer = JournalWriter(path)
        count = 100

        await asyncio.gather(
            *(writer.append(make_record(i, username=f"user{i}", padding="x" * 512)) for i in range(count))
        )

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == count
        ids = {json.loads(line)["id"] for line in lines}
        assert ids == {f"record-{i:04d}" for i in range(count)}

    @pytest.mark.asyncio
    async def test_unwritable_path_raises_persistence_error(self, tmp_path: Path) -> None:
        """Test a path that cannot be opened for append raises PersistenceError."""

        path = tmp_path / "is-a-directory"
        path.mkdir()
        writer = JournalWriter(path)

        with pytest.raises(PersistenceError) as exc_info:
            await writer.append(make_record())

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "internal_error"
        assert exc_info.value.path == path
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, tmp_path: Path) -> None:
        """Test a failed append does not block later appends."""

        path = tmp_path / "blocked"
        path.mkdir()
        writer = JournalWriter(path)

        with pytest.raises(PersistenceError):
            await writer.append(make_record(1))

        path.rmdir()
        await asyncio.wait_for(writer.append(make_record(2)), timeout=2)
        assert json.loads(path.read_text(encoding="utf-8"))["id"] == "record-0002"


class TestJournalMetrics:
    """Test journal metrics recording."""

    @pytest.mark.asyncio
    async def test_successful_appends_counted(self, tmp_path: Path) -> None:
        """Test appended records and their duration are recorded."""

        metrics = MetricsCollector()
        writer = JournalWriter(tmp_path / "connections.jsonl", metrics=metrics)

        await writer.append(make_record(1))
        await writer.append(make_record(2))

        assert metrics.registry.get_sample_value("connlog_records_appended_total") == 2
        assert metrics.registry.get_sample_value("connlog_append_duration_seconds_count") == 2
        assert metrics.registry.get_sample_value("connlog_append_failures_total") == 0

    @pytest.mark.asyncio
    async def test_failures_counted(self, tmp_path: Path) -> None:
        """Test failed appends are recorded separately."""

        path = tmp_path / "dir"
        path.mkdir()
        metrics = MetricsCollector()
        writer = JournalWriter(path, metrics=metrics)

        with pytest.raises(PersistenceError):
            await writer.append(make_record())

        assert metrics.registry.get_sample_value("connlog_append_failures_total") == 1
        assert metrics.registry.get_sample_value("connlog_records_appended_total") == 0
