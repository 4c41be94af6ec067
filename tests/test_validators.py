"""Tests for srp_mcp.validators."""

from __future__ import annotations

import logging

import pytest

from srp_mcp.validators import parse_note, parse_task, validate_note, validate_task


@pytest.fixture
def note_data() -> dict:
    return {
        "note_id": "note_20251005_001",
        "agent_id": "agent-1",
        "task_id": "session_20251005_001",
        "timestamp": "2025-10-05T12:00:00+00:00",
        "task_title": "Refactor loader",
        "content": "Split the loader",
    }


@pytest.fixture
def task_data() -> dict:
    return {
        "task_id": "session_20251005_001",
        "agent_id": "agent-1",
        "title": "Refactor loader",
        "created_at": "2025-10-05T12:00:00+00:00",
        "updated_at": "2025-10-05T12:00:00+00:00",
    }


class TestNotes:
    def test_valid(self, note_data: dict) -> None:
        assert validate_note(note_data)
        note = parse_note(note_data)
        assert note.subtask_status == "pending"
        assert note.public_state is True

    def test_bad_note_id(self, note_data: dict) -> None:
        note_data["note_id"] = "note-1"
        assert not validate_note(note_data)

    def test_subtask_id_format(self, note_data: dict) -> None:
        note_data["subtask_id"] = "subtask_20251005_7"
        assert parse_note(note_data) is None

    def test_bad_status(self, note_data: dict) -> None:
        note_data["subtask_status"] = "done"
        assert not validate_note(note_data)

    def test_missing_field_logged(self, note_data: dict, caplog: pytest.LogCaptureFixture) -> None:
        del note_data["content"]
        with caplog.at_level(logging.WARNING, logger="srp_mcp.validators"):
            assert parse_note(note_data) is None
        assert "Note validation failed" in caplog.text


class TestTasks:
    def test_valid(self, task_data: dict) -> None:
        task = parse_task(task_data)
        assert task.status == "pending"
        assert task.notes == []

    def test_nested_notes_validated(self, task_data: dict, note_data: dict) -> None:
        note_data["task_id"] = "bad"
        task_data["notes"] = [note_data]
        assert not validate_task(task_data)

    def test_bad_task_id(self, task_data: dict) -> None:
        task_data["task_id"] = "note_20251005_001"
        assert not validate_task(task_data)

    def test_not_a_mapping(self) -> None:
        assert parse_task("session_20251005_001") is None
