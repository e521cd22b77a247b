"""Tests for the SQLite key/value storage."""
from __future__ import annotations

from quiz_engine.storage import SqliteStorage


class TestSqliteStorage:
    def test_get_missing(self, tmp_storage):
        assert tmp_storage.get("quizzes/nope") is None

    def test_put_get(self, tmp_storage):
        tmp_storage.put("quizzes/a", b'{"version": 1}')
        assert tmp_storage.get("quizzes/a") == b'{"version": 1}'

    def test_put_overwrites(self, tmp_storage):
        tmp_storage.put("quizzes/a", b"one")
        tmp_storage.put("quizzes/a", b"two")
        assert tmp_storage.get("quizzes/a") == b"two"
        assert tmp_storage.list() == ["quizzes/a"]

    def test_delete(self, tmp_storage):
        tmp_storage.put("quizzes/a", b"x")
        tmp_storage.delete("quizzes/a")
        tmp_storage.delete("quizzes/a")  # deleting twice is fine
        assert tmp_storage.get("quizzes/a") is None

    def test_list_by_prefix(self, tmp_storage):
        for key in ("sessions/u1/s2", "sessions/u1/s1", "sessions/u2/s3", "quizzes/q1"):
            tmp_storage.put(key, b"{}")
        assert tmp_storage.list("sessions/u1/") == ["sessions/u1/s1", "sessions/u1/s2"]
        assert tmp_storage.list("quizzes/") == ["quizzes/q1"]
        assert len(tmp_storage.list()) == 4

    def test_prefix_wildcards_are_literal(self, tmp_storage):
        tmp_storage.put("a_b/1", b"{}")
        tmp_storage.put("axb/1", b"{}")
        tmp_storage.put("100%/1", b"{}")
        tmp_storage.put("1000/1", b"{}")
        assert tmp_storage.list("a_b/") == ["a_b/1"]
        assert tmp_storage.list("100%") == ["100%/1"]

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "persist.db"
        first = SqliteStorage(path)
        first.put("quizzes/a", b"kept")
        first.close()
        second = SqliteStorage(path)
        assert second.get("quizzes/a") == b"kept"
        second.close()
