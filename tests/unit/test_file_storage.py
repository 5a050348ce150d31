"""
Unit tests for FileStorage (append-only JSON-lines log).

Covers:
    - file and parent directory creation
    - one JSON line per record with the documented fields
    - round-trip durability across a simulated restart
    - soft deletes appended as new lines; last line wins on replay
    - malformed lines skipped with a warning, valid lines kept
    - older line layout accepted
    - batch conflict leaves the log untouched
    - failed append rolls back the in-memory change and truncates the log
    - a fragment from a failed append never swallows the next line
    - replay keeps at most one live record per URL
    - clear truncates the log
"""

import builtins
import errno
import json
import logging
import os

import pytest

from shorty_platform.storage import file_storage as file_storage_module
from shorty_platform.storage.errors import StorageError, URLAlreadyExistsError
from shorty_platform.storage.file_storage import FileStorage
from shorty_platform.storage.models import StoreStats


def _lines(path):
    with open(path, encoding="utf-8") as fh:
        return [json.loads(line) for line in fh if line.strip()]


def _raw(path):
    with open(path, "rb") as fh:
        return fh.read()


def test_creates_file_and_directories(log_path):
    assert not os.path.exists(log_path)
    FileStorage(log_path)
    assert os.path.isfile(log_path)


def test_requires_path():
    with pytest.raises(ValueError):
        FileStorage("")


def test_save_appends_json_line(file_storage, log_path):
    file_storage.save("abc123", "https://example.com", "u1")
    assert _lines(log_path) == [
        {"short_id": "abc123", "original_url": "https://example.com", "owner_id": "u1", "deleted": False}
    ]


def test_round_trip_durability(file_storage, log_path):
    expected = {f"id{i}": f"https://example.com/{i}" for i in range(20)}
    for short_id, url in expected.items():
        file_storage.save(short_id, url, "u1")

    reloaded = FileStorage(log_path)
    assert reloaded.stats() == StoreStats(urls=20, owners=1)
    for short_id, url in expected.items():
        record = reloaded.get(short_id)
        assert record.original_url == url
        assert record.owner_id == "u1"
        assert record.deleted is False


def test_dedup_index_rebuilt_on_restart(file_storage, log_path):
    file_storage.save("abc123", "https://example.com", "u1")
    reloaded = FileStorage(log_path)
    with pytest.raises(URLAlreadyExistsError) as excinfo:
        reloaded.save("zzz999", "https://example.com", "u1")
    assert excinfo.value.short_id == "abc123"


def test_delete_appends_line_and_survives_restart(file_storage, log_path):
    file_storage.save("abc123", "https://example.com", "u1")
    file_storage.batch_delete("u1", ["abc123"])

    lines = _lines(log_path)
    assert len(lines) == 2
    assert lines[-1]["short_id"] == "abc123" and lines[-1]["deleted"] is True

    reloaded = FileStorage(log_path)
    assert reloaded.get("abc123").deleted is True
    assert reloaded.get_by_owner("u1") == []
    # URL is free again after the delete
    assert reloaded.save("new456", "https://example.com", "u1") == "new456"


def test_delete_of_already_deleted_writes_nothing(file_storage, log_path):
    file_storage.save("abc123", "https://example.com", "u1")
    file_storage.batch_delete("u1", ["abc123"])
    file_storage.batch_delete("u1", ["abc123", "unknown"])
    assert len(_lines(log_path)) == 2


def test_malformed_lines_skipped(log_path, caplog):
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    with open(log_path, "w", encoding="utf-8") as fh:
        fh.write(json.dumps({"short_id": "a", "original_url": "https://a.example", "owner_id": "u1", "deleted": False}) + "\n")
        fh.write("{not json at all\n")
        fh.write("\n")
        fh.write(json.dumps({"short_id": "b"}) + "\n")
        fh.write(json.dumps(["list", "not", "object"]) + "\n")
        fh.write(json.dumps({"short_id": "c", "original_url": "https://c.example", "owner_id": "u2", "deleted": False}) + "\n")

    with caplog.at_level(logging.WARNING, logger="shorty_platform.storage.file_storage"):
        storage = FileStorage(log_path)

    assert storage.get("a").original_url == "https://a.example"
    assert storage.get("c").owner_id == "u2"
    assert storage.get("b") is None
    assert storage.stats() == StoreStats(urls=2, owners=2)
    assert sum("Skipping invalid line" in r.getMessage() for r in caplog.records) == 3


def test_legacy_line_layout_accepted(log_path):
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    with open(log_path, "w", encoding="utf-8") as fh:
        fh.write(json.dumps({"uuid": "x1", "short_url": "x1", "original_url": "https://x.example", "user_id": "u9"}) + "\n")
    storage = FileStorage(log_path)
    record = storage.get("x1")
    assert record.owner_id == "u9"
    assert record.deleted is False


def test_last_line_wins(log_path):
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    rows = [
        {"short_id": "a", "original_url": "https://a.example", "owner_id": "u1", "deleted": False},
        {"short_id": "a", "original_url": "https://a.example", "owner_id": "u1", "deleted": True},
    ]
    with open(log_path, "w", encoding="utf-8") as fh:
        for row in rows:
            fh.write(json.dumps(row) + "\n")
    storage = FileStorage(log_path)
    assert storage.get("a").deleted is True
    assert storage.stats().urls == 0


def test_batch_conflict_leaves_log_untouched(file_storage, log_path):
    file_storage.save("old", "https://dup.example")
    with pytest.raises(URLAlreadyExistsError):
        file_storage.batch_save({"n1": "https://new.example", "n2": "https://dup.example"}, "u1")
    assert len(_lines(log_path)) == 1
    assert FileStorage(log_path).get("n1") is None


def test_batch_save_written_in_order(file_storage, log_path):
    batch = {"a": "https://a.example", "b": "https://b.example", "c": "https://c.example"}
    file_storage.batch_save(batch, "u1")
    assert [line["short_id"] for line in _lines(log_path)] == ["a", "b", "c"]


def test_failed_append_rolls_back(file_storage, tmp_path):
    good_path = file_storage.file_path
    file_storage.file_path = str(tmp_path)  # a directory: open(..., "a") fails
    with pytest.raises(StorageError):
        file_storage.save("abc123", "https://example.com", "u1")
    file_storage.file_path = good_path

    assert file_storage.get("abc123") is None
    assert file_storage.save("other", "https://example.com", "u1") == "other"


class _ShortWriteFile:
    """Wraps a real file; writes half the payload then fails like a full disk."""

    def __init__(self, fh, can_truncate=True):
        self._fh = fh
        self._can_truncate = can_truncate

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self._fh.close()
        return False

    def write(self, data):
        self._fh.write(bytes(data[: len(data) // 2]))
        raise OSError(errno.ENOSPC, "No space left on device")

    def truncate(self, size):
        if not self._can_truncate:
            raise OSError(errno.EIO, "I/O error")
        return self._fh.truncate(size)

    def __getattr__(self, name):
        return getattr(self._fh, name)


def _short_write_open(can_truncate):
    def _open(path, mode="r", *args, **kwargs):
        return _ShortWriteFile(builtins.open(path, mode, *args, **kwargs), can_truncate)
    return _open


def test_partial_append_is_truncated(monkeypatch, file_storage, log_path):
    file_storage.save("a0", "https://zero.example", "u1")
    before = _raw(log_path)

    with monkeypatch.context() as mp:
        mp.setattr(file_storage_module, "open", _short_write_open(True), raising=False)
        with pytest.raises(StorageError):
            file_storage.save("a1", "https://a.example", "u1")

    assert _raw(log_path) == before
    assert file_storage.save("b2", "https://a.example", "u1") == "b2"

    reopened = FileStorage(log_path)
    assert reopened.get("a1") is None
    assert reopened.get("b2").original_url == "https://a.example"


def test_fragment_left_by_failed_truncate_stays_on_its_own_line(monkeypatch, file_storage, log_path, caplog):
    with monkeypatch.context() as mp:
        mp.setattr(file_storage_module, "open", _short_write_open(False), raising=False)
        with pytest.raises(StorageError):
            file_storage.save("a1", "https://a.example", "u1")

    file_storage.save("b2", "https://b.example", "u1")

    with caplog.at_level(logging.WARNING, logger="shorty_platform.storage.file_storage"):
        reopened = FileStorage(log_path)
    assert reopened.get("a1") is None
    assert reopened.get("b2").original_url == "https://b.example"
    assert sum("Skipping invalid line" in r.getMessage() for r in caplog.records) == 1


def test_failed_fsync_leaves_no_record_on_disk(monkeypatch, log_path):
    storage = FileStorage(log_path, fsync=True)

    def broken_fsync(fd):
        raise OSError(errno.EIO, "I/O error")

    with monkeypatch.context() as mp:
        mp.setattr(os, "fsync", broken_fsync)
        with pytest.raises(StorageError):
            storage.save("a1", "https://dup.example", "u1")

    assert os.path.getsize(log_path) == 0
    assert storage.save("b2", "https://dup.example", "u1") == "b2"

    reopened = FileStorage(log_path)
    assert [r.short_id for r in reopened.get_by_owner("u1")] == ["b2"]
    assert reopened.stats() == StoreStats(urls=1, owners=1)


def test_replay_keeps_one_live_record_per_url(log_path, caplog):
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    rows = [
        {"short_id": "a1", "original_url": "https://dup.example", "owner_id": "u1", "deleted": False},
        {"short_id": "b2", "original_url": "https://dup.example", "owner_id": "u1", "deleted": False},
        {"short_id": "c3", "original_url": "https://gone.example", "owner_id": "u1", "deleted": True},
        {"short_id": "d4", "original_url": "https://gone.example", "owner_id": "u1", "deleted": False},
    ]
    with open(log_path, "w", encoding="utf-8") as fh:
        for row in rows:
            fh.write(json.dumps(row) + "\n")

    with caplog.at_level(logging.WARNING, logger="shorty_platform.storage.file_storage"):
        storage = FileStorage(log_path)

    assert storage.get("a1").deleted is False
    assert storage.get("b2") is None
    assert storage.get("d4").deleted is False
    assert storage.stats().urls == 2
    assert any("already live under a1" in r.getMessage() for r in caplog.records)
    with pytest.raises(URLAlreadyExistsError) as excinfo:
        storage.save("e5", "https://dup.example", "u1")
    assert excinfo.value.short_id == "a1"


def test_clear_truncates_log(file_storage, log_path):
    file_storage.save("a", "https://a.example", "u1")
    file_storage.clear()
    assert os.path.getsize(log_path) == 0
    assert file_storage.get("a") is None
    assert FileStorage(log_path).stats() == StoreStats(0, 0)


def test_reload_picks_up_external_appends(file_storage, log_path):
    with open(log_path, "a", encoding="utf-8") as fh:
        fh.write(json.dumps({"short_id": "ext", "original_url": "https://ext.example", "owner_id": "", "deleted": False}) + "\n")
    assert file_storage.get("ext") is None
    file_storage.reload()
    assert file_storage.get("ext").original_url == "https://ext.example"
