"""
Tests for storage backends and transaction support
"""

import pytest
import sqlite3
import threading
from datetime import datetime, timezone

from cardplan.storage import InMemoryStorage, SQLiteStorage, create_storage
from cardplan.exceptions import InfrastructureError


test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": "100.50",
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        storage = InMemoryStorage()
    else:
        storage = SQLiteStorage(tmp_path / "test.db")
    yield storage
    storage.close()


class TestBasicOperations:
    """CRUD behaviour shared by both backends"""

    def test_save_and_load(self, backend):
        backend.save("records", "record_1", test_data)
        assert backend.load("records", "record_1") == test_data
        assert backend.load("records", "missing") is None

    def test_exists_count_delete(self, backend):
        backend.save("records", "record_1", test_data)
        assert backend.exists("records", "record_1")
        assert backend.count("records") == 1
        assert backend.delete("records", "record_1") is True
        assert backend.delete("records", "record_1") is False
        assert not backend.exists("records", "record_1")

    def test_find(self, backend):
        backend.save("records", "a", {"id": "a", "plan_id": "p1"})
        backend.save("records", "b", {"id": "b", "plan_id": "p2"})
        backend.save("records", "c", {"id": "c", "plan_id": "p1"})
        found = backend.find("records", {"plan_id": "p1"})
        assert sorted(r["id"] for r in found) == ["a", "c"]
        assert len(backend.find("records", {})) == 3

    def test_loaded_records_are_copies(self, backend):
        backend.save("records", "record_1", {"id": "record_1", "items": [1]})
        loaded = backend.load("records", "record_1")
        loaded["items"].append(2)
        assert backend.load("records", "record_1")["items"] == [1]


class TestAtomic:
    """All-or-nothing atomic blocks"""

    def test_commit(self, backend):
        with backend.atomic():
            backend.save("records", "a", {"id": "a"})
            backend.save("records", "b", {"id": "b"})
        assert backend.count("records") == 2

    def test_rollback_discards_every_write(self, backend):
        backend.save("records", "keep", {"id": "keep", "value": 1})

        with pytest.raises(RuntimeError):
            with backend.atomic():
                backend.save("records", "new", {"id": "new"})
                backend.save("records", "keep", {"id": "keep", "value": 2})
                backend.delete("records", "keep")
                raise RuntimeError("boom")

        assert backend.load("records", "new") is None
        assert backend.load("records", "keep") == {"id": "keep", "value": 1}

    def test_rollback_of_table_created_inside_block(self, backend):
        with pytest.raises(RuntimeError):
            with backend.atomic():
                backend.save("fresh_table", "x", {"id": "x"})
                raise RuntimeError("boom")
        assert backend.count("fresh_table") == 0
        backend.save("fresh_table", "y", {"id": "y"})
        assert backend.count("fresh_table") == 1

    def test_nested_blocks_commit_with_outer(self, backend):
        with pytest.raises(RuntimeError):
            with backend.atomic():
                with backend.atomic():
                    backend.save("records", "inner", {"id": "inner"})
                raise RuntimeError("outer failure")
        assert backend.load("records", "inner") is None

    def test_block_excludes_other_threads(self):
        storage = InMemoryStorage()
        observed = []
        entered = threading.Event()

        def reader():
            entered.wait()
            observed.append(storage.load("records", "a"))

        thread = threading.Thread(target=reader)
        thread.start()
        with storage.atomic():
            storage.save("records", "a", {"id": "a", "step": 1})
            entered.set()
            # The reader blocks until the block ends
            thread.join(timeout=0.2)
            storage.save("records", "a", {"id": "a", "step": 2})
        thread.join()
        assert observed == [{"id": "a", "step": 2}]


class TestRowLock:
    """Per-record writer lock"""

    def test_row_lock_is_reentrant(self):
        storage = InMemoryStorage()
        with storage.row_lock("plans", "p1"):
            with storage.row_lock("plans", "p1"):
                pass

    def test_row_lock_serializes_writers(self):
        storage = InMemoryStorage()
        storage.save("counters", "c", {"id": "c", "value": 0})

        def increment():
            for _ in range(50):
                with storage.row_lock("counters", "c"):
                    data = storage.load("counters", "c")
                    data["value"] += 1
                    storage.save("counters", "c", data)

        threads = [threading.Thread(target=increment) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert storage.load("counters", "c")["value"] == 200


class TestSQLiteStorage:
    """SQLite-specific behaviour"""

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "persist.db"
        storage = SQLiteStorage(path)
        storage.save("records", "a", {"id": "a"})
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("records", "a") == {"id": "a"}
        reopened.close()

    def test_closed_storage_raises_infrastructure_error(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "closed.db")
        storage.close()
        with pytest.raises(InfrastructureError):
            storage.save("records", "a", {"id": "a"})

    def test_sqlite_errors_are_wrapped(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "bad.db")
        with pytest.raises(InfrastructureError) as exc_info:
            storage.save("bad table name", "a", {"id": "a"})
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)
        storage.close()


class TestCreateStorage:
    """Backend selection from a URL"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'url.db'}")
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unknown_url(self):
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/db")
