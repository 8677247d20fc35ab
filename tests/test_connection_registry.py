import threading
from datetime import datetime

import pytest

from connection_registry import Connection, ConnectionRegistry
from fakes import fake_connection


class TestConnectionRegistry:

    def test_register_and_lookup(self, registry):
        ws = fake_connection()
        conn = registry.register("A1", ws)
        assert isinstance(conn, Connection)
        assert conn.identity == "A1"
        assert isinstance(conn.connected_at, datetime)
        assert registry.lookup("A1") is conn
        assert "A1" in registry
        assert len(registry) == 1

    def test_lookup_unknown_identity(self, registry):
        assert registry.lookup("ghost") is None

    def test_register_is_last_writer_wins(self, registry):
        old, new = fake_connection(), fake_connection()
        registry.register("A1", old)
        registry.register("A1", new)
        assert registry.lookup("A1").ws is new
        assert len(registry) == 1

    def test_remove(self, registry):
        registry.register("A1", fake_connection())
        assert registry.remove("A1") is True
        assert registry.lookup("A1") is None
        assert registry.remove("A1") is False

    def test_stale_remove_keeps_newer_registration(self, registry):
        old, new = fake_connection(), fake_connection()
        registry.register("A1", old)
        registry.register("A1", new)
        assert registry.remove("A1", old) is False
        assert registry.lookup("A1").ws is new
        assert registry.remove("A1", new) is True
        assert registry.lookup("A1") is None

    def test_identities(self, registry):
        registry.register("A1", fake_connection())
        registry.register("B1", fake_connection())
        assert sorted(registry.identities()) == ["A1", "B1"]

    def test_concurrent_churn_leaves_no_entries_behind(self):
        registry = ConnectionRegistry()

        def churn(prefix):
            for i in range(500):
                identity = f"{prefix}-{i % 10}"
                registry.register(identity, fake_connection())
                registry.remove(identity)

        threads = [threading.Thread(target=churn, args=(f"w{n}",)) for n in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(registry) == 0

    @pytest.mark.parametrize("operation", [
        lambda r, ws: r.register("A1", fake_connection()),
        lambda r, ws: r.lookup("A1"),
        lambda r, ws: r.remove("A1", ws),
        lambda r, ws: r.identities(),
    ], ids=["register", "lookup", "remove", "identities"])
    def test_operations_wait_for_the_lock(self, operation):
        registry = ConnectionRegistry()
        ws = fake_connection()
        registry.register("A1", ws)
        worker = threading.Thread(target=operation, args=(registry, ws))
        with registry._lock:
            worker.start()
            worker.join(0.1)
            assert worker.is_alive()
        worker.join(2)
        assert not worker.is_alive()
