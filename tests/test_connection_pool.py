"""
Tests del pool de conexiones con conexiones falsas (sin base de datos).
"""
import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from core.database.connection import ConnectionPool
from core.errors import DatabaseConnectionError, PoolClosedError, PoolTimeoutError


class FakeTransaction:
    def __init__(self, conn):
        self.conn = conn
        self.is_active = True

    def commit(self):
        self.conn.commits += 1
        self.conn._in_tx = False
        self.is_active = False

    def rollback(self):
        self.conn.rollbacks += 1
        self.conn._in_tx = False
        self.is_active = False


class FakeConnection:
    def __init__(self):
        self.closed = False
        self.invalidated = False
        self.commits = 0
        self.rollbacks = 0
        self._in_tx = False

    def in_transaction(self):
        return self._in_tx

    def begin(self):
        self._in_tx = True
        return FakeTransaction(self)

    def rollback(self):
        if self._in_tx:
            self.rollbacks += 1
        self._in_tx = False

    def exec_driver_sql(self, sql):
        if self.closed:
            raise OperationalError(sql, {}, Exception("connection closed"))

    def execute(self, statement, params=None):
        self._in_tx = True

    def invalidate(self):
        self.invalidated = True

    def close(self):
        self.closed = True


class FakeFactory:
    def __init__(self):
        self.created = []
        self._lock = threading.Lock()

    def __call__(self):
        conn = FakeConnection()
        with self._lock:
            self.created.append(conn)
        return conn


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


@pytest.fixture
def factory():
    return FakeFactory()


class TestAcquireRelease:
    def test_connection_is_reused_after_release(self, factory):
        pool = ConnectionPool(factory, max_connections=3)
        first = pool.acquire()
        pool.release(first)
        second = pool.acquire()
        assert second is first
        assert len(factory.created) == 1
        pool.release(second)

    def test_release_twice_is_rejected(self, factory):
        pool = ConnectionPool(factory)
        conn = pool.acquire()
        pool.release(conn)
        with pytest.raises(ValueError):
            pool.release(conn)

    def test_release_rolls_back_open_transaction(self, factory):
        pool = ConnectionPool(factory)
        conn = pool.acquire()
        conn.execute("INSERT ...")
        pool.release(conn)
        assert conn.rollbacks == 1
        assert not conn.in_transaction()

    def test_scoped_connection_released_on_error(self, factory):
        pool = ConnectionPool(factory, max_connections=1)
        with pytest.raises(RuntimeError):
            with pool.connection():
                raise RuntimeError("boom")
        assert pool.get_stats()['in_use'] == 0
        # El único hueco quedó libre
        conn = pool.acquire(timeout=0.1)
        pool.release(conn)

    def test_dead_idle_connection_is_replaced(self, factory):
        pool = ConnectionPool(factory, max_connections=1)
        conn = pool.acquire()
        pool.release(conn)
        conn.closed = True
        fresh = pool.acquire(timeout=0.5)
        assert fresh is not conn
        assert len(factory.created) == 2
        assert pool.get_stats()['connections_discarded'] == 1
        pool.release(fresh)

    def test_unreachable_database_raises_connection_error(self):
        def refuse():
            raise OperationalError("connect", {}, Exception("connection refused"))

        pool = ConnectionPool(refuse, max_connections=1)
        with pytest.raises(DatabaseConnectionError):
            pool.acquire()
        # El hueco reservado se devolvió
        assert pool.get_stats()['size'] == 0


class TestSaturation:
    def test_excess_callers_queue_and_eventually_succeed(self, factory):
        pool = ConnectionPool(factory, max_connections=2)
        active = []
        peak = []
        errors = []
        lock = threading.Lock()

        def worker():
            try:
                with pool.connection():
                    with lock:
                        active.append(1)
                        peak.append(len(active))
                    time.sleep(0.02)
                    with lock:
                        active.pop()
            except Exception as e:  # pragma: no cover - se reporta abajo
                errors.append(e)

        enqueued = []
        pool.on("enqueue", lambda queued: enqueued.append(queued))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert errors == []
        assert max(peak) <= 2
        assert len(peak) == 8
        assert len(factory.created) <= 2
        assert enqueued, "se esperaba al menos una solicitud en cola"
        stats = pool.get_stats()
        assert stats['in_use'] == 0 and stats['waiting'] == 0

    def test_waiters_are_served_in_fifo_order(self, factory):
        pool = ConnectionPool(factory, max_connections=1)
        holder = pool.acquire()
        order = []

        def waiter(name):
            conn = pool.acquire()
            order.append(name)
            pool.release(conn)

        first = threading.Thread(target=waiter, args=("first",))
        first.start()
        assert wait_until(lambda: pool.get_stats()['waiting'] == 1)
        second = threading.Thread(target=waiter, args=("second",))
        second.start()
        assert wait_until(lambda: pool.get_stats()['waiting'] == 2)

        pool.release(holder)
        first.join(timeout=2)
        second.join(timeout=2)
        assert order == ["first", "second"]

    def test_newcomer_does_not_jump_the_queue(self, factory):
        pool = ConnectionPool(factory, max_connections=1)
        holder = pool.acquire()
        got = threading.Event()

        def waiter():
            conn = pool.acquire()
            got.set()
            time.sleep(0.05)
            pool.release(conn)

        t = threading.Thread(target=waiter)
        t.start()
        assert wait_until(lambda: pool.get_stats()['waiting'] == 1)
        pool.release(holder)
        assert got.wait(timeout=2)
        # Mientras el que esperaba usa la conexión, no hay hueco para otro
        with pytest.raises(PoolTimeoutError):
            pool.acquire(timeout=0.01)
        t.join(timeout=2)

    def test_timeout_when_configured(self, factory):
        pool = ConnectionPool(factory, max_connections=1, timeout=0.05)
        held = pool.acquire()
        with pytest.raises(PoolTimeoutError):
            pool.acquire()
        assert pool.get_stats()['waiting'] == 0
        assert pool.get_stats()['timeouts'] == 1
        pool.release(held)


class TestUnitOfWork:
    def test_commit(self, factory):
        pool = ConnectionPool(factory)
        with pool.unit_of_work() as uow:
            uow.begin()
            uow.execute("UPDATE ...")
            uow.commit()
        conn = factory.created[0]
        assert conn.commits == 1
        assert conn.rollbacks == 0
        assert pool.get_stats()['in_use'] == 0

    def test_rollback_on_error_and_release(self, factory):
        pool = ConnectionPool(factory, max_connections=1)
        with pytest.raises(RuntimeError):
            with pool.unit_of_work() as uow:
                uow.begin()
                uow.execute("INSERT ...")
                raise RuntimeError("fallo entre sentencias")
        conn = factory.created[0]
        assert conn.commits == 0
        assert conn.rollbacks == 1
        assert pool.get_stats()['in_use'] == 0

    def test_uncommitted_work_is_discarded_on_exit(self, factory):
        pool = ConnectionPool(factory)
        with pool.unit_of_work() as uow:
            uow.begin()
        assert factory.created[0].rollbacks == 1

    def test_commit_without_begin_fails(self, factory):
        pool = ConnectionPool(factory)
        with pytest.raises(RuntimeError):
            with pool.unit_of_work() as uow:
                uow.commit()
        assert pool.get_stats()['in_use'] == 0


class TestEventsAndLifecycle:
    def test_acquire_and_release_events(self, factory):
        pool = ConnectionPool(factory)
        seen = []
        pool.on("acquire", lambda c: seen.append(("acquire", c)))
        pool.on("release", lambda c: seen.append(("release", c)))
        conn = pool.acquire()
        pool.release(conn)
        assert seen == [("acquire", conn), ("release", conn)]

    def test_failing_listener_does_not_break_pool(self, factory):
        pool = ConnectionPool(factory)

        def broken(_conn):
            raise RuntimeError("listener roto")

        pool.on("acquire", broken)
        conn = pool.acquire()
        pool.release(conn)

    def test_unknown_event_is_rejected(self, factory):
        pool = ConnectionPool(factory)
        with pytest.raises(ValueError):
            pool.on("checkout", lambda c: None)

    def test_close_all_wakes_waiters(self, factory):
        pool = ConnectionPool(factory, max_connections=1)
        held = pool.acquire()
        errors = []

        def waiter():
            try:
                pool.acquire()
            except PoolClosedError as e:
                errors.append(e)

        t = threading.Thread(target=waiter)
        t.start()
        assert wait_until(lambda: pool.get_stats()['waiting'] == 1)
        pool.close_all()
        t.join(timeout=2)
        assert len(errors) == 1

        pool.release(held)
        assert held.closed
        with pytest.raises(PoolClosedError):
            pool.acquire()
