"""
Bounded redis connection pool.

Connections are leased with `with pool.connection() as conn:` and always go back
to the pool (or get discarded) when the block exits.
"""
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Optional

import redis

from cachepool.errors import PoolClosedError, PoolExhaustedError
from cachepool.metrics import Timer, borrow_duration, borrow_errors_total, pool_connections

logger = logging.getLogger(__name__)

# Errors after which a connection can no longer be trusted
CONNECTION_ERRORS = (redis.ConnectionError, redis.TimeoutError, OSError)


class PooledConnection:
    """A connection leased from a Pool"""

    def __init__(self, conn: Any, created_at: float):
        self.conn = conn
        self.created_at = created_at
        self.returned_at = created_at
        self.broken = False

    def execute(self, *args):
        """Send a command and return its reply"""
        try:
            self.conn.send_command(*args)
            return self.conn.read_response()
        except CONNECTION_ERRORS:
            self.broken = True
            raise


class Pool:
    def __init__(
        self,
        name: str,
        connect: Callable[[], Any],
        test_on_borrow: Optional[Callable[[Any, float], None]] = None,
        max_idle: int = 10,
        max_active: int = 0,
        max_lifetime: Optional[float] = None,
        idle_timeout: Optional[float] = None,
        wait: bool = False,
        wait_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_idle = max_idle
        self.max_active = max_active
        self.max_lifetime = max_lifetime
        self.idle_timeout = idle_timeout
        self.wait = wait
        self.wait_timeout = wait_timeout

        self._connect = connect
        self._test_on_borrow = test_on_borrow
        self._clock = clock

        # Idle connections, most recently returned on the right
        self._idle: deque[PooledConnection] = deque()
        self._active = 0
        self._waiting = 0
        self._closed = False
        self._cond = threading.Condition()

    @contextmanager
    def connection(self):
        """Lease a connection for the duration of the block"""
        pc = self.get()
        try:
            yield pc
        except CONNECTION_ERRORS:
            pc.broken = True
            raise
        finally:
            self.put(pc)

    def execute(self, *args):
        """Run a single command on a leased connection"""
        with self.connection() as conn:
            return conn.execute(*args)

    def get(self) -> PooledConnection:
        """
        Borrow a connection. Prefer put()-ing it back through connection().
        Raises PoolExhaustedError when saturated and not waiting, PoolClosedError after close().
        """
        with Timer() as timer:
            pc = self._borrow()
        borrow_duration.labels(pool=self.name).observe(timer.duration)
        return pc

    def put(self, pc: PooledConnection):
        """Return a borrowed connection to the idle set or discard it"""
        now = self._clock()
        victim = None

        with self._cond:
            if pc.broken or self._closed or self._expired(pc, now):
                victim = pc
                self._active -= 1
            else:
                pc.returned_at = now
                self._idle.append(pc)
                if len(self._idle) > self.max_idle:
                    victim = self._idle.popleft()
                    self._active -= 1
            self._update_gauges()
            self._cond.notify()

        if victim is not None:
            self._close_conn(victim)

    def stats(self) -> dict:
        """Get pool statistics"""
        with self._cond:
            return {
                "active": self._active,
                "idle": len(self._idle),
                "in_use": self._active - len(self._idle),
                "max_active": self.max_active,
                "max_idle": self.max_idle,
                "waiting": self._waiting,
                "closed": self._closed,
            }

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """Close idle connections and refuse further borrows"""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            self._active -= len(idle)
            self._update_gauges()
            self._cond.notify_all()

        for pc in idle:
            self._close_conn(pc)
        logger.info(f"redis pool {self.name} closed")

    def _borrow(self) -> PooledConnection:
        deadline = None
        if self.wait and self.wait_timeout:
            deadline = self._clock() + self.wait_timeout

        while True:
            candidate = None
            evicted = []

            with self._cond:
                if self._closed:
                    raise PoolClosedError(f"redis pool {self.name} is closed")

                evicted = self._evict_idle(self._clock())

                if self._idle:
                    candidate = self._idle.pop()
                elif not self.max_active or self._active < self.max_active:
                    # Reserve the slot before dialing outside the lock
                    self._active += 1
                elif not self.wait:
                    borrow_errors_total.labels(pool=self.name, reason="exhausted").inc()
                    raise PoolExhaustedError(f"redis pool {self.name} exhausted")
                else:
                    self._wait_for_slot(deadline)
                    continue
                self._update_gauges()

            for pc in evicted:
                self._close_conn(pc)

            if candidate is None:
                return self._open()

            if self._check(candidate):
                return candidate

            # Failed the staleness check; drop it and try again
            self._discard(candidate)

    def _wait_for_slot(self, deadline: Optional[float]):
        remaining = None
        if deadline is not None:
            remaining = deadline - self._clock()
            if remaining <= 0:
                borrow_errors_total.labels(pool=self.name, reason="timeout").inc()
                raise PoolExhaustedError(f"redis pool {self.name} exhausted, timed out waiting for a connection")

        self._waiting += 1
        try:
            self._cond.wait(remaining)
        finally:
            self._waiting -= 1

    def _open(self) -> PooledConnection:
        try:
            conn = self._connect()
        except Exception:
            borrow_errors_total.labels(pool=self.name, reason="dial").inc()
            self._release_slot()
            raise
        return PooledConnection(conn, self._clock())

    def _check(self, pc: PooledConnection) -> bool:
        if self._test_on_borrow is None:
            return True
        try:
            self._test_on_borrow(pc.conn, self._clock() - pc.returned_at)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"redis pool {self.name}: stale connection dropped: {e}")
            return False
        return True

    def _discard(self, pc: PooledConnection):
        self._close_conn(pc)
        self._release_slot()

    def _release_slot(self):
        with self._cond:
            self._active -= 1
            self._update_gauges()
            self._cond.notify()

    def _expired(self, pc: PooledConnection, now: float) -> bool:
        return bool(self.max_lifetime) and now - pc.created_at >= self.max_lifetime

    def _evict_idle(self, now: float) -> list:
        """Pop idle connections past their idle timeout or lifetime. Caller holds the lock."""
        evicted = []
        kept = deque()
        for pc in self._idle:
            if self._expired(pc, now) or (self.idle_timeout and now - pc.returned_at >= self.idle_timeout):
                evicted.append(pc)
            else:
                kept.append(pc)
        if evicted:
            self._idle = kept
            self._active -= len(evicted)
        return evicted

    def _close_conn(self, pc: PooledConnection):
        try:
            pc.conn.disconnect()
        except Exception as e:
            logger.warning(f"redis pool {self.name}: error closing connection: {e}")

    def _update_gauges(self):
        pool_connections.labels(pool=self.name, state="idle").set(len(self._idle))
        pool_connections.labels(pool=self.name, state="in_use").set(self._active - len(self._idle))
