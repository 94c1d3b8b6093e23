"""Dial and verify a redis connection pool"""
import logging
from typing import Any, Callable, Optional

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from cachepool.config import PoolConfig, seconds
from cachepool.errors import CachePoolError, DialError
from cachepool.metrics import dials_total
from cachepool.pool import Pool

logger = logging.getLogger(__name__)

# Upper bound in seconds on waiting for a slot when no timeout is configured
DEFAULT_WAIT_TIMEOUT = 10.0


class TimedConnection(redis.Connection):
    """redis.Connection with its own timeout for socket writes"""

    def __init__(self, *args, socket_write_timeout: Optional[float] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.socket_write_timeout = socket_write_timeout

    def send_packed_command(self, command, check_health=True):
        if self._sock is None or self.socket_write_timeout is None:
            return super().send_packed_command(command, check_health)

        self._sock.settimeout(self.socket_write_timeout)
        try:
            super().send_packed_command(command, check_health)
        finally:
            # send errors disconnect and drop the socket
            if self._sock is not None:
                self._sock.settimeout(self.socket_timeout)


def connection_factory(config: PoolConfig) -> Callable[[], TimedConnection]:
    """Build the function the pool uses to open new connections"""

    def connect() -> TimedConnection:
        conn = TimedConnection(
            host=config.host,
            port=config.port,
            password=config.password or None,
            db=config.database,
            socket_connect_timeout=seconds(config.conn_timeout),
            socket_timeout=seconds(config.read_timeout),
            socket_write_timeout=seconds(config.write_timeout),
            retry=Retry(NoBackoff(), 0),
            health_check_interval=0,
        )
        # Connect now so AUTH and SELECT failures surface at borrow time
        conn.connect()
        return conn

    return connect


def staleness_check(config: PoolConfig) -> Callable[[Any, float], None]:
    """PING connections that sat idle for at least testOnBorrow"""
    threshold = seconds(config.test_on_borrow)

    def test_on_borrow(conn, idle_for: float):
        if threshold is None or idle_for < threshold:
            return
        conn.send_command("PING")
        conn.read_response()

    return test_on_borrow


def wait_bound(config: PoolConfig) -> float:
    """How long a borrower may wait for a free slot when poolWait is on"""
    return (
        seconds(config.conn_timeout)
        or seconds(config.read_timeout)
        or seconds(config.write_timeout)
        or DEFAULT_WAIT_TIMEOUT
    )


def dial(config: PoolConfig, connect: Optional[Callable[[], Any]] = None) -> Pool:
    """
    Create the pool for one redis instance and make sure it answers PING.
    The pool is closed and DialError raised if it does not.
    """
    logger.debug(f"dialing redis {config.name} at {config.address} (db {config.database})")

    pool = Pool(
        config.name,
        connect or connection_factory(config),
        test_on_borrow=staleness_check(config),
        max_idle=config.max_idle_conn,
        max_active=config.max_active_conn,
        max_lifetime=seconds(config.max_conn_lifetime),
        idle_timeout=seconds(config.idle_timeout),
        wait=config.pool_wait,
        wait_timeout=wait_bound(config),
    )

    try:
        with pool.connection() as conn:
            conn.execute("PING")
    except (redis.RedisError, OSError, CachePoolError) as e:
        pool.close()
        dials_total.labels(pool=config.name, outcome="failure").inc()
        logger.error(f"redis {config.name} at {config.address} is unreachable: {e}")
        raise DialError(config.name, config.address, str(e)) from e

    dials_total.labels(pool=config.name, outcome="success").inc()
    logger.info(f"redis {config.name} connected at {config.address}")
    return pool
