"""Named redis pool registry"""
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from cachepool.config import (
    DEFAULT_POOL_NAME,
    Absent,
    ConfigSource,
    Multiple,
    PoolConfig,
    Single,
    load_config_source,
    settings,
)
from cachepool.dialer import dial
from cachepool.errors import ConfigError, NotConnectedError
from cachepool.pool import Pool

logger = logging.getLogger(__name__)


class PoolRegistry:
    """
    Pools keyed by name. The lock only guards the mapping, dialing happens outside it.
    lookup() with no name resolves "default"; .default is set once initialization
    has registered a pool under that name.
    """

    def __init__(self, dialer: Callable[[PoolConfig], Pool] = dial):
        self._dial = dialer
        self._pools: dict[str, Pool] = {}
        self._default: Optional[Pool] = None
        self._lock = threading.Lock()

    def initialize(self, source: ConfigSource):
        """Dial the pools described by source"""
        if isinstance(source, Absent):
            logger.debug("no redis configuration, skipping")
        elif isinstance(source, Single):
            self._init_single(source.config)
        elif isinstance(source, Multiple):
            self._init_multiple(source.configs)
        else:
            raise ConfigError("redis error config")

    def _init_single(self, config: PoolConfig):
        pool = self._dial(config)
        with self._lock:
            self._pools[DEFAULT_POOL_NAME] = pool
            self._default = pool

    def _init_multiple(self, configs: list[PoolConfig]):
        for i, config in enumerate(configs):
            if not config.name:
                raise ConfigError(f"redis error config: instance #{i} has no name")

        # In order, stopping at the first unreachable instance
        for config in configs:
            pool = self._dial(config)
            replaced = self.register(config.name, pool)
            if replaced is not None and replaced is not pool:
                logger.warning(f"redis {config.name} configured more than once, closing the earlier pool")
                replaced.close()

        with self._lock:
            if DEFAULT_POOL_NAME in self._pools:
                self._default = self._pools[DEFAULT_POOL_NAME]

        logger.info(f"initialized {len(configs)} redis pools")

    def register(self, name: str, pool: Pool) -> Optional[Pool]:
        """Store a pool under name, returning the pool it replaced (left open)"""
        with self._lock:
            replaced = self._pools.get(name)
            self._pools[name] = pool
        return replaced

    def lookup(self, name: Optional[str] = None) -> Pool:
        """Get the pool registered under name (default pool when omitted)"""
        if name is None:
            name = DEFAULT_POOL_NAME

        with self._lock:
            pool = self._pools.get(name)

        if pool is None:
            raise NotConnectedError(name)
        return pool

    @property
    def default(self) -> Pool:
        pool = self._default
        if pool is None:
            raise NotConnectedError(DEFAULT_POOL_NAME)
        return pool

    def names(self) -> list[str]:
        with self._lock:
            return list(self._pools)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._pools

    def __len__(self) -> int:
        with self._lock:
            return len(self._pools)

    def close(self):
        """Close every pool and empty the registry"""
        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
            self._default = None

        closed = set()
        for pool in pools:
            if id(pool) not in closed:
                closed.add(id(pool))
                pool.close()


# Process-wide registry
default_registry = PoolRegistry()


def init_pools(source: Union[ConfigSource, str, Path, None] = None):
    """Initialize redis pools from a ConfigSource, a TOML file, or settings.config_file"""
    if source is None:
        source = load_config_source(settings.config_file) if settings.config_file else Absent()
    elif isinstance(source, (str, Path)):
        source = load_config_source(source)

    default_registry.initialize(source)


def get_pool(name: Optional[str] = None) -> Pool:
    """Get a redis pool instance"""
    return default_registry.lookup(name)


def close_pools():
    """Close all redis pools"""
    default_registry.close()
