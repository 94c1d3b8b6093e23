"""Named redis connection pools with JSON reply decoding"""
from cachepool.config import Absent, ConfigSource, Multiple, PoolConfig, Single, load_config_source, resolve_config_source
from cachepool.decoder import ListTarget, Record, decode, decode_list, decode_record
from cachepool.dialer import dial
from cachepool.errors import (
    CachePoolError,
    ConfigError,
    DecodeError,
    DialError,
    NotConnectedError,
    PoolClosedError,
    PoolExhaustedError,
    UnsupportedDestinationError,
)
from cachepool.log import setup_logging
from cachepool.pool import Pool
from cachepool.registry import PoolRegistry, close_pools, default_registry, get_pool, init_pools

__all__ = [
    "Absent",
    "CachePoolError",
    "ConfigError",
    "ConfigSource",
    "DecodeError",
    "DialError",
    "ListTarget",
    "Multiple",
    "NotConnectedError",
    "Pool",
    "PoolClosedError",
    "PoolConfig",
    "PoolExhaustedError",
    "PoolRegistry",
    "Record",
    "Single",
    "UnsupportedDestinationError",
    "close_pools",
    "decode",
    "decode_list",
    "decode_record",
    "default_registry",
    "dial",
    "get_pool",
    "init_pools",
    "load_config_source",
    "resolve_config_source",
    "setup_logging",
]
