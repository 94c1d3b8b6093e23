"""Error types raised by the pool registry"""


class CachePoolError(Exception):
    """Base class for all cachepool errors"""


class ConfigError(CachePoolError):
    """Malformed or unrecognized redis configuration"""


class DialError(CachePoolError):
    """A pool could not be established or failed its liveness check"""

    def __init__(self, name: str, address: str, reason: str):
        self.name = name
        self.address = address
        super().__init__(f"redis {name} ({address}) dial failed: {reason}")


class NotConnectedError(CachePoolError, LookupError):
    """No pool is registered under the requested name"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"redis {name} is not connected")


class PoolExhaustedError(CachePoolError):
    """All connections are in use and the pool does not wait"""


class PoolClosedError(CachePoolError):
    """Borrow attempted on a closed pool"""


class DecodeError(CachePoolError, ValueError):
    """A reply could not be converted or parsed into the destination"""


class UnsupportedDestinationError(DecodeError):
    """The decode destination is neither a record nor a list target"""
