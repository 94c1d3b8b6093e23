"""Redis pool configuration"""
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from cachepool.errors import ConfigError

DEFAULT_POOL_NAME = "default"

# Key of the redis node in the config file
CONFIG_SECTION = "redis"


class Settings(BaseSettings):
    # Path of the TOML file holding the [redis] / [[redis]] section
    config_file: Optional[str] = None

    # Application
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="CACHEPOOL_", env_file=".env", extra="ignore")


settings = Settings()


class PoolConfig(BaseModel):
    """
    Settings of one redis instance.
    All durations are in milliseconds; zero disables the related limit.
    With poolWait on, a borrower waits at most the first non-zero timeout
    (connect, read, write), or 10 seconds when all are zero.
    """
    name: str = DEFAULT_POOL_NAME
    host: str = "127.0.0.1"
    port: int = Field(default=6379, gt=0, lt=65536)
    password: str = ""
    database: int = Field(default=0, ge=0)

    # Dial timeouts
    conn_timeout: int = Field(default=10000, ge=0, alias="connTimeout")
    read_timeout: int = Field(default=10000, ge=0, alias="readTimeout")
    write_timeout: int = Field(default=10000, ge=0, alias="writeTimeout")

    # Pool sizing
    max_idle_conn: int = Field(default=10, ge=0, alias="maxIdleConn")
    max_active_conn: int = Field(default=0, ge=0, alias="maxActiveConn")
    max_conn_lifetime: int = Field(default=0, ge=0, alias="maxConnLifetime")
    idle_timeout: int = Field(default=0, ge=0, alias="idleTimeout")

    # Staleness threshold for idle connections handed out by the pool
    test_on_borrow: int = Field(default=0, ge=0, alias="testOnBorrow")
    pool_wait: bool = Field(default=False, alias="poolWait")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


def seconds(ms: int) -> Optional[float]:
    """Convert a millisecond setting to seconds, None when unset"""
    if not ms:
        return None
    return ms / 1000


@dataclass(frozen=True)
class Absent:
    """No redis section configured"""


@dataclass(frozen=True)
class Single:
    config: PoolConfig


@dataclass(frozen=True)
class Multiple:
    configs: list[PoolConfig] = field(default_factory=list)


ConfigSource = Union[Absent, Single, Multiple]


def parse_pool_config(node: dict) -> PoolConfig:
    """Validate one instance's fields"""
    try:
        return PoolConfig.model_validate(node)
    except ValidationError as e:
        raise ConfigError(f"redis error config: {e}") from e


def resolve_config_source(node) -> ConfigSource:
    """
    Turn the raw redis node of a config tree into a ConfigSource.
    A table is a single instance, an array of tables is a list of named instances.
    """
    if node is None:
        return Absent()

    if isinstance(node, dict):
        return Single(parse_pool_config(node))

    if isinstance(node, (list, tuple)):
        configs = []
        for i, item in enumerate(node):
            if not isinstance(item, dict):
                raise ConfigError(f"redis error config: expected a table, got {type(item).__name__}")
            # Listed instances are registered by name, no implicit "default"
            if not item.get("name"):
                raise ConfigError(f"redis error config: instance #{i} has no name")
            configs.append(parse_pool_config(item))
        return Multiple(configs)

    raise ConfigError("redis error config")


def load_config_source(path: Union[str, Path], section: str = CONFIG_SECTION) -> ConfigSource:
    """Read a TOML file and resolve its redis section"""
    try:
        with open(path, "rb") as f:
            tree = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid config file {path}: {e}") from e

    return resolve_config_source(tree.get(section))
