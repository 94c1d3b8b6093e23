import pytest

from cachepool.config import (
    Absent,
    Multiple,
    PoolConfig,
    Settings,
    Single,
    load_config_source,
    resolve_config_source,
    seconds,
)
from cachepool.errors import ConfigError


def test_defaults():
    """Test PoolConfig defaults"""
    config = PoolConfig()
    assert config.name == "default"
    assert config.address == "127.0.0.1:6379"
    assert config.password == ""
    assert config.database == 0
    assert config.max_active_conn == 0
    assert config.test_on_borrow == 0
    assert config.pool_wait is False


def test_camel_case_keys():
    """Test that config file keys map onto the model fields"""
    config = PoolConfig.model_validate({
        "name": "sessions",
        "host": "10.0.0.5",
        "port": 6380,
        "password": "secret",
        "database": 2,
        "connTimeout": 500,
        "readTimeout": 1000,
        "writeTimeout": 1500,
        "maxIdleConn": 5,
        "maxActiveConn": 20,
        "maxConnLifetime": 60000,
        "idleTimeout": 30000,
        "testOnBorrow": 10000,
        "poolWait": True,
    })

    assert config.address == "10.0.0.5:6380"
    assert config.conn_timeout == 500
    assert config.write_timeout == 1500
    assert config.max_idle_conn == 5
    assert config.max_active_conn == 20
    assert config.max_conn_lifetime == 60000
    assert config.idle_timeout == 30000
    assert config.test_on_borrow == 10000
    assert config.pool_wait is True


def test_seconds():
    """Test millisecond to second conversion"""
    assert seconds(1500) == 1.5
    assert seconds(0) is None


def test_resolve_absent():
    assert resolve_config_source(None) == Absent()


def test_resolve_single():
    """Test that a table is a single instance"""
    source = resolve_config_source({"host": "cache.local", "maxActiveConn": 20})
    assert isinstance(source, Single)
    assert source.config.host == "cache.local"
    assert source.config.max_active_conn == 20


def test_resolve_multiple_keeps_order():
    """Test that an array of tables keeps its order"""
    source = resolve_config_source([{"name": "b"}, {"name": "a"}, {"name": "default"}])
    assert isinstance(source, Multiple)
    assert [c.name for c in source.configs] == ["b", "a", "default"]


@pytest.mark.parametrize("node", ["redis://localhost", 6379, [{"name": "a"}, "b"]])
def test_resolve_unrecognized(node):
    """Test that other shapes are rejected"""
    with pytest.raises(ConfigError):
        resolve_config_source(node)


@pytest.mark.parametrize("field", ["port", "connTimeout", "maxIdleConn", "testOnBorrow"])
def test_negative_values_rejected(field):
    with pytest.raises(ConfigError):
        resolve_config_source({field: -1})


def test_load_single_from_toml(tmp_path):
    """Test loading a [redis] table"""
    path = tmp_path / "app.toml"
    path.write_text('[redis]\nhost = "127.0.0.1"\nport = 6379\nmaxIdleConn = 5\nmaxActiveConn = 20\n')

    source = load_config_source(path)
    assert isinstance(source, Single)
    assert source.config.max_idle_conn == 5


def test_load_multiple_from_toml(tmp_path):
    """Test loading a [[redis]] array"""
    path = tmp_path / "app.toml"
    path.write_text('[[redis]]\nname = "default"\n\n[[redis]]\nname = "sessions"\nport = 6380\n')

    source = load_config_source(path)
    assert isinstance(source, Multiple)
    assert [c.address for c in source.configs] == ["127.0.0.1:6379", "127.0.0.1:6380"]


def test_resolve_multiple_requires_names():
    """Test that every listed instance must carry a name"""
    with pytest.raises(ConfigError):
        resolve_config_source([{"port": 6379}, {"name": "sessions", "port": 6380}])
    with pytest.raises(ConfigError):
        resolve_config_source([{"name": "", "port": 6379}])


def test_load_multiple_without_name(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text('[[redis]]\nname = "sessions"\nport = 6380\n\n[[redis]]\nport = 6381\n')

    with pytest.raises(ConfigError):
        load_config_source(path)


def test_load_without_redis_section(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text('[mysql]\nhost = "127.0.0.1"\n')

    assert load_config_source(path) == Absent()


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config_source(tmp_path / "missing.toml")


def test_load_invalid_toml(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text("[redis\nhost = ")

    with pytest.raises(ConfigError):
        load_config_source(path)


def test_settings_from_env(monkeypatch):
    """Test that settings read CACHEPOOL_ environment variables"""
    monkeypatch.setenv("CACHEPOOL_CONFIG_FILE", "/etc/app.toml")
    monkeypatch.setenv("CACHEPOOL_LOG_LEVEL", "DEBUG")

    settings = Settings()
    assert settings.config_file == "/etc/app.toml"
    assert settings.log_level == "DEBUG"
