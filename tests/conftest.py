"""Pytest configuration: in-memory stand-ins for redis servers and connections"""
import pytest
import redis

from cachepool.dialer import dial
from cachepool.registry import PoolRegistry


def _to_bytes(value):
    if isinstance(value, bytes):
        return value
    return str(value).encode()


class FakeConnection:
    """Speaks the send_command/read_response/disconnect subset the pool uses"""

    def __init__(self, server):
        self.server = server
        self.commands = []
        self.pending = []
        self.connected = True
        self.fail = False

    def send_command(self, *args):
        if self.fail or self.server.down or not self.connected:
            raise redis.ConnectionError("Connection reset by peer")
        self.commands.append(args)
        self.pending.append(args)

    def read_response(self):
        return self.server.handle(self.pending.pop(0))

    def disconnect(self):
        self.connected = False


class FakeServer:
    """A tiny key-value server handing out FakeConnections"""

    def __init__(self):
        self.data = {}
        self.down = False
        self.ping_error = None
        self.connections = []

    def connect(self):
        if self.down:
            raise redis.ConnectionError("Error 111 connecting. Connection refused.")
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn

    def handle(self, args):
        command = args[0].upper()
        if command == "PING":
            if self.ping_error:
                raise self.ping_error
            return b"PONG"
        if command == "SET":
            self.data[args[1]] = _to_bytes(args[2])
            return b"OK"
        if command == "GET":
            return self.data.get(args[1])
        if command == "MGET":
            return [self.data.get(key) for key in args[1:]]
        raise redis.ResponseError(f"unknown command '{args[0]}'")


class FakeServers(dict):
    """Fake servers keyed by host:port, created on first use"""

    def at(self, address: str) -> FakeServer:
        return self.setdefault(address, FakeServer())

    def take_down(self, address: str):
        self.at(address).down = True


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def servers():
    return FakeServers()


@pytest.fixture
def fake_dial(servers):
    """Dial against the fake servers instead of the network"""
    dialed = []

    def _dial(config):
        dialed.append(config.name)
        return dial(config, connect=servers.at(config.address).connect)

    _dial.dialed = dialed
    return _dial


@pytest.fixture
def pool_registry(fake_dial):
    registry = PoolRegistry(dialer=fake_dial)
    yield registry
    registry.close()
