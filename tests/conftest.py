import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from peer.config import PeerSettings  # noqa: E402
from registry.config import RegistrySettings  # noqa: E402
from registry.server import RegistryServer  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry_server():
    server = RegistryServer(RegistrySettings(listen_host="127.0.0.1", listen_port=0))
    server.start()
    yield server
    server.stop()


@pytest.fixture
def peer_settings(registry_server):
    host, port = registry_server.address
    return PeerSettings(
        registry_host=host,
        registry_port=port,
        registry_timeout=2.0,
        listen_host="127.0.0.1",
        listen_port=0,
        advertise_host="127.0.0.1",
        fragment_size=1024,
        heartbeat_interval=30.0,
        fetch_timeout=30.0,
        transfer_timeout=5.0,
    )
