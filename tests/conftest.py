import aiohttp
import pytest
from aiohttp.test_utils import TestServer

from ensemble.lib import config
from ensemble.lib.auth import NoAuthStrategy
from ensemble.lib.settings import SettingsStore
from ensemble.lib.transport import TransportSession

from fakes import FakeMusicServer, FakeTransport


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the loader at an empty config and hide ambient secrets."""
    path = tmp_path / "config.json"
    path.write_text("{}")
    monkeypatch.setenv("ENSEMBLE_CONFIG", str(path))
    monkeypatch.delenv("ENSEMBLE_USERNAME", raising=False)
    monkeypatch.delenv("ENSEMBLE_PASSWORD", raising=False)
    config.reload_config()
    yield path
    config._config = None


@pytest.fixture
async def fake_server():
    server = FakeMusicServer()
    test_server = TestServer(server.app())
    await test_server.start_server()
    server.url = f"http://{test_server.host}:{test_server.port}"
    yield server
    await test_server.close()


@pytest.fixture
async def http():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
async def live_transport(fake_server, http):
    transport = TransportSession(NoAuthStrategy(http), http,
                                 request_timeout=2, reconnect_attempts=0)
    yield transport
    await transport.close()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(str(tmp_path / "settings.json"))
