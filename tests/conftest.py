import pytest
import pytest_asyncio
import websockets

from connection_registry import ConnectionRegistry
from signaling_server import SignalingServer


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest_asyncio.fixture
async def live_server():
    """A relay on an ephemeral port; yields (server, url)."""
    server = SignalingServer()
    async with websockets.serve(server.handle_websocket, '127.0.0.1', 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        yield server, f"ws://127.0.0.1:{port}"
