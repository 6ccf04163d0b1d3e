import asyncio
import json
import os
import sys
import tempfile

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# Make sure the repository root (two levels above tests/) is on sys.path so
# that `import rendezvous_relay` works without installing the package.
# ──────────────────────────────────────────────────────────────────────────────
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Keep log files produced by `app` out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="relay-test-logs-"))

# fmt: off
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from rendezvous_relay.handlers.connection import ConnectionHandler
from rendezvous_relay.handlers.signaling_handler import SignalingHandler
from rendezvous_relay.services import peer as peer_module
from rendezvous_relay.services.peer import Peer
from rendezvous_relay.services.rate_limiter import RateLimiter
from rendezvous_relay.services.registry import RoomRegistry
# fmt: on

_CLOSE = object()
_ABORT = object()


class FakeTransport:
    def __init__(self, ws):
        self.ws = ws
        self.aborted = False

    def abort(self):
        self.aborted = True
        self.ws.drop()


class FakeWebSocket:
    """
    In-memory stand-in for a server-side websockets connection.

    Outbound frames are decoded into `sent`; inbound frames are queued with
    `feed()` and come out of `async for`.
    """

    def __init__(self, remote_address=("127.0.0.1", 50000), backlogged=False):
        self.state = State.OPEN
        self.backlogged = backlogged
        self._drained = None
        self.remote_address = remote_address
        self.transport = FakeTransport(self)
        self.sent = []
        self.pings = []
        self._inbound = asyncio.Queue()

    # -- client side helpers ----------------------------------------------
    def feed(self, frame):
        if not isinstance(frame, (str, bytes)):
            frame = json.dumps(frame)
        self._inbound.put_nowait(frame)

    def close(self):
        """Graceful close initiated by the client."""
        self.state = State.CLOSED
        self._inbound.put_nowait(_CLOSE)

    def drop(self):
        """Connection lost without a close frame."""
        self.state = State.CLOSED
        self._inbound.put_nowait(_ABORT)
        if self._drained is not None and not self._drained.done():
            self._drained.set_exception(ConnectionClosedError(None, None))

    def pong(self):
        for waiter in self.pings:
            if not waiter.done():
                waiter.set_result(0.0)

    def received(self, msg_type=None):
        return [m for m in self.sent if msg_type is None or m.get("type") == msg_type]

    def clear(self):
        self.sent.clear()

    # -- websockets connection API used by the relay -----------------------
    async def ping(self):
        if self.state is not State.OPEN:
            raise ConnectionClosedError(None, None)
        if self.backlogged:
            # the client stopped reading: sending waits for a drain that never comes
            self._drained = asyncio.get_running_loop().create_future()
            await self._drained
        waiter = asyncio.get_running_loop().create_future()
        self.pings.append(waiter)
        return waiter

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbound.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if item is _ABORT:
            raise ConnectionClosedError(None, None)
        return item


@pytest.fixture(autouse=True)
def record_broadcasts(request, monkeypatch):
    """Route `broadcast()` into the fake sockets instead of real transports."""
    if request.node.get_closest_marker("real_transport"):
        return

    def fake_broadcast(connections, message):
        for ws in connections:
            ws.sent.append(json.loads(message))

    monkeypatch.setattr(peer_module, "broadcast", fake_broadcast)


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def signaling(registry):
    return SignalingHandler(registry)


@pytest.fixture
def connections(registry, signaling):
    return ConnectionHandler(registry, signaling, RateLimiter(max_messages=1000))


@pytest.fixture
def make_peer(registry, signaling):
    """Accept a fake connection: register it and send `hello`, like the connection handler does."""
    def _make_peer():
        peer = Peer(FakeWebSocket())
        registry.register(peer)
        signaling.greet(peer)
        return peer
    return _make_peer


@pytest.fixture
def join(signaling):
    def _join(peer, room, role=None):
        envelope = {"type": "join", "room": room}
        if role is not None:
            envelope["role"] = role
        signaling.handle_message(peer, json.dumps(envelope))
    return _join
