# handlers/connection.py

import logging

from websockets.exceptions import ConnectionClosedError

from rendezvous_relay.handlers.signaling_handler import SignalingHandler
from rendezvous_relay.services.peer import Peer
from rendezvous_relay.services.rate_limiter import RateLimiter
from rendezvous_relay.services.registry import RoomRegistry

logger = logging.getLogger(__name__)


class ConnectionHandler:
    """
    Owns the lifecycle of every WebSocket session: accept, receive loop, close.

    One instance serves all connections; per-connection state lives on the
    `Peer` created for each session.
    """

    def __init__(self, registry: RoomRegistry, signaling: SignalingHandler,
                 rate_limiter: RateLimiter = None):
        self.registry = registry
        self.signaling = signaling
        self.rate_limiter = rate_limiter or RateLimiter()

    async def handle_connection(self, ws):
        """
        Main entry point for an accepted WebSocket connection.

        Registers the peer, sends it its id, feeds every inbound frame to the
        signaling handler and, however the session ends, removes the peer and
        notifies its roommates.

        Parameters:
            ws (websockets.asyncio.server.ServerConnection): The accepted connection.

        Returns:
            None
        """
        peer = Peer(ws)
        self.registry.register(peer)
        logger.info(f"New connection {peer.id} from {_remote(ws)}")
        self.signaling.greet(peer)

        try:
            async for raw in ws:
                if not self.rate_limiter.allow(peer.id):
                    logger.warning(f"Rate limit exceeded by {peer.id}, dropping frame")
                    continue
                self.signaling.handle_message(peer, raw)
        except ConnectionClosedError as e:
            logger.info(f"Connection {peer.id} closed abnormally: {e}")
        finally:
            self.signaling.handle_disconnect(peer)
            self.rate_limiter.forget(peer.id)


def _remote(ws):
    address = getattr(ws, "remote_address", None)
    return address[0] if address else "unknown"
