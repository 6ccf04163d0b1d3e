# services/peer.py
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from websockets.asyncio.server import broadcast
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from rendezvous_relay.constants import DEFAULT_ROLE, ROLES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Membership:
    """
    The Joined state of a peer: the room it belongs to and the role it announced.
    """
    room: str
    role: str


def normalize_role(role) -> str:
    """
    Map a client-supplied role onto one of the known roles.

    Args:
        role: Raw value of the `role` field, possibly missing or of the wrong type.

    Returns:
        str: `role` if it is a known role, otherwise the default role.
    """
    return role if role in ROLES else DEFAULT_ROLE


class Peer:
    """
    One accepted WebSocket session.

    A peer starts Unjoined (`membership is None`) and moves to Joined once the
    registry accepts its `join`. The `alive` flag is owned by the liveness
    sweep: cleared before each probe, set again when the pong arrives.
    """

    def __init__(self, ws):
        self.ws = ws
        self.id: str = uuid.uuid4().hex
        self.membership: Optional[Membership] = None
        self.alive: bool = True

    def __repr__(self):
        return f"<Peer {self.id} membership={self.membership}>"

    @property
    def room(self) -> Optional[str]:
        return self.membership.room if self.membership else None

    @property
    def role(self) -> str:
        return self.membership.role if self.membership else DEFAULT_ROLE

    def describe(self) -> dict:
        """Roster entry for this peer."""
        return {"id": self.id, "role": self.role}

    def send(self, message: dict) -> bool:
        """
        Serialize and queue a message without waiting for the client.

        Delivery is best-effort: a socket that is not open is skipped and
        write errors are logged by websockets rather than raised.

        Args:
            message (dict): Envelope to deliver.

        Returns:
            bool: True if the frame was handed to the transport, False if skipped.
        """
        if self.ws.state is not State.OPEN:
            logger.debug(f"Skipping send to {self.id}: socket is {self.ws.state.name}")
            return False
        broadcast([self.ws], json.dumps(message))
        return True

    async def probe(self) -> None:
        """
        Send a PING; the pong sets the liveness flag again.

        Sending waits for the socket's write buffer to drain, which never
        happens for a client that stopped reading. Run it as its own task and
        let the next sweep decide: a probe still stuck then is a missed probe.
        """
        try:
            pong_waiter = await self.ws.ping()
        except ConnectionClosed:
            logger.debug(f"Probe skipped, {self.id} already closed")
            return
        pong_waiter.add_done_callback(self._on_pong)

    def _on_pong(self, waiter) -> None:
        if not waiter.cancelled() and waiter.exception() is None:
            self.alive = True

    def terminate(self) -> None:
        """
        Abort the transport without a closing handshake.

        The connection handler's receive loop ends as a result and runs the
        ordinary close path.
        """
        logger.warning(f"Terminating unresponsive peer {self.id}")
        self.ws.transport.abort()
