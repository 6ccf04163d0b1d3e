# handlers/signaling_handler.py
import json
import logging

from rendezvous_relay.constants import RELAY_TYPES
from rendezvous_relay.services.peer import Peer
from rendezvous_relay.services.registry import AlreadyJoinedError, RoomRegistry


logger = logging.getLogger(__name__)


def parse_envelope(raw):
    """
    Decode one inbound frame into an envelope dict.

    Args:
        raw (str | bytes): Text or binary frame as received from the socket.

    Returns:
        dict or None: The envelope, or None if the frame is not a UTF-8 JSON object.
    """
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        # undecodable bytes, invalid JSON, or nesting deeper than the parser allows
        return None
    if not isinstance(data, dict):
        return None
    return data


class SignalingHandler:
    """
    Routes signaling envelopes between members of a room.

    The handler never inspects negotiation payloads. It only understands
    `join`, stamps relayed envelopes with the sender id and decides who
    receives them. Every failure mode ends in a discarded frame; no error
    is ever reported back to the client.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        # Mapping of envelope types to handler methods
        self.handlers = {"join": self.handle_join}
        self.handlers.update({msg_type: self.handle_relay for msg_type in RELAY_TYPES})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def greet(self, peer: Peer) -> None:
        """Tell a newly accepted client the id it can be addressed by."""
        peer.send({"type": "hello", "id": peer.id})

    def handle_disconnect(self, peer: Peer) -> None:
        """
        Clean up after a closed connection and let the remaining members know.

        Args:
            peer (Peer): The connection whose transport has closed.
        """
        membership = self.registry.remove(peer)
        if membership is None:
            logger.info(f"Peer {peer.id} disconnected before joining a room")
            return

        remaining = self.registry.members(membership.room)
        logger.info(
            f"Peer {peer.id} left room {membership.room} ({len(remaining)} remaining)")
        if not remaining:
            return
        self._broadcast(remaining, {"type": "peer-left", "id": peer.id})
        self._send_roster(membership.room)

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------
    def handle_message(self, peer: Peer, raw) -> None:
        """
        Classify an inbound frame and dispatch it.

        Args:
            peer (Peer): The sending connection.
            raw (str | bytes): Frame as received.
        """
        data = parse_envelope(raw)
        if data is None:
            logger.debug(f"Discarding malformed frame from {peer.id}")
            return

        msg_type = data.get("type")
        handler = self.handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.debug(f"Discarding unknown type {msg_type!r} from {peer.id}")
            return
        handler(peer, data)

    def handle_join(self, peer: Peer, data: dict) -> None:
        """
        Register the peer in a room, announce it, and refresh everyone's roster.

        Args:
            peer (Peer): The joining connection.
            data (dict): Envelope with a string `room` and optional `role`.
        """
        room = data.get("room")
        if not isinstance(room, str) or not room.strip():
            logger.debug(f"Discarding join without a usable room from {peer.id}")
            return
        room = room.strip()

        try:
            membership = self.registry.join(peer, room, data.get("role"))
        except AlreadyJoinedError as e:
            logger.warning(str(e))
            return

        members = self.registry.members(room)
        logger.info(
            f"Peer {peer.id} joined room {room} as {membership.role} ({len(members)} member(s))")
        self._broadcast(members - {peer},
                        {"type": "peer-joined", "id": peer.id, "role": membership.role})
        self._send_roster(room)

    def handle_relay(self, peer: Peer, data: dict) -> None:
        """
        Forward a negotiation envelope, stamped with the sender's id.

        With a `to` field the envelope goes only to that room member; without
        one it goes to every other member of the sender's room.

        Args:
            peer (Peer): The sending connection.
            data (dict): Envelope of a relay-eligible type; fields pass through untouched.
        """
        room = peer.room
        if room is None:
            logger.info(f"Discarding {data.get('type')} from {peer.id}: not in a room")
            return

        envelope = dict(data)
        envelope["from"] = peer.id

        if "to" in data:
            target = self.registry.find(room, data["to"])
            if target is None or target is peer:
                logger.debug(f"No peer {data['to']!r} in room {room} for {peer.id}")
                return
            logger.debug(f"Relaying {data['type']} {peer.id} -> {target.id}")
            target.send(envelope)
            return

        recipients = self.registry.members(room) - {peer}
        logger.debug(
            f"Relaying {data['type']} from {peer.id} to {len(recipients)} peer(s) in {room}")
        self._broadcast(recipients, envelope)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _send_roster(self, room: str) -> None:
        self._broadcast(self.registry.members(room),
                        {"type": "roster", "peers": self.registry.roster(room)})

    @staticmethod
    def _broadcast(recipients, message: dict) -> int:
        """Send to each recipient in turn; returns how many sends were handed off."""
        return sum(1 for peer in list(recipients) if peer.send(message))
