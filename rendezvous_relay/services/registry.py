# services/registry.py
"""
In-memory room registry shared by every connection handler and the liveness supervisor.

All methods are synchronous and never await, so on the single event loop each
call is atomic with respect to every other connection. Callers that fan out
messages get a snapshot of the member set, never the live set.
"""
import logging
from typing import Dict, List, Optional, Set

from rendezvous_relay.services.peer import Membership, Peer, normalize_role

logger = logging.getLogger(__name__)


class AlreadyJoinedError(Exception):
    """Raised when a peer that already belongs to a room sends another join."""

    def __init__(self, peer: Peer, room: str):
        super().__init__(f"Peer {peer.id} already joined room {peer.room!r}, refusing {room!r}")
        self.peer = peer
        self.room = room


class RoomRegistry:
    """
    Mapping of room id -> member peers, plus the set of every open connection.

    Invariants:
        - a room key exists only while its member set is non-empty;
        - a peer belongs to at most one room.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[Peer]] = {}
        self._peers: Dict[str, Peer] = {}

    # ------------------------------------------------------------------
    # Connection bookkeeping
    # ------------------------------------------------------------------
    def register(self, peer: Peer) -> None:
        """Track a freshly accepted connection (Unjoined)."""
        self._peers[peer.id] = peer

    def remove(self, peer: Peer) -> Optional[Membership]:
        """
        Drop every reference to a closing connection.

        Args:
            peer (Peer): The connection whose transport has closed.

        Returns:
            Optional[Membership]: The membership the peer held, or None if it never joined.
        """
        self._peers.pop(peer.id, None)
        return self.leave(peer)

    def peers(self) -> List[Peer]:
        """Snapshot of all open connections, joined or not."""
        return list(self._peers.values())

    def rooms(self) -> List[str]:
        """Snapshot of the ids of all non-empty rooms."""
        return list(self._rooms)

    # ------------------------------------------------------------------
    # Room membership
    # ------------------------------------------------------------------
    def join(self, peer: Peer, room_id: str, role=None) -> Membership:
        """
        Put an Unjoined peer into a room, creating the room on first use.

        Args:
            peer (Peer): The joining connection.
            room_id (str): Already-trimmed, non-empty room id.
            role: Announced role; unknown values fall back to the default role.

        Returns:
            Membership: The peer's new state.

        Raises:
            AlreadyJoinedError: If the peer is already in a room (first join wins).
        """
        if peer.membership is not None:
            raise AlreadyJoinedError(peer, room_id)
        membership = Membership(room=room_id, role=normalize_role(role))
        peer.membership = membership
        self._rooms.setdefault(room_id, set()).add(peer)
        logger.debug(f"Room {room_id} now has {len(self._rooms[room_id])} member(s)")
        return membership

    def leave(self, peer: Peer) -> Optional[Membership]:
        """
        Remove a peer from its room, deleting the room when it empties.

        No-op for a peer that never joined.
        """
        membership = peer.membership
        if membership is None:
            return None
        peer.membership = None
        members = self._rooms.get(membership.room)
        if members is not None:
            members.discard(peer)
            if not members:
                del self._rooms[membership.room]
                logger.debug(f"Room {membership.room} is empty, removed")
        return membership

    def members(self, room_id: Optional[str]) -> Set[Peer]:
        """Copy of the room's member set; empty if the room does not exist."""
        return set(self._rooms.get(room_id, ()))

    def find(self, room_id: Optional[str], peer_id) -> Optional[Peer]:
        """Return the member of `room_id` whose id is `peer_id`, or None."""
        for peer in self._rooms.get(room_id, ()):
            if peer.id == peer_id:
                return peer
        return None

    def roster(self, room_id: Optional[str]) -> List[dict]:
        """List of `{id, role}` for every current member of the room."""
        return [peer.describe() for peer in self._rooms.get(room_id, ())]
