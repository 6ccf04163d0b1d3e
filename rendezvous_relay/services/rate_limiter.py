"""
Sliding-window flood limiter for inbound frames.

Each key (a peer id) may send `max_messages` frames per `window` seconds.
A key that goes over the limit is muted for `mute_seconds`; frames arriving
while muted are rejected.

Usage:
    limiter = RateLimiter()
    if limiter.allow(peer.id):
        # route the frame
    else:
        # drop it
    limiter.forget(peer.id)  # on disconnect
"""
import time
from collections import deque, defaultdict
from typing import Callable, Deque, Dict

from rendezvous_relay.constants import (
    RATE_LIMIT_BAN_SECONDS, RATE_LIMIT_MAX_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
)


class RateLimiter:
    """
    Per-key sliding-window limiter with temporary muting.
    """

    def __init__(self,
                 max_messages: int = RATE_LIMIT_MAX_MESSAGES,
                 window: float = RATE_LIMIT_WINDOW_SECONDS,
                 mute_seconds: float = RATE_LIMIT_BAN_SECONDS,
                 clock: Callable[[], float] = time.monotonic) -> None:
        """
        Args:
            max_messages (int): Frames allowed within one window.
            window (float): Window length in seconds.
            mute_seconds (float): How long a key stays muted after going over the limit.
            clock (Callable[[], float]): Time source, monotonic seconds.
        """
        self.max_messages = max_messages
        self.window = window
        self.mute_seconds = mute_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._muted_until: Dict[str, float] = {}

    def allow(self, key: str) -> bool:
        """
        Record a frame for `key` and report whether it may be processed.

        Args:
            key (str): Peer id.

        Returns:
            bool: False while the key is muted or if this frame exceeds the limit.
        """
        now = self._clock()

        deadline = self._muted_until.get(key)
        if deadline is not None:
            if now < deadline:
                return False
            del self._muted_until[key]

        hits = self._hits[key]
        hits.append(now)
        while hits and now - hits[0] > self.window:
            hits.popleft()

        if len(hits) > self.max_messages:
            self._muted_until[key] = now + self.mute_seconds
            hits.clear()
            return False
        return True

    def forget(self, key: str) -> None:
        """Clear all state for `key`, e.g. when its connection closes."""
        self._hits.pop(key, None)
        self._muted_until.pop(key, None)
