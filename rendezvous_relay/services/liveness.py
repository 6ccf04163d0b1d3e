# services/liveness.py
"""
Periodic liveness sweep over every open connection.

A peer whose pong did not arrive since the previous sweep is terminated; every
other peer has its flag cleared and gets a fresh PING. Terminating a peer only
aborts its transport: registry cleanup and roommate notification happen on the
connection handler's ordinary close path.

The sweep itself never waits on a socket. Each PING is sent from its own task,
so a client that stopped reading (and whose PING is stuck behind a full write
buffer) cannot hold up the sweep. It simply misses the probe and is terminated
by the next one, which also unblocks its stuck task.
"""
import asyncio
import logging
from typing import Optional, Set

from rendezvous_relay.constants import HEARTBEAT_INTERVAL
from rendezvous_relay.services.registry import RoomRegistry

logger = logging.getLogger(__name__)


class LivenessSupervisor:
    """
    Runs `sweep()` every `interval` seconds in a background task.
    """

    def __init__(self, registry: RoomRegistry, interval: float = HEARTBEAT_INTERVAL):
        self.registry = registry
        self.interval = interval
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._probes: Set[asyncio.Task] = set()

    async def sweep(self) -> int:
        """
        Probe live peers and terminate the ones that missed the previous probe.

        Returns as soon as every PING has been scheduled.

        Returns:
            int: Number of peers terminated in this pass.
        """
        async with self._lock:
            terminated = probed = 0
            for peer in self.registry.peers():
                if not peer.alive:
                    peer.terminate()
                    terminated += 1
                    continue
                peer.alive = False
                self._spawn_probe(peer)
                probed += 1
            logger.debug(
                f"Liveness sweep: {probed} probed, {terminated} terminated, "
                f"{len(self._probes)} probe(s) in flight")
            return terminated

    def _spawn_probe(self, peer) -> None:
        task = asyncio.create_task(peer.probe())
        self._probes.add(task)
        task.add_done_callback(self._probes.discard)

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error("Liveness sweep failed", exc_info=e)

    def start(self) -> None:
        if self._task is None or self._task.done():
            logger.info(f"Starting liveness supervisor (interval {self.interval}s)")
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        pending = list(self._probes)
        if self._task is not None:
            pending.append(self._task)
            self._task = None
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Liveness supervisor stopped")
