"""Thread-safe in-memory table of live peers per item."""
from __future__ import annotations

import logging
import time
from threading import RLock
from typing import Callable, Dict, List, Tuple

from .models import PeerRecord

log = logging.getLogger("peer_db")

DEFAULT_LIVENESS_TIMEOUT = 60.0


class PeerDatabase:
    """Owns every ``PeerRecord`` the registry knows about.

    Records are keyed by ``(address, port)``; the receive loop and the sweeper
    thread share one instance and all access goes through ``_lock``.
    """

    def __init__(
        self,
        liveness_timeout: float = DEFAULT_LIVENESS_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.liveness_timeout = liveness_timeout
        self._clock = clock
        self._lock = RLock()
        self._peers: Dict[Tuple[str, int], PeerRecord] = {}

    def register(self, item: str, address: str, port: int) -> None:
        record = PeerRecord(address=address, port=port, item=item, last_seen=self._clock())
        with self._lock:
            previous = self._peers.pop(record.key, None)
            self._peers[record.key] = record

        if previous is not None and previous.item != item:
            log.info("Peer %s moved from item=%r to item=%r", record, previous.item, item)
        else:
            log.info("Registered %s for item=%r", record, item)

    def heartbeat(self, item: str, address: str, port: int) -> bool:
        """Refresh the record for ``(address, port)`` if there is one.

        An unknown pair is ignored; the source has to register again.
        """
        with self._lock:
            record = self._peers.get((address, port))
            if record is None:
                log.debug("UPDATE for unknown peer %s:%d ignored", address, port)
                return False
            record.last_seen = self._clock()

        log.debug("Heartbeat from %s (item=%r)", record, item)
        return True

    def query(self, item: str) -> List[str]:
        with self._lock:
            return [str(p) for p in self._peers.values() if p.item == item]

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, p in self._peers.items() if p.is_expired(now, self.liveness_timeout)]
            removed = [self._peers.pop(key) for key in stale]

        for record in removed:
            log.info("Removed stale peer %s (item=%r)", record, record.item)
        return len(removed)

    def snapshot(self) -> List[PeerRecord]:
        with self._lock:
            return [
                PeerRecord(p.address, p.port, p.item, p.last_seen) for p in self._peers.values()
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)
