import logging
from typing import Optional

from .peer_db import PeerDatabase
from .protocol import QUERY, REGISTER, UPDATE, DiscoveryCommand, encode_peer_list

log = logging.getLogger("Handler")


class RequestHandler:
    def __init__(self, peer_db: PeerDatabase):
        self.peer_db = peer_db

    def handle(self, request: DiscoveryCommand, client_addr=None) -> Optional[bytes]:
        """Apply one discovery command; returns the reply datagram, if any."""
        cmd = request.command

        if cmd == REGISTER:
            log.info(
                "REGISTER from %s item=%r peer=%s:%d",
                client_addr, request.item, request.address, request.port
            )
            self.peer_db.register(request.item, request.address, request.port)
            return None

        elif cmd == UPDATE:
            refreshed = self.peer_db.heartbeat(request.item, request.address, request.port)
            if not refreshed:
                log.info("UPDATE from unregistered %s:%d ignored", request.address, request.port)
            return None

        elif cmd == QUERY:
            peers = self.peer_db.query(request.item)
            log.info("QUERY item=%r from %s -> %d peer(s)", request.item, client_addr, len(peers))
            return encode_peer_list(peers)

        log.warning("Unknown command: %s", cmd)
        return None
