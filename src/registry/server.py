"""UDP front end of the registry: receive loop plus periodic sweeper."""
from __future__ import annotations

import logging
import socket
import threading
from typing import Optional, Tuple

from .config import RegistrySettings
from .peer_db import PeerDatabase
from .protocol import MalformedMessageError, parse_command
from .request_handler import RequestHandler

log = logging.getLogger("registry")


class RegistryServer:
    """Receives discovery datagrams and evicts peers that stop heartbeating.

    Datagrams are handled one at a time on the receive thread; the sweeper runs
    on its own thread against the same ``PeerDatabase``.
    """

    def __init__(self, settings: Optional[RegistrySettings] = None, peer_db: Optional[PeerDatabase] = None) -> None:
        self.settings = settings or RegistrySettings()
        self.peer_db = peer_db or PeerDatabase(liveness_timeout=self.settings.liveness_timeout)
        self.handler = RequestHandler(self.peer_db)
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._sweeper_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        if self._socket is None:
            raise RuntimeError("registry is not running")
        return self._socket.getsockname()[:2]

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.settings.listen_host, self.settings.listen_port))
        sock.settimeout(1.0)
        self._socket = sock

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._receive_loop, name="registry-recv", daemon=True)
        self._thread.start()
        self._sweeper_thread = threading.Thread(target=self._sweep_loop, name="registry-sweep", daemon=True)
        self._sweeper_thread.start()
        log.info("Registry listening on %s:%d", *self.address)

    def stop(self) -> None:
        self._stop_event.set()
        for thread in (self._thread, self._sweeper_thread):
            if thread and thread.is_alive():
                thread.join(timeout=2)
        self._thread = None
        self._sweeper_thread = None
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
            log.info("Registry stopped")

    def shutdown(self) -> None:
        """Ask ``serve_forever`` to return; safe to call from a signal handler."""
        self._stop_event.set()

    def serve_forever(self) -> None:
        """Start (if needed) and block until ``shutdown`` is called."""
        self.start()
        try:
            while not self._stop_event.wait(0.5):
                pass
        finally:
            self.stop()

    def _receive_loop(self) -> None:
        sock = self._socket
        while not self._stop_event.is_set():
            try:
                data, addr = sock.recvfrom(self.settings.max_datagram_bytes)
            except socket.timeout:
                continue
            except OSError:
                if self._stop_event.is_set():
                    break
                log.exception("Receive failed; continuing")
                continue
            self._handle_datagram(sock, data, addr)

    def _handle_datagram(self, sock: socket.socket, data: bytes, addr: Tuple[str, int]) -> None:
        log.debug("Received %d byte(s) from %s:%d", len(data), addr[0], addr[1])
        try:
            command = parse_command(data)
        except MalformedMessageError as exc:
            log.warning("Dropping malformed datagram from %s:%d: %s", addr[0], addr[1], exc)
            return

        try:
            response = self.handler.handle(command, client_addr=f"{addr[0]}:{addr[1]}")
        except Exception:
            log.exception("%s from %s:%d failed", command.command, addr[0], addr[1])
            return

        if response is None:
            return
        try:
            sock.sendto(response, addr)
        except OSError as exc:
            log.warning("Could not answer %s:%d: %s", addr[0], addr[1], exc)

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.settings.sweep_interval):
            try:
                self.peer_db.sweep()
            except Exception:
                log.exception("Sweep failed")
