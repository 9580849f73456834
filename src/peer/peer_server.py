"""TCP server that hands out the fragments of one file."""
from __future__ import annotations

import logging
import socket
import threading
from pathlib import Path
from typing import Optional, Tuple, Union

from .config import PeerSettings
from .fragments import FragmentSet
from .keep_alive import HeartbeatManager
from .peer_connection import COUNT_REQUEST, INT_SIZE, decode_int, encode_int, recv_exact
from .registry_connection import RegistryClient


logger = logging.getLogger(__name__)


class FragmentServer:
    """Serves one item's fragments and advertises itself to the registry.

    The accept loop runs on a single thread; every accepted connection gets its
    own worker thread. Workers only read the ``FragmentSet``.
    """

    def __init__(
        self,
        settings: PeerSettings,
        item: str,
        path: Union[str, Path],
        registry: Optional[RegistryClient] = None,
    ) -> None:
        self.settings = settings
        self.item = item
        self.path = Path(path)
        self.registry = registry or RegistryClient(settings)
        self.fragments: Optional[FragmentSet] = None
        self.heartbeat: Optional[HeartbeatManager] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._server_socket: Optional[socket.socket] = None

    @property
    def address(self) -> Tuple[str, int]:
        if self._server_socket is None:
            raise RuntimeError("fragment server is not running")
        return self._server_socket.getsockname()[:2]

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return

        # OSError aqui é fatal para a inicialização e sobe para quem chamou.
        self.fragments = FragmentSet.from_file(self.path, self.settings.fragment_size)

        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            server.bind((self.settings.listen_host, self.settings.listen_port))
            server.listen(self.settings.extra.get("inbound_backlog", 64))
        except OSError:
            server.close()
            raise
        server.settimeout(1.0)
        self._server_socket = server
        port = self.address[1]

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._accept_loop, name="fragment-server", daemon=True)
        self._thread.start()
        logger.info(
            "FragmentServer servindo %r (%d fragmentos) em %s:%d",
            self.item, self.fragments.count, self.settings.listen_host, port,
        )

        self.heartbeat = HeartbeatManager(
            self.registry,
            self.item,
            self.settings.advertise_host,
            port,
            self.settings.heartbeat_interval,
        )
        self.heartbeat.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self.heartbeat:
            self.heartbeat.stop()
            self.heartbeat = None
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)
        self._thread = None
        if self._server_socket:
            try:
                self._server_socket.close()
            except OSError:
                pass
            self._server_socket = None

    def shutdown(self) -> None:
        """Faz ``serve_forever`` retornar; pode ser chamado de um signal handler."""
        self._stop_event.set()

    def serve_forever(self) -> None:
        """Sobe o servidor (se preciso) e bloqueia até ``shutdown``."""
        self.start()
        try:
            while not self._stop_event.wait(0.5):
                pass
        finally:
            self.stop()

    def _accept_loop(self) -> None:
        server = self._server_socket
        while not self._stop_event.is_set():
            try:
                conn, addr = server.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            threading.Thread(
                target=self._handle_connection,
                args=(conn, addr),
                name=f"fragment-worker-{addr[0]}:{addr[1]}",
                daemon=True,
            ).start()

    def _handle_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        peer = f"{addr[0]}:{addr[1]}"
        try:
            conn.settimeout(self.settings.transfer_timeout)
            request = recv_exact(conn, INT_SIZE)
            if len(request) != INT_SIZE:
                logger.warning("[%s] Pedido incompleto (%d bytes)", peer, len(request))
                return
            conn.sendall(self.build_response(decode_int(request), peer))
        except OSError as exc:
            logger.warning("[%s] Erro atendendo pedido: %s", peer, exc)
        except Exception:
            logger.exception("[%s] Erro inesperado atendendo pedido", peer)
        finally:
            try:
                conn.close()
            except OSError:
                pass

    def build_response(self, code: int, peer: str = "-") -> bytes:
        """Bytes devolvidos para o código ``code``; vazio se o código é inválido."""
        fragments = self.fragments
        if code == COUNT_REQUEST:
            logger.info("[%s] Enviando total de fragmentos: %d", peer, fragments.count)
            return encode_int(fragments.count)
        if 0 <= code < fragments.count:
            logger.debug("[%s] Enviando fragmento %d", peer, code)
            return fragments.get(code)
        logger.warning("[%s] Código de pedido inválido: %d", peer, code)
        return b""
