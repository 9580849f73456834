"""Registration and periodic heartbeats towards the registry."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from .registry_connection import RegistryClient, RegistryError

logger = logging.getLogger(__name__)


class HeartbeatManager:
    """Registra o item uma vez e envia UPDATE a cada ``interval`` segundos.

    Falhas de rede são apenas logadas: o servidor de fragmentos continua
    atendendo e o próximo UPDATE é tentado normalmente.
    """

    def __init__(self, client: RegistryClient, item: str, address: str, port: int, interval: float) -> None:
        self.client = client
        self.item = item
        self.address = address
        self.port = port
        self.interval = interval
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return

        self.register_once()

        def _loop() -> None:
            while not self._stop_event.wait(self.interval):
                self.beat_once()

        self._stop_event.clear()
        self._thread = threading.Thread(target=_loop, name="heartbeat", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)
        self._thread = None

    def register_once(self) -> bool:
        try:
            self.client.register(self.item, self.address, self.port)
        except RegistryError as exc:
            logger.error("Falha ao registrar no registry: %s", exc)
            return False
        return True

    def beat_once(self) -> bool:
        try:
            self.client.heartbeat(self.item, self.address, self.port)
        except RegistryError as exc:
            logger.warning("Falha ao enviar heartbeat: %s", exc)
            return False
        return True
