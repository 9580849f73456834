"""Networking helpers for talking to the registry."""
from __future__ import annotations

import logging
import socket
from contextlib import closing
from typing import List

from registry.protocol import (
    MAX_DATAGRAM_BYTES,
    decode_peer_list,
    encode_query,
    encode_register,
    encode_update,
)

from .config import PeerSettings


logger = logging.getLogger(__name__)


class RegistryError(RuntimeError):
    """Erro genérico envolvendo interação com o registry."""


class RegistryClient:
    """Encapsula REGISTER/UPDATE/QUERY."""

    def __init__(self, settings: PeerSettings) -> None:
        self.settings = settings

    @property
    def registry_address(self) -> tuple[str, int]:
        return (self.settings.registry_host, self.settings.registry_port)

    def _send(self, datagram: bytes) -> None:
        try:
            with closing(socket.socket(socket.AF_INET, socket.SOCK_DGRAM)) as sock:
                sock.sendto(datagram, self.registry_address)
        except OSError as exc:
            raise RegistryError(f"Erro de rede com registry: {exc}") from exc

    def register(self, item: str, address: str, port: int) -> None:
        self._send(encode_register(item, address, port))
        logger.info("REGISTER enviado: item=%r como %s:%d", item, address, port)

    def heartbeat(self, item: str, address: str, port: int) -> None:
        self._send(encode_update(item, address, port))
        logger.debug("UPDATE enviado: item=%r %s:%d", item, address, port)

    def query(self, item: str) -> List[str]:
        """Lista ``address:port`` das fontes do item.

        Raises:
            RegistryError: sem resposta dentro de ``registry_timeout`` ou
                resposta ilegível.
        """
        try:
            with closing(socket.socket(socket.AF_INET, socket.SOCK_DGRAM)) as sock:
                sock.settimeout(self.settings.registry_timeout)
                sock.sendto(encode_query(item), self.registry_address)
                data, _ = sock.recvfrom(MAX_DATAGRAM_BYTES)
        except socket.timeout as exc:
            raise RegistryError(f"Registry não respondeu ao QUERY de {item!r}") from exc
        except OSError as exc:
            raise RegistryError(f"Erro de rede com registry: {exc}") from exc

        try:
            peers = decode_peer_list(data)
        except UnicodeDecodeError as exc:
            raise RegistryError(f"Resposta inválida do registry: {data[:64]!r}") from exc

        logger.info("QUERY item=%r -> %d fonte(s)", item, len(peers))
        return peers
