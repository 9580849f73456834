"""Transfer protocol: one request per TCP connection.

O cliente envia um inteiro de 4 bytes (big-endian, com sinal):

* ``-1`` pede a quantidade de fragmentos; a resposta é outro inteiro de 4 bytes.
* ``i >= 0`` pede o fragmento ``i``; a resposta são os bytes crus do fragmento
  e o servidor fecha a conexão ao final (não há prefixo de tamanho).
"""
from __future__ import annotations

import logging
import socket
import struct
from contextlib import closing
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

COUNT_REQUEST = -1
_INT = struct.Struct(">i")
INT_SIZE = _INT.size
RECV_CHUNK = 64 * 1024


def encode_int(value: int) -> bytes:
    return _INT.pack(value)


def decode_int(data: bytes) -> int:
    return _INT.unpack(data)[0]


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Lê exatamente ``size`` bytes; retorna menos se a conexão fechar antes."""
    buf = bytearray()
    while len(buf) < size:
        chunk = sock.recv(size - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


def recv_all(sock: socket.socket) -> bytes:
    chunks: List[bytes] = []
    while True:
        chunk = sock.recv(RECV_CHUNK)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Outcome of one request: the payload, or why there is none."""

    payload: Optional[bytes] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, payload: bytes) -> "FetchResult":
        return cls(payload=payload)

    @classmethod
    def failed(cls, reason: str) -> "FetchResult":
        return cls(error=reason)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def count(self) -> int:
        """Inteiro decodificado de uma resposta a ``COUNT_REQUEST``."""
        if not self.ok or self.payload is None or len(self.payload) != INT_SIZE:
            raise ValueError("result does not hold a fragment count")
        return decode_int(self.payload)


def _request(address: str, port: int, code: int, timeout: Optional[float], expected: Optional[int]) -> bytes:
    with closing(socket.create_connection((address, port), timeout=timeout)) as sock:
        sock.sendall(encode_int(code))
        if expected is None:
            return recv_all(sock)
        return recv_exact(sock, expected)


def fetch_fragment(address: str, port: int, index: int, timeout: Optional[float] = None) -> FetchResult:
    """Baixa o fragmento ``index`` de ``address:port``.

    Erros de conexão e respostas vazias viram ``FetchResult.failed``.
    """
    try:
        payload = _request(address, port, index, timeout, expected=None)
    except OSError as exc:
        logger.warning("Fragmento %d de %s:%d falhou: %s", index, address, port, exc)
        return FetchResult.failed(f"{type(exc).__name__}: {exc}")

    if not payload:
        logger.warning("Fragmento %d de %s:%d veio vazio", index, address, port)
        return FetchResult.failed("empty payload")

    logger.debug("Fragmento %d recebido de %s:%d (%d bytes)", index, address, port, len(payload))
    return FetchResult.success(payload)


def fetch_fragment_count(address: str, port: int, timeout: Optional[float] = None) -> FetchResult:
    try:
        payload = _request(address, port, COUNT_REQUEST, timeout, expected=INT_SIZE)
    except OSError as exc:
        logger.warning("Falha ao pedir quantidade de fragmentos a %s:%d: %s", address, port, exc)
        return FetchResult.failed(f"{type(exc).__name__}: {exc}")

    if len(payload) != INT_SIZE:
        logger.warning("Resposta curta de %s:%d (%d bytes)", address, port, len(payload))
        return FetchResult.failed(f"short response ({len(payload)} bytes)")
    return FetchResult.success(payload)
