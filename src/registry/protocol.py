"""Discovery protocol spoken between peers and the registry.

Every message is a single UTF-8 datagram with ``|``-separated fields::

    REGISTER|<item>|<address>|<port>
    UPDATE|<item>|<address>|<port>
    QUERY|<item>

Only QUERY gets an answer: one datagram holding the comma-joined
``address:port`` list of live sources, possibly empty.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

REGISTER = "REGISTER"
UPDATE = "UPDATE"
QUERY = "QUERY"

FIELD_SEPARATOR = "|"
PEER_SEPARATOR = ","
ENCODING = "utf-8"

# Largest payload a single UDP datagram can carry over IPv4.
MAX_DATAGRAM_BYTES = 65507

_FIELD_COUNTS = {REGISTER: 4, UPDATE: 4, QUERY: 2}


class MalformedMessageError(ValueError):
    """Datagram that does not follow the discovery protocol."""


@dataclass(slots=True, frozen=True)
class DiscoveryCommand:
    command: str
    item: str
    address: Optional[str] = None
    port: Optional[int] = None


def parse_command(data: bytes) -> DiscoveryCommand:
    try:
        text = data.decode(ENCODING)
    except UnicodeDecodeError as exc:
        raise MalformedMessageError("datagram is not valid UTF-8") from exc

    parts = text.strip().split(FIELD_SEPARATOR)
    command = parts[0]
    expected = _FIELD_COUNTS.get(command)
    if expected is None:
        raise MalformedMessageError(f"unknown command: {command!r}")
    if len(parts) != expected:
        raise MalformedMessageError(f"{command} expects {expected} fields, got {len(parts)}")

    item = parts[1]
    if not item:
        raise MalformedMessageError(f"{command} with empty item")
    if command == QUERY:
        return DiscoveryCommand(command=command, item=item)

    address = parts[2]
    if not address:
        raise MalformedMessageError(f"{command} with empty address")
    try:
        port = int(parts[3])
    except ValueError as exc:
        raise MalformedMessageError(f"{command} with non-numeric port: {parts[3]!r}") from exc
    if not (1 <= port <= 65535):
        raise MalformedMessageError(f"{command} with port out of range: {port}")

    return DiscoveryCommand(command=command, item=item, address=address, port=port)


def _check_item(item: str) -> None:
    if not item or FIELD_SEPARATOR in item:
        raise ValueError(f"invalid item name: {item!r}")


def _encode_announce(command: str, item: str, address: str, port: int) -> bytes:
    _check_item(item)
    return FIELD_SEPARATOR.join((command, item, address, str(port))).encode(ENCODING)


def encode_register(item: str, address: str, port: int) -> bytes:
    return _encode_announce(REGISTER, item, address, port)


def encode_update(item: str, address: str, port: int) -> bytes:
    return _encode_announce(UPDATE, item, address, port)


def encode_query(item: str) -> bytes:
    _check_item(item)
    return f"{QUERY}{FIELD_SEPARATOR}{item}".encode(ENCODING)


def encode_peer_list(peers: Iterable[str]) -> bytes:
    return PEER_SEPARATOR.join(peers).encode(ENCODING)


def decode_peer_list(data: bytes) -> List[str]:
    text = data.decode(ENCODING)
    return [entry.strip() for entry in text.split(PEER_SEPARATOR) if entry.strip()]
