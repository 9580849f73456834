"""Records kept by the registry for each advertising peer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(slots=True)
class PeerRecord:
    """One source currently advertising an item.

    ``last_seen`` is measured on the registry's clock (monotonic seconds by
    default), never on the peer's.
    """

    address: str
    port: int
    item: str
    last_seen: float

    @property
    def key(self) -> Tuple[str, int]:
        return (self.address, self.port)

    def is_expired(self, now: float, timeout: float) -> bool:
        return now - self.last_seen > timeout

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"
