"""Shared state models for a fetch session."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)


class SlotState(enum.Enum):
    PENDING = "pending"
    FAILED = "failed"
    DONE = "done"


@dataclass(slots=True, frozen=True)
class Endpoint:
    """Fonte anunciada pelo registry no formato ``address:port``."""

    address: str
    port: int

    @classmethod
    def parse(cls, text: str) -> "Endpoint":
        address, sep, port = text.strip().rpartition(":")
        if not sep or not address:
            raise ValueError(f"endpoint sem porta: {text!r}")
        port_number = int(port)
        if not (1 <= port_number <= 65535):
            raise ValueError(f"porta fora do intervalo: {text!r}")
        return cls(address, port_number)

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


def parse_endpoints(entries: List[str]) -> List[Endpoint]:
    """Converte a lista do registry, descartando entradas ilegíveis."""
    endpoints: List[Endpoint] = []
    for entry in entries:
        try:
            endpoints.append(Endpoint.parse(entry))
        except ValueError:
            logger.warning("Fonte inválida recebida do registry: %r", entry)
    return endpoints


@dataclass(slots=True)
class FragmentSlot:
    state: SlotState = SlotState.PENDING
    payload: Optional[bytes] = None
    error: Optional[str] = None


@dataclass(slots=True)
class FetchSession:
    """Estado de um download: uma posição por fragmento.

    Cada tarefa escreve somente no próprio índice, então as posições não
    precisam de lock.
    """

    item: str
    sources: List[Endpoint]
    total: int
    slots: List[FragmentSlot] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.slots:
            self.slots = [FragmentSlot() for _ in range(self.total)]

    def assign_source(self, index: int) -> Endpoint:
        return assign_source(self.sources, index)

    def mark_done(self, index: int, payload: bytes) -> None:
        self.slots[index] = FragmentSlot(SlotState.DONE, payload=payload)

    def mark_failed(self, index: int, reason: str) -> None:
        self.slots[index] = FragmentSlot(SlotState.FAILED, error=reason)

    def indices(self, state: SlotState) -> List[int]:
        return [i for i, slot in enumerate(self.slots) if slot.state is state]

    @property
    def finished(self) -> int:
        return sum(1 for slot in self.slots if slot.state is not SlotState.PENDING)

    @property
    def is_complete(self) -> bool:
        return all(slot.state is not SlotState.PENDING for slot in self.slots)

    @property
    def succeeded(self) -> bool:
        return all(slot.state is SlotState.DONE for slot in self.slots)

    def missing(self) -> List[int]:
        return [i for i, slot in enumerate(self.slots) if slot.state is not SlotState.DONE]

    def assemble(self) -> bytes:
        if not self.succeeded:
            raise ValueError(f"fragmentos ausentes: {self.missing()}")
        return b"".join(slot.payload for slot in self.slots)


def assign_source(sources: List[Endpoint], index: int) -> Endpoint:
    """Round-robin fixo: o fragmento ``index`` vai para ``sources[index % len(sources)]``."""
    if not sources:
        raise ValueError("nenhuma fonte disponível")
    return sources[index % len(sources)]
