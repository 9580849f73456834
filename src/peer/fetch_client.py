"""High-level orchestrator for downloading an item from the swarm."""
from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

from .config import PeerSettings, validate_item
from .peer_connection import fetch_fragment, fetch_fragment_count
from .peer_server import FragmentServer
from .registry_connection import RegistryClient, RegistryError
from .state import Endpoint, FetchSession, SlotState, parse_endpoints


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class FetchError(RuntimeError):
    """Download abortado; nenhum arquivo foi escrito."""


class NoSourcesError(FetchError):
    pass


class FragmentCountError(FetchError):
    pass


class IncompleteDownloadError(FetchError):
    def __init__(self, item: str, missing: List[int]) -> None:
        super().__init__(f"{item!r}: {len(missing)} fragmento(s) ausente(s): {missing}")
        self.item = item
        self.missing = missing


class FetchOrchestrator:
    """Descobre fontes, baixa todos os fragmentos em paralelo e monta o arquivo.

    Fluxo de ``download``:
    1. QUERY no registry; lista vazia aborta.
    2. Pergunta o total de fragmentos à primeira fonte (sem fallback).
    3. Fragmento ``i`` vai para ``sources[i % len(sources)]``; um pool com
       ``len(sources)`` workers executa uma tarefa por índice.
    4. Espera tudo terminar ou ``fetch_timeout`` expirar. Falhas não são
       repetidas.
    5. Qualquer fragmento ausente aborta sem escrever nada.
    6. Concatena por índice e sobrescreve o destino.

    ``run`` faz o download e em seguida sobe um ``FragmentServer`` para o
    mesmo item, tornando este peer uma fonte.
    """

    def __init__(
        self,
        settings: Optional[PeerSettings] = None,
        registry: Optional[RegistryClient] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.settings = settings or PeerSettings()
        self.registry = registry or RegistryClient(self.settings)
        self.on_progress = on_progress
        self._progress_lock = threading.Lock()

    def discover(self, item: str) -> List[Endpoint]:
        try:
            entries = self.registry.query(item)
        except RegistryError as exc:
            logger.warning("QUERY falhou: %s", exc)
            return []
        return parse_endpoints(entries)

    def download(self, item: str, destination: Union[str, Path]) -> Path:
        validate_item(item)
        destination = Path(destination)

        sources = self.discover(item)
        if not sources:
            raise NoSourcesError(f"Nenhuma fonte disponível para {item!r}")
        self._notify(0.0, f"{len(sources)} fonte(s) encontrada(s)")

        first = sources[0]
        result = fetch_fragment_count(first.address, first.port, timeout=self.settings.transfer_timeout)
        if not result.ok:
            raise FragmentCountError(f"Falha ao obter total de fragmentos de {first}: {result.error}")
        total = result.count
        if total <= 0:
            raise FragmentCountError(f"{first} informou {total} fragmento(s) para {item!r}")

        session = FetchSession(item=item, sources=sources, total=total)
        logger.info("Baixando %r: %d fragmento(s) de %d fonte(s)", item, total, len(sources))
        self._fetch_all(session)

        if not session.succeeded:
            missing = session.missing()
            self._notify(session.finished * 100.0 / total, f"Download incompleto: {len(missing)} ausente(s)")
            raise IncompleteDownloadError(item, missing)

        data = session.assemble()
        destination.write_bytes(data)
        logger.info("Arquivo %s escrito (%d bytes)", destination, len(data))
        self._notify(100.0, f"{item} salvo em {destination}")
        return destination

    def run(self, item: str, destination: Union[str, Path]) -> FragmentServer:
        path = self.download(item, destination)
        return self.serve(item, path)

    def serve(self, item: str, path: Union[str, Path]) -> FragmentServer:
        """Sobe um ``FragmentServer`` para ``path``; ``OSError`` sobe para quem chamou."""
        server = FragmentServer(self.settings, item, path, registry=self.registry)
        server.start()
        self._notify(100.0, f"Servindo {item} como fonte")
        return server

    def _fetch_all(self, session: FetchSession) -> None:
        """Roda uma tarefa por índice em ``len(sources)`` workers daemon.

        Ao fim de ``fetch_timeout`` os workers param de pegar índices novos.
        Downloads em andamento não são interrompidos; suas posições continuam
        PENDING e a thread daemon não segura o encerramento do processo.
        """
        tasks: "queue.Queue[int]" = queue.Queue()
        for index in range(session.total):
            tasks.put(index)

        stop = threading.Event()
        all_done = threading.Event()
        counter_lock = threading.Lock()
        remaining = [session.total]

        def _worker() -> None:
            while not stop.is_set():
                try:
                    index = tasks.get_nowait()
                except queue.Empty:
                    return
                self._fetch_one(session, index)
                with counter_lock:
                    remaining[0] -= 1
                    if remaining[0] == 0:
                        all_done.set()

        for number in range(len(session.sources)):
            threading.Thread(target=_worker, name=f"fetch-{number}", daemon=True).start()

        if not all_done.wait(self.settings.fetch_timeout):
            stop.set()
            logger.error(
                "Tempo limite de %.0fs esgotado com %d fragmento(s) pendente(s)",
                self.settings.fetch_timeout, len(session.indices(SlotState.PENDING)),
            )

    def _fetch_one(self, session: FetchSession, index: int) -> None:
        source = session.assign_source(index)
        try:
            result = fetch_fragment(source.address, source.port, index, timeout=self.settings.transfer_timeout)
        except Exception as exc:
            logger.exception("Erro inesperado baixando fragmento %d de %s", index, source)
            session.mark_failed(index, str(exc))
        else:
            if result.ok:
                session.mark_done(index, result.payload)
            else:
                session.mark_failed(index, result.error)

        with self._progress_lock:
            finished = session.finished
        state = "recebido" if session.slots[index].payload is not None else "falhou"
        self._notify(finished * 100.0 / session.total, f"Fragmento {index} {state} ({source})")

    def _notify(self, percent: float, message: str) -> None:
        if self.on_progress is None:
            return
        try:
            with self._progress_lock:
                self.on_progress(percent, message)
        except Exception:
            logger.exception("Observador de progresso falhou")
