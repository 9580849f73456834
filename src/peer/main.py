"""Entry-point helper for running a fragswarm peer."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from .config import ConfigValidationError, PeerSettings, validate_item
from .fetch_client import FetchError, FetchOrchestrator
from .peer_server import FragmentServer
from .progress import TqdmProgress


logger = logging.getLogger(__name__)


def find_default_config() -> Path | None:
    """Procura config.json no diretório atual."""
    config_in_cwd = Path.cwd() / "config.json"
    if config_in_cwd.exists():
        return config_in_cwd
    return None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="fragswarm peer")
    parser.add_argument("--config", type=Path, help="Caminho para arquivo de configuração", default=None)
    parser.add_argument("--log-level", help="Override de nível de log", default=None)
    parser.add_argument("--registry-host", help="Endereço do registry", default=None)
    parser.add_argument("--registry-port", type=int, help="Porta UDP do registry", default=None)
    parser.add_argument("--host", help="Endereço anunciado ao registry", default=None)
    parser.add_argument("--port", type=int, help="Porta TCP do servidor de fragmentos", default=None)

    commands = parser.add_subparsers(dest="command", required=True)

    seed = commands.add_parser("seed", help="Servir um arquivo local")
    seed.add_argument("file", type=Path)
    seed.add_argument("--item", help="Nome do item (padrão: nome do arquivo)", default=None)

    fetch = commands.add_parser("fetch", help="Baixar um item e depois servi-lo")
    fetch.add_argument("item")
    fetch.add_argument("--output", type=Path, help="Destino (padrão: nome do item)", default=None)
    fetch.add_argument("--progress", action="store_true", help="Mostrar barra de progresso")
    return parser


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def load_settings(args: argparse.Namespace) -> PeerSettings:
    config_path = args.config if args.config else find_default_config()
    settings = PeerSettings.from_file(config_path)
    if args.registry_host:
        settings.registry_host = args.registry_host
    if args.registry_port is not None:
        settings.registry_port = args.registry_port
    if args.host:
        settings.advertise_host = args.host
    if args.port is not None:
        settings.listen_port = args.port
    if args.log_level:
        settings.log_level = args.log_level.upper()
    settings.validate()
    return settings


def wait_for_shutdown(server: FragmentServer) -> None:
    def signal_handler(sig, frame):
        server.shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    server.serve_forever()


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()

    try:
        settings = load_settings(args)
    except ConfigValidationError as exc:
        parser.error(str(exc))
    configure_logging(settings.log_level)
    logger.debug("Configuração: %s", settings.to_dict())

    if args.command == "seed":
        item = args.item or args.file.name
        try:
            validate_item(item)
            server = FragmentServer(settings, item, args.file)
            server.start()
        except (ConfigValidationError, OSError) as exc:
            logger.error("Não foi possível iniciar o servidor: %s", exc)
            sys.exit(1)
        wait_for_shutdown(server)
        return

    progress = TqdmProgress(args.item) if args.progress else None
    orchestrator = FetchOrchestrator(settings, on_progress=progress)
    try:
        try:
            path = orchestrator.download(args.item, args.output or Path(args.item))
        except (FetchError, ConfigValidationError, OSError) as exc:
            logger.error("Download abortado: %s", exc)
            sys.exit(1)
        try:
            server = orchestrator.serve(args.item, path)
        except OSError as exc:
            logger.error("Arquivo salvo em %s, mas não foi possível servi-lo: %s", path, exc)
            sys.exit(1)
    finally:
        if progress:
            progress.close()
    wait_for_shutdown(server)


if __name__ == "__main__":
    main()
