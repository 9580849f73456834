"""Entry-point helper for running the registry."""
from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path

from .config import ConfigValidationError, RegistrySettings
from .server import RegistryServer


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="fragswarm registry")
    parser.add_argument("--config", type=Path, help="Caminho para arquivo de configuração", default=None)
    parser.add_argument("--host", help="Endereço de escuta", default=None)
    parser.add_argument("--port", type=int, help="Porta UDP de escuta", default=None)
    parser.add_argument("--timeout", type=float, help="Segundos sem UPDATE até remover o peer", default=None)
    parser.add_argument("--log-level", help="Override de nível de log", default=None)
    return parser


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()

    try:
        settings = RegistrySettings.from_file(args.config)
        if args.host:
            settings.listen_host = args.host
        if args.port is not None:
            settings.listen_port = args.port
        if args.timeout is not None:
            settings.liveness_timeout = args.timeout
        if args.log_level:
            settings.log_level = args.log_level.upper()
        settings.validate()
    except ConfigValidationError as exc:
        parser.error(str(exc))

    configure_logging(settings.log_level)
    logging.getLogger("registry").debug("Settings: %s", settings.to_dict())
    server = RegistryServer(settings)

    def signal_handler(sig, frame):
        server.shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    server.serve_forever()


if __name__ == "__main__":
    main()
