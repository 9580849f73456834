"""Configuration for the registry service.

Valores padrão servem para uma rede local; tudo pode ser sobrescrito por um
arquivo JSON ou pelos argumentos de linha de comando.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .peer_db import DEFAULT_LIVENESS_TIMEOUT
from .protocol import MAX_DATAGRAM_BYTES

DEFAULT_REGISTRY_PORT = 5000
MAX_PORT = 65535


class ConfigValidationError(ValueError):
    """Erro de validação de configuração."""
    pass


def validate_listen_port(port: int) -> int:
    """Porta de escuta; 0 pede uma porta livre ao sistema."""
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigValidationError(f"port deve ser inteiro, recebido: {type(port).__name__}")
    if port < 0 or port > MAX_PORT:
        raise ConfigValidationError(f"port deve estar entre 0 e {MAX_PORT}, recebido: {port}")
    return port


def validate_positive(name: str, value: float) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigValidationError(f"{name} deve ser numérico, recebido: {type(value).__name__}")
    if value <= 0:
        raise ConfigValidationError(f"{name} deve ser positivo, recebido: {value}")
    return value


@dataclass(slots=True)
class RegistrySettings:
    listen_host: str = "0.0.0.0"
    listen_port: int = DEFAULT_REGISTRY_PORT
    liveness_timeout: float = DEFAULT_LIVENESS_TIMEOUT  # segundos sem UPDATE até a remoção
    sweep_interval: float = 1.0  # segundos
    max_datagram_bytes: int = MAX_DATAGRAM_BYTES
    log_level: str = "INFO"
    config_file: Optional[Path] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raises ConfigValidationError se algum campo estiver fora dos limites."""
        validate_listen_port(self.listen_port)
        validate_positive("liveness_timeout", self.liveness_timeout)
        validate_positive("sweep_interval", self.sweep_interval)
        validate_positive("max_datagram_bytes", self.max_datagram_bytes)

    @classmethod
    def from_file(cls, path: Optional[Path]) -> "RegistrySettings":
        """Carrega configurações de um arquivo JSON, se existir."""

        if path is None or not path.exists():
            return cls(config_file=path)

        with path.open("r", encoding="utf-8") as fp:
            raw_data = json.load(fp)

        known_fields = {f.name for f in fields(cls)}
        init_kwargs: Dict[str, Any] = {
            key: value for key, value in raw_data.items() if key in known_fields
        }
        extra = {key: value for key, value in raw_data.items() if key not in known_fields}
        settings = cls(**init_kwargs, config_file=path)
        settings.extra.update(extra)
        settings.validate()
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "listen_host": self.listen_host,
            "listen_port": self.listen_port,
            "liveness_timeout": self.liveness_timeout,
            "sweep_interval": self.sweep_interval,
            "max_datagram_bytes": self.max_datagram_bytes,
            "log_level": self.log_level,
            "extra": self.extra,
        }
