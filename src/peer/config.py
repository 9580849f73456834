"""Configuration helpers for a fragswarm peer.

Responsabilidades:
- Carregar arquivos ``config.json`` e aplicar defaults seguros.
- Permitir overrides pela linha de comando (registry, porta, host anunciado).
- Validar limites (portas, intervalos, tamanho de fragmento, nome do item).
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional


MAX_ITEM_LENGTH = 255
MIN_PORT = 1
MAX_PORT = 65535
DEFAULT_FRAGMENT_SIZE = 512 * 1024  # 512 KiB
FORBIDDEN_ITEM_CHARS = ("|", ",")


class ConfigValidationError(ValueError):
    """Erro de validação de configuração."""
    pass


def validate_item(item: str) -> str:
    """Valida o nome do item (até 255 caracteres, sem ``|`` nem ``,``)."""
    if not isinstance(item, str):
        raise ConfigValidationError(f"item deve ser string, recebido: {type(item).__name__}")
    if len(item) == 0:
        raise ConfigValidationError("item não pode ser vazio")
    if len(item) > MAX_ITEM_LENGTH:
        raise ConfigValidationError(f"item excede {MAX_ITEM_LENGTH} caracteres: {len(item)}")
    for char in FORBIDDEN_ITEM_CHARS:
        if char in item:
            raise ConfigValidationError(f"item não pode conter {char!r}: {item!r}")
    return item


def validate_port(port: int, allow_zero: bool = False) -> int:
    """Valida uma porta (1-65535; 0 aceito para escuta em porta livre)."""
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigValidationError(f"port deve ser inteiro, recebido: {type(port).__name__}")
    low = 0 if allow_zero else MIN_PORT
    if port < low or port > MAX_PORT:
        raise ConfigValidationError(f"port deve estar entre {low} e {MAX_PORT}, recebido: {port}")
    return port


def validate_positive(name: str, value: float) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigValidationError(f"{name} deve ser numérico, recebido: {type(value).__name__}")
    if value <= 0:
        raise ConfigValidationError(f"{name} deve ser positivo, recebido: {value}")
    return value


@dataclass(slots=True)
class PeerSettings:
    """Parâmetros de um peer (fonte e/ou downloader).

    ``advertise_host`` é o endereço enviado ao registry; ``listen_host`` é onde
    o servidor de fragmentos escuta. Podem diferir quando o peer escuta em
    ``0.0.0.0``.
    """

    registry_host: str = "127.0.0.1"
    registry_port: int = 5000
    registry_timeout: float = 5.0  # segundos esperando a resposta do QUERY
    listen_host: str = "0.0.0.0"
    listen_port: int = 6000
    advertise_host: str = "127.0.0.1"
    fragment_size: int = DEFAULT_FRAGMENT_SIZE
    heartbeat_interval: float = 30.0  # segundos entre UPDATEs
    fetch_timeout: float = 3600.0  # limite para o lote inteiro de downloads
    transfer_timeout: Optional[float] = None  # None = padrão do socket (sem limite)
    log_level: str = "INFO"
    config_file: Optional[Path] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Valida todos os campos.

        Raises:
            ConfigValidationError: Se algum campo estiver fora dos limites.
        """
        validate_port(self.registry_port)
        validate_port(self.listen_port, allow_zero=True)
        validate_positive("registry_timeout", self.registry_timeout)
        validate_positive("fragment_size", self.fragment_size)
        validate_positive("heartbeat_interval", self.heartbeat_interval)
        validate_positive("fetch_timeout", self.fetch_timeout)
        if self.transfer_timeout is not None:
            validate_positive("transfer_timeout", self.transfer_timeout)
        if not isinstance(self.fragment_size, int):
            raise ConfigValidationError("fragment_size deve ser inteiro")
        if not self.advertise_host:
            raise ConfigValidationError("advertise_host não pode ser vazio")

    @classmethod
    def from_file(cls, path: Optional[Path]) -> "PeerSettings":
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
        settings.validate()  # Valida após carregar
        return settings

    def to_dict(self) -> Dict[str, Any]:
        """Exporta a configuração atual (útil para logs e debug)."""

        return {
            "registry_host": self.registry_host,
            "registry_port": self.registry_port,
            "registry_timeout": self.registry_timeout,
            "listen_host": self.listen_host,
            "listen_port": self.listen_port,
            "advertise_host": self.advertise_host,
            "fragment_size": self.fragment_size,
            "heartbeat_interval": self.heartbeat_interval,
            "fetch_timeout": self.fetch_timeout,
            "transfer_timeout": self.transfer_timeout,
            "log_level": self.log_level,
            "extra": self.extra,
        }
