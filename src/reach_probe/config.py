"""Configuration loading utilities for reach-probe."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")

DEFAULT_VERIFY_COMMAND = 'echo "Connection successful"'


@dataclass
class ProbeConfig:
    """Timing and command settings for a reachability probe."""

    connect_timeout: float = 8.0     # bound on TCP connect + handshake + auth
    overall_timeout: float = 10.0    # bound on the whole probe
    default_port: int = 22
    verify_command: str = DEFAULT_VERIFY_COMMAND
    poll_interval: float = 0.1       # output polling interval while collecting


@dataclass
class ServerConfig:
    """Settings for the HTTP endpoint."""

    host: str = "127.0.0.1"
    port: int = 5000


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    """Top-level configuration."""

    probe: ProbeConfig = field(default_factory=ProbeConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        probe_payload = payload.get("probe", {}) or {}
        server_payload = payload.get("server", {}) or {}
        logging_payload = payload.get("logging", {}) or {}

        # Keys starting with an underscore are comments
        probe_payload = {k: v for k, v in probe_payload.items() if not k.startswith("_")}
        server_payload = {k: v for k, v in server_payload.items() if not k.startswith("_")}
        logging_payload = {k: v for k, v in logging_payload.items() if not k.startswith("_")}

        return cls(
            probe=ProbeConfig(**{**ProbeConfig().__dict__, **probe_payload}),
            server=ServerConfig(**{**ServerConfig().__dict__, **server_payload}),
            logging=LoggingConfig(**{**LoggingConfig().__dict__, **logging_payload}),
        )


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    connect_timeout = _env_float("REACH_PROBE_CONNECT_TIMEOUT")
    if connect_timeout is not None:
        config.probe.connect_timeout = connect_timeout

    overall_timeout = _env_float("REACH_PROBE_OVERALL_TIMEOUT")
    if overall_timeout is not None:
        config.probe.overall_timeout = overall_timeout

    env_host = os.getenv("REACH_PROBE_HOST")
    if env_host:
        config.server.host = env_host

    env_port = _env_int("REACH_PROBE_PORT")
    if env_port is not None:
        config.server.port = env_port

    env_level = os.getenv("REACH_PROBE_LOG_LEVEL")
    if env_level:
        config.logging.level = env_level

    # The whole probe can never be shorter than its connect phase
    if config.probe.overall_timeout < config.probe.connect_timeout:
        config.probe.overall_timeout = config.probe.connect_timeout
    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - REACH_PROBE_CONNECT_TIMEOUT: seconds allowed to reach an authenticated session
    - REACH_PROBE_OVERALL_TIMEOUT: seconds allowed for the whole probe
    - REACH_PROBE_HOST: bind address of the HTTP endpoint
    - REACH_PROBE_PORT: port of the HTTP endpoint
    - REACH_PROBE_LOG_LEVEL: logging level name
    """

    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    candidate = Path(path) if path else _DEFAULT_CONFIG_PATH
    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = AppConfig.from_dict(data)
    else:
        config = AppConfig()

    return _apply_env_overrides(config)
