# ============================================================================
# nmapdeck/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# All tunable settings in one place: where nmap runs, how long a process may
# live, how much output the live relay keeps, and how logging behaves.
#
# KEY CONCEPTS:
# 1. Frozen dataclasses: each section is an immutable settings record
# 2. Environment Variables: every setting can be overridden (NMAPDECK_*)
# 3. Singleton access: get_config() / set_config() share one instance
#
# ============================================================================

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from nmapdeck.errors import ErrorCode, NmapDeckError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: str, cast: Callable[[str], Any]) -> Any:
    raw = os.getenv(name, default)
    try:
        return cast(raw.strip())
    except ValueError:
        raise NmapDeckError(
            ErrorCode.CONFIG_INVALID,
            f"{name} must be a number, got {raw!r}",
            details={"variable": name, "value": raw},
        )


# ============================================================================
# Scanner Execution Configuration
# ============================================================================
# Controls how nmap is launched.

@dataclass(frozen=True)
class ScannerConfig:
    # Name (or absolute path) of the nmap binary
    nmap_binary: str = "nmap"

    # Docker CLI used to reach the scanner container
    docker_binary: str = "docker"

    # Container that has nmap installed. nmap runs as
    # `docker exec <container> nmap ...`. Empty string = run nmap on this host.
    container_name: str = "nmap-terminal"

    # Wall-clock limit for a single nmap process (seconds). 0 disables it;
    # full-range scans routinely run for a long time.
    process_timeout_seconds: float = 0.0

    # After SIGTERM, how long to wait before escalating to SIGKILL
    kill_grace_seconds: float = 5.0

    # Upper bound on the inter-target delay a client may request
    max_delay_seconds: int = 3600

    @property
    def uses_container(self) -> bool:
        return bool(self.container_name)

    def command_prefix(self) -> List[str]:
        """Executable plus leading arguments that precede the nmap flags."""
        if self.uses_container:
            return [self.docker_binary, "exec", self.container_name, self.nmap_binary]
        return [self.nmap_binary]


# ============================================================================
# Web Terminal Configuration
# ============================================================================
# The scanner container also serves a browser terminal (ttyd).

@dataclass(frozen=True)
class TerminalConfig:
    # URL handed back to clients with every scan acknowledgment
    url: str = "http://nmap-terminal:7681"

    # Port the terminal is published on (used by GET /api/terminal)
    port: int = 7681


# ============================================================================
# Live Relay Configuration
# ============================================================================

@dataclass(frozen=True)
class RelayConfig:
    # Events buffered per scan for late subscribers (?since=N replay)
    history_size: int = 5000

    # How many finished scans keep their buffered events around
    retain_finished: int = 50


# ============================================================================
# File Storage Configuration
# ============================================================================

@dataclass(frozen=True)
class StorageConfig:
    # Base directory for log files
    base_dir: Path = field(default_factory=lambda: Path.home() / ".nmapdeck")


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    # DEBUG / INFO / WARNING / ERROR
    level: str = "INFO"

    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Also write to a rotating file under StorageConfig.base_dir
    file_enabled: bool = True

    file_name: str = "nmapdeck.log"

    # Rotation: 10 MB per file, keep 5 old files
    max_file_size_mb: int = 10
    backup_count: int = 5


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass
class DeckConfig:
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)

    debug: bool = False

    # The browser and the scanner container live on a docker network, so the
    # API listens on all interfaces by default.
    api_host: str = "0.0.0.0"
    api_port: int = 1337

    # CORS origins for the HTTP API ("*" = any)
    allowed_origins: tuple = ("*",)

    @classmethod
    def from_env(cls) -> "DeckConfig":
        """Build a DeckConfig from NMAPDECK_* environment variables."""
        scanner = ScannerConfig(
            nmap_binary=os.getenv("NMAPDECK_NMAP_BINARY", "nmap"),
            docker_binary=os.getenv("NMAPDECK_DOCKER_BINARY", "docker"),
            container_name=os.getenv("NMAPDECK_CONTAINER", "nmap-terminal").strip(),
            process_timeout_seconds=_env_number("NMAPDECK_PROCESS_TIMEOUT", "0", float),
            kill_grace_seconds=_env_number("NMAPDECK_KILL_GRACE", "5", float),
            max_delay_seconds=_env_number("NMAPDECK_MAX_DELAY", "3600", int),
        )

        # TERMINAL_URL is what the docker-compose file has always exported
        terminal = TerminalConfig(
            url=os.getenv("NMAPDECK_TERMINAL_URL") or os.getenv("TERMINAL_URL", "http://nmap-terminal:7681"),
            port=_env_number("NMAPDECK_TERMINAL_PORT", "7681", int),
        )

        relay = RelayConfig(
            history_size=_env_number("NMAPDECK_RELAY_HISTORY", "5000", int),
            retain_finished=_env_number("NMAPDECK_RELAY_RETAIN", "50", int),
        )

        storage = StorageConfig(
            base_dir=Path(os.getenv("NMAPDECK_DATA_DIR", str(Path.home() / ".nmapdeck"))),
        )

        log = LogConfig(
            level=os.getenv("NMAPDECK_LOG_LEVEL", "INFO"),
            file_enabled=_env_bool("NMAPDECK_LOG_FILE", "true"),
        )

        origins_str = os.getenv("NMAPDECK_ALLOWED_ORIGINS", "")
        origins = tuple(o.strip() for o in origins_str.split(",") if o.strip()) if origins_str else ("*",)

        return cls(
            scanner=scanner,
            terminal=terminal,
            relay=relay,
            storage=storage,
            log=log,
            debug=_env_bool("NMAPDECK_DEBUG", "false"),
            api_host=os.getenv("NMAPDECK_API_HOST", "0.0.0.0"),
            api_port=_env_number("NMAPDECK_API_PORT", "1337", int),
            allowed_origins=origins,
        )


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[DeckConfig] = None


def get_config() -> DeckConfig:
    """
    Get the global configuration instance.

    Created from the environment on first use and reused afterwards.
    """
    global _config
    if _config is None:
        _config = DeckConfig.from_env()
    return _config


def set_config(config: Optional[DeckConfig]) -> None:
    """
    Replace the global configuration (mainly used for testing).

    Passing None forces the next get_config() to re-read the environment.
    """
    global _config
    _config = config


def setup_logging(config: Optional[DeckConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Sets up console logging and, when enabled, a rotating log file.
    Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        try:
            cfg.storage.base_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cfg.storage.base_dir / cfg.log.file_name,
                maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
                backupCount=cfg.log.backup_count,
            )
            handlers.append(file_handler)
        except OSError as exc:
            # Read-only container filesystems are common; console logging still works.
            logger.warning(f"File logging disabled: {exc}")

    level = logging.DEBUG if cfg.debug else getattr(logging, cfg.log.level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
