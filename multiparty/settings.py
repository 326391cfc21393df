"""
Runtime settings and logging setup.

Resolution order for each setting:
  1) explicit mapping passed to from_env()
  2) os.environ (optionally after loading a .env file)
  3) defaults below

Wire constants (padding, tag rounds, nonce size) are deliberately absent:
changing them would break interoperability with every other participant.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


ENV_BROADCAST_PEER = "MULTIPARTY_BROADCAST_PEER"
ENV_LOG_LEVEL = "MULTIPARTY_LOG_LEVEL"
ENV_LOG_FORMAT = "MULTIPARTY_LOG_FORMAT"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")


@dataclass(frozen=True)
class ProtocolSettings:
    # Pseudo-peer for the room's broadcast channel; never a real recipient
    broadcast_peer: str = "main-Conversation"
    log_level: str = "WARNING"
    log_format: str = DEFAULT_LOG_FORMAT

    def __post_init__(self):
        level = str(self.log_level).upper()
        if level not in _LEVELS:
            raise ValueError(f"unknown log level: {self.log_level!r}")
        object.__setattr__(self, "log_level", level)

    @classmethod
    def from_env(
        cls,
        mapping: Optional[Mapping[str, str]] = None,
        *,
        auto_dotenv: bool = False,
        dotenv_path: Optional[str] = None,
        dotenv_override: bool = False,
    ) -> "ProtocolSettings":
        if auto_dotenv:
            load_dotenv(dotenv_path=dotenv_path, override=dotenv_override)
        mapping = dict(mapping or {})

        def get(name: str, default: str) -> str:
            if name in mapping:
                return mapping[name]
            return os.environ.get(name, default)

        return cls(
            broadcast_peer=get(ENV_BROADCAST_PEER, cls.broadcast_peer),
            log_level=get(ENV_LOG_LEVEL, cls.log_level),
            log_format=get(ENV_LOG_FORMAT, cls.log_format),
        )


def configure_logging(
    settings: Optional[ProtocolSettings] = None,
    logger: Optional[logging.Logger] = None,
) -> logging.Handler:
    """
    Attach one StreamHandler to the package logger (or `logger`).

    Calling it again replaces the handler installed by the previous call, so
    hosts may reconfigure freely without duplicated output.
    """
    settings = settings or ProtocolSettings()
    logger = logger or logging.getLogger("multiparty")

    for h in list(logger.handlers):
        if getattr(h, "_multiparty", False):
            logger.removeHandler(h)

    h = logging.StreamHandler()
    h._multiparty = True  # type: ignore[attr-defined]
    h.setFormatter(logging.Formatter(settings.log_format))
    logger.addHandler(h)
    logger.setLevel(settings.log_level)
    return h
