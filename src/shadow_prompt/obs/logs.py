"""Logging setup for the daemon and CLI."""

from __future__ import annotations

import logging
from pathlib import Path

from shadow_prompt.config import LoggingConfig

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(config: LoggingConfig | None = None, *, debug: bool = False) -> None:
    """Install a stream handler and, when configured, a file handler."""
    config = config or LoggingConfig()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, config.level),
        format=_FORMAT,
        handlers=handlers,
        force=True,
    )
    # Keep HTTP client chatter out of the query log.
    for noisy in ("httpx", "openai", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
