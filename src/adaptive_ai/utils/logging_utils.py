"""Logging setup shared by the HTTP service and the CLI."""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure root logging once per process.

    GOTCHA: basicConfig is a no-op if handlers already exist (e.g. under pytest)

    Args:
        level: Root log level name
        log_file: Optional file to append logs to (parent dirs are created)
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )

    # Suppress noisy transport loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
