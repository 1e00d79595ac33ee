from __future__ import annotations

import logging
import sys
from typing import IO, Optional

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
ACCESS_FORMAT = "%(message)s"


def build_logger(
    name: str = "http_echo",
    stream: Optional[IO[str]] = None,
    fmt: str = DEFAULT_FORMAT,
    propagate: bool = True,
) -> logging.Logger:
    stream = stream if stream is not None else sys.stderr

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = propagate

    if not any(isinstance(handler, logging.StreamHandler) and handler.stream is stream for handler in logger.handlers):
        stream_handler = logging.StreamHandler(stream)
        stream_handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(stream_handler)

    return logger


def build_access_logger(stream: Optional[IO[str]] = None) -> logging.Logger:
    """Logger des requêtes : une ligne brute par requête, sur stdout par défaut."""

    return build_logger(
        "http_echo.access",
        stream=stream if stream is not None else sys.stdout,
        fmt=ACCESS_FORMAT,
        propagate=False,
    )


def route_uvicorn_logs(logger: logging.Logger) -> None:
    """Branche le logger `uvicorn.error` sur les handlers du logger applicatif."""

    uvicorn_logger = logging.getLogger("uvicorn.error")
    uvicorn_logger.setLevel(logger.level)
    uvicorn_logger.propagate = False
    for handler in logger.handlers:
        if handler not in uvicorn_logger.handlers:
            uvicorn_logger.addHandler(handler)
