"""Cycle de vie du serveur : Starting -> Listening -> ShuttingDown -> Terminated.

Deux tâches tournent en parallèle : la boucle uvicorn qui accepte et sert les
requêtes, et l'attente d'un signal d'arrêt. Le premier signal déclenche un
arrêt gracieux borné à `SHUTDOWN_TIMEOUT` secondes.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import socket
from contextlib import contextmanager
from typing import Iterator, Optional

import uvicorn

from http_echo.api.app import create_app
from http_echo.core.config.options import EchoConfig

SHUTDOWN_TIMEOUT = 5  # secondes
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)

log = logging.getLogger("http_echo")


class ServeError(Exception):
    """La boucle de service s'est arrêtée sans qu'on le lui demande."""


class ShutdownError(Exception):
    """L'arrêt gracieux a échoué."""


class EchoServer(uvicorn.Server):
    """Serveur uvicorn qui laisse la gestion des signaux à l'appelant."""

    def install_signal_handlers(self) -> None:
        return None

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def build_server(config: EchoConfig, access_logger: Optional[logging.Logger] = None) -> EchoServer:
    app = create_app(config, access_logger=access_logger)
    uvicorn_config = uvicorn.Config(
        app,
        log_config=None,
        access_log=False,
        lifespan="off",
        timeout_graceful_shutdown=SHUTDOWN_TIMEOUT,
    )
    return EchoServer(uvicorn_config)


@contextmanager
def stop_on_signals(loop: asyncio.AbstractEventLoop, event: asyncio.Event) -> Iterator[asyncio.Event]:
    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, event.set)
    try:
        yield event
    finally:
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)


async def serve(
    config: EchoConfig,
    listener: socket.socket,
    stop: Optional[asyncio.Event] = None,
    logger: Optional[logging.Logger] = None,
    access_logger: Optional[logging.Logger] = None,
) -> None:
    """Sert les requêtes sur `listener` jusqu'au signal d'arrêt.

    Args:
        config: Configuration résolue.
        listener: Socket déjà en écoute, fermé par l'arrêt du serveur.
        stop: Événement d'arrêt ; par défaut, déclenché par SIGINT ou SIGTERM.
        logger: Logger du cycle de vie.
        access_logger: Logger des lignes d'accès.

    Raises:
        ServeError: la boucle de service s'est terminée avant le signal.
        ShutdownError: l'arrêt gracieux a levé une exception.
    """

    logger = logger or log
    server = build_server(config, access_logger=access_logger)

    if stop is None:
        loop = asyncio.get_running_loop()
        with stop_on_signals(loop, asyncio.Event()) as event:
            await _run(server, listener, event, config.listen, logger)
    else:
        await _run(server, listener, stop, config.listen, logger)


async def _run(
    server: EchoServer,
    listener: socket.socket,
    stop: asyncio.Event,
    listen: str,
    logger: logging.Logger,
) -> None:
    serve_task = asyncio.create_task(server.serve(sockets=[listener]))
    stop_task = asyncio.create_task(stop.wait())
    logger.info("server is listening on %s", listen)

    done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

    if serve_task in done:
        stop_task.cancel()
        exc = None if serve_task.cancelled() else serve_task.exception()
        raise ServeError(f"server exited with: {exc or 'unexpected stop'}") from exc

    logger.info("received interrupt, shutting down...")
    # Plus aucune connexion acceptée ; les requêtes en cours disposent de SHUTDOWN_TIMEOUT.
    server.should_exit = True
    try:
        await serve_task
    except Exception as exc:  # noqa: BLE001 - tout échec d'arrêt est fatal
        raise ShutdownError(f"failed to shutdown server: {exc}") from exc
