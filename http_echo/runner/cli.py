"""Point d'entrée `http-echo` : configuration, listener, service, codes de sortie.

Codes de sortie :
- 0   : `-version` uniquement
- 127 : texte manquant ou arguments en trop
- 1   : échec du listener, arrêt inattendu du service ou échec de l'arrêt
- 2   : arrêt suite à un signal (jamais 0 une fois le service démarré)
"""
from __future__ import annotations

import asyncio
import sys
from typing import NoReturn, Optional, Sequence

from http_echo.core.config.options import ConfigError, resolve_config
from http_echo.core.logging.logger import build_access_logger, build_logger, route_uvicorn_logs
from http_echo.core.net.listener import ListenerError, ListenerOptions, create_listener
from http_echo.core.version import HUMAN_VERSION
from http_echo.runner.server import ServeError, ShutdownError, serve

INTERRUPT_EXIT_CODE = 2
FATAL_EXIT_CODE = 1


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    try:
        config = resolve_config(argv)
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        sys.exit(exc.exit_code)

    if config.show_version:
        print(HUMAN_VERSION)
        sys.exit(0)

    try:
        listener = create_listener(config.listen, ListenerOptions(transparent=config.transparent))
    except ListenerError as exc:
        print(f"Failed to create listener: {exc}", file=sys.stderr)
        sys.exit(FATAL_EXIT_CODE)

    logger = build_logger()
    route_uvicorn_logs(logger)

    try:
        asyncio.run(serve(config, listener, logger=logger, access_logger=build_access_logger()))
    except (ServeError, ShutdownError) as exc:
        logger.critical("%s", exc)
        sys.exit(FATAL_EXIT_CODE)

    # Arrivé ici, c'est un signal qui a arrêté le serveur : pas de sortie propre.
    sys.exit(INTERRUPT_EXIT_CODE)


if __name__ == "__main__":
    main()
