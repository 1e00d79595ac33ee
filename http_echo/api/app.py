"""Assemblage de l'application HTTP : deux routes statiques, rien d'autre.

- `/`       -> texte configuré, code de statut configuré, ligne d'accès
- `/health` -> `{"status":"ok"}`, toujours 200

Toute autre route retombe sur le 404 par défaut du framework.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from http_echo.core.config.options import EchoConfig
from http_echo.core.http.handlers import http_echo, http_health, http_log, with_app_headers
from http_echo.core.logging.logger import build_access_logger
from http_echo.core.version import NAME, __version__


def create_app(config: EchoConfig, access_logger: Optional[logging.Logger] = None) -> FastAPI:
    """Construit l'application FastAPI à partir de la configuration résolue."""

    access_logger = access_logger or build_access_logger()

    app = FastAPI(
        title=NAME,
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
    )
    # Routes Starlette sans liste de méthodes : toutes les méthodes sont servies.
    app.add_route(
        "/",
        http_log(access_logger, with_app_headers(config.status_code, http_echo(config.text))),
        include_in_schema=False,
    )
    app.add_route("/health", with_app_headers(200, http_health()), include_in_schema=False)
    return app
