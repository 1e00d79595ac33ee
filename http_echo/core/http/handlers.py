"""Handlers HTTP du serveur d'écho.

Chaque handler est une coroutine `(Request) -> Response` ; les wrappers
`with_app_headers` et `http_log` s'empilent autour d'eux comme des middlewares.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import Request, Response

from http_echo.core.version import HUMAN_VERSION

Handler = Callable[[Request], Awaitable[Response]]

CONTENT_TYPE = "text/plain; charset=utf-8"
HEALTH_BODY = '{"status":"ok"}'


def http_echo(text: str) -> Handler:
    async def handler(request: Request) -> Response:
        return Response(content=f"{text}\n")

    return handler


def http_health() -> Handler:
    async def handler(request: Request) -> Response:
        return Response(content=f"{HEALTH_BODY}\n")

    return handler


def with_app_headers(status_code: int, handler: Handler) -> Handler:
    """Impose le code de statut et les en-têtes communs à toutes les réponses."""

    async def wrapped(request: Request) -> Response:
        response = await handler(request)
        response.status_code = status_code
        response.headers["Content-Type"] = CONTENT_TYPE
        response.headers["X-App-Version"] = HUMAN_VERSION
        return response

    return wrapped


def http_log(logger: logging.Logger, handler: Handler) -> Handler:
    """Trace une ligne d'accès par requête, sans modifier la réponse."""

    async def wrapped(request: Request) -> Response:
        start = time.perf_counter()
        response = await handler(request)
        duration = time.perf_counter() - start

        client = f"{request.client.host}:{request.client.port}" if request.client else "-"
        logger.info(
            '%s %s "%s %s HTTP/%s" %d %d "%s" %.6fs',
            request.headers.get("host", "-"),
            client,
            request.method,
            request.url.path,
            request.scope.get("http_version", "1.1"),
            response.status_code,
            len(response.body),
            request.headers.get("user-agent", ""),
            duration,
        )
        return response

    return wrapped
