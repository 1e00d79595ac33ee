"""Création du socket d'écoute TCP, avec option `IP_TRANSPARENT` facultative.

L'option est posée avant le `bind`, ce qui permet d'accepter des connexions
destinées à des adresses que la machine ne possède pas (proxy transparent).
"""
from __future__ import annotations

import socket
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

DEFAULT_BACKLOG = 128
# Valeur Linux, absente de certaines versions du module socket.
_LINUX_IP_TRANSPARENT = 19


class ListenerError(Exception):
    """Impossible de créer le socket d'écoute."""


@dataclass(frozen=True)
class ListenerOptions:
    transparent: bool = False


def split_host_port(address: str) -> Tuple[str, str]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ListenerError(f"address {address}: missing port in address")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ListenerError(f"address {address}: too many colons in address")
    if not port:
        raise ListenerError(f"address {address}: missing port in address")
    return host, port


def create_listener(address: str, opts: Optional[ListenerOptions] = None) -> socket.socket:
    """Ouvre un socket TCP lié à `address` et en écoute.

    Raises:
        ListenerError: résolution, option socket, bind ou listen en échec.
    """

    opts = opts or ListenerOptions()
    host, port = split_host_port(address)
    family, sockaddr = _resolve(host, port)

    try:
        sock = socket.socket(family, socket.SOCK_STREAM)
    except OSError as exc:
        raise ListenerError(f"listen tcp {address}: {exc}") from exc

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if family == socket.AF_INET6 and not host:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        if opts.transparent:
            set_transparent(sock)
        sock.bind(sockaddr)
        sock.listen(DEFAULT_BACKLOG)
    except ListenerError:
        sock.close()
        raise
    except OSError as exc:
        sock.close()
        raise ListenerError(f"listen tcp {address}: {exc}") from exc

    return sock


def set_transparent(sock: socket.socket) -> None:
    """Active `IP_TRANSPARENT` sur le socket.

    Une erreur d'accès au descripteur est prioritaire : l'erreur de l'option
    n'est remontée que si cet accès a réussi.
    """

    level, option = _transparent_option()
    errors: List[OSError] = []

    def _set(fd: int) -> None:
        try:
            sock.setsockopt(level, option, 1)
        except OSError as exc:
            errors.append(exc)

    _control(sock, _set)
    if errors:
        raise ListenerError(f"setsockopt IP_TRANSPARENT: {errors[0]}") from errors[0]


def _control(sock: socket.socket, func: Callable[[int], None]) -> None:
    """Exécute `func` avec le descripteur brut du socket."""

    try:
        fd = sock.fileno()
    except OSError as exc:
        raise ListenerError(f"raw socket control: {exc}") from exc
    if fd < 0:
        raise ListenerError("raw socket control: socket is closed")
    func(fd)


def _transparent_option() -> Tuple[int, int]:
    if not sys.platform.startswith("linux"):
        raise ListenerError(f"IP_TRANSPARENT is not supported on {sys.platform}")
    level = getattr(socket, "SOL_IP", socket.IPPROTO_IP)
    return level, getattr(socket, "IP_TRANSPARENT", _LINUX_IP_TRANSPARENT)


def _resolve(host: str, port: str) -> Tuple[int, tuple]:
    if not host:
        if socket.has_dualstack_ipv6():
            family, wildcard = socket.AF_INET6, "::"
        else:
            family, wildcard = socket.AF_INET, "0.0.0.0"
        return family, _first_address(wildcard, port, family)[1]
    return _first_address(host, port, socket.AF_UNSPEC)


def _first_address(host: str, port: str, family: int) -> Tuple[int, tuple]:
    try:
        infos = socket.getaddrinfo(host, port, family, socket.SOCK_STREAM, 0, socket.AI_PASSIVE)
    except socket.gaierror as exc:
        raise ListenerError(f"listen tcp {host}:{port}: {exc}") from exc
    if not infos:
        raise ListenerError(f"listen tcp {host}:{port}: no suitable address found")
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr
