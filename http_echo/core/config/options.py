"""Résolution de la configuration du serveur à partir des flags et de l'environnement.

La configuration est construite une seule fois au démarrage puis transmise
explicitement à la fabrique de listener et aux handlers.
"""
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

DEFAULT_LISTEN = ":5678"
DEFAULT_STATUS_CODE = 200
TEXT_ENV_VAR = "ECHO_TEXT"
CONFIG_EXIT_CODE = 127


class ConfigError(Exception):
    """Configuration invalide : le serveur ne doit pas démarrer."""

    def __init__(self, message: str, exit_code: int = CONFIG_EXIT_CODE) -> None:
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(frozen=True)
class EchoConfig:
    listen: str = DEFAULT_LISTEN
    text: str = ""
    status_code: int = DEFAULT_STATUS_CODE
    transparent: bool = False
    show_version: bool = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="http-echo",
        allow_abbrev=False,
        description="Serveur HTTP qui renvoie un texte fixe, pour tester le routage.",
    )
    parser.add_argument("-listen", "--listen", default=DEFAULT_LISTEN, help="address and port to listen")
    parser.add_argument("-text", "--text", default="", help="text to put on the webpage")
    parser.add_argument("-version", "--version", action="store_true", help="display version information")
    parser.add_argument(
        "-status-code",
        "--status-code",
        dest="status_code",
        type=int,
        default=DEFAULT_STATUS_CODE,
        help="http response code, e.g.: 200",
    )
    parser.add_argument(
        "-transparent",
        "--transparent",
        action="store_true",
        help="set the IP_TRANSPARENT option on the listening socket",
    )
    # Capture les arguments positionnels pour les refuser explicitement.
    parser.add_argument("args", nargs="*", help=argparse.SUPPRESS)
    return parser


def resolve_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EchoConfig:
    """Construit la configuration immuable du serveur.

    Args:
        argv: Arguments de ligne de commande (sans le nom du programme).
        environ: Environnement à consulter pour `ECHO_TEXT` (par défaut `os.environ`).

    Raises:
        ConfigError: texte vide ou arguments positionnels en trop (code de sortie 127).
    """

    environ = os.environ if environ is None else environ
    namespace = build_parser().parse_intermixed_args(list(argv) if argv is not None else None)

    if namespace.version:
        return EchoConfig(
            listen=namespace.listen,
            text=namespace.text,
            status_code=namespace.status_code,
            transparent=namespace.transparent,
            show_version=True,
        )

    text = namespace.text or environ.get(TEXT_ENV_VAR, "")
    if not text:
        raise ConfigError(f"Missing -text option or {TEXT_ENV_VAR} env var!")

    extra: List[str] = namespace.args
    if extra:
        raise ConfigError("Too many arguments!")

    return EchoConfig(
        listen=namespace.listen,
        text=text,
        status_code=namespace.status_code,
        transparent=namespace.transparent,
    )
