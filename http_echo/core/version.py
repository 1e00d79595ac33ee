"""Informations de version affichées par `-version` et l'en-tête `X-App-Version`."""
from __future__ import annotations

NAME = "http-echo"
__version__ = "1.0.0"
HUMAN_VERSION = f"{NAME} v{__version__}"
