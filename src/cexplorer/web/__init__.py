"""Web application helpers for cexplorer."""

from .app import create_app
from .server import run

__all__ = ["create_app", "run"]
