"""Utility helpers."""

from .loop import EventLoopThread
from .serialization import to_json

__all__ = ["EventLoopThread", "to_json"]
