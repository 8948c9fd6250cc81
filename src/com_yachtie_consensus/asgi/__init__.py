"""ASGI layer for serving consensus modules with FastAPI."""

from .ASGICoreApplication import ASGICoreApplication
from .ASGICoreModule import ASGICoreModule, BackgroundTask, ExceptionHandler
from .ASGITypes import ASGIConfig, CORSConfig, MiddlewareConfig

__all__ = [
    "ASGICoreApplication",
    "ASGICoreModule",
    "ASGIConfig",
    "BackgroundTask",
    "CORSConfig",
    "ExceptionHandler",
    "MiddlewareConfig",
]
