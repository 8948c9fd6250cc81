"""
ASGI Core Module - Base class for modular ASGI components
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

ExceptionHandler = Callable[[Request, Exception], Awaitable[Response]]
BackgroundTask = Callable[[], Awaitable[None]]


class ASGICoreModule(BaseModel, ABC):
    """Base class for ASGI modules that can be mounted to ASGICoreApplication."""

    prefix: str = Field(default="", description="URL prefix for this module (e.g., '/consensus')")
    title: Optional[str] = Field(default=None, description="Module title")
    description: Optional[str] = Field(default=None, description="Module description")
    tags: List[str] = Field(default_factory=list, description="OpenAPI tags for the module routes")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context: Any) -> None:
        """Post-initialization to set up computed fields."""
        if self.title is None:
            self.title = self.__class__.__name__

        if self.description is None:
            self.description = f"{self.title} Module"

    @abstractmethod
    def setup_routes(self, router: APIRouter) -> None:
        """Set up module-specific routes.

        The router provided will already have the module prefix applied.

        Args:
            router: The APIRouter instance to add routes to
        """
        pass

    def exception_handlers(self) -> Dict[Type[Exception], ExceptionHandler]:
        """Exception handlers the hosting application registers for this module."""
        return {}

    def background_tasks(self) -> List[BackgroundTask]:
        """Long-running tasks started with the application and cancelled on shutdown."""
        return []

    @property
    def app(self) -> FastAPI:
        """Standalone FastAPI app serving only this module, mostly for tests."""
        app = FastAPI(title=self.title or "", description=self.description or "")
        router = APIRouter(prefix=self.prefix, tags=list(self.tags))
        self.setup_routes(router)
        app.include_router(router)
        for exception_class, handler in self.exception_handlers().items():
            app.add_exception_handler(exception_class, handler)
        return app
