"""
ASGI Core Application - Root application manager with module support
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncGenerator, Dict, List, Optional, cast

import anyio
import uvicorn
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from .ASGITypes import ASGIConfig, MiddlewareConfig

if TYPE_CHECKING:
    from .ASGICoreModule import ASGICoreModule, BackgroundTask

logger = logging.getLogger(__name__)


class ASGICoreApplication:
    """Root ASGI application that manages _modules."""

    def __init__(self, config: Optional[ASGIConfig] = None) -> None:
        """Initialize the root ASGI application.

        Args:
            config: Optional ASGI configuration.
        """
        self.config = config or ASGIConfig()
        self._modules: Dict[str, "ASGICoreModule"] = {}
        self._background_tasks: List["BackgroundTask"] = []
        self.app: FastAPI = self._create_application()

        self._configure_middleware()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncGenerator[None, None]:
        """Run module background tasks for the lifetime of the application."""
        logger.info(f"Starting {self.config.title} application...")

        async with anyio.create_task_group() as tg:
            for task in self._background_tasks:
                tg.start_soon(task)

            yield

            # Shutdown
            logger.info(f"Shutting down {self.config.title} application...")
            tg.cancel_scope.cancel()

    def _create_application(self) -> FastAPI:
        """Create the FastAPI application instance."""
        docs_url = self.config.get_prefixed_url(self.config.docs_url) if self.config.docs_url else None
        openapi_url = self.config.get_prefixed_url(self.config.openapi_url) if self.config.openapi_url else None

        return FastAPI(
            title=self.config.title,
            description=self.config.description,
            version=self.config.version,
            debug=self.config.debug,
            docs_url=docs_url,
            redoc_url=None,
            openapi_url=openapi_url,
            lifespan=self._lifespan,
        )

    def _configure_middleware(self) -> None:
        """Configure global middleware for the application."""
        if self.config.gzip_enabled:
            self.app.add_middleware(GZipMiddleware, minimum_size=self.config.gzip_minimum_size)

        if self.config.cors_config:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=self.config.cors_config.allow_origins,
                allow_credentials=self.config.cors_config.allow_credentials,
                allow_methods=self.config.cors_config.allow_methods,
                allow_headers=self.config.cors_config.allow_headers,
                max_age=self.config.cors_config.max_age,
            )

        for middleware in self.config.middleware:
            self.add_middleware(middleware)

    def mount_module(self, module: "ASGICoreModule", prefix: Optional[str] = None) -> None:
        """Mount an ASGICoreModule to this application.

        Args:
            module: The ASGICoreModule instance to mount
            prefix: Optional prefix override (uses module's prefix if not provided)
        """
        module_prefix = prefix or module.prefix
        full_prefix = f"{self.config.prefix}{module_prefix}" if self.config.prefix else module_prefix

        router = APIRouter(prefix=full_prefix, tags=list(module.tags))
        module.setup_routes(router)
        self.app.include_router(router)

        for exception_class, handler in module.exception_handlers().items():
            self.app.add_exception_handler(exception_class, handler)
        self._background_tasks.extend(module.background_tasks())

        module_name = module.__class__.__name__
        self._modules[module_name] = module
        logger.info(f"Mounted {module_name} at {full_prefix or '/'}")

    def add_middleware(self, middleware_config: MiddlewareConfig) -> None:
        """Add middleware to the application."""
        self.app.add_middleware(
            cast(Any, middleware_config.middleware_class),
            **middleware_config.options,
        )

    def run(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        """Run the application using uvicorn.

        Args:
            host: Host to bind to (uses config if not provided)
            port: Port to bind to (uses config if not provided)
            **kwargs: Additional uvicorn parameters
        """
        uvicorn.run(
            self.app,
            host=host or self.config.host,
            port=port or self.config.port,
            **kwargs,
        )
