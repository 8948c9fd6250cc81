from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field


class CORSConfig(BaseModel):
    """CORS middleware configuration."""

    allow_origins: List[str] = Field(default=["*"])
    allow_credentials: bool = Field(default=False)
    allow_methods: List[str] = Field(default=["GET", "POST"])
    allow_headers: List[str] = Field(default=["*"])
    max_age: int = Field(default=3600)


class MiddlewareConfig(BaseModel):
    """Middleware configuration."""

    model_config = {"arbitrary_types_allowed": True}

    middleware_class: Type[Any]
    options: Dict[str, Any] = Field(default_factory=dict)


class ASGIConfig(BaseModel):
    """ASGI application configuration."""

    # Core Settings
    title: str = Field(default="Yachtie Consensus API")
    description: str = Field(default="Multi-model AI consensus for automated fleet decisions")
    version: str = Field(default="1.0.0")

    # URL Configuration
    prefix: str = Field(default="")  # Root application prefix (e.g., "/api/v1")

    # API Documentation
    debug: bool = Field(default=False)
    docs_url: Optional[str] = Field(default="/docs")
    openapi_url: Optional[str] = Field(default="/openapi.json")

    # CORS and Middleware
    cors_config: Optional[CORSConfig] = None
    middleware: List[MiddlewareConfig] = Field(default_factory=list)
    gzip_enabled: bool = Field(default=True)
    gzip_minimum_size: int = Field(default=1000)  # Minimum response size to compress

    # Server Settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    def get_prefixed_url(self, url: str) -> str:
        """Get URL with the application prefix applied."""
        if not url:
            return self.prefix or "/"
        if not self.prefix:
            return url
        # Ensure single slash between prefix and URL
        prefix = self.prefix.rstrip("/")
        url = url.lstrip("/")
        return f"{prefix}/{url}" if url else prefix
