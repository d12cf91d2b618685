"""
Configuration.

Two layers live here:
- `Settings`: process environment (AUTH_SECRET, AUTH_URL, ...), loaded once.
- `AuthOptions`: the options record handed to the engine on every call.

Options are merged in a fixed order (defaults, module options, per-call
override) with later layers winning on key collision. Anything the engine
understands but this package doesn't is passed through untouched.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Literal
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-derived defaults."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "production"

    # ==========================================================================
    # Engine
    # ==========================================================================

    secret: str = ""
    url: str = ""
    trust_host: bool | None = None
    base_path: str = "/auth"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# =============================================================================
# Options
# =============================================================================


class SessionOptions(BaseModel):
    """Session knobs, passed through to the engine."""

    model_config = ConfigDict(extra="allow")

    strategy: Literal["jwt", "database"] = "jwt"
    max_age: int = 24 * 60 * 60      # seconds
    update_age: int = 60 * 60        # seconds


def default_redirect(url: str, base_url: str) -> str:
    """
    Only allow relative URLs and URLs on the app's own origin.

    Anything else is replaced by the base URL.
    """
    if url.startswith("/") and not url.startswith("//"):
        return url
    parts = urlsplit(url)
    if parts.scheme and f"{parts.scheme}://{parts.netloc}" == base_url.rstrip("/"):
        return url
    return base_url


class AuthOptions(BaseModel):
    """
    Options handed to the engine.

    Unknown keys are kept as extras so engine-specific settings
    (adapters, pages, theme, ...) survive merging.
    """

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    providers: list[Any] = Field(default_factory=list)
    secret: str | None = None
    trust_host: bool | None = None
    url: str | None = None
    environment: str | None = None

    base_path: str = "/auth"
    property: str = "user"

    session: SessionOptions = Field(default_factory=SessionOptions)
    csrf: bool = True
    use_secure_cookies: bool | None = None
    callbacks: dict[str, Callable[..., Any]] = Field(default_factory=dict)


def default_options(settings: Settings | None = None) -> AuthOptions:
    """
    Built-in defaults, the lowest merge layer.

    Secure cookies follow the environment. Host trust is left unset for
    `set_env_defaults` to decide.
    """
    settings = settings or get_settings()
    return AuthOptions(
        providers=[],
        base_path="/auth",
        property="user",
        session=SessionOptions(),
        csrf=True,
        use_secure_cookies=settings.is_production,
        callbacks={"redirect": default_redirect},
    )


def _layer_items(layer: AuthOptions | dict[str, Any]) -> dict[str, Any]:
    if isinstance(layer, AuthOptions):
        # Only keys that were explicitly set, so model defaults never
        # override an earlier layer.
        items = {key: getattr(layer, key) for key in layer.model_fields_set}
        items.update(layer.model_extra or {})
        return items
    return dict(layer)


def merge_options(*layers: AuthOptions | dict[str, Any] | None) -> AuthOptions:
    """
    Shallow-merge option layers, later layers win.

    Usage:
        merged = merge_options(default_options(), module_options, override)
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        merged.update(_layer_items(layer))
    return AuthOptions.model_validate(merged)


def set_env_defaults(options: AuthOptions, settings: Settings | None = None) -> AuthOptions:
    """
    Fill unset options from the environment.

    Returns a new options object; the input is left untouched.
    """
    settings = settings or get_settings()
    update: dict[str, Any] = {}

    if not options.secret and settings.secret:
        update["secret"] = settings.secret
    if not options.url and settings.url:
        update["url"] = settings.url
    if options.environment is None:
        update["environment"] = settings.environment
    if options.trust_host is None:
        if settings.trust_host is not None:
            update["trust_host"] = settings.trust_host
        else:
            update["trust_host"] = bool(settings.url) or settings.is_development

    if not update:
        return options
    return options.model_copy(update=update)


def load_options(path: Path | str) -> AuthOptions:
    """Load options from a YAML file."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return AuthOptions.model_validate(data)
