"""Configuration for the StreamScene gateway.

Environment is read once at startup into ``Settings`` and then frozen into a
``GatewayConfig`` that every component receives explicitly.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from loguru import logger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.exceptions import ConfigurationError

DEFAULT_PORT = 8000
DEFAULT_SESSION_SECRET = "fallback-secret-key-change-in-production"
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60

# Production domains that are always trusted
PRODUCTION_ORIGINS = (
    "https://streamscene.net",
    "https://www.streamscene.net",
)


class Settings(BaseSettings):
    """Gateway settings read from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = DEFAULT_PORT

    # CORS
    CLIENT_URL: Optional[str] = None
    FRONTEND_URL: Optional[str] = None
    ADDITIONAL_ALLOWED_ORIGINS: Optional[str] = None

    # Sessions
    SESSION_SECRET: Optional[str] = None
    SESSION_COOKIE_NAME: str = "connect.sid"
    SESSION_STORE_URL: Optional[str] = None

    # Persistence
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/streamscene.db"

    # Static assets / proxy / logging
    PUBLIC_DIR: str = "public"
    TRUST_PROXY_HOPS: int = 1
    LOG_LEVEL: str = "INFO"

    @field_validator("PORT", mode="before")
    @classmethod
    def _port_or_default(cls, value):
        try:
            port = int(value)
        except (TypeError, ValueError):
            return DEFAULT_PORT
        return port or DEFAULT_PORT


@dataclass(frozen=True)
class CookiePolicy:
    """Session cookie attributes, fixed per environment."""

    secure: bool
    http_only: bool
    same_site: str
    max_age: int = SESSION_MAX_AGE_SECONDS
    path: str = "/"

    @classmethod
    def for_environment(cls, production: bool) -> "CookiePolicy":
        if production:
            return cls(secure=True, http_only=True, same_site="none")
        return cls(secure=False, http_only=True, same_site="lax")


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable gateway configuration resolved once at startup."""

    production: bool
    host: str
    port: int
    trusted_origins: tuple[str, ...]
    session_secret: str
    cookie_name: str
    cookie_policy: CookiePolicy
    public_dir: Path
    trust_proxy_hops: int = 1
    session_store_url: Optional[str] = None
    database_url: str = "sqlite+aiosqlite:///./data/streamscene.db"
    log_level: str = "INFO"

    @property
    def environment(self) -> str:
        return "production" if self.production else "development"

    @property
    def entry_document(self) -> Path:
        return self.public_dir / "index.html"

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayConfig":
        production = settings.APP_ENV.strip().lower() == "production"

        secret = settings.SESSION_SECRET
        if not secret:
            if production:
                raise ConfigurationError("SESSION_SECRET", "required in production")
            logger.warning("SESSION_SECRET not set, using development fallback secret")
            secret = DEFAULT_SESSION_SECRET

        if settings.TRUST_PROXY_HOPS < 0:
            raise ConfigurationError("TRUST_PROXY_HOPS", "must be zero or positive")

        return cls(
            production=production,
            host=settings.HOST,
            port=settings.PORT,
            trusted_origins=build_trusted_origins(
                settings.CLIENT_URL,
                settings.FRONTEND_URL,
                settings.ADDITIONAL_ALLOWED_ORIGINS,
            ),
            session_secret=secret,
            cookie_name=settings.SESSION_COOKIE_NAME,
            cookie_policy=CookiePolicy.for_environment(production),
            public_dir=Path(settings.PUBLIC_DIR).resolve(),
            trust_proxy_hops=settings.TRUST_PROXY_HOPS,
            session_store_url=settings.SESSION_STORE_URL or None,
            database_url=settings.DATABASE_URL,
            log_level=settings.LOG_LEVEL.upper(),
        )


def _validate_origin(setting: str, origin: str) -> str:
    parts = urlsplit(origin)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(setting, f"{origin!r} is not an absolute http(s) URL")
    return origin


def build_trusted_origins(
    client_url: Optional[str],
    frontend_url: Optional[str],
    additional: Optional[str] = None,
) -> tuple[str, ...]:
    """
    Assemble the trusted origin set.

    Order: client URL, frontend URL, production domains, then the
    comma-separated additional origins. Blank entries are dropped;
    duplicates are kept.

    Raises:
        ConfigurationError: If any remaining entry is not a well-formed URL
    """
    origins: list[str] = []
    for setting, value in (("CLIENT_URL", client_url), ("FRONTEND_URL", frontend_url)):
        if value and value.strip():
            origins.append(_validate_origin(setting, value.strip()))

    origins.extend(PRODUCTION_ORIGINS)

    for entry in (additional or "").split(","):
        entry = entry.strip()
        if entry:
            origins.append(_validate_origin("ADDITIONAL_ALLOWED_ORIGINS", entry))

    return tuple(origins)


def load_config(settings: Optional[Settings] = None) -> GatewayConfig:
    """Read the environment and build the gateway configuration."""
    return GatewayConfig.from_settings(settings or Settings())
