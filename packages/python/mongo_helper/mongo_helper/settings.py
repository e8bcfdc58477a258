"""Configuration helpers for the MongoDB connection used by mongo_helper.

Applications can create a ``MongoSettings`` instance at startup and hand it to
``Mongo.connect`` (or let ``configure`` fall back to these defaults). Values
left unset are read from the environment; the nearest ``.env`` is loaded first.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus

from dotenv import find_dotenv, load_dotenv
from loguru import logger
from pydantic import BaseModel, Field

# Search for the nearest .env so running from subdirectories still loads root config.
load_dotenv(find_dotenv(usecwd=True))

DEFAULT_TIMEOUT_SECONDS = 10.0
_TRUTHY = {"1", "true", "yes", "y", "on"}


def build_uri(
    username: str,
    password: str,
    host: str,
    port: str | int,
    auth_database: str = "",
    remote: bool = False,
) -> str:
    """Return a connection string for the given credentials and address.

    The standard form is ``mongodb://[user:pass@]host:port/[authDB]``. The
    remote form uses SRV discovery, so it carries no port:
    ``mongodb+srv://[user:pass@]host/[authDB]?retryWrites=true&w=majority``.
    """

    credentials = ""
    if username or password:
        credentials = f"{quote_plus(username)}:{quote_plus(password)}@"

    if remote:
        return f"mongodb+srv://{credentials}{host}/{auth_database}?retryWrites=true&w=majority"
    return f"mongodb://{credentials}{host}:{port}/{auth_database}"


def redact_uri(uri: str) -> str:
    """Hide the credentials part of a connection string for logging."""

    scheme, sep, rest = uri.partition("://")
    if not sep or "@" not in rest.split("/", 1)[0]:
        return uri
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


class MongoSettings(BaseModel):
    """Connection parameters for the shared MongoDB client."""

    username: str = Field(default_factory=lambda: os.getenv("MONGO_USERNAME", ""))
    password: str = Field(default_factory=lambda: os.getenv("MONGO_PASSWORD", ""))
    host: str = Field(default_factory=lambda: os.getenv("MONGO_HOST", "localhost"))
    port: str = Field(default_factory=lambda: os.getenv("MONGO_PORT", "27017"))
    auth_database: str = Field(default_factory=lambda: os.getenv("MONGO_AUTH_DB", ""))
    remote: bool = Field(
        default_factory=lambda: os.getenv("MONGO_REMOTE", "false").strip().lower() in _TRUTHY
    )
    timeout_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("MONGO_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))
        ),
        gt=0,
    )

    @property
    def uri(self) -> str:
        return build_uri(
            self.username,
            self.password,
            self.host,
            self.port,
            self.auth_database,
            self.remote,
        )


def _default_settings() -> "MongoSettings":
    """Settings built from the environment at import time."""

    return MongoSettings()


settings: MongoSettings = _default_settings()
logger.debug(
    "MongoSettings initialized with uri={uri} timeout={timeout}s",
    uri=redact_uri(settings.uri),
    timeout=settings.timeout_seconds,
)
