"""
core/config.py -- RepoHub settings, read once from the environment.

Every tunable lives on Settings. Modules call get_settings(); nothing else
reads os.environ. Values come from environment variables or a .env file in
the working directory, matched case-insensitively by field name
(database_url <- DATABASE_URL).

Stores never call get_settings() themselves: api/main.py reads the database
URLs in its lifespan and passes them to UserStore / HubStore, and the CLI
does the same. Tests hand the stores in-memory URLs directly.

SECRET_KEY policy:
  DEBUG=true and no key  -> a random key is generated (tokens die on restart)
  DEBUG unset and no key -> startup fails
  any key under 32 chars -> startup fails

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or hub/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("repohub.config")

_DATA_DIR = Path(__file__).resolve().parent.parent

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Environment-backed configuration. Every field has a usable default."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    # "" means unset; validate_secret_key() replaces or rejects it.
    secret_key: str = ""
    token_expire_seconds: int = 8 * 3600

    # Repositories and issues live apart from accounts.
    database_url: str = f"sqlite:///{_DATA_DIR / 'repohub.db'}"
    auth_database_url: str = f"sqlite:///{_DATA_DIR / 'repohub_auth.db'}"

    # "testserver" is the Host header sent by starlette's TestClient.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # slowapi limit strings, per client address
    login_rate_limit: str = "10/minute"
    signup_rate_limit: str = "5/minute"

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is not set. Export SECRET_KEY (32+ characters) or put it in .env; "
                    "for local development only, DEBUG=true generates a throwaway key."
                )
            self.secret_key = secrets.token_hex(_MIN_SECRET_LENGTH)
            logger.warning("DEBUG mode: generated a throwaway SECRET_KEY, tokens will not survive a restart.")
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Build Settings on first call and return the same instance afterwards.

    Tests that change the environment call get_settings.cache_clear().
    """
    return Settings()
