# config.py
# Loads settings from the environment (.env in dev) once and hands them out.
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import find_dotenv, load_dotenv

from errors import ConfigurationError

# Load .env BEFORE anything reads os.getenv (no-op when there's no .env, e.g. on Railway)
load_dotenv(find_dotenv())

REQUIRED_VARS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "APP_URL")


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    app_url: str
    database_url: str | None = None
    app_env: str = "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def auth_callback_url(self) -> str:
        # Magic links always come back to this fixed path
        return f"{self.app_url.rstrip('/')}/auth/callback"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings from the environment. Missing required values are fatal."""
    missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
    if missing:
        raise ConfigurationError(f"Missing environment variable(s): {', '.join(missing)}")

    return Settings(
        supabase_url=os.getenv("SUPABASE_URL").rstrip("/"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
        app_url=os.getenv("APP_URL").rstrip("/"),
        database_url=os.getenv("DATABASE_URL"),
        app_env=os.getenv("APP_ENV", "production").lower(),
    )


def is_development() -> bool:
    """True when APP_ENV=development. Doesn't require the rest of the config to be present."""
    return os.getenv("APP_ENV", "production").lower() == "development"
