# Configuration module for server-side constants and defaults.
# Values come from the environment (or a .env file) through Settings;
# the module-level names below are what the rest of the package imports.

import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_SECRET = "change-me-in-prod-please"


class Settings(BaseSettings):
    # "development" | "test" | "production"
    ENV: str = "development"

    # Secret salt mixed into the daily word derivation. Keep it private.
    WORD_SALT: str = ""
    # "daily" derives the word from the date; "random" picks a fresh word per session.
    SOLUTION_MODE: str = "daily"

    # Directory holding words_<lang>.txt (5-letter target words, one per line).
    WORDS_DIR: Path = Path(__file__).parent / "data"

    # SQLAlchemy URL for profiles, daily results, streaks and the reward ledger.
    DATABASE_URL: str = f"sqlite:///{Path(__file__).parent / 'wordcast.db'}"

    # Calendar days roll over in this zone.
    TIMEZONE: str = "Europe/Istanbul"

    CORS_ORIGINS: str = "*"  # comma-separated

    # Admin tokens are signed with this key and expire after ADMIN_TOKEN_MAX_AGE seconds.
    ADMIN_SECRET: str = DEFAULT_ADMIN_SECRET
    ADMIN_TOKEN_MAX_AGE: int = 60 * 60 * 12

    # Dev/test override: never put sessions in practice mode.
    FORCE_RANKED: bool = False
    # Identity used when no x-farcaster-fid header is sent, development only.
    DEV_FID: int = 12345

    # Payment relay that signs and broadcasts reward transfers.
    PAYMENT_RELAY_URL: str = ""
    PAYMENT_RELAY_KEY: str = ""
    PAYMENT_TIMEOUT_SEC: float = 15.0

    # Weekly prize per leaderboard rank, in USD.
    REWARD_AMOUNTS: Dict[int, int] = {1: 10, 2: 5, 3: 3}

    # One hint per session, enforced on the server.
    ENFORCE_SINGLE_HINT: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None  # defaults to True in production

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def validate_config(env: str, settings_obj: Optional[Settings] = None,
                    logger: Optional[logging.Logger] = None) -> None:
    """Check secrets before serving.

    Production refuses to start with the default admin secret, since admin
    tokens authorize reward payouts. Elsewhere problems are only logged.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("wordcast")
    if not cfg.WORD_SALT:
        log.warning("WORD_SALT is not set; daily words are predictable.")
    if cfg.ADMIN_SECRET == DEFAULT_ADMIN_SECRET:
        if env == "production":
            raise RuntimeError("ADMIN_SECRET must be set in production")
        log.warning("ADMIN_SECRET is the default; admin tokens can be forged.")


ENV = settings.ENV
WORD_SALT = settings.WORD_SALT
SOLUTION_MODE = settings.SOLUTION_MODE

# Rules of the game.
MAX_ATTEMPTS = 6
WORD_LENGTH = 5
LANGUAGES = ("en", "tr")

WORDS_DIR = settings.WORDS_DIR
DATABASE_URL = settings.DATABASE_URL
TIMEZONE = settings.TIMEZONE
CORS_ORIGINS = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]

ADMIN_SECRET = settings.ADMIN_SECRET
ADMIN_TOKEN_MAX_AGE = settings.ADMIN_TOKEN_MAX_AGE

FORCE_RANKED = settings.FORCE_RANKED
DEV_FID = settings.DEV_FID

PAYMENT_RELAY_URL = settings.PAYMENT_RELAY_URL
PAYMENT_RELAY_KEY = settings.PAYMENT_RELAY_KEY
PAYMENT_TIMEOUT_SEC = settings.PAYMENT_TIMEOUT_SEC

REWARD_AMOUNTS = settings.REWARD_AMOUNTS
ENFORCE_SINGLE_HINT = settings.ENFORCE_SINGLE_HINT

LOG_LEVEL = settings.LOG_LEVEL
LOG_JSON = settings.LOG_JSON if settings.LOG_JSON is not None else ENV == "production"

VERSION = "1.4.0"
