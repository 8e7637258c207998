# voteledger/config.py
# Central place for thresholds and constants, overridable from the environment / .env
import json
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

# Store backends
MEMORY_BACKEND = "memory"
MONGO_BACKEND = "mongo"

# Feed transports
PUSH_TRANSPORT = "push"
POLL_TRANSPORT = "poll"

# Polling clients should stay within this window (seconds)
MAX_POLL_INTERVAL = 5.0

DEFAULT_CANDIDATES = ["Candidate A", "Candidate B"]


class Settings(BaseModel):
    store_backend: str = MEMORY_BACKEND
    mongo_uri: Optional[str] = None
    mongo_db: str = "vote_ledger"
    candidates: List[str] = Field(default_factory=lambda: list(DEFAULT_CANDIDATES))

    # Every lock acquire / Mongo round-trip is bounded by this
    store_timeout_seconds: float = Field(5.0, gt=0)
    increment_retries: int = Field(3, ge=1)
    retry_backoff_seconds: float = Field(0.1, ge=0)

    feed_transport: str = PUSH_TRANSPORT
    feed_poll_interval: float = 3.0
    feed_stream_seconds: float = Field(300.0, gt=0)

    secret_key: str = "a_very_secret_key_for_dev_only"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    admin_username: str = "admin"
    admin_password_hash: Optional[str] = None

    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )

    @field_validator("store_backend")
    @classmethod
    def _known_backend(cls, v: str) -> str:
        if v not in (MEMORY_BACKEND, MONGO_BACKEND):
            raise ValueError(f"STORE_BACKEND must be '{MEMORY_BACKEND}' or '{MONGO_BACKEND}'")
        return v

    @field_validator("feed_transport")
    @classmethod
    def _known_transport(cls, v: str) -> str:
        if v not in (PUSH_TRANSPORT, POLL_TRANSPORT):
            raise ValueError(f"FEED_TRANSPORT must be '{PUSH_TRANSPORT}' or '{POLL_TRANSPORT}'")
        return v

    @field_validator("feed_poll_interval")
    @classmethod
    def _bounded_interval(cls, v: float) -> float:
        if not 0 < v <= MAX_POLL_INTERVAL:
            raise ValueError(f"FEED_POLL_INTERVAL must be in (0, {MAX_POLL_INTERVAL}]")
        return v


def _env_list(name: str) -> Optional[List[str]]:
    raw = os.getenv(name)
    if not raw:
        return None
    return json.loads(raw)


def load_settings() -> Settings:
    """Build Settings from environment variables (after .env has been loaded)."""
    values = {
        "store_backend": os.getenv("STORE_BACKEND"),
        "mongo_uri": os.getenv("MONGO_URI"),
        "mongo_db": os.getenv("MONGO_DB"),
        "candidates": _env_list("CANDIDATES_JSON"),
        "store_timeout_seconds": os.getenv("STORE_TIMEOUT_SECONDS"),
        "increment_retries": os.getenv("INCREMENT_RETRIES"),
        "retry_backoff_seconds": os.getenv("RETRY_BACKOFF_SECONDS"),
        "feed_transport": os.getenv("FEED_TRANSPORT"),
        "feed_poll_interval": os.getenv("FEED_POLL_INTERVAL"),
        "feed_stream_seconds": os.getenv("FEED_STREAM_SECONDS"),
        "secret_key": os.getenv("SECRET_KEY"),
        "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES"),
        "admin_username": os.getenv("ADMIN_USERNAME"),
        "admin_password_hash": os.getenv("ADMIN_PASSWORD_HASH"),
        "cors_origins": _env_list("CORS_ORIGINS"),
    }
    # unset or empty variables fall back to the model defaults
    return Settings(**{k: v for k, v in values.items() if v not in (None, "")})
