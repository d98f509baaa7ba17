# backend/stockflow/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Store; SQLite file in the working directory unless overridden
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "STORE_CONNECTION_URI",
        "sqlite:///stockflow.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer credentials. No default: create_app refuses to start without one
    # unless TESTING is set.
    CREDENTIAL_SIGNING_KEY = os.environ.get("CREDENTIAL_SIGNING_KEY")
    CREDENTIAL_TTL = _int_env("CREDENTIAL_TTL", 86400)

    SERVER_PORT = _int_env("SERVER_PORT", 5000)

    # Comma-separated CORS allowlist
    CLIENT_ORIGIN = os.environ.get("CLIENT_ORIGIN", "http://localhost:5173")

    # Deadlines (seconds) and transaction retry policy
    WRITE_DEADLINE_SECONDS = _float_env("WRITE_DEADLINE_SECONDS", 10.0)
    READ_DEADLINE_SECONDS = _float_env("READ_DEADLINE_SECONDS", 30.0)
    TRANSACTION_RETRY_ATTEMPTS = _int_env("TRANSACTION_RETRY_ATTEMPTS", 5)
    TRANSACTION_RETRY_BASE_BACKOFF = _float_env("TRANSACTION_RETRY_BASE_BACKOFF", 0.025)
    TRANSACTION_RETRY_MAX_BACKOFF = _float_env("TRANSACTION_RETRY_MAX_BACKOFF", 0.2)

    # Stock rows embed only the most recent events; older ones are paged
    AUDIT_HOT_TAIL = _int_env("AUDIT_HOT_TAIL", 50)
    LARGE_ADJUSTMENT_THRESHOLD = _int_env("LARGE_ADJUSTMENT_THRESHOLD", 100)

    EVENT_QUEUE_SIZE = _int_env("EVENT_QUEUE_SIZE", 256)
    EVENT_STREAM_HEARTBEAT_SECONDS = _float_env("EVENT_STREAM_HEARTBEAT_SECONDS", 15.0)

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)
