# backend/repairdesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Shared with the identity provider; signs actor tokens and storage URLs
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///repairdesk.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Actor tokens issued by the identity provider
    ACTOR_TOKEN_MAX_AGE_SECONDS = int(os.environ.get("ACTOR_TOKEN_MAX_AGE_SECONDS", "43200"))

    # Object storage: one public bucket (branding) and one private bucket (order evidence)
    STORAGE_ROOT = os.environ.get("STORAGE_ROOT", "storage")
    PUBLIC_BUCKET = os.environ.get("PUBLIC_BUCKET", "branding")
    EVIDENCE_BUCKET = os.environ.get("EVIDENCE_BUCKET", "order-evidence")
    SIGNED_URL_TTL_SECONDS = int(os.environ.get("SIGNED_URL_TTL_SECONDS", str(60 * 60 * 24)))

    # Outbound webhooks (fire-once, no retry)
    WEBHOOK_TIMEOUT_SECONDS = float(os.environ.get("WEBHOOK_TIMEOUT_SECONDS", "5.0"))

    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", False)
    # httpx transport override for outbound webhooks; None uses the network
    WEBHOOK_TRANSPORT = None

    # Browser origins allowed to call the API
    CORS_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        ).split(",") if o.strip()
    )
