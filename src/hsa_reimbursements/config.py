"""Service configuration, read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    bucket_name: str
    jwt_key: str
    jwt_algorithms: tuple[str, ...] = ("HS256",)
    jwt_audience: str | None = None
    jwt_issuer: str | None = None
    database_url: str = "sqlite:///hsa-reimbursements.db"
    api_prefix: str = "/api"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    max_upload_bytes: int = 10 * 1024 * 1024
    receipt_url_ttl_seconds: int = 3600
    log_level: str = "INFO"


def _split(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_settings(environ: Mapping[str, str] = os.environ) -> Settings:
    """Build settings from environment variables.

    BUCKET_NAME and AUTH_JWT_KEY are required; everything else has a default.
    """
    return Settings(
        bucket_name=environ["BUCKET_NAME"],
        jwt_key=environ["AUTH_JWT_KEY"],
        jwt_algorithms=_split(environ.get("AUTH_JWT_ALGORITHMS", "HS256")),
        jwt_audience=environ.get("AUTH_JWT_AUDIENCE") or None,
        jwt_issuer=environ.get("AUTH_JWT_ISSUER") or None,
        database_url=environ.get("DATABASE_URL", Settings.database_url),
        api_prefix=environ.get("API_PREFIX", Settings.api_prefix).rstrip("/"),
        cors_origins=_split(environ.get("CORS_ORIGINS", "http://localhost:3000")),
        max_upload_bytes=int(environ.get("MAX_UPLOAD_BYTES", Settings.max_upload_bytes)),
        receipt_url_ttl_seconds=int(environ.get("RECEIPT_URL_TTL_SECONDS", Settings.receipt_url_ttl_seconds)),
        log_level=environ.get("LOG_LEVEL", Settings.log_level).upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for the running process, loaded once."""
    return load_settings()
