"""Runtime settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).resolve().parent
DATA_DIR = BACKEND_DIR / "data"

DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    database: str = str(DATA_DIR / "analytics.duckdb")
    upload_dir: Path = DATA_DIR / "uploads"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


def load_settings() -> Settings:
    load_dotenv()

    raw_max = os.getenv("ANALYTICS_MAX_UPLOAD_BYTES")
    try:
        max_upload_bytes = int(raw_max) if raw_max else DEFAULT_MAX_UPLOAD_BYTES
    except ValueError as exc:
        raise ValueError(
            f"ANALYTICS_MAX_UPLOAD_BYTES must be an integer, got {raw_max!r}"
        ) from exc

    origins = os.getenv("ANALYTICS_CORS_ORIGINS", "*")
    return Settings(
        database=os.getenv("ANALYTICS_DATABASE", str(DATA_DIR / "analytics.duckdb")),
        upload_dir=Path(os.getenv("ANALYTICS_UPLOAD_DIR", str(DATA_DIR / "uploads"))),
        max_upload_bytes=max_upload_bytes,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
