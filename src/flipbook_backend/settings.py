"""
Process settings read from the environment.

Values come from ``os.environ`` after loading an optional ``.env`` file. AWS
credentials are not read here; boto3 resolves them through its default chain.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_str(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key)
    return value.strip() if value and value.strip() else default


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", key, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    database_path: Path
    upload_dir: Path
    max_upload_bytes: int
    s3_bucket_name: str
    s3_prefix: str
    image_base_url: str
    frontend_url: str
    allowed_origin: str
    port: int
    log_level: str

    def share_url(self, share_id: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/view/{share_id}"


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from ``env`` (defaults to the process environment).

    When reading the process environment, a ``.env`` file in the working
    directory is loaded first without overriding variables already set.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    return Settings(
        database_path=Path(_env_str(env, "DATABASE_PATH", "data/flipbook.db")),
        upload_dir=Path(_env_str(env, "UPLOAD_DIR", "uploads")),
        max_upload_bytes=_env_int(env, "MAX_UPLOAD_MB", 50) * 1024 * 1024,
        s3_bucket_name=_env_str(env, "S3_BUCKET_NAME", ""),
        s3_prefix=_env_str(env, "S3_PREFIX", "flipbook").strip("/"),
        image_base_url=_env_str(env, "IMAGE_BASE_URL", ""),
        frontend_url=_env_str(env, "FRONTEND_URL", "http://localhost:5173"),
        allowed_origin=_env_str(env, "ALLOWED_ORIGIN", "*"),
        port=_env_int(env, "PORT", 5000),
        log_level=_env_str(env, "LOG_LEVEL", "INFO"),
    )


def configure_logging(level: str) -> None:
    """Configure root and uvicorn loggers once per process."""
    if getattr(configure_logging, "_configured", False):
        return
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format=LOG_FORMAT, level=lvl)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)
    configure_logging._configured = True
