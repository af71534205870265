from __future__ import annotations

import time
from dataclasses import dataclass, field

from .database import MagazineDatabase
from .hosting import S3Hosting
from .pipeline import UploadPipeline
from .settings import Settings
from .utils import ensure_directory


@dataclass
class AppContext:
    """
    Everything a request handler needs, built once at process start.

    Handlers receive it through ``main.get_context``; nothing else in the
    package holds a process-wide handle.
    """

    settings: Settings
    database: MagazineDatabase
    hosting: object
    pipeline: UploadPipeline
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_settings(cls, settings: Settings, hosting=None) -> "AppContext":
        ensure_directory(settings.upload_dir)
        database = MagazineDatabase(settings.database_path)
        if hosting is None:
            hosting = S3Hosting(
                bucket=settings.s3_bucket_name,
                image_base_url=settings.image_base_url,
                prefix=settings.s3_prefix,
            )
        return cls(
            settings=settings,
            database=database,
            hosting=hosting,
            pipeline=UploadPipeline(database, hosting),
        )

    def uptime(self) -> float:
        return time.monotonic() - self.started_at
