"""
Upload pipeline: turns an uploaded PDF into a ready magazine record.

Steps run strictly in order and each failure stops the ones after it:

1. Generate a share token
2. Derive the display name from the file name
3. Create the record in ``processing``
4. Read the page count from the PDF
5. Upload the original to the hosting service
6. Build one page image URL per page
7. Store the pages and mark the record ``ready``
8. Delete the local temporary file, whatever happened before

A failed step 4 or 5 marks the record ``failed`` with the step's message.
There are no retries; a failed upload has to be submitted again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional
from uuid import uuid4

from .configuration import default_display_config, default_page_image_options
from .database import MagazineDatabase
from .errors import (
    DuplicateRecordError,
    HostingUploadFailure,
    InvalidStatusTransition,
    NoFileProvided,
    PdfReadFailure,
    PipelineError,
)
from .hosting import HostedFile
from .models import MagazineRecord, MagazineStatus, PageImage, PageImageOptions
from .pdf_reader import PdfMetadata, read_pdf_metadata
from .utils import generate_share_id, name_from_filename

logger = logging.getLogger(__name__)

SHARE_ID_ATTEMPTS = 5


@dataclass(frozen=True)
class StoredUpload:
    """An uploaded file already written to a local temporary path."""

    path: Path
    original_filename: str


@dataclass(frozen=True)
class UploadOutcome:
    """
    Tagged result of a pipeline run.

    ``record`` is None only when no record was created (no file provided).
    ``error`` is None exactly when the record reached ``ready``.
    """

    record: Optional[MagazineRecord] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class UploadPipeline:
    """
    Runs the upload steps against a store and a hosting service.

    Args:
        database: Magazine store
        hosting: Object with ``upload_original`` and ``build_page_image_url``
            (see ``hosting.S3Hosting``)
        metadata_reader: Callable reading PDF bytes (default: pypdf based)
        page_image_options: Transformation for page URLs (default: defaults.yaml)
    """

    def __init__(
        self,
        database: MagazineDatabase,
        hosting,
        metadata_reader: Callable[[bytes], PdfMetadata] = read_pdf_metadata,
        page_image_options: Optional[PageImageOptions] = None,
    ) -> None:
        self.database = database
        self.hosting = hosting
        self.metadata_reader = metadata_reader
        self.page_image_options = page_image_options or default_page_image_options()

    def submit(self, upload: Optional[StoredUpload]) -> UploadOutcome:
        """
        Process one upload to completion.

        Pipeline errors are returned in the outcome. Anything else (for
        example the store being unavailable while creating the record)
        propagates to the caller. The temporary file is removed in every case.
        """
        if upload is None:
            return UploadOutcome(error=NoFileProvided())

        try:
            return self._process(upload)
        finally:
            self._cleanup(upload.path)

    def _process(self, upload: StoredUpload) -> UploadOutcome:
        logger.info("Processing upload %s", upload.original_filename)
        record = self._create_record(name_from_filename(upload.original_filename))
        logger.info("Created magazine %s (share id %s)", record.id, record.share_id)

        hosted: Optional[HostedFile] = None
        try:
            data = self._read_upload(upload)
            metadata = self._read_metadata(data)
            self.database.update_magazine(record.id, total_pages=metadata.page_count)
            logger.info("Magazine %s has %d pages", record.id, metadata.page_count)

            hosted = self._upload_original(data, record.id, upload.original_filename)
            self.database.update_magazine(
                record.id, pdf_url=hosted.url, pdf_public_id=hosted.public_id
            )

            pages = self._build_pages(hosted.public_id, metadata.page_count)
            ready = self.database.mark_ready(record.id, pages)
        except PipelineError as exc:
            logger.warning("Magazine %s failed at %s: %s", record.id, exc.step, exc.message)
            failed = self.database.mark_failed(record.id, exc.message)
            return UploadOutcome(record=failed, error=exc)
        except Exception as exc:
            logger.exception("Magazine %s failed unexpectedly", record.id)
            self._abandon(record.id, hosted, f"Unexpected processing error: {exc}")
            raise

        logger.info("Magazine %s ready", record.id)
        return UploadOutcome(record=ready)

    def _create_record(self, name: str) -> MagazineRecord:
        """Insert a processing record, drawing a new share token on collision."""
        attempt = 0
        while True:
            attempt += 1
            now = datetime.now(tz=timezone.utc)
            record = MagazineRecord(
                id=uuid4().hex,
                share_id=generate_share_id(),
                name=name,
                config=default_display_config(),
                status=MagazineStatus.PROCESSING,
                created_at=now,
                updated_at=now,
            )
            try:
                return self.database.create_magazine(record)
            except DuplicateRecordError:
                if attempt >= SHARE_ID_ATTEMPTS:
                    raise
                logger.warning("Share id collision, retrying (attempt %d)", attempt)

    def _read_upload(self, upload: StoredUpload) -> bytes:
        try:
            return upload.path.read_bytes()
        except OSError as exc:
            raise PdfReadFailure(f"Failed to read PDF: {exc}") from exc

    def _read_metadata(self, data: bytes) -> PdfMetadata:
        try:
            return self.metadata_reader(data)
        except PipelineError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise PdfReadFailure(f"Failed to read PDF: {exc}") from exc

    def _upload_original(self, data: bytes, magazine_id: str, filename: str) -> HostedFile:
        try:
            return self.hosting.upload_original(data, magazine_id, filename)
        except PipelineError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise HostingUploadFailure(f"Failed to upload PDF: {exc}") from exc

    def _build_pages(self, public_id: str, page_count: int) -> List[PageImage]:
        options = self.page_image_options
        return [
            PageImage(
                page_number=number,
                image_url=self.hosting.build_page_image_url(public_id, number, options),
                public_id=f"{public_id}_page_{number}",
                width=options.width,
                height=options.height,
            )
            for number in range(1, page_count + 1)
        ]

    def _abandon(self, magazine_id: str, hosted: Optional[HostedFile], message: str) -> None:
        """
        Mark a magazine failed after an unexpected error.

        If the record is gone (deleted while processing), the original
        uploaded for it is released instead.
        """
        try:
            self.database.mark_failed(magazine_id, message)
            return
        except InvalidStatusTransition as exc:
            logger.warning("Could not mark magazine %s failed: %s", magazine_id, exc)

        if hosted is not None and self.database.get_magazine(magazine_id) is None:
            logger.info("Magazine %s deleted during processing, releasing %s", magazine_id, hosted.public_id)
            if not self.hosting.delete_original(hosted.public_id):
                logger.warning("Could not release original %s", hosted.public_id)

    def _cleanup(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Temp file cleanup failed for %s: %s", path, exc)
