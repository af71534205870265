"""
PDF metadata extraction.

Only the page count is needed to build a magazine; title and author are read
along the way for logging. Rendering pages is left to the hosting service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from pypdf import PdfReader

from .errors import PdfReadFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PdfMetadata:
    page_count: int
    title: Optional[str] = None
    author: Optional[str] = None


def read_pdf_metadata(data: bytes) -> PdfMetadata:
    """
    Read the page count and document info of a PDF.

    Raises:
        PdfReadFailure: if the bytes are not a readable PDF or it has no pages
    """
    try:
        reader = PdfReader(BytesIO(data))
        if reader.is_encrypted:
            # Most "protected" PDFs only carry an owner password.
            reader.decrypt("")
        page_count = len(reader.pages)
        info = reader.metadata
        title = (info.title if info else None) or None
        author = (info.author if info else None) or None
    except Exception as exc:  # noqa: BLE001
        raise PdfReadFailure(f"Failed to read PDF: {exc}") from exc

    if page_count < 1:
        raise PdfReadFailure("Failed to read PDF: document has no pages")

    metadata = PdfMetadata(page_count=page_count, title=title, author=author)
    logger.debug("Read PDF metadata: %s", metadata)
    return metadata
