"""
Pytest configuration and fixtures for Flipbook Backend tests.
"""

from datetime import datetime, timezone
from io import BytesIO
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfWriter

from flipbook_backend.configuration import default_display_config
from flipbook_backend.context import AppContext
from flipbook_backend.errors import HostingUploadFailure
from flipbook_backend.hosting import HostedFile, S3Hosting
from flipbook_backend.main import create_app
from flipbook_backend.models import MagazineRecord, MagazineStatus
from flipbook_backend.pipeline import StoredUpload
from flipbook_backend.settings import load_settings

IMAGE_BASE_URL = "https://res.cloudinary.com/demo/image/upload"


class FakeHosting(S3Hosting):
    """S3Hosting with the network calls replaced by in-memory bookkeeping."""

    def __init__(self):
        super().__init__(bucket="test-bucket", image_base_url=IMAGE_BASE_URL)
        self.uploads = []
        self.deleted = []
        self.fail_uploads = False

    def upload_original(self, data, namespace, filename):
        if self.fail_uploads:
            raise HostingUploadFailure("Failed to upload PDF: simulated outage")
        public_id = f"{self.prefix}/{namespace}/{filename.rsplit('.', 1)[0]}"
        self.uploads.append({"namespace": namespace, "filename": filename, "size": len(data)})
        return HostedFile(url=f"https://s3.example.test/test-bucket/{public_id}.pdf", public_id=public_id)

    def delete_original(self, public_id):
        self.deleted.append(public_id)
        return True

    def check_connection(self):
        return True


def build_pdf(pages: int = 3) -> bytes:
    """Create an in-memory PDF with ``pages`` blank pages."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway database and upload directory."""
    return load_settings(env={
        "DATABASE_PATH": str(tmp_path / "data" / "flipbook.db"),
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "MAX_UPLOAD_MB": "1",
        "FRONTEND_URL": "https://flip.example.test",
    })


@pytest.fixture
def hosting():
    return FakeHosting()


@pytest.fixture
def context(settings, hosting):
    return AppContext.from_settings(settings, hosting=hosting)


@pytest.fixture
def database(context):
    return context.database


@pytest.fixture
def client(context):
    """Create a test client for the FastAPI app."""
    return TestClient(create_app(context))


@pytest.fixture
def pdf_bytes():
    """Factory for valid PDFs with a given page count."""
    return build_pdf


@pytest.fixture
def stored_upload(settings):
    """Factory writing bytes to the upload directory, as the API does."""

    def _make(data: bytes, filename: str = "report.pdf") -> StoredUpload:
        path = settings.upload_dir / f"{uuid4().hex}-{filename}"
        path.write_bytes(data)
        return StoredUpload(path=path, original_filename=filename)

    return _make


@pytest.fixture
def processing_record(database):
    """Insert a record that is still processing."""
    now = datetime.now(tz=timezone.utc)
    record = MagazineRecord(
        id=uuid4().hex,
        share_id="pending0001",
        name="Pending issue",
        config=default_display_config(),
        status=MagazineStatus.PROCESSING,
        created_at=now,
        updated_at=now,
    )
    return database.create_magazine(record)


@pytest.fixture
def upload_pdf(client, pdf_bytes):
    """Upload a PDF through the API and return the response."""

    def _upload(pages: int = 3, filename: str = "report.pdf"):
        return client.post(
            "/api/magazines/upload",
            files={"pdf": (filename, pdf_bytes(pages), "application/pdf")},
        )

    return _upload
