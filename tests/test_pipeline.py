"""
Tests for the upload pipeline and the status state machine.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import fields

import pytest

from flipbook_backend import pipeline as pipeline_module
from flipbook_backend.errors import (
    HostingUploadFailure,
    InvalidStatusTransition,
    NoFileProvided,
    PdfReadFailure,
)
from flipbook_backend.models import MagazineStatus, PageImageOptions
from flipbook_backend.pipeline import StoredUpload, UploadPipeline


class TestSuccessfulUpload:
    """A valid PDF ends as a ready record with one page per PDF page."""

    def test_three_page_report(self, context, stored_upload, pdf_bytes):
        upload = stored_upload(pdf_bytes(3), "report.pdf")

        outcome = context.pipeline.submit(upload)

        assert outcome.ok
        record = outcome.record
        assert record.name == "report"
        assert record.status == MagazineStatus.READY
        assert record.total_pages == 3
        assert [page.page_number for page in record.pages] == [1, 2, 3]
        assert all(page.image_url for page in record.pages)
        assert record.error_message is None

    def test_page_urls_use_transformation(self, context, stored_upload, pdf_bytes):
        outcome = context.pipeline.submit(stored_upload(pdf_bytes(2)))

        record = outcome.record
        first = record.pages[0]
        assert first.image_url == (
            "https://res.cloudinary.com/demo/image/upload/"
            f"pg_1,w_1200,h_1600,c_limit,q_auto/{record.pdf_public_id}.jpg"
        )
        assert first.public_id == f"{record.pdf_public_id}_page_1"
        assert (first.width, first.height) == (1200, 1600)

    def test_original_is_namespaced_by_record_id(self, context, hosting, stored_upload, pdf_bytes):
        outcome = context.pipeline.submit(stored_upload(pdf_bytes(1)))

        assert hosting.uploads[0]["namespace"] == outcome.record.id
        assert outcome.record.pdf_url.endswith(".pdf")
        assert outcome.record.pdf_public_id.startswith(f"flipbook/{outcome.record.id}/")

    def test_record_is_persisted(self, context, database, stored_upload, pdf_bytes):
        outcome = context.pipeline.submit(stored_upload(pdf_bytes(3)))

        stored = database.get_magazine(outcome.record.id)
        assert stored.status == MagazineStatus.READY
        assert len(stored.pages) == stored.total_pages == 3

    def test_temp_file_removed(self, context, stored_upload, pdf_bytes):
        upload = stored_upload(pdf_bytes(1))

        context.pipeline.submit(upload)

        assert not upload.path.exists()

    def test_custom_page_image_options(self, database, hosting, stored_upload, pdf_bytes):
        options = PageImageOptions(width=600, height=800, quality="80", format="webp")
        pipeline = UploadPipeline(database, hosting, page_image_options=options)

        record = pipeline.submit(stored_upload(pdf_bytes(1))).record

        assert "pg_1,w_600,h_800,c_limit,q_80/" in record.pages[0].image_url
        assert record.pages[0].image_url.endswith(".webp")


class TestFailedUpload:
    """Failures mark the record failed, keep no pages and still clean up."""

    def test_metadata_reader_throwing(self, database, hosting, stored_upload, pdf_bytes):
        def broken_reader(data):
            raise RuntimeError("parser exploded")

        pipeline = UploadPipeline(database, hosting, metadata_reader=broken_reader)
        upload = stored_upload(pdf_bytes(3))

        outcome = pipeline.submit(upload)

        assert not outcome.ok
        assert isinstance(outcome.error, PdfReadFailure)
        assert outcome.record.status == MagazineStatus.FAILED
        assert outcome.record.error_message
        assert "parser exploded" in outcome.record.error_message
        assert outcome.record.pages == []
        assert not upload.path.exists()
        assert hosting.uploads == []

    def test_malformed_pdf(self, context, stored_upload):
        upload = stored_upload(b"this is not a pdf", "notes.pdf")

        outcome = context.pipeline.submit(upload)

        assert isinstance(outcome.error, PdfReadFailure)
        assert outcome.record.status == MagazineStatus.FAILED
        assert outcome.record.error_message.startswith("Failed to read PDF")
        assert not upload.path.exists()

    def test_hosting_upload_failure(self, context, hosting, database, stored_upload, pdf_bytes):
        hosting.fail_uploads = True
        upload = stored_upload(pdf_bytes(2))

        outcome = context.pipeline.submit(upload)

        assert isinstance(outcome.error, HostingUploadFailure)
        stored = database.get_magazine(outcome.record.id)
        assert stored.status == MagazineStatus.FAILED
        assert stored.pages == []
        assert stored.pdf_public_id is None
        assert stored.error_message == "Failed to upload PDF: simulated outage"
        assert not upload.path.exists()

    def test_hosting_raising_unexpected_error(self, database, stored_upload, pdf_bytes):
        class ExplodingHosting:
            def upload_original(self, data, namespace, filename):
                raise ConnectionError("connection reset")

        pipeline = UploadPipeline(database, ExplodingHosting())

        outcome = pipeline.submit(stored_upload(pdf_bytes(1)))

        assert isinstance(outcome.error, HostingUploadFailure)
        assert "connection reset" in outcome.record.error_message

    def test_no_file_creates_no_record(self, context, database):
        outcome = context.pipeline.submit(None)

        assert isinstance(outcome.error, NoFileProvided)
        assert outcome.record is None
        assert database.count_magazines() == 0


class TestUnexpectedFailures:
    """Errors outside the pipeline taxonomy propagate after bookkeeping."""

    def test_store_error_marks_record_failed(self, context, database, stored_upload, pdf_bytes, monkeypatch):
        seen = []

        def broken_mark_ready(magazine_id, pages):
            seen.append(magazine_id)
            raise RuntimeError("disk full")

        monkeypatch.setattr(database, "mark_ready", broken_mark_ready)
        upload = stored_upload(pdf_bytes(2))

        with pytest.raises(RuntimeError, match="disk full"):
            context.pipeline.submit(upload)

        stored = database.get_magazine(seen[0])
        assert stored.status == MagazineStatus.FAILED
        assert stored.error_message == "Unexpected processing error: disk full"
        assert stored.pages == []
        assert not upload.path.exists()

    def test_page_count_update_error(self, context, database, stored_upload, pdf_bytes, monkeypatch):
        def broken_update(magazine_id, **fields):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(database, "update_magazine", broken_update)
        upload = stored_upload(pdf_bytes(1))

        with pytest.raises(RuntimeError):
            context.pipeline.submit(upload)

        assert database.count_magazines() == 1
        assert database.list_ready(0, 10) == ([], 0)
        assert not upload.path.exists()

    def test_record_creation_error_propagates(self, context, database, hosting, stored_upload, pdf_bytes, monkeypatch):
        def broken_create(record):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(database, "create_magazine", broken_create)
        upload = stored_upload(pdf_bytes(1))

        with pytest.raises(RuntimeError, match="database unavailable"):
            context.pipeline.submit(upload)

        assert database.count_magazines() == 0
        assert hosting.uploads == []
        assert not upload.path.exists()

    def test_deleted_while_processing_releases_original(self, context, database, hosting, stored_upload, pdf_bytes, monkeypatch):
        upload_original = hosting.upload_original

        def upload_then_delete(data, namespace, filename):
            hosted = upload_original(data, namespace, filename)
            database.delete_magazine(namespace)
            return hosted

        monkeypatch.setattr(hosting, "upload_original", upload_then_delete)
        upload = stored_upload(pdf_bytes(2))

        with pytest.raises(InvalidStatusTransition, match="from missing to ready"):
            context.pipeline.submit(upload)

        namespace = hosting.uploads[0]["namespace"]
        assert database.get_magazine(namespace) is None
        assert hosting.deleted == [f"flipbook/{namespace}/report"]
        assert not upload.path.exists()


class TestStoredUpload:
    def test_fields(self):
        assert [field.name for field in fields(StoredUpload)] == ["path", "original_filename"]


class TestStatusTransitions:
    """Terminal states are never left and processing is never re-entered."""

    def test_ready_is_terminal(self, context, database, stored_upload, pdf_bytes):
        record = context.pipeline.submit(stored_upload(pdf_bytes(1))).record

        with pytest.raises(InvalidStatusTransition):
            database.mark_failed(record.id, "too late")
        assert database.get_magazine(record.id).status == MagazineStatus.READY

    def test_failed_is_terminal(self, database, processing_record):
        database.mark_failed(processing_record.id, "broken")

        with pytest.raises(InvalidStatusTransition):
            database.mark_ready(processing_record.id, [])
        assert database.get_magazine(processing_record.id).status == MagazineStatus.FAILED

    def test_missing_record(self, database):
        with pytest.raises(InvalidStatusTransition):
            database.mark_failed("does-not-exist", "broken")

    def test_processing_has_no_pages(self, processing_record):
        assert processing_record.status == MagazineStatus.PROCESSING
        assert processing_record.pages == []


class TestShareIds:
    """Share tokens stay unique."""

    def test_parallel_uploads_get_distinct_share_ids(self, context, stored_upload, pdf_bytes):
        uploads = [stored_upload(pdf_bytes(1), f"issue-{i}.pdf") for i in range(8)]

        with ThreadPoolExecutor(max_workers=4) as executor:
            outcomes = list(executor.map(context.pipeline.submit, uploads))

        assert all(outcome.ok for outcome in outcomes)
        share_ids = {outcome.record.share_id for outcome in outcomes}
        assert len(share_ids) == len(uploads)

    def test_collision_draws_a_new_token(self, context, stored_upload, pdf_bytes, monkeypatch):
        tokens = iter(["dupdupdup1", "dupdupdup1", "fresh00001"])
        monkeypatch.setattr(pipeline_module, "generate_share_id", lambda: next(tokens))

        first = context.pipeline.submit(stored_upload(pdf_bytes(1)))
        second = context.pipeline.submit(stored_upload(pdf_bytes(1)))

        assert first.record.share_id == "dupdupdup1"
        assert second.record.share_id == "fresh00001"
