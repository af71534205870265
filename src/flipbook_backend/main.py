from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
from uuid import uuid4

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from .configuration import build_config_metadata, merge_display_config
from .context import AppContext
from .errors import ConfigOptionError, DuplicateRecordError, NoFileProvided
from .hosting import PDF_CONTENT_TYPE
from .middleware import RequestLoggingMiddleware
from .models import (
    ConfigMetadataResponse,
    HealthResponse,
    MagazineListResponse,
    MagazineRecord,
    MagazineResponse,
    MagazineStatus,
    MagazineStatusResponse,
    MagazineStatusView,
    MagazineSummary,
    MessageResponse,
    Pagination,
    UpdateMagazineRequest,
)
from .pipeline import StoredUpload
from .settings import Settings, configure_logging, load_settings
from .utils import format_file_size, sanitize_filename

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

router = APIRouter(prefix="/api")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def _present(record: MagazineRecord, settings: Settings) -> MagazineRecord:
    return record.model_copy(update={"share_url": settings.share_url(record.share_id)})


def _get_or_404(context: AppContext, magazine_id: str) -> MagazineRecord:
    record = context.database.get_magazine(magazine_id)
    if not record:
        raise HTTPException(status_code=404, detail="Magazine not found")
    return record


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value > 0 else default


async def _store_upload(file: UploadFile, settings: Settings) -> StoredUpload:
    """Stream an upload to the temp directory, enforcing the size limit."""
    limit = settings.max_upload_bytes
    too_large = f"File too large. Maximum size is {format_file_size(limit)}."
    if file.size is not None and file.size > limit:
        raise HTTPException(status_code=400, detail=too_large)

    filename = file.filename or "document.pdf"
    destination = settings.upload_dir / f"{uuid4().hex}-{sanitize_filename(filename)}"
    written = 0
    try:
        with destination.open("wb") as buffer:
            while chunk := await file.read(UPLOAD_CHUNK_SIZE):
                written += len(chunk)
                if written > limit:
                    raise HTTPException(status_code=400, detail=too_large)
                buffer.write(chunk)
    except BaseException:
        destination.unlink(missing_ok=True)
        raise
    finally:
        await file.close()

    return StoredUpload(path=destination, original_filename=filename)


@router.get("/health", response_model=HealthResponse)
def healthcheck(context: AppContext = Depends(get_context)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(tz=timezone.utc),
        uptime=context.uptime(),
    )


@router.get("/config/defaults", response_model=ConfigMetadataResponse)
def get_config_defaults() -> ConfigMetadataResponse:
    return ConfigMetadataResponse(data=build_config_metadata())


@router.get("/magazines", response_model=MagazineListResponse)
def list_magazines(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    context: AppContext = Depends(get_context),
) -> MagazineListResponse:
    page_number = _positive_int(page, 1)
    page_size = min(_positive_int(limit, DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)

    records, total = context.database.list_ready((page_number - 1) * page_size, page_size)
    summaries = [
        MagazineSummary(
            id=record.id,
            name=record.name,
            share_id=record.share_id,
            total_pages=record.total_pages,
            created_at=record.created_at,
            updated_at=record.updated_at,
            background_color=record.config.background_color,
            thumbnail=record.thumbnail,
        )
        for record in records
    ]
    return MagazineListResponse(
        data=summaries,
        pagination=Pagination(
            page=page_number,
            limit=page_size,
            total=total,
            pages=math.ceil(total / page_size),
            has_more=page_number * page_size < total,
        ),
    )


@router.post("/magazines/upload", response_model=MagazineResponse, status_code=201)
async def create_magazine(request: Request, context: AppContext = Depends(get_context)) -> MagazineResponse:
    form = await request.form()
    try:
        files = [item for item in form.getlist("pdf") if isinstance(item, UploadFile) and item.filename]
        if len(files) > 1:
            raise HTTPException(status_code=400, detail="Too many files. Only 1 file allowed.")

        upload = None
        if files:
            pdf = files[0]
            if (pdf.content_type or "").lower() != PDF_CONTENT_TYPE:
                raise HTTPException(status_code=400, detail="Only PDF files are allowed")
            upload = await _store_upload(pdf, context.settings)
    finally:
        await form.close()

    outcome = await run_in_threadpool(context.pipeline.submit, upload)
    if outcome.ok:
        return MagazineResponse(data=_present(outcome.record, context.settings))
    if isinstance(outcome.error, NoFileProvided):
        raise HTTPException(status_code=400, detail=outcome.error.message)
    raise HTTPException(status_code=500, detail=outcome.error.message)


@router.get("/magazines/share/{share_id}", response_model=MagazineResponse)
def get_magazine_by_share_id(share_id: str, context: AppContext = Depends(get_context)):
    record = context.database.get_by_share_id(share_id)
    if not record:
        raise HTTPException(status_code=404, detail="Magazine not found")

    if record.status != MagazineStatus.READY:
        message = (
            "Magazine is still processing"
            if record.status == MagazineStatus.PROCESSING
            else "Magazine processing failed"
        )
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": message, "status": record.status.value},
        )

    return MagazineResponse(data=_present(record, context.settings))


@router.get("/magazines/{magazine_id}", response_model=MagazineResponse)
def get_magazine(magazine_id: str, context: AppContext = Depends(get_context)) -> MagazineResponse:
    record = _get_or_404(context, magazine_id)
    return MagazineResponse(data=_present(record, context.settings))


@router.get("/magazines/{magazine_id}/status", response_model=MagazineStatusResponse)
def get_magazine_status(magazine_id: str, context: AppContext = Depends(get_context)) -> MagazineStatusResponse:
    record = _get_or_404(context, magazine_id)
    return MagazineStatusResponse(
        data=MagazineStatusView(
            id=record.id,
            name=record.name,
            share_id=record.share_id,
            status=record.status,
            total_pages=record.total_pages,
            error_message=record.error_message,
        )
    )


@router.put("/magazines/{magazine_id}", response_model=MagazineResponse)
def update_magazine(
    magazine_id: str,
    payload: UpdateMagazineRequest,
    context: AppContext = Depends(get_context),
) -> MagazineResponse:
    record = _get_or_404(context, magazine_id)

    fields: Dict[str, Any] = {}
    if payload.name is not None:
        fields["name"] = payload.name
    if payload.config is not None:
        fields["config"] = merge_display_config(record.config, payload.config)

    if fields:
        record = context.database.update_magazine(magazine_id, **fields)
        if record is None:
            raise HTTPException(status_code=404, detail="Magazine not found")

    return MagazineResponse(data=_present(record, context.settings))


@router.delete("/magazines/{magazine_id}", response_model=MessageResponse)
def delete_magazine(magazine_id: str, context: AppContext = Depends(get_context)) -> MessageResponse:
    record = _get_or_404(context, magazine_id)
    logger.info("Deleting magazine %s (%s)", record.id, record.name)

    # Page images are rendered on demand from the original, nothing else to release.
    if record.pdf_public_id:
        if not context.hosting.delete_original(record.pdf_public_id):
            logger.warning("Original %s was not released by the hosting service", record.pdf_public_id)

    context.database.delete_magazine(magazine_id)
    return MessageResponse(message="Magazine deleted successfully")


def _join_errors(errors: Iterable[Dict[str, Any]]) -> str:
    messages = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        msg = error.get("msg", "Invalid value")
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return ", ".join(messages)


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = f"Route not found: {request.method} {request.url.path}"
    return _error_response(exc.status_code, str(detail))


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, _join_errors(exc.errors()))


async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(400, _join_errors(exc.errors()))


async def _config_option_handler(request: Request, exc: ConfigOptionError) -> JSONResponse:
    return _error_response(400, str(exc))


async def _duplicate_handler(request: Request, exc: DuplicateRecordError) -> JSONResponse:
    return _error_response(400, "Duplicate value entered")


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Server error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal Server Error")


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the API application around ``context``.

    Without an explicit context, settings are read from the environment and
    the default SQLite store and S3 hosting service are created.
    """
    if context is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        context = AppContext.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(context.hosting.check_connection)
        yield

    app = FastAPI(title="Flipbook API", version="0.1.0", lifespan=lifespan)
    app.state.context = context

    allowed_origins = [origin.strip() for origin in context.settings.allowed_origin.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(ConfigOptionError, _config_option_handler)
    app.add_exception_handler(DuplicateRecordError, _duplicate_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    app.include_router(router)
    return app


def run() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "flipbook_backend.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
    )


if __name__ == "__main__":
    run()
