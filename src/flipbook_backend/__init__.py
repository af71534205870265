"""
Flipbook Backend - REST API turning uploaded PDFs into page-flip magazines

This package provides a FastAPI-based web service that:

- Accepts PDF uploads and validates type and size
- Counts pages and stores the original with an S3-backed hosting service
- Builds one page image URL per page through a URL transformation scheme
- Tracks each magazine's processing status (processing, ready, failed)
- Serves magazines by id and, once ready, by public share id

Key Components:
    - main: FastAPI application factory and HTTP endpoint definitions
    - pipeline: The upload pipeline and its tagged outcome
    - database: SQLite magazine store and status transitions
    - hosting: S3 storage of originals and page URL synthesis
    - pdf_reader: Page count extraction with pypdf
    - configuration: Display config defaults and merge logic
    - settings: Environment settings and logging setup
    - context: The application context passed to handlers

Usage:
    Run the API server with:
        uvicorn flipbook_backend.main:create_app --factory --port 5000

    Or use the console script:
        flipbook-backend
"""
from __future__ import annotations

__version__ = "0.1.0"
