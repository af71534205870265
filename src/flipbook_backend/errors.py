"""
Domain exceptions for the flipbook backend.

Pipeline errors carry a human-readable message that is stored on the failed
magazine record and echoed to the client. HTTP translation happens only in
``main``.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures of a single upload pipeline step."""

    step = "pipeline"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoFileProvided(PipelineError):
    step = "receive"

    def __init__(self, message: str = "No PDF file uploaded") -> None:
        super().__init__(message)


class PdfReadFailure(PipelineError):
    step = "read_metadata"


class HostingUploadFailure(PipelineError):
    step = "upload_original"


class DuplicateRecordError(Exception):
    """A unique column (id or share id) already holds the value."""


class InvalidStatusTransition(RuntimeError):
    """The record has already left ``processing``."""


class ConfigOptionError(ValueError):
    """A display config patch names an option that does not exist."""
