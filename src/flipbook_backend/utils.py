"""
Utility functions for file names, share tokens and directories.

This module provides helper functions for:
- Sanitizing uploaded file names for safe filesystem and object-key usage
- Deriving a display name from an uploaded file name
- Generating short URL-safe share tokens
- Formatting byte sizes for error messages
"""

from __future__ import annotations

import re
import secrets
from pathlib import Path

from .models import NAME_MAX_LENGTH

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")

SHARE_ID_LENGTH = 10
DEFAULT_NAME = "Untitled"


def sanitize_filename(filename: str, fallback: str = "document.pdf") -> str:
    """
    Generate a filesystem-safe file name from user input.

    Args:
        filename: The uploaded file name (may include a client-side path)
        fallback: Value returned when nothing usable remains

    Returns:
        A lowercase name containing only safe characters

    Example:
        >>> sanitize_filename("My Report (final).PDF")
        "my-report-final-.pdf"
    """
    cleaned = SANITIZE_PATTERN.sub("-", Path(filename).name.strip())
    cleaned = cleaned.strip("-_.").lower()
    return cleaned or fallback


def name_from_filename(filename: str) -> str:
    """
    Strip the last extension to get a display name.

    Example:
        >>> name_from_filename("report.pdf")
        "report"
        >>> name_from_filename("annual.report.v2.pdf")
        "annual.report.v2"
    """
    stem, dot, _ = filename.strip().rpartition(".")
    name = (stem if dot else filename).strip()
    return name[:NAME_MAX_LENGTH].strip() or DEFAULT_NAME


def generate_share_id(length: int = SHARE_ID_LENGTH) -> str:
    """Return a random URL-safe token of ``length`` characters."""
    return secrets.token_urlsafe(length)[:length]


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def format_file_size(size: int) -> str:
    """
    Format a byte count for display.

    Example:
        >>> format_file_size(52428800)
        "50 MB"
    """
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    for unit in ("Bytes", "KB", "MB"):
        if value < 1024:
            return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"
        value /= 1024
    return f"{value:.2f}".rstrip("0").rstrip(".") + " GB"
