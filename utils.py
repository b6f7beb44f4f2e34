"""Utility helpers shared across server modules."""

from pathlib import PurePosixPath

from config import SUPPORTED_FILE_TYPES

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".htm": "text/html",
    ".txt": "text/plain",
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
}
DEFAULT_CONTENT_TYPE = "text/html"


def file_extension(path: str) -> str:
    """Return the lower-cased suffix of the last path segment, or ''."""
    return PurePosixPath(path.replace("\\", "/")).suffix.lower()


def is_supported_type(path: str) -> bool:
    return file_extension(path) in SUPPORTED_FILE_TYPES


def content_type_for(path: str) -> str:
    return CONTENT_TYPES.get(file_extension(path), DEFAULT_CONTENT_TYPE)
