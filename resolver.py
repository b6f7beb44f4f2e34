"""Outcome resolution: decide status and payload for one request."""

from __future__ import annotations

from dataclasses import dataclass

from catalog import ContentCatalog
from config import SUPPORTED_METHODS
from response import StatusCode, default_body
from utils import DEFAULT_CONTENT_TYPE, content_type_for, is_supported_type


@dataclass(frozen=True, slots=True)
class TextPayload:
    text: str


@dataclass(frozen=True, slots=True)
class FilePayload:
    path: str


@dataclass(frozen=True, slots=True)
class RedirectPayload:
    target: str


Payload = TextPayload | FilePayload | RedirectPayload


@dataclass(frozen=True, slots=True)
class Outcome:
    status: StatusCode
    payload: Payload
    content_type: str = DEFAULT_CONTENT_TYPE

    @classmethod
    def message(cls, status: StatusCode) -> "Outcome":
        return cls(status=status, payload=TextPayload(default_body(status)))


def is_supported_method(method: str) -> bool:
    return method.upper() in SUPPORTED_METHODS


def resolve(method: str, path: str, catalog: ContentCatalog) -> Outcome:
    """Map a request onto an Outcome; the first matching rule wins."""
    if not is_supported_method(method):
        return Outcome.message(StatusCode.FORBIDDEN)

    target = catalog.redirect_for(path)
    if target is not None:
        return Outcome(status=StatusCode.MOVED_PERMANENTLY, payload=RedirectPayload(target))

    if not catalog.contains(path):
        return Outcome.message(StatusCode.NOT_FOUND)

    if not is_supported_type(path):
        return Outcome.message(StatusCode.UNSUPPORTED_MEDIA_TYPE)

    if is_supported_method(method):
        if method.upper() == "GET":
            payload: Payload = FilePayload(path[1:] if path.startswith("/") else path)
        else:
            payload = TextPayload("")
        return Outcome(status=StatusCode.OK, payload=payload, content_type=content_type_for(path))

    return Outcome.message(StatusCode.INTERNAL_SERVER_ERROR)
