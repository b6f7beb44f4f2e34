"""Servable file catalog and redirect table built from the content root."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from config import CONTENT_ROOT, REDIRECT_DEFS_NAME
from utils import is_supported_type

logger = logging.getLogger(__name__)


class RedirectDefinitionsError(ValueError):
    """Raised when a redirect definitions file contains a malformed line."""

    def __init__(self, defs_path: Path, line_number: int, line: str) -> None:
        super().__init__(
            f"{defs_path}:{line_number}: expected '<original> <target>', got {line!r}"
        )
        self.defs_path = defs_path
        self.line_number = line_number


def _iter_files(directory: Path) -> Iterator[Path]:
    try:
        entries = sorted(directory.iterdir())
    except OSError as exc:
        logger.warning("Skipping unreadable directory %s: %s", directory, exc)
        return
    for entry in entries:
        if entry.is_dir() and not entry.is_symlink():
            yield from _iter_files(entry)
        elif entry.is_file():
            yield entry


def build_catalog(root_dir: str | Path, redirect_defs: str | Path | None = None) -> frozenset[str]:
    """Collect the normalized paths of every servable file under root_dir."""
    root = Path(root_dir)
    if not root.is_dir():
        logger.warning("Content root %s is not a directory; catalog is empty", root)
        return frozenset()

    defs_path = Path(redirect_defs) if redirect_defs is not None else root / REDIRECT_DEFS_NAME
    excluded = defs_path.resolve()
    prefix = "/" + root.resolve().name

    paths: set[str] = set()
    for file_path in _iter_files(root):
        if not is_supported_type(file_path.name):
            continue
        if file_path.resolve() == excluded:
            continue
        relative = file_path.relative_to(root).as_posix()
        paths.add(f"{prefix}/{relative}".lower())
    return frozenset(paths)


def load_redirects(defs_path: str | Path) -> dict[str, str]:
    """Parse '<original> <target>' pairs, one per line.

    A missing file is an empty table. Blank lines are skipped, tokens past the
    second are ignored, and a line with a single token fails the whole load.
    """
    path = Path(defs_path)
    redirects: dict[str, str] = {}
    try:
        handle = path.open("r", encoding="utf-8")
    except FileNotFoundError:
        logger.info("No redirect definitions at %s", path)
        return redirects

    with handle:
        for line_number, line in enumerate(handle, start=1):
            tokens = line.split()
            if not tokens:
                continue
            if len(tokens) < 2:
                raise RedirectDefinitionsError(path, line_number, line.rstrip("\r\n"))
            original, target = tokens[0], tokens[1]
            redirects[original] = target
    return redirects


@dataclass(frozen=True, slots=True)
class ContentCatalog:
    """Read-only snapshot of what a session may serve."""

    root_name: str
    files: frozenset[str] = frozenset()
    redirects: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def load(
        cls,
        root_dir: str | Path = CONTENT_ROOT,
        defs_path: str | Path | None = None,
    ) -> "ContentCatalog":
        root = Path(root_dir)
        defs = Path(defs_path) if defs_path is not None else root / REDIRECT_DEFS_NAME
        files = build_catalog(root, defs)
        redirects = load_redirects(defs)
        logger.info(
            "Loaded catalog from %s: %d files, %d redirects",
            root,
            len(files),
            len(redirects),
        )
        return cls(
            root_name=root.resolve().name,
            files=files,
            redirects=MappingProxyType(dict(redirects)),
        )

    def normalize(self, request_path: str) -> str:
        return f"/{self.root_name}{request_path}".lower()

    def contains(self, request_path: str) -> bool:
        return self.normalize(request_path) in self.files

    def redirect_for(self, request_path: str) -> str | None:
        return self.redirects.get(request_path)
