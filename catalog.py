"""Enumerate the files under every registered root directory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set
from urllib.parse import quote

from directories import DirectoryRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnumeratedImage:
    directory_index: int
    relative_path: str

    @property
    def url(self) -> str:
        # Undecodable names carry surrogate escapes; quote the raw bytes.
        return f"/{self.directory_index}/{quote(os.fsencode(self.relative_path))}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "directory": self.directory_index,
            "path": self.relative_path,
            "url": self.url,
        }


def normalize_extensions(extensions: Optional[Iterable[str]]) -> Optional[Set[str]]:
    if extensions is None:
        return None
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return normalized or None


def is_readable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.R_OK)


def iter_directory_files(root: Path, extensions: Optional[Set[str]] = None) -> Iterator[str]:
    """Yield slash-separated paths of the readable files below ``root``.

    Entries that cannot be listed or read are skipped. Failing to list
    ``root`` itself raises the underlying :class:`OSError` once the walk is
    over, which is before anything was yielded.
    """
    top = str(root)
    root_errors: List[OSError] = []

    def on_error(exc: OSError) -> None:
        if exc.filename is not None and os.path.normpath(exc.filename) == top:
            root_errors.append(exc)

    for current_root, dirs, files in os.walk(top, onerror=on_error):
        dirs.sort()
        for name in sorted(files):
            if extensions is not None and os.path.splitext(name)[1].lower() not in extensions:
                continue
            full_path = os.path.join(current_root, name)
            if not is_readable_file(full_path):
                continue
            yield os.path.relpath(full_path, top).replace(os.sep, "/")

    if root_errors:
        raise root_errors[0]


def iter_images(
    registry: DirectoryRegistry, extensions: Optional[Iterable[str]] = None
) -> Iterator[EnumeratedImage]:
    wanted = normalize_extensions(extensions)
    for index, root in registry:
        try:
            for relative in iter_directory_files(root, wanted):
                yield EnumeratedImage(index, relative)
        except OSError as exc:
            logger.warning("Error walking directory %s (index %d): %s", root, index, exc)


def list_images(
    registry: DirectoryRegistry, extensions: Optional[Iterable[str]] = None
) -> List[EnumeratedImage]:
    return list(iter_images(registry, extensions))
