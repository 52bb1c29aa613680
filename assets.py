"""Asset lookup for ``/{directory index}/{relative path}`` requests.

A request either resolves to an :class:`Asset` (a file streamed verbatim or a
PNG resized in memory) or to a not-found result. Every failure along the way
is one of the :class:`AssetNotFound` subclasses below; callers of
:func:`handle_asset_request` only ever see ``None`` for those.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Mapping, Optional, Sequence

from PIL import Image

from directories import DirectoryRegistry

RESIZE_FORMAT = "PNG"
RESIZE_CONTENT_TYPE = "image/png"
MAX_RESIZE_PIXELS = 64 * 1024 * 1024
CHUNK_SIZE = 64_000

mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type("image/svg+xml", ".svg")

logger = logging.getLogger(__name__)

QueryParams = Mapping[str, Sequence[str]]


class AssetNotFound(Exception):
    """Base class for every reason a request ends in a 404."""

    stage = "lookup"

    def __init__(self, message: str, index: Optional[int] = None) -> None:
        super().__init__(message)
        self.index = index


class MalformedRequestPath(AssetNotFound):
    stage = "parse"


class UnknownDirectoryIndex(AssetNotFound):
    stage = "directory"


class PathEscapesRoot(AssetNotFound):
    stage = "containment"


class AssetFileNotFound(AssetNotFound):
    stage = "stat"


class DecodeFailure(AssetNotFound):
    stage = "decode"


class EncodeFailure(AssetNotFound):
    stage = "encode"


class WriteFailure(AssetNotFound):
    stage = "write"


@dataclass(frozen=True)
class AssetPath:
    directory_index: int
    relative_path: str


@dataclass(frozen=True)
class Asset:
    """Response body ready to be written: either a file on disk or a buffer."""

    content_type: str
    content_length: int
    path: Optional[Path] = None
    data: Optional[bytes] = None

    def open(self) -> BinaryIO:
        if self.data is not None:
            return io.BytesIO(self.data)
        if self.path is None:
            raise ValueError("Asset has neither data nor path")
        return self.path.open("rb")


def copy_stream(source: BinaryIO, target: BinaryIO, length: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Copy at most ``length`` bytes so the body never exceeds Content-Length."""
    written = 0
    while written < length:
        chunk = source.read(min(chunk_size, length - written))
        if not chunk:
            break
        try:
            target.write(chunk)
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise WriteFailure(f"Client went away after {written} of {length} bytes: {exc}") from exc
        written += len(chunk)
    return written


def has_file_suffix(request_path: str) -> bool:
    leaf = request_path.rsplit("/", 1)[-1]
    return "." in leaf


def parse_asset_path(request_path: str) -> AssetPath:
    if not has_file_suffix(request_path):
        raise MalformedRequestPath(f"Not a file path: {request_path!r}")
    parts = request_path.split("/")
    if len(parts) < 3 or parts[0] != "":
        raise MalformedRequestPath(f"Missing directory index: {request_path!r}")
    index_text = parts[1]
    if not (index_text.isascii() and index_text.isdigit()):
        raise MalformedRequestPath(f"Invalid directory index {index_text!r}")
    relative = "/".join(parts[2:])
    if not relative:
        raise MalformedRequestPath(f"Missing relative path: {request_path!r}")
    return AssetPath(int(index_text), relative)


def resolve_asset_file(registry: DirectoryRegistry, asset_path: AssetPath) -> Path:
    index = asset_path.directory_index
    root = registry.root_at(index)
    if root is None:
        raise UnknownDirectoryIndex(
            f"Directory index {index} out of range (have {registry.count()})", index=index
        )

    relative = asset_path.relative_path
    if relative.startswith("/") or os.path.isabs(relative):
        raise PathEscapesRoot(f"Absolute paths are not permitted: {relative!r}", index=index)

    root_str = str(root)
    candidate = os.path.normpath(os.path.join(root_str, relative))
    if candidate == root_str or os.path.commonpath([root_str, candidate]) != root_str:
        raise PathEscapesRoot(f"Requested path escapes the root: {relative!r}", index=index)

    target = Path(candidate)
    if not target.is_file():
        raise AssetFileNotFound(f"File not found: {target}", index=index)
    return target


def parse_width(query: QueryParams) -> Optional[int]:
    values = query.get("width")
    if values is None:
        return None
    raw = values if isinstance(values, str) else (values[0] if values else "")
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        raise MalformedRequestPath(f"Invalid width {raw!r}")
    width = int(raw)
    if width <= 0:
        raise MalformedRequestPath(f"Width must be positive: {width}")
    return width


def target_height(source_width: int, source_height: int, width: int) -> int:
    """Height keeping the source aspect ratio, truncated toward zero."""
    return int(source_height / source_width * width)


def resize_png(path: Path, width: int) -> bytes:
    try:
        with Image.open(path, formats=[RESIZE_FORMAT]) as source:
            source.load()
            image = source.convert("RGBA")
    except Exception as exc:  # noqa: BLE001 - any decoder error means no image
        raise DecodeFailure(f"Could not decode {path}: {exc}") from exc

    source_width, source_height = image.size
    if source_width <= 0 or source_height <= 0:
        raise DecodeFailure(f"Empty image: {path}")

    height = target_height(source_width, source_height, width)
    if height <= 0:
        raise EncodeFailure(f"Resized height is zero for {path} at width {width}")
    if width * height > MAX_RESIZE_PIXELS:
        raise EncodeFailure(f"Resized image too large: {width}x{height}")

    try:
        resized = image.resize((width, height), Image.BICUBIC)
        buffer = io.BytesIO()
        resized.save(buffer, RESIZE_FORMAT)
    except Exception as exc:  # noqa: BLE001 - encoder errors degrade to not-found
        raise EncodeFailure(f"Could not encode resized {path}: {exc}") from exc
    return buffer.getvalue()


def lookup_asset(registry: DirectoryRegistry, request_path: str, query: QueryParams) -> Asset:
    asset_path = parse_asset_path(request_path)
    target = resolve_asset_file(registry, asset_path)
    try:
        width = parse_width(query)
    except AssetNotFound as exc:
        exc.index = asset_path.directory_index
        raise

    if width is None:
        content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        try:
            size = target.stat().st_size
        except OSError as exc:
            raise AssetFileNotFound(f"Could not stat {target}: {exc}", index=asset_path.directory_index) from exc
        return Asset(content_type=content_type, content_length=size, path=target)

    try:
        data = resize_png(target, width)
    except AssetNotFound as exc:
        exc.index = asset_path.directory_index
        raise
    return Asset(content_type=RESIZE_CONTENT_TYPE, content_length=len(data), data=data)


def handle_asset_request(
    registry: DirectoryRegistry,
    request_path: str,
    query: Optional[Dict[str, List[str]]] = None,
) -> Optional[Asset]:
    """Return the asset for ``request_path`` or ``None`` when it is not found."""
    query = query or {}
    logger.info("Asset request path=%s query=%s", request_path, query)
    try:
        return lookup_asset(registry, request_path, query)
    except AssetNotFound as exc:
        logger.warning(
            "Not found at %s stage: path=%s index=%s: %s",
            exc.stage,
            request_path,
            exc.index,
            exc,
        )
        return None
