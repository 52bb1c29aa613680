#!/usr/bin/env python3
"""Image Shelf local asset server."""

from __future__ import annotations

import argparse
import http.server
import json
import logging
import signal
import threading
from http import HTTPStatus
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from assets import Asset, WriteFailure, copy_stream, handle_asset_request
from catalog import list_images
from directories import DirectoryRegistry, RegistryHolder
from settings import SettingsError, load_settings, save_settings

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765

logger = logging.getLogger(__name__)


class AssetRequestHandler(http.server.BaseHTTPRequestHandler):
    server_version = "ImageShelf/0.1"

    def do_GET(self) -> None:  # noqa: N802 - standard library signature
        parsed = urlparse(self.path)
        # One snapshot per request; a reload only affects later requests.
        registry = self.server.registry_holder.current
        if parsed.path.startswith("/api/"):
            self.handle_api(parsed, registry)
            return
        params = parse_qs(parsed.query or "", keep_blank_values=True)
        try:
            asset = handle_asset_request(
                registry, unquote(parsed.path, errors="surrogateescape"), params
            )
        except Exception:  # noqa: BLE001 - bad input must never become a 500
            logger.exception("Unexpected error resolving %s", self.path)
            asset = None
        if asset is None:
            self.send_error(HTTPStatus.NOT_FOUND)
            return
        self.send_asset(asset)

    def do_POST(self) -> None:  # noqa: N802 - standard library signature
        self.send_error(HTTPStatus.METHOD_NOT_ALLOWED, "Read-only server")

    # API handlers
    def handle_api(self, parsed, registry: DirectoryRegistry) -> None:
        route = parsed.path
        params = parse_qs(parsed.query or "")
        try:
            if route == "/api/images":
                self.api_images(params, registry)
            elif route == "/api/directories":
                self.api_directories(registry)
            else:
                self.send_json({"error": "Unknown endpoint"}, status=HTTPStatus.NOT_FOUND)
        except Exception as exc:  # noqa: BLE001 - report unexpected errors
            logger.exception("API request %s failed", route)
            self.send_json({"error": f"Unexpected server error: {exc}"}, status=HTTPStatus.INTERNAL_SERVER_ERROR)

    def api_images(self, params: Dict[str, List[str]], registry: DirectoryRegistry) -> None:
        extensions = params.get("ext")
        images = list_images(registry, extensions)
        self.send_json({"images": [image.to_dict() for image in images]})

    def api_directories(self, registry: DirectoryRegistry) -> None:
        directories = [{"index": index, "path": str(root)} for index, root in registry]
        self.send_json({"directories": directories})

    # Helpers
    def send_json(self, payload: Dict[str, object], status: HTTPStatus = HTTPStatus.OK) -> None:
        data = json.dumps(payload).encode("utf-8")
        try:
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(data)))
            self.send_header("Cache-Control", "no-store")
            self.end_headers()
            self.wfile.write(data)
        except (BrokenPipeError, ConnectionResetError):
            logger.warning("Client closed connection while sending JSON response")

    def send_asset(self, asset: Asset) -> None:
        try:
            source = asset.open()
        except OSError as exc:
            logger.warning("Could not open %s: %s", asset.path, exc)
            self.send_error(HTTPStatus.NOT_FOUND)
            return
        with source:
            try:
                self.send_response(HTTPStatus.OK)
                self.send_header("Content-Type", asset.content_type)
                self.send_header("Content-Length", str(asset.content_length))
                self.end_headers()
                written = copy_stream(source, self.wfile, asset.content_length)
            except (BrokenPipeError, ConnectionResetError) as exc:
                logger.warning("Client closed connection before body of %s: %s", self.path, exc)
                self.close_connection = True
                return
            except WriteFailure as exc:
                logger.warning("%s failed for %s: %s", exc.stage, self.path, exc)
                self.close_connection = True
                return
        if written != asset.content_length:
            # The file shrank after it was stat'ed; the body is short.
            logger.warning("Short body for %s: %d of %d bytes", self.path, written, asset.content_length)
            self.close_connection = True

    def log_message(self, format: str, *args) -> None:  # noqa: A003 - match base signature
        logger.info("%s - %s", self.address_string(), format % args)


class AssetServer(http.server.ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: Tuple[str, int],
        registry_holder: RegistryHolder,
        handler_class=AssetRequestHandler,
    ) -> None:
        self.registry_holder = registry_holder
        super().__init__(address, handler_class)


def reload_registry(holder: RegistryHolder, config_path: Optional[Path]) -> bool:
    try:
        settings = load_settings(config_path)
        registry = holder.reload(settings.list_root_directories())
    except (SettingsError, ValueError) as exc:
        logger.error("Reload failed, keeping %d directories: %s", holder.current.count(), exc)
        return False
    logger.info("Reloaded %d directories", registry.count())
    return True


def install_reload_signal(holder: RegistryHolder, config_path: Optional[Path]) -> None:
    if not hasattr(signal, "SIGHUP"):
        return

    def on_hangup(signum, frame) -> None:
        # File I/O stays out of the signal handler so hangups can nest freely.
        threading.Thread(
            target=reload_registry,
            args=(holder, config_path),
            name="registry-reload",
            daemon=True,
        ).start()

    signal.signal(signal.SIGHUP, on_hangup)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve registered image directories over local HTTP.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings file (default: $XDG_CONFIG_HOME/image-shelf/config.json)",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"Host to bind (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port to listen on (default: {DEFAULT_PORT})")
    parser.add_argument(
        "--add-dir",
        dest="add_dirs",
        type=Path,
        action="append",
        default=[],
        help="Register an image directory before serving (repeatable).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[Iterable[str]] = None) -> None:
    args = parse_args(argv)
    settings = load_settings(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.numeric_log_level(),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if args.add_dirs:
        changed = False
        for directory in args.add_dirs:
            changed = settings.add_directory(directory) or changed
        if changed:
            save_settings(settings)

    holder = RegistryHolder(DirectoryRegistry(settings.list_root_directories()))
    install_reload_signal(holder, settings.path)

    server = AssetServer((args.host, args.port), holder)
    for index, root in holder.current:
        logger.info("Directory %d: %s", index, root)
    logger.info("Serving on http://%s:%d", *server.server_address[:2])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down server")
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
