import threading
from pathlib import Path

import pytest
from PIL import Image

from app import AssetServer
from directories import DirectoryRegistry, RegistryHolder


def write_png(path: Path, size=(40, 30), color=(200, 30, 30, 255)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", size, color).save(path, "PNG")
    return path


@pytest.fixture
def roots(tmp_path: Path):
    first = tmp_path / "first"
    second = tmp_path / "second"
    write_png(first / "a.png", size=(40, 30))
    write_png(first / "sub" / "b.png", size=(100, 50))
    (first / "notes.txt").write_text("hello world\n", encoding="utf-8")
    write_png(second / "c.png", size=(64, 64))
    (tmp_path / "secret.txt").write_text("outside\n", encoding="utf-8")
    return first, second


@pytest.fixture
def registry(roots):
    return DirectoryRegistry(roots)


@pytest.fixture
def live_server(registry):
    holder = RegistryHolder(registry)
    server = AssetServer(("127.0.0.1", 0), holder)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    try:
        yield f"http://{host}:{port}", holder
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
