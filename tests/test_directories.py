from pathlib import Path

import pytest

from directories import DirectoryRegistry, RegistryHolder


def test_registry_preserves_order_and_resolves(tmp_path: Path):
    a = tmp_path / "a"
    b = tmp_path / "b"
    a.mkdir()
    b.mkdir()

    registry = DirectoryRegistry([str(b), tmp_path / "a" / ".." / "a"])
    assert registry.count() == 2
    assert len(registry) == 2
    assert registry.root_at(0) == b.resolve()
    assert registry.root_at(1) == a.resolve()
    assert list(registry) == [(0, b.resolve()), (1, a.resolve())]


def test_root_at_out_of_range(tmp_path: Path):
    registry = DirectoryRegistry([tmp_path])
    assert registry.root_at(1) is None
    assert registry.root_at(-1) is None


def test_registry_rejects_duplicates(tmp_path: Path):
    with pytest.raises(ValueError):
        DirectoryRegistry([tmp_path, tmp_path / "."])


def test_holder_reload_swaps_snapshot(tmp_path: Path):
    a = tmp_path / "a"
    b = tmp_path / "b"
    a.mkdir()
    b.mkdir()

    holder = RegistryHolder(DirectoryRegistry([a]))
    before = holder.current
    after = holder.reload([b, a])

    assert holder.current is after
    # The old snapshot is untouched by the reload.
    assert before.roots == (a.resolve(),)
    assert after.roots == (b.resolve(), a.resolve())


def test_holder_reload_failure_keeps_current(tmp_path: Path):
    holder = RegistryHolder(DirectoryRegistry([tmp_path]))
    current = holder.current
    with pytest.raises(ValueError):
        holder.reload([tmp_path, tmp_path])
    assert holder.current is current


def test_holder_defaults_to_empty():
    assert RegistryHolder().current.count() == 0


def test_nested_reload_completes(tmp_path: Path):
    a = tmp_path / "a"
    b = tmp_path / "b"
    a.mkdir()
    b.mkdir()
    holder = RegistryHolder()

    def roots_that_reload():
        # A reload started while another one is still reading its roots.
        holder.reload([b])
        yield a

    outer = holder.reload(roots_that_reload())
    assert outer.roots == (a.resolve(),)
    assert holder.current is outer
