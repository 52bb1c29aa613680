"""Ordered registry of root directories addressed by index."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple, Union

PathLike = Union[str, Path]


def canonical_directory(path: PathLike) -> Path:
    return Path(path).expanduser().resolve()


class DirectoryRegistry:
    """Immutable snapshot of the registered root directories.

    The position of a root is the identifier used in asset URLs, so a
    snapshot never changes once built. Reloading means building a new one.
    """

    def __init__(self, roots: Iterable[PathLike] = ()) -> None:
        resolved = []
        seen = set()
        for root in roots:
            path = canonical_directory(root)
            if path in seen:
                raise ValueError(f"Directory registered twice: {path}")
            seen.add(path)
            resolved.append(path)
        self._roots: Tuple[Path, ...] = tuple(resolved)

    def count(self) -> int:
        return len(self._roots)

    def root_at(self, index: int) -> Optional[Path]:
        if index < 0 or index >= len(self._roots):
            return None
        return self._roots[index]

    @property
    def roots(self) -> Tuple[Path, ...]:
        return self._roots

    def __len__(self) -> int:
        return len(self._roots)

    def __iter__(self) -> Iterator[Tuple[int, Path]]:
        return iter(enumerate(self._roots))

    def __repr__(self) -> str:
        return f"DirectoryRegistry({[str(root) for root in self._roots]!r})"


class RegistryHolder:
    """Hands out the current registry snapshot and swaps it on reload."""

    def __init__(self, registry: Optional[DirectoryRegistry] = None) -> None:
        self._registry = registry if registry is not None else DirectoryRegistry()

    @property
    def current(self) -> DirectoryRegistry:
        return self._registry

    def reload(self, roots: Iterable[PathLike]) -> DirectoryRegistry:
        # The snapshot is built first and published with one assignment, so
        # readers and nested reloads only ever see a complete registry.
        registry = DirectoryRegistry(roots)
        self._registry = registry
        return registry
