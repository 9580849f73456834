"""Splitting a file into fixed-size fragments and putting it back together."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Tuple, Union

from .config import DEFAULT_FRAGMENT_SIZE

logger = logging.getLogger(__name__)


class FragmentSet:
    """Immutable, ordered partition of one file's bytes.

    Every fragment is ``max_fragment_size`` bytes long except possibly the
    last; an empty file has no fragments at all.
    """

    __slots__ = ("_fragments", "max_fragment_size", "total_size")

    def __init__(self, fragments: Iterable[bytes], max_fragment_size: int = DEFAULT_FRAGMENT_SIZE) -> None:
        if max_fragment_size <= 0:
            raise ValueError(f"max_fragment_size must be positive, got {max_fragment_size}")
        self._fragments: Tuple[bytes, ...] = tuple(bytes(f) for f in fragments)
        self.max_fragment_size = max_fragment_size
        self.total_size = sum(len(f) for f in self._fragments)

    @classmethod
    def from_bytes(cls, data: bytes, max_fragment_size: int = DEFAULT_FRAGMENT_SIZE) -> "FragmentSet":
        if max_fragment_size <= 0:
            raise ValueError(f"max_fragment_size must be positive, got {max_fragment_size}")
        view = memoryview(data)
        fragments = [
            view[start:start + max_fragment_size].tobytes()
            for start in range(0, len(data), max_fragment_size)
        ]
        return cls(fragments, max_fragment_size)

    @classmethod
    def from_file(cls, path: Union[str, Path], max_fragment_size: int = DEFAULT_FRAGMENT_SIZE) -> "FragmentSet":
        data = Path(path).read_bytes()
        fragment_set = cls.from_bytes(data, max_fragment_size)
        logger.info(
            "Arquivo %s dividido em %d fragmento(s) de até %d bytes",
            path, fragment_set.count, max_fragment_size,
        )
        return fragment_set

    @property
    def count(self) -> int:
        return len(self._fragments)

    def get(self, index: int) -> bytes:
        """Fragment ``index``; negative indices are not wrapped."""
        if index < 0 or index >= len(self._fragments):
            raise IndexError(f"fragment {index} out of range [0, {len(self._fragments)})")
        return self._fragments[index]

    def assemble(self) -> bytes:
        return b"".join(self._fragments)

    def __len__(self) -> int:
        return len(self._fragments)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._fragments)


def fragment_count(size: int, max_fragment_size: int = DEFAULT_FRAGMENT_SIZE) -> int:
    """``ceil(size / max_fragment_size)``, 0 for an empty file."""
    if max_fragment_size <= 0:
        raise ValueError(f"max_fragment_size must be positive, got {max_fragment_size}")
    return -(-size // max_fragment_size)
