"""Read local files for upload."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from extrabucket.exceptions import ConfigError, NotFoundError


def require_file(path: str | Path) -> Path:
    """Return ``path`` as a Path, raising NotFoundError if it is not a file."""
    file_path = Path(path)
    if not file_path.is_file():
        raise NotFoundError(str(file_path))
    return file_path


def iter_file_chunks(path: Path, chunk_size: int) -> Iterator[tuple[int, bytes]]:
    """Yield ``(offset, chunk)`` pairs of at most ``chunk_size`` bytes.

    The file handle is closed when the generator is exhausted, closed, or
    garbage collected, including when the consumer raises mid-iteration.
    """
    if chunk_size <= 0:
        raise ConfigError(f"chunk_size must be positive, got {chunk_size}")

    offset = 0
    with path.open("rb") as fh:
        while chunk := fh.read(chunk_size):
            yield offset, chunk
            offset += len(chunk)
