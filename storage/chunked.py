"""
Chunked streaming I/O.

Large files are never loaded whole: data moves through a bounded buffer,
read until the stream is exhausted. Used for local copies and for piping
blob downloads to disk.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterator

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024


def _check_chunk_size(chunk_size: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")


def iter_chunks(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield non-empty chunks of at most `chunk_size` bytes until EOF."""
    _check_chunk_size(chunk_size)
    return _read_chunks(stream, chunk_size)


def _read_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk


def iter_file_chunks(path: Path | str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    _check_chunk_size(chunk_size)
    return _read_file_chunks(path, chunk_size)


def _read_file_chunks(path: Path | str, chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as f:
        yield from _read_chunks(f, chunk_size)


def copy_stream(src: BinaryIO, dst: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Copy `src` to `dst` chunk by chunk; returns the number of bytes written."""
    total = 0
    for chunk in iter_chunks(src, chunk_size):
        dst.write(chunk)
        total += len(chunk)
    return total


def copy_file(src_path: Path | str, dst_path: Path | str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """
    Copy a file without holding it in memory.

    Data goes to `<dst>.part` first and is renamed into place once complete,
    so an interrupted copy never leaves a truncated destination behind.
    """

    _check_chunk_size(chunk_size)
    dst_path = Path(dst_path)
    dst_path.parent.mkdir(parents=True, exist_ok=True)
    part = dst_path.with_name(dst_path.name + ".part")

    try:
        with open(src_path, "rb") as src, open(part, "wb") as dst:
            written = copy_stream(src, dst, chunk_size)
        os.replace(part, dst_path)
    except BaseException:
        part.unlink(missing_ok=True)
        raise

    logger.debug("Copied %s -> %s (%d bytes)", src_path, dst_path, written)
    return written


def iter_lines(path: Path | str, encoding: str = "utf-8") -> Iterator[str]:
    """Lazily yield the lines of a text file, without line terminators."""
    with open(path, "r", encoding=encoding, newline=None) as f:
        for line in f:
            yield line.rstrip("\n")
