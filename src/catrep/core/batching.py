"""Chunking helper for provider calls with batch-size limits."""

from __future__ import annotations

from itertools import islice
from typing import Iterable, Iterator, TypeVar

T = TypeVar("T")


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """
    Yield consecutive lists of at most `size` items.

    The input is consumed lazily, so this works on paginated generators as
    well as on lists. The last chunk may be shorter; no empty chunk is ever
    yielded.
    """
    if size < 1:
        raise ValueError("size must be >= 1")
    it = iter(items)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk
