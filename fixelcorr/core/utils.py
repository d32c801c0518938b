from __future__ import annotations

import logging
import os
from typing import Iterator, Optional

import psutil


NUM_THREADS_ENV = "FIXELCORR_NUM_THREADS"


def resolve_n_workers(requested: Optional[int] = None, *, n_items: Optional[int] = None) -> int:
    """Number of worker threads to use.

    Priority: explicit request, then ``FIXELCORR_NUM_THREADS``, then the
    number of physical cores. Never more workers than work items.
    """
    n_workers = int(requested) if requested else 0

    if n_workers <= 0:
        env = os.environ.get(NUM_THREADS_ENV, "").strip()
        try:
            n_workers = int(env) if env else 0
        except ValueError:
            logging.warning(f"Ignoring non-integer {NUM_THREADS_ENV}={env!r}")
            n_workers = 0

    if n_workers <= 0:
        n_workers = psutil.cpu_count(logical=False) or psutil.cpu_count() or 1

    if n_items is not None:
        n_workers = min(n_workers, max(1, int(n_items)))
    return max(1, int(n_workers))


def iter_batches(total: int, batch_size: int) -> Iterator[range]:
    """Yield consecutive index ranges covering ``[0, total)``."""
    batch_size = max(1, int(batch_size))
    for start in range(0, int(total), batch_size):
        yield range(start, min(start + batch_size, int(total)))
