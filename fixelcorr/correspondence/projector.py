"""Projection of per-fixel measurements from source to target fixels."""

from __future__ import annotations

import concurrent.futures
import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from fixelcorr.core.logfmt import DETAIL
from fixelcorr.core.progress import make_progress_bar
from fixelcorr.core.utils import iter_batches, resolve_n_workers
from fixelcorr.core.validation import ConfigurationError, DataError, validate_directions, validate_fixel_count
from fixelcorr.correspondence.mapping import Mapping


METRICS = ("sum", "mean", "count", "angle")
DEFAULT_BATCH_SIZE = 1024


@dataclass(frozen=True)
class FillSettings:
    """Output policy for target fixels without a well-defined value.

    value:
        Written to target fixels that have no source fixels.
    nan_many2one:
        Write NaN to target fixels fed by more than one source fixel.
    nan_one2many:
        Write NaN to target fixels fed by a source fixel that also feeds
        another target fixel.
    """

    value: float = 0.0
    nan_many2one: bool = False
    nan_one2many: bool = False


class Projector:
    """Aggregate source fixel values onto target fixels through a Mapping.

    Every source fixel carries an implicit weight of ``1 / n`` where ``n``
    is the number of target fixels it feeds (0 when it feeds none), so that
    its total contribution is conserved across the targets. An explicit
    per-source weight, when given, multiplies the implicit one.
    """

    def __init__(
        self,
        mapping: Mapping,
        values: np.ndarray,
        metric: str,
        fill: Optional[FillSettings] = None,
        weights: Optional[np.ndarray] = None,
        source_directions: Optional[np.ndarray] = None,
        target_directions: Optional[np.ndarray] = None,
    ) -> None:
        metric = str(metric).strip().lower()
        if metric not in METRICS:
            raise ConfigurationError(
                f"Unknown projection metric: '{metric}'\nValid options: {list(METRICS)}"
            )
        self.mapping = mapping
        self.metric = metric
        self.fill = fill if fill is not None else FillSettings()

        self.values = np.asarray(values, dtype=np.float64).reshape(-1)
        validate_fixel_count(self.values, mapping.source_fixels, "source data", "the fixel correspondence")

        self.weights: Optional[np.ndarray] = None
        if weights is not None:
            self.weights = np.asarray(weights, dtype=np.float64).reshape(-1)
            validate_fixel_count(self.weights, mapping.source_fixels, "weights", "the fixel correspondence")

        self.source_directions: Optional[np.ndarray] = None
        self.target_directions: Optional[np.ndarray] = None
        if metric == "angle":
            if source_directions is None or target_directions is None:
                raise ConfigurationError(
                    "Metric 'angle' requires both source and target fixel directions."
                )
        if source_directions is not None:
            self.source_directions = validate_directions(source_directions, "source fixel directions")
            validate_fixel_count(
                self.source_directions, mapping.source_fixels, "source directions", "the fixel correspondence"
            )
        if target_directions is not None:
            self.target_directions = validate_directions(target_directions, "target fixel directions")
            validate_fixel_count(
                self.target_directions, len(mapping), "target directions", "the fixel correspondence"
            )

        n_objectives = mapping.objectives_per_source()
        implicit = np.zeros(mapping.source_fixels, dtype=np.float64)
        mapped = n_objectives > 0
        implicit[mapped] = 1.0 / n_objectives[mapped]
        implicit.setflags(write=False)
        self.implicit_weights = implicit

        self.output = np.zeros(len(mapping), dtype=np.float32)

    def _weight(self, s: int) -> float:
        weight = self.implicit_weights[s]
        if self.weights is not None:
            weight *= self.weights[s]
        return float(weight)

    def _angle(self, index: int, origins) -> float:
        u_t = self.target_directions[index]
        accum = np.zeros(3)
        for s in origins:
            u_s = self.source_directions[s]
            if np.dot(u_s, u_t) < 0:
                u_s = -u_s
            accum += self._weight(s) * u_s
        norm = np.linalg.norm(accum)
        if norm == 0.0:
            return math.nan
        dp = min(abs(float(np.dot(accum / norm, u_t))), 1.0)
        return math.acos(dp)

    def __call__(self, index: int) -> None:
        """Compute the output value of one target fixel."""
        origins = self.mapping[index]
        if not origins:
            self.output[index] = self.fill.value
            return
        if self.fill.nan_many2one and len(origins) > 1:
            self.output[index] = np.nan
            return
        if self.fill.nan_one2many and any(self.implicit_weights[s] < 1.0 for s in origins):
            self.output[index] = np.nan
            return

        if self.metric == "count":
            result = float(len(origins))
        elif self.metric == "angle":
            result = self._angle(index, origins)
        else:
            weights = [self._weight(s) for s in origins]
            total = sum(w * self.values[s] for w, s in zip(weights, origins))
            if self.metric == "sum":
                result = total
            else:
                norm = sum(weights)
                result = total / norm if norm != 0.0 else math.nan
        self.output[index] = result

    def _run_batch(self, batch: range) -> int:
        for index in batch:
            self(index)
        return len(batch)

    def run(self, n_workers: Optional[int] = None, batch_size: int = DEFAULT_BATCH_SIZE) -> np.ndarray:
        """Project every target fixel; returns the output array.

        Batches of target fixel indices are submitted in increasing order,
        with at most ``2 * n_workers`` batches outstanding at any time.
        """
        total = len(self.mapping)
        n_batches = max(1, math.ceil(total / max(1, int(batch_size))))
        n_workers = resolve_n_workers(n_workers, n_items=n_batches)
        max_in_flight = 2 * n_workers
        logging.log(
            DETAIL,
            f"Projecting metric '{self.metric}' onto {total:,} target fixels ({n_workers} worker(s))",
        )

        start = time.time()
        pbar = make_progress_bar(total=total, desc="Projecting (fixels)", colour="GREEN")
        try:
            with concurrent.futures.ThreadPoolExecutor(max_workers=n_workers) as ex:
                pending: set[concurrent.futures.Future] = set()
                for batch in iter_batches(total, batch_size):
                    if len(pending) >= max_in_flight:
                        done, pending = concurrent.futures.wait(
                            pending, return_when=concurrent.futures.FIRST_COMPLETED
                        )
                        for fut in done:
                            pbar.update(fut.result())
                    pending.add(ex.submit(self._run_batch, batch))
                for fut in concurrent.futures.as_completed(pending):
                    pbar.update(fut.result())
        finally:
            pbar.close()

        logging.info(f"Projection complete in {round(time.time() - start, 2)} s")
        return self.output
