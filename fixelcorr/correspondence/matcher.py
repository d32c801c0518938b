from __future__ import annotations

import logging
import os
import time
from typing import Optional

import numpy as np
from joblib import Parallel, delayed

from fixelcorr.core import io
from fixelcorr.core.logfmt import DETAIL
from fixelcorr.core.progress import make_progress_bar
from fixelcorr.core.utils import resolve_n_workers
from fixelcorr.core.validation import DataError
from fixelcorr.correspondence.algorithms.base import CorrespondenceAlgorithm
from fixelcorr.correspondence.fixel import FixelDataset
from fixelcorr.correspondence.mapping import Mapping


class Matcher:
    """Run a per-voxel correspondence algorithm across a whole voxel grid.

    Target fixel indices are partitioned by voxel, so every voxel owns a
    disjoint slice ``[offset, offset + count)`` of the resulting Mapping and
    workers write their slices without coordination.
    """

    def __init__(self, source: FixelDataset, target: FixelDataset, algorithm: CorrespondenceAlgorithm) -> None:
        if source.shape != target.shape:
            raise DataError(
                f"Source and target fixel datasets are defined on different voxel grids: "
                f"{source.shape} vs {target.shape}\n"
                f"Both datasets must share one voxel grid (register them beforehand)."
            )
        if not np.allclose(source.affine, target.affine, atol=1e-4):
            logging.warning("Source and target fixel index images have different affines; matching by voxel index.")
        self.source = source
        self.target = target
        self.algorithm = algorithm
        self.mapping = Mapping(source.nfixels, target.nfixels)

    def _match_voxel(self, voxel) -> None:
        source = self.source.voxel(voxel)
        target = self.target.voxel(voxel)
        if not len(target) and not self.algorithm.records_cost:
            return
        assignment = self.algorithm(voxel, source, target)
        source_offset = self.source.offset(voxel)
        target_offset = self.target.offset(voxel)
        for i, origins in enumerate(assignment):
            self.mapping[target_offset + i] = [source_offset + s for s in origins]

    def _match_slab(self, x: int) -> int:
        _, ny, nz = self.source.shape
        for y in range(ny):
            for z in range(nz):
                self._match_voxel((x, y, z))
        return x

    def run(self, n_workers: Optional[int] = None) -> Mapping:
        """Match every voxel once; returns the completed Mapping."""
        nx = self.source.shape[0]
        n_workers = resolve_n_workers(n_workers, n_items=nx)
        logging.log(
            DETAIL,
            f"Matching {self.target.nfixels:,} target fixels against {self.source.nfixels:,} "
            f"source fixels with '{self.algorithm.name}' ({n_workers} worker(s))",
        )
        start = time.time()
        pbar = make_progress_bar(total=nx, desc="Matching (x-slabs)", colour="CYAN")
        try:
            results = Parallel(n_jobs=n_workers, backend="threading", return_as="generator")(
                delayed(self._match_slab)(x) for x in range(nx)
            )
            for _ in results:
                pbar.update(1)
        finally:
            pbar.close()
        logging.info(
            f"Matching complete: {self.mapping.nlinks():,} links in {round(time.time() - start, 2)} s"
        )
        return self.mapping

    def remapped_fixels(self) -> tuple[np.ndarray, np.ndarray]:
        """Source fixels re-expressed on the target fixel layout.

        Returns (directions, densities), one row per target fixel. Each
        assigned source contributes ``d_s / n_s`` with its direction flipped
        into the target's hemisphere.
        """
        n_objectives = self.mapping.objectives_per_source()
        directions = np.array(self.target.directions, dtype=np.float64, copy=True)
        densities = np.zeros(self.target.nfixels, dtype=np.float64)
        for t, origins in enumerate(self.mapping):
            if not origins:
                continue
            u_t = self.target.directions[t]
            accum = np.zeros(3)
            for s in origins:
                u_s = self.source.directions[s]
                weight = self.source.values[s] / n_objectives[s]
                accum += weight * (u_s if np.dot(u_s, u_t) >= 0 else -u_s)
                densities[t] += weight
            norm = np.linalg.norm(accum)
            if norm > 0:
                directions[t] = accum / norm
        return directions, densities

    def export_remapped(self, directory: str | os.PathLike, name: str = "density.nii.gz") -> str:
        """Write the remapped source fixels as a new fixel directory."""
        directions, densities = self.remapped_fixels()
        path = io.write_fixel_directory(
            directory,
            counts=self.target.counts,
            offsets=self.target.offsets,
            directions=directions,
            data={name: densities},
            affine=self.target.affine,
        )
        logging.info(f"Remapped source fixels saved: {path}")
        return path
