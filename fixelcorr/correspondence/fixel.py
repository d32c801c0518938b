"""Fixel containers and the per-voxel view of a fixel dataset."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, NamedTuple, Optional

import numpy as np

from fixelcorr.core import io
from fixelcorr.core.validation import DataError, validate_directions, validate_fixel_count


Voxel = tuple[int, int, int]


class Fixel(NamedTuple):
    direction: np.ndarray
    density: float


@dataclass(frozen=True)
class VoxelFixels:
    """The (possibly empty) set of fixels within one voxel.

    Indices into ``directions``/``densities`` are local to the voxel; the
    dataset offset of the voxel converts them to flattened fixel indices.
    """

    directions: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    densities: np.ndarray = field(default_factory=lambda: np.zeros((0,)))

    def __len__(self) -> int:
        return int(self.densities.shape[0])

    def __iter__(self) -> Iterator[Fixel]:
        for direction, density in zip(self.directions, self.densities):
            yield Fixel(direction, float(density))

    @classmethod
    def from_fixels(cls, fixels) -> "VoxelFixels":
        fixels = list(fixels)
        if not fixels:
            return cls()
        directions = np.array([np.asarray(f.direction, dtype=np.float64) for f in fixels])
        directions /= np.linalg.norm(directions, axis=1, keepdims=True)
        return cls(directions, np.array([float(f.density) for f in fixels]))


class FixelDataset:
    """Read-only fixel dataset: voxel index, directions and one scalar per fixel.

    Parameters
    ----------
    counts, offsets:
        Per-voxel fixel count and first fixel index, shape (X, Y, Z).
    directions:
        (N, 3) unit vectors.
    values:
        (N,) scalar attribute, typically fibre density.
    affine:
        Voxel-to-world transform of the voxel grid.
    """

    def __init__(
        self,
        counts: np.ndarray,
        offsets: np.ndarray,
        directions: np.ndarray,
        values: np.ndarray,
        affine: Optional[np.ndarray] = None,
        *,
        directory: Optional[Path] = None,
        name: str = "fixel dataset",
    ) -> None:
        self.counts = np.asarray(counts, dtype=np.int64)
        self.offsets = np.asarray(offsets, dtype=np.int64)
        if self.counts.shape != self.offsets.shape or self.counts.ndim != 3:
            raise DataError(
                f"{name}: fixel counts and offsets must share one 3D voxel grid; "
                f"got {self.counts.shape} and {self.offsets.shape}"
            )
        self.directions = validate_directions(directions, f"{name} directions")
        self.values = np.asarray(values, dtype=np.float64).reshape(-1)
        validate_fixel_count(self.values, self.directions.shape[0], f"{name} data", "its directions file")
        io.validate_index(self.counts, self.offsets, self.nfixels, name)
        self.affine = np.eye(4) if affine is None else np.asarray(affine)
        self.directory = directory
        self.name = name

    @classmethod
    def from_data_file(cls, data_path: str | os.PathLike, *, name: Optional[str] = None) -> "FixelDataset":
        """Open the fixel dataset that a fixel data file belongs to."""
        directory = io.fixel_directory_of(data_path)
        counts, offsets, affine = io.load_index(directory)
        directions = io.load_directions(directory)
        values = io.load_fixel_data(data_path)
        label = name or Path(data_path).name
        logging.debug(f"Opened {label}: {directions.shape[0]:,} fixels, grid {counts.shape}")
        return cls(counts, offsets, directions, values, affine, directory=directory, name=label)

    @property
    def nfixels(self) -> int:
        return int(self.directions.shape[0])

    @property
    def shape(self) -> tuple[int, int, int]:
        return tuple(int(x) for x in self.counts.shape)  # type: ignore[return-value]

    def offset(self, voxel: Voxel) -> int:
        return int(self.offsets[voxel])

    def voxel(self, voxel: Voxel) -> VoxelFixels:
        """Fixels within one voxel, in stored order."""
        n = int(self.counts[voxel])
        if n == 0:
            return VoxelFixels()
        start = int(self.offsets[voxel])
        return VoxelFixels(
            self.directions[start:start + n],
            self.values[start:start + n],
        )
