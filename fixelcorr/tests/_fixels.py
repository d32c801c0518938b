"""Synthetic fixel directories for the test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import numpy as np

from fixelcorr.core import io


def unit(*v: float) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    return v / np.linalg.norm(v)


def layout(shape: tuple[int, int, int], voxels: dict) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Flatten {voxel: [(direction, value), ...]} into fixel index arrays.

    Fixels are stored voxel-contiguously in C grid order.
    """
    counts = np.zeros(shape, dtype=np.int64)
    offsets = np.zeros(shape, dtype=np.int64)
    directions: list[np.ndarray] = []
    values: list[float] = []
    for voxel in np.ndindex(*shape):
        fixels = voxels.get(voxel, [])
        counts[voxel] = len(fixels)
        offsets[voxel] = len(values)
        for direction, value in fixels:
            directions.append(unit(*direction))
            values.append(float(value))
    return counts, offsets, np.array(directions, dtype=np.float64).reshape(-1, 3), np.array(values)


def write_fixel_dir(
    directory: Path,
    voxels: dict,
    *,
    shape: tuple[int, int, int] = (2, 1, 1),
    data_name: str = "fd.nii.gz",
    extra: Optional[dict[str, Iterable[float]]] = None,
) -> Path:
    """Write a fixel directory and return the path of its data file."""
    counts, offsets, directions, values = layout(shape, voxels)
    data = {data_name: values}
    for name, extra_values in (extra or {}).items():
        data[name] = np.asarray(list(extra_values), dtype=np.float64)
    io.write_fixel_directory(
        directory,
        counts=counts,
        offsets=offsets,
        directions=directions,
        data=data,
        affine=np.eye(4),
    )
    return Path(directory) / data_name
