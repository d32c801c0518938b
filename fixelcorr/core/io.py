"""Fixel directory I/O.

A fixel directory holds an ``index`` image of shape (X, Y, Z, 2) whose last
axis stores (fixel count, first fixel offset) per voxel, a ``directions``
image of shape (N, 3, 1) and any number of fixel data files of shape
(N, 1, 1). All images are NIfTI and are read/written with nibabel.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Any, Mapping, Optional

import nibabel as nb
import numpy as np

from fixelcorr.core.validation import ConfigurationError, DataError


NIFTI_SUFFIXES = (".nii.gz", ".nii")
INDEX_STEM = "index"
DIRECTIONS_STEM = "directions"


def split_nifti_name(path: str | os.PathLike) -> tuple[str, str]:
    """Return (stem, suffix) with ``.nii.gz`` treated as a single suffix."""
    name = Path(path).name
    for suffix in NIFTI_SUFFIXES:
        if name.lower().endswith(suffix):
            return name[: -len(suffix)], name[-len(suffix):]
    return Path(name).stem, Path(name).suffix


def find_image(directory: str | os.PathLike, stem: str) -> Path:
    """Locate ``<stem>.nii.gz`` or ``<stem>.nii`` inside a directory."""
    directory = Path(directory)
    for suffix in NIFTI_SUFFIXES:
        candidate = directory / f"{stem}{suffix}"
        if candidate.exists():
            return candidate
    raise DataError(
        f"Could not find '{stem}' image in fixel directory: {directory}\n"
        f"Expected one of: {', '.join(stem + s for s in NIFTI_SUFFIXES)}"
    )


def fixel_directory_of(data_path: str | os.PathLike) -> Path:
    """Return the fixel directory containing a fixel data file."""
    p = Path(data_path)
    if p.is_dir():
        raise DataError(
            f"Please provide a fixel data file, not a fixel directory: {p}"
        )
    if not p.exists():
        raise FileNotFoundError(f"Fixel data file not found: {p}")
    return p.resolve().parent


def load_index(directory: str | os.PathLike) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Load a fixel index image and return (counts, offsets, affine).

    ``counts`` and ``offsets`` are int64 arrays of the 3D voxel grid shape.
    """
    path = find_image(directory, INDEX_STEM)
    img = nb.load(str(path))
    data = np.asarray(img.dataobj)
    if data.ndim != 4 or data.shape[3] != 2:
        raise DataError(
            f"Fixel index image must have shape (X, Y, Z, 2); got {tuple(data.shape)}: {path}"
        )
    counts = data[..., 0].astype(np.int64)
    offsets = data[..., 1].astype(np.int64)
    if np.any(counts < 0) or np.any(offsets < 0):
        raise DataError(f"Fixel index image contains negative entries: {path}")
    return counts, offsets, np.asarray(img.affine)


def load_directions(directory: str | os.PathLike) -> np.ndarray:
    """Load fixel directions as an (N, 3) float64 array."""
    path = find_image(directory, DIRECTIONS_STEM)
    data = np.asarray(nb.load(str(path)).dataobj, dtype=np.float64)
    data = data.reshape(data.shape[0], -1) if data.ndim > 1 else data.reshape(-1, 3)
    if data.shape[1] != 3:
        raise DataError(
            f"Fixel directions image must contain 3 values per fixel; got {data.shape[1]}: {path}"
        )
    return data


def load_fixel_data(path: str | os.PathLike) -> np.ndarray:
    """Load a fixel data file as a 1D float64 array (one value per fixel)."""
    data = np.asarray(nb.load(str(path)).dataobj, dtype=np.float64)
    if data.ndim == 0 or int(np.prod(data.shape[1:], dtype=np.int64)) != 1:
        raise DataError(
            f"Fixel data file must hold a single scalar per fixel; got shape {tuple(data.shape)}: {path}"
        )
    return data.reshape(-1)


def validate_index(counts: np.ndarray, offsets: np.ndarray, n_fixels: int, name: str) -> None:
    """Check that every voxel's fixel range lies inside ``[0, n_fixels)``."""
    total = int(counts.sum())
    if total != int(n_fixels):
        raise DataError(
            f"{name}: index accounts for {total:,} fixels but {int(n_fixels):,} are stored."
        )
    occupied = counts > 0
    if np.any(offsets[occupied] + counts[occupied] > n_fixels):
        raise DataError(f"{name}: index references fixels beyond the end of the dataset.")


def _atomic_target(path: Path) -> Path:
    return path.with_name(f".tmp_{uuid.uuid4().hex[:8]}_{path.name}")


def _save_nifti_atomic(data: np.ndarray, path: str | os.PathLike, affine: Any) -> str:
    path = Path(path)
    tmp = _atomic_target(path)
    try:
        nb.save(nb.Nifti1Image(data, affine), str(tmp))
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()
    return str(path)


def save_fixel_data(values: np.ndarray, path: str | os.PathLike, affine: Optional[Any] = None) -> str:
    """Write a fixel data file of shape (N, 1, 1) float32."""
    values = np.asarray(values, dtype=np.float32).reshape(-1, 1, 1)
    return _save_nifti_atomic(values, path, np.eye(4) if affine is None else affine)


def save_volume(volume: np.ndarray, path: str | os.PathLike, affine: Any) -> str:
    """Write a 3D float32 volume on the fixel voxel grid."""
    return _save_nifti_atomic(np.asarray(volume, dtype=np.float32), path, affine)


def require_new_path(path: str | os.PathLike, what: str) -> Path:
    """Refuse to overwrite an existing output."""
    p = Path(path)
    if p.exists():
        raise ConfigurationError(
            f"Output {what} already exists: {p}\n"
            f"Remove it manually or choose a different output path."
        )
    return p


def write_fixel_directory(
    directory: str | os.PathLike,
    *,
    counts: np.ndarray,
    offsets: np.ndarray,
    directions: np.ndarray,
    data: Mapping[str, np.ndarray],
    affine: Any,
) -> str:
    """Create a new fixel directory atomically.

    ``data`` maps output file names (e.g. ``density.nii.gz``) to per-fixel
    values. The directory is assembled under a temporary sibling name and
    renamed into place once every file has been written.
    """
    final = require_new_path(directory, "fixel directory")
    final.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{final.name}.", dir=str(final.parent)))
    try:
        index = np.stack([counts, offsets], axis=-1).astype(np.uint32)
        nb.save(nb.Nifti1Image(index, affine), str(staging / f"{INDEX_STEM}.nii.gz"))
        dirs = np.asarray(directions, dtype=np.float32).reshape(-1, 3, 1)
        nb.save(nb.Nifti1Image(dirs, np.eye(4)), str(staging / f"{DIRECTIONS_STEM}.nii.gz"))
        for name, values in data.items():
            values = np.asarray(values, dtype=np.float32).reshape(-1, 1, 1)
            nb.save(nb.Nifti1Image(values, np.eye(4)), str(staging / name))
        os.rename(staging, final)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    return str(final)
