"""Validation helpers and shared exceptions."""

from __future__ import annotations

import numpy as np


class ConfigurationError(Exception):
    """Raised for invalid parameters or parameter combinations."""


class DataError(Exception):
    """Raised when input fixel data is malformed or mutually inconsistent."""


class MappingError(DataError):
    """Raised when a stored fixel correspondence mapping is corrupted."""


def validate_fixel_count(array: np.ndarray, expected: int, name: str, reference: str) -> None:
    """Require one row per fixel, with an informative message on mismatch."""
    n = int(np.asarray(array).shape[0])
    if n != int(expected):
        raise DataError(
            f"Number of fixels in {name} ({n:,}) does not match {reference} ({int(expected):,}).\n"
            f"Check that both inputs come from the same fixel dataset."
        )


def validate_directions(directions: np.ndarray, name: str, atol: float = 1e-3) -> np.ndarray:
    """Check an (N, 3) direction array: finite and unit norm."""
    directions = np.asarray(directions, dtype=np.float64)
    if directions.ndim != 2 or directions.shape[1] != 3:
        raise DataError(
            f"{name} must have shape (N, 3); got {tuple(directions.shape)}."
        )
    if not np.all(np.isfinite(directions)):
        bad = int((~np.isfinite(directions)).any(axis=1).sum())
        raise DataError(
            f"{name} contains {bad:,} non-finite direction(s).\n"
            f"Action: Inspect the fixel directions file for corruption."
        )
    norms = np.linalg.norm(directions, axis=1)
    if directions.shape[0] and not np.allclose(norms, 1.0, atol=atol):
        worst = float(np.max(np.abs(norms - 1.0)))
        raise DataError(
            f"{name} are not unit vectors (largest norm deviation {worst:.4g}).\n"
            f"Action: Regenerate the fixel directions or renormalise them."
        )
    return directions
