"""Per-voxel fixel correspondence algorithms."""

from __future__ import annotations

from typing import Any

from fixelcorr.core.validation import ConfigurationError
from fixelcorr.correspondence.algorithms.base import CorrespondenceAlgorithm
from fixelcorr.correspondence.algorithms.combinatorial import (
    DEFAULT_MAX_OBJECTIVES,
    DEFAULT_MAX_ORIGINS,
    Combinatorial,
)
from fixelcorr.correspondence.algorithms.ismrm2018 import ISMRM2018
from fixelcorr.correspondence.algorithms.nearest import DEFAULT_MAX_ANGLE, Nearest
from fixelcorr.correspondence.algorithms.ni2022 import NI2022


ALGORITHMS: dict[str, type[CorrespondenceAlgorithm]] = {
    Nearest.name: Nearest,
    ISMRM2018.name: ISMRM2018,
    NI2022.name: NI2022,
}
DEFAULT_ALGORITHM = NI2022.name


def make_algorithm(name: str, **params: Any) -> CorrespondenceAlgorithm:
    """Instantiate a registered algorithm by name.

    Parameters that do not apply to the chosen algorithm are rejected.
    """
    key = str(name).strip().lower()
    if key not in ALGORITHMS:
        raise ConfigurationError(
            f"Unknown matching algorithm: '{name}'\nValid options: {sorted(ALGORITHMS)}"
        )
    try:
        return ALGORITHMS[key](**params)
    except TypeError as e:
        raise ConfigurationError(f"Invalid parameters for algorithm '{key}': {e}") from e


__all__ = [
    "ALGORITHMS",
    "DEFAULT_ALGORITHM",
    "DEFAULT_MAX_ANGLE",
    "DEFAULT_MAX_OBJECTIVES",
    "DEFAULT_MAX_ORIGINS",
    "CorrespondenceAlgorithm",
    "Combinatorial",
    "ISMRM2018",
    "NI2022",
    "Nearest",
    "make_algorithm",
]
