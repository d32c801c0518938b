from __future__ import annotations

from typing import Optional

from fixelcorr.core.validation import ConfigurationError
from fixelcorr.correspondence.algorithms.combinatorial import (
    DEFAULT_MAX_OBJECTIVES,
    DEFAULT_MAX_ORIGINS,
    Combinatorial,
)
from fixelcorr.correspondence.adjacency import DEFAULT_MIN_HULL_DIRECTIONS
from fixelcorr.correspondence.dp2cost import DP2Cost


DEFAULT_ALPHA = 1.0
DEFAULT_BETA = 0.5


class NI2022(Combinatorial):
    """Combinatorial matching with tunable density and multiplicity weights.

    ``alpha`` scales the density disagreement term and ``beta`` penalises
    each fixel that is split across, or merged from, several fixels.
    """

    name = "ni2022"

    def __init__(
        self,
        max_origins: int = DEFAULT_MAX_ORIGINS,
        max_objectives: int = DEFAULT_MAX_OBJECTIVES,
        *,
        alpha: float = DEFAULT_ALPHA,
        beta: float = DEFAULT_BETA,
        min_hull_directions: int = DEFAULT_MIN_HULL_DIRECTIONS,
        dp2cost: Optional[DP2Cost] = None,
    ) -> None:
        super().__init__(
            max_origins,
            max_objectives,
            min_hull_directions=min_hull_directions,
            dp2cost=dp2cost,
        )
        self.set_constants(alpha, beta)

    def set_constants(self, alpha: float, beta: float) -> None:
        try:
            alpha, beta = float(alpha), float(beta)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid constants for algorithm '{self.name}': ({alpha}, {beta})\n"
                f"Both must be non-negative numbers."
            )
        if not (alpha >= 0.0 and beta >= 0.0):
            raise ConfigurationError(
                f"Invalid constants for algorithm '{self.name}': ({alpha}, {beta})\n"
                f"Both must be non-negative numbers."
            )
        self.alpha = alpha
        self.beta = beta
