"""Combinatorial fixel correspondence.

Within each voxel every admissible assignment of source fixels to target
fixels is scored, and the cheapest one is kept. An assignment gives each
target fixel a set of "origin" source fixels; conversely each source fixel
has a set of "objective" target fixels. Two bounds keep the enumeration
tractable: at most ``max_origins`` origins per target fixel and at most
``max_objectives`` objectives per source fixel. Groupings that are not
connected on the voxel's convex orientation hull are never considered.

With ``d`` the fixel densities, ``n_s`` the number of objectives of source
fixel ``s``, ``D_t = sum(d_s / n_s)`` the density remapped onto target fixel
``t`` and ``f`` the angular penalty, the cost of an assignment is::

    angular      = sum_t sum_{s in S_t} (d_s + d_t) / 2 * f(|u_s . u_t|)
    density      = sum_t |d_t - D_t| + sum_{s unassigned} d_s
    multiplicity = sum_s d_s * max(n_s - 1, 0) + sum_t d_t * max(|S_t| - 1, 0)
    cost         = angular + alpha * density + beta * multiplicity
"""

from __future__ import annotations

import math
from itertools import combinations
from typing import Any, Optional, Sequence

import numpy as np

from fixelcorr.core.validation import ConfigurationError
from fixelcorr.correspondence.adjacency import DEFAULT_MIN_HULL_DIRECTIONS, ConvexAdjacency
from fixelcorr.correspondence.algorithms.base import CorrespondenceAlgorithm
from fixelcorr.correspondence.dp2cost import DP2Cost
from fixelcorr.correspondence.fixel import Voxel, VoxelFixels


DEFAULT_MAX_ORIGINS = 3
DEFAULT_MAX_OBJECTIVES = 3


def _positive_int(value: Any, name: str) -> int:
    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {name}: must be an integer.\nCurrent value: '{value}'")
    if ivalue != value and not isinstance(value, str):
        raise ConfigurationError(f"Invalid {name}: must be an integer.\nCurrent value: '{value}'")
    if ivalue < 1:
        raise ConfigurationError(f"Invalid {name}: {ivalue}\nMust be an integer >= 1.")
    return ivalue


class Combinatorial(CorrespondenceAlgorithm):
    """Exhaustive branch-and-bound search for the minimum-cost assignment.

    Subclasses fix or expose the weighting constants ``alpha`` (density
    agreement) and ``beta`` (fan-in / fan-out multiplicity).
    """

    name = "combinatorial"
    records_cost = True

    alpha: float = 1.0
    beta: float = 0.0

    def __init__(
        self,
        max_origins: int = DEFAULT_MAX_ORIGINS,
        max_objectives: int = DEFAULT_MAX_OBJECTIVES,
        *,
        min_hull_directions: int = DEFAULT_MIN_HULL_DIRECTIONS,
        dp2cost: Optional[DP2Cost] = None,
    ) -> None:
        super().__init__()
        self.max_origins = _positive_int(max_origins, "max_origins")
        self.max_objectives = _positive_int(max_objectives, "max_objectives")
        if int(min_hull_directions) < 0:
            raise ConfigurationError(
                f"Invalid min_hull_directions: {min_hull_directions}\nMust be >= 0."
            )
        self.min_hull_directions = int(min_hull_directions)
        self.dp2cost = dp2cost if dp2cost is not None else DP2Cost()

    def describe(self) -> dict[str, Any]:
        return {
            "algorithm": self.name,
            "max_origins": self.max_origins,
            "max_objectives": self.max_objectives,
            "alpha": float(self.alpha),
            "beta": float(self.beta),
            "min_hull_directions": self.min_hull_directions,
        }

    # ------------------------------------------------------------------ #
    # Cost terms
    # ------------------------------------------------------------------ #

    def _pair_costs(self, source: VoxelFixels, target: VoxelFixels) -> np.ndarray:
        """Angular cost of every (target, source) pairing, shape (nt, ns)."""
        dp = np.clip(np.abs(target.directions @ source.directions.T), 0.0, 1.0)
        weight = 0.5 * (target.densities[:, None] + source.densities[None, :])
        return weight * self.dp2cost(dp)

    @staticmethod
    def _density_term(
        chosen: Sequence[Sequence[int]],
        objectives: Sequence[int],
        d_s: Sequence[float],
        d_t: Sequence[float],
    ) -> float:
        mismatch = 0.0
        for t, origins in enumerate(chosen):
            remapped = sum(d_s[s] / objectives[s] for s in origins)
            mismatch += abs(d_t[t] - remapped)
        mismatch += sum(d for d, n in zip(d_s, objectives) if n == 0)
        return mismatch

    def cost(self, source: VoxelFixels, target: VoxelFixels, assignment: Sequence[Sequence[int]]) -> float:
        """Total cost of a given voxel assignment."""
        if len(assignment) != len(target):
            raise ValueError("Assignment must contain one entry per target fixel")
        d_s = [float(x) for x in source.densities]
        d_t = [float(x) for x in target.densities]
        pair = self._pair_costs(source, target)
        objectives = [0] * len(source)
        for origins in assignment:
            for s in origins:
                objectives[s] += 1

        angular = sum(float(pair[t, s]) for t, origins in enumerate(assignment) for s in origins)
        multiplicity = sum(d * max(n - 1, 0) for d, n in zip(d_s, objectives))
        multiplicity += sum(d_t[t] * max(len(origins) - 1, 0) for t, origins in enumerate(assignment))
        density = self._density_term(assignment, objectives, d_s, d_t)
        return angular + self.alpha * density + self.beta * multiplicity

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #

    def _objectives_permitted(self, chosen, ns: int, target_groups: ConvexAdjacency) -> bool:
        if target_groups.unrestricted:
            return True
        for s in range(ns):
            objectives = [t for t, origins in enumerate(chosen) if s in origins]
            if len(objectives) > 1 and not target_groups.permits(objectives):
                return False
        return True

    def _search(self, source: VoxelFixels, target: VoxelFixels) -> tuple[float, list[tuple[int, ...]]]:
        ns, nt = len(source), len(target)
        d_s = [float(x) for x in source.densities]
        d_t = [float(x) for x in target.densities]
        pair = self._pair_costs(source, target)

        source_groups = ConvexAdjacency(source.directions, self.min_hull_directions)
        target_groups = ConvexAdjacency(target.directions, self.min_hull_directions)

        candidates = [
            origins
            for size in range(min(self.max_origins, ns) + 1)
            for origins in combinations(range(ns), size)
            if source_groups.permits(origins)
        ]

        # Per target: candidates ordered by the part of their cost that is
        # known before the rest of the voxel is assigned.
        options: list[list[tuple[float, tuple[int, ...]]]] = []
        for t in range(nt):
            scored = [
                (
                    float(sum(pair[t, s] for s in origins))
                    + self.beta * d_t[t] * max(len(origins) - 1, 0),
                    origins,
                )
                for origins in candidates
            ]
            scored.sort(key=lambda item: item[0])
            options.append(scored)

        objectives = [0] * ns
        chosen: list[tuple[int, ...]] = [()] * nt
        best_cost = math.inf
        best: list[tuple[int, ...]] = list(chosen)

        def descend(t: int, partial: float) -> None:
            nonlocal best_cost, best
            if t == nt:
                if not self._objectives_permitted(chosen, ns, target_groups):
                    return
                total = partial + self.alpha * self._density_term(chosen, objectives, d_s, d_t)
                if total < best_cost:
                    best_cost, best = total, list(chosen)
                return
            for lower, origins in options[t]:
                # Remaining terms are non-negative: nothing later in this
                # (sorted) list can improve on the incumbent.
                if partial + lower >= best_cost:
                    break
                if any(objectives[s] >= self.max_objectives for s in origins):
                    continue
                fan_out = self.beta * sum(d_s[s] for s in origins if objectives[s] > 0)
                for s in origins:
                    objectives[s] += 1
                chosen[t] = origins
                descend(t + 1, partial + lower + fan_out)
                for s in origins:
                    objectives[s] -= 1
            chosen[t] = ()

        descend(0, 0.0)
        return best_cost, best

    def __call__(self, voxel: Voxel, source: VoxelFixels, target: VoxelFixels) -> list[list[int]]:
        if not len(source) or not len(target):
            assignment: list[list[int]] = [[] for _ in range(len(target))]
            self._record_cost(voxel, self.cost(source, target, assignment))
            return assignment
        best_cost, best = self._search(source, target)
        self._record_cost(voxel, best_cost)
        return [list(origins) for origins in best]
