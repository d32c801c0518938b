"""Convexity-based restriction on which fixels of a voxel may be grouped.

The fixel orientations of a voxel, together with their antipodes, span a
convex hull whose edges connect neighbouring orientations. Two fixels that
share no hull edge are "disconnected": a grouping that contains both without
some chain of neighbouring fixels between them is not permitted.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Iterable

import numpy as np
from scipy.spatial import ConvexHull, QhullError


DEFAULT_MIN_HULL_DIRECTIONS = 4


class ConvexAdjacency:
    """Neighbourhood graph of fixel orientations within one voxel.

    Parameters
    ----------
    directions : ndarray, shape (n, 3)
        Unit fixel orientations.
    min_directions : int
        Below this number of orientations the hull is not computed and any
        grouping is considered permissible.
    """

    def __init__(self, directions: np.ndarray, min_directions: int = DEFAULT_MIN_HULL_DIRECTIONS) -> None:
        directions = np.asarray(directions, dtype=np.float64).reshape(-1, 3)
        self.n = int(directions.shape[0])
        self.adjacency: np.ndarray | None = None
        if self.n < max(int(min_directions), 2):
            return

        points = np.vstack([directions, -directions])
        try:
            hull = ConvexHull(points)
        except QhullError:
            # Degenerate orientation sets (e.g. all coplanar) have no
            # triangulated hull; fall back to unrestricted grouping.
            logging.debug(f"Convex hull unavailable for {self.n} coplanar/degenerate directions")
            return

        adjacency = np.zeros((self.n, self.n), dtype=bool)
        for simplex in hull.simplices:
            for a, b in combinations(simplex % self.n, 2):
                if a != b:
                    adjacency[a, b] = adjacency[b, a] = True
        self.adjacency = adjacency

    @property
    def unrestricted(self) -> bool:
        return self.adjacency is None

    def adjacent(self, i: int, j: int) -> bool:
        if self.adjacency is None:
            return True
        return bool(self.adjacency[i, j])

    def permits(self, group: Iterable[int]) -> bool:
        """True if the fixels in ``group`` form a connected neighbourhood."""
        group = list(group)
        if self.adjacency is None or len(group) < 2:
            return True
        members = set(group)
        reached = {group[0]}
        frontier = [group[0]]
        while frontier:
            current = frontier.pop()
            for other in members - reached:
                if self.adjacency[current, other]:
                    reached.add(other)
                    frontier.append(other)
        return len(reached) == len(members)
