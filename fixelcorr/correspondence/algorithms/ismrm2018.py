from __future__ import annotations

from fixelcorr.correspondence.algorithms.combinatorial import Combinatorial


class ISMRM2018(Combinatorial):
    """Combinatorial matching with equal angular and density weighting.

    Density disagreement enters the cost with unit weight; no separate
    penalty is placed on one-to-many or many-to-one assignments.
    """

    name = "ismrm2018"
    alpha = 1.0
    beta = 0.0
