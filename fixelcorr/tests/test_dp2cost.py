from __future__ import annotations

import numpy as np
import pytest

from fixelcorr.correspondence.dp2cost import DP2Cost


def test_aligned_directions_cost_nothing() -> None:
    assert DP2Cost()(1.0) == 0.0


def test_table_is_padded_and_read_only() -> None:
    f = DP2Cost(resolution=10)
    assert f.table.shape == (12,)
    assert f.table[-1] == 0.0
    with pytest.raises(ValueError):
        f.table[0] = 1.0


def test_interpolation_tracks_exact_penalty() -> None:
    f = DP2Cost()
    dp = np.linspace(0.05, 1.0, 50)
    np.testing.assert_allclose(f(dp), f.exact(dp), rtol=1e-3, atol=1e-4)


def test_penalty_increases_as_directions_diverge() -> None:
    f = DP2Cost()
    dp = np.linspace(0.01, 1.0, 200)
    cost = f(dp)
    assert np.all(np.diff(cost) < 0)
    assert cost[0] > 50.0


def test_scalar_input_returns_float() -> None:
    assert isinstance(DP2Cost()(0.5), float)


@pytest.mark.parametrize("dp", [-0.1, 1.2])
def test_out_of_range_is_a_caller_bug(dp: float) -> None:
    with pytest.raises(AssertionError):
        DP2Cost()(dp)
