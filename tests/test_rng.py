"""Tests for iris_ticks.rng — seeded RNG, stochastic rounding, checkpointing."""

import numpy as np
import pytest

from iris_ticks.rng import (
    create_rng,
    restore_rng_state,
    rng_state_snapshot,
    stochastic_round,
)


class TestCreateRng:
    def test_generator_type(self):
        rng = create_rng(42)
        assert isinstance(rng, np.random.Generator)
        assert isinstance(rng.bit_generator, np.random.PCG64)

    def test_reproducibility(self):
        """Same seed produces identical sequences."""
        v1 = create_rng(42).random(100)
        v2 = create_rng(42).random(100)
        np.testing.assert_array_equal(v1, v2)

    def test_different_seeds_differ(self):
        v1 = create_rng(42).random(10)
        v2 = create_rng(43).random(10)
        assert not np.array_equal(v1, v2)

    def test_negative_seed_rejected(self):
        with pytest.raises(ValueError, match="seed"):
            create_rng(-1)


class TestStochasticRound:
    def test_integer_input_is_exact(self):
        rng = create_rng(1)
        for _ in range(100):
            assert stochastic_round(3.0, rng) == 3
        assert stochastic_round(0.0, rng) == 0

    def test_returns_floor_or_ceil(self):
        rng = create_rng(2)
        values = {stochastic_round(2.3, rng) for _ in range(1000)}
        assert values == {2, 3}

    def test_scalar_returns_python_int(self):
        assert isinstance(stochastic_round(1.5, create_rng(3)), int)

    def test_unbiased_mean(self):
        """Mean of 100,000 draws of 2.3 converges to 2.3."""
        rng = create_rng(42)
        draws = stochastic_round(np.full(100_000, 2.3), rng)
        assert abs(draws.mean() - 2.3) < 0.01

    def test_unbiased_small_value(self):
        rng = create_rng(7)
        draws = stochastic_round(np.full(100_000, 0.05), rng)
        assert set(np.unique(draws)) <= {0, 1}
        assert abs(draws.mean() - 0.05) < 0.005

    def test_array_shape_and_dtype(self):
        rng = create_rng(4)
        values = np.array([[0.5, 1.0], [2.25, 7.9]])
        out = stochastic_round(values, rng)
        assert out.shape == (2, 2)
        assert out.dtype == np.int64
        assert out[0, 1] == 1
        assert np.all(out >= np.floor(values))
        assert np.all(out <= np.ceil(values))

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match=">= 0"):
            stochastic_round(-0.5, create_rng(5))

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            stochastic_round(np.nan, create_rng(5))
        with pytest.raises(ValueError, match="finite"):
            stochastic_round(np.array([1.0, np.inf]), create_rng(5))

    def test_seeded_sequence_reproducible(self):
        rng1, rng2 = create_rng(9), create_rng(9)
        s1 = [stochastic_round(v, rng1) for v in (0.2, 1.5, 3.9, 10.01)]
        s2 = [stochastic_round(v, rng2) for v in (0.2, 1.5, 3.9, 10.01)]
        assert s1 == s2

    def test_one_draw_per_element(self):
        """Stream position depends only on input shape, not on values."""
        rng1, rng2 = create_rng(11), create_rng(11)
        stochastic_round(np.array([1.0, 2.0, 3.0]), rng1)
        stochastic_round(np.array([0.5, 0.1, 9.9]), rng2)
        assert rng1.random() == rng2.random()


class TestCheckpointing:
    def test_snapshot_and_restore(self):
        """Round-trip: advance → snapshot → draw → restore → same draws."""
        rng = create_rng(42)
        rng.random(10)
        snapshot = rng_state_snapshot(rng)
        expected = rng.random(20)

        rng2 = create_rng(0)
        restore_rng_state(rng2, snapshot)
        np.testing.assert_array_equal(rng2.random(20), expected)

    def test_restore_wrong_bit_generator_raises(self):
        rng = create_rng(42)
        with pytest.raises(ValueError, match="MT19937"):
            restore_rng_state(rng, {'bit_generator': 'MT19937', 'state': {}})
