"""Tests for empirical-Bayes hyper-prior estimation."""

import numpy as np
import pytest

from ebcombat.priors import Priors, aprior, bprior, estimate_priors


class TestMethodOfMoments:
    def test_aprior_formula(self):
        d = np.array([0.5, 1.0, 1.5, 2.0])
        m, v = d.mean(), d.var(ddof=1)
        assert aprior(d) == pytest.approx((2 * v + m**2) / v)

    def test_bprior_formula(self):
        d = np.array([0.5, 1.0, 1.5, 2.0])
        m, v = d.mean(), d.var(ddof=1)
        assert bprior(d) == pytest.approx((m**3 + m * v) / v)

    def test_recovers_inverse_gamma_moments(self):
        # InvGamma(a, b) has mean b/(a-1) and variance b²/((a-1)²(a-2)).
        d = np.array([0.8, 0.9, 1.0, 1.1, 1.2, 1.5])
        a, b = aprior(d), bprior(d)
        assert b / (a - 1) == pytest.approx(d.mean())
        assert b**2 / ((a - 1) ** 2 * (a - 2)) == pytest.approx(d.var(ddof=1))

    def test_constant_scales_not_finite(self):
        d = np.ones(5)
        assert not np.isfinite(aprior(d))
        assert not np.isfinite(bprior(d))

    def test_nan_features_ignored(self):
        d = np.array([0.5, np.nan, 1.5, 2.0])
        assert aprior(d) == pytest.approx(aprior(np.array([0.5, 1.5, 2.0])))


class TestEstimatePriors:
    def test_per_batch_values(self):
        rng = np.random.default_rng(0)
        gamma_hat = rng.standard_normal((3, 40))
        delta_hat = rng.gamma(5.0, 0.2, size=(3, 40))
        priors = estimate_priors(gamma_hat, delta_hat)
        assert isinstance(priors, Priors)
        np.testing.assert_allclose(priors.gamma_bar, gamma_hat.mean(axis=1))
        np.testing.assert_allclose(priors.t2, gamma_hat.var(axis=1, ddof=1))
        np.testing.assert_allclose(priors.a_prior, [aprior(r) for r in delta_hat])
        np.testing.assert_allclose(priors.b_prior, [bprior(r) for r in delta_hat])

    def test_for_batch(self):
        priors = Priors(
            gamma_bar=np.array([0.1, 0.2]),
            t2=np.array([1.0, 2.0]),
            a_prior=np.array([3.0, 4.0]),
            b_prior=np.array([5.0, 6.0]),
        )
        assert priors.for_batch(1) == (0.2, 2.0, 4.0, 6.0)

    def test_nan_feature_does_not_poison_priors(self):
        rng = np.random.default_rng(1)
        gamma_hat = rng.standard_normal((2, 10))
        delta_hat = rng.gamma(5.0, 0.2, size=(2, 10))
        gamma_hat[:, 4] = np.nan
        delta_hat[:, 4] = np.nan
        priors = estimate_priors(gamma_hat, delta_hat)
        assert np.all(np.isfinite(priors.gamma_bar))
        assert np.all(np.isfinite(priors.a_prior))
