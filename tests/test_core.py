"""End-to-end tests for combat() and combat_fit()."""

import json
import logging

import numpy as np
import pandas as pd
import pytest

from ebcombat import CombatConfigError, CombatResult, combat, combat_fit

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _shifted(n_features=10, per_batch=10, shift=3.0, sd=0.5, seed=0):
    """Two batches; the second is shifted by *shift* in every feature."""
    rng = np.random.default_rng(seed)
    batch = np.repeat([1, 2], per_batch)
    base = rng.normal(5.0, 1.0, size=(n_features, 1))
    dat = base + rng.normal(0.0, sd, size=(n_features, batch.size))
    dat[:, batch == 2] += shift
    return dat, batch


def _location_scale(n_features=30, per_batch=50, seed=1):
    """Two batches differing in both location and scale."""
    rng = np.random.default_rng(seed)
    batch = np.repeat(["a", "b"], per_batch)
    dat = rng.standard_normal((n_features, batch.size))
    dat[:, batch == "b"] = 2.0 * dat[:, batch == "b"] + 1.5
    return dat + 10.0, batch


class TestOutputShape:
    def test_array_in_array_out(self):
        dat, batch = _shifted()
        out = combat(dat, batch)
        assert isinstance(out, np.ndarray)
        assert out.shape == dat.shape

    def test_dataframe_labels_preserved(self):
        dat, batch = _shifted()
        df = pd.DataFrame(
            dat,
            index=[f"gene{i}" for i in range(dat.shape[0])],
            columns=[f"s{j}" for j in range(dat.shape[1])],
        )
        out = combat(df, batch)
        assert isinstance(out, pd.DataFrame)
        pd.testing.assert_index_equal(out.index, df.index)
        pd.testing.assert_index_equal(out.columns, df.columns)

    def test_input_not_modified(self):
        dat, batch = _shifted()
        before = dat.copy()
        combat(dat, batch)
        np.testing.assert_array_equal(dat, before)

    def test_fit_returns_result(self):
        dat, batch = _shifted()
        result = combat_fit(dat, batch)
        assert isinstance(result, CombatResult)
        assert result.batch_levels == [1, 2]
        assert result.n_batches == [10, 10]
        assert result.gamma_star.shape == (2, dat.shape[0])
        assert result.all_converged

    def test_combat_matches_combat_fit(self):
        dat, batch = _shifted()
        np.testing.assert_array_equal(combat(dat, batch), combat_fit(dat, batch).data)


class TestBatchRemoval:
    @pytest.mark.parametrize("parametric", [True, False])
    def test_shift_removed(self, parametric):
        sd, per_batch = 0.5, 10
        dat, batch = _shifted(per_batch=per_batch, sd=sd)
        out = combat(dat, batch, parametric=parametric)
        diff = out[:, batch == 2].mean(axis=1) - out[:, batch == 1].mean(axis=1)
        se = sd * np.sqrt(2.0 / per_batch)
        assert np.all(np.abs(diff) < 4 * se)

    def test_shift_present_before(self):
        dat, batch = _shifted()
        diff = dat[:, batch == 2].mean(axis=1) - dat[:, batch == 1].mean(axis=1)
        assert np.all(diff > 2.0)

    def test_readjusting_finds_no_batch_effect(self):
        dat, batch = _location_scale()
        once = combat(dat, batch)
        again = combat_fit(once, batch)
        assert np.all(np.abs(again.gamma_hat) < 0.6)
        assert np.all(np.abs(again.gamma_hat.mean(axis=1)) < 0.1)
        assert np.all(np.abs(again.delta_hat.mean(axis=1) - 1.0) < 0.15)

    def test_scale_equalised(self):
        dat, batch = _location_scale()
        out = combat(dat, batch)
        ratio = out[:, batch == "b"].std(axis=1) / out[:, batch == "a"].std(axis=1)
        assert abs(np.median(ratio) - 1.0) < 0.2


class TestCovariates:
    def test_no_covariates_equals_intercept_only(self):
        dat, batch = _shifted()
        plain = combat(dat, batch)
        intercept = combat(dat, batch, mod=np.ones((dat.shape[1], 1)))
        np.testing.assert_array_equal(plain, intercept)

    def test_covariate_signal_preserved(self):
        rng = np.random.default_rng(3)
        batch = np.repeat([1, 2], 12)
        group = np.tile([0.0, 1.0], 12)
        dat = rng.normal(0.0, 0.3, size=(15, 24)) + 2.0 * group
        dat[:, batch == 2] += 4.0
        out = combat(dat, batch, mod=group)
        effect = out[:, group == 1].mean(axis=1) - out[:, group == 0].mean(axis=1)
        np.testing.assert_allclose(effect, 2.0, atol=0.5)

    def test_confounded_covariate_raises(self):
        dat, batch = _shifted()
        mod = (batch == 2).astype(float)
        with pytest.raises(CombatConfigError, match="confounded with batch"):
            combat(dat, batch, mod=mod)

    def test_config_error_before_fitting(self, caplog):
        dat, batch = _shifted()
        with caplog.at_level(logging.INFO, logger="ebcombat"):
            with pytest.raises(CombatConfigError):
                combat(dat, batch, ref_batch="missing")
        assert "Standardizing" not in caplog.text


class TestReferenceBatch:
    @pytest.mark.parametrize("parametric", [True, False])
    def test_reference_columns_unchanged(self, parametric):
        dat, batch = _location_scale()
        out = combat(dat, batch, ref_batch="a", parametric=parametric)
        np.testing.assert_array_equal(out[:, batch == "a"], dat[:, batch == "a"])

    def test_other_batch_moved_toward_reference(self):
        dat, batch = _location_scale()
        out = combat(dat, batch, ref_batch="a")
        ref_mean = dat[:, batch == "a"].mean(axis=1)
        before = np.abs(dat[:, batch == "b"].mean(axis=1) - ref_mean)
        after = np.abs(out[:, batch == "b"].mean(axis=1) - ref_mean)
        assert np.all(after < before)

    def test_reference_recorded(self):
        dat, batch = _location_scale()
        result = combat_fit(dat, batch, ref_batch="b")
        assert result.ref_batch == "b"


class TestMeanOnly:
    def test_single_sample_batch_forces_mean_only(self):
        rng = np.random.default_rng(4)
        batch = np.array([1] * 5 + [2] * 5 + [3])
        dat = rng.standard_normal((12, batch.size))
        result = combat_fit(dat, batch)
        assert result.mean_only
        assert result.mean_only_forced
        np.testing.assert_array_equal(result.delta_star, np.ones((3, 12)))

    def test_requested_mean_only(self):
        dat, batch = _location_scale()
        result = combat_fit(dat, batch, mean_only=True)
        assert result.mean_only
        assert not result.mean_only_forced
        np.testing.assert_array_equal(result.delta_star, np.ones_like(result.gamma_star))

    def test_mean_only_keeps_scale_difference(self):
        dat, batch = _location_scale()
        out = combat(dat, batch, mean_only=True)
        ratio = out[:, batch == "b"].std(axis=1) / out[:, batch == "a"].std(axis=1)
        assert np.median(ratio) > 1.5

    def test_nonparametric_mean_only(self):
        dat, batch = _location_scale()
        result = combat_fit(dat, batch, mean_only=True, parametric=False)
        np.testing.assert_array_equal(result.delta_star, np.ones_like(result.gamma_star))


class TestMissingValues:
    @pytest.mark.parametrize("parametric", [True, False])
    def test_missing_positions_preserved(self, parametric):
        dat, batch = _location_scale(n_features=20, per_batch=10)
        rng = np.random.default_rng(7)
        mask = rng.random(dat.shape) < 0.05
        dat[mask] = np.nan
        out = combat(dat, batch, parametric=parametric)
        np.testing.assert_array_equal(np.isnan(out), mask)

    def test_missing_count_recorded(self):
        dat, batch = _shifted()
        dat[0, 0] = np.nan
        dat[3, 12] = np.nan
        assert combat_fit(dat, batch).n_missing == 2

    def test_missing_values_with_reference(self):
        dat, batch = _location_scale(n_features=15, per_batch=10)
        dat[2, 1] = np.nan
        dat[5, 15] = np.nan
        out = combat(dat, batch, ref_batch="a")
        ref = batch == "a"
        np.testing.assert_array_equal(out[:, ref], dat[:, ref])

    def test_only_unidentifiable_feature_is_nan(self):
        dat, batch = _location_scale(n_features=15, per_batch=10)
        dat[4, batch == "b"] = np.nan
        out = combat(dat, batch)
        others = np.delete(np.arange(dat.shape[0]), 4)
        assert np.all(np.isfinite(out[others]))


class TestIterationCap:
    def test_cap_warns_and_flags(self):
        dat, batch = _location_scale()
        with pytest.warns(UserWarning, match="did not converge"):
            result = combat_fit(dat, batch, max_iter=1)
        assert not result.all_converged
        assert result.n_iterations == [1, 1]


class TestLogging:
    def test_injected_logger(self, caplog):
        dat, batch = _shifted()
        log = logging.getLogger("ebcombat_tests.injected")
        with caplog.at_level(logging.INFO, logger="ebcombat_tests.injected"):
            combat(dat, batch, logger=log)
        messages = [r.getMessage() for r in caplog.records if r.name == log.name]
        assert "Found 2 batches" in messages
        assert "Adjusting the data" in messages

    def test_module_logger_by_default(self, caplog):
        dat, batch = _shifted()
        with caplog.at_level(logging.INFO, logger="ebcombat"):
            combat(dat, batch)
        assert any(r.name == "ebcombat.core" for r in caplog.records)

    def test_forced_mean_only_noted(self, caplog):
        rng = np.random.default_rng(4)
        batch = np.array([1] * 5 + [2])
        dat = rng.standard_normal((8, batch.size))
        with caplog.at_level(logging.INFO, logger="ebcombat"):
            combat(dat, batch)
        assert "setting mean_only=True" in caplog.text


class TestPriorDiagnostics:
    def test_prior_plots_do_not_change_data(self):
        dat, batch = _location_scale()
        plain = combat_fit(dat, batch)
        with_plots = combat_fit(dat, batch, prior_plots=True, random_state=0)
        np.testing.assert_array_equal(plain.data, with_plots.data)
        assert plain.prior_diagnostics is None
        assert with_plots.prior_diagnostics is not None
        assert with_plots.prior_diagnostics.batch == "a"

    def test_ignored_for_nonparametric(self):
        dat, batch = _location_scale()
        result = combat_fit(dat, batch, prior_plots=True, parametric=False)
        assert result.prior_diagnostics is None


class TestResultSerialisation:
    def test_to_dict_is_json_serialisable(self):
        dat, batch = _location_scale()
        result = combat_fit(dat, batch, prior_plots=True, random_state=0)
        payload = result.to_dict()
        assert "context" not in payload
        json.dumps(payload)

    def test_context_carries_intermediates(self):
        dat, batch = _shifted()
        result = combat_fit(dat, batch)
        ctx = result.context
        assert ctx.design_info.n_batch == 2
        assert ctx.standardization.s_data.shape == dat.shape
        assert len(ctx.shrinkage) == 2
        assert ctx.strategy == "parametric"


class TestParallel:
    def test_threads_match_sequential(self):
        dat, batch = _location_scale(n_features=20, per_batch=10)
        dat[1, 3] = np.nan
        seq = combat(dat, batch, parametric=False, n_jobs=1)
        par = combat(dat, batch, parametric=False, n_jobs=2)
        np.testing.assert_allclose(par, seq, equal_nan=True)

    def test_invalid_n_jobs(self):
        dat, batch = _shifted()
        with pytest.raises(ValueError, match="non-zero integer"):
            combat(dat, batch, n_jobs=0)
