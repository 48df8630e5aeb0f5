"""Tests for the CombatResult container."""

import dataclasses

import numpy as np
import pandas as pd
import pytest

from ebcombat import CombatResult, combat_fit
from ebcombat._results import _numpy_to_python


@pytest.fixture()
def result():
    rng = np.random.default_rng(0)
    dat = rng.standard_normal((8, 10))
    return combat_fit(dat, [1] * 5 + [2] * 5)


class TestDictAccess:
    def test_bracket_access(self, result):
        assert result["n_covariates"] == result.n_covariates

    def test_missing_key_raises(self, result):
        with pytest.raises(KeyError):
            result["no_such_field"]

    def test_get_default(self, result):
        assert result.get("no_such_field", 7) == 7

    def test_contains(self, result):
        assert "gamma_star" in result
        assert "no_such_field" not in result
        assert 3 not in result

    def test_frozen(self, result):
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.parametric = False


class TestToDict:
    def test_native_types(self, result):
        payload = result.to_dict()
        assert isinstance(payload["gamma_star"], list)
        assert isinstance(payload["n_batches"][0], int)
        assert payload["prior_diagnostics"] is None

    def test_context_excluded(self, result):
        assert "context" not in result.to_dict()

    def test_all_converged(self, result):
        assert result.all_converged is True
        assert isinstance(result, CombatResult)


class TestNumpyToPython:
    def test_scalars(self):
        assert _numpy_to_python(np.float64(1.5)) == 1.5
        assert type(_numpy_to_python(np.int32(3))) is int
        assert _numpy_to_python(np.bool_(True)) is True

    def test_nested(self):
        out = _numpy_to_python({"a": [np.arange(2)], "b": (np.float32(0.5),)})
        assert out == {"a": [[0, 1]], "b": (0.5,)}

    def test_dataframe(self):
        df = pd.DataFrame([[1.0, 2.0]])
        assert _numpy_to_python(df) == [[1.0, 2.0]]
