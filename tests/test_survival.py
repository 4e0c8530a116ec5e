"""
Tests for closed-form baseline hazards.

Tests cover:
- Closed forms against the integrated hazard
- Mixture hazard vs. its cumulative hazard
- Distribution lookup and parameter names
"""

import pytest
import numpy as np

from hazsim.errors import ConfigurationError
from hazsim.quadrature import QuadratureConfig, integrate_value
from hazsim.roots import find_event_time
from hazsim.survival import (
    Exponential,
    Weibull,
    Gompertz,
    Mixture,
    get_distribution,
    make_baseline,
    required_params,
)


def numerical_hazard(model, t, eps=1e-6):
    return (model.cumulative_hazard(t + eps) - model.cumulative_hazard(t - eps)) / (2 * eps)


class TestParametricModels:
    """Exponential, Weibull and Gompertz."""

    @pytest.mark.parametrize("model", [
        Exponential(0.3),
        Weibull(0.1, 1.5),
        Weibull(2.0, 0.5),
        Gompertz(0.02, 0.1),
        Gompertz(0.5, -0.2),
    ])
    @pytest.mark.parametrize("t", [0.01, 1.0, 7.5])
    def test_cumulative_hazard_is_integral(self, model, t):
        config = QuadratureConfig(abs_tol=0.0, rel_tol=1e-10)
        integral = integrate_value(model.hazard, 0.0, t, config)
        assert float(model.cumulative_hazard(t)) == pytest.approx(integral, rel=1e-6)

    @pytest.mark.parametrize("model", [
        Exponential(0.3),
        Weibull(0.1, 1.5),
        Gompertz(0.02, 0.1),
    ])
    def test_hazard_is_derivative(self, model):
        assert model.hazard(2.0) == pytest.approx(numerical_hazard(model, 2.0), rel=1e-6)

    def test_survival(self):
        model = Weibull(0.1, 1.5)
        assert model.survival(4.0) == pytest.approx(np.exp(-0.1 * 8.0))

    def test_vectorised(self):
        t = np.array([0.5, 1.0, 2.0])
        np.testing.assert_allclose(Weibull(0.1, 2.0).cumulative_hazard(t), 0.1 * t ** 2)
        assert Exponential(0.3).hazard(t).shape == (3,)

    def test_defective_gompertz(self):
        """With gammas < 0, H0 is bounded by -λ/γ."""
        model = Gompertz(0.5, -0.2)
        assert model.cumulative_hazard(1e3) == pytest.approx(2.5)
        assert np.all(model.cumulative_hazard(np.array([1.0, 10.0, 100.0])) < 2.5)

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            Weibull(-0.1, 1.5)
        with pytest.raises(ConfigurationError):
            Exponential(0.0)


class TestMixture:
    """Two-component mixtures on the survival scale."""

    def test_survival_is_weighted_sum(self):
        first, second = Weibull(1.4, 1.3), Weibull(0.1, 1.5)
        model = Mixture(first, second, 0.3)

        expected = 0.3 * first.survival(2.0) + 0.7 * second.survival(2.0)
        assert model.survival(2.0) == pytest.approx(expected)

    def test_hazard_is_derivative(self):
        model = Mixture(Weibull(1.4, 1.3), Weibull(0.1, 1.5), 0.5)
        assert model.hazard(1.5) == pytest.approx(numerical_hazard(model, 1.5), rel=1e-6)

    def test_root_search(self):
        model = Mixture(Weibull(1.4, 1.3), Weibull(0.1, 1.5), 0.5)
        t = find_event_time(model.cumulative_hazard, 1.2, (1e-8, 500.0)).root
        assert model.cumulative_hazard(t) == pytest.approx(1.2, rel=1e-9)

    def test_finite_far_in_tail(self):
        """Both component survivals underflow but H0 stays finite."""
        model = Mixture(Exponential(1.0), Exponential(2.0), 0.5)
        assert np.isfinite(model.cumulative_hazard(2000.0))

    def test_pmix_bounds(self):
        with pytest.raises(ConfigurationError):
            Mixture(Exponential(1.0), Exponential(2.0), 1.0)


class TestRegistry:
    """Lookup by name and parameter names."""

    def test_case_insensitive(self):
        assert get_distribution('Weibull') is Weibull

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            get_distribution('lognormal')

    def test_required_params(self):
        assert required_params('exponential') == ('lambdas',)
        assert required_params('gompertz') == ('lambdas', 'gammas')
        assert required_params('weibull', mixture=True) == (
            'lambdas1', 'lambdas2', 'gammas1', 'gammas2'
        )

    def test_make_baseline_mixture(self):
        params = {'lambdas1': 1.4, 'lambdas2': 0.1, 'gammas1': 1.3, 'gammas2': 1.5}
        model = make_baseline('weibull', params, mixture=True, pmix=0.4)

        assert isinstance(model, Mixture)
        assert model.first.lambdas == 1.4
        assert model.second.gammas == 1.5
