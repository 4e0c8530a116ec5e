"""
Tests for the simulation driver.

Tests cover:
- Inversion against analytic Weibull event times
- Exponentially growing hazards and inexact quadrature
- Administrative censoring at maxt
- Reproducibility and random stream position
- Bracket failure policies
- Errors raised before any draw, and errors carrying the individual id
"""

import logging

import pytest
import numpy as np
import pandas as pd

from hazsim.config import SimulationConfig
from hazsim.errors import ConfigurationError, IntegrationError, RootBracketError
from hazsim.hazard import AnalyticDistribution, resolve_hazard
from hazsim.individuals import make_individuals
from hazsim.quadrature import QuadratureConfig
from hazsim.simulator import SimulatedEvent, Simulator, simulate
from hazsim.survival import Mixture, Weibull
from hazsim.tde import TimeDependentEffect


def uniforms(seed, n):
    return np.random.default_rng(seed).uniform(size=n)


def weibull_times(u, lam=0.1, gam=1.5):
    return (-np.log(u) / lam) ** (1 / gam)


class TestInversion:
    """Event times solve H(t) = -ln(U)."""

    def test_weibull_round_trip(self):
        df = simulate(dist='weibull', lambdas=0.1, gammas=1.5, n=50, seed=42)

        assert list(df.columns) == ['id', 'eventtime', 'status']
        assert (df['status'] == 1).all()
        np.testing.assert_allclose(df['eventtime'], weibull_times(uniforms(42, 50)), rtol=1e-6)

    def test_covariate_effect(self):
        """A log(2) coefficient doubles the exponential rate."""
        x = pd.DataFrame({'trt': [0, 1] * 10})
        df = simulate(dist='exponential', lambdas=1.0, x=x, betas={'trt': np.log(2)}, seed=3)

        rate = np.where(x['trt'] == 1, 2.0, 1.0)
        np.testing.assert_allclose(df['eventtime'], -np.log(uniforms(3, 20)) / rate, rtol=1e-6)

    def test_user_hazard_with_extra_arguments(self):
        def loghazard(t, x, betas, scale):
            return np.log(scale) + 0.0 * t

        df = simulate(loghazard=loghazard, n=20, seed=2, scale=0.5)

        np.testing.assert_allclose(df['eventtime'], -np.log(uniforms(2, 20)) / 0.5, rtol=1e-6)
        assert df.attrs['dist'] == 'loghazard'

    def test_fixed_rule(self):
        """A fixed Gauss-Legendre rule is close to the closed form."""
        def hazard(t, x, betas):
            return 0.1 * 1.5 * np.sqrt(t)

        df = simulate(hazard=hazard, n=30, seed=5, nodes=30)

        np.testing.assert_allclose(df['eventtime'], weibull_times(uniforms(5, 30)), rtol=1e-2)

    def test_rootfun(self):
        plain = simulate(dist='weibull', lambdas=0.1, gammas=1.5, n=20, seed=4)
        logged = simulate(dist='weibull', lambdas=0.1, gammas=1.5, n=20, seed=4, rootfun=np.log)

        np.testing.assert_allclose(logged['eventtime'], plain['eventtime'], rtol=1e-8)

    def test_mixture(self):
        df = simulate(
            dist='weibull', mixture=True, pmix=0.5,
            lambdas=[1.4, 0.1], gammas=[1.3, 1.5], n=100, seed=1, maxt=5.0
        )
        model = Mixture(Weibull(1.4, 1.3), Weibull(0.1, 1.5), 0.5)
        targets = -np.log(uniforms(1, 100))

        events = df['status'] == 1
        H = np.array([model.cumulative_hazard(t) for t in df['eventtime'][events]])
        np.testing.assert_allclose(H, targets[events], rtol=1e-6)
        assert (df['eventtime'] <= 5.0).all()

    def test_delayed_log_cumulative_hazard(self):
        """H(t) = max(t - 1, 0): log H is -inf until t = 1."""
        def logcumhazard(t, x, betas):
            with np.errstate(divide='ignore'):
                return np.log(np.maximum(t - 1.0, 0.0))

        df = simulate(logcumhazard=logcumhazard, n=20, seed=8)

        assert (df['status'] == 1).all()
        np.testing.assert_allclose(df['eventtime'], 1.0 - np.log(uniforms(8, 20)), rtol=1e-6)


class TestTailOverflow:
    """Exponentially growing hazards on the default interval."""

    def test_user_gompertz(self):
        def loghazard(t, x, betas):
            return np.log(0.02) + 2.0 * t

        numeric = simulate(loghazard=loghazard, n=5, seed=1)
        closed = simulate(dist='gompertz', lambdas=0.02, gammas=2.0, n=5, seed=1)

        assert (numeric['status'] == 1).all()
        np.testing.assert_allclose(numeric['eventtime'], closed['eventtime'], rtol=1e-6)

    def test_zero_added_effect(self):
        x = pd.DataFrame({'trt': [0, 1] * 5})
        base = {'dist': 'gompertz', 'lambdas': 0.02, 'gammas': 2.0, 'x': x, 'betas': {'trt': -0.5}, 'seed': 6}

        plain = simulate(**base)
        with_tde = simulate(**base, tde={'trt': TimeDependentEffect('log', coef=0.0)})

        np.testing.assert_allclose(with_tde['eventtime'], plain['eventtime'], rtol=1e-6)

    def test_multiplied_effect(self):
        x = pd.DataFrame({'trt': [0, 1] * 5})
        df = simulate(
            dist='gompertz', lambdas=0.02, gammas=2.0, x=x,
            betas={'trt': -0.5}, tde={'trt': 'log'}, seed=6
        )

        assert (df['status'] == 1).all()
        assert np.isfinite(df['eventtime']).all()


class TestQuadratureAccuracy:
    """Event times whose H(t) missed the quadrature tolerance."""

    @staticmethod
    def hazard(t, x, betas):
        return 2.0 * 0.3 * t ** -0.7

    def test_inexact_warns(self):
        with pytest.warns(UserWarning, match="quadrature"):
            simulate(
                hazard=self.hazard, n=10, seed=12, interval=(1e-16, 500.0),
                quadrature=QuadratureConfig(max_depth=5)
            )

    @pytest.mark.filterwarnings("ignore:quadrature")
    def test_default_depth(self):
        df = simulate(hazard=self.hazard, n=10, seed=12, interval=(1e-16, 500.0))

        expected = (-np.log(uniforms(12, 10)) / 2.0) ** (1 / 0.3)
        np.testing.assert_allclose(df['eventtime'], expected, rtol=1e-4)


class TestCensoring:
    """Administrative censoring at maxt."""

    def test_boundary(self):
        df = simulate(dist='weibull', lambdas=0.1, gammas=1.5, n=200, seed=11, maxt=5.0)
        targets = -np.log(uniforms(11, 200))
        censored = targets > 0.1 * 5.0 ** 1.5

        assert censored.any() and (~censored).any()
        np.testing.assert_array_equal(df['status'], np.where(censored, 0, 1))
        assert (df['eventtime'][censored] == 5.0).all()
        assert (df['eventtime'][~censored] <= 5.0).all()

    def test_attrs(self):
        df = simulate(dist='weibull', lambdas=0.1, gammas=1.5, n=5, seed=11, maxt=5.0)
        assert df.attrs['seed'] == 11
        assert df.attrs['maxt'] == 5.0
        assert df.attrs['dist'] == 'weibull'


class TestRandomStream:
    """Seeds and caller-owned generators."""

    def test_reproducible(self):
        a = simulate(dist='gompertz', lambdas=0.02, gammas=0.1, n=30, seed=7)
        b = simulate(dist='gompertz', lambdas=0.02, gammas=0.1, n=30, seed=7)
        pd.testing.assert_frame_equal(a, b)

    def test_rng_advances_by_n(self):
        rng = np.random.default_rng(3)
        simulate(dist='exponential', lambdas=0.5, n=10, rng=rng)

        assert rng.uniform() == uniforms(3, 11)[10]

    def test_seed_and_rng(self):
        with pytest.raises(ConfigurationError):
            simulate(dist='exponential', lambdas=0.5, n=10, seed=1, rng=np.random.default_rng(1))

    def test_no_draws_on_configuration_error(self):
        """Missing parameters are reported before the stream moves."""
        rng = np.random.default_rng(1)
        with pytest.raises(ConfigurationError):
            simulate(dist='weibull', lambdas=0.1, n=5, rng=rng)

        assert rng.uniform() == uniforms(1, 1)[0]

    def test_output_order(self):
        x = pd.DataFrame({'pid': [5, 3, 9], 'trt': [1, 0, 1]})
        df = simulate(dist='exponential', lambdas=0.5, x=x, betas={'trt': -0.5}, idvar='pid', seed=0)

        assert list(df['pid']) == [5, 3, 9]


class TestBracketFailure:
    """Event times beyond the search interval."""

    def test_raise(self):
        with pytest.raises(RootBracketError) as info:
            simulate(dist='weibull', lambdas=0.1, gammas=1.5, n=20, seed=0, interval=(1e-8, 1.0))

        assert 'id' in info.value.context

    def test_censor(self, caplog):
        with pytest.warns(UserWarning):
            with caplog.at_level(logging.WARNING, logger='hazsim.simulator'):
                df = simulate(
                    dist='weibull', lambdas=0.1, gammas=1.5, n=20, seed=0,
                    interval=(1e-8, 1.0), on_bracket_failure='censor'
                )

        targets = -np.log(uniforms(0, 20))
        beyond = targets > 0.1
        np.testing.assert_array_equal(df['status'], np.where(beyond, 0, 1))
        assert (df['eventtime'][beyond] == 1.0).all()
        assert 'censored' in caplog.text

    def test_censor_below_lower(self, caplog):
        """Targets under H(lower) are censored at maxt, not solved."""
        with caplog.at_level(logging.WARNING, logger='hazsim.simulator'):
            df = simulate(
                dist='exponential', lambdas=1.0, n=20, seed=0,
                interval=(0.5, 10.0), maxt=5.0, on_bracket_failure='censor'
            )

        targets = -np.log(uniforms(0, 20))
        below = targets < 0.5
        beyond = targets > 5.0
        assert below.any()

        np.testing.assert_array_equal(df['status'], np.where(below | beyond, 0, 1))
        assert (df['eventtime'][below | beyond] == 5.0).all()
        np.testing.assert_allclose(df['eventtime'][~(below | beyond)], targets[~(below | beyond)], rtol=1e-6)
        for i in np.flatnonzero(below) + 1:
            assert f"individual {i} censored" in caplog.text


class TestConfigurationErrors:
    """Invalid settings are rejected up front."""

    @pytest.mark.parametrize("kwargs", [
        {'interval': (0.0, 10.0)},
        {'interval': (5.0, 1.0)},
        {'maxt': 600.0},
        {'maxt': 1e-9},
        {'on_bracket_failure': 'ignore'},
        {'nodes': 10, 'quadrature': SimulationConfig().quadrature},
        {'gammas': [1.0, 2.0]},
    ])
    def test_rejected(self, kwargs):
        base = {'dist': 'weibull', 'lambdas': 0.1, 'gammas': 1.5, 'n': 5, 'seed': 1}
        with pytest.raises(ConfigurationError):
            simulate(**{**base, **kwargs})

    def test_no_hazard(self):
        with pytest.raises(ConfigurationError):
            simulate(n=5, seed=1)

    def test_lambdas_without_dist(self):
        with pytest.raises(ConfigurationError):
            simulate(hazard=lambda t, x, betas: 1.0 + 0.0 * t, lambdas=0.1, n=5, seed=1)


class TestSimulator:
    """The class interface."""

    def test_run(self):
        model = resolve_hazard(AnalyticDistribution('exponential'))
        individuals = make_individuals(n=3, params={'lambdas': 1.0})
        events = Simulator(model, SimulationConfig(maxt=2.0)).run(individuals, seed=9)

        assert all(isinstance(e, SimulatedEvent) for e in events)
        assert [e.id for e in events] == [1, 2, 3]

    def test_error_carries_id(self):
        def hazard(t, x, betas):
            return np.where(t > 1.0, np.nan, 1.0)

        with pytest.raises(IntegrationError) as info:
            simulate(hazard=hazard, ids=['a', 'b'], n=2, seed=0)

        assert info.value.context['id'] == 'a'

    def test_to_dataframe(self):
        events = [SimulatedEvent('a', 1.5, 1), SimulatedEvent('b', 2.0, 0)]
        df = Simulator.to_dataframe(events, idvar='pid', attrs={'seed': 1})

        assert list(df['pid']) == ['a', 'b']
        assert df['status'].dtype == int
        assert df.attrs == {'seed': 1}
