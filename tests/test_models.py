"""Tests for the model library."""

import numpy as np
import pytest

from bdtoolbox.lint import sys_check_report
from bdtoolbox.models import MODELS, load_model, ring_matrix
from bdtoolbox.simulator import solve
from bdtoolbox.system import syscheck


@pytest.mark.parametrize('name', sorted(MODELS))
def test_model_passes_check_report(name):
    sys = load_model(name, seed=0)
    lines = sys_check_report(sys)
    assert lines[0] == 'sys format is OK'
    assert lines[-1] == 'ALL TESTS PASSED OK'
    assert sys.name == name
    assert 'LatexPanel' in sys.panels


@pytest.mark.parametrize('name', sorted(MODELS))
def test_model_solves_short_span(name):
    sys = load_model(name, seed=0)
    sys.tspan = (0.0, 1.0)
    sys = syscheck(sys)
    sol, _ = solve(sys, rng=np.random.default_rng(0))
    assert sol.y.shape[0] == sys.y0.size
    assert np.all(np.isfinite(sol.y))


def test_unknown_model():
    with pytest.raises(KeyError, match='Available'):
        load_model('NoSuchModel')


def test_seed_reproduces_initial_conditions():
    a = load_model('Lorenz', seed=3)
    b = load_model('Lorenz', seed=3)
    assert np.array_equal(a.y0, b.y0)


def test_network_size():
    sys = load_model('Kuramoto', n=6, seed=0)
    assert sys.y0.size == 6
    assert sys.get_par('Kij').shape == (6, 6)
    assert sys.model_kwargs == {'n': 6, 'seed': 0}

    sys = load_model('FitzhughNagumo', n=5, seed=0)
    assert sys.y0.size == 10


def test_rebuild_regenerates_model():
    sys = load_model('NeuralNetDDE', n=5, seed=2)
    again = sys.rebuild(**sys.model_kwargs)
    assert np.array_equal(sys.y0, again.y0)
    assert sys.lags.tolist() == [0.1, 0.15]


def test_ring_matrix():
    K = ring_matrix(5)
    assert np.array_equal(K, K.T)
    assert np.all(K.sum(axis=0) == 2)
    assert K[0, 1] == 1 and K[0, 4] == 1 and K[0, 2] == 0


def test_kuramoto_order_parameter():
    sys = load_model('Kuramoto', n=4, seed=0)
    sys.set_var('theta', np.zeros(4))
    sys.tspan = (0.0, 0.5)
    sol, sox = solve(syscheck(sys))
    assert sox.y[-1, 0] == pytest.approx(1.0)
    assert np.allclose(sox.y[:4, 0], 0.0)
