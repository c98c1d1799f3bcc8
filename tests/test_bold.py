"""Tests for the haemodynamic BOLD engine."""

import numpy as np
import pytest

from bdtoolbox.bold import (BoldParams, bold_from_solution, bold_signal, compute_bold,
                            haemodynamic_rhs, neural_drive, solver_options_for)
from bdtoolbox.errors import BoldWarning
from bdtoolbox.models import load_model
from bdtoolbox.simulator import solve
from bdtoolbox.system import syscheck


def test_bold_signal_at_rest():
    assert bold_signal(1.0, 1.0, 0.02, 0.34) == pytest.approx(0.0)


def test_rest_is_an_equilibrium():
    p = BoldParams()
    dv, dq, df, ds = haemodynamic_rhs(0.0, 1.0, 1.0, 1.0, 0.0, p.E0, p.tau0, p.tau1,
                                      p.alpha, p.kappa, p.gamma)
    assert dv == pytest.approx(0.0)
    assert dq == pytest.approx(0.0)
    assert df == pytest.approx(0.0)
    assert ds == pytest.approx(0.0)


def test_zero_drive_gives_flat_bold():
    T = np.linspace(0, 10, 101)
    result = compute_bold(T, np.zeros((2, T.size)))
    assert result.bold.shape == (2, T.size)
    assert np.allclose(result.bold, 0.0, atol=1e-9)
    assert result.warning is None


def test_pulse_response_peaks_after_stimulus():
    T = np.linspace(0, 30, 601)
    Z = np.where(T < 1.0, 1.0, 0.0)
    result = compute_bold(T, Z)
    bold = result.percent[0]
    assert bold.max() > 0
    tpeak = T[np.argmax(bold)]
    assert 2.0 < tpeak < 10.0
    # inflow rises above baseline during the response
    assert result.f.max() > 1.0


def test_channels_are_independent():
    T = np.linspace(0, 20, 201)
    drive = np.where((T > 1) & (T < 2), 1.0, 0.0)
    result = compute_bold(T, np.vstack([drive, drive, np.zeros_like(drive)]))
    assert np.allclose(result.bold[0], result.bold[1])
    assert np.allclose(result.bold[2], 0.0, atol=1e-9)


def test_compute_bold_validates_input():
    with pytest.raises(ValueError):
        compute_bold([0.0], [[1.0]])
    with pytest.raises(ValueError):
        compute_bold([0.0, 1.0, 2.0], np.zeros((1, 2)))
    with pytest.raises(ValueError):
        compute_bold([0.0, 2.0, 1.0], np.zeros(3))
    with pytest.raises(ValueError):
        compute_bold([0.0, 1.0], np.zeros((1, 1, 2)))


def test_non_finite_bold_warns():
    T = np.linspace(0, 1, 11)
    with pytest.warns(BoldWarning):
        result = compute_bold(T, np.zeros(T.size), v0=0.0)
    assert result.warning is not None


def test_neural_drive():
    assert np.allclose(neural_drive([0.0, 0.5, 1.0], 0.0, 0.5), [0.0, 1.0, 2.0])
    with pytest.raises(ValueError):
        neural_drive([1.0], 1.0, 1.0)


def test_solver_options_follow_outer_solver(ornstein):
    hopf = load_model('HopfXY')
    options = solver_options_for(hopf, 'odesolver')
    assert options.rtol == hopf.odeoption.rtol
    assert options.initial_step == hopf.odeoption.initial_step

    options = solver_options_for(ornstein, 'sdesolver')
    assert options.initial_step == 0.01
    assert options.max_step == 0.01
    assert options.rtol == 1e-6


def test_bold_from_solution():
    sys = load_model('WilsonCowan', seed=0)
    sys.tspan = (0.0, 50.0)
    sys = syscheck(sys)
    sol, _ = solve(sys)
    result = bold_from_solution(sol, sys, 'E')
    assert result.bold.shape == (1, sol.x.size)
    assert np.all(np.isfinite(result.bold))
    assert np.array_equal(result.t, sol.x)

    with pytest.raises(KeyError):
        bold_from_solution(sol, sys, 'nope')


def test_boldhrf_model_auxiliary():
    sys = load_model('BOLDHRF')
    sol, sox = solve(sys)
    bold = sox.y[0]
    assert bold.max() > 0
    assert 2.0 < sol.x[np.argmax(bold)] < 10.0
    assert np.allclose(sox.y[1][sol.x >= 1.0], 0.0)
