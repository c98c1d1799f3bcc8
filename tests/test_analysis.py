"""Tests for the numerical work behind the panels."""

import numpy as np
import pytest

from bdtoolbox.analysis import (BifurcationAccumulator, amplitude_surrogate, correlation_matrix,
                                fixed_point_test, hilbert_phase, nullcline_grid, phase_cylinder,
                                space_time, transient_mask, vector_field)
from bdtoolbox.simulator import solve
from bdtoolbox.solvers import Solution
from conftest import decay_system


def make_solution(x, y, solvertype='odesolver'):
    return Solution(x=np.asarray(x, dtype=float), y=np.atleast_2d(np.asarray(y, dtype=float)),
                    solver='test', solvertype=solvertype)


def test_transient_mask():
    sol = make_solution([0, 1, 2, 3], [[1, 1, np.nan, 1]])
    assert list(transient_mask(sol, 1.0)) == [False, True, False, True]


def test_vector_field_matches_hopf_equations(hopf):
    field = vector_field(hopf, 0, 1, (-1, 1), (-1, 1), n=5)
    X, Y = field['x'], field['y']
    r2 = X ** 2 + Y ** 2
    alpha = hopf.get_par('alpha')
    assert X.shape == (5, 5)
    assert np.allclose(field['dx'], -Y + (alpha - r2) * X)
    assert np.allclose(field['dy'], X + (alpha - r2) * Y)


def test_vector_field_3d():
    from bdtoolbox.models import load_model

    lorenz = load_model('Lorenz', seed=0)
    field = vector_field(lorenz, 0, 1, (-20, 20), (-30, 30), n=3, zrow=2, zlim=(0, 50))
    assert field['z'].shape == (3, 3, 3)
    assert np.allclose(field['dx'], 10.0 * (field['y'] - field['x']))


def test_nullcline_grid_is_fine(hopf):
    grid = nullcline_grid(hopf, 0, 1, (-1, 1), (-1, 1))
    assert grid['x'].shape == (41, 41)


def test_space_time():
    sol = make_solution([0, 1, 2], [[1, 2, 3], [4, 5, 6], [7, 8, 9]])
    t, Y = space_time(sol, [1, 2])
    assert np.array_equal(Y, [[4, 5, 6], [7, 8, 9]])
    t, Y = space_time(sol, [0, 1], np.array([False, True, True]))
    assert np.array_equal(t, [1, 2])
    assert np.array_equal(Y, [[2, 3], [5, 6]])


def test_correlation_matrix():
    t = np.linspace(0, 10, 200)
    sol = make_solution(t, [np.sin(t), np.sin(t), -np.sin(t), np.ones_like(t)])
    R = correlation_matrix(sol, [0, 1, 2, 3], 'odesolver')
    assert R.shape == (4, 4)
    assert R[0, 1] == pytest.approx(1.0)
    assert R[0, 2] == pytest.approx(-1.0)
    # constant rows have undefined correlation, reported as 1
    assert R[0, 3] == 1.0
    assert correlation_matrix(sol, [0], 'odesolver').tolist() == [[1.0]]


def test_correlation_sde_uses_non_negative_time():
    sol = make_solution([-1, 0, 1, 2], [[5, 1, 2, 3], [-5, 1, 2, 3]], 'sdesolver')
    R = correlation_matrix(sol, [0, 1], 'sdesolver')
    assert R[0, 1] == pytest.approx(1.0)


def test_hilbert_phase_of_cosine():
    n = 1000
    t = 2 * np.pi * 5 * np.arange(n) / n
    h, p = hilbert_phase(np.cos(t))
    assert h.shape == (1, n)
    assert np.allclose(np.abs(h), 1.0, atol=1e-6)
    assert np.allclose(np.cos(p[0]), np.cos(t), atol=1e-6)


def test_hilbert_relative_phase():
    n = 1000
    t = 2 * np.pi * 5 * np.arange(n) / n
    _, p = hilbert_phase(np.cos(t + 0.5), ref=np.cos(t))
    assert np.allclose(np.angle(np.exp(1j * p)), 0.5, atol=1e-6)


def test_phase_cylinder():
    t = np.linspace(-1, 1, 21)
    p = np.vstack([np.zeros(21), np.ones(21)])
    cyl = phase_cylinder(t, np.zeros((2, 21)), p)
    assert cyl['t'][0] == 0.0
    assert cyl['p'].shape == (2, 11)
    assert np.mean(cyl['p'][:, 0]) == pytest.approx(-np.pi / 2)
    assert np.allclose(cyl['cos'] ** 2 + cyl['sin'] ** 2, 1.0)


def test_surrogate_preserves_values(rng):
    x = np.cumsum(rng.standard_normal((3, 200)), axis=1)
    s = amplitude_surrogate(x, np.random.default_rng(1))
    assert s.shape == x.shape
    assert np.allclose(np.sort(s, axis=1), np.sort(x, axis=1))
    assert not np.allclose(s, x)


def test_surrogate_orientation(rng):
    x = rng.standard_normal((200, 2))
    s = amplitude_surrogate(x, np.random.default_rng(2))
    assert s.shape == (200, 2)
    assert np.allclose(np.sort(s, axis=0), np.sort(x, axis=0))

    v = rng.standard_normal(100)
    s = amplitude_surrogate(v, np.random.default_rng(3))
    assert s.shape == (100,)
    assert np.allclose(np.sort(s), np.sort(v))


def test_fixed_point_test(hopf):
    sys = decay_system(tspan=(0.0, 20.0))
    sol, _ = solve(sys)
    assert fixed_point_test(sys, sol)

    sol, _ = solve(hopf)
    assert not fixed_point_test(hopf, sol)


def test_bifurcation_accumulator():
    acc = BifurcationAccumulator()
    tindx = np.array([False, True, True])
    acc.add(0.1, [5.0, 1.0, 2.0], tindx)
    acc.add(0.2, [0.0, -1.0, -1.0], tindx, z=[3.0, 4.0, 5.0], fixedpoint=True)
    assert len(acc.orbits) == 2
    assert (acc.ylo, acc.yhi) == (-1.0, 2.0)
    assert (acc.zlo, acc.zhi) == (4.0, 5.0)
    assert acc.fixed_points == [(0.2, -1.0)]
    assert np.all(acc.orbits[0]['pp'] == 0.1)

    acc.clear()
    assert acc.orbits == []
    assert acc.ylo == np.inf
