"""Tests for saving, loading and exporting."""

import numpy as np
import pandas as pd
import pytest

from bdtoolbox.control import Control
from bdtoolbox.models import load_model
from bdtoolbox.storage import export_csv, load_matrix, load_state, save_state


def test_save_and_load_state(tmp_path, hopf):
    control = Control(hopf)
    control.set_par('alpha', 0.5)
    control.set_var('x', 0.3)
    control.recompute()

    json_path = save_state(tmp_path / 'run', control)
    assert json_path.suffix == '.json'
    assert (tmp_path / 'run.npz').exists()

    sys, sol = load_state(json_path)
    assert sys.name == 'HopfXY'
    assert sys.get_par('alpha') == 0.5
    assert sys.get_var('x')[0] == 0.3
    assert sys.tspan == (0.0, 20.0)
    assert np.array_equal(sol.x, control.sol.x)
    assert np.array_equal(sol.y, control.sol.y)
    assert sol.solver == 'RK45'
    assert sol.stats['nsteps'] == control.stats['nsteps']


def test_save_system_without_solution(tmp_path):
    sys = load_model('Kuramoto', n=3, seed=5)
    path = save_state(tmp_path / 'k.json', sys)
    loaded, sol = load_state(path)
    assert sol is None
    assert np.array_equal(loaded.get_par('omega'), sys.get_par('omega'))
    assert np.array_equal(loaded.y0, sys.y0)


def test_save_restores_sde_noise(tmp_path, ornstein):
    control = Control(ornstein, seed=0)
    control.recompute()
    _, sol = load_state(save_state(tmp_path / 'ou', control))
    assert np.array_equal(sol.dW, control.sol.dW)
    assert sol.solvertype == 'sdesolver'


def test_unnamed_system_cannot_be_saved(tmp_path, decay):
    decay.name = ''
    with pytest.raises(ValueError):
        save_state(tmp_path / 'x', decay)


def test_export_csv(tmp_path, kuramoto):
    control = Control(kuramoto)
    sol = control.recompute()
    path = export_csv(sol, tmp_path / 'sol.csv', sys=control.sys)
    frame = pd.read_csv(path, index_col='t')
    assert list(frame.columns) == ['theta_{1}', 'theta_{2}', 'theta_{3}', 'theta_{4}']
    assert len(frame) == sol.x.size


def test_load_matrix(tmp_path):
    M = np.arange(6, dtype=float).reshape(2, 3)
    np.save(tmp_path / 'm.npy', M)
    np.savetxt(tmp_path / 'm.csv', M, delimiter=',')
    np.savetxt(tmp_path / 'm.txt', M)
    for name in ('m.npy', 'm.csv', 'm.txt'):
        assert np.array_equal(load_matrix(tmp_path / name), M)
