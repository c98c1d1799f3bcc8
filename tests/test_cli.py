"""Tests for the command-line interface."""

import argparse

import numpy as np
import pandas as pd
import pytest

from bdtoolbox.cli import main, parse_assignment
from bdtoolbox.storage import load_state


def test_parse_assignment():
    assert parse_assignment('alpha=0.5') == ('alpha', 0.5)
    name, value = parse_assignment('omega=1,2,3')
    assert name == 'omega'
    assert np.array_equal(value, [1.0, 2.0, 3.0])
    with pytest.raises(argparse.ArgumentTypeError):
        parse_assignment('alpha')
    with pytest.raises(argparse.ArgumentTypeError):
        parse_assignment('alpha=abc')


def test_list(capsys):
    assert main(['list']) == 0
    out = capsys.readouterr().out
    assert 'HopfXY' in out and 'NeuralNetDDE' in out


def test_check(capsys):
    assert main(['check', 'OrnsteinUhlenbeck', '--n', '3']) == 0
    assert 'ALL TESTS PASSED OK' in capsys.readouterr().out


def test_run_writes_outputs(tmp_path, capsys):
    csv = tmp_path / 'sol.csv'
    png = tmp_path / 'tp.png'
    state = tmp_path / 'state'
    code = main(['run', 'HopfXY', '--seed', '1', '--tspan', '0', '10', '--set', 'alpha=0.5',
                 '--panel', 'TimePortrait', '--out', str(png), '--csv', str(csv),
                 '--save', str(state)])
    assert code == 0
    out = capsys.readouterr().out
    assert 'steps' in out
    assert png.read_bytes().startswith(b'\x89PNG')
    assert list(pd.read_csv(csv, index_col='t').columns) == ['x', 'y']

    sys, sol = load_state(state)
    assert sys.get_par('alpha') == 0.5
    assert sys.tspan == (0.0, 10.0)
    assert sol is not None


def test_run_vector_assignment(capsys):
    code = main(['run', 'Kuramoto', '--n', '3', '--seed', '0', '--tspan', '0', '1',
                 '--set', 'omega=1,2,3', '--set', 'theta=0'])
    assert code == 0
    assert 'theta_{3}' in capsys.readouterr().out


def test_run_unknown_name(capsys):
    assert main(['run', 'HopfXY', '--tspan', '0', '1', '--set', 'nope=1']) == 1
    assert 'nope' in capsys.readouterr().err


def test_run_unknown_solver(capsys):
    assert main(['run', 'HopfXY', '--solver', 'Radau']) == 1
    assert 'Error' in capsys.readouterr().err


def test_bold(tmp_path, capsys):
    csv = tmp_path / 'bold.csv'
    code = main(['bold', 'WilsonCowan', '--seed', '0', '--var', 'E', '--tspan', '0', '50',
                 '--param', 'kappa=0.6', '--csv', str(csv)])
    assert code == 0
    assert 'mean' in capsys.readouterr().out
    frame = pd.read_csv(csv, index_col='t')
    assert list(frame.columns) == ['E_1']


def test_unknown_model_rejected_by_parser():
    with pytest.raises(SystemExit):
        main(['run', 'NoSuchModel'])
