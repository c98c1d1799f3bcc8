"""Tests for system definitions and syscheck."""

import numpy as np
import pytest

from bdtoolbox.errors import SysCheckError
from bdtoolbox.system import (DEFAULT_ODE_SOLVERS, Entry, SDEOptions, System, get_value,
                              get_values, set_value, set_values, sol_map, syscheck, var_map)
from conftest import decay_system


# ========== ENTRIES AND DEFINITION LISTS ==========

def test_entry_default_limits():
    assert Entry('a', 0.3).lim == (0.0, 1.0)
    assert Entry('a', 2.0).lim == (1.0, 3.0)
    assert Entry('v', [-1.5, 2.2]).lim == (-2.0, 3.0)
    assert Entry('a', 0.3, (0, 5)).lim == (0.0, 5.0)


def test_get_and_set_values_preserve_shapes():
    defs = [Entry('a', 1.0), Entry('M', [[1.0, 2.0], [3.0, 4.0]])]
    assert np.array_equal(get_values(defs), [1, 1, 2, 3, 4])

    new = set_values(defs, np.arange(5))
    assert new[0].value.shape == ()
    assert new[1].value.shape == (2, 2)
    assert np.array_equal(new[1].value, [[1, 2], [3, 4]])
    # input list untouched
    assert defs[0].value == 1.0


def test_set_values_wrong_length():
    defs = [Entry('a', 1.0), Entry('b', [1.0, 2.0])]
    with pytest.raises(SysCheckError) as exc:
        set_values(defs, [1.0, 2.0])
    assert exc.value.ident == 'setvalues'


def test_get_value_and_set_value():
    defs = [Entry('a', 1.0), Entry('b', [1.0, 2.0])]
    value, idx = get_value(defs, 'b')
    assert idx == 1
    assert np.array_equal(value, [1, 2])

    new = set_value(defs, 'b', [[5.0], [6.0]])
    assert new[1].value.shape == (2,)

    with pytest.raises(KeyError):
        get_value(defs, 'missing')
    with pytest.raises(SysCheckError):
        set_value(defs, 'b', [1.0, 2.0, 3.0])


def test_var_map_and_sol_map():
    vardef = [Entry('x', 0.0), Entry('V', np.zeros(3))]
    vmap = var_map(vardef)
    assert vmap[0][0] == 'x'
    assert np.array_equal(vmap[0][1], [0])
    assert np.array_equal(vmap[1][1], [1, 2, 3])

    smap = sol_map(vardef)
    assert [label for label, _ in smap] == ['x', 'V_{1}', 'V_{2}', 'V_{3}']
    assert [indx for _, indx in smap] == [0, 1, 1, 1]


def test_system_accessors(decay):
    assert decay.kind == 'ode'
    assert decay.get_par('a') == -1.0
    value, idx, solindx = decay.get_var('y')
    assert value == 1.0 and idx == 0
    assert np.array_equal(solindx, [0])
    with pytest.raises(KeyError):
        decay.get_lag('d')


# ========== SYSCHECK ==========

def test_syscheck_fills_defaults(decay):
    assert decay.odesolver == DEFAULT_ODE_SOLVERS
    assert decay.odeoption is not None
    assert decay.tval == 0.0


def test_syscheck_returns_copy():
    sys = System(pardef=[Entry('a', -1.0)], vardef=[Entry('y', 1.0)],
                 odefun=lambda t, y, a: a * y)
    checked = syscheck(sys)
    checked.set_par('a', 5.0)
    assert sys.get_par('a') == -1.0


def test_syscheck_clips_tval():
    sys = decay_system(tspan=(0.0, 2.0))
    sys.tval = 10.0
    assert syscheck(sys).tval == 2.0


def test_syscheck_rejects_bad_tspan():
    sys = decay_system()
    sys.tspan = (1.0, 0.0)
    with pytest.raises(SysCheckError) as exc:
        syscheck(sys)
    assert exc.value.ident == 'syscheck:tspan'


def test_syscheck_rejects_mixed_functions():
    sys = decay_system()
    sys.sdeF = lambda t, y, a: y
    sys.sdeG = lambda t, y, a: y
    with pytest.raises(SysCheckError) as exc:
        syscheck(sys)
    assert exc.value.ident == 'syscheck:badfun'


def test_syscheck_requires_both_sde_functions():
    sys = System(pardef=[], vardef=[Entry('y', 1.0)], sdeF=lambda t, y: -y,
                 sdeoption=SDEOptions())
    with pytest.raises(SysCheckError, match='co-exist'):
        syscheck(sys)


def test_syscheck_requires_functions():
    sys = System(pardef=[], vardef=[Entry('y', 1.0)])
    with pytest.raises(SysCheckError):
        syscheck(sys)


def test_syscheck_dde_lags():
    sys = System(pardef=[], vardef=[Entry('y', 1.0)], ddefun=lambda t, y, Z: -Z[:, 0])
    with pytest.raises(SysCheckError) as exc:
        syscheck(sys)
    assert exc.value.ident == 'syscheck:lagdef'

    sys.lagdef = [Entry('d', -1.0)]
    with pytest.raises(SysCheckError, match='non-negative'):
        syscheck(sys)

    sys.lagdef = [Entry('d', 1.0)]
    checked = syscheck(sys)
    assert checked.kind == 'dde'
    assert checked.ddesolver == ['ddeHeun']


def test_syscheck_solver_lists():
    sys = decay_system()
    sys.odesolver = ['RK45', 'nope']
    with pytest.raises(SysCheckError, match='not a known solver'):
        syscheck(sys)

    sys.odesolver = ['sdeIto']
    with pytest.raises(SysCheckError, match='sdesolver'):
        syscheck(sys)


def test_syscheck_sde_options():
    def make(**options):
        return System(pardef=[], vardef=[Entry('y', 1.0)],
                      sdeF=lambda t, y: -y, sdeG=lambda t, y: np.ones((1, 1)),
                      sdeoption=SDEOptions(**options))

    assert syscheck(make()).sdesolver == ['sdeIto', 'sdeStratonovich']
    with pytest.raises(SysCheckError):
        syscheck(make(noise_sources=0))
    with pytest.raises(SysCheckError):
        syscheck(make(initial_step=-0.1))
    with pytest.raises(SysCheckError, match='randn'):
        syscheck(make(noise_sources=2, randn=np.zeros((1, 10))))


def test_syscheck_panels():
    sys = decay_system()
    sys.panels = {'CorrelationPanel': {}}
    with pytest.raises(SysCheckError) as exc:
        syscheck(sys)
    assert exc.value.ident == 'syscheck:obsolete'
    assert 'CorrPanel' in str(exc.value)

    sys.panels = {'NoSuchPanel': {}}
    with pytest.raises(SysCheckError):
        syscheck(sys)

    sys.panels = {'TimePortrait': None}
    assert syscheck(sys).panels['TimePortrait'] == {}


def test_syscheck_rejects_non_numeric_values():
    sys = decay_system()
    sys.pardef = [Entry('a', 'text')]
    with pytest.raises(SysCheckError) as exc:
        syscheck(sys)
    assert exc.value.ident == 'syscheck:pardef'
