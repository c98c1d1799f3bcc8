"""Tests for the simulation Control."""

import numpy as np
import pytest

from bdtoolbox.control import Control
from bdtoolbox.errors import SolverError
from bdtoolbox.system import Entry, System
from conftest import decay_system


def test_recompute_notifies_listeners(decay):
    control = Control(decay)
    calls = []
    control.add_listener('redraw', calls.append)
    sol = control.recompute()
    assert calls == [control]
    assert control.sol is sol
    assert control.tindx.shape == sol.x.shape
    assert control.par['a'] == -1.0
    assert control.stats['nfailed'] == 0
    assert control.progress == 100.0
    assert control.warning_id is None


def test_listener_registration(decay):
    control = Control(decay)
    with pytest.raises(ValueError):
        control.add_listener('nope', print)
    calls = []
    control.add_listener('pardef', calls.append)
    control.set_par('a', -2.0)
    control.remove_listener('pardef', calls.append)
    control.set_par('a', -3.0)
    assert len(calls) == 1
    assert control.sys.get_par('a') == -3.0


def test_set_par_recompute(decay):
    control = Control(decay)
    control.set_par('a', 0.0, recompute=True)
    assert control.sol.y[0, -1] == pytest.approx(1.0)


def test_halt_skips_recompute(decay):
    control = Control(decay)
    first = control.recompute()
    calls = []
    control.add_listener('redraw', calls.append)
    control.set_flags(halt=True)
    assert control.recompute() is first
    assert calls == []


def test_evolve_starts_from_final_state(decay):
    control = Control(decay)
    first = control.recompute()
    control.set_flags(evolve=True)
    vardef_events = []
    control.add_listener('vardef', vardef_events.append)
    second = control.recompute()
    assert control.sys.y0[0] == pytest.approx(first.y[0, -1])
    assert second.y[0, 0] == pytest.approx(first.y[0, -1])
    assert len(vardef_events) == 1


def test_evolve_refused_out_of_limits():
    sys = System(pardef=[Entry('a', -1.0)], vardef=[Entry('y', 1.0, (10, 20))],
                 odefun=lambda t, y, a: a * y)
    control = Control(sys)
    control.recompute()
    control.set_flags(evolve=True)
    control.recompute()
    assert control.warning_id == 'ControlWarning'
    assert not control.evolve
    assert control.sys.y0[0] == 1.0


def test_jitter_perturbs_start_only(decay):
    control = Control(decay, seed=0)
    control.set_flags(jitter=True)
    sol = control.recompute()
    lo, hi = control.sys.vardef[0].lim
    assert sol.y[0, 0] != 1.0
    assert abs(sol.y[0, 0] - 1.0) <= 0.025 * (hi - lo)
    assert control.sys.y0[0] == 1.0


def test_hold_freezes_noise(ornstein):
    control = Control(ornstein, seed=1)
    control.set_flags(hold=True)
    first = control.recompute()
    assert control.sys.sdeoption.randn.shape == (3, first.x.size)
    second = control.recompute()
    assert np.allclose(first.y, second.y)

    control.set_flags(hold=False)
    assert control.sys.sdeoption.randn is None
    third = control.recompute()
    assert not np.allclose(first.y, third.y)


def test_hold_keeps_displayed_trajectory(ornstein):
    control = Control(ornstein, seed=1)
    shown = control.recompute()
    control.set_flags(hold=True)
    assert control.sys.sdeoption.randn.shape == (3, shown.x.size)
    again = control.recompute()
    assert np.allclose(shown.y, again.y)


def test_halt_during_adaptive_run():
    control = Control(decay_system(tspan=(0.0, 100.0)))
    assert control.solver == 'RK45'

    def odefun(t, y, a):
        if t > 1.0:
            control.halt = True
        return a * y

    control.sys.odefun = odefun
    sol = control.recompute()
    assert sol.stats['halted']
    assert 1.0 < sol.x[-1] < 100.0
    assert control.warning_id is None


def test_seeded_sde_reproduces():
    from bdtoolbox.models import load_model

    a = Control(load_model('OrnsteinUhlenbeck', n=2, seed=4)).recompute()
    b = Control(load_model('OrnsteinUhlenbeck', n=2, seed=4)).recompute()
    assert np.array_equal(a.y, b.y)


def test_solver_warning_is_recorded():
    sys = decay_system(rate=1.0, y0=1e200)
    sys.odesolver = ['odeEul']
    sys.odeoption.initial_step = 0.1
    control = Control(sys)
    control.sys.odefun = lambda t, y, a: y ** 2
    control.recompute()
    assert control.warning_id == 'SolverWarning'
    assert 'no longer finite' in control.warning_msg
    assert not np.any(control.tindx[-1:])


def test_select_solver(hopf):
    control = Control(hopf)
    control.select_solver('odeEul')
    assert control.solver == 'odeEul'
    with pytest.raises(SolverError):
        control.select_solver('Radau')
    with pytest.raises(SolverError):
        Control(hopf, solver='ddeHeun')


def test_time_span_and_tval(decay):
    control = Control(decay)
    control.set_tval(0.5)
    assert control.sys.tval == 0.5
    control.set_tspan(0.0, 0.25)
    assert control.sys.tval == 0.25

    control.set_tspan(0.0, 2.0)
    control.recompute()
    redraws = []
    control.add_listener('redraw', redraws.append)
    control.set_tval(1.0)
    assert not control.tindx[0]
    assert control.tindx[-1]
    assert len(redraws) == 1


def test_set_flags_rejects_unknown(decay):
    with pytest.raises(ValueError):
        Control(decay).set_flags(nonsense=True)


def test_replace_system_keeps_solver(decay, hopf):
    control = Control(decay, solver='RK23')
    control.recompute()
    control.replace_system(hopf)
    assert control.solver == 'RK23'
    assert control.sol is None

    control = Control(decay, solver='Radau')
    control.replace_system(hopf)
    assert control.solver == 'RK45'


def test_safe_recompute_reports_errors(decay):
    control = Control(decay)
    control.solver = 'nope'
    message = control.safe_recompute()
    assert message is not None


def test_summary(hopf):
    control = Control(hopf)
    summary = control.summary()
    assert summary['name'] == 'HopfXY'
    assert summary['kind'] == 'ode'
    assert [p['name'] for p in summary['pardef']] == ['alpha']
    assert summary['solvers'] == ['RK45', 'RK23', 'odeEul']
    assert not summary['has_solution']
