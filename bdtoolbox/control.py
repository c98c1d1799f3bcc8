"""
control.py - Simulation Control

The Control owns one system and its latest solution. Panels and front-ends
change parameters, initial conditions or solver choice through it, ask it
to recompute, and register listeners that are told when to redraw.

Events:
- 'redraw': a new solution is available
- 'vardef': initial conditions changed (e.g. by evolve)
- 'pardef': parameters changed
"""

import logging
import threading
import time
import warnings
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import numpy as np

from .analysis import transient_mask
from .errors import BDError, ControlWarning, SolverError
from .simulator import solve, solver_map, solver_type
from .system import System, set_values, syscheck

log = logging.getLogger(__name__)

EVENTS = ('redraw', 'vardef', 'pardef')


def _warning_ident(category) -> str:
    """Short tag for a warning category, e.g. 'SolverWarning'."""
    return getattr(category, '__name__', str(category))


class Control:
    """
    Shared simulation state behind all panels.

    Flags:
        evolve: Start each run from the final state of the previous run
        jitter: Perturb the initial conditions by 5% of each variable's range
        hold: Freeze the noise of SDE systems between runs
        halt: Skip recomputation and stop a running solver
    """

    def __init__(self, sys: System, solver: Optional[str] = None,
                 seed: Optional[int] = None, verbose: bool = False):
        self.sys = syscheck(sys)
        self.lock = threading.Lock()
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.rng = np.random.default_rng(seed)
        self.verbose = verbose

        smap = solver_map(self.sys)
        if solver is None:
            self.solver, self.solvertype = smap[0]
        else:
            self.solver = solver
            self.solvertype = solver_type(self.sys, solver)
            if self.solvertype == 'unsupported':
                raise SolverError('control:solver', f"'{solver}' is not a solver of this system")

        # Flags
        self.evolve = False
        self.jitter = False
        self.hold = False
        self.halt = False

        # Results of the last recompute
        self.sol = None
        self.sox = None
        self.tindx = None
        self.par: Dict[str, np.ndarray] = {}
        self.lag: Dict[str, np.ndarray] = {}
        self.warning_id: Optional[str] = None
        self.warning_msg: Optional[str] = None
        self.stats: Dict = {}
        self.cpu_time = 0.0
        self.progress = 0.0

    # ========== EVENTS ==========

    def add_listener(self, event: str, fn: Callable) -> None:
        """Register fn(control) to be called when event is notified."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'")
        self.listeners[event].append(fn)

    def remove_listener(self, event: str, fn: Callable) -> None:
        if fn in self.listeners[event]:
            self.listeners[event].remove(fn)

    def notify(self, event: str) -> None:
        for fn in list(self.listeners[event]):
            fn(self)

    # ========== SYSTEM EDITS ==========

    def set_par(self, name: str, value, recompute: bool = False) -> None:
        self.sys.set_par(name, value)
        self.notify('pardef')
        if recompute:
            self.recompute()

    def set_var(self, name: str, value, recompute: bool = False) -> None:
        self.sys.set_var(name, value)
        self.notify('vardef')
        if recompute:
            self.recompute()

    def set_lag(self, name: str, value, recompute: bool = False) -> None:
        self.sys.set_lag(name, value)
        self.notify('pardef')
        if recompute:
            self.recompute()

    def set_tspan(self, t0: float, t1: float) -> None:
        """Change the time span; tval is clipped into the new span."""
        sys = self.sys.copy()
        sys.tspan = (t0, t1)
        self.sys = syscheck(sys)

    def set_tval(self, tval: float) -> None:
        """Change the start of the non-transient part (clipped into tspan)."""
        t0, t1 = self.sys.tspan
        self.sys.tval = float(min(max(tval, t0), t1))
        if self.sol is not None:
            self.tindx = transient_mask(self.sol, self.sys.tval)
            self.notify('redraw')

    def select_solver(self, name: str) -> None:
        """Switch to another solver listed by the system."""
        stype = solver_type(self.sys, name)
        if stype == 'unsupported':
            raise SolverError('control:solver', f"'{name}' is not a solver of this system")
        self.solver = name
        self.solvertype = stype

    def set_flags(self, **flags) -> None:
        """Set any of evolve, jitter, hold and halt."""
        for key, value in flags.items():
            if key not in ('evolve', 'jitter', 'hold', 'halt'):
                raise ValueError(f"Unknown control flag '{key}'")
            setattr(self, key, bool(value))
        if 'hold' in flags and self.sys.sdeoption is not None:
            if not self.hold:
                self.sys.sdeoption.randn = None
            elif self._sde_solution():
                # freeze the noise of the trajectory on display
                self._hold_noise()

    def _sde_solution(self) -> bool:
        return (self.sol is not None and self.sol.solvertype == 'sdesolver'
                and self.sol.dW is not None and self.sol.tcount > 1)

    def _hold_noise(self) -> None:
        dt = self.sol.x[1] - self.sol.x[0]
        self.sys.sdeoption.randn = self.sol.dW / np.sqrt(dt)

    def replace_system(self, sys: System) -> None:
        """Install a different system, keeping the solver when it still applies."""
        self.sys = syscheck(sys)
        if solver_type(self.sys, self.solver) == 'unsupported':
            self.solver, self.solvertype = solver_map(self.sys)[0]
        self.sol = None
        self.sox = None
        self.tindx = None
        self.notify('pardef')
        self.notify('vardef')

    # ========== RECOMPUTE ==========

    def _evolve_initial_conditions(self) -> None:
        """Replace the initial conditions by the final state of the last solution."""
        inlim = False
        for entry in self.sys.vardef:
            lo, hi = entry.lim
            if np.any((lo <= entry.value) & (entry.value <= hi)):
                inlim = True
        if not inlim:
            warnings.warn("Initial Conditions were not advanced because they are "
                          "beyond the axes limits.", ControlWarning, stacklevel=3)
            return
        self.sys.vardef = set_values(self.sys.vardef, self.sol.y[:, -1])
        self.notify('vardef')

    def _jittered(self) -> System:
        worksys = self.sys.copy()
        for entry in worksys.vardef:
            lo, hi = entry.lim
            entry.value = entry.value + 0.05 * (hi - lo) * (self.rng.random(entry.value.shape) - 0.5)
        return worksys

    def _progress(self, t, y) -> bool:
        t0, t1 = self.sys.tspan
        self.progress = 100.0 * (t - t0) / (t1 - t0)
        return self.halt

    def recompute(self):
        """
        Solve the system with the current settings and notify 'redraw'.

        Returns:
            The new solution, or the previous one when halted
        """
        if self.halt:
            return self.sol

        with self.lock:
            self.par = {e.name: np.array(e.value) for e in self.sys.pardef}
            self.lag = {e.name: np.array(e.value) for e in self.sys.lagdef}

            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter('always', Warning)

                if self.evolve and self.sol is not None:
                    self._evolve_initial_conditions()

                worksys = self._jittered() if self.jitter else self.sys
                seeded = worksys.sdeoption is not None and worksys.sdeoption.seed is not None
                start = time.process_time()
                self.sol, self.sox = solve(worksys, worksys.tspan, self.solver, self.solvertype,
                                           progress=self._progress,
                                           rng=None if seeded else self.rng)
                self.cpu_time = time.process_time() - start

            self.warning_id = None
            self.warning_msg = None
            if caught:
                last = caught[-1]
                self.warning_id = _warning_ident(last.category)
                self.warning_msg = str(last.message)
                log.warning("%s: %s", self.warning_id, self.warning_msg)
                if self.evolve:
                    self.evolve = False

            if self.hold and self.sys.sdeoption is not None and self.sys.sdeoption.randn is None \
                    and self._sde_solution():
                self._hold_noise()

            self.tindx = transient_mask(self.sol, self.sys.tval)
            self.stats = dict(self.sol.stats)
            self.progress = 100.0

        if self.verbose:
            print(f"✓ {self.solver}: {self.sol.tcount} steps in {self.cpu_time:.3f}s")
        self.notify('redraw')
        return self.sol

    def safe_recompute(self) -> Optional[str]:
        """Recompute, returning an error message instead of raising toolbox errors."""
        try:
            self.recompute()
        except BDError as e:
            log.error("Recompute failed: %s", e)
            return str(e)
        return None

    # ========== SUMMARY ==========

    def summary(self) -> Dict:
        """Plain description of the control state (used by the REST layer)."""
        sys = self.sys
        return {
            'name': sys.name,
            'kind': sys.kind,
            'pardef': [{'name': e.name, 'value': e.value, 'lim': e.lim} for e in sys.pardef],
            'vardef': [{'name': e.name, 'value': e.value, 'lim': e.lim} for e in sys.vardef],
            'lagdef': [{'name': e.name, 'value': e.value, 'lim': e.lim} for e in sys.lagdef],
            'tspan': list(sys.tspan),
            'tval': sys.tval,
            'solver': self.solver,
            'solvertype': self.solvertype,
            'solvers': [name for name, _ in solver_map(sys)],
            'panels': list(sys.panels),
            'flags': {'evolve': self.evolve, 'jitter': self.jitter,
                      'hold': self.hold, 'halt': self.halt},
            'warning': {'id': self.warning_id, 'msg': self.warning_msg},
            'has_solution': self.sol is not None,
        }
