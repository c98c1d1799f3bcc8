"""
simulator.py - Solving and Evolving Systems

Front door to the solvers: picks the solver appropriate to the system,
passes the parameter values through to the model functions and computes
the auxiliary solution when the system defines one.
"""

import logging
from typing import Callable, List, Optional, Tuple

import numpy as np

from .errors import SolverError
from .solvers import SOLVERS, Solution
from .system import System, set_values, syscheck

log = logging.getLogger(__name__)

SOLVER_TYPES = ('odesolver', 'ddesolver', 'sdesolver')


class AuxSolution:
    """Auxiliary variables computed from a solution by sys.auxfun."""

    def __init__(self, x: np.ndarray, y: np.ndarray):
        self.x = x
        self.y = np.atleast_2d(y)
        self.solver = 'auxfun'

    def deval(self, t, rows=None) -> np.ndarray:
        t = np.atleast_1d(np.asarray(t, dtype=float))
        vals = np.vstack([np.interp(t, self.x, row) for row in self.y])
        if rows is not None:
            vals = vals[np.asarray(rows, dtype=int)]
        return vals


def solver_map(sys: System) -> List[Tuple[str, str]]:
    """Ordered (solver name, solver type) pairs applicable to the system."""
    out = []
    for solvertype, names in (('odesolver', sys.odesolver),
                              ('ddesolver', sys.ddesolver),
                              ('sdesolver', sys.sdesolver)):
        for name in names or []:
            out.append((name, solvertype))
    return out


def solver_type(sys: System, solver: str) -> str:
    """Type of the named solver within the system, or 'unsupported'."""
    for name, solvertype in solver_map(sys):
        if name == solver:
            return solvertype
    return 'unsupported'


def auxiliary(sys: System, sol: Solution) -> Optional[AuxSolution]:
    """Evaluate sys.auxfun on a solution (None when the system has none)."""
    if sys.auxfun is None:
        return None
    y = np.asarray(sys.auxfun(sol, *sys.par_values), dtype=float)
    return AuxSolution(sol.x, y)


def solve(sys: System, tspan=None, solver: Optional[str] = None,
          solvertype: Optional[str] = None, progress: Optional[Callable] = None,
          rng: Optional[np.random.Generator] = None) -> Tuple[Solution, Optional[AuxSolution]]:
    """
    Integrate a system.

    Args:
        sys: Checked system (see syscheck)
        tspan: Time span, defaults to sys.tspan
        solver: Solver name, defaults to the first solver of the system
        solvertype: Required when the solver is not listed by the system
        progress: Optional callback progress(t, y) -> bool (True halts)
        rng: Random generator for SDE noise

    Returns:
        (sol, sox) where sox is the auxiliary solution or None
    """
    if tspan is None:
        tspan = sys.tspan
    if solver is None:
        smap = solver_map(sys)
        if not smap:
            raise SolverError('solve:solverfun', "The system lists no solvers (run syscheck first)")
        solver, solvertype = smap[0]
    elif solvertype is None:
        solvertype = solver_type(sys, solver)

    if solvertype == 'unsupported':
        raise SolverError('solve:solverfun',
                          f"Unknown solvertype for solver '{solver}'. "
                          "Specify an appropriate solvertype.")
    if solvertype not in SOLVER_TYPES:
        raise SolverError('solve:solvertype', f"Invalid solvertype '{solvertype}'")
    if solver not in SOLVERS:
        raise SolverError('solve:solverfun', f"Unknown solver '{solver}'")

    func = SOLVERS[solver].func
    y0 = sys.y0
    par = sys.par_values
    log.debug("Solving %s with %s over [%g, %g]", sys.name or 'system', solver, tspan[0], tspan[-1])

    if solvertype == 'odesolver':
        if sys.odefun is None:
            raise SolverError('solve:solvertype', f"'{solver}' needs sys.odefun")
        sol = func(sys.odefun, tspan, y0, sys.odeoption, par, progress=progress)
    elif solvertype == 'ddesolver':
        if sys.ddefun is None:
            raise SolverError('solve:solvertype', f"'{solver}' needs sys.ddefun")
        sol = func(sys.ddefun, sys.lags, y0, tspan, sys.ddeoption, par, progress=progress)
    else:
        if sys.sdeF is None or sys.sdeG is None:
            raise SolverError('solve:solvertype', f"'{solver}' needs sys.sdeF and sys.sdeG")
        sol = func(sys.sdeF, sys.sdeG, tspan, y0, sys.sdeoption, par, progress=progress, rng=rng)

    return sol, auxiliary(sys, sol)


def evolve(sys: System, rep: int = 1, tspan=None, solver: Optional[str] = None,
           solvertype: Optional[str] = None) -> Tuple[System, Solution]:
    """
    Repeatedly solve the system, each time starting from the final state
    of the previous run.

    Returns:
        (evolved system, last solution)
    """
    sys = syscheck(sys)
    if rep < 1:
        raise ValueError("rep must be at least 1")
    sol = None
    for _ in range(rep):
        sol, _ = solve(sys, tspan, solver, solvertype)
        sys.vardef = set_values(sys.vardef, sol.y[:, -1])
    return sys, sol
