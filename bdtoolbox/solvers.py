"""
solvers.py - ODE, DDE and SDE Integrators

Every solver returns a Solution with the time points in x (t,) and the
states in y (n, t). Adaptive ODE methods delegate to scipy's solve_ivp;
the fixed-step methods (Euler, stochastic Euler-Maruyama/Heun and the
delay Heun method) are integrated here on a regular grid.

All solvers accept an optional progress callback progress(t, y) -> bool.
Returning True halts the integration; the solution is truncated at the
halt point and stats['halted'] is set.
"""

import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.integrate import solve_ivp

from .errors import SolverError, SolverWarning
from .system import SDEOptions, SolverOptions


@dataclass
class Solution:
    """Result of a solver run."""

    x: np.ndarray  # Time points (t,)
    y: np.ndarray  # States (n, t)
    solver: str
    solvertype: str
    yp: Optional[np.ndarray] = None  # dy/dt (or dy for SDEs) at each time point
    dW: Optional[np.ndarray] = None  # Wiener increments (m, t), SDE only
    stats: Dict = field(default_factory=dict)
    interpolant: Optional[Callable] = None  # Dense output, when the solver provides one

    @property
    def tcount(self) -> int:
        return int(self.x.size)

    def deval(self, t, rows: Optional[Sequence[int]] = None) -> np.ndarray:
        """
        Evaluate the solution at arbitrary times.

        Args:
            t: Time or times to evaluate
            rows: Optional subset of state rows

        Returns:
            Array of shape (nrows, nt)
        """
        t = np.atleast_1d(np.asarray(t, dtype=float))
        if self.interpolant is not None:
            vals = np.asarray(self.interpolant(t)).reshape(self.y.shape[0], t.size)
        else:
            vals = np.vstack([np.interp(t, self.x, row) for row in self.y])
        if rows is not None:
            vals = vals[np.asarray(rows, dtype=int)]
        return vals

    def to_frame(self, names: Optional[List[str]] = None) -> pd.DataFrame:
        """Solution as a DataFrame indexed by time, one column per state row."""
        if names is None:
            names = [f"y{i + 1}" for i in range(self.y.shape[0])]
        return pd.DataFrame(self.y.T, index=pd.Index(self.x, name='t'), columns=names)


@dataclass
class SolverSpec:
    """Registry record of one solver."""

    name: str
    solvertype: str  # 'odesolver', 'ddesolver' or 'sdesolver'
    func: Callable
    description: str = ''


# ========== HELPERS ==========

def _time_grid(t0: float, t1: float, dt: float) -> np.ndarray:
    """Regular grid t0, t0+dt, ... not exceeding t1."""
    if dt is None or not dt > 0:
        raise SolverError('solver:step', "Step size must be positive")
    n = int(np.floor((t1 - t0) / dt + 1e-9)) + 1
    if n < 2:
        raise SolverError('solver:step',
                          f"Step size {dt:g} is larger than the time span [{t0:g}, {t1:g}]")
    return t0 + dt * np.arange(n)


def _as_column(value, n: int) -> np.ndarray:
    return np.reshape(np.asarray(value, dtype=float), n)


def _halted_at_start(progress, tspan, y0, solver: str, solvertype: str) -> Optional[Solution]:
    if progress is not None and progress(tspan[0], y0):
        return Solution(x=np.array([float(tspan[0])]), y=np.reshape(y0, (-1, 1)).copy(),
                        solver=solver, solvertype=solvertype,
                        stats={'nsteps': 0, 'nfailed': 0, 'nfevals': 0, 'halted': True})
    return None


def _overflow_warning(solver: str, t: float) -> None:
    warnings.warn(f"{solver}: Failure at t={t:g}. The numerical values are no longer finite.",
                  SolverWarning, stacklevel=3)


# ========== ODE SOLVERS ==========

def _make_scipy_solver(method: str) -> Callable:
    """Wrap a solve_ivp method in the toolbox solver signature."""

    def solver(odefun: Callable, tspan, y0: np.ndarray,
               options: Optional[SolverOptions] = None,
               args: Sequence = (), progress: Optional[Callable] = None) -> Solution:
        options = options or SolverOptions()
        y0 = np.ravel(np.asarray(y0, dtype=float))
        n = y0.size
        t0, t1 = float(tspan[0]), float(tspan[-1])

        halted = _halted_at_start(progress, (t0, t1), y0, method, 'odesolver')
        if halted is not None:
            return halted

        def fun(t, y):
            return _as_column(odefun(t, y, *args), n)

        events = None
        if progress is not None:
            # latched at the first halting time so the event is continuous in t
            halt_at = []

            def halt_event(t, y):
                if not halt_at and progress(t, y):
                    halt_at.append(t)
                return halt_at[0] - t if halt_at else 1.0
            halt_event.terminal = True
            events = [halt_event]

        kwargs = dict(method=method, rtol=options.rtol, atol=options.atol,
                      max_step=options.max_step, dense_output=True, events=events)
        if options.initial_step is not None:
            kwargs['first_step'] = min(options.initial_step, t1 - t0)

        res = solve_ivp(fun, (t0, t1), y0, **kwargs)
        if res.status == -1:
            warnings.warn(f"{method}: {res.message}", SolverWarning, stacklevel=2)

        stats = {
            'nsteps': int(res.t.size - 1),
            'nfailed': 0 if res.status >= 0 else 1,
            'nfevals': int(res.nfev),
            'njevals': int(res.njev),
            'halted': res.status == 1,
        }
        return Solution(x=res.t, y=res.y, solver=method, solvertype='odesolver',
                        stats=stats, interpolant=res.sol)

    solver.__name__ = method
    return solver


def odeEul(odefun: Callable, tspan, y0: np.ndarray,
           options: Optional[SolverOptions] = None,
           args: Sequence = (), progress: Optional[Callable] = None) -> Solution:
    """
    Fixed-step forward Euler method.

    The step is options.initial_step, or 1/100 of the time span. On overflow
    a SolverWarning is issued and the remaining time points are left as NaN.
    """
    options = options or SolverOptions()
    y0 = np.ravel(np.asarray(y0, dtype=float))
    n = y0.size
    t0, t1 = float(tspan[0]), float(tspan[-1])
    dt = options.initial_step if options.initial_step is not None else (t1 - t0) / 100

    x = _time_grid(t0, t1, dt)
    tcount = x.size
    y = np.full((n, tcount), np.nan)
    yp = np.full((n, tcount), np.nan)
    y[:, 0] = y0

    nfailed = 0
    nfevals = 0
    halted = False
    last = tcount - 1
    for k in range(tcount - 1):
        if progress is not None and progress(x[k], y[:, k]):
            halted = True
            last = k
            break
        yp[:, k] = _as_column(odefun(x[k], y[:, k], *args), n)
        nfevals += 1
        y[:, k + 1] = y[:, k] + yp[:, k] * dt
        if not np.all(np.isfinite(y[:, k + 1])):
            _overflow_warning('odeEul', x[k])
            nfailed = 1
            last = k + 1
            break
    else:
        yp[:, -1] = _as_column(odefun(x[-1], y[:, -1], *args), n)
        nfevals += 1

    if halted:
        x, y, yp = x[:last + 1], y[:, :last + 1], yp[:, :last + 1]

    stats = {'nsteps': int(last), 'nfailed': nfailed, 'nfevals': nfevals, 'halted': halted}
    return Solution(x=x, y=y, yp=yp, solver='odeEul', solvertype='odesolver', stats=stats)


# ========== DDE SOLVERS ==========

def _lagged_states(y: np.ndarray, y0: np.ndarray, t0: float, dt: float,
                   tq: np.ndarray, kmax: int) -> np.ndarray:
    """
    Linearly interpolate the computed history at the query times tq.

    Times before t0 take the constant pre-history y0. Only columns up to
    kmax are assumed to be valid.

    Returns:
        Z of shape (n, len(tq))
    """
    pos = (tq - t0) / dt
    Z = np.empty((y0.size, tq.size))
    for j, p in enumerate(pos):
        if p <= 0:
            Z[:, j] = y0
            continue
        i = min(int(np.floor(p)), kmax)
        frac = p - i
        if i >= kmax or frac <= 0:
            Z[:, j] = y[:, i]
        else:
            Z[:, j] = (1.0 - frac) * y[:, i] + frac * y[:, i + 1]
    return Z


def ddeHeun(ddefun: Callable, lags, y0: np.ndarray, tspan,
            options: Optional[SolverOptions] = None,
            args: Sequence = (), progress: Optional[Callable] = None) -> Solution:
    """
    Fixed-step Heun (trapezoidal predictor-corrector) method of steps for
    delay differential equations with a constant pre-history.
    """
    options = options or SolverOptions()
    y0 = np.ravel(np.asarray(y0, dtype=float))
    lags = np.ravel(np.asarray(lags, dtype=float))
    n = y0.size
    t0, t1 = float(tspan[0]), float(tspan[-1])

    if options.initial_step is not None:
        dt = options.initial_step
    else:
        dt = (t1 - t0) / 1000
        positive = lags[lags > 0]
        if positive.size:
            dt = min(dt, float(np.min(positive)) / 4)

    x = _time_grid(t0, t1, dt)
    tcount = x.size
    y = np.full((n, tcount), np.nan)
    yp = np.full((n, tcount), np.nan)
    y[:, 0] = y0

    nfailed = 0
    nfevals = 0
    halted = False
    last = tcount - 1
    for k in range(tcount - 1):
        if progress is not None and progress(x[k], y[:, k]):
            halted = True
            last = k
            break
        Zk = _lagged_states(y, y0, t0, dt, x[k] - lags, k)
        fk = _as_column(ddefun(x[k], y[:, k], Zk, *args), n)
        yp[:, k] = fk
        # predictor goes into the history so that lags shorter than dt see it
        y[:, k + 1] = y[:, k] + dt * fk
        Zbar = _lagged_states(y, y0, t0, dt, x[k + 1] - lags, k + 1)
        fbar = _as_column(ddefun(x[k + 1], y[:, k + 1], Zbar, *args), n)
        nfevals += 2
        y[:, k + 1] = y[:, k] + 0.5 * dt * (fk + fbar)
        if not np.all(np.isfinite(y[:, k + 1])):
            _overflow_warning('ddeHeun', x[k])
            nfailed = 1
            last = k + 1
            break
    else:
        Z = _lagged_states(y, y0, t0, dt, x[-1] - lags, tcount - 1)
        yp[:, -1] = _as_column(ddefun(x[-1], y[:, -1], Z, *args), n)
        nfevals += 1

    if halted:
        x, y, yp = x[:last + 1], y[:, :last + 1], yp[:, :last + 1]

    stats = {'nsteps': int(last), 'nfailed': nfailed, 'nfevals': nfevals, 'halted': halted}
    return Solution(x=x, y=y, yp=yp, solver='ddeHeun', solvertype='ddesolver', stats=stats)


# ========== SDE SOLVERS ==========

def _sde_setup(tspan, options: SDEOptions, rng: Optional[np.random.Generator]):
    """Time grid and Wiener increments for the fixed-step SDE methods."""
    t0, t1 = float(tspan[0]), float(tspan[-1])
    m = int(options.noise_sources)
    if options.randn is not None:
        randn = np.atleast_2d(np.asarray(options.randn, dtype=float))
        if randn.shape[0] != m:
            raise SolverError('solver:randn',
                              "The number of rows in options.randn must equal options.noise_sources")
        tcount = randn.shape[1]
        dt = (t1 - t0) / (tcount - 1)
        x = np.linspace(t0, t1, tcount)
        dW = np.sqrt(dt) * randn
    else:
        dt = options.initial_step if options.initial_step is not None else (t1 - t0) / 100
        x = _time_grid(t0, t1, dt)
        if rng is None:
            rng = np.random.default_rng(options.seed)
        dW = np.sqrt(dt) * rng.standard_normal((m, x.size))
    return x, dt, dW, m


def sdeIto(sdeF: Callable, sdeG: Callable, tspan, y0: np.ndarray,
           options: Optional[SDEOptions] = None, args: Sequence = (),
           progress: Optional[Callable] = None,
           rng: Optional[np.random.Generator] = None) -> Solution:
    """Euler-Maruyama method for Ito SDEs: dy = F dt + G dW."""
    options = options or SDEOptions()
    y0 = np.ravel(np.asarray(y0, dtype=float))
    n = y0.size
    x, dt, dW, m = _sde_setup(tspan, options, rng)
    tcount = x.size
    y = np.full((n, tcount), np.nan)
    yp = np.full((n, tcount), np.nan)
    y[:, 0] = y0

    def step(k):
        F = _as_column(sdeF(x[k], y[:, k], *args), n)
        G = np.reshape(np.asarray(sdeG(x[k], y[:, k], *args), dtype=float), (n, m))
        return F * dt + G @ dW[:, k]

    nfailed = 0
    halted = False
    last = tcount - 1
    for k in range(tcount - 1):
        if progress is not None and progress(x[k], y[:, k]):
            halted = True
            last = k
            break
        yp[:, k] = step(k)
        y[:, k + 1] = y[:, k] + yp[:, k]
        if not np.all(np.isfinite(y[:, k + 1])):
            _overflow_warning('sdeIto', x[k])
            nfailed = 1
            last = k + 1
            break
    else:
        yp[:, -1] = step(tcount - 1)

    if halted:
        x, y, yp, dW = x[:last + 1], y[:, :last + 1], yp[:, :last + 1], dW[:, :last + 1]

    stats = {'nsteps': int(last), 'nfailed': nfailed, 'nfevals': 2 * tcount, 'halted': halted}
    return Solution(x=x, y=y, yp=yp, dW=dW, solver='sdeIto', solvertype='sdesolver', stats=stats)


def sdeStratonovich(sdeF: Callable, sdeG: Callable, tspan, y0: np.ndarray,
                    options: Optional[SDEOptions] = None, args: Sequence = (),
                    progress: Optional[Callable] = None,
                    rng: Optional[np.random.Generator] = None) -> Solution:
    """Stochastic Heun method for Stratonovich SDEs."""
    options = options or SDEOptions()
    y0 = np.ravel(np.asarray(y0, dtype=float))
    n = y0.size
    x, dt, dW, m = _sde_setup(tspan, options, rng)
    tcount = x.size
    y = np.full((n, tcount), np.nan)
    yp = np.full((n, tcount), np.nan)
    y[:, 0] = y0

    def F(t, yy):
        return _as_column(sdeF(t, yy, *args), n)

    def G(t, yy):
        return np.reshape(np.asarray(sdeG(t, yy, *args), dtype=float), (n, m))

    def step(tn, yn, dWn):
        fn = F(tn, yn)
        Gn = G(tn, yn)
        ybar = yn + fn * dt + Gn @ dWn
        fbar = F(tn + dt, ybar)
        Gbar = G(tn + dt, ybar)
        return 0.5 * (fn + fbar) * dt + 0.5 * (Gn + Gbar) @ dWn

    nfailed = 0
    halted = False
    last = tcount - 1
    for k in range(tcount - 1):
        if progress is not None and progress(x[k], y[:, k]):
            halted = True
            last = k
            break
        yp[:, k] = step(x[k], y[:, k], dW[:, k])
        y[:, k + 1] = y[:, k] + yp[:, k]
        if not np.all(np.isfinite(y[:, k + 1])):
            _overflow_warning('sdeStratonovich', x[k])
            nfailed = 1
            last = k + 1
            break
    else:
        yp[:, -1] = step(x[-1], y[:, -1], dW[:, -1])

    if halted:
        x, y, yp, dW = x[:last + 1], y[:, :last + 1], yp[:, :last + 1], dW[:, :last + 1]

    stats = {'nsteps': int(last), 'nfailed': nfailed, 'nfevals': 4 * tcount, 'halted': halted}
    return Solution(x=x, y=y, yp=yp, dW=dW, solver='sdeStratonovich', solvertype='sdesolver',
                    stats=stats)


# ========== REGISTRY ==========

SOLVERS: Dict[str, SolverSpec] = {
    'RK45': SolverSpec('RK45', 'odesolver', _make_scipy_solver('RK45'), 'Explicit Runge-Kutta 5(4)'),
    'RK23': SolverSpec('RK23', 'odesolver', _make_scipy_solver('RK23'), 'Explicit Runge-Kutta 3(2)'),
    'DOP853': SolverSpec('DOP853', 'odesolver', _make_scipy_solver('DOP853'), 'Explicit Runge-Kutta 8'),
    'Radau': SolverSpec('Radau', 'odesolver', _make_scipy_solver('Radau'), 'Implicit Runge-Kutta (stiff)'),
    'BDF': SolverSpec('BDF', 'odesolver', _make_scipy_solver('BDF'), 'Backward differentiation (stiff)'),
    'LSODA': SolverSpec('LSODA', 'odesolver', _make_scipy_solver('LSODA'), 'Adams/BDF with stiffness detection'),
    'odeEul': SolverSpec('odeEul', 'odesolver', odeEul, 'Fixed-step Euler'),
    'ddeHeun': SolverSpec('ddeHeun', 'ddesolver', ddeHeun, 'Fixed-step Heun for delay equations'),
    'sdeIto': SolverSpec('sdeIto', 'sdesolver', sdeIto, 'Euler-Maruyama (Ito)'),
    'sdeStratonovich': SolverSpec('sdeStratonovich', 'sdesolver', sdeStratonovich,
                                  'Stochastic Heun (Stratonovich)'),
}


def get_solver(name: str) -> SolverSpec:
    """Look up a solver by name."""
    try:
        return SOLVERS[name]
    except KeyError:
        raise SolverError('solver:unknown', f"Unknown solver '{name}'") from None
