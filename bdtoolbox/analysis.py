"""
analysis.py - Panel Computations

Numerical work behind the display panels, kept separate from the drawing
code so it can be used (and tested) without a figure:
- Transient masks and vector fields for time and phase portraits
- Space-time matrices and linear correlation matrices
- Hilbert phase analysis
- Amplitude-adjusted Fourier-transform surrogates
- Accumulation of orbits for bifurcation diagrams
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import signal

from .solvers import Solution
from .system import System


# ========== COMMON ==========

def transient_mask(sol: Solution, tval: float) -> np.ndarray:
    """
    Boolean mask of the non-transient time steps.

    A step is non-transient when x >= tval and every state is finite; the
    mask can be all False when a solver terminated early on overflow.
    """
    return (sol.x >= tval) & np.all(np.isfinite(sol.y), axis=0)


def drift_function(sys: System) -> Callable:
    """
    Deterministic right-hand side f(t, y) of the system.

    For delay equations the lagged states are taken to equal the current
    state; for SDEs the drift term sdeF is used.
    """
    par = sys.par_values
    if sys.odefun is not None:
        return lambda t, y: np.ravel(sys.odefun(t, y, *par))
    if sys.ddefun is not None:
        nlags = max(1, sys.lags.size)

        def dde(t, y):
            Z = np.repeat(np.reshape(y, (-1, 1)), nlags, axis=1)
            return np.ravel(sys.ddefun(t, y, Z, *par))
        return dde
    return lambda t, y: np.ravel(sys.sdeF(t, y, *par))


# ========== PHASE PORTRAIT ==========

def vector_field(sys: System, xrow: int, yrow: int,
                 xlim: Tuple[float, float], ylim: Tuple[float, float],
                 n: int = 11, zrow: Optional[int] = None,
                 zlim: Optional[Tuple[float, float]] = None,
                 t: Optional[float] = None, y0: Optional[np.ndarray] = None) -> Dict:
    """
    Sample the direction field on a regular mesh.

    The states not on the axes are held at their initial values (or y0).

    Args:
        sys: Checked system
        xrow, yrow, zrow: Rows of the state vector on each axis
        xlim, ylim, zlim: Axis limits
        n: Mesh points per axis
        t: Time at which to evaluate (defaults to sys.tspan[0])

    Returns:
        Dictionary with meshes 'x', 'y' (and 'z') and derivatives 'dx', 'dy' (and 'dz')
    """
    rhs = drift_function(sys)
    t = sys.tspan[0] if t is None else t
    base = np.array(sys.y0 if y0 is None else y0, dtype=float)

    xs = np.linspace(xlim[0], xlim[1], n)
    ys = np.linspace(ylim[0], ylim[1], n)
    if zrow is None:
        X, Y = np.meshgrid(xs, ys)
        dX = np.zeros_like(X)
        dY = np.zeros_like(Y)
        for idx in np.ndindex(X.shape):
            state = base.copy()
            state[xrow] = X[idx]
            state[yrow] = Y[idx]
            d = rhs(t, state)
            dX[idx] = d[xrow]
            dY[idx] = d[yrow]
        return {'x': X, 'y': Y, 'dx': dX, 'dy': dY}

    zs = np.linspace(zlim[0], zlim[1], n)
    X, Y, Z = np.meshgrid(xs, ys, zs)
    dX = np.zeros_like(X)
    dY = np.zeros_like(Y)
    dZ = np.zeros_like(Z)
    for idx in np.ndindex(X.shape):
        state = base.copy()
        state[xrow] = X[idx]
        state[yrow] = Y[idx]
        state[zrow] = Z[idx]
        d = rhs(t, state)
        dX[idx] = d[xrow]
        dY[idx] = d[yrow]
        dZ[idx] = d[zrow]
    return {'x': X, 'y': Y, 'z': Z, 'dx': dX, 'dy': dY, 'dz': dZ}


def nullcline_grid(sys: System, xrow: int, yrow: int,
                   xlim: Tuple[float, float], ylim: Tuple[float, float],
                   n: int = 41, **kwargs) -> Dict:
    """Fine direction-field mesh whose zero contours are the nullclines."""
    return vector_field(sys, xrow, yrow, xlim, ylim, n=n, **kwargs)


# ========== SPACE-TIME AND CORRELATION ==========

def space_time(sol: Solution, rows: Sequence[int],
               tindx: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Time points and the (rows x time) matrix of a vector variable."""
    rows = np.asarray(rows, dtype=int)
    if tindx is None:
        return sol.x, sol.y[rows, :]
    return sol.x[tindx], sol.y[np.ix_(rows, np.flatnonzero(tindx))]


def correlation_matrix(sol, rows: Sequence[int], solvertype: str) -> np.ndarray:
    """
    Linear correlation matrix of the selected rows.

    Correlation assumes equi-spaced samples, so adaptive solutions are
    interpolated onto a regular grid with about as many points as the
    solver produced. Stochastic solutions are not interpolated; their own
    (fixed) steps with t >= 0 are used instead.
    """
    rows = np.asarray(rows, dtype=int)
    if solvertype == 'sdesolver':
        tindx = np.flatnonzero(sol.x >= 0)
        Y = sol.y[np.ix_(rows, tindx)]
    else:
        t0 = max(0.0, float(sol.x[0]))
        t1 = float(sol.x[-1])
        tinterp = np.linspace(t0, t1, sol.x.size)
        Y = sol.deval(tinterp, rows)

    if rows.size == 1:
        return np.ones((1, 1))
    with np.errstate(divide='ignore', invalid='ignore'):
        R = np.corrcoef(Y)
    R[np.isnan(R)] = 1.0
    return R


# ========== HILBERT PHASE ==========

def hilbert_phase(y: np.ndarray, ref: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Analytic signal and phase angle of each row of y.

    Args:
        y: Signals (k, t)
        ref: Optional reference signal (t,); phases become relative to it

    Returns:
        (h, p): analytic signal and phase, each (k, t)
    """
    y = np.atleast_2d(np.asarray(y, dtype=float))
    h = signal.hilbert(y, axis=1)
    p = np.angle(h)
    if ref is not None:
        p2 = np.angle(signal.hilbert(np.ravel(ref)))
        p = p - p2[np.newaxis, :]
    return h, p


def phase_cylinder(t: np.ndarray, y: np.ndarray, p: np.ndarray) -> Dict:
    """
    Coordinates for drawing phases on a cylinder.

    Only t >= 0 is kept and the phases are rotated so that the mean phase
    at the first retained time sits at -pi/2.
    """
    keep = np.flatnonzero(np.asarray(t) >= 0)
    tt = np.asarray(t)[keep]
    yy = np.atleast_2d(y)[:, keep]
    pp = np.atleast_2d(p)[:, keep]
    if tt.size:
        pp = pp - np.mean(pp[:, 0]) - np.pi / 2
    return {'t': tt, 'y': yy, 'p': pp, 'cos': np.cos(pp), 'sin': np.sin(pp)}


# ========== SURROGATE DATA ==========

def amplitude_surrogate(x, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Amplitude-adjusted Fourier-transform (AAFT) surrogate.

    Each series is rank-remapped onto Gaussian noise, its Fourier phases are
    randomised (the same random phases for every series, so cross-correlations
    survive) and the original values are re-ordered to follow the rank order
    of the result. The surrogate has exactly the original value distribution.

    Args:
        x: One series (t,) or several; a 2-D array with fewer rows than
           columns holds one series per row, otherwise one per column
        rng: Random generator

    Returns:
        Surrogate with the same shape as x
    """
    rng = rng or np.random.default_rng()
    x = np.asarray(x, dtype=float)
    squeeze = x.ndim == 1
    if squeeze:
        x = x[:, np.newaxis]
    transpose = x.shape[0] < x.shape[1]
    if transpose:
        x = x.T

    n, cc = x.shape
    m = 1 << int(np.ceil(np.log2(n))) if n > 1 else 1

    # Gaussian series with the same rank order as x
    yy = np.zeros((n, cc))
    for i in range(cc):
        gs = np.sort(rng.standard_normal(n))
        ranks = np.argsort(np.argsort(x[:, i], kind='stable'), kind='stable')
        yy[:, i] = gs[ranks]

    # Random phases, conjugate-symmetric so the inverse transform is real
    phsrnd = np.zeros(m)
    half = m // 2
    if half > 1:
        phsrnd[1:half] = rng.random(half - 1) * 2 * np.pi
        phsrnd[half + 1:m] = -phsrnd[half - 1:0:-1]

    xx = np.fft.fft(yy, m, axis=0)
    xx = xx * np.exp(1j * phsrnd)[:, np.newaxis]
    xx = np.real(np.fft.ifft(xx, m, axis=0))[:n, :]

    # Original values re-ordered to the rank order of xx
    y = np.zeros((n, cc))
    for i in range(cc):
        ysorted = np.sort(x[:, i])
        ranks = np.argsort(np.argsort(xx[:, i], kind='stable'), kind='stable')
        y[:, i] = ysorted[ranks]

    if transpose:
        y = y.T
    if squeeze:
        y = y[:, 0]
    return y


# ========== BIFURCATION ==========

def fixed_point_test(sys: System, sol: Solution, tol: float = 1e-3) -> bool:
    """True when the solution has settled: ||dy/dt|| < tol at the final time."""
    yend = sol.y[:, -1]
    if not np.all(np.isfinite(yend)):
        return False
    dy = drift_function(sys)(sol.x[-1], yend)
    return bool(np.linalg.norm(dy) < tol)


class BifurcationAccumulator:
    """
    Collects orbits for a bifurcation diagram as a parameter is varied.

    Each call to add() records the trajectory of one or two state variables
    against the parameter value that produced it.
    """

    def __init__(self):
        self.orbits: List[Dict] = []
        self.ylo = np.inf
        self.yhi = -np.inf
        self.zlo = np.inf
        self.zhi = -np.inf

    def clear(self) -> None:
        self.__init__()

    def add(self, p: float, y: np.ndarray, tindx: np.ndarray,
            z: Optional[np.ndarray] = None, fixedpoint: bool = False) -> Dict:
        """
        Record one orbit.

        Args:
            p: Bifurcation parameter value used for the solution
            y: Trajectory of the y-axis variable (t,)
            tindx: Non-transient mask (t,)
            z: Optional trajectory of the z-axis variable (t,)
            fixedpoint: Whether the trajectory ended on a fixed point
        """
        y = np.ravel(y)
        tindx = np.asarray(tindx, dtype=bool)
        if np.any(tindx):
            self.ylo = min(self.ylo, float(np.min(y[tindx])))
            self.yhi = max(self.yhi, float(np.max(y[tindx])))
            if z is not None:
                z = np.ravel(z)
                self.zlo = min(self.zlo, float(np.min(z[tindx])))
                self.zhi = max(self.zhi, float(np.max(z[tindx])))
        orbit = {
            'p': float(p),
            'pp': np.full(y.shape, float(p)),
            'y': y,
            'z': z,
            'tindx': tindx,
            'fixedpoint': bool(fixedpoint),
        }
        self.orbits.append(orbit)
        return orbit

    @property
    def fixed_points(self) -> List[Tuple[float, float]]:
        return [(o['p'], float(o['y'][-1])) for o in self.orbits if o['fixedpoint']]
