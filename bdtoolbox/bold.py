"""
bold.py - Haemodynamic BOLD Response

Computes the fMRI BOLD signal evoked by neural activity using the
haemodynamic (balloon) model of Glaser, Friston, Mechelli, Turner & Price
(2003). For each channel:

    dv/dt = (f - v^(1/alpha)) / tau0
    dq/dt = (f (1 - (1-E0)^(1/f)) / E0 - v^((1-alpha)/alpha) q) / tau0
    df/dt = s / tau1
    ds/dt = (u(t) - kappa s - gamma (f-1)) / tau1

    BOLD = V0 (k1 (1-q) + k2 (1-q/v) + k3 (1-v)),  k1 = 7 E0, k2 = 2, k3 = 2 E0 - 0.2

where v is blood volume, q deoxyhaemoglobin content, f blood inflow and s the
vasodilatory signal. The drive u(t) comes from a simulated trajectory, so the
haemodynamics are a solver nested inside the outer simulation: the sampled
trajectory is interpolated at whatever times the stiff solver asks for.
"""

import logging
import warnings
from dataclasses import asdict, dataclass
from typing import Dict, Optional

import numpy as np
from scipy.integrate import solve_ivp
from scipy.interpolate import interp1d

from .errors import BoldWarning
from .solvers import Solution
from .system import SolverOptions, System

log = logging.getLogger(__name__)


@dataclass
class BoldParams:
    """Haemodynamic parameters and the mapping of neural activity onto u(t)."""

    V0: float = 0.02     # Resting blood volume fraction
    E0: float = 0.34     # Resting net oxygen extraction fraction
    tau0: float = 0.98   # Mean transit time of blood (s)
    tau1: float = 1.0    # Time constant of blood inflow (s)
    alpha: float = 0.32  # Stiffness of the venous balloon
    kappa: float = 0.65  # Decay rate of the vasodilatory signal
    gamma: float = 0.41  # Autoregulatory feedback of the vasodilatory signal
    z0: float = 0.0      # Neural activity that maps onto u(t)=0
    z1: float = 1.0      # Neural activity that maps onto u(t)=1

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class BoldResult:
    """BOLD signal and haemodynamic states, each (n, t)."""

    t: np.ndarray
    bold: np.ndarray
    v: np.ndarray
    q: np.ndarray
    f: np.ndarray
    s: np.ndarray
    stats: Dict
    warning: Optional[str] = None

    @property
    def percent(self) -> np.ndarray:
        """BOLD signal change in percent."""
        return 100.0 * self.bold


def bold_signal(v, q, V0: float, E0: float) -> np.ndarray:
    """Observed BOLD signal from blood volume v and deoxyhaemoglobin q."""
    v = np.asarray(v, dtype=float)
    q = np.asarray(q, dtype=float)
    k1 = 7.0 * E0
    k2 = 2.0
    k3 = 2.0 * E0 - 0.2
    with np.errstate(divide='ignore', invalid='ignore'):
        return V0 * (k1 * (1.0 - q) + k2 * (1.0 - q / v) + k3 * (1.0 - v))


def haemodynamic_rhs(u, v, q, f, s, E0: float, tau0: float, tau1: float,
                     alpha: float, kappa: float, gamma: float):
    """Time derivatives of (v, q, f, s) for drive u."""
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        dv = (f - v ** (1.0 / alpha)) / tau0
        dq = (f * (1.0 - (1.0 - E0) ** (1.0 / f)) / E0
              - v ** ((1.0 - alpha) / alpha) * q) / tau0
    df = s / tau1
    ds = (u - kappa * s - gamma * (f - 1.0)) / tau1
    return dv, dq, df, ds


def neural_drive(z, z0: float, z1: float) -> np.ndarray:
    """Map neural activity z onto the haemodynamic drive u = (z-z0)/(z1-z0)."""
    if z1 == z0:
        raise ValueError("z0 and z1 must differ")
    return (np.asarray(z, dtype=float) - z0) / (z1 - z0)


def compute_bold(T, Z, params: Optional[BoldParams] = None,
                 v0: float = 1.0, q0: float = 1.0, f0: float = 1.0, s0: float = 0.0,
                 options: Optional[SolverOptions] = None,
                 method: str = 'Radau') -> BoldResult:
    """
    Integrate the haemodynamic model driven by Z and compute the BOLD signal.

    Args:
        T: Sample times (t,), strictly increasing
        Z: Drive u(t) sampled at T, shape (n, t); a 1-D array is one channel
        params: Haemodynamic parameters (z0/z1 are not applied here)
        v0, q0, f0, s0: Initial haemodynamic state for every channel
        options: Solver tolerances and step limits
        method: Stiff solve_ivp method

    Returns:
        BoldResult with bold, v, q, f, s evaluated at T
    """
    params = params or BoldParams()
    options = options or SolverOptions()

    T = np.ravel(np.asarray(T, dtype=float))
    Z = np.asarray(Z, dtype=float)
    if Z.ndim == 1:
        Z = Z[np.newaxis, :]
    if Z.ndim != 2:
        raise ValueError("Z must be a vector or an (n, t) matrix")
    if T.size < 2:
        raise ValueError("At least two time samples are required")
    if Z.shape[1] != T.size:
        raise ValueError(f"Z has {Z.shape[1]} samples but T has {T.size}")
    if np.any(np.diff(T) <= 0):
        raise ValueError("T must be strictly increasing")

    n = Z.shape[0]
    p = params

    # Drive held constant beyond the sampled range
    drive = interp1d(T, Z, axis=1, kind='linear', bounds_error=False,
                     fill_value=(Z[:, 0], Z[:, -1]), assume_sorted=True)

    def odefun(t, Y):
        v = Y[0:n]
        q = Y[n:2 * n]
        f = Y[2 * n:3 * n]
        s = Y[3 * n:4 * n]
        u = drive(t)
        dv, dq, df, ds = haemodynamic_rhs(u, v, q, f, s, p.E0, p.tau0, p.tau1,
                                          p.alpha, p.kappa, p.gamma)
        return np.concatenate([dv, dq, df, ds])

    Y0 = np.concatenate([np.full(n, v0), np.full(n, q0), np.full(n, f0), np.full(n, s0)])

    kwargs = dict(method=method, rtol=options.rtol, atol=options.atol,
                  max_step=options.max_step, dense_output=True)
    if options.initial_step is not None:
        kwargs['first_step'] = min(options.initial_step, T[-1] - T[0])

    message = None
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', RuntimeWarning)
        sol = solve_ivp(odefun, (T[0], T[-1]), Y0, **kwargs)
    if sol.status < 0:
        message = f"Haemodynamic solver failed: {sol.message}"

    if sol.status >= 0:
        Y = sol.sol(T)
    else:
        # states are unknown beyond the point of failure
        Y = np.full((4 * n, T.size), np.nan)
        ok = T <= sol.t[-1]
        if sol.t.size > 1:
            Y[:, ok] = sol.sol(T[ok])

    V = Y[0:n]
    Q = Y[n:2 * n]
    F = Y[2 * n:3 * n]
    S = Y[3 * n:4 * n]
    bold = bold_signal(V, Q, p.V0, p.E0)

    if message is None and not np.all(np.isfinite(bold)):
        message = "Computed BOLD is invalid because it is not finite"
    if message is not None:
        log.warning(message)
        warnings.warn(message, BoldWarning, stacklevel=2)

    stats = {'nsteps': int(sol.t.size - 1), 'nfevals': int(sol.nfev),
             'njevals': int(sol.njev), 'nfailed': 0 if sol.status >= 0 else 1}
    return BoldResult(t=T, bold=bold, v=V, q=Q, f=F, s=S, stats=stats, warning=message)


def solver_options_for(sys: System, solvertype: str) -> SolverOptions:
    """
    Options for the haemodynamic solver, inherited from the outer solver so
    that both solves work to comparable accuracy.
    """
    options = SolverOptions()
    if solvertype == 'odesolver' and sys.odeoption is not None:
        outer = sys.odeoption
    elif solvertype == 'ddesolver' and sys.ddeoption is not None:
        outer = sys.ddeoption
    elif solvertype == 'sdesolver' and sys.sdeoption is not None:
        if sys.sdeoption.initial_step is not None:
            options.initial_step = sys.sdeoption.initial_step
            options.rtol = 1e-6
            options.max_step = sys.sdeoption.initial_step
        return options
    else:
        return options
    options.rtol = outer.rtol
    options.atol = outer.atol
    options.initial_step = outer.initial_step
    options.max_step = outer.max_step
    return options


def bold_from_solution(sol: Solution, sys: System, varname: str,
                       params: Optional[BoldParams] = None,
                       solvertype: Optional[str] = None,
                       method: str = 'Radau') -> BoldResult:
    """
    BOLD response derived from one state variable of a solution.

    Every element of the variable drives its own haemodynamic channel.
    """
    params = params or BoldParams()
    _, _, solindx = sys.get_var(varname)
    Z = sol.y[solindx, :]
    U = neural_drive(Z, params.z0, params.z1)
    options = solver_options_for(sys, solvertype or sol.solvertype)
    return compute_bold(sol.x, U, params, options=options, method=method)
