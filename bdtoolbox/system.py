"""
system.py - Dynamical System Definitions

A system bundles its parameters (pardef), state variables (vardef), optional
delay lags (lagdef), a time span and exactly one family of right-hand-side
functions:

- ODE: odefun(t, y, *pars) -> dy/dt
- DDE: ddefun(t, y, Z, *pars) -> dy/dt, with Z the lagged states (n, nlags)
- SDE: sdeF(t, y, *pars) -> drift and sdeG(t, y, *pars) -> noise coefficients (n, m)

Each definition entry may hold a scalar, vector or matrix value. Solvers see
the state as one flat vector built from vardef in order.
"""

import copy
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .errors import SysCheckError

# Panels understood by the toolbox, and the old names that were renamed
PANEL_NAMES = (
    'TimePortrait', 'PhasePortrait', 'SpaceTime', 'CorrPanel', 'Bifurcation',
    'BoldHRF', 'Hilbert', 'Surrogate', 'Auxiliary', 'SolverPanel', 'LatexPanel',
)
OBSOLETE_PANELS = {
    'CorrelationPanel': 'CorrPanel',
    'SpaceTimePortrait': 'SpaceTime',
}

DEFAULT_ODE_SOLVERS = ['RK45', 'RK23', 'DOP853', 'Radau', 'BDF', 'LSODA', 'odeEul']
DEFAULT_DDE_SOLVERS = ['ddeHeun']
DEFAULT_SDE_SOLVERS = ['sdeIto', 'sdeStratonovich']


def _default_lim(value: np.ndarray) -> Tuple[float, float]:
    """Axis limits that enclose the value with whole-number bounds."""
    finite = value[np.isfinite(value)] if value.size else value
    if finite.size == 0:
        return (-1.0, 1.0)
    lo = math.floor(float(np.min(finite)))
    hi = math.ceil(float(np.max(finite)))
    if lo == hi:
        lo, hi = lo - 1, hi + 1
    return (float(lo), float(hi))


@dataclass
class Entry:
    """One named parameter, state variable or lag."""

    name: str
    value: Any
    lim: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        if isinstance(self.name, str):
            try:
                self.value = np.array(self.value, dtype=float)
            except (TypeError, ValueError):
                # left as-is so syscheck can report it
                return
            if self.lim is None:
                self.lim = _default_lim(self.value)
            else:
                self.lim = (float(self.lim[0]), float(self.lim[1]))

    @property
    def size(self) -> int:
        return int(np.size(self.value))


@dataclass
class SolverOptions:
    """Options for ODE and DDE solvers."""

    rtol: float = 1e-3
    atol: float = 1e-6
    initial_step: Optional[float] = None  # Also the fixed step of Euler/Heun methods
    max_step: float = np.inf


@dataclass
class SDEOptions:
    """Options for SDE solvers."""

    noise_sources: int = 1
    initial_step: Optional[float] = None
    randn: Optional[np.ndarray] = None  # Held noise samples (noise_sources, tcount)
    seed: Optional[int] = None


@dataclass
class System:
    """Definition of a dynamical system and its display preferences."""

    pardef: List[Entry]
    vardef: List[Entry]
    tspan: Tuple[float, float] = (0.0, 1.0)
    tval: Optional[float] = None  # Start of the non-transient part of the solution

    odefun: Optional[Callable] = None
    ddefun: Optional[Callable] = None
    sdeF: Optional[Callable] = None
    sdeG: Optional[Callable] = None
    auxfun: Optional[Callable] = None

    lagdef: List[Entry] = field(default_factory=list)

    odesolver: Optional[List[str]] = None
    ddesolver: Optional[List[str]] = None
    sdesolver: Optional[List[str]] = None
    odeoption: Optional[SolverOptions] = None
    ddeoption: Optional[SolverOptions] = None
    sdeoption: Optional[SDEOptions] = None

    panels: Dict[str, Dict] = field(default_factory=dict)
    name: str = ''
    model_kwargs: Dict[str, Any] = field(default_factory=dict)
    rebuild: Optional[Callable] = None  # Factory that regenerates the system

    # ========== CONVENIENCE ACCESSORS ==========

    @property
    def kind(self) -> str:
        """'ode', 'dde' or 'sde'."""
        if self.odefun is not None:
            return 'ode'
        if self.ddefun is not None:
            return 'dde'
        return 'sde'

    @property
    def par_values(self) -> List[np.ndarray]:
        """Parameter values in pardef order (the extra arguments of the model functions)."""
        return [entry.value for entry in self.pardef]

    @property
    def y0(self) -> np.ndarray:
        return get_values(self.vardef)

    @property
    def lags(self) -> np.ndarray:
        return get_values(self.lagdef)

    def get_par(self, name: str) -> np.ndarray:
        return get_value(self.pardef, name)[0]

    def set_par(self, name: str, value) -> None:
        self.pardef = set_value(self.pardef, name, value)

    def get_var(self, name: str) -> Tuple[np.ndarray, int, np.ndarray]:
        """
        Look up a state variable.

        Returns:
            (value, index in vardef, row indices of the variable in sol.y)
        """
        value, idx = get_value(self.vardef, name)
        solindx = var_map(self.vardef)[idx][1]
        return value, idx, solindx

    def set_var(self, name: str, value) -> None:
        self.vardef = set_value(self.vardef, name, value)

    def get_lag(self, name: str) -> np.ndarray:
        if not self.lagdef:
            raise KeyError("No lag parameters are defined in this system")
        return get_value(self.lagdef, name)[0]

    def set_lag(self, name: str, value) -> None:
        if not self.lagdef:
            raise KeyError("No lag parameters are defined in this system")
        self.lagdef = set_value(self.lagdef, name, value)

    def copy(self) -> 'System':
        """Copy with independent definition lists and options."""
        return replace(
            self,
            pardef=[replace(e, value=np.array(e.value)) for e in self.pardef],
            vardef=[replace(e, value=np.array(e.value)) for e in self.vardef],
            lagdef=[replace(e, value=np.array(e.value)) for e in self.lagdef],
            odesolver=list(self.odesolver) if self.odesolver is not None else None,
            ddesolver=list(self.ddesolver) if self.ddesolver is not None else None,
            sdesolver=list(self.sdesolver) if self.sdesolver is not None else None,
            odeoption=copy.copy(self.odeoption),
            ddeoption=copy.copy(self.ddeoption),
            sdeoption=copy.copy(self.sdeoption),
            panels=copy.deepcopy(self.panels),
            model_kwargs=dict(self.model_kwargs),
        )


# ========== DEFINITION LISTS ==========

def get_values(defs: List[Entry]) -> np.ndarray:
    """Concatenate the flattened values of all entries into one vector."""
    if not defs:
        return np.zeros(0)
    return np.concatenate([np.ravel(entry.value) for entry in defs])


def set_values(defs: List[Entry], vec) -> List[Entry]:
    """
    Distribute a flat vector over the entries (inverse of get_values).

    Returns:
        New list of entries; the input list is left untouched
    """
    vec = np.ravel(np.asarray(vec, dtype=float))
    total = sum(entry.size for entry in defs)
    if vec.size != total:
        raise SysCheckError('setvalues',
                            f"Number of new values ({vec.size}) must match the "
                            f"number of values in the definitions ({total})")
    out = []
    offset = 0
    for entry in defs:
        n = entry.size
        value = vec[offset:offset + n].reshape(np.shape(entry.value))
        out.append(replace(entry, value=value))
        offset += n
    return out


def get_value(defs: List[Entry], name: str) -> Tuple[np.ndarray, int]:
    """Return (value, index) of the named entry."""
    for idx, entry in enumerate(defs):
        if entry.name == name:
            return entry.value, idx
    raise KeyError(f"'{name}' not found")


def set_value(defs: List[Entry], name: str, value) -> List[Entry]:
    """Return a new list with the named entry replaced by value."""
    _, idx = get_value(defs, name)
    old = defs[idx].value
    new = np.array(value, dtype=float)
    if new.shape != old.shape:
        if new.size != old.size:
            raise SysCheckError('setvalue',
                                f"'{name}' expects {old.size} value(s), got {new.size}")
        new = new.reshape(old.shape)
    out = list(defs)
    out[idx] = replace(defs[idx], value=new)
    return out


def var_map(vardef: List[Entry]) -> List[Tuple[str, np.ndarray]]:
    """Row indices in sol.y occupied by each vardef entry."""
    out = []
    row = 0
    for entry in vardef:
        n = entry.size
        out.append((entry.name, np.arange(row, row + n)))
        row += n
    return out


def sol_map(vardef: List[Entry]) -> List[Tuple[str, int]]:
    """
    One (display name, vardef index) record per row of sol.y.

    Elements of vector variables are named with 1-based subscripts, e.g. V_{3}.
    """
    out = []
    for varindx, entry in enumerate(vardef):
        n = entry.size
        for element in range(n):
            if n == 1:
                label = entry.name
            else:
                label = f"{entry.name}_{{{element + 1}}}"
            out.append((label, varindx))
    return out


# ========== VALIDATION ==========

def _check_defs(defs, field_name: str) -> None:
    if not isinstance(defs, (list, tuple)):
        raise SysCheckError(f'syscheck:{field_name}', f"sys.{field_name} must be a list of entries")
    for indx, entry in enumerate(defs):
        if not isinstance(entry, Entry):
            raise SysCheckError(f'syscheck:{field_name}',
                                f"sys.{field_name}[{indx}] must be an Entry")
        if not isinstance(entry.name, str):
            raise SysCheckError(f'syscheck:{field_name}',
                                f"sys.{field_name}[{indx}].name must be a string")
        value = entry.value
        if not isinstance(value, np.ndarray) or value.size == 0 or \
                not np.issubdtype(value.dtype, np.number):
            raise SysCheckError(f'syscheck:{field_name}',
                                f"sys.{field_name}[{indx}].value must be numeric")


def _check_solvers(names, kind: str) -> None:
    from .solvers import SOLVERS

    if not isinstance(names, (list, tuple)) or len(names) == 0:
        raise SysCheckError(f'syscheck:{kind}', f"sys.{kind} must be a non-empty list")
    for indx, name in enumerate(names):
        if name not in SOLVERS:
            raise SysCheckError(f'syscheck:{kind}', f"sys.{kind}[{indx}] '{name}' is not a known solver")
        if SOLVERS[name].solvertype != kind:
            raise SysCheckError(f'syscheck:{kind}',
                                f"sys.{kind}[{indx}] '{name}' is a {SOLVERS[name].solvertype}")


def syscheck(sys: System) -> System:
    """
    Validate a system and fill in defaults.

    Returns:
        Checked copy of the system

    Raises:
        SysCheckError: describing the first problem found
    """
    if not isinstance(sys, System):
        raise SysCheckError('syscheck:badsys', "sys must be a System")

    _check_defs(sys.pardef, 'pardef')
    _check_defs(sys.vardef, 'vardef')
    if len(sys.vardef) == 0:
        raise SysCheckError('syscheck:vardef', "sys.vardef is empty")

    out = sys.copy()

    # Time span
    try:
        tspan = tuple(float(t) for t in out.tspan)
    except (TypeError, ValueError):
        raise SysCheckError('syscheck:tspan', "sys.tspan must be numeric")
    if len(tspan) != 2:
        raise SysCheckError('syscheck:tspan', "sys.tspan must be a pair (t0, t1)")
    if not tspan[0] < tspan[1]:
        raise SysCheckError('syscheck:tspan', "sys.tspan must satisfy t0 < t1")
    out.tspan = tspan
    if out.tval is None:
        out.tval = tspan[0]
    out.tval = float(min(max(out.tval, tspan[0]), tspan[1]))

    # Exactly one family of functions
    has_ode = out.odefun is not None
    has_dde = out.ddefun is not None
    has_sde = out.sdeF is not None or out.sdeG is not None
    if not (has_ode or has_dde or has_sde):
        raise SysCheckError('syscheck:badfun', "No functions found for odefun, ddefun, sdeF or sdeG")
    if has_ode and (has_dde or has_sde):
        raise SysCheckError('syscheck:badfun', "ddefun, sdeF, sdeG cannot co-exist with odefun")
    if has_dde and has_sde:
        raise SysCheckError('syscheck:badfun', "sdeF, sdeG cannot co-exist with ddefun")
    if has_sde and (out.sdeF is None or out.sdeG is None):
        raise SysCheckError('syscheck:badfun', "sdeF and sdeG must co-exist")

    for fname in ('odefun', 'ddefun', 'sdeF', 'sdeG', 'auxfun', 'rebuild'):
        fn = getattr(out, fname)
        if fn is not None and not callable(fn):
            raise SysCheckError(f'syscheck:{fname}', f"sys.{fname} must be callable")

    if has_ode:
        if out.odesolver is None:
            out.odesolver = list(DEFAULT_ODE_SOLVERS)
        _check_solvers(out.odesolver, 'odesolver')
        if out.odeoption is None:
            out.odeoption = SolverOptions()
        if not isinstance(out.odeoption, SolverOptions):
            raise SysCheckError('syscheck:odeoption', "sys.odeoption must be SolverOptions")

    if has_dde:
        if out.ddesolver is None:
            out.ddesolver = list(DEFAULT_DDE_SOLVERS)
        _check_solvers(out.ddesolver, 'ddesolver')
        if out.ddeoption is None:
            out.ddeoption = SolverOptions()
        if not isinstance(out.ddeoption, SolverOptions):
            raise SysCheckError('syscheck:ddeoption', "sys.ddeoption must be SolverOptions")
        if not out.lagdef:
            raise SysCheckError('syscheck:lagdef', "sys.lagdef is undefined")
        _check_defs(out.lagdef, 'lagdef')
        if np.any(get_values(out.lagdef) < 0):
            raise SysCheckError('syscheck:lagdef', "sys.lagdef values must be non-negative")

    if has_sde:
        if out.sdesolver is None:
            out.sdesolver = list(DEFAULT_SDE_SOLVERS)
        _check_solvers(out.sdesolver, 'sdesolver')
        if out.sdeoption is None:
            raise SysCheckError('syscheck:sdeoption', "sys.sdeoption is undefined")
        if not isinstance(out.sdeoption, SDEOptions):
            raise SysCheckError('syscheck:sdeoption', "sys.sdeoption must be SDEOptions")
        m = out.sdeoption.noise_sources
        if isinstance(m, (bool, np.bool_)) or not float(m).is_integer() or m < 1:
            raise SysCheckError('syscheck:sdeoption', "sys.sdeoption.noise_sources must be a positive integer")
        out.sdeoption.noise_sources = int(m)
        step = out.sdeoption.initial_step
        if step is not None and not step > 0:
            raise SysCheckError('syscheck:sdeoption', "sys.sdeoption.initial_step must be positive")
        if out.sdeoption.randn is not None:
            randn = np.atleast_2d(np.asarray(out.sdeoption.randn, dtype=float))
            if randn.shape[0] != out.sdeoption.noise_sources:
                raise SysCheckError('syscheck:sdeoption',
                                    "Number of rows in sys.sdeoption.randn must equal noise_sources")
            if randn.shape[1] < 2:
                raise SysCheckError('syscheck:sdeoption', "sys.sdeoption.randn needs at least two columns")
            out.sdeoption.randn = randn

    # Panels
    if not isinstance(out.panels, dict):
        raise SysCheckError('syscheck:panels', "sys.panels must be a dict")
    for pname in out.panels:
        if pname in OBSOLETE_PANELS:
            raise SysCheckError('syscheck:obsolete',
                                f"{pname} was renamed {OBSOLETE_PANELS[pname]}")
        if pname not in PANEL_NAMES:
            raise SysCheckError('syscheck:panels', f"Unknown panel '{pname}'")
        if out.panels[pname] is None:
            out.panels[pname] = {}

    return out
