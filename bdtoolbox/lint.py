"""
lint.py - System Verification Report

Checks a system definition, then calls each of its functions once with
the initial conditions and reports the shapes of the arguments and of the
values returned. Intended for model authors debugging a new system.
"""

from typing import List

import numpy as np

from .errors import SysCheckError
from .solvers import Solution
from .system import System, syscheck


def _shape(value) -> str:
    return str(list(np.shape(value)))


def _arguments(sys: System) -> List[str]:
    return [f"  {e.name} is size {_shape(e.value)}" for e in sys.pardef]


def _parnames(sys: System) -> str:
    return ','.join(e.name for e in sys.pardef)


def sys_check_report(sys: System) -> List[str]:
    """
    Verify a system and describe how its functions are called.

    Returns:
        Report lines, ending with 'ALL TESTS PASSED OK'

    Raises:
        SysCheckError: for a malformed system or a function returning the
            wrong shape (ident 'verify')
    """
    sys = syscheck(sys)
    lines = ['sys format is OK', '---']

    t = sys.tspan[0]
    Y0 = sys.y0
    n = Y0.size
    par = sys.par_values

    if sys.odefun is not None:
        lines.append(f"Calling Y = sys.odefun(t,Y0,{_parnames(sys)}) where")
        lines.append(f"  t is size {_shape(t)}")
        lines.append(f"  Y0 is size {_shape(Y0)}")
        lines.extend(_arguments(sys))
        Y = np.asarray(sys.odefun(t, Y0, *par))
        lines.append(f"  Returns Y as size {_shape(Y)}")
        if Y.size != n or (Y.ndim > 1 and min(Y.shape) != 1):
            raise SysCheckError('verify', f"sys.odefun must return Y as a vector of length {n}")
        lines.extend(['sys.odefun format is OK', '---'])

    if sys.ddefun is not None:
        lags = sys.lags
        Z = np.repeat(Y0[:, np.newaxis], lags.size, axis=1)
        lines.append(f"Calling Y = sys.ddefun(t,Y0,Z,{_parnames(sys)}) where")
        lines.append(f"  t is size {_shape(t)}")
        lines.append(f"  Y0 is size {_shape(Y0)}")
        lines.append(f"  Z is size {_shape(Z)}")
        lines.extend(_arguments(sys))
        Y = np.asarray(sys.ddefun(t, Y0, Z, *par))
        lines.append(f"  Returns Y as size {_shape(Y)}")
        if Y.size != n or (Y.ndim > 1 and min(Y.shape) != 1):
            raise SysCheckError('verify', f"sys.ddefun must return Y as a vector of length {n}")
        lines.extend(['sys.ddefun format is OK', '---'])

    if sys.sdeF is not None:
        m = sys.sdeoption.noise_sources
        lines.append(f"Calling F = sys.sdeF(t,Y0,{_parnames(sys)}) where")
        lines.append(f"  t is size {_shape(t)}")
        lines.append(f"  Y0 is size {_shape(Y0)}")
        lines.extend(_arguments(sys))
        F = np.asarray(sys.sdeF(t, Y0, *par))
        lines.append(f"  Returns F as size {_shape(F)}")
        if F.size != n or (F.ndim > 1 and min(F.shape) != 1):
            raise SysCheckError('verify', f"sys.sdeF must return F as a vector of length {n}")
        lines.extend(['sys.sdeF format is OK', '---'])

        lines.append(f"Calling G = sys.sdeG(t,Y0,{_parnames(sys)}) where")
        lines.append(f"  t is size {_shape(t)}")
        lines.append(f"  Y0 is size {_shape(Y0)}")
        lines.extend(_arguments(sys))
        G = np.atleast_2d(np.asarray(sys.sdeG(t, Y0, *par)))
        if n == 1 and m > 1 and G.shape == (m, 1):
            G = G.T
        lines.append(f"  Returns G as size {_shape(G)}")
        if G.shape[0] != n:
            raise SysCheckError('verify', f"sys.sdeG must return an (n x m) matrix where n={n}")
        if G.shape[1] != m:
            raise SysCheckError('verify', f"sys.sdeG must return an (n x m) matrix where m={m}")
        lines.extend(['sys.sdeG format is OK', '---'])

    if sys.auxfun is not None:
        x = np.linspace(sys.tspan[0], sys.tspan[1], 11)
        sol = Solution(x=x, y=np.repeat(Y0[:, np.newaxis], x.size, axis=1),
                       solver='lint', solvertype='odesolver')
        lines.append(f"Calling Yaux = sys.auxfun(sol,{_parnames(sys)}) where")
        lines.append(f"  sol.x is size {_shape(sol.x)}")
        lines.append(f"  sol.y is size {_shape(sol.y)}")
        lines.extend(_arguments(sys))
        Yaux = np.atleast_2d(np.asarray(sys.auxfun(sol, *par)))
        lines.append(f"  Returns Yaux as size {_shape(Yaux)}")
        if Yaux.shape[1] != x.size:
            raise SysCheckError('verify', "sys.auxfun must return one column per time step")
        lines.extend(['sys.auxfun format is OK', '---'])

    lines.append('ALL TESTS PASSED OK')
    return lines
