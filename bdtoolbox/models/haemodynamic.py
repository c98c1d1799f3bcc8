"""
haemodynamic.py - Balloon model of the haemodynamic response

A single haemodynamic channel driven by a square pulse of neural activity.
Auxiliary outputs are the BOLD signal and the neural drive u(t).
"""

import numpy as np

from ..bold import bold_signal, haemodynamic_rhs
from ..system import Entry, SolverOptions, System, syscheck


def pulse(t, Z, ton, toff):
    """Square pulse of height Z for ton <= t < toff."""
    t = np.asarray(t, dtype=float)
    return np.where((ton <= t) & (t < toff), Z, 0.0)


def BOLDHRF(seed=None) -> System:
    """Haemodynamic response to a pulse of neural activity (Glaser et al. 2003)."""

    def odefun(t, Y, V0, E0, tau0, tau1, alpha, kappa, gamma, Z, ton, toff):
        v = max(Y[0], 0.0)
        q = max(Y[1], 0.0)
        f = max(Y[2], 0.0)
        s = Y[3]
        u = pulse(t, Z, ton, toff)
        dv, dq, df, ds = haemodynamic_rhs(u, v, q, f, s, E0, tau0, tau1, alpha, kappa, gamma)
        return np.array([dv, dq, df, ds], dtype=float)

    def auxfun(sol, V0, E0, tau0, tau1, alpha, kappa, gamma, Z, ton, toff):
        bold = bold_signal(sol.y[0], sol.y[1], V0, E0)
        u = pulse(sol.x, Z, ton, toff)
        return np.vstack([100.0 * bold, u])

    sys = System(
        pardef=[Entry('V0', 0.02, (0, 1)), Entry('E0', 0.34, (0.01, 1)),
                Entry('tau0', 0.98, (0.01, 2)), Entry('tau1', 1.0, (0.01, 2)),
                Entry('alpha', 0.33, (0.01, 1)), Entry('kappa', 0.65, (0, 1)),
                Entry('gamma', 0.41, (0, 1)), Entry('Z', 1.0, (0, 2)),
                Entry('ton', 0.0, (0, 1)), Entry('toff', 1.0, (0, 1))],
        vardef=[Entry('v', 1.0, (0.9, 1.4)), Entry('q', 1.0, (0.7, 1.1)),
                Entry('f', 1.0, (0.8, 1.9)), Entry('s', 0.0, (-0.3, 0.8))],
        tspan=(0.0, 30.0),
        odefun=odefun,
        auxfun=auxfun,
        odeoption=SolverOptions(rtol=1e-6),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Haemodynamic response (balloon model)',
                '',
                r'$\tau_0 \dot{v} = f - v^{1/\alpha}$',
                r'$\tau_0 \dot{q} = f (1 - (1 - E_0)^{1/f}) / E_0 - v^{(1-\alpha)/\alpha} q$',
                r'$\tau_1 \dot{f} = s$',
                r'$\tau_1 \dot{s} = u(t) - \kappa s - \gamma (f - 1)$',
                r'$BOLD = V_0 (k_1 (1 - q) + k_2 (1 - q/v) + k_3 (1 - v))$',
                'Glaser, Friston, Mechelli, Turner & Price (2003) NeuroImage 19:1-15.',
            ]},
            'TimePortrait': {},
            'Auxiliary': {'title': 'BOLD Haemodynamic Response', 'labels': ['BOLD (%)', 'u(t)']},
            'SolverPanel': {},
        },
        name='BOLDHRF',
        model_kwargs={},
        rebuild=BOLDHRF,
    )
    return syscheck(sys)
