"""
oscillators.py - Classic low-dimensional and phase-oscillator systems

- Lorenz: chaotic convection equations
- HopfXY: normal form of the Hopf bifurcation
- LinearODE: two-dimensional linear system
- Kuramoto: ring of coupled phase oscillators
"""

from typing import Optional

import numpy as np

from ..system import Entry, SolverOptions, System, syscheck


def Lorenz(seed: Optional[int] = None) -> System:
    """Lorenz equations; chaotic for sigma=10, r=28, b=8/3."""
    rng = np.random.default_rng(seed)

    def odefun(t, Y, sigma, r, b):
        x, y, z = Y
        return np.array([sigma * (y - x),
                         r * x - y - x * z,
                         x * y - b * z])

    sys = System(
        pardef=[Entry('sigma', 10.0), Entry('r', 28.0), Entry('b', 8.0 / 3.0)],
        vardef=[Entry('x', 40 * rng.random() - 20, (-20, 20)),
                Entry('y', 60 * rng.random() - 30, (-30, 30)),
                Entry('z', 50 * rng.random(), (0, 50))],
        tspan=(0.0, 20.0),
        odefun=odefun,
        odeoption=SolverOptions(rtol=1e-6, initial_step=0.1),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Lorenz',
                '',
                'The Lorenz equations in three dynamic variables',
                r'$\dot{x} = \sigma (y - x)$',
                r'$\dot{y} = r x - y - x z$',
                r'$\dot{z} = x y - b z$',
                r'where $\sigma, r, b$ are scalar constants.',
                r'Chaos is observed for $\sigma=10$, $r=28$, $b=8/3$.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'SolverPanel': {},
        },
        name='Lorenz',
        model_kwargs={'seed': seed},
        rebuild=Lorenz,
    )
    return syscheck(sys)


def HopfXY(seed: Optional[int] = None) -> System:
    """Hopf normal form in cartesian coordinates; limit cycle radius sqrt(alpha)."""
    rng = np.random.default_rng(seed)

    def odefun(t, Y, alpha):
        x, y = Y
        r2 = x ** 2 + y ** 2
        return np.array([-y + (alpha - r2) * x,
                         x + (alpha - r2) * y])

    sys = System(
        pardef=[Entry('alpha', 0.25, (-1, 1))],
        vardef=[Entry('x', 2 * rng.random() - 1, (-1, 1)),
                Entry('y', 2 * rng.random() - 1, (-1, 1))],
        tspan=(0.0, 200.0),
        odefun=odefun,
        odesolver=['RK45', 'RK23', 'odeEul'],
        odeoption=SolverOptions(rtol=1e-6, initial_step=0.01),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Hopf XY',
                '',
                'Normal form of the Hopf bifurcation in cartesian coordinates',
                r'$\dot{x} = -y + (\alpha - x^2 - y^2) x$',
                r'$\dot{y} = x + (\alpha - x^2 - y^2) y$',
                r'where the radius of the limit cycle is $\sqrt{\alpha}$.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'Bifurcation': {},
            'SolverPanel': {},
        },
        name='HopfXY',
        model_kwargs={'seed': seed},
        rebuild=HopfXY,
    )
    return syscheck(sys)


def LinearODE(seed: Optional[int] = None) -> System:
    """Linear system dY/dt = [[a, b], [c, d]] Y."""
    rng = np.random.default_rng(seed)

    def odefun(t, Y, a, b, c, d):
        return np.array([[a, b], [c, d]], dtype=float) @ Y

    sys = System(
        pardef=[Entry('a', 1.0), Entry('b', -1.0), Entry('c', 10.0), Entry('d', -2.0)],
        vardef=[Entry('x', 2 * rng.random() - 1), Entry('y', 2 * rng.random() - 1)],
        tspan=(0.0, 20.0),
        odefun=odefun,
        odesolver=['RK45', 'RK23', 'odeEul'],
        odeoption=SolverOptions(rtol=1e-6),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Linear ODE',
                '',
                r'$\dot{x} = a x + b y$',
                r'$\dot{y} = c x + d y$',
                r'Trajectories spiral when $(a - d)^2 + 4 b c < 0$.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'SolverPanel': {},
        },
        name='LinearODE',
        model_kwargs={'seed': seed},
        rebuild=LinearODE,
    )
    return syscheck(sys)


def ring_matrix(n: int, shift: int = 1) -> np.ndarray:
    """Symmetric ring coupling: ones at +/- shift off the diagonal (wrapping)."""
    eye = np.eye(n)
    return np.roll(eye, shift, axis=0) + np.roll(eye, -shift, axis=0)


def Kuramoto(n: int = 20, Kij: Optional[np.ndarray] = None, seed: Optional[int] = None) -> System:
    """
    Network of Kuramoto phase oscillators.

    dtheta_i/dt = omega_i + k/n sum_j Kji sin(theta_j - theta_i)

    The auxiliary outputs are the phases relative to the first oscillator,
    sin(theta_i - theta_1), and the order parameter R.
    """
    rng = np.random.default_rng(seed)
    if Kij is None:
        Kij = ring_matrix(n)
    Kij = np.asarray(Kij, dtype=float)
    n = Kij.shape[0]

    def odefun(t, theta, Kij, k, omega):
        theta_ij = theta[:, np.newaxis] - theta[np.newaxis, :]
        return omega + k / theta.size * np.sum(Kij * np.sin(theta_ij), axis=0)

    def auxfun(sol, Kij, k, omega):
        theta = sol.y
        phi = np.sin(theta - theta[0:1, :])
        R = np.abs(np.sum(np.exp(1j * theta), axis=0)) / theta.shape[0]
        return np.vstack([phi, R])

    sys = System(
        pardef=[Entry('Kij', Kij), Entry('k', 1.0), Entry('omega', rng.standard_normal(n))],
        vardef=[Entry('theta', 2 * np.pi * rng.random(n), (0, 2 * np.pi))],
        tspan=(0.0, 100.0),
        odefun=odefun,
        auxfun=auxfun,
        odesolver=['RK45', 'RK23', 'odeEul'],
        odeoption=SolverOptions(rtol=1e-6, max_step=0.1),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Kuramoto',
                '',
                r'$\dot{\theta}_i = \omega_i + \frac{k}{n} \sum_j K_{ji} \sin(\theta_j - \theta_i)$',
                f'This simulation has n={n} oscillators.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'SpaceTime': {},
            'CorrPanel': {},
            'Hilbert': {},
            'Auxiliary': {'labels': [f'phi_{{{i + 1}}}' for i in range(n)] + ['R']},
            'SolverPanel': {},
        },
        name='Kuramoto',
        model_kwargs={'n': n, 'seed': seed},
        rebuild=Kuramoto,
    )
    return syscheck(sys)
