"""
neural.py - Neural population and network models

- WilsonCowan: excitatory/inhibitory firing-rate pair
- FitzhughNagumo: network of FitzHugh-Nagumo neurons coupled through Kij
- NeuralNetDDE: firing-rate network with two constant conduction delays
"""

from typing import Optional

import numpy as np

from ..system import Entry, SolverOptions, System, syscheck
from .oscillators import ring_matrix


def sigmoid(x):
    """Logistic firing-rate function F(x) = 1/(1+exp(-x))."""
    return 1.0 / (1.0 + np.exp(-x))


def WilsonCowan(seed: Optional[int] = None) -> System:
    """Mean firing rates of reciprocally coupled excitatory and inhibitory populations."""
    rng = np.random.default_rng(seed)

    def odefun(t, Y, wee, wei, wie, wii, be, bi, Je, Ji, taue, taui):
        E, I = Y
        dE = (-E + sigmoid(wee * E - wei * I - be + Je)) / taue
        dI = (-I + sigmoid(wie * E - wii * I - bi + Ji)) / taui
        return np.array([dE, dI])

    def auxfun(sol, *pars):
        E = sol.y[0]
        I = sol.y[1]
        return np.vstack([E + I, E, I])

    sys = System(
        pardef=[Entry('wee', 11.0, (0, 30)), Entry('wei', 10.0, (0, 30)),
                Entry('wie', 10.0, (0, 30)), Entry('wii', 1.0, (0, 30)),
                Entry('be', 2.5, (0, 10)), Entry('bi', 3.0, (0, 10)),
                Entry('Je', 0.0, (0, 5)), Entry('Ji', 0.0, (0, 5)),
                Entry('taue', 5.0, (1, 20)), Entry('taui', 10.0, (1, 20))],
        vardef=[Entry('E', rng.random(), (0, 1)), Entry('I', rng.random(), (0, 1))],
        tspan=(0.0, 300.0),
        odefun=odefun,
        auxfun=auxfun,
        odeoption=SolverOptions(rtol=1e-5),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Wilson-Cowan',
                '',
                'Mean firing rates of reciprocally-coupled excitatory and inhibitory populations',
                r'$\tau_e \dot{E} = -E + F(w_{ee} E - w_{ei} I - b_e + J_e)$',
                r'$\tau_i \dot{I} = -I + F(w_{ie} E - w_{ii} I - b_i + J_i)$',
                r'where $F(v) = 1/(1 + \exp(-v))$ is a sigmoidal firing-rate function.',
                'Wilson & Cowan (1972) Biophysics Journal 12(1):1-24.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'Bifurcation': {},
            'Auxiliary': {'title': 'Compound Firing Rate', 'labels': ['E+I', 'E', 'I']},
            'SolverPanel': {},
        },
        name='WilsonCowan',
        model_kwargs={'seed': seed},
        rebuild=WilsonCowan,
    )
    return syscheck(sys)


def FitzhughNagumo(Kij: Optional[np.ndarray] = None, n: int = 10,
                   seed: Optional[int] = None) -> System:
    """
    Network of generalised FitzHugh-Nagumo neurons.

    Args:
        Kij: Connection matrix (n, n); defaults to a nearest-neighbour ring
        n: Number of neurons when Kij is not given
        seed: Seed for the random initial conditions
    """
    rng = np.random.default_rng(seed)
    if Kij is None:
        Kij = ring_matrix(n)
    Kij = np.asarray(Kij, dtype=float)
    n = Kij.shape[0]

    def odefun(t, Y, Kij, a, b, c, d, e, f, g, alpha, beta, gamma, tau, Iapp, sigma, theta):
        V = Y[:n]
        W = Y[n:]
        Inet = Kij @ sigmoid((V - theta) / sigma)
        dV = d * tau * (-f * V ** 3 + e * V ** 2 + g * V + alpha * W + gamma * (Iapp + Inet))
        dW = d * (c * V ** 2 + b * V - beta * W + a) / tau
        return np.concatenate([dV, dW])

    sys = System(
        pardef=[Entry('Kij', Kij), Entry('a', 0.056), Entry('b', 0.08), Entry('c', 0.0),
                Entry('d', 1.0), Entry('e', 0.0), Entry('f', 1.0 / 3.0), Entry('g', 1.0),
                Entry('alpha', -1.0), Entry('beta', 0.064), Entry('gamma', 1.0),
                Entry('tau', 1.0), Entry('Iapp', 0.0), Entry('sigma', 1.0), Entry('theta', 0.0)],
        vardef=[Entry('V', 4 * rng.random(n) - 2, (-2.5, 2.5)),
                Entry('W', 2.6 * rng.random(n) - 0.8, (-0.8, 1.8))],
        tspan=(0.0, 1000.0),
        odefun=odefun,
        odeoption=SolverOptions(rtol=1e-6),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'FitzHugh-Nagumo network',
                '',
                r'$\dot{V}_i = d \tau (-f V_i^3 + e V_i^2 + g V_i + \alpha W_i + \gamma (I_{app} + \sum_j K_{ij} F(V_j)))$',
                r'$\dot{W}_i = d (c V_i^2 + b V_i - \beta W_i + a) / \tau$',
                f'This simulation has n={n} neurons.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'SpaceTime': {},
            'CorrPanel': {},
            'SolverPanel': {},
        },
        name='FitzhughNagumo',
        model_kwargs={'n': n, 'seed': seed},
        rebuild=FitzhughNagumo,
    )
    return syscheck(sys)


def NeuralNetDDE(n: int = 20, seed: Optional[int] = None) -> System:
    """
    Firing-rate network with constant time delays.

    tau dV/dt = -V + F(a Aij V + b Bij V(t-d1) + c Cij V(t-d2) + Iext - theta)
    """
    rng = np.random.default_rng(seed)
    Aij = ring_matrix(n, 1)
    Bij = ring_matrix(n, 2)
    Cij = ring_matrix(n, 3)

    def ddefun(t, V, Z, Aij, Bij, Cij, a, b, c, Iext, theta, tau):
        V1 = Z[:, 0]
        V2 = Z[:, 1]
        return (-V + sigmoid(a * Aij @ V + b * Bij @ V1 + c * Cij @ V2 + Iext - theta)) / tau

    sys = System(
        pardef=[Entry('Aij', Aij), Entry('Bij', Bij), Entry('Cij', Cij),
                Entry('a', 1.0 / n), Entry('b', 1.0 / n), Entry('c', 1.0 / n),
                Entry('Iext', rng.random(n)), Entry('theta', 0.5), Entry('tau', 10.0)],
        vardef=[Entry('V', rng.random(n), (0, 1))],
        lagdef=[Entry('d1', 0.10), Entry('d2', 0.15)],
        tspan=(0.0, 200.0),
        ddefun=ddefun,
        ddeoption=SolverOptions(initial_step=0.05),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'NeuralNetDDE',
                '',
                'Firing-rate neural network with constant time delays',
                r'$\tau \dot{V}_i = -V_i + F(I_a + I_b + I_c + I_{ext} - \theta)$',
                f'This simulation has n={n} neurons.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'SpaceTime': {},
            'SolverPanel': {},
        },
        name='NeuralNetDDE',
        model_kwargs={'n': n, 'seed': seed},
        rebuild=NeuralNetDDE,
    )
    return syscheck(sys)
