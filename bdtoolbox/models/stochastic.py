"""
stochastic.py - Stochastic models
"""

import numpy as np

from ..system import Entry, SDEOptions, System, syscheck


def OrnsteinUhlenbeck(n: int = 20, seed=None) -> System:
    """
    n independent Ornstein-Uhlenbeck processes.

    dY = theta (mu - Y) dt + sigma dW
    """

    def sdeF(t, Y, theta, mu, sigma):
        return theta * (mu - Y)

    def sdeG(t, Y, theta, mu, sigma):
        return sigma * np.eye(Y.size)

    sys = System(
        pardef=[Entry('theta', 1.0), Entry('mu', 0.5), Entry('sigma', 0.5)],
        vardef=[Entry('Y', 5.0 * np.ones(n))],
        tspan=(0.0, 10.0),
        sdeF=sdeF,
        sdeG=sdeG,
        sdesolver=['sdeIto'],
        sdeoption=SDEOptions(noise_sources=n, initial_step=0.01, seed=seed),
        panels={
            'LatexPanel': {'title': 'Equations', 'latex': [
                'Ornstein-Uhlenbeck',
                '',
                r'$dY_i = \theta (\mu - Y_i) dt + \sigma dW_i$',
                f'This simulation has n={n} independent processes.',
            ]},
            'TimePortrait': {},
            'PhasePortrait': {},
            'SpaceTime': {},
            'CorrPanel': {},
            'Surrogate': {},
            'SolverPanel': {},
        },
        name='OrnsteinUhlenbeck',
        model_kwargs={'n': n, 'seed': seed},
        rebuild=OrnsteinUhlenbeck,
    )
    return syscheck(sys)
