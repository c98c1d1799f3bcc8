"""Shared fixtures for the test suite."""

import numpy as np
import pytest

from bdtoolbox.config import configure_matplotlib

# Headless rendering for the panel and server tests
configure_matplotlib()

from bdtoolbox.models import load_model  # noqa: E402
from bdtoolbox.system import Entry, System, syscheck  # noqa: E402


def decay_system(rate=-1.0, y0=1.0, tspan=(0.0, 1.0), **kwargs) -> System:
    """dy/dt = a*y, the simplest checked ODE system."""
    sys = System(
        pardef=[Entry('a', rate)],
        vardef=[Entry('y', y0)],
        tspan=tspan,
        odefun=lambda t, y, a: a * y,
        name='decay',
        **kwargs,
    )
    return syscheck(sys)


@pytest.fixture
def decay():
    return decay_system()


@pytest.fixture
def hopf():
    sys = load_model('HopfXY', seed=1)
    sys.tspan = (0.0, 20.0)
    return syscheck(sys)


@pytest.fixture
def kuramoto():
    sys = load_model('Kuramoto', n=4, seed=0)
    sys.tspan = (0.0, 10.0)
    return syscheck(sys)


@pytest.fixture
def ornstein():
    sys = load_model('OrnsteinUhlenbeck', n=3)
    sys.tspan = (0.0, 1.0)
    return syscheck(sys)


@pytest.fixture
def rng():
    return np.random.default_rng(0)
