"""
Model library.

Each model is a function that returns a checked System. Models with random
initial conditions accept a ``seed``; network models accept their size.
"""

from typing import Callable, Dict

from ..system import System
from .haemodynamic import BOLDHRF
from .neural import FitzhughNagumo, NeuralNetDDE, WilsonCowan
from .oscillators import HopfXY, Kuramoto, LinearODE, Lorenz, ring_matrix
from .stochastic import OrnsteinUhlenbeck

MODELS: Dict[str, Callable[..., System]] = {
    'Lorenz': Lorenz,
    'HopfXY': HopfXY,
    'LinearODE': LinearODE,
    'WilsonCowan': WilsonCowan,
    'FitzhughNagumo': FitzhughNagumo,
    'Kuramoto': Kuramoto,
    'OrnsteinUhlenbeck': OrnsteinUhlenbeck,
    'BOLDHRF': BOLDHRF,
    'NeuralNetDDE': NeuralNetDDE,
}


def load_model(name: str, **kwargs) -> System:
    """
    Build a model from the registry.

    Args:
        name: Registered model name (see MODELS)
        **kwargs: Passed to the model function (e.g. n, seed)

    Raises:
        KeyError: if the model is unknown
    """
    try:
        factory = MODELS[name]
    except KeyError:
        raise KeyError(f"Unknown model '{name}'. Available: {', '.join(MODELS)}") from None
    return factory(**kwargs)


__all__ = ['MODELS', 'load_model', 'ring_matrix', 'Lorenz', 'HopfXY', 'LinearODE',
           'WilsonCowan', 'FitzhughNagumo', 'Kuramoto', 'OrnsteinUhlenbeck', 'BOLDHRF',
           'NeuralNetDDE']
