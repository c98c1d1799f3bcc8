"""
Brain Dynamics Toolbox

Simulate dynamical systems (ODE, DDE, SDE), inspect them through display
panels and compute the haemodynamic BOLD response of their activity.
"""

from .bold import BoldParams, BoldResult, compute_bold
from .control import Control
from .errors import BDError, BDWarning, SolverError, SysCheckError
from .models import MODELS, load_model
from .simulator import evolve, solve
from .solvers import SOLVERS, Solution
from .system import Entry, SDEOptions, SolverOptions, System, syscheck

__version__ = '0.1.0'

__all__ = [
    'BoldParams', 'BoldResult', 'compute_bold', 'Control', 'BDError', 'BDWarning',
    'SolverError', 'SysCheckError', 'MODELS', 'load_model', 'evolve', 'solve',
    'SOLVERS', 'Solution', 'Entry', 'SDEOptions', 'SolverOptions', 'System', 'syscheck',
]
