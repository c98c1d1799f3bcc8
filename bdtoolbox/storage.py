"""
storage.py - Saving and Loading Simulations

A saved state is a pair of files sharing one stem:
- <stem>.json: model name, constructor arguments, parameter/variable/lag
  values, time span and solver
- <stem>.npz: the solution arrays (when a solution is saved)

Also exports solutions to CSV and loads connectivity matrices for the
network models.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from .models import load_model
from .solvers import Solution
from .system import System, set_values, sol_map, syscheck

log = logging.getLogger(__name__)


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder for numpy types."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


def _defs_to_json(defs):
    return [{'name': e.name, 'value': np.asarray(e.value), 'shape': list(np.shape(e.value)),
             'lim': list(e.lim) if e.lim is not None else None} for e in defs]


def _restore_defs(defs, saved):
    """Copy saved values onto defs by name, keeping entries that were not saved."""
    by_name = {item['name']: item for item in saved}
    out = []
    for entry in defs:
        item = by_name.get(entry.name)
        if item is None:
            out.append(entry)
            continue
        value = np.asarray(item['value'], dtype=float)
        if value.size != entry.size:
            log.warning("Saved value of '%s' has %d element(s), expected %d; kept default",
                        entry.name, value.size, entry.size)
            out.append(entry)
            continue
        restored = set_values([entry], value)[0]
        if item.get('lim') is not None:
            restored.lim = tuple(item['lim'])
        out.append(restored)
    return out


def save_state(path: Union[str, Path], obj, sol: Optional[Solution] = None) -> Path:
    """
    Save a system (or a Control) and optionally its solution.

    Args:
        path: Output path; the suffix is replaced by .json and .npz
        obj: System or Control
        sol: Solution to save (defaults to the control's current solution)

    Returns:
        Path of the JSON file
    """
    path = Path(path)
    if isinstance(obj, System):
        sys = obj
        solver = sol.solver if sol is not None else None
    else:
        sys = obj.sys
        sol = sol if sol is not None else obj.sol
        solver = obj.solver

    if not sys.name:
        raise ValueError("Only systems built from the model library can be saved")

    meta = {
        'model': sys.name,
        'kwargs': sys.model_kwargs,
        'pardef': _defs_to_json(sys.pardef),
        'vardef': _defs_to_json(sys.vardef),
        'lagdef': _defs_to_json(sys.lagdef),
        'tspan': list(sys.tspan),
        'tval': sys.tval,
        'solver': solver,
        'has_solution': sol is not None,
    }
    json_path = path.with_suffix('.json')
    json_path.parent.mkdir(parents=True, exist_ok=True)
    with open(json_path, 'w') as f:
        json.dump(meta, f, indent=2, cls=NumpyEncoder)

    if sol is not None:
        arrays = {'x': sol.x, 'y': sol.y}
        if sol.yp is not None:
            arrays['yp'] = sol.yp
        if sol.dW is not None:
            arrays['dW'] = sol.dW
        np.savez_compressed(path.with_suffix('.npz'), solver=np.array(sol.solver),
                            solvertype=np.array(sol.solvertype),
                            stats=np.array(json.dumps(sol.stats, cls=NumpyEncoder)), **arrays)

    log.info("Saved %s to %s", sys.name, json_path)
    return json_path


def load_state(path: Union[str, Path]) -> Tuple[System, Optional[Solution]]:
    """
    Rebuild a saved system from the model library and restore its values.

    Returns:
        (sys, sol); sol is None when no solution was saved
    """
    path = Path(path)
    with open(path.with_suffix('.json')) as f:
        meta = json.load(f)

    sys = load_model(meta['model'], **(meta.get('kwargs') or {}))
    sys.pardef = _restore_defs(sys.pardef, meta.get('pardef', []))
    sys.vardef = _restore_defs(sys.vardef, meta.get('vardef', []))
    if sys.lagdef:
        sys.lagdef = _restore_defs(sys.lagdef, meta.get('lagdef', []))
    sys.tspan = tuple(meta['tspan'])
    sys.tval = meta.get('tval')
    sys = syscheck(sys)

    sol = None
    npz_path = path.with_suffix('.npz')
    if meta.get('has_solution') and npz_path.exists():
        with np.load(npz_path) as data:
            sol = Solution(
                x=data['x'],
                y=data['y'],
                solver=str(data['solver']),
                solvertype=str(data['solvertype']),
                yp=data['yp'] if 'yp' in data.files else None,
                dW=data['dW'] if 'dW' in data.files else None,
                stats=json.loads(str(data['stats'])),
            )
    return sys, sol


def export_csv(sol: Solution, path: Union[str, Path], names=None, sys: Optional[System] = None) -> Path:
    """
    Write a solution as CSV, one row per time step.

    Column names default to the display names of sys (when given).
    """
    if names is None and sys is not None:
        names = [label for label, _ in sol_map(sys.vardef)]
    path = Path(path)
    sol.to_frame(names).to_csv(path)
    return path


def load_matrix(path: Union[str, Path]) -> np.ndarray:
    """
    Load a matrix (e.g. a connectivity matrix) from .npy, .csv or whitespace-delimited text.
    """
    path = str(path)
    if path.endswith('.npy'):
        matrix = np.load(path)
    elif path.endswith('.csv'):
        matrix = np.loadtxt(path, delimiter=',')
    else:
        matrix = np.loadtxt(path)
    return np.atleast_2d(matrix)
