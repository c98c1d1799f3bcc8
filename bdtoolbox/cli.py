"""
cli.py - Command-line interface

Usage:
    bdtoolbox list
    bdtoolbox check MODEL
    bdtoolbox run MODEL [--solver NAME] [--tspan T0 T1] [--set NAME=VALUE ...]
                        [--panel NAME --out FILE.png] [--csv FILE] [--save FILE]
    bdtoolbox bold MODEL --var NAME [--param NAME=VALUE ...] [--csv FILE]
    bdtoolbox serve [--host HOST] [--port PORT] [--model MODEL]
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .bold import BoldParams, bold_from_solution
from .config import ServerConfig, configure_matplotlib
from .control import Control
from .errors import BDError
from .lint import sys_check_report
from .models import MODELS, load_model
from .storage import export_csv, save_state
from .system import sol_map

log = logging.getLogger(__name__)


def print_section(title):
    """Print formatted section header."""
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


def parse_assignment(text: str):
    """Parse NAME=VALUE where VALUE is a number or a comma-separated list of numbers."""
    if '=' not in text:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got '{text}'")
    name, value = text.split('=', 1)
    try:
        numbers = [float(v) for v in value.split(',')]
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not numeric") from None
    return name.strip(), numbers[0] if len(numbers) == 1 else np.array(numbers)


def _model_kwargs(args: argparse.Namespace) -> Dict:
    kwargs = {}
    if getattr(args, 'n', None) is not None:
        kwargs['n'] = args.n
    if getattr(args, 'seed', None) is not None:
        kwargs['seed'] = args.seed
    return kwargs


def _apply_assignments(control: Control, assignments: List) -> None:
    sys = control.sys
    for name, value in assignments or []:
        if any(e.name == name for e in sys.pardef):
            control.set_par(name, np.broadcast_to(value, sys.get_par(name).shape))
        elif any(e.name == name for e in sys.vardef):
            control.set_var(name, np.broadcast_to(value, sys.get_var(name)[0].shape))
        elif any(e.name == name for e in sys.lagdef):
            control.set_lag(name, value)
        else:
            raise KeyError(f"'{name}' is not a parameter, variable or lag of {sys.name}")


# ========== COMMANDS ==========

def cmd_list(args: argparse.Namespace) -> int:
    print_section("Available models")
    for name, factory in MODELS.items():
        doc = (factory.__doc__ or '').strip().splitlines()
        print(f"  {name:<20s} {doc[0] if doc else ''}")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    sys = load_model(args.model, **_model_kwargs(args))
    for line in sys_check_report(sys):
        print(line)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    sys = load_model(args.model, **_model_kwargs(args))
    control = Control(sys, solver=args.solver, seed=args.seed)
    if args.tspan:
        control.set_tspan(*args.tspan)
    if args.tval is not None:
        control.set_tval(args.tval)
    _apply_assignments(control, args.set)

    print(f"Solving {sys.name} with {control.solver} over {control.sys.tspan}...")
    sol = control.recompute()
    stats = control.stats
    print(f"✓ {stats.get('nsteps', 0)} steps, {stats.get('nfailed', 0)} failed, "
          f"{stats.get('nfevals', 0)} evaluations in {control.cpu_time:.3f}s")
    if control.warning_msg:
        print(f"Warning ({control.warning_id}): {control.warning_msg}")

    labels = [label for label, _ in sol_map(control.sys.vardef)]
    final = pd.Series(sol.y[:, -1], index=labels, name=f"t={sol.x[-1]:g}")
    print(final.to_string())

    if args.panel:
        from .panels import create_panel, figure_to_png

        out = Path(args.out or f"{args.panel}.png")
        fig = create_panel(args.panel, control).render()
        out.write_bytes(figure_to_png(fig))
        print(f"✓ Panel {args.panel} saved to {out}")
    if args.csv:
        export_csv(sol, args.csv, sys=control.sys)
        print(f"✓ Solution written to {args.csv}")
    if args.save:
        path = save_state(args.save, control)
        print(f"✓ State saved to {path}")
    return 0


def cmd_bold(args: argparse.Namespace) -> int:
    sys = load_model(args.model, **_model_kwargs(args))
    control = Control(sys, solver=args.solver, seed=args.seed)
    if args.tspan:
        control.set_tspan(*args.tspan)
    sol = control.recompute()

    params = BoldParams(**{name: float(np.ravel(value)[0]) for name, value in args.param or []})
    result = bold_from_solution(sol, control.sys, args.var, params, solvertype=control.solvertype)
    if result.warning:
        print(f"Warning: {result.warning}")

    frame = pd.DataFrame(result.percent.T, index=pd.Index(result.t, name='t'),
                         columns=[f"{args.var}_{i + 1}" for i in range(result.bold.shape[0])])
    print(frame.describe().loc[['mean', 'min', 'max']].to_string())
    if args.csv:
        frame.to_csv(args.csv)
        print(f"✓ BOLD (%) written to {args.csv}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from .services.server import create_server

    config = ServerConfig(host=args.host, port=args.port, debug=args.debug,
                          default_model=args.model, auto_load=not args.no_auto_load)
    create_server(config).run()
    return 0


# ========== PARSER ==========

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='bdtoolbox',
                                     description="Brain Dynamics Toolbox: simulate and inspect dynamical systems.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('list', help="List the model library").set_defaults(func=cmd_list)

    def model_args(p):
        p.add_argument("model", choices=sorted(MODELS), help="Model name")
        p.add_argument("--n", type=int, default=None, help="Network size (network models)")
        p.add_argument("--seed", type=int, default=None, help="Random seed")

    p = sub.add_parser('check', help="Verify a model and report function shapes")
    model_args(p)
    p.set_defaults(func=cmd_check)

    p = sub.add_parser('run', help="Solve a model")
    model_args(p)
    p.add_argument("--solver", type=str, default=None, help="Solver name")
    p.add_argument("--tspan", type=float, nargs=2, metavar=('T0', 'T1'), help="Time span")
    p.add_argument("--tval", type=float, default=None, help="End of the transient")
    p.add_argument("--set", type=parse_assignment, action='append', metavar='NAME=VALUE',
                   help="Set a parameter, initial condition or lag (repeatable)")
    p.add_argument("--panel", type=str, default=None, help="Panel to render")
    p.add_argument("--out", type=str, default=None, help="PNG file for --panel")
    p.add_argument("--csv", type=str, default=None, help="Write the solution as CSV")
    p.add_argument("--save", type=str, default=None, help="Save the state (JSON + NPZ)")
    p.set_defaults(func=cmd_run)

    p = sub.add_parser('bold', help="BOLD response of a model variable")
    model_args(p)
    p.add_argument("--var", type=str, required=True, help="State variable driving the BOLD model")
    p.add_argument("--solver", type=str, default=None, help="Solver name")
    p.add_argument("--tspan", type=float, nargs=2, metavar=('T0', 'T1'), help="Time span")
    p.add_argument("--param", type=parse_assignment, action='append', metavar='NAME=VALUE',
                   help="Haemodynamic parameter (repeatable)")
    p.add_argument("--csv", type=str, default=None, help="Write the BOLD signal as CSV")
    p.set_defaults(func=cmd_bold)

    p = sub.add_parser('serve', help="Start the REST server")
    p.add_argument("--host", type=str, default='0.0.0.0')
    p.add_argument("--port", type=int, default=8080)
    p.add_argument("--model", type=str, default='HopfXY', help="Model loaded at start-up")
    p.add_argument("--no-auto-load", action="store_true", help="Start without a model")
    p.add_argument("--debug", action="store_true")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )
    configure_matplotlib()
    try:
        return args.func(args)
    except (BDError, KeyError, ValueError, TypeError) as e:
        message = e.args[0] if isinstance(e, KeyError) and e.args else str(e)
        print(f"Error: {message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
