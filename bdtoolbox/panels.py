"""
panels.py - Display Panels

Each panel turns the latest solution held by a Control into a matplotlib
figure. Panels subscribe to the control's 'redraw' event so their data is
recomputed whenever the control recomputes; render() draws that data into
a new Figure.

Panel options are dataclasses whose defaults are overridden by the
system's sys.panels[<name>] dictionary and then by keyword overrides.

Drawing conventions:
- Transients in light grey, the non-transient part in black (red when the
  last solve produced a warning)
- Initial point as a pentagram, start of the non-transient part as a circle
"""

import base64
import io
import logging
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Type

import numpy as np
from matplotlib.figure import Figure

from . import analysis
from .bold import BoldParams, bold_from_solution
from .system import System, sol_map, var_map

log = logging.getLogger(__name__)

TRANSIENT_COLOR = (0.8, 0.8, 0.8)
WARNING_COLOR = 'r'
TRAJECTORY_COLOR = 'k'


# ========== OPTIONS ==========

@dataclass
class PanelOptions:
    """Options shared by every panel."""

    title: str = ''
    grid: bool = False
    hold: bool = False
    transients: bool = True
    markers: bool = True
    figsize: tuple = (6.4, 4.8)
    dpi: int = 100

    @classmethod
    def from_system(cls, sys: System, panel: str, **overrides) -> 'PanelOptions':
        """Defaults, overridden by sys.panels[panel], overridden by keyword arguments."""
        known = {f.name for f in fields(cls)}
        values = {}
        for source in (sys.panels.get(panel) or {}, overrides):
            for key, value in source.items():
                if key in known:
                    values[key] = value
                else:
                    log.debug("%s: ignoring unknown option '%s'", panel, key)
        return cls(**values)


@dataclass
class TimePortraitOptions(PanelOptions):
    title: str = 'Time Portrait'
    autolim: bool = True
    var: Optional[str] = None   # Upper plot (sol_map label, vardef name or row)
    var2: Optional[str] = None  # Optional lower plot


@dataclass
class PhasePortraitOptions(PanelOptions):
    title: str = 'Phase Portrait'
    points: bool = False
    vecfield: bool = False
    nullclines: bool = False
    xvar: Optional[str] = None
    yvar: Optional[str] = None
    zvar: Optional[str] = None  # Set for a 3-D portrait


@dataclass
class SpaceTimeOptions(PanelOptions):
    title: str = 'Space-Time'
    var: Optional[str] = None
    clipping: bool = False  # Clip colours to the variable's limits


@dataclass
class CorrPanelOptions(PanelOptions):
    title: str = 'Correlation'
    var: Optional[str] = None


@dataclass
class BifurcationOptions(PanelOptions):
    title: str = 'Bifurcation'
    points: bool = False
    par: Optional[str] = None
    yvar: Optional[str] = None
    zvar: Optional[str] = None


@dataclass
class BoldHRFOptions(PanelOptions):
    title: str = 'BOLD Response'
    var: Optional[str] = None
    V0: float = 0.02
    E0: float = 0.34
    tau0: float = 0.98
    tau1: float = 1.0
    alpha: float = 0.32
    kappa: float = 0.65
    gamma: float = 0.41
    z0: float = 0.0
    z1: float = 1.0

    def bold_params(self) -> BoldParams:
        return BoldParams(V0=self.V0, E0=self.E0, tau0=self.tau0, tau1=self.tau1,
                          alpha=self.alpha, kappa=self.kappa, gamma=self.gamma,
                          z0=self.z0, z1=self.z1)


@dataclass
class HilbertOptions(PanelOptions):
    title: str = 'Hilbert'
    var: Optional[str] = None
    ref: Optional[str] = None  # Reference signal for relative phase


@dataclass
class SurrogateOptions(PanelOptions):
    title: str = 'Surrogate'
    var: Optional[str] = None
    seed: Optional[int] = None


@dataclass
class AuxiliaryOptions(PanelOptions):
    title: str = 'Auxiliary'
    labels: List[str] = field(default_factory=list)


@dataclass
class SolverPanelOptions(PanelOptions):
    title: str = 'Solver'


@dataclass
class LatexPanelOptions(PanelOptions):
    title: str = 'Equations'
    latex: List[str] = field(default_factory=list)
    fontsize: int = 12


# ========== VARIABLE SELECTION ==========

def resolve_row(sys: System, var, default: int = 0) -> int:
    """
    Row of sol.y named by var.

    var may be a row index, a sol_map label (e.g. 'V_{3}') or a vardef name
    (selects the first element of that variable).
    """
    if var is None:
        return default
    if isinstance(var, (int, np.integer)):
        return int(var)
    labels = [label for label, _ in sol_map(sys.vardef)]
    if var in labels:
        return labels.index(var)
    for name, solindx in var_map(sys.vardef):
        if name == var:
            return int(solindx[0])
    raise KeyError(f"Unknown variable '{var}'")


def resolve_rows(sys: System, var) -> np.ndarray:
    """
    Rows of every element of a variable.

    Defaults to the first vector-valued variable (or the first variable).
    """
    vmap = var_map(sys.vardef)
    if var is None:
        for _, solindx in vmap:
            if solindx.size > 1:
                return solindx
        return vmap[0][1]
    for name, solindx in vmap:
        if name == var:
            return solindx
    raise KeyError(f"Unknown variable '{var}'")


def row_label(sys: System, row: int) -> str:
    return sol_map(sys.vardef)[row][0]


def row_lim(sys: System, row: int):
    return sys.vardef[sol_map(sys.vardef)[row][1]].lim


# ========== PANEL BASE ==========

class Panel:
    """Base class of all display panels."""

    name = ''
    options_class: Type[PanelOptions] = PanelOptions

    def __init__(self, control, **overrides):
        self.control = control
        self.opt = self.options_class.from_system(control.sys, self.name, **overrides)
        self.data: Optional[Dict] = None
        control.add_listener('redraw', self.redraw)

    def redraw(self, control) -> None:
        """Listener for the control's 'redraw' event."""
        self.data = self.compute(control)

    def compute(self, control) -> Dict:
        raise NotImplementedError

    def draw(self, fig: Figure, data: Dict) -> None:
        raise NotImplementedError

    def render(self) -> Figure:
        """Draw the current data into a new figure."""
        control = self.control
        if control.sol is None:
            control.recompute()
        if self.data is None:
            self.data = self.compute(control)
        fig = Figure(figsize=self.opt.figsize, dpi=self.opt.dpi)
        self.draw(fig, self.data)
        if self.opt.title:
            fig.suptitle(self.opt.title)
        return fig

    def close(self) -> None:
        self.control.remove_listener('redraw', self.redraw)

    # Helpers shared by the trajectory panels

    @property
    def line_color(self):
        return WARNING_COLOR if self.control.warning_id else TRAJECTORY_COLOR

    def _trajectory(self, ax, x, y, tindx, z=None, color=None) -> None:
        """Plot transients and the non-transient part, with markers."""
        color = color or self.line_color
        if self.opt.transients:
            if z is None:
                ax.plot(x, y, color=TRANSIENT_COLOR, linewidth=1)
            else:
                ax.plot(x, y, z, color=TRANSIENT_COLOR, linewidth=1)
        style = '.' if getattr(self.opt, 'points', False) else '-'
        if z is None:
            ax.plot(x[tindx], y[tindx], style, color=color, linewidth=1.5)
        else:
            ax.plot(x[tindx], y[tindx], z[tindx], style, color=color, linewidth=1.5)
        if self.opt.markers and x.size:
            first = np.flatnonzero(tindx)
            if z is None:
                ax.plot(x[0], y[0], 'p', color='k', markerfacecolor='y', markersize=10)
                if first.size:
                    ax.plot(x[first[0]], y[first[0]], 'o', color='k',
                            markerfacecolor=color, markersize=6)
            else:
                ax.plot([x[0]], [y[0]], [z[0]], 'p', color='k', markerfacecolor='y', markersize=10)
                if first.size:
                    ax.plot([x[first[0]]], [y[first[0]]], [z[first[0]]], 'o', color='k',
                            markerfacecolor=color, markersize=6)
        ax.grid(self.opt.grid)


# ========== TRAJECTORY PANELS ==========

class TimePortrait(Panel):
    """Time course of one or two state variables."""

    name = 'TimePortrait'
    options_class = TimePortraitOptions

    def compute(self, control) -> Dict:
        sys = control.sys
        rows = [resolve_row(sys, self.opt.var, 0)]
        if self.opt.var2 is not None:
            rows.append(resolve_row(sys, self.opt.var2))
        return {
            't': control.sol.x,
            'rows': rows,
            'labels': [row_label(sys, r) for r in rows],
            'lims': [row_lim(sys, r) for r in rows],
            'y': control.sol.y[rows, :],
            'tindx': control.tindx,
        }

    def draw(self, fig: Figure, data: Dict) -> None:
        nplots = len(data['rows'])
        axes = [fig.add_subplot(nplots, 1, i + 1) for i in range(nplots)]
        for i, ax in enumerate(axes):
            self._trajectory(ax, data['t'], data['y'][i], data['tindx'])
            ax.set_ylabel(f"${data['labels'][i]}$")
            ax.set_xlim(data['t'][0], data['t'][-1])
            if not self.opt.autolim:
                ax.set_ylim(*data['lims'][i])
        axes[-1].set_xlabel('time')


class PhasePortrait(Panel):
    """Trajectory in the plane (or space) of two (or three) state variables."""

    name = 'PhasePortrait'
    options_class = PhasePortraitOptions

    def compute(self, control) -> Dict:
        sys = control.sys
        nrows = control.sol.y.shape[0]
        xrow = resolve_row(sys, self.opt.xvar, 0)
        yrow = resolve_row(sys, self.opt.yvar, min(1, nrows - 1))
        zrow = resolve_row(sys, self.opt.zvar) if self.opt.zvar is not None else None

        data = {
            'rows': (xrow, yrow, zrow),
            'labels': [row_label(sys, r) if r is not None else None for r in (xrow, yrow, zrow)],
            'x': control.sol.y[xrow],
            'y': control.sol.y[yrow],
            'z': control.sol.y[zrow] if zrow is not None else None,
            'tindx': control.tindx,
            'xlim': row_lim(sys, xrow),
            'ylim': row_lim(sys, yrow),
        }
        if zrow is None and (self.opt.vecfield or self.opt.nullclines):
            y0 = control.sol.y[:, 0]
            if self.opt.vecfield:
                data['field'] = analysis.vector_field(sys, xrow, yrow, data['xlim'], data['ylim'],
                                                      y0=y0)
            if self.opt.nullclines:
                data['nullclines'] = analysis.nullcline_grid(sys, xrow, yrow, data['xlim'],
                                                             data['ylim'], y0=y0)
        return data

    def draw(self, fig: Figure, data: Dict) -> None:
        xl, yl, zl = data['labels']
        if data['z'] is not None:
            ax = fig.add_subplot(1, 1, 1, projection='3d')
            self._trajectory(ax, data['x'], data['y'], data['tindx'], z=data['z'])
            ax.set_zlabel(f'${zl}$')
        else:
            ax = fig.add_subplot(1, 1, 1)
            if 'field' in data:
                vf = data['field']
                ax.quiver(vf['x'], vf['y'], vf['dx'], vf['dy'], color=(0.5, 0.5, 0.5))
            if 'nullclines' in data:
                nc = data['nullclines']
                ax.contour(nc['x'], nc['y'], nc['dx'], levels=[0], colors='b', linewidths=1)
                ax.contour(nc['x'], nc['y'], nc['dy'], levels=[0], colors='g', linewidths=1)
            self._trajectory(ax, data['x'], data['y'], data['tindx'])
        ax.set_xlabel(f'${xl}$')
        ax.set_ylabel(f'${yl}$')


class SpaceTime(Panel):
    """Space-time image of a vector-valued state variable."""

    name = 'SpaceTime'
    options_class = SpaceTimeOptions

    def compute(self, control) -> Dict:
        sys = control.sys
        rows = resolve_rows(sys, self.opt.var)
        tindx = None if self.opt.transients else control.tindx
        t, Y = analysis.space_time(control.sol, rows, tindx)
        name = sys.vardef[sol_map(sys.vardef)[int(rows[0])][1]].name
        return {'t': t, 'Y': Y, 'rows': rows, 'lim': row_lim(sys, int(rows[0])),
                'name': name, 'tval': sys.tval}

    def draw(self, fig: Figure, data: Dict) -> None:
        ax = fig.add_subplot(1, 1, 1)
        t, Y = data['t'], data['Y']
        kwargs = {}
        if self.opt.clipping:
            kwargs = {'vmin': data['lim'][0], 'vmax': data['lim'][1]}
        if t.size:
            im = ax.imshow(Y, aspect='auto', origin='lower', interpolation='nearest',
                           extent=(t[0], t[-1], 0.5, Y.shape[0] + 0.5), **kwargs)
            fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
            if self.opt.markers:
                ax.axvline(data['tval'], color='k', linestyle=':')
        ax.set_xlabel('time')
        ax.set_ylabel(data['name'])


class CorrPanel(Panel):
    """Linear correlation matrix of a vector-valued state variable."""

    name = 'CorrPanel'
    options_class = CorrPanelOptions

    def compute(self, control) -> Dict:
        rows = resolve_rows(control.sys, self.opt.var)
        R = analysis.correlation_matrix(control.sol, rows, control.solvertype)
        return {'R': R, 'rows': rows}

    def draw(self, fig: Figure, data: Dict) -> None:
        ax = fig.add_subplot(1, 1, 1)
        n = data['R'].shape[0]
        im = ax.imshow(data['R'], vmin=-1, vmax=1, cmap='bwr', interpolation='nearest',
                       extent=(0.5, n + 0.5, n + 0.5, 0.5))
        fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
        ax.set_xlabel('row')
        ax.set_ylabel('row')


class Bifurcation(Panel):
    """
    Orbits plotted against a parameter, accumulated over successive solutions.

    Every recompute adds the orbit of the current solution at the current
    value of the bifurcation parameter.
    """

    name = 'Bifurcation'
    options_class = BifurcationOptions

    def __init__(self, control, **overrides):
        self.accumulator = analysis.BifurcationAccumulator()
        super().__init__(control, **overrides)

    def _parameter(self, sys: System) -> str:
        if self.opt.par is not None:
            return self.opt.par
        for entry in sys.pardef:
            if entry.size == 1:
                return entry.name
        raise KeyError("The system has no scalar parameter to vary")

    def compute(self, control) -> Dict:
        sys = control.sys
        pname = self._parameter(sys)
        pvalue = float(np.ravel(control.par.get(pname, sys.get_par(pname)))[0])
        yrow = resolve_row(sys, self.opt.yvar, 0)
        zrow = resolve_row(sys, self.opt.zvar) if self.opt.zvar is not None else None
        sol = control.sol
        self.accumulator.add(
            pvalue,
            sol.y[yrow],
            control.tindx,
            z=sol.y[zrow] if zrow is not None else None,
            fixedpoint=analysis.fixed_point_test(sys, sol),
        )
        return {'par': pname, 'ylabel': row_label(sys, yrow),
                'zlabel': row_label(sys, zrow) if zrow is not None else None,
                'plim': next(e.lim for e in sys.pardef if e.name == pname)}

    def draw(self, fig: Figure, data: Dict) -> None:
        acc = self.accumulator
        threed = data['zlabel'] is not None
        ax = fig.add_subplot(1, 1, 1, projection='3d' if threed else None)
        for i, orbit in enumerate(acc.orbits):
            latest = i == len(acc.orbits) - 1
            color = self.line_color if latest else TRAJECTORY_COLOR
            tindx = orbit['tindx']
            style = '.' if self.opt.points or orbit['fixedpoint'] else '-'
            if threed:
                if self.opt.transients:
                    ax.plot(orbit['pp'], orbit['y'], orbit['z'], color=TRANSIENT_COLOR)
                ax.plot(orbit['pp'][tindx], orbit['y'][tindx], orbit['z'][tindx], style, color=color)
            else:
                if self.opt.transients:
                    ax.plot(orbit['pp'], orbit['y'], color=TRANSIENT_COLOR)
                ax.plot(orbit['pp'][tindx], orbit['y'][tindx], style, color=color)
        if self.opt.markers and not threed:
            for p, y in acc.fixed_points:
                ax.plot(p, y, 'o', color='k', markerfacecolor='w')
        ax.set_xlim(*data['plim'])
        ax.set_xlabel(data['par'])
        ax.set_ylabel(f"${data['ylabel']}$")
        if threed:
            ax.set_zlabel(f"${data['zlabel']}$")
        ax.grid(self.opt.grid)

    def clear(self) -> None:
        self.accumulator.clear()


class BoldHRF(Panel):
    """BOLD signal evoked by the activity of one state variable."""

    name = 'BoldHRF'
    options_class = BoldHRFOptions

    def compute(self, control) -> Dict:
        sys = control.sys
        varname = self.opt.var or sys.vardef[0].name
        result = bold_from_solution(control.sol, sys, varname, self.opt.bold_params(),
                                    solvertype=control.solvertype)
        return {'result': result, 'var': varname, 'tindx': control.tindx,
                'tval': float(sys.tval), 'tend': float(sys.tspan[1])}

    def draw(self, fig: Figure, data: Dict) -> None:
        result = data['result']
        ax = fig.add_subplot(1, 1, 1)
        color = WARNING_COLOR if (result.warning or self.control.warning_id) else TRAJECTORY_COLOR
        for row in result.percent:
            self._trajectory(ax, result.t, row, data['tindx'], color=color)
        if not self.opt.transients and data['tend'] > data['tval']:
            ax.set_xlim(data['tval'], data['tend'])
        ax.set_xlabel('time')
        ax.set_ylabel(f"BOLD (%) from {data['var']}")
        if result.warning:
            ax.set_title(result.warning, color=WARNING_COLOR, fontsize=8)


class Hilbert(Panel):
    """Hilbert phase of a state variable, drawn over time and on a phase cylinder."""

    name = 'Hilbert'
    options_class = HilbertOptions

    def compute(self, control) -> Dict:
        sys = control.sys
        rows = resolve_rows(sys, self.opt.var)
        y = control.sol.y[rows, :]
        ref = None
        if self.opt.ref is not None:
            ref = control.sol.y[resolve_row(sys, self.opt.ref)]
        h, p = analysis.hilbert_phase(y, ref)
        cyl = analysis.phase_cylinder(control.sol.x, y, p)
        return {'h': h, 'p': p, 'cylinder': cyl}

    def draw(self, fig: Figure, data: Dict) -> None:
        cyl = data['cylinder']
        ax1 = fig.add_subplot(2, 1, 1)
        for row in np.mod(cyl['p'], 2 * np.pi):
            ax1.plot(cyl['t'], row, '.', markersize=2, color=self.line_color)
        ax1.set_ylabel('phase')
        ax1.set_ylim(0, 2 * np.pi)
        ax1.grid(self.opt.grid)
        ax2 = fig.add_subplot(2, 1, 2, projection='3d')
        for cosp, sinp in zip(cyl['cos'], cyl['sin']):
            ax2.plot(cyl['t'], cosp, sinp, color=self.line_color, linewidth=0.5)
        ax2.set_xlabel('time')


class Surrogate(Panel):
    """Original signals next to an amplitude-adjusted Fourier surrogate."""

    name = 'Surrogate'
    options_class = SurrogateOptions

    def compute(self, control) -> Dict:
        rows = resolve_rows(control.sys, self.opt.var)
        y = control.sol.y[rows, :]
        rng = np.random.default_rng(self.opt.seed)
        ysurr = analysis.amplitude_surrogate(y, rng)
        keep = control.sol.x >= 0
        return {'t': control.sol.x[keep], 'y': y[:, keep], 'ysurr': ysurr[:, keep]}

    def draw(self, fig: Figure, data: Dict) -> None:
        ax1 = fig.add_subplot(2, 1, 1)
        ax1.plot(data['t'], data['y'].T, color=self.line_color, linewidth=0.5)
        ax1.set_ylabel('original')
        ax2 = fig.add_subplot(2, 1, 2, sharex=ax1)
        ax2.plot(data['t'], data['ysurr'].T, color=self.line_color, linewidth=0.5)
        ax2.set_ylabel('surrogate')
        ax2.set_xlabel('time')
        for ax in (ax1, ax2):
            ax.grid(self.opt.grid)


class Auxiliary(Panel):
    """Auxiliary variables computed by sys.auxfun."""

    name = 'Auxiliary'
    options_class = AuxiliaryOptions

    def compute(self, control) -> Dict:
        sox = control.sox
        if sox is None:
            return {'x': None, 'y': None}
        return {'x': sox.x, 'y': sox.y}

    def draw(self, fig: Figure, data: Dict) -> None:
        ax = fig.add_subplot(1, 1, 1)
        if data['y'] is None:
            ax.text(0.5, 0.5, 'No auxiliary function', ha='center', va='center')
            ax.set_axis_off()
            return
        labels = list(self.opt.labels)
        for i, row in enumerate(data['y']):
            label = labels[i] if i < len(labels) else f'aux {i + 1}'
            ax.plot(data['x'], row, linewidth=1, label=label)
        if data['y'].shape[0] <= 10:
            ax.legend(fontsize=8)
        ax.set_xlabel('time')
        ax.grid(self.opt.grid)


class SolverPanel(Panel):
    """Step sizes taken by the solver and its statistics."""

    name = 'SolverPanel'
    options_class = SolverPanelOptions

    def compute(self, control) -> Dict:
        x = control.sol.x
        return {'t': x[:-1], 'dt': np.diff(x), 'stats': dict(control.stats),
                'solver': control.solver, 'cpu_time': control.cpu_time}

    def draw(self, fig: Figure, data: Dict) -> None:
        ax = fig.add_subplot(1, 1, 1)
        if data['dt'].size:
            ax.semilogy(data['t'], data['dt'], '.-', color=self.line_color, markersize=3)
        ax.set_xlabel('time')
        ax.set_ylabel('step size')
        stats = data['stats']
        text = (f"{data['solver']}: {stats.get('nsteps', 0)} steps, "
                f"{stats.get('nfailed', 0)} failed, {stats.get('nfevals', 0)} evals, "
                f"{data['cpu_time']:.3f}s")
        ax.set_title(text, fontsize=9)
        ax.grid(self.opt.grid)


class LatexPanel(Panel):
    """The model equations, rendered with mathtext."""

    name = 'LatexPanel'
    options_class = LatexPanelOptions

    def compute(self, control) -> Dict:
        return {'latex': list(self.opt.latex)}

    def draw(self, fig: Figure, data: Dict) -> None:
        lines = data['latex']
        step = 1.0 / (len(lines) + 2) if lines else 0.1
        for i, line in enumerate(lines):
            weight = 'bold' if i == 0 else 'normal'
            fig.text(0.05, 1.0 - (i + 1.5) * step, line, fontsize=self.opt.fontsize,
                     fontweight=weight, va='center')


# ========== REGISTRY ==========

PANELS: Dict[str, Type[Panel]] = {cls.name: cls for cls in (
    TimePortrait, PhasePortrait, SpaceTime, CorrPanel, Bifurcation, BoldHRF,
    Hilbert, Surrogate, Auxiliary, SolverPanel, LatexPanel,
)}


def create_panel(name: str, control, **overrides) -> Panel:
    """Instantiate a panel by name, bound to the control."""
    try:
        cls = PANELS[name]
    except KeyError:
        raise KeyError(f"Unknown panel '{name}'. Available: {', '.join(PANELS)}") from None
    return cls(control, **overrides)


def figure_to_png(fig: Figure, dpi: Optional[int] = None) -> bytes:
    buf = io.BytesIO()
    fig.savefig(buf, format='png', dpi=dpi, bbox_inches='tight')
    return buf.getvalue()


def figure_to_base64(fig: Figure, dpi: Optional[int] = None) -> str:
    return base64.b64encode(figure_to_png(fig, dpi)).decode('ascii')
