"""
server.py - REST API Server

Exposes a Control over HTTP so that a browser (or any client) can load
models, change parameters, run simulations in the background and fetch
rendered panels.

Endpoints:
- GET  /api                       - Endpoint index
- GET  /api/health                - Health check
- GET  /api/models                - Available models
- POST /api/system/load           - Load a model {model, kwargs}
- GET  /api/system                - Current system definition and control state
- POST /api/system/par            - Set a parameter {name, value}
- POST /api/system/var            - Set an initial condition {name, value}
- POST /api/system/lag            - Set a lag {name, value}
- POST /api/system/tspan          - Set the time span {tspan, tval}
- POST /api/solver                - Select the solver {name}
- POST /api/control               - Set flags {evolve, jitter, hold, halt}
- POST /api/simulation/run        - Recompute in the background {wait}
- GET  /api/simulation/status     - Progress of the running simulation
- GET  /api/simulation/data       - Solution data (?rows=0,1&downsample=1)
- GET  /api/panel/<name>          - Rendered panel as base64 PNG
- POST /api/bold                  - BOLD response {var, params}
- POST /api/analysis/correlation  - Correlation matrix {var}
- POST /api/analysis/surrogate    - AAFT surrogate {var, seed}
"""

import logging
import threading
from typing import Dict, Optional

import numpy as np
from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS

from ..analysis import amplitude_surrogate, correlation_matrix
from ..bold import BoldParams, bold_from_solution
from ..config import ServerConfig, configure_matplotlib
from ..control import Control
from ..errors import BDError
from ..models import MODELS, load_model
from ..panels import PANELS, create_panel, figure_to_base64, resolve_rows
from ..system import sol_map

log = logging.getLogger(__name__)


class NumpyJSONProvider(DefaultJSONProvider):
    """JSON provider that understands numpy types."""

    @staticmethod
    def default(obj):
        if isinstance(obj, np.ndarray):
            if obj.dtype.kind == 'f' and not np.all(np.isfinite(obj)):
                # NaN and Inf are not valid JSON
                return np.where(np.isfinite(obj), obj, None).tolist()
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj) if np.isfinite(obj) else None
        if isinstance(obj, np.bool_):
            return bool(obj)
        return DefaultJSONProvider.default(obj)


class BDServer:
    """
    Flask server around a single simulation Control.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Initialize the server.

        Args:
            config: Host, port and start-up behaviour
        """
        self.config = config or ServerConfig()
        configure_matplotlib()

        self.app = Flask(__name__)
        CORS(self.app)
        self.app.json = NumpyJSONProvider(self.app)

        self.host = self.config.host
        self.port = self.config.port

        # Server state
        self.control: Optional[Control] = None
        self.panels: Dict = {}
        self.simulation_running = False
        self.simulation_error: Optional[str] = None
        self.simulation_thread: Optional[threading.Thread] = None

        self._setup_routes()
        self._setup_error_handlers()

        if self.config.verbose:
            print(f"Brain Dynamics server initialized on {self.host}:{self.port}")

    # ========== STATE HELPERS ==========

    def load(self, model: str, **kwargs) -> Control:
        """Replace the current control with a freshly built model."""
        sys = load_model(model, **kwargs)
        for panel in self.panels.values():
            panel.close()
        self.panels = {}
        self.control = Control(sys)
        self.simulation_error = None
        log.info("Loaded model %s", model)
        return self.control

    def _panel(self, name: str):
        if name not in self.panels:
            self.panels[name] = create_panel(name, self.control)
        return self.panels[name]

    def _ensure_solution(self) -> None:
        if self.control.sol is None:
            self.control.recompute()

    def _run(self) -> None:
        """Recompute the control, recording (not raising) failures."""
        self.simulation_running = True
        self.simulation_error = None
        try:
            self.control.recompute()
            if self.config.verbose:
                print("✓ Simulation complete")
        except Exception as e:
            log.exception("Simulation failed")
            self.simulation_error = str(e)
        finally:
            self.simulation_running = False

    # ========== ROUTES ==========

    def _setup_routes(self):
        """Setup Flask API routes."""
        app = self.app

        def no_model():
            return jsonify({'error': 'No model loaded'}), 404

        # ===== SYSTEM ENDPOINTS =====

        @app.route('/api/models', methods=['GET'])
        def list_models():
            """List the model library."""
            return jsonify({'models': sorted(MODELS)})

        @app.route('/api/system/load', methods=['POST'])
        def load_system():
            """Load a model from the library."""
            data = request.get_json(silent=True) or {}
            model = data.get('model')
            if not model:
                return jsonify({'error': "'model' is required"}), 400
            self.load(model, **(data.get('kwargs') or {}))
            return jsonify({'status': 'success', 'message': f'{model} loaded',
                            'system': self.control.summary()})

        @app.route('/api/system', methods=['GET'])
        def get_system():
            """Current system definition and control state."""
            if self.control is None:
                return no_model()
            return jsonify(self.control.summary())

        def setter(kind: str):
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            if 'name' not in data or 'value' not in data:
                return jsonify({'error': "'name' and 'value' are required"}), 400
            method = {'par': self.control.set_par, 'var': self.control.set_var,
                      'lag': self.control.set_lag}[kind]
            method(data['name'], data['value'])
            return jsonify({'status': 'success', 'system': self.control.summary()})

        @app.route('/api/system/par', methods=['POST'])
        def set_par():
            """Set a parameter value."""
            return setter('par')

        @app.route('/api/system/var', methods=['POST'])
        def set_var():
            """Set an initial condition."""
            return setter('var')

        @app.route('/api/system/lag', methods=['POST'])
        def set_lag():
            """Set a lag value."""
            return setter('lag')

        @app.route('/api/system/tspan', methods=['POST'])
        def set_tspan():
            """Set the time span and/or the transient cut-off."""
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            if 'tspan' in data:
                t0, t1 = data['tspan']
                self.control.set_tspan(float(t0), float(t1))
            if 'tval' in data:
                self.control.set_tval(float(data['tval']))
            return jsonify({'status': 'success', 'tspan': list(self.control.sys.tspan),
                            'tval': self.control.sys.tval})

        @app.route('/api/solver', methods=['POST'])
        def select_solver():
            """Select the solver."""
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            self.control.select_solver(data.get('name'))
            return jsonify({'status': 'success', 'solver': self.control.solver,
                            'solvertype': self.control.solvertype})

        @app.route('/api/control', methods=['POST'])
        def set_flags():
            """Set the evolve/jitter/hold/halt flags."""
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            self.control.set_flags(**data)
            return jsonify({'status': 'success', 'flags': self.control.summary()['flags']})

        # ===== SIMULATION ENDPOINTS =====

        @app.route('/api/simulation/run', methods=['POST'])
        def run_simulation():
            """Recompute the solution, in the background unless 'wait' is set."""
            if self.control is None:
                return jsonify({'error': 'No model loaded'}), 400
            if self.simulation_running:
                return jsonify({'error': 'Simulation already running'}), 400

            data = request.get_json(silent=True) or {}
            if data.get('wait'):
                self._run()
                if self.simulation_error:
                    return jsonify({'error': self.simulation_error}), 400
                return jsonify({'status': 'complete', 'stats': self.control.stats,
                                'warning': self.control.warning_msg})

            self.simulation_running = True
            self.simulation_thread = threading.Thread(target=self._run, daemon=True)
            self.simulation_thread.start()
            return jsonify({'status': 'started', 'message': 'Simulation started in background'})

        @app.route('/api/simulation/status', methods=['GET'])
        def get_simulation_status():
            """Progress of the current simulation."""
            control = self.control
            return jsonify({
                'running': self.simulation_running,
                'progress': control.progress if control else 0.0,
                'has_results': bool(control and control.sol is not None),
                'error': self.simulation_error,
                'warning': control.warning_msg if control else None,
                'cpu_time': control.cpu_time if control else 0.0,
            })

        @app.route('/api/simulation/data', methods=['GET'])
        def get_simulation_data():
            """Solution time series."""
            if self.control is None or self.control.sol is None:
                return jsonify({'error': 'No simulation results available'}), 404
            sol = self.control.sol
            downsample = max(1, request.args.get('downsample', 1, type=int))
            rows_arg = request.args.get('rows')
            nrows = sol.y.shape[0]
            rows = list(range(nrows)) if not rows_arg else [int(r) for r in rows_arg.split(',')]
            if any(r < 0 or r >= nrows for r in rows):
                return jsonify({'error': 'Invalid row index'}), 400
            labels = [label for label, _ in sol_map(self.control.sys.vardef)]
            return jsonify({
                'time': sol.x[::downsample],
                'y': sol.y[rows, ::downsample],
                'rows': rows,
                'labels': [labels[r] for r in rows],
                'tindx': self.control.tindx[::downsample],
            })

        # ===== PANELS =====

        @app.route('/api/panel/<name>', methods=['GET'])
        def get_panel(name):
            """Render a panel to PNG."""
            if self.control is None:
                return no_model()
            if name not in PANELS:
                return jsonify({'error': f"Unknown panel '{name}'"}), 404
            self._ensure_solution()
            fig = self._panel(name).render()
            dpi = request.args.get('dpi', None, type=int)
            return jsonify({'panel': name, 'format': 'png', 'png': figure_to_base64(fig, dpi)})

        # ===== ANALYSIS ENDPOINTS =====

        @app.route('/api/bold', methods=['POST'])
        def get_bold():
            """BOLD response of one state variable."""
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            self._ensure_solution()
            sys = self.control.sys
            params = BoldParams(**(data.get('params') or {}))
            var = data.get('var') or sys.vardef[0].name
            result = bold_from_solution(self.control.sol, sys, var, params,
                                        solvertype=self.control.solvertype)
            return jsonify({'var': var, 'time': result.t, 'bold': result.bold,
                            'percent': result.percent, 'warning': result.warning,
                            'params': params.to_dict()})

        @app.route('/api/analysis/correlation', methods=['POST'])
        def get_correlation():
            """Correlation matrix of a vector variable."""
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            self._ensure_solution()
            rows = resolve_rows(self.control.sys, data.get('var'))
            R = correlation_matrix(self.control.sol, rows, self.control.solvertype)
            return jsonify({'rows': rows, 'R': R})

        @app.route('/api/analysis/surrogate', methods=['POST'])
        def get_surrogate():
            """Amplitude-adjusted Fourier surrogate of a variable."""
            if self.control is None:
                return no_model()
            data = request.get_json(silent=True) or {}
            self._ensure_solution()
            rows = resolve_rows(self.control.sys, data.get('var'))
            y = self.control.sol.y[rows, :]
            surrogate = amplitude_surrogate(y, np.random.default_rng(data.get('seed')))
            return jsonify({'rows': rows, 'time': self.control.sol.x, 'surrogate': surrogate})

        # ===== SYSTEM STATUS =====

        @app.route('/api/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'model_loaded': self.control is not None,
                'simulation_running': self.simulation_running,
            })

        @app.route('/api', methods=['GET'])
        def api_info():
            """API documentation."""
            return jsonify({
                'name': 'Brain Dynamics Toolbox API',
                'endpoints': sorted(str(rule) for rule in app.url_map.iter_rules()
                                    if str(rule).startswith('/api')),
            })

    def _setup_error_handlers(self):
        """Toolbox errors become JSON responses."""

        @self.app.errorhandler(BDError)
        def handle_toolbox_error(e):
            return jsonify({'error': str(e), 'ident': e.ident}), 400

        @self.app.errorhandler(KeyError)
        def handle_key_error(e):
            message = e.args[0] if e.args else str(e)
            return jsonify({'error': message}), 404

        @self.app.errorhandler(ValueError)
        def handle_value_error(e):
            return jsonify({'error': str(e)}), 400

        @self.app.errorhandler(TypeError)
        def handle_type_error(e):
            return jsonify({'error': str(e)}), 400

    def run(self, debug: Optional[bool] = None):
        """
        Start the Flask server.

        Args:
            debug: Run in debug mode (defaults to the config)
        """
        debug = self.config.debug if debug is None else debug
        print(f"\n{'=' * 60}")
        print("Brain Dynamics Toolbox API Server")
        print(f"{'=' * 60}")
        print(f"Server running at: http://{self.host}:{self.port}")
        print(f"API index: http://{self.host}:{self.port}/api")
        print(f"{'=' * 60}\n")

        self.app.run(host=self.host, port=self.port, debug=debug, threaded=True)


# ========== Convenience Functions ==========

def create_server(config: Optional[ServerConfig] = None) -> BDServer:
    """Build a server, loading the default model when configured to."""
    config = config or ServerConfig()
    server = BDServer(config)
    if config.auto_load:
        if config.verbose:
            print(f"Auto-loading default model ({config.default_model})...")
        server.load(config.default_model)
        if config.verbose:
            print("✓ Model loaded")
    return server


def start_server(host: str = '0.0.0.0', port: int = 8080, auto_load: bool = True,
                 model: str = 'HopfXY'):
    """
    Quick function to start the server.

    Args:
        host: Server host
        port: Server port
        auto_load: Load the default model at start-up
        model: Default model
    """
    config = ServerConfig(host=host, port=port, auto_load=auto_load, default_model=model)
    create_server(config).run()


if __name__ == "__main__":
    print("=" * 60)
    print("Brain Dynamics Toolbox - API Server")
    print("=" * 60)

    start_server()
