"""
config.py - Runtime configuration

Server settings and the headless matplotlib setup shared by the panels,
the CLI and the REST service.
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ServerConfig:
    """Configuration for the REST front-end."""

    host: str = '0.0.0.0'
    port: int = 8080
    debug: bool = False
    default_model: str = 'HopfXY'  # Model loaded when the server starts
    auto_load: bool = True
    verbose: bool = True


def configure_matplotlib(cache_dir: str = '.matplotlib_cache') -> None:
    """
    Prepare matplotlib for headless rendering.

    Points the matplotlib/fontconfig caches at writable directories (avoids
    cache permission issues in sandboxed runs) and selects the Agg backend.
    """
    os.environ.setdefault("MPLCONFIGDIR", str(Path(cache_dir)))
    os.environ.setdefault("XDG_CACHE_HOME", str(Path(".cache")))
    Path(os.environ["MPLCONFIGDIR"]).mkdir(parents=True, exist_ok=True)
    Path(os.environ["XDG_CACHE_HOME"]).joinpath("fontconfig").mkdir(parents=True, exist_ok=True)

    import matplotlib
    matplotlib.use("Agg")
