"""REST front-end for the toolbox."""

from .server import BDServer, NumpyJSONProvider, create_server, start_server

__all__ = ['BDServer', 'NumpyJSONProvider', 'create_server', 'start_server']
