"""Tests for the REST front-end."""

import base64

import numpy as np
import pytest

from bdtoolbox.config import ServerConfig
from bdtoolbox.services.server import BDServer, create_server


@pytest.fixture
def server():
    return BDServer(ServerConfig(auto_load=False, verbose=False))


@pytest.fixture
def client(server):
    server.app.testing = True
    return server.app.test_client()


@pytest.fixture
def loaded(client):
    response = client.post('/api/system/load', json={'model': 'HopfXY', 'kwargs': {'seed': 1}})
    assert response.status_code == 200
    client.post('/api/system/tspan', json={'tspan': [0, 20]})
    return client


def test_health_and_index(client):
    health = client.get('/api/health').get_json()
    assert health['status'] == 'healthy'
    assert not health['model_loaded']
    endpoints = client.get('/api').get_json()['endpoints']
    assert '/api/simulation/run' in endpoints


def test_models(client):
    models = client.get('/api/models').get_json()['models']
    assert 'HopfXY' in models and 'BOLDHRF' in models


def test_no_model_loaded(client):
    assert client.get('/api/system').status_code == 404
    assert client.post('/api/simulation/run', json={}).status_code == 400
    assert client.get('/api/simulation/data').status_code == 404


def test_load_errors(client):
    assert client.post('/api/system/load', json={}).status_code == 400
    response = client.post('/api/system/load', json={'model': 'Nope'})
    assert response.status_code == 404
    assert 'Available' in response.get_json()['error']


def test_system_summary(loaded):
    summary = loaded.get('/api/system').get_json()
    assert summary['name'] == 'HopfXY'
    assert summary['tspan'] == [0.0, 20.0]
    assert summary['pardef'][0]['name'] == 'alpha'


def test_set_values(loaded):
    response = loaded.post('/api/system/par', json={'name': 'alpha', 'value': 0.5})
    assert response.status_code == 200
    assert response.get_json()['system']['pardef'][0]['value'] == 0.5

    assert loaded.post('/api/system/var', json={'name': 'x', 'value': 0.1}).status_code == 200
    assert loaded.post('/api/system/par', json={'name': 'nope', 'value': 1}).status_code == 404
    response = loaded.post('/api/system/par', json={'name': 'alpha', 'value': [1, 2]})
    assert response.status_code == 400
    assert response.get_json()['ident'] == 'setvalue'
    assert loaded.post('/api/system/par', json={'name': 'alpha'}).status_code == 400
    # HopfXY has no lags
    assert loaded.post('/api/system/lag', json={'name': 'd', 'value': 1}).status_code == 404


def test_solver_and_flags(loaded):
    response = loaded.post('/api/solver', json={'name': 'odeEul'})
    assert response.get_json()['solver'] == 'odeEul'
    response = loaded.post('/api/solver', json={'name': 'Radau'})
    assert response.status_code == 400
    assert response.get_json()['ident'] == 'control:solver'

    flags = loaded.post('/api/control', json={'evolve': True}).get_json()['flags']
    assert flags['evolve'] is True
    assert loaded.post('/api/control', json={'bogus': True}).status_code == 400


def test_run_and_fetch_data(loaded):
    response = loaded.post('/api/simulation/run', json={'wait': True})
    assert response.status_code == 200
    assert response.get_json()['status'] == 'complete'

    status = loaded.get('/api/simulation/status').get_json()
    assert status['has_results'] and not status['running']
    assert status['progress'] == 100.0

    data = loaded.get('/api/simulation/data?rows=1&downsample=2').get_json()
    assert data['labels'] == ['y']
    assert len(data['y']) == 1
    assert len(data['time']) == len(data['y'][0])
    assert loaded.get('/api/simulation/data?rows=5').status_code == 400


def test_background_run(server, loaded):
    response = loaded.post('/api/simulation/run', json={})
    assert response.get_json()['status'] == 'started'
    server.simulation_thread.join(timeout=60)
    status = loaded.get('/api/simulation/status').get_json()
    assert status['has_results']
    assert status['error'] is None


def test_panel_png(loaded):
    response = loaded.get('/api/panel/TimePortrait')
    assert response.status_code == 200
    png = base64.b64decode(response.get_json()['png'])
    assert png.startswith(b'\x89PNG')
    assert loaded.get('/api/panel/NoSuchPanel').status_code == 404


def test_bold_endpoint(loaded):
    response = loaded.post('/api/bold', json={'var': 'x', 'params': {'kappa': 0.6}})
    assert response.status_code == 200
    payload = response.get_json()
    assert payload['params']['kappa'] == 0.6
    assert len(payload['bold'][0]) == len(payload['time'])
    assert loaded.post('/api/bold', json={'params': {'nope': 1}}).status_code == 400


def test_analysis_endpoints(client):
    client.post('/api/system/load', json={'model': 'Kuramoto', 'kwargs': {'n': 4, 'seed': 0}})
    client.post('/api/system/tspan', json={'tspan': [0, 10]})
    R = client.post('/api/analysis/correlation', json={}).get_json()['R']
    assert len(R) == 4 and len(R[0]) == 4
    response = client.post('/api/analysis/surrogate', json={'var': 'theta', 'seed': 1})
    assert len(response.get_json()['surrogate']) == 4
    assert client.post('/api/analysis/correlation', json={'var': 'nope'}).status_code == 404


def test_create_server_auto_loads():
    server = create_server(ServerConfig(verbose=False, default_model='LinearODE'))
    assert server.control is not None
    assert server.control.sys.name == 'LinearODE'


def test_json_replaces_non_finite_values(server):
    payload = server.app.json.loads(server.app.json.dumps(
        {'bold': np.array([[0.5, np.nan], [np.inf, 1.0]])}))
    assert payload == {'bold': [[0.5, None], [None, 1.0]]}
