import asyncio
import json
import pytest
import signal

from swingfit.catalog import load_catalog
from swingfit.config import load_config
from swingfit.main import GolfSwingFitter
from swingfit.models import SegmenterState, SwingFeatures, SwingReport, SystemStatus
from swingfit.ranker import rank
from swingfit.websocket_server import WebSocketServer


class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(json.loads(message))


@pytest.fixture
def server():
    return WebSocketServer(load_config())


@pytest.fixture
def report():
    features = SwingFeatures(max_acceleration=18.0, max_rotation_rate=25.0, swing_duration=1.45,
                             tempo=20.7, smoothness=90.0, sample_count=30)
    return SwingReport(features=features, recommendations=rank(features, load_catalog()))


def test_handshake(server):
    ws = FakeWebSocket()
    asyncio.run(server.handle_message(ws, json.dumps({'type': 'handshake', 'client': 'test'})))

    assert ws.sent[0]['type'] == 'handshake_ack'
    assert ws.sent[0]['payload']['server'] == 'swingfit'


def test_unknown_message_type(server):
    ws = FakeWebSocket()
    asyncio.run(server.handle_message(ws, json.dumps({'type': 'launch'})))

    assert ws.sent[0]['type'] == 'error'


def test_invalid_json(server):
    ws = FakeWebSocket()
    asyncio.run(server.handle_message(ws, "{not json"))

    assert ws.sent[0]['payload']['message'] == "Invalid JSON format"


def test_status_request_without_status(server):
    ws = FakeWebSocket()
    asyncio.run(server.handle_message(ws, json.dumps({'type': 'request_system_status'})))

    assert ws.sent[0]['payload']['segmenter_state'] == 'idle'


def test_broadcast_swing_report(server, report):
    ws = FakeWebSocket()
    server.clients.add(ws)

    asyncio.run(server.broadcast_swing_report(report))

    message = ws.sent[0]
    assert message['type'] == 'swing_report'
    assert message['payload']['features']['max_acceleration'] == 18.0
    assert len(message['payload']['recommendations']) == 3
    assert server.latest_report is report


def test_report_request_and_clear(server, report):
    ws = FakeWebSocket()
    server.clients.add(ws)
    server.latest_report = report

    asyncio.run(server.handle_message(ws, json.dumps({'type': 'request_last_report'})))
    asyncio.run(server.handle_message(ws, json.dumps({'type': 'clear_report'})))

    assert ws.sent[0]['payload']['recommendations'][0]['match_percentage'] == 92.0
    assert ws.sent[1]['type'] == 'clear_report'
    assert server.latest_report is None


def test_broadcast_system_status(server):
    ws = FakeWebSocket()
    server.clients.add(ws)
    status = SystemStatus(sensor_connected=True, recording=True, websocket_clients=0,
                          segmenter_state=SegmenterState.ARMED, last_data_time=None, error_messages=[])

    asyncio.run(server.broadcast_system_status(status))

    assert ws.sent[0]['payload']['segmenter_state'] == 'armed'
    assert ws.sent[0]['payload']['websocket_clients'] == 1


def test_registered_handler(server):
    calls = []

    async def handler(websocket, data):
        calls.append(data['type'])

    server.register_handler('start_recording', handler)
    asyncio.run(server.handle_message(FakeWebSocket(), json.dumps({'type': 'start_recording'})))

    assert calls == ['start_recording']


def test_failing_handler_replies_with_error(server):
    async def handler(websocket, data):
        raise RuntimeError("sensor unplugged")

    ws = FakeWebSocket()
    server.register_handler('start_recording', handler)
    asyncio.run(server.handle_message(ws, json.dumps({'type': 'start_recording'})))

    assert ws.sent[0]['type'] == 'error'
    assert 'sensor unplugged' in ws.sent[0]['payload']['message']


def test_fitter_stop_request_broadcasts_report(monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda signum, handler: None)
    config = load_config()
    config['synthetic']['preset'] = 'pro'
    config['synthetic']['seed'] = 1
    ws = FakeWebSocket()

    async def session():
        fitter = GolfSwingFitter(config)
        fitter.websocket_server.clients.add(ws)

        await fitter.websocket_server.handle_message(ws, json.dumps({'type': 'start_recording'}))
        await fitter.websocket_server.handle_message(ws, json.dumps({'type': 'stop_recording'}))
        await asyncio.gather(*list(fitter.background_tasks))
        return fitter

    fitter = asyncio.run(session())

    assert not fitter.detector.is_recording
    assert fitter.detector.last_features is not None
    assert not fitter.background_tasks

    report = fitter.websocket_server.latest_report
    assert report is not None
    assert 1 <= len(report.recommendations) <= 3

    types = [message['type'] for message in ws.sent]
    assert 'swing_report' in types
    assert [m['payload']['recording'] for m in ws.sent if m['type'] == 'recording_status'] == [True, False]


if __name__ == "__main__":
    pytest.main([__file__])
