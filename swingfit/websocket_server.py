import json
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed
from loguru import logger

from swingfit.models import MotionSample, SegmenterState, SwingReport, SystemStatus

Handler = Callable[[Any, Dict[str, Any]], Awaitable[None]]


def status_to_dict(status: SystemStatus) -> dict:
    status_dict = status.__dict__.copy()
    status_dict['segmenter_state'] = status.segmenter_state.value
    return status_dict


def sample_to_dict(sample: MotionSample) -> dict:
    return {
        'gyro_x': sample.gyroscope.x,
        'gyro_y': sample.gyroscope.y,
        'gyro_z': sample.gyroscope.z,
        'accel_x': sample.accelerometer.x,
        'accel_y': sample.accelerometer.y,
        'accel_z': sample.accelerometer.z,
        'timestamp': sample.timestamp
    }


class WebSocketServer:
    def __init__(self, config: dict):
        self.config = config
        self.host = config['websocket']['host']
        self.port = config['websocket']['port']
        self.version = config['system'].get('version', 'unknown')
        self.clients: Set[Any] = set()
        self.server = None

        self.latest_system_status: Optional[SystemStatus] = None
        self.latest_report: Optional[SwingReport] = None

        self.message_handlers: Dict[str, Handler] = {
            'handshake': self._handle_handshake,
            'request_system_status': self._handle_status_request,
            'request_last_report': self._handle_report_request,
            'clear_report': self._handle_clear_report,
            'pong': self._handle_pong
        }

    def register_handler(self, message_type: str, handler: Handler):
        self.message_handlers[message_type] = handler

    async def start(self):
        logger.info(f"Starting WebSocket server on {self.host}:{self.port}")

        self.server = await websockets.serve(
            self.handle_client,
            self.host,
            self.port,
            ping_interval=self.config['websocket']['ping_interval'],
            ping_timeout=self.config['websocket']['ping_timeout']
        )

        logger.info("WebSocket server started successfully")

    async def stop(self):
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("WebSocket server stopped")

    async def handle_client(self, websocket):
        client_id = f"{websocket.remote_address[0]}:{websocket.remote_address[1]}"
        logger.info(f"New client connected: {client_id}")

        self.clients.add(websocket)

        try:
            if self.latest_system_status:
                await self._send_to_client(websocket, 'system_status', status_to_dict(self.latest_system_status))

            async for message in websocket:
                await self.handle_message(websocket, message)

        except ConnectionClosed:
            logger.info(f"Client disconnected: {client_id}")
        except Exception as e:
            logger.error(f"Unexpected error with client {client_id}: {e}")
        finally:
            self.clients.discard(websocket)

    async def handle_message(self, websocket, message: str):
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON received: {e}")
            await self._send_error(websocket, "Invalid JSON format")
            return

        message_type = data.get('type') if isinstance(data, dict) else None
        if message_type not in self.message_handlers:
            logger.warning(f"Unknown message type: {message_type}")
            await self._send_error(websocket, f"Unknown message type: {message_type}")
            return

        try:
            await self.message_handlers[message_type](websocket, data)
        except ConnectionClosed:
            raise
        except Exception as e:
            logger.error(f"Error handling {message_type} message: {e}")
            await self._send_error(websocket, f"Error processing message: {str(e)}")

    async def _handle_handshake(self, websocket, data: Dict[str, Any]):
        logger.info(f"Client handshake: {data.get('client', 'unknown')} {data.get('version', 'unknown')}")

        await self._send_to_client(websocket, 'handshake_ack', {
            'server': 'swingfit',
            'version': self.version,
            'timestamp': datetime.now().isoformat()
        })

    async def _handle_status_request(self, websocket, data: Dict[str, Any]):
        if self.latest_system_status:
            await self._send_to_client(websocket, 'system_status', status_to_dict(self.latest_system_status))
        else:
            await self._send_to_client(websocket, 'system_status', {
                'sensor_connected': False,
                'recording': False,
                'websocket_clients': len(self.clients),
                'segmenter_state': SegmenterState.IDLE.value,
                'last_data_time': None,
                'error_messages': ['No system status available']
            })

    async def _handle_report_request(self, websocket, data: Dict[str, Any]):
        payload = self.latest_report.to_dict() if self.latest_report else None
        await self._send_to_client(websocket, 'swing_report', payload)

    async def _handle_clear_report(self, websocket, data: Dict[str, Any]):
        self.latest_report = None
        await self.broadcast_message('clear_report', {'status': 'cleared'})
        logger.info("Swing report cleared by client request")

    async def _handle_pong(self, websocket, data: Dict[str, Any]):
        pass

    async def _send_to_client(self, websocket, message_type: str, payload: Any):
        message = {
            'type': message_type,
            'payload': payload,
            'timestamp': datetime.now().isoformat()
        }
        try:
            await websocket.send(json.dumps(message))
        except ConnectionClosed:
            logger.warning("Attempted to send to closed connection")

    async def _send_error(self, websocket, error_message: str):
        await self._send_to_client(websocket, 'error', {'message': error_message})

    async def broadcast_message(self, message_type: str, payload: Any):
        if not self.clients:
            return

        message_json = json.dumps({
            'type': message_type,
            'payload': payload,
            'timestamp': datetime.now().isoformat()
        })

        disconnected_clients = set()
        for client in self.clients.copy():
            try:
                await client.send(message_json)
            except ConnectionClosed:
                disconnected_clients.add(client)

        self.clients -= disconnected_clients
        if disconnected_clients:
            logger.info(f"Removed {len(disconnected_clients)} disconnected clients")

    async def broadcast_system_status(self, status: SystemStatus):
        self.latest_system_status = status
        status_dict = status_to_dict(status)
        status_dict['websocket_clients'] = len(self.clients)
        await self.broadcast_message('system_status', status_dict)

    async def broadcast_swing_report(self, report: SwingReport):
        self.latest_report = report
        await self.broadcast_message('swing_report', report.to_dict())

    async def broadcast_sample(self, sample: MotionSample):
        if self.clients:
            await self.broadcast_message('motion_sample', sample_to_dict(sample))

    def get_client_count(self) -> int:
        return len(self.clients)

    def is_running(self) -> bool:
        return self.server is not None
