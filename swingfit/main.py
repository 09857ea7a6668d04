import argparse
import asyncio
import json
import signal
import sys
import time
from pathlib import Path
from typing import Optional, Set

from loguru import logger

from swingfit.catalog import load_catalog
from swingfit.config import load_config
from swingfit.debug_log import DebugLog
from swingfit.detector import SwingDetector, analyze_swing
from swingfit.models import SwingFeatures, SwingReport, SystemStatus
from swingfit.narration import SwingNarrator
from swingfit.streams import MOCK_SWING_PRESETS, MotionStream, SerialMotionStream, SyntheticMotionStream
from swingfit.websocket_server import WebSocketServer

STATUS_INTERVAL = 5.0  # seconds
TICK_INTERVAL = 0.05  # seconds


def setup_logging(config: dict):
    log_level = config['system']['log_level']
    logger.remove()  # Remove default handler
    logger.add(
        sys.stdout,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )

    log_file = config['system'].get('log_file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="10 MB",
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
        )


def build_stream(config: dict, preset: Optional[str] = None, seed: Optional[int] = None,
                 observer=None) -> MotionStream:
    if preset is None and config['source'] == 'serial':
        return SerialMotionStream(config, observer=observer)

    synthetic = config['synthetic']
    return SyntheticMotionStream.from_preset(
        preset or synthetic['preset'],
        sampling_rate=synthetic['sampling_rate'],
        seed=synthetic['seed'] if seed is None else seed,
        observer=observer
    )


def run_simulation(config: dict, preset: str, seed: Optional[int] = None,
                   narrator: Optional[SwingNarrator] = None) -> Optional[SwingReport]:
    """Run one synthetic swing through the whole pipeline."""
    catalog = load_catalog(config['recommendations'].get('catalog'))
    stream = build_stream(config, preset=preset, seed=seed)
    detector = SwingDetector(config, stream)

    if not detector.start():
        logger.error("Synthetic stream failed to start")
        return None

    # Samples were delivered synchronously, let the quiet period and ceiling elapse
    detector.advance(MOCK_SWING_PRESETS[preset].duration + config['swing_detection']['max_duration'])

    if detector.last_buffer is None:
        logger.warning("No swing detected in synthetic data")
        return None

    return analyze_swing(detector.last_buffer, catalog, config['recommendations']['top_n'], narrator)


class GolfSwingFitter:
    def __init__(self, config: dict):
        self.config = config
        self.is_running = False

        self.debug_log = DebugLog()
        self.catalog = load_catalog(config['recommendations'].get('catalog'))
        self.narrator = SwingNarrator()
        self.stream = build_stream(config, observer=self.debug_log)
        self.detector = SwingDetector(config, self.stream, observer=self.debug_log)
        self.websocket_server = WebSocketServer(config)

        self.last_data_time: Optional[float] = None
        self.error_messages = []
        self.background_tasks: Set[asyncio.Task] = set()

        self.detector.on_data(self._handle_sample)
        self.detector.on_swing_detected(self._handle_swing)
        self.detector.on_error(self._handle_error)

        self.websocket_server.register_handler('start_recording', self._handle_start_request)
        self.websocket_server.register_handler('stop_recording', self._handle_stop_request)
        self.websocket_server.register_handler('request_debug_log', self._handle_debug_request)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        self.is_running = False

    async def start(self):
        logger.info("Starting swingfit")
        logger.info(f"Version: {self.config['system']['version']}")

        await self.websocket_server.start()
        self.is_running = True
        await self._main_loop()

    async def _main_loop(self):
        last_status_update = 0.0

        while self.is_running:
            current_time = time.time()

            if self.detector.is_recording:
                self.detector.advance()

            if current_time - last_status_update >= STATUS_INTERVAL:
                await self._broadcast_system_status()
                last_status_update = current_time

            await asyncio.sleep(TICK_INTERVAL)

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self.background_tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self.background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()}")

    def _handle_sample(self, sample):
        self.last_data_time = time.time()
        self._spawn(self.websocket_server.broadcast_sample(sample))

    def _handle_swing(self, features: SwingFeatures):
        report = analyze_swing(self.detector.last_buffer, self.catalog,
                               self.config['recommendations']['top_n'], self.narrator)
        for rec in report.recommendations:
            logger.info(f"#{rec.id} {rec.style}: {rec.head.name} + {rec.shaft.name} ({rec.flex}) {rec.match_percentage:.0f}%")
        self._spawn(self.websocket_server.broadcast_swing_report(report))

    def _handle_error(self, message: str):
        logger.error(f"Motion stream error: {message}")
        self.error_messages.append(message)

    async def _handle_start_request(self, websocket, data):
        started = self.detector.start()
        await self.websocket_server.broadcast_message('recording_status', {'recording': started})

    async def _handle_stop_request(self, websocket, data):
        features = self.detector.stop()
        if features is not None:
            self._handle_swing(features)
        await self.websocket_server.broadcast_message('recording_status', {'recording': False})

    async def _handle_debug_request(self, websocket, data):
        await self.websocket_server.broadcast_message('debug_log', self.debug_log.to_list())

    async def _broadcast_system_status(self):
        status = SystemStatus(
            sensor_connected=self.stream.is_running,
            recording=self.detector.is_recording,
            websocket_clients=self.websocket_server.get_client_count(),
            segmenter_state=self.detector.segmenter.state,
            last_data_time=self.last_data_time,
            error_messages=self.error_messages[-5:]  # Last 5 errors
        )
        await self.websocket_server.broadcast_system_status(status)

    async def stop(self):
        logger.info("Stopping swingfit")
        self.is_running = False
        self.detector.stop(finalize=False)
        if self.background_tasks:
            await asyncio.gather(*self.background_tasks, return_exceptions=True)
        await self.websocket_server.stop()
        logger.info("System stopped")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Golf swing analysis and equipment recommendations")
    parser.add_argument('--config', help="Path to a YAML config overriding the defaults")
    parser.add_argument('--simulate', choices=sorted(MOCK_SWING_PRESETS), help="Run one synthetic swing and exit")
    parser.add_argument('--seed', type=int, help="Noise seed for synthetic swings")
    return parser.parse_args(argv)


async def serve(config: dict):
    fitter = None
    try:
        fitter = GolfSwingFitter(config)
        await fitter.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    finally:
        if fitter:
            await fitter.stop()


def main(argv=None):
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging(config)

    if args.simulate:
        report = run_simulation(config, args.simulate, seed=args.seed, narrator=SwingNarrator())
        if report is None:
            return 1
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return 0

    asyncio.run(serve(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
