"""
Health Monitoring HTTP Server for poll-reactor.

Provides a simple HTTP endpoint for monitoring the reactor: liveness,
JSON status, and Prometheus metrics.

Endpoints:
    GET /health     - Basic health check (200 OK if running)
    GET /status     - JSON reactor status and per-service statistics
    GET /metrics    - Prometheus-compatible metrics

Usage:
    from poll_reactor.output.health_server import HealthServer

    server = HealthServer(port=8080)
    server.set_reactor(reactor)
    server.start()
"""

import json
import logging
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger('poll-reactor.output')


class HealthRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for health endpoints."""

    # Class-level reference to status callback
    get_status: Optional[Callable[[], Dict[str, Any]]] = None

    def log_message(self, format, *args):
        """Suppress default HTTP logging."""
        pass

    def do_GET(self):
        """Handle GET requests."""
        if self.path == '/health':
            self._handle_health()
        elif self.path == '/status':
            self._handle_status()
        elif self.path == '/metrics':
            self._handle_metrics()
        else:
            self.send_error(404, "Not Found")

    def _handle_health(self):
        """Basic health check - returns 200 if server is running."""
        self._respond(200, 'text/plain', b'OK\n')

    def _handle_status(self):
        """Return JSON reactor status."""
        get_status = type(self).get_status
        if not get_status:
            self._respond(503, 'application/json', json.dumps({'error': 'No reactor connected'}).encode())
            return
        try:
            body = json.dumps(get_status(), indent=2).encode()
        except Exception as e:
            logger.exception(f"Status request failed: {e}")
            self._respond(500, 'application/json', json.dumps({'error': str(e)}).encode())
            return
        self._respond(200, 'application/json', body)

    def _handle_metrics(self):
        """Return Prometheus-compatible metrics."""
        get_status = type(self).get_status
        if not get_status:
            self._respond(503, 'text/plain', b'# No reactor connected\n')
            return
        try:
            body = self._format_prometheus_metrics(get_status()).encode()
        except Exception as e:
            logger.exception(f"Metrics request failed: {e}")
            self._respond(500, 'text/plain', f'# Error: {e}\n'.encode())
            return
        self._respond(200, 'text/plain; version=0.0.4', body)

    def _respond(self, code: int, content_type: str, body: bytes):
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _format_prometheus_metrics(self, status: Dict[str, Any]) -> str:
        """Format status as Prometheus metrics."""
        lines = [
            '# HELP poll_reactor_services Number of registered services',
            '# TYPE poll_reactor_services gauge',
            f'poll_reactor_services {status.get("services_registered", 0)}',
            '',
            '# HELP poll_reactor_polls_total Total poll() invocations',
            '# TYPE poll_reactor_polls_total counter',
            f'poll_reactor_polls_total {status.get("polls", 0)}',
            '',
            '# HELP poll_reactor_poll_failures_total Total poll() invocations that raised',
            '# TYPE poll_reactor_poll_failures_total counter',
            f'poll_reactor_poll_failures_total {status.get("poll_failures", 0)}',
            '',
            '# HELP poll_reactor_late_dispatches_total Dispatches that started after their due-time',
            '# TYPE poll_reactor_late_dispatches_total counter',
            f'poll_reactor_late_dispatches_total {status.get("late_dispatches", 0)}',
            '',
            '# HELP poll_reactor_uptime_seconds Reactor uptime in seconds',
            '# TYPE poll_reactor_uptime_seconds gauge',
            f'poll_reactor_uptime_seconds {status.get("uptime_seconds", 0):.1f}',
            '',
            '# HELP poll_reactor_state Reactor state (1=NOT_STARTED, 2=RUNNING, 3=STOPPED)',
            '# TYPE poll_reactor_state gauge',
        ]

        state_map = {'NOT_STARTED': 1, 'RUNNING': 2, 'STOPPED': 3}
        lines.append(f'poll_reactor_state {state_map.get(status.get("state"), 0)}')

        services = status.get('services', {})
        pollable = {name: s for name, s in services.items() if s.get('pollable')}
        if pollable:
            lines.extend([
                '',
                '# HELP poll_reactor_service_polls_total poll() invocations per service',
                '# TYPE poll_reactor_service_polls_total counter',
            ])
            for name, svc in pollable.items():
                lines.append(f'poll_reactor_service_polls_total{{service="{_label(name)}"}} {svc.get("polls", 0)}')
            lines.extend([
                '',
                '# HELP poll_reactor_service_failures_total Failed poll() invocations per service',
                '# TYPE poll_reactor_service_failures_total counter',
            ])
            for name, svc in pollable.items():
                lines.append(f'poll_reactor_service_failures_total{{service="{_label(name)}"}} {svc.get("failures", 0)}')
            lines.extend([
                '',
                '# HELP poll_reactor_service_poll_p95_ms 95th percentile poll() duration in milliseconds',
                '# TYPE poll_reactor_service_poll_p95_ms gauge',
            ])
            for name, svc in pollable.items():
                lines.append(f'poll_reactor_service_poll_p95_ms{{service="{_label(name)}"}} {svc.get("p95_ms", 0.0):.3f}')

        lines.append('')
        return '\n'.join(lines)


def _label(name: str) -> str:
    return name.replace(' ', '_').replace('.', '_').replace('"', '')


class HealthServer:
    """
    HTTP server for health monitoring.

    Runs in a background thread and provides endpoints for monitoring
    the reactor daemon.
    """

    def __init__(self, port: int = 8080, bind_address: str = '0.0.0.0'):
        """
        Initialize the health server.

        Args:
            port: HTTP port to listen on
            bind_address: Address to bind to (default: all interfaces)
        """
        self.port = port
        self.bind_address = bind_address
        self.server: Optional[HTTPServer] = None
        self.thread: Optional[threading.Thread] = None
        self.reactor = None
        self._running = False

    def set_reactor(self, reactor):
        """
        Connect to a reactor for status reporting.

        Args:
            reactor: TimerMultiplexingReactor instance
        """
        self.reactor = reactor
        HealthRequestHandler.get_status = self._get_status

    def _get_status(self) -> Dict[str, Any]:
        if not self.reactor:
            return {'error': 'No reactor connected'}
        return self.reactor.status()

    def start(self):
        """Start the health server in a background thread."""
        if self._running:
            logger.warning("Health server already running")
            return

        try:
            self.server = HTTPServer(
                (self.bind_address, self.port),
                HealthRequestHandler
            )
        except OSError as e:
            logger.error(f"Failed to start health server: {e}")
            return

        # Bounded poll so stop() is noticed
        self.server.timeout = 1.0
        self._running = True

        self.thread = threading.Thread(
            target=self._serve,
            name="HealthServer",
            daemon=True
        )
        self.thread.start()

        logger.info(f"Health server started on http://{self.bind_address}:{self.port}")
        logger.info(f"  GET /health  - Health check")
        logger.info(f"  GET /status  - JSON status")
        logger.info(f"  GET /metrics - Prometheus metrics")

    def _serve(self):
        """Server loop (runs in background thread)."""
        while self._running:
            self.server.handle_request()

    def stop(self):
        """Stop the health server."""
        self._running = False
        if self.thread:
            # handle_request() returns within server.timeout
            self.thread.join(timeout=2.0)
            self.thread = None
        if self.server:
            self.server.server_close()
            self.server = None
        HealthRequestHandler.get_status = None
        logger.info("Health server stopped")
