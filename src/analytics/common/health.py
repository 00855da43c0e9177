"""
Health check endpoints for the consumer process.

Provides Kubernetes-compatible health check endpoints:
- /health/live - Liveness check (is the process running?)
- /health/ready - Readiness check (has every consumer joined its group?)

Usage:
    health_server = HealthCheckServer(port=8080, worker_name="event-consumer")
    await health_server.start()

    # Each consumer reports once connected and polling
    health_server.set_consumer_connected("event-consumer-0", True)

    await health_server.stop()
"""

import logging
import threading
from datetime import UTC, datetime

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthCheckServer:
    """
    HTTP server for Kubernetes health check endpoints.

    Liveness Check:
        Always returns 200 OK while the server is running.

    Readiness Check:
        Returns 200 OK only when every registered consumer has joined its
        group and is polling, and no startup error has been recorded. A
        consumer left without partitions still counts. Returns 503
        otherwise, with the reasons in the body.
    """

    def __init__(
        self,
        port: int | None = 8080,
        worker_name: str = "worker",
        enabled: bool = True,
        host: str = "0.0.0.0",
    ):
        """
        Args:
            port: HTTP port to listen on. Use 0 for dynamic port assignment,
                  or None to disable the server.
            worker_name: Name of the worker for logging
            enabled: If False, start() and stop() become no-ops.
            host: Interface to bind
        """
        self.port = port
        self.host = host
        self.worker_name = worker_name
        self._enabled = enabled and port is not None
        self._started_at = datetime.now(UTC)
        self._actual_port: int | None = None
        self._error_message: str | None = None
        self._consumers: dict[str, bool] = {}
        self._state_lock = threading.Lock()

        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def register_consumer(self, name: str) -> None:
        with self._state_lock:
            self._consumers.setdefault(name, False)

    def set_consumer_connected(self, name: str, connected: bool) -> None:
        with self._state_lock:
            old_ready = self._is_ready_locked()
            self._consumers[name] = connected
            new_ready = self._is_ready_locked()

        if old_ready != new_ready:
            logger.info(
                "Readiness status changed: %s -> %s",
                old_ready,
                new_ready,
                extra={"consumer_group": name},
            )

    def set_error(self, error_message: str) -> None:
        """Record a startup/configuration error; readiness reports it until cleared."""
        with self._state_lock:
            self._error_message = error_message
        logger.error(
            "Health check error state set: %s",
            error_message,
            extra={"error": error_message},
        )

    def clear_error(self) -> None:
        with self._state_lock:
            self._error_message = None

    def _is_ready_locked(self) -> bool:
        return (
            self._error_message is None
            and bool(self._consumers)
            and all(self._consumers.values())
        )

    @property
    def is_ready(self) -> bool:
        with self._state_lock:
            return self._is_ready_locked()

    async def handle_liveness(self, request: web.Request) -> web.Response:
        uptime_seconds = (datetime.now(UTC) - self._started_at).total_seconds()
        return web.json_response(
            {
                "status": "alive",
                "worker": self.worker_name,
                "uptime_seconds": int(uptime_seconds),
                "timestamp": datetime.now(UTC).isoformat(),
            },
            status=200,
        )

    async def handle_readiness(self, request: web.Request) -> web.Response:
        with self._state_lock:
            error_message = self._error_message
            consumers = dict(self._consumers)
            ready = self._is_ready_locked()

        body = {
            "worker": self.worker_name,
            "checks": {"consumers_connected": consumers},
            "timestamp": datetime.now(UTC).isoformat(),
        }

        if ready:
            return web.json_response({"status": "ready", **body}, status=200)

        reasons = []
        if error_message:
            reasons.append("startup_error")
            body["error"] = error_message
        if not consumers:
            reasons.append("no_consumers")
        reasons.extend(
            f"disconnected:{name}" for name, connected in consumers.items() if not connected
        )
        return web.json_response(
            {"status": "not_ready", "reasons": reasons, **body}, status=503
        )

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health/live", self.handle_liveness)
        app.router.add_get("/health/ready", self.handle_readiness)
        return app

    async def start(self) -> None:
        """Start listening. Startup failures are logged and health checks disabled."""
        if not self._enabled or self._runner is not None:
            return

        try:
            self._runner = web.AppRunner(self.create_app())
            await self._runner.setup()
            self._site = web.TCPSite(self._runner, self.host, self.port, reuse_address=True)
            await self._site.start()

            server = getattr(self._site, "_server", None)
            if server is not None and server.sockets:
                self._actual_port = server.sockets[0].getsockname()[1]
            else:
                self._actual_port = self.port

            logger.info(
                "Health check server started on port %s",
                self._actual_port,
                extra={"http_url": f"http://localhost:{self._actual_port}/health/ready"},
            )
        except OSError as e:
            logger.warning(
                "Could not start health check server, continuing without it",
                extra={"error": str(e)},
            )
            if self._runner is not None:
                await self._runner.cleanup()
            self._runner = None
            self._site = None
            self._enabled = False

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        self._site = None
        self._actual_port = None
        logger.info("Health check server stopped")

    @property
    def actual_port(self) -> int | None:
        return self._actual_port

    @property
    def is_enabled(self) -> bool:
        return self._enabled


__all__ = ["HealthCheckServer"]
