"""Long-running infrastructure actors: signal listener and metrics server."""

import logging
import signal

import anyio
import anyio.to_thread
from prometheus_client import CollectorRegistry, start_http_server

logger = logging.getLogger(__name__)


class SignalListener:
    """Returns when SIGINT or SIGTERM is received."""

    def __init__(self) -> None:
        self._scope = anyio.CancelScope()

    async def run(self) -> None:
        with self._scope:
            with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
                async for signum in signals:
                    logger.info("Caught interrupt: %s", signal.Signals(signum).name)
                    return

    def interrupt(self, _: BaseException | None = None) -> None:
        self._scope.cancel()


class MetricsServer:
    """Serves the registry on ``/metrics`` until interrupted.

    Uses the prometheus_client threaded HTTP server; ``run`` only parks the
    task until the group interrupts it, then shuts the server down.
    """

    def __init__(self, registry: CollectorRegistry, host: str, port: int) -> None:
        self._registry = registry
        self._host = host
        self._port = port
        self._stopped = anyio.Event()

    async def run(self) -> None:
        logger.info("Starting the HTTP server: address=%s:%d", self._host, self._port)
        server, thread = start_http_server(self._port, addr=self._host, registry=self._registry)
        try:
            await self._stopped.wait()
        finally:
            logger.info("Shutting down internal server")
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(server.shutdown)
            server.server_close()
            thread.join(timeout=1.0)

    def interrupt(self, _: BaseException | None = None) -> None:
        self._stopped.set()
