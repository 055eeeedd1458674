import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST

from abstractions.discovery import PeerDiscovery
from config.config import Config
from config.logging_config import setup_logging
from core.latency_histogram import LatencyHistogram
from core.latency_prober import LatencyProber
from core.probe_loop import ProbeLoop

setup_logging()
logger = logging.getLogger(__name__)


def create_app(
    discovery: PeerDiscovery,
    sink: Optional[LatencyHistogram] = None,
    prober: Optional[LatencyProber] = None,
    group_name: str = Config.ENDPOINTS_NAME,
    period: str = Config.PERIOD_DURATION,
    port: int = Config.PORT,
    source: str = Config.SOURCE_IDENTITY,
    max_in_flight: Optional[int] = Config.MAX_IN_FLIGHT_PROBES,
) -> FastAPI:
    """
    Build the service front: liveness on /, Prometheus export on /metrics,
    and the probe loop bound to the application lifespan.
    """
    sink = sink if sink is not None else LatencyHistogram()
    prober = prober or LatencyProber(
        source=source, path=Config.PROBE_PATH, timeout=Config.PROBE_TIMEOUT_SECONDS
    )
    probe_loop = ProbeLoop(
        discovery=discovery,
        prober=prober,
        sink=sink,
        group_name=group_name,
        source=source,
        probe_port=port,
        period=period,
        max_in_flight=max_in_flight,
    )

    @asynccontextmanager
    async def lifespan(app):
        probe_loop.start()
        yield
        await probe_loop.stop()
        await discovery.aclose()

    app = FastAPI(lifespan=lifespan)
    app.state.sink = sink
    app.state.probe_loop = probe_loop

    @app.get("/", response_class=PlainTextResponse)
    async def liveness():
        return "ok"

    @app.get("/metrics")
    def metrics():
        return Response(sink.export(), media_type=CONTENT_TYPE_LATEST)

    return app
