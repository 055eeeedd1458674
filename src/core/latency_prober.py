import logging
import time

import httpx

from contracts.probe_result import ProbeOutcome, ProbeResult

logger = logging.getLogger(__name__)

CONNECT_STARTED = "connection.connect_tcp.started"
# httpcore emits no per-byte event; headers complete is the nearest observable point
FIRST_BYTE_SUFFIX = ".receive_response_headers.complete"


class LatencyProber:
    """
    Times one HTTP GET per call, from the start of the TCP connect to the
    arrival of the response head.
    """

    def __init__(self, source: str, path: str = "/", timeout: float = 5.0):
        """
        Args:
            source (str): Identity of this instance, copied into every result.
            path (str): Path requested on each peer.
            timeout (float): Bound in seconds for the whole request.
        """
        self.source = source
        self.path = path if path.startswith("/") else f"/{path}"
        self.timeout = timeout

    async def probe(self, address: str, port: int) -> ProbeResult:
        host = f"[{address}]" if ":" in address else address
        url = f"http://{host}:{port}{self.path}"
        marks = {}

        async def trace(event_name, info):
            if event_name == CONNECT_STARTED:
                marks.setdefault("connect_start", time.perf_counter())
            elif event_name.endswith(FIRST_BYTE_SUFFIX):
                marks.setdefault("first_byte", time.perf_counter())

        try:
            # A fresh client per probe forces a new connection, so connect is always timed
            async with httpx.AsyncClient(timeout=self.timeout, trust_env=False) as client:
                resp = await client.get(url, extensions={"trace": trace})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Error measuring latency to {address}:{port} {e!r}")
            return ProbeResult(
                source=self.source,
                destination=address,
                port=port,
                outcome=ProbeOutcome.NETWORK_ERROR,
                error=repr(e),
            )

        latency_ms = None
        if "connect_start" in marks and "first_byte" in marks:
            latency_ms = max(0.0, (marks["first_byte"] - marks["connect_start"]) * 1e3)
        else:
            logger.warning(
                f"Timing events missing for {address}:{port}, observed {sorted(marks)}"
            )

        if resp.status_code == 200:
            outcome = ProbeOutcome.SUCCESS
        else:
            outcome = ProbeOutcome.UNEXPECTED_STATUS
            logger.warning(
                f"Unexpected status code {resp.status_code} while measuring latency of {address}:{port}"
            )
        logger.debug(f"{self.source}->{address}={latency_ms} status={resp.status_code}")
        return ProbeResult(
            source=self.source,
            destination=address,
            port=port,
            outcome=outcome,
            latency_ms=latency_ms,
            status_code=resp.status_code,
        )
