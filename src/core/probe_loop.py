import asyncio
import logging
from enum import Enum
from typing import Optional, Set

from abstractions.discovery import DiscoveryError, PeerDiscovery
from core.duration import resolve_period
from core.latency_histogram import LatencyHistogram
from core.latency_prober import LatencyProber

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    FANNING_OUT = "fanning_out"
    SLEEPING = "sleeping"


class ProbeLoop:
    """
    Drives the discovery -> fan-out -> sleep cycle.

    Probes are launched as independent tasks and never awaited by the loop,
    so a slow peer cannot delay the next discovery.
    """

    def __init__(
        self,
        discovery: PeerDiscovery,
        prober: LatencyProber,
        sink: LatencyHistogram,
        group_name: str,
        source: str,
        probe_port: int,
        period: str = "1s",
        max_in_flight: Optional[int] = None,
    ):
        """
        Initialize the ProbeLoop.

        Args:
            discovery (PeerDiscovery): Source of peer addresses.
            prober (LatencyProber): Performs the timed requests.
            sink (LatencyHistogram): Receives one observation per timed probe.
            group_name (str): Group resolved on every tick.
            source (str): Value of the "source" label.
            probe_port (int): Port probed on every peer.
            period (str): Go-style duration between ticks, 1s if unusable.
            max_in_flight (Optional[int]): Cap on concurrently running probes, None for unbounded.
        """
        self.discovery = discovery
        self.prober = prober
        self.sink = sink
        self.group_name = group_name
        self.source = source
        self.probe_port = probe_port
        self.period = resolve_period(period)
        self.max_in_flight = max_in_flight if max_in_flight and max_in_flight > 0 else None
        self._semaphore = (
            asyncio.Semaphore(self.max_in_flight) if self.max_in_flight else None
        )
        self.state = LoopState.IDLE
        self.ticks = 0
        self._tasks: Set[asyncio.Task] = set()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        logger.info(
            f"ProbeLoop initialized for {group_name} every {self.period}s "
            f"(max_in_flight={self.max_in_flight or 'unbounded'})"
        )

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: LoopState):
        logger.debug(f"ProbeLoop {self.state.value} -> {state.value}")
        self.state = state

    async def tick(self) -> int:
        """
        Run one discovery and launch a probe task per ready peer.

        Returns:
            int: Number of probe tasks launched.
        """
        self.ticks += 1
        self._set_state(LoopState.DISCOVERING)
        try:
            peers = await self.discovery.list_peers(self.group_name)
        except DiscoveryError as e:
            logger.error(f"Unable to fetch endpoint {self.group_name}: {e}")
            return 0

        self._set_state(LoopState.FANNING_OUT)
        launched = 0
        for peer in peers:
            if not peer.ready:
                logger.debug(f"Skipping not ready peer {peer.ip}")
                continue
            task = asyncio.create_task(self._probe_and_record(peer.ip))
            self._tasks.add(task)
            task.add_done_callback(self._on_probe_done)
            launched += 1
        logger.debug(f"Launched {launched} probes, {self.in_flight} in flight")
        return launched

    async def _probe_and_record(self, address: str):
        if self._semaphore is not None:
            async with self._semaphore:
                result = await self.prober.probe(address, self.probe_port)
        else:
            result = await self.prober.probe(address, self.probe_port)
        if result.latency_ms is None:
            return
        self.sink.observe(self.source, address, result.latency_ms)

    def _on_probe_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Probe task failed: {exc!r}")

    def _on_run_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical(f"ProbeLoop for {self.group_name} exited: {exc!r}")

    async def _sleep(self):
        self._set_state(LoopState.SLEEPING)
        await asyncio.sleep(self.period)

    async def run(self, max_ticks: Optional[int] = None):
        self._running = True
        done = 0
        try:
            while self._running and (max_ticks is None or done < max_ticks):
                try:
                    await self.tick()
                except Exception as e:
                    logger.error(f"Probe tick for {self.group_name} failed: {e!r}")
                await self._sleep()
                self._set_state(LoopState.IDLE)
                done += 1
        finally:
            self._running = False
            self._set_state(LoopState.IDLE)

    def start(self) -> asyncio.Task:
        """
        Schedule run() as a background task.
        """
        if not self.running:
            self._task = asyncio.create_task(self.run())
            self._task.add_done_callback(self._on_run_done)
            logger.info(f"ProbeLoop started for {self.group_name}")
        return self._task

    async def stop(self):
        """
        Cancel the loop. In-flight probes are abandoned, not drained.
        """
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"ProbeLoop stopped with {self.in_flight} probes in flight")
