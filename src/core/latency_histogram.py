import logging
import math
import threading
from bisect import bisect_left
from typing import Dict, List, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import HistogramMetricFamily
from prometheus_client.utils import floatToGoString

from contracts.series_snapshot import SeriesSnapshot

logger = logging.getLogger(__name__)

METRIC_NAME = "test_request_druation_ms"
METRIC_HELP = "Histogram 1 to 10000 linear ms."
LABEL_NAMES = ["source", "destination"]

DEFAULT_BUCKETS_MS = tuple(
    [float(b) for b in range(1, 21)]
    + [float(b) for b in range(25, 101, 5)]
    + [float(b) for b in range(110, 201, 10)]
    + [float(b) for b in range(250, 501, 50)]
    + [float(b) for b in range(600, 1001, 100)]
    + [float(b) for b in range(2000, 5001, 1000)]
    + [10000.0]
)


class _Series:
    __slots__ = ("lock", "bucket_counts", "count", "sum")

    def __init__(self, n_buckets: int):
        self.lock = threading.Lock()
        self.bucket_counts = [0] * n_buckets
        self.count = 0
        self.sum = 0.0


class LatencyHistogram:
    """
    Thread-safe cumulative latency histogram keyed by (source, destination).

    Each series is guarded by its own lock so unrelated peer pairs never
    contend; the map of series has a separate lock held only while a new
    series is created. The instance is also a prometheus_client collector
    registered on its own CollectorRegistry.
    """

    def __init__(
        self,
        buckets: Sequence[float] = DEFAULT_BUCKETS_MS,
        name: str = METRIC_NAME,
        documentation: str = METRIC_HELP,
        registry: Optional[CollectorRegistry] = None,
    ):
        buckets = tuple(float(b) for b in buckets)
        if not buckets:
            raise ValueError("Histogram needs at least one bucket")
        if any(lo >= hi for lo, hi in zip(buckets, buckets[1:])):
            raise ValueError(f"Buckets must be strictly increasing: {buckets}")
        self.buckets = buckets
        self.name = name
        self.documentation = documentation
        self._series: Dict[Tuple[str, str], _Series] = {}
        self._series_lock = threading.Lock()
        self.registry = registry if registry is not None else CollectorRegistry()
        self.registry.register(self)
        logger.info(f"LatencyHistogram {self.name} initialized with {len(buckets)} buckets.")

    @property
    def series_count(self) -> int:
        return len(self._series)

    def _get_series(self, source: str, destination: str) -> _Series:
        key = (source, destination)
        series = self._series.get(key)
        if series is None:
            with self._series_lock:
                series = self._series.get(key)
                if series is None:
                    series = _Series(len(self.buckets))
                    self._series[key] = series
                    logger.debug(f"Created series source={source} destination={destination}")
        return series

    def observe(self, source: str, destination: str, latency_ms: float):
        """
        Record one latency sample in milliseconds.

        Raises:
            ValueError: If the value is negative or NaN.
        """
        if math.isnan(latency_ms) or latency_ms < 0:
            raise ValueError(f"Invalid latency {latency_ms} for {source}->{destination}")
        # first bucket whose upper bound is >= the sample
        idx = bisect_left(self.buckets, latency_ms)
        series = self._get_series(source, destination)
        with series.lock:
            counts = series.bucket_counts
            for i in range(idx, len(counts)):
                counts[i] += 1
            series.count += 1
            series.sum += latency_ms

    def snapshot(self) -> List[SeriesSnapshot]:
        with self._series_lock:
            items = list(self._series.items())
        items.sort(key=lambda item: item[0])
        snapshots = []
        for (source, destination), series in items:
            with series.lock:
                bucket_counts = tuple(series.bucket_counts)
                count = series.count
                total = series.sum
            snapshots.append(
                SeriesSnapshot(
                    source=source,
                    destination=destination,
                    buckets=self.buckets,
                    bucket_counts=bucket_counts,
                    count=count,
                    sum=total,
                )
            )
        return snapshots

    def describe(self):
        return [HistogramMetricFamily(self.name, self.documentation, labels=LABEL_NAMES)]

    def collect(self):
        family = HistogramMetricFamily(self.name, self.documentation, labels=LABEL_NAMES)
        for snap in self.snapshot():
            buckets = [
                (floatToGoString(b), c) for b, c in zip(snap.buckets, snap.bucket_counts)
            ]
            buckets.append(("+Inf", snap.count))
            family.add_metric([snap.source, snap.destination], buckets, snap.sum)
        yield family

    def export(self) -> bytes:
        """
        Render every series in the Prometheus text exposition format.
        """
        return generate_latest(self.registry)
