import random
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from prometheus_client import CollectorRegistry

from core.latency_histogram import DEFAULT_BUCKETS_MS, METRIC_NAME, LatencyHistogram


class TestLatencyHistogram(unittest.TestCase):
    def setUp(self):
        self.sink = LatencyHistogram()

    def test_default_buckets(self):
        self.assertEqual(len(DEFAULT_BUCKETS_MS), 62)
        self.assertEqual(DEFAULT_BUCKETS_MS[0], 1.0)
        self.assertEqual(DEFAULT_BUCKETS_MS[19], 20.0)
        self.assertEqual(DEFAULT_BUCKETS_MS[20], 25.0)
        self.assertEqual(DEFAULT_BUCKETS_MS[-2], 5000.0)
        self.assertEqual(DEFAULT_BUCKETS_MS[-1], 10000.0)
        self.assertTrue(all(a < b for a, b in zip(DEFAULT_BUCKETS_MS, DEFAULT_BUCKETS_MS[1:])))

    def test_rejects_unsorted_buckets(self):
        with self.assertRaises(ValueError):
            LatencyHistogram(buckets=[1, 5, 5, 10])
        with self.assertRaises(ValueError):
            LatencyHistogram(buckets=[10, 1])
        with self.assertRaises(ValueError):
            LatencyHistogram(buckets=[])

    def test_observe_is_cumulative(self):
        sink = LatencyHistogram(buckets=[1, 5, 10])
        sink.observe("a", "b", 0.5)
        sink.observe("a", "b", 5.0)  # exactly on a threshold
        sink.observe("a", "b", 7.0)
        sink.observe("a", "b", 50.0)  # above every bucket, only in +Inf
        (snap,) = sink.snapshot()
        self.assertEqual(snap.bucket_counts, (1, 2, 3))
        self.assertEqual(snap.count, 4)
        self.assertAlmostEqual(snap.sum, 62.5)

    def test_series_created_lazily_per_label_pair(self):
        self.assertEqual(self.sink.series_count, 0)
        self.sink.observe("a", "b", 1.0)
        self.sink.observe("a", "b", 2.0)
        self.sink.observe("a", "c", 3.0)
        self.assertEqual(self.sink.series_count, 2)
        keys = [(s.source, s.destination) for s in self.sink.snapshot()]
        self.assertEqual(keys, [("a", "b"), ("a", "c")])

    def test_rejects_invalid_latency(self):
        with self.assertRaises(ValueError):
            self.sink.observe("a", "b", -1.0)
        with self.assertRaises(ValueError):
            self.sink.observe("a", "b", float("nan"))
        self.assertEqual(self.sink.series_count, 0)

    def test_snapshot_twice_is_identical(self):
        for v in (0.2, 3.0, 17.0, 900.0):
            self.sink.observe("a", "b", v)
        self.assertEqual(self.sink.snapshot(), self.sink.snapshot())
        self.assertEqual(self.sink.export(), self.sink.export())

    def test_snapshot_sorts_outside_series_lock(self):
        lock_held = []
        sink = self.sink

        class Label(str):
            def __lt__(self, other):
                lock_held.append(sink._series_lock.locked())
                return str.__lt__(self, other)

        for source in ("c", "a", "b"):
            sink.observe(Label(source), "d", 1.0)
        self.assertEqual([s.source for s in sink.snapshot()], ["a", "b", "c"])
        self.assertTrue(lock_held)
        self.assertFalse(any(lock_held))

    def test_snapshot_is_detached_from_later_observations(self):
        self.sink.observe("a", "b", 1.0)
        before = self.sink.snapshot()
        self.sink.observe("a", "b", 1.0)
        self.assertEqual(before[0].count, 1)
        self.assertEqual(self.sink.snapshot()[0].count, 2)

    def test_concurrent_observations_keep_cumulative_order(self):
        sink = LatencyHistogram()
        pairs = [("src", f"10.0.0.{i}") for i in range(4)]
        per_thread = 500
        threads = 8
        stop = threading.Event()
        violations = []

        def writer(seed):
            rng = random.Random(seed)
            for _ in range(per_thread):
                source, dest = rng.choice(pairs)
                sink.observe(source, dest, rng.uniform(0, 12000))

        def reader():
            while not stop.is_set():
                for snap in sink.snapshot():
                    counts = snap.bucket_counts
                    if any(a > b for a, b in zip(counts, counts[1:])) or counts[-1] > snap.count:
                        violations.append(snap)

        reader_thread = threading.Thread(target=reader)
        reader_thread.start()
        with ThreadPoolExecutor(max_workers=threads) as pool:
            list(pool.map(writer, range(threads)))
        stop.set()
        reader_thread.join()

        self.assertEqual(violations, [])
        snaps = sink.snapshot()
        self.assertEqual(sum(s.count for s in snaps), per_thread * threads)
        for snap in snaps:
            counts = snap.bucket_counts
            self.assertTrue(all(a <= b for a, b in zip(counts, counts[1:])))
            self.assertLessEqual(counts[-1], snap.count)

    def test_export_format(self):
        self.sink.observe("10.0.0.1", "10.0.0.2", 4.2)
        text = self.sink.export().decode()
        self.assertIn(f"# TYPE {METRIC_NAME} histogram", text)
        self.assertIn(
            f'{METRIC_NAME}_bucket{{source="10.0.0.1",destination="10.0.0.2",le="5.0"}} 1.0',
            text,
        )
        self.assertIn(
            f'{METRIC_NAME}_bucket{{source="10.0.0.1",destination="10.0.0.2",le="4.0"}} 0.0',
            text,
        )
        self.assertIn(
            f'{METRIC_NAME}_bucket{{source="10.0.0.1",destination="10.0.0.2",le="+Inf"}} 1.0',
            text,
        )
        self.assertIn(
            f'{METRIC_NAME}_count{{source="10.0.0.1",destination="10.0.0.2"}} 1.0', text
        )

    def test_owned_registry_is_isolated(self):
        # Two sinks with the same metric name must not collide
        other = LatencyHistogram()
        self.assertIsNot(other.registry, self.sink.registry)
        other.observe("x", "y", 1.0)
        self.assertNotIn(b'source="x"', self.sink.export())

    def test_uses_supplied_registry(self):
        registry = CollectorRegistry()
        sink = LatencyHistogram(registry=registry, name="custom_latency_ms")
        sink.observe("a", "b", 2.0)
        self.assertEqual(
            registry.get_sample_value(
                "custom_latency_ms_count", {"source": "a", "destination": "b"}
            ),
            1.0,
        )


if __name__ == "__main__":
    unittest.main()
