import time
import unittest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from prometheus_client import CONTENT_TYPE_LATEST

from abstractions.discovery import PeerDiscovery
from core.latency_histogram import METRIC_NAME, LatencyHistogram
from server import create_app


class TestServerModule(unittest.TestCase):
    def setUp(self):
        self.discovery = MagicMock(spec=PeerDiscovery)
        self.discovery.list_peers = AsyncMock(return_value=[])
        self.discovery.aclose = AsyncMock()
        self.sink = LatencyHistogram()
        self.app = create_app(
            discovery=self.discovery, sink=self.sink, period="50ms", source="10.0.0.9"
        )
        self.client = TestClient(self.app)

    def test_liveness(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "ok")

    def test_metrics_endpoint(self):
        self.sink.observe("10.0.0.9", "10.0.0.1", 12.0)
        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], CONTENT_TYPE_LATEST)
        self.assertIn(
            f'{METRIC_NAME}_count{{source="10.0.0.9",destination="10.0.0.1"}} 1.0',
            response.text,
        )

    def test_metrics_endpoint_without_observations(self):
        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn(f"# TYPE {METRIC_NAME} histogram", response.text)

    def test_lifespan_runs_probe_loop(self):
        probe_loop = self.app.state.probe_loop
        with TestClient(self.app) as client:
            self.assertTrue(probe_loop.running)
            # the app's event loop runs in the client's portal thread
            time.sleep(0.2)
            self.assertEqual(client.get("/").status_code, 200)
        self.assertFalse(probe_loop.running)
        self.discovery.list_peers.assert_awaited_with("shelob")
        self.discovery.aclose.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
