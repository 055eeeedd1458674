import argparse
import logging
import sys

import uvicorn

from abstractions.discovery import CredentialsError
from config.config import Config
from config.logging_config import setup_logging
from core.kubernetes_discovery import KubernetesEndpointsDiscovery
from core.latency_prober import LatencyProber
from server import create_app

setup_logging()
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Measure pod-to-pod HTTP latency and export it for Prometheus."
    )
    parser.add_argument(
        "--endpointsname",
        default=Config.ENDPOINTS_NAME,
        help="Endpoints object name, usually the servicename this pod belongs to.",
    )
    parser.add_argument(
        "--namespace",
        default=Config.ENDPOINTS_NAMESPACE,
        help="Namespace of the Endpoints object.",
    )
    parser.add_argument(
        "--period-duration",
        default=Config.PERIOD_DURATION,
        help="Go style duration (e.g. 1s, 500ms) between endpoint tests.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=Config.PORT,
        help="Port to serve the test (/) and metrics (/metrics) endpoints on, also probed on peers.",
    )
    parser.add_argument(
        "--probe-timeout",
        type=float,
        default=Config.PROBE_TIMEOUT_SECONDS,
        help="Timeout in seconds for a single probe request.",
    )
    parser.add_argument(
        "--max-in-flight",
        type=int,
        default=Config.MAX_IN_FLIGHT_PROBES,
        help="Maximum concurrent probes, 0 for unbounded.",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logger.info(f"Watched endpoint: {args.namespace}/{args.endpointsname}")
    if not Config.SOURCE_IDENTITY:
        logger.warning("PODIP is not set, source label will be empty")

    try:
        discovery = KubernetesEndpointsDiscovery.from_in_cluster(namespace=args.namespace)
    except CredentialsError as e:
        logger.critical(f"Error building kubeconfig: {e}")
        sys.exit(1)

    app = create_app(
        discovery=discovery,
        prober=LatencyProber(
            source=Config.SOURCE_IDENTITY,
            path=Config.PROBE_PATH,
            timeout=args.probe_timeout,
        ),
        group_name=args.endpointsname,
        period=args.period_duration,
        port=args.port,
        source=Config.SOURCE_IDENTITY,
        max_in_flight=args.max_in_flight,
    )
    uvicorn.run(app, host="0.0.0.0", port=args.port, log_config=None)


if __name__ == "__main__":
    main()
