import os


class Config:
    """
    Configuration class for environment variables and default settings.
    """

    # Name of the Endpoints object to watch, usually the service this pod belongs to
    ENDPOINTS_NAME = os.environ.get("ENDPOINTS_NAME", "shelob")
    ENDPOINTS_NAMESPACE = os.environ.get("ENDPOINTS_NAMESPACE", "utils")

    # Go-style duration string, e.g. "1s", "500ms", "1m30s"
    PERIOD_DURATION = os.environ.get("PERIOD_DURATION", "1s")

    # Serves / and /metrics locally, and is the port probed on every peer
    PORT = int(os.environ.get("PORT", "8080"))

    # This pod's own address, used as the "source" label
    SOURCE_IDENTITY = os.environ.get("PODIP", "")

    PROBE_PATH = os.environ.get("PROBE_PATH", "/")
    PROBE_TIMEOUT_SECONDS = float(os.environ.get("PROBE_TIMEOUT_SECONDS", "5.0"))
    # 0 means unbounded fan-out
    MAX_IN_FLIGHT_PROBES = int(os.environ.get("MAX_IN_FLIGHT_PROBES", "0"))
