from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ProbeOutcome(str, Enum):
    SUCCESS = "success"
    NETWORK_ERROR = "network_error"
    UNEXPECTED_STATUS = "unexpected_status"


class ProbeResult(BaseModel):
    """
    Data model representing the outcome of a single timed probe request.

    latency_ms is None whenever no round trip could be timed, which is always
    the case for NETWORK_ERROR.
    """

    source: str
    destination: str
    port: int
    outcome: ProbeOutcome
    latency_ms: Optional[float] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
