from typing import Tuple

from pydantic import BaseModel, ConfigDict


class SeriesSnapshot(BaseModel):
    """
    Immutable point-in-time copy of one (source, destination) histogram series.
    bucket_counts are cumulative and line up index for index with buckets.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    destination: str
    buckets: Tuple[float, ...]
    bucket_counts: Tuple[int, ...]
    count: int
    sum: float
