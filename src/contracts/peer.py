from typing import Optional

from pydantic import BaseModel


class PeerAddress(BaseModel):
    """
    Data model representing one discovered peer replica.
    """

    ip: str
    port: Optional[int] = None
    ready: bool = True

    def __repr__(self):
        return f"PeerAddress(ip={self.ip}, port={self.port}, ready={self.ready})"
