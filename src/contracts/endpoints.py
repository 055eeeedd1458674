"""
Subset of the Kubernetes core/v1 Endpoints schema needed for peer discovery.
Unknown fields are ignored.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class EndpointAddress(BaseModel):
    ip: str


class EndpointPort(BaseModel):
    port: int
    name: Optional[str] = None
    protocol: Optional[str] = None


class EndpointSubset(BaseModel):
    addresses: List[EndpointAddress] = Field(default_factory=list)
    not_ready_addresses: List[EndpointAddress] = Field(
        default_factory=list, alias="notReadyAddresses"
    )
    ports: List[EndpointPort] = Field(default_factory=list)


class Endpoints(BaseModel):
    subsets: Optional[List[EndpointSubset]] = None
