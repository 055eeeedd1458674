from abc import ABC, abstractmethod
from typing import List, Optional

from contracts.peer import PeerAddress


class DiscoveryError(Exception):
    """
    Raised when the peer directory cannot be queried or returns an unusable answer.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CredentialsError(DiscoveryError):
    """
    Raised when no usable identity is available to reach the peer directory.
    """


class PeerDiscovery(ABC):
    """
    Abstract base class for peer discovery implementations.
    """

    @abstractmethod
    async def list_peers(self, group_name: str) -> List[PeerAddress]:
        """
        Return the current peers belonging to a named group.

        Args:
            group_name (str): Name of the group to resolve.

        Returns:
            List[PeerAddress]: Peers in directory order, ready and not ready.

        Raises:
            DiscoveryError: If the directory could not be queried.
        """

    async def aclose(self):
        """
        Release any resources held by the implementation.
        """
