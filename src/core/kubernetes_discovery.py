import logging
import os
import ssl
from typing import List, Optional

import httpx
from pydantic import ValidationError

from abstractions.discovery import CredentialsError, DiscoveryError, PeerDiscovery
from contracts.endpoints import Endpoints
from contracts.peer import PeerAddress

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
TOKEN_FILE = os.path.join(SERVICE_ACCOUNT_DIR, "token")
CA_FILE = os.path.join(SERVICE_ACCOUNT_DIR, "ca.crt")


class KubernetesEndpointsDiscovery(PeerDiscovery):
    """
    Resolves a group name to pod IPs by reading the Kubernetes Endpoints object
    of the same name.
    """

    def __init__(
        self,
        api_url: str,
        namespace: str,
        token_file: Optional[str] = None,
        verify=True,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the discovery adapter.

        Args:
            api_url (str): Base URL of the Kubernetes API server.
            namespace (str): Namespace holding the Endpoints objects.
            token_file (Optional[str]): Bearer token file, re-read on every query.
            verify: TLS verification setting passed to httpx.
            timeout (float): Request timeout in seconds.
            client (Optional[httpx.AsyncClient]): Client to use instead of creating one.
        """
        self.api_url = api_url.rstrip("/")
        self.namespace = namespace
        self.token_file = token_file
        self._client = client or httpx.AsyncClient(verify=verify, timeout=timeout)
        logger.info(
            f"KubernetesEndpointsDiscovery initialized for {self.api_url} namespace={self.namespace}"
        )

    @classmethod
    def from_in_cluster(
        cls,
        namespace: str,
        token_file: str = TOKEN_FILE,
        ca_file: str = CA_FILE,
        timeout: float = 5.0,
    ) -> "KubernetesEndpointsDiscovery":
        """
        Build an adapter from the pod's service account.

        Raises:
            CredentialsError: If the API server address, token or CA bundle is missing.
        """
        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        port = os.environ.get("KUBERNETES_SERVICE_PORT")
        if not host or not port:
            raise CredentialsError(
                "Unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST and "
                "KUBERNETES_SERVICE_PORT must be defined"
            )
        for path in (token_file, ca_file):
            if not os.path.isfile(path):
                raise CredentialsError(f"Service account file {path} not found")
        if ":" in host:
            host = f"[{host}]"
        try:
            verify = ssl.create_default_context(cafile=ca_file)
        except (OSError, ssl.SSLError) as e:
            raise CredentialsError(f"Unable to load CA bundle {ca_file}: {e}") from e
        return cls(
            api_url=f"https://{host}:{port}",
            namespace=namespace,
            token_file=token_file,
            verify=verify,
            timeout=timeout,
        )

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token_file:
            try:
                with open(self.token_file) as f:
                    token = f.read().strip()
            except OSError as e:
                raise CredentialsError(
                    f"Unable to read token file {self.token_file}: {e}"
                ) from e
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def list_peers(self, group_name: str) -> List[PeerAddress]:
        url = f"{self.api_url}/api/v1/namespaces/{self.namespace}/endpoints/{group_name}"
        try:
            resp = await self._client.get(url, headers=self._headers())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DiscoveryError(f"Request for endpoints {group_name} failed: {e}") from e
        if resp.status_code != 200:
            raise DiscoveryError(
                f"Endpoints {self.namespace}/{group_name} returned status {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            endpoints = Endpoints.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise DiscoveryError(
                f"Malformed endpoints {self.namespace}/{group_name}: {e}",
                status_code=resp.status_code,
            ) from e

        peers = []
        for subset in endpoints.subsets or []:
            port = subset.ports[0].port if subset.ports else None
            for address in subset.addresses:
                peers.append(PeerAddress(ip=address.ip, port=port, ready=True))
            for address in subset.not_ready_addresses:
                peers.append(PeerAddress(ip=address.ip, port=port, ready=False))
        logger.debug(f"Discovered {len(peers)} peers for {self.namespace}/{group_name}")
        return peers

    async def aclose(self):
        await self._client.aclose()
