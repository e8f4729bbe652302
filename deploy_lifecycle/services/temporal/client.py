"""Shared connection to the Temporal server.

The workflow trigger and the in-process worker use one client. It connects on
first use, so the API can come up before the engine is reachable: creates
then land in Pending and the sweep starts them once a connection succeeds.
The last connection error is kept for the health report.
"""

import asyncio
from typing import Optional

from temporalio.client import Client

from deploy_lifecycle.core.logging import get_logger

logger = get_logger(__name__)


class TemporalConnection:
    """Lazily established client for one server address and namespace."""

    def __init__(self, server_address: str, namespace: str = "default"):
        self.server_address = server_address
        self.namespace = namespace
        self.last_error: Optional[str] = None
        self._client: Optional[Client] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def get_client(self) -> Client:
        """Return the shared client, connecting if no attempt has succeeded yet.

        Raises whatever ``Client.connect`` raises; the next call tries again.
        """
        async with self._lock:
            if self._client is None:
                try:
                    self._client = await Client.connect(self.server_address, namespace=self.namespace)
                except Exception as e:
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.warning("Temporal connection failed", server_address=self.server_address,
                                   namespace=self.namespace, error=self.last_error)
                    raise
                self.last_error = None
                logger.info("Temporal connection established", server_address=self.server_address,
                            namespace=self.namespace)
            return self._client

    def close(self) -> None:
        # The SDK client has no close call; dropping it lets the next get_client reconnect
        self._client = None
