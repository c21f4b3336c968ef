"""Deployment API Client.

Sends a file batch to the deployment provider and polls the resulting
deployment until it is ready or failed.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel, Field

from ..publisher.models import FileChange
from .base_client import HostingAPIClient, APIClientError, ObjectNotFoundError

logger = logging.getLogger(__name__)

TERMINAL_STATES = {"READY", "ERROR", "CANCELED"}


class DeploymentFailedError(APIClientError):
    """Exception raised when a deployment ends in ERROR or CANCELED."""

    def __init__(self, message: str, state: str):
        super().__init__(message)
        self.state = state
        self.is_retryable = False


class DeploymentTimeoutError(APIClientError):
    """Exception raised when a deployment does not settle in time."""

    def __init__(self, message: str, last_state: Optional[str] = None):
        super().__init__(message)
        self.last_state = last_state
        self.is_retryable = False


class DeploymentStatus(BaseModel):
    """Deployment state as reported by the provider."""

    id: str = Field(..., description="Deployment id")
    url: str = Field(default="", description="Deployment hostname")
    state: str = Field(default="INITIALIZING", description="readyState")
    created_at: Optional[int] = Field(default=None, description="Epoch milliseconds")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DeploymentStatus":
        return cls(
            id=data["id"],
            url=data.get("url") or "",
            state=data.get("readyState") or data.get("state") or "INITIALIZING",
            created_at=data.get("createdAt"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class VercelDeploymentClient(HostingAPIClient):
    """Client for creating and watching deployments."""

    DEFAULT_BASE_URL = "https://api.vercel.com"

    async def create_deployment(
        self,
        project_name: str,
        files: Sequence[FileChange],
        framework: str = "nextjs",
    ) -> DeploymentStatus:
        """Create a deployment from inline files.

        Not retried: a timed-out request may still have created a deployment.
        """
        if not files:
            raise ValueError("At least one file is required to deploy")

        payload = {
            "name": project_name,
            "files": [{"file": f.path, "data": f.content} for f in files],
            "projectSettings": {"framework": framework},
        }
        response = await self._request(
            "POST", "/v13/deployments", json=payload, retry=False
        )
        status = self._parse(response, DeploymentStatus.from_api)
        logger.info(f"Created deployment {status.id} ({status.state}) for {project_name}")
        return status

    async def get_deployment(self, deployment_id: str) -> DeploymentStatus:
        """Fetch the current state of a deployment."""
        try:
            response = await self._request("GET", f"/v13/deployments/{deployment_id}")
        except APIClientError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(f"Deployment {deployment_id} not found")
            raise
        return self._parse(response, DeploymentStatus.from_api)

    async def wait_for_deployment(
        self,
        deployment_id: str,
        poll_interval: float = 2.0,
        timeout: float = 300.0,
    ) -> DeploymentStatus:
        """Poll until the deployment reaches a terminal state.

        Raises:
            DeploymentFailedError: If it ends in ERROR or CANCELED
            DeploymentTimeoutError: If ``timeout`` seconds pass first
        """
        deadline = time.monotonic() + timeout
        last_state: Optional[str] = None

        while True:
            status = await self.get_deployment(deployment_id)
            if status.state != last_state:
                logger.debug(f"Deployment {deployment_id}: {status.state}")
                last_state = status.state

            if status.state == "READY":
                return status
            if status.is_terminal:
                raise DeploymentFailedError(
                    f"Deployment {deployment_id} ended in {status.state}", status.state
                )

            if time.monotonic() + poll_interval > deadline:
                raise DeploymentTimeoutError(
                    f"Deployment {deployment_id} not ready after {timeout:.0f}s "
                    f"(last state {status.state})",
                    last_state=status.state,
                )
            await asyncio.sleep(poll_interval)
