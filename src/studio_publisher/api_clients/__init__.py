"""API Client Abstractions for hosting providers.

Provides HTTP client classes for the source-control host and the deployment
provider; business logic never issues raw HTTP calls.
"""

from .base_client import (
    HostingAPIClient,
    APIClientError,
    AuthenticationError,
    ObjectNotFoundError,
)
from .github_client import (
    GitHubAPIClient,
    Repository,
    GitReference,
    GitCommit,
    GitBlob,
    GitTree,
    TreeEntry,
    RepositoryNotFoundError,
    BranchNotFoundError,
    EmptyRepositoryError,
    RepositoryExistsError,
    BranchConflictError,
)
from .deployment_client import (
    VercelDeploymentClient,
    DeploymentStatus,
    DeploymentFailedError,
    DeploymentTimeoutError,
)

__all__ = [
    # Base client
    "HostingAPIClient",
    "APIClientError",
    "AuthenticationError",
    "ObjectNotFoundError",
    # GitHub client
    "GitHubAPIClient",
    "Repository",
    "GitReference",
    "GitCommit",
    "GitBlob",
    "GitTree",
    "TreeEntry",
    "RepositoryNotFoundError",
    "BranchNotFoundError",
    "EmptyRepositoryError",
    "RepositoryExistsError",
    "BranchConflictError",
    # Deployment client
    "VercelDeploymentClient",
    "DeploymentStatus",
    "DeploymentFailedError",
    "DeploymentTimeoutError",
]
