"""GitHub API Client.

Wraps the repository, contents and git-data endpoints used to publish files.
Only the git-data calls take part in atomic publishing; the contents call
exists to seed a branch in an empty repository, where git-data is rejected.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field

from ..utils.encoding import decode_content, encode_content
from .base_client import HostingAPIClient, APIClientError, ObjectNotFoundError

logger = logging.getLogger(__name__)

REGULAR_FILE_MODE = "100644"


class RepositoryNotFoundError(ObjectNotFoundError):
    """Exception raised when a repository does not exist or is not visible."""

    pass


class BranchNotFoundError(ObjectNotFoundError):
    """Exception raised when a branch ref does not exist."""

    pass


class EmptyRepositoryError(BranchNotFoundError):
    """Exception raised for git-data calls against a repository with no commits."""

    def __init__(self, message: str, status_code: Optional[int] = 409):
        super().__init__(message, status_code)


class RepositoryExistsError(APIClientError):
    """Exception raised when creating a repository whose name is taken."""

    def __init__(self, message: str, status_code: Optional[int] = 422):
        super().__init__(message, status_code)
        self.is_retryable = False


class BranchConflictError(APIClientError):
    """Exception raised when a ref update is not a fast-forward."""

    def __init__(self, message: str, status_code: Optional[int] = 422):
        super().__init__(message, status_code)
        self.is_retryable = False


class Repository(BaseModel):
    """A GitHub repository."""

    name: str = Field(..., description="Repository name")
    full_name: str = Field(..., description="owner/name")
    owner: str = Field(..., description="Owner login")
    html_url: str = Field(default="", description="Browser URL")
    default_branch: str = Field(default="main", description="Default branch name")
    private: bool = Field(default=True, description="Repository visibility")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Repository":
        owner = data.get("owner") or {}
        return cls(
            name=data["name"],
            full_name=data.get("full_name") or f"{owner.get('login', '')}/{data['name']}",
            owner=owner.get("login", ""),
            html_url=data.get("html_url", ""),
            default_branch=data.get("default_branch") or "main",
            private=bool(data.get("private", True)),
        )


class GitReference(BaseModel):
    """A ref and the commit it points at."""

    ref: str = Field(..., description="Full ref name, e.g. refs/heads/main")
    sha: str = Field(..., description="Commit the ref points at")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GitReference":
        return cls(ref=data["ref"], sha=data["object"]["sha"])


class GitCommit(BaseModel):
    """A commit object."""

    sha: str = Field(..., description="Commit sha")
    tree_sha: str = Field(..., description="Root tree of the commit")
    parent_shas: List[str] = Field(default_factory=list, description="Parent commits")
    message: str = Field(default="", description="Commit message")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GitCommit":
        return cls(
            sha=data["sha"],
            tree_sha=data["tree"]["sha"],
            parent_shas=[p["sha"] for p in data.get("parents", [])],
            message=data.get("message", ""),
        )


class GitBlob(BaseModel):
    """A blob reference."""

    sha: str = Field(..., description="Blob sha")


class TreeEntry(BaseModel):
    """One entry of a tree, as sent to and returned by the API."""

    path: str = Field(..., description="Path relative to the tree root")
    sha: Optional[str] = Field(default=None, description="Object sha")
    mode: str = Field(default=REGULAR_FILE_MODE, description="Git file mode")
    type: str = Field(default="blob", description="blob, tree or commit")

    def to_api(self) -> Dict[str, Any]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}


class GitTree(BaseModel):
    """A tree object."""

    sha: str = Field(..., description="Tree sha")
    entries: List[TreeEntry] = Field(default_factory=list, description="Tree entries")
    truncated: bool = Field(default=False, description="Listing was cut short")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GitTree":
        return cls(
            sha=data["sha"],
            entries=[
                TreeEntry(
                    path=e["path"],
                    sha=e.get("sha"),
                    mode=e.get("mode", REGULAR_FILE_MODE),
                    type=e.get("type", "blob"),
                )
                for e in data.get("tree", [])
            ],
            truncated=bool(data.get("truncated", False)),
        )

    def blob_map(self) -> Dict[str, str]:
        """Map every blob path to its sha."""
        return {e.path: e.sha for e in self.entries if e.type == "blob" and e.sha}


def _segment(value: str) -> str:
    """Quote a single URL path segment."""
    return quote(value, safe="")


def _path(value: str) -> str:
    """Quote a slash separated path, keeping the slashes."""
    return quote(value, safe="/")


def _blob_text(data: Dict[str, Any]) -> str:
    """Blob content from a GET blob body."""
    if data.get("encoding") == "base64":
        return decode_content(data.get("content", ""))
    return str(data.get("content", ""))


class GitHubAPIClient(HostingAPIClient):
    """Client for GitHub repository and git-data operations."""

    DEFAULT_BASE_URL = "https://api.github.com"

    def _default_headers(self) -> Dict[str, str]:
        headers = super()._default_headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = "2022-11-28"
        return headers

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{_segment(owner)}/{_segment(repo)}"

    # Repositories

    async def create_repository(
        self,
        name: str,
        private: bool = True,
        description: str = "",
        auto_init: bool = False,
        organization: Optional[str] = None,
    ) -> Repository:
        """Create a repository for the authenticated user or an organization.

        Raises:
            RepositoryExistsError: If the name is already taken
            APIClientError: If API request fails
        """
        endpoint = f"/orgs/{_segment(organization)}/repos" if organization else "/user/repos"
        payload = {
            "name": name,
            "private": private,
            "auto_init": auto_init,
            "description": description,
        }
        try:
            response = await self._request("POST", endpoint, json=payload, retry=False)
        except APIClientError as e:
            if e.status_code == 422 and "already exists" in str(e).lower():
                raise RepositoryExistsError(f"Repository '{name}' already exists: {e}")
            raise

        repository = self._parse(response, Repository.from_api)
        logger.info(f"Created repository {repository.full_name}")
        return repository

    async def get_repository(self, owner: str, repo: str) -> Repository:
        """Fetch repository metadata.

        Raises:
            RepositoryNotFoundError: If the repository is missing or hidden
        """
        try:
            response = await self._request("GET", self._repo_path(owner, repo))
        except APIClientError as e:
            if e.status_code == 404:
                raise RepositoryNotFoundError(f"Repository {owner}/{repo} not found")
            raise
        return self._parse(response, Repository.from_api)

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create or update a single file through the contents API.

        Each call makes its own commit. Pass ``sha`` of the current blob
        when replacing an existing file.
        """
        payload: Dict[str, Any] = {
            "message": message,
            "content": encode_content(content),
        }
        if sha:
            payload["sha"] = sha
        if branch:
            payload["branch"] = branch

        endpoint = f"{self._repo_path(owner, repo)}/contents/{_path(path)}"
        try:
            response = await self._request("PUT", endpoint, json=payload, retry=False)
        except APIClientError as e:
            if e.status_code == 404:
                raise RepositoryNotFoundError(f"Repository {owner}/{repo} not found")
            raise APIClientError(f"Push file error ({path}): {e}", e.status_code)
        return self._json(response)

    # Refs

    async def get_branch_ref(self, owner: str, repo: str, branch: str) -> GitReference:
        """Resolve a branch to its tip commit.

        Raises:
            EmptyRepositoryError: If the repository has no commits yet
            BranchNotFoundError: If the branch does not exist
        """
        endpoint = f"{self._repo_path(owner, repo)}/git/ref/heads/{_path(branch)}"
        try:
            response = await self._request("GET", endpoint)
        except APIClientError as e:
            if e.status_code == 409:
                raise EmptyRepositoryError(f"Repository {owner}/{repo} is empty: {e}")
            if e.status_code == 404:
                raise BranchNotFoundError(
                    f"Branch '{branch}' not found in {owner}/{repo}"
                )
            raise
        return self._parse(response, GitReference.from_api)

    async def create_branch_ref(
        self, owner: str, repo: str, branch: str, sha: str
    ) -> GitReference:
        """Create ``refs/heads/<branch>`` pointing at ``sha``."""
        response = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
            retry=False,
        )
        return self._parse(response, GitReference.from_api)

    async def update_branch_ref(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> GitReference:
        """Move a branch to ``sha``.

        Never retried here: after a timeout the move may or may not have
        happened and the caller has to re-read the branch.

        Raises:
            BranchConflictError: If the move is not a fast-forward
            BranchNotFoundError: If the branch does not exist
        """
        endpoint = f"{self._repo_path(owner, repo)}/git/refs/heads/{_path(branch)}"
        try:
            response = await self._request(
                "PATCH", endpoint, json={"sha": sha, "force": force}, retry=False
            )
        except APIClientError as e:
            if e.status_code in (409, 422) and "fast forward" in str(e).lower():
                raise BranchConflictError(
                    f"Branch '{branch}' was updated concurrently: {e}", e.status_code
                )
            if e.status_code == 404:
                raise BranchNotFoundError(
                    f"Branch '{branch}' not found in {owner}/{repo}"
                )
            raise
        return self._parse(response, GitReference.from_api)

    # Git objects

    async def get_commit(self, owner: str, repo: str, sha: str) -> GitCommit:
        """Read a commit object."""
        endpoint = f"{self._repo_path(owner, repo)}/git/commits/{_segment(sha)}"
        try:
            response = await self._request("GET", endpoint)
        except APIClientError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(f"Commit {sha} not found in {owner}/{repo}")
            raise
        return self._parse(response, GitCommit.from_api)

    async def create_blob(self, owner: str, repo: str, content: str) -> GitBlob:
        """Store text content as a blob (base64 over UTF-8)."""
        response = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/blobs",
            json={"content": encode_content(content), "encoding": "base64"},
        )
        return self._parse(response, lambda data: GitBlob(sha=data["sha"]))

    async def get_blob(self, owner: str, repo: str, sha: str) -> str:
        """Read a blob back as text."""
        endpoint = f"{self._repo_path(owner, repo)}/git/blobs/{_segment(sha)}"
        try:
            response = await self._request("GET", endpoint)
        except APIClientError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(f"Blob {sha} not found in {owner}/{repo}")
            raise
        return self._parse(response, _blob_text)

    async def create_tree(
        self,
        owner: str,
        repo: str,
        entries: List[TreeEntry],
        base_tree_sha: Optional[str] = None,
    ) -> GitTree:
        """Create a tree from ``base_tree_sha`` with ``entries`` overlaid."""
        payload: Dict[str, Any] = {"tree": [e.to_api() for e in entries]}
        if base_tree_sha:
            payload["base_tree"] = base_tree_sha
        response = await self._request(
            "POST", f"{self._repo_path(owner, repo)}/git/trees", json=payload
        )
        return self._parse(response, GitTree.from_api)

    async def get_tree(
        self, owner: str, repo: str, sha: str, recursive: bool = True
    ) -> GitTree:
        """Read a tree, flattened to every path when ``recursive``."""
        params = {"recursive": "1"} if recursive else None
        endpoint = f"{self._repo_path(owner, repo)}/git/trees/{_segment(sha)}"
        try:
            response = await self._request("GET", endpoint, params=params)
        except APIClientError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(f"Tree {sha} not found in {owner}/{repo}")
            raise
        return self._parse(response, GitTree.from_api)

    async def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree_sha: str,
        parent_shas: List[str],
    ) -> GitCommit:
        """Create a commit object. The commit is unreferenced until a ref moves to it."""
        response = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/commits",
            json={"message": message, "tree": tree_sha, "parents": parent_shas},
        )
        return self._parse(response, GitCommit.from_api)
