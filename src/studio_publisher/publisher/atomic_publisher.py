"""Atomic multi-file publishing.

Publishes a batch of files to a branch as exactly one new commit:

    read ref -> read commit -> create blobs -> create tree -> create commit -> move ref

Nothing visible changes until the final ref update. Every object created
before it is new and unreferenced, so a failure at any earlier stage leaves
the branch exactly where it was. The ref update is a fast-forward only
(``force=false``); if another writer moved the branch in the meantime the
provider rejects it and we raise PublishConflictError.
"""

import asyncio
import logging
from typing import Awaitable, Dict, List, Optional, Sequence, TypeVar

from ..api_clients.base_client import CLIENT_ERRORS
from ..api_clients.github_client import (
    BranchConflictError,
    GitHubAPIClient,
    TreeEntry,
    REGULAR_FILE_MODE,
)
from .errors import PublishConflictError, PublishError
from .models import FileChange, PublishResult, PublishStage, validate_batch

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AtomicPublisher:
    """Publish file batches onto a branch as single commits."""

    def __init__(
        self,
        client: GitHubAPIClient,
        max_concurrent_blobs: int = 8,
        verify_tip_before_advance: bool = True,
    ):
        """
        Args:
            client: Authenticated GitHub client
            max_concurrent_blobs: Blob uploads allowed in flight at once
            verify_tip_before_advance: Re-read the tip right before moving the
                branch and report a conflict without writing if it changed
        """
        if max_concurrent_blobs < 1:
            raise ValueError("max_concurrent_blobs must be >= 1")
        self.client = client
        self.max_concurrent_blobs = max_concurrent_blobs
        self.verify_tip_before_advance = verify_tip_before_advance

    async def publish(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: Sequence[FileChange],
        message: str,
    ) -> PublishResult:
        """Publish ``files`` onto ``branch`` as one new commit.

        Args:
            owner: Repository owner
            repo: Repository name
            branch: Existing branch with at least one commit
            files: Non-empty batch with unique paths
            message: Commit message

        Returns:
            PublishResult describing the new commit

        Raises:
            InvalidFileBatchError: Before any request, for a malformed batch
            PublishConflictError: If the branch moved concurrently
            PublishError: If any stage fails; ``stage`` says which
        """
        batch = validate_batch(files)
        target = f"{owner}/{repo}@{branch}"
        logger.debug(f"Publishing {len(batch)} file(s) to {target}")

        ref = await self._stage(
            PublishStage.READ,
            self.client.get_branch_ref(owner, repo, branch),
            f"Failed to read branch {target}",
        )
        base_commit_sha = ref.sha

        base_commit = await self._stage(
            PublishStage.READ,
            self.client.get_commit(owner, repo, base_commit_sha),
            f"Failed to read commit {base_commit_sha}",
            base_commit_sha=base_commit_sha,
        )
        base_tree_sha = base_commit.tree_sha
        logger.debug(f"Base commit {base_commit_sha}, tree {base_tree_sha}")

        blob_shas = await self._create_blobs(owner, repo, batch, base_commit_sha)

        entries = [
            TreeEntry(path=change.path, sha=blob_shas[change.path], mode=REGULAR_FILE_MODE)
            for change in batch
        ]
        tree = await self._stage(
            PublishStage.TREE,
            self.client.create_tree(owner, repo, entries, base_tree_sha=base_tree_sha),
            "Failed to create tree",
            base_commit_sha=base_commit_sha,
        )
        logger.debug(f"Created tree {tree.sha}")

        commit = await self._stage(
            PublishStage.COMMIT,
            self.client.create_commit(owner, repo, message, tree.sha, [base_commit_sha]),
            "Failed to create commit",
            base_commit_sha=base_commit_sha,
        )
        logger.debug(f"Created commit {commit.sha}")

        await self._advance(owner, repo, branch, commit.sha, base_commit_sha)

        logger.info(
            f"Published {len(batch)} file(s) to {target} as {commit.sha} "
            f"(parent {base_commit_sha})"
        )
        return PublishResult(
            owner=owner,
            repo=repo,
            branch=branch,
            commit_sha=commit.sha,
            tree_sha=tree.sha,
            base_commit_sha=base_commit_sha,
            base_tree_sha=base_tree_sha,
            blob_shas=blob_shas,
        )

    async def resume(
        self,
        owner: str,
        repo: str,
        branch: str,
        commit_sha: str,
        base_commit_sha: str,
    ) -> str:
        """Finish a publish whose branch update failed or timed out.

        Re-reads the branch first: if it already points at ``commit_sha``
        the earlier update went through. If it still points at
        ``base_commit_sha`` the update is attempted again. Anything else is
        a conflict.

        Returns:
            ``commit_sha`` once the branch points at it
        """
        ref = await self._stage(
            PublishStage.POINTER,
            self.client.get_branch_ref(owner, repo, branch),
            f"Failed to re-read branch {branch}",
            base_commit_sha=base_commit_sha,
            commit_sha=commit_sha,
        )
        if ref.sha == commit_sha:
            logger.info(f"Branch {branch} already points at {commit_sha}")
            return commit_sha
        if ref.sha != base_commit_sha:
            raise PublishConflictError(
                f"Branch {branch} moved to {ref.sha}; expected {base_commit_sha}",
                PublishStage.POINTER,
                base_commit_sha=base_commit_sha,
                commit_sha=commit_sha,
            )

        await self._advance(owner, repo, branch, commit_sha, base_commit_sha, verify=False)
        return commit_sha

    async def _create_blobs(
        self,
        owner: str,
        repo: str,
        batch: List[FileChange],
        base_commit_sha: str,
    ) -> Dict[str, str]:
        """Upload every file as a blob, concurrently, and map path to sha.

        All uploads settle before returning or raising; a failed upload
        leaves its siblings' blobs orphaned, which is harmless.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_blobs)

        async def _upload(change: FileChange) -> str:
            async with semaphore:
                blob = await self.client.create_blob(owner, repo, change.content)
                logger.debug(f"Blob {blob.sha} for {change.path}")
                return blob.sha

        results = await asyncio.gather(
            *(_upload(change) for change in batch), return_exceptions=True
        )

        blob_shas: Dict[str, str] = {}
        for change, result in zip(batch, results):
            if isinstance(result, BaseException):
                if not isinstance(result, CLIENT_ERRORS):
                    raise result
                raise PublishError(
                    f"Failed to create blob for {change.path}: {result}",
                    PublishStage.BLOB,
                    cause=result,
                    base_commit_sha=base_commit_sha,
                ) from result
            blob_shas[change.path] = result
        return blob_shas

    async def _advance(
        self,
        owner: str,
        repo: str,
        branch: str,
        commit_sha: str,
        base_commit_sha: str,
        verify: Optional[bool] = None,
    ) -> None:
        """Move the branch from ``base_commit_sha`` to ``commit_sha``."""
        if verify is None:
            verify = self.verify_tip_before_advance

        if verify:
            current = await self._stage(
                PublishStage.POINTER,
                self.client.get_branch_ref(owner, repo, branch),
                f"Failed to re-read branch {branch}",
                base_commit_sha=base_commit_sha,
                commit_sha=commit_sha,
            )
            if current.sha != base_commit_sha:
                raise PublishConflictError(
                    f"Branch {branch} moved from {base_commit_sha} to {current.sha} "
                    "while publishing",
                    PublishStage.POINTER,
                    base_commit_sha=base_commit_sha,
                    commit_sha=commit_sha,
                )

        try:
            ref = await self.client.update_branch_ref(
                owner, repo, branch, commit_sha, force=False
            )
        except BranchConflictError as e:
            raise PublishConflictError(
                str(e),
                PublishStage.POINTER,
                cause=e,
                base_commit_sha=base_commit_sha,
                commit_sha=commit_sha,
            ) from e
        except CLIENT_ERRORS as e:
            raise PublishError(
                f"Failed to move branch {branch} to {commit_sha}: {e}",
                PublishStage.POINTER,
                cause=e,
                base_commit_sha=base_commit_sha,
                commit_sha=commit_sha,
            ) from e

        if ref.sha != commit_sha:
            raise PublishError(
                f"Branch {branch} points at {ref.sha} after update, expected {commit_sha}",
                PublishStage.POINTER,
                base_commit_sha=base_commit_sha,
                commit_sha=commit_sha,
            )

    @staticmethod
    async def _stage(
        stage: PublishStage,
        call: Awaitable[T],
        message: str,
        base_commit_sha: Optional[str] = None,
        commit_sha: Optional[str] = None,
    ) -> T:
        """Await a client call and tag any failure with ``stage``."""
        try:
            return await call
        except CLIENT_ERRORS as e:
            raise PublishError(
                f"{message}: {e}",
                stage,
                cause=e,
                base_commit_sha=base_commit_sha,
                commit_sha=commit_sha,
            ) from e
