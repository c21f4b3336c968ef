"""Create-or-reuse a repository and push a generated project into it."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..api_clients.github_client import (
    BranchNotFoundError,
    EmptyRepositoryError,
    GitHubAPIClient,
    Repository,
    RepositoryExistsError,
)
from .atomic_publisher import AtomicPublisher
from .models import FileChange, PublishResult, validate_batch

logger = logging.getLogger(__name__)

README_PATH = "README.md"


def default_readme(repo: str) -> str:
    """README written into projects that do not ship one."""
    return f"# {repo}\n\nGenerated and published with Studio Publisher.\n"


@dataclass
class InitializationResult:
    """Outcome of ``initialize_and_push``."""

    repository: Repository
    created: bool
    publish: PublishResult


class RepositoryInitializer:
    """Provision a repository and land a file batch on it as one commit."""

    def __init__(
        self,
        client: GitHubAPIClient,
        publisher: Optional[AtomicPublisher] = None,
        description: str = "",
    ):
        self.client = client
        self.publisher = publisher or AtomicPublisher(client)
        self.description = description

    async def ensure_repository(
        self,
        owner: str,
        repo: str,
        private: bool = True,
        organization: Optional[str] = None,
    ) -> Tuple[Repository, bool]:
        """Create ``owner/repo``, or reuse it when the name is already taken.

        Only a name clash is treated as reuse. Permission, validation and
        network failures propagate.

        Returns:
            (repository, created)
        """
        try:
            repository = await self.client.create_repository(
                repo,
                private=private,
                description=self.description,
                organization=organization,
            )
            return repository, True
        except RepositoryExistsError as e:
            logger.warning(
                f"Repository {owner}/{repo} already exists, reusing it ({e})"
            )

        repository = await self.client.get_repository(owner, repo)
        return repository, False

    async def initialize_and_push(
        self,
        owner: str,
        repo: str,
        files: Sequence[FileChange],
        branch: Optional[str] = None,
        private: bool = True,
        include_readme: bool = True,
        message: Optional[str] = None,
        organization: Optional[str] = None,
    ) -> InitializationResult:
        """Ensure the repository exists and publish ``files`` to it atomically.

        Args:
            owner: Repository owner (user login or organization)
            repo: Repository name
            files: Files to publish
            branch: Target branch; defaults to the repository default branch
            private: Visibility for a newly created repository
            include_readme: Add a README.md when the batch has none
            message: Commit message
            organization: Create under this organization instead of the user

        Returns:
            InitializationResult with the repository and the publish outcome
        """
        batch: List[FileChange] = validate_batch(files)
        if include_readme and all(f.path != README_PATH for f in batch):
            batch.append(FileChange(path=README_PATH, content=default_readme(repo)))

        repository, created = await self.ensure_repository(
            owner, repo, private=private, organization=organization
        )
        owner = repository.owner or owner
        target_branch = branch or repository.default_branch
        message = message or f"Initialize {repo}"

        await self._ensure_branch(owner, repo, target_branch, repository, batch[0], message)

        result = await self.publisher.publish(owner, repo, target_branch, batch, message)
        return InitializationResult(repository=repository, created=created, publish=result)

    async def _ensure_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
        repository: Repository,
        seed: FileChange,
        message: str,
    ) -> None:
        """Make sure ``branch`` exists with at least one commit."""
        try:
            await self.client.get_branch_ref(owner, repo, branch)
            return
        except EmptyRepositoryError:
            # git-data endpoints refuse empty repositories; the contents API
            # creates the first commit and the branch with it.
            logger.info(f"Seeding empty repository {owner}/{repo} with {seed.path}")
            await self.client.put_file(
                owner, repo, seed.path, seed.content, message, branch=branch
            )
            return
        except BranchNotFoundError:
            if branch == repository.default_branch:
                raise

        default_ref = await self.client.get_branch_ref(
            owner, repo, repository.default_branch
        )
        logger.info(
            f"Creating branch {branch} from {repository.default_branch} ({default_ref.sha})"
        )
        await self.client.create_branch_ref(owner, repo, branch, default_ref.sha)
