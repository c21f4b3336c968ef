"""Publish failures.

Every failure names the stage it happened in so callers can tell whether
starting over is safe.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import PublishStage


class InvalidFileBatchError(ValueError):
    """The batch was rejected before any request was sent."""

    pass


class PublishError(Exception):
    """A publish stopped at ``stage``.

    Attributes:
        stage: PublishStage where the failure happened
        cause: The underlying client exception, if any
        base_commit_sha: Branch tip read at the start, once known
        commit_sha: The new commit, once it was created
    """

    def __init__(
        self,
        message: str,
        stage: "PublishStage",
        cause: Optional[BaseException] = None,
        base_commit_sha: Optional[str] = None,
        commit_sha: Optional[str] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.base_commit_sha = base_commit_sha
        self.commit_sha = commit_sha

    @property
    def restart_safe(self) -> bool:
        """True when nothing visible changed and the whole publish can be rerun.

        A pointer failure may or may not have moved the branch; use
        ``AtomicPublisher.resume`` instead of restarting.
        """
        from .models import PublishStage

        return self.stage != PublishStage.POINTER


class PublishConflictError(PublishError):
    """The branch moved under us; the update was not a fast-forward."""

    @property
    def restart_safe(self) -> bool:
        return False
