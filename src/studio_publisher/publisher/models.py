"""Data model for atomic publishing."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Sequence

from ..utils.encoding import is_utf8_text
from .errors import InvalidFileBatchError


class PublishStage(str, Enum):
    """Publish steps, in the order they run."""

    READ = "read"
    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"
    POINTER = "pointer"


@dataclass(frozen=True)
class FileChange:
    """One file to write: repository-relative path plus UTF-8 text."""

    path: str
    content: str

    def validate(self) -> None:
        """Raise InvalidFileBatchError if the path or content is unusable."""
        if not isinstance(self.path, str) or not self.path:
            raise InvalidFileBatchError("File path must be a non-empty string")
        if self.path.startswith("/"):
            raise InvalidFileBatchError(
                f"File path must be repository-relative: {self.path!r}"
            )
        if "\\" in self.path:
            raise InvalidFileBatchError(
                f"File path must use forward slashes: {self.path!r}"
            )
        for segment in self.path.split("/"):
            if segment in ("", ".", ".."):
                raise InvalidFileBatchError(
                    f"File path has an empty or relative segment: {self.path!r}"
                )
        if not isinstance(self.content, str):
            raise InvalidFileBatchError(
                f"Content for {self.path!r} must be text, got {type(self.content).__name__}"
            )
        if not is_utf8_text(self.content):
            raise InvalidFileBatchError(
                f"Content for {self.path!r} is not representable as UTF-8"
            )


def validate_batch(files: Iterable[FileChange]) -> List[FileChange]:
    """Check a batch before any network call and return it as a list.

    Raises:
        InvalidFileBatchError: Empty batch, duplicate paths, bad path or content
    """
    batch = list(files)
    if not batch:
        raise InvalidFileBatchError("At least one file is required to publish")

    seen = set()
    duplicates = []
    for change in batch:
        if not isinstance(change, FileChange):
            raise InvalidFileBatchError(
                f"Expected FileChange, got {type(change).__name__}"
            )
        change.validate()
        if change.path in seen:
            duplicates.append(change.path)
        seen.add(change.path)

    if duplicates:
        raise InvalidFileBatchError(
            f"Duplicate paths in batch: {', '.join(sorted(set(duplicates)))}"
        )
    return batch


@dataclass
class PublishResult:
    """Outcome of a successful publish."""

    owner: str
    repo: str
    branch: str
    commit_sha: str
    tree_sha: str
    base_commit_sha: str
    base_tree_sha: str
    blob_shas: Dict[str, str] = field(default_factory=dict)

    @property
    def files_published(self) -> int:
        return len(self.blob_shas)

    @property
    def paths(self) -> Sequence[str]:
        return sorted(self.blob_shas)
