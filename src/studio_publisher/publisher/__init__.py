"""Atomic publishing of generated files to source control."""

from .errors import InvalidFileBatchError, PublishError, PublishConflictError
from .models import FileChange, PublishResult, PublishStage, validate_batch
from .atomic_publisher import AtomicPublisher
from .repository_initializer import InitializationResult, RepositoryInitializer
from .sources import (
    GenerationResult,
    collect_directory,
    load_file_changes,
    load_generation_manifest,
)

__all__ = [
    "InvalidFileBatchError",
    "PublishError",
    "PublishConflictError",
    "FileChange",
    "PublishResult",
    "PublishStage",
    "validate_batch",
    "AtomicPublisher",
    "InitializationResult",
    "RepositoryInitializer",
    "GenerationResult",
    "collect_directory",
    "load_file_changes",
    "load_generation_manifest",
]
