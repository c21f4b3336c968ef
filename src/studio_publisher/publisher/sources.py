"""Load file batches from disk or from a generation manifest."""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

import pathspec
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidFileBatchError
from .models import FileChange

logger = logging.getLogger(__name__)


class GeneratedFile(BaseModel):
    """A file as returned by the generation endpoint."""

    model_config = ConfigDict(extra="ignore")

    path: str = Field(..., description="Repository-relative path")
    content: str = Field(..., description="File text")


class GenerationResult(BaseModel):
    """Structured generation output: ``{componentName?, projectName?, files}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    component_name: Optional[str] = Field(default=None, alias="componentName")
    project_name: Optional[str] = Field(default=None, alias="projectName")
    files: List[GeneratedFile] = Field(default_factory=list)

    def to_file_changes(self) -> List[FileChange]:
        return [FileChange(path=f.path.lstrip("/"), content=f.content) for f in self.files]


def load_generation_manifest(path: Path) -> GenerationResult:
    """Parse a generation manifest JSON file.

    Raises:
        InvalidFileBatchError: If the file is not valid JSON or has the wrong shape
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return GenerationResult.model_validate(data)
    except json.JSONDecodeError as e:
        raise InvalidFileBatchError(f"Invalid JSON in manifest {path}: {e}")
    except ValidationError as e:
        raise InvalidFileBatchError(f"Invalid manifest {path}: {e}")


def _build_exclude_spec(root: Path, exclude_dirs: Sequence[str]) -> pathspec.PathSpec:
    """Directory exclusions plus the project's own .gitignore."""
    patterns = [f"{name.rstrip('/')}/" for name in exclude_dirs]

    gitignore_path = root / ".gitignore"
    if gitignore_path.is_file():
        try:
            for line in gitignore_path.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    patterns.append(line)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable {gitignore_path}: {e}")

    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def collect_directory(root: Path, exclude_dirs: Sequence[str] = ()) -> List[FileChange]:
    """Read every text file under ``root`` into FileChanges.

    Paths are POSIX and relative to ``root``. Excluded directories are
    pruned at any depth and a root ``.gitignore`` is honoured; files that
    are not valid UTF-8 are skipped with a warning.
    """
    root = Path(root)
    if not root.is_dir():
        raise InvalidFileBatchError(f"Not a directory: {root}")

    exclude_spec = _build_exclude_spec(root, exclude_dirs)
    changes: List[FileChange] = []

    for current, dirs, files in os.walk(root):
        current_path = Path(current)

        # Prune excluded directories so os.walk never descends into them
        dirs[:] = [
            d
            for d in dirs
            if not exclude_spec.match_file(
                (current_path / d).relative_to(root).as_posix() + "/"
            )
        ]

        for file_name in files:
            relative = (current_path / file_name).relative_to(root).as_posix()
            if exclude_spec.match_file(relative):
                continue
            try:
                # Decode bytes directly; text mode would rewrite CRLF to LF
                content = (current_path / file_name).read_bytes().decode("utf-8")
            except UnicodeDecodeError:
                logger.warning(f"Skipping non-UTF-8 file {relative}")
                continue
            changes.append(FileChange(path=relative, content=content))

    changes.sort(key=lambda change: change.path)
    return changes


def load_file_changes(source: Path, exclude_dirs: Sequence[str] = ()) -> List[FileChange]:
    """Load a batch from a directory or a ``.json`` generation manifest."""
    source = Path(source)
    if source.is_dir():
        return collect_directory(source, exclude_dirs)
    if source.is_file() and source.suffix.lower() == ".json":
        return load_generation_manifest(source).to_file_changes()
    raise InvalidFileBatchError(
        f"Source must be a directory or a .json manifest: {source}"
    )
