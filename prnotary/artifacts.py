"""
Artifact descriptor module for prnotary.

Extracts an immutable content descriptor for the commit checked out in a
git working copy. The descriptor is produced once per run and shared by
notarization and every verification call.
"""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .errors import ArtifactError
from .util import sha256_hex

GIT_KIND = "git"


@dataclass(frozen=True)
class ArtifactDescriptor:
    """Content-addressed description of one artifact (here: one commit)."""
    hash: str
    name: str
    kind: str = GIT_KIND
    size: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def content_hash(self) -> str:
        return self.hash

    @property
    def display_name(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "hash": self.hash,
            "size": self.size,
            "metadata": dict(self.metadata),
        }


def _git(repo: Path, *args: str) -> bytes:
    try:
        result = subprocess.run(
            ["git", "-C", str(repo), *args],
            capture_output=True,
            check=True
        )
    except FileNotFoundError as e:
        raise ArtifactError(f"git executable not found: {e}") from e
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode("utf-8", errors="replace").strip()
        raise ArtifactError(f"git {' '.join(args)} failed in {repo}: {stderr}") from e
    return result.stdout


def artifact_from_git_repo(path: str) -> List[ArtifactDescriptor]:
    """
    Create artifact descriptors from a git working copy.

    The HEAD commit object is hashed with SHA-256, so the descriptor
    changes whenever the commit (tree, parents, author, message) does.

    Args:
        path: Filesystem path of the working copy

    Returns:
        A one-element list holding the HEAD commit descriptor

    Raises:
        ArtifactError: If the path is not a git working copy or git fails
    """
    repo = Path(path)
    if not repo.is_dir():
        raise ArtifactError(f"path to repo {path} is not a directory")

    commit = _git(repo, "rev-parse", "HEAD").decode("ascii").strip()
    commit_object = _git(repo, "cat-file", "commit", commit)
    author, _, subject = _git(
        repo, "log", "-1", "--format=%an <%ae>%x00%s", commit
    ).decode("utf-8", errors="replace").strip().partition("\x00")

    repo_name = repo.resolve().name
    return [
        ArtifactDescriptor(
            hash=sha256_hex(commit_object),
            name=f"{GIT_KIND}://{repo_name}@{commit[:7]}",
            size=len(commit_object),
            metadata={
                "git": {
                    "commit": commit,
                    "author": author,
                    "subject": subject,
                }
            }
        )
    ]


def first_artifact(path: str) -> ArtifactDescriptor:
    """Return the single descriptor the engine consumes for a working copy."""
    artifacts = artifact_from_git_repo(path)
    if not artifacts:
        raise ArtifactError(f"no artifact could be extracted from {path}")
    return artifacts[0]
