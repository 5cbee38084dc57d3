"""
Artifact Descriptor Test Suite

Extraction of the HEAD commit descriptor from a git working copy.
"""

import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from prnotary import ArtifactDescriptor, ArtifactError, artifact_from_git_repo, first_artifact

GIT = shutil.which("git")


def git(repo: str, *args: str) -> str:
    result = subprocess.run(
        [
            "git", "-C", repo,
            "-c", "user.name=Test Approver",
            "-c", "user.email=approver@example.com",
            "-c", "commit.gpgsign=false",
            *args
        ],
        capture_output=True,
        check=True
    )
    return result.stdout.decode("utf-8").strip()


@unittest.skipUnless(GIT, "git executable not available")
class TestGitExtractor(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.repo = str(Path(self.tmp) / "my-repo")
        Path(self.repo).mkdir()
        git(self.repo, "init", "-q")
        git(self.repo, "commit", "-q", "--allow-empty", "-m", "Add approval gate")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_descriptor_for_head_commit(self):
        commit = git(self.repo, "rev-parse", "HEAD")

        artifacts = artifact_from_git_repo(self.repo)

        self.assertEqual(len(artifacts), 1)
        artifact = artifacts[0]
        self.assertEqual(artifact.kind, "git")
        self.assertEqual(artifact.name, f"git://my-repo@{commit[:7]}")
        self.assertEqual(len(artifact.content_hash), 64)
        self.assertEqual(artifact.metadata["git"]["commit"], commit)
        self.assertEqual(artifact.metadata["git"]["subject"], "Add approval gate")
        self.assertEqual(artifact.metadata["git"]["author"], "Test Approver <approver@example.com>")

    def test_descriptor_is_stable_for_same_commit(self):
        self.assertEqual(first_artifact(self.repo), first_artifact(self.repo))

    def test_new_commit_changes_hash(self):
        before = first_artifact(self.repo)
        git(self.repo, "commit", "-q", "--allow-empty", "-m", "Address review")

        after = first_artifact(self.repo)

        self.assertNotEqual(before.hash, after.hash)

    def test_directory_without_repo(self):
        plain = Path(self.tmp) / "plain"
        plain.mkdir()

        with self.assertRaises(ArtifactError):
            # GIT_CEILING_DIRECTORIES keeps git from finding a parent repository
            with mock.patch.dict("os.environ", {"GIT_CEILING_DIRECTORIES": self.tmp}):
                artifact_from_git_repo(str(plain))


class TestExtractorFailures(unittest.TestCase):

    def test_missing_path(self):
        with self.assertRaises(ArtifactError):
            artifact_from_git_repo("/nonexistent/path/to/repo")

    def test_missing_git_executable(self):
        tmp = tempfile.mkdtemp()
        try:
            with mock.patch("prnotary.artifacts.subprocess.run", side_effect=FileNotFoundError("git")):
                with self.assertRaises(ArtifactError) as ctx:
                    artifact_from_git_repo(tmp)
            self.assertIn("git executable not found", str(ctx.exception))
        finally:
            shutil.rmtree(tmp, ignore_errors=True)


class TestArtifactDescriptor(unittest.TestCase):

    def test_metadata_ignored_for_equality(self):
        a = ArtifactDescriptor(hash="h", name="n", metadata={"x": 1})
        b = ArtifactDescriptor(hash="h", name="n", metadata={"x": 2})

        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))

    def test_to_dict(self):
        artifact = ArtifactDescriptor(hash="h", name="git://r@abc", size=10)

        self.assertEqual(artifact.to_dict()["kind"], "git")
        self.assertEqual(artifact.to_dict()["size"], 10)


if __name__ == "__main__":
    unittest.main(verbosity=2)
