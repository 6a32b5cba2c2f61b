"""
Git operations for ticket-branch.

Runs the ``git`` command line in the configured repository. Only reads
references and creates branches; the working tree is never touched.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .config import GitConfig


logger = logging.getLogger(__name__)


class CreationError(Exception):
    """Git failed while inspecting the repository or creating the branch."""

    kind = "CreationError"


class GitRepository:
    """
    Thin wrapper around the git CLI for one repository.

    Args:
        path: Any directory inside the working tree.
        git: Name or path of the git executable.
    """

    def __init__(self, path: Path, git: str = "git"):
        self.path = Path(path)
        self._git = git

    @classmethod
    def from_config(cls, config: GitConfig) -> "GitRepository":
        return cls(config.repo_path)

    def _run(self, *args: str) -> str:
        cmd = [self._git, *args]
        logger.debug(f"Running {' '.join(cmd)} in {self.path}")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.path),
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError as e:
            raise CreationError(f"git executable not found: {self._git}") from e
        except NotADirectoryError as e:
            raise CreationError(f"Not a directory: {self.path}") from e
        except subprocess.CalledProcessError as e:
            message = (e.stderr or e.stdout or "").strip()
            raise CreationError(f"git {args[0]} failed: {message}") from e
        return result.stdout

    def toplevel(self) -> Path:
        """Get the root of the working tree."""
        return Path(self._run("rev-parse", "--show-toplevel").strip())

    def list_refs(self) -> set[str]:
        """
        List local and remote-tracking branches.

        Local branches are returned as ``name`` and remote-tracking ones
        as ``remote/name``. Symbolic ``<remote>/HEAD`` entries are skipped.
        """
        output = self._run(
            "for-each-ref", "--format=%(refname)", "refs/heads", "refs/remotes"
        )
        refs = set()
        for line in output.splitlines():
            line = line.strip()
            if line.startswith("refs/heads/"):
                refs.add(line[len("refs/heads/"):])
            elif line.startswith("refs/remotes/") and not line.endswith("/HEAD"):
                refs.add(line[len("refs/remotes/"):])
        logger.debug(f"Found {len(refs)} branches")
        return refs

    def current_branch(self) -> Optional[str]:
        """Get the checked out branch, or None when HEAD is detached."""
        try:
            name = self._run("symbolic-ref", "--quiet", "--short", "HEAD").strip()
        except CreationError:
            return None
        return name or None

    def create_branch(self, new_branch: str, base_ref: str) -> None:
        """
        Create ``new_branch`` pointing at ``base_ref``.

        The new branch does not track ``base_ref``.

        Raises:
            CreationError: If git refuses, e.g. the branch already exists.
        """
        logger.info(f"Creating branch {new_branch} based on {base_ref}")
        self._run("branch", "--no-track", new_branch, base_ref)
