"""Worktree lookup, creation and scoped cleanup."""

import logging
import os
import tempfile
import warnings

from bench_source.remote import (
    sanitize_commit_hash_for_path,
    sanitize_repo_name,
    sanitize_url_for_path,
)

from . import git_helpers
from .exceptions import (
    CleanupWarning,
    CommitNotFoundError,
    PathCorruptionError,
    WorktreeCreationError,
)
from .git_helpers import GitCommandError

logger = logging.getLogger(__name__)

EPHEMERAL_PREFIX = "bench_source_wt_"


class WorktreeHandle:
    """A checked-out worktree and who owns its lifetime.

    Ephemeral handles unregister and delete their worktree on ``close()`` or
    when leaving a ``with`` block; persistent handles leave it in place.
    Closing twice is a no-op.
    """

    def __init__(self, source_repo_path: str, worktree_path: str,
                 is_ephemeral: bool):
        self.source_repo_path = os.path.abspath(source_repo_path)
        self.worktree_path = os.path.abspath(worktree_path)
        self.is_ephemeral = is_ephemeral
        self.released = False

    def __repr__(self) -> str:
        kind = "ephemeral" if self.is_ephemeral else "persistent"
        return (f"WorktreeHandle({kind}, worktree_path={self.worktree_path!r}, "
                f"source_repo_path={self.source_repo_path!r})")

    def __enter__(self) -> "WorktreeHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def path(self, subdir: str | None = None) -> str:
        """The worktree path, optionally joined with a relative *subdir*."""
        if not subdir:
            return self.worktree_path
        return os.path.join(self.worktree_path, subdir)

    def close(self) -> None:
        if self.released:
            return
        self.released = True
        if not self.is_ephemeral:
            logger.debug("Skipping cleanup for cached worktree: %s", self.worktree_path)
            return

        logger.info("Cleaning up temporary worktree: %s", self.worktree_path)
        try:
            result = git_helpers.worktree_remove_forced(
                self.source_repo_path, self.worktree_path)
            if result.returncode != 0:
                self._warn(
                    f"'git worktree remove' failed for temporary worktree "
                    f"{self.worktree_path} (repo {self.source_repo_path}): "
                    f"{result.stderr.strip()}"
                )
        except OSError as e:
            self._warn(
                f"Failed to execute 'git worktree remove' for temporary "
                f"worktree {self.worktree_path} (repo {self.source_repo_path}): {e}"
            )

        if os.path.lexists(self.worktree_path):
            try:
                git_helpers.remove_tree(self.worktree_path)
            except OSError as e:
                self._warn(f"Failed to delete temporary worktree "
                           f"{self.worktree_path}: {e}")
            try:
                git_helpers.worktree_prune(self.source_repo_path)
            except OSError as e:
                self._warn(f"Failed to prune worktrees of {self.source_repo_path}: {e}")
            self._check_unregistered()

    release = close

    def _check_unregistered(self) -> None:
        try:
            registered = git_helpers.list_worktrees(self.source_repo_path)
        except (GitCommandError, OSError) as e:
            self._warn(f"Could not list worktrees of {self.source_repo_path}: {e}")
            return
        target = os.path.realpath(self.worktree_path)
        if target in {os.path.realpath(p) for p in registered}:
            self._warn(f"Temporary worktree {self.worktree_path} is still "
                       f"registered in {self.source_repo_path}")

    @staticmethod
    def _warn(message: str) -> None:
        logger.warning(message)
        warnings.warn(message, CleanupWarning, stacklevel=3)


class WorktreeMaterializer:
    """Creates worktrees from a source repository (local checkout or bare clone)."""

    def __init__(self, cache_root: str):
        self.cache_root = os.path.abspath(cache_root)

    def remote_worktree_path(self, remote_url: str, commit_hash: str) -> str:
        safe_host, safe_path = sanitize_url_for_path(remote_url)
        return os.path.join(
            self.cache_root, "worktrees", "remote", safe_host, safe_path,
            sanitize_commit_hash_for_path(commit_hash),
        )

    def local_worktree_path(self, repo_name: str, commit_hash: str) -> str:
        return os.path.join(
            self.cache_root, "worktrees", "local", sanitize_repo_name(repo_name),
            sanitize_commit_hash_for_path(commit_hash),
        )

    def lookup_persistent(self, source_repo_path: str,
                          worktree_path: str) -> WorktreeHandle | None:
        """Return a handle for an existing worktree at *worktree_path*.

        A git worktree has a ``.git`` *file* at its root pointing back into
        the source repository's metadata. Anything else at that path is
        corruption.

        Raises:
            PathCorruptionError: The path exists but is not a worktree.
        """
        if not os.path.lexists(worktree_path):
            return None
        marker = os.path.join(worktree_path, ".git")
        if os.path.isdir(worktree_path) and os.path.isfile(marker):
            logger.info("Found existing cached worktree at: %s", worktree_path)
            return WorktreeHandle(source_repo_path, worktree_path, is_ephemeral=False)
        raise PathCorruptionError(
            f"Path {worktree_path} exists but is not a valid git worktree directory",
            path=worktree_path,
        )

    def create_worktree(self, source_repo_path: str, commit_hash: str,
                        destination_path: str | None = None,
                        ephemeral: bool = False) -> WorktreeHandle:
        """Check out *commit_hash* detached into a new worktree.

        Persistent worktrees go to *destination_path*; ephemeral ones to a
        fresh temporary directory (*destination_path* is ignored).

        Raises:
            CommitNotFoundError: The commit is not in the source repository.
            WorktreeCreationError: ``git worktree add`` failed.
        """
        if not git_helpers.commit_exists(source_repo_path, commit_hash):
            raise CommitNotFoundError(
                f"Commit {commit_hash} not found in repository {source_repo_path}",
                commit=commit_hash, path=source_repo_path,
            )

        if ephemeral:
            worktree_path = tempfile.mkdtemp(prefix=EPHEMERAL_PREFIX)
            kind = "temporary"
        else:
            if destination_path is None:
                raise ValueError("destination_path is required for persistent worktrees")
            worktree_path = os.path.abspath(destination_path)
            os.makedirs(worktree_path)
            kind = "cached"

        logger.info("Creating %s worktree at: %s", kind, worktree_path)
        try:
            git_helpers.worktree_add_detached(source_repo_path, worktree_path, commit_hash)
        except GitCommandError as e:
            self._discard(worktree_path)
            raise WorktreeCreationError(
                f"'git worktree add' failed for {kind} worktree (commit "
                f"{commit_hash}) at {worktree_path} from repo "
                f"{source_repo_path}: {e.stderr.strip()}",
                commit=commit_hash, path=worktree_path,
            ) from e
        except BaseException:
            self._discard(worktree_path)
            raise

        return WorktreeHandle(source_repo_path, worktree_path, is_ephemeral=ephemeral)

    @staticmethod
    def _discard(worktree_path: str) -> None:
        try:
            git_helpers.remove_tree(worktree_path)
        except OSError as e:
            logger.warning("Could not remove %s after failed worktree add: %s",
                           worktree_path, e)

    def get_or_create_persistent(self, source_repo_path: str, commit_hash: str,
                                 worktree_path: str) -> WorktreeHandle:
        found = self.lookup_persistent(source_repo_path, worktree_path)
        if found is not None:
            return found
        return self.create_worktree(source_repo_path, commit_hash,
                                    worktree_path, ephemeral=False)
