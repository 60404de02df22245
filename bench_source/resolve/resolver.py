"""Turn (repo_name, commit, remote, use_cache) into a ready worktree."""

import logging
import os

from bench_source.remote import RemoteInfo

from . import git_helpers
from .exceptions import CommitNotFoundError, NoSourceAvailableError, ResolutionError
from .local_paths import LocalOverrideStore
from .repo_cache import RepositoryCache
from .worktrees import WorktreeHandle, WorktreeMaterializer

logger = logging.getLogger(__name__)


class ResolutionOrchestrator:
    """Local override first, then the bare-clone cache, then the remote.

    ``use_cache=True`` always looks in (and writes to) the persistent
    worktree area; ``use_cache=False`` never touches it and hands back an
    ephemeral worktree that is removed when the handle is released.
    """

    def __init__(self, cache_root: str, overrides: LocalOverrideStore,
                 repo_cache: RepositoryCache | None = None,
                 materializer: WorktreeMaterializer | None = None):
        self.cache_root = os.path.abspath(cache_root)
        self.overrides = overrides
        self.repo_cache = repo_cache or RepositoryCache(self.cache_root)
        self.materializer = materializer or WorktreeMaterializer(self.cache_root)

    def resolve(self, repo_name: str, commit_hash: str,
                remote: RemoteInfo | None = None,
                use_cache: bool = False) -> WorktreeHandle:
        """Resolve a worktree for *repo_name* at *commit_hash*.

        Raises:
            ResolutionError: Any subclass; the message names the repository,
                commit and path involved.
        """
        try:
            return self._resolve(repo_name, commit_hash, remote, use_cache)
        except ResolutionError as e:
            if e.repo_name is None:
                e.repo_name = repo_name
            if e.commit is None:
                e.commit = commit_hash
            raise

    def _resolve(self, repo_name, commit_hash, remote, use_cache):
        mode = "Cached" if use_cache else "Temporary"
        local_path = self.overrides.resolve(repo_name, commit_hash)
        if local_path is not None:
            logger.info("Found local path override: %s. Cache preference: %s",
                        local_path, mode)
            if os.path.isdir(local_path):
                return self._from_local(repo_name, commit_hash, local_path, use_cache)
            logger.warning(
                "Local path override %s not found or not a directory. "
                "Falling back to cache/remote.", local_path,
            )

        logger.info("Using cache/remote for %s@%s. Cache preference: %s",
                    repo_name, commit_hash[:7], mode)
        if remote is None:
            raise NoSourceAvailableError(
                f"Cannot fetch repository '{repo_name}': no remote URL provided "
                f"and no local path override found.",
                repo_name=repo_name, commit=commit_hash,
            )

        if use_cache:
            # Build the path first so a malformed hash fails before any clone.
            worktree_path = self.materializer.remote_worktree_path(
                remote.remote_url, commit_hash)

        repo_path = self.repo_cache.ensure_clone(remote.remote_url)
        self.repo_cache.ensure_commit(repo_path, commit_hash, remote)

        if use_cache:
            return self.materializer.get_or_create_persistent(
                repo_path, commit_hash, worktree_path)
        return self.materializer.create_worktree(repo_path, commit_hash, ephemeral=True)

    def _from_local(self, repo_name, commit_hash, local_path, use_cache):
        if use_cache:
            worktree_path = self.materializer.local_worktree_path(repo_name, commit_hash)
            found = self.materializer.lookup_persistent(local_path, worktree_path)
            if found is not None:
                return found

        if not git_helpers.commit_exists(local_path, commit_hash):
            raise CommitNotFoundError(
                f"Commit {commit_hash} not found in local override {local_path}",
                repo_name=repo_name, commit=commit_hash, path=local_path,
            )

        if use_cache:
            return self.materializer.create_worktree(
                local_path, commit_hash, worktree_path, ephemeral=False)
        return self.materializer.create_worktree(local_path, commit_hash, ephemeral=True)
