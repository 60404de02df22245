"""Persistent cache of bare clones keyed by remote URL."""

import logging
import os

from bench_source.remote import RemoteInfo, sanitize_url_for_path

from . import git_helpers
from .exceptions import CloneError, CommitNotFoundError, FetchAttemptFailedError
from .git_helpers import GitCommandError

logger = logging.getLogger(__name__)


class RepositoryCache:
    """Owns ``cache_root/repos``; entries are created once and never deleted."""

    def __init__(self, cache_root: str):
        self.cache_root = os.path.abspath(cache_root)

    def cache_path_for(self, remote_url: str) -> str:
        safe_host, safe_path = sanitize_url_for_path(remote_url)
        return os.path.join(self.cache_root, "repos", safe_host, safe_path)

    def ensure_clone(self, remote_url: str) -> str:
        """Return the path of the bare clone for *remote_url*, cloning on a miss.

        Raises:
            CloneError: ``git clone --bare`` failed. Not retried.
        """
        path = self.cache_path_for(remote_url)
        if git_helpers.looks_like_repository(path):
            logger.info("Cache hit: found repository at %s", path)
            return path

        logger.info("Cache miss: cloning %s into %s", remote_url, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        try:
            git_helpers.clone_bare(remote_url, path)
        except GitCommandError as e:
            raise CloneError(
                f"Failed to clone {remote_url} as bare repo into {path}: "
                f"{e.stderr.strip()}",
                path=path,
            ) from e
        return path

    def _ensure_remote(self, repo_path: str, remote: RemoteInfo) -> None:
        existing = git_helpers.remote_url(repo_path, remote.remote_name)
        if existing is None:
            logger.info("Adding remote '%s' (%s) to %s",
                        remote.remote_name, remote.remote_url, repo_path)
            git_helpers.add_remote(repo_path, remote.remote_name, remote.remote_url)
        elif existing != remote.remote_url:
            logger.warning(
                "Remote '%s' in %s points at %s, not %s; fetching from it anyway",
                remote.remote_name, repo_path, existing, remote.remote_url,
            )

    def ensure_commit(self, repo_path: str, commit_hash: str,
                      remote: RemoteInfo) -> None:
        """Make sure *commit_hash* is present, with at most one fetch.

        Raises:
            FetchAttemptFailedError: The fetch failed and the commit is missing.
            CommitNotFoundError: The fetch ran but did not bring the commit.
        """
        short = commit_hash[:7]
        if git_helpers.commit_exists(repo_path, commit_hash):
            logger.info("Commit %s already exists locally.", short)
            return

        logger.info("Commit %s not found locally, fetching from %s", short, remote)
        try:
            self._ensure_remote(repo_path, remote)
        except GitCommandError as e:
            raise FetchAttemptFailedError(
                f"Failed to find or add remote {remote} in {repo_path}: "
                f"{e.stderr.strip()}",
                commit=commit_hash, path=repo_path,
            ) from e

        refspecs = [
            f"+refs/heads/*:refs/remotes/{remote.remote_name}/*",
            commit_hash,
        ]
        result = git_helpers.fetch(repo_path, remote.remote_name, refspecs)
        if result.returncode != 0:
            logger.warning(
                "Fetch for commit %s failed: %s. Relying on existing data.",
                short, result.stderr.strip(),
            )

        if git_helpers.commit_exists(repo_path, commit_hash):
            return

        message = (
            f"Commit {commit_hash} not found in {repo_path} even after "
            f"attempting fetch from {remote.remote_url}"
        )
        if result.returncode != 0:
            raise FetchAttemptFailedError(
                f"{message}: {result.stderr.strip()}",
                commit=commit_hash, path=repo_path,
            )
        raise CommitNotFoundError(message, commit=commit_hash, path=repo_path)
