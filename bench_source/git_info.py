"""Describe the checkout a benchmark was recorded from.

Used when registering a developer's local checkout as an override: which
commit is checked out, on which branch, which remote has that commit, and
where the analysed directory sits relative to the repository root.
"""

import logging
import os
from dataclasses import dataclass, field

from bench_source.resolve.git_helpers import git_in

logger = logging.getLogger(__name__)


@dataclass
class GitInformation:
    commit: str
    branch: str
    remote_url: str | None
    subdir: str
    root_path: str

    def __str__(self) -> str:
        return (f"Commit: {self.commit[:7]}, Branch: {self.branch}, "
                f"Remote: {self.remote_url or '<none>'}, "
                f"Relative Path: {self.subdir}")


@dataclass
class RepoStatusInfo:
    uncommitted_files: list[str] = field(default_factory=list)
    untracked_files: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.uncommitted_files and not self.untracked_files


def check_repo_status(directory: str) -> RepoStatusInfo:
    """List uncommitted (staged or unstaged) and untracked files, sorted."""
    result = git_in(directory, [
        "status", "--porcelain=v1", "--untracked-files=all",
        "--ignore-submodules",
    ])
    status = RepoStatusInfo()
    for line in result.stdout.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        if code == "??":
            status.untracked_files.append(path)
        else:
            status.uncommitted_files.append(path)
    status.uncommitted_files.sort()
    status.untracked_files.sort()
    return status


def format_status_warning(status: RepoStatusInfo) -> str:
    """Human-readable warning for a dirty checkout; empty string when clean."""
    if status.is_clean:
        return ""
    parts = []
    if status.uncommitted_files:
        parts.append("uncommitted")
    if status.untracked_files:
        parts.append("untracked")
    lines = [f"WARNING: there are {' and '.join(parts)} changes"]
    if status.uncommitted_files:
        lines.append("  Uncommitted:")
        lines.extend(f"     * {f}" for f in status.uncommitted_files)
    if status.untracked_files:
        lines.append("  Untracked:")
        lines.extend(f"     * {f}" for f in status.untracked_files)
    return "\n".join(lines)


def find_remote_url_containing_commit(directory: str, commit: str) -> str | None:
    """URL of the first remote whose tracking branches contain *commit*."""
    result = git_in(directory, [
        "for-each-ref", "--contains", commit,
        "--format=%(refname) %(symref)", "refs/remotes",
    ], check=False)
    if result.returncode != 0:
        logger.warning("Could not list remote refs containing %s: %s",
                       commit[:7], result.stderr.strip())
        return None

    for line in result.stdout.splitlines():
        refname, _, symref = line.partition(" ")
        if symref.strip():
            continue
        parts = refname.split("/", 3)
        if len(parts) < 4:
            logger.warning("Could not parse remote name from ref: %s", refname)
            continue
        remote_name = parts[2]
        url = git_in(directory, ["remote", "get-url", remote_name], check=False)
        if url.returncode == 0 and url.stdout.strip():
            logger.info("Commit %s found on remote '%s' via %s",
                        commit[:7], remote_name, refname)
            return url.stdout.strip()
        logger.warning("Remote '%s' (from ref '%s') has no URL configured.",
                       remote_name, refname)
    return None


def fetch_all_remotes_prune(directory: str) -> list[str]:
    """Fetch every configured remote with ``--prune``; return error messages."""
    remotes = git_in(directory, ["remote"]).stdout.split()
    errors = []
    for name in remotes:
        logger.info("Fetching remote: %s", name)
        result = git_in(directory, ["fetch", "--prune", name], check=False)
        if result.returncode != 0:
            msg = f"Failed to fetch remote '{name}': {result.stderr.strip()}"
            logger.warning(msg)
            errors.append(msg)
    return errors


def detect_git_info(directory: str, fetch_if_missing: bool = True) -> GitInformation:
    """Collect :class:`GitInformation` for the checkout containing *directory*.

    Raises:
        GitCommandError: *directory* is not inside a non-bare repository, or
            HEAD does not point at a commit.
    """
    directory = os.path.realpath(directory)
    root = git_in(directory, ["rev-parse", "--show-toplevel"]).stdout.strip()
    commit = git_in(directory, ["rev-parse", "--verify", "HEAD^{commit}"]).stdout.strip()
    branch = git_in(directory, ["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()
    if branch == "HEAD":
        branch = f"detached@{commit[:7]}"

    subdir = os.path.relpath(directory, os.path.realpath(root))

    remote_url = find_remote_url_containing_commit(directory, commit)
    if remote_url is None and fetch_if_missing:
        logger.info("Commit %s not on any local remote ref. Attempting fetch...",
                    commit[:7])
        errors = fetch_all_remotes_prune(directory)
        if errors:
            logger.error("Failed to fetch repository updates; proceeding "
                         "without remote URL: %s", "; ".join(errors))
        else:
            remote_url = find_remote_url_containing_commit(directory, commit)

    info = GitInformation(commit=commit, branch=branch, remote_url=remote_url,
                          subdir=subdir, root_path=root)
    logger.info("Resolved git info: %s", info)
    return info
