"""Thin wrappers around the git binary used by source resolution."""

import logging
import os
import shutil
import stat
import subprocess

logger = logging.getLogger(__name__)


class GitCommandError(RuntimeError):
    """A git invocation exited with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, stderr: str):
        self.git_args = list(args)
        self.returncode = returncode
        self.stderr = stderr
        cmd_str = " ".join(["git"] + self.git_args)
        super().__init__(f"git command failed: {cmd_str}\n{stderr.strip()}")


def git_run(args: list[str], directory: str, timeout: int | None = None,
            check: bool = True) -> subprocess.CompletedProcess:
    """Run a git command in *directory*, optionally raising on failure.

    No timeout by default: clones and fetches of large repositories are
    allowed to take as long as they take.
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), directory)
    result = subprocess.run(
        ["git"] + args,
        cwd=directory, capture_output=True, text=True, timeout=timeout,
    )
    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, result.stderr)
    return result


def git_in(repo_path: str, args: list[str], check: bool = True) -> subprocess.CompletedProcess:
    """Run git anchored at *repo_path* with ``-C``, the way worktree ops need it."""
    return git_run(["-C", repo_path] + args, repo_path, check=check)


def looks_like_repository(path: str) -> bool:
    """Cheap on-disk check for a bare or non-bare repository at *path*."""
    return (os.path.exists(os.path.join(path, ".git"))
            or os.path.exists(os.path.join(path, "HEAD")))


def commit_exists(repo_path: str, commit_hash: str) -> bool:
    """True if *commit_hash* resolves to a commit object in *repo_path*."""
    result = git_in(
        repo_path,
        ["rev-parse", "--verify", "--quiet", f"{commit_hash}^{{commit}}"],
        check=False,
    )
    return result.returncode == 0


def clone_bare(remote_url: str, destination: str) -> None:
    parent = os.path.dirname(destination)
    git_run(["clone", "--bare", remote_url, destination], parent)


def remote_url(repo_path: str, remote_name: str) -> str | None:
    """Return the configured URL of *remote_name*, or None if it is unknown."""
    result = git_in(repo_path, ["remote", "get-url", remote_name], check=False)
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def add_remote(repo_path: str, remote_name: str, url: str) -> None:
    git_in(repo_path, ["remote", "add", remote_name, url])


def fetch(repo_path: str, remote_name: str,
          refspecs: list[str]) -> subprocess.CompletedProcess:
    """Single fetch attempt; never raises, the caller inspects the result."""
    return git_in(repo_path, ["fetch", remote_name] + refspecs, check=False)


def worktree_add_detached(repo_path: str, worktree_path: str,
                          commit_hash: str) -> None:
    git_in(repo_path, ["worktree", "add", "--detach", worktree_path, commit_hash])


def worktree_remove_forced(repo_path: str,
                           worktree_path: str) -> subprocess.CompletedProcess:
    return git_in(repo_path, ["worktree", "remove", "--force", worktree_path],
                  check=False)


def worktree_prune(repo_path: str) -> subprocess.CompletedProcess:
    return git_in(repo_path, ["worktree", "prune"], check=False)


def list_worktrees(repo_path: str) -> list[str]:
    """Return the worktree paths registered in *repo_path* (porcelain output)."""
    result = git_in(repo_path, ["worktree", "list", "--porcelain"])
    paths = []
    for line in result.stdout.splitlines():
        if line.startswith("worktree "):
            paths.append(line[len("worktree "):])
    return paths


def remove_tree(path: str) -> None:
    """Delete a directory tree, making read-only entries writable first.

    Git marks pack files read-only, which makes a plain ``rmtree`` fail on
    some platforms. Symlinks are unlinked, never followed.
    """
    if os.path.islink(path):
        os.remove(path)
    elif os.path.isdir(path):
        for root, dirs, files in os.walk(path, topdown=True):
            try:
                os.chmod(root, stat.S_IRWXU)
            except OSError:
                pass
            for name in files:
                try:
                    os.chmod(os.path.join(root, name), stat.S_IRWXU)
                except OSError:
                    pass
        shutil.rmtree(path)
    elif os.path.exists(path):
        os.remove(path)
