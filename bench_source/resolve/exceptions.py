"""Errors raised while resolving a (repository, commit) to a worktree."""


class ResolutionError(RuntimeError):
    """Base class for resolution failures.

    Carries the repository, commit and path involved so a caller iterating
    over many benchmark suites can report and skip without re-running.
    """

    def __init__(self, message: str, *, repo_name: str | None = None,
                 commit: str | None = None, path: str | None = None):
        super().__init__(message)
        self.repo_name = repo_name
        self.commit = commit
        self.path = path


class ConfigParseError(ResolutionError):
    """The local override file exists but cannot be parsed."""


class NoSourceAvailableError(ResolutionError):
    """No usable local override and no remote to clone from."""


class CloneError(ResolutionError):
    """Cloning the bare cache repository failed."""


class CommitNotFoundError(ResolutionError):
    """The commit does not resolve in the source repository."""


class FetchAttemptFailedError(CommitNotFoundError):
    """The single fetch attempt failed and the commit is still missing."""


class WorktreeCreationError(ResolutionError):
    """``git worktree add`` reported failure."""


class PathCorruptionError(ResolutionError):
    """A persistent worktree path exists but is not a git worktree."""


class InvalidCommitHashError(ResolutionError, ValueError):
    """Commit hash too short to be used as a cache path component."""


class CleanupWarning(UserWarning):
    """Releasing an ephemeral worktree did not go cleanly.

    Issued through :mod:`warnings`, never raised.
    """
