"""Remote descriptions and the cache-key sanitizers derived from them."""

import logging
import os
import re
from dataclasses import dataclass

from bench_source.resolve.exceptions import InvalidCommitHashError

logger = logging.getLogger(__name__)

# Host used for URLs without an authority, e.g. ``file:///srv/git/x.git``
# or a bare filesystem path.
LOCAL_HOST = "local_host"
EMPTY_PATH = "_repo"
MIN_COMMIT_CHARS = 7

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://([^/?#]*)([^?#]*)")
_SCP_RE = re.compile(r"^(?:[^@/]+@)?([^:/]+):(?!/)(.+)$")


@dataclass(frozen=True)
class RemoteInfo:
    """Where to clone/fetch from when no local override applies."""

    remote_name: str
    remote_url: str

    @classmethod
    def create(cls, remote_name: str, remote_url: str) -> "RemoteInfo":
        """Build a RemoteInfo, rewriting SSH-style URLs to HTTPS.

        Only ambient credential helpers are supported, so SSH remotes are
        fetched over HTTPS instead.
        """
        return cls(remote_name=remote_name,
                   remote_url=convert_ssh_to_https(remote_url))

    def __str__(self) -> str:
        return f"{self.remote_name} (URL: {self.remote_url})"


def convert_ssh_to_https(url: str) -> str:
    """Convert ``git@host:owner/repo.git`` or ``ssh://git@host/path`` to HTTPS.

    http(s) URLs, other schemes and things that look like local paths are
    returned unchanged (whitespace-trimmed).
    """
    trimmed = url.strip()
    if trimmed.startswith(("https://", "http://")):
        return trimmed
    if (os.path.isabs(trimmed) or trimmed.startswith(".")
            or "\\" in trimmed):
        return trimmed

    if trimmed.startswith("ssh://"):
        rest = trimmed[len("ssh://"):]
        at = rest.find("@")
        slash = rest.find("/", at + 1)
        if at != -1 and slash != -1:
            converted = "https://" + rest[at + 1:]
            logger.warning(
                "Converting SSH URL %r to HTTPS %r; cloning may fail if the "
                "repository requires authentication or is SSH-only.",
                trimmed, converted,
            )
            return converted
        return trimmed

    if "://" in trimmed:
        return trimmed

    m = _SCP_RE.match(trimmed)
    if m:
        converted = f"https://{m.group(1)}/{m.group(2)}"
        logger.warning(
            "Converting potential SSH URL %r to HTTPS %r; cloning may fail if "
            "the repository requires authentication or is SSH-only.",
            trimmed, converted,
        )
        return converted
    return trimmed


def _split_url(remote_url: str) -> tuple[str, str]:
    """Return the (host, path) of *remote_url* without any URL library."""
    m = _SCHEME_RE.match(remote_url.strip())
    if not m:
        return LOCAL_HOST, remote_url.strip()
    authority, path = m.group(2), m.group(3)
    host = authority.rsplit("@", 1)[-1]
    if host.startswith("["):
        host = host[:host.find("]") + 1] if "]" in host else host
    else:
        host = host.split(":", 1)[0]
    return (host.lower() or LOCAL_HOST), path


def _sanitize_host(host: str) -> str:
    return "".join(c if c.isalnum() or c == "." else "_" for c in host)


def _sanitize_path(path: str) -> str:
    flattened = path.lstrip("/").replace("/", "_")
    safe = "".join(c if c.isalnum() or c in "._" else "_" for c in flattened)
    if safe.endswith("_git") or safe.endswith(".git"):
        safe = safe[:-4]
    return safe or EMPTY_PATH


def sanitize_url_for_path(remote_url: str) -> tuple[str, str]:
    """Derive the ``(host, path)`` cache-key pair for *remote_url*.

    ``https://host/owner/repo.git`` and ``https://host/owner/repo`` map to
    the same key.
    """
    host, path = _split_url(remote_url)
    return _sanitize_host(host), _sanitize_path(path)


def sanitize_repo_name(repo_name: str) -> str:
    """Cache key for worktrees built from a local override."""
    return "".join(
        c if (c.isalnum() or c in "-_") else "_" for c in repo_name
    )


def sanitize_commit_hash_for_path(commit_hash: str) -> str:
    """Keep only alphanumerics; reject anything shorter than 7 characters."""
    safe = "".join(c for c in commit_hash if c.isalnum())
    if len(safe) < MIN_COMMIT_CHARS:
        raise InvalidCommitHashError(
            f"Invalid commit hash for path generation: {commit_hash!r}",
            commit=commit_hash,
        )
    return safe
