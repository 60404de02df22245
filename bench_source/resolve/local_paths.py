"""Developer-maintained overrides mapping (repo, commit) to a local checkout.

The file is TOML::

    [repositories.acme]
    deadbeefcafe0000000000000000000000000000 = "/home/me/src/acme"
    _default = "/home/me/src/acme-main"

A commit-specific entry always wins over ``_default``.
"""

import logging
import os
import threading
import tomllib
from dataclasses import dataclass, field

import tomli_w

from .exceptions import ConfigParseError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "_default"


@dataclass
class RepoOverride:
    commit_paths: dict[str, str] = field(default_factory=dict)
    default_path: str | None = None

    def to_table(self) -> dict[str, str]:
        table = dict(sorted(self.commit_paths.items()))
        if self.default_path is not None:
            table[DEFAULT_KEY] = self.default_path
        return table


def _parse_table(data: dict, config_path: str) -> dict[str, RepoOverride]:
    repositories = data.get("repositories", {})
    if not isinstance(repositories, dict):
        raise ConfigParseError(
            f"'repositories' must be a table in {config_path}", path=config_path)

    table: dict[str, RepoOverride] = {}
    for repo_name, entries in repositories.items():
        if not isinstance(entries, dict):
            raise ConfigParseError(
                f"Entry for repository {repo_name!r} must be a table in {config_path}",
                repo_name=repo_name, path=config_path,
            )
        override = RepoOverride()
        for key, value in entries.items():
            if not isinstance(value, str):
                raise ConfigParseError(
                    f"Override {repo_name}.{key} must be a path string in {config_path}",
                    repo_name=repo_name, commit=key, path=config_path,
                )
            if key == DEFAULT_KEY:
                override.default_path = value
            else:
                override.commit_paths[key] = value
        table[repo_name] = override
    return table


class LocalOverrideStore:
    """Loaded override table bound to the file it came from.

    Writes go through a lock owned by this instance. Other processes writing
    the same file concurrently are not guarded against.
    """

    def __init__(self, config_path: str,
                 repositories: dict[str, RepoOverride] | None = None):
        self.config_path = os.path.abspath(config_path)
        self.repositories = repositories if repositories is not None else {}
        self._write_lock = threading.Lock()

    @classmethod
    def load(cls, config_path: str) -> "LocalOverrideStore":
        """Read the table; a missing file yields an empty table.

        Raises:
            ConfigParseError: The file exists but is not a valid override table.
        """
        if not os.path.exists(config_path):
            logger.debug("No local overrides file at %s", config_path)
            return cls(config_path)
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
            raise ConfigParseError(
                f"Failed to parse local overrides file {config_path}: {e}",
                path=config_path,
            ) from e
        return cls(config_path, _parse_table(data, config_path))

    def resolve(self, repo_name: str, commit_hash: str) -> str | None:
        override = self.repositories.get(repo_name)
        if override is None:
            return None
        path = override.commit_paths.get(commit_hash)
        if path is not None:
            return path
        return override.default_path

    def record(self, repo_name: str, commit_hash: str, local_path: str) -> None:
        with self._write_lock:
            override = self.repositories.setdefault(repo_name, RepoOverride())
            override.commit_paths[commit_hash] = os.path.abspath(local_path)

    def set_default(self, repo_name: str, local_path: str) -> None:
        with self._write_lock:
            override = self.repositories.setdefault(repo_name, RepoOverride())
            override.default_path = os.path.abspath(local_path)

    def to_dict(self) -> dict:
        return {
            "repositories": {
                name: override.to_table()
                for name, override in sorted(self.repositories.items())
            }
        }

    def save(self) -> None:
        """Write the whole table back to ``config_path``.

        The snapshot is taken under the same lock as the write, so a save
        never replaces the file with a table older than one already written.
        """
        with self._write_lock:
            content = tomli_w.dumps(self.to_dict())
            parent = os.path.dirname(self.config_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                f.write(content)
        logger.info("Saved local overrides to %s", self.config_path)

    @classmethod
    def record_and_save(cls, config_path: str, repo_name: str,
                        commit_hash: str, local_path: str) -> "LocalOverrideStore":
        """Reload the latest file, add a commit override and write it back."""
        store = cls.load(config_path)
        store.record(repo_name, commit_hash, local_path)
        store.save()
        return store
