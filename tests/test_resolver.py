"""End-to-end tests for the override -> cache -> remote resolution order."""

import os

import pytest

from bench_source.remote import RemoteInfo
from bench_source.resolve import git_helpers
from bench_source.resolve.exceptions import (
    CommitNotFoundError,
    InvalidCommitHashError,
    NoSourceAvailableError,
    PathCorruptionError,
)
from bench_source.resolve.local_paths import LocalOverrideStore
from bench_source.resolve.resolver import ResolutionOrchestrator

from git_repo_helpers import commit_files, file_url, git, init_repo, read, registered_worktrees

MISSING = "0123456789abcdef0123456789abcdef01234567"


@pytest.fixture
def upstream(tmp_path):
    path = str(tmp_path / "upstream")
    first = init_repo(path, files={"src/lib.rs": "v1"})
    second = commit_files(path, {"src/lib.rs": "v2"}, msg="second")
    return path, first, second


@pytest.fixture
def cache_root(tmp_path):
    return str(tmp_path / "cache")


def _orchestrator(tmp_path, cache_root, overrides=None):
    store = LocalOverrideStore(str(tmp_path / ".localpaths.toml"))
    for repo_name, commit, path in overrides or []:
        store.record(repo_name, commit, path)
    return ResolutionOrchestrator(cache_root, store)


def _count_worktree_adds(monkeypatch):
    real_add = git_helpers.worktree_add_detached
    calls = []

    def counting_add(*args):
        calls.append(args)
        return real_add(*args)

    monkeypatch.setattr(git_helpers, "worktree_add_detached", counting_add)
    return calls


class TestLocalOverride:

    def test_ephemeral_from_override(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", first, path)])

        handle = orch.resolve("acme", first, use_cache=False)
        assert handle.is_ephemeral
        assert handle.source_repo_path == os.path.abspath(path)
        assert read(handle.worktree_path, "src/lib.rs") == "v1"
        wt_real = os.path.realpath(handle.worktree_path)
        assert wt_real in registered_worktrees(path)

        handle.close()
        assert not os.path.exists(handle.worktree_path)
        assert wt_real not in registered_worktrees(path)
        assert not os.path.exists(cache_root)

    def test_default_override_used(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        store = LocalOverrideStore(str(tmp_path / ".localpaths.toml"))
        store.set_default("acme", path)
        orch = ResolutionOrchestrator(cache_root, store)

        with orch.resolve("acme", first) as handle:
            assert read(handle.worktree_path, "src/lib.rs") == "v1"

    def test_cached_from_override_uses_local_key_family(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", first, path)])

        handle = orch.resolve("acme", first, use_cache=True)

        expected = os.path.join(os.path.abspath(cache_root), "worktrees", "local",
                                "acme", first)
        assert handle.worktree_path == expected
        assert not handle.is_ephemeral
        assert read(expected, "src/lib.rs") == "v1"

    def test_cached_twice_same_path_no_new_worktree(self, tmp_path, upstream,
                                                    cache_root, monkeypatch):
        path, first, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", first, path)])
        adds = _count_worktree_adds(monkeypatch)

        first_handle = orch.resolve("acme", first, use_cache=True)
        first_handle.close()
        second_handle = orch.resolve("acme", first, use_cache=True)

        assert second_handle.worktree_path == first_handle.worktree_path
        assert len(adds) == 1

    def test_missing_commit_in_override(self, tmp_path, upstream, cache_root):
        path, _, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", MISSING, path)])
        with pytest.raises(CommitNotFoundError) as exc_info:
            orch.resolve("acme", MISSING)
        assert exc_info.value.repo_name == "acme"
        assert exc_info.value.path == path

    def test_missing_override_dir_falls_back_to_remote(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        gone = str(tmp_path / "gone")
        orch = _orchestrator(tmp_path, cache_root, [("acme", first, gone)])
        remote = RemoteInfo("origin", file_url(path))

        with orch.resolve("acme", first, remote) as handle:
            assert read(handle.worktree_path, "src/lib.rs") == "v1"
            assert handle.source_repo_path == orch.repo_cache.cache_path_for(file_url(path))

    def test_missing_override_dir_without_remote(self, tmp_path, cache_root):
        orch = _orchestrator(tmp_path, cache_root,
                             [("acme", MISSING, str(tmp_path / "gone"))])
        with pytest.raises(NoSourceAvailableError, match="acme"):
            orch.resolve("acme", MISSING)

    def test_override_consulted_before_remote(self, tmp_path, upstream, cache_root, monkeypatch):
        path, first, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", first, path)])
        monkeypatch.setattr(orch.repo_cache, "ensure_clone",
                            lambda url: pytest.fail("remote should not be used"))

        with orch.resolve("acme", first, RemoteInfo("origin", "https://example.com/acme.git")):
            pass

    def test_short_commit_rejected_before_building_path(self, tmp_path, upstream, cache_root):
        path, _, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", "abc", path)])
        with pytest.raises(InvalidCommitHashError):
            orch.resolve("acme", "abc", use_cache=True)
        assert not os.path.exists(cache_root)

    def test_corrupt_local_cache_path(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        orch = _orchestrator(tmp_path, cache_root, [("acme", first, path)])
        corrupt = orch.materializer.local_worktree_path("acme", first)
        os.makedirs(corrupt)

        with pytest.raises(PathCorruptionError):
            orch.resolve("acme", first, use_cache=True)
        assert os.listdir(corrupt) == []


class TestRemote:

    def test_no_override_no_remote(self, tmp_path, cache_root):
        orch = _orchestrator(tmp_path, cache_root)
        with pytest.raises(NoSourceAvailableError) as exc_info:
            orch.resolve("acme", MISSING)
        assert exc_info.value.repo_name == "acme"
        assert exc_info.value.commit == MISSING

    def test_cached_scenario_layout(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        url = file_url(path)
        orch = _orchestrator(tmp_path, cache_root)

        handle = orch.resolve("acme", first, RemoteInfo("origin", url), use_cache=True)

        bare = orch.repo_cache.cache_path_for(url)
        assert os.path.isfile(os.path.join(bare, "HEAD"))
        assert handle.source_repo_path == bare
        assert handle.worktree_path == orch.materializer.remote_worktree_path(url, first)
        assert handle.worktree_path.startswith(
            os.path.join(os.path.abspath(cache_root), "worktrees", "remote", "local_host"))
        assert git(handle.worktree_path, "rev-parse", "HEAD") == first
        assert git(handle.worktree_path, "rev-parse", "--abbrev-ref", "HEAD") == "HEAD"

    def test_short_commit_rejected_before_clone(self, tmp_path, upstream, cache_root):
        path, _, _ = upstream
        orch = _orchestrator(tmp_path, cache_root)
        with pytest.raises(InvalidCommitHashError):
            orch.resolve("acme", "ab-12", RemoteInfo("origin", file_url(path)),
                         use_cache=True)
        assert not os.path.exists(os.path.join(cache_root, "repos"))

    def test_cached_twice_same_path(self, tmp_path, upstream, cache_root, monkeypatch):
        path, first, _ = upstream
        remote = RemoteInfo("origin", file_url(path))
        orch = _orchestrator(tmp_path, cache_root)
        adds = _count_worktree_adds(monkeypatch)

        a = orch.resolve("acme", first, remote, use_cache=True)
        b = orch.resolve("acme", first, remote, use_cache=True)

        assert a.worktree_path == b.worktree_path
        assert len(adds) == 1

    def test_ephemeral_never_touches_worktree_cache(self, tmp_path, upstream, cache_root):
        path, _, second = upstream
        orch = _orchestrator(tmp_path, cache_root)

        with orch.resolve("acme", second, RemoteInfo("origin", file_url(path))) as handle:
            assert read(handle.worktree_path, "src/lib.rs") == "v2"
            assert not os.path.exists(os.path.join(cache_root, "worktrees"))
            wt_real = os.path.realpath(handle.worktree_path)
        assert not os.path.exists(handle.worktree_path)
        assert wt_real not in registered_worktrees(handle.source_repo_path)
        assert not os.path.exists(os.path.join(cache_root, "worktrees"))

    def test_ephemeral_ignores_existing_persistent_entry(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        remote = RemoteInfo("origin", file_url(path))
        orch = _orchestrator(tmp_path, cache_root)
        cached = orch.resolve("acme", first, remote, use_cache=True)

        with orch.resolve("acme", first, remote, use_cache=False) as temp:
            assert temp.is_ephemeral
            assert temp.worktree_path != cached.worktree_path
        assert os.path.isdir(cached.worktree_path)

    def test_commit_fetched_after_clone(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        remote = RemoteInfo("origin", file_url(path))
        orch = _orchestrator(tmp_path, cache_root)
        orch.resolve("acme", first, remote).close()

        third = commit_files(path, {"src/lib.rs": "v3"}, msg="third")
        with orch.resolve("acme", third, remote) as handle:
            assert read(handle.worktree_path, "src/lib.rs") == "v3"

    def test_unknown_commit_fails_after_one_fetch(self, tmp_path, upstream,
                                                 cache_root, monkeypatch):
        path, _, _ = upstream
        orch = _orchestrator(tmp_path, cache_root)
        real_fetch = git_helpers.fetch
        fetches = []

        def counting_fetch(*args):
            fetches.append(args)
            return real_fetch(*args)

        monkeypatch.setattr(git_helpers, "fetch", counting_fetch)
        with pytest.raises(CommitNotFoundError) as exc_info:
            orch.resolve("acme", MISSING, RemoteInfo("origin", file_url(path)),
                         use_cache=True)
        assert len(fetches) == 1
        assert exc_info.value.repo_name == "acme"
        assert not os.path.exists(os.path.join(cache_root, "worktrees"))

    def test_corrupt_remote_cache_path(self, tmp_path, upstream, cache_root):
        path, first, _ = upstream
        url = file_url(path)
        orch = _orchestrator(tmp_path, cache_root)
        corrupt = orch.materializer.remote_worktree_path(url, first)
        os.makedirs(corrupt)
        with open(os.path.join(corrupt, "leftover.txt"), "w") as f:
            f.write("x")

        with pytest.raises(PathCorruptionError) as exc_info:
            orch.resolve("acme", first, RemoteInfo("origin", url), use_cache=True)
        assert exc_info.value.path == corrupt
        assert exc_info.value.repo_name == "acme"
        assert os.listdir(corrupt) == ["leftover.txt"]

    def test_example_scenario_paths(self, tmp_path, cache_root):
        orch = _orchestrator(tmp_path, cache_root)
        url = "https://example.com/acme.git"
        commit = "deadbeefcafe0000000000000000000000000000"
        root = os.path.abspath(cache_root)
        assert orch.repo_cache.cache_path_for(url) == os.path.join(
            root, "repos", "example.com", "acme")
        assert orch.materializer.remote_worktree_path(url, commit) == os.path.join(
            root, "worktrees", "remote", "example.com", "acme", commit)
