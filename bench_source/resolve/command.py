"""Resolve mode: materialize a worktree for (repo, commit) and optionally run in it."""

import shlex
import subprocess
import sys

from bench_source.remote import RemoteInfo
from bench_source.settings import configure_logging, load_settings

from .exceptions import ResolutionError
from .local_paths import LocalOverrideStore
from .resolver import ResolutionOrchestrator


def handler(args):
    missing = [flag for flag, name in (("--repo", "repo"), ("--commit", "commit"))
               if not getattr(args, name, None)]
    if missing:
        sys.exit(f"[error] Resolve mode requires: {', '.join(missing)}")

    settings = load_settings(cache_root=args.cache_root,
                             local_paths_file=args.local_paths)
    configure_logging(settings.log_level)

    remote = None
    if args.remote_url:
        remote = RemoteInfo.create(args.remote_name, args.remote_url)

    exit_code = 0
    try:
        overrides = LocalOverrideStore.load(settings.local_paths_file)
        orchestrator = ResolutionOrchestrator(settings.cache_root, overrides)
        print(f"[..] Resolving {args.repo}@{args.commit[:7]}...")
        handle = orchestrator.resolve(args.repo, args.commit, remote,
                                      use_cache=args.use_cache)
    except ResolutionError as e:
        print(f"[error] {e}", file=sys.stderr)
        sys.exit(1)

    with handle:
        run_dir = handle.path(args.subdir)
        kind = "temporary" if handle.is_ephemeral else "cached"
        print(f"[ok] Code worktree ready ({kind}) at: {run_dir}")
        if args.exec_command:
            print(f"[..] Running: {args.exec_command}")
            result = subprocess.run(shlex.split(args.exec_command), cwd=run_dir)
            exit_code = result.returncode
            if exit_code != 0:
                print(f"[warn] Command exited with status {exit_code}", file=sys.stderr)

    if handle.is_ephemeral:
        print("[ok] Temporary worktree released")
    if exit_code:
        sys.exit(exit_code)
