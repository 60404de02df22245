"""Override mode: register a local checkout as the source for a repository."""

import os
import sys

from bench_source.git_info import check_repo_status, format_status_warning
from bench_source.resolve.exceptions import ConfigParseError
from bench_source.resolve.git_helpers import GitCommandError, git_in
from bench_source.resolve.local_paths import LocalOverrideStore
from bench_source.settings import configure_logging, load_settings


def handler(args):
    missing = [flag for flag, name in (("--repo", "repo"), ("-d/--directory", "directory"))
               if not getattr(args, name, None)]
    if missing:
        sys.exit(f"[error] Override mode requires: {', '.join(missing)}")

    directory = os.path.abspath(args.directory)
    if not os.path.isdir(directory):
        sys.exit(f"[error] Directory not found: {directory}")

    settings = load_settings(local_paths_file=args.local_paths)
    configure_logging(settings.log_level)

    try:
        status = check_repo_status(directory)
        commit = args.commit or git_in(
            directory, ["rev-parse", "--verify", "HEAD^{commit}"]).stdout.strip()
    except GitCommandError as e:
        sys.exit(f"[error] {directory} is not a usable git checkout: {e}")

    warning = format_status_warning(status)
    if warning:
        print(f"[warn] {warning}")

    try:
        if args.default:
            store = LocalOverrideStore.load(settings.local_paths_file)
            store.set_default(args.repo, directory)
            store.save()
            print(f"[ok] Default override for {args.repo}: {directory}")
        else:
            LocalOverrideStore.record_and_save(
                settings.local_paths_file, args.repo, commit, directory)
            print(f"[ok] Override for {args.repo}@{commit[:7]}: {directory}")
    except ConfigParseError as e:
        sys.exit(f"[error] {e}")
    print(f"[ok] Written to {settings.local_paths_file}")
