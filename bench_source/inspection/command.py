"""Inspect mode: print the git information of a local checkout."""

import sys

from bench_source.git_info import check_repo_status, detect_git_info, format_status_warning
from bench_source.resolve.git_helpers import GitCommandError
from bench_source.settings import configure_logging, load_settings


def handler(args):
    if not getattr(args, "directory", None):
        sys.exit("[error] -d/--directory is required for inspect mode")

    settings = load_settings(local_paths_file=args.local_paths)
    configure_logging(settings.log_level)

    try:
        status = check_repo_status(args.directory)
        info = detect_git_info(args.directory)
    except GitCommandError as e:
        sys.exit(f"[error] {e}")

    warning = format_status_warning(status)
    if warning:
        print(f"[warn] {warning}")
    print(f"[ok] {info}")
    print(f"     Root: {info.root_path}")
