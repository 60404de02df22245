"""Command-line interface for bench-source: resolve, override, and inspect modes."""

import argparse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bench-source",
        description="Resolve cached git worktrees for benchmark source states.",
    )
    parser.add_argument(
        "--mode",
        required=True,
        choices=["resolve", "override", "inspect"],
        help="Operation mode",
    )

    # ── Shared ──
    shared = parser.add_argument_group("shared")
    shared.add_argument("--repo", help="Logical repository name")
    shared.add_argument("--commit", help="Full commit hash")
    shared.add_argument(
        "--local-paths",
        default=None,
        help="Local overrides file (default: BENCH_LOCAL_PATHS env or ./.localpaths.toml)",
    )
    shared.add_argument("-d", "--directory", help="Local checkout directory")

    # ── Resolve mode arguments ──
    res = parser.add_argument_group("resolve mode")
    res.add_argument("--remote-url", help="Remote to clone/fetch from")
    res.add_argument("--remote-name", default="origin", help="Remote name (default: origin)")
    res.add_argument(
        "--use-cache",
        action="store_true",
        help="Reuse or create a persistent worktree instead of a temporary one",
    )
    res.add_argument(
        "--cache-root",
        default=None,
        help="Cache directory (default: BENCH_CACHE_ROOT env or ~/.cache/bench-source)",
    )
    res.add_argument("--subdir", default="", help="Subdirectory of the worktree to use")
    res.add_argument(
        "--exec",
        dest="exec_command",
        help="Command to run inside the worktree before it is released",
    )

    # ── Override mode arguments ──
    ovr = parser.add_argument_group("override mode")
    ovr.add_argument(
        "--default",
        action="store_true",
        help="Record the directory as the repository-wide default override",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mode == "resolve":
        from .resolve.command import handler
        handler(args)
    elif args.mode == "override":
        from .override.command import handler
        handler(args)
    elif args.mode == "inspect":
        from .inspection.command import handler
        handler(args)
