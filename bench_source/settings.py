"""Environment-driven settings (``.env`` files are honoured)."""

import logging
import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

DEFAULT_CACHE_ROOT = os.path.join("~", ".cache", "bench-source")
DEFAULT_LOCAL_PATHS = ".localpaths.toml"
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class Settings:
    cache_root: str
    local_paths_file: str
    log_level: str


def load_settings(cache_root: str | None = None,
                  local_paths_file: str | None = None) -> Settings:
    """Resolve settings from explicit values, then the environment, then defaults.

    Environment variables: ``BENCH_CACHE_ROOT``, ``BENCH_LOCAL_PATHS``,
    ``BENCH_LOG_LEVEL``.
    """
    load_dotenv(find_dotenv(usecwd=True))
    cache_root = (
        cache_root
        or os.environ.get("BENCH_CACHE_ROOT")
        or DEFAULT_CACHE_ROOT
    )
    local_paths_file = (
        local_paths_file
        or os.environ.get("BENCH_LOCAL_PATHS")
        or DEFAULT_LOCAL_PATHS
    )
    log_level = (os.environ.get("BENCH_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    return Settings(
        cache_root=os.path.abspath(os.path.expanduser(cache_root)),
        local_paths_file=os.path.abspath(os.path.expanduser(local_paths_file)),
        log_level=log_level,
    )


def configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level)
    if not isinstance(numeric, int):
        raise ValueError(f"BENCH_LOG_LEVEL must be a logging level name, got {level!r}")
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
