"""Logging helpers shared by the orchestrator, adapters and clients."""

from __future__ import annotations

import os
import time
from typing import Any

from loguru import logger

TRUTHY = {"1", "true", "yes", "on"}


def env_log_level(default: str = "INFO") -> str:
    return os.getenv("LOG_LEVEL", default).upper()


def add_optional_sinks(log_dir: str = "logs") -> None:
    """
    Extra sinks switched on from the environment.

    LOG_DEBUG_FILE  path of a plain-text DEBUG sink
    LOG_JSON        truthy: one JSON record per line for every bound run,
                    written to ``<log_dir>/deed_runs_{time}.jsonl``
    """
    debug_file = os.getenv("LOG_DEBUG_FILE")
    if debug_file:
        logger.add(debug_file, level="DEBUG", backtrace=True, diagnose=True)

    if os.getenv("LOG_JSON", "0").lower() in TRUTHY:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            os.path.join(log_dir, "deed_runs_{time}.jsonl"),
            level="DEBUG",
            serialize=True,
            filter=lambda record: record["extra"].get("run_id", "-") != "-",
        )


def bind_context(**kwargs: Any):
    """Logger with run fields bound; None values are dropped."""
    return logger.bind(**{k: v for k, v in kwargs.items() if v is not None})


def log_lookup(*, source: str, query: Any, found: int, kept: int | None = None,
               duration_ms: float | None = None, **context: Any) -> None:
    """One ``lookup`` event per remote search (HCPA, ORI, geocoder)."""
    fields = {"source": source, "query": query, "found": found}
    if kept is not None:
        fields["kept"] = kept
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 1)
    fields.update({k: v for k, v in context.items() if v is not None})
    logger.info("lookup {source} {query!r}: {found} found", **fields)


class Timer:
    """``with Timer() as t: ...`` then ``t.elapsed_ms``."""

    elapsed_ms: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
