"""Job wrappers that add cross-cutting behaviour to submitted jobs."""

from __future__ import annotations

import threading
import time
import traceback
from datetime import timedelta
from typing import Any, Callable, Tuple

from .logger import Logger

Job = Callable[[], Any]
JobWrapper = Callable[[Job], Job]

_ONE_MINUTE = 60.0


class Chain:
    """A sequence of job wrappers applied to submitted jobs.

    ``Chain(m1, m2, m3).then(job)`` is equivalent to ``m1(m2(m3(job)))``.
    """

    def __init__(self, *args: JobWrapper) -> None:
        self._wrappers: Tuple[JobWrapper, ...] = tuple(args)

    def then(self, job: Job) -> Job:
        """Decorate job with every wrapper in the chain."""
        for wrapper in reversed(self._wrappers):
            job = wrapper(job)
        return job


def recover(logger: Logger) -> JobWrapper:
    """Catch exceptions raised by wrapped jobs and log them with their stack."""

    def wrap(job: Job) -> Job:
        def run() -> None:
            try:
                job()
            except Exception as exc:  # a failing job must not take the runner down
                logger.error(exc, "panic", "stack", "...\n" + traceback.format_exc())

        return run

    return wrap


def delay_if_still_running(logger: Logger) -> JobWrapper:
    """Serialise runs of a job, delaying each until the previous one finishes.

    Runs delayed by more than a minute are logged at info level.
    """

    def wrap(job: Job) -> Job:
        lock = threading.Lock()

        def run() -> None:
            start = time.monotonic()
            with lock:
                waited = time.monotonic() - start
                if waited > _ONE_MINUTE:
                    logger.info("delay", "duration", timedelta(seconds=waited))
                job()

        return run

    return wrap


def skip_if_still_running(logger: Logger) -> JobWrapper:
    """Skip a run of a job while a previous run is still in progress."""

    def wrap(job: Job) -> Job:
        lock = threading.Lock()

        def run() -> None:
            if not lock.acquire(blocking=False):
                logger.info("skip")
                return
            try:
                job()
            finally:
                lock.release()

        return run

    return wrap