import threading
import time
from typing import List

import pytest

from cronrunner.chain import (
    Chain,
    delay_if_still_running,
    recover,
    skip_if_still_running,
)
from cronrunner.logger import DISCARD_LOGGER, printf_logger


def _appending_job(nums: List[int], value: int):
    lock = threading.Lock()

    def job():
        with lock:
            nums.append(value)

    return job


def _appending_wrapper(nums: List[int], value: int):
    def wrap(job):
        def run():
            _appending_job(nums, value)()
            job()

        return run

    return wrap


class _CountJob:
    def __init__(self, delay: float = 0.0) -> None:
        self._lock = threading.Lock()
        self._started = 0
        self._done = 0
        self.delay = delay

    def __call__(self) -> None:
        with self._lock:
            self._started += 1
        time.sleep(self.delay)
        with self._lock:
            self._done += 1

    @property
    def started(self) -> int:
        with self._lock:
            return self._started

    @property
    def done(self) -> int:
        with self._lock:
            return self._done


class _RecordingLogger:
    def __init__(self) -> None:
        self.errors = []
        self.infos = []

    def info(self, msg, *args):
        self.infos.append((msg, args))

    def error(self, err, msg, *args):
        self.errors.append((err, msg, args))


def _spawn(target) -> threading.Thread:
    thread = threading.Thread(target=target)
    thread.start()
    return thread


def _raising_job():
    raise RuntimeError("panickingJob panics")


def test_chain_applies_wrappers_in_order():
    nums: List[int] = []
    Chain(
        _appending_wrapper(nums, 1),
        _appending_wrapper(nums, 2),
        _appending_wrapper(nums, 3),
    ).then(_appending_job(nums, 4))()
    assert nums == [1, 2, 3, 4]


def test_empty_chain_returns_job_unchanged():
    nums: List[int] = []
    job = _appending_job(nums, 7)
    assert Chain().then(job) is job


def test_exception_escapes_by_default():
    with pytest.raises(RuntimeError, match="panickingJob panics"):
        Chain().then(_raising_job)()


def test_recover_logs_exception():
    lines: List[str] = []
    Chain(recover(printf_logger(lines.append))).then(_raising_job)()
    assert len(lines) == 1
    assert lines[0].startswith("panic, error=panickingJob panics, stack=...\n")
    assert "Traceback" in lines[0]


def test_recover_swallows_exception_and_reports_it():
    ran: List[int] = []

    def job():
        ran.append(1)
        raise ValueError("boom")

    logger = _RecordingLogger()
    Chain(recover(logger)).then(job)()
    assert ran == [1]
    assert len(logger.errors) == 1
    err, msg, args = logger.errors[0]
    assert msg == "panic"
    assert str(err) == "boom"
    assert args[0] == "stack"


def test_recover_with_discard_logger_swallows_exception():
    ran: List[int] = []

    def job():
        ran.append(1)
        raise ValueError("boom")

    wrapped = Chain(recover(DISCARD_LOGGER)).then(job)
    results = [wrapped(), wrapped()]
    assert results == [None, None]
    assert ran == [1, 1]


def test_delay_runs_immediately():
    job = _CountJob()
    wrapped = Chain(delay_if_still_running(DISCARD_LOGGER)).then(job)
    _spawn(wrapped).join(1)
    assert job.done == 1


def test_delay_second_run_immediate_if_first_done():
    job = _CountJob()
    wrapped = Chain(delay_if_still_running(DISCARD_LOGGER)).then(job)
    _spawn(wrapped).join(1)
    _spawn(wrapped).join(1)
    assert job.done == 2


def test_delay_second_run_waits_for_first():
    job = _CountJob(delay=0.2)
    wrapped = Chain(delay_if_still_running(DISCARD_LOGGER)).then(job)
    first = _spawn(wrapped)
    time.sleep(0.02)
    second = _spawn(wrapped)
    time.sleep(0.08)
    assert (job.started, job.done) == (1, 0)
    first.join(2)
    second.join(2)
    assert (job.started, job.done) == (2, 2)


def test_skip_runs_immediately():
    job = _CountJob()
    wrapped = Chain(skip_if_still_running(DISCARD_LOGGER)).then(job)
    _spawn(wrapped).join(1)
    assert job.done == 1


def test_skip_second_run_immediate_if_first_done():
    job = _CountJob()
    wrapped = Chain(skip_if_still_running(DISCARD_LOGGER)).then(job)
    _spawn(wrapped).join(1)
    _spawn(wrapped).join(1)
    assert job.done == 2


def test_skip_second_run_if_first_not_done():
    job = _CountJob(delay=0.2)
    wrapped = Chain(skip_if_still_running(DISCARD_LOGGER)).then(job)
    first = _spawn(wrapped)
    time.sleep(0.02)
    second = _spawn(wrapped)
    time.sleep(0.08)
    assert (job.started, job.done) == (1, 0)
    first.join(2)
    second.join(2)
    assert (job.started, job.done) == (1, 1)


def test_skip_logs_skipped_run():
    lines: List[str] = []
    gate = threading.Event()
    wrapped = Chain(skip_if_still_running(printf_logger(lines.append))).then(
        lambda: gate.wait(1)
    )
    thread = _spawn(wrapped)
    time.sleep(0.02)
    wrapped()
    gate.set()
    thread.join(1)
    # The printf logger logs errors only, so the skip leaves no line.
    assert lines == []


def test_skip_rapid_fire_runs_once():
    job = _CountJob(delay=0.2)
    wrapped = Chain(skip_if_still_running(DISCARD_LOGGER)).then(job)
    threads = [_spawn(wrapped) for _ in range(11)]
    for thread in threads:
        thread.join(2)
    assert job.done == 1


def test_skip_different_jobs_independent():
    job1 = _CountJob(delay=0.2)
    job2 = _CountJob(delay=0.2)
    chain = Chain(skip_if_still_running(DISCARD_LOGGER))
    wrapped1 = chain.then(job1)
    wrapped2 = chain.then(job2)
    threads = []
    for _ in range(11):
        threads.append(_spawn(wrapped1))
        threads.append(_spawn(wrapped2))
    for thread in threads:
        thread.join(2)
    assert (job1.done, job2.done) == (1, 1)