"""The scheduler: keeps entries and runs their jobs when they fall due."""

from __future__ import annotations

import enum
import queue
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, List, Optional, Protocol, Tuple

from .chain import Chain, Job, JobWrapper
from .logger import DEFAULT_LOGGER, Logger
from .parser import STANDARD_PARSER, ParseOption, Parser


class Schedule(Protocol):
    """Describes a job's duty cycle."""

    def next(self, t: datetime) -> Optional[datetime]:
        """Return the next activation after t, or None if there is none."""


class ScheduleParser(Protocol):
    """Turns spec strings into schedules."""

    def parse(self, spec: str) -> Schedule:
        """Return the schedule for spec."""


@dataclass
class Entry:
    """A schedule and the job run on it."""

    id: int = 0
    schedule: Optional[Schedule] = None
    next: Optional[datetime] = None
    prev: Optional[datetime] = None
    wrapped_job: Optional[Job] = None
    job: Optional[Job] = None
    is_running: bool = False
    last_duration: timedelta = field(default_factory=timedelta)

    def valid(self) -> bool:
        """Whether this is a real entry rather than the empty one."""
        return self.id != 0


class _Event(enum.Enum):
    ADD = enum.auto()
    REMOVE = enum.auto()
    SNAPSHOT = enum.auto()
    STOP = enum.auto()


def _by_time(entry: Entry) -> Tuple[bool, Any]:
    # Entries without a next time sort to the end.
    return (entry.next is None, 0 if entry.next is None else entry.next)


Option = Callable[["Cron"], None]


class Cron:
    """Keeps any number of entries and runs each job on its schedule.

    It may be started, stopped and inspected while running.
    """

    def __init__(self, *args: Option) -> None:
        self._entries: List[Entry] = []
        self._chain = Chain()
        self._events: "queue.Queue[Tuple[_Event, Any]]" = queue.Queue()
        self._running = False
        self._lock = threading.Lock()
        self._logger: Logger = DEFAULT_LOGGER
        self._location: Optional[tzinfo] = None
        self._parser: ScheduleParser = STANDARD_PARSER
        self._next_id = 0
        self._active_jobs = 0
        self._jobs_idle = threading.Condition()
        for option in args:
            option(self)

    def add_func(self, spec: str, cmd: Job) -> int:
        """Add a function to run on the schedule given by spec; return its id."""
        return self.add_job(spec, cmd)

    def add_job(self, spec: str, cmd: Job) -> int:
        """Parse spec and add cmd to run on it; return its id.

        Raises the parser's error if spec is not valid.
        """
        return self.schedule(self._parser.parse(spec), cmd)

    def schedule(self, schedule: Schedule, cmd: Job) -> int:
        """Add cmd, wrapped by the configured chain, to run on schedule."""
        with self._lock:
            self._next_id += 1
            entry = Entry(
                id=self._next_id,
                schedule=schedule,
                wrapped_job=self._chain.then(cmd),
                job=cmd,
            )
            if self._running:
                self._events.put((_Event.ADD, entry))
            else:
                self._entries.append(entry)
            return entry.id

    def entries(self) -> List[Entry]:
        """Return a snapshot of the entries."""
        with self._lock:
            if self._running:
                reply: "queue.Queue[List[Entry]]" = queue.Queue(maxsize=1)
                self._events.put((_Event.SNAPSHOT, reply))
                return reply.get()
            return self._entry_snapshot()

    def location(self) -> Optional[tzinfo]:
        """The time zone schedules run in; None means local time."""
        return self._location

    def entry(self, entry_id: int) -> Entry:
        """Return a snapshot of the entry, or an invalid empty entry if absent."""
        for entry in self.entries():
            if entry.id == entry_id:
                return entry
        return Entry()

    def remove(self, entry_id: int) -> None:
        """Stop the entry from being run in the future."""
        with self._lock:
            if self._running:
                self._events.put((_Event.REMOVE, entry_id))
            else:
                self._remove_entry(entry_id)

    def start(self) -> None:
        """Run the scheduler in a background thread; no-op if already running."""
        with self._lock:
            if self._running:
                return
            self._running = True
            threading.Thread(target=self._run, name="cron", daemon=True).start()

    def run(self) -> None:
        """Run the scheduler in the calling thread; no-op if already running."""
        with self._lock:
            if self._running:
                return
            self._running = True
        self._run()

    def stop(self) -> threading.Event:
        """Stop the scheduler if it is running.

        Returns an event that is set once all running jobs have finished.
        """
        with self._lock:
            if self._running:
                stopped = threading.Event()
                self._events.put((_Event.STOP, stopped))
                self._running = False
                stopped.wait()
        done = threading.Event()
        threading.Thread(target=self._signal_when_idle, args=(done,), daemon=True).start()
        return done

    def _signal_when_idle(self, done: threading.Event) -> None:
        with self._jobs_idle:
            self._jobs_idle.wait_for(lambda: self._active_jobs == 0)
        done.set()

    def _now(self) -> datetime:
        return datetime.now(self._location)

    def _run(self) -> None:
        self._logger.info("start")

        now = self._now()
        for entry in self._entries:
            entry.next = entry.schedule.next(now)
            self._logger.info("schedule", "now", now, "entry", entry.id, "next", entry.next)

        while True:
            self._entries.sort(key=_by_time)
            if not self._entries or self._entries[0].next is None:
                deadline = None
            else:
                wait = (self._entries[0].next - now).total_seconds()
                deadline = time.monotonic() + max(0.0, wait)

            while True:
                timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    kind, payload = self._events.get(timeout=timeout)
                except queue.Empty:
                    now = self._now()
                    self._logger.info("wake", "now", now)
                    for entry in self._entries:
                        if entry.next is None or entry.next > now:
                            break
                        self._start_job(entry)
                        entry.prev = entry.next
                        entry.next = entry.schedule.next(now)
                        self._logger.info(
                            "run", "now", now, "entry", entry.id, "next", entry.next
                        )
                    break

                if kind is _Event.SNAPSHOT:
                    payload.put(self._entry_snapshot())
                    continue
                if kind is _Event.STOP:
                    self._logger.info("stop")
                    payload.set()
                    return
                if kind is _Event.ADD:
                    now = self._now()
                    payload.next = payload.schedule.next(now)
                    self._entries.append(payload)
                    self._logger.info(
                        "added", "now", now, "entry", payload.id, "next", payload.next
                    )
                elif kind is _Event.REMOVE:
                    now = self._now()
                    self._remove_entry(payload)
                    self._logger.info("removed", "entry", payload)
                break

    def _start_job(self, entry: Entry) -> None:
        """Run the entry's job in a new thread unless it is still running."""
        if entry.is_running:
            return
        with self._jobs_idle:
            self._active_jobs += 1
        entry.is_running = True
        started = time.monotonic()

        def work() -> None:
            try:
                entry.wrapped_job()
            finally:
                entry.is_running = False
                entry.last_duration = timedelta(seconds=time.monotonic() - started)
                with self._jobs_idle:
                    self._active_jobs -= 1
                    self._jobs_idle.notify_all()

        threading.Thread(target=work, daemon=True).start()

    def _entry_snapshot(self) -> List[Entry]:
        return [replace(entry) for entry in self._entries]

    def _remove_entry(self, entry_id: int) -> None:
        self._entries = [entry for entry in self._entries if entry.id != entry_id]


def with_location(loc: Optional[tzinfo]) -> Option:
    """Use loc as the scheduler's time zone."""

    def apply(cron: Cron) -> None:
        cron._location = loc

    return apply


def with_seconds() -> Option:
    """Use a parser whose specs start with a required seconds field."""
    return with_parser(
        Parser(
            ParseOption.SECOND
            | ParseOption.MINUTE
            | ParseOption.HOUR
            | ParseOption.DOM
            | ParseOption.MONTH
            | ParseOption.DOW
            | ParseOption.DESCRIPTOR
        )
    )


def with_parser(parser: ScheduleParser) -> Option:
    """Use parser to interpret job specs."""

    def apply(cron: Cron) -> None:
        cron._parser = parser

    return apply


def with_chain(*args: JobWrapper) -> Option:
    """Wrap every job added to the scheduler with the given wrappers."""

    def apply(cron: Cron) -> None:
        cron._chain = Chain(*args)

    return apply


def with_logger(logger: Logger) -> Option:
    """Use logger for the scheduler's messages."""

    def apply(cron: Cron) -> None:
        cron._logger = logger

    return apply