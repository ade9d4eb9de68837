# cronrunner

A cron expression parser and an in-process job runner. Jobs are plain
callables taking no arguments; each run happens in its own thread at the
times its schedule gives.

The package uses only the standard library. Time zone names are looked up
with `zoneinfo`, so they need a time zone database on the system.

## Installing

```
pip install cronrunner
```

To run the tests, install the `test` extra and run `pytest`.

## Quick start

```python
from cronrunner.cron import Cron

c = Cron()
c.add_func("30 * * * *", lambda: print("Every hour on the half hour"))
c.add_func("30 3-6,20-23 * * *", lambda: print(".. in the range 3-6am, 8-11pm"))
c.add_func("CRON_TZ=Asia/Tokyo 30 04 * * *", lambda: print("04:30 Tokyo time every day"))
c.add_func("@hourly", lambda: print("Every hour, starting an hour from now"))
c.add_func("@every 1h30m", lambda: print("Every hour thirty"))
c.start()

# Jobs may be added to a running scheduler too.
c.add_func("@daily", lambda: print("Every day"))

# Look at the next and previous run times.
for entry in c.entries():
    print(entry.id, entry.prev, entry.next)

done = c.stop()   # stops scheduling; jobs already running carry on
done.wait()       # set once every running job has finished
```

## The scheduler

`Cron` (in `cronrunner.cron`) holds entries and runs them:

- `add_func(spec, cmd)` / `add_job(spec, cmd)` parse `spec` with the
  scheduler's parser and return the new entry's id; an invalid spec raises
  `ParseError`.
- `schedule(schedule, cmd)` adds a job on any object with a
  `next(datetime)` method, such as a `SpecSchedule` or a
  `ConstantDelaySchedule`.
- `entries()` returns copies of the entries, sorted by next run time once the
  scheduler has started (entries with no next time last); `entry(id)` returns
  one of them, or an empty `Entry` whose `valid()` is false.
- `remove(id)` stops an entry from running again.
- `start()` runs the scheduler in a background thread; `run()` runs it in the
  calling thread. Both do nothing if it is already running.
- `stop()` stops scheduling and returns a `threading.Event` that is set once
  all running jobs have finished.
- `location()` returns the scheduler's time zone (`None` for local time).

Each `Entry` has `id`, `schedule`, `next`, `prev`, `job` (as submitted),
`wrapped_job` (after the chain), `is_running` and `last_duration`. When an
entry falls due while its previous run is still going, that run is not
started again.

A schedule that cannot be satisfied within five years (such as `0 0 30 Feb *`)
has a `next` of `None` and never runs.

## Expression format

Five space-separated fields:

| Field        | Values          | Special characters |
|--------------|-----------------|--------------------|
| Minutes      | 0-59            | `* / , -`          |
| Hours        | 0-23            | `* / , -`          |
| Day of month | 1-31            | `* / , - ?`        |
| Month        | 1-12 or JAN-DEC | `* / , -`          |
| Day of week  | 0-6 or SUN-SAT  | `* / , - ?`        |

Month and weekday names are case insensitive. `N/step` means `N-max/step`.
When both day of month and day of week are restricted, either one matching is
enough; when either is `*` or `?`, both must match.

### Descriptors

| Entry                    | Equivalent to |
|--------------------------|---------------|
| `@yearly`, `@annually`   | `0 0 1 1 *`   |
| `@monthly`               | `0 0 1 * *`   |
| `@weekly`                | `0 0 * * 0`   |
| `@daily`, `@midnight`    | `0 0 * * *`   |
| `@hourly`                | `0 * * * *`   |
| `@every <duration>`      | fixed interval, e.g. `@every 1h30m10s` |

Durations use the units `ns`, `us` (or `µs`), `ms`, `s`, `m` and `h`, and
may have fractions (`1.5h`). Intervals shorter than a second are rounded up
to one second, and fractions of a second are dropped. The interval is counted
from when the scheduler starts or the job is added, and does not take the
job's running time into account.

### Time zones

Schedules are interpreted in the scheduler's location (local time unless
`with_location` is given). A single spec can override it with a leading
`CRON_TZ=Area/City` (or `TZ=Area/City`) field. Jobs due during a daylight
saving jump forward are not run.

## Options

```python
from datetime import timezone
from cronrunner.cron import Cron, with_location, with_seconds, with_chain, with_logger
from cronrunner.chain import recover, skip_if_still_running
from cronrunner.logger import verbose_printf_logger

logger = verbose_printf_logger(print)
c = Cron(
    with_location(timezone.utc),
    with_seconds(),                       # six fields, seconds first
    with_chain(recover(logger), skip_if_still_running(logger)),
    with_logger(logger),
)
```

`with_parser(parser)` sets any object with a `parse(spec)` method as the
scheduler's parser.

## Custom parsers

```python
from cronrunner.parser import Parser, ParseOption, parse_standard

p = Parser(ParseOption.SECOND_OPTIONAL | ParseOption.MINUTE | ParseOption.HOUR
           | ParseOption.DOM | ParseOption.MONTH | ParseOption.DOW
           | ParseOption.DESCRIPTOR)
schedule = p.parse("5 * * * *")
schedule = parse_standard("0 6 * * ?")
```

Fields left out of the options take their defaults (`0` for seconds, minutes
and hours, `*` for the rest). At most one of `SECOND_OPTIONAL` and
`DOW_OPTIONAL` may be given. Invalid specs raise `ParseError`, a subclass of
`ValueError`.

## Job wrappers

`Chain(w1, w2, w3).then(job)` is `w1(w2(w3(job)))`. The scheduler applies no
wrappers unless `with_chain` is given. The built-in wrappers, in
`cronrunner.chain`, are:

- `recover(logger)` – log exceptions raised by a job, with their stack,
  instead of letting them escape;
- `delay_if_still_running(logger)` – run invocations one after another,
  logging waits longer than a minute;
- `skip_if_still_running(logger)` – drop an invocation while the previous one
  runs.

## Logging

`printf_logger(printer)` logs errors only; `verbose_printf_logger(printer)`
also logs the scheduler's routine actions. `printer` is any callable taking a
line of text. By default the scheduler uses `DEFAULT_LOGGER`, which writes
errors to standard output prefixed with `cron: ` and a timestamp;
`DISCARD_LOGGER` drops everything.

## What it does not do

This is a library only: there is no command-line program or daemon. It does
not read crontab files, does not keep entries across restarts, and runs
Python callables rather than shell commands.