"""Parsing of cron specifications into schedules."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from datetime import timedelta, timezone, tzinfo
from fractions import Fraction
from typing import List, Mapping, Optional, Sequence, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .constantdelay import ConstantDelaySchedule, every
from .spec import (
    DOM,
    DOW,
    HOURS,
    MINUTES,
    MONTHS,
    SECONDS,
    STAR_BIT,
    Bounds,
    SpecSchedule,
)

Schedule = Union[SpecSchedule, ConstantDelaySchedule]

_UINT64 = (1 << 64) - 1
_INT64_MAX = (1 << 63) - 1


class ParseError(ValueError):
    """Raised when a cron specification cannot be parsed."""


class ParseOption(enum.IntFlag):
    """Fields and features a parser accepts. Field order never changes."""

    SECOND = 1 << 0
    SECOND_OPTIONAL = 1 << 1
    MINUTE = 1 << 2
    HOUR = 1 << 3
    DOM = 1 << 4
    MONTH = 1 << 5
    DOW = 1 << 6
    DOW_OPTIONAL = 1 << 7
    DESCRIPTOR = 1 << 8


_PLACES = (
    ParseOption.SECOND,
    ParseOption.MINUTE,
    ParseOption.HOUR,
    ParseOption.DOM,
    ParseOption.MONTH,
    ParseOption.DOW,
)

_DEFAULTS = ("0", "0", "0", "*", "*", "*")


def _count_optionals(options: ParseOption) -> int:
    return sum(
        1 for flag in (ParseOption.SECOND_OPTIONAL, ParseOption.DOW_OPTIONAL) if options & flag
    )


def _load_location(name: str) -> Optional[tzinfo]:
    if name == "Local":
        return None
    if name in ("", "UTC"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ParseError(f"provided bad location {name}: {exc}") from exc


@dataclass(frozen=True)
class Parser:
    """A configurable cron specification parser."""

    options: ParseOption

    def __post_init__(self) -> None:
        options = ParseOption(self.options)
        if _count_optionals(options) > 1:
            raise ParseError("multiple optionals may not be configured")
        object.__setattr__(self, "options", options)

    def parse(self, spec: str) -> Schedule:
        """Return the schedule described by spec, or raise ParseError."""
        if not spec:
            raise ParseError("empty spec string")

        loc: Optional[tzinfo] = None
        if spec.startswith(("TZ=", "CRON_TZ=")):
            space = spec.find(" ")
            if space < 0:
                raise ParseError(f"missing schedule after location: {spec}")
            eq = spec.index("=")
            loc = _load_location(spec[eq + 1:space])
            spec = spec[space:].strip()

        if spec.startswith("@"):
            if not self.options & ParseOption.DESCRIPTOR:
                raise ParseError(f"parser does not accept descriptors: {spec}")
            return parse_descriptor(spec, loc)

        second, minute, hour, dom, month, dow = normalize_fields(spec.split(), self.options)
        return SpecSchedule(
            second=get_field(second, SECONDS),
            minute=get_field(minute, MINUTES),
            hour=get_field(hour, HOURS),
            dom=get_field(dom, DOM),
            month=get_field(month, MONTHS),
            dow=get_field(dow, DOW),
            location=loc,
        )


def _show(fields: Sequence[str]) -> str:
    return "[" + " ".join(fields) + "]"


def normalize_fields(fields: Sequence[str], options: ParseOption) -> List[str]:
    """Return all six fields, filling omitted and optional ones with defaults."""
    options = ParseOption(options)
    optionals = _count_optionals(options)
    if options & ParseOption.SECOND_OPTIONAL:
        options |= ParseOption.SECOND
    if options & ParseOption.DOW_OPTIONAL:
        options |= ParseOption.DOW
    if optionals > 1:
        raise ParseError("multiple optionals may not be configured")

    most = sum(1 for place in _PLACES if options & place)
    least = most - optionals

    count = len(fields)
    if count < least or count > most:
        if least == most:
            raise ParseError(
                f"expected exactly {least} fields, found {count}: {_show(fields)}"
            )
        raise ParseError(
            f"expected {least} to {most} fields, found {count}: {_show(fields)}"
        )

    given = list(fields)
    if least < most and count == least:
        if options & ParseOption.DOW_OPTIONAL:
            given.append(_DEFAULTS[5])
        elif options & ParseOption.SECOND_OPTIONAL:
            given.insert(0, _DEFAULTS[0])
        else:
            raise ParseError("unknown optional field")

    supplied = iter(given)
    return [
        next(supplied) if options & place else default
        for place, default in zip(_PLACES, _DEFAULTS)
    ]


STANDARD_PARSER = Parser(
    ParseOption.MINUTE
    | ParseOption.HOUR
    | ParseOption.DOM
    | ParseOption.MONTH
    | ParseOption.DOW
    | ParseOption.DESCRIPTOR
)


def parse_standard(standard_spec: str) -> Schedule:
    """Parse a five-field crontab spec or a descriptor such as "@every 1h30m"."""
    return STANDARD_PARSER.parse(standard_spec)


def get_field(field: str, r: Bounds) -> int:
    """Return the bit set for a comma-separated list of ranges."""
    bits = 0
    for expr in filter(None, field.split(",")):
        bits |= get_range(expr, r)
    return bits


def get_range(expr: str, r: Bounds) -> int:
    """Return the bits for "number", "number-number" or either with "/step"."""
    range_and_step = expr.split("/")
    low_and_high = range_and_step[0].split("-")
    single = len(low_and_high) == 1

    extra = 0
    if low_and_high[0] in ("*", "?"):
        start, end = r.low, r.high
        extra = STAR_BIT
    else:
        start = parse_int_or_name(low_and_high[0], r.names)
        if len(low_and_high) == 1:
            end = start
        elif len(low_and_high) == 2:
            end = parse_int_or_name(low_and_high[1], r.names)
        else:
            raise ParseError(f"too many hyphens: {expr}")

    if len(range_and_step) == 1:
        step = 1
    elif len(range_and_step) == 2:
        step = must_parse_int(range_and_step[1])
        # "N/step" means "N-max/step".
        if single:
            end = r.high
        if step > 1:
            extra = 0
    else:
        raise ParseError(f"too many slashes: {expr}")

    if start < r.low:
        raise ParseError(f"beginning of range ({start}) below minimum ({r.low}): {expr}")
    if end > r.high:
        raise ParseError(f"end of range ({end}) above maximum ({r.high}): {expr}")
    if start > end:
        raise ParseError(
            f"beginning of range ({start}) beyond end of range ({end}): {expr}"
        )
    if step == 0:
        raise ParseError(f"step of range should be a positive number: {expr}")

    return get_bits(start, end, step) | extra


def parse_int_or_name(expr: str, names: Optional[Mapping[str, int]]) -> int:
    """Return the integer or named value held in expr."""
    if names is not None:
        named = names.get(expr.lower())
        if named is not None:
            return named
    return must_parse_int(expr)


_INT_RE = re.compile(r"[+-]?[0-9]+")


def must_parse_int(expr: str) -> int:
    """Parse a non-negative decimal integer, raising ParseError otherwise."""
    if not _INT_RE.fullmatch(expr):
        raise ParseError(f'failed to parse int from {expr}: invalid syntax "{expr}"')
    num = int(expr)
    if num > _INT64_MAX or num < -_INT64_MAX - 1:
        raise ParseError(f'failed to parse int from {expr}: value out of range "{expr}"')
    if num < 0:
        raise ParseError(f"negative number ({num}) not allowed: {expr}")
    return num


def get_bits(low: int, high: int, step: int) -> int:
    """Set every step-th bit from low to high inclusive."""
    return sum(1 << i for i in range(low, min(high, 63) + 1, step)) & _UINT64


def all_bits(r: Bounds) -> int:
    """All bits within the bounds, plus the star bit."""
    return get_bits(r.low, r.high, 1) | STAR_BIT


def parse_descriptor(descriptor: str, loc: Optional[tzinfo]) -> Schedule:
    """Return the predefined schedule named by descriptor."""
    if descriptor in ("@yearly", "@annually"):
        return SpecSchedule(
            1 << SECONDS.low, 1 << MINUTES.low, 1 << HOURS.low,
            1 << DOM.low, 1 << MONTHS.low, all_bits(DOW), loc,
        )
    if descriptor == "@monthly":
        return SpecSchedule(
            1 << SECONDS.low, 1 << MINUTES.low, 1 << HOURS.low,
            1 << DOM.low, all_bits(MONTHS), all_bits(DOW), loc,
        )
    if descriptor == "@weekly":
        return SpecSchedule(
            1 << SECONDS.low, 1 << MINUTES.low, 1 << HOURS.low,
            all_bits(DOM), all_bits(MONTHS), 1 << DOW.low, loc,
        )
    if descriptor in ("@daily", "@midnight"):
        return SpecSchedule(
            1 << SECONDS.low, 1 << MINUTES.low, 1 << HOURS.low,
            all_bits(DOM), all_bits(MONTHS), all_bits(DOW), loc,
        )
    if descriptor == "@hourly":
        return SpecSchedule(
            1 << SECONDS.low, 1 << MINUTES.low, all_bits(HOURS),
            all_bits(DOM), all_bits(MONTHS), all_bits(DOW), loc,
        )

    prefix = "@every "
    if descriptor.startswith(prefix):
        try:
            duration = parse_duration(descriptor[len(prefix):])
        except ValueError as exc:
            raise ParseError(f"failed to parse duration {descriptor}: {exc}") from exc
        return every(duration)

    raise ParseError(f"unrecognized descriptor: {descriptor}")


_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_DURATION_PART = re.compile(r"([0-9]*)(?:\.([0-9]*))?([^0-9.]*)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "-1.5h" or "2h45m".

    Valid units are "ns", "us" (or "µs"), "ms", "s", "m" and "h".
    """
    rest = text
    negative = False
    if rest.startswith(("+", "-")):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f'time: invalid duration "{text}"')

    total = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        whole, frac, unit = match.groups()
        if not whole and not frac:
            raise ValueError(f'time: invalid duration "{text}"')
        if not unit:
            raise ValueError(f'time: missing unit in duration "{text}"')
        scale = _DURATION_UNITS.get(unit)
        if scale is None:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        value = Fraction(int(whole or "0"))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += value * scale
        pos = match.end()

    nanos = int(total)
    if nanos > _INT64_MAX + (1 if negative else 0):
        raise ValueError(f'time: invalid duration "{text}"')
    micros = nanos // 1000
    return timedelta(microseconds=-micros if negative else micros)