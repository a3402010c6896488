"""Value kinds understood by the conversion engine.

A kind is a representational category (a byte-sized integer, a calendar, a
UUID, ...). Several kinds share a Python type: byte, short, int, long and
big-integer values are all ``int``, distinguished only by the range they
accept. Field annotations select the narrower kinds through the ``NewType``
markers defined here (``Byte``, ``Short``, ``Int``, ``Long``, ``Float``,
``Char``, ``ZonedDateTime``).
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import StrEnum
from typing import Any, NewType
from uuid import UUID
from zoneinfo import ZoneInfo


class Kind(StrEnum):
    """Representational value kinds; the value doubles as the type tag name."""

    BOOLEAN = "boolean"
    BYTE = "byte"
    SHORT = "short"
    INT = "int32"
    LONG = "long"
    FLOAT = "float32"
    DOUBLE = "double"
    BIG_INTEGER = "big_integer"
    BIG_DECIMAL = "big_decimal"
    CHARACTER = "char"
    STRING = "string"
    DATE = "instant"
    SQL_DATE = "sql_date"
    TIMESTAMP = "timestamp"
    CALENDAR = "calendar"
    LOCAL_DATE = "local_date"
    LOCAL_DATE_TIME = "local_date_time"
    ZONED_DATE_TIME = "zoned_date_time"
    UUID = "uuid"
    TYPE_REFERENCE = "class"
    MAP = "map"
    ATOMIC_BOOLEAN = "atomic_boolean"
    ATOMIC_INTEGER = "atomic_integer"
    ATOMIC_LONG = "atomic_long"


Byte = NewType("Byte", int)
Short = NewType("Short", int)
Int = NewType("Int", int)
Long = NewType("Long", int)
Float = NewType("Float", float)
Char = NewType("Char", str)
ZonedDateTime = NewType("ZonedDateTime", datetime)

INTEGRAL_RANGES: dict[Kind, tuple[int, int]] = {
    Kind.BYTE: (-(2**7), 2**7 - 1),
    Kind.SHORT: (-(2**15), 2**15 - 1),
    Kind.INT: (-(2**31), 2**31 - 1),
    Kind.LONG: (-(2**63), 2**63 - 1),
}

INTEGRAL_KINDS = frozenset({*INTEGRAL_RANGES, Kind.BIG_INTEGER})
FLOATING_KINDS = frozenset({Kind.FLOAT, Kind.DOUBLE})
NUMERIC_KINDS = INTEGRAL_KINDS | FLOATING_KINDS | {Kind.BIG_DECIMAL}
ATOMIC_KINDS = frozenset({Kind.ATOMIC_BOOLEAN, Kind.ATOMIC_INTEGER, Kind.ATOMIC_LONG})
TEMPORAL_KINDS = frozenset(
    {
        Kind.DATE,
        Kind.SQL_DATE,
        Kind.TIMESTAMP,
        Kind.CALENDAR,
        Kind.LOCAL_DATE,
        Kind.LOCAL_DATE_TIME,
        Kind.ZONED_DATE_TIME,
    },
)
DATE_ONLY_KINDS = frozenset({Kind.SQL_DATE, Kind.LOCAL_DATE})

# Kinds whose null converts to a zero value instead of None
PRIMITIVE_KINDS = frozenset(
    {
        Kind.BOOLEAN,
        Kind.BYTE,
        Kind.SHORT,
        Kind.INT,
        Kind.LONG,
        Kind.FLOAT,
        Kind.DOUBLE,
        Kind.CHARACTER,
    },
)

FLOAT32_MAX = 3.4028234663852886e38


# =============================================================================
# Temporal value types
# =============================================================================


def zone_id(zone: tzinfo | None) -> str | None:
    """Return a stable textual id for a zone (IANA key or ``+HH:MM``)."""
    if zone is None:
        return None
    if isinstance(zone, ZoneInfo):
        return zone.key
    if zone is UTC:
        return "UTC"
    offset = zone.utcoffset(None)
    if offset is None:
        return str(zone)
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def parse_zone(text: str) -> tzinfo:
    """Parse a zone id produced by :func:`zone_id`.

    Raises:
        ValueError: If the zone id is unknown

    """
    text = text.strip()
    if text in ("UTC", "Z", "GMT"):
        return UTC
    if text[:1] in "+-" and len(text) == 6 and text[3] == ":":
        sign = -1 if text[0] == "-" else 1
        offset = timedelta(hours=int(text[1:3]), minutes=int(text[4:6]))
        return timezone(sign * offset)
    try:
        return ZoneInfo(text)
    except (KeyError, ValueError) as exc:
        msg = f"Unknown time zone: {text!r}"
        raise ValueError(msg) from exc


class Instant(datetime):
    """A UTC moment with millisecond precision."""

    __slots__ = ()

    @classmethod
    def of(cls, moment: datetime) -> Instant:
        """Build an instant from any aware datetime."""
        utc = moment.astimezone(UTC)
        return cls(
            utc.year,
            utc.month,
            utc.day,
            utc.hour,
            utc.minute,
            utc.second,
            utc.microsecond // 1000 * 1000,
            tzinfo=UTC,
        )


class Timestamp(datetime):
    """A UTC moment with microsecond precision."""

    __slots__ = ()

    @classmethod
    def of(cls, moment: datetime) -> Timestamp:
        """Build a timestamp from any aware datetime."""
        utc = moment.astimezone(UTC)
        return cls(
            utc.year,
            utc.month,
            utc.day,
            utc.hour,
            utc.minute,
            utc.second,
            utc.microsecond,
            tzinfo=UTC,
        )


class Calendar(datetime):
    """An aware moment that keeps the zone it was created in."""

    __slots__ = ()

    @classmethod
    def of(cls, moment: datetime, zone: tzinfo | None = None) -> Calendar:
        """Build a calendar from an aware datetime, optionally moving it to zone."""
        local = moment.astimezone(zone) if zone is not None else moment
        return cls(
            local.year,
            local.month,
            local.day,
            local.hour,
            local.minute,
            local.second,
            local.microsecond,
            tzinfo=local.tzinfo,
            fold=local.fold,
        )

    @property
    def zone(self) -> str | None:
        """Id of the zone this calendar is expressed in."""
        return zone_id(self.tzinfo)


class SqlDate(date):
    """A calendar date stored as the start of a day."""

    __slots__ = ()

    @classmethod
    def of(cls, day: date) -> SqlDate:
        """Build from any date."""
        return cls(day.year, day.month, day.day)


# =============================================================================
# Atomic boxes
# =============================================================================


class _AtomicBox[T]:
    """A lock-guarded mutable cell."""

    __slots__ = ("_lock", "_value")

    def __init__(self, value: T) -> None:
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def get_and_set(self, value: T) -> T:
        with self._lock:
            previous, self._value = self._value, value
            return previous

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.get() == other.get()  # type: ignore[attr-defined]

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get()!r})"


class AtomicBoolean(_AtomicBox[bool]):
    """Mutable boolean cell."""

    __slots__ = ()

    def __init__(self, value: bool = False) -> None:
        super().__init__(bool(value))


class _AtomicCounter(_AtomicBox[int]):
    __slots__ = ()

    def add_and_get(self, delta: int) -> int:
        with self._lock:
            self._value += delta
            return self._value

    def increment_and_get(self) -> int:
        return self.add_and_get(1)


class AtomicInteger(_AtomicCounter):
    """Mutable integer cell."""

    __slots__ = ()

    def __init__(self, value: int = 0) -> None:
        super().__init__(int(value))


class AtomicLong(_AtomicCounter):
    """Mutable long cell."""

    __slots__ = ()

    def __init__(self, value: int = 0) -> None:
        super().__init__(int(value))


# =============================================================================
# Kind lookup
# =============================================================================

_HINT_KINDS: dict[Any, Kind] = {
    bool: Kind.BOOLEAN,
    Byte: Kind.BYTE,
    Short: Kind.SHORT,
    Int: Kind.INT,
    Long: Kind.LONG,
    int: Kind.BIG_INTEGER,
    Float: Kind.FLOAT,
    float: Kind.DOUBLE,
    Decimal: Kind.BIG_DECIMAL,
    Char: Kind.CHARACTER,
    str: Kind.STRING,
    Instant: Kind.DATE,
    SqlDate: Kind.SQL_DATE,
    Timestamp: Kind.TIMESTAMP,
    Calendar: Kind.CALENDAR,
    date: Kind.LOCAL_DATE,
    datetime: Kind.LOCAL_DATE_TIME,
    ZonedDateTime: Kind.ZONED_DATE_TIME,
    UUID: Kind.UUID,
    type: Kind.TYPE_REFERENCE,
    dict: Kind.MAP,
    AtomicBoolean: Kind.ATOMIC_BOOLEAN,
    AtomicInteger: Kind.ATOMIC_INTEGER,
    AtomicLong: Kind.ATOMIC_LONG,
}

_PYTHON_TYPES: dict[Kind, type] = {
    Kind.BOOLEAN: bool,
    Kind.BYTE: int,
    Kind.SHORT: int,
    Kind.INT: int,
    Kind.LONG: int,
    Kind.BIG_INTEGER: int,
    Kind.FLOAT: float,
    Kind.DOUBLE: float,
    Kind.BIG_DECIMAL: Decimal,
    Kind.CHARACTER: str,
    Kind.STRING: str,
    Kind.DATE: Instant,
    Kind.SQL_DATE: SqlDate,
    Kind.TIMESTAMP: Timestamp,
    Kind.CALENDAR: Calendar,
    Kind.LOCAL_DATE: date,
    Kind.LOCAL_DATE_TIME: datetime,
    Kind.ZONED_DATE_TIME: datetime,
    Kind.UUID: UUID,
    Kind.TYPE_REFERENCE: type,
    Kind.MAP: dict,
    Kind.ATOMIC_BOOLEAN: AtomicBoolean,
    Kind.ATOMIC_INTEGER: AtomicInteger,
    Kind.ATOMIC_LONG: AtomicLong,
}

# Exact runtime types; subclasses of datetime/date are checked before the base
_VALUE_KINDS: dict[type, Kind] = {
    bool: Kind.BOOLEAN,
    int: Kind.BIG_INTEGER,
    float: Kind.DOUBLE,
    Decimal: Kind.BIG_DECIMAL,
    str: Kind.STRING,
    Instant: Kind.DATE,
    SqlDate: Kind.SQL_DATE,
    Timestamp: Kind.TIMESTAMP,
    Calendar: Kind.CALENDAR,
    date: Kind.LOCAL_DATE,
    UUID: Kind.UUID,
    AtomicBoolean: Kind.ATOMIC_BOOLEAN,
    AtomicInteger: Kind.ATOMIC_INTEGER,
    AtomicLong: Kind.ATOMIC_LONG,
}


def kind_for_hint(hint: Any) -> Kind | None:
    """Return the kind selected by a type annotation, or None."""
    try:
        return _HINT_KINDS.get(hint)
    except TypeError:  # unhashable annotation
        return None


def kind_of(value: Any) -> Kind | None:
    """Return the kind of a runtime value, or None if it has none.

    Python ints are unbounded, so every int reports BIG_INTEGER; naive
    datetimes are LOCAL_DATE_TIME and aware ones ZONED_DATE_TIME.
    """
    typ = type(value)
    if (kind := _VALUE_KINDS.get(typ)) is not None:
        return kind
    if typ is datetime:
        return Kind.LOCAL_DATE_TIME if value.tzinfo is None else Kind.ZONED_DATE_TIME
    if isinstance(value, type):
        return Kind.TYPE_REFERENCE
    if isinstance(value, Mapping):
        return Kind.MAP
    return None


def python_type(kind: Kind) -> type:
    """Return the Python type that values of a kind are materialized as."""
    return _PYTHON_TYPES[kind]


def zero_value(kind: Kind) -> Any:
    """Return the value a null converts to for a kind (None unless primitive)."""
    if kind is Kind.BOOLEAN:
        return False
    if kind is Kind.CHARACTER:
        return "\x00"
    if kind in FLOATING_KINDS:
        return 0.0
    if kind in PRIMITIVE_KINDS:
        return 0
    return None
