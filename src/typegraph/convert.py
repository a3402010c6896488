"""Conversion table between value kinds.

Every supported ``(source, target)`` pair is one entry in a table built at
import time. Entry functions take ``(value, converter, target)`` and may be
shared by several pairs, but lookup never chains through intermediate kinds
except for temporal values, which all pass through a single ``Moment``.
"""

from __future__ import annotations

import math
import types
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, Union, get_args, get_origin
from uuid import UUID

from typegraph.errors import ConversionError, UnsupportedConversionError
from typegraph.kinds import (
    ATOMIC_KINDS,
    DATE_ONLY_KINDS,
    FLOAT32_MAX,
    FLOATING_KINDS,
    INTEGRAL_KINDS,
    INTEGRAL_RANGES,
    NUMERIC_KINDS,
    TEMPORAL_KINDS,
    AtomicBoolean,
    AtomicInteger,
    AtomicLong,
    Calendar,
    Instant,
    Kind,
    SqlDate,
    Timestamp,
    kind_for_hint,
    kind_of,
    parse_zone,
    python_type,
    zero_value,
    zone_id,
)
from typegraph.schema import locate_type, qualified_name

type ConversionFn = Callable[[Any, Converter, Kind], Any]

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICROSECOND = timedelta(microseconds=1)
_MASK64 = (1 << 64) - 1
_MAX_CODE_POINT = 0x10FFFF
_TRUE_TEXT = frozenset({"true", "t", "yes", "y", "1"})
_FALSE_TEXT = frozenset({"false", "f", "no", "n", "0", ""})
_TRUE_CHARS = frozenset("1tTyY")
_FALSE_CHARS = frozenset("0fFnN\x00")

# Keys a map must carry to convert into a composite kind ('value'/'_v' always work)
MAP_KEYS: dict[Kind, tuple[str, ...]] = {
    Kind.DATE: ("time",),
    Kind.SQL_DATE: ("time",),
    Kind.TIMESTAMP: ("time", "nanos"),
    Kind.CALENDAR: ("time", "zone"),
    Kind.LOCAL_DATE: ("year", "month", "day"),
    Kind.UUID: ("mostSigBits", "leastSigBits"),
}
VALUE_KEYS = ("value", "_v")


@dataclass(frozen=True)
class Moment:
    """Intermediate for temporal conversions.

    Attributes:
        micros: Microseconds since 1970-01-01T00:00:00Z
        zone: Zone carried by the source value, if any

    """

    micros: int
    zone: tzinfo | None = None

    @property
    def millis(self) -> int:
        return self.micros // 1000

    def to_datetime(self, zone: tzinfo) -> datetime:
        return (_EPOCH + self.micros * _MICROSECOND).astimezone(zone)


def _describe(value: Any) -> str:
    return f"{type(value).__name__} ({value!r})"


def _range_text(target: Kind) -> str:
    if target in INTEGRAL_RANGES:
        lo, hi = INTEGRAL_RANGES[target]
        return f"{lo} to {hi}"
    if target is Kind.FLOAT:
        return f"{-FLOAT32_MAX} to {FLOAT32_MAX}"
    return "any magnitude"


def _check_integral(number: int, target: Kind, original: Any) -> int:
    bounds = INTEGRAL_RANGES.get(target)
    if bounds is not None and not bounds[0] <= number <= bounds[1]:
        msg = (
            f"Value: {original!r} out of range to be converted to {target} "
            f"({_range_text(target)})"
        )
        raise ConversionError(msg, value=original)
    return number


def _check_floating(number: float, target: Kind, original: Any) -> float:
    if target is Kind.FLOAT and math.isfinite(number) and abs(number) > FLOAT32_MAX:
        msg = (
            f"Value: {original!r} out of range to be converted to {target} "
            f"({_range_text(target)})"
        )
        raise ConversionError(msg, value=original)
    return number


# =============================================================================
# Integral targets
# =============================================================================


def _bool_to_integral(value: bool, conv: Converter, target: Kind) -> int:
    return 1 if value else 0


def _integral_to_integral(value: int, conv: Converter, target: Kind) -> int:
    return _check_integral(int(value), target, value)


def _floating_to_integral(value: float, conv: Converter, target: Kind) -> int:
    if not math.isfinite(value):
        msg = f"Value: {value!r} cannot be converted to {target}"
        raise ConversionError(msg, value=value)
    return _check_integral(int(value), target, value)


def _decimal_to_integral(value: Decimal, conv: Converter, target: Kind) -> int:
    if not value.is_finite():
        msg = f"Value: {value!r} cannot be converted to {target}"
        raise ConversionError(msg, value=value)
    return _check_integral(int(value), target, value)


def _char_to_integral(value: str, conv: Converter, target: Kind) -> int:
    return _check_integral(ord(value), target, value)


def _text_to_integral(value: str, conv: Converter, target: Kind) -> int:
    text = value.strip()
    if not text:
        return 0
    try:
        number = int(text)
    except ValueError:
        number = None
    if number is None or (
        target in INTEGRAL_RANGES
        and not INTEGRAL_RANGES[target][0] <= number <= INTEGRAL_RANGES[target][1]
    ):
        msg = (
            f"Value: {text} not parseable as a {target} value or outside "
            f"{_range_text(target)}"
        )
        raise ConversionError(msg, value=value)
    return number


def _temporal_to_millis(value: Any, conv: Converter, target: Kind) -> Any:
    millis = conv.to_moment(value).millis
    if target in INTEGRAL_KINDS:
        return _check_integral(millis, target, value)
    if target is Kind.BIG_DECIMAL:
        return Decimal(millis)
    return float(millis)


# =============================================================================
# Floating and decimal targets
# =============================================================================


def _bool_to_floating(value: bool, conv: Converter, target: Kind) -> float:
    return 1.0 if value else 0.0


def _number_to_floating(value: Any, conv: Converter, target: Kind) -> float:
    try:
        number = float(value)
    except OverflowError as exc:
        msg = f"Value: {value!r} too large to be converted to {target}"
        raise ConversionError(msg, value=value) from exc
    return _check_floating(number, target, value)


def _char_to_floating(value: str, conv: Converter, target: Kind) -> float:
    return float(ord(value))


def _text_to_floating(value: str, conv: Converter, target: Kind) -> float:
    text = value.strip()
    if not text:
        return 0.0
    try:
        number = float(text)
    except ValueError as exc:
        msg = (
            f"Value: {text} not parseable as a {target} value or outside "
            f"{_range_text(target)}"
        )
        raise ConversionError(msg, value=value) from exc
    return _check_floating(number, target, value)


def _bool_to_decimal(value: bool, conv: Converter, target: Kind) -> Decimal:
    return Decimal(1) if value else Decimal(0)


def _integral_to_decimal(value: int, conv: Converter, target: Kind) -> Decimal:
    return Decimal(value)


def _floating_to_decimal(value: float, conv: Converter, target: Kind) -> Decimal:
    if not math.isfinite(value):
        msg = f"Value: {value!r} cannot be converted to {target}"
        raise ConversionError(msg, value=value)
    # repr() gives the shortest round-tripping digits, not the binary expansion
    return Decimal(repr(value))


def _decimal_to_decimal(value: Decimal, conv: Converter, target: Kind) -> Decimal:
    return value


def _char_to_decimal(value: str, conv: Converter, target: Kind) -> Decimal:
    return Decimal(ord(value))


def _text_to_decimal(value: str, conv: Converter, target: Kind) -> Decimal:
    text = value.strip()
    if not text:
        return Decimal(0)
    try:
        number = Decimal(text)
    except InvalidOperation as exc:
        msg = f"Value: {text} not parseable as a {target} value"
        raise ConversionError(msg, value=value) from exc
    if not number.is_finite():
        msg = f"Value: {text} not parseable as a {target} value"
        raise ConversionError(msg, value=value)
    return number


# =============================================================================
# Boolean and character targets
# =============================================================================


def _bool_to_bool(value: bool, conv: Converter, target: Kind) -> bool:
    return value


def _number_to_bool(value: Any, conv: Converter, target: Kind) -> bool:
    return value != 0


def _char_to_bool(value: str, conv: Converter, target: Kind) -> bool:
    if value in _TRUE_CHARS:
        return True
    if value in _FALSE_CHARS:
        return False
    msg = f"Value: {value!r} not parseable as a boolean (expected one of 1/0/t/f/y/n)"
    raise ConversionError(msg, value=value)


def _text_to_bool(value: str, conv: Converter, target: Kind) -> bool:
    text = value.strip().lower()
    if text in _TRUE_TEXT:
        return True
    if text in _FALSE_TEXT:
        return False
    msg = (
        f"Value: {value!r} not parseable as a boolean "
        f"(expected one of {sorted(_TRUE_TEXT | _FALSE_TEXT - {''})})"
    )
    raise ConversionError(msg, value=value)


def _bool_to_char(value: bool, conv: Converter, target: Kind) -> str:
    return "1" if value else "0"


def _integral_to_char(value: int, conv: Converter, target: Kind) -> str:
    if not 0 <= value <= _MAX_CODE_POINT:
        msg = f"Value: {value} out of range to be converted to character"
        raise ConversionError(msg, value=value)
    return chr(value)


def _char_to_char(value: str, conv: Converter, target: Kind) -> str:
    return value


def _text_to_char(value: str, conv: Converter, target: Kind) -> str:
    if len(value) == 1:
        return value
    text = value.strip()
    if not text:
        return "\x00"
    try:
        code = int(text)
    except ValueError as exc:
        msg = (
            f"Value: {value!r} not parseable as a character "
            f"(one character or a code point 0 to {_MAX_CODE_POINT})"
        )
        raise ConversionError(msg, value=value) from exc
    return _integral_to_char(code, conv, target)


# =============================================================================
# String targets
# =============================================================================


def _bool_to_text(value: bool, conv: Converter, target: Kind) -> str:
    return "true" if value else "false"


def _integral_to_text(value: int, conv: Converter, target: Kind) -> str:
    return str(int(value))


def _floating_to_text(value: float, conv: Converter, target: Kind) -> str:
    return repr(float(value))


def _decimal_to_text(value: Decimal, conv: Converter, target: Kind) -> str:
    return format(value, "f")


def _text_to_text(value: str, conv: Converter, target: Kind) -> str:
    return value


def _temporal_to_text(value: Any, conv: Converter, target: Kind) -> str:
    if isinstance(value, Instant):
        return value.isoformat(timespec="milliseconds")
    if isinstance(value, datetime):
        text = value.isoformat()
        if value.tzinfo is not None and not isinstance(value, Timestamp):
            zone = zone_id(value.tzinfo)
            if zone is not None and zone[:1] not in "+-" and zone != "UTC":
                text = f"{text}[{zone}]"
        return text
    return value.isoformat()


def _uuid_to_text(value: UUID, conv: Converter, target: Kind) -> str:
    return str(value)


def _type_to_text(value: type, conv: Converter, target: Kind) -> str:
    return qualified_name(value)


# =============================================================================
# Temporal targets
# =============================================================================


def _temporal_to_temporal(value: Any, conv: Converter, target: Kind) -> Any:
    return conv.from_moment(conv.to_moment(value), target)


def _number_to_temporal(value: Any, conv: Converter, target: Kind) -> Any:
    if isinstance(value, int):
        micros = value * 1000
    elif isinstance(value, Decimal) and not value.is_finite():
        micros = None
    elif isinstance(value, float) and not math.isfinite(value):
        micros = None
    else:
        micros = int(Decimal(value) * 1000)
    if micros is None:
        msg = f"Value: {value!r} cannot be converted to {target}"
        raise ConversionError(msg, value=value)
    try:
        return conv.from_moment(Moment(micros), target)
    except OverflowError as exc:
        msg = f"Value: {value!r} epoch milliseconds out of range for {target}"
        raise ConversionError(msg, value=value) from exc


def _split_zone_suffix(text: str) -> tuple[str, tzinfo | None]:
    if text.endswith("]") and "[" in text:
        head, _, zone = text[:-1].partition("[")
        return head, parse_zone(zone)
    return text, None


def _text_to_temporal(value: str, conv: Converter, target: Kind) -> Any:
    text = value.strip()
    if not text:
        return None
    try:
        head, zone = _split_zone_suffix(text)
        if target in DATE_ONLY_KINDS and len(head) == 10:
            day = date.fromisoformat(head)
            return SqlDate.of(day) if target is Kind.SQL_DATE else day
        parsed = datetime.fromisoformat(head)
    except ValueError as exc:
        msg = f"Unable to parse {value!r} as {target} (expected ISO-8601 text)"
        raise ConversionError(msg, value=value) from exc
    if target is Kind.LOCAL_DATE_TIME:
        if zone is not None and parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=zone)
        if parsed.tzinfo is not None:
            return parsed.astimezone(conv.zone).replace(tzinfo=None)
        return parsed
    if zone is not None:
        parsed = parsed.astimezone(zone) if parsed.tzinfo else parsed.replace(tzinfo=zone)
    elif parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=conv.zone)
    if target is Kind.ZONED_DATE_TIME:
        return parsed
    if target is Kind.CALENDAR:
        return Calendar.of(parsed)
    return conv.from_moment(conv.to_moment(parsed), target)


def _atomic_to_any(value: Any, conv: Converter, target: Kind) -> Any:
    inner = value.get()
    return conv.convert(inner, kind_of(inner), target)


# =============================================================================
# Maps
# =============================================================================


def _accepted_keys_text(target: Kind) -> str:
    keys = MAP_KEYS.get(target)
    generic = "'_v' or 'value'"
    if keys is None:
        return generic
    return f"[{', '.join(keys)}], or {generic}"


def _map_value(value: Mapping[str, Any], conv: Converter, target: Kind) -> Any:
    for key in VALUE_KEYS:
        if key in value:
            inner = value[key]
            return conv.convert(inner, kind_of(inner), target)
    msg = (
        f"To convert from map to {target}, the map must include keys: "
        f"{_accepted_keys_text(target)}"
    )
    raise ConversionError(msg, value=value)


def _map_to_scalar(value: Mapping[str, Any], conv: Converter, target: Kind) -> Any:
    keys = MAP_KEYS.get(target)
    if keys is None or not all(k in value for k in keys):
        return _map_value(value, conv, target)
    try:
        return _map_fields_to_scalar(value, conv, target)
    except ConversionError:
        raise
    except (ValueError, TypeError, OverflowError) as exc:
        msg = (
            f"Unable to convert map to {target}: {exc}; expected keys "
            f"{_accepted_keys_text(target)}"
        )
        raise ConversionError(msg, value=value, type_names=(str(target),)) from exc


def _map_fields_to_scalar(value: Mapping[str, Any], conv: Converter, target: Kind) -> Any:
    match target:
        case Kind.UUID:
            most = int(value["mostSigBits"]) & _MASK64
            least = int(value["leastSigBits"]) & _MASK64
            return UUID(int=(most << 64) | least)
        case Kind.LOCAL_DATE:
            return date(int(value["year"]), int(value["month"]), int(value["day"]))
        case Kind.TIMESTAMP:
            millis = int(value["time"])
            micros = (millis // 1000) * 1_000_000 + int(value["nanos"]) // 1000
            return conv.from_moment(Moment(micros), target)
        case Kind.CALENDAR:
            zone = parse_zone(str(value["zone"]))
            return conv.from_moment(Moment(int(value["time"]) * 1000, zone), target)
        case _:
            return conv.from_moment(Moment(int(value["time"]) * 1000), target)


def _map_to_map(value: Mapping[str, Any], conv: Converter, target: Kind) -> dict:
    return dict(value)


def _scalar_to_map(value: Any, conv: Converter, target: Kind) -> dict[str, Any]:
    match kind_of(value):
        case Kind.UUID:
            most = value.int >> 64
            least = value.int & _MASK64
            return {
                "mostSigBits": most - (1 << 64) if most >= 1 << 63 else most,
                "leastSigBits": least - (1 << 64) if least >= 1 << 63 else least,
            }
        case Kind.DATE | Kind.SQL_DATE:
            return {"time": conv.to_moment(value).millis}
        case Kind.TIMESTAMP:
            moment = conv.to_moment(value)
            return {"time": moment.millis, "nanos": value.microsecond * 1000}
        case Kind.CALENDAR:
            return {"time": conv.to_moment(value).millis, "zone": value.zone}
        case Kind.LOCAL_DATE:
            return {"year": value.year, "month": value.month, "day": value.day}
        case kind if kind in ATOMIC_KINDS:
            return {"_v": value.get()}
        case _:
            return {"_v": value}


# =============================================================================
# UUID, class and atomic targets
# =============================================================================


def _uuid_to_uuid(value: UUID, conv: Converter, target: Kind) -> UUID:
    return value


def _text_to_uuid(value: str, conv: Converter, target: Kind) -> UUID | None:
    text = value.strip()
    if not text:
        return None
    try:
        return UUID(text)
    except ValueError as exc:
        msg = f"Invalid UUID string: {value}"
        raise ConversionError(msg, value=value) from exc


def _integral_to_uuid(value: int, conv: Converter, target: Kind) -> UUID:
    if not 0 <= value < 1 << 128:
        msg = f"Value: {value} out of range to be converted to uuid (0 to 2**128-1)"
        raise ConversionError(msg, value=value)
    return UUID(int=value)


def _uuid_to_integral(value: UUID, conv: Converter, target: Kind) -> int:
    return value.int


def _type_to_type(value: type, conv: Converter, target: Kind) -> type:
    return value


def _text_to_type(value: str, conv: Converter, target: Kind) -> type | None:
    text = value.strip()
    if not text:
        return None
    found = locate_type(text, import_modules=conv.import_modules)
    if found is None:
        msg = f"Cannot convert String '{text}' to class. Class not found"
        raise ConversionError(msg, value=value)
    return found


_ATOMIC_BASE = {
    Kind.ATOMIC_BOOLEAN: (Kind.BOOLEAN, AtomicBoolean),
    Kind.ATOMIC_INTEGER: (Kind.INT, AtomicInteger),
    Kind.ATOMIC_LONG: (Kind.LONG, AtomicLong),
}


def _to_atomic(value: Any, conv: Converter, target: Kind) -> Any:
    base, box = _ATOMIC_BASE[target]
    source = kind_of(value)
    if source in ATOMIC_KINDS:
        value = value.get()
        source = kind_of(value)
    return box(conv.convert(value, source, base))


# =============================================================================
# Table
# =============================================================================

_SCALAR_SOURCES = (
    NUMERIC_KINDS
    | TEMPORAL_KINDS
    | ATOMIC_KINDS
    | {Kind.BOOLEAN, Kind.CHARACTER, Kind.STRING, Kind.UUID, Kind.TYPE_REFERENCE}
)


def _build_table() -> dict[tuple[Kind, Kind], ConversionFn]:
    table: dict[tuple[Kind, Kind], ConversionFn] = {}

    def add(sources: Any, targets: Any, fn: ConversionFn) -> None:
        for source in sources:
            for target in targets:
                table[source, target] = fn

    integral = INTEGRAL_KINDS
    to_number = NUMERIC_KINDS

    add([Kind.BOOLEAN], integral, _bool_to_integral)
    add(integral, integral, _integral_to_integral)
    add(FLOATING_KINDS, integral, _floating_to_integral)
    add([Kind.BIG_DECIMAL], integral, _decimal_to_integral)
    add([Kind.CHARACTER], integral, _char_to_integral)
    add([Kind.STRING], integral, _text_to_integral)
    add([Kind.UUID], [Kind.BIG_INTEGER], _uuid_to_integral)
    add(TEMPORAL_KINDS, [Kind.LONG, Kind.BIG_INTEGER, Kind.DOUBLE, Kind.BIG_DECIMAL],
        _temporal_to_millis)

    add([Kind.BOOLEAN], FLOATING_KINDS, _bool_to_floating)
    add(integral | FLOATING_KINDS | {Kind.BIG_DECIMAL}, FLOATING_KINDS,
        _number_to_floating)
    add([Kind.CHARACTER], FLOATING_KINDS, _char_to_floating)
    add([Kind.STRING], FLOATING_KINDS, _text_to_floating)

    add([Kind.BOOLEAN], [Kind.BIG_DECIMAL], _bool_to_decimal)
    add(integral, [Kind.BIG_DECIMAL], _integral_to_decimal)
    add(FLOATING_KINDS, [Kind.BIG_DECIMAL], _floating_to_decimal)
    add([Kind.BIG_DECIMAL], [Kind.BIG_DECIMAL], _decimal_to_decimal)
    add([Kind.CHARACTER], [Kind.BIG_DECIMAL], _char_to_decimal)
    add([Kind.STRING], [Kind.BIG_DECIMAL], _text_to_decimal)

    add([Kind.BOOLEAN], [Kind.BOOLEAN], _bool_to_bool)
    add(to_number, [Kind.BOOLEAN], _number_to_bool)
    add([Kind.CHARACTER], [Kind.BOOLEAN], _char_to_bool)
    add([Kind.STRING], [Kind.BOOLEAN], _text_to_bool)

    add([Kind.BOOLEAN], [Kind.CHARACTER], _bool_to_char)
    add(integral, [Kind.CHARACTER], _integral_to_char)
    add([Kind.CHARACTER], [Kind.CHARACTER], _char_to_char)
    add([Kind.STRING], [Kind.CHARACTER], _text_to_char)

    add([Kind.BOOLEAN], [Kind.STRING], _bool_to_text)
    add(integral, [Kind.STRING], _integral_to_text)
    add(FLOATING_KINDS, [Kind.STRING], _floating_to_text)
    add([Kind.BIG_DECIMAL], [Kind.STRING], _decimal_to_text)
    add([Kind.CHARACTER, Kind.STRING], [Kind.STRING], _text_to_text)
    add(TEMPORAL_KINDS, [Kind.STRING], _temporal_to_text)
    add([Kind.UUID], [Kind.STRING], _uuid_to_text)
    add([Kind.TYPE_REFERENCE], [Kind.STRING], _type_to_text)

    add(TEMPORAL_KINDS, TEMPORAL_KINDS, _temporal_to_temporal)
    add(integral | FLOATING_KINDS | {Kind.BIG_DECIMAL}, TEMPORAL_KINDS,
        _number_to_temporal)
    add([Kind.STRING], TEMPORAL_KINDS, _text_to_temporal)

    add([Kind.UUID], [Kind.UUID], _uuid_to_uuid)
    add([Kind.STRING], [Kind.UUID], _text_to_uuid)
    add([Kind.BIG_INTEGER], [Kind.UUID], _integral_to_uuid)

    add([Kind.TYPE_REFERENCE], [Kind.TYPE_REFERENCE], _type_to_type)
    add([Kind.STRING], [Kind.TYPE_REFERENCE], _text_to_type)

    # Atomic sources unwrap and re-dispatch on the boxed value's kind
    scalar_targets = {target for (_, target) in table}
    add(ATOMIC_KINDS, scalar_targets - TEMPORAL_KINDS - {Kind.UUID, Kind.TYPE_REFERENCE},
        _atomic_to_any)
    add([Kind.ATOMIC_INTEGER, Kind.ATOMIC_LONG], TEMPORAL_KINDS, _atomic_to_any)

    for atomic, (base, _) in _ATOMIC_BASE.items():
        sources = {source for (source, target) in table if target is base}
        add(sources | ATOMIC_KINDS, [atomic], _to_atomic)

    # Maps: composite targets read their key set, everything accepts 'value'/'_v'
    add([Kind.MAP], {target for (_, target) in table}, _map_to_scalar)
    add([Kind.MAP], [Kind.MAP], _map_to_map)
    add(_SCALAR_SOURCES, [Kind.MAP], _scalar_to_map)
    return table


_TABLE = _build_table()


class Converter:
    """Converts values between kinds and into annotated Python types.

    Instances copy the built-in table, so pairs added with
    :meth:`add_conversion` stay local to the converter. Converters are
    sealed by the options objects that own them; after sealing the
    converter is read-only and safe to share between threads.

    Example:
        conv = Converter()
        conv.convert("25", Kind.STRING, Kind.BYTE)   # 25
        conv.convert_to(True, Byte)                  # 1
        conv.convert("257", Kind.STRING, Kind.BYTE)  # raises ConversionError

    """

    def __init__(self, *, zone: tzinfo = UTC, import_modules: bool = False) -> None:
        self.zone = zone
        self.import_modules = import_modules
        self._table = dict(_TABLE)
        self._custom: dict[tuple[type, Any], Callable[[Any], Any]] = {}
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Make the converter read-only."""
        self._sealed = True

    def add_conversion[S, T](
        self,
        source: type[S],
        target: type[T] | Any,
        fn: Callable[[S], T],
    ) -> None:
        """Register a conversion for an exact pair of Python types.

        Caller conversions take priority over built-in kinds for that pair.

        Raises:
            RuntimeError: If the converter is sealed

        """
        if self._sealed:
            msg = "Converter is sealed; register conversions before building options"
            raise RuntimeError(msg)
        self._custom[source, target] = fn

    def pairs(self) -> frozenset[tuple[Kind, Kind]]:
        """All supported (source, target) kind pairs."""
        return frozenset(self._table)

    def is_supported(self, source: Kind | type, target: Kind | Any) -> bool:
        """Check whether :meth:`convert` / :meth:`convert_to` accept a pair."""
        if not isinstance(source, Kind):
            if (source, target) in self._custom:
                return True
            source_kind = kind_for_hint(source)
            if source_kind is None:
                return False
            source = source_kind
        if not isinstance(target, Kind):
            target_kind = kind_for_hint(target)
            if target_kind is None:
                return False
            target = target_kind
        return (source, target) in self._table

    def convert(self, value: Any, source: Kind | None, target: Kind) -> Any:
        """Convert a value from one kind to another.

        A conversion added for the value's type and the kind's Python type
        runs before the table.

        Args:
            value: The value to convert
            source: Kind of the value, or None to infer it
            target: Kind to convert to

        Returns:
            The converted value; None converts to the target's zero value

        Raises:
            UnsupportedConversionError: If the pair is not in the table
            ConversionError: If the value cannot be represented in the target

        """
        if value is None:
            return zero_value(target)
        if (fn := self._custom.get((type(value), python_type(target)))) is not None:
            return fn(value)
        if source is None:
            source = kind_of(value)
        fn = self._table.get((source, target)) if source is not None else None
        if fn is None:
            msg = (
                f"Unsupported conversion, source type [{_describe(value)}] "
                f"target type '{target}'"
            )
            raise UnsupportedConversionError(msg, value=value, type_names=(str(target),))
        return fn(value, self, target)

    def convert_to(self, value: Any, target: Kind | Any) -> Any:
        """Convert a value to a Kind or to an annotated Python type."""
        if isinstance(target, Kind):
            return self.convert(value, None, target)
        options = get_args(target) if get_origin(target) in (Union, types.UnionType) else ()
        if type(None) in options:
            if value is None:
                return None
            remaining = [opt for opt in options if opt is not type(None)]
            if len(remaining) == 1:
                target = remaining[0]
        if value is not None and (fn := self._custom.get((type(value), target))):
            return fn(value)
        if value is not None and type(value) is target:
            return value
        kind = kind_for_hint(target)
        if kind is None:
            if isinstance(target, type) and isinstance(value, target):
                return value
            msg = (
                f"Unsupported conversion, source type [{_describe(value)}] "
                f"target type '{getattr(target, '__name__', target)}'"
            )
            raise UnsupportedConversionError(msg, value=value)
        if kind is Kind.TYPE_REFERENCE and isinstance(value, type):
            return value
        return self.convert(value, None, kind)

    # -------------------------------------------------------------------------
    # Temporal funnel
    # -------------------------------------------------------------------------

    def to_moment(self, value: date) -> Moment:
        """Reduce any temporal value to a Moment."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=self.zone)
            micros = (value - _EPOCH) // _MICROSECOND
            keeps_zone = not isinstance(value, Instant | Timestamp)
            return Moment(micros, value.tzinfo if keeps_zone else None)
        start = datetime.combine(value, time(), tzinfo=self.zone)
        return Moment((start - _EPOCH) // _MICROSECOND)

    def from_moment(self, moment: Moment, target: Kind) -> Any:
        """Expand a Moment into a value of a temporal kind."""
        zone = moment.zone or self.zone
        match target:
            case Kind.DATE:
                return Instant.of(moment.to_datetime(UTC))
            case Kind.TIMESTAMP:
                return Timestamp.of(moment.to_datetime(UTC))
            case Kind.CALENDAR:
                return Calendar.of(moment.to_datetime(zone))
            case Kind.ZONED_DATE_TIME:
                return moment.to_datetime(zone)
            case Kind.LOCAL_DATE_TIME:
                return moment.to_datetime(self.zone).replace(tzinfo=None)
            case Kind.LOCAL_DATE:
                return moment.to_datetime(zone).date()
            case Kind.SQL_DATE:
                return SqlDate.of(moment.to_datetime(zone).date())
            case _:
                msg = f"{target} is not a temporal kind"
                raise UnsupportedConversionError(msg, type_names=(str(target),))
