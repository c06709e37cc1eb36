"""Decode multi-valued query parameters into dataclass records.

A destination is a mutable dataclass instance whose participating fields are
declared with :func:`query_field`::

    @dataclass
    class ListQuery:
        status: List[str] = query_field("status", default_factory=list)
        limit: Annotated[int, ScalarKind.UINT32] = query_field("limit", default=0)

    q = decode({"status": ["TODO", "DONE"], "limit": ["10"]}, ListQuery())

Element types map to kinds: ``str``, ``int`` (64 bit), ``bool``, ``float``
(64 bit), ``complex`` (128 bit) and ``datetime``. ``List[X]`` fields take
every supplied value in order; scalar fields take the last one. Narrower
widths are chosen with ``Annotated[int, ScalarKind.INT8]`` or
``query_field(..., kind=ScalarKind.INT8)``.

Binding stops at the first bad field. Fields bound before it keep their new
values, fields after it are left alone.
"""
from __future__ import annotations

import dataclasses
import math
import re
import struct
import sys
import types
import typing
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union
from urllib.parse import parse_qs

QUERY_KEY = "query"
QUERY_KIND = "query_kind"


class ScalarKind(str, Enum):
    TEXT = "text"
    INT = "int"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT = "uint"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    BOOL = "bool"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    COMPLEX64 = "complex64"
    COMPLEX128 = "complex128"
    TIMESTAMP = "timestamp"


_KIND_BY_TYPE: Dict[Any, ScalarKind] = {
    str: ScalarKind.TEXT,
    int: ScalarKind.INT,
    bool: ScalarKind.BOOL,
    float: ScalarKind.FLOAT64,
    complex: ScalarKind.COMPLEX128,
    datetime: ScalarKind.TIMESTAMP,
}


# --- errors ---

def _kind_name(kind: Any) -> str:
    if isinstance(kind, ScalarKind):
        return kind.value
    return getattr(kind, "__name__", None) or repr(kind)


class QueryError(Exception):
    """Base class for everything :func:`decode` can raise."""


class InvalidDestination(QueryError):
    def __init__(self, reason: str):
        super().__init__(f"query.decode: {reason}")
        self.reason = reason


class UnsupportedType(QueryError):
    def __init__(self, field: str, kind: Any):
        super().__init__(f"query.decode: field {field}: unsupported kind {_kind_name(kind)}")
        self.field = field
        self.kind = kind


class ValueParseError(QueryError):
    def __init__(self, field: str, raw: str, kind: ScalarKind, reason: str = ""):
        msg = f"query.decode: field {field}: cannot parse {raw!r} as {_kind_name(kind)}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.field = field
        self.raw = raw
        self.kind = kind
        self.reason = reason


# --- results ---

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclasses.dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclasses.dataclass(frozen=True)
class Failure(Generic[E]):
    error: E


Result = Union[Success[T], Failure[E]]


# --- schema ---

@dataclasses.dataclass(frozen=True)
class FieldSpec:
    name: str
    key: str
    is_sequence: bool
    # ScalarKind, or the declared type when no parser exists for it
    kind: Any


def query_field(
    key: str,
    *,
    kind: Optional[ScalarKind] = None,
    default: Any = dataclasses.MISSING,
    default_factory: Any = dataclasses.MISSING,
) -> Any:
    """Declare a dataclass field bound to the query parameter ``key``."""
    metadata: Dict[str, Any] = {QUERY_KEY: key}
    if kind is not None:
        metadata[QUERY_KIND] = ScalarKind(kind)
    return dataclasses.field(default=default, default_factory=default_factory, metadata=metadata)


def _unwrap(tp: Any) -> Tuple[Any, Optional[ScalarKind]]:
    """Strip ``Optional`` and ``Annotated`` wrappers, collecting an annotated kind."""
    annotated: Optional[ScalarKind] = None
    while True:
        origin = typing.get_origin(tp)
        if origin is typing.Annotated:
            tp, *extras = typing.get_args(tp)
            for extra in extras:
                if isinstance(extra, ScalarKind):
                    annotated = extra
            continue
        if origin is Union or origin is types.UnionType:
            args = [a for a in typing.get_args(tp) if a is not type(None)]
            if len(args) == 1:
                tp = args[0]
                continue
        return tp, annotated


def _field_kind(tp: Any, explicit: Optional[ScalarKind]) -> Tuple[bool, Any]:
    tp, annotated = _unwrap(tp)
    if typing.get_origin(tp) is list:
        args = typing.get_args(tp)
        elem, elem_annotated = _unwrap(args[0] if args else Any)
        return True, explicit or elem_annotated or annotated or _KIND_BY_TYPE.get(elem, elem)
    return False, explicit or annotated or _KIND_BY_TYPE.get(tp, tp)


def _field_hint(cls: type, f: dataclasses.Field) -> Any:
    """Resolve one field's annotation on its own.

    Postponed (string) annotations are evaluated against the defining
    module. A name that does not resolve only affects its own field, which
    keeps the string and fails as unsupported once a value arrives for it.
    """
    tp = f.type
    if not isinstance(tp, str):
        return tp
    module = sys.modules.get(cls.__module__)
    globalns = dict(vars(module)) if module is not None else {}
    try:
        return eval(tp, globalns)
    except (NameError, AttributeError, SyntaxError, TypeError):
        return tp


def introspect(dst: Any) -> List[FieldSpec]:
    """List the participating fields of ``dst`` in declaration order.

    Raises :class:`InvalidDestination` when ``dst`` cannot be written into.
    Unsupported field types are not an error here; they only fail once a
    value actually arrives for them.
    """
    if dst is None:
        raise InvalidDestination("dst must not be None")
    if isinstance(dst, type) or not dataclasses.is_dataclass(dst):
        raise InvalidDestination(f"dst must be a dataclass instance, got {type(dst).__name__}")
    params = getattr(type(dst), "__dataclass_params__", None)
    if params is not None and params.frozen:
        raise InvalidDestination(f"dst must be mutable, {type(dst).__name__} is frozen")

    specs: List[FieldSpec] = []
    for f in dataclasses.fields(dst):
        key = f.metadata.get(QUERY_KEY)
        if not key or f.name.startswith("_"):
            continue
        is_sequence, kind = _field_kind(_field_hint(type(dst), f), f.metadata.get(QUERY_KIND))
        specs.append(FieldSpec(name=f.name, key=key, is_sequence=is_sequence, kind=kind))
    return specs


# --- scalar parsers ---

_INT_BITS = {
    ScalarKind.INT: 64,
    ScalarKind.INT8: 8,
    ScalarKind.INT16: 16,
    ScalarKind.INT32: 32,
    ScalarKind.INT64: 64,
}
_UINT_BITS = {
    ScalarKind.UINT: 64,
    ScalarKind.UINT8: 8,
    ScalarKind.UINT16: 16,
    ScalarKind.UINT32: 32,
    ScalarKind.UINT64: 64,
}
_SIGNED_RE = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_RE = re.compile(r"[0-9]+")
_FLOAT_BODY = r"(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)"
_FLOAT_RE = re.compile(r"[+-]?" + _FLOAT_BODY, re.IGNORECASE)

_BOOLS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}


def _parse_text(raw: str, kind: ScalarKind) -> str:
    return raw


def _parse_int(raw: str, kind: ScalarKind) -> int:
    if not _SIGNED_RE.fullmatch(raw):
        raise ValueError("invalid syntax")
    n = int(raw)
    bits = _INT_BITS[kind]
    if not -(1 << (bits - 1)) <= n < (1 << (bits - 1)):
        raise ValueError("value out of range")
    return n


def _parse_uint(raw: str, kind: ScalarKind) -> int:
    if not _UNSIGNED_RE.fullmatch(raw):
        raise ValueError("invalid syntax")
    n = int(raw)
    if n >= 1 << _UINT_BITS[kind]:
        raise ValueError("value out of range")
    return n


def _parse_bool(raw: str, kind: ScalarKind) -> bool:
    try:
        return _BOOLS[raw]
    except KeyError:
        raise ValueError("invalid syntax") from None


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        raise ValueError("value out of range") from None


def _parse_float_text(raw: str, single: bool) -> float:
    if not _FLOAT_RE.fullmatch(raw):
        raise ValueError("invalid syntax")
    value = float(raw)
    if math.isinf(value) and raw.lstrip("+-").lower() not in ("inf", "infinity"):
        raise ValueError("value out of range")
    return _to_float32(value) if single else value


def _parse_float(raw: str, kind: ScalarKind) -> float:
    return _parse_float_text(raw, kind is ScalarKind.FLOAT32)


def _imaginary_split(body: str) -> int:
    """Index of the sign that starts the imaginary part, or 0 if there is none."""
    for i in range(len(body) - 1, 0, -1):
        if body[i] in "+-" and body[i - 1] not in "eE":
            return i
    return 0


def _parse_complex(raw: str, kind: ScalarKind) -> complex:
    single = kind is ScalarKind.COMPLEX64
    text = raw
    if len(text) >= 2 and text[0] == "(" and text[-1] == ")":
        text = text[1:-1]
    if not text.endswith("i"):
        return complex(_parse_float_text(text, single), 0.0)

    body = text[:-1]
    split = _imaginary_split(body)
    real = _parse_float_text(body[:split], single) if split else 0.0
    imag = _parse_float_text(body[split:], single)
    return complex(real, imag)


_RFC3339_RE = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})"
)
_DATE_RE = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")
_TIME_RE = re.compile(r"([0-9]{2}):([0-9]{2}):([0-9]{2})(?:\.([0-9]+))?")


def _micros(fraction: Optional[str]) -> int:
    return int((fraction or "0")[:6].ljust(6, "0"))


def _offset(text: str) -> Optional[timezone]:
    if text == "Z":
        return timezone.utc
    hours, minutes = int(text[1:3]), int(text[4:6])
    if hours >= 24 or minutes >= 60:
        return None
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(-delta if text[0] == "-" else delta)


def _parse_datetime_with_offset(raw: str) -> Optional[datetime]:
    m = _RFC3339_RE.fullmatch(raw)
    if m is None:
        return None
    year, month, day, hour, minute, second, fraction, offset = m.groups()
    tz = _offset(offset)
    if tz is None:
        return None
    try:
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second),
            _micros(fraction), tzinfo=tz,
        )
    except ValueError:
        return None


def _parse_date_only(raw: str) -> Optional[datetime]:
    m = _DATE_RE.fullmatch(raw)
    if m is None:
        return None
    try:
        return datetime(*(int(g) for g in m.groups()), tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_time_only(raw: str) -> Optional[datetime]:
    m = _TIME_RE.fullmatch(raw)
    if m is None:
        return None
    hour, minute, second, fraction = m.groups()
    try:
        return datetime(1, 1, 1, int(hour), int(minute), int(second), _micros(fraction), tzinfo=timezone.utc)
    except ValueError:
        return None


# tried in order, first match wins
TIMESTAMP_GRAMMARS: Tuple[Callable[[str], Optional[datetime]], ...] = (
    _parse_datetime_with_offset,
    _parse_date_only,
    _parse_time_only,
)


def _parse_timestamp(raw: str, kind: ScalarKind) -> datetime:
    for grammar in TIMESTAMP_GRAMMARS:
        value = grammar(raw)
        if value is not None:
            return value
    raise ValueError("not a date-time, date or time")


_PARSERS: Dict[ScalarKind, Callable[[str, ScalarKind], Any]] = {
    ScalarKind.TEXT: _parse_text,
    **{k: _parse_int for k in _INT_BITS},
    **{k: _parse_uint for k in _UINT_BITS},
    ScalarKind.BOOL: _parse_bool,
    ScalarKind.FLOAT32: _parse_float,
    ScalarKind.FLOAT64: _parse_float,
    ScalarKind.COMPLEX64: _parse_complex,
    ScalarKind.COMPLEX128: _parse_complex,
    ScalarKind.TIMESTAMP: _parse_timestamp,
}


def parse_scalar(kind: Any, raw: str, *, field: str = "") -> Result:
    """Parse one raw value as ``kind``; failures come back as :class:`Failure`."""
    parser = _PARSERS.get(kind) if isinstance(kind, ScalarKind) else None
    if parser is None:
        return Failure(UnsupportedType(field, kind))
    try:
        return Success(parser(raw, kind))
    except ValueError as exc:
        return Failure(ValueParseError(field, raw, kind, str(exc)))


# --- binding ---

def _bind_field(spec: FieldSpec, raw_values: Sequence[str]) -> Result:
    if not spec.is_sequence:
        return parse_scalar(spec.kind, raw_values[-1], field=spec.name)
    parsed = []
    for raw in raw_values:
        result = parse_scalar(spec.kind, raw, field=spec.name)
        if isinstance(result, Failure):
            return result
        parsed.append(result.value)
    return Success(parsed)


def bind(specs: Sequence[FieldSpec], params: Optional[Mapping[str, Sequence[str]]], dst: Any) -> Optional[QueryError]:
    """Write parsed values into ``dst``; returns the first error, if any."""
    params = params or {}
    for spec in specs:
        raw_values = params.get(spec.key)
        if isinstance(raw_values, str):
            raw_values = [raw_values]
        if not raw_values:
            continue
        result = _bind_field(spec, raw_values)
        if isinstance(result, Failure):
            return result.error
        setattr(dst, spec.name, result.value)
    return None


def try_decode(params: Optional[Mapping[str, Sequence[str]]], dst: Any) -> Optional[QueryError]:
    try:
        specs = introspect(dst)
    except InvalidDestination as exc:
        return exc
    return bind(specs, params, dst)


def decode(params: Optional[Mapping[str, Sequence[str]]], dst: T) -> T:
    """Populate ``dst`` from ``params`` and return it, raising :class:`QueryError` on bad input."""
    err = try_decode(params, dst)
    if err is not None:
        raise err
    return dst


def params_from_query_string(qs: str) -> Dict[str, List[str]]:
    return parse_qs(qs, keep_blank_values=True)
