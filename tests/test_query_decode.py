import struct
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Annotated, List, Optional

import pytest

from task_server.lib.query import (
    InvalidDestination,
    ScalarKind,
    UnsupportedType,
    ValueParseError,
    decode,
    introspect,
    params_from_query_string,
    try_decode,
    query_field,
)


def f32(x: float) -> float:
    return struct.unpack("<f", struct.pack("<f", x))[0]


@dataclass
class Everything:
    string: str = query_field("string", default="")
    strings: List[str] = query_field("strings", default_factory=list)
    int_: int = query_field("int", default=0)
    ints: List[int] = query_field("ints", default_factory=list)
    int8: Annotated[int, ScalarKind.INT8] = query_field("int8", default=0)
    int16: Annotated[int, ScalarKind.INT16] = query_field("int16", default=0)
    int32: Annotated[int, ScalarKind.INT32] = query_field("int32", default=0)
    int64: Annotated[int, ScalarKind.INT64] = query_field("int64", default=0)
    uint: int = query_field("uint", kind=ScalarKind.UINT, default=0)
    uints: List[Annotated[int, ScalarKind.UINT]] = query_field("uints", default_factory=list)
    uint8: Annotated[int, ScalarKind.UINT8] = query_field("uint8", default=0)
    uint16: Annotated[int, ScalarKind.UINT16] = query_field("uint16", default=0)
    uint32: Annotated[int, ScalarKind.UINT32] = query_field("uint32", default=0)
    uint64: Annotated[int, ScalarKind.UINT64] = query_field("uint64", default=0)
    bool_: bool = query_field("bool", default=False)
    bools: List[bool] = query_field("bools", default_factory=list)
    float32: Annotated[float, ScalarKind.FLOAT32] = query_field("float32", default=0.0)
    float64: float = query_field("float64", default=0.0)
    floats: List[float] = query_field("floats", default_factory=list)
    complex64: Annotated[complex, ScalarKind.COMPLEX64] = query_field("complex64", default=0j)
    complex128: complex = query_field("complex128", default=0j)
    complexes: List[complex] = query_field("complexes", default_factory=list)
    datetime_: Optional[datetime] = query_field("datetime", default=None)
    datetime_offset: Optional[datetime] = query_field("datetimeOffset", default=None)
    date_: Optional[datetime] = query_field("date", default=None)
    time_: Optional[datetime] = query_field("time", default=None)
    times: List[datetime] = query_field("times", default_factory=list)


def test_decode_sets_supported_types():
    values = {
        "string": ["abc"],
        "strings": ["a", "b"],
        "int": ["10"],
        "ints": ["0", "1", "10"],
        "int8": ["-8"],
        "int16": ["-16"],
        "int32": ["-32"],
        "int64": ["-64"],
        "uint": ["12"],
        "uints": ["5", "6"],
        "uint8": ["8"],
        "uint16": ["16"],
        "uint32": ["32"],
        "uint64": ["64"],
        "bool": ["true"],
        "bools": ["true", "false", "true"],
        "float32": ["3.14"],
        "float64": ["2.718"],
        "floats": ["1.23", "4.56"],
        "complex64": ["(1+2i)"],
        "complex128": ["(3+4i)"],
        "complexes": ["(1+0i)", "(0+1i)"],
        "datetime": ["2025-01-02T15:04:05Z"],
        "datetimeOffset": ["2025-01-02T15:04:05+09:00"],
        "date": ["2025-01-02"],
        "time": ["15:04:05"],
        "times": ["2025-01-02T15:04:05Z", "2025-01-03"],
    }

    dst = decode(values, Everything())

    assert dst.string == "abc"
    assert dst.strings == ["a", "b"]
    assert (dst.int_, dst.int8, dst.int16, dst.int32, dst.int64) == (10, -8, -16, -32, -64)
    assert (dst.uint, dst.uint8, dst.uint16, dst.uint32, dst.uint64) == (12, 8, 16, 32, 64)
    assert dst.bool_ is True
    assert dst.float32 == f32(3.14)
    assert dst.float64 == 2.718
    assert dst.complex64 == complex(1, 2)
    assert dst.complex128 == complex(3, 4)
    assert dst.datetime_ == datetime(2025, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
    assert dst.datetime_offset.astimezone(timezone.utc) == datetime(2025, 1, 2, 6, 4, 5, tzinfo=timezone.utc)
    assert dst.date_.date() == date(2025, 1, 2)
    assert dst.time_.time() == time(15, 4, 5)
    assert dst.ints == [0, 1, 10]
    assert dst.uints == [5, 6]
    assert dst.bools == [True, False, True]
    assert dst.floats == [1.23, 4.56]
    assert dst.complexes == [complex(1, 0), complex(0, 1)]
    assert dst.times == [
        datetime(2025, 1, 2, 15, 4, 5, tzinfo=timezone.utc),
        datetime(2025, 1, 3, tzinfo=timezone.utc),
    ]


@dataclass
class ByID:
    ID: int = query_field("id", default=0)


@dataclass
class ByIDs:
    IDs: List[int] = query_field("ids", default_factory=list)


@dataclass
class When:
    When: Optional[datetime] = query_field("when", default=None)


@dataclass
class Flag:
    Flag: bool = query_field("flag", default=False)


@dataclass
class Number:
    N: int = query_field("n", default=0)


def test_signed_integer_field():
    assert decode({"id": ["42"]}, ByID()).ID == 42


def test_sequence_keeps_order_and_length():
    assert decode({"ids": ["1", "2", "3"]}, ByIDs()).IDs == [1, 2, 3]
    assert decode({"ids": ["3", "1", "2", "1"]}, ByIDs()).IDs == [3, 1, 2, 1]


def test_date_only_leaves_time_of_day_at_zero():
    dst = decode({"when": ["2025-01-02"]}, When())
    assert dst.When == datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert dst.When.time() == time(0, 0)


def test_absent_key_leaves_field_untouched():
    assert decode({}, Flag()).Flag is False
    assert decode({}, Flag(Flag=True)).Flag is True


def test_empty_value_list_leaves_field_untouched():
    assert decode({"flag": []}, Flag(Flag=True)).Flag is True


def test_malformed_value_names_field_and_raw():
    with pytest.raises(ValueParseError) as exc_info:
        decode({"n": ["abc"]}, Number())
    err = exc_info.value
    assert err.field == "N"
    assert err.raw == "abc"
    assert err.kind is ScalarKind.INT
    assert "N" in str(err)


def test_none_destination():
    with pytest.raises(InvalidDestination):
        decode({"id": ["1"]}, None)


@pytest.mark.parametrize("dst", [0, "x", {"id": 1}, ByID])
def test_non_dataclass_instance_destination(dst):
    with pytest.raises(InvalidDestination):
        decode({"id": ["1"]}, dst)


@dataclass(frozen=True)
class Frozen:
    ID: int = query_field("id", default=0)


def test_frozen_destination_is_rejected_before_any_write():
    dst = Frozen()
    with pytest.raises(InvalidDestination):
        decode({"id": ["1"]}, dst)
    assert dst.ID == 0


def test_scalar_takes_last_value():
    assert decode({"id": ["1", "2", "3"]}, ByID()).ID == 3


def test_only_last_value_is_parsed_for_scalars():
    # earlier values are never looked at
    assert decode({"id": ["junk", "7"]}, ByID()).ID == 7


def test_plain_string_value_counts_as_one_value():
    assert decode({"id": "42"}, ByID()).ID == 42


def test_none_params_is_empty():
    assert decode(None, ByID()).ID == 0


@dataclass
class Mixed:
    tagged: str = query_field("tagged", default="")
    untagged: str = "keep"
    empty_key: str = query_field("", default="keep")
    _private: str = query_field("private", default="keep")
    plain: int = field(default=5, metadata={"other": "x"})


def test_only_tagged_public_fields_participate():
    specs = introspect(Mixed())
    assert [s.name for s in specs] == ["tagged"]

    dst = decode(
        {"tagged": ["t"], "untagged": ["x"], "": ["x"], "private": ["x"], "plain": ["9"]},
        Mixed(),
    )
    assert dst.tagged == "t"
    assert dst.untagged == "keep"
    assert dst.empty_key == "keep"
    assert dst._private == "keep"
    assert dst.plain == 5


def test_keys_are_case_sensitive():
    assert decode({"ID": ["5"]}, ByID()).ID == 0


def test_introspect_builds_field_specs():
    specs = {s.name: s for s in introspect(Everything())}
    assert specs["ints"].is_sequence and specs["ints"].kind is ScalarKind.INT
    assert specs["uints"].kind is ScalarKind.UINT
    assert specs["uint"].kind is ScalarKind.UINT
    assert specs["int8"].kind is ScalarKind.INT8
    assert not specs["datetime_"].is_sequence
    assert specs["datetime_"].kind is ScalarKind.TIMESTAMP
    assert specs["datetime_offset"].key == "datetimeOffset"


@dataclass
class Inner:
    x: int = 0


@dataclass
class Unsupported:
    name: str = query_field("name", default="")
    payload: dict = query_field("payload", default_factory=dict)
    inner: Optional[Inner] = query_field("inner", default=None)


def test_unsupported_type_is_only_an_error_when_a_value_arrives():
    assert len(introspect(Unsupported())) == 3
    assert decode({"name": ["n"]}, Unsupported()).name == "n"

    with pytest.raises(UnsupportedType) as exc_info:
        decode({"payload": ["x"]}, Unsupported())
    assert exc_info.value.field == "payload"
    assert exc_info.value.kind is dict

    with pytest.raises(UnsupportedType) as exc_info:
        decode({"inner": ["x"]}, Unsupported())
    assert exc_info.value.field == "inner"
    assert "Inner" in str(exc_info.value)


@dataclass
class Three:
    a: int = query_field("a", default=0)
    b: int = query_field("b", default=0)
    c: int = query_field("c", default=0)


def test_fields_before_a_failure_keep_their_values():
    dst = Three()
    with pytest.raises(ValueParseError) as exc_info:
        decode({"a": ["1"], "b": ["x"], "c": ["3"]}, dst)
    assert exc_info.value.field == "b"
    assert dst.a == 1
    assert dst.b == 0
    assert dst.c == 0


def test_sequence_failure_leaves_field_untouched():
    dst = ByIDs(IDs=[9])
    with pytest.raises(ValueParseError) as exc_info:
        decode({"ids": ["1", "two", "3"]}, dst)
    assert exc_info.value.raw == "two"
    assert dst.IDs == [9]


def test_try_decode_returns_errors_as_values():
    assert try_decode({"n": ["1"]}, Number()) is None
    err = try_decode({"n": ["x"]}, Number())
    assert isinstance(err, ValueParseError)
    assert isinstance(try_decode({}, None), InvalidDestination)


def test_decode_from_query_string():
    params = params_from_query_string("ids=1&ids=2&id=5&flag=&flag=t")
    assert params == {"ids": ["1", "2"], "id": ["5"], "flag": ["", "t"]}
    assert decode(params, ByIDs()).IDs == [1, 2]
    assert decode(params, Flag()).Flag is True


def test_blank_value_is_still_a_value():
    with pytest.raises(ValueParseError):
        decode(params_from_query_string("n="), Number())


def test_text_is_not_trimmed():
    @dataclass
    class Text:
        s: str = query_field("s", default="")

    assert decode({"s": ["  padded "]}, Text()).s == "  padded "


def test_introspection_is_not_cached_across_calls():
    a, b = introspect(ByID()), introspect(ByID())
    assert a == b
    assert a is not b


@dataclass
class NarrowList:
    small: Annotated[List[int], ScalarKind.INT8] = query_field("small", default_factory=list)


def test_width_on_whole_list_applies_to_elements():
    assert introspect(NarrowList())[0].kind is ScalarKind.INT8
    assert decode({"small": ["1", "-2"]}, NarrowList()).small == [1, -2]

    with pytest.raises(ValueParseError) as exc_info:
        decode({"small": ["1", "300"]}, NarrowList())
    assert exc_info.value.raw == "300"
    assert exc_info.value.kind is ScalarKind.INT8
