"""
Ordered key encoding: byte order must follow value order.
"""

from __future__ import annotations

import pytest

from kvindex.encoding.ordered import HIGH, decode, encode
from kvindex.errors import DecodingError, EncodingError


def _assert_sorted(values):
    encoded = [encode(v) for v in values]
    assert encoded == sorted(encoded)
    assert len(set(encoded)) == len(encoded)


def test_numbers_sort_numerically_across_int_and_float():
    _assert_sorted([float("-inf"), -1e300, -2, -1.5, -1, -1e-9, 0, 1e-9, 1, 1.5, 2, 10, 1e300, float("inf")])


def test_int_and_equal_float_share_an_encoding():
    assert encode(30) == encode(30.0)
    assert encode(-0.0) == encode(0)


def test_type_order():
    _assert_sorted([None, False, True, -5, 5, b"", b"\xff", "", "z", ()])


def test_strings_sort_by_utf8_bytes_and_prefix_first():
    _assert_sorted(["", "a", "a\x00", "a\x00b", "aa", "ab", "b", "é"])


def test_bytes_with_nul_bytes():
    _assert_sorted([b"", b"\x00", b"\x00\x00", b"\x00\x01", b"\x01", b"\xff"])
    assert decode(encode(b"a\x00\x00b")) == b"a\x00\x00b"


def test_tuples_sort_lexicographically():
    _assert_sorted([(), (1,), (1, "a"), (1, "b"), (2,), (2, "a"), ("x",)])


def test_high_bounds_every_composite_with_the_same_prefix():
    lo, hi = encode((30,)), encode((30, HIGH))
    inside = [encode((30, k)) for k in (None, False, -1, 0, 99, b"", "a", "zzz", ("nested",))]
    for key in inside:
        assert lo < key < hi
    assert encode((29, "zzz")) < lo
    assert encode((31, None)) > hi
    assert encode((30.5, "a")) > hi


def test_string_bounds_exclude_longer_strings():
    lo, hi = encode(("red",)), encode(("red", HIGH))
    assert lo < encode(("red", "k")) < hi
    assert not lo < encode(("red\x00", "k")) < hi
    assert not lo < encode(("reda", "k")) < hi


def test_decode_restores_values():
    value = (None, True, False, 3, -2.5, b"\x00raw", "naïve\x00", ("nested", 1))
    assert decode(encode(value)) == value
    assert decode(encode([1, "a"])) == (1, "a")
    assert isinstance(decode(encode(7.0)), int)


@pytest.mark.parametrize("bad", [float("nan"), object(), {"a": 1}, 2**53 + 1])
def test_unencodable_values_raise(bad):
    with pytest.raises(EncodingError):
        encode(bad)


def test_large_exact_ints_are_accepted():
    assert decode(encode(2**60)) == 2**60


@pytest.mark.parametrize(
    "raw",
    [b"", b"\x04\x00", b"\x06abc", b"\x07\x01", b"\x09", b"\x01\x01", b"\xff"],
)
def test_malformed_input_raises(raw):
    with pytest.raises(DecodingError):
        decode(raw)
