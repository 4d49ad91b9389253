"""
Property tests for the ordered encoding: byte order equals value order and
decode inverts encode.
"""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from kvindex.encoding.ordered import HIGH, decode, encode

numbers = st.one_of(
    st.integers(min_value=-(2**53), max_value=2**53),
    st.floats(allow_nan=False),
)
scalars = st.one_of(numbers, st.text(), st.binary())


def _cmp(a, b):
    return (a > b) - (a < b)


@given(numbers, numbers)
def test_number_order(a, b):
    assert _cmp(encode(a), encode(b)) == _cmp(a, b)


@given(st.text(), st.text())
def test_text_order_follows_utf8(a, b):
    assert _cmp(encode(a), encode(b)) == _cmp(a.encode("utf-8"), b.encode("utf-8"))


@given(st.binary(), st.binary())
def test_bytes_order(a, b):
    assert _cmp(encode(a), encode(b)) == _cmp(a, b)


@given(st.tuples(numbers, st.text()), st.tuples(numbers, st.text()))
def test_composite_order(a, b):
    expected = _cmp((a[0], a[1].encode("utf-8")), (b[0], b[1].encode("utf-8")))
    assert _cmp(encode(a), encode(b)) == expected


@given(scalars, st.one_of(st.text(), st.integers(-1000, 1000)))
def test_query_bounds_contain_exactly_the_value(value, key):
    lo, hi = encode((value,)), encode((value, HIGH))
    assert lo < encode((value, key)) < hi


@given(scalars, scalars, st.text())
def test_other_values_fall_outside_bounds(value, other, key):
    lo, hi = encode((value,)), encode((value, HIGH))
    inside = lo < encode((other, key)) < hi
    assert inside == (encode(other) == encode(value))


@given(st.lists(scalars, max_size=4).map(tuple))
def test_decode_inverts_encode(value):
    decoded = decode(encode(value))
    assert encode(decoded) == encode(value)
    assert len(decoded) == len(value)
