import cbor2
import pytest
from hypothesis import given, strategies as st

from wbn.cbor import check_deterministic, is_deterministic
from wbn.errors import (
    DeterminismError,
    DuplicateMapKey,
    IndefiniteOrReserved,
    NonMinimalInteger,
    TruncatedItem,
    UnorderedMapKeys,
)

HELLO = b"\x65hello"
HELLO2 = b"\x66hello2"


def test_minimal_one_byte_argument_passes():
    check_deterministic(bytes([0x18, 0x2D]))


def test_zero_padded_two_byte_argument_fails():
    with pytest.raises(NonMinimalInteger) as ei:
        check_deterministic(bytes([0x19, 0x00, 0x2D]))
    assert ei.value.value == 45
    assert ei.value.width == 2


def test_small_value_in_one_byte_argument_fails():
    with pytest.raises(NonMinimalInteger):
        check_deterministic(bytes([0x18, 0x17]))


@pytest.mark.parametrize("lead", [0x1C, 0x1D, 0x1E, 0x1F, 0x5F, 0x7F, 0x9F, 0xBF])
def test_reserved_and_indefinite_codes_fail(lead):
    with pytest.raises(IndefiniteOrReserved):
        check_deterministic(bytes([lead]))


def test_ordered_map_passes():
    check_deterministic(b"\xa2" + HELLO + b"\x01" + HELLO2 + b"\x02")


def test_swapped_map_keys_fail():
    with pytest.raises(UnorderedMapKeys) as ei:
        check_deterministic(b"\xa2" + HELLO2 + b"\x02" + HELLO + b"\x01")
    assert ei.value.previous == HELLO2
    assert ei.value.key == HELLO


def test_repeated_map_key_fails():
    with pytest.raises(DuplicateMapKey) as ei:
        check_deterministic(b"\xa2" + HELLO + b"\x01" + HELLO + b"\x02")
    assert ei.value.key == HELLO


def test_map_values_are_not_order_checked():
    check_deterministic(b"\xa2\x01\x05\x02\x03")


def test_nested_map_keys_are_checked():
    inner_bad = b"\xa2\x02\x00\x01\x00"
    with pytest.raises(UnorderedMapKeys):
        check_deterministic(b"\x82\x00" + inner_bad)


def test_too_few_array_items():
    with pytest.raises(TruncatedItem) as ei:
        check_deterministic(b"\x83\x01\x02")
    assert "too few items" in str(ei.value)
    assert ei.value.offset == 0


def test_string_longer_than_input():
    with pytest.raises(TruncatedItem) as ei:
        check_deterministic(b"\x45abc")
    assert ei.value.expected == 5
    assert ei.value.available == 3


def test_truncated_argument():
    with pytest.raises(TruncatedItem):
        check_deterministic(b"\x19\x01")


def test_error_offset_points_at_offending_item():
    with pytest.raises(NonMinimalInteger) as ei:
        check_deterministic(b"\x82\x01\x18\x05")
    assert ei.value.offset == 2


@pytest.mark.parametrize("data", [b"\x20", b"\x38\x63", b"\xc0\x00", b"\xf6", b"\x81\xf5"])
def test_unsupported_major_types_are_not_implemented(data):
    with pytest.raises(NotImplementedError):
        check_deterministic(data)


def test_concatenated_items():
    check_deterministic(b"\x01\x02" + cbor2.dumps(["a", b"b"], canonical=True))


def test_empty_containers():
    check_deterministic(b"\x80\xa0\x40\x60")


def test_deep_nesting_does_not_recurse():
    depth = 100_000
    check_deterministic(b"\x81" * depth + b"\x00")
    with pytest.raises(TruncatedItem):
        check_deterministic(b"\x81" * depth)


def test_is_deterministic():
    assert is_deterministic(b"\x18\x2d")
    assert not is_deterministic(b"\x19\x00\x2d")
    assert not is_deterministic(b"\x20")


def test_determinism_errors_are_value_errors():
    with pytest.raises(ValueError):
        check_deterministic(b"\x18\x00")
    assert issubclass(DeterminismError, ValueError)


_WIDTHS = [(24, 1), (25, 2), (26, 4), (27, 8)]


def _minimal_width(n: int) -> int:
    if n < 24:
        return 0
    for _, width in _WIDTHS:
        if n < 1 << (8 * width):
            return width
    raise AssertionError(n)


@given(st.integers(min_value=0, max_value=2**64 - 1))
def test_only_minimal_integer_width_passes(n):
    check_deterministic(cbor2.dumps(n))
    minimal = _minimal_width(n)
    for info, width in _WIDTHS:
        if width <= minimal:
            continue
        with pytest.raises(NonMinimalInteger):
            check_deterministic(bytes([info]) + n.to_bytes(width, "big"))


@given(st.integers(min_value=0, max_value=2**32), st.sampled_from([0x40, 0x60, 0x80, 0xA0]))
def test_length_arguments_follow_minimal_width(n, major_base):
    minimal = _minimal_width(n)
    for info, width in _WIDTHS:
        if width <= minimal:
            continue
        with pytest.raises(NonMinimalInteger):
            check_deterministic(bytes([major_base | info]) + n.to_bytes(width, "big"))


@given(
    st.dictionaries(
        keys=st.text(max_size=30),
        values=st.integers(min_value=0, max_value=2**64 - 1) | st.binary(max_size=30),
        max_size=12,
    )
)
def test_canonical_maps_pass(d):
    check_deterministic(cbor2.dumps(d, canonical=True))


_CANONICAL_MAPS = st.dictionaries(
    keys=st.text(max_size=30),
    values=st.integers(min_value=0, max_value=2**64 - 1),
    min_size=2,
    max_size=12,
)


def _sorted_pairs(d):
    return sorted((cbor2.dumps(k), cbor2.dumps(v)) for k, v in d.items())


def _map(pairs) -> bytes:
    return bytes([0xA0 | len(pairs)]) + b"".join(k + v for k, v in pairs)


@given(_CANONICAL_MAPS)
def test_swapping_adjacent_map_keys_fails(d):
    pairs = _sorted_pairs(d)
    check_deterministic(_map(pairs))
    pairs[0], pairs[1] = pairs[1], pairs[0]
    with pytest.raises(UnorderedMapKeys) as ei:
        check_deterministic(_map(pairs))
    assert ei.value.key == pairs[1][0]


@given(_CANONICAL_MAPS)
def test_repeating_a_map_key_fails(d):
    pairs = _sorted_pairs(d)
    pairs.insert(1, pairs[0])
    with pytest.raises(DuplicateMapKey) as ei:
        check_deterministic(_map(pairs))
    assert ei.value.key == pairs[0][0]
