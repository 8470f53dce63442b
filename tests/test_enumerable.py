"""Unit tests for the generic enumerable combinators."""

import logging
import math
from dataclasses import dataclass

import pytest

from scorenum.enumerable import (
    BinaryUnion,
    ClosedSet,
    FiniteEnumerable,
    Record,
    Sequence,
    Tagged,
    Tuple,
    choice,
    equals,
)
from scorenum.errors import DecodeError, EncodeError, SchemaError

ACCUMULATORS = [0, 1, 2, 7, 12, 1023, 10**30 + 17]


@dataclass(frozen=True)
class Point:
    x: int
    y: str


def _assert_composable(codec, values) -> None:
    for value in values:
        for n in ACCUMULATORS:
            assert codec.decode_from(codec.encode_to(value, n)) == (value, n)


# ---------------------------------------------------------------------------
# ClosedSet
# ---------------------------------------------------------------------------


def test_closed_set_encodes_ordinals() -> None:
    codec = ClosedSet(["a", "b", "c"])
    assert [codec.encode(x) for x in "abc"] == [0, 1, 2]
    assert [codec.decode(n) for n in range(3)] == ["a", "b", "c"]


def test_closed_set_cardinality_and_entropy() -> None:
    codec = ClosedSet(["a", "b", "c"])
    assert codec.cardinality == 3
    assert codec.entropy == pytest.approx(math.log(3))


def test_closed_set_singleton_has_zero_entropy() -> None:
    codec = ClosedSet(["only"])
    assert codec.entropy == 0
    assert codec.encode_to("only", 41) == 41


def test_closed_set_is_composable() -> None:
    _assert_composable(ClosedSet(["a", "b", "c"]), ["a", "b", "c"])


def test_closed_set_rejects_non_member() -> None:
    with pytest.raises(EncodeError):
        ClosedSet(["a", "b"]).encode("z")


def test_closed_set_rejects_unhashable_value() -> None:
    with pytest.raises(EncodeError):
        ClosedSet(["a", "b"]).encode(["a"])


def test_closed_set_decode_out_of_range() -> None:
    with pytest.raises(DecodeError):
        ClosedSet(["a", "b"]).decode(2)


@pytest.mark.parametrize("code", [-1, "1", 1.0, True])
def test_decode_rejects_non_codes(code) -> None:
    with pytest.raises(DecodeError):
        ClosedSet(["a", "b"]).decode(code)


def test_closed_set_empty_is_schema_error() -> None:
    with pytest.raises(SchemaError):
        ClosedSet([])


def test_closed_set_duplicates_are_schema_error() -> None:
    with pytest.raises(SchemaError):
        ClosedSet(["a", "a"])


def test_default_composition_requires_exact_cardinality() -> None:
    class Unbounded(FiniteEnumerable[int]):
        def rank(self, value: int) -> int:
            return value

        def unrank(self, ordinal: int) -> int:
            return ordinal

    with pytest.raises(SchemaError):
        Unbounded(None)


# ---------------------------------------------------------------------------
# Sequence
# ---------------------------------------------------------------------------


def test_terminated_sequence_layout() -> None:
    codec = Sequence(ClosedSet([0, 1]))
    assert codec.encode([]) == 0
    # 1 (continue), 1 (element), 0 (stop), read from the low end
    assert codec.encode([1]) == 0b11
    # 1, 0, 1, 1, 0
    assert codec.encode([0, 1]) == 0b1101


def test_terminated_sequence_decodes_in_order() -> None:
    codec = Sequence(ClosedSet([0, 1]))
    assert codec.decode(0b1101) == [0, 1]


def test_terminated_sequence_is_composable() -> None:
    codec = Sequence(ClosedSet(["a", "b", "c"]))
    _assert_composable(codec, [[], ["a"], ["c", "a", "b", "b"]])


def test_terminated_sequence_entropy() -> None:
    element = ClosedSet([0, 1])
    codec = Sequence(element, expected_length=4)
    assert codec.cardinality is None
    assert codec.entropy == pytest.approx((1 + math.log(2)) * 4)


def test_decode_warns_about_remainder(caplog: pytest.LogCaptureFixture) -> None:
    codec = Sequence(ClosedSet([0, 1]))
    with caplog.at_level(logging.WARNING, logger="scorenum.enumerable"):
        assert codec.decode(0b100) == []
    assert "remainder" in caplog.text


def test_unterminated_sequence_consumes_everything() -> None:
    codec = Sequence(ClosedSet(range(3)), unterminated=True)
    assert codec.encode([]) == 0
    assert codec.decode(0) == []
    assert codec.encode([1, 2]) == 7
    assert codec.decode(7) == [1, 2]


def test_unterminated_sequence_is_bijective_on_integers() -> None:
    codec = Sequence(ClosedSet(range(3)), unterminated=True)
    for n in range(500):
        assert codec.encode(codec.decode(n)) == n


def test_unterminated_sequence_rejects_zero_final_element() -> None:
    codec = Sequence(ClosedSet(range(3)), unterminated=True)
    with pytest.raises(EncodeError):
        codec.encode([1, 0])


def test_unterminated_sequence_needs_empty_accumulator() -> None:
    codec = Sequence(ClosedSet(range(3)), unterminated=True)
    with pytest.raises(EncodeError):
        codec.encode_to([1], 5)


@pytest.mark.parametrize("unterminated", [False, True])
def test_sequence_decode_from_rejects_negative_accumulator(unterminated: bool) -> None:
    codec = Sequence(ClosedSet(range(3)), unterminated=unterminated)
    with pytest.raises(DecodeError):
        codec.decode_from(-1)


def test_unterminated_sequence_is_greedy() -> None:
    codec = Sequence(ClosedSet(range(3)), unterminated=True)
    assert codec.greedy
    assert not Sequence(ClosedSet(range(3))).greedy


def test_greedy_sequence_cannot_be_nested() -> None:
    inner = Sequence(ClosedSet(range(3)), unterminated=True)
    with pytest.raises(SchemaError):
        Sequence(inner)


def test_unterminated_sequence_of_singletons_is_schema_error() -> None:
    with pytest.raises(SchemaError):
        Sequence(ClosedSet(["only"]), unterminated=True)


# ---------------------------------------------------------------------------
# Tuple
# ---------------------------------------------------------------------------


def _abc_tuple() -> Tuple:
    return Tuple([ClosedSet("ab"), ClosedSet("xyz"), ClosedSet([True, False])])


def test_tuple_layers_left_to_right() -> None:
    # ((0 * 2 + 1) * 3 + 2) * 2 + 1
    assert _abc_tuple().encode(["b", "z", False]) == 11


def test_tuple_preserves_order() -> None:
    codec = _abc_tuple()
    assert codec.decode(codec.encode(["b", "z", False])) == ["b", "z", False]


def test_tuple_of_finite_sets_is_dense() -> None:
    codec = _abc_tuple()
    codes = {codec.encode([a, b, c]) for a in "ab" for b in "xyz" for c in (True, False)}
    assert codes == set(range(12))
    assert codec.cardinality == 12
    assert codec.entropy == pytest.approx(2 * math.log(2) + math.log(3))


def test_tuple_is_composable() -> None:
    _assert_composable(_abc_tuple(), [["a", "x", True], ["b", "y", False]])


def test_tuple_with_unbounded_element_has_no_cardinality() -> None:
    codec = Tuple([ClosedSet("ab"), Sequence(ClosedSet("ab"))])
    assert codec.cardinality is None
    _assert_composable(codec, [["a", []], ["b", ["a", "b"]]])


def test_tuple_rejects_wrong_arity() -> None:
    with pytest.raises(EncodeError):
        _abc_tuple().encode(["a", "x"])


def test_tuple_allows_greedy_first_element_only() -> None:
    greedy = Sequence(ClosedSet(range(3)), unterminated=True)
    assert Tuple([greedy, ClosedSet("ab")]).greedy
    with pytest.raises(SchemaError):
        Tuple([ClosedSet("ab"), greedy])


def test_tuple_with_greedy_first_element_round_trips() -> None:
    codec = Tuple([Sequence(ClosedSet(range(3)), unterminated=True), ClosedSet("ab")])
    for n in range(200):
        assert codec.encode(codec.decode(n)) == n


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


def test_record_round_trips_mappings() -> None:
    codec = Record({"x": ClosedSet(range(4)), "y": ClosedSet("ab")})
    assert codec.keys == ("x", "y")
    assert codec.encode({"x": 3, "y": "b"}) == 7
    assert codec.decode(7) == {"x": 3, "y": "b"}


def test_record_reads_attributes_and_builds_with_factory() -> None:
    codec = Record({"x": ClosedSet(range(4)), "y": ClosedSet("ab")}, factory=Point)
    point = Point(x=2, y="a")
    assert codec.decode(codec.encode(point)) == point


def test_record_field_order_changes_codes() -> None:
    xy = Record({"x": ClosedSet(range(4)), "y": ClosedSet("ab")})
    yx = Record({"y": ClosedSet("ab"), "x": ClosedSet(range(4))})
    value = {"x": 1, "y": "b"}
    assert xy.encode(value) != yx.encode(value)


def test_record_missing_field() -> None:
    codec = Record({"x": ClosedSet(range(4)), "y": ClosedSet("ab")})
    with pytest.raises(EncodeError):
        codec.encode({"x": 1})
    with pytest.raises(EncodeError):
        codec.encode(object())


def test_record_is_composable() -> None:
    codec = Record({"x": ClosedSet(range(4)), "ys": Sequence(ClosedSet("ab"))})
    _assert_composable(codec, [{"x": 0, "ys": []}, {"x": 3, "ys": ["b", "a"]}])


# ---------------------------------------------------------------------------
# BinaryUnion and choice
# ---------------------------------------------------------------------------


def _letters_or_digits() -> BinaryUnion:
    return BinaryUnion(ClosedSet("ab"), ClosedSet(range(3)), lambda value: isinstance(value, str))


def test_union_discriminant_bit() -> None:
    codec = _letters_or_digits()
    assert [codec.encode(x) for x in "ab"] == [0, 2]
    assert [codec.encode(x) for x in range(3)] == [1, 3, 5]


def test_union_round_trips_and_composes() -> None:
    codec = _letters_or_digits()
    values = ["a", "b", 0, 1, 2]
    assert [codec.decode(codec.encode(x)) for x in values] == values
    _assert_composable(codec, values)


def test_union_cardinality_and_entropy() -> None:
    codec = BinaryUnion(ClosedSet("ab"), ClosedSet(range(3)), lambda value: isinstance(value, str), p=0.25)
    assert codec.cardinality == 5
    assert codec.entropy == pytest.approx(1 + 0.25 * math.log(2) + 0.75 * math.log(3))


def test_tagged_union_distinguishes_equal_domains() -> None:
    codec = BinaryUnion(ClosedSet("ab"), ClosedSet("ab"))
    assert codec.encode(Tagged(0, "a")) == 0
    assert codec.encode(Tagged(1, "a")) == 1
    assert codec.decode(1) == Tagged(1, "a")
    _assert_composable(codec, [Tagged(0, "b"), Tagged(1, "b")])


@pytest.mark.parametrize("value", ["a", Tagged(2, "a")])
def test_tagged_union_rejects_untagged_values(value) -> None:
    with pytest.raises(EncodeError):
        BinaryUnion(ClosedSet("ab"), ClosedSet("ab")).encode(value)


def test_union_prior_out_of_range() -> None:
    with pytest.raises(SchemaError):
        BinaryUnion(ClosedSet("ab"), ClosedSet("ab"), p=1.5)


def test_choice_chains_unions_with_default_arm() -> None:
    codec = choice(
        [
            (lambda value: isinstance(value, str), ClosedSet("ab")),
            (lambda value: isinstance(value, bool), ClosedSet([False, True])),
        ],
        default=ClosedSet(range(4)),
    )
    assert codec.encode("b") == 2
    assert codec.encode(True) == 5
    assert codec.encode(3) == 15
    values = ["a", "b", False, True, 0, 1, 2, 3]
    assert [codec.decode(codec.encode(x)) for x in values] == values
    _assert_composable(codec, values)


# ---------------------------------------------------------------------------
# equals
# ---------------------------------------------------------------------------


def test_equals_treats_lists_and_tuples_alike() -> None:
    assert equals([1, [2, 3]], (1, (2, 3)))
    assert equals({"a": [1]}, {"a": (1,)})


def test_equals_compares_dataclasses_with_mappings() -> None:
    assert equals(Point(1, "a"), {"x": 1, "y": "a"})
    assert not equals(Point(1, "a"), {"x": 1, "y": "b"})


def test_equals_detects_differences() -> None:
    assert not equals({"a": 1}, {"b": 1})
    assert not equals([1, 2], [1, 2, 3])
    assert not equals("ab", ["a", "b"])
