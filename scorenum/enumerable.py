"""Enumerables: composable bijections between value domains and the naturals.

Each codec maps every value of its domain to exactly one non-negative integer
and back. Codecs nest by threading an *accumulator* integer through
``encode_to``/``decode_from``: encoding appends a value's code at the
least-significant end of the accumulator, decoding strips it off again. The
last code appended is the first one stripped.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from collections.abc import Sequence as AbcSequence
from typing import Any, Generic, NamedTuple, TypeVar

from scorenum.errors import DecodeError, EncodeError, SchemaError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_code(code: object) -> int:
    if isinstance(code, bool) or not isinstance(code, int):
        raise DecodeError(f"Expected an integer code, got {type(code).__name__}.")
    if code < 0:
        raise DecodeError(f"Codes are non-negative integers, got {code}.")
    return code


# ── Contract ────────────────────────────────────────────────────────────────


class Enumerable(ABC, Generic[T]):
    """
    A bijection between a value domain and the non-negative integers.

    Subclasses implement ``encode_to`` and ``decode_from``. For every value x
    and every accumulator n >= 0 they must satisfy:

        decode(encode(x)) == x
        decode_from(encode_to(x, n)) == (x, n)

    Attributes:
        cardinality: Exact size of the domain, or None when unbounded/unknown.
        entropy:     Expected code length of a typical value. Advisory only,
                     never consulted by encode or decode.
        greedy:      True when decoding consumes the whole remaining
                     accumulator. A greedy codec only accepts an empty
                     accumulator on encode.
    """

    cardinality: int | None = None
    entropy: float = 0.0
    greedy: bool = False

    def encode(self, value: T) -> int:
        """Encode *value* on its own, starting from an empty accumulator."""
        return self.encode_to(value, 0)

    def decode(self, code: int) -> T:
        """
        Decode *code*, which is expected to hold exactly one value.

        Raises:
            DecodeError: If *code* is not a non-negative integer.
        """
        value, remainder = self.decode_from(_require_code(code))
        if remainder:
            logger.warning("%s decoded a value but left remainder %d.", type(self).__name__, remainder)
        return value

    @abstractmethod
    def encode_to(self, value: T, n: int) -> int:
        """Append the code of *value* to accumulator *n* and return the new accumulator."""

    @abstractmethod
    def decode_from(self, n: int) -> tuple[T, int]:
        """Strip one value from accumulator *n* and return ``(value, remainder)``."""


class FiniteEnumerable(Enumerable[T]):
    """
    An enumerable over a finite domain with mixed-radix default composition.

    ``encode_to(x, n) = n * cardinality + rank(x)``; ``decode_from`` inverts it
    with ``divmod``. Only codecs with an exact positive cardinality can use
    this composition, which is checked when the codec is built.
    """

    cardinality: int

    def __init__(self, cardinality: int | None) -> None:
        if isinstance(cardinality, bool) or not isinstance(cardinality, int) or cardinality < 1:
            raise SchemaError(
                f"{type(self).__name__} needs an exact positive cardinality, got {cardinality!r}."
            )
        self.cardinality = cardinality

    @abstractmethod
    def rank(self, value: T) -> int:
        """Return the ordinal of *value* in ``[0, cardinality)``."""

    @abstractmethod
    def unrank(self, ordinal: int) -> T:
        """Return the value whose ordinal is *ordinal*."""

    def decode(self, code: int) -> T:
        code = _require_code(code)
        if code >= self.cardinality:
            raise DecodeError(f"Ordinal {code} is outside [0, {self.cardinality}).")
        return self.unrank(code)

    def encode_to(self, value: T, n: int) -> int:
        return n * self.cardinality + self.rank(value)

    def decode_from(self, n: int) -> tuple[T, int]:
        n, ordinal = divmod(n, self.cardinality)
        return self.unrank(ordinal), n


# ── Combinators ─────────────────────────────────────────────────────────────


class ClosedSet(FiniteEnumerable[T]):
    """
    Enumerates a flat finite set by position.

    *members* may be an ``Enum`` class or any iterable of distinct hashable
    values; a member's code is its index in iteration order.
    """

    def __init__(self, members: Iterable[T]) -> None:
        self.members: tuple[T, ...] = tuple(members)
        self._ordinals: dict[T, int] = {member: i for i, member in enumerate(self.members)}
        if len(self._ordinals) != len(self.members):
            raise SchemaError("ClosedSet members must be distinct.")
        super().__init__(len(self.members))
        self.entropy = math.log(self.cardinality)

    def rank(self, value: T) -> int:
        try:
            return self._ordinals[value]
        except (KeyError, TypeError) as exc:
            raise EncodeError(f"{value!r} is not a member of this closed set.") from exc

    def unrank(self, ordinal: int) -> T:
        return self.members[ordinal]

    def __repr__(self) -> str:
        return f"ClosedSet(cardinality={self.cardinality})"


class Sequence(Enumerable[list[T]]):
    """
    Enumerates variable-length sequences of an element codec.

    Terminated layout, read from the least-significant end::

        1, code(x[0]), 1, code(x[1]), ..., 1, code(x[-1]), 0

    The unterminated layout drops every flag bit and instead decodes elements
    until the accumulator is exhausted. It has to be the first layer applied
    to an empty accumulator, so a schema holds at most one such sequence.
    """

    def __init__(
        self,
        element: Enumerable[T],
        expected_length: float = 1,
        unterminated: bool = False,
    ) -> None:
        """
        Args:
            element:         Codec for each item.
            expected_length: Typical length, used only for the entropy estimate.
            unterminated:    Omit continuation bits and consume the whole
                             remaining accumulator on decode.
        """
        if element.greedy:
            raise SchemaError("A greedy codec cannot be the element of a sequence.")
        if unterminated and element.cardinality == 1:
            # a single-valued element consumes nothing, so decoding would never stop
            raise SchemaError("An unterminated sequence needs an element codec with more than one value.")
        self.element = element
        self.expected_length = expected_length
        self.unterminated = unterminated
        self.greedy = unterminated
        self.entropy = (1 + element.entropy) * expected_length

    def encode_to(self, values: Iterable[T], n: int) -> int:
        items = list(values)
        if self.unterminated:
            return self._encode_unterminated(items, n)

        n <<= 1  # terminator
        for value in reversed(items):
            n = self.element.encode_to(value, n)
            n = (n << 1) | 1
        return n

    def _encode_unterminated(self, items: list[T], n: int) -> int:
        if n:
            raise EncodeError("An unterminated sequence must be encoded onto an empty accumulator.")
        for value in reversed(items):
            n = self.element.encode_to(value, n)
            if not n:
                raise EncodeError(
                    f"{value!r} encodes to zero and cannot end an unterminated sequence."
                )
        return n

    def decode_from(self, n: int) -> tuple[list[T], int]:
        # a negative accumulator never reaches zero under divmod
        n = _require_code(n)
        values: list[T] = []
        if self.unterminated:
            while n:
                value, n = self.element.decode_from(n)
                values.append(value)
            return values, n

        while n & 1:
            value, n = self.element.decode_from(n >> 1)
            values.append(value)
        return values, n >> 1

    def __repr__(self) -> str:
        mode = "unterminated" if self.unterminated else "terminated"
        return f"Sequence({self.element!r}, {mode})"


class Tuple(Enumerable[list[Any]]):
    """
    Enumerates fixed-arity heterogeneous products.

    Element 0 is applied to the accumulator first and element k-1 last, so
    decoding peels the elements from the last index down to the first.
    """

    def __init__(self, elements: Iterable[Enumerable[Any]]) -> None:
        self.elements: tuple[Enumerable[Any], ...] = tuple(elements)
        if any(element.greedy for element in self.elements[1:]):
            raise SchemaError("Only the first element of a tuple may be greedy.")
        self.greedy = bool(self.elements) and self.elements[0].greedy

        cardinalities = [element.cardinality for element in self.elements]
        if all(c is not None for c in cardinalities):
            self.cardinality = math.prod(cardinalities)  # type: ignore[arg-type]
        self.entropy = sum(element.entropy for element in self.elements)

    def encode_to(self, values: Iterable[Any], n: int) -> int:
        items = tuple(values)
        if len(items) != len(self.elements):
            raise EncodeError(f"Expected {len(self.elements)} values, got {len(items)}.")
        for codec, value in zip(self.elements, items):
            n = codec.encode_to(value, n)
        return n

    def decode_from(self, n: int) -> tuple[list[Any], int]:
        values: list[Any] = []
        for codec in reversed(self.elements):
            value, n = codec.decode_from(n)
            values.append(value)
        values.reverse()
        return values, n


class Record(Enumerable[Any]):
    """
    Enumerates named products by delegating to a positional ``Tuple``.

    The field order is the declaration order of *fields* and is frozen when
    the record is built. Values to encode may be mappings or objects that
    expose the fields as attributes. Decoding yields a ``dict``, or
    ``factory(**fields)`` when a factory is supplied.
    """

    def __init__(
        self,
        fields: Mapping[str, Enumerable[Any]],
        factory: Callable[..., Any] | None = None,
    ) -> None:
        self.keys: tuple[str, ...] = tuple(fields)
        self.positional = Tuple(fields[key] for key in self.keys)
        self.factory = factory
        self.cardinality = self.positional.cardinality
        self.entropy = self.positional.entropy
        self.greedy = self.positional.greedy

    def _field_values(self, value: Any) -> list[Any]:
        if isinstance(value, Mapping):
            try:
                return [value[key] for key in self.keys]
            except KeyError as exc:
                raise EncodeError(f"Record value is missing field {exc.args[0]!r}.") from exc
        try:
            return [getattr(value, key) for key in self.keys]
        except AttributeError as exc:
            raise EncodeError(f"Record value {value!r} lacks a declared field.") from exc

    def encode_to(self, value: Any, n: int) -> int:
        return self.positional.encode_to(self._field_values(value), n)

    def decode_from(self, n: int) -> tuple[Any, int]:
        values, n = self.positional.decode_from(n)
        fields = dict(zip(self.keys, values))
        if self.factory is not None:
            return self.factory(**fields), n
        return fields, n


class Tagged(NamedTuple):
    """A value of an explicitly tagged union: index 0 is the first variant, 1 the second."""

    index: int
    value: Any


class BinaryUnion(Enumerable[Any]):
    """
    Enumerates the union of two domains with one discriminant bit.

    The chosen variant is encoded first, then a low bit is appended: 0 for the
    first variant, 1 for the second. With *is_first* the variant is picked by
    that predicate and decoding yields the bare value. Without it, values are
    ``Tagged`` pairs, which makes the classification total by construction.
    """

    def __init__(
        self,
        first: Enumerable[Any],
        second: Enumerable[Any],
        is_first: Callable[[Any], bool] | None = None,
        p: float = 0.5,
    ) -> None:
        """
        Args:
            first:    Codec for variant 0.
            second:   Codec for variant 1.
            is_first: Structural classifier; None selects tagged values.
            p:        Prior weight of the first variant for the entropy estimate.
        """
        if not 0.0 <= p <= 1.0:
            raise SchemaError(f"Prior weight must lie in [0, 1], got {p}.")
        self.first = first
        self.second = second
        self.is_first = is_first
        self.p = p
        self.greedy = first.greedy or second.greedy
        if first.cardinality is not None and second.cardinality is not None:
            self.cardinality = first.cardinality + second.cardinality
        self.entropy = 1 + p * first.entropy + (1 - p) * second.entropy

    def _classify(self, value: Any) -> tuple[int, Any]:
        if self.is_first is not None:
            return (0 if self.is_first(value) else 1), value
        if not isinstance(value, Tagged) or value.index not in (0, 1):
            raise EncodeError(f"Expected Tagged(index, value) with index 0 or 1, got {value!r}.")
        return value.index, value.value

    def encode_to(self, value: Any, n: int) -> int:
        index, inner = self._classify(value)
        if index == 0:
            return self.first.encode_to(inner, n) << 1
        return (self.second.encode_to(inner, n) << 1) | 1

    def decode_from(self, n: int) -> tuple[Any, int]:
        index = n & 1
        codec = self.second if index else self.first
        value, n = codec.decode_from(n >> 1)
        if self.is_first is None:
            return Tagged(index, value), n
        return value, n


def choice(
    arms: Iterable[tuple[Callable[[Any], bool], Enumerable[Any]]],
    default: Enumerable[Any],
) -> Enumerable[Any]:
    """
    Build an N-ary union out of chained binary unions.

    Arms are ``(predicate, codec)`` pairs tried in order. ``default`` is a
    closed default arm: it encodes every value that no predicate claims. The
    k-th arm costs k discriminant bits.
    """
    codec = default
    for predicate, arm in reversed(list(arms)):
        codec = BinaryUnion(arm, codec, predicate)
    return codec


# ── Equality ────────────────────────────────────────────────────────────────


def _structure(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
    return value


def _is_sequence(value: Any) -> bool:
    return isinstance(value, AbcSequence) and not isinstance(value, (str, bytes))


def equals(x: Any, y: Any) -> bool:
    """
    Structural deep equality used to validate round trips.

    Dataclasses compare field by field, mappings key by key and sequences
    item by item, so a list equals a tuple holding equal items.
    """
    x, y = _structure(x), _structure(y)
    if isinstance(x, Mapping) and isinstance(y, Mapping):
        return x.keys() == y.keys() and all(equals(x[key], y[key]) for key in x)
    if _is_sequence(x) and _is_sequence(y):
        return len(x) == len(y) and all(equals(a, b) for a, b in zip(x, y))
    return bool(x == y)
