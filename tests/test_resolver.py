"""Tests for the type descriptor resolver."""
import logging
import sys
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Callable, Literal, NamedTuple, NewType, Optional, Union

import pytest

from opboard import (
    RESOLUTION_RULES,
    BigInt,
    IndexType,
    LiteralType,
    ObjectType,
    TypeResolver,
    Undefined,
    UnionType,
    UnknownType,
    UnsupportedShape,
    Void,
    board_config,
    resolve,
    resolve_annotation,
)
from opboard import type_graph as tg
from opboard.ir import BIGINT, BOOLEAN, DATE, NULL, NUMBER, STRING, UNDEFINED_TYPE, VOID
from opboard.resolver import FRAMES_PER_LEVEL
from opboard.type_graph import AnnotationNode, TypeGraphNode


class Color(Enum):
    RED = 'red'
    GREEN = 'green'


@dataclass
class Point:
    y: float
    x: float
    label: str = ''


@dataclass
class LinkedNode:
    value: int
    next: Optional['LinkedNode'] = None


class Pair(NamedTuple):
    left: str
    right: int


UserId = NewType('UserId', str)


@dataclass
class Money:
    cents: int
    currency: str


@dataclass
class Broken:
    ok: str
    bad: Any


class MultiIndexNode(TypeGraphNode):
    """Hand-built graph node exposing two index signatures."""

    kind = tg.OBJECT

    def literal_value(self):
        raise TypeError

    def union_constituents(self):
        return []

    def index_signatures(self):
        return [
            (AnnotationNode(str), AnnotationNode(int)),
            (AnnotationNode(int), AnnotationNode(bool)),
        ]

    def own_properties(self):
        return []

    def type_name(self):
        return 'MultiIndex'

    def describe(self):
        return 'MultiIndex'


def find_unknown(parsed):
    """Return the first UnknownType in a ParsedType tree, or None."""
    if isinstance(parsed, UnknownType):
        return parsed
    if isinstance(parsed, ObjectType):
        children = list(parsed.properties.values())
    elif isinstance(parsed, UnionType):
        children = list(parsed.options)
    elif isinstance(parsed, IndexType):
        children = [parsed.index_type, parsed.indexed_type]
    else:
        children = []
    for child in children:
        found = find_unknown(child)
        if found is not None:
            return found
    return None


class TestRuleTable:
    """The rule order is an inspectable contract."""

    def test_rule_order(self):
        assert [rule.name for rule in RESOLUTION_RULES] == ['primitive', 'union', 'opaque', 'index', 'object']

    def test_composite_rules(self):
        assert {rule.name for rule in RESOLUTION_RULES if rule.composite} == {'union', 'index', 'object'}


class TestPrimitives:
    """Scalars, absence markers and literals."""

    @pytest.mark.parametrize('annotation, expected', [
        (str, STRING),
        (int, NUMBER),
        (float, NUMBER),
        (bool, BOOLEAN),
        (BigInt, BIGINT),
        (None, NULL),
        (type(None), NULL),
        (Undefined, UNDEFINED_TYPE),
        (Void, VOID),
        (UserId, STRING),
        (Annotated[int, 'meters'], NUMBER),
    ])
    def test_primitive(self, annotation, expected):
        assert resolve_annotation(annotation) == expected

    def test_literals_capture_value(self):
        assert resolve_annotation(Literal['a']) == LiteralType('string', 'a')
        assert resolve_annotation(Literal[3]) == LiteralType('number', 3)
        assert resolve_annotation(Literal[True]) == LiteralType('boolean', True)

    def test_single_enum_member_is_literal(self):
        assert resolve_annotation(Literal[Color.RED]) == LiteralType('string', 'red')

    def test_bigint_literal_is_hard_error(self):
        with pytest.raises(UnsupportedShape) as exc_info:
            resolve_annotation(Literal[2 ** 60])
        assert exc_info.value.tag == 'bigint literal'
        assert exc_info.value.path == 'root'


class TestUnions:
    """Union constituents in source order."""

    def test_optional(self):
        assert resolve_annotation(Optional[str]) == UnionType((STRING, NULL))

    def test_pipe_syntax(self):
        assert resolve_annotation(str | Undefined) == UnionType((STRING, UNDEFINED_TYPE))

    def test_no_dedup(self):
        assert resolve_annotation(Union[int, float]) == UnionType((NUMBER, NUMBER))

    def test_multi_value_literal(self):
        assert resolve_annotation(Literal['a', 'b']) == UnionType((
            LiteralType('string', 'a'), LiteralType('string', 'b'),
        ))

    def test_literals_inside_union_are_listed_individually(self):
        assert resolve_annotation(Union[Literal['a', 'b'], None]) == UnionType((
            LiteralType('string', 'a'), LiteralType('string', 'b'), NULL,
        ))

    def test_enum_class(self):
        assert resolve_annotation(Color) == UnionType((
            LiteralType('string', 'red'), LiteralType('string', 'green'),
        ))


class TestOpaque:
    """Recognised wrappers resolve to Date without expansion."""

    @pytest.mark.parametrize('annotation', [datetime, date])
    def test_date_types(self, annotation):
        assert resolve_annotation(annotation) == DATE

    def test_opaque_property(self):
        @dataclass
        class Event:
            when: datetime

        assert resolve_annotation(Event) == ObjectType({'when': DATE})

    def test_opaque_names_configurable(self):
        with board_config(opaque_names=('Money',)):
            assert resolve_annotation(Money) == DATE
        assert resolve_annotation(Money) == ObjectType({'cents': NUMBER, 'currency': STRING})


class TestIndexAndObjects:
    """Dynamic-key mappings and records."""

    def test_mapping(self):
        assert resolve_annotation(dict[str, int]) == IndexType(STRING, NUMBER)

    def test_sequence(self):
        assert resolve_annotation(list[str]) == IndexType(NUMBER, STRING)

    def test_homogeneous_tuple(self):
        assert resolve_annotation(tuple[bool, ...]) == IndexType(NUMBER, BOOLEAN)

    def test_fixed_tuple(self):
        assert resolve_annotation(tuple[int, str]) == ObjectType({'0': NUMBER, '1': STRING})

    def test_dataclass_property_order(self):
        assert list(resolve_annotation(Point).properties) == ['y', 'x', 'label']

    def test_named_tuple(self):
        assert resolve_annotation(Pair) == ObjectType({'left': STRING, 'right': NUMBER})

    def test_typed_dict_optional_key(self, add_input_type):
        assert resolve_annotation(add_input_type) == ObjectType({
            'weirdDate': ObjectType({'hello': NUMBER}),
            'optionalDate': UnionType((DATE, UNDEFINED_TYPE)),
            'record': IndexType(STRING, NUMBER),
        })

    def test_only_first_index_signature_honoured(self, caplog):
        with caplog.at_level(logging.WARNING, logger='opboard.resolver'):
            parsed = resolve(MultiIndexNode())
        assert parsed == IndexType(STRING, NUMBER)
        assert 'index signatures' in caplog.text


class TestDepthBound:
    """Self-referential types terminate with a sentinel."""

    @pytest.mark.parametrize('max_depth', [1, 2, 5, 2000])
    def test_recursive_type_terminates(self, max_depth):
        resolver = TypeResolver(max_depth=max_depth)
        parsed = resolver.resolve(AnnotationNode(LinkedNode))
        sentinel = find_unknown(parsed)
        assert sentinel is not None
        assert sentinel.kind in ('object', 'union')
        assert resolver.depth_events
        assert all(event.max_depth == resolver.depth_limit for event in resolver.depth_events)
        assert resolver.depth_limit <= max_depth

    def test_depth_limit_capped_by_recursion_limit(self):
        resolver = TypeResolver(max_depth=sys.getrecursionlimit())
        assert resolver.depth_limit < sys.getrecursionlimit() // FRAMES_PER_LEVEL
        assert TypeResolver(max_depth=3).depth_limit == 3

    def test_sentinel_carries_rule_name(self):
        # object(0) -> union(1) -> object(2): the object at depth 2 is cut off
        parsed = resolve_annotation(LinkedNode, max_depth=1)
        assert parsed.properties['next'] == UnionType((UnknownType('object'), NULL))

    def test_shallow_type_untouched(self):
        resolver = TypeResolver(max_depth=4)
        resolver.resolve(AnnotationNode(Point))
        assert resolver.depth_events == []

    def test_depth_sentinel_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger='opboard.resolver'):
            resolve_annotation(LinkedNode, max_depth=1)
        assert 'Depth 1 exceeded' in caplog.text

    def test_max_depth_must_be_positive(self):
        with pytest.raises(ValueError):
            TypeResolver(max_depth=0)


class TestFailures:
    """Unsupported annotations name their path."""

    @pytest.mark.parametrize('annotation', [Any, Callable[[int], str], object, dict])
    def test_unsupported(self, annotation):
        with pytest.raises(UnsupportedShape):
            resolve_annotation(annotation)

    def test_error_names_property_path(self):
        with pytest.raises(UnsupportedShape) as exc_info:
            resolve_annotation(Broken)
        assert exc_info.value.path == 'root.bad'
        assert 'root.bad' in str(exc_info.value)


class TestDeterminism:
    """Resolving twice yields structurally identical IR."""

    def test_same_graph_same_ir(self, add_input_type):
        assert resolve_annotation(add_input_type) == resolve_annotation(add_input_type)
        assert resolve_annotation(LinkedNode, max_depth=3) == resolve_annotation(LinkedNode, max_depth=3)
