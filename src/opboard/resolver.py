"""
Type descriptor resolver: structural type graph -> ParsedType IR.

The resolver is a pure function of the graph it is given. It walks
``TypeGraphNode`` objects through an explicit, ordered rule table; the first
rule whose predicate matches produces the IR node:

    1. primitive  string/number/bigint/boolean/null/undefined/void and literals
    2. union      each constituent resolved in source order (no dedup, no flattening)
    3. opaque     recognised wrapper names (datetime, ...) -> Date, never expanded
    4. index      first dynamic-key signature -> index(key, value)
    5. object     own properties in declaration order

Rules flagged ``composite`` recurse. Before a composite rule expands a node
sitting deeper than ``max_depth``, the resolver substitutes an ``unknown``
sentinel carrying the rule name, which guarantees termination on
self-referential types. The effective bound is also capped by the
interpreter's remaining recursion headroom, so a large ``max_depth`` yields
the sentinel rather than a RecursionError.

A node that no rule covers, or a literal the IR cannot carry as a JSON number
(a bigint literal), raises UnsupportedShape naming the path.
"""

import inspect
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

from opboard import type_graph as tg
from opboard.config import get_board_config
from opboard.errors import DepthExceeded, UnsupportedShape
from opboard.ir import (
    BIGINT, BOOLEAN, DATE, NULL, NUMBER, STRING, UNDEFINED_TYPE, VOID,
    IndexType, LiteralType, ObjectType, ParsedType, UnionType, UnknownType,
)
from opboard.type_graph import AnnotationNode, TypeGraphNode

logger = logging.getLogger(__name__)

# Largest integer a JSON number carries exactly (IEEE-754 double)
MAX_SAFE_INTEGER = 2 ** 53 - 1

# Python frames consumed per nesting level (resolve -> _apply_union -> genexpr -> resolve)
FRAMES_PER_LEVEL = 4
# Frames held back for get_type_hints, logging and the caller
STACK_RESERVE = 150

_PRIMITIVE_KINDS = {
    tg.STRING: STRING,
    tg.NUMBER: NUMBER,
    tg.BIGINT: BIGINT,
    tg.BOOLEAN: BOOLEAN,
    tg.NULL: NULL,
    tg.UNDEFINED: UNDEFINED_TYPE,
    tg.VOID: VOID,
}


@dataclass(frozen=True)
class ResolutionRule:
    """One entry of the ordered rule table."""
    name: str
    matches: Callable[['TypeResolver', TypeGraphNode], bool]
    apply: Callable[['TypeResolver', TypeGraphNode, int, str], ParsedType]
    composite: bool = False


# ========== RULE IMPLEMENTATIONS ==========

def _literal_to_ir(value: Any, path: str) -> ParsedType:
    """Map a concrete literal value to its IR node."""
    if value is None:
        return NULL
    if isinstance(value, bool):
        return LiteralType('boolean', value)
    if isinstance(value, str):
        return LiteralType('string', value)
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            raise UnsupportedShape('bigint literal', path, f"{value} does not fit a JSON number")
        return LiteralType('number', value)
    if isinstance(value, float):
        return LiteralType('number', value)
    raise UnsupportedShape(f'{type(value).__name__} literal', path, repr(value))


def _match_primitive(resolver: 'TypeResolver', node: TypeGraphNode) -> bool:
    return node.kind in _PRIMITIVE_KINDS or node.kind == tg.LITERAL


def _apply_primitive(resolver: 'TypeResolver', node: TypeGraphNode, depth: int, path: str) -> ParsedType:
    if node.kind == tg.LITERAL:
        return _literal_to_ir(node.literal_value(), path)
    return _PRIMITIVE_KINDS[node.kind]


def _match_union(resolver: 'TypeResolver', node: TypeGraphNode) -> bool:
    return node.kind == tg.UNION


def _apply_union(resolver: 'TypeResolver', node: TypeGraphNode, depth: int, path: str) -> ParsedType:
    constituents = node.union_constituents()
    if not constituents:
        raise UnsupportedShape('union', path, "union without constituents")
    return UnionType(tuple(
        resolver.resolve(option, depth + 1, f'{path}|{position}')
        for position, option in enumerate(constituents)
    ))


def _match_opaque(resolver: 'TypeResolver', node: TypeGraphNode) -> bool:
    return resolver.is_opaque(node)


def _apply_opaque(resolver: 'TypeResolver', node: TypeGraphNode, depth: int, path: str) -> ParsedType:
    return DATE


def _match_index(resolver: 'TypeResolver', node: TypeGraphNode) -> bool:
    return node.kind == tg.OBJECT and bool(node.index_signatures())


def _apply_index(resolver: 'TypeResolver', node: TypeGraphNode, depth: int, path: str) -> ParsedType:
    signatures = node.index_signatures()
    if len(signatures) > 1:
        # Only the first index signature is honoured
        logger.warning(f"{path}: {len(signatures)} index signatures on {node.describe()}, using the first")
    key_node, value_node = signatures[0]
    return IndexType(
        index_type=resolver.resolve(key_node, depth + 1, f'{path}[key]'),
        indexed_type=resolver.resolve(value_node, depth + 1, f'{path}[value]'),
    )


def _match_object(resolver: 'TypeResolver', node: TypeGraphNode) -> bool:
    return node.kind == tg.OBJECT


def _apply_object(resolver: 'TypeResolver', node: TypeGraphNode, depth: int, path: str) -> ParsedType:
    properties = {}
    for name, prop_node in node.own_properties():
        # Opaque properties short-circuit before any depth accounting
        if resolver.is_opaque(prop_node):
            properties[name] = DATE
            continue
        properties[name] = resolver.resolve(prop_node, depth + 1, f'{path}.{name}')
    return ObjectType(properties)


RESOLUTION_RULES: Tuple[ResolutionRule, ...] = (
    ResolutionRule('primitive', _match_primitive, _apply_primitive),
    ResolutionRule('union', _match_union, _apply_union, composite=True),
    ResolutionRule('opaque', _match_opaque, _apply_opaque),
    ResolutionRule('index', _match_index, _apply_index, composite=True),
    ResolutionRule('object', _match_object, _apply_object, composite=True),
)


# ========== RESOLVER ==========

def stack_depth_ceiling() -> int:
    """Deepest nesting level the current call stack can still afford."""
    used = 0
    frame = inspect.currentframe()
    while frame is not None:
        used += 1
        frame = frame.f_back
    headroom = sys.getrecursionlimit() - used - STACK_RESERVE
    return max(1, headroom // FRAMES_PER_LEVEL)


class TypeResolver:
    """Resolves graph nodes to ParsedType with a fixed depth bound.

    Attributes:
        max_depth: Composite nodes deeper than this become ``unknown`` sentinels.
        depth_limit: ``max_depth`` capped by the remaining recursion headroom,
            refreshed on every root-level resolve.
        opaque_names: Type names resolved to the opaque ``Date`` variant.
        depth_events: DepthExceeded records collected while resolving.
    """

    def __init__(
        self,
        max_depth: Optional[int] = None,
        opaque_names: Optional[Iterable[str]] = None,
        rules: Tuple[ResolutionRule, ...] = RESOLUTION_RULES,
    ):
        config = get_board_config()
        self.max_depth = config.max_depth if max_depth is None else max_depth
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {self.max_depth}")
        self.opaque_names = frozenset(config.opaque_names if opaque_names is None else opaque_names)
        self.rules = rules
        self.depth_events: List[DepthExceeded] = []
        self.depth_limit = self._effective_depth_limit()

    def _effective_depth_limit(self) -> int:
        ceiling = stack_depth_ceiling()
        if ceiling < self.max_depth:
            logger.debug(f"max_depth {self.max_depth} capped to {ceiling} by the recursion limit")
            return ceiling
        return self.max_depth

    def is_opaque(self, node: TypeGraphNode) -> bool:
        """Check whether a node is a recognised opaque wrapper."""
        if node.kind != tg.OBJECT:
            return False
        return node.type_name() in self.opaque_names

    def resolve(self, node: TypeGraphNode, depth: int = 0, path: Optional[str] = None) -> ParsedType:
        """Resolve a node at the given depth.

        Args:
            node: Graph node to resolve
            depth: Nesting depth of the node (0 for the root)
            path: Dotted location used in error messages and depth records

        Returns:
            The ParsedType for the node

        Raises:
            UnsupportedShape: If no rule covers the node
        """
        path = path or get_board_config().root_path
        if depth == 0:
            self.depth_limit = self._effective_depth_limit()
        for rule in self.rules:
            if not rule.matches(self, node):
                continue
            if rule.composite and depth > self.depth_limit:
                event = DepthExceeded(path=path, kind=rule.name, max_depth=self.depth_limit)
                self.depth_events.append(event)
                logger.warning(str(event))
                return UnknownType(kind=rule.name)
            return rule.apply(self, node, depth, path)

        raise UnsupportedShape(node.describe(), path, node.unsupported_reason())


def resolve(node: TypeGraphNode, depth: int = 0, max_depth: Optional[int] = None, path: Optional[str] = None) -> ParsedType:
    """Resolve a graph node to ParsedType using the active configuration."""
    return TypeResolver(max_depth=max_depth).resolve(node, depth, path)


def resolve_annotation(annotation: Any, max_depth: Optional[int] = None, path: Optional[str] = None) -> ParsedType:
    """Resolve a Python type annotation to ParsedType.

    Example:
        >>> resolve_annotation(dict[str, int]).to_dict()
        {'type': 'index', 'indexType': {'type': 'string'}, 'indexedType': {'type': 'number'}}
    """
    return resolve(AnnotationNode(annotation), max_depth=max_depth, path=path)
