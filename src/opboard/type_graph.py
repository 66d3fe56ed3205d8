"""
Structural type graph consumed by the resolver.

The resolver never touches ``typing`` directly. It walks ``TypeGraphNode``
objects, which expose the minimal capability set it needs:

- a kind tag (primitive, absence marker, literal, union, object, unsupported)
- the concrete value of a literal
- union constituents, in source order
- index signatures (dynamic-key mappings)
- own properties, in declaration order
- the type name, used to recognise opaque wrappers such as ``datetime``

``AnnotationNode`` implements that capability set over Python annotations
using pure stdlib introspection (``typing.get_origin``/``get_args``,
``dataclasses.fields``, ``typing.get_type_hints``). Any other reflection
mechanism can be plugged in by subclassing ``TypeGraphNode``.
"""
import collections.abc
import dataclasses
import enum
import logging
import types
import typing
from abc import ABC, abstractmethod
from typing import (
    Annotated, Any, ClassVar, List, Literal, NotRequired, Optional, Required,
    Sequence, Tuple, Union, get_args, get_origin, get_type_hints, is_typeddict,
)

from opboard.markers import BigInt, Undefined, Void

logger = logging.getLogger(__name__)

# Kind tags exposed by graph nodes
STRING = 'string'
NUMBER = 'number'
BIGINT = 'bigint'
BOOLEAN = 'boolean'
NULL = 'null'
UNDEFINED = 'undefined'
VOID = 'void'
LITERAL = 'literal'
UNION = 'union'
OBJECT = 'object'
UNSUPPORTED = 'unsupported'

_MAPPING_ORIGINS = (
    dict, collections.abc.Mapping, collections.abc.MutableMapping,
    collections.OrderedDict, collections.defaultdict,
)
_SEQUENCE_ORIGINS = (
    list, set, frozenset, collections.deque,
    collections.abc.Sequence, collections.abc.MutableSequence,
    collections.abc.Set, collections.abc.MutableSet,
    collections.abc.Collection, collections.abc.Iterable,
)


class TypeGraphNode(ABC):
    """One node of a structural type graph."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """Kind tag of this node (see module constants)."""

    @abstractmethod
    def literal_value(self) -> Any:
        """Concrete value of a ``literal`` node."""

    @abstractmethod
    def union_constituents(self) -> Sequence['TypeGraphNode']:
        """Constituents of a ``union`` node, in source order."""

    @abstractmethod
    def index_signatures(self) -> Sequence[Tuple['TypeGraphNode', 'TypeGraphNode']]:
        """(key, value) pairs of every dynamic-key signature on an ``object`` node."""

    @abstractmethod
    def own_properties(self) -> Sequence[Tuple[str, 'TypeGraphNode']]:
        """(name, node) pairs of an ``object`` node, in declaration order."""

    @abstractmethod
    def type_name(self) -> Optional[str]:
        """Symbol name of the type, if it has one."""

    @abstractmethod
    def describe(self) -> str:
        """Human-readable type string."""

    def unsupported_reason(self) -> Optional[str]:
        """Why an ``unsupported`` node could not be classified."""
        return None


def _strip_wrappers(annotation: Any) -> Any:
    """Remove Annotated/Required/NotRequired wrappers and unwrap NewTypes (except BigInt)."""
    while True:
        origin = get_origin(annotation)
        if origin is Annotated or origin is Required or origin is NotRequired:
            annotation = get_args(annotation)[0]
            continue
        if annotation is not BigInt and isinstance(annotation, typing.NewType):
            annotation = annotation.__supertype__
            continue
        return annotation


def _is_union(annotation: Any) -> bool:
    origin = get_origin(annotation)
    return origin is Union or origin is types.UnionType


def _is_enum_class(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, enum.Enum)


def _record_hints(cls: type) -> List[Tuple[str, Any]]:
    """Annotated attributes of a record class, in declaration order."""
    try:
        hints = get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as e:
        logger.debug(f"get_type_hints failed for {cls!r}: {e}")
        hints = dict(getattr(cls, '__annotations__', {}))

    if dataclasses.is_dataclass(cls):
        return [(f.name, hints.get(f.name, f.type)) for f in dataclasses.fields(cls)]

    return [
        (name, hint) for name, hint in hints.items()
        if get_origin(hint) is not ClassVar and hint is not ClassVar
    ]


class AnnotationNode(TypeGraphNode):
    """TypeGraphNode over a Python type annotation."""

    def __init__(self, annotation: Any):
        self.annotation = annotation
        self._target = _strip_wrappers(annotation)
        self._reason: Optional[str] = None
        self._kind = self._classify(self._target)

    def __repr__(self) -> str:
        return f"AnnotationNode({self.describe()})"

    # ========== CLASSIFICATION ==========

    def _classify(self, target: Any) -> str:
        if target is None or target is type(None):
            return NULL
        if target is Undefined:
            return UNDEFINED
        if target is Void:
            return VOID
        if target is BigInt:
            return BIGINT
        if target is Any:
            self._reason = "Any carries no structure"
            return UNSUPPORTED

        origin = get_origin(target)
        if origin is Literal:
            return LITERAL if len(get_args(target)) == 1 else UNION
        if _is_union(target):
            return UNION
        if isinstance(target, enum.Enum):
            return LITERAL
        if _is_enum_class(target):
            if not list(target):
                self._reason = f"enum {target.__name__} has no members"
                return UNSUPPORTED
            return LITERAL if len(target) == 1 else UNION

        if isinstance(target, type) and origin is None:
            if issubclass(target, bool):
                return BOOLEAN
            if issubclass(target, str):
                return STRING
            if issubclass(target, (int, float)):
                return NUMBER

        if origin is not None:
            if origin is tuple:
                return OBJECT
            if origin in _MAPPING_ORIGINS or origin in _SEQUENCE_ORIGINS:
                if not get_args(target):
                    self._reason = f"unparameterized {origin.__name__}"
                    return UNSUPPORTED
                return OBJECT
            self._reason = f"unsupported generic {target!r}"
            return UNSUPPORTED

        if isinstance(target, type):
            if target.__module__ == 'builtins' and not hasattr(target, '__annotations__'):
                self._reason = f"builtin type {target.__name__}"
                return UNSUPPORTED
            return OBJECT

        self._reason = f"cannot classify {target!r}"
        return UNSUPPORTED

    @property
    def kind(self) -> str:
        return self._kind

    def unsupported_reason(self) -> Optional[str]:
        return self._reason

    # ========== CAPABILITIES ==========

    def literal_value(self) -> Any:
        target = self._target
        if isinstance(target, enum.Enum):
            return target.value
        if _is_enum_class(target):
            return next(iter(target)).value
        value = get_args(target)[0]
        return value.value if isinstance(value, enum.Enum) else value

    def union_constituents(self) -> Sequence[TypeGraphNode]:
        target = self._target
        if get_origin(target) is Literal:
            return [AnnotationNode(Literal[value]) for value in get_args(target)]
        if _is_enum_class(target):
            return [AnnotationNode(member) for member in target]

        constituents: List[TypeGraphNode] = []
        for arg in get_args(target):
            node = AnnotationNode(arg)
            # Multi-value Literal and Enum members are exposed as single literals,
            # the same way the union itself lists them.
            if node.kind == UNION and (get_origin(node._target) is Literal or _is_enum_class(node._target)):
                constituents.extend(node.union_constituents())
            else:
                constituents.append(node)
        return constituents

    def index_signatures(self) -> Sequence[Tuple[TypeGraphNode, TypeGraphNode]]:
        target = self._target
        origin = get_origin(target)
        args = get_args(target)
        if origin in _MAPPING_ORIGINS and len(args) == 2:
            return [(AnnotationNode(args[0]), AnnotationNode(args[1]))]
        if origin in _SEQUENCE_ORIGINS and args:
            return [(AnnotationNode(int), AnnotationNode(args[0]))]
        if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
            return [(AnnotationNode(int), AnnotationNode(args[0]))]
        return []

    def own_properties(self) -> Sequence[Tuple[str, TypeGraphNode]]:
        target = self._target
        if get_origin(target) is tuple:
            args = get_args(target)
            if args == ((),):
                return []
            return [(str(position), AnnotationNode(arg)) for position, arg in enumerate(args)]

        if not isinstance(target, type):
            return []

        optional_keys = getattr(target, '__optional_keys__', frozenset()) if is_typeddict(target) else frozenset()
        properties: List[Tuple[str, TypeGraphNode]] = []
        for name, hint in _record_hints(target):
            node = AnnotationNode(hint)
            if name in optional_keys:
                node = OptionalPropertyNode(node)
            properties.append((name, node))
        return properties

    def type_name(self) -> Optional[str]:
        target = self._target
        if isinstance(target, type) and get_origin(target) is None:
            return target.__name__
        return None

    def describe(self) -> str:
        return type_string(self.annotation)


class OptionalPropertyNode(TypeGraphNode):
    """A property that may be absent: its constituents plus ``undefined``."""

    def __init__(self, inner: TypeGraphNode):
        self.inner = inner

    @property
    def kind(self) -> str:
        return UNION

    def literal_value(self) -> Any:
        raise TypeError("optional property is not a literal")

    def union_constituents(self) -> Sequence[TypeGraphNode]:
        if self.inner.kind == UNION:
            constituents = list(self.inner.union_constituents())
        else:
            constituents = [self.inner]
        return constituents + [AnnotationNode(Undefined)]

    def index_signatures(self) -> Sequence[Tuple[TypeGraphNode, TypeGraphNode]]:
        return []

    def own_properties(self) -> Sequence[Tuple[str, TypeGraphNode]]:
        return []

    def type_name(self) -> Optional[str]:
        return None

    def describe(self) -> str:
        return f"{self.inner.describe()} | undefined"


# ========== TYPE STRINGS ==========

def type_string(annotation: Any) -> str:
    """Format an annotation as a short human-readable type string.

    Examples:
        dict[str, int]            -> 'dict[str, int]'
        Optional[datetime]        -> 'datetime | None'
        Literal['a', 'b']         -> "Literal['a', 'b']"
        NotRequired[Undefined]    -> 'undefined'
    """
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Annotated or origin is Required or origin is NotRequired:
        return type_string(args[0])
    if annotation is None or annotation is type(None):
        return 'None'
    if annotation is Undefined:
        return 'undefined'
    if annotation is Void:
        return 'void'
    if annotation is Ellipsis:
        return '...'
    if isinstance(annotation, typing.NewType):
        return annotation.__name__
    if origin is Literal:
        return f"Literal[{', '.join(repr(arg) for arg in args)}]"
    if _is_union(annotation):
        return ' | '.join(type_string(arg) for arg in args)
    if origin is not None:
        name = getattr(annotation, '_name', None) or getattr(origin, '__name__', repr(origin))
        if args == ((),):
            return f"{name}[()]"
        if not args:
            return name
        return f"{name}[{', '.join(type_string(arg) for arg in args)}]"
    if isinstance(annotation, type):
        return annotation.__name__
    if isinstance(annotation, str):
        return annotation
    return repr(annotation).replace('typing.', '')
