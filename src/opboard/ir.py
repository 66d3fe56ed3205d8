"""
Typed data structures for the board IR: ``ParsedType`` and ``TreeData``.

Both trees are produced once at build time and never mutated afterwards, so
every node is a frozen dataclass. Each node exports to a plain JSON-ready dict
via ``to_dict()`` and is rebuilt with the module-level ``*_from_dict``
functions. The dict form is the wire contract: discriminant ``type`` for
ParsedType nodes and ``__opboard_type`` for TreeData nodes.

Design Philosophy: Correct by Construction
- One frozen dataclass per variant, tag validated in __post_init__
- Unions can never be empty
- Router children names are unique per level
- No references back into the annotation graph (data only)
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Union
import json
import re

from opboard.errors import MalformedEncoding

PRIMITIVE_TAGS = ('string', 'number', 'bigint', 'boolean')
ABSENT_TAGS = ('null', 'undefined', 'void')
LITERAL_TYPES = ('string', 'number', 'boolean', 'bigint')

TREE_DATA_KEY = '__opboard_type'

_BIGINT_PATTERN = re.compile(r'-?[0-9]+')


# ========== BIGINT TEXT ENCODING ==========

def encode_bigint(value: int) -> str:
    """Encode a bigint literal value as its decimal text."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedEncoding(f"bigint value must be an int, got {type(value).__name__}")
    return str(value)


def decode_bigint(text: Any) -> int:
    """Decode a bigint literal from its decimal text. Rejects anything else."""
    if not isinstance(text, str) or not _BIGINT_PATTERN.fullmatch(text):
        raise MalformedEncoding(f"Malformed bigint encoding: {text!r}")
    return int(text)


# ========== PARSED TYPE VARIANTS ==========

@dataclass(frozen=True)
class PrimitiveType:
    """Primitive scalar: string, number, bigint or boolean."""
    type: str

    def __post_init__(self):
        if self.type not in PRIMITIVE_TAGS:
            raise ValueError(f"Not a primitive tag: {self.type!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type}


@dataclass(frozen=True)
class AbsentType:
    """Absence marker: null, undefined or void (kept distinct)."""
    type: str

    def __post_init__(self):
        if self.type not in ABSENT_TAGS:
            raise ValueError(f"Not an absence tag: {self.type!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type}


@dataclass(frozen=True)
class LiteralType:
    """A single concrete value type, e.g. ``Literal["a"]``."""
    literal_type: str
    literal_value: Any
    type: ClassVar[str] = 'literal'

    def __post_init__(self):
        if self.literal_type not in LITERAL_TYPES:
            raise ValueError(f"Unknown literal type: {self.literal_type!r}")
        expected = {
            'string': (str,),
            'number': (int, float),
            'boolean': (bool,),
            'bigint': (int,),
        }[self.literal_type]
        value = self.literal_value
        if not isinstance(value, expected) or (self.literal_type != 'boolean' and isinstance(value, bool)):
            raise ValueError(f"{value!r} is not a valid {self.literal_type} literal")

    def to_dict(self) -> Dict[str, Any]:
        value = self.literal_value
        if self.literal_type == 'bigint':
            value = encode_bigint(value)
        return {'type': self.type, 'literalType': self.literal_type, 'literalValue': value}


@dataclass(frozen=True)
class ObjectType:
    """A record with named properties, in declaration order."""
    properties: Dict[str, 'ParsedType'] = field(default_factory=dict)
    type: ClassVar[str] = 'object'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'properties': {name: prop.to_dict() for name, prop in self.properties.items()},
        }


@dataclass(frozen=True)
class IndexType:
    """A dynamic-key mapping, e.g. ``dict[str, int]``."""
    index_type: 'ParsedType'
    indexed_type: 'ParsedType'
    type: ClassVar[str] = 'index'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'indexType': self.index_type.to_dict(),
            'indexedType': self.indexed_type.to_dict(),
        }


@dataclass(frozen=True)
class UnionType:
    """Tagged alternation. Order preserved, duplicates allowed, never empty."""
    options: Tuple['ParsedType', ...]
    type: ClassVar[str] = 'union'

    def __post_init__(self):
        object.__setattr__(self, 'options', tuple(self.options))
        if not self.options:
            raise ValueError("union options must not be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'options': [option.to_dict() for option in self.options]}


@dataclass(frozen=True)
class DateType:
    """Opaque date/time wrapper, never expanded structurally."""
    type: ClassVar[str] = 'Date'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type}


@dataclass(frozen=True)
class UnknownType:
    """Terminal sentinel emitted when the resolver hits its depth bound."""
    kind: str
    type: ClassVar[str] = 'unknown'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'kind': self.kind}


ParsedType = Union[
    PrimitiveType, AbsentType, LiteralType, ObjectType,
    IndexType, UnionType, DateType, UnknownType,
]

STRING = PrimitiveType('string')
NUMBER = PrimitiveType('number')
BIGINT = PrimitiveType('bigint')
BOOLEAN = PrimitiveType('boolean')
NULL = AbsentType('null')
UNDEFINED_TYPE = AbsentType('undefined')
VOID = AbsentType('void')
DATE = DateType()


def _require(data: Any, key: str, what: str) -> Any:
    """Fetch a mandatory wire key, reporting absence as MalformedEncoding."""
    if not isinstance(data, Mapping) or key not in data:
        raise MalformedEncoding(f"{what} without {key!r}: {data!r}")
    return data[key]


def parsed_type_from_dict(data: Mapping[str, Any]) -> ParsedType:
    """Import a ParsedType from its dict form (e.g., loaded from JSON)."""
    if not isinstance(data, Mapping) or 'type' not in data:
        raise MalformedEncoding(f"ParsedType node without 'type': {data!r}")

    tag = data['type']
    if tag in PRIMITIVE_TAGS:
        return PrimitiveType(tag)
    if tag in ABSENT_TAGS:
        return AbsentType(tag)
    if tag == 'literal':
        literal_type = data.get('literalType')
        value = data.get('literalValue')
        if literal_type == 'bigint':
            value = decode_bigint(value)
        try:
            return LiteralType(literal_type, value)
        except ValueError as e:
            raise MalformedEncoding(str(e)) from e
    if tag == 'object':
        properties = data.get('properties', {})
        if not isinstance(properties, Mapping):
            raise MalformedEncoding(f"object properties must be a mapping, got {properties!r}")
        return ObjectType({
            name: parsed_type_from_dict(prop)
            for name, prop in properties.items()
        })
    if tag == 'index':
        return IndexType(
            index_type=parsed_type_from_dict(_require(data, 'indexType', 'index node')),
            indexed_type=parsed_type_from_dict(_require(data, 'indexedType', 'index node')),
        )
    if tag == 'union':
        options = data.get('options') or []
        if not options:
            raise MalformedEncoding("union node with no options")
        return UnionType(tuple(parsed_type_from_dict(option) for option in options))
    if tag == 'Date':
        return DATE
    if tag == 'unknown':
        return UnknownType(kind=str(data.get('kind', '')))

    raise MalformedEncoding(f"Unknown ParsedType tag: {tag!r}")


# ========== TREE DATA ==========

@dataclass(frozen=True)
class ProcedureNode:
    """Leaf operation with typed input and output."""
    procedure_type: str  # 'query' | 'mutation'
    input_type: ParsedType
    output_type: ParsedType
    input_type_string: str = ''
    output_type_string: str = ''
    node_type: ClassVar[str] = 'procedure'

    def __post_init__(self):
        if self.procedure_type not in ('query', 'mutation'):
            raise ValueError(f"procedure_type must be 'query' or 'mutation', got {self.procedure_type!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            TREE_DATA_KEY: self.node_type,
            'procedureType': self.procedure_type,
            'inputType': self.input_type.to_dict(),
            'outputType': self.output_type.to_dict(),
            'inputTypeString': self.input_type_string,
            'outputTypeString': self.output_type_string,
        }


@dataclass(frozen=True)
class RouterChild:
    """Named entry of a router."""
    name: str
    tree_data: 'TreeData'

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'treeData': self.tree_data.to_dict()}


@dataclass(frozen=True)
class RouterNode:
    """Named group of procedures and nested routers."""
    children: Tuple[RouterChild, ...] = ()
    is_root: bool = False
    node_type: ClassVar[str] = 'router'

    def __post_init__(self):
        object.__setattr__(self, 'children', tuple(self.children))
        seen = set()
        for child in self.children:
            if child.name in seen:
                raise ValueError(f"Duplicate router child name: {child.name!r}")
            seen.add(child.name)

    def child(self, name: str) -> Optional['TreeData']:
        """Look up a direct child by name."""
        for entry in self.children:
            if entry.name == name:
                return entry.tree_data
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            TREE_DATA_KEY: self.node_type,
            'children': [child.to_dict() for child in self.children],
        }
        if self.is_root:
            data['isRoot'] = True
        return data


TreeData = Union[RouterNode, ProcedureNode]


def tree_data_from_dict(data: Mapping[str, Any]) -> TreeData:
    """Import a TreeData tree from its dict form.

    Raises:
        MalformedEncoding: If a node is missing a key or carries an invalid value
    """
    node_type = data.get(TREE_DATA_KEY) if isinstance(data, Mapping) else None
    if node_type == 'router':
        children = data.get('children', [])
        if not isinstance(children, (list, tuple)):
            raise MalformedEncoding(f"router children must be a list, got {children!r}")
        try:
            return RouterNode(
                children=tuple(
                    RouterChild(
                        name=_require(child, 'name', 'router child'),
                        tree_data=tree_data_from_dict(_require(child, 'treeData', 'router child')),
                    )
                    for child in children
                ),
                is_root=bool(data.get('isRoot', False)),
            )
        except MalformedEncoding:
            raise
        except ValueError as e:
            raise MalformedEncoding(str(e)) from e
    if node_type == 'procedure':
        try:
            return ProcedureNode(
                procedure_type=_require(data, 'procedureType', 'procedure node'),
                input_type=parsed_type_from_dict(_require(data, 'inputType', 'procedure node')),
                output_type=parsed_type_from_dict(_require(data, 'outputType', 'procedure node')),
                input_type_string=data.get('inputTypeString', ''),
                output_type_string=data.get('outputTypeString', ''),
            )
        except MalformedEncoding:
            raise
        except ValueError as e:
            raise MalformedEncoding(str(e)) from e
    raise MalformedEncoding(f"Unknown TreeData node: {node_type!r}")


def tree_data_to_json(tree: TreeData, indent: Optional[int] = None) -> str:
    """Serialize a TreeData tree to JSON text."""
    return json.dumps(tree.to_dict(), indent=indent)


def tree_data_from_json(text: str) -> TreeData:
    """Parse JSON text produced by ``tree_data_to_json``."""
    return tree_data_from_dict(json.loads(text))


def parsed_type_to_json(parsed: ParsedType, indent: Optional[int] = None) -> str:
    """Serialize a ParsedType to JSON text."""
    return json.dumps(parsed.to_dict(), indent=indent)


def parsed_type_from_json(text: str) -> ParsedType:
    """Parse JSON text produced by ``parsed_type_to_json``."""
    return parsed_type_from_dict(json.loads(text))
