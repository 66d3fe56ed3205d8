"""
Field descriptors: how a ParsedType is presented as an input field.

``describe_field`` is a pure function of ``(parsed_type, path)``. It decides
the widget classification and the default value a mounted field writes into
its input store. Object children are listed but not described; each child
is described when it mounts, so one unsupported branch does not take down
its siblings.

Classification policy:
- object                          -> rootObject (at the root) or object, default {}
- string / number / boolean       -> same kind, default "" / 0 / False
- 2-option union, nullish + scalar -> the scalar kind, optional; default is the nullish value
- union of null/undefined/string literals -> enum; null first, then undefined, then literals
- any other union                 -> UnsupportedShape('Union unimplemented')
- any other tag                   -> UnsupportedShape(tag)
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from opboard.errors import UnsupportedShape
from opboard.ir import (
    AbsentType, LiteralType, ObjectType, ParsedType, PrimitiveType, UnionType,
)
from opboard.markers import UNDEFINED

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    """Widget classification of a field."""
    ROOT_OBJECT = 'rootObject'
    OBJECT = 'object'
    STRING = 'string'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    ENUM = 'enum'


SCALAR_DEFAULTS = {
    FieldKind.STRING: '',
    FieldKind.NUMBER: 0,
    FieldKind.BOOLEAN: False,
}

NULLISH_TAGS = ('null', 'undefined')

# Select-widget tokens for the nullish enum options
NULL_TOKEN = 'OPBOARD_NULL_____'
UNDEFINED_TOKEN = 'OPBOARD_UNDEFINED_____'


def nullish_value(tag: Optional[str]) -> Any:
    """Value standing for a nullish tag: None for 'null', UNDEFINED for 'undefined'."""
    return None if tag == 'null' else UNDEFINED


@dataclass(frozen=True)
class FieldChild:
    """A property of an object field, described when it mounts."""
    name: str
    path: str
    parsed_type: ParsedType


@dataclass(frozen=True)
class FieldDescriptor:
    """Presentation of one field.

    Attributes:
        classification: Widget kind
        path: Dotted path of the field (its input store key)
        default_value: Value written on mount
        optional_type: 'null' or 'undefined' for optional scalars, else None
        options: Enum options (None, UNDEFINED, then literal strings)
        children: Object properties, in declaration order
        type_label: Short type text shown next to the field name
    """
    classification: FieldKind
    path: str
    default_value: Any
    optional_type: Optional[str] = None
    options: Tuple[Any, ...] = ()
    children: Tuple[FieldChild, ...] = ()
    type_label: str = ''

    @property
    def is_leaf(self) -> bool:
        """Leaves own an input store entry; object fields do not."""
        return self.classification not in (FieldKind.ROOT_OBJECT, FieldKind.OBJECT)

    @property
    def name(self) -> str:
        return self.path.rsplit('.', 1)[-1]


def _scalar_kind(parsed_type: ParsedType) -> Optional[FieldKind]:
    if isinstance(parsed_type, PrimitiveType) and parsed_type.type in SCALAR_DEFAULTS:
        return FieldKind(parsed_type.type)
    return None


def _is_nullish(parsed_type: ParsedType) -> bool:
    return isinstance(parsed_type, AbsentType) and parsed_type.type in NULLISH_TAGS


def _is_string_literal(parsed_type: ParsedType) -> bool:
    return isinstance(parsed_type, LiteralType) and parsed_type.literal_type == 'string'


def _describe_union(union: UnionType, path: str) -> FieldDescriptor:
    options = union.options

    if len(options) == 2:
        nullish = next((option for option in options if _is_nullish(option)), None)
        scalar = next((kind for kind in map(_scalar_kind, options) if kind is not None), None)
        if nullish is not None and scalar is not None:
            return FieldDescriptor(
                classification=scalar,
                path=path,
                default_value=nullish_value(nullish.type),
                optional_type=nullish.type,
                type_label=f"{scalar.value} | {nullish.type}",
            )

    if all(_is_nullish(option) or _is_string_literal(option) for option in options):
        enum_options = []
        if any(isinstance(option, AbsentType) and option.type == 'null' for option in options):
            enum_options.append(None)
        if any(isinstance(option, AbsentType) and option.type == 'undefined' for option in options):
            enum_options.append(UNDEFINED)
        enum_options.extend(option.literal_value for option in options if _is_string_literal(option))
        return FieldDescriptor(
            classification=FieldKind.ENUM,
            path=path,
            default_value=enum_options[0],
            options=tuple(enum_options),
            type_label='enum',
        )

    raise UnsupportedShape('union', path, 'Union unimplemented')


def describe_field(parsed_type: ParsedType, path: str, is_root: bool = False) -> FieldDescriptor:
    """Describe how ``parsed_type`` is presented at ``path``.

    Args:
        parsed_type: Resolved type of the field
        path: Dotted path of the field
        is_root: True for the top-level input of an operation

    Returns:
        FieldDescriptor for the field

    Raises:
        UnsupportedShape: If the type has no field presentation
    """
    if isinstance(parsed_type, ObjectType):
        return FieldDescriptor(
            classification=FieldKind.ROOT_OBJECT if is_root else FieldKind.OBJECT,
            path=path,
            default_value={},
            children=tuple(
                FieldChild(name=name, path=f'{path}.{name}', parsed_type=prop)
                for name, prop in parsed_type.properties.items()
            ),
            type_label='object',
        )

    scalar = _scalar_kind(parsed_type)
    if scalar is not None:
        return FieldDescriptor(
            classification=scalar,
            path=path,
            default_value=SCALAR_DEFAULTS[scalar],
            type_label=scalar.value,
        )

    if isinstance(parsed_type, UnionType):
        return _describe_union(parsed_type, path)

    raise UnsupportedShape(parsed_type.type, path, 'no field presentation')


# ========== DISPLAY HELPERS ==========

def option_label(option: Any) -> str:
    """Display label of an enum option: '"a"', 'null' or 'undefined'."""
    if option is None:
        return 'null'
    if option is UNDEFINED:
        return 'undefined'
    return f'"{option}"'


def option_to_token(option: Any) -> str:
    """Encode an enum option as a select-widget token."""
    if option is None:
        return NULL_TOKEN
    if option is UNDEFINED:
        return UNDEFINED_TOKEN
    return option


def token_to_option(token: str) -> Any:
    """Decode a select-widget token back to its enum option."""
    if token == NULL_TOKEN:
        return None
    if token == UNDEFINED_TOKEN:
        return UNDEFINED
    return token


def value_hint(descriptor: FieldDescriptor, value: Any) -> str:
    """Suffix shown after a field label for values an empty widget cannot show.

    Examples:
        required string holding ""        -> '= ""'
        optional field holding its nullish -> '= undefined'
        boolean                            -> '= true'
    """
    if descriptor.optional_type and value is nullish_value(descriptor.optional_type):
        return f"= {descriptor.optional_type}"
    if descriptor.classification == FieldKind.BOOLEAN:
        return '= true' if value else '= false'
    if descriptor.classification == FieldKind.STRING and value == '':
        return '= ""'
    return ''
