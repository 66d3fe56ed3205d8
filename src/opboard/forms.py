"""
Mounted input forms for operations.

A ``FormSession`` owns one input store and a tree of mounted fields built from
an operation's input ParsedType:

    session = FormSession(procedure.input_type)
    session.field('root.weirdDate.hello').set_value(3)
    payload = session.collect()     # {'weirdDate': {'hello': 3}}
    session.close()                 # every entry removed, store closed

Only leaf fields (scalars, optional scalars, enums) own store entries. A leaf
writes its default when it mounts and deletes its entry when it unmounts, so
the store always mirrors exactly the fields currently on screen. A branch
whose type has no field presentation mounts as an ``ErrorField`` carrying the
attributable message; it owns no entry and its siblings mount normally.
"""
import dataclasses
import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Union

from opboard.config import get_board_config
from opboard.errors import StoreMisuse, UnsupportedShape
from opboard.fields import FieldDescriptor, FieldKind, describe_field, nullish_value
from opboard.input_store import InputEntry, InputStore, get_current_input_store
from opboard.ir import AbsentType, IndexType, ObjectType, ParsedType, UnionType
from opboard.markers import UNDEFINED

logger = logging.getLogger(__name__)


# ========== STRUCTURAL EQUALITY ==========

def _instant(value: datetime) -> Any:
    if value.tzinfo is None:
        return value
    return value.timestamp()


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality used to decide whether a field must be rebuilt.

    Dates compare by instant. Mappings are equal only with identical key sets
    and recursively equal values. Sequences compare elementwise, dataclasses
    field by field. Containers never short-circuit on identity.
    """
    if isinstance(a, datetime) or isinstance(b, datetime):
        if not (isinstance(a, datetime) and isinstance(b, datetime)):
            return False
        if (a.tzinfo is None) != (b.tzinfo is None):
            return False
        return _instant(a) == _instant(b)
    if isinstance(a, date) or isinstance(b, date):
        return isinstance(a, date) and isinstance(b, date) and a == b

    if a is UNDEFINED or b is UNDEFINED:
        return a is b

    if dataclasses.is_dataclass(a) and not isinstance(a, type):
        if type(a) is not type(b):
            return False
        return all(
            deep_equal(getattr(a, f.name), getattr(b, f.name))
            for f in dataclasses.fields(a)
        )

    if isinstance(a, Mapping) or isinstance(b, Mapping):
        if not (isinstance(a, Mapping) and isinstance(b, Mapping)):
            return False
        if set(a.keys()) != set(b.keys()):
            return False
        return all(deep_equal(a[key], b[key]) for key in a)

    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        if not (isinstance(a, (list, tuple)) and isinstance(b, (list, tuple))):
            return False
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))

    # True == 1 in Python; a boolean never equals a number here
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _property_order(parsed: ParsedType) -> tuple:
    """Nested object property names in declaration order."""
    if isinstance(parsed, ObjectType):
        return tuple((name, _property_order(prop)) for name, prop in parsed.properties.items())
    if isinstance(parsed, UnionType):
        return tuple(_property_order(option) for option in parsed.options)
    if isinstance(parsed, IndexType):
        return (_property_order(parsed.index_type), _property_order(parsed.indexed_type))
    return ()


def same_shape(a: ParsedType, b: ParsedType) -> bool:
    """deep_equal for input types, also requiring the same property order.

    Property order drives display order, so a reordered object is not
    reusable as is even though its key set is unchanged.
    """
    return deep_equal(a, b) and _property_order(a) == _property_order(b)


# ========== MOUNTED FIELDS ==========

class ErrorField:
    """Placeholder for a branch that has no field presentation.

    Attributes:
        error: The UnsupportedShape raised while describing the branch
    """

    def __init__(self, name: str, path: str, parsed_type: ParsedType, error: UnsupportedShape):
        self.name = name
        self.path = path
        self.parsed_type = parsed_type
        self.error = error
        self.mounted = False

    def __repr__(self) -> str:
        return f"ErrorField({self.path!r}, {self.message!r})"

    @property
    def message(self) -> str:
        return str(self.error)

    @property
    def value(self) -> Any:
        return UNDEFINED

    def iter_fields(self) -> Iterator['FormField']:
        yield self

    def mount(self) -> None:
        self.mounted = True

    def unmount(self) -> None:
        self.mounted = False


class MountedField:
    """A described field bound to its session's input store."""

    def __init__(self, session: 'FormSession', name: str, parsed_type: ParsedType,
                 descriptor: FieldDescriptor):
        self.session = session
        self.name = name
        self.parsed_type = parsed_type
        self.descriptor = descriptor
        self.children: Dict[str, FormField] = {}
        self.mounted = False

    def __repr__(self) -> str:
        return f"MountedField({self.path!r}, {self.descriptor.classification.value})"

    @property
    def path(self) -> str:
        return self.descriptor.path

    @property
    def classification(self) -> FieldKind:
        return self.descriptor.classification

    @property
    def is_leaf(self) -> bool:
        return self.descriptor.is_leaf

    def iter_fields(self) -> Iterator['FormField']:
        """This field followed by every descendant, depth first."""
        yield self
        for child in self.children.values():
            yield from child.iter_fields()

    # ========== LIFECYCLE ==========

    def mount(self) -> None:
        """Write the leaf default, or mount every child of an object field."""
        if self.is_leaf:
            self.session.store.set_input(self.path, InputEntry(self.path, self.descriptor.default_value))
        else:
            for child in self.descriptor.children:
                self.children[child.name] = self.session.create_field(child.name, child.parsed_type, child.path)
        self.mounted = True
        logger.debug(f"Mounted field {self.path} ({self.classification.value})")

    def unmount(self) -> None:
        """Unmount children first, then delete the leaf entry."""
        for child in reversed(list(self.children.values())):
            self.session.release_field(child)
        self.children.clear()
        if self.is_leaf and not self.session.store.closed:
            self.session.store.delete_input(self.path)
        self.mounted = False
        logger.debug(f"Unmounted field {self.path}")

    # ========== VALUES ==========

    def _require_mounted(self, operation: str) -> None:
        if not self.mounted:
            raise StoreMisuse(f"{operation} on unmounted field {self.path!r}")

    @property
    def value(self) -> Any:
        """Current value: the store entry of a leaf, assembled children of an object."""
        self._require_mounted('value')
        if self.is_leaf:
            entry = self.session.store.get(self.path)
            return self.descriptor.default_value if entry is None else entry.value

        result = {}
        for name, child in self.children.items():
            child_value = child.value
            if child_value is UNDEFINED:
                continue
            result[name] = child_value
        return result

    def set_value(self, value: Any) -> None:
        """Replace the leaf's store entry.

        Raises:
            StoreMisuse: If the field is not mounted or its store is closed
            TypeError: If the field is an object field
            ValueError: If ``value`` is not one of an enum field's options
        """
        self._require_mounted('set_value')
        if not self.is_leaf:
            raise TypeError(f"Object field {self.path!r} has no value of its own; set its children")
        if self.classification == FieldKind.ENUM and not any(
            deep_equal(value, option) for option in self.descriptor.options
        ):
            raise ValueError(f"{value!r} is not an option of enum field {self.path!r}")
        self.session.store.set_input(self.path, InputEntry(self.path, value))

    def clear(self) -> None:
        """Reset to the nullish value (optional fields) or the default."""
        if self.descriptor.optional_type:
            self.set_value(nullish_value(self.descriptor.optional_type))
        else:
            self.set_value(self.descriptor.default_value)


FormField = Union[MountedField, ErrorField]


# ========== SESSION ==========

class FormSession:
    """One mounted input form and its input store.

    Args:
        parsed_type: Input type of the operation
        store: Input store of this session; defaults to the store bound by
            ``input_context()``, else a fresh one
        root_path: Path of the root field (defaults to the configured root path)
    """

    def __init__(self, parsed_type: ParsedType, store: Optional[InputStore] = None,
                 root_path: Optional[str] = None):
        self.root_path = root_path or get_board_config().root_path
        if store is None:
            try:
                store = get_current_input_store()
            except StoreMisuse:
                store = InputStore(name=self.root_path)
        self.store = store
        self.parsed_type = parsed_type
        self._fields: Dict[str, FormField] = {}
        self.root: Optional[FormField] = self._mount_root(parsed_type)

    def __repr__(self) -> str:
        return f"FormSession({self.root_path!r}, {len(self._fields)} fields)"

    @staticmethod
    def _has_no_input(parsed_type: ParsedType) -> bool:
        return isinstance(parsed_type, AbsentType) and parsed_type.type in ('undefined', 'void')

    def _mount_root(self, parsed_type: ParsedType) -> Optional[FormField]:
        if self._has_no_input(parsed_type):
            logger.debug(f"Form {self.root_path} takes no input")
            return None
        return self.create_field(self.root_path, parsed_type, self.root_path, is_root=True)

    # ========== FIELD REGISTRY ==========

    def create_field(self, name: str, parsed_type: ParsedType, path: str, is_root: bool = False) -> FormField:
        """Describe and mount a field, falling back to an ErrorField.

        A dotted property name can spell the same path as a nested property
        (``'a.b'`` next to ``a -> b``). The field mounted first keeps the path;
        the later one becomes an unregistered ErrorField that owns no entry.
        """
        if path in self._fields:
            logger.warning(f"Field {name!r} collides with the field already mounted at {path}")
            node: FormField = ErrorField(
                name, path, parsed_type,
                UnsupportedShape('path collision', path, 'another field is already mounted at this path'),
            )
            node.mount()
            return node
        try:
            descriptor = describe_field(parsed_type, path, is_root=is_root)
        except UnsupportedShape as e:
            logger.warning(f"Cannot render field {path}: {e}")
            node = ErrorField(name, path, parsed_type, e)
        else:
            node = MountedField(self, name, parsed_type, descriptor)
        self._fields[path] = node
        node.mount()
        return node

    def release_field(self, node: FormField) -> None:
        """Unmount a field and drop it from the registry."""
        node.unmount()
        if self._fields.get(node.path) is node:
            del self._fields[node.path]

    def field(self, path: str) -> FormField:
        """Mounted field at ``path``.

        Raises:
            KeyError: If no field is mounted at ``path``
        """
        try:
            return self._fields[path]
        except KeyError:
            raise KeyError(f"No field mounted at {path!r}") from None

    def fields(self) -> List[FormField]:
        """All mounted fields, depth first in declaration order."""
        return list(self.root.iter_fields()) if self.root is not None else []

    @property
    def errors(self) -> List[ErrorField]:
        return [node for node in self.fields() if isinstance(node, ErrorField)]

    @property
    def top_level_fields(self) -> List[FormField]:
        """Fields directly under the root object (or the root itself for a scalar input)."""
        if self.root is None:
            return []
        if isinstance(self.root, MountedField) and self.root.classification == FieldKind.ROOT_OBJECT:
            return list(self.root.children.values())
        return [self.root]

    # ========== RE-RENDER ==========

    def reconcile(self, parsed_type: ParsedType) -> None:
        """Re-render against a new input type.

        Unchanged subtrees keep their state; changed or removed subtrees are
        unmounted (their entries deleted) and replacements mounted.
        """
        if same_shape(parsed_type, self.parsed_type):
            return
        self.parsed_type = parsed_type
        if self._has_no_input(parsed_type):
            if self.root is not None:
                self.release_field(self.root)
            self.root = None
            return
        self.root = self._reconcile_node(self.root, self.root_path, parsed_type, self.root_path, is_root=True)

    def _reconcile_node(self, node: Optional[FormField], name: str, parsed_type: ParsedType,
                        path: str, is_root: bool = False) -> FormField:
        if node is not None and same_shape(node.parsed_type, parsed_type):
            return node

        if isinstance(node, MountedField) and not node.is_leaf:
            try:
                descriptor = describe_field(parsed_type, path, is_root=is_root)
            except UnsupportedShape:
                descriptor = None
            if descriptor is not None and not descriptor.is_leaf:
                # Object stays an object: reconcile property by property
                wanted = {child.name for child in descriptor.children}
                for child_name, child in list(node.children.items()):
                    if child_name not in wanted:
                        self.release_field(child)
                        del node.children[child_name]
                node.children = {
                    child.name: self._reconcile_node(
                        node.children.get(child.name), child.name, child.parsed_type, child.path
                    )
                    for child in descriptor.children
                }
                node.descriptor = descriptor
                node.parsed_type = parsed_type
                return node

        if node is not None:
            self.release_field(node)
        return self.create_field(name, parsed_type, path, is_root=is_root)

    # ========== SUBMIT ==========

    def collect(self) -> Any:
        """Submit payload assembled from the mounted tree (undefined values omitted).

        Returns UNDEFINED for an operation that takes no input.
        """
        if self.root is None:
            return UNDEFINED
        return self.root.value

    def format_inputs(self) -> str:
        """Combined input listing of this session's store."""
        return self.store.format_entries()

    def close(self) -> None:
        """Unmount every field and close the store."""
        if self.root is not None:
            self.release_field(self.root)
            self.root = None
        self.store.close()
        logger.debug(f"Closed form {self.root_path}")
