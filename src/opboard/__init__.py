"""
Operation board: browse typed operations and fill in their inputs.

opboard turns a router of typed operations into a self-contained, JSON-ready
description and renders interactive input forms from it.

Key Features:
- Type descriptor resolution of Python annotations into a JSON-safe IR
- Operation tree building from routers of queries and mutations
- Per-session keyed input stores with subscriber callbacks
- Dynamic input forms driven by the IR (objects, scalars, optionals, enums)
- Navigation state with cascading form teardown

Quick Start:
    >>> from typing import TypedDict
    >>> from opboard import Router, build_tree, BoardView, ExpansionStore, render_text
    >>>
    >>> class AddInput(TypedDict):
    ...     a: int
    ...     b: int
    >>>
    >>> app = Router()
    >>>
    >>> @app.mutation
    ... def add(payload: AddInput) -> int:
    ...     return payload['a'] + payload['b']
    >>>
    >>> view = BoardView(build_tree(app), ExpansionStore(['root.add']))
    >>> view.form('root.add').collect()
    {'a': 0, 'b': 0}

Architecture:
    Build time:
        Router -> TreeBuilder -> TypeResolver -> TreeData (JSON wire form)

    Render time:
        TreeData -> BoardView -> FormSession -> MountedField -> InputStore

Modules:
    - markers: Undefined / Void / BigInt annotation markers
    - type_graph: Structural type graph over Python annotations
    - resolver: Ordered rule table producing the ParsedType IR
    - ir: IR and TreeData dataclasses with their wire forms
    - router: Router and procedure declarations
    - tree_builder: Router -> TreeData
    - input_store: Keyed input store and its context binding
    - fields: Field classification and defaults
    - forms: Mounted form sessions
    - navigation: Expansion state, tree view and text rendering
    - config: Board configuration
    - errors: Error taxonomy
"""

__version__ = '0.1.0'

# Configuration
from opboard.config import (
    BoardConfig,
    board_config,
    get_board_config,
    set_board_config,
)

# Errors
from opboard.errors import (
    BoardError,
    DepthExceeded,
    MalformedEncoding,
    MalformedOperation,
    StoreMisuse,
    UnsupportedShape,
)

# Markers
from opboard.markers import UNDEFINED, BigInt, Undefined, Void, is_undefined

# IR
from opboard.ir import (
    AbsentType,
    DateType,
    IndexType,
    LiteralType,
    ObjectType,
    ParsedType,
    PrimitiveType,
    ProcedureNode,
    RouterChild,
    RouterNode,
    TreeData,
    UnionType,
    UnknownType,
    decode_bigint,
    encode_bigint,
    parsed_type_from_dict,
    parsed_type_from_json,
    parsed_type_to_json,
    tree_data_from_dict,
    tree_data_from_json,
    tree_data_to_json,
)

# Resolution
from opboard.type_graph import AnnotationNode, TypeGraphNode, type_string
from opboard.resolver import RESOLUTION_RULES, TypeResolver, resolve, resolve_annotation

# Routers and tree building
from opboard.router import Procedure, Router, mutation, query
from opboard.tree_builder import TreeBuilder, build_tree

# Input store
from opboard.input_store import (
    InputEntry,
    InputStore,
    get_current_input_store,
    input_context,
)

# Fields and forms
from opboard.fields import FieldDescriptor, FieldKind, describe_field
from opboard.forms import ErrorField, FormSession, MountedField, deep_equal, same_shape

# Navigation
from opboard.navigation import BoardView, ExpansionStore, TreeNode, render_text

__all__ = [
    '__version__',
    # Configuration
    'BoardConfig',
    'board_config',
    'get_board_config',
    'set_board_config',
    # Errors
    'BoardError',
    'DepthExceeded',
    'MalformedEncoding',
    'MalformedOperation',
    'StoreMisuse',
    'UnsupportedShape',
    # Markers
    'UNDEFINED',
    'BigInt',
    'Undefined',
    'Void',
    'is_undefined',
    # IR
    'AbsentType',
    'DateType',
    'IndexType',
    'LiteralType',
    'ObjectType',
    'ParsedType',
    'PrimitiveType',
    'ProcedureNode',
    'RouterChild',
    'RouterNode',
    'TreeData',
    'UnionType',
    'UnknownType',
    'decode_bigint',
    'encode_bigint',
    'parsed_type_from_dict',
    'parsed_type_from_json',
    'parsed_type_to_json',
    'tree_data_from_dict',
    'tree_data_from_json',
    'tree_data_to_json',
    # Resolution
    'AnnotationNode',
    'TypeGraphNode',
    'type_string',
    'RESOLUTION_RULES',
    'TypeResolver',
    'resolve',
    'resolve_annotation',
    # Routers and tree building
    'Procedure',
    'Router',
    'mutation',
    'query',
    'TreeBuilder',
    'build_tree',
    # Input store
    'InputEntry',
    'InputStore',
    'get_current_input_store',
    'input_context',
    # Fields and forms
    'FieldDescriptor',
    'FieldKind',
    'describe_field',
    'ErrorField',
    'FormSession',
    'MountedField',
    'deep_equal',
    'same_shape',
    # Navigation
    'BoardView',
    'ExpansionStore',
    'TreeNode',
    'render_text',
]
