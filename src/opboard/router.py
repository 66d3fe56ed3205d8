"""
Namespace graph declarations: routers of named procedures.

A router is an ordered mapping of names to nested routers or procedures.
Procedures carry an explicit kind marker (query or mutation) and a handler
whose annotations declare the input and output types:

    app = Router()

    @app.query
    def greeting() -> Greeting: ...

    @app.mutation
    def add(payload: AddInput) -> AddResult: ...

    app.mount('admin', Router(users=query(list_users)))

The handler is never called by opboard; invoking operations belongs to the
transport layer.
"""
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, Union, get_type_hints

from opboard.markers import Undefined, Void

logger = logging.getLogger(__name__)

PROCEDURE_TYPES = ('query', 'mutation')

# Distinguishes "no type declared" from an explicit None annotation
NOT_DECLARED = object()


def _handler_hints(handler: Callable) -> Dict[str, Any]:
    try:
        return get_type_hints(handler, include_extras=True)
    except (NameError, TypeError) as e:
        logger.debug(f"get_type_hints failed for {handler!r}: {e}")
        return dict(getattr(handler, '__annotations__', {}))


@dataclass(frozen=True)
class Procedure:
    """Leaf operation of a router.

    Attributes:
        procedure_type: 'query' or 'mutation'
        handler: Callable implementing the operation (annotations are read, never called)
        input_type: Explicit input annotation, overriding the handler's
        output_type: Explicit output annotation, overriding the handler's
    """
    procedure_type: str
    handler: Optional[Callable] = None
    input_type: Any = NOT_DECLARED
    output_type: Any = NOT_DECLARED

    def __post_init__(self):
        if self.procedure_type not in PROCEDURE_TYPES:
            raise ValueError(f"procedure_type must be one of {PROCEDURE_TYPES}, got {self.procedure_type!r}")

    def input_annotation(self) -> Any:
        """Declared input type, ``Undefined`` for a handler without input, or NOT_DECLARED."""
        if self.input_type is not NOT_DECLARED:
            return self.input_type
        if self.handler is None:
            return NOT_DECLARED

        params = [
            param for param in inspect.signature(self.handler).parameters.values()
            if param.name not in ('self', 'cls')
            and param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        if not params:
            return Undefined

        hints = _handler_hints(self.handler)
        return hints.get(params[0].name, NOT_DECLARED)

    def output_annotation(self) -> Any:
        """Declared output type (``None`` return maps to Void), or NOT_DECLARED."""
        if self.output_type is not NOT_DECLARED:
            return self.output_type
        if self.handler is None:
            return NOT_DECLARED

        hints = _handler_hints(self.handler)
        if 'return' not in hints:
            return NOT_DECLARED
        output = hints['return']
        return Void if output is None or output is type(None) else output

    @property
    def name(self) -> str:
        return getattr(self.handler, '__name__', '') if self.handler else ''


def _make_procedure(procedure_type: str, handler: Optional[Callable], input: Any, output: Any):
    def wrap(fn: Callable) -> Procedure:
        return Procedure(procedure_type, fn, input_type=input, output_type=output)

    if handler is None:
        return wrap
    return wrap(handler)


def query(handler: Optional[Callable] = None, *, input: Any = NOT_DECLARED, output: Any = NOT_DECLARED):
    """Declare a query procedure. Usable bare or as ``@query(input=...)``."""
    return _make_procedure('query', handler, input, output)


def mutation(handler: Optional[Callable] = None, *, input: Any = NOT_DECLARED, output: Any = NOT_DECLARED):
    """Declare a mutation procedure. Usable bare or as ``@mutation(input=...)``."""
    return _make_procedure('mutation', handler, input, output)


Member = Union['Router', Procedure]


class Router:
    """Ordered, named group of procedures and nested routers."""

    def __init__(self, members: Optional[Mapping[str, Member]] = None, **named_members: Member):
        self._members: Dict[str, Member] = {}
        for name, member in dict(members or {}, **named_members).items():
            self._add(name, member)

    def __repr__(self) -> str:
        return f"Router({', '.join(self._members)})"

    def __iter__(self) -> Iterator[Tuple[str, Member]]:
        return iter(self._members.items())

    def __len__(self) -> int:
        return len(self._members)

    def __getitem__(self, name: str) -> Member:
        return self._members[name]

    def __contains__(self, name: str) -> bool:
        return name in self._members

    def _add(self, name: str, member: Member) -> None:
        if not isinstance(member, (Router, Procedure)):
            raise TypeError(f"Router member {name!r} must be a Router or Procedure, got {type(member).__name__}")
        if name in self._members:
            raise ValueError(f"Duplicate router member: {name!r}")
        self._members[name] = member
        logger.debug(f"Router member added: {name} ({type(member).__name__})")

    def mount(self, name: str, member: Member) -> Member:
        """Attach a nested router or procedure under ``name``."""
        self._add(name, member)
        return member

    def query(self, handler: Optional[Callable] = None, *, name: Optional[str] = None,
              input: Any = NOT_DECLARED, output: Any = NOT_DECLARED):
        """Decorator registering ``handler`` as a query (returns the handler unchanged)."""
        return self._register('query', handler, name, input, output)

    def mutation(self, handler: Optional[Callable] = None, *, name: Optional[str] = None,
                 input: Any = NOT_DECLARED, output: Any = NOT_DECLARED):
        """Decorator registering ``handler`` as a mutation (returns the handler unchanged)."""
        return self._register('mutation', handler, name, input, output)

    def _register(self, procedure_type: str, handler: Optional[Callable], name: Optional[str], input: Any, output: Any):
        def wrap(fn: Callable) -> Callable:
            self._add(name or fn.__name__, Procedure(procedure_type, fn, input_type=input, output_type=output))
            return fn

        if handler is None:
            return wrap
        return wrap(handler)
