"""
Marker types and values for shapes Python has no native spelling for.

Python annotations have a single absence marker (``None``). The board IR keeps
three distinct ones (null, undefined, void) plus a dedicated bigint scalar, so
these markers let router authors spell them in annotations:

    from opboard.markers import BigInt, Undefined, Void

    def lookup(key: str) -> Union[Item, Undefined]: ...

``UNDEFINED`` is the runtime value stored for a field whose current value is
"undefined" (distinct from ``None``, which stands for null).
"""
from typing import NewType


class _UndefinedValue:
    """Singleton runtime value for an undefined field."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'UNDEFINED'

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (_UndefinedValue, ())


UNDEFINED = _UndefinedValue()


class Undefined:
    """Annotation marker: the value may be absent (``undefined``)."""


class Void:
    """Annotation marker: the operation produces no value (``void``)."""


# Integers the IR must keep distinct from JSON numbers
BigInt = NewType('BigInt', int)


def is_undefined(value) -> bool:
    """Check whether a runtime value is the ``UNDEFINED`` marker."""
    return value is UNDEFINED
