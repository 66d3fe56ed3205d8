"""
Error taxonomy for opboard.

- UnsupportedShape: a type or union shape outside the known heuristics.
  Never degraded to a generic field; the message names the path and tag.
- DepthExceeded: resolver recursion passed the configured bound. Recovered
  by a sentinel ``unknown`` leaf; the record is logged, never raised.
- MalformedOperation: an operation without input or output type. Recovered
  by an empty placeholder; siblings keep building.
- StoreMisuse: input store accessed outside an active session.
- MalformedEncoding: a wire value (e.g. a bigint literal) failed to decode.
"""
from dataclasses import dataclass
from typing import Optional


class BoardError(Exception):
    """Base class for all opboard errors."""


class UnsupportedShape(BoardError):
    """Type or union shape that no resolution/classification rule covers."""

    def __init__(self, tag: str, path: Optional[str] = None, detail: Optional[str] = None):
        self.tag = tag
        self.path = path
        self.detail = detail
        super().__init__(self._format())

    def _format(self) -> str:
        message = f"Unsupported shape '{self.tag}'"
        if self.path:
            message += f" at {self.path}"
        if self.detail:
            message += f": {self.detail}"
        return message


class StoreMisuse(BoardError):
    """Input store used outside of its mounted session."""


class MalformedEncoding(BoardError, ValueError):
    """Wire value that does not follow the agreed encoding."""


@dataclass(frozen=True)
class DepthExceeded:
    """Record of a recursion cut short by the depth bound."""
    path: str
    kind: str
    max_depth: int

    def __str__(self) -> str:
        return f"Depth {self.max_depth} exceeded at {self.path} (kind={self.kind})"


@dataclass(frozen=True)
class MalformedOperation:
    """Record of an operation that could not be described."""
    path: str
    missing: str

    def __str__(self) -> str:
        return f"Operation {self.path} is missing its {self.missing} type"
