"""
Keyed input store: per-session state of a mounted operation form.

Maps a dotted field path to an ``InputEntry(key, value)``. One store belongs
to one mounted form (a session); it is never shared between forms, so two
open instances of the same operation cannot see each other's paths.

Lifecycle:
- Created when a form mounts
- Leaf fields write their defaults on mount, edits replace entries
- Leaf fields delete their entries on unmount
- Closed when the form unmounts; any later access raises StoreMisuse

Mutations are synchronous and last-write-wins. Subscribers are called in
issue order with the fully merged snapshot. Not thread-safe (all operations
expected on the UI thread).
"""
import contextvars
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from opboard.errors import StoreMisuse
from opboard.markers import UNDEFINED

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputEntry:
    """Current value of one mounted field, keyed by its dotted path."""
    key: str
    value: Any


Listener = Callable[[Mapping[str, InputEntry]], None]


class InputStore:
    """Mapping of dotted paths to input entries for one form session."""

    def __init__(self, name: str = ''):
        self.name = name
        # Replaced (never mutated) on every write so handed-out snapshots stay stable
        self._entries: Dict[str, InputEntry] = {}
        self._listeners: List[Listener] = []
        self._closed = False

    def __repr__(self) -> str:
        state = 'closed' if self._closed else f'{len(self._entries)} entries'
        return f"InputStore({self.name!r}, {state})"

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open(self, operation: str) -> None:
        if self._closed:
            raise StoreMisuse(f"{operation} on closed input store {self.name!r}")

    # ========== READS ==========

    def get_state(self) -> Mapping[str, InputEntry]:
        """Read-only snapshot of all entries."""
        self._require_open('get_state')
        return MappingProxyType(self._entries)

    def get(self, path: str) -> Optional[InputEntry]:
        """Entry at ``path``, or None."""
        self._require_open('get')
        return self._entries.get(path)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ========== WRITES ==========

    def set_input(self, path: str, entry: InputEntry) -> None:
        """Store ``entry`` under ``path`` (last write wins)."""
        self._require_open('set_input')
        if not isinstance(entry, InputEntry):
            raise TypeError(f"set_input expects an InputEntry, got {type(entry).__name__}")
        self._entries = {**self._entries, path: entry}
        self._notify()

    def delete_input(self, path: str) -> None:
        """Remove the entry at ``path``. Removing an absent path is a no-op."""
        self._require_open('delete_input')
        if path not in self._entries:
            return
        entries = dict(self._entries)
        del entries[path]
        self._entries = entries
        self._notify()

    # ========== SUBSCRIPTION ==========

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(snapshot)`` after every mutation.

        Returns:
            A function that removes the listener.
        """
        self._require_open('subscribe')
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        """Notify listeners with the merged snapshot (best-effort per listener)."""
        snapshot = MappingProxyType(self._entries)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Error in input store listener: {e}")

    # ========== LIFECYCLE ==========

    def close(self) -> None:
        """End the session.

        Raises:
            StoreMisuse: If entries are still present (a field skipped its teardown)
        """
        if self._closed:
            return
        orphaned = sorted(self._entries)
        self._listeners.clear()
        self._closed = True
        if orphaned:
            self._entries = {}
            raise StoreMisuse(f"Input store {self.name!r} closed with orphaned entries: {', '.join(orphaned)}")
        logger.debug(f"Closed input store {self.name!r}")

    def format_entries(self) -> str:
        """Combined input listing, one ``key:json`` line per entry, sorted by key."""
        self._require_open('format_entries')
        entries = sorted(self._entries.values(), key=lambda entry: entry.key)
        return '\n'.join(f"{entry.key}:{format_value(entry.value)}" for entry in entries)


def format_value(value: Any) -> str:
    """JSON text of a field value (``undefined`` for UNDEFINED)."""
    if value is UNDEFINED:
        return 'undefined'
    if isinstance(value, date):
        return json.dumps(value.isoformat())
    return json.dumps(value, default=str)


# ========== CONTEXT BINDING ==========

_current_store: contextvars.ContextVar[Optional[InputStore]] = contextvars.ContextVar(
    'current_input_store', default=None
)


@contextmanager
def input_context(store: InputStore):
    """Bind ``store`` as the input store for the enclosed form subtree.

    Usage:
        with input_context(store):
            session = FormSession(parsed_type)  # picks up ``store``
    """
    token = _current_store.set(store)
    try:
        yield store
    finally:
        _current_store.reset(token)


def get_current_input_store() -> InputStore:
    """Input store bound by the nearest ``input_context()``.

    Raises:
        StoreMisuse: If no store is bound
    """
    store = _current_store.get()
    if store is None:
        raise StoreMisuse("No input store bound; wrap the form in input_context()")
    return store
