"""
Board configuration.

A process default is kept in module state (``set_board_config``) and can be
overridden for a block of code with the ``board_config()`` context manager,
which uses contextvars so nested scopes and threads see their own values.
"""
import contextvars
import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardConfig:
    """Tunables shared by the resolver, the tree builder and the views.

    Attributes:
        max_depth: Deepest nesting the resolver expands before emitting an
                   ``unknown`` sentinel. Must be >= 1.
        opaque_names: Type names resolved to the opaque ``Date`` variant
                      instead of being expanded structurally.
        initial_open_paths: Navigation paths expanded at first load.
        root_path: First segment of every form and navigation path.
    """
    max_depth: int = 16
    opaque_names: Tuple[str, ...] = ('datetime', 'date', 'Date')
    initial_open_paths: Tuple[str, ...] = ()
    root_path: str = 'root'

    def __post_init__(self):
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {self.max_depth}")
        if not self.root_path:
            raise ValueError("root_path must be a non-empty string")


_default_config = BoardConfig()

_config_override: contextvars.ContextVar = contextvars.ContextVar('board_config_override', default=None)


def set_board_config(config: BoardConfig) -> None:
    """Replace the process-wide default configuration."""
    global _default_config
    _default_config = config
    logger.debug(f"Board config set: {config}")


def get_board_config() -> BoardConfig:
    """Get the configuration active in the current context."""
    override = _config_override.get()
    return override if override is not None else _default_config


@contextmanager
def board_config(**overrides):
    """Temporarily override configuration fields.

    Usage:
        with board_config(max_depth=3):
            resolve_annotation(DeepType)  # cut off below depth 3
    """
    config = dataclasses.replace(get_board_config(), **overrides)
    token = _config_override.set(config)
    try:
        yield config
    finally:
        _config_override.reset(token)
