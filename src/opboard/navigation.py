"""
Navigation state and tree view over TreeData.

``ExpansionStore`` keeps the expanded/collapsed flag of each navigation path.
``BoardView`` composes the visible tree: the root router's children are shown
directly, routers list their children in TreeData order, and an expanded
procedure shows its mounted input form. One form session (with its own input
store) exists per visible expanded procedure; collapsing any path closes every
form at or below it.
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from opboard.config import get_board_config
from opboard.errors import BoardError
from opboard.fields import FieldKind, option_label, value_hint
from opboard.forms import ErrorField, FormField, FormSession
from opboard.input_store import InputStore, format_value
from opboard.ir import ProcedureNode, RouterNode, TreeData

logger = logging.getLogger(__name__)

ToggleListener = Callable[[str, bool], None]


class ExpansionStore:
    """Expanded/collapsed flag per navigation path (default collapsed)."""

    def __init__(self, initial_open: Optional[Iterable[str]] = None):
        if initial_open is None:
            initial_open = get_board_config().initial_open_paths
        self._open: Dict[str, bool] = {path: True for path in initial_open}
        self._listeners: List[ToggleListener] = []

    def is_open(self, path: str) -> bool:
        return self._open.get(path, False)

    def toggle(self, path: str) -> bool:
        """Flip the flag of ``path`` and notify listeners.

        Returns:
            The new flag

        Raises:
            BoardError: The first board error raised by a listener, after every
                listener has run
        """
        state = not self.is_open(path)
        self._open[path] = state
        logger.debug(f"Toggled {path}: {'open' if state else 'closed'}")
        first_error: Optional[BoardError] = None
        for listener in list(self._listeners):
            try:
                listener(path, state)
            except BoardError as e:
                logger.error(f"Expansion listener failed for {path}: {e}")
                if first_error is None:
                    first_error = e
            except Exception as e:
                logger.warning(f"Error in expansion listener for {path}: {e}")
        if first_error is not None:
            raise first_error
        return state

    def subscribe(self, listener: ToggleListener) -> Callable[[], None]:
        """Call ``listener(path, is_open)`` after every toggle. Returns an unsubscribe function."""
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_state(self) -> Mapping[str, bool]:
        return MappingProxyType(dict(self._open))


def badge_for(tree_data: TreeData) -> str:
    """Badge label: Router, Query or Mutation."""
    if isinstance(tree_data, RouterNode):
        return 'Router'
    return 'Query' if tree_data.procedure_type == 'query' else 'Mutation'


@dataclass
class TreeNode:
    """One visible row of the board tree."""
    name: str
    path: str
    badge: str
    expanded: bool
    tree_data: TreeData
    children: List['TreeNode'] = field(default_factory=list)
    form: Optional[FormSession] = None

    @property
    def is_router(self) -> bool:
        return isinstance(self.tree_data, RouterNode)


class BoardView:
    """Composes TreeNodes and owns the form sessions of open procedures.

    Args:
        tree: Root TreeData (as built by ``build_tree``)
        expansion: Navigation state; a fresh store per view when omitted
    """

    def __init__(self, tree: TreeData, expansion: Optional[ExpansionStore] = None):
        self.tree = tree
        self.expansion = expansion if expansion is not None else ExpansionStore()
        self.root_path = get_board_config().root_path
        self._forms: Dict[str, FormSession] = {}
        self._unsubscribe = self.expansion.subscribe(self._on_toggle)
        self._sync()

    # ========== FORM SESSIONS ==========

    def _visible_procedures(self) -> Dict[str, ProcedureNode]:
        """Expanded procedures whose ancestors are all expanded."""
        visible: Dict[str, ProcedureNode] = {}

        def walk(node: TreeData, path: str) -> None:
            if isinstance(node, ProcedureNode):
                if self.expansion.is_open(path):
                    visible[path] = node
                return
            for child in node.children:
                child_path = f'{path}.{child.name}'
                if isinstance(child.tree_data, RouterNode) and not self.expansion.is_open(child_path):
                    continue
                walk(child.tree_data, child_path)

        if isinstance(self.tree, RouterNode) and not self.tree.is_root and not self.expansion.is_open(self.root_path):
            return visible
        walk(self.tree, self.root_path)
        return visible

    def _sync(self) -> None:
        """Close forms that are no longer visible, open forms that became visible."""
        visible = self._visible_procedures()
        try:
            self._close_forms([path for path in self._forms if path not in visible])
        finally:
            for path, procedure in visible.items():
                if path not in self._forms:
                    self._forms[path] = FormSession(procedure.input_type, store=InputStore(name=path))
                    logger.debug(f"Opened form for {path}")

    def _close_form(self, path: str) -> None:
        form = self._forms.pop(path)
        form.close()
        logger.debug(f"Closed form for {path}")

    def _close_forms(self, paths: List[str]) -> None:
        """Close every listed form, then raise the first failure, if any."""
        first_error: Optional[BoardError] = None
        for path in paths:
            try:
                self._close_form(path)
            except BoardError as e:
                logger.error(f"Failed to close form for {path}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def _on_toggle(self, path: str, is_open: bool) -> None:
        try:
            if not is_open:
                # Cascade: everything at or below the collapsed path
                self._close_forms([p for p in self._forms if p == path or p.startswith(path + '.')])
        finally:
            self._sync()

    def toggle(self, path: str) -> bool:
        """Toggle a navigation path; forms follow the new visibility."""
        return self.expansion.toggle(path)

    def form(self, path: str) -> Optional[FormSession]:
        """Form session of the open procedure at ``path``, if any."""
        return self._forms.get(path)

    @property
    def open_forms(self) -> Mapping[str, FormSession]:
        return MappingProxyType(self._forms)

    def close(self) -> None:
        """Close every form and detach from the expansion store."""
        try:
            self._close_forms(list(self._forms))
        finally:
            self._unsubscribe()

    # ========== COMPOSITION ==========

    def nodes(self) -> List[TreeNode]:
        """Visible top-level nodes (a root router contributes its children directly)."""
        if isinstance(self.tree, RouterNode) and self.tree.is_root:
            return self._compose_children(self.tree, self.root_path)
        return [self._compose(self.root_path.rsplit('.', 1)[-1], self.tree, self.root_path)]

    def _compose_children(self, router: RouterNode, path: str) -> List[TreeNode]:
        return [
            self._compose(child.name, child.tree_data, f'{path}.{child.name}')
            for child in router.children
        ]

    def _compose(self, name: str, tree_data: TreeData, path: str) -> TreeNode:
        expanded = self.expansion.is_open(path)
        node = TreeNode(name=name, path=path, badge=badge_for(tree_data), expanded=expanded, tree_data=tree_data)
        if not expanded:
            return node
        if isinstance(tree_data, RouterNode):
            node.children = self._compose_children(tree_data, path)
        else:
            node.form = self._forms.get(path)
        return node


# ========== TEXT RENDERING ==========

def _render_field(node: FormField, depth: int, indent: str, lines: List[str]) -> None:
    prefix = indent * depth
    if isinstance(node, ErrorField):
        lines.append(f"{prefix}{node.name}: {node.message}")
        return
    descriptor = node.descriptor
    if not node.is_leaf:
        lines.append(f"{prefix}{node.name}: {descriptor.type_label}")
        for child in node.children.values():
            _render_field(child, depth + 1, indent, lines)
        return

    value = node.value
    shown = value_hint(descriptor, value) or f"= {format_value(value)}"
    text = f"{prefix}{node.name}: {descriptor.type_label} {shown}"
    if descriptor.classification == FieldKind.ENUM:
        text += f" of {', '.join(option_label(option) for option in descriptor.options)}"
    lines.append(text)


def render_text(nodes: List[TreeNode], indent: str = '  ') -> str:
    """Indented outline of the visible tree, with open forms inlined.

    Example:
        [Query] greeting (open)
          name: string = ""
        [Mutation] add
        [Router] r +
    """
    lines: List[str] = []

    def render(node: TreeNode, depth: int) -> None:
        prefix = indent * depth
        if node.is_router:
            lines.append(f"{prefix}[{node.badge}] {node.name} {'-' if node.expanded else '+'}")
            for child in node.children:
                render(child, depth + 1)
            return

        lines.append(f"{prefix}[{node.badge}] {node.name}{' (open)' if node.expanded else ''}")
        if node.form is None:
            return
        if not node.form.fields():
            lines.append(f"{prefix}{indent}(no input)")
        for field_node in node.form.top_level_fields:
            _render_field(field_node, depth + 1, indent, lines)

    for node in nodes:
        render(node, 0)
    return '\n'.join(lines)
