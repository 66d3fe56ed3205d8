"""
Operation tree builder: Router graph -> TreeData.

Walks a router in declaration order. Nested routers become ``router`` nodes,
procedures become ``procedure`` leaves whose input/output annotations are
resolved through the type descriptor resolver. The outermost router is
marked ``is_root``.

A procedure missing its input or output type is replaced by an empty router
placeholder and recorded as a MalformedOperation; its siblings still build.
An UnsupportedShape raised while resolving a procedure propagates and names
the full path below the operation (``root.r.nested.input.when``).
"""
import logging
from typing import List, Optional

from opboard.config import get_board_config
from opboard.errors import DepthExceeded, MalformedOperation
from opboard.ir import ProcedureNode, RouterChild, RouterNode, TreeData
from opboard.resolver import TypeResolver
from opboard.router import NOT_DECLARED, Procedure, Router
from opboard.type_graph import AnnotationNode, type_string

logger = logging.getLogger(__name__)


class TreeBuilder:
    """Builds TreeData from a router, collecting recovered faults.

    Attributes:
        malformed_operations: Procedures replaced by placeholders
        depth_events: Depth bound hits reported by the resolver
    """

    def __init__(self, max_depth: Optional[int] = None, root_path: Optional[str] = None):
        self.resolver = TypeResolver(max_depth=max_depth)
        self.root_path = root_path or get_board_config().root_path
        self.malformed_operations: List[MalformedOperation] = []

    @property
    def depth_events(self) -> List[DepthExceeded]:
        return self.resolver.depth_events

    def build(self, router: Router) -> TreeData:
        """Build the tree for ``router``; the result is marked as root."""
        tree = self._build_router(router, self.root_path, is_root=True)
        logger.debug(
            f"Built operation tree: {len(router)} top-level members, "
            f"{len(self.malformed_operations)} malformed, {len(self.depth_events)} depth cut-offs"
        )
        return tree

    def _build_router(self, router: Router, path: str, is_root: bool = False) -> RouterNode:
        children = []
        for name, member in router:
            child_path = f'{path}.{name}'
            if isinstance(member, Router):
                tree_data = self._build_router(member, child_path)
            else:
                tree_data = self._build_procedure(member, child_path)
            children.append(RouterChild(name=name, tree_data=tree_data))
        return RouterNode(children=tuple(children), is_root=is_root)

    def _build_procedure(self, procedure: Procedure, path: str) -> TreeData:
        input_annotation = procedure.input_annotation()
        output_annotation = procedure.output_annotation()

        missing = [
            label for label, annotation in (('input', input_annotation), ('output', output_annotation))
            if annotation is NOT_DECLARED
        ]
        if missing:
            fault = MalformedOperation(path=path, missing=' and '.join(missing))
            self.malformed_operations.append(fault)
            logger.warning(str(fault))
            return RouterNode()

        input_type = self.resolver.resolve(AnnotationNode(input_annotation), 0, f'{path}.input')
        output_type = self.resolver.resolve(AnnotationNode(output_annotation), 0, f'{path}.output')

        return ProcedureNode(
            procedure_type=procedure.procedure_type,
            input_type=input_type,
            output_type=output_type,
            input_type_string=type_string(input_annotation),
            output_type_string=type_string(output_annotation),
        )


def build_tree(router: Router, max_depth: Optional[int] = None) -> TreeData:
    """Build the operation tree for ``router`` using the active configuration."""
    return TreeBuilder(max_depth=max_depth).build(router)
