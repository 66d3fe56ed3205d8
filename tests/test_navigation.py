"""Tests for navigation state and the board view."""
import logging

import pytest

from opboard import (
    BoardView,
    ExpansionStore,
    InputEntry,
    ObjectType,
    ProcedureNode,
    RouterChild,
    RouterNode,
    StoreMisuse,
    board_config,
    build_tree,
    render_text,
)
from opboard.ir import STRING, UNDEFINED_TYPE


@pytest.fixture
def board_tree(app_router):
    return build_tree(app_router)


@pytest.fixture
def view(board_tree):
    view = BoardView(board_tree)
    yield view
    view.close()


class TestExpansionStore:
    """Per-path expanded flags."""

    def test_default_closed(self):
        assert not ExpansionStore().is_open('root.greeting')

    def test_initial_paths(self):
        store = ExpansionStore(['root.greeting'])
        assert store.is_open('root.greeting')

    def test_initial_paths_from_config(self):
        with board_config(initial_open_paths=('root.add',)):
            store = ExpansionStore()
        assert store.is_open('root.add')

    def test_toggle_twice_restores(self):
        store = ExpansionStore(['root.a'])
        for path in ('root.a', 'root.b'):
            before = store.is_open(path)
            store.toggle(path)
            store.toggle(path)
            assert store.is_open(path) == before

    def test_subscribers(self):
        store = ExpansionStore()
        seen = []
        unsubscribe = store.subscribe(lambda path, is_open: seen.append((path, is_open)))
        store.toggle('root.r')
        unsubscribe()
        store.toggle('root.r')
        assert seen == [('root.r', True)]


class TestComposition:
    """Visible nodes follow TreeData order."""

    def test_root_renders_children_directly(self, view):
        nodes = view.nodes()
        assert [(node.name, node.path, node.badge) for node in nodes] == [
            ('greeting', 'root.greeting', 'Query'),
            ('add', 'root.add', 'Mutation'),
            ('r', 'root.r', 'Router'),
        ]

    def test_collapsed_router_has_no_children(self, view):
        router = view.nodes()[2]
        assert not router.expanded
        assert router.children == []

    def test_expanded_router_lists_children(self, view):
        view.toggle('root.r')
        router = view.nodes()[2]
        assert [child.path for child in router.children] == ['root.r.nested']

    def test_expanded_procedure_shows_form(self, view):
        view.toggle('root.add')
        add = view.nodes()[1]
        assert add.expanded
        assert add.form is view.form('root.add')
        assert [field.name for field in add.form.top_level_fields] == ['weirdDate', 'optionalDate', 'record']


class TestFormLifecycle:
    """Forms follow visibility; collapsing cascades."""

    def test_initially_open_procedure_mounts_form(self, board_tree):
        view = BoardView(board_tree, ExpansionStore(['root.greeting']))
        assert view.form('root.greeting') is not None
        view.close()

    def test_collapse_closes_form(self, view):
        view.toggle('root.add')
        store = view.form('root.add').store
        view.toggle('root.add')
        assert view.form('root.add') is None
        assert store.closed

    def test_collapsing_router_cascades(self, view):
        view.toggle('root.r')
        view.toggle('root.r.nested')
        nested = view.form('root.r.nested')
        assert nested is not None
        view.toggle('root.r')
        assert nested.store.closed
        assert view.open_forms == {}
        # Re-expanding the router remounts a fresh form
        view.toggle('root.r')
        assert view.form('root.r.nested') is not nested

    def test_procedure_in_collapsed_router_stays_closed(self, board_tree):
        view = BoardView(board_tree, ExpansionStore(['root.r.nested']))
        assert view.form('root.r.nested') is None
        view.close()

    def test_external_toggle_is_followed(self, board_tree):
        expansion = ExpansionStore()
        view = BoardView(board_tree, expansion)
        expansion.toggle('root.greeting')
        assert view.form('root.greeting') is not None
        view.close()

    def test_one_session_per_open_procedure(self, view):
        view.toggle('root.greeting')
        view.toggle('root.add')
        assert view.form('root.greeting').store is not view.form('root.add').store

    def test_close_releases_everything(self, board_tree):
        view = BoardView(board_tree, ExpansionStore(['root.greeting', 'root.add']))
        forms = list(view.open_forms.values())
        view.close()
        assert all(form.store.closed for form in forms)

    def test_orphaned_entry_surfaces_and_siblings_still_close(self):
        procedure = ProcedureNode('query', ObjectType({'name': STRING}), STRING)
        tree = RouterNode(
            children=(RouterChild('r', RouterNode(children=(
                RouterChild('first', procedure),
                RouterChild('second', procedure),
            ))),),
            is_root=True,
        )
        view = BoardView(tree, ExpansionStore(['root.r', 'root.r.first', 'root.r.second']))
        forms = dict(view.open_forms)
        assert set(forms) == {'root.r.first', 'root.r.second'}
        forms['root.r.first'].store.set_input('root.stray', InputEntry('root.stray', 1))

        with pytest.raises(StoreMisuse, match='root.stray'):
            view.toggle('root.r')

        assert all(form.store.closed for form in forms.values())
        assert view.open_forms == {}
        assert not view.expansion.is_open('root.r')
        view.close()

    def test_unrelated_listener_errors_are_logged(self, view, caplog):
        def broken(path, is_open):
            raise RuntimeError('boom')

        view.expansion.subscribe(broken)
        with caplog.at_level(logging.WARNING, logger='opboard.navigation'):
            view.toggle('root.greeting')
        assert 'boom' in caplog.text
        assert view.form('root.greeting') is not None


class TestRenderText:
    """Terminal outline."""

    def test_collapsed_outline(self, view):
        assert render_text(view.nodes()) == '\n'.join([
            '[Query] greeting',
            '[Mutation] add',
            '[Router] r +',
        ])

    def test_open_form_inlined(self, view):
        view.toggle('root.greeting')
        view.form('root.greeting').field('root.name').set_value('Ada')
        lines = render_text(view.nodes()).splitlines()
        assert lines[:5] == [
            '[Query] greeting (open)',
            '  name: string = "Ada"',
            '  title: string | null = null',
            '  mood: enum = "happy" of "happy", "sad"',
            '[Mutation] add',
        ]

    def test_error_fields_rendered(self, view):
        view.toggle('root.add')
        text = render_text(view.nodes())
        assert '  weirdDate: object' in text
        assert '    hello: number = 0' in text
        assert 'optionalDate: Unsupported shape' in text

    def test_no_input_procedure(self):
        tree = RouterNode(
            children=(RouterChild('ping', ProcedureNode('query', UNDEFINED_TYPE, STRING)),),
            is_root=True,
        )
        view = BoardView(tree, ExpansionStore(['root.ping']))
        assert render_text(view.nodes()) == '[Query] ping (open)\n  (no input)'
        view.close()
