"""
Example board.

Declares a small router, prints its operation tree as JSON, then opens a few
operations and prints the board outline with their input forms:

    python examples/board.py
"""

import logging
from datetime import datetime
from typing import Literal, NotRequired, TypedDict, Union

from opboard import (
    BoardView,
    ExpansionStore,
    Router,
    TreeBuilder,
    render_text,
    tree_data_to_json,
)

logger = logging.getLogger(__name__)


class WeirdDate(TypedDict):
    hello: int


class AddInput(TypedDict):
    weirdDate: WeirdDate
    optionalDate: NotRequired[datetime]
    record: dict[str, int]


class Greeting(TypedDict):
    a: datetime
    r: dict[str, int]


class NestedInput(TypedDict):
    b: Literal[5]


class NumberResult(TypedDict):
    a: int


class TextResult(TypedDict):
    d: str


app = Router()


@app.query
def greeting() -> Greeting:
    return {'a': datetime.now(), 'r': {}}


@app.mutation
def add(payload: AddInput) -> dict[str, dict[str, Literal[True]]]:
    return {'c': {'a': True}}


nested_router = app.mount('r', Router())


@nested_router.query
def nested(payload: NestedInput) -> Union[NumberResult, TextResult]:
    return {'a': 5}


@app.query(name='type')
def describe_board() -> str:
    return tree_data_to_json(TreeBuilder().build(app))


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    builder = TreeBuilder()
    tree = builder.build(app)
    print(tree_data_to_json(tree, indent=2))

    for fault in builder.malformed_operations:
        logger.warning(f"Skipped operation: {fault}")

    view = BoardView(tree, ExpansionStore(['root.greeting', 'root.add', 'root.r', 'root.r.nested']))
    form = view.form('root.add')
    form.field('root.weirdDate.hello').set_value(3)

    print()
    print(render_text(view.nodes()))
    print()
    print(form.format_inputs())
    print(f"payload: {form.collect()}")

    view.close()


if __name__ == '__main__':
    main()
