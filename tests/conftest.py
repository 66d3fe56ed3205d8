"""Pytest configuration and shared fixtures."""
import pytest
from datetime import datetime
from typing import Literal, NotRequired, Optional, TypedDict

import opboard.config as config_module
from opboard import Router


class WeirdDate(TypedDict):
    hello: int


class AddInput(TypedDict):
    weirdDate: WeirdDate
    optionalDate: NotRequired[datetime]
    record: dict[str, int]


class GreetingInput(TypedDict):
    name: str
    title: Optional[str]
    mood: Literal['happy', 'sad']


class NestedInput(TypedDict):
    when: datetime
    flag: bool


@pytest.fixture(autouse=True)
def reset_board_config():
    """Restore the process default configuration after each test."""
    original = config_module._default_config
    yield
    config_module._default_config = original


@pytest.fixture
def add_input_type():
    """Input type of the ``add`` mutation."""
    return AddInput


@pytest.fixture
def greeting_input_type():
    """Input type of the ``greeting`` query."""
    return GreetingInput


@pytest.fixture
def app_router():
    """Router with a query, a mutation and a nested router."""
    app = Router()

    @app.query
    def greeting(payload: GreetingInput) -> str:
        return f"hello {payload['name']}"

    @app.mutation
    def add(payload: AddInput) -> int:
        return payload['weirdDate']['hello']

    nested_router = Router()

    @nested_router.query
    def nested(payload: NestedInput) -> datetime:
        return payload['when']

    app.mount('r', nested_router)
    return app
