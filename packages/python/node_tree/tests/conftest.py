import pytest

from factories import StepClock, sequential_ids
from node_tree import CATEGORY, MENU, InMemoryNodeRepository, NodeTreeService


@pytest.fixture()
def category_repo():
    return InMemoryNodeRepository()


@pytest.fixture()
def category_service(category_repo):
    return NodeTreeService(
        CATEGORY,
        category_repo,
        clock=StepClock(),
        id_factory=sequential_ids("cat-"),
    )


@pytest.fixture()
def menu_repo():
    return InMemoryNodeRepository()


@pytest.fixture()
def menu_service(menu_repo):
    return NodeTreeService(
        MENU,
        menu_repo,
        clock=StepClock(),
        id_factory=sequential_ids("menu-"),
    )
