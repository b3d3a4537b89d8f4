import pytest

from pagesafe import SanitizerEngine, create_html_policy


@pytest.fixture(scope="session")
def policy():
    return create_html_policy()


@pytest.fixture(scope="session")
def engine(policy):
    return SanitizerEngine(policy)
