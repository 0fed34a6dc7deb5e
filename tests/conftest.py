from collections.abc import Collection

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tests.utils.profiler_app import HandlerCalls, make_app


def pytest_collection_modifyitems(config: pytest.Config, items: Collection[pytest.Item]):
    # run all tests in the session in the same event loop
    # https://pytest-asyncio.readthedocs.io/en/latest/how-to-guides/run_session_tests_in_same_loop.html
    session_scope_marker = pytest.mark.asyncio(loop_scope='session')
    for item in items:
        if pytest_asyncio.is_async_test(item):
            item.add_marker(session_scope_marker, append=False)


@pytest.fixture
def calls() -> HandlerCalls:
    return HandlerCalls()


@pytest.fixture
def client(calls: HandlerCalls) -> AsyncClient:
    return AsyncClient(base_url='http://127.0.0.1:8000', transport=ASGITransport(make_app(calls)))
