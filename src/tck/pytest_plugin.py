"""pytest integration for conformance suites built on ``tck``.

Provides ``tck_config``, ``tck_session`` and ``observers`` fixtures, gives tests marked
``tck`` the per-test timeout, and reports methods the service does not implement as
skipped rather than failed.
"""

import logging
import os

import pytest
import pytest_asyncio

import tck.constants as C
from tck.config import NetworkConfig, load_config
from tck.errors import MethodNotImplemented
from tck.logging_config import setup_logging
from tck.session import Session
from tck.sources import Observers

log = logging.getLogger("tck.pytest")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "tck: conformance test against the SDK service (30s timeout)")
    if os.getenv("LOG_LEVEL") or os.getenv("TCK_LOG_FILE"):
        setup_logging()


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if item.get_closest_marker("tck") and not item.get_closest_marker("timeout"):
            item.add_marker(pytest.mark.timeout(C.TEST_TIMEOUT))


def _skip_unimplemented(e: MethodNotImplemented) -> None:
    log.warning("Method %s not implemented, skipping", e.method)
    pytest.skip(f"{e.method} not implemented by the service")


@pytest.hookimpl(wrapper=True)
def pytest_runtest_setup(item: pytest.Item):
    try:
        return (yield)
    except MethodNotImplemented as e:
        _skip_unimplemented(e)


@pytest.hookimpl(wrapper=True)
def pytest_runtest_call(item: pytest.Item):
    try:
        return (yield)
    except MethodNotImplemented as e:
        _skip_unimplemented(e)


@pytest.fixture(scope="session")
def tck_config() -> NetworkConfig:
    return load_config()


@pytest_asyncio.fixture
async def tck_session(tck_config: NetworkConfig):
    async with Session.open(tck_config) as session:
        await session.set_operator()
        try:
            yield session
        finally:
            try:
                await session.reset()
            except MethodNotImplemented:
                log.debug("reset not implemented by the service")


@pytest.fixture
def observers(tck_session: Session) -> Observers:
    return tck_session.observers
