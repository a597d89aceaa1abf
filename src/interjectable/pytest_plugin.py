"""pytest plugin for interjectable.

Tracks which test or fixture is running so that ``Klass.test_inject`` and the ``test_inject`` fixture
know when to restore what they override:

    test body, function scoped fixture: restored after the test
    class/module/package/session scoped fixture, setup_class, setup_module: restored when that scope ends

Provides fixtures:
    test_inject: ``test_inject(target, name, value)`` overrides a dependency with a concrete value

Configuration (pytest.ini or pyproject.toml):
    interjectable_debug: log overrides and restores at DEBUG level (default: false)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, override

import pytest

from interjectable.config import ScopeGranularity
from interjectable.testing import (
    OverrideRecord,
    ScopeAdapter,
    ScopeFrame,
    install_scope_adapter,
    override as override_dependency,
    uninstall_scope_adapter,
)

if TYPE_CHECKING:
    from _pytest.fixtures import FixtureDef, SubRequest

_PACKAGE_LOGGER = "interjectable"


class PytestScopeAdapter(ScopeAdapter):
    """Scope adapter fed by the hooks of this plugin."""

    def __init__(self) -> None:
        self._frames: list[ScopeFrame] = []

    @override
    def current_scope(self) -> ScopeFrame | None:
        return self._frames[-1] if self._frames else None

    @contextmanager
    def entered(self, frame: ScopeFrame) -> Iterator[None]:
        self._frames.append(frame)
        try:
            yield
        finally:
            self._frames.pop()


_ADAPTER_KEY = pytest.StashKey[PytestScopeAdapter]()
_PREVIOUS_LEVEL_KEY = pytest.StashKey[int]()


def _lineage(node: pytest.Item | pytest.Collector) -> tuple[str, ...]:
    """Node ids from ``node`` up to the session, innermost first."""
    return tuple(n.nodeid for n in reversed(node.listchain()))


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addini(
        "interjectable_debug",
        "Log test_inject overrides and restores at DEBUG level.",
        type="bool",
        default=False,
    )


def pytest_configure(config: pytest.Config) -> None:
    adapter = PytestScopeAdapter()
    config.stash[_ADAPTER_KEY] = adapter
    install_scope_adapter(adapter)

    if config.getini("interjectable_debug"):
        package_logger = logging.getLogger(_PACKAGE_LOGGER)
        config.stash[_PREVIOUS_LEVEL_KEY] = package_logger.level
        package_logger.setLevel(logging.DEBUG)


def pytest_unconfigure(config: pytest.Config) -> None:
    adapter = config.stash.get(_ADAPTER_KEY, None)
    if adapter is not None:
        uninstall_scope_adapter(adapter)
    previous_level = config.stash.get(_PREVIOUS_LEVEL_KEY, None)
    if previous_level is not None:
        logging.getLogger(_PACKAGE_LOGGER).setLevel(previous_level)


@pytest.hookimpl(hookwrapper=True)
def pytest_fixture_setup(
    fixturedef: FixtureDef[Any], request: SubRequest
) -> Generator[None, None, None]:
    adapter = request.config.stash[_ADAPTER_KEY]
    node = request.node
    granularity = (
        ScopeGranularity.PER_TEST
        if fixturedef.scope == "function"
        else ScopeGranularity.PER_GROUP
    )
    frame = ScopeFrame(
        scope_id=node.nodeid,
        lineage=_lineage(node),
        granularity=granularity,
        register_teardown=request.addfinalizer,
    )
    with adapter.entered(frame):
        yield


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_call(item: pytest.Item) -> Generator[None, None, None]:
    adapter = item.config.stash[_ADAPTER_KEY]
    frame = ScopeFrame(
        scope_id=item.nodeid,
        lineage=_lineage(item),
        granularity=ScopeGranularity.PER_TEST,
        register_teardown=item.addfinalizer,
    )
    with adapter.entered(frame):
        yield


@pytest.fixture(scope="session")
def test_inject() -> Callable[[type, str, object], OverrideRecord]:
    """Override a dependency of a class with a concrete value.

    Usable from tests and from fixtures of any scope; the override lasts until the scope that made it
    ends. For a lazily evaluated replacement use ``Klass.test_inject(name, factory)``.

    Returns:
        ``test_inject(target, name, value)``
    """

    def inject(target: type, name: str, value: object) -> OverrideRecord:
        return override_dependency(target, name, value=value)

    return inject
