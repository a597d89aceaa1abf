"""
Test-scoped overrides of injected dependencies.

``override`` swaps in a temporary definition for a slot and registers its inverse with the current test
scope, so the previous definition comes back when that scope ends:

- inside a test, or a function scoped fixture, the override lasts until the test finishes;
- inside a class, module, package or session scoped fixture it lasts until that group finishes.

Overrides stack. A nested scope restores the enclosing scope's override, not the original. Teardowns
that run out of order only remove their own layer: overrides made after them stay in place, and the
last one to go restores the state from before the first.

Overriding the same dependency of the same class several times within one test installs the latest
replacement each time but keeps a single teardown, which returns to the state from before the first
override of that test.

The host test framework is reached through a ``ScopeAdapter``. :mod:`interjectable.pytest_plugin`
installs one for pytest.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass, field
from typing import Any, cast, override as override_method

from interjectable._registry import MISSING, MissingSentinel, find_slot, locate_slot
from interjectable._slots import Factory, InstanceSlot, SharedCell, SharedSlot
from interjectable.config import ScopeGranularity, ScopeKey, SlotKind, SlotLocation
from interjectable.errors import InvalidOverrideArgumentError, OutsideTestScopeError

logger = logging.getLogger(__name__)

Teardown = Callable[[], object]


@dataclass(frozen=True, kw_only=True, slots=True)
class ScopeFrame:
    """
    The innermost running test or test group, as seen by the host test framework.
    """

    scope_id: str

    lineage: tuple[str, ...]
    """
    ``scope_id`` followed by the ids of every enclosing scope, innermost first.
    """

    granularity: ScopeGranularity

    register_teardown: Callable[[Teardown], object]
    """
    Run the callback when this scope ends.
    """


class ScopeAdapter(ABC):
    """
    Interface to the scope and teardown hooks of a test framework.
    """

    @abstractmethod
    def current_scope(self) -> ScopeFrame | None:
        """The innermost running scope, or ``None`` outside of any test."""

    def is_group_setup(self) -> bool:
        scope = self.current_scope()
        return scope is not None and scope.granularity is ScopeGranularity.PER_GROUP

    def register_teardown(self, callback: Teardown) -> None:
        scope = self.current_scope()
        if scope is None:
            raise RuntimeError("no test scope is running")
        scope.register_teardown(callback)


_adapters: list[ScopeAdapter] = []


def install_scope_adapter(adapter: ScopeAdapter) -> None:
    """
    Make ``adapter`` the source of test scopes until it is uninstalled.

    Adapters stack, so a test session started from inside another one (e.g. by ``pytester``) does not
    disturb the outer session.
    """
    _adapters.append(adapter)


def uninstall_scope_adapter(adapter: ScopeAdapter) -> None:
    _adapters.remove(adapter)
    if not _adapters:
        RESTORE_HOOKS.clear()


def active_adapter() -> ScopeAdapter | None:
    return _adapters[-1] if _adapters else None


def active_scope() -> ScopeFrame | None:
    adapter = active_adapter()
    if adapter is None:
        return None
    return adapter.current_scope()


class Injector(ABC):
    """
    Installs replacement definitions of one slot for one class, and undoes them.

    The state to restore is captured by the first ``install``. Later installs replace the definition
    but keep that snapshot.
    """

    @property
    @abstractmethod
    def storage(self) -> Hashable:
        """What ``install`` writes to. Injectors with the same storage stack on top of each other."""

    @abstractmethod
    def install(self, factory: Factory) -> None: ...

    @abstractmethod
    def restore(self) -> None: ...

    @abstractmethod
    def pass_snapshot(self, successor: "Injector") -> None:
        """
        Give the state captured by this injector to ``successor``, installed later on the same storage.

        Used when this injector goes away while ``successor`` is still in place.
        """


@dataclass(kw_only=True, slots=True, eq=False)
class InstanceInjector(Injector):
    """
    Shadows a per-instance slot with a new descriptor on ``target``.

    The replacement memoizes into the same per-instance storage as the original, so instance setters
    keep working and objects that already read the dependency keep their value.
    """

    target: type
    name: str
    _previous: object = field(default=MISSING, init=False, repr=False)
    _snapshotted: bool = field(default=False, init=False, repr=False)

    @property
    @override_method
    def storage(self) -> Hashable:
        return (self.target, self.name)

    @override_method
    def install(self, factory: Factory) -> None:
        if not self._snapshotted:
            # Either the slot declared on target, a previous override on target, or MISSING when the
            # slot is inherited.
            self._previous = vars(self.target).get(self.name, MISSING)
            self._snapshotted = True
        replacement = InstanceSlot(
            name=self.name,
            declaring_type=self.target,
            factory=factory,
        )
        type.__setattr__(self.target, self.name, replacement)

    @override_method
    def restore(self) -> None:
        if self._previous is MISSING:
            type.__delattr__(self.target, self.name)
        else:
            type.__setattr__(self.target, self.name, self._previous)

    @override_method
    def pass_snapshot(self, successor: Injector) -> None:
        assert isinstance(successor, InstanceInjector)
        successor._previous = self._previous


@dataclass(kw_only=True, slots=True, eq=False)
class SharedInjector(Injector):
    """
    Swaps the storage cell of a shared slot.

    The slot is the one ``target`` resolves through its MRO, so the override is visible through the
    declaring class and every subclass sharing it. Restoring reinstalls the previous cell object,
    including whatever value it had cached, without evaluating its factory again.
    """

    target: type
    slot: SharedSlot
    _previous: SharedCell | None = field(default=None, init=False, repr=False)

    @property
    @override_method
    def storage(self) -> Hashable:
        return self.slot

    @override_method
    def install(self, factory: Factory) -> None:
        previous = self.slot.swap_cell(SharedCell(factory=factory, context=self.target))
        if self._previous is None:
            self._previous = previous

    @override_method
    def restore(self) -> None:
        assert self._previous is not None, "restore() called before install()"
        self.slot.cell = self._previous

    @override_method
    def pass_snapshot(self, successor: Injector) -> None:
        assert isinstance(successor, SharedInjector)
        successor._previous = self._previous


@dataclass(kw_only=True, slots=True, eq=False)
class OverrideRecord:
    """
    An active override and the teardown that reverts it.
    """

    key: ScopeKey
    location: SlotLocation
    scope_id: str
    injector: Injector
    restored: bool = False

    def restore(self) -> None:
        if self.restored:
            return
        self.restored = True
        RESTORE_HOOKS.unwind(self)
        logger.debug(
            "Restored %s.%s after %s",
            self.key.target.__qualname__,
            self.key.name,
            self.scope_id or "<session>",
        )


class RestoreHooks:
    """
    Process-wide registry of the teardowns registered by ``override``, keyed by ``ScopeKey``.

    Records are also stacked per storage (``Injector.storage``) in the order they were installed, so
    that a record restored while later ones are still active only removes its own layer. Records leave
    the registry when they are restored.
    """

    def __init__(self) -> None:
        self._records: dict[ScopeKey, list[OverrideRecord]] = {}
        self._stacks: dict[Hashable, list[OverrideRecord]] = {}

    def find(self, key: ScopeKey, lineage: tuple[str, ...]) -> OverrideRecord | None:
        """The latest record for ``key`` registered by one of the scopes in ``lineage``, if any."""
        for record in reversed(self._records.get(key, ())):
            if record.scope_id in lineage:
                return record
        return None

    def is_top(self, record: OverrideRecord) -> bool:
        """Whether ``record`` is the override currently in effect on its storage."""
        stack = self._stacks.get(record.injector.storage)
        return bool(stack) and stack[-1] is record

    def add(self, record: OverrideRecord) -> None:
        self._records.setdefault(record.key, []).append(record)
        self._stacks.setdefault(record.injector.storage, []).append(record)

    def unwind(self, record: OverrideRecord) -> None:
        """
        Undo ``record`` and forget it.

        If a later record on the same storage is still active, its definition stays installed and it
        inherits the state ``record`` would have restored.
        """
        storage = record.injector.storage
        stack = self._stacks.get(storage, [])
        index = next((i for i, r in enumerate(stack) if r is record), None)
        if index is None or index == len(stack) - 1:
            record.injector.restore()
        else:
            record.injector.pass_snapshot(stack[index + 1].injector)
        if index is not None:
            del stack[index]
            if not stack:
                del self._stacks[storage]
        self.discard(record)

    def discard(self, record: OverrideRecord) -> None:
        records = self._records.get(record.key)
        if records is None:
            return
        remaining = [r for r in records if r is not record]
        if remaining:
            self._records[record.key] = remaining
        else:
            del self._records[record.key]

    def clear(self) -> None:
        self._records.clear()
        self._stacks.clear()

    def __iter__(self) -> Iterator[OverrideRecord]:
        for records in self._records.values():
            yield from records

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())


RESTORE_HOOKS = RestoreHooks()


def _replacement_factory(
    name: str, factory: Factory | MissingSentinel, value: Any
) -> Factory:
    # Identity checks: replacement values may overload ``==``.
    has_factory = factory is not MISSING
    has_value = value is not MISSING
    if has_factory and has_value:
        raise InvalidOverrideArgumentError(name, "both value and factory given")
    if has_value:
        return lambda: value
    if not has_factory:
        raise InvalidOverrideArgumentError(name, "missing value or factory")
    if not callable(factory):
        raise InvalidOverrideArgumentError(name, f"factory {factory!r} is not callable")
    return cast(Factory, factory)


def _make_injector(target: type, name: str, location: SlotLocation) -> Injector:
    match location.kind:
        case SlotKind.PER_INSTANCE:
            return InstanceInjector(target=target, name=name)
        case SlotKind.PER_TYPE:
            return SharedInjector(target=target, slot=cast(SharedSlot, find_slot(target, name)))


def override(
    target: type,
    name: str,
    *,
    factory: Factory | MissingSentinel = MISSING,
    value: Any = MISSING,
) -> OverrideRecord:
    """
    Replace dependency ``name`` of ``target`` until the current test scope ends.

    Exactly one of ``factory`` (evaluated lazily, at most once per instance for per-instance slots and
    once in total for shared ones) or ``value`` must be given.

    Raises:
        InvalidOverrideArgumentError: neither or both of ``factory`` and ``value`` were given
        OutsideTestScopeError: no test or test group is running
        UnknownSlotError: ``name`` is not a dependency of ``target`` or its ancestors
    """
    if not isinstance(name, str):
        raise InvalidOverrideArgumentError(repr(name), "dependency name must be a string")
    replacement = _replacement_factory(name, factory, value)
    if not isinstance(target, type):
        raise TypeError(f"test_inject target must be a class, got {target!r}")

    adapter = active_adapter()
    scope = adapter.current_scope() if adapter is not None else None
    if adapter is None or scope is None:
        raise OutsideTestScopeError(name)
    granularity = (
        ScopeGranularity.PER_GROUP if adapter.is_group_setup() else ScopeGranularity.PER_TEST
    )

    location = locate_slot(target, name)
    key = ScopeKey(target=target, name=name, granularity=granularity)

    if granularity is ScopeGranularity.PER_TEST:
        # A teardown for this class and dependency is already pending for this test; it restores the
        # state from before its first override, so layering another definition on top is enough.
        # Not when a group override has been stacked on top of it since.
        record = RESTORE_HOOKS.find(key, scope.lineage)
        if record is not None and RESTORE_HOOKS.is_top(record):
            record.injector.install(replacement)
            logger.debug("Re-overrode %s.%s in %s", target.__qualname__, name, scope.scope_id)
            return record

    injector = _make_injector(target, name, location)
    injector.install(replacement)
    record = OverrideRecord(
        key=key,
        location=location,
        scope_id=scope.scope_id,
        injector=injector,
    )
    RESTORE_HOOKS.add(record)
    adapter.register_teardown(record.restore)
    logger.debug(
        "Overrode %s.%s (%s) until the end of %s",
        target.__qualname__,
        name,
        location.name.lower(),
        scope.scope_id or "<session>",
    )
    return record
