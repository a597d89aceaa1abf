"""
interjectable: lazy, memoized dependency injection for classes.

## Declaring dependencies

A dependency is a class attribute whose value is produced by a factory the first time it is read, then
cached. Per-instance dependencies are cached once per object; static dependencies once per declaring
class, shared by all of its instances and subclasses.

```python
from interjectable import Interjectable, dependency, shared_dependency

class Checkout(Interjectable):
    @dependency
    def client(self) -> PaymentClient:
        return PaymentClient(self.merchant_id)

    @shared_dependency
    def pool(cls) -> ConnectionPool:
        return ConnectionPool()

# or, after the class exists:
Checkout.inject("clock", lambda: SystemClock())
Checkout.inject_static("config", lambda: load_config())

checkout = Checkout()
checkout.client                  # evaluated once for this object
checkout.client = FakeClient()   # setters never evaluate the factory
Checkout.pool = FakePool()       # visible through every Checkout and subclass
Checkout.injected_methods()      # ("injected_methods", "client", "pool", "clock", "config")
```

Factory parameters are resolved by name against the instance (or, for static dependencies, the
declaring class); ``self`` and ``cls`` receive the object itself.

## Overriding in tests

With the pytest plugin (enabled automatically once the package is installed):

```python
def test_checkout():
    Checkout.test_inject("client", lambda: FakeClient())
    assert isinstance(Checkout().client, FakeClient)
# the original definition is back after the test
```
"""

from typing import Any, Callable

from interjectable._registry import (
    MISSING,
    MissingSentinel,
    declared_slots,
    find_slot,
    injected_names,
    lookup_static,
    register_slot,
)
from interjectable._slots import (
    INJECTED_METHODS,
    Factory,
    InstanceSlot,
    SharedSlot,
    Slot,
    define_instance_slot,
    define_shared_slot,
)
from interjectable.config import ScopeGranularity, SlotKind, SlotLocation
from interjectable.errors import (
    DuplicateSlotError,
    InterjectableError,
    InvalidOverrideArgumentError,
    OutsideTestScopeError,
    UnknownSlotError,
)
from interjectable.testing import OverrideRecord, override

__all__ = [
    "INJECTED_METHODS",
    "DependencyDeclaration",
    "DuplicateSlotError",
    "InstanceSlot",
    "Interjectable",
    "InterjectableError",
    "InterjectableType",
    "InvalidOverrideArgumentError",
    "OutsideTestScopeError",
    "ScopeGranularity",
    "SharedSlot",
    "Slot",
    "SlotKind",
    "SlotLocation",
    "UnknownSlotError",
    "classonlymethod",
    "declare_dependency",
    "declare_shared_dependency",
    "declared_slots",
    "dependency",
    "find_slot",
    "list_injected_names",
    "override_for_current_test_scope",
    "shared_dependency",
]


def declare_dependency(cls: type, name: str, factory: Factory) -> InstanceSlot:
    """Declare a per-instance dependency on ``cls``."""
    slot = define_instance_slot(cls, name, factory)
    register_slot(cls, name, SlotKind.PER_INSTANCE)
    return slot


def declare_shared_dependency(cls: type, name: str, factory: Factory) -> SharedSlot:
    """
    Declare a dependency shared by ``cls``, its instances and its subclasses.

    The factory is evaluated against ``cls``, never against an instance, so it cannot use attributes
    that only exist on instances: those fail with ``AttributeError`` when the dependency is first read.
    """
    slot = define_shared_slot(cls, name, factory)
    register_slot(cls, name, SlotKind.PER_TYPE)
    return slot


def list_injected_names(
    instance_or_type: object, include_ancestors: bool = True
) -> tuple[str, ...]:
    cls = instance_or_type if isinstance(instance_or_type, type) else type(instance_or_type)
    return injected_names(cls, include_ancestors=include_ancestors)


def override_for_current_test_scope(
    target: type,
    name: str,
    factory: Factory | MissingSentinel = MISSING,
    /,
    *,
    value: Any = MISSING,
) -> OverrideRecord:
    """See :func:`interjectable.testing.override`."""
    return override(target, name, factory=factory, value=value)


class classonlymethod(classmethod):
    """A ``classmethod`` that is not reachable through instances."""

    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is not None:
            raise AttributeError(
                f"{type(instance).__name__!r} object has no attribute {self.__func__.__name__!r}"
            )
        return super().__get__(instance, owner)


class InterjectableType(type):
    """
    Metaclass routing ``Klass.name = value`` into the storage of a shared dependency.

    Without it, assigning through the class would replace the descriptor instead of setting the value.
    Per-instance dependencies have no class-level value, so assigning one through the class is an
    ``AttributeError``.
    """

    def __setattr__(cls, name: str, value: object) -> None:
        match lookup_static(cls, name):
            case SharedSlot() as slot:
                slot.__set__(None, value)
            case InstanceSlot():
                raise AttributeError(
                    f"{name!r} is a per-instance dependency of {cls.__qualname__}, "
                    f"set it on an instance or use test_inject"
                )
            case _:
                type.__setattr__(cls, name, value)


class Interjectable(metaclass=InterjectableType):
    """
    Base class providing ``inject``, ``inject_static``, ``injected_methods`` and ``test_inject``.
    """

    __slots__ = ()

    @classonlymethod
    def inject(cls, name: str, factory: Factory) -> None:
        """
        Define a dependency memoized per instance.

        Injecting the same name twice on the same class is an error. Use ``test_inject`` to override
        it in tests.
        """
        declare_dependency(cls, name, factory)

    @classonlymethod
    def inject_static(cls, name: str, factory: Factory) -> None:
        """
        Define a dependency memoized once for this class, shared across all of its instances and the
        instances of its subclasses.
        """
        declare_shared_dependency(cls, name, factory)

    @classmethod
    def injected_methods(cls, include_ancestors: bool = True) -> tuple[str, ...]:
        return injected_names(cls, include_ancestors=include_ancestors)

    @classonlymethod
    def test_inject(
        cls,
        name: str,
        factory: Factory | MissingSentinel = MISSING,
        /,
        *,
        value: Any = MISSING,
    ) -> OverrideRecord:
        """
        Override dependency ``name`` of this class until the current test (or test group) ends.

        Requires the interjectable pytest plugin.
        """
        return override(cls, name, factory=factory, value=value)


class DependencyDeclaration:
    """
    Placeholder left in a class body by :func:`dependency` and :func:`shared_dependency`.

    It replaces itself with the real slot when the class is created.
    """

    __slots__ = ("factory", "kind")

    def __init__(self, factory: Factory, kind: SlotKind) -> None:
        self.factory = factory
        self.kind = kind

    def __set_name__(self, owner: type, name: str) -> None:
        type.__delattr__(owner, name)
        match self.kind:
            case SlotKind.PER_INSTANCE:
                declare_dependency(owner, name, self.factory)
            case SlotKind.PER_TYPE:
                declare_shared_dependency(owner, name, self.factory)


def dependency(factory: Callable[..., Any]) -> Any:
    """Decorator declaring a per-instance dependency in a class body."""
    return DependencyDeclaration(factory, SlotKind.PER_INSTANCE)


def shared_dependency(factory: Callable[..., Any]) -> Any:
    """Decorator declaring a shared dependency in a class body."""
    return DependencyDeclaration(factory, SlotKind.PER_TYPE)
