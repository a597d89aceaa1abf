"""
Descriptors backing injected dependencies.

An ``InstanceSlot`` memoizes its value in the instance ``__dict__``, so every object evaluates the
factory at most once. A ``SharedSlot`` owns a single ``SharedCell`` on the class that declared it;
subclasses reach that cell by looking the descriptor up through the MRO, never by copying it.

Factories are resolved with pytest-fixture-like semantics: each required parameter is looked up by
name on the evaluation context, except ``self``/``cls`` which receive the context itself::

    Klass.inject("first", lambda second: second)  # transitive lazy dependency
    Klass.inject("second", lambda: "value")
    Klass.inject("greeting", lambda self: f"hello {self.name}")
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from inspect import Parameter, signature
from typing import Any, Callable, ClassVar, Final, TypeAlias, override

from interjectable.config import SlotKind
from interjectable.errors import DuplicateSlotError

logger = logging.getLogger(__name__)

INJECTED_METHODS: Final = "injected_methods"
"""
Name of the registry query, which every class reports as one of its injected names.
"""

_CONTEXT_PARAMETERS: Final = frozenset(("self", "cls"))

Factory: TypeAlias = Callable[..., Any]


class UnsetSentinel(Enum):
    UNSET = auto()
    """
    The storage cell has neither been read nor written yet.
    """


UNSET: Final = UnsetSentinel.UNSET


def evaluate_factory(factory: Factory, context: object) -> Any:
    """
    Call ``factory``, resolving its required parameters against ``context``.

    Parameters with defaults keep them. Callables without an inspectable signature are called with no
    arguments. Missing attributes surface as the ``AttributeError`` raised by ``getattr``.
    """
    try:
        parameters = signature(factory).parameters.values()
    except (TypeError, ValueError):
        return factory()

    def resolve_param(param_name: str) -> Any:
        if param_name in _CONTEXT_PARAMETERS:
            return context
        return getattr(context, param_name)

    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    for parameter in parameters:
        if parameter.default is not Parameter.empty:
            continue
        match parameter.kind:
            case Parameter.VAR_POSITIONAL | Parameter.VAR_KEYWORD:
                continue
            case Parameter.POSITIONAL_ONLY:
                args.append(resolve_param(parameter.name))
            case _:
                kwargs[parameter.name] = resolve_param(parameter.name)
    return factory(*args, **kwargs)


@dataclass(kw_only=True, slots=True, eq=False)
class Slot(ABC):
    """
    A data descriptor for one injectable dependency.

    ``declaring_type`` is the class the descriptor is stored on. For overrides installed by
    :mod:`interjectable.testing` it is the overridden class.
    """

    kind: ClassVar[SlotKind]

    name: str
    declaring_type: type
    factory: Factory

    @abstractmethod
    def __get__(self, instance: object, owner: type | None = None) -> Any: ...

    @abstractmethod
    def __set__(self, instance: object, value: Any) -> None: ...


@dataclass(kw_only=True, slots=True, eq=False)
class InstanceSlot(Slot):
    kind: ClassVar[SlotKind] = SlotKind.PER_INSTANCE

    @override
    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is None:
            return self
        storage = instance.__dict__
        try:
            return storage[self.name]
        except KeyError:
            pass
        logger.debug(
            "Evaluating %s.%s for %r", self.declaring_type.__qualname__, self.name, instance
        )
        value = evaluate_factory(self.factory, instance)
        storage[self.name] = value
        return value

    @override
    def __set__(self, instance: object, value: Any) -> None:
        instance.__dict__[self.name] = value


@dataclass(kw_only=True, slots=True, eq=False)
class SharedCell:
    """
    Storage shared by a class, all of its instances and all of its subclasses.
    """

    factory: Factory
    context: type
    """
    What the factory is evaluated against: the declaring class, or the overridden class for test overrides.
    """

    value: Any = UNSET

    def get(self) -> Any:
        if self.value is UNSET:
            logger.debug(
                "Evaluating shared dependency for %s", self.context.__qualname__
            )
            self.value = evaluate_factory(self.factory, self.context)
        return self.value


@dataclass(kw_only=True, slots=True, eq=False)
class SharedSlot(Slot):
    kind: ClassVar[SlotKind] = SlotKind.PER_TYPE

    cell: SharedCell = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.cell = SharedCell(factory=self.factory, context=self.declaring_type)

    @override
    def __get__(self, instance: object, owner: type | None = None) -> Any:
        return self.cell.get()

    @override
    def __set__(self, instance: object, value: Any) -> None:
        self.cell.value = value

    def swap_cell(self, cell: SharedCell) -> SharedCell:
        """Install ``cell`` and return the one it replaces."""
        previous = self.cell
        self.cell = cell
        return previous


def _check_name(cls: type, name: str) -> None:
    if not isinstance(name, str) or not name.isidentifier():
        raise ValueError(f"{name!r} is not a valid attribute name")
    if name == INJECTED_METHODS:
        raise DuplicateSlotError(cls, name)


def define_instance_slot(cls: type, name: str, factory: Factory) -> InstanceSlot:
    """
    Install a lazily memoized per-instance dependency on ``cls``.

    Similar to writing::

        @property
        def dependency(self):
            if "dependency" not in self.__dict__:
                self.__dict__["dependency"] = factory(self)
            return self.__dict__["dependency"]

    plus a setter. Names already defined on ``cls`` itself are rejected; inherited ones are shadowed.
    """
    _check_name(cls, name)
    if name in vars(cls):
        raise DuplicateSlotError(cls, name)
    slot = InstanceSlot(name=name, declaring_type=cls, factory=factory)
    type.__setattr__(cls, name, slot)
    logger.debug("Injected %s.%s", cls.__qualname__, name)
    return slot


def define_shared_slot(cls: type, name: str, factory: Factory) -> SharedSlot:
    """
    Install a lazily memoized dependency shared by ``cls``, its instances and its subclasses.

    Names already defined on ``cls`` or on its metaclass are rejected.
    """
    _check_name(cls, name)
    if name in vars(cls) or name in vars(type(cls)):
        raise DuplicateSlotError(cls, name)
    slot = SharedSlot(name=name, declaring_type=cls, factory=factory)
    type.__setattr__(cls, name, slot)
    logger.debug("Injected shared %s.%s", cls.__qualname__, name)
    return slot
