from dataclasses import dataclass
from enum import Enum, auto


class SlotKind(Enum):
    PER_INSTANCE = auto()
    """
    The value is memoized once per object, in the instance ``__dict__``.
    """

    PER_TYPE = auto()
    """
    The value is memoized once per declaring class and shared by all of its instances and subclasses.
    """


class SlotLocation(Enum):
    """Where a slot name resolves, relative to the class being overridden."""

    DECLARED_HERE_PER_TYPE = auto()
    INHERITED_PER_TYPE = auto()
    DECLARED_HERE_PER_INSTANCE = auto()
    INHERITED_PER_INSTANCE = auto()

    @property
    def kind(self) -> SlotKind:
        match self:
            case SlotLocation.DECLARED_HERE_PER_TYPE | SlotLocation.INHERITED_PER_TYPE:
                return SlotKind.PER_TYPE
            case _:
                return SlotKind.PER_INSTANCE

    @property
    def is_inherited(self) -> bool:
        return self in (
            SlotLocation.INHERITED_PER_TYPE,
            SlotLocation.INHERITED_PER_INSTANCE,
        )


class ScopeGranularity(Enum):
    PER_TEST = auto()
    """
    The override is reverted when the current test finishes.
    """

    PER_GROUP = auto()
    """
    The override was made while setting up a group (a class, module, package or session scoped fixture)
    and is reverted when that group finishes.
    """


@dataclass(kw_only=True, frozen=True, slots=True)
class ScopeKey:
    target: type
    """
    The class the override was requested on, which is not necessarily the class that declared the slot.
    """

    name: str

    granularity: ScopeGranularity
