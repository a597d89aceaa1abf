"""
Bookkeeping of which names were injected on which class.

Only the names a class declares itself are stored. Everything inherited is recomputed from the MRO on
demand, so a subclass sees its parents' dependencies even if they were declared after it was created.
"""

from collections.abc import Iterator, Mapping
from enum import Enum, auto
from types import MappingProxyType
from typing import Final
from weakref import WeakKeyDictionary

from interjectable._slots import INJECTED_METHODS, Slot
from interjectable.config import SlotKind, SlotLocation
from interjectable.errors import UnknownSlotError

_declared_names: WeakKeyDictionary[type, dict[str, SlotKind]] = WeakKeyDictionary()


class MissingSentinel(Enum):
    MISSING = auto()


MISSING: Final = MissingSentinel.MISSING


def register_slot(cls: type, name: str, kind: SlotKind) -> None:
    _declared_names.setdefault(cls, {}).setdefault(name, kind)


def declared_slots(cls: type) -> Mapping[str, SlotKind]:
    """Names declared directly on ``cls``, in declaration order."""
    return MappingProxyType(dict(_declared_names.get(cls, {})))


def injected_names(cls: type, *, include_ancestors: bool = True) -> tuple[str, ...]:
    """
    The injected names visible on ``cls``.

    The registry query itself always comes first, then the names ``cls`` declared, then (unless
    ``include_ancestors`` is false) the names declared by every other class of the MRO, in MRO order.
    Duplicates keep their first position.
    """
    classes = cls.__mro__ if include_ancestors else (cls,)

    def generate_names() -> Iterator[str]:
        yield INJECTED_METHODS
        for klass in classes:
            yield from _declared_names.get(klass, ())

    return tuple(dict.fromkeys(generate_names()))


def lookup_static(cls: type, name: str) -> object:
    """
    Find ``name`` in the namespaces of the MRO without triggering descriptors.

    Returns ``MISSING`` when no class of the MRO defines it.
    """
    for klass in cls.__mro__:
        namespace = vars(klass)
        if name in namespace:
            return namespace[name]
    return MISSING


def find_slot(cls: type, name: str) -> Slot:
    match lookup_static(cls, name):
        case Slot() as slot:
            return slot
        case _:
            raise UnknownSlotError(cls, name)


def locate_slot(cls: type, name: str) -> SlotLocation:
    """
    Classify ``name`` by kind and by whether ``cls`` defines it itself or inherits it.

    A previous test override installed on ``cls`` counts as defined on ``cls``.
    """
    slot = find_slot(cls, name)
    declared_here = name in vars(cls)
    match slot.kind, declared_here:
        case SlotKind.PER_TYPE, True:
            return SlotLocation.DECLARED_HERE_PER_TYPE
        case SlotKind.PER_TYPE, False:
            return SlotLocation.INHERITED_PER_TYPE
        case SlotKind.PER_INSTANCE, True:
            return SlotLocation.DECLARED_HERE_PER_INSTANCE
        case _:
            return SlotLocation.INHERITED_PER_INSTANCE
