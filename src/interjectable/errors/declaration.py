"""Errors raised while declaring or looking up slots."""

from __future__ import annotations

from interjectable.errors.base import InterjectableError


class DuplicateSlotError(InterjectableError, ValueError):
    """A slot name collides with a member the class already defines.

    Attributes:
        owner: Class the slot was declared on
        name: Offending name
    """

    def __init__(self, owner: type, name: str) -> None:
        self.owner = owner
        self.name = name
        super().__init__(f"{name} is already defined on {owner.__qualname__}")


class UnknownSlotError(InterjectableError, ValueError):
    """A name does not resolve to an injected slot.

    Attributes:
        owner: Class that was searched, including its ancestors
        name: Name that was not found
    """

    def __init__(self, owner: type, name: str) -> None:
        self.owner = owner
        self.name = name
        super().__init__(
            f"tried to override a non-existent dependency: {name!r} on {owner.__qualname__}"
        )
