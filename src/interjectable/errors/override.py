"""Errors raised by test-scoped overrides."""

from __future__ import annotations

from interjectable.errors.base import InterjectableError


class InvalidOverrideArgumentError(InterjectableError, TypeError):
    """An override was requested without exactly one replacement.

    Attributes:
        name: Slot that was being overridden
        reason: What was wrong with the arguments
    """

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(
            f"{reason} for {name!r}, correct usage: "
            f"test_inject({name!r}, lambda: FakeDependency()) "
            f"or test_inject({name!r}, value=FakeDependency())"
        )


class OutsideTestScopeError(InterjectableError, RuntimeError):
    """An override was requested while no test or test group was running.

    Attributes:
        name: Slot that was being overridden
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"test_inject({name!r}) can only be called from a running test or "
            "from a fixture, with the interjectable pytest plugin enabled"
        )
