"""interjectable exceptions."""

from interjectable.errors.base import InterjectableError
from interjectable.errors.declaration import DuplicateSlotError, UnknownSlotError
from interjectable.errors.override import (
    InvalidOverrideArgumentError,
    OutsideTestScopeError,
)

__all__ = [
    "InterjectableError",
    "DuplicateSlotError",
    "UnknownSlotError",
    "InvalidOverrideArgumentError",
    "OutsideTestScopeError",
]
