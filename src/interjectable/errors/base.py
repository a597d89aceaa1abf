"""Base exception for interjectable."""


class InterjectableError(Exception):
    """Root exception for all interjectable errors.

    Every error raised on purpose by this package inherits from it, and also
    from the builtin exception a caller would naturally expect, so
    ``except ValueError`` keeps working.
    """
