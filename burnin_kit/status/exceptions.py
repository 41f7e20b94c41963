"""
Status Custom Exceptions

This module defines exception classes for status persistence and the
checkpoint publisher. All exceptions inherit from StatusError.
"""

from ..exceptions import BurnInError


class StatusError(BurnInError):
    """
    Base exception class for status persistence errors.

    Raised when the local, authoritative status record cannot be written.

    Example:
        >>> raise StatusError("Cannot write ./run-status/WDC_X_123/status.json: disk full")
    """
    pass


class CheckpointError(StatusError):
    """
    One checkpoint publishing step failed (add, commit, push).

    Only used inside the publisher's retry loop; a missed checkpoint never
    escapes to the burn-in session.

    Example:
        >>> raise CheckpointError("git push failed: rejected (fetch first)")
    """
    pass
