"""
Badblocks Custom Exceptions

This module defines exception classes for the destructive write/verify
pass. All exceptions inherit from BadblocksError.
"""

from ..exceptions import BurnInError


class BadblocksError(BurnInError):
    """
    Base exception class for destructive pass errors.

    Example:
        >>> raise BadblocksError("Refusing destructive pass: session is not in run mode")
    """
    pass


class BlockSizeError(BadblocksError):
    """
    No block size up to 1 MiB keeps the block count addressable.

    Example:
        >>> raise BlockSizeError("Refusing: required badblocks block size exceeded 1MiB")
    """
    pass


class DestructiveScanFailedError(BadblocksError):
    """
    badblocks exited non-zero.

    The ledger file is kept for diagnosis; the pass is never retried.

    Example:
        >>> raise DestructiveScanFailedError("badblocks reported errors (see log + .bb file)")
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
