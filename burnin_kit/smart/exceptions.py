"""
SMART Custom Exceptions

This module defines exception classes for SMART self-test handling.
All exceptions inherit from SmartError.
"""

from ..exceptions import BurnInError


class SmartError(BurnInError):
    """
    Base exception class for SMART self-test errors.

    Catch this to handle any SMART-related failure.
    """
    pass


class SelfTestFailedError(SmartError):
    """
    A self-test did not complete without error.

    Raised when:
    - The test could not be started (another test is running)
    - The drive reported the test as aborted, interrupted or failed
    - The device disappeared while the test was running
    - The 72 hour polling cap was reached

    Example:
        >>> raise SelfTestFailedError("SMART extended/long test aborted/failed: # 1 Extended offline Aborted by host")
    """

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
