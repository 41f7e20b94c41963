"""
Device Custom Exceptions

This module defines exception classes for device discovery and
validation. All exceptions inherit from DeviceError.
"""

from ..exceptions import BurnInError


class DeviceError(BurnInError):
    """
    Base exception class for all device-related errors.

    Catch this to handle any device-related error.
    """
    pass


class DeviceNotPresentError(DeviceError):
    """
    The drive could not be confirmed within the resolver's retry budget.

    Raised when:
    - The device node disappeared and no block device reports the serial
    - The node now belongs to a different drive and the original serial
      is nowhere to be found

    Example:
        >>> raise DeviceNotPresentError("WDC_WD80_ABC123 not present after 12 attempts")
    """
    pass


class DeviceNotWholeDiskError(DeviceError):
    """
    Target is a partition (or any other non-disk block device).

    Example:
        >>> raise DeviceNotWholeDiskError("Refusing to run on a partition: /dev/sdb1 (type=part)")
    """
    pass


class DeviceMountedError(DeviceError):
    """
    Target or one of its children has a mounted filesystem.

    Example:
        >>> raise DeviceMountedError("Refusing: /dev/sdb has mounted partitions: /dev/sdb1")
    """
    pass
