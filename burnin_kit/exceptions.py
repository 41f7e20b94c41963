"""
Burn-in Custom Exceptions

This module defines the root exception classes shared by every burn-in
component. Component packages (device, smart, badblocks, status) derive
their own exceptions from BurnInError.
"""


class BurnInError(Exception):
    """
    Base exception class for all burn-in related errors.

    Catch this to handle any expected, reportable burn-in failure.

    Example:
        >>> try:
        ...     controller.run()
        ... except BurnInError as e:
        ...     print(f"Burn-in error occurred: {e}")
    """
    pass


class BurnInConfigError(BurnInError):
    """
    Configuration error exception.

    Raised when:
    - Unknown configuration parameters are provided
    - Parameter values have the wrong type or are out of range
    - A configuration file is missing or malformed

    Example:
        >>> raise BurnInConfigError("bb_patterns must be one of ['default', 'single']")
    """
    pass


class MissingToolError(BurnInError):
    """
    Required external command is not installed or not on PATH.

    Example:
        >>> raise MissingToolError("Missing required command: smartctl")
    """
    pass


class EnvironmentCheckError(BurnInError):
    """
    Host environment is not fit for a burn-in session.

    Raised when:
    - A device mode is started without root privileges
    - The target path is not a block device under /dev

    Example:
        >>> raise EnvironmentCheckError("Must run as root (use sudo).")
    """
    pass


class SessionLaunchError(BurnInError):
    """
    Parallel sessions could not be launched.

    Raised when the terminal multiplexer refuses to create a session or
    window for one of the devices.

    Example:
        >>> raise SessionLaunchError("tmux new-window failed for /dev/sdc: no server running")
    """
    pass
