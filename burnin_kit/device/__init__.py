"""
Device Package

Drive identity, one-shot hardware inventory and the resolver that tracks
a drive across device-node renumbering.

Usage:
    from burnin_kit.device import DeviceInventory, DeviceResolver

    inventory = DeviceInventory(ToolRunner())
    identity = inventory.query_identity('/dev/sdb')
    resolver = DeviceResolver(inventory, settings)
    path = resolver.confirm('/dev/sdb', identity)
"""

from .exceptions import (
    DeviceError,
    DeviceMountedError,
    DeviceNotPresentError,
    DeviceNotWholeDiskError,
)
from .inventory import DeviceInventory
from .models import (
    UNKNOWN_MODEL,
    UNKNOWN_SERIAL,
    DeviceIdentity,
    DeviceSession,
    PatternMode,
    RunMode,
    device_tag,
    sanitize_token,
)
from .resolver import DeviceResolver

__all__ = [
    # Exceptions
    'DeviceError',
    'DeviceMountedError',
    'DeviceNotPresentError',
    'DeviceNotWholeDiskError',
    # Models
    'UNKNOWN_MODEL',
    'UNKNOWN_SERIAL',
    'DeviceIdentity',
    'DeviceSession',
    'PatternMode',
    'RunMode',
    'device_tag',
    'sanitize_token',
    # Components
    'DeviceInventory',
    'DeviceResolver',
]
