"""
Device Resolver

Keeps a session pointed at the right physical drive. USB enclosures often
come back under a different node after a reconnect (``/dev/sdb`` becomes
``/dev/sdc``), so the drive is tracked by its serial number and the node is
re-confirmed before every poll and before the destructive pass.
"""

from typing import Optional, Sequence

from ..clock import SYSTEM_CLOCK, Clock
from ..config import BurnInSettings
from ..exceptions import EnvironmentCheckError
from ..logger import get_module_logger
from .exceptions import DeviceMountedError, DeviceNotPresentError, DeviceNotWholeDiskError
from .inventory import DeviceInventory
from .models import DeviceIdentity, DeviceSession, sanitize_token

logger = get_module_logger(__name__)


class DeviceResolver:
    """
    Map a drive identity to its current device node.

    Example:
        >>> resolver = DeviceResolver(inventory, settings)
        >>> resolver.rebind(session)   # raises DeviceNotPresentError after ~60s
        '/dev/sdc'
    """

    def __init__(
        self,
        inventory: DeviceInventory,
        settings: BurnInSettings,
        clock: Clock = SYSTEM_CLOCK,
    ):
        self.inventory = inventory
        self.settings = settings
        self.clock = clock

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    def confirm(
        self,
        device_path: str,
        identity: Optional[DeviceIdentity] = None,
        node_serial: Optional[str] = None,
        smart_args: Sequence[str] = (),
    ) -> str:
        """
        Return the node that currently holds the drive.

        Without an identity, or when the identity's serial is unknown, the
        given path only has to be a block device. Otherwise the path must
        hold the identity's drive; if it does not, every enumerated block
        device is searched for it.

        A node holds the drive when its lsblk serial is the identity serial,
        or when its lsblk serial is *node_serial* (an empty *node_serial*
        accepts any) and ``smartctl -i`` reports the identity serial.
        *node_serial* defaults to the identity serial.

        Retries ``resolve_attempts`` times, ``resolve_interval`` seconds
        apart.

        Raises:
            DeviceNotPresentError: If the drive cannot be found in time.
        """
        attempts = self.settings.resolve_attempts
        for attempt in range(1, attempts + 1):
            found = self._locate(device_path, identity, node_serial, smart_args)
            if found:
                if found != device_path:
                    logger.warning(f"Device re-enumerated: {device_path} -> {found}")
                return found
            if attempt < attempts:
                logger.debug(
                    f"Device {device_path} not confirmed (attempt {attempt}/{attempts}), "
                    f"retrying in {self.settings.resolve_interval}s"
                )
                self.clock.sleep(self.settings.resolve_interval)

        label = identity.id if identity else device_path
        raise DeviceNotPresentError(
            f"Device not present: {label} (last path {device_path}, {attempts} attempts)"
        )

    def rebind(self, session: DeviceSession) -> str:
        """Confirm the session's drive and update ``session.device_path`` in place."""
        session.device_path = self.confirm(
            session.device_path, session.identity, session.node_serial, session.smart_args
        )
        return session.device_path

    def _locate(
        self,
        device_path: str,
        identity: Optional[DeviceIdentity],
        node_serial: Optional[str],
        smart_args: Sequence[str],
    ) -> Optional[str]:
        if identity is None or not identity.serial_known:
            return device_path if self.inventory.is_block_device(device_path) else None
        if node_serial is None:
            node_serial = identity.serial

        if self.inventory.is_block_device(device_path):
            if self._holds(device_path, identity, node_serial, smart_args):
                return device_path

        for dev in self.inventory.list_block_devices():
            candidate = dev.get('path')
            if not candidate or not self.inventory.is_block_device(candidate):
                continue
            if self._holds(candidate, identity, node_serial, smart_args, dev.get('serial') or ''):
                return candidate
        return None

    def _holds(
        self,
        path: str,
        identity: DeviceIdentity,
        node_serial: str,
        smart_args: Sequence[str],
        lsblk_serial: Optional[str] = None,
    ) -> bool:
        if lsblk_serial is None:
            lsblk_serial = self.inventory.serial(path)
        lsblk_serial = sanitize_token(lsblk_serial)
        if lsblk_serial == identity.serial:
            return True
        if node_serial and lsblk_serial != node_serial:
            return False
        # lsblk sees the bridge, not the drive
        return self.inventory.smart_serial(path, smart_args) == identity.serial

    # ------------------------------------------------------------------
    # Safety checks
    # ------------------------------------------------------------------

    def check_block_device(self, device_path: str) -> None:
        """
        Raises:
            EnvironmentCheckError: If the path is outside /dev or not a block device.
        """
        if not device_path.startswith('/dev/'):
            raise EnvironmentCheckError(f"Device must be under /dev: {device_path}")
        if not self.inventory.is_block_device(device_path):
            raise EnvironmentCheckError(f"Not a block device: {device_path}")

    def check_whole_disk(self, device_path: str) -> None:
        """
        Refuse anything the kernel does not report as ``disk``.

        The path string is never inspected: by-id symlinks often end in
        digits that look like partition numbers.

        Raises:
            DeviceNotWholeDiskError
        """
        dev_type = self.inventory.device_type(device_path)
        if dev_type != 'disk':
            raise DeviceNotWholeDiskError(
                f"Refusing to run on a non-whole-disk device: {device_path} (type={dev_type or 'unknown'})"
            )

    def check_not_mounted(self, device_path: str) -> None:
        """
        Raises:
            DeviceMountedError: If the disk or any child is mounted.
        """
        mounted = self.inventory.mounted_children(device_path)
        if mounted:
            details = ', '.join(f"{node} on {mountpoint}" for node, mountpoint in mounted)
            raise DeviceMountedError(f"Refusing: {device_path} has mounted filesystems: {details}")
