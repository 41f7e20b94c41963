"""
Device Inventory

One-shot hardware queries against lsblk, blockdev and smartctl: identity,
rotational flag, transport, kernel device type, capacity, children and
mount state. Nothing here writes to a device.
"""

import json
import os
import re
import stat
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psutil

from ..logger import get_module_logger
from ..process_manager import ToolRunner
from .models import DeviceIdentity, sanitize_token

logger = get_module_logger(__name__)

_MODEL_FIELD = re.compile(
    r'^(?:Device Model|Model Family|Model Number|Product)\s*:\s*(.+?)\s*$',
    re.MULTILINE,
)
_SERIAL_FIELD = re.compile(r'^Serial Number\s*:\s*(.+?)\s*$', re.MULTILINE | re.IGNORECASE)


class DeviceInventory:
    """
    Read-only hardware inventory for block devices.

    Example:
        >>> inventory = DeviceInventory(ToolRunner())
        >>> inventory.device_type('/dev/sdb')
        'disk'
        >>> inventory.is_rotational('/dev/sdb')
        True
    """

    def __init__(self, runner: ToolRunner):
        self.runner = runner

    # ------------------------------------------------------------------
    # Node checks
    # ------------------------------------------------------------------

    @staticmethod
    def is_block_device(path: str) -> bool:
        try:
            return stat.S_ISBLK(os.stat(path).st_mode)
        except OSError:
            return False

    # ------------------------------------------------------------------
    # lsblk
    # ------------------------------------------------------------------

    def lsblk_field(self, device_path: str, column: str) -> str:
        """
        First value of one lsblk column for the device itself (``-d``).

        Returns an empty string when lsblk fails or reports nothing.
        """
        result = self.runner.run(['lsblk', '-dn', '-o', column, device_path])
        if not result.ok:
            return ''
        lines = [line.strip() for line in result.stdout.splitlines()]
        return lines[0] if lines else ''

    def device_type(self, device_path: str) -> str:
        """Kernel device type (``disk``, ``part``, ``rom``, ``lvm`` ...)."""
        return self.lsblk_field(device_path, 'TYPE').lower()

    def is_rotational(self, device_path: str) -> bool:
        return self.lsblk_field(device_path, 'ROTA') == '1'

    def transport(self, device_path: str) -> str:
        return self.lsblk_field(device_path, 'TRAN').lower()

    def is_usb(self, device_path: str) -> bool:
        return self.transport(device_path) == 'usb'

    def serial(self, device_path: str) -> str:
        return self.lsblk_field(device_path, 'SERIAL')

    def list_block_devices(self) -> List[Dict[str, Any]]:
        """
        Every whole block device the kernel currently enumerates.

        Returns:
            List of ``{'name', 'path', 'serial', 'type'}`` dicts; empty
            when lsblk fails.
        """
        result = self.runner.run(['lsblk', '-J', '-d', '-o', 'NAME,PATH,SERIAL,TYPE'])
        if not result.ok or not result.stdout.strip():
            return []
        try:
            data = json.loads(result.stdout)
        except ValueError:
            logger.warning("lsblk returned unparsable JSON while enumerating devices")
            return []
        devices = data.get('blockdevices') or []
        for dev in devices:
            if not dev.get('path') and dev.get('name'):
                dev['path'] = f"/dev/{dev['name']}"
        return devices

    def child_paths(self, device_path: str) -> List[str]:
        """The device and every node stacked on it (partitions, LVM, crypt)."""
        result = self.runner.run(['lsblk', '-nrp', '-o', 'NAME', device_path])
        if not result.ok:
            return [device_path]
        paths = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return paths or [device_path]

    def mounted_children(self, device_path: str) -> List[Tuple[str, str]]:
        """
        Mounted filesystems living on the device or any of its children.

        Returns:
            Sorted ``(device_node, mountpoint)`` pairs.
        """
        nodes = {os.path.realpath(p) for p in self.child_paths(device_path)}
        mounted = []
        for part in psutil.disk_partitions(all=True):
            if not part.device.startswith('/'):
                continue
            if os.path.realpath(part.device) in nodes:
                mounted.append((part.device, part.mountpoint))
        return sorted(set(mounted))

    # ------------------------------------------------------------------
    # blockdev / smartctl
    # ------------------------------------------------------------------

    def size_bytes(self, device_path: str) -> int:
        """Capacity in bytes, 0 when unknown."""
        result = self.runner.run(['blockdev', '--getsize64', device_path])
        if not result.ok:
            return 0
        try:
            return int(result.stdout.strip() or 0)
        except ValueError:
            return 0

    def detect_smartctl_args(self, device_path: str) -> Tuple[str, ...]:
        """
        Pick the ``-d TYPE`` arguments smartctl itself suggests for the device.

        ``smartctl --scan-open`` prints lines such as
        ``/dev/sda -d sat # /dev/sda [SAT], ATA device``; everything between
        the device name and ``#`` is reused for later invocations.
        """
        result = self.runner.run(['smartctl', '--scan-open'])
        for line in result.stdout.splitlines():
            fields = line.split()
            if not fields or fields[0] != device_path:
                continue
            args = []
            for token in fields[1:]:
                if token == '#':
                    break
                args.append(token)
            return tuple(args)
        return ()

    def smart_info(self, device_path: str, smart_args: Sequence[str] = ()) -> str:
        result = self.runner.run(['smartctl', *smart_args, '-i', device_path])
        return result.stdout

    def smart_serial(self, device_path: str, smart_args: Sequence[str] = ()) -> str:
        """Sanitized ``Serial Number`` from ``smartctl -i``, empty when not reported."""
        match = _SERIAL_FIELD.search(self.smart_info(device_path, smart_args))
        return sanitize_token(match.group(1)) if match else ''

    def query_identity(
        self,
        device_path: str,
        smart_args: Sequence[str] = (),
        use_smartctl: bool = True,
    ) -> DeviceIdentity:
        """
        Derive the drive's identity.

        smartctl's info fields are preferred; lsblk MODEL/SERIAL fill in
        whatever smartctl could not report (common behind USB bridges).

        Args:
            device_path: Whole-disk device node.
            smart_args: Transport arguments from detect_smartctl_args().
            use_smartctl: False in plan mode, where only lsblk is consulted.
        """
        model: Optional[str] = None
        serial: Optional[str] = None

        if use_smartctl:
            info = self.smart_info(device_path, smart_args)
            match = _MODEL_FIELD.search(info)
            if match:
                model = match.group(1)
            match = _SERIAL_FIELD.search(info)
            if match:
                serial = match.group(1)

        if not model:
            model = self.lsblk_field(device_path, 'MODEL')
        if not serial:
            serial = self.serial(device_path)

        identity = DeviceIdentity.from_raw(model, serial)
        logger.debug(f"Identity for {device_path}: {identity.id}")
        return identity
