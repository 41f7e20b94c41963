"""
Device data model: identity, run modes and the per-process session.
"""

import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

UNKNOWN_MODEL = 'UNKNOWN_MODEL'
UNKNOWN_SERIAL = 'UNKNOWN_SERIAL'

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]')


def sanitize_token(value: Optional[str]) -> str:
    """
    Make *value* safe for file names and commit messages.

    Spaces become underscores; every other character outside
    ``[A-Za-z0-9._-]`` is dropped.

    Example:
        >>> sanitize_token('WDC WD80EFAX-68K/NA0')
        'WDC_WD80EFAX-68KNA0'
    """
    if not value:
        return ''
    return _UNSAFE_CHARS.sub('', value.strip().replace(' ', '_'))


class RunMode(str, Enum):
    """How far a session may go."""

    PLAN = 'plan'
    NON_DESTRUCTIVE = 'non-destructive'
    DESTRUCTIVE = 'destructive'


class PatternMode(str, Enum):
    """badblocks write-pattern selection."""

    DEFAULT = 'default'
    SINGLE = 'single'

    @property
    def passes(self) -> int:
        """Effective full-surface passes: one write and one verify per pattern."""
        return 8 if self is PatternMode.DEFAULT else 2

    @property
    def badblocks_args(self) -> Tuple[str, ...]:
        # badblocks picks 0xaa 0x55 0xff 0x00 on its own when -t is omitted
        return () if self is PatternMode.DEFAULT else ('-t', '0xaa')


@dataclass(frozen=True)
class DeviceIdentity:
    """
    Hardware identity of a physical drive, independent of its device node.

    ``model`` and ``serial`` are stored sanitized, so ``id`` is always a
    filesystem-safe token.
    """

    model: str
    serial: str

    @classmethod
    def from_raw(cls, model: Optional[str], serial: Optional[str]) -> 'DeviceIdentity':
        return cls(
            model=sanitize_token(model) or UNKNOWN_MODEL,
            serial=sanitize_token(serial) or UNKNOWN_SERIAL,
        )

    @classmethod
    def for_selfcheck(cls, now: datetime) -> 'DeviceIdentity':
        """Synthetic identity for the no-device self-check, unique per run."""
        serial = f"{now.strftime('%Y-%m-%d-%H%M%S')}-{now.microsecond:06d}"
        return cls(model='SELFTEST', serial=serial)

    @property
    def id(self) -> str:
        return f"{self.model}_{self.serial}"

    @property
    def serial_known(self) -> bool:
        return self.serial != UNKNOWN_SERIAL

    def __str__(self) -> str:
        return self.id


def device_tag(device_path: str) -> str:
    """Short file-name tag for a device node, e.g. ``/dev/sdb`` -> ``sdb``."""
    return sanitize_token(os.path.basename(device_path.rstrip('/'))) or 'dev'


@dataclass
class DeviceSession:
    """
    State owned by one controller process for one drive.

    ``device_path`` is the only mutable field: the resolver rebinds it when
    the kernel renumbers the node.

    ``node_serial`` is the serial lsblk reported for the node at session
    start. USB bridges often report the enclosure's serial there, or none,
    while smartctl reports the drive's own. None means it was never
    recorded and the identity serial is used in its place.
    """

    identity: DeviceIdentity
    device_path: str
    log_path: str
    run_mode: RunMode = RunMode.NON_DESTRUCTIVE
    pattern_mode: PatternMode = PatternMode.DEFAULT
    tag: str = ''
    rotational: bool = False
    usb: bool = False
    size_bytes: int = 0
    smart_args: Tuple[str, ...] = field(default_factory=tuple)
    node_serial: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.tag:
            self.tag = device_tag(self.device_path)

    @property
    def id(self) -> str:
        return self.identity.id

    @property
    def destructive(self) -> bool:
        return self.run_mode is RunMode.DESTRUCTIVE
