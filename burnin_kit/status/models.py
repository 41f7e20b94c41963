"""
Status data model: burn-in phases and the persisted status record.
"""

import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


class Phase(str, Enum):
    """
    Burn-in stages in execution order.

    Each stage reports through derived labels, e.g. ``smart_long_start``,
    ``smart_long_done`` and ``smart_long_failed``.
    """

    START = 'start'
    SMART_SHORT = 'smart_short'
    SMART_CONVEYANCE = 'smart_conveyance'
    SMART_LONG = 'smart_long'
    BADBLOCKS = 'badblocks'
    SMART_SHORT_POST = 'smart_short_post'
    SMART_CONVEYANCE_POST = 'smart_conveyance_post'
    SMART_LONG_POST = 'smart_long_post'
    COMPLETE = 'complete'
    FATAL_EXIT = 'fatal_exit'

    @property
    def started(self) -> str:
        return f"{self.value}_start"

    @property
    def done(self) -> str:
        return f"{self.value}_done"

    @property
    def failed(self) -> str:
        return f"{self.value}_failed"

    @property
    def skipped(self) -> str:
        return f"{self.value}_skipped"

    @property
    def is_post(self) -> bool:
        """True for the self-tests repeated after the destructive pass."""
        return self.value.endswith('_post')


@dataclass(frozen=True)
class StatusRecord:
    """
    Snapshot of where one drive's burn-in stands.

    Attributes:
        id:          Drive identity (``model_serial``).
        device_path: Device node at the time of writing.
        phase:       Phase label (``smart_short_done``, ``complete`` ...).
        ok:          False for failure transitions.
        message:     Human-readable detail.
        timestamp:   ISO-8601 local time with offset.
    """
    id: str
    device_path: str
    phase: str
    ok: bool
    message: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['device'] = data.pop('device_path')
        return {key: data[key] for key in ('id', 'device', 'phase', 'ok', 'message', 'timestamp')}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2) + '\n'

    def to_text(self) -> str:
        """One-line summary: ``<timestamp> | OK   | <phase> | <message>``."""
        verdict = 'OK  ' if self.ok else 'FAIL'
        return f"{self.timestamp} | {verdict} | {self.phase} | {self.message}\n"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusRecord':
        return cls(
            id=str(data['id']),
            device_path=str(data.get('device', data.get('device_path', ''))),
            phase=str(data['phase']),
            ok=bool(data['ok']),
            message=str(data.get('message', '')),
            timestamp=str(data['timestamp']),
        )

    @classmethod
    def from_json(cls, text: str) -> 'StatusRecord':
        return cls.from_dict(json.loads(text))
