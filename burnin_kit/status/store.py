"""
Status Store

Persists the latest StatusRecord for a drive identity:

    <status_dir>/<ID>/status.json     machine-readable snapshot
    <status_dir>/<ID>/status.txt      one-line summary
    <status_dir>/<ID>/log-tail.txt    last lines of the session log (failures only;
                                      removed when the drive starts a new run)

When a shared repository is configured the same files are mirrored to
``<repo_dir>/status/<ID>/`` and, with auto-push enabled, handed to the
checkpoint publisher. Every file is replaced atomically so readers never
see a half-written record.
"""

import os
import tempfile
from collections import deque
from pathlib import Path
from typing import List, Optional, Sequence

from ..clock import SYSTEM_CLOCK, Clock
from ..config import BurnInSettings
from ..device.models import DeviceSession
from ..logger import Logger, get_module_logger
from .exceptions import StatusError
from .models import Phase, StatusRecord
from .publisher import CheckpointPublisher

logger = get_module_logger(__name__)

STATUS_JSON = 'status.json'
STATUS_TXT = 'status.txt'
LOG_TAIL = 'log-tail.txt'


def atomic_write_text(path: Path, text: str) -> None:
    """
    Replace *path* with *text* in one step.

    The content goes to a temporary file in the same directory, is fsynced,
    then renamed over the target.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_log_tail(log_path: str, lines: int) -> str:
    """Last *lines* lines of *log_path*; empty when the file is unreadable."""
    try:
        with open(log_path, 'r', encoding='utf-8', errors='replace') as f:
            return ''.join(deque(f, maxlen=lines))
    except OSError:
        return ''


class StatusStore:
    """
    Atomic per-identity status persistence with optional shared mirror.

    Example:
        >>> store = StatusStore(settings, publisher=CheckpointPublisher(settings))
        >>> store.write(session, Phase.SMART_SHORT.started, "Starting SMART short test")
        >>> store.read(session.id).phase
        'smart_short_start'
    """

    def __init__(
        self,
        settings: BurnInSettings,
        publisher: Optional[CheckpointPublisher] = None,
        clock: Clock = SYSTEM_CLOCK,
    ):
        self.settings = settings
        self.publisher = publisher
        self.clock = clock
        self.last_record: Optional[StatusRecord] = None

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def identity_dir(self, identity_id: str) -> Path:
        return Path(self.settings.status_dir) / identity_id

    def mirror_dir(self, identity_id: str) -> Optional[Path]:
        if not self.settings.repo_dir:
            return None
        return Path(self.settings.repo_dir) / 'status' / identity_id

    # ------------------------------------------------------------------
    # Write / read
    # ------------------------------------------------------------------

    def write(self, session: DeviceSession, phase: str, message: str = '', ok: bool = True) -> StatusRecord:
        """
        Record a phase transition for the session's drive.

        Args:
            session: Session whose identity keys the record.
            phase: Phase label, e.g. ``Phase.BADBLOCKS.done``.
            message: Human-readable detail.
            ok: False for failure transitions; also captures the log tail.

        Returns:
            The record written.

        Raises:
            StatusError: If the local record cannot be written. Mirror and
                publishing problems are logged, never raised.
        """
        record = StatusRecord(
            id=session.id,
            device_path=session.device_path,
            phase=phase,
            ok=ok,
            message=message,
            timestamp=self.clock.timestamp(),
        )

        files = {STATUS_JSON: record.to_json(), STATUS_TXT: record.to_text()}
        if not ok:
            Logger.flush()
            files[LOG_TAIL] = read_log_tail(session.log_path, self.settings.log_tail_lines)

        stale = [LOG_TAIL] if ok and phase == Phase.START.value else []

        local_dir = self.identity_dir(session.id)
        try:
            for name, text in files.items():
                atomic_write_text(local_dir / name, text)
            for name in stale:
                (local_dir / name).unlink(missing_ok=True)
        except OSError as e:
            raise StatusError(f"Cannot write status under {local_dir}: {e}")

        self.last_record = record
        logger.debug(f"status: {record.to_text().rstrip()}")

        self._mirror(session.id, files, stale)
        self._publish(session.id, phase)
        return record

    def read(self, identity_id: str) -> Optional[StatusRecord]:
        """Load the local record for *identity_id*, or None if there is none yet."""
        path = self.identity_dir(identity_id) / STATUS_JSON
        try:
            return StatusRecord.from_json(path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            return None

    @property
    def finalized(self) -> bool:
        """True once a terminal record (failure or ``complete``) has been written."""
        record = self.last_record
        if record is None:
            return False
        return not record.ok or record.phase == Phase.COMPLETE.value

    # ------------------------------------------------------------------
    # Shared sink
    # ------------------------------------------------------------------

    def _mirror(self, identity_id: str, files: dict, stale: Sequence[str] = ()) -> List[Path]:
        target = self.mirror_dir(identity_id)
        if target is None:
            return []
        written = []
        try:
            for name, text in files.items():
                atomic_write_text(target / name, text)
                written.append(target / name)
            for name in stale:
                (target / name).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to mirror status to {target}: {e}")
        return written

    def _publish(self, identity_id: str, phase: str) -> None:
        if not self.settings.auto_push or self.publisher is None:
            return
        try:
            self.publisher.publish(identity_id, phase)
        except Exception as e:
            logger.warning(f"Checkpoint publish for {identity_id} ({phase}) failed: {e}")
