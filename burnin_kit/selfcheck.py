"""
No-Device Self-Check

Exercises the status store and checkpoint publisher end to end without
touching any disk and without root. Each run gets its own timestamped
identity, so repeated runs never overwrite each other's records.
"""

from pathlib import Path
from typing import List, Optional

from .clock import SYSTEM_CLOCK, Clock
from .config import BurnInSettings
from .device.models import DeviceIdentity, DeviceSession
from .logger import LogSection, get_module_logger
from .process_manager import ToolRunner
from .status.models import StatusRecord
from .status.publisher import CheckpointPublisher
from .status.store import StatusStore

logger = get_module_logger(__name__)

SELFCHECK_DEVICE = '(self-test)'

SELFCHECK_STEPS = (
    ('selftest_start', "Self-test started"),
    ('selftest_checkpoint', "Self-test checkpoint (if you see this as a push-email, alerts are wired)"),
    ('selftest_complete', "Self-test completed successfully"),
)


class SelfCheck:
    """
    Example:
        >>> check = SelfCheck(settings)
        >>> check.session.id
        'SELFTEST_2026-10-18-142501-093211'
        >>> check.run()[-1].phase
        'selftest_complete'
    """

    def __init__(
        self,
        settings: BurnInSettings,
        runner: Optional[ToolRunner] = None,
        clock: Clock = SYSTEM_CLOCK,
        store: Optional[StatusStore] = None,
    ):
        self.settings = settings
        self.clock = clock
        self.store = store or StatusStore(
            settings, publisher=CheckpointPublisher(settings, runner, clock), clock=clock
        )
        identity = DeviceIdentity.for_selfcheck(clock.now())
        self.session = DeviceSession(
            identity=identity,
            device_path=SELFCHECK_DEVICE,
            log_path=str(Path(settings.log_dir) / f"burnin-{identity.id}.log"),
            tag='selftest',
        )

    def run(self) -> List[StatusRecord]:
        """Write the three self-check records one second apart."""
        LogSection("SELF-TEST mode (no disks touched)", logger)
        logger.info(f"Status dir: {self.settings.status_dir}")
        if self.settings.repo_dir:
            logger.info(f"Repo dir: {self.settings.repo_dir}")
        if self.settings.auto_push:
            logger.info("AUTO_PUSH=1: will attempt commit+push (requires git + remote access)")
        else:
            logger.info("AUTO_PUSH=0: will NOT push (set AUTO_PUSH=1 to test git alerts)")

        records = []
        for index, (phase, message) in enumerate(SELFCHECK_STEPS):
            if index:
                self.clock.sleep(1)
            records.append(self.store.write(self.session, phase, message))

        logger.info("SELF-TEST complete. Status file:")
        logger.info(f"  {self.store.identity_dir(self.session.id) / 'status.json'}")
        return records
