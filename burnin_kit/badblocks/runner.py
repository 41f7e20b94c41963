"""
Destructive Scan Runner

Runs ``badblocks -wsv`` over a whole disk and keeps the list of bad blocks
it reports in a read-only ledger file next to the session log. THIS
ERASES ALL DATA ON THE DEVICE.
"""

import os
import shlex
import stat
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List

from ..clock import SYSTEM_CLOCK, Clock
from ..config import BurnInSettings
from ..device.models import DeviceSession, PatternMode
from ..device.resolver import DeviceResolver
from ..logger import LogResult, LogSection, get_module_logger
from ..process_manager import ToolRunner
from ..status.models import Phase
from ..status.store import StatusStore
from .exceptions import BadblocksError, BlockSizeError

logger = get_module_logger(__name__)

# Some badblocks builds cannot address more blocks than a signed 32-bit int
MAX_BLOCKS = 2 ** 31 - 1
MAX_BLOCK_SIZE = 1024 * 1024


def choose_block_size(
    size_bytes: int,
    requested: int,
    max_blocks: int = MAX_BLOCKS,
    ceiling: int = MAX_BLOCK_SIZE,
) -> int:
    """
    Smallest power-of-two multiple of *requested* that keeps
    ``ceil(size_bytes / block_size)`` within *max_blocks*.

    Example:
        >>> choose_block_size(16 * 10**12, 4096)
        8192

    Raises:
        BlockSizeError: If the block size would have to exceed *ceiling*.
    """
    if size_bytes <= 0:
        return requested

    block_size = requested
    while -(-size_bytes // block_size) > max_blocks:
        block_size *= 2
        if block_size > ceiling:
            raise BlockSizeError(
                "Refusing: required badblocks block size exceeded 1MiB to avoid overflow (disk too large?)"
            )
    return block_size


class SectorErrorLedger:
    """
    The ``-o`` output file of one badblocks run: one bad block number per line.

    Sealed read-only once the pass ends.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def for_session(cls, log_dir: str, session: DeviceSession, now: datetime) -> 'SectorErrorLedger':
        """``<log_dir>/burnin-<tag>-<ID>-<YYYY-MM-DD>-<epoch>.bb``"""
        name = f"burnin-{session.tag}-{session.id}-{now.strftime('%Y-%m-%d')}-{int(now.timestamp())}.bb"
        return cls(Path(log_dir) / name)

    def blocks(self) -> List[int]:
        if not self.path.exists():
            return []
        numbers = []
        for line in self.path.read_text(encoding='utf-8', errors='replace').splitlines():
            line = line.strip()
            if line.isdigit():
                numbers.append(int(line))
        return numbers

    def seal(self) -> None:
        if self.path.exists():
            os.chmod(self.path, stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH)

    def __str__(self) -> str:
        return str(self.path)


@dataclass
class ScanResult:
    """
    Outcome of one destructive pass.

    Attributes:
        returncode: badblocks exit status (the only success criterion).
        ledger:     Bad-block ledger written by the pass.
        block_size: Effective block size passed to ``-b``.
        bad_blocks: Number of entries in the ledger.
        message:    Status message written for the phase.
    """
    returncode: int
    ledger: SectorErrorLedger
    block_size: int
    bad_blocks: int
    message: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class DestructiveScanRunner:
    """
    Runs the multi-pass destructive write/verify.

    Example:
        >>> scanner = DestructiveScanRunner(runner, resolver, store, settings)
        >>> result = scanner.run(session)
        >>> result.ok, result.block_size
        (True, 8192)
    """

    def __init__(
        self,
        runner: ToolRunner,
        resolver: DeviceResolver,
        store: StatusStore,
        settings: BurnInSettings,
        clock: Clock = SYSTEM_CLOCK,
    ):
        self.runner = runner
        self.resolver = resolver
        self.store = store
        self.settings = settings
        self.clock = clock

    def build_command(self, session: DeviceSession, block_size: int, ledger: SectorErrorLedger) -> List[str]:
        return [
            'badblocks', '-wsv',
            '-b', str(block_size),
            '-c', str(self.settings.bb_batch_blocks),
            '-o', str(ledger),
            *PatternMode(session.pattern_mode).badblocks_args,
            session.device_path,
        ]

    def run(self, session: DeviceSession) -> ScanResult:
        """
        Run badblocks against the session's drive.

        Writes ``badblocks_start`` then ``badblocks_done`` or
        ``badblocks_failed``. Never retried: a failed pass means media
        problems.

        Raises:
            BadblocksError: If the session is not destructive.
            BlockSizeError: If the disk is too large for any block size.
            DeviceNotPresentError: If the drive cannot be confirmed.
        """
        if not session.destructive:
            raise BadblocksError(f"Refusing destructive pass on {session.device_path}: not in run mode")

        LogSection("badblocks destructive write/verify", logger)
        self.store.write(session, Phase.BADBLOCKS.started, "Starting badblocks destructive test (THIS ERASES DATA)")

        self.resolver.rebind(session)
        self.resolver.check_not_mounted(session.device_path)

        requested = self.settings.bb_block_size
        try:
            block_size = choose_block_size(self.resolver.inventory.size_bytes(session.device_path), requested)
        except BlockSizeError as e:
            self.store.write(session, Phase.BADBLOCKS.failed, str(e), ok=False)
            raise
        if block_size != requested:
            logger.warning(
                f"Adjusted badblocks block size from {requested} to {block_size} to avoid large-disk overflow."
            )

        Path(self.settings.log_dir).mkdir(parents=True, exist_ok=True)
        ledger = SectorErrorLedger.for_session(self.settings.log_dir, session, self.clock.now())
        command = self.build_command(session, block_size, ledger)
        logger.info(f"badblocks output file: {ledger}")
        logger.info(f"COMMAND: {shlex.join(command)}")

        returncode = self.runner.stream(command, on_line=self._log_line)
        ledger.seal()
        bad_blocks = len(ledger.blocks())

        if returncode == 0:
            message = "badblocks completed successfully"
            if bad_blocks:
                message += f" ({bad_blocks} bad blocks listed in {ledger.path.name})"
            self.store.write(session, Phase.BADBLOCKS.done, message)
            LogResult(True, message, logger)
        else:
            message = f"badblocks reported errors (exit {returncode}); see log + {ledger.path.name}"
            self.store.write(session, Phase.BADBLOCKS.failed, message, ok=False)
            LogResult(False, message, logger)

        return ScanResult(returncode, ledger, block_size, bad_blocks, message)

    @staticmethod
    def _log_line(line: str) -> None:
        if line.strip():
            logger.info(f"badblocks: {line}")
