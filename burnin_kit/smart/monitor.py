"""
SMART Self-Test Monitor

Starts a drive self-test with smartctl and polls it to a terminal state.
The monitor is fail-closed: it only reports success after the drive's own
self-test log confirms "Completed without error". Empty or unrecognized
output is polled again, never treated as success or failure.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..clock import SYSTEM_CLOCK, Clock
from ..config import BurnInSettings
from ..device.exceptions import DeviceNotPresentError
from ..device.models import DeviceSession
from ..device.resolver import DeviceResolver
from ..logger import LogResult, LogSection, get_module_logger
from ..process_manager import ToolResult, ToolRunner
from ..status.models import Phase
from ..status.store import StatusStore
from .log_parser import SelfTestLogParser, SelfTestState

logger = get_module_logger(__name__)

TEST_LABELS = {
    'short': 'short',
    'conveyance': 'conveyance',
    'long': 'extended/long',
}

# smartctl exit status bits 0 and 1: command line not parsed, device open failed
_SMARTCTL_FATAL_BITS = 0x03


class SelfTestOutcome(str, Enum):
    COMPLETED = 'completed'
    ABORTED = 'aborted'
    TIMED_OUT = 'timed_out'
    NOT_STARTED = 'not_started'
    DEVICE_LOST = 'device_lost'


@dataclass
class SelfTestResult:
    """
    Terminal result of one self-test.

    Attributes:
        test_kind: ``short``, ``conveyance`` or ``long``.
        outcome:   How the test ended.
        message:   Status message written for the phase.
        polls:     Number of status polls performed.
    """
    test_kind: str
    outcome: SelfTestOutcome
    message: str
    polls: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is SelfTestOutcome.COMPLETED


class SelfTestMonitor:
    """
    Runs one SMART self-test per call and waits for it.

    Polling cadence:
    - ``smart_initial_grace`` seconds before the first poll
    - ``smart_poll_interval`` seconds between polls
    - ``smart_usb_poll_interval`` for non-short tests behind a USB bridge,
      where frequent queries are known to abort running tests
    - ``smart_max_wait`` hard cap measured on the monotonic clock

    Example:
        >>> monitor = SelfTestMonitor(runner, resolver, store, settings)
        >>> result = monitor.run(session, 'long', Phase.SMART_LONG)
        >>> result.ok
        True
    """

    def __init__(
        self,
        runner: ToolRunner,
        resolver: DeviceResolver,
        store: StatusStore,
        settings: BurnInSettings,
        clock: Clock = SYSTEM_CLOCK,
        parser: Optional[SelfTestLogParser] = None,
    ):
        self.runner = runner
        self.resolver = resolver
        self.store = store
        self.settings = settings
        self.clock = clock
        self.parser = parser or SelfTestLogParser()

    @staticmethod
    def label_for(test_kind: str, phase: Phase) -> str:
        label = TEST_LABELS.get(test_kind, test_kind)
        return f"{label} (post-badblocks)" if phase.is_post else label

    def run(self, session: DeviceSession, test_kind: str, phase: Phase) -> SelfTestResult:
        """
        Start *test_kind* on the session's drive and wait for the verdict.

        Writes ``<phase>_start`` before starting, then ``<phase>_done`` or
        ``<phase>_failed``. An aborted test is re-attempted up to
        ``smart_abort_retries`` times before the failure is recorded.

        Returns:
            SelfTestResult; ``result.ok`` is True only for a confirmed
            completion.
        """
        label = self.label_for(test_kind, phase)
        LogSection(f"SMART {label} test", logger)
        self.store.write(session, phase.started, f"Starting SMART {label} test")

        retries = self.settings.smart_abort_retries
        for attempt in range(retries + 1):
            result = self._run_once(session, test_kind, label)
            if result.outcome is not SelfTestOutcome.ABORTED or attempt >= retries:
                break
            logger.warning(
                f"{result.message}; re-attempting ({attempt + 1}/{retries}) in case the abort was transient"
            )

        if result.ok:
            self._capture_snapshot(session)
            self.store.write(session, phase.done, result.message)
            LogResult(True, result.message, logger)
        else:
            self.store.write(session, phase.failed, result.message, ok=False)
            LogResult(False, result.message, logger)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_once(self, session: DeviceSession, test_kind: str, label: str) -> SelfTestResult:
        try:
            self.resolver.rebind(session)
        except DeviceNotPresentError as e:
            return SelfTestResult(test_kind, SelfTestOutcome.DEVICE_LOST, f"SMART {label} not started: {e}")

        if self.settings.abort_smart:
            logger.info(f"Aborting any in-progress SMART self-test before starting ({label})")
            self._abort(session)

        logger.info(f"Starting SMART {label} test: smartctl {' '.join(self._smartctl(session, '-t', test_kind)[1:])}")
        started = self._start(session, test_kind)
        if self.parser.is_already_running(started.output):
            if self.settings.abort_smart:
                logger.info("A SMART test is already running; aborting and retrying start once...")
                self._abort(session)
                started = self._start(session, test_kind)
            if self.parser.is_already_running(started.output):
                return SelfTestResult(
                    test_kind,
                    SelfTestOutcome.NOT_STARTED,
                    f"SMART {label} could not start (another test already running); "
                    f"abort it with smartctl -X {session.device_path} or use --abort-smart",
                )
        if started.returncode >= 0 and started.returncode & _SMARTCTL_FATAL_BITS:
            return SelfTestResult(
                test_kind,
                SelfTestOutcome.NOT_STARTED,
                f"SMART {label} could not start (smartctl exit status {started.returncode})",
            )

        return self._wait(session, test_kind, label)

    def _wait(self, session: DeviceSession, test_kind: str, label: str) -> SelfTestResult:
        settings = self.settings
        if session.usb and test_kind != 'short':
            interval = settings.smart_usb_poll_interval
        else:
            interval = settings.smart_poll_interval

        begin = self.clock.monotonic()
        self.clock.sleep(settings.smart_initial_grace)

        polls = 0
        last_progress = None
        while self.clock.monotonic() - begin < settings.smart_max_wait:
            try:
                self.resolver.rebind(session)
            except DeviceNotPresentError as e:
                return SelfTestResult(
                    test_kind, SelfTestOutcome.DEVICE_LOST, f"SMART {label} test failed: {e}", polls
                )

            polls += 1
            capabilities = self.runner.run(self._smartctl(session, '-c'))
            selftest_log = self.runner.run(self._smartctl(session, '-l', 'selftest'))
            if capabilities.stdout:
                logger.debug(capabilities.stdout.rstrip())
            if selftest_log.stdout:
                logger.debug(selftest_log.stdout.rstrip())

            status = self.parser.classify(selftest_log.stdout, test_kind, capabilities.stdout)

            if status.state is SelfTestState.COMPLETED:
                return SelfTestResult(
                    test_kind, SelfTestOutcome.COMPLETED, f"SMART {label} test completed", polls
                )
            if status.state is SelfTestState.ABORTED:
                return SelfTestResult(
                    test_kind,
                    SelfTestOutcome.ABORTED,
                    f"SMART {label} test aborted/failed: {status.reason}",
                    polls,
                )
            if status.state is SelfTestState.IN_PROGRESS:
                if status.percent_remaining is not None and status.percent_remaining != last_progress:
                    logger.info(f"SMART {label} test progress: {status.percent_remaining}% of test remaining")
                    last_progress = status.percent_remaining
            else:
                logger.warning(f"SMART {label}: {status.reason}; retrying...")

            self.clock.sleep(interval)

        return SelfTestResult(
            test_kind,
            SelfTestOutcome.TIMED_OUT,
            f"SMART {label} timed out after {int(settings.smart_max_wait)}s",
            polls,
        )

    def _start(self, session: DeviceSession, test_kind: str) -> ToolResult:
        result = self.runner.run(self._smartctl(session, '-t', test_kind), merge_stderr=True)
        if result.output:
            logger.debug(result.output.rstrip())
        return result

    def _abort(self, session: DeviceSession) -> None:
        self.runner.run(self._smartctl(session, '-X'), merge_stderr=True)
        self.clock.sleep(self.settings.smart_abort_settle)

    def _capture_snapshot(self, session: DeviceSession) -> None:
        snapshot = self.runner.run(self._smartctl(session, '-a'))
        if snapshot.stdout:
            logger.debug(f"SMART snapshot for {session.id}:\n{snapshot.stdout.rstrip()}")

    @staticmethod
    def _smartctl(session: DeviceSession, *args: str) -> List[str]:
        return ['smartctl', *session.smart_args, *args, session.device_path]
