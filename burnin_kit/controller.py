"""
Burn-in Controller

Per-device state machine:

    start -> smart_short -> [smart_conveyance] -> smart_long
          -> badblocks -> smart_short_post -> [smart_conveyance_post] -> smart_long_post
          -> complete

Transitions only move forward. The first failed phase ends the session, so
a failed self-test is never followed by the destructive pass. If the
process dies mid-run (signal, unexpected exception) a ``fatal_exit``
record is written unless the session already reached a terminal status.
"""

import signal
import sys
import threading
from typing import Dict, List, Optional

from .badblocks.exceptions import DestructiveScanFailedError
from .badblocks.runner import DestructiveScanRunner
from .clock import SYSTEM_CLOCK, Clock
from .config import BurnInSettings
from .device.inventory import DeviceInventory
from .device.models import DeviceSession, RunMode
from .device.resolver import DeviceResolver
from .estimator import EtaReport, ThroughputEstimator
from .exceptions import BurnInError
from .logger import LogSection, get_module_logger
from .process_manager import ToolRunner
from .smart.exceptions import SelfTestFailedError
from .smart.monitor import SelfTestMonitor
from .status.exceptions import StatusError
from .status.models import Phase
from .status.publisher import CheckpointPublisher
from .status.store import StatusStore

logger = get_module_logger(__name__)

FATAL_SIGNALS = tuple(
    getattr(signal, name) for name in ('SIGTERM', 'SIGHUP') if hasattr(signal, name)
)


class BurnInController:
    """
    Runs the full burn-in for one drive in the calling process.

    Components default to real implementations built from *settings*;
    tests inject fakes for any of them.

    Attributes:
        session: The drive being tested.
        status:  True after a successful run, False after a failure,
                 None before run() finished.
        phase:   Phase currently executing.

    Example:
        >>> controller = BurnInController(session, settings)
        >>> if controller.run():
        ...     print("burn-in PASSED")
    """

    def __init__(
        self,
        session: DeviceSession,
        settings: BurnInSettings,
        runner: Optional[ToolRunner] = None,
        clock: Clock = SYSTEM_CLOCK,
        inventory: Optional[DeviceInventory] = None,
        resolver: Optional[DeviceResolver] = None,
        store: Optional[StatusStore] = None,
        monitor: Optional[SelfTestMonitor] = None,
        scanner: Optional[DestructiveScanRunner] = None,
        estimator: Optional[ThroughputEstimator] = None,
    ):
        self.session = session
        self.settings = settings
        self.clock = clock
        self.runner = runner or ToolRunner()
        self.inventory = inventory or DeviceInventory(self.runner)
        self.resolver = resolver or DeviceResolver(self.inventory, settings, clock)
        self.store = store or StatusStore(
            settings, publisher=CheckpointPublisher(settings, self.runner, clock), clock=clock
        )
        self.monitor = monitor or SelfTestMonitor(self.runner, self.resolver, self.store, settings, clock)
        self.scanner = scanner or DestructiveScanRunner(self.runner, self.resolver, self.store, settings, clock)
        self.estimator = estimator or ThroughputEstimator(self.inventory, settings, clock)

        self.phase: Phase = Phase.START
        self.status: Optional[bool] = None
        self.error: Optional[BaseException] = None
        self._signal_name: Optional[str] = None
        self._previous_handlers: Dict[int, object] = {}

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def phases(self) -> List[Phase]:
        """Phases this session would execute, in order."""
        phases = [Phase.START, Phase.SMART_SHORT]
        if self.settings.smart_conveyance:
            phases.append(Phase.SMART_CONVEYANCE)
        phases.append(Phase.SMART_LONG)
        if self.destructive_skip_reason() is None:
            phases.append(Phase.BADBLOCKS)
            phases.append(Phase.SMART_SHORT_POST)
            if self.settings.smart_conveyance:
                phases.append(Phase.SMART_CONVEYANCE_POST)
            phases.append(Phase.SMART_LONG_POST)
        phases.append(Phase.COMPLETE)
        return phases

    def destructive_skip_reason(self) -> Optional[str]:
        """Why the destructive pass will not run, or None if it will."""
        if not self.settings.badblocks:
            return "disabled"
        if not self.session.rotational:
            return "non-rotational"
        if not self.session.destructive:
            return "non-destructive mode; add --run to enable"
        return None

    def plan(self) -> EtaReport:
        """Log what a run would do plus the ETA, without starting any test."""
        session = self.session
        LogSection(f"PLAN {session.device_path}", logger)
        logger.info("PLAN mode (no SMART tests, no badblocks).")
        logger.info(f"Device: {session.device_path}")
        logger.info(f"Model/Serial: {session.identity.model} / {session.identity.serial}")
        conveyance = " -> SMART conveyance" if self.settings.smart_conveyance else ""
        logger.info(f"Would run: SMART short{conveyance} -> SMART long")
        if self.settings.badblocks and session.rotational:
            logger.info(
                f"Would run (only with --run): badblocks ({session.pattern_mode.value}) + post-SMART tests"
            )
        else:
            logger.info("Would skip badblocks (non-rotational or disabled).")
        logger.info("ETA estimation (rough):")
        return self._estimate(plan=True)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> bool:
        """
        Execute every phase.

        Returns:
            True when the drive passed. Expected failures (BurnInError) are
            logged, recorded and reported as False.

        Raises:
            BaseException: Anything unexpected, after ``fatal_exit`` has
                been recorded.
        """
        if self.session.run_mode is RunMode.PLAN:
            raise BurnInError("Plan-mode sessions cannot be run; use plan()")

        self._install_signal_handlers()
        try:
            self._execute()
            self.status = True
        except BurnInError as e:
            self.status = False
            self.error = e
            logger.error(f"Burn-in failed for {self.session.id} during {self.phase.value}: {e}")
            if not self.store.finalized:
                try:
                    self.store.write(self.session, self.phase.failed, str(e), ok=False)
                except StatusError as status_error:
                    logger.error(f"Could not record failure for {self.session.id}: {status_error}")
        except BaseException as e:
            self.status = False
            self.error = e
            self._record_fatal_exit(e)
            raise
        finally:
            self._restore_signal_handlers()
        return self.status

    def _execute(self) -> None:
        session = self.session
        LogSection(f"Burn-in {session.id}", logger)
        if session.destructive:
            logger.warning(f"Mode: RUN (DESTRUCTIVE). Data on {session.device_path} WILL be erased.")
        else:
            logger.info("Mode: SMART-only (non-destructive). badblocks will NOT run unless you add --run.")

        self._capture_inventory()
        logger.info("ETA estimation (rough):")
        self._estimate(plan=False)

        self.phase = Phase.START
        self.store.write(session, Phase.START.value, "Burn-in started")

        self._self_test('short', Phase.SMART_SHORT)
        if self.settings.smart_conveyance:
            self._self_test('conveyance', Phase.SMART_CONVEYANCE)
        self._self_test('long', Phase.SMART_LONG)

        skip_reason = self.destructive_skip_reason()
        if skip_reason is None:
            self.phase = Phase.BADBLOCKS
            result = self.scanner.run(session)
            if not result.ok:
                raise DestructiveScanFailedError(result.message, result)

            self._self_test('short', Phase.SMART_SHORT_POST)
            if self.settings.smart_conveyance:
                self._self_test('conveyance', Phase.SMART_CONVEYANCE_POST)
            self._self_test('long', Phase.SMART_LONG_POST)
        else:
            logger.info(f"Skipping badblocks ({skip_reason}).")
            self.store.write(session, Phase.BADBLOCKS.skipped, f"badblocks skipped ({skip_reason})")

        self.phase = Phase.COMPLETE
        self.store.write(session, Phase.COMPLETE.value, "Burn-in completed successfully")
        logger.info(f"DONE. Log: {session.log_path}")

    def _self_test(self, test_kind: str, phase: Phase) -> None:
        self.phase = phase
        result = self.monitor.run(self.session, test_kind, phase)
        if not result.ok:
            raise SelfTestFailedError(result.message, result)

    def _capture_inventory(self) -> None:
        session = self.session
        for flag in ('-i', '-a'):
            result = self.runner.run(['smartctl', *session.smart_args, flag, session.device_path])
            if result.stdout:
                logger.debug(result.stdout.rstrip())

    def _estimate(self, plan: bool) -> EtaReport:
        session = self.session
        report = self.estimator.estimate(
            session.device_path,
            session.rotational,
            session.pattern_mode,
            self.settings.badblocks,
            plan=plan,
        )
        for line in report.lines:
            logger.info(line)
        return report

    # ------------------------------------------------------------------
    # Abnormal termination
    # ------------------------------------------------------------------

    def _record_fatal_exit(self, error: BaseException) -> None:
        if self.store.finalized:
            return
        if self._signal_name:
            reason = f"terminated by {self._signal_name}"
        elif isinstance(error, KeyboardInterrupt):
            reason = "interrupted (SIGINT)"
        else:
            reason = f"{type(error).__name__}: {error}"
        message = f"Fatal exit during {self.phase.value}: {reason}"
        logger.error(message)
        try:
            self.store.write(self.session, Phase.FATAL_EXIT.value, message, ok=False)
        except Exception as e:
            logger.error(f"Could not record fatal_exit for {self.session.id}: {e}")

    def _on_signal(self, signum, frame) -> None:
        self._signal_name = signal.Signals(signum).name
        logger.error(f"Received {self._signal_name}; stopping burn-in")
        sys.exit(128 + signum)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in FATAL_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
