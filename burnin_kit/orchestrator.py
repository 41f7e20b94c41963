"""
Multi-Device Orchestrator

Launches one independent controller process per device. Each process has
its own log and status namespace; they share nothing but the optional
checkpoint repository. The effective settings are snapshotted to a YAML
file that every child loads with ``--config``, so all windows run with
identical tunables.
"""

import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .clock import SYSTEM_CLOCK, Clock
from .config import BurnInConfig, BurnInSettings
from .controller import BurnInController
from .device.models import PatternMode, RunMode
from .exceptions import BurnInError, SessionLaunchError
from .logger import get_module_logger
from .process_manager import ToolRunner, is_root
from .session import SessionFactory

logger = get_module_logger(__name__)

HOLD_WINDOW = "read -p 'Press enter to close window' -r"


@dataclass(frozen=True)
class SessionDescriptor:
    """
    Everything needed to start one controller process.

    Attributes:
        device_path:  Whole-disk device node.
        run_mode:     non-destructive or destructive.
        pattern_mode: badblocks pattern selection.
        config_path:  YAML settings snapshot passed via ``--config``.
        use_sudo:     Prefix the command with sudo.
    """
    device_path: str
    run_mode: RunMode
    pattern_mode: PatternMode
    config_path: str
    use_sudo: bool = False

    @property
    def window_name(self) -> str:
        return Path(self.device_path).name

    def command(self) -> List[str]:
        argv = [sys.executable, '-m', 'burnin_kit', '--device', self.device_path, '--config', self.config_path]
        if self.run_mode is RunMode.DESTRUCTIVE:
            argv.append('--run')
        if self.pattern_mode is not PatternMode.DEFAULT:
            argv += ['--patterns', self.pattern_mode.value]
        if self.use_sudo:
            argv.insert(0, 'sudo')
        return argv

    def shell_command(self) -> str:
        """Command line for a multiplexer window; the window stays open afterwards."""
        return f"{shlex.join(self.command())}; {HOLD_WINDOW}"


class TmuxLauncher:
    """
    Starts each descriptor in its own tmux window of one detached session.

    Example:
        >>> launcher = TmuxLauncher(ToolRunner())
        >>> launcher.launch(descriptors)
        'burnin_1792300000'
    """

    def __init__(self, runner: ToolRunner, clock: Clock = SYSTEM_CLOCK):
        self.runner = runner
        self.clock = clock

    def launch(self, descriptors: Sequence[SessionDescriptor], session_name: Optional[str] = None) -> str:
        """
        Returns:
            The tmux session name.

        Raises:
            SessionLaunchError: If tmux refuses a session or window.
        """
        self.runner.require('tmux')
        name = session_name or f"burnin_{int(self.clock.now().timestamp())}"
        for index, descriptor in enumerate(descriptors):
            if index == 0:
                args = ['tmux', 'new-session', '-d', '-s', name]
            else:
                args = ['tmux', 'new-window', '-t', name]
            args += ['-n', descriptor.window_name, descriptor.shell_command()]
            result = self.runner.run(args, merge_stderr=True)
            if not result.ok:
                raise SessionLaunchError(
                    f"{args[1]} failed for {descriptor.device_path}: {result.output.strip()}"
                )
            logger.info(f"Launched {descriptor.device_path} in tmux window {name}:{descriptor.window_name}")
        return name


class MultiDeviceOrchestrator:
    """
    Entry point for burning in several drives at once.

    Plan mode does not launch anything: each device's plan is printed in
    turn from this process.

    Example:
        >>> orchestrator = MultiDeviceOrchestrator(settings)
        >>> orchestrator.run(['/dev/sdb', '/dev/sdc'], RunMode.DESTRUCTIVE)
        True
    """

    def __init__(
        self,
        settings: BurnInSettings,
        runner: Optional[ToolRunner] = None,
        clock: Clock = SYSTEM_CLOCK,
        factory: Optional[SessionFactory] = None,
        launcher: Optional[TmuxLauncher] = None,
        plan_one: Optional[Callable[[str, PatternMode], bool]] = None,
    ):
        self.settings = settings
        self.runner = runner or ToolRunner()
        self.clock = clock
        self.factory = factory or SessionFactory(settings, self.runner, clock)
        self.launcher = launcher or TmuxLauncher(self.runner, clock)
        self.plan_one = plan_one

    def snapshot_settings(self) -> Path:
        """Write the effective settings where every child can load them."""
        now = self.clock.now()
        path = Path(self.settings.log_dir) / f"burnin-multi-{now.strftime('%Y-%m-%d')}-{int(now.timestamp())}.yaml"
        return BurnInConfig.save_config_file(self.settings, str(path.resolve()))

    def build_descriptors(
        self,
        devices: Sequence[str],
        run_mode: RunMode,
        pattern_mode: PatternMode,
        config_path: str,
    ) -> List[SessionDescriptor]:
        use_sudo = not is_root()
        return [
            SessionDescriptor(
                device_path=device,
                run_mode=RunMode(run_mode),
                pattern_mode=PatternMode(pattern_mode),
                config_path=config_path,
                use_sudo=use_sudo,
            )
            for device in devices
        ]

    def validate(self, devices: Sequence[str]) -> None:
        """Check every device before anything is launched."""
        if not devices:
            raise SessionLaunchError("No devices given")
        if len(set(devices)) != len(devices):
            raise SessionLaunchError(f"Duplicate devices in list: {' '.join(devices)}")
        for device in devices:
            self.factory.resolver.check_block_device(device)
            self.factory.resolver.check_whole_disk(device)

    def run(
        self,
        devices: Sequence[str],
        run_mode: RunMode = RunMode.NON_DESTRUCTIVE,
        pattern_mode: PatternMode = PatternMode.DEFAULT,
    ) -> bool:
        """
        Plan each device in turn, or launch one controller per device.

        Returns:
            True if every plan succeeded or every session was launched.
        """
        devices = list(devices)
        if RunMode(run_mode) is RunMode.PLAN:
            logger.info("PLAN mode with --multi: not launching tmux; printing per-device plans.")
            return all([self._plan(device, pattern_mode) for device in devices])

        self.validate(devices)
        config_path = self.snapshot_settings()
        descriptors = self.build_descriptors(devices, run_mode, pattern_mode, str(config_path))

        logger.info(f"Launching parallel tests for: {' '.join(devices)}")
        name = self.launcher.launch(descriptors)
        logger.info(f"Tmux session: {name}")
        logger.info(f"Parallel sessions started. Attach with: sudo tmux attach -t {name}")
        return True

    def _plan(self, device: str, pattern_mode: PatternMode) -> bool:
        if self.plan_one is not None:
            return self.plan_one(device, pattern_mode)
        try:
            session = self.factory.create(device, RunMode.PLAN, pattern_mode, attach_log=False)
            BurnInController(session, self.settings, runner=self.runner, clock=self.clock).plan()
        except BurnInError as e:
            logger.error(f"Plan for {device} failed: {e}")
            return False
        return True
