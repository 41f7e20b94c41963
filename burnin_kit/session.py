"""
Session Factory

Validates the host and the target device, queries the drive's identity
once and builds the DeviceSession a controller process owns for its
whole life.
"""

from pathlib import Path
from typing import Optional, Tuple

from .clock import SYSTEM_CLOCK, Clock
from .config import BurnInSettings
from .device.inventory import DeviceInventory
from .device.models import DeviceIdentity, DeviceSession, PatternMode, RunMode, device_tag, sanitize_token
from .device.resolver import DeviceResolver
from .exceptions import EnvironmentCheckError
from .logger import Logger, get_module_logger
from .process_manager import ToolRunner, is_root

logger = get_module_logger(__name__)

PLAN_TOOLS: Tuple[str, ...] = ('lsblk', 'blockdev')
DEVICE_TOOLS: Tuple[str, ...] = ('smartctl', 'lsblk', 'blockdev', 'dd')


class SessionFactory:
    """
    Builds validated sessions.

    Checks, in order: root (device modes), required commands, block
    device under /dev, whole disk, nothing mounted. Any failure raises
    before a status record exists for the drive.

    Example:
        >>> factory = SessionFactory(settings)
        >>> session = factory.create('/dev/sdb', RunMode.DESTRUCTIVE, PatternMode.SINGLE)
        >>> session.id
        'WDC_WD80EFAX-68KNBN0_VGH1ABCD'
    """

    def __init__(
        self,
        settings: BurnInSettings,
        runner: Optional[ToolRunner] = None,
        clock: Clock = SYSTEM_CLOCK,
        inventory: Optional[DeviceInventory] = None,
        resolver: Optional[DeviceResolver] = None,
    ):
        self.settings = settings
        self.runner = runner or ToolRunner()
        self.clock = clock
        self.inventory = inventory or DeviceInventory(self.runner)
        self.resolver = resolver or DeviceResolver(self.inventory, settings, clock)

    def required_tools(self, run_mode: RunMode) -> Tuple[str, ...]:
        if run_mode is RunMode.PLAN:
            return PLAN_TOOLS
        tools = DEVICE_TOOLS
        if run_mode is RunMode.DESTRUCTIVE and self.settings.badblocks:
            tools += ('badblocks',)
        return tools

    def check_environment(self, device_path: str, run_mode: RunMode) -> None:
        """
        Raises:
            EnvironmentCheckError: Not root (device modes) or bad device path.
            MissingToolError: A required command is not installed.
            DeviceNotWholeDiskError: Target is a partition or other non-disk.
            DeviceMountedError: Target or a child is mounted.
        """
        if run_mode is not RunMode.PLAN and not is_root():
            raise EnvironmentCheckError("Must run as root (use sudo).")
        self.runner.require(*self.required_tools(run_mode))
        self.resolver.check_block_device(device_path)
        self.resolver.check_whole_disk(device_path)
        self.resolver.check_not_mounted(device_path)

    def log_path_for(self, tag: str, identity: DeviceIdentity) -> str:
        now = self.clock.now()
        name = f"burnin-{tag}-{identity.id}-{now.strftime('%Y-%m-%d')}-{int(now.timestamp())}.log"
        return str(Path(self.settings.log_dir) / name)

    def create(
        self,
        device_path: str,
        run_mode: RunMode = RunMode.NON_DESTRUCTIVE,
        pattern_mode: PatternMode = PatternMode.DEFAULT,
        attach_log: bool = True,
    ) -> DeviceSession:
        """
        Validate *device_path* and build its session.

        Plan mode only consults lsblk/blockdev: no smartctl queries, no
        directories, no session log.

        Args:
            device_path: Whole-disk device node, e.g. ``/dev/sdb``.
            run_mode: plan, non-destructive or destructive.
            pattern_mode: badblocks pattern selection.
            attach_log: Route logging into the per-session log file.
        """
        run_mode = RunMode(run_mode)
        pattern_mode = PatternMode(pattern_mode)
        self.check_environment(device_path, run_mode)

        plan = run_mode is RunMode.PLAN
        smart_args: Tuple[str, ...] = ()
        if not plan:
            Path(self.settings.log_dir).mkdir(parents=True, exist_ok=True)
            Path(self.settings.status_dir).mkdir(parents=True, exist_ok=True)
            smart_args = self.inventory.detect_smartctl_args(device_path)
            if smart_args:
                logger.info(f"Using smartctl device type args: {' '.join(smart_args)}")

        identity = self.inventory.query_identity(device_path, smart_args, use_smartctl=not plan)
        tag = device_tag(device_path)
        session = DeviceSession(
            identity=identity,
            device_path=device_path,
            log_path=self.log_path_for(tag, identity),
            run_mode=run_mode,
            pattern_mode=pattern_mode,
            tag=tag,
            rotational=self.inventory.is_rotational(device_path),
            usb=self.inventory.is_usb(device_path),
            size_bytes=self.inventory.size_bytes(device_path),
            smart_args=smart_args,
            node_serial=sanitize_token(self.inventory.serial(device_path)),
        )

        if not identity.serial_known:
            logger.warning(
                f"No serial number reported for {device_path}; the drive cannot be tracked across re-enumeration"
            )
        elif session.node_serial != identity.serial:
            logger.info(
                f"lsblk reports serial '{session.node_serial or 'none'}' for {device_path}; "
                f"the drive is confirmed through smartctl"
            )

        if not plan and attach_log:
            Logger.attach_session_log(session.log_path)

        logger.info(f"Device: {session.device_path}")
        logger.info(f"Model/Serial: {identity.model} / {identity.serial}")
        if not plan:
            logger.info(f"Log: {session.log_path}")
            logger.info(f"Status: {Path(self.settings.status_dir) / session.id / 'status.json'}")
        return session
