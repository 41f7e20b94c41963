"""
Disk Burn-in Kit

Unattended burn-in of storage devices: SMART self-tests, an optional
destructive badblocks pass, atomic status snapshots and best-effort git
checkpoints for remote monitoring.

Main Components:
- SessionFactory: environment checks and per-drive session creation
- BurnInController: per-device phase state machine
- SelfTestMonitor: fail-closed SMART self-test polling
- DestructiveScanRunner: badblocks write/verify with a sector-error ledger
- StatusStore / CheckpointPublisher: status persistence and git push
- ThroughputEstimator: advisory ETA
- MultiDeviceOrchestrator: one tmux window per device

Usage:
    from burnin_kit import BurnInConfig, BurnInController, SessionFactory

    settings = BurnInConfig.build(BurnInConfig.from_environment())
    session = SessionFactory(settings).create('/dev/sdb', RunMode.DESTRUCTIVE)
    controller = BurnInController(session, settings)

    if controller.run():
        print("Burn-in PASSED")
    else:
        print("Burn-in FAILED")
"""

__version__ = '1.0.0'

from .exceptions import (
    BurnInError,
    BurnInConfigError,
    MissingToolError,
    EnvironmentCheckError,
    SessionLaunchError,
)

from .clock import SYSTEM_CLOCK, Clock
from .config import BurnInConfig, BurnInSettings
from .process_manager import ToolResult, ToolRunner
from .device import DeviceIdentity, DeviceInventory, DeviceResolver, DeviceSession, PatternMode, RunMode
from .status import CheckpointPublisher, Phase, StatusRecord, StatusStore
from .smart import SelfTestMonitor
from .badblocks import DestructiveScanRunner
from .estimator import ThroughputEstimator
from .session import SessionFactory
from .controller import BurnInController
from .orchestrator import MultiDeviceOrchestrator
from .selfcheck import SelfCheck

__all__ = [
    # Exceptions
    'BurnInError',
    'BurnInConfigError',
    'MissingToolError',
    'EnvironmentCheckError',
    'SessionLaunchError',
    # Config
    'BurnInConfig',
    'BurnInSettings',
    'Clock',
    'SYSTEM_CLOCK',
    # Process Manager
    'ToolRunner',
    'ToolResult',
    # Device
    'DeviceIdentity',
    'DeviceInventory',
    'DeviceResolver',
    'DeviceSession',
    'PatternMode',
    'RunMode',
    # Status
    'Phase',
    'StatusRecord',
    'StatusStore',
    'CheckpointPublisher',
    # Phases
    'SelfTestMonitor',
    'DestructiveScanRunner',
    'ThroughputEstimator',
    # Controller
    'SessionFactory',
    'BurnInController',
    'MultiDeviceOrchestrator',
    'SelfCheck',
]
