"""
Unit tests for MultiDeviceOrchestrator and the tmux launcher.
"""

import sys
from unittest.mock import MagicMock, patch

import pytest

from burnin_kit.config import BurnInConfig
from burnin_kit.device.models import PatternMode, RunMode
from burnin_kit.exceptions import EnvironmentCheckError, MissingToolError, SessionLaunchError
from burnin_kit.orchestrator import HOLD_WINDOW, MultiDeviceOrchestrator, SessionDescriptor, TmuxLauncher
from burnin_kit.session import SessionFactory

from fakes import FakeInventory, FakeRunner, script_device

DEVICES = ['/dev/sdb', '/dev/sdc']


def descriptor(device='/dev/sdb', run_mode=RunMode.DESTRUCTIVE, pattern_mode=PatternMode.DEFAULT, sudo=False):
    return SessionDescriptor(device, run_mode, pattern_mode, '/var/log/burnin/multi.yaml', sudo)


@pytest.fixture
def multi_runner():
    runner = FakeRunner()
    for device, serial in zip(DEVICES, ('SERIAL_B', 'SERIAL_C')):
        script_device(runner, device=device, serial=serial)
    return runner


@pytest.fixture
def orchestrator(settings, multi_runner, clock):
    factory = SessionFactory(settings, multi_runner, clock, inventory=FakeInventory(multi_runner, present=DEVICES))
    return MultiDeviceOrchestrator(settings, multi_runner, clock, factory=factory)


class TestSessionDescriptor:

    def test_destructive_command(self):
        assert descriptor().command() == [
            sys.executable, '-m', 'burnin_kit', '--device', '/dev/sdb',
            '--config', '/var/log/burnin/multi.yaml', '--run',
        ]

    def test_non_destructive_single_pattern_with_sudo(self):
        command = descriptor(run_mode=RunMode.NON_DESTRUCTIVE, pattern_mode=PatternMode.SINGLE, sudo=True).command()
        assert command[0] == 'sudo'
        assert '--run' not in command
        assert command[-2:] == ['--patterns', 'single']

    def test_shell_command_holds_window_open(self):
        shell = descriptor().shell_command()
        assert shell.endswith(f"; {HOLD_WINDOW}")
        assert "--device /dev/sdb" in shell

    def test_window_name(self):
        assert descriptor('/dev/disk/by-id/ata-X').window_name == 'ata-X'


class TestTmuxLauncher:

    def test_first_device_creates_session(self, clock):
        runner = FakeRunner()
        name = TmuxLauncher(runner, clock).launch([descriptor('/dev/sdb'), descriptor('/dev/sdc')])

        assert name == f"burnin_{int(clock.now().timestamp())}"
        first, second = runner.commands('tmux')
        assert first[:7] == ['tmux', 'new-session', '-d', '-s', name, '-n', 'sdb']
        assert second[:6] == ['tmux', 'new-window', '-t', name, '-n', 'sdc']
        assert second[-1] == descriptor('/dev/sdc').shell_command()

    def test_tmux_failure(self, clock):
        runner = FakeRunner().script('tmux', 'new-session', stdout='duplicate session: burnin', returncode=1)
        with pytest.raises(SessionLaunchError, match="duplicate session"):
            TmuxLauncher(runner, clock).launch([descriptor()], session_name='burnin')

    def test_tmux_missing(self, clock):
        runner = FakeRunner()
        runner.missing.add('tmux')
        with pytest.raises(MissingToolError):
            TmuxLauncher(runner, clock).launch([descriptor()])


class TestMultiDeviceOrchestrator:

    def test_launch_with_settings_snapshot(self, orchestrator, settings):
        launcher = MagicMock()
        launcher.launch.return_value = 'burnin_1'
        orchestrator.launcher = launcher

        with patch('burnin_kit.orchestrator.is_root', return_value=True):
            assert orchestrator.run(DEVICES, RunMode.DESTRUCTIVE, PatternMode.SINGLE)

        descriptors = launcher.launch.call_args.args[0]
        assert [d.device_path for d in descriptors] == DEVICES
        assert all(d.run_mode is RunMode.DESTRUCTIVE and not d.use_sudo for d in descriptors)

        snapshot = BurnInConfig.load_config_file(descriptors[0].config_path)
        assert BurnInConfig.build(snapshot) == settings

    def test_sudo_prefix_when_not_root(self, orchestrator):
        with patch('burnin_kit.orchestrator.is_root', return_value=False):
            descriptors = orchestrator.build_descriptors(DEVICES, RunMode.NON_DESTRUCTIVE, PatternMode.DEFAULT, 'c')
        assert all(d.command()[0] == 'sudo' for d in descriptors)

    def test_snapshot_path(self, orchestrator, settings, clock):
        path = orchestrator.snapshot_settings()
        assert path.name == f"burnin-multi-2026-10-18-{int(clock.now().timestamp())}.yaml"
        assert path.is_absolute()

    @pytest.mark.parametrize('devices, match', [
        ([], "No devices"),
        (['/dev/sdb', '/dev/sdb'], "Duplicate"),
    ])
    def test_invalid_lists(self, orchestrator, devices, match):
        with pytest.raises(SessionLaunchError, match=match):
            orchestrator.run(devices, RunMode.NON_DESTRUCTIVE)

    def test_missing_device_stops_before_launch(self, orchestrator):
        launcher = MagicMock()
        orchestrator.launcher = launcher
        with pytest.raises(EnvironmentCheckError):
            orchestrator.run(['/dev/sdb', '/dev/sdz'], RunMode.NON_DESTRUCTIVE)
        launcher.launch.assert_not_called()

    def test_plan_mode_runs_every_plan_in_process(self, settings, multi_runner, clock):
        plan_one = MagicMock(side_effect=[False, True])
        orchestrator = MultiDeviceOrchestrator(settings, multi_runner, clock, plan_one=plan_one)

        assert orchestrator.run(DEVICES, RunMode.PLAN) is False
        assert [c.args[0] for c in plan_one.call_args_list] == DEVICES
        assert multi_runner.commands('tmux') == []

    def test_plan_mode_default_planner(self, orchestrator, multi_runner):
        assert orchestrator.run(DEVICES, RunMode.PLAN) is True
        assert multi_runner.commands('smartctl') == []
        assert multi_runner.commands('tmux') == []
