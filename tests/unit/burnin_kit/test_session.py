"""
Unit tests for SessionFactory: host checks and session construction.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from burnin_kit.device.exceptions import DeviceMountedError, DeviceNotWholeDiskError
from burnin_kit.device.models import PatternMode, RunMode
from burnin_kit.exceptions import EnvironmentCheckError, MissingToolError
from burnin_kit.logger import Logger
from burnin_kit.session import DEVICE_TOOLS, PLAN_TOOLS, SessionFactory

from fakes import DEVICE, MODEL, SERIAL, SIZE_BYTES, FakeInventory, FakeRunner, script_device

SMART_INFO = f"""\
=== START OF INFORMATION SECTION ===
Device Model:     {MODEL}
Serial Number:    {SERIAL}
"""


@pytest.fixture(autouse=True)
def as_root():
    with patch('burnin_kit.session.is_root', return_value=True):
        yield


@pytest.fixture
def factory(settings, runner, inventory, clock):
    runner.script('smartctl', '--scan-open', stdout=f"{DEVICE} -d sat # {DEVICE} [SAT], ATA device\n")
    runner.script('smartctl', '-i', stdout=SMART_INFO)
    return SessionFactory(settings, runner, clock, inventory=inventory)


class TestCreate:

    def test_destructive_session(self, factory, settings, clock):
        session = factory.create(DEVICE, RunMode.DESTRUCTIVE, PatternMode.SINGLE)

        assert session.id == f"WDC_WD80EFAX-68KNBN0_{SERIAL}"
        assert session.destructive
        assert session.pattern_mode is PatternMode.SINGLE
        assert session.tag == 'sdb'
        assert session.rotational is True
        assert session.usb is False
        assert session.size_bytes == SIZE_BYTES
        assert session.smart_args == ('-d', 'sat')
        assert session.node_serial == SERIAL

        epoch = int(clock.now().timestamp())
        assert Path(session.log_path).name == f"burnin-sdb-{session.id}-2026-10-18-{epoch}.log"
        assert Path(settings.status_dir).is_dir()
        assert Logger._session_handler is not None

    def test_without_log_attachment(self, factory):
        factory.create(DEVICE, RunMode.NON_DESTRUCTIVE, attach_log=False)
        assert Logger._session_handler is None

    def test_plan_touches_nothing(self, factory, runner, settings):
        session = factory.create(DEVICE, RunMode.PLAN)

        assert session.id == f"WDC_WD80EFAX-68KNBN0_{SERIAL}"
        assert runner.commands('smartctl') == []
        assert not Path(settings.log_dir).exists()
        assert not Path(settings.status_dir).exists()
        assert Logger._session_handler is None

    def test_usb_bridge(self, settings, clock):
        runner = script_device(FakeRunner(), tran='usb')
        session = SessionFactory(settings, runner, clock, inventory=FakeInventory(runner)).create(
            DEVICE, RunMode.NON_DESTRUCTIVE, attach_log=False
        )
        assert session.usb is True

    @pytest.mark.parametrize('lsblk_serial', ['0123456789ABCDEF', ''])
    def test_usb_bridge_serial_differs_from_drive(self, settings, clock, lsblk_serial):
        runner = script_device(FakeRunner(), serial=lsblk_serial, tran='usb')
        runner.script('smartctl', '--scan-open', stdout=f"{DEVICE} -d sat # {DEVICE} [SAT], ATA device\n")
        runner.script('smartctl', '-i', stdout=SMART_INFO)
        factory = SessionFactory(settings, runner, clock, inventory=FakeInventory(runner))

        session = factory.create(DEVICE, RunMode.NON_DESTRUCTIVE, attach_log=False)

        assert session.identity.serial == SERIAL
        assert session.node_serial == lsblk_serial
        assert factory.resolver.rebind(session) == DEVICE
        assert clock.sleeps == []


class TestEnvironmentChecks:

    def test_requires_root_outside_plan(self, factory):
        with patch('burnin_kit.session.is_root', return_value=False):
            with pytest.raises(EnvironmentCheckError, match="root"):
                factory.create(DEVICE, RunMode.NON_DESTRUCTIVE)
            factory.create(DEVICE, RunMode.PLAN)

    def test_required_tools(self, factory, settings):
        assert factory.required_tools(RunMode.PLAN) == PLAN_TOOLS
        assert factory.required_tools(RunMode.NON_DESTRUCTIVE) == DEVICE_TOOLS
        assert factory.required_tools(RunMode.DESTRUCTIVE)[-1] == 'badblocks'

        factory.settings = settings.replace(badblocks=False)
        assert 'badblocks' not in factory.required_tools(RunMode.DESTRUCTIVE)

    def test_missing_badblocks_only_matters_for_run(self, factory, runner):
        runner.missing.add('badblocks')
        factory.create(DEVICE, RunMode.NON_DESTRUCTIVE, attach_log=False)
        with pytest.raises(MissingToolError, match="badblocks"):
            factory.create(DEVICE, RunMode.DESTRUCTIVE)

    def test_partition_refused(self, settings, clock):
        runner = script_device(FakeRunner(), dev_type='part')
        factory = SessionFactory(settings, runner, clock, inventory=FakeInventory(runner))
        with pytest.raises(DeviceNotWholeDiskError):
            factory.create(DEVICE, RunMode.DESTRUCTIVE)

    def test_mounted_refused(self, settings, runner, clock):
        inventory = FakeInventory(runner, mounted=[('/dev/sdb1', '/')])
        with pytest.raises(DeviceMountedError):
            SessionFactory(settings, runner, clock, inventory=inventory).create(DEVICE, RunMode.PLAN)

    def test_not_a_block_device(self, settings, runner, clock):
        factory = SessionFactory(settings, runner, clock, inventory=FakeInventory(runner, present=()))
        with pytest.raises(EnvironmentCheckError, match="Not a block device"):
            factory.create(DEVICE, RunMode.PLAN)
