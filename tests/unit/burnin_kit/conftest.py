"""
Pytest configuration and fixtures for burnin_kit unit tests.
"""

import pytest

from burnin_kit.config import BurnInConfig
from burnin_kit.device.models import DeviceIdentity, DeviceSession, PatternMode, RunMode
from burnin_kit.device.resolver import DeviceResolver
from burnin_kit.logger import Logger
from burnin_kit.status.store import StatusStore

from fakes import DEVICE, MODEL, SERIAL, SIZE_BYTES, FakeClock, FakeInventory, FakeRunner, script_device


@pytest.fixture(autouse=True)
def detach_session_log():
    """Never leak a session FileHandler between tests."""
    yield
    Logger.detach_session_log()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runner():
    return script_device(FakeRunner())


@pytest.fixture
def inventory(runner):
    return FakeInventory(runner)


@pytest.fixture
def settings(tmp_path):
    return BurnInConfig.build({
        'log_dir': str(tmp_path / 'logs'),
        'status_dir': str(tmp_path / 'status'),
    })


@pytest.fixture
def identity():
    return DeviceIdentity.from_raw(MODEL, SERIAL)


@pytest.fixture
def session(identity, tmp_path):
    log_path = tmp_path / 'logs' / 'burnin-sdb.log'
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text('')
    return DeviceSession(
        identity=identity,
        device_path=DEVICE,
        log_path=str(log_path),
        run_mode=RunMode.DESTRUCTIVE,
        pattern_mode=PatternMode.DEFAULT,
        rotational=True,
        usb=False,
        size_bytes=SIZE_BYTES,
    )


@pytest.fixture
def resolver(inventory, settings, clock):
    return DeviceResolver(inventory, settings, clock)


@pytest.fixture
def store(settings, clock):
    return StatusStore(settings, clock=clock)
