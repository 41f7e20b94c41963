"""
Unit tests for the no-device self-check.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from burnin_kit.selfcheck import SELFCHECK_DEVICE, SelfCheck
from burnin_kit.status.store import StatusStore

from fakes import FakeClock


def test_identity_is_timestamped(settings, clock):
    check = SelfCheck(settings, clock=clock)
    assert check.session.id == 'SELFTEST_2026-10-18-120000-000000'
    assert check.session.device_path == SELFCHECK_DEVICE
    assert check.session.tag == 'selftest'


def test_writes_three_records(settings, clock):
    check = SelfCheck(settings, clock=clock)

    records = check.run()

    assert [r.phase for r in records] == ['selftest_start', 'selftest_checkpoint', 'selftest_complete']
    assert all(r.ok and r.device_path == '(self-test)' for r in records)
    assert clock.sleeps == [1, 1]
    assert check.store.read(check.session.id) == records[-1]


def test_runs_within_one_second_never_collide(settings):
    first = SelfCheck(settings, clock=FakeClock(datetime(2026, 10, 18, 12, 0, 0, 1, tzinfo=timezone.utc)))
    second = SelfCheck(settings, clock=FakeClock(datetime(2026, 10, 18, 12, 0, 0, 2, tzinfo=timezone.utc)))

    first.run()
    second.run()

    assert first.session.id != second.session.id
    assert first.store.read(first.session.id).phase == 'selftest_complete'
    assert second.store.read(second.session.id).phase == 'selftest_complete'


def test_publishes_each_record(settings, clock, tmp_path):
    publisher = MagicMock()
    settings = settings.replace(repo_dir=str(tmp_path / 'repo'), auto_push=True)
    check = SelfCheck(settings, clock=clock, store=StatusStore(settings, publisher, clock))

    check.run()

    assert [c.args[1] for c in publisher.publish.call_args_list] == [
        'selftest_start', 'selftest_checkpoint', 'selftest_complete',
    ]
    assert (tmp_path / 'repo' / 'status' / check.session.id / 'status.json').exists()
