"""
Unit tests for StatusStore and StatusRecord.
"""

import json
import threading
from unittest.mock import MagicMock

import pytest

from burnin_kit.status.exceptions import StatusError
from burnin_kit.status.models import Phase, StatusRecord
from burnin_kit.status.store import LOG_TAIL, STATUS_JSON, STATUS_TXT, StatusStore, atomic_write_text, read_log_tail


class TestStatusRecord:

    def test_json_keys(self):
        record = StatusRecord('WDC_X_1', '/dev/sdb', 'smart_short_done', True, 'ok', '2026-10-18T12:00:00+00:00')
        data = json.loads(record.to_json())
        assert list(data) == ['id', 'device', 'phase', 'ok', 'message', 'timestamp']
        assert data['ok'] is True
        assert StatusRecord.from_json(record.to_json()) == record

    def test_text_line(self):
        ok = StatusRecord('A', '/dev/sdb', 'start', True, 'Starting burn-in', 'T')
        failed = StatusRecord('A', '/dev/sdb', 'badblocks_failed', False, 'exit 1', 'T')
        assert ok.to_text() == "T | OK   | start | Starting burn-in\n"
        assert failed.to_text() == "T | FAIL | badblocks_failed | exit 1\n"

    def test_phase_labels(self):
        assert Phase.SMART_LONG.started == 'smart_long_start'
        assert Phase.BADBLOCKS.skipped == 'badblocks_skipped'
        assert Phase.SMART_SHORT_POST.is_post
        assert not Phase.SMART_SHORT.is_post


class TestAtomicWrite:

    def test_replaces_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / 'nested' / 'status.txt'
        atomic_write_text(target, 'one\n')
        atomic_write_text(target, 'two\n')
        assert target.read_text() == 'two\n'
        assert [p.name for p in target.parent.iterdir()] == ['status.txt']

    def test_log_tail(self, tmp_path):
        log = tmp_path / 'session.log'
        log.write_text(''.join(f"line {i}\n" for i in range(500)))
        tail = read_log_tail(str(log), 200)
        assert tail.splitlines()[0] == 'line 300'
        assert len(tail.splitlines()) == 200

    def test_log_tail_missing_file(self, tmp_path):
        assert read_log_tail(str(tmp_path / 'nope.log'), 200) == ''


class TestStatusStore:

    def test_write_and_read(self, store, session):
        written = store.write(session, Phase.START.value, "Starting burn-in")

        directory = store.identity_dir(session.id)
        assert (directory / STATUS_JSON).exists()
        assert (directory / STATUS_TXT).read_text() == written.to_text()
        assert not (directory / LOG_TAIL).exists()
        assert store.read(session.id) == written
        assert written.timestamp == '2026-10-18T12:00:00+00:00'

    def test_read_unknown_identity(self, store):
        assert store.read('NOBODY') is None

    def test_failure_captures_log_tail(self, store, session):
        with open(session.log_path, 'w') as f:
            f.writelines(f"badblocks: line {i}\n" for i in range(300))

        store.write(session, Phase.BADBLOCKS.failed, "badblocks reported errors", ok=False)

        tail = (store.identity_dir(session.id) / LOG_TAIL).read_text().splitlines()
        assert len(tail) == 200
        assert tail[-1] == 'badblocks: line 299'

    def test_rerun_drops_previous_failure_tail(self, settings, session, tmp_path, clock):
        repo = tmp_path / 'repo'
        store = StatusStore(settings.replace(repo_dir=str(repo)), clock=clock)
        store.write(session, Phase.SMART_LONG.failed, "aborted", ok=False)
        assert (repo / 'status' / session.id / LOG_TAIL).exists()

        store.write(session, Phase.START.value, "Starting burn-in")

        assert not (store.identity_dir(session.id) / LOG_TAIL).exists()
        assert not (repo / 'status' / session.id / LOG_TAIL).exists()

    def test_tail_kept_after_later_success_phases(self, store, session):
        store.write(session, Phase.SMART_LONG.failed, "aborted", ok=False)
        store.write(session, Phase.SMART_SHORT.started, "Starting SMART short test")
        assert (store.identity_dir(session.id) / LOG_TAIL).exists()

    def test_finalized(self, store, session):
        assert not store.finalized
        store.write(session, Phase.START.value)
        assert not store.finalized
        store.write(session, Phase.COMPLETE.value)
        assert store.finalized

    def test_failure_is_final(self, store, session):
        store.write(session, Phase.SMART_SHORT.failed, "aborted", ok=False)
        assert store.finalized

    def test_local_write_error_raises(self, settings, session, tmp_path, clock):
        blocker = tmp_path / 'not-a-dir'
        blocker.write_text('')
        store = StatusStore(settings.replace(status_dir=str(blocker)), clock=clock)
        with pytest.raises(StatusError):
            store.write(session, Phase.START.value)

    def test_mirrors_to_repo(self, settings, session, tmp_path, clock):
        repo = tmp_path / 'repo'
        store = StatusStore(settings.replace(repo_dir=str(repo)), clock=clock)

        store.write(session, Phase.SMART_SHORT.started, "Starting SMART short test")

        mirrored = repo / 'status' / session.id / STATUS_JSON
        assert json.loads(mirrored.read_text())['phase'] == 'smart_short_start'

    def test_mirror_error_is_not_raised(self, settings, session, tmp_path, clock):
        blocker = tmp_path / 'repo-file'
        blocker.write_text('')
        store = StatusStore(settings.replace(repo_dir=str(blocker)), clock=clock)

        record = store.write(session, Phase.START.value)
        assert store.read(session.id) == record

    def test_publishes_when_auto_push(self, settings, session, tmp_path, clock):
        publisher = MagicMock()
        store = StatusStore(settings.replace(repo_dir=str(tmp_path / 'repo'), auto_push=True), publisher, clock)

        store.write(session, Phase.SMART_LONG.done, "SMART extended/long test completed")
        publisher.publish.assert_called_once_with(session.id, 'smart_long_done')

    def test_no_publish_without_auto_push(self, settings, session, clock):
        publisher = MagicMock()
        StatusStore(settings, publisher, clock).write(session, Phase.START.value)
        publisher.publish.assert_not_called()

    def test_publisher_exception_is_logged(self, settings, session, clock):
        publisher = MagicMock()
        publisher.publish.side_effect = RuntimeError("network down")
        store = StatusStore(settings.replace(auto_push=True), publisher, clock)

        record = store.write(session, Phase.START.value)
        assert store.read(session.id) == record

    def test_concurrent_readers_never_see_partial_records(self, store, session):
        phases = [p.started for p in Phase if p is not Phase.FATAL_EXIT]
        errors = []
        done = threading.Event()

        def writer():
            try:
                for i in range(40):
                    store.write(session, phases[i % len(phases)], "x" * (i * 97 % 4000))
            except Exception as e:
                errors.append(e)

        def reader():
            while not done.is_set():
                try:
                    record = store.read(session.id)
                    if record is not None:
                        assert record.phase in phases
                except Exception as e:
                    errors.append(e)
                    return

        writers = [threading.Thread(target=writer) for _ in range(3)]
        readers = [threading.Thread(target=reader) for _ in range(2)]
        for thread in readers + writers:
            thread.start()
        for thread in writers:
            thread.join()
        done.set()
        for thread in readers:
            thread.join()

        assert errors == []
