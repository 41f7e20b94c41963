"""
SMART Self-Test Log Parser

Turns raw ``smartctl -l selftest`` and ``smartctl -c`` output into one of
four states. All phrase matching for self-test progress lives here, so
a change in smartctl's wording only touches this module.

Typical self-test log rows::

    Num  Test_Description    Status                  Remaining  LifeTime(hours)  LBA_of_first_error
    # 1  Extended offline    Self-test routine in progress 40%      1234         -
    # 2  Short offline       Completed without error       00%      1230         -
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SelfTestState(str, Enum):
    COMPLETED = 'completed'
    IN_PROGRESS = 'in_progress'
    ABORTED = 'aborted'
    UNREADABLE = 'unreadable'


@dataclass(frozen=True)
class SelfTestStatus:
    """
    Classified self-test state.

    Attributes:
        state:             One of SelfTestState.
        percent_remaining: Progress figure when the drive reports one.
        reason:            Matched log row, or why the output was unusable.
    """
    state: SelfTestState
    percent_remaining: Optional[int] = None
    reason: str = ''


class SelfTestLogParser:
    """
    Classifier for smartctl self-test output.

    Example:
        >>> parser = SelfTestLogParser()
        >>> status = parser.classify(selftest_log, 'long', capabilities)
        >>> status.state, status.percent_remaining
        (<SelfTestState.IN_PROGRESS: 'in_progress'>, 40)
    """

    # Test_Description column per ``smartctl -t`` kind
    TEST_PATTERNS = {
        'short': 'Short offline',
        'long': 'Extended offline',
        'extended': 'Extended offline',
        'conveyance': 'Conveyance',
    }

    _COMPLETED = re.compile(r'Completed without error', re.IGNORECASE)
    _IN_PROGRESS = re.compile(r'Self-test routine in progress', re.IGNORECASE)
    _FAILED = re.compile(r'Aborted|Interrupted|Fatal|error|failure', re.IGNORECASE)
    _ALREADY_RUNNING = re.compile(r"Can't start self-test without aborting current test", re.IGNORECASE)
    _PERCENT_REMAINING = re.compile(r'(\d{1,3})%\s+of\s+test\s+remaining', re.IGNORECASE)
    _ROW_PERCENT = re.compile(r'in progress\D{0,8}(\d{1,3})%', re.IGNORECASE)

    def classify(self, selftest_log: str, test_kind: str, capabilities: str = '') -> SelfTestStatus:
        """
        Classify the newest self-test log row for *test_kind*.

        Args:
            selftest_log: Output of ``smartctl -l selftest``.
            test_kind: ``short``, ``long``/``extended`` or ``conveyance``.
            capabilities: Output of ``smartctl -c``; an "in progress"
                execution status there overrides a stale history row.

        Returns:
            SelfTestStatus. Empty output or no matching row is UNREADABLE:
            the caller keeps polling and never advances on it.
        """
        if self._IN_PROGRESS.search(capabilities or ''):
            return SelfTestStatus(
                SelfTestState.IN_PROGRESS,
                self.parse_percent_remaining(capabilities),
                'self-test execution status: in progress',
            )

        if not selftest_log or not selftest_log.strip():
            return SelfTestStatus(SelfTestState.UNREADABLE, reason='self-test log empty')

        row = self.find_row(selftest_log, test_kind)
        if row is None:
            return SelfTestStatus(
                SelfTestState.UNREADABLE,
                reason=f"no '{self._pattern(test_kind)}' entry in self-test log",
            )

        if self._COMPLETED.search(row):
            return SelfTestStatus(SelfTestState.COMPLETED, 0, row)
        if self._IN_PROGRESS.search(row):
            percent = self.parse_percent_remaining(row)
            if percent is None:
                match = self._ROW_PERCENT.search(row)
                percent = int(match.group(1)) if match else None
            return SelfTestStatus(SelfTestState.IN_PROGRESS, percent, row)
        if self._FAILED.search(row):
            return SelfTestStatus(SelfTestState.ABORTED, reason=row)
        return SelfTestStatus(SelfTestState.UNREADABLE, reason=f"unrecognized status: {row}")

    def find_row(self, selftest_log: str, test_kind: str) -> Optional[str]:
        """First (newest) log row describing *test_kind*, stripped."""
        pattern = self._pattern(test_kind).lower()
        for line in selftest_log.splitlines():
            if pattern in line.lower():
                return ' '.join(line.split())
        return None

    def is_already_running(self, start_output: str) -> bool:
        """True when ``smartctl -t`` refused because another test is running."""
        return bool(self._ALREADY_RUNNING.search(start_output or ''))

    def parse_percent_remaining(self, text: str) -> Optional[int]:
        match = self._PERCENT_REMAINING.search(text or '')
        return int(match.group(1)) if match else None

    def _pattern(self, test_kind: str) -> str:
        try:
            return self.TEST_PATTERNS[test_kind]
        except KeyError:
            raise ValueError(f"Unknown self-test kind: {test_kind}")
