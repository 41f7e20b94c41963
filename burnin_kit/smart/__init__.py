"""
SMART Package

Self-test log parsing and the fail-closed self-test monitor.

Usage:
    from burnin_kit.smart import SelfTestMonitor

    monitor = SelfTestMonitor(runner, resolver, store, settings)
    result = monitor.run(session, 'short', Phase.SMART_SHORT)
"""

from .exceptions import SelfTestFailedError, SmartError
from .log_parser import SelfTestLogParser, SelfTestState, SelfTestStatus
from .monitor import TEST_LABELS, SelfTestMonitor, SelfTestOutcome, SelfTestResult

__all__ = [
    # Exceptions
    'SmartError',
    'SelfTestFailedError',
    # Parser
    'SelfTestLogParser',
    'SelfTestState',
    'SelfTestStatus',
    # Monitor
    'SelfTestMonitor',
    'SelfTestOutcome',
    'SelfTestResult',
    'TEST_LABELS',
]
