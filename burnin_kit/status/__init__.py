"""
Status Package

Phase model, atomic status store and the git checkpoint publisher.

Usage:
    from burnin_kit.status import CheckpointPublisher, Phase, StatusStore

    store = StatusStore(settings, publisher=CheckpointPublisher(settings))
    store.write(session, Phase.SMART_SHORT.done, "SMART short test completed")
"""

from .exceptions import CheckpointError, StatusError
from .models import Phase, StatusRecord
from .publisher import CheckpointPublisher, GitClient
from .store import LOG_TAIL, STATUS_JSON, STATUS_TXT, StatusStore, atomic_write_text, read_log_tail

__all__ = [
    # Exceptions
    'StatusError',
    'CheckpointError',
    # Models
    'Phase',
    'StatusRecord',
    # Store
    'StatusStore',
    'STATUS_JSON',
    'STATUS_TXT',
    'LOG_TAIL',
    'atomic_write_text',
    'read_log_tail',
    # Publisher
    'CheckpointPublisher',
    'GitClient',
]
