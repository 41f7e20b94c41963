"""
Badblocks Package

Destructive multi-pass write/verify with a sector-error ledger.

Usage:
    from burnin_kit.badblocks import DestructiveScanRunner

    result = DestructiveScanRunner(runner, resolver, store, settings).run(session)
"""

from .exceptions import BadblocksError, BlockSizeError, DestructiveScanFailedError
from .runner import (
    MAX_BLOCK_SIZE,
    MAX_BLOCKS,
    DestructiveScanRunner,
    ScanResult,
    SectorErrorLedger,
    choose_block_size,
)

__all__ = [
    # Exceptions
    'BadblocksError',
    'BlockSizeError',
    'DestructiveScanFailedError',
    # Runner
    'DestructiveScanRunner',
    'ScanResult',
    'SectorErrorLedger',
    'choose_block_size',
    'MAX_BLOCKS',
    'MAX_BLOCK_SIZE',
]
