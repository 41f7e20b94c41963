"""
Throughput / ETA Estimator

Rough duration forecast for the destructive pass. A short sequential read
is timed with dd (skipping the first GiBs, which are often faster than the
rest of the platter and sit behind bridge caches) and the full-disk pass
time is extrapolated from the device size. Plan mode never touches the
disk and uses a fixed assumed throughput instead.

Nothing downstream depends on these numbers; they are printed for the
operator only.
"""

from dataclasses import dataclass, field
from typing import List

from .clock import SYSTEM_CLOCK, Clock
from .config import BurnInSettings
from .device.inventory import DeviceInventory
from .device.models import PatternMode
from .logger import get_module_logger

logger = get_module_logger(__name__)

MIB = 1024 * 1024


@dataclass
class EtaReport:
    """
    Estimator output.

    ``lines`` is the operator-facing report; the numeric fields are kept
    for callers and tests.
    """
    device_path: str
    size_bytes: int = 0
    mib_per_s: int = 0
    sampled: bool = False
    pass_seconds: int = 0
    passes: int = 0
    total_seconds: int = 0
    lines: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return '\n'.join(self.lines)


class ThroughputEstimator:
    """
    Example:
        >>> estimator = ThroughputEstimator(inventory, settings)
        >>> print(estimator.estimate('/dev/sdb', True, PatternMode.DEFAULT, True, plan=True))
        Estimated sequential read throughput: ~200 MiB/s (PLAN mode: assumed; no disk I/O sample)
        Estimated full-disk pass time: ~20000s (~5h)
        Estimated badblocks time (default, 8 passes): ~160000s (~44h)
        (rough estimate: USB bridges, SMR zones and thermal throttling can shift it)
    """

    def __init__(self, inventory: DeviceInventory, settings: BurnInSettings, clock: Clock = SYSTEM_CLOCK):
        self.inventory = inventory
        self.settings = settings
        self.clock = clock

    def sample_throughput(self, device_path: str) -> int:
        """
        Time a direct-I/O read of ``eta_sample_mib`` MiB and return MiB/s (>= 1).

        Falls back to the assumed throughput when dd fails.
        """
        sample_mib = self.settings.eta_sample_mib
        skip_mib = self.settings.eta_sample_offset_gib * 1024
        command = [
            'dd', f"if={device_path}", 'of=/dev/null', 'bs=1M',
            f"count={sample_mib}", f"skip={skip_mib}", 'iflag=direct', 'status=none',
        ]
        start = self.clock.monotonic()
        result = self.inventory.runner.run(command, timeout=None)
        elapsed = int(self.clock.monotonic() - start)

        if not result.ok:
            logger.warning(f"dd read sample failed ({result.returncode}): {result.output.strip()}")
            return 0

        elapsed = max(elapsed, 1)
        return max(sample_mib // elapsed, 1)

    def estimate(
        self,
        device_path: str,
        rotational: bool,
        pattern_mode: PatternMode,
        badblocks_enabled: bool,
        plan: bool = False,
    ) -> EtaReport:
        """
        Project the destructive-pass duration.

        Args:
            device_path: Whole-disk device.
            rotational: Only rotational drives get a destructive pass.
            pattern_mode: ``default`` (8 passes) or ``single`` (2 passes).
            badblocks_enabled: Whether the destructive pass is enabled at all.
            plan: Use the assumed throughput instead of reading the disk.
        """
        report = EtaReport(device_path=device_path)
        report.size_bytes = self.inventory.size_bytes(device_path)
        if report.size_bytes <= 0:
            report.lines.append("ETA: unknown (could not read device size)")
            return report

        assumed = self.settings.eta_assumed_mib_per_s
        if plan:
            report.mib_per_s = assumed
            report.lines.append(
                f"Estimated sequential read throughput: ~{assumed} MiB/s (PLAN mode: assumed; no disk I/O sample)"
            )
        else:
            measured = self.sample_throughput(device_path)
            if measured:
                report.mib_per_s = measured
                report.sampled = True
                report.lines.append(
                    f"Estimated sequential read throughput: ~{measured} MiB/s "
                    f"(sampled {self.settings.eta_sample_mib} MiB)"
                )
            else:
                report.mib_per_s = assumed
                report.lines.append(
                    f"Estimated sequential read throughput: ~{assumed} MiB/s (assumed; read sample failed)"
                )

        report.pass_seconds = report.size_bytes // (report.mib_per_s * MIB)
        if badblocks_enabled and rotational:
            report.passes = PatternMode(pattern_mode).passes
            report.total_seconds = report.pass_seconds * report.passes

        report.lines.append(
            f"Estimated full-disk pass time: ~{report.pass_seconds}s (~{report.pass_seconds // 3600}h)"
        )
        if report.passes:
            report.lines.append(
                f"Estimated badblocks time ({PatternMode(pattern_mode).value}, {report.passes} passes): "
                f"~{report.total_seconds}s (~{report.total_seconds // 3600}h)"
            )
        else:
            report.lines.append("Badblocks: disabled or non-rotational; no badblocks ETA.")
        report.lines.append("(rough estimate: USB bridges, SMR zones and thermal throttling can shift it)")
        return report
