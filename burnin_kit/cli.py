"""
Command-line entry point.

    sudo disk-burnin --device /dev/sdX --plan      # plan only: no SMART tests, no badblocks
    sudo disk-burnin --device /dev/sdX             # SMART-only (non-destructive)
    sudo disk-burnin --device /dev/sdX --run       # full run (DESTRUCTIVE: includes badblocks)
    sudo disk-burnin --multi "/dev/sdb /dev/sdc" --run
    disk-burnin --self-test                        # no disk: status files + optional git push

Exit status: 0 success, 1 burn-in or environment failure, 2 usage or
configuration error.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .config import BurnInConfig, BurnInSettings
from .controller import BurnInController
from .device.models import PatternMode, RunMode
from .exceptions import BurnInConfigError, BurnInError
from .logger import Logger, get_module_logger
from .orchestrator import MultiDeviceOrchestrator
from .process_manager import ToolRunner
from .selfcheck import SelfCheck
from .session import SessionFactory

logger = get_module_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

# argparse dest -> settings field for flags that override configuration
FLAG_OVERRIDES = {
    'abort_smart': 'abort_smart',
    'conveyance': 'smart_conveyance',
    'badblocks': 'badblocks',
    'patterns': 'bb_patterns',
    'block_size': 'bb_block_size',
    'batch_blocks': 'bb_batch_blocks',
    'log_dir': 'log_dir',
    'status_dir': 'status_dir',
    'repo_dir': 'repo_dir',
    'git_remote': 'git_remote',
    'git_branch': 'git_branch',
    'auto_push': 'auto_push',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='disk-burnin',
        description="Drive burn-in: SMART self-tests plus optional destructive badblocks, "
                    "with status snapshots and optional git checkpoint pushes. "
                    "SAFE BY DEFAULT: nothing destructive happens without --run.",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument('--device', metavar='PATH',
                        help="Whole-disk block device, e.g. /dev/sdb (not a partition)")
    target.add_argument('--multi', metavar='LIST',
                        help="Space-separated devices to test in parallel via tmux")
    target.add_argument('--self-test', action='store_true',
                        help="No disk required: write test status records and optionally push them")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--plan', action='store_true',
                      help="Print plan/ETA only; no SMART tests, no badblocks")
    mode.add_argument('--run', action='store_true',
                      help="DESTRUCTIVE: include the badblocks write/verify pass")

    smart = parser.add_argument_group('SMART')
    smart.add_argument('--abort-smart', action='store_true', default=None,
                       help="Abort an in-progress self-test (smartctl -X) before starting")
    smart.add_argument('--conveyance', action='store_true', default=None,
                       help="Also run the conveyance self-test")

    bb = parser.add_argument_group('badblocks')
    bb.add_argument('--no-badblocks', dest='badblocks', action='store_false', default=None,
                    help="Never run badblocks, even with --run")
    bb.add_argument('--patterns', choices=[m.value for m in PatternMode], default=None,
                    help="default: 4 patterns (8 passes); single: 0xaa only (2 passes)")
    bb.add_argument('--block-size', type=int, default=None, metavar='BYTES',
                    help="Requested badblocks -b; raised automatically on very large disks")
    bb.add_argument('--batch-blocks', type=int, default=None, metavar='N',
                    help="badblocks -c (blocks tested at a time)")

    out = parser.add_argument_group('output')
    out.add_argument('--log-dir', default=None, metavar='DIR')
    out.add_argument('--status-dir', default=None, metavar='DIR')
    out.add_argument('--repo-dir', default=None, metavar='DIR',
                     help="Shared git checkout that receives status/<ID>/ mirrors")
    out.add_argument('--git-remote', default=None, metavar='REMOTE')
    out.add_argument('--git-branch', default=None, metavar='BRANCH')
    out.add_argument('--auto-push', action='store_true', default=None,
                     help="Commit and push status on every checkpoint")

    parser.add_argument('--config', metavar='FILE',
                        help="YAML file with a 'burnin:' section (flags and environment win)")
    parser.add_argument('-v', '--verbose', action='store_true', help="Show DEBUG output on the console")
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def flag_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = {}
    for dest, key in FLAG_OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[key] = value
    return overrides


def build_settings(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> BurnInSettings:
    """defaults < config file < environment < command-line flags"""
    file_layer = BurnInConfig.load_config_file(args.config) if args.config else None
    return BurnInConfig.build(file_layer, BurnInConfig.from_environment(environ), flag_overrides(args))


def run_mode_of(args: argparse.Namespace) -> RunMode:
    if args.plan:
        return RunMode.PLAN
    if args.run:
        return RunMode.DESTRUCTIVE
    return RunMode.NON_DESTRUCTIVE


def run_single(settings: BurnInSettings, device: str, run_mode: RunMode, runner: ToolRunner) -> bool:
    pattern_mode = PatternMode(settings.bb_patterns)
    session = SessionFactory(settings, runner).create(device, run_mode, pattern_mode)
    controller = BurnInController(session, settings, runner=runner)
    if run_mode is RunMode.PLAN:
        controller.plan()
        return True
    return controller.run()


def run_selfcheck(settings: BurnInSettings, runner: ToolRunner) -> bool:
    check = SelfCheck(settings, runner)
    Logger.attach_session_log(check.session.log_path)
    check.run()
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.device or args.multi or args.self_test):
        parser.print_usage(sys.stderr)
        print("error: one of --device, --multi or --self-test is required", file=sys.stderr)
        return EXIT_USAGE

    Logger.init_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = build_settings(args)
    except BurnInConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_USAGE

    runner = ToolRunner()
    try:
        if args.self_test:
            ok = run_selfcheck(settings, runner)
        elif args.multi:
            ok = MultiDeviceOrchestrator(settings, runner).run(
                args.multi.split(), run_mode_of(args), PatternMode(settings.bb_patterns)
            )
        else:
            ok = run_single(settings, args.device, run_mode_of(args), runner)
    except BurnInError as e:
        logger.error(str(e))
        return EXIT_FAILED
    finally:
        Logger.flush()

    return EXIT_OK if ok else EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
