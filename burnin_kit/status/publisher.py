"""
Checkpoint Publisher

Commits and pushes one identity's status files in a shared git
repository. Several burn-in processes may publish into the same checkout
at once and there is no lock manager: each process only ever stages its
own ``status/<ID>/`` files and converges through bounded retries with
randomized jitter. That guarantees progress under contention, not mutual
exclusion.
"""

import random
from pathlib import Path
from typing import List, Optional, Sequence

from ..clock import SYSTEM_CLOCK, Clock
from ..config import BurnInSettings
from ..logger import get_module_logger
from ..process_manager import ToolResult, ToolRunner
from .exceptions import CheckpointError

logger = get_module_logger(__name__)

STATUS_FILES = ('status.json', 'status.txt', 'log-tail.txt')


class GitClient:
    """
    Thin wrapper over the git command line for one working tree.

    Example:
        >>> git = GitClient('/srv/burnin-status', ToolRunner())
        >>> git.is_locked()
        False
    """

    def __init__(self, repo_dir: str, runner: ToolRunner):
        self.repo_dir = Path(repo_dir)
        self.runner = runner

    def is_repo(self) -> bool:
        return (self.repo_dir / '.git').exists()

    def is_locked(self) -> bool:
        """True while another git process holds the index lock."""
        return (self.repo_dir / '.git' / 'index.lock').exists()

    def add(self, paths: Sequence[str]) -> ToolResult:
        return self._git('add', '--', *paths)

    def tracked(self, paths: Sequence[str]) -> List[str]:
        """The subset of *paths* the index still knows about."""
        if not paths:
            return []
        result = self._git('ls-files', '--', *paths)
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def has_staged_changes(self, paths: Sequence[str]) -> bool:
        """
        Raises:
            CheckpointError: If git cannot compare the index.
        """
        result = self._git('diff', '--cached', '--quiet', '--', *paths)
        if result.returncode == 0:
            return False
        if result.returncode == 1:
            return True
        raise CheckpointError(f"git diff failed: {result.output.strip()}")

    def commit(self, message: str, paths: Sequence[str]) -> ToolResult:
        # Pathspec commit: changes other sessions staged stay out of this commit
        return self._git('commit', '-m', message, '--', *paths)

    def push(self, remote: str, branch: str) -> ToolResult:
        return self._git('push', remote, f"HEAD:{branch}")

    def pull_rebase(self, remote: str, branch: str) -> ToolResult:
        result = self._git('pull', '--rebase', remote, branch)
        if not result.ok:
            self._git('rebase', '--abort')
        return result

    def _git(self, *args: str) -> ToolResult:
        return self.runner.run(['git', '-C', str(self.repo_dir), *args], merge_stderr=True)


class CheckpointPublisher:
    """
    Best-effort commit and push of status checkpoints.

    Protocol per attempt (at most ``checkpoint_attempts`` attempts):

    1. If ``.git/index.lock`` exists, sleep a random lock wait and retry.
    2. Stage this identity's status files.
    3. Nothing staged: done.
    4. Commit with ``burnin(<ID>): <phase>``.
    5. Push ``HEAD`` to the configured remote/branch.
    6. On failure, rebase onto the remote branch, back off randomly, retry.

    A commit that was made but not pushed is pushed by the next attempt
    instead of being re-staged.

    Example:
        >>> publisher = CheckpointPublisher(settings)
        >>> publisher.publish('WDC_WD80EFAX_ABC123', 'smart_long_done')
        True
    """

    def __init__(
        self,
        settings: BurnInSettings,
        runner: Optional[ToolRunner] = None,
        clock: Clock = SYSTEM_CLOCK,
        rng: Optional[random.Random] = None,
        git: Optional[GitClient] = None,
    ):
        self.settings = settings
        self.clock = clock
        self.rng = rng or random.Random()
        self.git = git or GitClient(settings.repo_dir, runner or ToolRunner())

    def is_configured(self) -> bool:
        return bool(self.settings.repo_dir and self.settings.git_remote and self.git.is_repo())

    def status_paths(self, identity_id: str, existing: bool = True) -> List[str]:
        """Repository-relative status files of *identity_id* that exist (existing=False: that are gone)."""
        base = Path('status') / identity_id
        return [
            (base / name).as_posix()
            for name in STATUS_FILES
            if (self.git.repo_dir / base / name).exists() == existing
        ]

    def publish(self, identity_id: str, phase: str) -> bool:
        """
        Commit and push the identity's status files.

        Returns:
            True if the checkpoint is on the remote (or there was nothing to
            commit), False if it was skipped or every attempt failed. Never
            raises for git failures.
        """
        if not self.is_configured():
            logger.info(f"Checkpoint for {identity_id} skipped: shared repository or remote not configured")
            return False

        paths = self.status_paths(identity_id)
        if not paths:
            logger.warning(f"Checkpoint for {identity_id} skipped: no status files in {self.git.repo_dir}")
            return False

        settings = self.settings
        remote, branch = settings.git_remote, settings.git_branch
        attempts = settings.checkpoint_attempts
        pending_push = False

        for attempt in range(1, attempts + 1):
            if self.git.is_locked():
                wait = self.rng.uniform(settings.checkpoint_lock_wait_min, settings.checkpoint_lock_wait_max)
                logger.debug(f"git index locked (attempt {attempt}/{attempts}), waiting {wait:.1f}s")
                self.clock.sleep(wait)
                continue

            try:
                if not pending_push:
                    if not self._stage_and_commit(identity_id, phase, paths):
                        return True
                    pending_push = True
                self._check(self.git.push(remote, branch), 'git push')
                logger.info(f"Checkpoint pushed: burnin({identity_id}): {phase}")
                return True
            except CheckpointError as e:
                logger.debug(f"Checkpoint attempt {attempt}/{attempts} failed: {e}")
                if pending_push:
                    self.git.pull_rebase(remote, branch)
                self.clock.sleep(self.rng.uniform(settings.checkpoint_backoff_min, settings.checkpoint_backoff_max))

        logger.warning(
            f"Failed to push git checkpoint for {identity_id} after {attempts} attempts (lock contention?)"
        )
        return False

    def _stage_and_commit(self, identity_id: str, phase: str, paths: List[str]) -> bool:
        """Stage and commit *paths*; False when there was nothing to commit."""
        # Removed files the index still tracks are staged as deletions
        paths = paths + self.git.tracked(self.status_paths(identity_id, existing=False))
        self._check(self.git.add(paths), 'git add')
        if not self.git.has_staged_changes(paths):
            logger.debug(f"Checkpoint for {identity_id}: nothing to commit")
            return False
        self._check(self.git.commit(f"burnin({identity_id}): {phase}", paths), 'git commit')
        return True

    @staticmethod
    def _check(result: ToolResult, step: str) -> None:
        if not result.ok:
            raise CheckpointError(f"{step} failed ({result.returncode}): {result.output.strip()}")
