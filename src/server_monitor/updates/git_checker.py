"""
Git-based update checker for the running deployment.

This module implements the GitUpdateChecker class that:
- Compares the local HEAD with its remote-tracking branch
- Fast-forwards the working copy when the remote has new commits
- Refuses to touch a working copy with uncommitted local modifications
- Rate-limits remote checks to one per configured interval
- Appends every decision, with a timestamp, to a dedicated log file
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from pathlib import Path

from server_monitor.errors import Outcome, UpdateCheckError
from server_monitor.logging import close_file_logger, get_logger, open_file_logger

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_MIN_CHECK_INTERVAL = 300  # seconds
DEFAULT_GIT_TIMEOUT = 60.0  # seconds

DECISION_LOGGER_NAME = "server_monitor.updates.decisions"


async def run_git(
    *args: str,
    cwd: str | Path,
    timeout: float = DEFAULT_GIT_TIMEOUT,
) -> Outcome[str]:
    """
    Run a git command in ``cwd``.

    Args:
        *args: Arguments to pass to git.
        cwd: Working copy to run the command in.
        timeout: Command timeout in seconds.

    Returns:
        Outcome carrying the stripped stdout, or an UpdateCheckError when git
        is missing, times out or exits non-zero.
    """
    command = " ".join(("git", *args))
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        return Outcome.failure(
            UpdateCheckError(
                f"git not available: {e}",
                details={"command": command, "cwd": str(cwd)},
            )
        )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        return Outcome.failure(
            UpdateCheckError(
                f"{command} timed out after {timeout}s",
                details={"command": command, "cwd": str(cwd)},
            )
        )

    out = stdout.decode(errors="replace").strip() if stdout else ""
    err = stderr.decode(errors="replace").strip() if stderr else ""

    if proc.returncode:
        return Outcome.failure(
            UpdateCheckError(
                f"{command} failed: {err or out}",
                details={
                    "command": command,
                    "returncode": proc.returncode,
                    "stderr": err,
                },
            )
        )
    return Outcome.success(out)


# =============================================================================
# GitUpdateChecker Class
# =============================================================================


class GitUpdateChecker:
    """
    Pulls new commits of the deployment's working copy from its remote.

    The rate limit is shared by every caller of one checker instance: the
    last-check time is claimed under a lock, so concurrent requests arriving
    inside the interval cannot both reach git.

    Example:
        >>> checker = GitUpdateChecker("/opt/server-monitor", "git-auto-update.log")
        >>> if await checker.check_and_update():
        ...     await scheduler.run_cycle()
    """

    def __init__(
        self,
        repo_path: str | Path,
        log_file: str | Path | None = None,
        *,
        remote: str = "origin",
        min_interval_seconds: float = DEFAULT_MIN_CHECK_INTERVAL,
        git_timeout: float = DEFAULT_GIT_TIMEOUT,
        enabled: bool = True,
    ) -> None:
        """
        Initialize the GitUpdateChecker.

        Args:
            repo_path: Working copy to keep in sync.
            log_file: Append-only decision log. Relative paths resolve
                against ``repo_path``. None disables the file.
            remote: Remote whose branch of the same name is tracked.
            min_interval_seconds: Minimum time between two remote checks.
            git_timeout: Timeout applied to each git command.
            enabled: When False, ``check_and_update`` always returns False.
        """
        self.repo_path = Path(repo_path)
        self.remote = remote
        self.min_interval_seconds = min_interval_seconds
        self.git_timeout = git_timeout
        self.enabled = enabled
        self._last_check: float | None = None
        self._lock = asyncio.Lock()
        self._decision_logger: logging.Logger | None = None

        if log_file is not None:
            path = Path(log_file)
            if not path.is_absolute():
                path = self.repo_path / path
            self.log_file: Path | None = path
            self._setup_decision_log(path)
        else:
            self.log_file = None

    def _setup_decision_log(self, path: Path) -> None:
        # Per-instance logger name: each checker owns exactly its own file
        try:
            self._decision_logger = open_file_logger(
                f"{DECISION_LOGGER_NAME}.{id(self):x}", path
            )
        except OSError as e:
            logger.error(
                "Failed to open update decision log",
                extra={"path": str(path), "error": str(e)},
            )
            self._decision_logger = None

    def close(self) -> None:
        """Close the decision log file."""
        if self._decision_logger is not None:
            close_file_logger(self._decision_logger)
            self._decision_logger = None

    def _log(self, message: str, level: int = logging.INFO, **extra: object) -> None:
        """Record a decision in the application log and the decision file."""
        logger.log(level, message, extra=extra or None)
        if self._decision_logger is not None:
            timestamp = datetime.now(UTC).isoformat()
            self._decision_logger.info(f"[{timestamp}] {message}")

    async def _claim_check_slot(self) -> bool:
        """Take the rate-limit slot if the interval has elapsed."""
        async with self._lock:
            now = time.monotonic()
            if (
                self._last_check is not None
                and now - self._last_check < self.min_interval_seconds
            ):
                return False
            self._last_check = now
            return True

    async def _git(self, *args: str) -> Outcome[str]:
        return await run_git(*args, cwd=self.repo_path, timeout=self.git_timeout)

    async def check_and_update(self) -> bool:
        """
        Pull new commits from the remote if there are any.

        Returns:
            True only when new commits were pulled into the working copy.
            Skipped, failed and no-op checks return False.
        """
        if not self.enabled:
            return False

        if not await self._claim_check_slot():
            return False

        self._log("Checking remote for updates...")

        fetched = await self._git("remote", "update", self.remote)
        if not fetched.ok:
            self._fail("Failed to fetch remote updates, retrying on a later request", fetched)
            return False

        local_hash = await self._git("rev-parse", "HEAD")
        branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        if not branch.ok or not branch.value:
            self._fail("Failed to resolve local branch, retrying on a later request", branch)
            return False

        remote_hash = await self._git("rev-parse", f"{self.remote}/{branch.value}")
        if not local_hash.ok or not remote_hash.ok:
            self._fail(
                "Failed to resolve commit hashes, retrying on a later request",
                local_hash if not local_hash.ok else remote_hash,
            )
            return False

        if local_hash.value == remote_hash.value:
            self._log("No updates on remote")
            return False

        status = await self._git("status", "--porcelain", "--untracked-files=no")
        if not status.ok:
            self._fail("Failed to inspect working copy, skipping update", status)
            return False
        if status.value:
            self._log(
                "Remote has updates but the working copy has local modifications; "
                "not pulling",
                logging.WARNING,
                local=local_hash.value,
                remote=remote_hash.value,
            )
            return False

        self._log(
            "Remote has updates, pulling...",
            local=local_hash.value,
            remote=remote_hash.value,
        )
        pulled = await self._git("pull", "--ff-only", self.remote, branch.value)
        if not pulled.ok:
            self._fail("Pull failed", pulled)
            return False
        if not pulled.value:
            self._log("Pull produced no output, treating as no update", logging.WARNING)
            return False

        self._log(f"Pull succeeded: {pulled.value}")
        return True

    def _fail(self, message: str, outcome: Outcome[str]) -> None:
        error = outcome.error.message if outcome.error else "unknown error"
        self._log(f"{message}: {error}", logging.WARNING)
