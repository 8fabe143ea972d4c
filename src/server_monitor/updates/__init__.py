"""
Self-update support for the server monitor.

The deployment is a git working copy; GitUpdateChecker fast-forwards it when
its remote has new commits.
"""

from server_monitor.updates.git_checker import GitUpdateChecker, run_git

__all__ = [
    "GitUpdateChecker",
    "run_git",
]
