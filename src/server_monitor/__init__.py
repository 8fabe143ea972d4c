"""
Server Monitor - rolling host metrics over HTTP.

This package samples CPU, RAM and disk utilization once per sampling interval,
keeps a rolling window of samples with summary statistics, persists them to a
JSON snapshot and serves them from a single HTTP endpoint. It can also keep its
own git working copy in sync with the remote.
"""

__version__ = "0.1.0"
