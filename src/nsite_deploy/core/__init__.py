"""Async plumbing shared by endpoint adapters and the sync pipeline."""

from .async_utils import gather_limited, run_sync, with_timeout

__all__ = ["gather_limited", "run_sync", "with_timeout"]
