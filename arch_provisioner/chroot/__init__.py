"""Change-rooted command execution."""

from .executor import RemoteExecutor


__all__ = ["RemoteExecutor"]
