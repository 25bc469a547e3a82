"""Provision a bare disk into a mounted Btrfs root and unwind it on exit."""

from .__version__ import __version__


__all__ = ["__version__"]
