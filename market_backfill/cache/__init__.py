"""Sentinel cache backed by Redis."""

from .sentinel import SentinelCache

__all__ = ["SentinelCache"]
