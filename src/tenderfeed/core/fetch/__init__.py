"""Fetch utilities - throttling and retries."""

from .retries import RetryConfig, build_retrying
from .throttling import HostThrottle, PolitenessWindow, pause

__all__ = [
    "RetryConfig",
    "build_retrying",
    "HostThrottle",
    "PolitenessWindow",
    "pause",
]
