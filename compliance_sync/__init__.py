"""Offline-first compliance log submission: durable queue, session and drain triggers."""

__version__ = "1.0.0"
