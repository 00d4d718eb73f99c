"""Offline-first sync and merge engine for exam preparation."""

__version__ = "0.1.0"
