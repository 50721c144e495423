"""Logging, file I/O and restart helpers."""
