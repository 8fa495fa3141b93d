"""Shared helpers used across pubmirror modules."""
