"""Batch operation orchestration with upload progress streaming for ad accounts."""

__version__ = "1.0.0"
