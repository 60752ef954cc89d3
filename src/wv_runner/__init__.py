"""Supervised runner for the Claude Code agent with daily hour quotas."""

__version__ = "0.3.0"
