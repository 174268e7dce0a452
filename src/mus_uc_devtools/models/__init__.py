"""Data models for automation sessions."""

from .session import LogEntry, SessionState
