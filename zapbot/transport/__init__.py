"""Messaging transport collaborators."""

from zapbot.transport.base import BatchCallback, Session, Transport

__all__ = ["BatchCallback", "Session", "Transport"]
