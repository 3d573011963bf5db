"""
Operator notification of failed events.
"""

from .sink import NotificationSink, iso_timestamp, summarize

__all__ = ["NotificationSink", "iso_timestamp", "summarize"]
