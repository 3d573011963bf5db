"""
Failure reports for operators.

When a handler's transaction is rolled back the coordinator hands the
original payload and the failure message to the sink, which publishes a
mail request to the support topic:

    {
        "topic": "terms.legacy.processor.action.email.support",
        "originator": "legacy-terms-processor",
        "timestamp": "2026-10-17T08:00:00.000Z",
        "mime-type": "application/json",
        "payload": {
            "subject": "User terms of use error subject",
            "toAddress": "...", "fromAddress": "...",
            "message": "User with id 42 has already agreed to terms with id 5001",
            "userId": 42, "termsOfUseId": 5001
        }
    }

Invariants:
    - report() never raises; a failed publish is logged and dropped
    - Original payload fields are copied as they arrived, unknown keys included
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from ..config import NotificationConfig
from ..events import EventKind, ReportGroup
from ..stream import EventStream

logger = logging.getLogger(__name__)

MAX_LISTED_ITEMS = 30


def summarize(value: Any) -> str:
    """Render a value for an error message, abbreviating long lists as Array(n)."""
    return json.dumps(_abbreviate(value), default=str, sort_keys=True)


def _abbreviate(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        if len(value) > MAX_LISTED_ITEMS:
            return f"Array({len(value)})"
        return [_abbreviate(item) for item in value]
    if isinstance(value, dict):
        return {key: _abbreviate(item) for key, item in value.items()}
    return value


def iso_timestamp(value: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    value = (value or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class NotificationSink:
    """Publishes failure reports to the support topic.

    Example:
        >>> sink = NotificationSink(stream, config.notification, config.topics.support)
        >>> await sink.report(EventKind.USER_AGREED, {"userId": 42}, "banned")
    """

    def __init__(self, stream: EventStream, config: NotificationConfig, topic: str) -> None:
        self.stream = stream
        self.config = config
        self.topic = topic
        self.sent = 0
        self.dropped = 0

    def subject_for(self, kind: EventKind) -> str:
        group = kind.report_group
        if group == ReportGroup.TERMS_OF_USE:
            return self.config.terms_of_use_subject
        if group == ReportGroup.RESOURCE_TERMS:
            return self.config.resource_terms_subject
        if group == ReportGroup.USER_TERMS_OF_USE:
            return self.config.user_terms_of_use_subject
        return self.config.docusign_envelope_subject

    def build_report(
        self,
        kind: EventKind,
        payload_fields: dict[str, Any],
        message: str,
    ) -> dict[str, Any]:
        """Build the support envelope for one failure."""
        payload = {
            "subject": self.subject_for(kind),
            "toAddress": self.config.recipient,
            "fromAddress": self.config.sender,
            "message": message,
        }
        payload.update(payload_fields)
        return {
            "topic": self.topic,
            "originator": self.config.originator,
            "timestamp": iso_timestamp(),
            "mime-type": "application/json",
            "payload": payload,
        }

    async def report(self, kind: EventKind, payload_fields: dict[str, Any], message: str) -> None:
        """Publish a failure report. Errors are logged, never raised."""
        try:
            report = self.build_report(kind, payload_fields, message)
            value = json.dumps(report, default=str).encode("utf-8")
            pos = await self.stream.publish(self.topic, kind.value, value)
        except Exception as e:
            self.dropped += 1
            logger.error(
                f"Failed to send failure report to {self.topic}: {e}",
                extra={"kind": kind.value, "report_message": message},
                exc_info=True,
            )
            return

        self.sent += 1
        logger.info(
            f"Sent failure report to {self.topic}",
            extra={"kind": kind.value, "position": str(pos)},
        )
