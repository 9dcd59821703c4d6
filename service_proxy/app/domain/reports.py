"""
Space-weather notification items.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from .dates import parse_iso_datetime


REPORT_MESSAGE_TYPE = "Report"

# Wire field names used by the upstream notifications feed
MESSAGE_TYPE_FIELD = "messageType"
ISSUE_TIME_FIELD = "messageIssueTime"
BODY_FIELD = "messageBody"
ENRICHMENT_FIELD = "processedMessage"


class ReportItem:
    """
    View over one notification dict.

    The item wraps the upstream dict rather than copying it, so attaching an
    enrichment is visible in the payload returned to clients.
    """

    __slots__ = ("payload",)

    def __init__(self, payload: Dict[str, Any]):
        self.payload = payload

    @property
    def message_type(self) -> Optional[str]:
        return self.payload.get(MESSAGE_TYPE_FIELD)

    @property
    def issue_time(self) -> Optional[datetime]:
        return parse_iso_datetime(self.payload.get(ISSUE_TIME_FIELD))

    @property
    def raw_body(self) -> str:
        body = self.payload.get(BODY_FIELD)
        return body if isinstance(body, str) else ""

    @property
    def enrichment(self) -> Optional[Dict[str, Any]]:
        return self.payload.get(ENRICHMENT_FIELD)

    @enrichment.setter
    def enrichment(self, value: Dict[str, Any]) -> None:
        self.payload[ENRICHMENT_FIELD] = value

    @property
    def is_report(self) -> bool:
        return self.message_type == REPORT_MESSAGE_TYPE

    @property
    def is_enrichable(self) -> bool:
        return self.is_report and bool(self.raw_body.strip())

    def __repr__(self) -> str:
        return f"ReportItem(type={self.message_type!r}, issued={self.payload.get(ISSUE_TIME_FIELD)!r})"


def items_from_payload(payload: Any) -> List[ReportItem]:
    """Wrap every dict element of a list payload; anything else yields no items."""
    if not isinstance(payload, list):
        return []
    return [ReportItem(entry) for entry in payload if isinstance(entry, dict)]
