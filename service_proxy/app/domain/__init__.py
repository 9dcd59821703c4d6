"""
Domain helpers for the proxy service.

Date validity windows for date-keyed resources and the notification report
item view used by the enrichment and report caching stages.
"""

from .dates import DateValidityWindow, parse_date_param
from .reports import ReportItem, items_from_payload

__all__ = [
    "DateValidityWindow",
    "ReportItem",
    "items_from_payload",
    "parse_date_param",
]
