"""
notification.py — Notification payload kinds and the vendor request body.

A request carries either a template id or per-language headings/contents,
a tag filter list naming account numbers, and a `data` payload the mobile
client routes on (`notification_type`, plus poi_id / help_id / symptoms).
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    RISK_LEVEL_CHANGED = "RISK_LEVEL_CHANGED"
    BROADCAST_NEW_HELP = "BROADCAST_NEW_HELP"
    NOTIFY_HELP_ACCEPTED = "NOTIFY_HELP_ACCEPTED"
    ACCOUNT_SYMPTOM_FOLLOW_UP = "ACCOUNT_SYMPTOM_FOLLOW_UP"
    ACCOUNT_SYMPTOM_SPIKE = "ACCOUNT_SYMPTOM_SPIKE"
    BEHAVIOR_REPORT_ON_RISK_AREA = "BEHAVIOR_REPORT_ON_RISK_AREA"


class NotificationRequest(BaseModel):
    """POST /api/v1/notifications body. Dump with exclude_none=True."""

    app_id: str
    template_id: Optional[str] = None
    headings: Optional[dict[str, str]] = None
    contents: Optional[dict[str, str]] = None
    filters: list[dict[str, str]] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)
    existing_android_channel_id: str = "important_alert"
