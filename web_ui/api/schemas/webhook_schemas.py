"""Webhook body schema; unknown keys pass through untouched"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, StrictStr


class EmbyWebhookBody(BaseModel):
    """
    Only the typed envelope fields are checked; the rest of the body is free-form.

    Each field may be omitted, but an explicit ``null`` is rejected.
    """
    model_config = ConfigDict(extra="allow")

    eventType: StrictStr = None
    event: StrictStr = None
    NotificationType: StrictStr = None
    eventId: StrictStr = None
    eventTime: StrictStr = None
    embyUserId: StrictStr = None
    payload: Dict[str, Any] = None
