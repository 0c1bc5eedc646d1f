"""Mobile push notification route.

Lets an operator send a flood alert to selected mobile app users.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from rainalert.api.deps import get_notifier
from rainalert.monitoring.notification import PushNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class PushRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient_ids: list[str] = Field(..., alias="recipientIds", min_length=1)
    message: str = Field(..., min_length=1, max_length=2000)


@router.post("/push")
async def push_notification(
    payload: PushRequest,
    notifier: PushNotifier = Depends(get_notifier),
) -> Any:
    """Send a push notification through the external push service."""
    delivered = await notifier.send_alert(payload.recipient_ids, payload.message)
    if not delivered:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "message": "Push notification could not be delivered."},
        )
    logger.info("Operator push notification sent to %d user(s)", len(payload.recipient_ids))
    return {"success": True}
