"""
Emby Webhook Routes

Public endpoint called by the Emby server. The shared secret may be passed
as the ``secret`` query parameter (what Emby's webhook URL field allows) or
the ``X-Webhook-Secret`` header.

Bodies arrive either as JSON or, from Emby's built-in webhooks, as a form
whose ``data`` field holds the JSON document.
"""

import hmac
import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.responses import JSONResponse

from config import settings
from membership.database import get_db
from membership.webhooks import process_webhook
from utils.logger import logger
from web_ui.api.middleware.errors import validation_issues
from web_ui.api.schemas.webhook_schemas import EmbyWebhookBody

router = APIRouter()

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def verify_webhook_secret(
    secret: Optional[str] = Query(None),
    x_webhook_secret: Optional[str] = Header(None),
) -> None:
    provided = secret or x_webhook_secret or ""
    if not hmac.compare_digest(provided.encode("utf-8"), settings.EMBY_WEBHOOK_SECRET.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


async def _read_body(request: Request, content_type: str) -> Any:
    try:
        if content_type.startswith(FORM_CONTENT_TYPES):
            form = await request.form()
            data = form.get("data")
            return json.loads(data) if isinstance(data, str) else None
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@router.post("/emby", dependencies=[Depends(verify_webhook_secret)])
async def emby_webhook(request: Request, db: Session = Depends(get_db)):
    content_type = request.headers.get("content-type", "")
    body = await _read_body(request, content_type)

    if not isinstance(body, dict):
        logger.warning(
            f"[webhook] invalid payload contentType={content_type or None} "
            f"bodyType={type(body).__name__}"
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid webhook payload")

    try:
        EmbyWebhookBody.model_validate(body)
    except ValidationError as e:
        logger.warning(f"[webhook] invalid payload contentType={content_type or None}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "invalid webhook payload", "issues": validation_issues(e.errors())},
        )

    return await process_webhook(db, body)
