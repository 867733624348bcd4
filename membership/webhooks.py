"""
Emby webhook processing.

Every inbound event is stored under an event key that is unique in the
database. New-content events are keyed by the media they announce, so
repeated deliveries (or every episode of a series) collapse into a single
notification; a duplicate key short-circuits before any email is sent.
"""

import json
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from membership.dates import format_display_time, parse_datetime
from membership.email_service import EmailType, send_email
from membership.ingestion import (
    MEDIA_MOVIE,
    MEDIA_SERIES,
    IngestionInfo,
    as_obj,
    is_test_event,
    parse_ingestion_info,
    pick_text,
)
from membership.models import AppUser, WebhookEvent
from utils.logger import logger

DEDUP_REASON = "ingestion notification already sent for this media key"


def resolve_emby_user_id(body: Dict[str, Any]) -> Optional[str]:
    explicit = body.get("embyUserId")
    if isinstance(explicit, str) and explicit:
        return explicit
    found = pick_text(body, ["embyUserId", "EmbyUserId", "UserId", "userId"])
    if found:
        return found
    user_obj = as_obj(body.get("User")) or as_obj(body.get("user"))
    return pick_text(user_obj, ["Id", "id", "UserId", "userId"])


def resolve_event_type(body: Dict[str, Any]) -> str:
    for key in ("eventType", "event", "NotificationType"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return pick_text(body, ["Event", "event", "NotificationType", "eventType"]) or "UNKNOWN"


def resolve_event_time(body: Dict[str, Any]) -> Optional[str]:
    explicit = body.get("eventTime")
    if isinstance(explicit, str) and explicit:
        return explicit
    return pick_text(body, ["Date", "date", "EventTime", "eventTime"])


def build_event_key(
    event_type: str,
    ingestion: IngestionInfo,
    event_id: Optional[str],
    emby_user_id: Optional[str],
    event_time: Optional[str],
) -> str:
    if ingestion.is_ingestion_event and ingestion.dedup_key:
        return f"INGEST:{ingestion.dedup_key}"
    if event_id is not None:
        return event_id
    return f"{event_type}:{emby_user_id or 'unknown'}:{event_time or ''}"


def _push_receivers(db: Session) -> List[AppUser]:
    return list(db.scalars(
        select(AppUser).where(
            AppUser.email_push_enabled.is_(True),
            AppUser.email.is_not(None),
            AppUser.is_active.is_(True),
        )
    ))


def build_test_message(event_type: str, body: Dict[str, Any], event_time: Optional[str]):
    title = pick_text(body, ["Title", "title"]) or "Test Notification"
    description = pick_text(body, ["Description", "description"]) or ""
    date = pick_text(body, ["Date", "date"]) or event_time or "-"
    lines = [
        "收到 Emby Webhook 测试通知。",
        f"事件: {event_type}",
        f"标题: {title}",
        f"描述: {description or '-'}",
        f"时间: {date}",
    ]
    return "Emby Webhook 测试通知", "\n".join(lines)


def build_ingestion_message(ingestion: IngestionInfo, event_time: Optional[str]):
    """Subject and body for a new-content alert, by media kind"""
    when = format_display_time(ingestion.added_at or event_time)
    title = ingestion.item_title

    if ingestion.media_kind == MEDIA_MOVIE:
        subject = f"Emby 电影入库: {title}"
        lines = [
            "检测到电影入库：",
            f"片名: {title}",
            f"年份: {ingestion.year or '-'}",
            f"媒体库: {ingestion.library_name or '-'}",
            f"资源ID: {ingestion.item_id or '-'}",
            f"时间: {when}",
        ]
    elif ingestion.media_kind == MEDIA_SERIES:
        series = ingestion.series_name or title
        subject = f"Emby 剧集入库: {series}"
        lines = [
            "检测到剧集入库：",
            f"剧名: {series}",
            f"触发条目: {title}",
            f"类型: {ingestion.item_type or '-'}",
            f"媒体库: {ingestion.library_name or '-'}",
            f"剧集ID: {ingestion.series_id or '-'}",
            f"时间: {when}",
            "说明: 同一剧集只会发送一次入库通知。",
        ]
    else:
        subject = f"Emby 新入库通知: {title}"
        lines = [
            "检测到新的入库资源：",
            f"片名: {title}",
            f"类型: {ingestion.item_type or '-'}",
            f"媒体库: {ingestion.library_name or '-'}",
            f"时间: {when}",
        ]
    return subject, "\n".join(lines)


async def _broadcast(
    db: Session, receivers: List[AppUser], subject: str, body: str, event_type: str
) -> None:
    for receiver in receivers:
        if not receiver.email:
            continue
        await send_email(
            db,
            to=receiver.email,
            subject=subject,
            body=body,
            event_type=event_type,
            user_id=receiver.id,
        )


async def process_webhook(db: Session, body: Dict[str, Any]) -> Dict[str, Any]:
    """Record one webhook delivery and send whatever notifications it calls for"""
    emby_user_id = resolve_emby_user_id(body)
    event_type = resolve_event_type(body)
    event_time = resolve_event_time(body)
    event_id = body.get("eventId") if isinstance(body.get("eventId"), str) else None

    logger.info(
        f"[webhook] received eventType={event_type} embyUserId={emby_user_id} "
        f"eventTime={event_time} keys={list(body.keys())}"
    )

    ingestion = parse_ingestion_info(event_type, body)
    event_key = build_event_key(event_type, ingestion, event_id, emby_user_id, event_time)

    user: Optional[AppUser] = None
    if emby_user_id:
        user = db.scalars(select(AppUser).where(AppUser.emby_user_id == emby_user_id)).first()

    event = WebhookEvent(
        event_type=event_type,
        event_key=event_key,
        user_id=user.id if user else None,
        emby_event_time=parse_datetime(event_time),
        payload_json=json.dumps(body, ensure_ascii=False, default=str),
    )
    db.add(event)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"[webhook] duplicate event key {event_key}")
        return {"ok": True, "deduped": True, "reason": DEDUP_REASON}

    if is_test_event(event_type):
        receivers = _push_receivers(db)
        logger.info(f"[webhook] webhooktest receivers count={len(receivers)}")
        subject, text = build_test_message(event_type, body, event_time)
        await _broadcast(db, receivers, subject, text, f"{EmailType.WEBHOOK_PREFIX}{event_type}")
        event.email_dispatched = len(receivers) > 0
        db.commit()
    elif ingestion.is_ingestion_event and ingestion.item_title:
        receivers = _push_receivers(db)
        logger.info(
            f"[webhook] ingestion receivers count={len(receivers)} "
            f"itemTitle={ingestion.item_title} mediaKind={ingestion.media_kind}"
        )
        subject, text = build_ingestion_message(ingestion, event_time)
        await _broadcast(
            db, receivers, subject, text, f"{EmailType.WEBHOOK_LIBRARY_PREFIX}{event_type}"
        )
        event.email_dispatched = len(receivers) > 0
        db.commit()
    elif user is not None:
        if user.email and user.email_push_enabled:
            await send_email(
                db,
                to=user.email,
                subject=f"Emby 通知: {event_type}",
                body=f"我们收到了一个 Emby 事件: {event_type}",
                event_type=f"{EmailType.WEBHOOK_PREFIX}{event_type}",
                user_id=user.id,
            )
            event.email_dispatched = True
            db.commit()
    else:
        logger.info(
            f"[webhook] no email branch matched eventType={event_type} "
            f"isIngestionEvent={ingestion.is_ingestion_event} itemTitle={ingestion.item_title}"
        )

    return {"ok": True}
