"""Audit log writer"""

import json
from typing import Any, Dict

from sqlalchemy.orm import Session

from membership.models import AuditLog

SYSTEM_ACTOR = "system"


def record_audit(
    db: Session,
    actor: str,
    action: str,
    target_type: str,
    target_id: str,
    detail: Dict[str, Any],
    commit: bool = True,
) -> AuditLog:
    """
    Append an audit entry.

    Pass ``commit=False`` when the entry is part of a larger transaction that
    the caller commits.
    """
    entry = AuditLog(
        actor=actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        detail_json=json.dumps(detail, ensure_ascii=False, default=str),
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry
