from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from app.models.admin_audit_log import AdminAuditLog

logger = logging.getLogger(__name__)


def log_admin_action(
    db: Session,
    *,
    user_id: int,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> AdminAuditLog:
    """Stage an audit row in the caller's transaction.

    Nothing is committed here: a discount write and its audit entry land
    together or not at all. ``meta`` may hold Decimals and datetimes from the
    discount payload; they are stored as strings.
    """
    entry = AdminAuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=None if entity_id is None else str(entity_id),
        meta_json=json.dumps(dict(meta), default=str, sort_keys=True) if meta else None,
    )
    db.add(entry)
    logger.debug("Audit %s %s=%s by user_id=%s", action, entity_type or "-", entity_id or "-", user_id)
    return entry
