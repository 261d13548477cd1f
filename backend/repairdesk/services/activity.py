from __future__ import annotations
from typing import Any, Dict, Optional
from repairdesk import get_db
from repairdesk.models.ticket import ActivityLog

SYSTEM_ACTOR = 'System'


def add_activity(ticket_id: int, type_: str, description: str, details: Optional[Dict[str, Any]] = None,
                 user_id: Optional[int] = None, created_by: Optional[str] = None) -> ActivityLog:
    """Append a ticket history entry to the current DB session.

    Parameters:
      type_: one of the ActivityLog.TYPE_* codes
      description: human readable line, e.g. "Status changed from received to diagnosed"
      details: JSON-safe dictionary (shallow copied)
      user_id/created_by: acting user; both default to the "System" actor
    """
    entry = ActivityLog(
        ticket_id=ticket_id,
        user_id=user_id,
        type=type_,
        description=description,
        details=dict(details or {}),
        created_by=created_by or SYSTEM_ACTOR,
    )
    get_db().add(entry)
    # No commit here; caller's transaction boundary controls durability.
    return entry

__all__ = ['add_activity', 'SYSTEM_ACTOR']
