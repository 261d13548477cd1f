"""Sequential human-readable document numbers: ``<PREFIX>-<year>-<seq>``.

The sequence is derived from the number of rows already carrying this year's
prefix, so it restarts every calendar year. Gaps left by deletions are filled
by probing forward. The unique constraint on the number column is the final
arbiter under concurrency; callers retry the insert when it fires.
"""
from __future__ import annotations
import logging
import time
from datetime import datetime
from typing import Optional
from flask import current_app, has_app_context
from sqlalchemy import select, func

from repairdesk import get_db
from repairdesk.utils import clock

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 10


def generate_sequence_number(model, attr: str, prefix: str, session=None, now: Optional[datetime] = None) -> str:
    session = session or get_db()
    column = getattr(model, attr)
    stem = f"{prefix}-{(now or clock.now()).year}-"
    count = session.execute(select(func.count()).select_from(model).where(column.like(f"{stem}%"))).scalar_one()
    for attempt in range(MAX_ATTEMPTS):
        candidate = f"{stem}{count + 1 + attempt:03d}"
        taken = session.execute(select(model.id).where(column == candidate)).first()
        if not taken:
            return candidate
    fallback = stem + str(int(time.time() * 1000))[-6:]
    log.warning('No free %s sequence after %d attempts, using %s', prefix, MAX_ATTEMPTS, fallback)
    return fallback


def _prefix(key: str, default: str) -> str:
    if has_app_context():
        return current_app.config.get(key) or default
    return default


def generate_ticket_number(session=None, now: Optional[datetime] = None) -> str:
    from repairdesk.models.ticket import Ticket
    return generate_sequence_number(Ticket, 'ticket_number', _prefix('TICKET_NUMBER_PREFIX', 'TF'), session, now)


def generate_invoice_number(session=None, now: Optional[datetime] = None) -> str:
    from repairdesk.models.billing import Invoice
    return generate_sequence_number(Invoice, 'invoice_number', _prefix('INVOICE_NUMBER_PREFIX', 'INV'), session, now)

__all__ = ['generate_sequence_number', 'generate_ticket_number', 'generate_invoice_number', 'MAX_ATTEMPTS']
