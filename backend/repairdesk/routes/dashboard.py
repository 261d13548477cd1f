from __future__ import annotations
from flask import Blueprint
from repairdesk.decorators.auth import require_permissions
from repairdesk.services.dashboard import get_dashboard_stats
from repairdesk.utils.serialize import iso, money

dashboard_bp = Blueprint('dashboard', __name__)


@dashboard_bp.get('/stats')
@require_permissions('RPT.READ')
def stats():
    s = get_dashboard_stats()
    s['revenue'] = money(s['revenue'])
    s['revenue_today'] = money(s['revenue_today'])
    s['window'] = {'start': iso(s['window']['start']), 'end': iso(s['window']['end'])}
    return s
