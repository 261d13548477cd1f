from __future__ import annotations
from flask import abort


def apply_multi_sort(query, sort_expr: str | None, allowed: dict, tie_breaker, default=None):
    """Order ``query`` by a ``sort=`` expression such as ``-created_at,status``.

    allowed maps public field names to columns; tie_breaker is always appended
    so pages are stable. default is a list of clauses used when sort is empty.
    """
    clauses = []
    for raw in (sort_expr or '').split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token.lstrip('-')
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    if not clauses and default:
        clauses.extend(default)
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)
