from __future__ import annotations
from typing import Callable, Iterable, Optional, Tuple
from flask import request, abort, make_response
from repairdesk.config.pagination import normalize_pagination
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return a UTC-aware timestamp truncated to whole seconds.

    Stored timestamps are naive server-local times, so naive input is
    interpreted in the local zone before converting.
    """
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace('+00:00', 'Z')


def apply_pagination(q) -> Tuple[object, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
        }
    }


def _http_date(dt: datetime) -> str:
    return format_datetime(dt, usegmt=True)


def _stamp(resp, etag: str, latest: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest:
        resp.headers['Last-Modified'] = _http_date(latest)
        resp.headers['X-Last-Modified-ISO'] = _iso(latest)
    return resp


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, _iso(latest) if latest else '')
    resp = make_response(build_list_payload(rows, total, limit, offset))
    return _stamp(resp, etag, latest), etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Return a 304 response when If-None-Match or If-Modified-Since is satisfied, else None.

    If-None-Match takes precedence; If-Modified-Since is only consulted when
    the ETag header is absent or does not match.
    """
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag_value:
        return _stamp(make_response('', 304), etag_value, latest)
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest:
        ims_dt = _parse_if_modified_since(ims_raw)
        if ims_dt and latest <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
            return _stamp(make_response('', 304), etag_value, latest)
    return None


def list_response(q, serialize: Callable, latest_attr: str = 'created_at'):
    """Paginate ``q``, serialize rows and answer with ETag/Last-Modified (or 304).

    The newest ``latest_attr`` among the returned rows drives Last-Modified.
    HEAD requests get headers only.
    """
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    stamps = [getattr(r, latest_attr) for r in rows if getattr(r, latest_attr, None)]
    latest_ts = max(stamps) if stamps else None
    resp, etag = make_cached_list_response([serialize(r) for r in rows], total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


def resource_response(body: dict, obj_id: int, latest_ts: Optional[datetime] = None):
    """Single-resource GET/HEAD with the same ETag/Last-Modified handling as lists."""
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    etag = compute_etag([obj_id], 1, 1, 0, _iso(latest) if latest else '')
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    resp = _stamp(make_response(body), etag, latest)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp
