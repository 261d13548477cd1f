"""In-process fan-out of ticket and timer updates to connected users.

Subscribers are plain callables taking one message dict. The transport that
turns them into socket pushes lives outside this module. Route handlers call
``notify_*`` after a successful commit; services never do.
"""
from __future__ import annotations
import logging
import threading
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)

Subscriber = Callable[[Dict[str, Any]], None]

_subscribers: Dict[int, List[Subscriber]] = {}
_lock = threading.Lock()


def subscribe(user_id: int, fn: Subscriber) -> Subscriber:
    with _lock:
        _subscribers.setdefault(user_id, []).append(fn)
    return fn


def unsubscribe(user_id: int, fn: Subscriber):
    with _lock:
        subs = _subscribers.get(user_id, [])
        if fn in subs:
            subs.remove(fn)
        if not subs:
            _subscribers.pop(user_id, None)


def reset():
    with _lock:
        _subscribers.clear()


def subscriber_count(user_id: int | None = None) -> int:
    with _lock:
        if user_id is not None:
            return len(_subscribers.get(user_id, []))
        return sum(len(v) for v in _subscribers.values())


def _deliver(user_id: int, fns: List[Subscriber], message: Dict[str, Any]) -> int:
    delivered = 0
    for fn in fns:
        try:
            fn(message)
            delivered += 1
        except Exception:
            log.warning('Dropping subscriber for user %s after delivery failure', user_id, exc_info=True)
            unsubscribe(user_id, fn)
    return delivered


def _snapshot(user_id: int | None = None):
    with _lock:
        if user_id is not None:
            return [(user_id, list(_subscribers.get(user_id, [])))]
        return [(uid, list(fns)) for uid, fns in _subscribers.items()]


def notify_ticket_update(ticket: Dict[str, Any]) -> int:
    """Broadcast to every connected user; returns the number of deliveries."""
    message = {'type': 'ticket_update', 'data': ticket}
    return sum(_deliver(uid, fns, message) for uid, fns in _snapshot())


def notify_timer_update(user_id: int, time_log: Dict[str, Any]) -> int:
    """Send only to the technician who owns the timer."""
    message = {'type': 'timer_update', 'data': time_log}
    return sum(_deliver(uid, fns, message) for uid, fns in _snapshot(user_id))

__all__ = ['subscribe', 'unsubscribe', 'reset', 'subscriber_count', 'notify_ticket_update', 'notify_timer_update']
