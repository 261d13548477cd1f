from __future__ import annotations
from typing import Any, Dict
from flask import abort


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Dict[str, Any]):
    """Apply query-string filters declared in ``specs``.

    specs: {param: {'op': fn(query, value) -> query, 'coerce': fn, 'choices': iterable}}
    Params that are absent or empty are skipped; bad values abort with 400.
    """
    for name, meta in specs.items():
        val = params.get(name)
        if val is None or val == '':
            continue
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        if 'choices' in meta and val not in meta['choices']:
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


def as_bool(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    lowered = str(raw).strip().lower()
    if lowered in ('1', 'true', 'yes'):
        return True
    if lowered in ('0', 'false', 'no'):
        return False
    raise ValueError(raw)
