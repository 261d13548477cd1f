"""JSON helpers shared by the route serializers."""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def money(value) -> Optional[str]:
    """Render a fixed-point amount as a two-place string ("110.00"); floats would lose cents."""
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal('0.01')))

__all__ = ['iso', 'money']
