"""Environment-driven settings.

Values are read after ``load_dotenv()`` so a local ``.env`` file can supply them.
``create_app(config)`` overrides take precedence over anything read here.
"""
from __future__ import annotations
import os
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List

DEV_JWT_SECRET = 'dev-secret'


def _decimal_env(name: str, default: str | None):
    raw = os.getenv(name, default)
    if raw is None or raw == '':
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f'{name} must be a decimal number, got {raw!r}')


def load_settings() -> Dict[str, Any]:
    return {
        'ENV': os.getenv('APP_ENV', 'development'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', DEV_JWT_SECRET),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
        'DEFAULT_TAX_RATE': _decimal_env('DEFAULT_TAX_RATE', '10.00'),
        'DEFAULT_HOURLY_RATE': _decimal_env('DEFAULT_HOURLY_RATE', None),
        'TICKET_NUMBER_PREFIX': os.getenv('TICKET_NUMBER_PREFIX', 'TF'),
        'INVOICE_NUMBER_PREFIX': os.getenv('INVOICE_NUMBER_PREFIX', 'INV'),
    }


def validate_settings(config) -> List[str]:
    """Return human-readable problems; an empty list means the config is usable."""
    problems: List[str] = []
    if not config.get('DATABASE_URL'):
        problems.append('DATABASE_URL is required')
    if config.get('ENV') == 'production' and config.get('JWT_SECRET_KEY') == DEV_JWT_SECRET:
        problems.append('JWT_SECRET_KEY must be set in production')
    rate = config.get('DEFAULT_TAX_RATE')
    if rate is not None and not (Decimal('0') <= Decimal(rate) <= Decimal('100')):
        problems.append('DEFAULT_TAX_RATE must be between 0 and 100')
    return problems

__all__ = ['load_settings', 'validate_settings', 'DEV_JWT_SECRET']
