"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously. Never rename a code in place; add the new one and migrate the role presets.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['CLIENT', 'TICKET', 'PARTS', 'TIME', 'BILL', 'RPT', 'ADMIN']

SERVICE_ACTIONS = {
    'CLIENT': ['READ', 'MANAGE'],
    'TICKET': ['READ', 'MANAGE', 'DELETE'],
    'PARTS': ['READ', 'MANAGE'],
    'TIME': ['READ', 'TRACK'],
    'BILL': ['READ', 'MANAGE'],
    'RPT': ['READ'],
    'ADMIN': ['USER.MANAGE'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_PRESETS: Dict[str, List[str]] = {
    'Technician': [
        'CLIENT.READ',
        'TICKET.READ', 'TICKET.MANAGE',
        'PARTS.READ', 'PARTS.MANAGE',
        'TIME.READ', 'TIME.TRACK',
        'RPT.READ',
    ],
    'Frontdesk': [
        'CLIENT.READ', 'CLIENT.MANAGE',
        'TICKET.READ', 'TICKET.MANAGE',
        'PARTS.READ',
        'BILL.READ', 'BILL.MANAGE',
        'RPT.READ',
    ],
    # Manager: everything except user administration
    'Manager': [c for c in ALL_PERMISSION_CODES if not c.startswith('ADMIN.')],
    'Owner': ['*'],
}
