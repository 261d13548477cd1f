from __future__ import annotations
"""Explicit status transition tables.

Lifecycle models keep their allowed moves in a lookup so that tightening a
workflow later is a data change, not a code change:

    from repairdesk.utils.fsm import TransitionValidator
    PARTS_FSM = TransitionValidator({
        'ordered': {'in_transit', 'delivered'},
        'in_transit': {'delivered'},
        'delivered': {'installed'},
        'installed': set(),
    })
    PARTS_FSM.assert_can_transition(current_status, target_status)

Unknown statuses and disallowed moves abort with 400.
"""
from typing import Dict, Iterable, Set
from flask import abort

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    @classmethod
    def permissive(cls, states: Iterable[str], field_name: str = 'status') -> 'TransitionValidator':
        """Every state may move to every state, itself included."""
        states = tuple(states)
        return cls({s: set(states) for s in states}, field_name)

    @property
    def states(self) -> Set[str]:
        return set(self.graph)

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if target not in self.graph:
            abort(400, description=f"Unknown {self.field_name} {target}")
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
