"""
Task status enum shared across backend modules and tests.

Lifecycle:
    Created -> Full -> Done

"Uploading" is not stored: it is a Created task that already holds some files.
"""

from __future__ import annotations

from enum import Enum


class TaskStatus(str, Enum):
    CREATED = "created"
    FULL = "full"
    DONE = "done"

    def can_transition_to(self, target: "TaskStatus") -> bool:
        return target in _TRANSITIONS[self]

    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]


_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.CREATED: frozenset({TaskStatus.FULL}),
    TaskStatus.FULL: frozenset({TaskStatus.DONE}),
    TaskStatus.DONE: frozenset(),
}
