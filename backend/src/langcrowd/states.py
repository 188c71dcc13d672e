"""
Task and contribution state machine.

All status edges live here. The Task Store consults TASK_TRANSITIONS before it
stages any status write, and the Lifecycle Coordinator reads ACTIONS to decide
which source states each action accepts.
"""
from typing import Dict, FrozenSet, NamedTuple

from .errors import InvalidTransition
from .models import ContributionStatus, TaskStatus, TaskType


REJECTED_TASK_STATES = frozenset({TaskStatus.REJECTED, TaskStatus.REJECTED_TRANSCRIPT})
REJECTED_CONTRIBUTION_STATES = frozenset({
    ContributionStatus.REJECTED,
    ContributionStatus.REJECTED_TRANSCRIPT,
})

# Non-terminal contribution states; at most one per (task, worker)
ACTIVE_CONTRIBUTION_STATES = frozenset({
    ContributionStatus.PENDING_VALIDATION,
    ContributionStatus.REJECTED,
    ContributionStatus.REJECTED_TRANSCRIPT,
})

TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.ASSIGNED}),
    TaskStatus.ASSIGNED: frozenset({
        TaskStatus.PENDING_VALIDATION,
        TaskStatus.COMPLETED,
        TaskStatus.REJECTED,
        TaskStatus.REJECTED_TRANSCRIPT,
    }),
    TaskStatus.PENDING_VALIDATION: frozenset({
        TaskStatus.COMPLETED,
        TaskStatus.REJECTED,
        TaskStatus.REJECTED_TRANSCRIPT,
    }),
    TaskStatus.REJECTED: frozenset({TaskStatus.PENDING_VALIDATION}),
    TaskStatus.REJECTED_TRANSCRIPT: frozenset({TaskStatus.PENDING_VALIDATION}),
    TaskStatus.COMPLETED: frozenset(),
}

CONTRIBUTION_TRANSITIONS: Dict[ContributionStatus, FrozenSet[ContributionStatus]] = {
    ContributionStatus.PENDING_VALIDATION: frozenset({
        ContributionStatus.FINALIZED,
        ContributionStatus.REJECTED,
        ContributionStatus.REJECTED_TRANSCRIPT,
    }),
    ContributionStatus.REJECTED: frozenset({ContributionStatus.PENDING_VALIDATION}),
    ContributionStatus.REJECTED_TRANSCRIPT: frozenset({ContributionStatus.PENDING_VALIDATION}),
    ContributionStatus.FINALIZED: frozenset(),
}

_COMMON_TASK_STATES = frozenset({
    TaskStatus.PENDING,
    TaskStatus.ASSIGNED,
    TaskStatus.PENDING_VALIDATION,
    TaskStatus.COMPLETED,
})

# rejected_transcript only exists for transcript review
VALID_TASK_STATES: Dict[TaskType, FrozenSet[TaskStatus]] = {
    TaskType.TRANSCRIPTION: _COMMON_TASK_STATES | {TaskStatus.REJECTED_TRANSCRIPT},
    TaskType.TRANSLATION: _COMMON_TASK_STATES | {TaskStatus.REJECTED},
    TaskType.TTS: _COMMON_TASK_STATES | {TaskStatus.REJECTED},
    TaskType.ASR: _COMMON_TASK_STATES | {TaskStatus.REJECTED},
}


class Action(NamedTuple):
    """Source states accepted by a coordinator action and the states it produces."""
    task_from: FrozenSet[TaskStatus]
    contribution_from: FrozenSet[ContributionStatus]


ACTIONS: Dict[str, Action] = {
    'submit': Action(
        task_from=frozenset({TaskStatus.PENDING}),
        contribution_from=frozenset(),
    ),
    'approve': Action(
        task_from=frozenset({TaskStatus.ASSIGNED, TaskStatus.PENDING_VALIDATION}),
        contribution_from=frozenset({ContributionStatus.PENDING_VALIDATION}),
    ),
    'reject': Action(
        task_from=frozenset({TaskStatus.ASSIGNED, TaskStatus.PENDING_VALIDATION}),
        contribution_from=frozenset({ContributionStatus.PENDING_VALIDATION}),
    ),
    'resubmit': Action(
        task_from=REJECTED_TASK_STATES,
        contribution_from=REJECTED_CONTRIBUTION_STATES,
    ),
}


def rejection_status_for(task_type: TaskType):
    """Return the (task status, contribution status) pair a rejection produces."""
    if task_type == TaskType.TRANSCRIPTION:
        return TaskStatus.REJECTED_TRANSCRIPT, ContributionStatus.REJECTED_TRANSCRIPT
    return TaskStatus.REJECTED, ContributionStatus.REJECTED


def check_task_transition(task_type: TaskType, current: TaskStatus, new: TaskStatus) -> None:
    """Raise InvalidTransition unless current → new is an edge valid for the type."""
    if new not in VALID_TASK_STATES[task_type]:
        raise InvalidTransition(f"Status {new.value} is not valid for {task_type.value} tasks")
    if new not in TASK_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move task from {current.value} to {new.value}")


def check_contribution_transition(current: ContributionStatus, new: ContributionStatus) -> None:
    if new not in CONTRIBUTION_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move contribution from {current.value} to {new.value}")
