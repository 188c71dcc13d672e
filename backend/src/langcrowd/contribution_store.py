"""
Contribution Store: worker submissions against tasks.
"""
import dataclasses
from typing import Any, Iterable, List, Optional

from .content import validate_payload
from .errors import Conflict, NotFound
from .models import Contribution, ContributionStatus, Task, TaskStatus, new_id, utc_now
from .states import ACTIVE_CONTRIBUTION_STATES, check_contribution_transition
from .store import Store, Transaction


class ContributionStore:

    def __init__(self, store: Store):
        self.store = store

    def active_for(self, task_id: str, worker_id: str) -> Optional[Contribution]:
        """The worker's non-terminal contribution for a task, if any."""
        for contribution in self.store.contributions_for_task(task_id):
            if contribution.worker_id == worker_id and contribution.status in ACTIVE_CONTRIBUTION_STATES:
                return contribution
        return None

    def create(self, txn: Transaction, task: Task, worker_id: str, payload: Any) -> Contribution:
        """
        Stage a new contribution in pending_validation.

        Raises:
            Conflict: task not pending, or the worker already has
                an active contribution for it
            SchemaError: payload lacks the minimal fields for the task type
        """
        if task.status != TaskStatus.PENDING:
            raise Conflict(f"Task {task.task_id} is {task.status.value} and cannot take a new submission")

        if self.active_for(task.task_id, worker_id) is not None:
            raise Conflict(
                f"Worker {worker_id} already has an active contribution for task {task.task_id}"
            )

        contribution = Contribution(
            contribution_id=new_id(),
            task_id=task.task_id,
            worker_id=worker_id,
            payload=validate_payload(task.task_type, payload),
            status=ContributionStatus.PENDING_VALIDATION,
        )
        txn.put_contribution(contribution)
        return contribution

    def update(
        self,
        txn: Transaction,
        contribution: Contribution,
        new_status: ContributionStatus,
        payload: Optional[dict] = None,
    ) -> Contribution:
        """Stage a status (and optional payload) change guarded by the status read earlier."""
        check_contribution_transition(contribution.status, new_status)
        now = utc_now()
        txn.update_contribution(
            contribution.contribution_id,
            expected={contribution.status},
            status=new_status,
            payload=payload,
            updated_at=now,
        )
        return dataclasses.replace(
            contribution,
            status=new_status,
            payload=payload if payload is not None else contribution.payload,
            updated_at=now,
        )

    def get(self, contribution_id: str) -> Contribution:
        contribution = self.store.get_contribution(contribution_id)
        if contribution is None:
            raise NotFound(f"Contribution {contribution_id} not found")
        return contribution

    def list_by_worker(
        self,
        worker_id: str,
        statuses: Optional[Iterable[ContributionStatus]] = None,
        task_id: Optional[str] = None,
    ) -> List[Contribution]:
        wanted = set(statuses) if statuses is not None else None
        return [
            c for c in self.store.contributions_for_worker(worker_id)
            if (wanted is None or c.status in wanted) and (task_id is None or c.task_id == task_id)
        ]
