"""
Lifecycle Coordinator: submit, approve, reject and resubmit.

Each action reads the records it needs, checks them against the ACTIONS table,
then stages every write (task status, contribution, validation) in a single
transaction. Updates are conditioned on the statuses that were read, so two
callers racing on the same task or contribution cannot both succeed: the
loser gets Conflict and nothing of its action is applied.
"""
from typing import Any, Optional

from .content import clean_value, validate_payload
from .contribution_store import ContributionStore
from .errors import Conflict, InvalidTransition, NotFound, SchemaError
from .logging import logger
from .models import Contribution, ContributionStatus, TaskStatus, Validation
from .states import ACTIONS, rejection_status_for
from .store import Store, Transaction
from .task_store import TaskStore
from .validation_store import ValidationStore


class LifecycleCoordinator:

    def __init__(
        self,
        store: Store,
        tasks: TaskStore,
        contributions: ContributionStore,
        validations: ValidationStore,
    ):
        self.store = store
        self.tasks = tasks
        self.contributions = contributions
        self.validations = validations

    @staticmethod
    def _commit(txn: Transaction, message: str) -> None:
        try:
            txn.commit()
        except Conflict as e:
            logger.warning(f"{message}: {e.reasons}")
            raise Conflict(message, e.reasons) from e

    def _load_for_review(self, contribution_id: str, action: str):
        contribution = self.contributions.get(contribution_id)
        task = self.tasks.get(contribution.task_id)
        rule = ACTIONS[action]

        if contribution.status not in rule.contribution_from:
            raise Conflict(
                f"Contribution {contribution_id} is {contribution.status.value} and cannot be reviewed"
            )
        if task.status not in rule.task_from:
            raise InvalidTransition(
                f"Task {task.task_id} is {task.status.value}; {action} is not allowed"
            )
        return contribution, task

    def submit(self, task_id: str, worker_id: str, payload: Any) -> Contribution:
        """
        Record a worker's first submission for a pending task.

        Task pending → assigned (assignee set), new contribution in pending_validation.

        Raises:
            NotFound: no such task
            Conflict: task already claimed, or worker already has an active contribution
            SchemaError: payload lacks the fields its task type needs
        """
        if not clean_value(worker_id):
            raise SchemaError('Worker is required')

        task = self.tasks.get(task_id)
        txn = self.store.transaction()
        contribution = self.contributions.create(txn, task, worker_id, payload)
        self.tasks.set_status(txn, task, TaskStatus.ASSIGNED, assignee_id=worker_id, actor_id=worker_id)
        self._commit(txn, f"Task {task_id} was claimed concurrently")

        logger.info(f"Worker {worker_id} submitted contribution {contribution.contribution_id} for task {task_id}")
        return contribution

    def approve(self, contribution_id: str, reviewer_id: str, comment: Optional[str] = None) -> Validation:
        """
        Approve a contribution awaiting review.

        Contribution → finalized, task → completed, one approving Validation.
        """
        contribution, task = self._load_for_review(contribution_id, 'approve')

        txn = self.store.transaction()
        validation = self.validations.record(txn, contribution_id, reviewer_id, True, comment)
        self.contributions.update(txn, contribution, ContributionStatus.FINALIZED)
        self.tasks.set_status(txn, task, TaskStatus.COMPLETED, actor_id=reviewer_id)
        self._commit(txn, f"Contribution {contribution_id} was reviewed concurrently")

        logger.info(f"Reviewer {reviewer_id} approved contribution {contribution_id} (task {task.task_id} completed)")
        return validation

    def reject(self, contribution_id: str, reviewer_id: str, comment: str) -> Validation:
        """
        Reject a contribution awaiting review; the comment is mandatory.

        Transcription work moves to rejected_transcript, everything else to rejected.
        """
        contribution, task = self._load_for_review(contribution_id, 'reject')
        task_status, contribution_status = rejection_status_for(task.task_type)

        txn = self.store.transaction()
        validation = self.validations.record(txn, contribution_id, reviewer_id, False, comment)
        self.contributions.update(txn, contribution, contribution_status)
        self.tasks.set_status(txn, task, task_status, actor_id=reviewer_id)
        self._commit(txn, f"Contribution {contribution_id} was reviewed concurrently")

        logger.info(f"Reviewer {reviewer_id} rejected contribution {contribution_id} as {contribution_status.value}")
        return validation

    def resubmit(self, contribution_id: str, worker_id: str, payload: Any) -> Contribution:
        """
        Replace the payload of a rejected contribution and send it back to review.

        The existing contribution is updated in place; no new row is created.

        Raises:
            NotFound: contribution missing, owned by someone else, or not rejected
        """
        contribution = self.contributions.get(contribution_id)
        if contribution.worker_id != worker_id:
            raise NotFound(f"Contribution {contribution_id} not found for worker {worker_id}")

        rule = ACTIONS['resubmit']
        if contribution.status not in rule.contribution_from:
            raise NotFound(f"Contribution {contribution_id} is not awaiting correction")

        task = self.tasks.get(contribution.task_id)
        if task.status not in rule.task_from:
            raise InvalidTransition(f"Task {task.task_id} is {task.status.value}; resubmit is not allowed")

        payload = validate_payload(task.task_type, payload)

        txn = self.store.transaction()
        updated = self.contributions.update(txn, contribution, ContributionStatus.PENDING_VALIDATION, payload)
        self.tasks.set_status(txn, task, TaskStatus.PENDING_VALIDATION, actor_id=worker_id)
        self._commit(txn, f"Contribution {contribution_id} changed concurrently")

        logger.info(f"Worker {worker_id} resubmitted contribution {contribution_id}")
        return updated
