"""
Correction Router: a worker's rejected contributions and the way back to review.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .content import source_language_of
from .contribution_store import ContributionStore
from .errors import NotFound
from .lifecycle import LifecycleCoordinator
from .logging import logger
from .models import Contribution, Task
from .states import REJECTED_CONTRIBUTION_STATES
from .task_store import TaskStore
from .validation_store import ValidationStore


@dataclass
class CorrectionView:
    """A rejected contribution with the reviewer's latest feedback."""
    contribution: Contribution
    task: Task
    latest_feedback: Optional[str]

    @property
    def prompt(self) -> str:
        return self.task.content.prompt

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contributionId': self.contribution.contribution_id,
            'taskId': self.task.task_id,
            'taskType': self.task.task_type.value,
            'language': self.task.language,
            'status': self.contribution.status.value,
            'prompt': self.prompt,
            'content': self.task.content.to_dict(),
            'payload': self.contribution.payload,
            'latestFeedback': self.latest_feedback,
            'updatedAt': self.contribution.updated_at,
        }


@dataclass
class ResubmissionView:
    """What a worker needs to redo a rejected contribution."""
    task: Task
    prior_payload: Dict[str, Any]
    feedback: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskId': self.task.task_id,
            'taskType': self.task.task_type.value,
            'language': self.task.language,
            'content': self.task.content.to_dict(),
            'priorPayload': self.prior_payload,
            'feedback': self.feedback,
        }


class CorrectionRouter:

    def __init__(
        self,
        tasks: TaskStore,
        contributions: ContributionStore,
        validations: ValidationStore,
        coordinator: LifecycleCoordinator,
    ):
        self.tasks = tasks
        self.contributions = contributions
        self.validations = validations
        self.coordinator = coordinator

    def _feedback(self, contribution_id: str) -> Optional[str]:
        latest = self.validations.latest_for(contribution_id)
        return latest.comment if latest is not None else None

    def list_corrections(
        self,
        worker_id: str,
        language: Optional[str] = None,
        source_language: Optional[str] = None,
    ) -> List[CorrectionView]:
        """
        Rejected contributions of a worker, newest first.

        Args:
            worker_id: Owner of the contributions
            language: Only tasks in this (target) language
            source_language: Only tasks whose source material is in this language
        """
        rejected = self.contributions.list_by_worker(worker_id, REJECTED_CONTRIBUTION_STATES)

        views = []
        for contribution in rejected:
            task = self.tasks.store.get_task(contribution.task_id)
            if task is None:
                logger.warning(f"Contribution {contribution.contribution_id} references missing task {contribution.task_id}")
                continue
            if language and task.language != language:
                continue
            if source_language and source_language_of(task.content) != source_language:
                continue
            views.append(CorrectionView(contribution, task, self._feedback(contribution.contribution_id)))

        views.sort(key=lambda view: view.contribution.updated_at, reverse=True)
        return views

    def load_for_resubmission(self, contribution_id: str, worker_id: str) -> ResubmissionView:
        contribution = self.contributions.get(contribution_id)
        if contribution.worker_id != worker_id or contribution.status not in REJECTED_CONTRIBUTION_STATES:
            raise NotFound(f"No correction {contribution_id} for worker {worker_id}")

        task = self.tasks.get(contribution.task_id)
        return ResubmissionView(task, dict(contribution.payload), self._feedback(contribution_id))

    def resubmit(self, contribution_id: str, worker_id: str, payload: Any) -> Contribution:
        return self.coordinator.resubmit(contribution_id, worker_id, payload)
