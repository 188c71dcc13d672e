"""
Persistence capability shared by the Task, Contribution and Validation stores.

A Store hands out Transactions: units of work that buffer writes and apply
them all or none on commit. Every update carries the status the caller read
(compare-and-swap); if any condition no longer holds at commit time the whole
unit is discarded and Conflict is raised.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from .models import Contribution, ContributionStatus, Project, Task, TaskStatus, TaskStatusChange, Validation


class Transaction(ABC):
    """Unit of work. Use as a context manager: commits on clean exit, discards on error."""

    def __enter__(self) -> 'Transaction':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.commit()
        return False

    @abstractmethod
    def put_task(self, task: Task) -> None:
        ...

    @abstractmethod
    def put_contribution(self, contribution: Contribution) -> None:
        ...

    @abstractmethod
    def put_validation(self, validation: Validation) -> None:
        ...

    @abstractmethod
    def put_project(self, project: Project) -> None:
        ...

    @abstractmethod
    def put_status_change(self, change: TaskStatusChange) -> None:
        ...

    @abstractmethod
    def update_task(
        self,
        task_id: str,
        expected: Iterable[TaskStatus],
        status: TaskStatus,
        assignee_id: Optional[str] = None,
        updated_at: Optional[str] = None,
    ) -> None:
        """Stage a status change that only applies if the stored status is in `expected`."""

    @abstractmethod
    def update_contribution(
        self,
        contribution_id: str,
        expected: Iterable[ContributionStatus],
        status: ContributionStatus,
        payload: Optional[Dict[str, Any]] = None,
        updated_at: Optional[str] = None,
    ) -> None:
        """Stage a status (and optionally payload) change guarded by `expected`."""

    @abstractmethod
    def commit(self) -> None:
        ...


class Store(ABC):
    """Transactional record store for projects, tasks, contributions and validations."""

    @abstractmethod
    def transaction(self) -> Transaction:
        ...

    @abstractmethod
    def batch_put_tasks(self, tasks: List[Task], changes: List[TaskStatusChange]) -> bool:
        """Write a chunk of new tasks and their creation history. Returns False if the chunk could not be written."""

    @abstractmethod
    def get_task(self, task_id: str) -> Optional[Task]:
        ...

    @abstractmethod
    def query_tasks(
        self,
        task_type: Optional[str] = None,
        language: Optional[str] = None,
        status: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[Task]:
        ...

    @abstractmethod
    def get_contribution(self, contribution_id: str) -> Optional[Contribution]:
        ...

    @abstractmethod
    def contributions_for_worker(self, worker_id: str) -> List[Contribution]:
        ...

    @abstractmethod
    def contributions_for_task(self, task_id: str) -> List[Contribution]:
        ...

    @abstractmethod
    def validations_for(self, contribution_id: str) -> List[Validation]:
        """All validations of a contribution, oldest first."""

    def latest_validation(self, contribution_id: str) -> Optional[Validation]:
        history = self.validations_for(contribution_id)
        return history[-1] if history else None

    @abstractmethod
    def task_history(self, task_id: str) -> List[TaskStatusChange]:
        """Status changes of a task, oldest first."""

    @abstractmethod
    def get_project(self, project_id: str) -> Optional[Project]:
        ...

    @abstractmethod
    def list_projects(self, owner_id: Optional[str] = None) -> List[Project]:
        ...
