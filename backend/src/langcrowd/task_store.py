"""
Task Store: creation with per-type content validation, and guarded status writes.
"""
import dataclasses
from typing import Any, List, Mapping, Optional, Union

from .content import TaskContent, clean_value, coerce_task_type, parse_content
from .errors import NotFound, SchemaError
from .logging import logger
from .models import Priority, Task, TaskStatus, TaskStatusChange, new_id, utc_now
from .projects import ProjectStore, accepts_task_type
from .states import check_task_transition
from .store import Store, Transaction


def coerce_priority(priority: Optional[str]) -> Priority:
    if priority is None or priority == '':
        return Priority.MEDIUM
    try:
        return Priority(str(priority).strip().lower())
    except ValueError:
        raise SchemaError(f"Unknown priority: {priority}")


def creation_entry(task: Task) -> TaskStatusChange:
    return TaskStatusChange(
        change_id=new_id(),
        task_id=task.task_id,
        from_status=None,
        to_status=task.status,
        actor_id=task.creator_id,
        changed_at=task.created_at,
    )


class TaskStore:

    def __init__(self, store: Store, projects: ProjectStore):
        self.store = store
        self.projects = projects

    def build(
        self,
        task_type: str,
        language: str,
        priority: Optional[str],
        content: Union[Mapping[str, Any], TaskContent],
        creator_id: str,
        project_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> Task:
        """
        Validate inputs and construct a pending Task without writing it.

        Raises:
            SchemaError: bad type, priority, language or content
            NotFound: project_id given but no such project
        """
        task_type = coerce_task_type(task_type)
        language = clean_value(language)
        if not language:
            raise SchemaError('Task language is required')
        if not clean_value(creator_id):
            raise SchemaError('Task creator is required')

        parsed = parse_content(task_type, content)

        if project_id:
            project = self.projects.get(project_id)
            if not accepts_task_type(project, task_type):
                raise SchemaError(
                    f"Project {project_id} holds {project.project_type.value} tasks, not {task_type.value}"
                )

        return Task(
            task_id=new_id(),
            task_type=task_type,
            language=language,
            priority=coerce_priority(priority),
            content=parsed,
            creator_id=creator_id,
            status=TaskStatus.PENDING,
            project_id=project_id or None,
            batch_id=batch_id,
        )

    def create(
        self,
        task_type: str,
        language: str,
        priority: Optional[str],
        content: Union[Mapping[str, Any], TaskContent],
        creator_id: str,
        project_id: Optional[str] = None,
    ) -> str:
        task = self.build(task_type, language, priority, content, creator_id, project_id)
        self.insert(task)
        logger.info(f"Created {task.task_type.value} task {task.task_id}")
        return task.task_id

    def insert(self, task: Task) -> None:
        """Write one already-built task and its creation entry in its own transaction."""
        with self.store.transaction() as txn:
            txn.put_task(task)
            txn.put_status_change(creation_entry(task))

    def create_many(self, tasks: List[Task]) -> bool:
        """Write a chunk of already-built tasks. Returns False if the chunk failed."""
        if not tasks:
            return True
        return self.store.batch_put_tasks(tasks, [creation_entry(task) for task in tasks])

    def set_status(
        self,
        txn: Transaction,
        task: Task,
        new_status: TaskStatus,
        assignee_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Task:
        """
        Stage a status change for a task read earlier, with its history entry.

        The write only applies if the stored status still equals task.status,
        so concurrent actions on the same task cannot both succeed.

        Raises:
            InvalidTransition: new_status is not reachable from task.status
        """
        check_task_transition(task.task_type, task.status, new_status)
        now = utc_now()
        txn.update_task(
            task.task_id,
            expected={task.status},
            status=new_status,
            assignee_id=assignee_id,
            updated_at=now,
        )
        txn.put_status_change(TaskStatusChange(
            change_id=new_id(),
            task_id=task.task_id,
            from_status=task.status,
            to_status=new_status,
            actor_id=actor_id,
            changed_at=now,
        ))
        return dataclasses.replace(
            task,
            status=new_status,
            updated_at=now,
            assignee_id=assignee_id if assignee_id is not None else task.assignee_id,
        )

    def get(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        return task

    def history(self, task_id: str) -> List[TaskStatusChange]:
        """Status changes of a task, oldest first, starting with its creation."""
        self.get(task_id)
        return self.store.task_history(task_id)

    def list(
        self,
        task_type: Optional[str] = None,
        language: Optional[str] = None,
        status: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[Task]:
        if task_type is not None:
            task_type = coerce_task_type(task_type)
        if status is not None:
            try:
                status = TaskStatus(status)
            except ValueError:
                raise SchemaError(f"Unknown task status: {status}")
        return self.store.query_tasks(task_type, language, status, project_id)
