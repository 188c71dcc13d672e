"""
Project Store: optional grouping of tasks under a type and language pair.
"""
from typing import Iterable, List, Optional

from .content import clean_value
from .errors import NotFound, SchemaError
from .logging import logger
from .models import Project, ProjectType, TaskType, new_id
from .store import Store


def accepts_task_type(project: Project, task_type: TaskType) -> bool:
    """Transcription projects also hold the asr tasks of the record → transcribe pipeline."""
    if project.project_type.value == task_type.value:
        return True
    return project.project_type == ProjectType.TRANSCRIPTION and task_type == TaskType.ASR


class ProjectStore:

    def __init__(self, store: Store):
        self.store = store

    def create(
        self,
        name: str,
        project_type: str,
        source_language: str,
        owner_id: str,
        target_languages: Iterable[str] = (),
    ) -> Project:
        name = clean_value(name)
        source_language = clean_value(source_language)
        if not name:
            raise SchemaError('Project name is required')
        if not source_language:
            raise SchemaError('Project source language is required')
        if not clean_value(owner_id):
            raise SchemaError('Project owner is required')
        try:
            project_type = ProjectType(project_type)
        except ValueError:
            raise SchemaError(f"Unknown project type: {project_type}")

        targets = frozenset(t for t in (clean_value(t) for t in target_languages) if t)
        project = Project(
            project_id=new_id(),
            name=name,
            project_type=project_type,
            source_language=source_language,
            owner_id=owner_id,
            target_languages=targets,
        )

        with self.store.transaction() as txn:
            txn.put_project(project)

        logger.info(f"Created project {project.project_id} ({project_type.value}) for {owner_id}")
        return project

    def get(self, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found")
        return project

    def list(self, owner_id: Optional[str] = None) -> List[Project]:
        return self.store.list_projects(owner_id)
