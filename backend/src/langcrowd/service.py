"""
CrowdService: the single entry point the Lambda handlers talk to.

Wires the stores, lifecycle coordinator, ingestion pipeline and correction
router over one Store and one Storage.
"""
from typing import Any, Dict, Iterable, List, Optional

from .config import config
from .contribution_store import ContributionStore
from .corrections import CorrectionRouter, CorrectionView, ResubmissionView
from .dynamo import DynamoStore
from .ingestion import BatchResult, IngestDefaults, IngestionPipeline
from .lifecycle import LifecycleCoordinator
from .logging import logger
from .memory_store import InMemoryStore
from .models import Contribution, IngestMode, Project, Task, TaskStatusChange, Validation
from .projects import ProjectStore
from .storage import S3Storage, Storage
from .store import Store
from .task_store import TaskStore
from .templates import build_template
from .validation_store import ValidationStore


class CrowdService:

    def __init__(self, store: Store, storage: Storage, chunk_size: Optional[int] = None):
        self.store = store
        self.storage = storage
        self.projects = ProjectStore(store)
        self.tasks = TaskStore(store, self.projects)
        self.contributions = ContributionStore(store)
        self.validations = ValidationStore(store)
        self.lifecycle = LifecycleCoordinator(store, self.tasks, self.contributions, self.validations)
        self.ingestion = IngestionPipeline(self.tasks, storage, chunk_size)
        self.corrections = CorrectionRouter(self.tasks, self.contributions, self.validations, self.lifecycle)

    # Projects

    def create_project(
        self,
        name: str,
        project_type: str,
        source_language: str,
        owner_id: str,
        target_languages: Iterable[str] = (),
    ) -> Project:
        return self.projects.create(name, project_type, source_language, owner_id, target_languages)

    def list_projects(self, owner_id: Optional[str] = None) -> List[Project]:
        return self.projects.list(owner_id)

    # Tasks

    def create_task(
        self,
        task_type: str,
        language: str,
        priority: Optional[str],
        content: Dict[str, Any],
        creator_id: str,
        project_id: Optional[str] = None,
    ) -> str:
        return self.tasks.create(task_type, language, priority, content, creator_id, project_id)

    def get_task(self, task_id: str) -> Task:
        return self.tasks.get(task_id)

    def task_history(self, task_id: str) -> List[TaskStatusChange]:
        return self.tasks.history(task_id)

    def list_tasks(
        self,
        task_type: Optional[str] = None,
        language: Optional[str] = None,
        status: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[Task]:
        return self.tasks.list(task_type, language, status, project_id)

    def ingest_batch(
        self,
        source,
        task_type: str,
        defaults: IngestDefaults,
        filename: Optional[str] = None,
        mode: str = IngestMode.DIRECT,
    ) -> BatchResult:
        return self.ingestion.ingest(source, task_type, defaults, filename=filename, mode=mode)

    def download_template(self, task_type: str, fmt: str = 'csv', mode: str = IngestMode.DIRECT) -> bytes:
        return build_template(task_type, fmt, mode)

    # Contributions

    def submit_contribution(self, task_id: str, worker_id: str, payload: Any) -> Contribution:
        return self.lifecycle.submit(task_id, worker_id, payload)

    def review_contribution(
        self,
        contribution_id: str,
        reviewer_id: str,
        approved: bool,
        comment: Optional[str] = None,
    ) -> Validation:
        if approved:
            return self.lifecycle.approve(contribution_id, reviewer_id, comment)
        return self.lifecycle.reject(contribution_id, reviewer_id, comment)

    def resubmit_contribution(self, contribution_id: str, worker_id: str, payload: Any) -> Contribution:
        return self.corrections.resubmit(contribution_id, worker_id, payload)

    # Corrections

    def list_corrections(
        self,
        worker_id: str,
        language: Optional[str] = None,
        source_language: Optional[str] = None,
    ) -> List[CorrectionView]:
        return self.corrections.list_corrections(worker_id, language, source_language)

    def load_for_resubmission(self, contribution_id: str, worker_id: str) -> ResubmissionView:
        return self.corrections.load_for_resubmission(contribution_id, worker_id)


def build_service() -> CrowdService:
    """Service over the backend selected by STORE_BACKEND."""
    if config.STORE_BACKEND == 'memory':
        store = InMemoryStore()
    elif config.STORE_BACKEND == 'dynamodb':
        store = DynamoStore()
    else:
        raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")

    logger.info(f"Using {config.STORE_BACKEND} store")
    return CrowdService(store, S3Storage())


# Lazy initialization, reused across warm Lambda invocations
_service = None


def get_service() -> CrowdService:
    global _service
    if _service is None:
        _service = build_service()
    return _service
