"""
Data models and status constants for the language-data platform.
Based on the task lifecycle: Pending → Assigned → PendingValidation → Completed / Rejected → (correction) → PendingValidation
"""
import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class TaskType(str, Enum):
    """Supported task types (modalities)."""
    ASR = 'asr'
    TTS = 'tts'
    TRANSCRIPTION = 'transcription'
    TRANSLATION = 'translation'


class TaskStatus(str, Enum):
    """Task lifecycle statuses."""
    PENDING = 'pending'
    ASSIGNED = 'assigned'
    PENDING_VALIDATION = 'pending_validation'
    COMPLETED = 'completed'
    REJECTED = 'rejected'
    REJECTED_TRANSCRIPT = 'rejected_transcript'  # Transcript-specific review outcome


class ContributionStatus(str, Enum):
    """Contribution review statuses."""
    PENDING_VALIDATION = 'pending_validation'
    FINALIZED = 'finalized'
    REJECTED = 'rejected'
    REJECTED_TRANSCRIPT = 'rejected_transcript'


class Priority(str, Enum):
    """Task priority levels."""
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class ProjectType(str, Enum):
    """Project types; a project groups tasks of one modality."""
    TRANSLATION = 'translation'
    TRANSCRIPTION = 'transcription'
    TTS = 'tts'
    ASR = 'asr'


class IngestMode(str, Enum):
    """Transcription ingestion modes."""
    DIRECT = 'direct'        # Existing audio is transcribed
    PIPELINE = 'pipeline'    # Record → validate → transcribe; created as asr tasks


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass
class Project:
    """Optional grouping of tasks under common language/type settings."""
    project_id: str
    name: str
    project_type: ProjectType
    source_language: str
    owner_id: str
    target_languages: FrozenSet[str] = frozenset()
    created_at: str = field(default_factory=utc_now)

    def to_item(self) -> Dict[str, Any]:
        item = {
            'projectId': self.project_id,
            'name': self.name,
            'type': self.project_type.value,
            'sourceLanguage': self.source_language,
            'ownerId': self.owner_id,
            'createdAt': self.created_at,
        }
        # DynamoDB rejects empty sets
        if self.target_languages:
            item['targetLanguages'] = set(self.target_languages)
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Project':
        return cls(
            project_id=item['projectId'],
            name=item['name'],
            project_type=ProjectType(item['type']),
            source_language=item['sourceLanguage'],
            owner_id=item['ownerId'],
            target_languages=frozenset(item.get('targetLanguages') or ()),
            created_at=item.get('createdAt', ''),
        )


@dataclass
class Task:
    """A unit of work of one modality with a type-specific content payload."""
    task_id: str
    task_type: TaskType
    language: str
    priority: Priority
    content: 'TaskContent'
    creator_id: str
    status: TaskStatus = TaskStatus.PENDING
    project_id: Optional[str] = None
    assignee_id: Optional[str] = None
    batch_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_item(self) -> Dict[str, Any]:
        item = {
            'taskId': self.task_id,
            'type': self.task_type.value,
            'language': self.language,
            'priority': self.priority.value,
            'content': self.content.to_dict(),
            'status': self.status.value,
            'creatorId': self.creator_id,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        # Only add optional references if they exist (not None)
        if self.project_id is not None:
            item['projectId'] = self.project_id
        if self.assignee_id is not None:
            item['assigneeId'] = self.assignee_id
        if self.batch_id is not None:
            item['batchId'] = self.batch_id
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Task':
        from .content import parse_content

        task_type = TaskType(item['type'])
        return cls(
            task_id=item['taskId'],
            task_type=task_type,
            language=item['language'],
            priority=Priority(item.get('priority', Priority.MEDIUM.value)),
            content=parse_content(task_type, item.get('content') or {}),
            creator_id=item['creatorId'],
            status=TaskStatus(item['status']),
            project_id=item.get('projectId'),
            assignee_id=item.get('assigneeId'),
            batch_id=item.get('batchId'),
            created_at=item.get('createdAt', ''),
            updated_at=item.get('updatedAt', ''),
        )


@dataclass
class Contribution:
    """One worker's attempt at a task."""
    contribution_id: str
    task_id: str
    worker_id: str
    payload: Dict[str, Any]
    status: ContributionStatus = ContributionStatus.PENDING_VALIDATION
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_item(self) -> Dict[str, Any]:
        return {
            'contributionId': self.contribution_id,
            'taskId': self.task_id,
            'workerId': self.worker_id,
            'payload': self.payload,
            'status': self.status.value,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Contribution':
        return cls(
            contribution_id=item['contributionId'],
            task_id=item['taskId'],
            worker_id=item['workerId'],
            payload=dict(item.get('payload') or {}),
            status=ContributionStatus(item['status']),
            created_at=item.get('createdAt', ''),
            updated_at=item.get('updatedAt', ''),
        )


@dataclass(frozen=True)
class Validation:
    """A reviewer's decision on one contribution. Immutable once recorded."""
    validation_id: str
    contribution_id: str
    reviewer_id: str
    is_approved: bool
    comment: str = ''
    created_at: str = field(default_factory=utc_now)

    def to_item(self) -> Dict[str, Any]:
        return {
            'validationId': self.validation_id,
            'contributionId': self.contribution_id,
            'reviewerId': self.reviewer_id,
            'isApproved': self.is_approved,
            'comment': self.comment,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Validation':
        return cls(
            validation_id=item['validationId'],
            contribution_id=item['contributionId'],
            reviewer_id=item['reviewerId'],
            is_approved=bool(item['isApproved']),
            comment=item.get('comment', ''),
            created_at=item.get('createdAt', ''),
        )


@dataclass(frozen=True)
class TaskStatusChange:
    """One entry of a task's append-only status history."""
    change_id: str
    task_id: str
    from_status: Optional[TaskStatus]  # None for the creation entry
    to_status: TaskStatus
    actor_id: Optional[str] = None
    changed_at: str = field(default_factory=utc_now)

    def to_item(self) -> Dict[str, Any]:
        item = {
            'changeId': self.change_id,
            'taskId': self.task_id,
            'toStatus': self.to_status.value,
            'changedAt': self.changed_at,
        }
        if self.from_status is not None:
            item['fromStatus'] = self.from_status.value
        if self.actor_id is not None:
            item['actorId'] = self.actor_id
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'TaskStatusChange':
        from_status = item.get('fromStatus')
        return cls(
            change_id=item['changeId'],
            task_id=item['taskId'],
            from_status=TaskStatus(from_status) if from_status else None,
            to_status=TaskStatus(item['toStatus']),
            actor_id=item.get('actorId'),
            changed_at=item.get('changedAt', ''),
        )
